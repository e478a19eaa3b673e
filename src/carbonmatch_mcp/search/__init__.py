"""Candidate retrieval, relevance scoring and search orchestration."""

from .engine import SearchEngine, name_variants
from .retriever import CATEGORY_RULES, CandidateRetriever, CatalogQuery, CategoryRule
from .scenarios import apply_range_filtering, prioritize_transport_results, search_scenario
from .scoring import RelevanceScorer, check_range_inclusion

__all__ = [
    "SearchEngine",
    "name_variants",
    "CATEGORY_RULES",
    "CandidateRetriever",
    "CatalogQuery",
    "CategoryRule",
    "apply_range_filtering",
    "prioritize_transport_results",
    "search_scenario",
    "RelevanceScorer",
    "check_range_inclusion",
]
