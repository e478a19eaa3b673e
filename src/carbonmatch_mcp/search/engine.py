"""Search orchestration: exact lookup, scenario/category retrieval, semantic fallback, caching."""

import asyncio
import logging
import re
import sqlite3

from ..cache import TTLCache
from ..config import (
    SEARCH_CACHE_MAX_SIZE,
    SEARCH_CACHE_TTL,
    SEMANTIC_SECTOR_LIMIT,
    SEMANTIC_TERM_LIMIT,
    SUPPORTED_LANGUAGES,
    TOP_RESULTS,
)
from ..db import CatalogError
from ..models import EmissionFactorRecord, MatchResult, QueryEntity
from ..oracle import OracleError
from ..validation import SearchStrategy, default_search_strategy, parse_search_strategy
from .retriever import CandidateRetriever
from .scenarios import apply_range_filtering, search_scenario
from .scoring import RelevanceScorer

logger = logging.getLogger(__name__)

# Catalog failures degrade a stage to an empty result
_CATALOG_ERRORS = (sqlite3.Error, CatalogError, OSError)

_SCENARIO_TYPES = ("transport", "waste", "liquid")

# Broad sector sweep when a semantic strategy finds nothing
_SWEEP_PRIMARY = ("Transport", 50)
_SWEEP_SECONDARY = (("Materials and Manufacturing", 30), ("Energy", 30))

_WHITESPACE = re.compile(r"\s+")
_PUNCT_SPACING = re.compile(r"\s*([-/()%:,])\s*")
_SPECIAL_CHARS = re.compile(r"[^\w\s\-/%.]")


def name_variants(name: str) -> list[str]:
    """Normalised spellings of an entity name tried for exact lookup, in order, de-duplicated."""
    trimmed = name.strip()
    collapsed = _WHITESPACE.sub(" ", trimmed)
    spaced = _PUNCT_SPACING.sub(r" \1 ", collapsed)
    spaced = _WHITESPACE.sub(" ", spaced).strip()
    variants = [
        trimmed,
        collapsed,
        spaced,
        _PUNCT_SPACING.sub(r"\1", collapsed),
        collapsed.lower(),
        _WHITESPACE.sub(" ", _SPECIAL_CHARS.sub(" ", collapsed)).strip(),
    ]
    return [v for v in dict.fromkeys(variants) if v]


def _unique(records: list[EmissionFactorRecord]) -> list[EmissionFactorRecord]:
    seen: set[str] = set()
    unique = []
    for record in records:
        if record.id not in seen:
            seen.add(record.id)
            unique.append(record)
    return unique


class SearchEngine:
    """Finds ranked emission-factor matches for query entities.

    Results are cached per (name, entity type, language). Cached values are
    immutable tuples of MatchResult; an empty tuple records a known miss.
    """

    def __init__(
        self,
        catalog,
        oracle=None,
        cache: TTLCache | None = None,
        retriever: CandidateRetriever | None = None,
        scorer: RelevanceScorer | None = None,
    ):
        self._catalog = catalog
        self._oracle = oracle
        self._cache = cache if cache is not None else TTLCache(ttl=SEARCH_CACHE_TTL, max_size=SEARCH_CACHE_MAX_SIZE)
        self._retriever = retriever or CandidateRetriever(catalog)
        self._scorer = scorer or RelevanceScorer()

    @staticmethod
    def cache_key(entity: QueryEntity, language: str) -> str:
        return f"{entity.name}|{entity.cache_type}|{language}"

    async def search_activities(self, entity: QueryEntity, language: str = "en") -> list[MatchResult]:
        """Ranked matches for one entity.

        Args:
            entity: Query entity (name required)
            language: Language tag, one of SUPPORTED_LANGUAGES

        Returns:
            Up to TOP_RESULTS matches, best first

        Raises:
            ValueError: If the entity name is empty or the language is unsupported
        """
        if not entity.name or not entity.name.strip():
            raise ValueError("Entity name must not be empty")
        if language not in SUPPORTED_LANGUAGES:
            raise ValueError(f"Unsupported language: {language!r}. Supported: {', '.join(SUPPORTED_LANGUAGES)}")

        key = self.cache_key(entity, language)
        cached = self._cache.get(key)
        if cached is not None:
            logger.debug(f"Cache hit for '{entity.name}'")
            return list(cached)

        results = self._exact_stage(entity)
        if not results:
            results = self._fuzzy_stage(entity)
        if not results:
            results = await self._semantic_stage(entity, language)

        logger.info(f"Search for '{entity.name}' returned {len(results)} matches")
        self._cache.set(key, tuple(results))
        return results

    def _exact_stage(self, entity: QueryEntity) -> list[MatchResult]:
        try:
            for variant in name_variants(entity.name):
                records = self._catalog.exact_match(variant)
                if records:
                    logger.info(f"Exact match for '{entity.name}' via variant '{variant}'")
                    return [MatchResult(record=r, relevance_score=1.0, match_type="exact") for r in records]
        except _CATALOG_ERRORS as e:
            logger.error(f"Exact lookup failed for '{entity.name}': {e}")
        return []

    def _fuzzy_stage(self, entity: QueryEntity) -> list[MatchResult]:
        try:
            candidates: list[EmissionFactorRecord] = []
            if entity.scenario_details is not None or entity.entity_type in _SCENARIO_TYPES:
                candidates = search_scenario(self._catalog, entity)
            if not candidates:
                candidates = self._retriever.retrieve(entity.name, entity.entity_type)
        except _CATALOG_ERRORS as e:
            logger.error(f"Candidate retrieval failed for '{entity.name}': {e}")
            return []
        if not candidates:
            return []
        candidates = apply_range_filtering(entity, candidates)
        return self._scorer.rank(entity, candidates, limit=TOP_RESULTS)

    async def _search_strategy(self, entity: QueryEntity, language: str) -> SearchStrategy:
        if self._oracle is not None:
            try:
                text = await self._oracle.propose_search_strategy(entity.name, language)
                strategy = parse_search_strategy(text)
                if strategy is not None:
                    return strategy
                logger.warning(f"Unusable search strategy for '{entity.name}', using keyword heuristics")
            except OracleError as e:
                logger.error(f"Search strategy request failed for '{entity.name}': {e}")
        return default_search_strategy(entity.name)

    async def _semantic_stage(self, entity: QueryEntity, language: str) -> list[MatchResult]:
        strategy = await self._search_strategy(entity, language)
        try:
            records = self._hierarchical_search(strategy)
        except _CATALOG_ERRORS as e:
            logger.error(f"Semantic search failed for '{entity.name}': {e}")
            return []
        if not records:
            return []
        logger.info(f"Semantic fallback for '{entity.name}': {len(records)} candidates")
        return self._scorer.rank(entity, records, limit=TOP_RESULTS, match_type="semantic")

    def _hierarchical_search(self, strategy: SearchStrategy) -> list[EmissionFactorRecord]:
        found: list[EmissionFactorRecord] = []
        for sector in strategy.sectors:
            found += self._catalog.by_hierarchy(sector=sector, limit=SEMANTIC_SECTOR_LIMIT)
        for term in [*strategy.keywords, *strategy.related_terms]:
            found += self._catalog.fuzzy_match(term, SEMANTIC_TERM_LIMIT)

        if not found:
            sector, limit = _SWEEP_PRIMARY
            found = self._catalog.by_hierarchy(sector=sector, limit=limit)
        if not found:
            for sector, limit in _SWEEP_SECONDARY:
                found += self._catalog.by_hierarchy(sector=sector, limit=limit)
        return _unique(found)

    async def batch_search_activities(
        self,
        entities: list[QueryEntity],
        language: str = "en",
    ) -> dict[str, list[MatchResult]]:
        """Search all entities concurrently. A failed entity maps to []."""
        results, _ = await self.batch_search_with_errors(entities, language)
        return results

    async def batch_search_with_errors(
        self,
        entities: list[QueryEntity],
        language: str = "en",
    ) -> tuple[dict[str, list[MatchResult]], dict[str, str]]:
        """Search all entities concurrently.

        Returns:
            (results, errors): results maps every entity name to its matches ([] on failure);
            errors maps each failed name to its error message
        """
        outcomes = await asyncio.gather(
            *(self.search_activities(entity, language) for entity in entities),
            return_exceptions=True,
        )
        results: dict[str, list[MatchResult]] = {}
        errors: dict[str, str] = {}
        for entity, outcome in zip(entities, outcomes):
            if isinstance(outcome, BaseException):
                logger.error(f"Search failed for '{entity.name}': {outcome}")
                errors[entity.name] = str(outcome) or type(outcome).__name__
                results[entity.name] = []
            else:
                results[entity.name] = outcome
        return results, errors

    def get_similar_activities(self, record: EmissionFactorRecord, limit: int = 5) -> list[MatchResult]:
        """Other records in the same sector/subsector."""
        try:
            records = self._catalog.by_hierarchy(sector=record.sector, subsector=record.subsector, limit=limit + 1)
        except _CATALOG_ERRORS as e:
            logger.error(f"Similar-activity lookup failed for '{record.title}': {e}")
            return []
        return [
            MatchResult(record=r, relevance_score=0.7, match_type="fuzzy")
            for r in records
            if r.id != record.id
        ][:limit]

    def clear_cache(self) -> None:
        self._cache.clear()
        logger.info("Search cache cleared")

    def get_cache_stats(self) -> dict:
        keys = self._cache.keys()
        return {"size": len(keys), "keys": keys}
