"""Tests for category classification and candidate retrieval."""

import pytest

from carbonmatch_mcp.search import CandidateRetriever, CatalogQuery, CategoryRule
from carbonmatch_mcp.search.retriever import (
    has_word,
    is_closed_loop_request,
    is_operational,
    load_state_of,
    title_load_state,
)


class TestHasWord:
    """Test whole-word and prefix keyword matching."""

    def test_whole_word(self):
        """Short words only match on word boundaries."""
        assert has_word("ev charging", "ev")
        assert not has_word("every day", "ev")

    def test_prefix(self):
        """A trailing * matches word prefixes."""
        assert has_word("freight trains", "train*")
        assert not has_word("shipping container", "train*")

    def test_any_of(self):
        """Any of several words is enough."""
        assert has_word("a lorry", "truck", "lorry")


class TestClassify:
    """Test rule selection by entity name."""

    @pytest.mark.parametrize("name,rule", [
        ("30-ton rigid diesel truck carrying a container", "truck"),
        ("heavy goods vehicle diesel", "hgv"),
        ("HGV refrigerated", "hgv"),
        ("medium petrol car", "car"),
        ("tesla model 3", "electric"),
        ("wastewater", "liquid"),
        ("concrete waste closed-loop recycling", "waste"),
        ("international flight", "aviation"),
        ("freight train", "rail"),
        ("parcel delivery", "transport"),
        ("cargo ship", "marine"),
    ])
    def test_rule(self, catalog, name, rule):
        """Names map to the expected category."""
        assert CandidateRetriever(catalog).classify(name).name == rule

    def test_unrecognised(self, catalog):
        """Names without category keywords have no rule."""
        assert CandidateRetriever(catalog).classify("apple") is None

    def test_entity_type_hint(self, catalog):
        """The liquid type hint selects the liquid rule."""
        assert CandidateRetriever(catalog).classify("runoff", "liquid").name == "liquid"


class TestRetrieve:
    """Test candidate buckets for representative entities."""

    def test_rigid_container_truck(self, catalog):
        """Rigid container trucks narrow to container-transport records."""
        retrieval = CandidateRetriever(catalog).retrieve_with_rule(
            "30-ton rigid diesel truck carrying a container"
        )
        assert retrieval.rule == "truck"
        assert [r.id for r in retrieval.records] == ["tr-rigid-2632", "tr-rigid-1726"]
        assert retrieval.queries == ["fuzzy('rigid truck container', 30)", "fuzzy('rigid truck', 30)"]

    def test_acquisition_records_are_dropped(self, catalog):
        """Spend-based and acquisition records are not operational."""
        ids = [r.id for r in CandidateRetriever(catalog).retrieve("delivery truck")]
        assert ids == ["tr-rigid-2632", "tr-rigid-1726", "tr-rigid-3575"]

    def test_car_size_and_fuel(self, catalog):
        """Car size and fuel narrow the bucket; carpet is never a car."""
        ids = [r.id for r in CandidateRetriever(catalog).retrieve("medium petrol car")]
        assert ids == ["tr-car-petrol-medium"]

    def test_refrigerated_hgv_load_state(self, catalog):
        """Refrigerated HGVs narrow to the requested load state."""
        retriever = CandidateRetriever(catalog)
        assert [r.id for r in retriever.retrieve("heavy goods vehicle refrigerated half loaded")] == [
            "tr-hgv-refrig-50"
        ]
        assert [r.id for r in retriever.retrieve("HGV 100% laden refrigerated")] == ["tr-hgv-refrig-100"]

    def test_waste_closed_loop(self, catalog):
        """Closed-loop recycling wins over disposal for the named material."""
        ids = [r.id for r in CandidateRetriever(catalog).retrieve("concrete waste sent to closed-loop recycling")]
        assert ids == ["wa-concrete-closed-loop"]

    def test_waste_disposal(self, catalog):
        """Disposal requests exclude recycling records."""
        ids = [r.id for r in CandidateRetriever(catalog).retrieve("concrete waste landfill disposal")]
        assert ids == ["wa-concrete-landfill"]

    def test_liquid(self, catalog):
        """Wastewater retrieves treatment records."""
        ids = [r.id for r in CandidateRetriever(catalog).retrieve("wastewater")]
        assert ids == ["wa-wastewater"]

    def test_electric_combines_queries(self, catalog):
        """The electric rule merges all of its queries."""
        ids = [r.id for r in CandidateRetriever(catalog).retrieve("tesla model 3")]
        assert ids == ["tr-car-electric", "en-grid"]

    def test_generic_fallback(self, catalog):
        """Unrecognised names use a substring search on the full name."""
        retrieval = CandidateRetriever(catalog).retrieve_with_rule("banana")
        assert retrieval.rule is None
        assert [r.id for r in retrieval.records] == ["fd-banana"]

    def test_empty_rule_falls_back(self, catalog):
        """A rule that finds nothing falls back to the substring search."""
        rules = [CategoryRule(
            name="never",
            predicate=lambda n, t: True,
            queries=lambda n: [CatalogQuery(text="zzz")],
        )]
        retrieval = CandidateRetriever(catalog, rules=rules).retrieve_with_rule("banana")
        assert retrieval.rule is None
        assert [r.id for r in retrieval.records] == ["fd-banana"]

    def test_max_candidates(self, catalog):
        """Buckets are capped at max_candidates."""
        assert len(CandidateRetriever(catalog, max_candidates=1).retrieve("delivery truck")) == 1

    def test_no_candidates(self, catalog):
        """Nothing found anywhere returns an empty bucket."""
        assert CandidateRetriever(catalog).retrieve("quantum widget") == []


class TestHelpers:
    """Test load-state, closed-loop and operational helpers."""

    @pytest.mark.parametrize("text,state", [
        ("half loaded", "half"),
        ("50% laden", "half"),
        ("fully laden", "full"),
        ("100% loaded", "full"),
        ("empty return", "empty"),
        ("0% laden", "empty"),
        ("diesel", None),
    ])
    def test_load_state_of(self, text, state):
        """User phrasing maps to a load state."""
        assert load_state_of(text) == state

    def test_title_load_state(self, records):
        """Catalog titles carry load state as percentages."""
        assert title_load_state(records["tr-hgv-refrig-50"].title) == "half"
        assert title_load_state(records["tr-hgv-refrig-100"].title) == "full"
        assert title_load_state(records["tr-hgv-avg"].title) is None

    def test_closed_loop_request(self):
        """Closed-loop wording and 'recycled into new' are closed-loop requests."""
        assert is_closed_loop_request("closed-loop recycling")
        assert is_closed_loop_request("fully recycled plastic")
        assert is_closed_loop_request("glass recycled into new bottles")
        assert not is_closed_loop_request("glass recycling")

    def test_is_operational(self, records):
        """Acquisition and per-USD records are not operational."""
        assert not is_operational(records["tr-truck-acquisition"])
        assert is_operational(records["tr-rigid-2632"])
