"""Tests for the emission-factor catalog database."""

import json

import pytest

from carbonmatch_mcp.db import CatalogDatabase, CatalogError, build_catalog
from carbonmatch_mcp.db.connection import record_from_dict


class TestExactMatch:
    """Test case-insensitive exact title lookup."""

    def test_exact_title(self, catalog):
        """Exact title is found regardless of case."""
        results = catalog.exact_match("apple")
        assert [r.id for r in results] == ["fd-apple"]

    def test_whitespace_is_trimmed(self, catalog):
        """Surrounding whitespace is ignored."""
        assert catalog.exact_match("  Grid Electricity ")[0].id == "en-grid"

    def test_partial_title_is_not_exact(self, catalog):
        """Substrings do not count as exact matches."""
        assert catalog.exact_match("Grid") == []

    def test_blank_name(self, catalog):
        """Blank names return nothing."""
        assert catalog.exact_match("   ") == []


class TestFuzzyMatch:
    """Test substring search ordering and escaping."""

    def test_prefix_before_contains(self, catalog):
        """Titles starting with the text rank before titles merely containing it."""
        results = catalog.fuzzy_match("truck", limit=10)
        assert [r.id for r in results] == [
            "tr-truck-acquisition",
            "tr-rigid-2632",
            "tr-rigid-1726",
            "tr-rigid-3575",
        ]

    def test_exact_before_prefix(self, catalog):
        """An exact title ranks first."""
        results = catalog.fuzzy_match("diesel", limit=20)
        assert results[0].id == "en-diesel"

    def test_limit(self, catalog):
        """Results are capped at the limit."""
        assert len(catalog.fuzzy_match("a", limit=3)) == 3

    def test_like_wildcards_are_literal(self, catalog):
        """% and _ in user text are matched literally."""
        results = catalog.fuzzy_match("50%")
        assert [r.id for r in results] == ["tr-hgv-refrig-50"]
        assert catalog.fuzzy_match("_") == []

    def test_case_insensitive(self, catalog):
        """Matching ignores case."""
        assert catalog.fuzzy_match("HGV ALL")[0].id == "tr-hgv-avg"


class TestHierarchy:
    """Test sector / subsector / activity lookups."""

    def test_sector(self, catalog):
        """Sector filter matches by case-insensitive substring."""
        results = catalog.by_hierarchy(sector="waste")
        assert [r.id for r in results] == ["wa-concrete-closed-loop", "wa-concrete-landfill"]

    def test_sector_and_subsector(self, catalog):
        """Subsector narrows within the sector."""
        results = catalog.by_hierarchy(sector="transport", subsector="rail")
        assert [r.id for r in results] == ["tr-rail-freight"]

    def test_activity(self, catalog):
        """Activity filters on title."""
        results = catalog.by_hierarchy(activity="banana")
        assert [r.id for r in results] == ["fd-banana"]

    def test_limit(self, catalog):
        """Limit applies to hierarchy search."""
        assert len(catalog.by_hierarchy(sector="transport", limit=4)) == 4

    def test_sectors_sorted(self, catalog):
        """all_sectors returns distinct sectors in name order."""
        assert catalog.all_sectors() == [
            "Energy",
            "Food & Agriculture",
            "Materials and Manufacturing",
            "Transport",
            "Waste",
            "Water",
        ]

    def test_subsectors(self, catalog):
        """subsectors_of lists distinct subsectors."""
        assert catalog.subsectors_of("Food & Agriculture") == ["Fruit"]
        assert catalog.subsectors_of("Nonexistent") == []


class TestStats:
    """Test statistics and health."""

    def test_stats(self, catalog):
        """Counts reflect the catalog contents."""
        stats = catalog.get_stats()
        assert stats["total_activities"] == 19
        assert stats["sectors"] == 6
        assert stats["by_sector"]["Transport"] == 11

    def test_sample_data(self, catalog):
        """Sample data returns sectors and serialized activities."""
        sample = catalog.get_sample_data(limit=3)
        assert len(sample["activities"]) == 3
        assert "title" in sample["activities"][0]
        assert "Energy" in sample["sectors"]

    def test_healthy(self, catalog):
        """An in-memory catalog is healthy."""
        assert catalog.is_healthy()


class TestBuildCatalog:
    """Test building the SQLite catalog from JSONL."""

    def _write(self, path, rows):
        with open(path, "w", encoding="utf-8") as f:
            for row in rows:
                f.write(row if isinstance(row, str) else json.dumps(row))
                f.write("\n")

    def test_build_and_query(self, tmp_path):
        """Valid rows are loaded; malformed and incomplete rows are skipped."""
        data = tmp_path / "factors.jsonl"
        self._write(data, [
            {"id": "a1", "title": "Grid electricity", "sector": "Energy", "unit": "kg/kWh", "factor": 0.2},
            {"name": "Apple", "sector": "Food", "unit": "kg/kg", "emission_factor": "0.5"},
            "{not json",
            {"title": "No factor", "sector": "Energy", "unit": "kg/kWh"},
            "",
        ])
        db_path = tmp_path / "out" / "catalog.db"

        stats = build_catalog(data, db_path)
        assert stats["total_activities"] == 2
        assert stats["sectors"] == 2

        db = CatalogDatabase(db_path=db_path, data_path=data)
        try:
            apple = db.exact_match("apple")[0]
            assert apple.factor == pytest.approx(0.5)
            assert apple.id == "ef-2"
            assert db.is_healthy()
        finally:
            db.close()

    def test_missing_data_file(self, tmp_path):
        """A missing source file raises CatalogError."""
        with pytest.raises(CatalogError):
            build_catalog(tmp_path / "missing.jsonl", tmp_path / "catalog.db")

    def test_lazy_build_on_first_use(self, tmp_path):
        """The database is built from data_path when db_path does not exist."""
        data = tmp_path / "factors.jsonl"
        self._write(data, [{"title": "Banana", "sector": "Food", "unit": "kg/kg", "factor": 0.86}])
        db = CatalogDatabase(db_path=tmp_path / "catalog.db", data_path=data)
        try:
            assert db.fuzzy_match("ban")[0].title == "Banana"
            assert (tmp_path / "catalog.db").exists()
        finally:
            db.close()

    def test_unhealthy_without_data(self, tmp_path):
        """Health check reports False instead of raising when the catalog cannot be built."""
        db = CatalogDatabase(db_path=tmp_path / "catalog.db", data_path=tmp_path / "missing.jsonl")
        assert not db.is_healthy()


class TestRecordFromDict:
    """Test export row normalization."""

    def test_defaults(self):
        """Missing sector becomes Unknown; blank subsector becomes None."""
        record = record_from_dict({"title": "Thing", "factor": 1, "subsector": " "}, fallback_id="ef-9")
        assert record.id == "ef-9"
        assert record.sector == "Unknown"
        assert record.subsector is None

    def test_rejects_non_numeric_factor(self):
        """Rows with a non-numeric factor are dropped."""
        assert record_from_dict({"title": "Thing", "factor": "n/a"}, fallback_id="x") is None
