"""Shared fixtures: a small in-memory emission-factor catalog."""

import pytest

from carbonmatch_mcp.db import CatalogDatabase
from carbonmatch_mcp.models import EmissionFactorRecord, MatchResult


def _record(id, title, sector, subsector, unit, factor, source="DESNZ 2024"):
    return EmissionFactorRecord(
        id=id, title=title, sector=sector, subsector=subsector, unit=unit, factor=factor, source=source,
    )


# Ids are unique; ranking ties break on id
CATALOG_RECORDS = [
    _record("tr-rigid-2632", "Rigid truck 26-32t - Container transport - Diesel", "Transport", "Road freight",
            "kg/tonne-km", 0.000116, "GLEC"),
    _record("tr-rigid-1726", "Rigid truck 17-26t - Container transport - Diesel", "Transport", "Road freight",
            "kg/tonne-km", 0.000142, "GLEC"),
    _record("tr-rigid-3575", "Rigid truck 3.5-7.5t - Diesel", "Transport", "Road freight",
            "kg/tonne-km", 0.000498, "GLEC"),
    _record("tr-hgv-refrig-50", "HGV refrigerated (all diesel) - All HGVs - 50% Laden", "Transport",
            "Freighting goods", "kg/tonne-km", 0.00019),
    _record("tr-hgv-refrig-100", "HGV refrigerated (all diesel) - All HGVs - 100% Laden", "Transport",
            "Freighting goods", "kg/tonne-km", 0.000125),
    _record("tr-hgv-avg", "HGV all diesel - Average laden", "Transport", "Freighting goods",
            "kg/tonne-km", 0.000106),
    _record("tr-rail-freight", "Rail freight - Diesel traction", "Transport", "Rail", "kg/tonne-km", 0.0000275),
    _record("tr-truck-acquisition", "Truck acquisition", "Transport", "Capital goods", "kg/USD", 0.45),
    _record("tr-car-petrol-medium", "Petrol car - Medium", "Transport", "Passenger vehicles", "kg/km", 0.1707),
    _record("tr-car-electric", "Electric car - Battery electric vehicle", "Transport", "Passenger vehicles",
            "kg/km", 0.0466),
    _record("tr-flight-long", "International long-haul flight - Economy", "Transport", "Aviation",
            "kg/passenger-km", 0.148),
    _record("mt-carpet", "Carpet tiles", "Materials and Manufacturing", "Flooring", "kg/m2", 14.0),
    _record("fd-apple", "Apple", "Food & Agriculture", "Fruit", "kg/kg", 0.5, "Poore & Nemecek"),
    _record("fd-banana", "Banana", "Food & Agriculture", "Fruit", "kg/kg", 0.86, "Poore & Nemecek"),
    _record("wa-concrete-closed-loop", "Concrete waste closed-loop recycling", "Waste", "Construction waste",
            "kg/tonne", 0.985),
    _record("wa-concrete-landfill", "Concrete waste disposal - Landfill", "Waste", "Construction waste",
            "kg/tonne", 1.265),
    _record("wa-wastewater", "Wastewater treatment", "Water", "Water treatment", "kg/m3", 0.272),
    _record("en-grid", "Grid electricity", "Energy", "Electricity", "kg/kWh", 0.207),
    _record("en-diesel", "Diesel", "Energy", "Fuels", "kg/L", 2.512),
]

RECORDS_BY_ID = {r.id: r for r in CATALOG_RECORDS}


@pytest.fixture
def catalog():
    db = CatalogDatabase.from_records(CATALOG_RECORDS)
    yield db
    db.close()


@pytest.fixture
def records():
    return RECORDS_BY_ID


def match_for(record_id: str, score: float = 0.9) -> MatchResult:
    return MatchResult(record=RECORDS_BY_ID[record_id], relevance_score=score, match_type="fuzzy")
