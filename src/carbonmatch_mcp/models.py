"""Data model for emission-factor search and carbon calculation."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, Union

ENTITY_TYPES = ("transport", "waste", "liquid", "food", "energy", "general")
INTENTS = ("carbon_calculation", "information_query", "general_chat")

MatchType = Literal["exact", "fuzzy", "semantic"]


@dataclass(frozen=True)
class EmissionFactorRecord:
    """A catalog entry. Read-only: records are created by catalog ingestion."""
    id: str
    title: str
    sector: str
    unit: str  # Factor unit expression (e.g., "kg/tonne-km", "kg CO2e/kWh")
    factor: float  # kg CO2e (or the numerator mass unit) per unit of activity
    source: str = ""
    subsector: str | None = None
    description: str | None = None

    @property
    def path(self) -> dict[str, str | None]:
        """Classification path: sector > subsector > activity."""
        return {"sector": self.sector, "subsector": self.subsector, "activity": self.title}

    @classmethod
    def from_row(cls, row: Any) -> EmissionFactorRecord:
        """Build from a sqlite3.Row or mapping with catalog column names."""
        return cls(
            id=str(row["id"]),
            title=row["title"] or "",
            sector=row["sector"] or "Unknown",
            subsector=row["subsector"] or None,
            unit=row["unit"] or "",
            factor=float(row["factor"] or 0.0),
            source=row["source"] or "",
            description=row["description"] or None,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "sector": self.sector,
            "subsector": self.subsector,
            "unit": self.unit,
            "factor": self.factor,
            "source": self.source,
            "description": self.description,
        }


# =============================================================================
# SCENARIO DETAILS
# =============================================================================
# One variant per entity type. The calculation engine dispatches on the variant.

@dataclass
class TransportDetails:
    vehicle_type: str | None = None  # "rigid truck", "HGV", "passenger car"
    cargo_type: str | None = None  # "container", "refrigerated goods"
    fuel_type: str | None = None  # "diesel", "petrol", "electric"
    distance: float | None = None
    distance_unit: str | None = None
    weight: float | None = None  # Cargo weight
    weight_unit: str | None = None
    load_status: str | None = None  # "half-loaded", "fully loaded", "empty"
    vehicle_count: int | None = None
    weight_range: str | None = None  # Catalog band named by the user, e.g. "26-32t"
    kind: Literal["transport"] = field(default="transport", init=False)

    def to_dict(self) -> dict[str, Any]:
        return _compact(self)


@dataclass
class WasteDetails:
    waste_type: str | None = None  # "concrete", "plastic"
    processing_method: str | None = None  # "recycling", "closed-loop recycling", "disposal"
    kind: Literal["waste"] = field(default="waste", init=False)

    def to_dict(self) -> dict[str, Any]:
        return _compact(self)


@dataclass
class LiquidDetails:
    liquid_type: str | None = None  # "wastewater", "drinking water"
    processing_method: str | None = None  # "treatment", "processing"
    kind: Literal["liquid"] = field(default="liquid", init=False)

    def to_dict(self) -> dict[str, Any]:
        return _compact(self)


@dataclass
class UsageDetails:
    """Device or activity usage for food, energy and general entities."""
    device_type: str | None = None
    device_count: int | None = None
    operation_time: float | None = None
    time_unit: str | None = None
    energy_consumption: float | None = None
    energy_unit: str | None = None
    distance: float | None = None
    distance_unit: str | None = None
    kind: Literal["usage"] = field(default="usage", init=False)

    def to_dict(self) -> dict[str, Any]:
        return _compact(self)


ScenarioDetails = Union[TransportDetails, WasteDetails, LiquidDetails, UsageDetails]


def _compact(details: Any) -> dict[str, Any]:
    """Dataclass fields as a dict, dropping unset values."""
    return {k: v for k, v in details.__dict__.items() if v is not None}


# =============================================================================
# QUERY AND RESULT TYPES
# =============================================================================

@dataclass
class QueryEntity:
    """One activity mentioned in a user query.

    ``quantity`` is always a user-stated magnitude, never a catalog range bound
    such as the "26" of "26-32t" (the validation layer enforces this).
    """
    name: str
    confidence: float = 0.5
    quantity: float | None = None
    unit: str | None = None
    entity_type: str | None = None  # One of ENTITY_TYPES
    scenario_details: ScenarioDetails | None = None
    original_text: str | None = None

    @property
    def cache_type(self) -> str:
        return self.entity_type or "general"

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "confidence": self.confidence,
            "quantity": self.quantity,
            "unit": self.unit,
            "entity_type": self.entity_type,
            "scenario_details": self.scenario_details.to_dict() if self.scenario_details else None,
            "original_text": self.original_text,
        }


@dataclass(frozen=True)
class MatchResult:
    record: EmissionFactorRecord
    relevance_score: float  # 0-1
    match_type: MatchType

    @property
    def path(self) -> dict[str, str | None]:
        return self.record.path

    def to_dict(self) -> dict[str, Any]:
        return {
            "record": self.record.to_dict(),
            "relevance_score": round(self.relevance_score, 4),
            "match_type": self.match_type,
            "path": self.path,
        }


@dataclass
class CalculationResult:
    """Outcome of applying a factor to an entity.

    total_emission == 0 means "factor only": the quantity or a required dimension
    was missing and ``notes`` says what to provide.
    """
    entity: QueryEntity
    record: EmissionFactorRecord
    total_emission: float  # kg CO2e
    quantity_used: float
    unit_used: str
    factor: float
    formula: str
    confidence: float
    notes: list[str] = field(default_factory=list)

    @property
    def is_factor_only(self) -> bool:
        return self.total_emission == 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "entity": self.entity.to_dict(),
            "emission_factor": self.record.to_dict(),
            "total_emission": self.total_emission,
            "calculation": {
                "quantity": self.quantity_used,
                "unit": self.unit_used,
                "factor": self.factor,
                "formula": self.formula,
            },
            "confidence": round(self.confidence, 4),
            "notes": list(self.notes),
        }


@dataclass
class IntentResult:
    intent: str  # One of INTENTS
    entities: list[QueryEntity]
    missing_info: list[str]
    confidence: float
    original_query: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "intent": self.intent,
            "entities": [e.to_dict() for e in self.entities],
            "missing_info": list(self.missing_info),
            "confidence": self.confidence,
            "original_query": self.original_query,
        }


@dataclass
class SystemResponse:
    success: bool
    message: str
    results: list[CalculationResult] = field(default_factory=list)
    total_emission: float = 0.0
    suggestions: list[str] = field(default_factory=list)
    language: str = "en"
    processing_time_ms: float = 0.0
    errors: dict[str, str] = field(default_factory=dict)  # entity name -> search failure

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "success": self.success,
            "message": self.message,
            "results": [r.to_dict() for r in self.results],
            "total_emission": self.total_emission,
            "suggestions": list(self.suggestions),
            "language": self.language,
            "processing_time_ms": round(self.processing_time_ms, 1),
        }
        if self.errors:
            result["errors"] = dict(self.errors)
        return result
