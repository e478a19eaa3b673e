"""Defensive processing of language-model output.

Model text is untrusted: it may not be JSON, may carry unknown intents, non-numeric
or non-finite quantities, or quantities copied from a vehicle size band ("26" of
"26-32t"). Everything that reaches the search and calculation layers passes
through here first.
"""

import asyncio
import json
import logging
import math
import re
from dataclasses import dataclass, field
from typing import Any

from .mentions import is_range_boundary
from .models import (
    ENTITY_TYPES,
    INTENTS,
    IntentResult,
    LiquidDetails,
    QueryEntity,
    ScenarioDetails,
    TransportDetails,
    UsageDetails,
    WasteDetails,
)
from .oracle import OracleError
from .units import is_distance_unit, normalize_unit

logger = logging.getLogger(__name__)

DEFAULT_CONFIDENCE = 0.5
UNDERSTAND_FAILURE = "Unable to understand input"

_JSON_BLOCK = re.compile(r"\{[\s\S]*\}")


def extract_json_object(text: str | None) -> dict[str, Any] | None:
    """First {...} block of text parsed as a JSON object, or None."""
    if not text:
        return None
    match = _JSON_BLOCK.search(text)
    if not match:
        return None
    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError:
        return None
    return data if isinstance(data, dict) else None


# =============================================================================
# FIELD VALIDATORS
# =============================================================================

def validate_intent(value: Any) -> str:
    if isinstance(value, str) and value.strip() in INTENTS:
        return value.strip()
    return "general_chat"


def _as_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip().replace(",", ""))
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def validate_quantity(value: Any, entity_name: str = "") -> float | None:
    """A finite, non-negative number that is not a range bound written in the entity name."""
    number = _as_number(value)
    if number is None or number < 0:
        return None
    if entity_name and is_range_boundary(number, entity_name):
        logger.warning(f"Dropping quantity {number:g}: it is a range bound in '{entity_name}'")
        return None
    return number


def validate_confidence(value: Any) -> float:
    number = _as_number(value)
    if number is None:
        return DEFAULT_CONFIDENCE
    return min(max(number, 0.0), 1.0)


def _text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _positive(value: Any) -> float | None:
    number = _as_number(value)
    return number if number is not None and number > 0 else None


def _count(value: Any) -> int | None:
    number = _positive(value)
    return int(number) if number is not None else None


def _get(details: dict[str, Any], *keys: str) -> Any:
    """First present value among camelCase / snake_case spellings."""
    for key in keys:
        if details.get(key) is not None:
            return details[key]
    return None


_TRANSPORT_KEYS = ("vehicleType", "vehicle_type", "cargoType", "cargo_type", "fuelType", "fuel_type",
                   "loadStatus", "load_status", "weight")
_WASTE_KEYS = ("wasteType", "waste_type")
_LIQUID_KEYS = ("liquidType", "liquid_type")
_USAGE_KEYS = ("deviceType", "device_type", "deviceCount", "device_count", "operationTime", "operation_time",
               "energyConsumption", "energy_consumption", "distance")


def validate_scenario_details(details: Any, entity_type: str | None) -> ScenarioDetails | None:
    """Build the details variant for entity_type from a raw dict; None if nothing usable."""
    if not isinstance(details, dict) or not details:
        return None

    kind = entity_type
    if kind not in ("transport", "waste", "liquid"):
        if any(k in details for k in _WASTE_KEYS):
            kind = "waste"
        elif any(k in details for k in _LIQUID_KEYS):
            kind = "liquid"
        elif any(k in details for k in _TRANSPORT_KEYS):
            kind = "transport"
        elif any(k in details for k in _USAGE_KEYS):
            kind = "usage"
        else:
            return None

    distance = _positive(_get(details, "distance"))
    distance_unit = _text(_get(details, "distanceUnit", "distance_unit")) if distance is not None else None

    if kind == "transport":
        weight = _positive(_get(details, "weight"))
        return TransportDetails(
            vehicle_type=_text(_get(details, "vehicleType", "vehicle_type")),
            cargo_type=_text(_get(details, "cargoType", "cargo_type")),
            fuel_type=_text(_get(details, "fuelType", "fuel_type")),
            distance=distance,
            distance_unit=distance_unit or ("km" if distance is not None else None),
            weight=weight,
            weight_unit=_text(_get(details, "weightUnit", "weight_unit")) if weight is not None else None,
            load_status=_text(_get(details, "loadStatus", "load_status")),
            vehicle_count=_count(_get(details, "vehicleCount", "vehicle_count")),
            weight_range=_text(_get(details, "weightRange", "weight_range")),
        )
    if kind == "waste":
        return WasteDetails(
            waste_type=_text(_get(details, "wasteType", "waste_type")),
            processing_method=_text(_get(details, "processingMethod", "processing_method")),
        )
    if kind == "liquid":
        return LiquidDetails(
            liquid_type=_text(_get(details, "liquidType", "liquid_type")),
            processing_method=_text(_get(details, "processingMethod", "processing_method")),
        )

    operation_time = _positive(_get(details, "operationTime", "operation_time"))
    energy = _positive(_get(details, "energyConsumption", "energy_consumption"))
    return UsageDetails(
        device_type=_text(_get(details, "deviceType", "device_type")),
        device_count=_count(_get(details, "deviceCount", "device_count")),
        operation_time=operation_time,
        time_unit=_text(_get(details, "timeUnit", "time_unit")) if operation_time is not None else None,
        energy_consumption=energy,
        energy_unit=_text(_get(details, "energyUnit", "energy_unit")) if energy is not None else None,
        distance=distance,
        distance_unit=distance_unit,
    )


def validate_entity(raw: Any, original_query: str = "") -> QueryEntity | None:
    """QueryEntity from one raw model entity; None without a usable name."""
    if not isinstance(raw, dict):
        return None
    name = _text(raw.get("name"))
    if not name:
        return None

    entity_type = _text(_get(raw, "entityType", "entity_type"))
    if entity_type is not None:
        entity_type = entity_type.lower()
        if entity_type not in ENTITY_TYPES:
            entity_type = "general"

    quantity = validate_quantity(raw.get("quantity"), name)
    unit = _text(raw.get("unit")) if quantity is not None else None

    return QueryEntity(
        name=name,
        confidence=validate_confidence(raw.get("confidence")),
        quantity=quantity,
        unit=unit,
        entity_type=entity_type,
        scenario_details=validate_scenario_details(_get(raw, "scenarioDetails", "scenario_details"), entity_type),
        original_text=original_query or None,
    )


# =============================================================================
# ENTITY POST-PROCESSING
# =============================================================================

_TRANSPORT_WORDS = ("truck", "vehicle", "car", "transport", "delivery", "diesel", "rigid", "hgv", "container", "lorry", "lorries")
_DISTANCE_WORDS = ("distance", "route", "km", "mile", "across")


def _word_pattern(words: tuple[str, ...]) -> re.Pattern:
    # Whole words with an optional plural; digits may touch ("75km")
    return re.compile(rf"(?<![a-z])(?:{'|'.join(map(re.escape, words))})(?:s|es)?(?![a-z])", re.IGNORECASE)


_TRANSPORT_WORD = _word_pattern(_TRANSPORT_WORDS)
_DISTANCE_WORD = _word_pattern(_DISTANCE_WORDS)
_NON_VEHICLE_TYPES = ("food", "waste", "liquid", "energy")


def _is_distance_entity(entity: QueryEntity) -> bool:
    if entity.quantity is None:
        return False
    if _TRANSPORT_WORD.search(entity.name):
        return False
    return is_distance_unit(entity.unit) or bool(_DISTANCE_WORD.search(entity.name))


def _is_vehicle_entity(entity: QueryEntity) -> bool:
    if entity.entity_type in _NON_VEHICLE_TYPES:
        return False
    return bool(_TRANSPORT_WORD.search(entity.name)) and not is_distance_unit(entity.unit)


def merge_transport_entities(entities: list[QueryEntity]) -> list[QueryEntity]:
    """Fold a separate distance entity (and extra vehicle descriptors) into one vehicle entity.

    "30-ton truck" + "75km route" becomes "30-ton truck 75km transport" with the
    distance in TransportDetails and the lower of the two confidences.
    """
    distance = next((e for e in entities if _is_distance_entity(e)), None)
    vehicles = [e for e in entities if _is_vehicle_entity(e)]
    if distance is None or not vehicles:
        return entities

    primary = next((v for v in vehicles if v.quantity is not None), vehicles[0])
    extras = [v for v in vehicles if v is not primary and v.quantity is None]

    name = primary.name
    for extra in extras:
        if extra.name.lower() not in name.lower():
            name = f"{name} {extra.name}"
    distance_unit = normalize_unit(distance.unit) or distance.unit or "km"
    name = f"{name} {distance.quantity:g}{distance_unit} transport"

    details = primary.scenario_details if isinstance(primary.scenario_details, TransportDetails) else TransportDetails()
    details.distance = distance.quantity
    details.distance_unit = distance_unit

    merged = QueryEntity(
        name=name,
        confidence=min([primary.confidence, distance.confidence, *(e.confidence for e in extras)]),
        quantity=primary.quantity,
        unit=primary.unit,
        entity_type="transport",
        scenario_details=details,
        original_text=primary.original_text,
    )
    logger.info(f"Merged transport entities into '{merged.name}'")

    consumed = {id(primary), id(distance), *(id(e) for e in extras)}
    result = []
    for entity in entities:
        if id(entity) == id(primary):
            result.append(merged)
        elif id(entity) not in consumed:
            result.append(entity)
    return result


def waste_processing_method(text: str) -> str | None:
    """Normalise a processing method: closed-loop recycling > recycling > disposal."""
    lowered = text.lower()
    if ("closed-loop" in lowered or "closed loop" in lowered or "fully" in lowered
            or "specialized" in lowered or "specialised" in lowered
            or ("recycled" in lowered and "into" in lowered and "new" in lowered)):
        return "closed-loop recycling"
    if "recycl" in lowered:
        return "recycling"
    if "disposal" in lowered or "landfill" in lowered or "dispose" in lowered:
        return "disposal"
    return None


def optimize_waste_entities(entities: list[QueryEntity]) -> list[QueryEntity]:
    """Normalise waste processing methods and rename to "{q} {u} {type} waste {method}"."""
    for entity in entities:
        details = entity.scenario_details
        if entity.entity_type != "waste" and not isinstance(details, WasteDetails):
            continue
        if not isinstance(details, WasteDetails):
            details = WasteDetails()
        method = waste_processing_method(
            " ".join(filter(None, [details.processing_method, entity.name, entity.original_text]))
        )
        if method:
            details.processing_method = method
        entity.scenario_details = details
        entity.entity_type = "waste"
        if details.waste_type and details.processing_method:
            prefix = f"{entity.quantity:g} {entity.unit} " if entity.quantity is not None and entity.unit else ""
            entity.name = f"{prefix}{details.waste_type} waste {details.processing_method}"
    return entities


_WATER_WORDS = ("wastewater", "waste water", "sewage", "effluent", "water", "liquid")


def optimize_liquid_entities(entities: list[QueryEntity]) -> list[QueryEntity]:
    """Ensure liquid entities carry LiquidDetails with a type and a processing method."""
    for entity in entities:
        details = entity.scenario_details
        if entity.entity_type != "liquid" and not isinstance(details, LiquidDetails):
            continue
        if not isinstance(details, LiquidDetails):
            details = LiquidDetails()
        if not details.liquid_type:
            lowered = entity.name.lower()
            details.liquid_type = next((w for w in _WATER_WORDS if w in lowered), entity.name)
        if not details.processing_method:
            details.processing_method = "treatment"
        entity.scenario_details = details
        entity.entity_type = "liquid"
    return entities


# =============================================================================
# RESPONSE PARSING
# =============================================================================

def default_intent_result(query: str, missing_info: list[str] | None = None) -> IntentResult:
    return IntentResult(
        intent="general_chat",
        entities=[],
        missing_info=missing_info or [UNDERSTAND_FAILURE],
        confidence=0.1,
        original_query=query,
    )


def parse_intent_response(text: str | None, query: str) -> IntentResult:
    """IntentResult from model text; the default general_chat result if it cannot be parsed."""
    data = extract_json_object(text)
    if data is None:
        logger.warning("Intent response is not a JSON object")
        return default_intent_result(query)

    raw_entities = data.get("entities")
    entities = []
    if isinstance(raw_entities, list):
        for raw in raw_entities:
            entity = validate_entity(raw, query)
            if entity is not None:
                entities.append(entity)

    entities = merge_transport_entities(entities)
    entities = optimize_waste_entities(entities)
    entities = optimize_liquid_entities(entities)

    missing = _get(data, "missingInfo", "missing_info")
    missing_info = [str(m).strip() for m in missing if str(m).strip()] if isinstance(missing, list) else []

    return IntentResult(
        intent=validate_intent(data.get("intent")),
        entities=entities,
        missing_info=missing_info,
        confidence=validate_confidence(data.get("confidence")),
        original_query=query,
    )


@dataclass
class SearchStrategy:
    """Where to look in the catalog when category retrieval finds nothing."""
    sectors: list[str] = field(default_factory=list)
    keywords: list[str] = field(default_factory=list)
    related_terms: list[str] = field(default_factory=list)


def _string_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [s for s in (_text(v) for v in value) if s]


def parse_search_strategy(text: str | None) -> SearchStrategy | None:
    data = extract_json_object(text)
    if data is None:
        return None
    strategy = SearchStrategy(
        sectors=_string_list(data.get("sectors")),
        keywords=_string_list(data.get("keywords")),
        related_terms=_string_list(_get(data, "relatedTerms", "related_terms")),
    )
    if not (strategy.sectors or strategy.keywords or strategy.related_terms):
        return None
    return strategy


# Format: scenario -> (trigger words, keywords, related terms)
_TRUCK_STRATEGY = (
    ("truck", "diesel", "rigid", "hgv", "freight", "卡车"),
    ["truck", "diesel", "vehicle", "heavy", "freight", "rigid", "lorry", "HGV", "rigids", "hgv"],
    ["diesel truck", "heavy goods vehicle", "freight transport", "road freight", "truck transport",
     "diesel vehicle", "commercial vehicle", "cargo truck", "diesel rigids", "rigids HGV", "HGV diesel",
     "all rigids", "rigid truck", "heavy duty", "freight truck", "HGV all diesel", "road freight diesel"],
)
_ELECTRIC_STRATEGY = (
    ("electric", "tesla", "model", "battery"),
    ["electric", "battery", "EV", "tesla", "model", "vehicle"],
    ["electric vehicle", "battery electric vehicle", "EV", "electric car", "battery electric",
     "zero emission", "BEV", "plug-in"],
)
_SHIPPING_STRATEGY = (
    ("transport", "shipping", "container", "运输"),
    ["transport", "shipping", "container", "freight", "cargo"],
    ["container transport", "freight transport", "cargo transport", "shipping container", "logistics",
     "goods transport"],
)

_TRANSPORT_TRIGGERS = ("truck", "car", "vehicle", "transport", "diesel", "electric", "tesla", "model",
                       "卡车", "汽车", "运输", "rigid", "shipping", "container", "freight")
_FOOD_TRIGGERS = ("food", "eat", "fruit", "apple", "banana", "吃", "食物", "苹果", "香蕉")
_ENERGY_TRIGGERS = ("energy", "electricity", "power", "electric", "用电", "电力")


def default_search_strategy(entity_name: str) -> SearchStrategy:
    """Keyword-heuristic strategy used when no language model is available."""
    lowered = entity_name.lower()
    if any(w in lowered for w in _TRANSPORT_TRIGGERS):
        keywords: list[str] = [entity_name]
        related: list[str] = []
        for triggers, scenario_keywords, scenario_terms in (_TRUCK_STRATEGY, _ELECTRIC_STRATEGY, _SHIPPING_STRATEGY):
            if any(w in lowered for w in triggers):
                keywords += scenario_keywords
                related += scenario_terms
        return SearchStrategy(
            sectors=["Transport"],
            keywords=list(dict.fromkeys(keywords)),
            related_terms=list(dict.fromkeys(related)),
        )
    if any(w in lowered for w in _FOOD_TRIGGERS):
        return SearchStrategy(
            sectors=["Food & Agriculture"],
            keywords=[entity_name, "food", "agriculture", "fruit"],
            related_terms=["organic", "local", "imported", "fresh", "processed"],
        )
    if any(w in lowered for w in _ENERGY_TRIGGERS):
        return SearchStrategy(
            sectors=["Energy"],
            keywords=[entity_name, "electricity", "energy", "power"],
            related_terms=["renewable", "grid", "consumption", "generation"],
        )
    return SearchStrategy(sectors=[], keywords=[entity_name], related_terms=[])


class IntentAnalyzer:
    """Turns user queries into validated IntentResults via the oracle. Never raises."""

    def __init__(self, oracle):
        self._oracle = oracle

    async def analyze_user_input(self, query: str, language: str = "en") -> IntentResult:
        if not query or not query.strip():
            return default_intent_result(query or "")
        try:
            text = await self._oracle.analyze(query, language)
        except OracleError as e:
            logger.error(f"Intent analysis failed: {e}")
            return default_intent_result(query)
        result = parse_intent_response(text, query)
        logger.info(f"Intent '{result.intent}' with {len(result.entities)} entities")
        return result

    async def analyze_batch_inputs(self, queries: list[str], language: str = "en") -> list[IntentResult]:
        outcomes = await asyncio.gather(
            *(self.analyze_user_input(q, language) for q in queries),
            return_exceptions=True,
        )
        results = []
        for query, outcome in zip(queries, outcomes):
            if isinstance(outcome, BaseException):
                logger.error(f"Batch intent analysis failed for one query: {outcome}")
                results.append(default_intent_result(query))
            else:
                results.append(outcome)
        return results

    async def close(self) -> None:
        await self._oracle.close()
