"""Scenario searches for entities that carry structured transport, waste or liquid details.

These build search terms from the details (vehicle type, cargo, load status,
waste material, processing method) and query the catalog with them directly,
rather than classifying the free-text name.
"""

import logging
import re

from ..models import EmissionFactorRecord, LiquidDetails, QueryEntity, TransportDetails, WasteDetails
from ..units import convert_value, is_weight_unit
from .scoring import check_range_inclusion, query_mentions, range_inclusion_score

logger = logging.getLogger(__name__)

Records = list[EmissionFactorRecord]


def _unique(records: Records) -> Records:
    seen: set[str] = set()
    unique = []
    for record in records:
        if record.id not in seen:
            seen.add(record.id)
            unique.append(record)
    return unique


# =============================================================================
# TRANSPORT
# =============================================================================

# Format: vehicle type (lowercase) -> catalog spellings
VEHICLE_ALIASES: dict[str, list[str]] = {
    "heavy goods vehicle": ["HGV", "heavy goods vehicle", "freight"],
    "hgv": ["HGV", "heavy goods vehicle"],
    "rigid diesel truck": ["rigid truck", "rigid", "truck"],
    "rigid truck": ["rigid truck", "rigid"],
    "diesel truck": ["diesel truck", "truck diesel"],
    "refrigerated": ["refrigerated", "refrigerated vehicle"],
    "refrigerated truck": ["refrigerated", "HGV refrigerated"],
}

# Format: load status (lowercase) -> catalog spellings
LOAD_ALIASES: dict[str, list[str]] = {
    "half-loaded": ["50% laden", "half loaded", "50%"],
    "half loaded": ["50% laden", "half loaded", "50%"],
    "fully loaded": ["100% laden", "fully loaded", "100%"],
    "full": ["100% laden", "fully loaded", "100%"],
    "empty": ["0% laden", "empty"],
}

_VEHICLE_COMBO_TERMS = ("hgv", "heavy goods vehicle", "rigid truck", "truck", "refrigerated")
_LOAD_COMBO_TERMS = ("50% laden", "half loaded", "100% laden", "empty")
_PRIORITY_TERMS = ("HGV refrigerated", "heavy goods vehicle", "rigid truck")

_VEHICLE_KEYWORDS = ("hgv", "heavy goods vehicle", "rigid", "truck", "lorry", "refrigerated", "van")
_CARGO_KEYWORDS = ("container", "shipping container", "freight", "cargo")
_LOAD_KEYWORDS = ("50% laden", "half loaded", "100% laden", "empty")
_FUEL_KEYWORDS = ("diesel", "petrol", "electric")

_TERM_RANGE_PATTERN = re.compile(r"(\d+(?:\.\d+)?)\s*-\s*(\d+(?:\.\d+)?)\s*(?:tonnes?|tons?|t)\b", re.IGNORECASE)
_TERM_WEIGHT_PATTERN = re.compile(r"(\d+(?:\.\d+)?)\s*(?:tonnes?|tons?|t)\b", re.IGNORECASE)
_TITLE_WEIGHT_RANGE = re.compile(r"(\d+(?:\.\d+)?)\s*-\s*(\d+(?:\.\d+)?)\s*t\b", re.IGNORECASE)


def transport_search_terms(details: TransportDetails) -> list[str]:
    """Search terms from vehicle type, cargo, fuel and load status, aliases included."""
    terms: list[str] = []
    if details.vehicle_type:
        terms.append(details.vehicle_type)
        terms.extend(VEHICLE_ALIASES.get(details.vehicle_type.lower(), []))
    if details.cargo_type:
        terms.append(details.cargo_type)
    if details.fuel_type:
        terms.append(details.fuel_type)
    if details.load_status:
        terms.append(details.load_status)
        terms.extend(LOAD_ALIASES.get(details.load_status.lower(), []))
    # Keep first occurrence of each term
    return list(dict.fromkeys(t for t in terms if t))


def user_weight_tonnes(entity: QueryEntity) -> float | None:
    """Cargo weight in tonnes from the entity quantity or transport details."""
    if entity.quantity is not None and is_weight_unit(entity.unit):
        return convert_value(entity.quantity, entity.unit, "tonne")
    details = entity.scenario_details
    if isinstance(details, TransportDetails) and details.weight is not None and is_weight_unit(details.weight_unit):
        return convert_value(details.weight, details.weight_unit, "tonne")
    return None


def _target_weight(search_terms: list[str], user_weight: float | None) -> float | None:
    if user_weight is not None:
        return user_weight
    if not search_terms:
        return None
    match = _TERM_RANGE_PATTERN.search(search_terms[0])
    if match:
        return (float(match.group(1)) + float(match.group(2))) / 2
    match = _TERM_WEIGHT_PATTERN.search(search_terms[0])
    if match:
        return float(match.group(1))
    return None


def prioritize_transport_results(
    records: Records,
    search_terms: list[str],
    user_weight: float | None = None,
) -> Records:
    """Order transport candidates by weight-band fit and keyword overlap (stable).

    Args:
        records: Candidate records
        search_terms: Terms used for the search; the first may carry a weight ("26-32t")
        user_weight: Cargo weight in tonnes, if known

    Returns:
        Records sorted by priority descending
    """
    target = _target_weight(search_terms, user_weight)
    lowered_terms = [t.lower() for t in search_terms]

    def priority(record: EmissionFactorRecord) -> float:
        title = record.title.lower()
        unit = (record.unit or "").lower()
        score = 0.0

        band = _TITLE_WEIGHT_RANGE.search(title)
        if target is not None and band:
            score += check_range_inclusion(target, float(band.group(1)), float(band.group(2))) * 10

        if any(term in title for term in lowered_terms):
            score += 2
        score += 3 * sum(1 for k in _VEHICLE_KEYWORDS if k in title and any(k in t for t in lowered_terms))
        score += 4 * sum(1 for k in _CARGO_KEYWORDS if k in title and any(k in t for t in lowered_terms))
        score += 2 * sum(1 for k in _LOAD_KEYWORDS if k in title and any(k in t for t in lowered_terms))
        score += sum(1 for k in _FUEL_KEYWORDS if k in title and any(k in t for t in lowered_terms))

        if "km" in unit:
            score += 2
        if "tonne-km" in unit or "tonne km" in unit or "tkm" in unit:
            score += 3
        if title.strip() in ("diesel", "petrol", "gasoline"):
            score -= 5
        if target is not None and "truck" in title and not band:
            score -= 2
        return score

    return sorted(records, key=priority, reverse=True)


def search_transport(catalog, entity: QueryEntity) -> Records:
    """Catalog search driven by TransportDetails.

    Query order: the combined terms, vehicle x load combinations, priority terms,
    then each term on its own while fewer than 5 records have been found.
    """
    details = entity.scenario_details
    if not isinstance(details, TransportDetails):
        return []
    terms = transport_search_terms(details)
    if not terms:
        return []

    found: Records = []
    if len(terms) >= 3:
        found += catalog.fuzzy_match(" ".join(terms[:4]), 20)

    vehicle_terms = [t for t in terms if t.lower() in _VEHICLE_COMBO_TERMS]
    load_terms = [t for t in terms if t.lower() in _LOAD_COMBO_TERMS]
    for vehicle in vehicle_terms:
        for load in load_terms:
            found += catalog.fuzzy_match(f"{vehicle} {load}", 15)

    for priority_term in _PRIORITY_TERMS:
        if any(priority_term.lower() in t.lower() for t in terms):
            found += catalog.fuzzy_match(priority_term, 10)

    if len(_unique(found)) < 5:
        for term in terms:
            found += catalog.fuzzy_match(term, 10)

    unique = _unique(found)
    logger.info(f"Transport scenario search for '{entity.name}': {len(terms)} terms, {len(unique)} records")
    return prioritize_transport_results(unique, terms, user_weight_tonnes(entity))


# =============================================================================
# WASTE AND LIQUID
# =============================================================================

# Format: processing method keyword -> catalog spelling
_WASTE_METHODS: dict[str, str] = {
    "closed-loop": "closed-loop recycling",
    "closed loop": "closed-loop recycling",
    "recycling": "recycling",
    "recycle": "recycling",
    "disposal": "disposal",
    "landfill": "disposal",
}


def waste_method(method: str | None) -> str | None:
    if not method:
        return None
    lowered = method.lower()
    for keyword, spelling in _WASTE_METHODS.items():
        if keyword in lowered:
            return spelling
    return lowered


def _first_non_empty(catalog, queries: list[str], limit: int = 10) -> tuple[Records, str | None]:
    for query in queries:
        records = catalog.fuzzy_match(query, limit)
        if records:
            return records, query
    return [], None


def search_waste(catalog, entity: QueryEntity) -> Records:
    details = entity.scenario_details
    if not isinstance(details, WasteDetails) or not details.waste_type or not details.processing_method:
        return []
    waste = details.waste_type.strip()
    method = waste_method(details.processing_method)
    records, query = _first_non_empty(catalog, [
        f"{waste} waste {method}",
        f"{waste} {method}",
        f"{waste} waste disposal",
        f"{waste} disposal",
    ])
    logger.info(f"Waste scenario search for '{entity.name}': {len(records)} records via {query!r}")
    return records


def search_liquid(catalog, entity: QueryEntity) -> Records:
    details = entity.scenario_details
    if not isinstance(details, LiquidDetails) or not details.liquid_type:
        return []
    liquid = details.liquid_type.strip()
    method = (details.processing_method or "treatment").strip()
    records, query = _first_non_empty(catalog, [
        f"{liquid} {method}",
        f"{liquid} treatment",
        f"{liquid} processing",
        liquid,
    ])
    logger.info(f"Liquid scenario search for '{entity.name}': {len(records)} records via {query!r}")
    return records


def waste_fallback(catalog, entity: QueryEntity) -> Records:
    records = catalog.fuzzy_match(entity.name, 20)
    return [r for r in records if any(k in r.title.lower() for k in ("waste", "recycl", "disposal"))]


def liquid_fallback(catalog, entity: QueryEntity) -> Records:
    records = catalog.fuzzy_match(entity.name, 20)
    return [r for r in records if any(k in r.title.lower() for k in ("water", "liquid", "treatment"))]


def search_scenario(catalog, entity: QueryEntity) -> Records:
    """Run the scenario search for the entity's details variant, then the generic fallback."""
    details = entity.scenario_details
    if isinstance(details, TransportDetails):
        return search_transport(catalog, entity)
    if isinstance(details, WasteDetails):
        return search_waste(catalog, entity) or waste_fallback(catalog, entity)
    if isinstance(details, LiquidDetails):
        return search_liquid(catalog, entity) or liquid_fallback(catalog, entity)
    if entity.entity_type == "waste":
        return waste_fallback(catalog, entity)
    if entity.entity_type == "liquid":
        return liquid_fallback(catalog, entity)
    return []


# =============================================================================
# RANGE FILTERING
# =============================================================================

RANGE_FILTER_THRESHOLD = 0.8


def apply_range_filtering(entity: QueryEntity, records: Records) -> Records:
    """Prefer records whose title band fits the entity's quantity; keep all if none fit."""
    if entity.quantity is None or not entity.unit:
        return records
    mentions = query_mentions(entity)
    fitting = [r for r in records if range_inclusion_score(mentions, r.title) > RANGE_FILTER_THRESHOLD]
    if fitting:
        logger.info(f"Range filtering kept {len(fitting)} of {len(records)} candidates for '{entity.name}'")
        return fitting
    return records
