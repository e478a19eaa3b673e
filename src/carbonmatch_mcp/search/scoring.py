"""Relevance scoring of catalog records against a query entity.

Precedence, highest wins:
1. Exact title match -> 1.0
2. A weight/distance/power/volume band in the title containing a user quantity
   -> 0.95..1.0 by proximity to the band midpoint
3. Scenario heuristics (refrigerated HGV, waste recycling, trucks, transport,
   electric) on a 0.30 baseline, plus small overlap bonuses
4. Bare fuel titles ("Diesel") are pushed to the bottom for transport queries
"""

import logging
import re
from dataclasses import dataclass
from typing import Callable

from ..mentions import NumericMention, RangeMention, extract_mentions, extract_ranges
from ..models import EmissionFactorRecord, MatchResult, MatchType, QueryEntity, TransportDetails
from ..units import convert, get_dimension, normalize_unit
from .retriever import has_word, is_closed_loop_request, load_state_of, title_load_state

logger = logging.getLogger(__name__)

BASELINE_SCORE = 0.30
TITLE_CONTAINS_SCORE = 0.90
RANGE_BASE_SCORE = 0.95
RANGE_PROXIMITY_WEIGHT = 0.05
BARE_FUEL_MULTIPLIER = 0.05  # Keeps bare fuel titles at or below 0.05

_WHITESPACE = re.compile(r"\s+")
_BARE_FUEL_TITLES = frozenset({"diesel", "petrol", "gasoline"})

# Dimensions whose bands are matched against user quantities
_RANGE_DIMENSIONS = ("weight", "distance", "power", "volume", "year")


def normalize_title(text: str) -> str:
    return _WHITESPACE.sub(" ", text).strip().lower()


# =============================================================================
# RANGE INCLUSION
# =============================================================================

def check_range_inclusion(value: float, low: float, high: float) -> float:
    """Coarse inclusion score: 1.0 inside, 0.8 / 0.6 in widening tolerance bands, else 0."""
    if low <= value <= high:
        return 1.0
    if low * 0.8 <= value <= high * 1.2:
        return 0.8
    if low * 0.5 <= value <= high * 1.5:
        return 0.6
    return 0.0


def query_mentions(entity: QueryEntity) -> list[NumericMention]:
    """User quantities for an entity: mentions in its name, its quantity, and scenario weight/distance."""
    mentions = list(extract_mentions(entity.name))

    def add(value: float | None, unit: str | None) -> None:
        if value is None or not unit:
            return
        dimension = get_dimension(unit)
        if dimension is None:
            return
        canonical = normalize_unit(unit) or unit
        mentions.append(NumericMention(value=float(value), unit=canonical, dimension=dimension,
                                       raw=f"{value} {unit}"))

    add(entity.quantity, entity.unit)
    details = entity.scenario_details
    if isinstance(details, TransportDetails):
        add(details.weight, details.weight_unit)
        add(details.distance, details.distance_unit)
    return mentions


def _value_in_range_unit(mention: NumericMention, rng: RangeMention) -> float | None:
    if mention.dimension != rng.dimension:
        return None
    if rng.dimension == "year":
        return mention.value
    conversion = convert(mention.value, mention.unit, rng.unit)
    return conversion.value if conversion.converted else None


def range_match_score(mentions: list[NumericMention], title: str) -> float:
    """Fine-grained score when a title band contains a user quantity, else 0.

    0.95 + (1 - |v - mid| / (max - min)) * 0.05, capped at 1.0. A degenerate band
    (min == max) containing the value scores 1.0.
    """
    best = 0.0
    for rng in extract_ranges(title):
        if rng.dimension not in _RANGE_DIMENSIONS:
            continue
        for mention in mentions:
            value = _value_in_range_unit(mention, rng)
            if value is None or not rng.contains(value):
                continue
            if rng.width == 0:
                score = 1.0
            else:
                score = RANGE_BASE_SCORE + (1 - abs(value - rng.midpoint) / rng.width) * RANGE_PROXIMITY_WEIGHT
            best = max(best, min(score, 1.0))
    return best


def range_inclusion_score(mentions: list[NumericMention], title: str) -> float:
    """Best coarse inclusion score (see check_range_inclusion) of any mention against any title band."""
    best = 0.0
    for rng in extract_ranges(title):
        for mention in mentions:
            value = _value_in_range_unit(mention, rng)
            if value is not None:
                best = max(best, check_range_inclusion(value, rng.min, rng.max))
    return best


# =============================================================================
# SCENARIO HEURISTICS
# =============================================================================

@dataclass(frozen=True)
class HeuristicRule:
    """Applies when predicate(query) holds; score(query, record, current) returns the new score."""
    name: str
    predicate: Callable[[str], bool]
    score: Callable[[str, EmissionFactorRecord, float], float]


def _has(text: str, *fragments: str) -> bool:
    return any(f in text for f in fragments)


def _is_refrigerated_hgv(q: str) -> bool:
    return "refrigerat" in q and (has_word(q, "hgv", "hgvs") or ("heavy" in q and "goods" in q))


def _score_refrigerated_hgv(q: str, record: EmissionFactorRecord, score: float) -> float:
    t = record.title.lower()
    title_is_hgv = has_word(t, "hgv", "hgvs") or ("heavy" in t and "goods" in t)
    if title_is_hgv and "refrigerat" in t:
        wanted, offered = load_state_of(q), title_load_state(t)
        if wanted is not None and offered == wanted:
            new = 1.0
        elif wanted is not None and offered is not None:
            new = 0.75
        else:
            new = 0.85
        if has_word(q, "delivery", "deliveries") and "deliver" in t:
            new += 0.02
        return max(score, new)
    if "refrigerat" in t or title_is_hgv:
        return max(score, 0.70)
    return score


_MATERIALS = ("concrete", "plastic", "glass", "paper", "cardboard", "metal", "aluminium", "aluminum",
              "steel", "wood", "textile", "food", "asphalt", "brick")


def _is_waste_recycling(q: str) -> bool:
    return "waste" in q and _has(q, "recycl", "closed-loop", "closed loop")


def _score_waste_recycling(q: str, record: EmissionFactorRecord, score: float) -> float:
    t = record.title.lower()
    if "waste" in t and _has(t, "recycl", "closed-loop", "closed loop"):
        new = 0.85
        if any(m in q and m in t for m in _MATERIALS):
            new = 0.92
        if _has(q, "closed-loop", "closed loop") and _has(t, "closed-loop", "closed loop"):
            new += 0.06
        if is_closed_loop_request(q) or "specialized" in q or "specialised" in q:
            new += 0.03
        return max(score, new)
    if "waste" in t:
        return max(score, 0.70)
    return score


def _is_truck(q: str) -> bool:
    return has_word(q, "truck*", "diesel", "rigid*", "lorry", "lorries")


def _score_truck(q: str, record: EmissionFactorRecord, score: float) -> float:
    t = record.title.lower()
    if has_word(t, "hgv", "hgvs") and "diesel" in t:
        new = 0.90
    elif "diesel" in t and "rigid" in t:
        new = 0.85
    elif "road" in t and "freight" in t and "diesel" in t:
        new = 0.82
    elif "rigid" in t and "truck" in t:
        new = 0.80
    elif _has(t, "truck", "lorry", "hgv", "rigid", "freight"):
        new = 0.75
    else:
        return score
    # Overlap bonuses
    if any(f in q and f in t for f in ("container", "refrigerat")):
        new += 0.03
    if any(has_word(q, f) and f in t for f in ("diesel", "petrol", "electric")):
        new += 0.02
    return max(score, new)


_TRANSPORT_QUERY_WORDS = ("transport*", "shipping", "container*", "delivery", "deliveries", "freight", "logistics")
_TRANSPORT_TITLE_WORDS = ("transport", "shipping", "container", "freight", "delivery", "logistics", "cargo")


def _score_transport(q: str, record: EmissionFactorRecord, score: float) -> float:
    if _has(record.title.lower(), *_TRANSPORT_TITLE_WORDS):
        return max(score, 0.70)
    return score


def _is_electric(q: str) -> bool:
    return has_word(q, "tesla", "model", "electric*", "ev", "evs", "bev")


def _score_electric(q: str, record: EmissionFactorRecord, score: float) -> float:
    t = record.title.lower()
    if _has(t, "electric", "battery") or has_word(t, "ev", "bev"):
        return max(score, 0.80)
    return score


# Applied in order; each may raise the running score
HEURISTIC_RULES: list[HeuristicRule] = [
    HeuristicRule("refrigerated_hgv", _is_refrigerated_hgv, _score_refrigerated_hgv),
    HeuristicRule("waste_recycling", _is_waste_recycling, _score_waste_recycling),
    HeuristicRule("truck", _is_truck, _score_truck),
    HeuristicRule("transport", lambda q: has_word(q, *_TRANSPORT_QUERY_WORDS), _score_transport),
    HeuristicRule("electric", _is_electric, _score_electric),
]

_TRANSPORT_ENTITY_WORDS = ("truck*", "rigid*", "lorry", "hgv", "hgvs", "vehicle*", "car", "cars", "van", "vans",
                           "transport*", "delivery", "freight", "shipping", "container*", "flight*", "rail",
                           "train*", "ship", "ferry")


def is_transport_query(entity: QueryEntity) -> bool:
    return entity.entity_type == "transport" or has_word(entity.name, *_TRANSPORT_ENTITY_WORDS)


class RelevanceScorer:
    """Scores and ranks catalog records for a query entity."""

    def is_exact(self, entity: QueryEntity, record: EmissionFactorRecord) -> bool:
        return normalize_title(record.title) == normalize_title(entity.name)

    def score(self, entity: QueryEntity, record: EmissionFactorRecord) -> float:
        """Relevance of record to entity, in [0, 1]."""
        if self.is_exact(entity, record):
            return 1.0

        mentions = query_mentions(entity)
        in_range = range_match_score(mentions, record.title)
        if in_range > 0:
            logger.debug(f"Range match {in_range:.4f}: '{record.title}' for '{entity.name}'")
            return in_range

        q = normalize_title(entity.name)
        t = normalize_title(record.title)
        score = BASELINE_SCORE
        if q and q in t:
            score = TITLE_CONTAINS_SCORE
        else:
            for rule in HEURISTIC_RULES:
                if rule.predicate(q):
                    score = rule.score(q, record, score)

        transport = is_transport_query(entity)
        if transport and "transport" in record.sector.lower():
            score += 0.05
        if has_word(q, "container*", "shipping"):
            subsector = (record.subsector or "").lower()
            if "container" in t or "container" in subsector:
                score = max(score, 0.85)

        if transport and t in _BARE_FUEL_TITLES:
            score *= BARE_FUEL_MULTIPLIER

        score = min(score, 1.0)
        logger.debug(f"Heuristic score {score:.4f}: '{record.title}' for '{entity.name}'")
        return score

    def rank(
        self,
        entity: QueryEntity,
        records: list[EmissionFactorRecord],
        limit: int = 10,
        match_type: MatchType = "fuzzy",
    ) -> list[MatchResult]:
        """Score records and keep the best `limit`, best first. Equal scores are ordered by record id."""
        scored = []
        for record in records:
            exact = self.is_exact(entity, record)
            scored.append(MatchResult(
                record=record,
                relevance_score=self.score(entity, record),
                match_type="exact" if exact else match_type,
            ))
        scored.sort(key=lambda m: (-m.relevance_score, m.record.id))
        return scored[:limit]
