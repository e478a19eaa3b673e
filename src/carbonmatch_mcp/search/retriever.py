"""Category-based candidate retrieval from the emission-factor catalog.

An entity name is classified into a coarse category by an ordered rule table;
the first matching rule wins. Each rule yields catalog queries tried in order until
one returns records, then narrows and filters what came back. Entities no rule
recognises fall back to a plain substring search over the full name.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Callable

from ..config import MAX_CANDIDATES
from ..models import EmissionFactorRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CatalogQuery:
    """One catalog lookup: substring search on title, or hierarchy search by sector."""
    text: str | None = None
    sector: str | None = None
    activity: str | None = None
    limit: int = 30

    def run(self, catalog) -> list[EmissionFactorRecord]:
        if self.text is not None:
            return catalog.fuzzy_match(self.text, self.limit)
        return catalog.by_hierarchy(sector=self.sector, activity=self.activity, limit=self.limit)

    def __str__(self) -> str:
        if self.text is not None:
            return f"fuzzy({self.text!r}, {self.limit})"
        return f"hierarchy(sector={self.sector!r}, activity={self.activity!r}, {self.limit})"


Records = list[EmissionFactorRecord]


@dataclass(frozen=True)
class CategoryRule:
    """A retrieval rule.

    predicate(name, entity_type) decides whether the rule applies. queries(name)
    lists lookups tried in order until one is non-empty (or all run and are merged
    when combine is set). refine(name, records) narrows by qualifiers in the name,
    then keep(record) drops off-topic records.
    """
    name: str
    predicate: Callable[[str, str | None], bool]
    queries: Callable[[str], list[CatalogQuery]]
    refine: Callable[[str, Records], Records] = lambda name, records: records
    keep: Callable[[EmissionFactorRecord], bool] = lambda record: True
    operational: bool = False  # Drop acquisition/manufacturing and monetary-unit records
    combine: bool = False


# =============================================================================
# KEYWORD MATCHING
# =============================================================================

_WORD_CACHE: dict[str, re.Pattern] = {}


def has_word(text: str, *words: str) -> bool:
    """True if text contains any of the words as a whole word (or word prefix ending in '*')."""
    for word in words:
        pattern = _WORD_CACHE.get(word)
        if pattern is None:
            if word.endswith("*"):
                pattern = re.compile(rf"\b{re.escape(word[:-1])}", re.IGNORECASE)
            else:
                pattern = re.compile(rf"(?<!\w){re.escape(word)}(?!\w)", re.IGNORECASE)
            _WORD_CACHE[word] = pattern
        if pattern.search(text):
            return True
    return False


def _title_has(record: EmissionFactorRecord, *fragments: str) -> bool:
    title = record.title.lower()
    return any(f in title for f in fragments)


def _sector_is_transport(record: EmissionFactorRecord) -> bool:
    return "transport" in record.sector.lower()


def _narrow(records: Records, predicate: Callable[[EmissionFactorRecord], bool]) -> Records:
    """Keep records matching predicate, unless that would leave nothing."""
    narrowed = [r for r in records if predicate(r)]
    return narrowed if narrowed else records


# =============================================================================
# OPERATIONAL FILTER
# =============================================================================
# Spend-based factors (per USD/EUR/...) and equipment acquisition/manufacturing
# entries describe embodied emissions, not the operation of a vehicle.

_MONETARY_UNIT_PATTERN = re.compile(
    r"/\s*(?:usd|eur|gbp|cad|aud|chf|jpy|cny|rmb|inr|\$|€|£|¥)\b|(?:usd|eur|gbp|cad)\s*$",
    re.IGNORECASE,
)
_NON_OPERATIONAL_TITLE_PATTERN = re.compile(r"\b(?:equipment|acquisition|manufactur\w*)\b", re.IGNORECASE)


def is_operational(record: EmissionFactorRecord) -> bool:
    if _MONETARY_UNIT_PATTERN.search(record.unit or ""):
        return False
    return not _NON_OPERATIONAL_TITLE_PATTERN.search(record.title)


# =============================================================================
# CATEGORY RULES
# =============================================================================

def _q(text: str, limit: int = 30) -> CatalogQuery:
    return CatalogQuery(text=text, limit=limit)


# Liquid -------------------------------------------------------------------

_LIQUID_WORDS = ("liquid", "wastewater", "waste water", "sewage", "effluent", "water treatment", "leachate")


def _liquid_queries(name: str) -> list[CatalogQuery]:
    queries = []
    for word in ("wastewater", "sewage", "effluent", "leachate"):
        if has_word(name, word):
            queries += [_q(f"{word} treatment"), _q(word)]
    return queries + [_q("wastewater treatment"), _q("water treatment"), _q("water")]


# Rail ---------------------------------------------------------------------

def _rail_queries(name: str) -> list[CatalogQuery]:
    if has_word(name, "freight", "cargo"):
        if has_word(name, "diesel"):
            return [_q("rail freight diesel traction"), _q("rail freight diesel"), _q("rail freight")]
        return [_q("rail freight")]
    if has_word(name, "locomotive*"):
        return [_q("rail freight diesel traction"), _q("rail freight"), _q("locomotive")]
    if has_word(name, "rail*"):
        return [_q("rail freight"), _q("rail")]
    return [_q("rail freight"), _q("train")]


def _refine_construction(name: str, records: Records) -> Records:
    if has_word(name, "building materials", "construction"):
        return _narrow(records, lambda r: _title_has(r, "building materials", "construction"))
    return records


def _keep_rail(record: EmissionFactorRecord) -> bool:
    return _sector_is_transport(record) or _title_has(record, "rail", "train", "locomotive", "freight")


# Truck --------------------------------------------------------------------

def _truck_queries(name: str) -> list[CatalogQuery]:
    if has_word(name, "rigid*"):
        if has_word(name, "container*"):
            return [_q("rigid truck container"), _q("rigid truck")]
        return [_q("rigid truck"), CatalogQuery(sector="Transport", activity="rigid", limit=30)]
    if has_word(name, "lorry", "lorries"):
        return [_q("lorry"), _q("truck")]
    return [_q("truck")]


def _refine_container(name: str, records: Records) -> Records:
    if has_word(name, "container*"):
        return _narrow(records, lambda r: _title_has(r, "container"))
    return records


def _keep_truck(record: EmissionFactorRecord) -> bool:
    return _sector_is_transport(record) or _title_has(record, "truck", "lorry", "vehicle")


# Passenger car ------------------------------------------------------------

_CAR_SIZES = ("large", "medium", "small", "luxury")


def _car_queries(name: str) -> list[CatalogQuery]:
    if has_word(name, "phev", "plug-in hybrid"):
        return [_q("plug-in hybrid car"), _q("hybrid car"), _q("electric car")]
    if has_word(name, "hybrid"):
        return [_q("hybrid car")]
    if has_word(name, "electric", "ev", "evs", "bev"):
        return [_q("electric car")]
    if has_word(name, "mpv", "minivan"):
        return [_q("mpv"), _q("large car"), _q("van")]
    for size in _CAR_SIZES:
        if has_word(name, size):
            return [_q(f"petrol car {size}"), _q(f"{size} car"), _q("car")]
    if has_word(name, "petrol", "gasoline"):
        return [_q("petrol car")]
    if has_word(name, "diesel"):
        return [_q("diesel car")]
    return [_q("car")]


def _refine_car(name: str, records: Records) -> Records:
    if has_word(name, "passenger*"):
        records = _narrow(records, lambda r: _title_has(r, "passenger"))
    for size in _CAR_SIZES:
        if has_word(name, size):
            records = _narrow(records, lambda r, size=size: _title_has(r, size))
            break
    for fuel in ("petrol", "diesel"):
        if has_word(name, fuel):
            records = _narrow(records, lambda r, fuel=fuel: _title_has(r, fuel))
            break
    return records


_CAR_EXCLUDED_TITLE = ("carpet", "tile", "building", "construction", "material", "steel", "iron", "concrete")
_CAR_REQUIRED_TITLE = ("car", "vehicle", "mpv", "hybrid", "electric", "petrol", "diesel")


def _keep_car(record: EmissionFactorRecord) -> bool:
    if not _sector_is_transport(record):
        return False
    if _title_has(record, *_CAR_EXCLUDED_TITLE):
        return False
    return _title_has(record, *_CAR_REQUIRED_TITLE)


# Heavy goods vehicle ------------------------------------------------------

# Format: load state -> (name words, title fragments)
_LOAD_STATES: dict[str, tuple[tuple[str, ...], tuple[str, ...]]] = {
    "half": (("half*", "50%"), ("50%", "half")),
    "full": (("fully", "full", "100%"), ("100%", "full")),
    "empty": (("empty", "0%"), ("0%", "empty")),
}

_ZERO_PERCENT = re.compile(r"(?<![\d.])0\s*%")


def load_state_of(text: str) -> str | None:
    """Load state named in text: "half", "full", "empty" or None."""
    lowered = text.lower()
    if has_word(lowered, "half*") or "50%" in lowered:
        return "half"
    if has_word(lowered, "fully", "full") or "100%" in lowered:
        return "full"
    if has_word(lowered, "empty", "unladen") or _ZERO_PERCENT.search(lowered):
        return "empty"
    return None


def title_load_state(title: str) -> str | None:
    lowered = title.lower()
    if "50%" in lowered or "half" in lowered:
        return "half"
    if "100%" in lowered or "full" in lowered:
        return "full"
    if _ZERO_PERCENT.search(lowered) or "empty" in lowered:
        return "empty"
    return None


def _refine_hgv(name: str, records: Records) -> Records:
    if not has_word(name, "refrigerat*", "reefer"):
        return records
    records = [r for r in records if _title_has(r, "refrigerat")]
    state = load_state_of(name)
    if state is not None:
        records = _narrow(records, lambda r: title_load_state(r.title) == state)
    return records


# Aviation / marine --------------------------------------------------------

def _aviation_queries(name: str) -> list[CatalogQuery]:
    if has_word(name, "long-haul", "long haul", "international"):
        return [_q("international long-haul flight"), _q("long-haul flight"), _q("flight")]
    if has_word(name, "short-haul", "short haul", "domestic"):
        return [_q("short-haul flight"), _q("domestic flight"), _q("flight")]
    return [_q("flight")]


def _keep_aviation(record: EmissionFactorRecord) -> bool:
    return _sector_is_transport(record) or _title_has(record, "flight", "air", "aviation")


def _marine_queries(name: str) -> list[CatalogQuery]:
    if has_word(name, "cargo ship", "container ship"):
        return [_q("cargo ship"), _q("ship")]
    if has_word(name, "ferry", "ferries"):
        return [_q("ferry")]
    return [_q("ship")]


def _keep_marine(record: EmissionFactorRecord) -> bool:
    return _sector_is_transport(record) or _title_has(record, "ship", "vessel", "marine", "ferry")


# Waste --------------------------------------------------------------------

_WASTE_MATERIALS = ("concrete", "plastic", "glass", "paper", "cardboard", "metal", "aluminium", "aluminum",
                    "steel", "wood", "textile", "food", "organic", "asphalt", "brick", "electrical")


def is_closed_loop_request(name: str) -> bool:
    lowered = name.lower()
    return (
        "closed-loop" in lowered
        or "closed loop" in lowered
        or (has_word(lowered, "fully") and has_word(lowered, "recycl*"))
        or (has_word(lowered, "recycled") and has_word(lowered, "into") and has_word(lowered, "new"))
    )


def _refine_waste(name: str, records: Records) -> Records:
    for material in _WASTE_MATERIALS:
        if has_word(name, material):
            records = [r for r in records if _title_has(r, material)]
            break

    # Processing method: closed-loop > recycling > disposal
    if is_closed_loop_request(name):
        return _narrow(records, lambda r: _title_has(r, "closed-loop", "closed loop", "recycl"))
    if has_word(name, "recycl*"):
        return [r for r in records if _title_has(r, "recycl", "closed-loop")]
    if has_word(name, "disposal", "landfill*"):
        return [r for r in records if _title_has(r, "disposal", "landfill") and not _title_has(r, "recycl")]
    return records


def _waste_queries(name: str) -> list[CatalogQuery]:
    return [_q("waste", 50)]


# Transport / electric -----------------------------------------------------

def _transport_queries(name: str) -> list[CatalogQuery]:
    return [
        CatalogQuery(sector="Transport", limit=MAX_CANDIDATES),
        _q("transport", MAX_CANDIDATES),
    ]


def _electric_queries(name: str) -> list[CatalogQuery]:
    queries = [_q("electric", 30)]
    if has_word(name, "tesla", "model"):
        queries.append(_q("tesla", 10))
    return queries


# Priority order: earlier rules win on ambiguous names
CATEGORY_RULES: list[CategoryRule] = [
    CategoryRule(
        name="liquid",
        predicate=lambda n, t: t == "liquid" or has_word(n, *_LIQUID_WORDS),
        queries=_liquid_queries,
        keep=lambda r: _title_has(r, "water", "liquid", "treatment", "sewage", "effluent"),
    ),
    CategoryRule(
        name="rail",
        predicate=lambda n, t: has_word(n, "train*", "railway*", "rail", "locomotive*", "freight train*"),
        queries=_rail_queries,
        refine=_refine_construction,
        keep=_keep_rail,
        operational=True,
    ),
    CategoryRule(
        name="truck",
        predicate=lambda n, t: has_word(n, "truck*", "rigid*", "lorry", "lorries"),
        queries=_truck_queries,
        refine=_refine_container,
        keep=_keep_truck,
        operational=True,
    ),
    CategoryRule(
        name="car",
        predicate=lambda n, t: not has_word(n, "hgv", "hgvs", "goods") and (
            has_word(n, "car", "cars", "petrol", "gasoline", "phev", "mpv", "minivan")
            or (has_word(n, "diesel") and has_word(n, "vehicle*", "passenger*"))
        ),
        queries=_car_queries,
        refine=_refine_car,
        keep=_keep_car,
        operational=True,
    ),
    CategoryRule(
        name="hgv",
        predicate=lambda n, t: has_word(n, "hgv", "hgvs") or (has_word(n, "heavy") and has_word(n, "goods")),
        queries=lambda n: [_q("hgv"), _q("heavy goods vehicle")],
        refine=_refine_hgv,
        operational=True,
    ),
    CategoryRule(
        name="aviation",
        predicate=lambda n, t: has_word(n, "flight*", "air", "airplane", "aviation", "plane", "planes", "aircraft"),
        queries=_aviation_queries,
        keep=_keep_aviation,
        operational=True,
    ),
    CategoryRule(
        name="marine",
        predicate=lambda n, t: has_word(n, "ship", "ships", "shipping vessel", "vessel*", "marine", "ferry", "ferries"),
        queries=_marine_queries,
        keep=_keep_marine,
        operational=True,
    ),
    CategoryRule(
        name="waste",
        predicate=lambda n, t: has_word(n, "waste*") and has_word(n, "recycl*", "disposal", "closed-loop", "landfill*"),
        queries=_waste_queries,
        refine=_refine_waste,
    ),
    CategoryRule(
        name="transport",
        predicate=lambda n, t: has_word(n, "transport*", "delivery", "deliveries", "shipping"),
        queries=_transport_queries,
        operational=True,
    ),
    CategoryRule(
        name="electric",
        predicate=lambda n, t: has_word(n, "electric*", "battery", "batteries", "ev", "evs", "tesla"),
        queries=_electric_queries,
        combine=True,
    ),
]


@dataclass
class Retrieval:
    """Records retrieved for an entity and the rule that produced them."""
    records: Records
    rule: str | None = None  # None when the generic substring search was used
    queries: list[str] = field(default_factory=list)


class CandidateRetriever:
    """Selects a bounded bucket of catalog records for an entity name."""

    def __init__(self, catalog, rules: list[CategoryRule] | None = None, max_candidates: int = MAX_CANDIDATES):
        self._catalog = catalog
        self._rules = rules if rules is not None else CATEGORY_RULES
        self._max_candidates = max_candidates

    def classify(self, entity_name: str, entity_type: str | None = None) -> CategoryRule | None:
        """First rule whose predicate matches, or None."""
        for rule in self._rules:
            if rule.predicate(entity_name, entity_type):
                return rule
        return None

    def retrieve(self, entity_name: str, entity_type: str | None = None) -> Records:
        return self.retrieve_with_rule(entity_name, entity_type).records

    def retrieve_with_rule(self, entity_name: str, entity_type: str | None = None) -> Retrieval:
        """Run the matching category rule, falling back to a substring search on the full name.

        Args:
            entity_name: Entity description (e.g., "30-ton rigid diesel truck")
            entity_type: Optional entity type hint ("transport", "waste", "liquid", ...)

        Returns:
            Retrieval with at most max_candidates records
        """
        rule = self.classify(entity_name, entity_type)
        if rule is not None:
            records, ran = self._run_rule(rule, entity_name)
            if records:
                logger.info(f"Category '{rule.name}' retrieved {len(records)} candidates for '{entity_name}'")
                return Retrieval(records=records[:self._max_candidates], rule=rule.name, queries=ran)
            logger.info(f"Category '{rule.name}' found nothing for '{entity_name}', using substring search")

        query = CatalogQuery(text=entity_name, limit=20)
        records = query.run(self._catalog)
        return Retrieval(records=records[:self._max_candidates], rule=None, queries=[str(query)])

    def _run_rule(self, rule: CategoryRule, entity_name: str) -> tuple[Records, list[str]]:
        lowered = entity_name.lower()
        records: Records = []
        ran: list[str] = []
        seen: set[str] = set()
        for query in rule.queries(lowered):
            ran.append(str(query))
            found = query.run(self._catalog)
            logger.debug(f"{rule.name}: {query} -> {len(found)} records")
            for record in found:
                if record.id not in seen:
                    seen.add(record.id)
                    records.append(record)
            if found and not rule.combine:
                break

        records = rule.refine(lowered, records)
        records = [r for r in records if rule.keep(r)]
        if rule.operational:
            records = [r for r in records if is_operational(r)]
        return records, ran
