"""Numeric and range mention extraction for activity text and catalog titles.

User text ("30-ton truck, 75km") carries quantities. Catalog titles
("Rigid truck 26-32t - Container transport - Diesel") carry applicability bands and
state descriptors that look like quantities but are not. Descriptors are stripped
before any numeric scan, otherwise the "26" of "26-32t" would be read as 26 tonnes.
"""

import logging
import re
from dataclasses import dataclass

from .units import normalize_unit

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NumericMention:
    """A single quantity found in free text."""
    value: float
    unit: str  # Canonical unit (e.g., "tonne", "km", "%")
    dimension: str  # "weight", "distance", "power", "percentage", "year", ...
    raw: str  # Original text (e.g., "30-ton", "75公里")


@dataclass(frozen=True)
class RangeMention:
    """An inclusive min-max band found in a catalog title (e.g., "26-32t")."""
    min: float
    max: float
    unit: str
    dimension: str
    raw: str

    @property
    def midpoint(self) -> float:
        return (self.min + self.max) / 2

    @property
    def width(self) -> float:
        return self.max - self.min

    def contains(self, value: float) -> bool:
        return self.min <= value <= self.max


# =============================================================================
# DESCRIPTOR EXCLUSION
# =============================================================================
# Applied before numeric extraction. Order matters: load-state first so that
# "50% Laden" is not later read as a 50% mention.

_NUM = r"\d+(?:\.\d+)?"
_RANGE_SEP = r"\s*(?:-|–|—|~|to)\s*"

_DESCRIPTOR_PATTERNS: list[re.Pattern] = [
    # Load state: "50% Laden", "100% loaded", "0% load"
    re.compile(rf"{_NUM}\s*%\s*(?:laden|loaded|load)\b", re.IGNORECASE),
    # Fleet qualifier: "All HGVs"
    re.compile(r"\ball\s*hgvs?\b", re.IGNORECASE),
    # Range fragments with or without unit: "26-32t", "3.5 to 7.5 tonnes", "2015-2020"
    re.compile(
        rf"(?<![\d.]){_NUM}{_RANGE_SEP}{_NUM}"
        r"(?:\s*(?:tonnes?|tons?|t|kg|km|kilometers?|kilometres?|miles?|kw|kilowatts?|"
        r"m3|l|liters?|litres?|吨|公吨|公里|千米|千瓦|立方米|升)(?![a-zA-Z]))?",
        re.IGNORECASE,
    ),
]


def strip_descriptors(text: str) -> str:
    """Remove load-state, fleet-qualifier and range fragments from text."""
    filtered = text
    for pattern in _DESCRIPTOR_PATTERNS:
        if pattern.search(filtered):
            logger.debug(f"Excluding descriptor {pattern.search(filtered).group(0)!r} from {text!r}")
            filtered = pattern.sub(" ", filtered)
    return re.sub(r"\s+", " ", filtered).strip()


# =============================================================================
# QUANTITY PATTERNS
# =============================================================================
# Format: (dimension, pattern). Group 1 is the number, group 2 the unit spelling.
# Earlier patterns win when two matches start at the same position.

_UNIT_END = r"(?![a-zA-Z0-9²³])"

_MENTION_PATTERNS: list[tuple[str, re.Pattern]] = [
    ("percentage", re.compile(rf"(?<![\d.])({_NUM})\s*(%)")),
    ("energy", re.compile(
        rf"(?<![\d.])({_NUM})[\s-]?(kwh|mwh|gwh|wh|mj|gj|kilowatt[\s-]hours?|千瓦时|度电){_UNIT_END}",
        re.IGNORECASE,
    )),
    ("volume", re.compile(
        rf"(?<![\d.])({_NUM})[\s-]?(m3|m³|cubic\s+met(?:er|re)s?|立方米|立方|ml|millilit(?:er|re)s?|"
        rf"lit(?:er|re)s?|l|gallons?|gal|毫升|升){_UNIT_END}",
        re.IGNORECASE,
    )),
    ("power", re.compile(
        rf"(?<![\d.])({_NUM})[\s-]?(kw|kva|kilowatts?|mw|megawatts?|watts?|w|千瓦|兆瓦|瓦){_UNIT_END}",
        re.IGNORECASE,
    )),
    ("weight", re.compile(
        rf"(?<![\d.])({_NUM})[\s-]?(tonnes?|tons?|t|kgs?|kilograms?|kilos?|grams?|g|lbs?|pounds?|"
        rf"吨|公吨|公斤|千克|克){_UNIT_END}",
        re.IGNORECASE,
    )),
    ("distance", re.compile(
        rf"(?<![\d.])({_NUM})[\s-]?(km|kms|kilomet(?:er|re)s?|miles?|mi|met(?:er|re)s?|m|公里|千米|英里|米){_UNIT_END}",
        re.IGNORECASE,
    )),
    ("time", re.compile(
        rf"(?<![\d.])({_NUM})[\s-]?(hours?|hrs?|h|minutes?|mins?|days?|weeks?|months?|years?|yrs?|"
        rf"小时|分钟|天|周|个月){_UNIT_END}",
        re.IGNORECASE,
    )),
    ("count", re.compile(
        rf"(?<![\d.])(\d+)\s*(vehicles?|trucks?|cars?|buses|bus|units?|items?|pieces?|pcs|devices?|"
        rf"passengers?|people|persons?|rooms?|辆|台|个|件|人){_UNIT_END}",
        re.IGNORECASE,
    )),
    # Years last, only 19xx/20xx: "2020年", "2020 model"
    ("year", re.compile(r"(?<![\d.])((?:19|20)\d{2})\s*(年|year|model)?(?![\d.%])", re.IGNORECASE)),
]

_COUNT_UNIT = "number"


def _canonical_unit(dimension: str, spelling: str | None) -> str:
    if dimension == "percentage":
        return "%"
    if dimension == "year":
        return "year"
    if dimension == "count":
        return _COUNT_UNIT
    spelling = re.sub(r"\s+", " ", (spelling or "").strip())
    return normalize_unit(spelling) or spelling.lower()


def extract_mentions(text: str) -> list[NumericMention]:
    """Extract user-stated quantities from text.

    Catalog descriptors are removed first (see strip_descriptors). Matches from all
    patterns are collected as (start, end, mention) tuples, sorted by position, and
    overlapping matches are dropped so each span of text yields one mention.

    Args:
        text: Activity description or entity name

    Returns:
        Mentions in order of appearance
    """
    if not text:
        return []
    filtered = strip_descriptors(text)

    extractions: list[tuple[int, int, NumericMention]] = []
    for dimension, pattern in _MENTION_PATTERNS:
        for match in pattern.finditer(filtered):
            value = float(match.group(1))
            unit = _canonical_unit(dimension, match.group(2))
            kind = dimension
            # "2020 year" is a calendar year, not a duration
            if kind == "time" and unit == "year" and value.is_integer() and 1900 <= value < 2100:
                kind = "year"
            extractions.append((match.start(), match.end(), NumericMention(
                value=value,
                unit=unit,
                dimension=kind,
                raw=match.group(0).strip(),
            )))

    # Sort by start position (stable, so pattern order breaks ties) and remove overlaps
    extractions.sort(key=lambda x: x[0])
    mentions = []
    last_end = -1
    for start, end, mention in extractions:
        if start >= last_end:
            mentions.append(mention)
            last_end = end
    return mentions


# =============================================================================
# RANGE PATTERNS
# =============================================================================

_RANGE_PATTERNS: list[tuple[str, re.Pattern]] = [
    ("year", re.compile(rf"(?<![\d.])((?:19|20)\d{{2}}){_RANGE_SEP}((?:19|20)\d{{2}})(?![\d.])", re.IGNORECASE)),
    ("weight", re.compile(
        rf"(?<![\d.])({_NUM}){_RANGE_SEP}({_NUM})\s*(tonnes?|tons?|t|kg|吨|公吨){_UNIT_END}",
        re.IGNORECASE,
    )),
    ("distance", re.compile(
        rf"(?<![\d.])({_NUM}){_RANGE_SEP}({_NUM})\s*(km|kilomet(?:er|re)s?|miles?|公里|千米){_UNIT_END}",
        re.IGNORECASE,
    )),
    ("power", re.compile(
        rf"(?<![\d.])({_NUM}){_RANGE_SEP}({_NUM})\s*(kw|kilowatts?|千瓦){_UNIT_END}",
        re.IGNORECASE,
    )),
    ("volume", re.compile(
        rf"(?<![\d.])({_NUM}){_RANGE_SEP}({_NUM})\s*(m3|lit(?:er|re)s?|l|立方米|升){_UNIT_END}",
        re.IGNORECASE,
    )),
]

# Bare "26-32" without a unit, only used to recognise range boundaries
_BARE_RANGE = re.compile(rf"(?<![\d.])({_NUM})\s*[-–]\s*({_NUM})(?![\d.])")


def extract_ranges(text: str) -> list[RangeMention]:
    """Extract min-max bands such as "26-32t", "3.5 to 7.5 tonnes", "50-200km"."""
    if not text:
        return []

    extractions: list[tuple[int, int, RangeMention]] = []
    for dimension, pattern in _RANGE_PATTERNS:
        for match in pattern.finditer(text):
            low, high = float(match.group(1)), float(match.group(2))
            if low > high:
                low, high = high, low
            unit_spelling = match.group(3) if dimension != "year" else None
            extractions.append((match.start(), match.end(), RangeMention(
                min=low,
                max=high,
                unit=_canonical_unit(dimension, unit_spelling),
                dimension=dimension,
                raw=match.group(0).strip(),
            )))

    extractions.sort(key=lambda x: x[0])
    ranges = []
    last_end = -1
    for start, end, rng in extractions:
        if start >= last_end:
            ranges.append(rng)
            last_end = end
    return ranges


def is_range_boundary(value: float, text: str, tol: float = 1e-9) -> bool:
    """True if value equals a bound of a range written in text ("26" in "26-32t")."""
    if not text:
        return False
    for rng in extract_ranges(text):
        if abs(rng.min - value) < tol or abs(rng.max - value) < tol:
            return True
    for match in _BARE_RANGE.finditer(text):
        if abs(float(match.group(1)) - value) < tol or abs(float(match.group(2)) - value) < tol:
            return True
    return False
