"""Unit normalization and conversion for emission-factor arithmetic.

Every supported unit belongs to exactly one dimension, and every dimension has a
canonical base unit:

- Weight: kilograms (kg)
- Volume: litres (L)
- Distance: kilometres (km)
- Energy: kilowatt-hours (kWh)
- Time: hours (h)
- Power: kilowatts (kW)
- Pressure: pascals (Pa)
- Area: square metres (m2)
- Temperature: kelvin (K), affine
- Currency: US dollars (USD), static approximate rates, advisory only
- Count: number

Conversion never raises. Incompatible or unknown units come back unchanged with
``converted=False`` so callers can lower their confidence instead of failing.
"""

import logging
import re
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


# =============================================================================
# UNIT TABLE
# =============================================================================
# canonical unit -> (dimension, scale_to_base, offset_to_base)
# base = (value + offset) * scale. Offset is only non-zero for temperature.

_UNITS: dict[str, tuple[str, float, float]] = {
    # Weight (base kg)
    "mg": ("weight", 1e-6, 0.0),
    "g": ("weight", 1e-3, 0.0),
    "kg": ("weight", 1.0, 0.0),
    "tonne": ("weight", 1000.0, 0.0),
    "short_ton": ("weight", 907.18474, 0.0),
    "long_ton": ("weight", 1016.0469088, 0.0),
    "lb": ("weight", 0.45359237, 0.0),
    "oz": ("weight", 0.028349523125, 0.0),
    "stone": ("weight", 6.35029318, 0.0),
    "jin": ("weight", 0.5, 0.0),

    # Volume (base L)
    "ml": ("volume", 1e-3, 0.0),
    "cl": ("volume", 1e-2, 0.0),
    "dl": ("volume", 1e-1, 0.0),
    "L": ("volume", 1.0, 0.0),
    "m3": ("volume", 1000.0, 0.0),
    "cm3": ("volume", 1e-3, 0.0),
    "ft3": ("volume", 28.316846592, 0.0),
    "gal": ("volume", 3.785411784, 0.0),
    "imp_gal": ("volume", 4.54609, 0.0),
    "qt": ("volume", 0.946352946, 0.0),
    "pt": ("volume", 0.473176473, 0.0),
    "cup": ("volume", 0.2365882365, 0.0),
    "fl_oz": ("volume", 0.0295735295625, 0.0),
    "bbl": ("volume", 158.987294928, 0.0),

    # Distance (base km)
    "mm": ("distance", 1e-6, 0.0),
    "cm": ("distance", 1e-5, 0.0),
    "m": ("distance", 1e-3, 0.0),
    "km": ("distance", 1.0, 0.0),
    "in": ("distance", 2.54e-5, 0.0),
    "ft": ("distance", 3.048e-4, 0.0),
    "yd": ("distance", 9.144e-4, 0.0),
    "mile": ("distance", 1.609344, 0.0),
    "nmi": ("distance", 1.852, 0.0),

    # Energy (base kWh)
    "J": ("energy", 1 / 3.6e6, 0.0),
    "kJ": ("energy", 1 / 3600, 0.0),
    "MJ": ("energy", 1 / 3.6, 0.0),
    "GJ": ("energy", 1000 / 3.6, 0.0),
    "TJ": ("energy", 1e6 / 3.6, 0.0),
    "Wh": ("energy", 1e-3, 0.0),
    "kWh": ("energy", 1.0, 0.0),
    "MWh": ("energy", 1e3, 0.0),
    "GWh": ("energy", 1e6, 0.0),
    "BTU": ("energy", 2.9307107e-4, 0.0),
    "MMBtu": ("energy", 293.07107, 0.0),
    "therm": ("energy", 29.307107, 0.0),
    "cal": ("energy", 1.163e-6, 0.0),
    "kcal": ("energy", 1.163e-3, 0.0),
    "toe": ("energy", 11630.0, 0.0),

    # Time (base h)
    "s": ("time", 1 / 3600, 0.0),
    "min": ("time", 1 / 60, 0.0),
    "h": ("time", 1.0, 0.0),
    "day": ("time", 24.0, 0.0),
    "week": ("time", 168.0, 0.0),
    "month": ("time", 730.0, 0.0),  # 365/12 days
    "year": ("time", 8760.0, 0.0),

    # Power (base kW)
    "W": ("power", 1e-3, 0.0),
    "kW": ("power", 1.0, 0.0),
    "MW": ("power", 1e3, 0.0),
    "GW": ("power", 1e6, 0.0),
    "hp": ("power", 0.745699872, 0.0),
    "kVA": ("power", 1.0, 0.0),  # unity power factor

    # Pressure (base Pa)
    "Pa": ("pressure", 1.0, 0.0),
    "kPa": ("pressure", 1e3, 0.0),
    "MPa": ("pressure", 1e6, 0.0),
    "bar": ("pressure", 1e5, 0.0),
    "mbar": ("pressure", 100.0, 0.0),
    "atm": ("pressure", 101325.0, 0.0),
    "psi": ("pressure", 6894.757293168, 0.0),
    "mmHg": ("pressure", 133.322387415, 0.0),

    # Area (base m2)
    "mm2": ("area", 1e-6, 0.0),
    "cm2": ("area", 1e-4, 0.0),
    "m2": ("area", 1.0, 0.0),
    "km2": ("area", 1e6, 0.0),
    "ha": ("area", 1e4, 0.0),
    "acre": ("area", 4046.8564224, 0.0),
    "ft2": ("area", 0.09290304, 0.0),
    "in2": ("area", 6.4516e-4, 0.0),
    "mu": ("area", 666.6666667, 0.0),

    # Temperature (base K)
    "K": ("temperature", 1.0, 0.0),
    "C": ("temperature", 1.0, 273.15),
    "F": ("temperature", 5 / 9, 459.67),
    "R": ("temperature", 5 / 9, 0.0),

    # Currency (base USD) - approximate static rates, advisory only
    "USD": ("currency", 1.0, 0.0),
    "EUR": ("currency", 1.08, 0.0),
    "GBP": ("currency", 1.27, 0.0),
    "CAD": ("currency", 0.73, 0.0),
    "AUD": ("currency", 0.66, 0.0),
    "CHF": ("currency", 1.13, 0.0),
    "JPY": ("currency", 0.0067, 0.0),
    "CNY": ("currency", 0.14, 0.0),
    "INR": ("currency", 0.012, 0.0),

    # Count (base number)
    "number": ("count", 1.0, 0.0),
    "dozen": ("count", 12.0, 0.0),
}

BASE_UNITS: dict[str, str] = {
    "weight": "kg",
    "volume": "L",
    "distance": "km",
    "energy": "kWh",
    "time": "h",
    "power": "kW",
    "pressure": "Pa",
    "area": "m2",
    "temperature": "K",
    "currency": "USD",
    "count": "number",
}


# =============================================================================
# ALIASES
# =============================================================================
# Lowercase spelling -> canonical unit. Canonical names are added automatically.
# Locale aliases (Chinese) are included because user text and catalog titles mix them.

UNIT_ALIASES: dict[str, str] = {
    # Weight
    "milligram": "mg", "milligrams": "mg", "毫克": "mg",
    "gram": "g", "grams": "g", "gr": "g", "克": "g",
    "kilogram": "kg", "kilograms": "kg", "kgs": "kg", "kilo": "kg", "kilos": "kg",
    "公斤": "kg", "千克": "kg",
    "t": "tonne", "tonnes": "tonne", "ton": "tonne", "tons": "tonne",
    "metric ton": "tonne", "metric tons": "tonne", "metric tonne": "tonne",
    "tonne metric": "tonne", "mt": "tonne", "吨": "tonne", "公吨": "tonne",
    "short ton": "short_ton", "short tons": "short_ton", "us ton": "short_ton",
    "long ton": "long_ton", "long tons": "long_ton",
    "lbs": "lb", "pound": "lb", "pounds": "lb", "磅": "lb",
    "ounce": "oz", "ounces": "oz",
    "st": "stone", "stones": "stone",
    "斤": "jin",

    # Volume
    "millilitre": "ml", "millilitres": "ml", "milliliter": "ml", "milliliters": "ml",
    "mls": "ml", "毫升": "ml",
    "centilitre": "cl", "centiliter": "cl",
    "decilitre": "dl", "deciliter": "dl",
    "l": "L", "litre": "L", "litres": "L", "liter": "L", "liters": "L", "ltr": "L",
    "升": "L", "公升": "L",
    "m³": "m3", "cubic metre": "m3", "cubic metres": "m3", "cubic meter": "m3",
    "cubic meters": "m3", "cbm": "m3", "立方米": "m3", "立方": "m3", "方": "m3",
    "cm³": "cm3", "cc": "cm3", "cubic centimetre": "cm3", "cubic centimeter": "cm3",
    "ft³": "ft3", "cubic foot": "ft3", "cubic feet": "ft3",
    "gallon": "gal", "gallons": "gal", "us gallon": "gal", "us gallons": "gal", "加仑": "gal",
    "imperial gallon": "imp_gal", "imperial gallons": "imp_gal", "uk gallon": "imp_gal",
    "quart": "qt", "quarts": "qt",
    "pint": "pt", "pints": "pt",
    "cups": "cup", "杯": "cup",
    "fl oz": "fl_oz", "fluid ounce": "fl_oz", "fluid ounces": "fl_oz",
    "barrel": "bbl", "barrels": "bbl",

    # Distance
    "millimetre": "mm", "millimetres": "mm", "millimeter": "mm", "millimeters": "mm", "毫米": "mm",
    "centimetre": "cm", "centimetres": "cm", "centimeter": "cm", "centimeters": "cm", "厘米": "cm",
    "metre": "m", "metres": "m", "meter": "m", "meters": "m", "米": "m",
    "kilometre": "km", "kilometres": "km", "kilometer": "km", "kilometers": "km",
    "kms": "km", "公里": "km", "千米": "km",
    "inch": "in", "inches": "in",
    "foot": "ft", "feet": "ft",
    "yard": "yd", "yards": "yd",
    "mi": "mile", "miles": "mile", "英里": "mile",
    "nautical mile": "nmi", "nautical miles": "nmi", "nm": "nmi", "海里": "nmi",

    # Energy
    "j": "J", "joule": "J", "joules": "J",
    "kj": "kJ", "kilojoule": "kJ", "kilojoules": "kJ",
    "mj": "MJ", "megajoule": "MJ", "megajoules": "MJ",
    "gj": "GJ", "gigajoule": "GJ", "gigajoules": "GJ",
    "tj": "TJ", "terajoule": "TJ", "terajoules": "TJ",
    "wh": "Wh", "watt-hour": "Wh", "watt hour": "Wh", "watt hours": "Wh",
    "kwh": "kWh", "kilowatt-hour": "kWh", "kilowatt hour": "kWh", "kilowatt hours": "kWh",
    "kilowatt-hours": "kWh", "千瓦时": "kWh", "度电": "kWh",
    "mwh": "MWh", "megawatt-hour": "MWh", "megawatt hour": "MWh", "megawatt hours": "MWh",
    "gwh": "GWh", "gigawatt-hour": "GWh", "gigawatt hours": "GWh",
    "btu": "BTU", "btus": "BTU",
    "mmbtu": "MMBtu", "million btu": "MMBtu",
    "therms": "therm",
    "calorie": "cal", "calories": "cal",
    "kilocalorie": "kcal", "kilocalories": "kcal", "大卡": "kcal", "千卡": "kcal",
    "tonne of oil equivalent": "toe", "tonnes of oil equivalent": "toe",

    # Time
    "sec": "s", "secs": "s", "second": "s", "seconds": "s", "秒": "s",
    "mins": "min", "minute": "min", "minutes": "min", "分钟": "min",
    "hr": "h", "hrs": "h", "hour": "h", "hours": "h", "小时": "h",
    "d": "day", "days": "day", "night": "day", "nights": "day", "天": "day", "日": "day",
    "wk": "week", "wks": "week", "weeks": "week", "周": "week", "星期": "week",
    "months": "month", "mo": "month", "个月": "month", "月": "month",
    "yr": "year", "yrs": "year", "years": "year", "annum": "year", "年": "year",

    # Power
    "w": "W", "watt": "W", "watts": "W", "瓦": "W",
    "kw": "kW", "kilowatt": "kW", "kilowatts": "kW", "千瓦": "kW",
    "mw": "MW", "megawatt": "MW", "megawatts": "MW", "兆瓦": "MW",
    "gw": "GW", "gigawatt": "GW", "gigawatts": "GW",
    "horsepower": "hp", "bhp": "hp", "马力": "hp",
    "kva": "kVA",

    # Pressure
    "pa": "Pa", "pascal": "Pa", "pascals": "Pa",
    "kpa": "kPa", "kilopascal": "kPa", "kilopascals": "kPa",
    "mpa": "MPa", "megapascal": "MPa", "megapascals": "MPa",
    "bars": "bar",
    "millibar": "mbar", "millibars": "mbar",
    "atmosphere": "atm", "atmospheres": "atm",
    "mmhg": "mmHg",

    # Area
    "mm²": "mm2", "sq mm": "mm2",
    "cm²": "cm2", "sq cm": "cm2",
    "m²": "m2", "sqm": "m2", "sq m": "m2", "square metre": "m2", "square metres": "m2",
    "square meter": "m2", "square meters": "m2", "平方米": "m2", "平米": "m2",
    "km²": "km2", "sq km": "km2", "square kilometre": "km2", "square kilometer": "km2",
    "hectare": "ha", "hectares": "ha", "公顷": "ha",
    "acres": "acre",
    "ft²": "ft2", "sq ft": "ft2", "sqft": "ft2", "square foot": "ft2", "square feet": "ft2",
    "in²": "in2", "sq in": "in2", "square inch": "in2", "square inches": "in2",
    "亩": "mu",

    # Temperature
    "k": "K", "kelvin": "K",
    "c": "C", "°c": "C", "℃": "C", "celsius": "C", "degc": "C", "deg c": "C", "摄氏度": "C",
    "f": "F", "°f": "F", "℉": "F", "fahrenheit": "F", "degf": "F", "deg f": "F",
    "°r": "R", "rankine": "R",

    # Currency
    "usd": "USD", "$": "USD", "us$": "USD", "dollar": "USD", "dollars": "USD", "美元": "USD",
    "eur": "EUR", "€": "EUR", "euro": "EUR", "euros": "EUR", "欧元": "EUR",
    "gbp": "GBP", "£": "GBP", "pound sterling": "GBP", "英镑": "GBP",
    "cad": "CAD", "aud": "AUD", "chf": "CHF",
    "jpy": "JPY", "¥": "JPY", "yen": "JPY", "日元": "JPY",
    "cny": "CNY", "rmb": "CNY", "yuan": "CNY", "元": "CNY", "人民币": "CNY",
    "inr": "INR", "rupee": "INR", "rupees": "INR",

    # Count
    "no": "number", "no.": "number", "numbers": "number", "unit": "number", "units": "number",
    "item": "number", "items": "number", "piece": "number", "pieces": "number", "pcs": "number",
    "pc": "number", "each": "number", "ea": "number", "count": "number",
    "个": "number", "件": "number", "台": "number", "辆": "number", "只": "number",
    "dozens": "dozen", "打": "dozen",
}

# Canonical names resolve to themselves (lowercase lookup key)
for _canonical in _UNITS:
    UNIT_ALIASES.setdefault(_canonical.lower(), _canonical)

# Units whose spelling differs only by SI prefix case ("mW" vs "MW") are resolved
# before lowercasing.
_CASE_SENSITIVE_UNITS: dict[str, str] = {
    "mW": "W",  # milliwatt, scaled below
    "Mm": "km",  # megametre, scaled below
}
_CASE_SENSITIVE_SCALE: dict[str, float] = {
    "mW": 1e-3,
    "Mm": 1000.0,
}

_WHITESPACE_PATTERN = re.compile(r"\s+")
_TRAILING_NOISE_PATTERN = re.compile(r"[\s.]+$")
_NUMBER_PATTERN = re.compile(r"^\s*([+-]?\d+(?:\.\d+)?)\s*(.*)$")


@dataclass(frozen=True)
class UnitInfo:
    """Resolved unit: canonical name, dimension and how to reach the base unit."""
    canonical: str
    dimension: str
    scale: float
    offset: float = 0.0

    def to_base(self, value: float) -> float:
        return (value + self.offset) * self.scale

    def from_base(self, value: float) -> float:
        return value / self.scale - self.offset


@dataclass
class Conversion:
    """Outcome of a unit conversion. ``converted`` is False when input was returned unchanged."""
    value: float
    unit: str
    converted: bool
    advisory: bool = False
    note: str | None = None


def _clean(unit: str) -> str:
    cleaned = unit.strip()
    cleaned = _TRAILING_NOISE_PATTERN.sub("", cleaned)
    return _WHITESPACE_PATTERN.sub(" ", cleaned)


def get_unit_info(unit: str | None) -> UnitInfo | None:
    """Resolve a unit spelling to its UnitInfo, or None if unknown."""
    if not unit or not isinstance(unit, str):
        return None
    cleaned = _clean(unit)
    if not cleaned:
        return None

    if cleaned in _CASE_SENSITIVE_UNITS:
        dimension, scale, offset = _UNITS[_CASE_SENSITIVE_UNITS[cleaned]]
        return UnitInfo(cleaned, dimension, scale * _CASE_SENSITIVE_SCALE[cleaned], offset)

    lowered = cleaned.lower()
    canonical = UNIT_ALIASES.get(lowered)
    if canonical is None and lowered.endswith("s") and len(lowered) > 2:
        canonical = UNIT_ALIASES.get(lowered[:-1])
    if canonical is None:
        # "kg co2e", "kgco2e" -> numerator mass only
        stripped = re.sub(r"\s*co2e?$|\s*co₂e?$", "", lowered)
        if stripped != lowered:
            canonical = UNIT_ALIASES.get(stripped)
    if canonical is None:
        return None

    dimension, scale, offset = _UNITS[canonical]
    return UnitInfo(canonical, dimension, scale, offset)


def normalize_unit(unit: str | None) -> str | None:
    """Map a unit spelling to its canonical form ("tonnes" -> "tonne", "公里" -> "km")."""
    info = get_unit_info(unit)
    return info.canonical if info else None


def get_dimension(unit: str | None) -> str | None:
    """Get the physical dimension of a unit ("weight", "distance", ...)."""
    info = get_unit_info(unit)
    return info.dimension if info else None


def is_weight_unit(unit: str | None) -> bool:
    return get_dimension(unit) == "weight"


def is_distance_unit(unit: str | None) -> bool:
    return get_dimension(unit) == "distance"


def are_units_equivalent(a: str | None, b: str | None) -> bool:
    """True if two spellings name the same unit ("tonne", "ton" and "t" are equivalent)."""
    info_a = get_unit_info(a)
    info_b = get_unit_info(b)
    if info_a is None or info_b is None:
        return bool(a and b and _clean(a).lower() == _clean(b).lower())
    return info_a.canonical == info_b.canonical


def convert(value: float, from_unit: str | None, to_unit: str | None) -> Conversion:
    """Convert a value between two units of the same dimension.

    Args:
        value: Numeric value expressed in from_unit
        from_unit: Source unit spelling
        to_unit: Target unit spelling

    Returns:
        Conversion. When either unit is unknown or the dimensions differ, the input
        value is returned unchanged with converted=False and an explanatory note.
        Currency conversions are flagged advisory.
    """
    target_label = to_unit or ""
    src = get_unit_info(from_unit)
    dst = get_unit_info(to_unit)

    if src is None or dst is None:
        unknown = from_unit if src is None else to_unit
        return Conversion(value, from_unit or "", False, note=f"Unknown unit: {unknown!r}")

    if src.dimension != dst.dimension:
        logger.debug(f"Dimension mismatch: {from_unit} ({src.dimension}) -> {to_unit} ({dst.dimension})")
        return Conversion(
            value, from_unit or "", False,
            note=f"Cannot convert {src.dimension} ({from_unit}) to {dst.dimension} ({to_unit})",
        )

    if src.canonical == dst.canonical and src.scale == dst.scale:
        return Conversion(value, target_label, True)

    result = dst.from_base(src.to_base(value))
    advisory = src.dimension == "currency"
    note = "Currency conversion uses approximate static rates" if advisory else None
    return Conversion(result, target_label, True, advisory=advisory, note=note)


def convert_value(value: float, from_unit: str | None, to_unit: str | None) -> float:
    """Convert and return only the number (unchanged input when not convertible)."""
    return convert(value, from_unit, to_unit).value


def to_base(value: float, unit: str | None) -> float | None:
    """Express a value in its dimension's base unit, or None if the unit is unknown."""
    info = get_unit_info(unit)
    if info is None:
        return None
    return info.to_base(value)


# =============================================================================
# FACTOR UNIT EXPRESSIONS
# =============================================================================
# Catalog factor units look like "kg/tonne-km", "kg CO2e/kWh", "kg/passenger.km",
# "g/km", "kg/number", "L/100km". The denominator decides the calculation strategy.

_PER_SPLIT_PATTERN = re.compile(r"\s*(?:/|\bper\b)\s*", re.IGNORECASE)
_DENOMINATOR_SPLIT_PATTERN = re.compile(r"\s*(?:-|·|\*|×|\.(?=[a-zA-Z])|\s)\s*")
_NUMERATOR_MASS_PATTERN = re.compile(
    r"^\s*(mg|kg|g|tonnes?|tons?|t|lbs?)(?=\s|co2|co₂|ch4|n2o|$|[^a-z])", re.IGNORECASE
)
_COUNTED_UNITS = frozenset({"passenger", "passengers", "person", "people", "vehicle", "vehicles",
                            "room", "rooms", "guest", "guests", "seat", "seats", "trip", "trips"})

# Contracted compound denominators
_COMPOUND_ALIASES: dict[str, str] = {
    "tkm": "tonne-km",
    "tonnekm": "tonne-km",
    "pkm": "passenger-km",
    "vkm": "vehicle-km",
}

SHAPE_TONNE_KM = "tonne_km"
SHAPE_DISTANCE = "distance"
SHAPE_DIRECT = "direct"
SHAPE_COUNT = "count"
SHAPE_COMPOUND_USAGE = "compound_usage"
SHAPE_UNKNOWN = "unknown"


@dataclass(frozen=True)
class DenominatorPart:
    """One factor of a factor-unit denominator, e.g. "100km" -> (100, "km", "distance")."""
    unit: str
    multiplier: float = 1.0
    dimension: str | None = None


@dataclass(frozen=True)
class FactorUnit:
    """Parsed emission-factor unit expression."""
    expression: str
    numerator: str
    mass_unit: str | None
    denominator: tuple[DenominatorPart, ...] = field(default_factory=tuple)

    @property
    def dimensions(self) -> tuple[str | None, ...]:
        return tuple(part.dimension for part in self.denominator)

    @property
    def base_unit(self) -> str:
        """Unit the activity quantity must be expressed in.

        "kg/tonne-km" -> "tonne", "kg/kg" -> "kg", "kg/km" -> "km". Without a
        denominator the numerator is returned.
        """
        for part in self.denominator:
            if part.dimension is not None:
                return part.unit
        if self.denominator:
            return self.denominator[0].unit
        return self.numerator

    @property
    def usage_part(self) -> DenominatorPart | None:
        """The first measurable (distance/time/energy/...) part of a compound denominator."""
        for part in self.denominator:
            if part.dimension not in (None, "count"):
                return part
        return None

    @property
    def shape(self) -> str:
        dims = self.dimensions
        if not dims:
            return SHAPE_UNKNOWN
        if "weight" in dims and "distance" in dims:
            return SHAPE_TONNE_KM
        if len(dims) == 1:
            if dims[0] == "distance":
                return SHAPE_DISTANCE
            if dims[0] == "count":
                return SHAPE_COUNT
            if dims[0] is None:
                return SHAPE_UNKNOWN
            return SHAPE_DIRECT
        # Counted subject times a usage metric: passenger-km, vehicle-km, room-night
        if any(d is None or d == "count" for d in dims) and self.usage_part is not None:
            if self.usage_part.dimension == "distance":
                return SHAPE_DISTANCE
            return SHAPE_COMPOUND_USAGE
        return SHAPE_UNKNOWN

    @property
    def mass_scale_to_kg(self) -> float:
        """Multiply a computed emission by this to express it in kg."""
        if self.mass_unit is None:
            return 1.0
        info = get_unit_info(self.mass_unit)
        return info.scale if info and info.dimension == "weight" else 1.0


def _parse_denominator_part(token: str) -> DenominatorPart:
    match = _NUMBER_PATTERN.match(token)
    multiplier = 1.0
    unit = token
    if match and match.group(2):
        multiplier = float(match.group(1))
        unit = match.group(2)
    if unit.lower() in _COUNTED_UNITS:
        return DenominatorPart(unit=unit.lower(), multiplier=multiplier, dimension=None)
    info = get_unit_info(unit)
    return DenominatorPart(unit=unit, multiplier=multiplier, dimension=info.dimension if info else None)


def parse_factor_unit(expression: str | None) -> FactorUnit:
    """Parse a catalog unit expression such as "kg/tonne-km" or "kg CO2e per kWh"."""
    expression = (expression or "").strip()
    if not expression:
        return FactorUnit(expression="", numerator="kg", mass_unit="kg")

    pieces = _PER_SPLIT_PATTERN.split(expression, maxsplit=1)
    numerator = pieces[0].strip() or "kg"
    mass_match = _NUMERATOR_MASS_PATTERN.match(numerator)
    mass_unit = mass_match.group(1) if mass_match else None

    if len(pieces) < 2 or not pieces[1].strip():
        return FactorUnit(expression=expression, numerator=numerator, mass_unit=mass_unit)

    denominator_text = pieces[1].strip()
    denominator_text = _COMPOUND_ALIASES.get(denominator_text.lower(), denominator_text)
    # Whole denominator may itself be one multi-word unit ("cubic metre", "square metre")
    if get_unit_info(denominator_text) is not None:
        parts: tuple[DenominatorPart, ...] = (_parse_denominator_part(denominator_text),)
    else:
        tokens = [t for t in _DENOMINATOR_SPLIT_PATTERN.split(denominator_text) if t]
        parts = tuple(_parse_denominator_part(t) for t in tokens)

    return FactorUnit(
        expression=expression,
        numerator=numerator,
        mass_unit=mass_unit,
        denominator=parts,
    )
