"""Tests for unit normalization, conversion and factor-unit parsing."""

import pytest

from carbonmatch_mcp.units import (
    SHAPE_COMPOUND_USAGE,
    SHAPE_COUNT,
    SHAPE_DIRECT,
    SHAPE_DISTANCE,
    SHAPE_TONNE_KM,
    SHAPE_UNKNOWN,
    are_units_equivalent,
    convert,
    convert_value,
    get_dimension,
    normalize_unit,
    parse_factor_unit,
    to_base,
)


class TestNormalizeUnit:
    """Test alias resolution to canonical units."""

    @pytest.mark.parametrize("spelling,expected", [
        ("tonnes", "tonne"),
        ("t", "tonne"),
        ("吨", "tonne"),
        ("公斤", "kg"),
        ("Kilograms", "kg"),
        ("公里", "km"),
        ("miles", "mile"),
        ("kWh", "kWh"),
        ("千瓦时", "kWh"),
        ("litres", "L"),
        ("m³", "m3"),
        ("hours", "h"),
        ("pcs", "number"),
        ("kg CO2e", "kg"),
    ])
    def test_known_spellings(self, spelling, expected):
        """Aliases, plurals and locale spellings resolve to the canonical unit."""
        assert normalize_unit(spelling) == expected

    @pytest.mark.parametrize("spelling", [None, "", "   ", "furlongs per fortnight", "widgets"])
    def test_unknown_spellings(self, spelling):
        """Unknown or empty spellings return None."""
        assert normalize_unit(spelling) is None

    def test_prefix_case_matters_for_milliwatt(self):
        """mW is a milliwatt, not a megawatt."""
        assert get_dimension("mW") == "power"
        assert convert_value(1000, "mW", "W") == pytest.approx(1.0)

    @pytest.mark.parametrize("unit,dimension", [
        ("kg", "weight"),
        ("km", "distance"),
        ("L", "volume"),
        ("kWh", "energy"),
        ("kW", "power"),
        ("day", "time"),
        ("°C", "temperature"),
        ("EUR", "currency"),
        ("psi", "pressure"),
        ("hectare", "area"),
    ])
    def test_dimensions(self, unit, dimension):
        """Each unit belongs to exactly one dimension."""
        assert get_dimension(unit) == dimension


class TestUnitEquivalence:
    """Spelling variants compare equal without numeric conversion."""

    def test_tonne_spellings(self):
        """tonne, ton, t and 吨 are the same unit."""
        assert are_units_equivalent("tonne", "ton")
        assert are_units_equivalent("t", "tonnes")
        assert are_units_equivalent("吨", "metric ton")

    def test_different_units(self):
        """Different units of one dimension are not equivalent."""
        assert not are_units_equivalent("kg", "g")
        assert not are_units_equivalent("km", "kg")

    def test_unknown_units_compare_by_spelling(self):
        """Unknown units fall back to case-insensitive spelling comparison."""
        assert are_units_equivalent("Widget", "widget")
        assert not are_units_equivalent("widget", "gizmo")


class TestConvert:
    """Test conversions within and across dimensions."""

    @pytest.mark.parametrize("value,from_unit,to_unit,expected", [
        (5, "t", "kg", 5000),
        (1, "g", "kg", 0.001),
        (2000, "g", "kg", 2),
        (1, "mile", "km", 1.609344),
        (1, "m3", "L", 1000),
        (3.6, "MJ", "kWh", 1.0),
        (90, "min", "h", 1.5),
        (2, "day", "h", 48),
        (1, "lb", "kg", 0.45359237),
        (1, "MW", "kW", 1000),
    ])
    def test_known_conversions(self, value, from_unit, to_unit, expected):
        """Linear conversions go through the dimension's base unit."""
        result = convert(value, from_unit, to_unit)
        assert result.converted
        assert result.value == pytest.approx(expected)
        assert not result.advisory

    def test_celsius_to_fahrenheit(self):
        """Temperature conversion applies the offset."""
        assert convert_value(0, "°C", "°F") == pytest.approx(32)
        assert convert_value(100, "C", "F") == pytest.approx(212)

    def test_celsius_to_kelvin(self):
        """Celsius to kelvin adds 273.15."""
        assert convert_value(100, "celsius", "K") == pytest.approx(373.15)

    @pytest.mark.parametrize("from_unit,to_unit", [
        ("kg", "tonne"),
        ("km", "mile"),
        ("L", "gal"),
        ("kWh", "GJ"),
        ("C", "F"),
        ("h", "week"),
    ])
    def test_round_trip(self, from_unit, to_unit):
        """Converting there and back returns the original value."""
        there = convert_value(42.5, from_unit, to_unit)
        back = convert_value(there, to_unit, from_unit)
        assert back == pytest.approx(42.5)

    def test_same_unit_is_identity(self):
        """Equivalent spellings convert without changing the value."""
        result = convert(7, "tonnes", "t")
        assert result.converted
        assert result.value == 7

    def test_dimension_mismatch_returns_input(self):
        """Weight cannot become distance; the value comes back unchanged."""
        result = convert(5, "kg", "km")
        assert not result.converted
        assert result.value == 5
        assert "weight" in result.note and "distance" in result.note

    def test_unknown_unit_returns_input(self):
        """Unknown units never raise."""
        result = convert(5, "widgets", "kg")
        assert not result.converted
        assert result.value == 5
        assert "widgets" in result.note

    def test_currency_is_advisory(self):
        """Currency conversion uses static rates and is flagged advisory."""
        result = convert(100, "EUR", "USD")
        assert result.converted
        assert result.advisory
        assert result.value == pytest.approx(108)

    def test_to_base(self):
        """to_base expresses a value in the dimension's base unit."""
        assert to_base(2, "tonne") == pytest.approx(2000)
        assert to_base(1, "nonsense") is None


class TestParseFactorUnit:
    """Test catalog factor-unit expression parsing."""

    @pytest.mark.parametrize("expression,shape", [
        ("kg/tonne-km", SHAPE_TONNE_KM),
        ("kg CO2e/tkm", SHAPE_TONNE_KM),
        ("kg/t.km", SHAPE_TONNE_KM),
        ("kg/km", SHAPE_DISTANCE),
        ("kg/passenger-km", SHAPE_DISTANCE),
        ("kg/vehicle.mile", SHAPE_DISTANCE),
        ("kg/kg", SHAPE_DIRECT),
        ("kg CO2e/kWh", SHAPE_DIRECT),
        ("kg per cubic metre", SHAPE_DIRECT),
        ("kg/number", SHAPE_COUNT),
        ("kg/room-night", SHAPE_COMPOUND_USAGE),
        ("kg/device-hour", SHAPE_COMPOUND_USAGE),
        ("kg/passenger", SHAPE_UNKNOWN),
        ("kg", SHAPE_UNKNOWN),
    ])
    def test_shapes(self, expression, shape):
        """The denominator decides the calculation shape."""
        assert parse_factor_unit(expression).shape == shape

    def test_tonne_km_parts(self):
        """kg/tonne-km needs weight in tonnes and distance."""
        unit = parse_factor_unit("kg/tonne-km")
        assert unit.mass_unit == "kg"
        assert unit.base_unit == "tonne"
        assert unit.dimensions == ("weight", "distance")

    def test_numerator_mass_scale(self):
        """Non-kg numerators scale the result to kg."""
        assert parse_factor_unit("g/km").mass_scale_to_kg == pytest.approx(0.001)
        assert parse_factor_unit("kg/km").mass_scale_to_kg == pytest.approx(1.0)
        assert parse_factor_unit("t CO2e/MWh").mass_scale_to_kg == pytest.approx(1000)

    def test_denominator_multiplier(self):
        """kg/100km carries a multiplier of 100."""
        unit = parse_factor_unit("kg/100km")
        assert unit.shape == SHAPE_DISTANCE
        assert unit.denominator[0].multiplier == 100
        assert unit.base_unit == "km"

    def test_empty_expression(self):
        """An empty unit parses to a bare kg numerator."""
        unit = parse_factor_unit("")
        assert unit.numerator == "kg"
        assert unit.shape == SHAPE_UNKNOWN

    def test_base_unit_without_denominator(self):
        """Without a denominator the numerator is the base unit."""
        assert parse_factor_unit("kg").base_unit == "kg"

    def test_usage_part_of_compound(self):
        """room-night uses the time part for calculation."""
        unit = parse_factor_unit("kg/room-night")
        assert unit.usage_part.dimension == "time"
