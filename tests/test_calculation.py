"""Tests for the calculation engine."""

import pytest

from carbonmatch_mcp.calculation import TRANSPORT_NOTE, CalculationEngine, distance_in, weight_in
from carbonmatch_mcp.models import EmissionFactorRecord, MatchResult, QueryEntity, TransportDetails, UsageDetails

from conftest import match_for


def _match(unit: str, factor: float, title: str = "Test activity") -> MatchResult:
    record = EmissionFactorRecord(id="test", title=title, sector="Test", unit=unit, factor=factor)
    return MatchResult(record=record, relevance_score=0.9, match_type="fuzzy")


class TestTonneKm:
    """Test weight x distance x factor calculations."""

    def test_rigid_truck_container(self):
        """30 t over 75 km with a 26-32t rigid truck factor."""
        entity = QueryEntity(
            name="30-ton rigid diesel truck 75km transport",
            confidence=0.8,
            quantity=30,
            unit="tonne",
            entity_type="transport",
            scenario_details=TransportDetails(distance=75, distance_unit="km"),
        )
        result = CalculationEngine().calculate(entity, match_for("tr-rigid-2632"))
        assert result.total_emission == pytest.approx(0.261)
        assert result.quantity_used == pytest.approx(2250)
        assert result.unit_used == "tonne-km"
        assert result.formula == "30t × 75km × 0.000116 kg/tonne-km = 0.261kg CO2"
        assert result.confidence == pytest.approx(0.76)
        assert result.notes == [TRANSPORT_NOTE]

    def test_weight_from_details_in_kg(self):
        """Cargo weight in kg is converted to tonnes."""
        entity = QueryEntity(
            name="delivery",
            scenario_details=TransportDetails(weight=2000, weight_unit="kg", distance=100, distance_unit="km"),
        )
        result = CalculationEngine().calculate(entity, _match("kg/tonne-km", 0.1))
        assert result.total_emission == pytest.approx(20.0)

    def test_missing_distance(self):
        """Missing distance yields a zero result that asks for the distance."""
        entity = QueryEntity(name="truck", confidence=1.0, quantity=30, unit="tonne")
        result = CalculationEngine().calculate(entity, match_for("tr-rigid-2632"))
        assert result.total_emission == 0
        assert result.is_factor_only
        assert result.formula == "weight(tonnes) × distance(km) × 0.000116 kg/tonne-km"
        assert result.confidence == pytest.approx(0.5)
        assert any("distance" in note for note in result.notes)
        assert not any("weight is required" in note for note in result.notes)

    def test_missing_weight_and_distance(self):
        """Both missing values are reported."""
        result = CalculationEngine().calculate(QueryEntity(name="truck"), match_for("tr-rigid-2632"))
        assert result.total_emission == 0
        assert len(result.notes) == 2


class TestDistance:
    """Test per-km and per-passenger-km calculations."""

    def test_per_km(self):
        """Distance quantity times a kg/km factor."""
        entity = QueryEntity(name="petrol car", confidence=1.0, quantity=100, unit="km")
        result = CalculationEngine().calculate(entity, match_for("tr-car-petrol-medium"))
        assert result.total_emission == pytest.approx(17.07)
        assert result.formula == "100km × 0.1707 kg/km = 17.070kg CO2"
        assert result.confidence == pytest.approx(0.9)

    def test_vehicle_count(self):
        """Vehicle count multiplies the total."""
        entity = QueryEntity(
            name="petrol cars",
            scenario_details=TransportDetails(distance=100, distance_unit="km", vehicle_count=2),
        )
        result = CalculationEngine().calculate(entity, match_for("tr-car-petrol-medium"))
        assert result.total_emission == pytest.approx(34.14)
        assert result.notes == ["Multiplied by 2 vehicles/passengers"]

    def test_passenger_km(self):
        """kg/passenger-km uses the distance part."""
        entity = QueryEntity(name="flight", quantity=1000, unit="km")
        result = CalculationEngine().calculate(entity, match_for("tr-flight-long"))
        assert result.total_emission == pytest.approx(148.0)

    def test_miles_are_converted(self):
        """Miles convert into the factor's km."""
        entity = QueryEntity(name="car trip", quantity=10, unit="miles")
        result = CalculationEngine().calculate(entity, _match("kg/km", 1.0))
        assert result.total_emission == pytest.approx(16.09344)

    def test_denominator_multiplier(self):
        """kg/100km divides the distance by 100."""
        entity = QueryEntity(name="van", quantity=250, unit="km")
        result = CalculationEngine().calculate(entity, _match("kg/100km", 20.0))
        assert result.total_emission == pytest.approx(50.0)

    def test_gram_numerator(self):
        """g/km results are reported in kg."""
        entity = QueryEntity(name="scooter", quantity=100, unit="km")
        result = CalculationEngine().calculate(entity, _match("g/km", 170.0))
        assert result.total_emission == pytest.approx(17.0)

    def test_missing_distance(self):
        """Without a distance only the factor is reported."""
        result = CalculationEngine().calculate(QueryEntity(name="car"), match_for("tr-car-petrol-medium"))
        assert result.is_factor_only
        assert "Distance is required" in result.notes[-1]


class TestCompoundAndCount:
    """Test compound usage and per-item factors."""

    def test_room_night(self):
        """Nights stayed times a kg/room-night factor."""
        entity = QueryEntity(name="hotel stay", quantity=3, unit="nights")
        result = CalculationEngine().calculate(entity, _match("kg/room-night", 10.0, "Hotel stay"))
        assert result.total_emission == pytest.approx(30.0)
        assert result.confidence == pytest.approx(0.5 * 0.85)

    def test_device_hours_with_count(self):
        """Device count times operating hours."""
        entity = QueryEntity(
            name="servers",
            scenario_details=UsageDetails(device_count=4, operation_time=2, time_unit="days"),
        )
        result = CalculationEngine().calculate(entity, _match("kg/device-hour", 0.1))
        assert result.total_emission == pytest.approx(4 * 48 * 0.1)

    def test_per_item(self):
        """Items times a kg/number factor."""
        entity = QueryEntity(name="phones", quantity=5, unit="items")
        result = CalculationEngine().calculate(entity, _match("kg/number", 2.0))
        assert result.total_emission == pytest.approx(10.0)


class TestDirect:
    """Test direct conversion into the factor's base unit."""

    def test_grams_of_apple(self):
        """100 g of apples with a kg/kg factor."""
        entity = QueryEntity(name="apple", confidence=1.0, quantity=100, unit="g")
        result = CalculationEngine().calculate(entity, match_for("fd-apple"))
        assert result.total_emission == pytest.approx(0.05)
        assert result.quantity_used == pytest.approx(0.1)
        assert result.unit_used == "kg"
        assert result.confidence == pytest.approx(0.9)
        assert result.notes == ["Converted 100 g to 0.1 kg"]

    def test_energy(self):
        """MWh converts to kWh."""
        entity = QueryEntity(name="electricity", quantity=1, unit="MWh")
        result = CalculationEngine().calculate(entity, match_for("en-grid"))
        assert result.total_emission == pytest.approx(207.0)

    def test_no_unit_assumes_base(self):
        """A bare number is assumed to be in the base unit, with lower confidence."""
        entity = QueryEntity(name="apple", confidence=1.0, quantity=2)
        result = CalculationEngine().calculate(entity, match_for("fd-apple"))
        assert result.total_emission == pytest.approx(1.0)
        assert result.confidence == pytest.approx(0.7)
        assert result.notes == ["No unit given, assumed unit: kg"]

    def test_unconvertible_unit(self):
        """Incompatible units are used as-is with a note."""
        entity = QueryEntity(name="apple", confidence=1.0, quantity=5, unit="km")
        result = CalculationEngine().calculate(entity, match_for("fd-apple"))
        assert result.total_emission == pytest.approx(2.5)
        assert result.confidence == pytest.approx(0.8)
        assert result.notes == ["Could not convert km to kg, quantity used as-is"]

    def test_currency_is_advisory(self):
        """Spend-based factors convert currency with an advisory note."""
        entity = QueryEntity(name="truck purchase", quantity=100, unit="EUR")
        result = CalculationEngine().calculate(entity, match_for("tr-truck-acquisition"))
        assert result.total_emission == pytest.approx(48.6)
        assert "approximate" in result.notes[0]

    def test_factor_only(self):
        """No quantity means the factor is reported without a total."""
        entity = QueryEntity(name="apple", confidence=1.0)
        result = CalculationEngine().calculate(entity, match_for("fd-apple"))
        assert result.total_emission == 0
        assert result.formula == "Quantity needed"
        assert result.confidence == pytest.approx(0.8)
        assert result.notes == [
            "Emission factor for Apple is 0.5 kg/kg, please provide quantity for total emission calculation"
        ]


class TestQuantityHelpers:
    """Test weight and distance extraction."""

    def test_weight_prefers_quantity(self):
        """A weight quantity wins over details."""
        entity = QueryEntity(
            name="x", quantity=3, unit="t",
            scenario_details=TransportDetails(weight=5, weight_unit="t"),
        )
        assert weight_in(entity, "kg") == pytest.approx(3000)

    def test_weight_details_default_unit(self):
        """Details weight without a unit is taken as tonnes."""
        entity = QueryEntity(name="x", scenario_details=TransportDetails(weight=5))
        assert weight_in(entity, "tonne") == pytest.approx(5)

    def test_distance_from_details(self):
        """Details distance converts into the requested unit."""
        entity = QueryEntity(name="x", scenario_details=TransportDetails(distance=10, distance_unit="mile"))
        assert distance_in(entity, "km") == pytest.approx(16.09344)

    def test_no_distance(self):
        """A weight quantity is not a distance."""
        assert distance_in(QueryEntity(name="x", quantity=3, unit="t"), "km") is None
