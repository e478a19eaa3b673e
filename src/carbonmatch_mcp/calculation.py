"""Emission calculation: apply a matched factor to an entity's quantities.

The strategy is chosen by the shape of the factor's unit expression:

- tonne_km: cargo weight x distance x factor ("kg/tonne-km")
- distance: distance (x vehicle/passenger count) x factor ("kg/km", "kg/passenger-km")
- compound_usage: count x usage metric x factor ("kg/room-night", "kg/device-hour")
- count: quantity x factor ("kg/number", "kg/item")
- direct: quantity converted into the factor's base unit x factor ("kg/kg", "kg/kWh")
- anything else: best-effort conversion with reduced confidence

Missing information never raises. It yields a zero-emission "factor only" result
whose notes say what to provide.
"""

import logging

from .models import CalculationResult, MatchResult, QueryEntity, TransportDetails, UsageDetails
from .units import (
    SHAPE_COMPOUND_USAGE,
    SHAPE_COUNT,
    SHAPE_DISTANCE,
    SHAPE_TONNE_KM,
    FactorUnit,
    convert,
    get_dimension,
    is_weight_unit,
    parse_factor_unit,
)

logger = logging.getLogger(__name__)

# Confidence multipliers applied to the entity confidence
CONFIDENCE_TONNE_KM = 0.95
CONFIDENCE_DIRECT = 0.9
CONFIDENCE_DISTANCE = 0.9
CONFIDENCE_COUNT = 0.9
CONFIDENCE_COMPOUND = 0.85
CONFIDENCE_FACTOR_ONLY = 0.8
CONFIDENCE_UNCONVERTED = 0.8
CONFIDENCE_ASSUMED_UNIT = 0.7
CONFIDENCE_MISSING_TRANSPORT = 0.5

TRANSPORT_NOTE = "Transport calculation: load weight × transport distance × emission factor"


def _fmt(value: float) -> str:
    return f"{value:g}"


def _record_unit(match: MatchResult) -> str:
    return match.record.unit or "kg"


# =============================================================================
# QUANTITY EXTRACTION
# =============================================================================

def weight_in(entity: QueryEntity, unit: str) -> float | None:
    """Cargo weight in unit: the entity quantity if it is a weight, else TransportDetails.weight."""
    if entity.quantity is not None and is_weight_unit(entity.unit):
        conversion = convert(entity.quantity, entity.unit, unit)
        if conversion.converted:
            return conversion.value
    details = entity.scenario_details
    if isinstance(details, TransportDetails) and details.weight is not None:
        conversion = convert(details.weight, details.weight_unit or "tonne", unit)
        if conversion.converted:
            return conversion.value
    return None


def distance_in(entity: QueryEntity, unit: str) -> float | None:
    """Distance in unit from scenario details, else from a distance quantity."""
    details = entity.scenario_details
    if isinstance(details, (TransportDetails, UsageDetails)) and details.distance is not None:
        conversion = convert(details.distance, details.distance_unit or "km", unit)
        if conversion.converted:
            return conversion.value
    if entity.quantity is not None and get_dimension(entity.unit) == "distance":
        conversion = convert(entity.quantity, entity.unit, unit)
        if conversion.converted:
            return conversion.value
    return None


def subject_count(entity: QueryEntity) -> int | None:
    """Number of vehicles/devices/passengers when stated."""
    details = entity.scenario_details
    if isinstance(details, TransportDetails) and details.vehicle_count:
        return details.vehicle_count
    if isinstance(details, UsageDetails) and details.device_count:
        return details.device_count
    return None


def usage_in(entity: QueryEntity, unit: str, dimension: str) -> float | None:
    """Usage metric (distance, time or energy) in unit."""
    if dimension == "distance":
        return distance_in(entity, unit)
    details = entity.scenario_details
    if isinstance(details, UsageDetails):
        if dimension == "time" and details.operation_time is not None:
            conversion = convert(details.operation_time, details.time_unit or "h", unit)
            if conversion.converted:
                return conversion.value
        if dimension == "energy" and details.energy_consumption is not None:
            conversion = convert(details.energy_consumption, details.energy_unit or "kWh", unit)
            if conversion.converted:
                return conversion.value
    if entity.quantity is not None and get_dimension(entity.unit) == dimension:
        conversion = convert(entity.quantity, entity.unit, unit)
        if conversion.converted:
            return conversion.value
    return None


class CalculationEngine:
    """Computes CalculationResults for matched entities."""

    def calculate(self, entity: QueryEntity, match: MatchResult, language: str = "en") -> CalculationResult:
        """Apply match's factor to entity.

        Args:
            entity: Query entity with optional quantity, unit and scenario details
            match: Ranked catalog match whose record supplies the factor
            language: Language tag (notes and formulas are rendered in English)

        Returns:
            CalculationResult; total_emission == 0 when information is missing
        """
        factor_unit = parse_factor_unit(match.record.unit)
        shape = factor_unit.shape
        logger.debug(f"Calculating '{entity.name}' with '{match.record.title}' ({match.record.unit}, shape={shape})")

        if shape == SHAPE_TONNE_KM:
            return self._tonne_km(entity, match, factor_unit)
        if shape == SHAPE_DISTANCE:
            return self._distance(entity, match, factor_unit)
        if shape == SHAPE_COMPOUND_USAGE:
            return self._compound_usage(entity, match, factor_unit)
        if entity.quantity is None:
            return self._factor_only(entity, match, factor_unit)
        if shape == SHAPE_COUNT:
            return self._count(entity, match, factor_unit)
        return self._direct_or_fallback(entity, match, factor_unit)

    def _result(
        self,
        entity: QueryEntity,
        match: MatchResult,
        factor_unit: FactorUnit,
        total: float,
        quantity: float,
        unit: str,
        formula: str,
        multiplier: float,
        notes: list[str],
    ) -> CalculationResult:
        return CalculationResult(
            entity=entity,
            record=match.record,
            total_emission=total * factor_unit.mass_scale_to_kg if total else 0.0,
            quantity_used=quantity,
            unit_used=unit,
            factor=match.record.factor,
            formula=formula,
            confidence=entity.confidence * multiplier,
            notes=notes,
        )

    def _factor_only(
        self,
        entity: QueryEntity,
        match: MatchResult,
        factor_unit: FactorUnit,
        extra_notes: list[str] | None = None,
    ) -> CalculationResult:
        record = match.record
        notes = [
            f"Emission factor for {record.title} is {_fmt(record.factor)} {_record_unit(match)}, "
            f"please provide quantity for total emission calculation"
        ]
        notes += extra_notes or []
        return self._result(entity, match, factor_unit, 0.0, 0.0, factor_unit.base_unit, "Quantity needed",
                            CONFIDENCE_FACTOR_ONLY, notes)

    def _tonne_km(self, entity: QueryEntity, match: MatchResult, factor_unit: FactorUnit) -> CalculationResult:
        record = match.record
        weight_part = next(p for p in factor_unit.denominator if p.dimension == "weight")
        distance_part = next(p for p in factor_unit.denominator if p.dimension == "distance")
        weight = weight_in(entity, weight_part.unit)
        distance = distance_in(entity, distance_part.unit)

        if weight is None or distance is None:
            notes = []
            if weight is None:
                notes.append("Cargo weight is required for tonne-km factors, please provide the load weight")
            if distance is None:
                notes.append("Transport distance is required for tonne-km factors, please provide the distance")
            return self._result(
                entity, match, factor_unit, 0.0, 0.0, record.unit,
                f"weight(tonnes) × distance(km) × {_fmt(record.factor)} {record.unit}",
                CONFIDENCE_MISSING_TRANSPORT, notes,
            )

        total = weight * distance * record.factor / (weight_part.multiplier * distance_part.multiplier)
        total_kg = total * factor_unit.mass_scale_to_kg
        formula = (f"{_fmt(weight)}t × {_fmt(distance)}km × {_fmt(record.factor)} {record.unit} "
                   f"= {total_kg:.3f}kg CO2")
        return self._result(entity, match, factor_unit, total, weight * distance, "tonne-km", formula,
                            CONFIDENCE_TONNE_KM, [TRANSPORT_NOTE])

    def _distance(self, entity: QueryEntity, match: MatchResult, factor_unit: FactorUnit) -> CalculationResult:
        record = match.record
        part = factor_unit.usage_part
        distance = distance_in(entity, part.unit)
        if distance is None:
            return self._factor_only(entity, match, factor_unit,
                                     ["Distance is required for this factor, please provide the distance travelled"])

        count = subject_count(entity)
        usage = distance / part.multiplier
        total = usage * record.factor * (count or 1)
        count_text = f" × {count}" if count else ""
        formula = (f"{_fmt(distance)}{part.unit}{count_text} × {_fmt(record.factor)} {record.unit} "
                   f"= {total * factor_unit.mass_scale_to_kg:.3f}kg CO2")
        notes = []
        if count:
            notes.append(f"Multiplied by {count} vehicles/passengers")
        return self._result(entity, match, factor_unit, total, distance, part.unit, formula,
                            CONFIDENCE_DISTANCE, notes)

    def _compound_usage(self, entity: QueryEntity, match: MatchResult, factor_unit: FactorUnit) -> CalculationResult:
        record = match.record
        part = factor_unit.usage_part
        usage = usage_in(entity, part.unit, part.dimension)
        if usage is None:
            return self._factor_only(entity, match, factor_unit,
                                     [f"Usage in {part.unit} is required for this factor"])

        count = subject_count(entity) or 1
        total = count * usage / part.multiplier * record.factor
        formula = (f"{count} × {_fmt(usage)}{part.unit} × {_fmt(record.factor)} {record.unit} "
                   f"= {total * factor_unit.mass_scale_to_kg:.3f}kg CO2")
        return self._result(entity, match, factor_unit, total, count * usage, part.unit, formula,
                            CONFIDENCE_COMPOUND, [])

    def _count(self, entity: QueryEntity, match: MatchResult, factor_unit: FactorUnit) -> CalculationResult:
        record = match.record
        base = factor_unit.base_unit
        quantity = entity.quantity
        total = quantity * record.factor
        formula = (f"{_fmt(quantity)} {base} × {_fmt(record.factor)} {record.unit} "
                   f"= {total * factor_unit.mass_scale_to_kg:.3f}kg CO2")
        return self._result(entity, match, factor_unit, total, quantity, base, formula, CONFIDENCE_COUNT, [])

    def _direct_or_fallback(self, entity: QueryEntity, match: MatchResult, factor_unit: FactorUnit) -> CalculationResult:
        record = match.record
        base = factor_unit.base_unit
        divisor = factor_unit.denominator[0].multiplier if factor_unit.denominator else 1.0
        quantity = entity.quantity
        notes: list[str] = []

        if not entity.unit:
            multiplier = CONFIDENCE_ASSUMED_UNIT
            used = quantity
            notes.append(f"No unit given, assumed unit: {base}")
        else:
            conversion = convert(quantity, entity.unit, base)
            if conversion.converted:
                used = conversion.value
                multiplier = CONFIDENCE_DIRECT
                if conversion.advisory:
                    notes.append(conversion.note or "Currency converted at an approximate static rate")
                elif conversion.value != quantity:
                    notes.append(f"Converted {_fmt(quantity)} {entity.unit} to {_fmt(used)} {base}")
            else:
                used = quantity
                multiplier = CONFIDENCE_UNCONVERTED
                notes.append(f"Could not convert {entity.unit} to {base}, quantity used as-is")
                logger.warning(f"Unit mismatch for '{entity.name}': {entity.unit} vs {record.unit}")

        total = used / divisor * record.factor
        formula = (f"{_fmt(used)} {base} × {_fmt(record.factor)} {record.unit} "
                   f"= {total * factor_unit.mass_scale_to_kg:.3f}kg CO2")
        return self._result(entity, match, factor_unit, total, used, base, formula, multiplier, notes)
