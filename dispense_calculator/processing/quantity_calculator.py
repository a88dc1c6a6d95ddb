"""Dispense quantity calculation from a normalized SIG and days' supply."""
import math
from typing import Optional, Tuple

from ..extractors.unit_normalizer import normalize_unit, to_milliliters
from ..models import NormalizedSig, QuantityResult, LIQUID, INSULIN, INHALER


def _is_positive(value) -> bool:
    if value is None or isinstance(value, bool):
        return False
    try:
        return math.isfinite(value) and value > 0
    except TypeError:
        return False


def adjust_for_dosage_form(dose: float, dose_unit: str, dosage_form: Optional[str]) -> Tuple[float, str]:
    """Apply dosage-form specific unit handling before the quantity product.

    Args:
        dose: Dose per administration
        dose_unit: Dose unit as parsed
        dosage_form: 'liquid', 'insulin', 'inhaler' or None

    Returns:
        (dose, unit) after adjustment

    Note:
        Liquid doses in a unit with no ml factor are left as they are.
    """
    if dosage_form == INSULIN:
        return dose, 'unit'

    if dosage_form == INHALER:
        normalized = normalize_unit(dose_unit)
        if normalized in ('puff', 'spray'):
            return dose, normalized
        return dose, dose_unit

    if dosage_form == LIQUID:
        normalized = normalize_unit(dose_unit)
        if normalized in ('ml', 'l'):
            return dose, normalized
        converted = to_milliliters(dose, dose_unit)
        if converted is None:
            return dose, dose_unit
        return converted, 'ml'

    return dose, dose_unit


def calculate_quantity(sig: Optional[NormalizedSig], days_supply) -> Optional[QuantityResult]:
    """Calculate quantity = dose x frequency_per_day x days_supply.

    Args:
        sig: Normalized SIG (may be partial or None)
        days_supply: Number of days the dispense should last

    Returns:
        QuantityResult, or None when dose, unit or frequency is missing or
        any factor is not a finite positive number. The product is not rounded.
    """
    if sig is None:
        return None

    if sig.dose is None or not sig.dose_unit or sig.frequency_per_day is None:
        return None

    if not (_is_positive(sig.dose) and _is_positive(sig.frequency_per_day) and _is_positive(days_supply)):
        return None

    dose, unit = adjust_for_dosage_form(sig.dose, sig.dose_unit, sig.dosage_form)

    return QuantityResult(
        quantity_value=dose * sig.frequency_per_day * days_supply,
        quantity_unit=normalize_unit(unit),
    )
