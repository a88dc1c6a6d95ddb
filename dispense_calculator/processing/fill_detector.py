"""
Overfill / Underfill Detection
==============================

Compares a computed dispense quantity with the selected package size and
works out how many full packages it takes.
"""

from dataclasses import dataclass, field
from typing import List, Optional

from .quantity_calculator import calculate_quantity
from ..config.dispense_config import FILL_CONFIG
from ..extractors.package_parser import parse_package_size
from ..extractors.unit_normalizer import normalize_unit
from ..models import (
    CalculationWarning,
    MultiPackResult,
    NdcCandidate,
    NormalizedSig,
    PackageSize,
    QuantityResult,
    Severity,
    WarningType,
)


def _same_unit(quantity_unit: str, package_size: PackageSize) -> bool:
    return normalize_unit(quantity_unit) == normalize_unit(package_size.package_unit)


def detect_overfill_underfill(
    quantity_value: float,
    quantity_unit: str,
    package_size: Optional[PackageSize],
    tolerance: float = FILL_CONFIG.tolerance,
) -> List[CalculationWarning]:
    """
    Flag quantities more than `tolerance` above or below the package size.

    Both bounds are exclusive: a quantity exactly at +/-5% is not flagged.
    Mismatched units are not compared here.
    """
    if package_size is None or not _same_unit(quantity_unit, package_size):
        return []

    package_quantity = package_size.package_size
    warnings = []

    if quantity_value > package_quantity * (1 + tolerance):
        excess = quantity_value - package_quantity
        excess_percent = round(excess / package_quantity * 100, 1)
        warnings.append(CalculationWarning(
            type=WarningType.OVERFILL,
            severity=Severity.WARNING,
            message=(
                f"Calculated quantity ({quantity_value:.1f} {quantity_unit}) exceeds package size "
                f"({package_quantity} {package_size.package_unit}) by {excess_percent:.1f}%. "
                f"Consider using multiple packages or adjusting days supply."
            ),
            field='quantity',
            details={
                'calculatedQuantity': quantity_value,
                'packageQuantity': package_quantity,
                'excess': excess,
                'excessPercent': excess_percent,
            },
        ))

    if quantity_value < package_quantity * (1 - tolerance):
        shortage = package_quantity - quantity_value
        shortage_percent = round(shortage / package_quantity * 100, 1)
        warnings.append(CalculationWarning(
            type=WarningType.UNDERFILL,
            severity=Severity.WARNING,
            message=(
                f"Calculated quantity ({quantity_value:.1f} {quantity_unit}) is {shortage_percent:.1f}% "
                f"less than package size ({package_quantity} {package_size.package_unit}). "
                f"This may result in waste."
            ),
            field='quantity',
            details={
                'calculatedQuantity': quantity_value,
                'packageQuantity': package_quantity,
                'shortage': shortage,
                'shortagePercent': shortage_percent,
            },
        ))

    return warnings


def calculate_multi_pack(
    quantity_value: float,
    quantity_unit: str,
    package_size: Optional[PackageSize],
) -> Optional[MultiPackResult]:
    """Full packages and remainder; None on unit mismatch or a non-positive package size."""
    if package_size is None or not _same_unit(quantity_unit, package_size):
        return None

    size = package_size.package_size
    if size <= 0:
        return None

    package_count = int(quantity_value // size)
    return MultiPackResult(
        package_count=package_count,
        remainder=quantity_value % size,
        is_multi_pack=package_count >= 1,
    )


@dataclass
class QuantityComputation:
    """Quantity, package comparison and the warnings they produced."""

    quantity: Optional[QuantityResult] = None
    package_size: Optional[PackageSize] = None
    multi_pack: Optional[MultiPackResult] = None
    warnings: List[CalculationWarning] = field(default_factory=list)


def _multi_pack_warning(
    multi_pack: MultiPackResult,
    package_size: PackageSize,
    quantity: QuantityResult,
) -> CalculationWarning:
    count = multi_pack.package_count
    message = (
        f"Multiple packages required: {count} package{'s' if count > 1 else ''} of "
        f"{package_size.package_size} {package_size.package_unit}"
    )
    if multi_pack.remainder > 0:
        message += f" plus {multi_pack.remainder:.1f} {quantity.quantity_unit}"

    return CalculationWarning(
        type=WarningType.OTHER,
        severity=Severity.INFO,
        message=f"{message}.",
        field='quantity',
        details={
            'packageCount': count,
            'remainder': multi_pack.remainder,
            'totalQuantity': quantity.quantity_value,
            'packageSize': package_size.package_size,
        },
    )


def compute_quantity_with_warnings(
    sig: Optional[NormalizedSig],
    days_supply,
    selected_ndc: Optional[NdcCandidate],
) -> QuantityComputation:
    """Run quantity calculation, package parsing and fill detection together."""
    quantity = calculate_quantity(sig, days_supply)
    package_size = parse_package_size(selected_ndc.package_description) if selected_ndc else None

    result = QuantityComputation(quantity=quantity, package_size=package_size)
    if quantity is None or package_size is None:
        return result

    result.multi_pack = calculate_multi_pack(quantity.quantity_value, quantity.quantity_unit, package_size)
    result.warnings.extend(
        detect_overfill_underfill(quantity.quantity_value, quantity.quantity_unit, package_size)
    )

    if result.multi_pack is not None and result.multi_pack.package_count > 1:
        result.warnings.append(_multi_pack_warning(result.multi_pack, package_size, quantity))

    return result
