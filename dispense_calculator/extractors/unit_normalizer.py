"""
Unit Normalizer
===============

Maps raw unit tokens ("tabs", "TAB", "mL") to canonical singular units.
Tables come from config/sig_patterns.yaml and are exposed read-only.
"""

from types import MappingProxyType
from typing import Mapping, Optional, Tuple

from ..config.dispense_config import load_sig_patterns


def _build_tables():
    patterns = load_sig_patterns()
    aliases = MappingProxyType({
        str(raw).lower().strip(): str(canonical)
        for raw, canonical in patterns['unit_aliases'].items()
    })
    groups = tuple(
        frozenset(str(v).lower() for v in variants)
        for variants in patterns['unit_groups'].values()
    )
    factors = MappingProxyType({
        str(unit): float(factor)
        for unit, factor in patterns['liquid_factors_ml'].items()
    })
    return aliases, groups, factors


UNIT_ALIASES: Mapping[str, str]
UNIT_GROUPS: Tuple[frozenset, ...]
LIQUID_FACTORS_ML: Mapping[str, float]
UNIT_ALIASES, UNIT_GROUPS, LIQUID_FACTORS_ML = _build_tables()

VOLUME_UNITS = frozenset(LIQUID_FACTORS_ML)


def normalize_unit(unit: str) -> str:
    """Normalize a unit token; unknown tokens come back lower-cased and trimmed."""
    normalized = unit.lower().strip()
    return UNIT_ALIASES.get(normalized, normalized)


def units_equivalent(unit1: Optional[str], unit2: Optional[str]) -> bool:
    """True if two units normalize the same or share a synonym group."""
    if not unit1 or not unit2:
        return False

    norm1 = unit1.lower().strip()
    norm2 = unit2.lower().strip()
    if norm1 == norm2 or normalize_unit(norm1) == normalize_unit(norm2):
        return True

    return any(norm1 in group and norm2 in group for group in UNIT_GROUPS)


def is_volume_unit(unit: Optional[str]) -> bool:
    return bool(unit) and normalize_unit(unit) in VOLUME_UNITS


def to_milliliters(value: float, unit: str) -> Optional[float]:
    """Convert a liquid volume to ml, or None if the unit is not a volume."""
    factor = LIQUID_FACTORS_ML.get(normalize_unit(unit))
    if factor is None:
        return None
    return value * factor
