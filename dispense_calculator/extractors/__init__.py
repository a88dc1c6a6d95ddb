"""
Text extractors: units, SIG instructions, package descriptions and NDC codes.
"""

from .unit_normalizer import (
    UNIT_ALIASES,
    UNIT_GROUPS,
    LIQUID_FACTORS_ML,
    normalize_unit,
    units_equivalent,
    is_volume_unit,
    to_milliliters,
)
from .sig_parser import (
    parse_sig,
    extract_dose_and_unit,
    extract_frequency_per_day,
    extract_route,
    detect_dosage_form,
    missing_sig_fields,
    is_sig_complete,
    get_partial_parse_warning,
)
from .package_parser import (
    parse_package_size,
    normalize_ndc,
    looks_like_ndc,
    is_active_ndc,
    extract_strength,
    extract_unit,
    candidates_from_fda_product,
)

__all__ = [
    'UNIT_ALIASES',
    'UNIT_GROUPS',
    'LIQUID_FACTORS_ML',
    'normalize_unit',
    'units_equivalent',
    'is_volume_unit',
    'to_milliliters',
    'parse_sig',
    'extract_dose_and_unit',
    'extract_frequency_per_day',
    'extract_route',
    'detect_dosage_form',
    'missing_sig_fields',
    'is_sig_complete',
    'get_partial_parse_warning',
    'parse_package_size',
    'normalize_ndc',
    'looks_like_ndc',
    'is_active_ndc',
    'extract_strength',
    'extract_unit',
    'candidates_from_fda_product',
]
