"""
Dispense Calculator
===================

Computes dispense quantities from free-text prescription instructions (SIG)
and matches them to FDA NDC packages.

Main pieces:
- extractors: unit normalization, SIG parsing, package descriptions, NDC codes
- processing: quantity math, overfill/underfill and multi-pack, NDC scoring
- services: RxNav, openFDA and optional OpenAI collaborators
- pipeline: resumable stage-by-stage calculation
"""

from .models import (
    NormalizedSig,
    NdcCandidate,
    PackageSize,
    QuantityResult,
    MultiPackResult,
    CalculationWarning,
    WarningType,
    Severity,
    dedupe_warnings,
)
from .extractors import normalize_unit, parse_sig, parse_package_size, is_sig_complete, get_partial_parse_warning
from .processing import (
    calculate_quantity,
    detect_overfill_underfill,
    calculate_multi_pack,
    compute_quantity_with_warnings,
    score_ndc_candidate,
    select_optimal_ndc,
    rank_ndc_candidates,
)
from .pipeline import Stage, CalculationRecord, DispensePipeline, next_missing_stage

__version__ = "0.1.0"

__all__ = [
    'NormalizedSig',
    'NdcCandidate',
    'PackageSize',
    'QuantityResult',
    'MultiPackResult',
    'CalculationWarning',
    'WarningType',
    'Severity',
    'dedupe_warnings',
    'normalize_unit',
    'parse_sig',
    'parse_package_size',
    'is_sig_complete',
    'get_partial_parse_warning',
    'calculate_quantity',
    'detect_overfill_underfill',
    'calculate_multi_pack',
    'compute_quantity_with_warnings',
    'score_ndc_candidate',
    'select_optimal_ndc',
    'rank_ndc_candidates',
    'Stage',
    'CalculationRecord',
    'DispensePipeline',
    'next_missing_stage',
]
