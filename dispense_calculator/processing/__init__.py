"""
Quantity math, fill detection and NDC scoring.
"""

from .quantity_calculator import calculate_quantity, adjust_for_dosage_form
from .fill_detector import (
    QuantityComputation,
    detect_overfill_underfill,
    calculate_multi_pack,
    compute_quantity_with_warnings,
)
from .ndc_selector import (
    ScoreBreakdown,
    ScoredCandidate,
    compare_units,
    compare_strengths,
    calculate_package_match_score,
    score_ndc_candidate,
    select_optimal_ndc,
    rank_ndc_candidates,
)

__all__ = [
    'calculate_quantity',
    'adjust_for_dosage_form',
    'QuantityComputation',
    'detect_overfill_underfill',
    'calculate_multi_pack',
    'compute_quantity_with_warnings',
    'ScoreBreakdown',
    'ScoredCandidate',
    'compare_units',
    'compare_strengths',
    'calculate_package_match_score',
    'score_ndc_candidate',
    'select_optimal_ndc',
    'rank_ndc_candidates',
]
