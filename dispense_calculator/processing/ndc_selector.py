"""
NDC Selector
============

Deterministic scoring and ranking of FDA package candidates against a
normalized prescription.

Four sub-scores are combined with fixed weights:

- active_status   1 if the package is active, else 0
- package_match   how well the package size fits the computed quantity
- strength_match  prescribed vs package strength
- unit_match      dose unit vs package unit

When there is nothing to compare a sub-score falls back to a neutral 0.5,
so missing data never scores worse than a partial mismatch.
"""

import re
from dataclasses import dataclass
from functools import cmp_to_key
from typing import Dict, List, Optional, Sequence

from .quantity_calculator import calculate_quantity
from ..config.dispense_config import SCORING_CONFIG
from ..extractors.package_parser import parse_package_size
from ..extractors.unit_normalizer import units_equivalent
from ..models import NdcCandidate, NormalizedSig


# =============================================================================
# DATA CLASSES
# =============================================================================

@dataclass(frozen=True)
class ScoreBreakdown:
    active_status: float
    package_match: float
    strength_match: float
    unit_match: float

    def contributions(self, weights: Optional[Dict[str, float]] = None) -> Dict[str, float]:
        """Weighted contribution of each sub-score to the total."""
        weights = weights or SCORING_CONFIG.weights
        return {name: getattr(self, name) * weight for name, weight in weights.items()}

    def to_dict(self) -> Dict[str, float]:
        return {
            'active_status': self.active_status,
            'package_match': self.package_match,
            'strength_match': self.strength_match,
            'unit_match': self.unit_match,
        }


@dataclass(frozen=True)
class ScoredCandidate:
    candidate: NdcCandidate
    score: float
    breakdown: ScoreBreakdown


# =============================================================================
# SUB-SCORES
# =============================================================================

STRENGTH_VALUE_RE = re.compile(r'(\d+(?:\.\d+)?)(\w+)?')
WHITESPACE_RE = re.compile(r'\s')


def compare_units(unit1: Optional[str], unit2: Optional[str]) -> float:
    """1.0 if the units are the same or synonyms, else 0.0 (also when either is missing)."""
    return 1.0 if units_equivalent(unit1, unit2) else 0.0


def compare_strengths(strength1: Optional[str], strength2: Optional[str]) -> float:
    """
    Compare two strength strings.

    1.0 for identical strings once spaces are stripped and case folded, 0.8 when
    the leading numbers agree and the units are equivalent ("10mg" vs "10 MG/1"),
    otherwise 0.0.
    """
    if not strength1 or not strength2:
        return 0.0

    norm1 = WHITESPACE_RE.sub('', strength1).lower()
    norm2 = WHITESPACE_RE.sub('', strength2).lower()
    if norm1 == norm2:
        return 1.0

    match1 = STRENGTH_VALUE_RE.search(norm1)
    match2 = STRENGTH_VALUE_RE.search(norm2)
    if match1 and match2:
        value1 = float(match1.group(1))
        value2 = float(match2.group(1))
        close = abs(value1 - value2) < SCORING_CONFIG.strength_tolerance
        if close and compare_units(match1.group(2), match2.group(2)) > 0.5:
            return SCORING_CONFIG.strength_close_score

    return 0.0


def calculate_package_match_score(quantity: Optional[float], package_size: Optional[float]) -> float:
    """Score how well a package size fits the computed quantity.

    Args:
        quantity: Computed dispense quantity
        package_size: Units in one package

    Returns:
        Score in [0.2, 1.0], or the neutral score when either side is
        missing. A slight overfill scores better than a large shortfall.
    """
    if not quantity or not package_size or package_size <= 0:
        return SCORING_CONFIG.neutral_score

    ratio = quantity / package_size

    if abs(ratio - 1) < 0.01:
        return 1.0
    if abs(ratio - 1) < 0.05:
        return 0.95
    if 1 <= ratio <= 1.2:
        return 0.9 - (ratio - 1) * 0.5
    if 0.8 <= ratio < 1:
        return 0.85 - (1 - ratio) * 0.5
    if 1.2 < ratio <= 2:
        return 0.7 - (ratio - 1.2) * 0.2
    if ratio > 2:
        return max(0.3, 0.5 - (ratio - 2) * 0.1)
    return max(0.2, 0.4 - (0.8 - ratio) * 0.5)


def _paired_score(left: Optional[str], right: Optional[str], compare) -> float:
    # Both missing is neutral; only one missing scores zero
    if not left and not right:
        return SCORING_CONFIG.neutral_score
    if not left or not right:
        return 0.0
    return compare(left, right)


def _package_match(candidate: NdcCandidate, sig: Optional[NormalizedSig], days_supply) -> float:
    if sig is None or not days_supply:
        return SCORING_CONFIG.neutral_score

    quantity = calculate_quantity(sig, days_supply)
    if quantity is None:
        return SCORING_CONFIG.neutral_score

    package_size = parse_package_size(candidate.package_description)
    if package_size is None:
        return SCORING_CONFIG.neutral_score

    return calculate_package_match_score(quantity.quantity_value, package_size.package_size)


# =============================================================================
# SCORING
# =============================================================================

def score_ndc_candidate(
    candidate: NdcCandidate,
    sig: Optional[NormalizedSig],
    days_supply=None,
) -> ScoredCandidate:
    """Score one candidate; the total is the weighted sum of the breakdown."""
    sig_strength = sig.strength if sig else None
    sig_unit = sig.dose_unit if sig else None

    breakdown = ScoreBreakdown(
        active_status=1.0 if candidate.active else 0.0,
        package_match=_package_match(candidate, sig, days_supply),
        strength_match=_paired_score(sig_strength, candidate.strength, compare_strengths),
        unit_match=_paired_score(sig_unit, candidate.unit, compare_units),
    )
    score = sum(breakdown.contributions().values())

    return ScoredCandidate(candidate=candidate, score=score, breakdown=breakdown)


def _compare_scored(a: ScoredCandidate, b: ScoredCandidate, use_package_match: bool) -> int:
    if abs(a.score - b.score) > SCORING_CONFIG.tie_epsilon:
        return -1 if a.score > b.score else 1

    if a.candidate.active != b.candidate.active:
        return -1 if a.candidate.active else 1

    if use_package_match:
        diff = b.breakdown.package_match - a.breakdown.package_match
        if diff:
            return -1 if diff < 0 else 1

    return 0


def _sorted_scores(candidates, sig, days_supply, use_package_match: bool) -> List[ScoredCandidate]:
    scored = [score_ndc_candidate(c, sig, days_supply) for c in candidates]
    # sorted() is stable, so full ties keep their input order
    return sorted(scored, key=cmp_to_key(lambda a, b: _compare_scored(a, b, use_package_match)))


def select_optimal_ndc(
    candidates: Optional[Sequence[NdcCandidate]],
    sig: Optional[NormalizedSig],
    days_supply=None,
) -> Optional[NdcCandidate]:
    """
    Pick the best candidate.

    Ordered by total score, then active status, then package match. The
    returned candidate is a copy of the input record with match_score cleared.
    """
    if not candidates:
        return None
    best = _sorted_scores(candidates, sig, days_supply, use_package_match=True)[0].candidate
    return best.with_score(None)


def rank_ndc_candidates(
    candidates: Optional[Sequence[NdcCandidate]],
    sig: Optional[NormalizedSig],
    days_supply=None,
) -> List[NdcCandidate]:
    """
    All candidates best first, each a copy carrying its match_score.

    Ties are broken by active status only. The input list and its records
    are left untouched.
    """
    if not candidates:
        return []
    return [
        scored.candidate.with_score(scored.score)
        for scored in _sorted_scores(candidates, sig, days_supply, use_package_match=False)
    ]
