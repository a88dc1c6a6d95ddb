"""
Dispense Calculator Data Models
===============================

Records shared by the parser, calculator, scorer and pipeline.

Absent values are always None, never 0 or "". A partially parsed SIG is a
NormalizedSig with some fields left as None.
"""

from dataclasses import dataclass, fields, replace
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple


# Special dosage forms that change the quantity math
LIQUID = 'liquid'
INSULIN = 'insulin'
INHALER = 'inhaler'
DOSAGE_FORMS = (LIQUID, INSULIN, INHALER)


class WarningType(str, Enum):
    """Closed set of warning types."""

    INACTIVE_NDC = 'inactive_ndc'
    OVERFILL = 'overfill'
    UNDERFILL = 'underfill'
    STRENGTH_MISMATCH = 'strength_mismatch'
    UNIT_MISMATCH = 'unit_mismatch'
    MISSING_NDC = 'missing_ndc'
    INVALID_SIG = 'invalid_sig'
    UNRESOLVED_RXCUI = 'unresolved_rxcui'
    OTHER = 'other'


class Severity(str, Enum):
    ERROR = 'error'
    WARNING = 'warning'
    INFO = 'info'


def _drop_none(values: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in values.items() if v is not None}


def _known_fields(cls, data: Dict[str, Any]) -> Dict[str, Any]:
    names = {f.name for f in fields(cls)}
    return {k: v for k, v in data.items() if k in names}


# =============================================================================
# PRESCRIPTION
# =============================================================================

@dataclass
class NormalizedSig:
    """Parsed (and possibly resolver-enriched) prescription instruction."""

    rxcui: Optional[str] = None
    name: Optional[str] = None
    strength: Optional[str] = None
    form: Optional[str] = None
    dose: Optional[float] = None
    dose_unit: Optional[str] = None
    frequency_per_day: Optional[float] = None
    route: Optional[str] = None
    dosage_form: Optional[str] = None

    def is_empty(self) -> bool:
        return all(getattr(self, f.name) is None for f in fields(self))

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none({f.name: getattr(self, f.name) for f in fields(self)})

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'NormalizedSig':
        return cls(**_known_fields(cls, data or {}))


# =============================================================================
# NDC PACKAGES
# =============================================================================

@dataclass
class NdcCandidate:
    """One FDA package record."""

    ndc: str
    product_name: str
    labeler_name: Optional[str] = None
    package_description: Optional[str] = None
    strength: Optional[str] = None
    unit: Optional[str] = None
    active: bool = True
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    rx_cui: Optional[str] = None
    match_score: Optional[float] = None

    def with_score(self, score: Optional[float]) -> 'NdcCandidate':
        """Copy of this candidate annotated with a match score."""
        return replace(self, match_score=score)

    def to_dict(self) -> Dict[str, Any]:
        values = _drop_none({f.name: getattr(self, f.name) for f in fields(self)})
        values['active'] = self.active
        return values

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'NdcCandidate':
        return cls(**_known_fields(cls, data))


@dataclass(frozen=True)
class PackageSize:
    package_size: int
    package_unit: str


@dataclass(frozen=True)
class QuantityResult:
    quantity_value: float
    quantity_unit: str


@dataclass(frozen=True)
class MultiPackResult:
    """Full packages that fit in a quantity.

    is_multi_pack is True whenever at least one complete package applies,
    including exactly one.
    """

    package_count: int
    remainder: float
    is_multi_pack: bool


# =============================================================================
# WARNINGS
# =============================================================================

@dataclass
class CalculationWarning:
    """Non-fatal issue found while computing a dispense quantity."""

    type: WarningType
    message: str
    severity: Severity = Severity.WARNING
    field: Optional[str] = None
    details: Optional[Dict[str, Any]] = None

    @property
    def key(self) -> Tuple[str, Optional[str]]:
        return (WarningType(self.type).value, self.field)

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none({
            'type': WarningType(self.type).value,
            'severity': Severity(self.severity).value,
            'message': self.message,
            'field': self.field,
            'details': self.details,
        })

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CalculationWarning':
        return cls(
            type=WarningType(data['type']),
            message=data['message'],
            severity=Severity(data.get('severity', 'warning')),
            field=data.get('field'),
            details=data.get('details'),
        )


def dedupe_warnings(warnings: Iterable[CalculationWarning]) -> List[CalculationWarning]:
    """Keep the first warning for each (type, field) pair, preserving order."""
    seen = set()
    unique = []
    for warning in warnings:
        if warning.key in seen:
            continue
        seen.add(warning.key)
        unique.append(warning)
    return unique
