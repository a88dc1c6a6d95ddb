"""
Input Validator
===============

Checks calculator input before a pipeline run.

Rules:
- drug name or NDC: non-empty after trimming
- SIG: non-empty after trimming
- days' supply: integer in 1..365
"""

from typing import Any, Dict, List, Optional

from ..config.dispense_config import INPUT_CONFIG


class InvalidCalculationInput(ValueError):
    """Raised when calculator input fails validation."""

    def __init__(self, result: 'ValidationResult'):
        self.result = result
        super().__init__("; ".join(result.errors) or "invalid input")


class ValidationResult:
    """Container for validation results."""

    def __init__(self, name: str):
        self.name = name
        self.checks: List[Dict[str, Any]] = []
        self.passed = 0
        self.failed = 0

    def add_check(self, field: str, passed: bool, details: str = ""):
        self.checks.append({
            'field': field,
            'passed': passed,
            'details': details,
        })
        if passed:
            self.passed += 1
        else:
            self.failed += 1

    @property
    def ok(self) -> bool:
        return self.failed == 0

    @property
    def errors(self) -> List[str]:
        return [f"{c['field']}: {c['details']}" for c in self.checks if not c['passed']]

    def summary(self) -> str:
        status = "PASS" if self.ok else "FAIL"
        return f"{self.name}: {status} ({self.passed}/{self.passed + self.failed} checks)"

    def report(self) -> str:
        lines = [f"\n{'='*60}", f"{self.name}", "="*60]
        for check in self.checks:
            icon = "✓" if check['passed'] else "✗"
            lines.append(f"  {icon} {check['field']}")
            if check['details']:
                lines.append(f"      {check['details']}")
        lines.append(self.summary())
        return "\n".join(lines)

    def raise_if_invalid(self):
        if not self.ok:
            raise InvalidCalculationInput(self)


def _is_blank(value: Optional[str]) -> bool:
    return not isinstance(value, str) or not value.strip()


def validate_calculation_input(drug_or_ndc: Optional[str], sig: Optional[str], days_supply: Any) -> ValidationResult:
    """Validate one calculator request. Never raises; see ValidationResult.raise_if_invalid."""
    result = ValidationResult("Calculation input")

    result.add_check(
        'drug_or_ndc',
        not _is_blank(drug_or_ndc),
        "" if not _is_blank(drug_or_ndc) else "Drug name or NDC is required",
    )
    result.add_check(
        'sig',
        not _is_blank(sig),
        "" if not _is_blank(sig) else "SIG is required",
    )

    lo, hi = INPUT_CONFIG.min_days_supply, INPUT_CONFIG.max_days_supply
    is_int = isinstance(days_supply, int) and not isinstance(days_supply, bool)
    in_range = is_int and lo <= days_supply <= hi
    if not is_int:
        details = "Days supply must be a whole number"
    elif not in_range:
        details = f"Days supply must be between {lo} and {hi}"
    else:
        details = ""
    result.add_check('days_supply', in_range, details)

    return result
