"""
Input validation for calculator requests.
"""

from .input_validator import (
    ValidationResult,
    InvalidCalculationInput,
    validate_calculation_input,
)

__all__ = [
    'ValidationResult',
    'InvalidCalculationInput',
    'validate_calculation_input',
]
