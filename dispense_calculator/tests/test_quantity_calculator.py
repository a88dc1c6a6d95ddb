"""Tests for quantity calculation."""

import pytest
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent.parent))


class TestCalculateQuantity:
    """Tests for calculate_quantity."""

    def test_simple_tablet(self):
        """1 tablet once daily for 30 days is 30 tablets."""
        from dispense_calculator.extractors.sig_parser import parse_sig
        from dispense_calculator.processing.quantity_calculator import calculate_quantity

        result = calculate_quantity(parse_sig("Take 1 tablet by mouth once daily"), 30)

        assert result.quantity_value == 30
        assert result.quantity_unit == "tablet"

    def test_bid_ninety_days(self):
        from dispense_calculator.extractors.sig_parser import parse_sig
        from dispense_calculator.processing.quantity_calculator import calculate_quantity

        result = calculate_quantity(parse_sig("Take 2 tablets by mouth twice daily"), 90)

        assert result.quantity_value == 360
        assert result.quantity_unit == "tablet"

    def test_liquid_teaspoon_to_ml(self):
        """1 tsp twice daily for 10 days is 100 ml."""
        from dispense_calculator.extractors.sig_parser import parse_sig
        from dispense_calculator.processing.quantity_calculator import calculate_quantity

        result = calculate_quantity(parse_sig("Take 1 teaspoon by mouth twice daily"), 10)

        assert result.quantity_value == pytest.approx(100)
        assert result.quantity_unit == "ml"

    def test_liquid_tablespoon(self):
        from dispense_calculator.models import NormalizedSig, LIQUID
        from dispense_calculator.processing.quantity_calculator import calculate_quantity

        sig = NormalizedSig(dose=1, dose_unit="tbsp", frequency_per_day=3, dosage_form=LIQUID)
        result = calculate_quantity(sig, 7)

        assert result.quantity_value == pytest.approx(315)
        assert result.quantity_unit == "ml"

    def test_liquid_already_ml(self):
        from dispense_calculator.models import NormalizedSig, LIQUID
        from dispense_calculator.processing.quantity_calculator import calculate_quantity

        sig = NormalizedSig(dose=5, dose_unit="mL", frequency_per_day=2, dosage_form=LIQUID)
        result = calculate_quantity(sig, 10)

        assert result.quantity_value == 100
        assert result.quantity_unit == "ml"

    def test_insulin_forces_unit(self):
        from dispense_calculator.models import NormalizedSig, INSULIN
        from dispense_calculator.processing.quantity_calculator import calculate_quantity

        sig = NormalizedSig(dose=10, dose_unit="iu", frequency_per_day=2, dosage_form=INSULIN)
        result = calculate_quantity(sig, 30)

        assert result.quantity_value == 600
        assert result.quantity_unit == "unit"

    def test_inhaler_puffs(self):
        from dispense_calculator.extractors.sig_parser import parse_sig
        from dispense_calculator.processing.quantity_calculator import calculate_quantity

        result = calculate_quantity(parse_sig("Inhale 2 puffs every 6 hours"), 30)

        assert result.quantity_value == 240
        assert result.quantity_unit == "puff"

    def test_no_rounding(self):
        from dispense_calculator.models import NormalizedSig
        from dispense_calculator.processing.quantity_calculator import calculate_quantity

        sig = NormalizedSig(dose=0.5, dose_unit="tablet", frequency_per_day=3)
        result = calculate_quantity(sig, 7)

        assert result.quantity_value == 10.5


class TestNullPropagation:
    """Insufficient data gives None, never zero."""

    def test_none_sig(self):
        from dispense_calculator.processing.quantity_calculator import calculate_quantity

        assert calculate_quantity(None, 30) is None

    def test_missing_frequency(self):
        from dispense_calculator.models import NormalizedSig
        from dispense_calculator.processing.quantity_calculator import calculate_quantity

        assert calculate_quantity(NormalizedSig(dose=1, dose_unit="tablet"), 30) is None

    def test_missing_unit(self):
        from dispense_calculator.models import NormalizedSig
        from dispense_calculator.processing.quantity_calculator import calculate_quantity

        assert calculate_quantity(NormalizedSig(dose=1, frequency_per_day=1), 30) is None

    @pytest.mark.parametrize("days", [0, -5, float('nan'), float('inf'), None])
    def test_bad_days_supply(self, days):
        from dispense_calculator.models import NormalizedSig
        from dispense_calculator.processing.quantity_calculator import calculate_quantity

        sig = NormalizedSig(dose=1, dose_unit="tablet", frequency_per_day=1)
        assert calculate_quantity(sig, days) is None

    @pytest.mark.parametrize("dose", [0, -1, float('nan')])
    def test_bad_dose(self, dose):
        from dispense_calculator.models import NormalizedSig
        from dispense_calculator.processing.quantity_calculator import calculate_quantity

        sig = NormalizedSig(dose=dose, dose_unit="tablet", frequency_per_day=1)
        assert calculate_quantity(sig, 30) is None


class TestMonotonicity:
    """Quantity never decreases as days' supply grows."""

    def test_non_decreasing_in_days(self):
        from dispense_calculator.models import NormalizedSig
        from dispense_calculator.processing.quantity_calculator import calculate_quantity

        sig = NormalizedSig(dose=1.5, dose_unit="capsule", frequency_per_day=3)
        values = [calculate_quantity(sig, days).quantity_value for days in range(1, 366)]

        assert all(a <= b for a, b in zip(values, values[1:]))
