"""Tests for configuration and pattern tables."""

import pytest
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent.parent))


class TestConfig:
    """Tests for dispense_config."""

    def test_weights_sum_to_one(self):
        from dispense_calculator.config import SCORING_CONFIG

        assert abs(sum(SCORING_CONFIG.weights.values()) - 1.0) < 1e-9
        assert set(SCORING_CONFIG.weights) == {'active_status', 'package_match', 'strength_match', 'unit_match'}

    def test_patterns_load_and_cache(self):
        from dispense_calculator.config import load_sig_patterns

        patterns = load_sig_patterns()

        assert patterns is load_sig_patterns()
        for key in ('unit_aliases', 'frequency_phrases', 'route_phrases'):
            assert patterns[key]

    def test_fill_tolerance(self):
        from dispense_calculator.config import FILL_CONFIG

        assert FILL_CONFIG.tolerance == 0.05

    def test_api_key_from_environment(self, monkeypatch):
        from dispense_calculator.config.dispense_config import get_openai_api_key

        monkeypatch.setenv("OPENAI_API_KEY", "  ")
        assert get_openai_api_key() is None

        monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
        assert get_openai_api_key() == "sk-test"


class TestRunner:
    """Tests for the command-line entry point (offline)."""

    def test_single_offline(self, capsys):
        from dispense_calculator.run_calculation import main

        code = main(['--drug', 'lisinopril', '--sig', 'Take 1 tablet by mouth once daily', '--days', '30',
                     '--offline'])

        out = capsys.readouterr().out
        assert code == 0
        assert "Quantity: 30 tablet" in out

    def test_single_invalid(self, capsys):
        from dispense_calculator.run_calculation import main

        code = main(['--drug', 'lisinopril', '--sig', 'Take 1 tablet', '--days', '400', '--offline'])

        assert code == 2
        assert "days_supply" in capsys.readouterr().out

    def test_batch_offline(self, tmp_path, capsys):
        import pandas as pd
        from dispense_calculator.run_calculation import main

        src = tmp_path / "in.csv"
        dst = tmp_path / "out.csv"
        pd.DataFrame({'drug_or_ndc': ['x'], 'sig': ['Take 1 tablet once daily'], 'days_supply': [30]}).to_csv(
            src, index=False)

        assert main(['--input', str(src), '--output', str(dst), '--offline']) == 0
        assert pd.read_csv(dst).loc[0, 'quantity_value'] == 30

    def test_requires_arguments(self):
        from dispense_calculator.run_calculation import main

        with pytest.raises(SystemExit):
            main(['--drug', 'x'])
