"""
Dispense Calculator Configuration
=================================

Central configuration for SIG parsing, quantity calculation and NDC matching.
"""

import os
from pathlib import Path
from dataclasses import dataclass, field
from typing import Any, Dict, Optional
import yaml


# =============================================================================
# PATH CONFIGURATION
# =============================================================================

MODULE_ROOT = Path(__file__).parent.parent
CONFIG_DIR = MODULE_ROOT / "config"
SIG_PATTERNS_YAML = CONFIG_DIR / "sig_patterns.yaml"


# =============================================================================
# SCORING CONFIGURATION
# =============================================================================

@dataclass(frozen=True)
class ScoringConfig:
    """NDC candidate scoring weights and tolerances."""

    # Weights must sum to 1.0
    weights: Dict[str, float] = field(default_factory=lambda: {
        'active_status': 0.30,
        'package_match': 0.40,
        'strength_match': 0.15,
        'unit_match': 0.15,
    })

    # Score used when there is nothing to compare
    neutral_score: float = 0.5

    # Two totals closer than this are a tie
    tie_epsilon: float = 0.001

    # Numeric strength comparison tolerance
    strength_tolerance: float = 0.001
    strength_close_score: float = 0.8


SCORING_CONFIG = ScoringConfig()


# =============================================================================
# FILL CONFIGURATION
# =============================================================================

@dataclass(frozen=True)
class FillConfig:
    """Overfill/underfill tolerance against package size."""

    tolerance: float = 0.05


FILL_CONFIG = FillConfig()


# =============================================================================
# INPUT CONFIGURATION
# =============================================================================

@dataclass(frozen=True)
class InputConfig:
    """Calculator input bounds."""

    min_days_supply: int = 1
    max_days_supply: int = 365


INPUT_CONFIG = InputConfig()


# =============================================================================
# SERVICE CONFIGURATION
# =============================================================================

@dataclass
class ServiceConfig:
    """External collaborator endpoints and request settings."""

    rxnorm_base_url: str = "https://rxnav.nlm.nih.gov"
    fda_ndc_url: str = "https://api.fda.gov/drug/ndc.json"

    request_timeout: float = 10.0
    max_retries: int = 3
    user_agent: str = "dispense-calculator/0.1 requests"

    # Package search
    default_search_limit: int = 100
    ndc_search_limit: int = 10

    # RxNorm approximate term search
    approximate_max_entries: int = 10

    # AI ranking (optional)
    ai_model: str = field(default_factory=lambda: os.getenv("DISPENSE_AI_MODEL", "gpt-4o-mini"))
    ai_temperature: float = 0.3
    ai_max_tokens: int = 500
    ai_rationale_max_chars: int = 100


SERVICE_CONFIG = ServiceConfig()


def get_openai_api_key() -> Optional[str]:
    """Read the OpenAI API key from the environment (None when unset or blank)."""
    key = os.getenv("OPENAI_API_KEY", "").strip()
    return key or None


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

_sig_patterns_cache: Optional[Dict[str, Any]] = None


def load_sig_patterns() -> Dict[str, Any]:
    """Load and cache unit, frequency and route tables from YAML."""
    global _sig_patterns_cache
    if _sig_patterns_cache is None:
        with open(SIG_PATTERNS_YAML, 'r') as f:
            _sig_patterns_cache = yaml.safe_load(f)
    return _sig_patterns_cache


# =============================================================================
# MAIN
# =============================================================================

if __name__ == "__main__":
    patterns = load_sig_patterns()
    print("=" * 60)
    print("Dispense Calculator Configuration")
    print("=" * 60)
    print(f"\nModule Root: {MODULE_ROOT}")
    print(f"Pattern file: {SIG_PATTERNS_YAML}")
    print(f"\nScoring weights:")
    for name, weight in SCORING_CONFIG.weights.items():
        print(f"  {name}: {weight:.2f}")
    print(f"Fill tolerance: {FILL_CONFIG.tolerance:.0%}")
    print(f"Days supply: {INPUT_CONFIG.min_days_supply}-{INPUT_CONFIG.max_days_supply}")
    print(f"\nUnit aliases: {len(patterns['unit_aliases'])}")
    print(f"Frequency phrases: {len(patterns['frequency_phrases'])}")
    print(f"Route phrases: {len(patterns['route_phrases'])}")
    print("=" * 60)
