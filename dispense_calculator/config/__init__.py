"""
Dispense Calculator Configuration Package
"""

from .dispense_config import (
    # Paths
    MODULE_ROOT,
    CONFIG_DIR,
    SIG_PATTERNS_YAML,

    # Configs
    SCORING_CONFIG,
    FILL_CONFIG,
    INPUT_CONFIG,
    SERVICE_CONFIG,
    ScoringConfig,
    FillConfig,
    InputConfig,
    ServiceConfig,

    # Helpers
    load_sig_patterns,
    get_openai_api_key,
)

__all__ = [
    'MODULE_ROOT',
    'CONFIG_DIR',
    'SIG_PATTERNS_YAML',
    'SCORING_CONFIG',
    'FILL_CONFIG',
    'INPUT_CONFIG',
    'SERVICE_CONFIG',
    'ScoringConfig',
    'FillConfig',
    'InputConfig',
    'ServiceConfig',
    'load_sig_patterns',
    'get_openai_api_key',
]
