"""Configuration management module for the referral nudge engine."""

from .duration import DurationParseError, parse_duration
from .environment import EnvironmentConfig, load_environment_config
from .exceptions import ConfigurationError
from .loader import load_config, parse_config_dict, validate_config_file
from .models import (
    AppConfig,
    BudgetConfig,
    CacheConfig,
    EnrichmentConfig,
    FunnelConfig,
    InteractionsConfig,
    LogFormat,
    LogLevel,
    LoggingConfig,
    NudgesConfig,
    RetentionConfig,
    RuleOverride,
    ScoringConfig,
    ScoringWeights,
    TierThresholds,
)

__all__ = [
    # Main loader functions
    "load_config",
    "parse_config_dict",
    "validate_config_file",
    "load_environment_config",
    "parse_duration",
    # Configuration models
    "AppConfig",
    "ScoringConfig",
    "ScoringWeights",
    "TierThresholds",
    "NudgesConfig",
    "RuleOverride",
    "CacheConfig",
    "BudgetConfig",
    "EnrichmentConfig",
    "InteractionsConfig",
    "FunnelConfig",
    "RetentionConfig",
    "LoggingConfig",
    "EnvironmentConfig",
    # Enums
    "LogLevel",
    "LogFormat",
    # Exceptions
    "ConfigurationError",
    "DurationParseError",
]
