"""Configuration schema models using Pydantic."""

from enum import Enum
from typing import Dict, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from .duration import DurationParseError, parse_duration, validate_duration_range

# Rule identifiers understood by the nudge generator
KNOWN_RULE_IDS = ("skills_overlap", "company_overlap", "domain_overlap", "self_referral")

# Cache namespaces with a configured TTL
KNOWN_NAMESPACES = ("nudge", "message", "summary", "insights")

# Retention purges may not delete anything younger than this
MIN_RETENTION_DAYS = 30


class LogLevel(str, Enum):
    """Logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogFormat(str, Enum):
    """Log output formats."""

    JSON = "json"
    KEY_VALUE = "key-value"


def _duration_field(value: str, label: str, min_seconds: int, max_seconds: int) -> str:
    try:
        seconds = parse_duration(value)
        validate_duration_range(seconds, min_seconds=min_seconds, max_seconds=max_seconds, label=label)
    except DurationParseError as e:
        raise ValueError(str(e)) from e
    return value


class ScoringWeights(BaseModel):
    """Per-category weights used by the match scorer."""

    skill: float = Field(1.0, gt=0.0, le=10.0)
    company: float = Field(0.8, gt=0.0, le=10.0)
    domain: float = Field(0.6, gt=0.0, le=10.0)


class TierThresholds(BaseModel):
    """Lower bounds of the LOW/MEDIUM/HIGH tiers.

    ``low`` is the smallest score that counts as a match at all; scores of
    exactly zero are always NONE.
    """

    low: float = Field(0.0, ge=0.0, le=1.0)
    medium: float = Field(0.34, gt=0.0, le=1.0)
    high: float = Field(0.67, gt=0.0, le=1.0)

    @model_validator(mode="after")
    def validate_ascending(self):
        """Thresholds must be strictly ascending."""
        if not (self.low < self.medium < self.high):
            raise ValueError(
                f"Tier thresholds must be ascending: low ({self.low}) < "
                f"medium ({self.medium}) < high ({self.high})"
            )
        return self


class ScoringConfig(BaseModel):
    """Match scoring settings."""

    weights: ScoringWeights = Field(default_factory=ScoringWeights)
    thresholds: TierThresholds = Field(default_factory=TierThresholds)


class RuleOverride(BaseModel):
    """Per-rule switch and priority override."""

    enabled: bool = True
    priority: Optional[int] = Field(None, ge=0, le=1000)


class NudgesConfig(BaseModel):
    """Nudge generation settings."""

    max_nudges: int = Field(5, ge=1, le=20, description="Maximum nudges returned per request")
    rules: Dict[str, RuleOverride] = Field(default_factory=dict)

    @field_validator("rules")
    @classmethod
    def validate_rule_ids(cls, v: Dict[str, RuleOverride]) -> Dict[str, RuleOverride]:
        """Reject overrides for rules that do not exist."""
        unknown = sorted(set(v) - set(KNOWN_RULE_IDS))
        if unknown:
            raise ValueError(
                f"Unknown nudge rule(s): {', '.join(unknown)}. "
                f"Valid rules: {', '.join(KNOWN_RULE_IDS)}"
            )
        return v

    def is_rule_enabled(self, rule_id: str) -> bool:
        override = self.rules.get(rule_id)
        return override.enabled if override else True

    def priority_for(self, rule_id: str, default: int) -> int:
        override = self.rules.get(rule_id)
        if override and override.priority is not None:
            return override.priority
        return default


class CacheConfig(BaseModel):
    """Budget-bounded cache TTLs per namespace."""

    default_ttl: str = Field("1h", description="TTL for namespaces without an explicit entry")
    ttls: Dict[str, str] = Field(
        default_factory=lambda: {
            "nudge": "1h",
            "message": "1h",
            "summary": "7d",
            "insights": "1d",
        }
    )
    sweep_interval: str = Field(
        "15m", description="Minimum time between sweeps of expired entries during lookups"
    )

    @field_validator("default_ttl")
    @classmethod
    def validate_default_ttl(cls, v: str) -> str:
        return _duration_field(v, "Cache TTL", 1, 30 * 86400)

    @field_validator("ttls")
    @classmethod
    def validate_ttls(cls, v: Dict[str, str]) -> Dict[str, str]:
        """Validate each namespace TTL and lowercase namespace names."""
        normalized = {}
        for namespace, ttl in v.items():
            name = namespace.strip().lower()
            if not name:
                raise ValueError("Cache namespace names cannot be empty")
            normalized[name] = _duration_field(ttl, f"Cache TTL for '{name}'", 1, 30 * 86400)
        return normalized

    @field_validator("sweep_interval")
    @classmethod
    def validate_sweep_interval(cls, v: str) -> str:
        return _duration_field(v, "Cache sweep interval", 1, 86400)

    @property
    def sweep_interval_seconds(self) -> int:
        return parse_duration(self.sweep_interval)

    def ttl_seconds(self, namespace: str) -> int:
        """Return the TTL in seconds for a namespace."""
        return parse_duration(self.ttls.get(namespace.lower(), self.default_ttl))


class BudgetConfig(BaseModel):
    """Spend and rate ceilings for paid enrichment calls."""

    daily_limit_usd: float = Field(10.0, ge=0.0, description="Maximum spend per UTC day")
    hourly_call_limit: int = Field(1000, ge=0, description="Maximum producer calls per UTC hour")


class EnrichmentConfig(BaseModel):
    """Settings for the external inference client."""

    timeout_seconds: float = Field(10.0, ge=1.0, le=120.0)
    model: str = Field("gpt-4o-mini", min_length=1)
    max_output_tokens: int = Field(300, ge=16, le=4096)
    input_price_per_1k: float = Field(0.00015, ge=0.0)
    output_price_per_1k: float = Field(0.0006, ge=0.0)
    temperature: float = Field(0.7, ge=0.0, le=2.0)
    user_agent: str = Field("ReferralNudgeEngine/1.0", min_length=1)

    @field_validator("model", "user_agent")
    @classmethod
    def strip_whitespace(cls, v: str) -> str:
        """Strip whitespace from string fields."""
        stripped = v.strip()
        if not stripped:
            raise ValueError("Field cannot be empty or whitespace-only")
        return stripped


class InteractionsConfig(BaseModel):
    """Interaction log settings."""

    dedup_window: str = Field(
        "10s", description="Identical submissions within this window count once"
    )

    # Computed field
    dedup_window_seconds: Optional[int] = None

    @field_validator("dedup_window")
    @classmethod
    def validate_dedup_window(cls, v: str) -> str:
        return _duration_field(v, "Dedup window", 1, 3600)

    @model_validator(mode="after")
    def compute_seconds(self):
        self.dedup_window_seconds = parse_duration(self.dedup_window)
        return self


class FunnelConfig(BaseModel):
    """Funnel analytics settings."""

    default_window_days: int = Field(30, ge=1, le=365)


class RetentionConfig(BaseModel):
    """Retention purge settings for events and interactions."""

    event_retention_days: int = Field(180, ge=MIN_RETENTION_DAYS, le=3650)
    purge_interval: str = Field("24h", description="How often the purge job runs")
    enabled: bool = Field(True, description="Whether the scheduler runs the purge job")

    # Computed field
    purge_interval_seconds: Optional[int] = None

    @field_validator("purge_interval")
    @classmethod
    def validate_purge_interval(cls, v: str) -> str:
        return _duration_field(v, "Purge interval", 300, 7 * 86400)

    @model_validator(mode="after")
    def compute_seconds(self):
        self.purge_interval_seconds = parse_duration(self.purge_interval)
        return self


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: LogLevel = Field(LogLevel.INFO, description="Log level")
    format: LogFormat = Field(
        LogFormat.KEY_VALUE, description="Log output format (json or key-value)"
    )

    model_config = {"use_enum_values": True}


class AppConfig(BaseModel):
    """Root configuration object for the referral nudge engine.

    Every section has defaults, so an empty mapping is a valid config.
    """

    scoring: ScoringConfig = Field(default_factory=ScoringConfig)
    nudges: NudgesConfig = Field(default_factory=NudgesConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    budget: BudgetConfig = Field(default_factory=BudgetConfig)
    enrichment: EnrichmentConfig = Field(default_factory=EnrichmentConfig)
    interactions: InteractionsConfig = Field(default_factory=InteractionsConfig)
    funnel: FunnelConfig = Field(default_factory=FunnelConfig)
    retention: RetentionConfig = Field(default_factory=RetentionConfig)
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig, description="Logging configuration"
    )
