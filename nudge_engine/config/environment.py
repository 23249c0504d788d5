"""Environment variable loading and validation."""

import os
from typing import Optional
from urllib.parse import urlparse

from .exceptions import ConfigurationError

DEFAULT_DATABASE_URL = "sqlite:///./data/nudge_engine.db"
DEFAULT_ENRICHMENT_BASE_URL = "https://api.openai.com/v1"
VALID_LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class EnvironmentConfig:
    """Environment variable configuration holder."""

    def __init__(
        self,
        database_url: Optional[str] = None,
        log_level: Optional[str] = None,
        enrichment_api_key: Optional[str] = None,
        enrichment_base_url: Optional[str] = None,
        environment: Optional[str] = None,
    ):
        """Initialize environment configuration."""
        self.database_url = database_url or DEFAULT_DATABASE_URL
        self.log_level = log_level
        self.enrichment_api_key = enrichment_api_key
        self.enrichment_base_url = (enrichment_base_url or DEFAULT_ENRICHMENT_BASE_URL).rstrip("/")
        self.environment = environment or "local"

    @property
    def enrichment_enabled(self) -> bool:
        """True when an API key for the inference provider is configured."""
        return bool(self.enrichment_api_key)


def load_environment_config() -> EnvironmentConfig:
    """
    Load and validate environment variables.

    All variables are optional:
    - DATABASE_URL: SQLAlchemy database URL (default: sqlite:///./data/nudge_engine.db)
    - LOG_LEVEL: Override log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    - ENRICHMENT_API_KEY: API key for the inference provider; without it every
      message falls back to static templates
    - ENRICHMENT_BASE_URL: Base URL of an OpenAI-compatible API
    - ENVIRONMENT: Environment label attached to every log line

    Returns:
        EnvironmentConfig object with validated values

    Raises:
        ConfigurationError: If a variable is set to an invalid value
    """
    errors = []

    database_url = os.getenv("DATABASE_URL")
    log_level = os.getenv("LOG_LEVEL")
    api_key = os.getenv("ENRICHMENT_API_KEY")
    base_url = os.getenv("ENRICHMENT_BASE_URL")
    environment = os.getenv("ENVIRONMENT")

    if log_level and log_level.upper() not in VALID_LOG_LEVELS:
        errors.append(
            f"Invalid LOG_LEVEL: '{log_level}'. Must be one of: {', '.join(VALID_LOG_LEVELS)}"
        )

    if base_url:
        parsed = urlparse(base_url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            errors.append(
                f"Invalid ENRICHMENT_BASE_URL: '{base_url}'. Must be an http(s) URL."
            )

    if api_key is not None and not api_key.strip():
        errors.append("ENRICHMENT_API_KEY is set but empty. Unset it to disable enrichment.")

    if database_url is not None and "://" not in database_url:
        errors.append(
            f"Invalid DATABASE_URL: '{database_url}'. Expected a URL like sqlite:///./data/nudge_engine.db"
        )

    if errors:
        raise ConfigurationError(
            "Environment variable validation failed",
            errors=errors,
            suggestions=[
                "Copy .env.example to .env and adjust the values",
                "Unset variables you do not need; all of them are optional",
            ],
        )

    return EnvironmentConfig(
        database_url=database_url,
        log_level=log_level.upper() if log_level else None,
        enrichment_api_key=api_key.strip() if api_key else None,
        enrichment_base_url=base_url,
        environment=environment,
    )
