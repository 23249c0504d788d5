"""Factory function for instantiating the enrichment client."""

import logging
from typing import Optional

from nudge_engine.config.environment import EnvironmentConfig
from nudge_engine.config.models import EnrichmentConfig

from .base import BaseEnrichmentClient
from .http_client import HTTPEnrichmentClient

logger = logging.getLogger(__name__)


def get_enrichment_client(
    enrichment_config: EnrichmentConfig,
    env_config: EnvironmentConfig,
) -> Optional[BaseEnrichmentClient]:
    """Create the enrichment client, or None when no API key is configured.

    Without a client every message and summary uses its static template.

    Args:
        enrichment_config: Model, timeout and pricing settings
        env_config: Environment with ENRICHMENT_API_KEY and ENRICHMENT_BASE_URL

    Returns:
        HTTPEnrichmentClient, or None if enrichment is disabled

    Example:
        >>> client = get_enrichment_client(app_config.enrichment, env_config)
        >>> if client is None:
        ...     print("static templates only")
    """
    if not env_config.enrichment_enabled:
        logger.info(
            "Enrichment disabled: ENRICHMENT_API_KEY not set, using static templates",
            extra={"event": "enrichment.disabled", "component": "enrichment"},
        )
        return None

    logger.debug(
        "Creating enrichment client",
        extra={
            "component": "enrichment",
            "base_url": env_config.enrichment_base_url,
            "model": enrichment_config.model,
        },
    )
    return HTTPEnrichmentClient(
        api_key=env_config.enrichment_api_key,
        base_url=env_config.enrichment_base_url,
        config=enrichment_config,
    )
