"""requests-based client for OpenAI-compatible chat completion APIs."""

import asyncio
import logging
from typing import Any, Dict, Optional

import requests

from nudge_engine.config.models import EnrichmentConfig
from nudge_engine.logging import get_logger

from .base import BaseEnrichmentClient, InferenceResult
from .exceptions import UpstreamFailure, UpstreamTimeout

logger = get_logger(__name__, component="enrichment")


class HTTPEnrichmentClient(BaseEnrichmentClient):
    """Calls ``POST {base_url}/chat/completions``.

    The blocking request runs in a worker thread so the event loop keeps
    serving other callers. Cost is computed from the reported token usage and
    the configured per-1K token prices.

    Attributes:
        base_url: API base URL without trailing slash
        config: Model, timeout and pricing settings
    """

    def __init__(self, api_key: str, base_url: str, config: Optional[EnrichmentConfig] = None) -> None:
        """Initialize client with credentials and settings.

        Args:
            api_key: Bearer token for the provider
            base_url: API base URL (e.g. https://api.openai.com/v1)
            config: Enrichment settings (defaults apply when omitted)

        Raises:
            ValueError: If api_key or base_url is empty
        """
        if not api_key or not api_key.strip():
            raise ValueError("api_key cannot be empty")
        if not base_url or not base_url.strip():
            raise ValueError("base_url cannot be empty")

        self.config = config or EnrichmentConfig()
        self.base_url = base_url.strip().rstrip("/")
        self.timeout = self.config.timeout_seconds

        self._session = requests.Session()
        self._session.headers.update(
            {
                "Authorization": f"Bearer {api_key.strip()}",
                "User-Agent": self.config.user_agent,
                "Content-Type": "application/json",
            }
        )

    async def infer(
        self,
        prompt: str,
        system: Optional[str] = None,
        json_mode: bool = False,
    ) -> InferenceResult:
        payload = self._build_payload(prompt, system, json_mode)
        data = await asyncio.to_thread(self._post, payload)
        return self._parse_response(data)

    def _build_payload(self, prompt: str, system: Optional[str], json_mode: bool) -> Dict[str, Any]:
        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        payload: Dict[str, Any] = {
            "model": self.config.model,
            "messages": messages,
            "temperature": self.config.temperature,
            "max_tokens": self.config.max_output_tokens,
        }
        if json_mode:
            payload["response_format"] = {"type": "json_object"}
        return payload

    def _post(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Send the request and return the decoded JSON body.

        Raises:
            UpstreamFailure: On 4xx/5xx status, transport errors or invalid JSON
            UpstreamTimeout: On request timeout
        """
        url = f"{self.base_url}/chat/completions"

        try:
            logger.debug(
                f"HTTP POST request to {url}",
                extra={
                    "event": "enrichment.request",
                    "url": url,
                    "model": self.config.model,
                    "timeout": self.timeout,
                },
            )
            response = self._session.post(url, json=payload, timeout=self.timeout)
        except requests.exceptions.Timeout as e:
            logger.warning(
                f"Request to {url} timed out after {self.timeout} seconds",
                extra={"event": "enrichment.timeout", "url": url, "timeout": self.timeout},
            )
            raise UpstreamTimeout(f"Request to {url} timed out after {self.timeout} seconds") from e
        except requests.exceptions.RequestException as e:
            logger.error(
                f"Request to {url} failed: {e}",
                extra={"event": "enrichment.error", "error_type": type(e).__name__, "url": url},
            )
            raise UpstreamFailure(f"Request to {url} failed: {e}") from e

        if response.status_code >= 400:
            is_retryable = response.status_code == 429 or response.status_code >= 500
            logger.log(
                logging.WARNING if is_retryable else logging.ERROR,
                f"HTTP {response.status_code} error from {url}",
                extra={
                    "event": "enrichment.retryable_error" if is_retryable else "enrichment.error",
                    "status_code": response.status_code,
                    "url": url,
                },
            )
            raise UpstreamFailure(
                f"HTTP {response.status_code}: {response.reason}",
                status_code=response.status_code,
            )

        try:
            return response.json()
        except ValueError as e:
            logger.error(
                f"Failed to parse JSON response from {url}",
                extra={"event": "enrichment.error", "error_type": "JSONDecodeError", "url": url},
            )
            raise UpstreamFailure(f"Failed to parse JSON response from {url}: {e}") from e

    def _parse_response(self, data: Dict[str, Any]) -> InferenceResult:
        try:
            text = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise UpstreamFailure("Unexpected response shape: missing choices[0].message.content") from e

        if not text or not str(text).strip():
            raise UpstreamFailure("Empty response from inference provider")

        usage = data.get("usage") or {}
        prompt_tokens = int(usage.get("prompt_tokens") or 0)
        completion_tokens = int(usage.get("completion_tokens") or 0)
        total_tokens = int(usage.get("total_tokens") or prompt_tokens + completion_tokens)

        cost = (
            prompt_tokens / 1000.0 * self.config.input_price_per_1k
            + completion_tokens / 1000.0 * self.config.output_price_per_1k
        )

        logger.info(
            "Inference call succeeded",
            extra={
                "event": "enrichment.succeeded",
                "model": self.config.model,
                "tokens": total_tokens,
                "cost_usd": round(cost, 6),
            },
        )
        return InferenceResult(text=str(text).strip(), cost_usd=cost, tokens=total_tokens)

    def close(self) -> None:
        self._session.close()
