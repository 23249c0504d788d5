"""Sanitization of free-form metadata attached to interactions and events."""

from typing import Any, Dict, Mapping, Optional

# Keys containing any of these fragments (case-insensitive) are dropped
SENSITIVE_KEY_FRAGMENTS = (
    "password",
    "token",
    "secret",
    "apikey",
    "api_key",
    "authorization",
    "cookie",
    "session",
)

MAX_METADATA_STRING_LENGTH = 1000
TRUNCATION_MARKER = "...[truncated]"


def is_sensitive_key(key: str) -> bool:
    lowered = key.lower()
    return any(fragment in lowered for fragment in SENSITIVE_KEY_FRAGMENTS)


def sanitize_metadata(
    metadata: Optional[Mapping[str, Any]],
    max_length: int = MAX_METADATA_STRING_LENGTH,
) -> Dict[str, Any]:
    """Drop sensitive keys and truncate long string values.

    Only top-level keys are inspected. Nested values are kept as given.

    Args:
        metadata: Caller-supplied metadata (None is treated as empty)
        max_length: Maximum length of a string value before truncation

    Returns:
        New dict safe to persist and log

    Example:
        >>> sanitize_metadata({"source": "email", "authToken": "abc"})
        {'source': 'email'}
    """
    if not metadata:
        return {}

    sanitized: Dict[str, Any] = {}
    for key, value in metadata.items():
        key = str(key)
        if is_sensitive_key(key):
            continue
        if isinstance(value, str) and len(value) > max_length:
            value = value[:max_length] + TRUNCATION_MARKER
        sanitized[key] = value
    return sanitized
