"""Utility functions for hashing, metadata sanitization and time handling."""

from .hashing import (
    canonical_json,
    compute_cache_key,
    compute_content_hash,
    compute_nudge_id,
    hash_string,
)
from .metadata import sanitize_metadata
from .timestamps import (
    days_ago,
    ensure_utc,
    format_timestamp,
    parse_timestamp,
    start_of_day,
    start_of_hour,
    utc_now,
)

__all__ = [
    # Hashing
    "compute_nudge_id",
    "compute_cache_key",
    "compute_content_hash",
    "canonical_json",
    "hash_string",
    # Metadata
    "sanitize_metadata",
    # Timestamps
    "utc_now",
    "ensure_utc",
    "start_of_hour",
    "start_of_day",
    "days_ago",
    "format_timestamp",
    "parse_timestamp",
]
