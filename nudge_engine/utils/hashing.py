"""Hashing utilities for generating nudge identifiers and cache keys.

This module provides deterministic hashing functions for:
- nudge_id: stable identifier from member_id + job_id + rule_id
- cache_key: content address from namespace + canonical input
- content_hash: change detection for job summaries
"""

import hashlib
import json
import re
from typing import Any, Optional


def compute_nudge_id(member_id: str, job_id: str, rule_id: str) -> str:
    """Compute a stable nudge identifier.

    The nudge ID is a SHA256 hash of: member_id:job_id:rule_id
    Regenerating nudges for the same inputs always yields the same ID, which is
    what lets interactions and dedup line up across requests.

    Args:
        member_id: Member the nudge is shown to
        job_id: Job the nudge is about
        rule_id: Identifier of the rule that produced the nudge

    Returns:
        Hexadecimal string representation of SHA256 hash (64 characters)

    Example:
        >>> compute_nudge_id("m-1", "j-1", "skills_overlap") == compute_nudge_id("m-1", "j-1", "skills_overlap")
        True
    """
    composite_key = f"{member_id.strip()}:{job_id.strip()}:{rule_id.strip().lower()}"
    return hash_string(composite_key)


def canonical_json(value: Any) -> str:
    """Serialize a value to a canonical JSON string.

    Sets and frozensets are turned into sorted lists and dict keys are sorted,
    so structurally equal inputs always serialize identically.

    Args:
        value: JSON-compatible value (sets allowed)

    Returns:
        Compact JSON string
    """
    return json.dumps(_canonicalize(value), sort_keys=True, separators=(",", ":"), default=str)


def _canonicalize(value: Any) -> Any:
    if isinstance(value, (set, frozenset)):
        return sorted(_canonicalize(item) for item in value)
    if isinstance(value, dict):
        return {str(k): _canonicalize(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_canonicalize(item) for item in value]
    return value


def compute_cache_key(namespace: str, key: Any) -> str:
    """Compute a content-addressed cache key.

    Args:
        namespace: Cache namespace (e.g. "nudge", "summary")
        key: Structural input identifying the cached value

    Returns:
        Hexadecimal string representation of SHA256 hash (64 characters)
    """
    namespace = namespace.strip().lower()
    return hash_string(f"{namespace}\n{canonical_json(key)}")


def compute_content_hash(title: str, description: str, company: Optional[str] = None) -> str:
    """Compute a content hash for change detection.

    Used to key job summaries so an edited description produces a new summary.

    Args:
        title: Job title
        description: Full job description text
        company: Optional company name

    Returns:
        Hexadecimal string representation of SHA256 hash (64 characters)
    """
    normalized_title = _normalize_text(title)
    normalized_description = _normalize_text(description)
    normalized_company = _normalize_text(company) if company else ""

    composite_content = f"{normalized_title}\n{normalized_description}\n{normalized_company}"
    return hash_string(composite_content)


def _normalize_text(text: str) -> str:
    """Normalize text for consistent hashing.

    Lowercases, strips, and collapses runs of whitespace to a single space.

    Args:
        text: Text to normalize

    Returns:
        Normalized text string
    """
    return re.sub(r"\s+", " ", text.lower().strip())


def hash_string(value: str) -> str:
    """Compute SHA256 hash of a string value.

    Args:
        value: String to hash

    Returns:
        Hexadecimal string representation of SHA256 hash (64 characters)
    """
    hash_obj = hashlib.sha256(value.encode("utf-8"))
    return hash_obj.hexdigest()
