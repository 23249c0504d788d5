"""Additional validation utilities for configuration."""

import warnings
from typing import Any, Dict, List

from .models import KNOWN_RULE_IDS


def check_for_warnings(config_dict: Dict[str, Any]) -> List[str]:
    """
    Check configuration for potential issues and return warnings.

    Args:
        config_dict: Raw configuration dictionary

    Returns:
        List of warning messages
    """
    warning_messages = []

    nudges = config_dict.get("nudges", {})
    if isinstance(nudges, dict):
        rules = nudges.get("rules", {})
        if isinstance(rules, dict):
            for rule_id, override in rules.items():
                if isinstance(override, dict) and override.get("enabled") is False:
                    warning_messages.append(f"Nudge rule '{rule_id}' is disabled and will be skipped")

            disabled = [
                rule_id
                for rule_id, override in rules.items()
                if isinstance(override, dict) and override.get("enabled") is False
            ]
            if set(KNOWN_RULE_IDS) <= set(disabled):
                warning_messages.append("All nudge rules are disabled; no nudges will be produced")

    budget = config_dict.get("budget", {})
    if isinstance(budget, dict):
        daily_limit = budget.get("daily_limit_usd")
        if isinstance(daily_limit, (int, float)) and daily_limit == 0:
            warning_messages.append(
                "budget.daily_limit_usd is 0: every enrichment call will fall back to static text"
            )
        elif isinstance(daily_limit, (int, float)) and daily_limit > 500:
            warning_messages.append(
                f"Large budget.daily_limit_usd ({daily_limit}) may lead to unexpected inference costs"
            )

        hourly = budget.get("hourly_call_limit")
        if isinstance(hourly, int) and hourly == 0:
            warning_messages.append(
                "budget.hourly_call_limit is 0: every enrichment call will fall back to static text"
            )

    interactions = config_dict.get("interactions", {})
    if isinstance(interactions, dict):
        window = interactions.get("dedup_window")
        if isinstance(window, str) and window.strip().lower() in ("1s", "pt1s"):
            warning_messages.append(
                f"Very short interactions.dedup_window ({window}) will count most double clicks twice"
            )

    return warning_messages


def emit_warnings(warning_messages: List[str]) -> None:
    """
    Emit warning messages using Python's warnings module.

    Args:
        warning_messages: List of warning messages to emit
    """
    for message in warning_messages:
        warnings.warn(message, UserWarning, stacklevel=2)
