"""Duration parsing utilities for configuration.

Cache TTLs, the interaction dedup window and the purge interval are all
written as durations in the config file.
"""

import re


class DurationParseError(ValueError):
    """Raised when a duration string cannot be parsed."""

    pass


UNIT_SECONDS = {
    "s": 1,
    "m": 60,
    "h": 3600,
    "d": 86400,
    "w": 604800,
}


def parse_duration(duration_str: str) -> int:
    """
    Parse a duration string to seconds.

    Supports both human-readable formats and ISO-8601 durations:
    - Human-readable: "10s", "15m", "1h", "7d", "2w", combinations like "1h30m"
    - ISO-8601: "PT15M", "PT1H", "PT30S", "P7D"

    Args:
        duration_str: Duration string to parse

    Returns:
        Duration in seconds

    Raises:
        DurationParseError: If the duration string is invalid

    Examples:
        >>> parse_duration("10s")
        10
        >>> parse_duration("PT1H")
        3600
        >>> parse_duration("7d")
        604800
    """
    if not isinstance(duration_str, str):
        raise DurationParseError(f"Duration must be a string, got: {duration_str!r}")

    duration_str = duration_str.strip()

    if not duration_str:
        raise DurationParseError("Duration string cannot be empty")

    if duration_str.upper().startswith("P"):
        return _parse_iso8601_duration(duration_str)

    return _parse_human_readable_duration(duration_str)


def _parse_iso8601_duration(duration_str: str) -> int:
    """
    Parse ISO-8601 duration format.

    Supports: P[n]D, PT[n]H[n]M[n]S and combinations such as P1DT12H.

    Raises:
        DurationParseError: If the format is invalid
    """
    duration_str = duration_str.upper()

    pattern = r"^P(?:(\d+)D)?(?:T(?:(\d+)H)?(?:(\d+)M)?(?:(\d+(?:\.\d+)?)S)?)?$"
    match = re.match(pattern, duration_str)

    if not match:
        raise DurationParseError(
            f"Invalid ISO-8601 duration format: '{duration_str}'. "
            "Expected format like 'P7D', 'PT1H30M', 'PT15M', or 'PT30S'"
        )

    days, hours, minutes, seconds = match.groups()

    total_seconds = 0
    if days:
        total_seconds += int(days) * UNIT_SECONDS["d"]
    if hours:
        total_seconds += int(hours) * UNIT_SECONDS["h"]
    if minutes:
        total_seconds += int(minutes) * UNIT_SECONDS["m"]
    if seconds:
        total_seconds += int(float(seconds))

    if total_seconds == 0:
        raise DurationParseError(f"Duration cannot be zero: '{duration_str}'")

    return total_seconds


def _parse_human_readable_duration(duration_str: str) -> int:
    """
    Parse human-readable duration format (``30s``, ``15m``, ``1h``, ``7d``, ``2w``).

    Raises:
        DurationParseError: If the format is invalid
    """
    pattern = r"(\d+)\s*([smhdw])"
    matches = re.findall(pattern, duration_str.lower())

    if not matches:
        raise DurationParseError(
            f"Invalid duration format: '{duration_str}'. "
            "Expected format like '10s', '15m', '1h', '7d', or combinations like '1h30m'"
        )

    # Reject leftovers such as "15x" or "1h abc"
    parsed_str = "".join(f"{num}{unit}" for num, unit in matches)
    cleaned_input = re.sub(r"\s+", "", duration_str.lower())
    if parsed_str != cleaned_input:
        raise DurationParseError(
            f"Invalid characters in duration: '{duration_str}'. "
            "Use only digits and units: s, m, h, d, w"
        )

    total_seconds = sum(int(num) * UNIT_SECONDS[unit] for num, unit in matches)

    if total_seconds == 0:
        raise DurationParseError(f"Duration cannot be zero: '{duration_str}'")

    return total_seconds


def validate_duration_range(
    duration_seconds: int,
    min_seconds: int,
    max_seconds: int,
    label: str = "Duration",
) -> None:
    """
    Validate that a duration is within an acceptable range.

    Args:
        duration_seconds: Duration in seconds to validate
        min_seconds: Minimum allowed duration
        max_seconds: Maximum allowed duration
        label: Name of the setting, used in the error message

    Raises:
        DurationParseError: If duration is outside the valid range
    """
    if duration_seconds < min_seconds:
        raise DurationParseError(
            f"{label} too short: {format_duration(duration_seconds)}. "
            f"Minimum is {format_duration(min_seconds)}."
        )

    if duration_seconds > max_seconds:
        raise DurationParseError(
            f"{label} too long: {format_duration(duration_seconds)}. "
            f"Maximum is {format_duration(max_seconds)}."
        )


def format_duration(seconds: int) -> str:
    """
    Convert seconds to a human-readable phrase.

    Examples:
        >>> format_duration(3600)
        '1 hour'
        >>> format_duration(604800)
        '7 days'
    """
    if seconds < 60:
        return f"{seconds} second{'s' if seconds != 1 else ''}"
    if seconds < 3600:
        minutes = seconds // 60
        return f"{minutes} minute{'s' if minutes != 1 else ''}"
    if seconds < 86400:
        hours = seconds // 3600
        return f"{hours} hour{'s' if hours != 1 else ''}"
    days = seconds // 86400
    return f"{days} day{'s' if days != 1 else ''}"
