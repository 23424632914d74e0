"""Time-of-day parsing and timezone resolution helpers."""

import logging
import re
from zoneinfo import ZoneInfo

logger = logging.getLogger(__name__)

_TIME_OF_DAY = re.compile(r"^\s*(\d{1,2}):(\d{2})\s*$")


def parse_time_of_day(value: str) -> tuple[int, int]:
    """Parse ``"HH:MM"`` (24-hour clock) into ``(hour, minute)``.

    Raises ``ValueError`` for anything else, including non-string input.
    """
    if not isinstance(value, str):
        raise ValueError(f"Time of day must be a string, got {type(value).__name__}")
    match = _TIME_OF_DAY.match(value)
    if not match:
        raise ValueError(f"Invalid time of day: {value!r} (expected HH:MM)")
    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        raise ValueError(f"Time of day out of range: {value!r}")
    return hour, minute


def is_valid_timezone(name: str) -> bool:
    try:
        ZoneInfo(name)
    except (KeyError, ValueError):
        return False
    return True


def resolve_timezone(name: str | None, default: str = "UTC") -> ZoneInfo:
    """Return the ``ZoneInfo`` for *name*, falling back to *default* (then UTC)."""
    for candidate in (name, default):
        if not candidate:
            continue
        try:
            return ZoneInfo(candidate)
        except (KeyError, ValueError):
            logger.warning(f"Invalid timezone '{candidate}', falling back")
    return ZoneInfo("UTC")
