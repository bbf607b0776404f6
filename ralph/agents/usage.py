"""Detect and parse agent usage-limit messages."""

import re
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ralph.agents.base import UsageLimitError

FALLBACK_RESET = timedelta(minutes=30)

# resets Jan 2, 2026, 3pm (UTC) / resets January 2, 2026, 3:04pm (UTC)
_RESETS_PATTERN = re.compile(
    r'resets\s+(\w+\s+\d{1,2},\s+\d{4},\s+\d{1,2}(?::\d{2})?(?:am|pm))\s+\(([^)]+)\)',
    re.IGNORECASE,
)
# Your limit will reset at 1pm (Etc/GMT+5)
_RESET_AT_PATTERN = re.compile(
    r'reset at\s+(\d{1,2}(?::\d{2})?(?:am|pm))\s+\(([^)]+)\)',
    re.IGNORECASE,
)

_DATETIME_FORMATS = ("%b %d, %Y, %I:%M%p", "%B %d, %Y, %I:%M%p", "%b %d, %Y, %I%p", "%B %d, %Y, %I%p")
_TIME_FORMATS = ("%I:%M%p", "%I%p")


def is_usage_limit(output: str) -> bool:
    lower = output.lower()
    return "hit your limit" in lower or "usage limit reached" in lower


def _zone(name: str):
    if name.upper() == "UTC":
        return timezone.utc
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        return None


def _parse_datetime(text: str, tz) -> datetime | None:
    for fmt in _DATETIME_FORMATS:
        try:
            return datetime.strptime(text, fmt).replace(tzinfo=tz)
        except ValueError:
            continue
    return None


def _parse_time_only(text: str, tz, now: datetime) -> datetime | None:
    local_now = now.astimezone(tz)
    for fmt in _TIME_FORMATS:
        try:
            t = datetime.strptime(text, fmt)
        except ValueError:
            continue
        parsed = local_now.replace(hour=t.hour, minute=t.minute, second=0, microsecond=0)
        if parsed < local_now:
            parsed += timedelta(days=1)
        return parsed
    return None


def parse_reset_time(output: str, now: datetime | None = None) -> datetime:
    """Reset time named in the message, or now + 30 minutes if none parses."""
    now = now or datetime.now(timezone.utc)

    m = _RESETS_PATTERN.search(output)
    if m:
        tz = _zone(m.group(2))
        if tz is not None:
            parsed = _parse_datetime(m.group(1).lower(), tz)
            if parsed is not None:
                return parsed

    m = _RESET_AT_PATTERN.search(output)
    if m:
        tz = _zone(m.group(2))
        if tz is not None:
            parsed = _parse_time_only(m.group(1).lower(), tz, now)
            if parsed is not None:
                return parsed

    return now + FALLBACK_RESET


def _limit_line(output: str) -> str:
    for line in output.splitlines():
        lower = line.lower()
        if "hit your limit" in lower or "usage limit" in lower:
            return line.strip()
    return output.strip()


def parse_usage_limit(output: str, now: datetime | None = None) -> UsageLimitError | None:
    """UsageLimitError for a usage-limit message, None for anything else."""
    if not is_usage_limit(output):
        return None
    return UsageLimitError(parse_reset_time(output, now), _limit_line(output))
