"""Date parsing and timezone-aware day boundaries.

Callers filter by calendar day ("2025-06-30") in their own zone, while every
record carries a UTC instant. ``normalize_date`` turns a bare day into the UTC
instant of its first or last millisecond in the requested IANA zone.
"""

import logging
from datetime import date, datetime, time, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

logger = logging.getLogger(__name__)

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

_START_OF_DAY = time(0, 0, 0, 0)
_END_OF_DAY = time(23, 59, 59, 999000)


def normalize_date(value: str, is_end: bool = False, tz: str | None = None) -> str:
    """Return the canonical UTC boundary instant for ``value``.

    Values that already carry a time component are returned unchanged. A bare
    day resolves to local midnight (or 23:59:59.999 when ``is_end``) in ``tz``,
    or in the system zone when ``tz`` is omitted. The offset is computed for
    that specific date, so daylight-saving transitions are respected.

    Never raises: an unknown zone or malformed day falls back to treating the
    day as UTC.
    """
    if "T" in value:
        return value

    boundary = _END_OF_DAY if is_end else _START_OF_DAY
    try:
        if tz == "UTC":
            return f"{value}T{_format_time(boundary)}Z"

        day = date.fromisoformat(value)
        if tz is None:
            # Naive astimezone() goes through the platform's local-time rules
            # for this exact date.
            local = datetime.combine(day, boundary).astimezone()
        else:
            local = datetime.combine(day, boundary, tzinfo=ZoneInfo(tz))
        return format_instant(local)
    except (ValueError, OverflowError, OSError, ZoneInfoNotFoundError) as e:
        logger.debug("Falling back to UTC for %r (zone %r): %s", value, tz, e)
        return f"{value}T{_format_time(boundary)}Z"


def parse_iso(value: str | None) -> datetime | None:
    """Parse an ISO 8601 datetime string. Naive values are taken as UTC."""
    if not value or not isinstance(value, str):
        return None
    try:
        if value.endswith("Z"):
            value = value[:-1] + "+00:00"
        parsed = datetime.fromisoformat(value)
    except (ValueError, TypeError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_instant(value: datetime) -> str:
    """Render an instant as ``YYYY-MM-DDTHH:MM:SS.mmmZ`` in UTC."""
    utc = value.astimezone(timezone.utc)
    return f"{utc:%Y-%m-%d}T{_format_time(utc.time())}Z"


def date_bounds(
    start_date: str | None,
    end_date: str | None,
    tz: str | None = None,
) -> tuple[datetime | None, datetime | None]:
    """Normalize and parse a start/end filter pair.

    A bound that cannot be parsed even after normalization is dropped, so a
    bad filter widens the query instead of failing it.
    """
    start = end = None
    if start_date:
        start = parse_iso(normalize_date(start_date, False, tz))
        if start is None:
            logger.warning("Ignoring unparsable start date %r", start_date)
    if end_date:
        end = parse_iso(normalize_date(end_date, True, tz))
        if end is None:
            logger.warning("Ignoring unparsable end date %r", end_date)
    return start, end


def time_ago(value: datetime, now: datetime | None = None) -> str:
    """Return a short relative description such as ``3h ago``."""
    now = now or datetime.now(timezone.utc)
    seconds = (now - value).total_seconds()
    minutes = int(seconds // 60)
    hours = int(seconds // 3600)
    days = int(seconds // 86400)

    if minutes < 1:
        return "just now"
    if minutes < 60:
        return f"{minutes}m ago"
    if hours < 24:
        return f"{hours}h ago"
    if days < 7:
        return f"{days}d ago"
    if days < 30:
        return f"{days // 7}w ago"
    if days < 365:
        return f"{days // 30}mo ago"
    return f"{days // 365}y ago"


def _format_time(value: time) -> str:
    return f"{value:%H:%M:%S}.{value.microsecond // 1000:03d}"
