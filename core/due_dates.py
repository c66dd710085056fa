"""Deadline parsing, formatting and reminder timing.

Deadlines are stored as naive UTC. Relative expressions ("tomorrow",
"friday", "in 3 days") resolve against the configured TIMEZONE and land on
end of day, 23:59:59.999 local time.
"""

import logging
import re
from typing import Optional, List, Tuple
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from dateutil import parser as date_parser

from db import utcnow
from . import config
from .task import ReminderType

logger = logging.getLogger(__name__)

WEEKDAYS = ['monday', 'tuesday', 'wednesday', 'thursday', 'friday', 'saturday', 'sunday']

_IN_HOURS = re.compile(r'in\s+(\d+)\s+hours?')
_IN_DAYS = re.compile(r'in\s+(\d+)\s+days?')


def local_tz() -> ZoneInfo:
    return ZoneInfo(config.TIMEZONE)


def to_local(value: datetime) -> datetime:
    """Convert a naive UTC datetime to an aware local one."""
    return value.replace(tzinfo=timezone.utc).astimezone(local_tz())


def to_utc_naive(value: datetime) -> datetime:
    """Convert an aware datetime (or a naive local one) to naive UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=local_tz())
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def end_of_day(local_value: datetime) -> datetime:
    return local_value.replace(hour=23, minute=59, second=59, microsecond=999000)


def _parse_iso(raw: str) -> Optional[datetime]:
    if not raw[:4].isdigit():
        return None
    try:
        parsed = date_parser.isoparse(raw)
    except (ValueError, OverflowError):
        return None
    if len(raw) == 10:
        # Date only: that day, end of day local
        return to_utc_naive(end_of_day(parsed.replace(tzinfo=local_tz())))
    return to_utc_naive(parsed)


def parse_deadline(raw: Optional[str], now: Optional[datetime] = None) -> Optional[datetime]:
    """Parse a deadline expression into a naive UTC datetime.

    Args:
        raw: ISO-8601 text or a relative expression such as "today", "eod",
            "tomorrow", "friday", "by Friday", "in 4 hours", "in 2 days",
            "next week"
        now: Naive UTC reference time (defaults to utcnow)

    Returns:
        Naive UTC datetime, or None when the expression is not understood
    """
    if not raw or not raw.strip():
        return None

    text = raw.strip()
    iso = _parse_iso(text)
    if iso is not None:
        return iso

    now_local = to_local(now or utcnow())
    lower = text.lower()

    if lower in ('today', 'eod', 'end of day'):
        return to_utc_naive(end_of_day(now_local))
    if lower == 'tomorrow':
        return to_utc_naive(end_of_day(now_local + timedelta(days=1)))
    if lower == 'next week':
        return to_utc_naive(end_of_day(now_local + timedelta(days=7)))

    for index, day in enumerate(WEEKDAYS):
        if day in lower:
            # Strictly the next occurrence: on a Friday, "friday" means a week out.
            days_ahead = (index - now_local.weekday()) % 7 or 7
            return to_utc_naive(end_of_day(now_local + timedelta(days=days_ahead)))

    match = _IN_HOURS.search(lower)
    if match:
        return (now or utcnow()) + timedelta(hours=int(match.group(1)))

    match = _IN_DAYS.search(lower)
    if match:
        return to_utc_naive(end_of_day(now_local + timedelta(days=int(match.group(1)))))

    logger.info(f"Could not parse deadline expression: {raw!r}")
    return None


def format_deadline(deadline: datetime) -> str:
    """Render a naive UTC deadline like 'Friday, March 15, 2024' in local time."""
    local = to_local(deadline)
    return f"{local:%A, %B} {local.day}, {local.year}"


def format_datetime(value: datetime) -> str:
    local = to_local(value)
    hour = local.hour % 12 or 12
    return f"{format_deadline(value)} {hour}:{local:%M %p} {local.tzname()}"


def time_until_deadline(deadline: datetime, now: Optional[datetime] = None) -> str:
    """Human-readable time remaining: 'Nd Hh', 'Hh' or 'overdue'."""
    remaining = deadline - (now or utcnow())
    if remaining.total_seconds() <= 0:
        return 'overdue'
    hours = int(remaining.total_seconds() // 3600)
    days, rest = divmod(hours, 24)
    if days > 0:
        return f"{days}d {rest}h"
    return f"{hours}h"


def compute_reminder_times(created_at: datetime, deadline: datetime,
                           now: Optional[datetime] = None) -> List[Tuple[ReminderType, datetime]]:
    """Fire times for the halfway and 24-hour reminders of a task.

    Only fire times strictly after `now` are returned; a missed window is
    dropped rather than fired late.

    Args:
        created_at: Task creation time (naive UTC)
        deadline: Task deadline (naive UTC)
        now: Reference time, defaults to utcnow

    Returns:
        List of (ReminderType, fire time) pairs, halfway first
    """
    now = now or utcnow()
    candidates = [
        (ReminderType.FIFTY_PERCENT, created_at + (deadline - created_at) / 2),
        (ReminderType.TWENTY_FOUR_HOUR, deadline - timedelta(hours=24)),
    ]
    return [(kind, fire_at) for kind, fire_at in candidates if fire_at > now]
