"""Quiet-window deferral policy for background deliveries.

A quiet window is a local time range (e.g. "13:00-13:30") during which
reminders are requeued instead of sent. Windows may wrap midnight
("22:00-06:00"). An extra window can be configured for Fridays only.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, time, timedelta
from typing import List, Optional, Tuple

from db import utcnow
from . import config
from .due_dates import to_local, to_utc_naive

logger = logging.getLogger(__name__)

FRIDAY = 4

Window = Tuple[time, time]


def parse_window(value: str) -> Window:
    """Parse 'HH:MM-HH:MM' into a (start, end) pair."""
    try:
        start_raw, end_raw = value.split('-', 1)
        start = datetime.strptime(start_raw.strip(), '%H:%M').time()
        end = datetime.strptime(end_raw.strip(), '%H:%M').time()
    except ValueError:
        raise ValueError(f"Invalid quiet window {value!r}, expected HH:MM-HH:MM")
    return start, end


def _contains(window: Window, moment: time) -> bool:
    start, end = window
    if start <= end:
        return start <= moment < end
    return moment >= start or moment < end


@dataclass
class QuietWindowPolicy:
    windows: List[Window] = field(default_factory=list)
    friday_window: Optional[Window] = None
    defer_minutes: int = 30

    @classmethod
    def from_config(cls) -> 'QuietWindowPolicy':
        return cls(
            windows=[parse_window(w) for w in config.QUIET_WINDOWS],
            friday_window=parse_window(config.QUIET_FRIDAY_WINDOW) if config.QUIET_FRIDAY_WINDOW else None,
            defer_minutes=config.QUIET_DEFER_MINUTES,
        )

    @property
    def defer_delay(self) -> timedelta:
        return timedelta(minutes=self.defer_minutes)

    def _active_window(self, now: datetime) -> Optional[Window]:
        local = to_local(now)
        moment = local.time().replace(tzinfo=None)
        candidates = list(self.windows)
        if self.friday_window and local.weekday() == FRIDAY:
            candidates.append(self.friday_window)
        for window in candidates:
            if _contains(window, moment):
                return window
        return None

    def should_defer(self, now: Optional[datetime] = None) -> bool:
        """True when `now` (naive UTC) falls inside any quiet window."""
        return self._active_window(now or utcnow()) is not None

    def next_available(self, now: Optional[datetime] = None) -> datetime:
        """End of the quiet window containing `now`, or `now` if none applies."""
        now = now or utcnow()
        window = self._active_window(now)
        if window is None:
            return now
        local = to_local(now)
        end = local.replace(hour=window[1].hour, minute=window[1].minute, second=0, microsecond=0)
        if end <= local:
            end += timedelta(days=1)
        return to_utc_naive(end)
