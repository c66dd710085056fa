"""Deadline parsing, formatting, reminder timing and quiet windows.

Reference time is Monday 2024-03-11 07:00 UTC, which is 12:00 in
Asia/Karachi (UTC+5). End of day local is 18:59:59.999 UTC.
"""

from datetime import datetime, timedelta

import pytest

from core.due_dates import parse_deadline, format_deadline, time_until_deadline, compute_reminder_times
from core.quiet_hours import QuietWindowPolicy, parse_window
from core.task import ReminderType

NOW = datetime(2024, 3, 11, 7, 0)


@pytest.mark.parametrize('raw, expected', [
    ('friday', datetime(2024, 3, 15, 18, 59, 59, 999000)),
    ('by Friday', datetime(2024, 3, 15, 18, 59, 59, 999000)),
    ('monday', datetime(2024, 3, 18, 18, 59, 59, 999000)),
    ('tomorrow', datetime(2024, 3, 12, 18, 59, 59, 999000)),
    ('today', datetime(2024, 3, 11, 18, 59, 59, 999000)),
    ('EOD', datetime(2024, 3, 11, 18, 59, 59, 999000)),
    ('next week', datetime(2024, 3, 18, 18, 59, 59, 999000)),
    ('in 2 days', datetime(2024, 3, 13, 18, 59, 59, 999000)),
    ('in 3 hours', datetime(2024, 3, 11, 10, 0)),
])
def test_relative_expressions(raw, expected):
    assert parse_deadline(raw, now=NOW) == expected


def test_iso_inputs():
    """Date-only is end of day local; naive times are local; offsets are honoured."""
    assert parse_deadline('2024-03-20', now=NOW) == datetime(2024, 3, 20, 18, 59, 59, 999000)
    assert parse_deadline('2024-03-20T10:00:00', now=NOW) == datetime(2024, 3, 20, 5, 0)
    assert parse_deadline('2024-03-20T10:00:00+00:00', now=NOW) == datetime(2024, 3, 20, 10, 0)


@pytest.mark.parametrize('raw', [None, '', '   ', 'someday', 'when you can'])
def test_unparsable_is_none(raw):
    assert parse_deadline(raw, now=NOW) is None


def test_format_and_time_left():
    deadline = datetime(2024, 3, 15, 18, 59, 59, 999000)
    assert format_deadline(deadline) == 'Friday, March 15, 2024'
    assert time_until_deadline(NOW + timedelta(days=2, hours=5), now=NOW) == '2d 5h'
    assert time_until_deadline(NOW + timedelta(hours=7, minutes=30), now=NOW) == '7h'
    assert time_until_deadline(NOW - timedelta(minutes=1), now=NOW) == 'overdue'


def test_reminder_times_both_in_future():
    deadline = NOW + timedelta(days=4)
    times = compute_reminder_times(NOW, deadline, now=NOW)
    assert times == [
        (ReminderType.FIFTY_PERCENT, NOW + timedelta(days=2)),
        (ReminderType.TWENTY_FOUR_HOUR, NOW + timedelta(days=3)),
    ]


def test_reminder_times_drop_past_slots():
    """A short deadline has no 24-hour slot; a late start loses the halfway slot."""
    short = compute_reminder_times(NOW, NOW + timedelta(hours=12), now=NOW)
    assert [kind for kind, _ in short] == [ReminderType.FIFTY_PERCENT]

    late = compute_reminder_times(NOW, NOW + timedelta(days=4), now=NOW + timedelta(days=2, hours=1))
    assert [kind for kind, _ in late] == [ReminderType.TWENTY_FOUR_HOUR]

    assert compute_reminder_times(NOW, NOW - timedelta(hours=1), now=NOW) == []


def test_parse_window():
    start, end = parse_window('13:00-13:30')
    assert (start.hour, start.minute, end.hour, end.minute) == (13, 0, 13, 30)
    with pytest.raises(ValueError):
        parse_window('lunch')


def test_quiet_window_boundaries():
    """Start is inside the window, end is outside."""
    policy = QuietWindowPolicy(windows=[parse_window('13:00-13:30')])
    assert policy.should_defer(datetime(2024, 3, 11, 8, 0))       # 13:00 local
    assert policy.should_defer(datetime(2024, 3, 11, 8, 29))      # 13:29 local
    assert not policy.should_defer(datetime(2024, 3, 11, 8, 30))  # 13:30 local
    assert not policy.should_defer(NOW)


def test_quiet_window_wraps_midnight():
    policy = QuietWindowPolicy(windows=[parse_window('22:00-06:00')])
    late = datetime(2024, 3, 11, 20, 0)  # 01:00 local on the 12th
    assert policy.should_defer(late)
    assert policy.next_available(late) == datetime(2024, 3, 12, 1, 0)
    assert policy.next_available(NOW) == NOW


def test_friday_window_only_on_fridays():
    policy = QuietWindowPolicy(friday_window=parse_window('13:00-14:30'))
    assert policy.should_defer(datetime(2024, 3, 15, 8, 15))
    assert not policy.should_defer(datetime(2024, 3, 11, 8, 15))
