"""Daily trigger time from a cron-style schedule expression.

Only a fixed time of day is supported. Both the Spring six-field form
(``sec min hour dom mon dow``) and classic five-field cron
(``min hour dom mon dow``) are accepted, as long as the date fields are
wildcards.
"""

from __future__ import annotations

from datetime import datetime, time, timedelta
from zoneinfo import ZoneInfo

_WILDCARDS = {"*", "?"}


def parse_schedule_time(expression: str) -> time:
    """Return the daily fire time encoded in *expression*.

    Raises ValueError for anything that is not a plain daily schedule.
    """
    fields = (expression or "").split()
    if len(fields) == 6:
        second, minute, hour, *date_fields = fields
    elif len(fields) == 5:
        second = "0"
        minute, hour, *date_fields = fields
    else:
        raise ValueError(f"schedule expression must have 5 or 6 fields: {expression!r}")

    for value in date_fields:
        if value not in _WILDCARDS:
            raise ValueError(
                f"only daily schedules are supported, got {value!r} in {expression!r}"
            )

    try:
        fire_time = time(int(hour), int(minute), int(second))
    except ValueError as e:
        raise ValueError(f"invalid time in schedule expression {expression!r}: {e}") from e
    return fire_time


def next_run_after(now: datetime, expression: str, timezone: str) -> datetime:
    """Next fire instant strictly after *now*, as an aware datetime in *timezone*."""
    tz = ZoneInfo(timezone)
    fire_time = parse_schedule_time(expression)
    local_now = now.astimezone(tz) if now.tzinfo else now.replace(tzinfo=tz)

    candidate = datetime.combine(local_now.date(), fire_time, tzinfo=tz)
    if candidate <= local_now:
        candidate = datetime.combine(local_now.date() + timedelta(days=1), fire_time, tzinfo=tz)
    return candidate
