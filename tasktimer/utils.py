"""
Utility functions for the tasktimer time tracker.

This module centralises the arithmetic every other layer relies on:
converting a pair of timestamps into whole minutes, rendering minute counts
as ``H:MM`` strings, locating calendar day/week boundaries and leniently
parsing dates that arrive as query parameters.
"""
from __future__ import annotations

import math
from datetime import date, datetime, time, timedelta
from typing import Optional, Tuple, Union


# Python weekday numbering (Monday == 0).  Weeks start on Sunday.
WEEK_START_DAY = 6

MS_PER_MINUTE = 60_000


def compute_duration_minutes(start: datetime, end: datetime) -> int:
    """
    Return the elapsed time between ``start`` and ``end`` in whole minutes.

    Rounds to the nearest minute with halves rounded up, so 30 seconds count
    as one minute and 29.999 seconds as none.

    :raises ValueError: if ``end`` precedes ``start``.
    """
    if end < start:
        raise ValueError("end time precedes start time")
    elapsed_ms = (end - start) / timedelta(milliseconds=1)
    return int(math.floor(elapsed_ms / MS_PER_MINUTE + 0.5))


def format_duration(minutes: Optional[int]) -> str:
    """Format a minute count as ``H:MM``; ``0`` and ``None`` give ``0:00``."""
    if not minutes:
        return "0:00"
    minutes = int(minutes)
    hours, mins = divmod(minutes, 60)
    return f"{hours}:{mins:02d}"


def start_of_day(moment: Union[datetime, date]) -> datetime:
    if isinstance(moment, datetime):
        moment = moment.date()
    return datetime.combine(moment, time.min)


def end_of_day(moment: Union[datetime, date]) -> datetime:
    if isinstance(moment, datetime):
        moment = moment.date()
    return datetime.combine(moment, time.max)


def start_of_week(moment: Union[datetime, date]) -> datetime:
    """Return midnight of the first day of the week containing ``moment``."""
    day = start_of_day(moment)
    return day - timedelta(days=(day.weekday() - WEEK_START_DAY) % 7)


def week_bounds(moment: Union[datetime, date]) -> Tuple[datetime, datetime]:
    """Return the inclusive ``(first instant, last instant)`` of a week."""
    first = start_of_week(moment)
    return first, end_of_day(first + timedelta(days=6))


def parse_datetime(value: Union[str, datetime, date, None]) -> Optional[datetime]:
    """
    Leniently convert ``value`` into a naive ``datetime``.

    Accepts ``datetime``/``date`` objects and ISO-8601 strings (a trailing
    ``Z`` is tolerated).  Aware values are converted to local time.  Returns
    ``None`` for empty or unparseable input.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        return start_of_day(value)
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed


def is_date_only(value: Union[str, datetime, date, None]) -> bool:
    if isinstance(value, datetime):
        return False
    if isinstance(value, date):
        return True
    text = str(value or "").strip()
    try:
        datetime.strptime(text, "%Y-%m-%d")
    except ValueError:
        return False
    return True


def parse_date_range(start_value, end_value) -> Optional[Tuple[datetime, datetime]]:
    """
    Build an inclusive ``(start, end)`` filter from two raw query values.

    Both values must parse, otherwise no filter applies (malformed input is
    ignored rather than rejected).  A date-only end value covers that whole
    day.
    """
    start = parse_datetime(start_value)
    end = parse_datetime(end_value)
    if start is None or end is None:
        return None
    if is_date_only(end_value):
        end = end_of_day(end)
    return start, end
