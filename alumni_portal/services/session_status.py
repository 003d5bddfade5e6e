"""
Status Deriver

A session's displayed status is computed on every read instead of by a
background scheduler. Priority:

1. manually completed  -> completed   (permanent)
2. stored cancelled    -> cancelled   (never recomputed from time)
3. otherwise from the calendar:
   - another day in the future -> upcoming
   - another day in the past   -> completed
   - today: [start, start + 120 min] -> ongoing, before -> upcoming, after -> completed

The result depends only on (status, manually_completed, date, time, now).
"""

from datetime import date, datetime
from typing import Optional, Union

from alumni_portal.schemas.schemas import SessionStatus

SESSION_WINDOW_MINUTES = 120


def time_to_minutes(time_of_day: Optional[str]) -> int:
    """'HH:MM' -> minutes since midnight. Malformed values count as midnight."""
    try:
        hours, minutes = (time_of_day or "00:00").split(":")[:2]
        return int(hours) * 60 + int(minutes)
    except (ValueError, AttributeError):
        return 0


def _as_date(value: Union[date, datetime]) -> date:
    return value.date() if isinstance(value, datetime) else value


def derive_status(
    stored_status: Optional[str],
    manually_completed: bool,
    session_date: Union[date, datetime],
    time_of_day: Optional[str],
    now: datetime,
) -> str:
    if manually_completed:
        return SessionStatus.completed.value
    if stored_status == SessionStatus.cancelled.value:
        return SessionStatus.cancelled.value

    day = _as_date(session_date)
    today = now.date()
    if day > today:
        return SessionStatus.upcoming.value
    if day < today:
        return SessionStatus.completed.value

    start = time_to_minutes(time_of_day)
    end = start + SESSION_WINDOW_MINUTES
    current = now.hour * 60 + now.minute
    if current < start:
        return SessionStatus.upcoming.value
    if current <= end:
        return SessionStatus.ongoing.value
    return SessionStatus.completed.value


def derive_session_status(session: dict, now: datetime) -> str:
    return derive_status(
        session.get("status"),
        bool(session.get("manually_completed")),
        session["date"],
        session.get("time"),
        now,
    )


def needs_refresh(stored_status: Optional[str], manually_completed: bool, effective: str) -> bool:
    """Whether the stored status is stale and may be written back."""
    if manually_completed or stored_status == SessionStatus.cancelled.value:
        return False
    return stored_status != effective
