from datetime import date, datetime

import pytest

from alumni_portal.services.session_status import (
    SESSION_WINDOW_MINUTES, derive_session_status, derive_status, needs_refresh, time_to_minutes
)

TODAY = date(2026, 10, 17)


def at(hour, minute=0):
    return datetime(2026, 10, 17, hour, minute)


@pytest.mark.parametrize("session_date, time_of_day, now", [
    (date(2026, 10, 18), "10:00", at(9)),
    (TODAY, "10:00", at(10, 30)),
    (date(2020, 1, 1), "00:00", at(23, 59)),
])
@pytest.mark.parametrize("stored", ["pending", "upcoming", "ongoing", "cancelled"])
def test_manual_completion_always_wins(session_date, time_of_day, now, stored):
    assert derive_status(stored, True, session_date, time_of_day, now) == "completed"


@pytest.mark.parametrize("session_date, time_of_day, now", [
    (date(2026, 10, 18), "10:00", at(9)),
    (TODAY, "10:00", at(10, 30)),
    (date(2020, 1, 1), "00:00", at(23, 59)),
])
def test_cancelled_is_never_recomputed(session_date, time_of_day, now):
    assert derive_status("cancelled", False, session_date, time_of_day, now) == "cancelled"


@pytest.mark.parametrize("now, expected", [
    (at(9, 59), "upcoming"),
    (at(10, 0), "ongoing"),
    (at(11, 0), "ongoing"),
    (at(12, 0), "ongoing"),   # start + 120 min is still inside the window
    (at(12, 1), "completed"),
    (at(23, 0), "completed"),
])
def test_window_today(now, expected):
    assert derive_status("upcoming", False, TODAY, "10:00", now) == expected


def test_window_is_two_hours():
    assert SESSION_WINDOW_MINUTES == 120


def test_other_days():
    now = at(10)
    assert derive_status("pending", False, date(2026, 10, 18), "01:00", now) == "upcoming"
    assert derive_status("upcoming", False, date(2026, 10, 16), "23:00", now) == "completed"


def test_accepts_datetime_session_dates():
    stored_date = datetime(2026, 10, 17, 0, 0)
    assert derive_status("upcoming", False, stored_date, "10:00", at(10, 30)) == "ongoing"


def test_malformed_time_counts_as_midnight():
    assert time_to_minutes("bogus") == 0
    assert time_to_minutes(None) == 0
    assert time_to_minutes("09:45") == 585
    assert derive_status("upcoming", False, TODAY, None, at(1, 0)) == "ongoing"
    assert derive_status("upcoming", False, TODAY, "xx", at(3, 0)) == "completed"


def test_deterministic_for_single_and_bulk():
    sessions = [
        {"status": "upcoming", "manually_completed": False, "date": datetime(2026, 10, 17), "time": t}
        for t in ("08:00", "09:00", "10:00", "11:00", "12:00")
    ]
    now = at(10, 30)
    single = [derive_session_status(s, now) for s in sessions]
    bulk = list(map(lambda s: derive_session_status(s, now), sessions))
    assert single == bulk == ["completed", "ongoing", "ongoing", "upcoming", "upcoming"]


@pytest.mark.parametrize("stored, manual, effective, expected", [
    ("upcoming", False, "ongoing", True),
    ("ongoing", False, "completed", True),
    ("upcoming", False, "upcoming", False),
    ("cancelled", False, "cancelled", False),
    ("upcoming", True, "completed", False),
])
def test_needs_refresh(stored, manual, effective, expected):
    assert needs_refresh(stored, manual, effective) is expected
