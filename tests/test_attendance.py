import csv
import io
from datetime import date

import pytest
from pymongo.errors import DuplicateKeyError

from alumni_portal.core.errors import InvalidRequestError, NotFoundError, PermissionDeniedError
from alumni_portal.db.mongodb import COLLECTIONS
from alumni_portal.services.attendance_service import render_report_csv


@pytest.fixture
def cohort(make_user):
    return {
        "a": make_user("student", "E-2", "CSE", full_name="Anil", student_id="R200001"),
        "b": make_user("student", "E-2", "CSE", full_name="Bhavana"),
        "c": make_user("student", "E-2", "CSE", full_name="Chitra"),
        "outsider": make_user("student", "E-4", "MECH", full_name="Outsider"),
    }


@pytest.fixture
def make_session(service, admin, alumni, request_payload):
    def _make(session_date=date(2026, 10, 18), session_time="10:00", **payload):
        request = service.submit_request(alumni, request_payload(**payload))
        return service.approve_request(request["_id"], admin, "Hall A", session_date, session_time)["session"]

    return _make


@pytest.fixture
def past_session(make_session):
    return make_session(session_date=date(2026, 10, 10))


# ============================================================
# INTENT
# ============================================================

def test_repeated_answers_keep_one_record(db, attendance_service, make_session, cohort):
    session = make_session()
    for answer in (True, True, False):
        attendance_service.submit_attendance(session["_id"], cohort["a"], answer)

    records = list(db[COLLECTIONS["attendance"]].find({"session_id": session["_id"]}))
    assert len(records) == 1
    assert records[0]["will_attend"] is False
    assert records[0]["feedback_submitted"] is False
    assert attendance_service.get_attendance(session["_id"], cohort["a"])["will_attend"] is False


def test_ineligible_student_cannot_answer(db, attendance_service, make_session, cohort):
    session = make_session()
    with pytest.raises(PermissionDeniedError, match="not eligible"):
        attendance_service.submit_attendance(session["_id"], cohort["outsider"], True)
    assert db[COLLECTIONS["attendance"]].count_documents({}) == 0


def test_answer_must_be_boolean(attendance_service, make_session, cohort):
    session = make_session()
    with pytest.raises(InvalidRequestError):
        attendance_service.submit_attendance(session["_id"], cohort["a"], "yes")


def test_unknown_session(attendance_service, cohort):
    with pytest.raises(NotFoundError, match="Session not found"):
        attendance_service.submit_attendance("65f000000000000000000000", cohort["a"], True)


def test_no_answer_yet(attendance_service, make_session, cohort):
    assert attendance_service.get_attendance(make_session()["_id"], cohort["a"]) is None


def test_unique_index_rejects_duplicate_records(db, make_session, cohort):
    session = make_session()
    collection = db[COLLECTIONS["attendance"]]
    collection.insert_one({"session_id": session["_id"], "student_id": cohort["a"]["_id"]})
    with pytest.raises(DuplicateKeyError):
        collection.insert_one({"session_id": session["_id"], "student_id": cohort["a"]["_id"]})


# ============================================================
# FEEDBACK
# ============================================================

def test_feedback_requires_completed_session(attendance_service, make_session, cohort):
    upcoming = make_session()
    ongoing = make_session(session_date=date(2026, 10, 17), session_time="10:00")
    for session in (upcoming, ongoing):
        with pytest.raises(InvalidRequestError, match="completed sessions"):
            attendance_service.submit_feedback(session["_id"], cohort["a"], "Great talk", 5)


def test_feedback_on_past_session(attendance_service, past_session, cohort):
    record = attendance_service.submit_feedback(past_session["_id"], cohort["a"], "  Great talk  ", 4)
    assert record["feedback_submitted"] is True
    assert record["feedback_text"] == "Great talk"
    assert record["feedback_rating"] == 4


def test_feedback_on_manually_completed_session(service, attendance_service, make_session, cohort):
    session = make_session()
    service.update_status(session["_id"], "completed")
    record = attendance_service.submit_feedback(session["_id"], cohort["a"], "Useful", None)
    assert record["feedback_rating"] is None


@pytest.mark.parametrize("text, rating, message", [
    ("", 3, "Feedback text is required"),
    ("   ", 3, "Feedback text is required"),
    (None, 3, "Feedback text is required"),
    ("x" * 1001, 3, "at most 1000"),
    ("Fine", 0, "between 1 and 5"),
    ("Fine", 6, "between 1 and 5"),
    ("Fine", True, "between 1 and 5"),
])
def test_feedback_validation(attendance_service, past_session, cohort, text, rating, message):
    with pytest.raises(InvalidRequestError, match=message):
        attendance_service.submit_feedback(past_session["_id"], cohort["a"], text, rating)


def test_ineligible_student_cannot_leave_feedback(attendance_service, past_session, cohort):
    with pytest.raises(PermissionDeniedError):
        attendance_service.submit_feedback(past_session["_id"], cohort["outsider"], "Sneaky", 5)


def test_intent_and_feedback_share_a_record(db, attendance_service, make_session, cohort, clock):
    session = make_session()
    attendance_service.submit_attendance(session["_id"], cohort["a"], True)

    clock.advance(days=2)
    attendance_service.submit_feedback(session["_id"], cohort["a"], "Worth it", 5)

    records = list(db[COLLECTIONS["attendance"]].find({"session_id": session["_id"]}))
    assert len(records) == 1
    assert records[0]["will_attend"] is True
    assert records[0]["feedback_submitted"] is True
    assert records[0]["feedback_rating"] == 5


# ============================================================
# STATS AND REPORT
# ============================================================

def test_stats_only_count_eligible_students(db, attendance_service, past_session, cohort):
    attendance_service.submit_attendance(past_session["_id"], cohort["a"], True)
    attendance_service.submit_attendance(past_session["_id"], cohort["b"], False)
    attendance_service.submit_feedback(past_session["_id"], cohort["a"], "Good", 4)
    attendance_service.submit_feedback(past_session["_id"], cohort["b"], "Okay", None)
    # A stale record from someone outside the audience
    db[COLLECTIONS["attendance"]].insert_one({
        "session_id": past_session["_id"], "student_id": cohort["outsider"]["_id"], "will_attend": True,
    })

    assert attendance_service.stats(past_session["_id"]) == {
        "eligible_count": 3,
        "total_responses": 2,
        "will_attend_count": 1,
        "will_not_attend_count": 1,
        "response_rate": 66.67,
        "will_attend_percentage": 50.0,
        "will_not_attend_percentage": 50.0,
        "feedback_submitted_count": 2,
        "feedback_submitted_percentage": 100.0,
        "average_rating": 4.0,
    }


def test_stats_without_responses(attendance_service, make_session, cohort):
    stats = attendance_service.stats(make_session()["_id"])
    assert stats["eligible_count"] == 3
    assert stats["total_responses"] == 0
    assert stats["response_rate"] == 0.0
    assert stats["will_attend_percentage"] == 0.0
    assert stats["average_rating"] is None


def test_report_lists_every_eligible_student(attendance_service, past_session, cohort):
    attendance_service.submit_attendance(past_session["_id"], cohort["a"], True)
    attendance_service.submit_feedback(past_session["_id"], cohort["a"], "Good", 4)

    report = attendance_service.report(past_session["_id"])

    assert [r["Student Name"] for r in report["rows"]] == ["Anil", "Bhavana", "Chitra"]
    anil, bhavana = report["rows"][0], report["rows"][1]
    assert anil["Student ID"] == "R200001"
    assert anil["Will Attend"] == "Yes"
    assert anil["Feedback Rating"] == "4/5"
    assert anil["Feedback Text"] == "Good"
    assert bhavana["Will Attend"] == "No Response"
    assert bhavana["Student ID"] == "N/A"
    assert bhavana["Feedback Submitted"] == "No"

    info = report["session_info"]
    assert info["Session Date"] == "2026-10-10"
    assert info["Total Eligible Students"] == 3
    assert info["Response Rate"] == "33.33%"
    assert info["Average Rating"] == "4.00"


def test_report_csv(attendance_service, past_session, cohort):
    attendance_service.submit_attendance(past_session["_id"], cohort["b"], False)
    rows = list(csv.reader(io.StringIO(render_report_csv(attendance_service.report(past_session["_id"])))))

    assert rows[0] == ["Session Title", "Cracking Product Interviews"]
    blank = rows.index([])
    header = rows[blank + 1]
    assert header[:3] == ["Student Name", "Student ID", "Email"]
    body = rows[blank + 2:]
    assert len(body) == 3
    assert body[1][header.index("Will Attend")] == "No"
