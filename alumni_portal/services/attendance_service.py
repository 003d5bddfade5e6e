"""
Attendance Service

Students record whether they will attend a session and, once it is
over, leave feedback. Both land on the same record, one per
(session, student); the unique index makes every write an atomic upsert.

Admin statistics and the report are always derived by joining the
attendance records against the current eligible-student set.
"""

import csv
import io
import logging
from datetime import datetime
from typing import Callable, Optional

from pymongo.database import Database

from alumni_portal.core.errors import InvalidRequestError, NotFoundError, PermissionDeniedError
from alumni_portal.schemas.schemas import SessionStatus
from alumni_portal.services.eligibility import is_student_eligible
from alumni_portal.services.mongo_service import AttendanceStore, SessionStore, UserStore
from alumni_portal.services.session_status import derive_session_status

logger = logging.getLogger(__name__)

MAX_FEEDBACK_LENGTH = 1000
MIN_RATING, MAX_RATING = 1, 5


def _percent(part: int, whole: int) -> float:
    return round(part / whole * 100, 2) if whole else 0.0


def _fmt(value: Optional[datetime]) -> str:
    return value.strftime("%Y-%m-%d %H:%M") if value else "N/A"


class AttendanceService:

    def __init__(self, db: Database = None, clock: Callable[[], datetime] = datetime.now):
        self.sessions = SessionStore(db)
        self.users = UserStore(db)
        self.attendance = AttendanceStore(db)
        self.clock = clock

    def _load_session(self, session_id) -> dict:
        session = self.sessions.get_by_id(session_id)
        if not session:
            raise NotFoundError("Session not found")
        return session

    @staticmethod
    def _require_eligible(student: dict, session: dict) -> None:
        if not is_student_eligible(student, session):
            raise PermissionDeniedError("You are not eligible for this session")

    # ------------------------------------------------------------
    # Student operations
    # ------------------------------------------------------------

    def get_attendance(self, session_id, student: dict) -> Optional[dict]:
        session = self._load_session(session_id)
        self._require_eligible(student, session)
        return self.attendance.get(session["_id"], student["_id"])

    def submit_attendance(self, session_id, student: dict, will_attend) -> dict:
        if not isinstance(will_attend, bool):
            raise InvalidRequestError("will_attend must be a boolean value")

        session = self._load_session(session_id)
        self._require_eligible(student, session)

        record = self.attendance.upsert_intent(session["_id"], student["_id"], will_attend)
        logger.info("Student %s answered will_attend=%s for session %s",
                    student["_id"], will_attend, session["_id"])
        return record

    def submit_feedback(self, session_id, student: dict,
                        feedback_text: Optional[str], feedback_rating: Optional[int] = None) -> dict:
        text = (feedback_text or "").strip()
        if not text:
            raise InvalidRequestError("Feedback text is required")
        if len(text) > MAX_FEEDBACK_LENGTH:
            raise InvalidRequestError(f"Feedback text must be at most {MAX_FEEDBACK_LENGTH} characters")
        if feedback_rating is not None:
            if isinstance(feedback_rating, bool) or not isinstance(feedback_rating, int) \
                    or not MIN_RATING <= feedback_rating <= MAX_RATING:
                raise InvalidRequestError(f"Rating must be an integer between {MIN_RATING} and {MAX_RATING}")

        session = self._load_session(session_id)
        if derive_session_status(session, self.clock()) != SessionStatus.completed.value:
            raise InvalidRequestError("Feedback can only be submitted for completed sessions")
        self._require_eligible(student, session)

        return self.attendance.upsert_feedback(session["_id"], student["_id"], text, feedback_rating)

    # ------------------------------------------------------------
    # Admin reporting
    # ------------------------------------------------------------

    def _eligible_records(self, session: dict):
        """Eligible students and their attendance records, keyed by student id."""
        students = self.users.find_eligible_students(session)
        eligible_ids = {s["_id"] for s in students}
        records = {
            r["student_id"]: r
            for r in self.attendance.list_for_session(session["_id"])
            if r["student_id"] in eligible_ids
        }
        return students, records

    def stats(self, session_id) -> dict:
        session = self._load_session(session_id)
        students, records = self._eligible_records(session)

        responses = list(records.values())
        total = len(responses)
        will_attend = sum(1 for r in responses if r.get("will_attend") is True)
        will_not_attend = sum(1 for r in responses if r.get("will_attend") is False)
        feedback = [r for r in responses if r.get("feedback_submitted")]
        ratings = [r["feedback_rating"] for r in feedback if r.get("feedback_rating") is not None]

        return {
            "eligible_count": len(students),
            "total_responses": total,
            "will_attend_count": will_attend,
            "will_not_attend_count": will_not_attend,
            "response_rate": _percent(total, len(students)),
            "will_attend_percentage": _percent(will_attend, total),
            "will_not_attend_percentage": _percent(will_not_attend, total),
            "feedback_submitted_count": len(feedback),
            "feedback_submitted_percentage": _percent(len(feedback), total),
            "average_rating": round(sum(ratings) / len(ratings), 2) if ratings else None,
        }

    def report(self, session_id) -> dict:
        """Tabular attendance report; rendering to a file format is left to the caller."""
        session = self._load_session(session_id)
        students, records = self._eligible_records(session)
        stats = self.stats(session["_id"])

        rows = []
        for student in students:
            record = records.get(student["_id"])
            if record is None or record.get("will_attend") is None:
                answer = "No Response"
            else:
                answer = "Yes" if record["will_attend"] else "No"
            rating = record.get("feedback_rating") if record else None
            rows.append({
                "Student Name": student.get("full_name", ""),
                "Student ID": student.get("student_id") or "N/A",
                "Email": student.get("email", ""),
                "Department": student.get("department") or "N/A",
                "Year": student.get("year_of_study") or "N/A",
                "Will Attend": answer,
                "Response Date": _fmt(record.get("response_date") if record else None),
                "Feedback Submitted": "Yes" if record and record.get("feedback_submitted") else "No",
                "Feedback Rating": f"{rating}/5" if rating else "N/A",
                "Feedback Text": (record.get("feedback_text") if record else None) or "N/A",
                "Feedback Date": _fmt(record.get("feedback_date") if record else None),
            })

        session_info = {
            "Session Title": session["title"],
            "Session Date": session["date"].strftime("%Y-%m-%d"),
            "Session Time": session.get("time", ""),
            "Target Audience": ", ".join(session.get("target_audience") or []),
            "Target Departments": ", ".join(session.get("target_departments") or []),
            "Total Eligible Students": stats["eligible_count"],
            "Total Responses": stats["total_responses"],
            "Will Attend Count": stats["will_attend_count"],
            "Will Not Attend Count": stats["will_not_attend_count"],
            "Response Rate": f"{stats['response_rate']:.2f}%",
            "Feedback Submitted Count": stats["feedback_submitted_count"],
            "Average Rating": f"{stats['average_rating']:.2f}" if stats["average_rating"] is not None else "N/A",
        }
        return {"session_info": session_info, "rows": rows}


def render_report_csv(report: dict) -> str:
    """Session info block, a blank line, then one row per eligible student."""
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    for key, value in report["session_info"].items():
        writer.writerow([key, value])
    writer.writerow([])
    if report["rows"]:
        headers = list(report["rows"][0].keys())
        writer.writerow(headers)
        for row in report["rows"]:
            writer.writerow([row[h] for h in headers])
    return buffer.getvalue()
