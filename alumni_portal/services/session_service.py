"""
Session Lifecycle Service

Turns a proposal into a scheduled session and keeps everything that
hangs off that transition consistent:

    submit  -> SessionRequest(pending)            -> notify admins
    approve -> SessionRequest(approved) + Session -> notify eligible students + proposer, email
    reject  -> SessionRequest(rejected), linked Sessions cancelled -> notify proposer, email

Request transitions are compare-and-swap updates on the expected prior
status, so two admins racing on the same request cannot both win.

Session status is derived on every read (see session_status). When the
stored value is stale the read schedules a best-effort write-back; the
returned value never depends on that write.
"""

import logging
from datetime import date, datetime, time as dt_time
from typing import Callable, Dict, List, Optional, Type, Union

from bson import ObjectId
from pymongo.database import Database

from alumni_portal.core.errors import (
    ConflictError, InvalidRequestError, NotFoundError, PermissionDeniedError, UpstreamError
)
from alumni_portal.schemas.schemas import (
    NotificationCategory, PROPOSER_ROLES, RequestStatus, SessionStatus, UserRole
)
from alumni_portal.services.eligibility import (
    is_student_eligible, normalize_audience, normalize_departments
)
from alumni_portal.services.email_service import (
    EmailSender, TEMPLATE_REQUEST_APPROVED, TEMPLATE_REQUEST_REJECTED
)
from alumni_portal.services.mongo_service import (
    AttendanceStore, SessionRequestStore, SessionStore, UserStore, to_object_id
)
from alumni_portal.services.notification_service import NotificationFanout
from alumni_portal.services.session_status import derive_session_status, needs_refresh

logger = logging.getLogger(__name__)

APPROVABLE = (RequestStatus.pending.value, RequestStatus.reviewed.value)
REJECTABLE = (RequestStatus.pending.value, RequestStatus.reviewed.value, RequestStatus.approved.value)

EDITABLE_SESSION_FIELDS = (
    "title", "description", "date", "time", "venue", "meeting_link",
    "target_audience", "target_departments",
)

ADMIN_REQUESTS_LINK = "/admin/session-requests"
PROPOSER_PROFILE_LINK = "/alumniprofile"
SESSIONS_LINK = "/sessions"


def _run_now(fn, *args):
    fn(*args)


def parse_session_date(value: Union[date, datetime, str, None]) -> datetime:
    """Sessions are stored at midnight of their calendar day."""
    if isinstance(value, datetime):
        value = value.date()
    elif isinstance(value, str):
        try:
            value = date.fromisoformat(value[:10])
        except ValueError:
            raise InvalidRequestError("Date must be in YYYY-MM-DD format")
    if not isinstance(value, date):
        raise InvalidRequestError("Date is required")
    return datetime.combine(value, dt_time.min)


def parse_time_of_day(value: Optional[str]) -> str:
    parts = (value or "").split(":")
    if len(parts) != 2 or not all(p.isdigit() for p in parts):
        raise InvalidRequestError("Time must be in HH:MM format")
    hours, minutes = int(parts[0]), int(parts[1])
    if hours > 23 or minutes > 59:
        raise InvalidRequestError("Time must be in HH:MM format")
    return f"{hours:02d}:{minutes:02d}"


# ============================================================
# ROLE VIEWS
# Which sessions a caller may see. Dispatched once per request by role.
# ============================================================

class StaffSessionView:
    """Admins, alumni and faculty see every session."""

    def __init__(self, user: dict):
        self.user = user

    def can_view(self, session: dict) -> bool:
        return True


class StudentSessionView(StaffSessionView):
    """Students only see sessions whose audience filters admit them."""

    def can_view(self, session: dict) -> bool:
        return is_student_eligible(self.user, session)


SESSION_VIEWS: Dict[str, Type[StaffSessionView]] = {
    UserRole.student.value: StudentSessionView,
}


def session_view_for(user: dict) -> StaffSessionView:
    return SESSION_VIEWS.get(user.get("role"), StaffSessionView)(user)


class SessionLifecycleService:

    def __init__(
        self,
        db: Database = None,
        fanout: NotificationFanout = None,
        email_sender: EmailSender = None,
        clock: Callable[[], datetime] = datetime.now,
        schedule: Callable = _run_now,
    ):
        self.requests = SessionRequestStore(db)
        self.sessions = SessionStore(db)
        self.users = UserStore(db)
        self.attendance = AttendanceStore(db)
        self.fanout = fanout or NotificationFanout(db)
        self.email_sender = email_sender or EmailSender()
        self.clock = clock
        # Runs status write-backs; the HTTP layer passes BackgroundTasks.add_task
        self.schedule = schedule

    # ============================================================
    # Best-effort side channels
    # ============================================================

    def _notify_students(self, session: dict, title: str, message: str) -> int:
        try:
            students = self.users.find_eligible_students(session)
        except Exception:
            logger.exception("Could not load eligible students for session %s", session.get("_id"))
            return 0
        return self.fanout.fan_out([s["_id"] for s in students], title, message,
                                   NotificationCategory.session, SESSIONS_LINK)

    def _email_proposer(self, request: dict, template: str, admin: dict, **params) -> None:
        try:
            proposer = self.users.get_by_id(request["user_id"])
            address = (proposer or {}).get("email") or request.get("email")
            if not address:
                logger.warning("No email address for proposer %s", request["user_id"])
                return
            self.email_sender.send(address, template, {
                "full_name": (proposer or {}).get("full_name") or request.get("full_name"),
                "session_title": request["session_title"],
                "admin_email": admin.get("email"),
                **params,
            })
        except Exception:
            logger.exception("Failed to send %s email for request %s", template, request["_id"])

    # ============================================================
    # Session requests
    # ============================================================

    def submit_request(self, user: dict, payload: dict) -> dict:
        if user.get("role") not in {r.value for r in PROPOSER_ROLES}:
            raise PermissionDeniedError(f"User role {user.get('role')} is not authorized to propose sessions")

        doc = {
            "user_id": user["_id"],
            "user_type": user["role"],
            "full_name": payload.get("full_name") or user.get("full_name"),
            "email": payload.get("email") or user.get("email"),
            "phone_number": payload.get("phone_number"),
            "affiliation": payload.get("affiliation"),
            "graduation_year": payload.get("graduation_year"),
            "department": payload.get("department"),
            "session_title": payload["session_title"],
            "session_description": payload["session_description"],
            "session_type": payload["session_type"],
            "target_audience": list(payload.get("target_audience") or []),
            "target_departments": list(payload.get("target_departments") or []),
            "preferred_date": payload["preferred_date"],
            "preferred_time": payload["preferred_time"],
            "session_mode": payload["session_mode"],
            "status": RequestStatus.pending.value,
            "created_at": datetime.utcnow(),
        }
        request = self.requests.insert(doc)
        logger.info("Session request %s submitted by %s", request["_id"], user["_id"])

        try:
            admins = [a["_id"] for a in self.users.find_admins()]
        except Exception:
            logger.exception("Could not load admins to notify for request %s", request["_id"])
            admins = []
        if admins:
            self.fanout.fan_out(
                admins,
                "New Session Request",
                f"{doc['full_name']} ({user['role']}) requested a new session: {doc['session_title']}",
                NotificationCategory.session,
                ADMIN_REQUESTS_LINK,
            )
        else:
            logger.warning("No admins found to notify for session request %s", request["_id"])
        return request

    def list_requests(self, status: Optional[str] = None) -> List[dict]:
        if status is not None and status not in {s.value for s in RequestStatus}:
            raise InvalidRequestError(f"Invalid status: {status}")
        return self.requests.list_requests(status)

    def _load_request(self, request_id) -> dict:
        request = self.requests.get_by_id(request_id)
        if not request:
            raise NotFoundError("Session request not found")
        return request

    def mark_reviewed(self, request_id) -> dict:
        request = self._load_request(request_id)
        updated = self.requests.transition(request["_id"], (RequestStatus.pending.value,),
                                           RequestStatus.reviewed.value)
        if updated is None:
            raise ConflictError(f"Only pending requests can be marked reviewed (currently {request['status']})")
        return updated

    def approve_request(self, request_id, admin: dict, venue: Optional[str],
                        session_date, session_time: Optional[str]) -> dict:
        request = self._load_request(request_id)
        if request["status"] == RequestStatus.approved.value:
            raise ConflictError("Request already approved")
        if request["status"] not in APPROVABLE:
            raise ConflictError(f"Request already {request['status']}")

        if not (venue or "").strip() or not session_date or not session_time:
            raise InvalidRequestError("Venue, date, and time are required for approval.")
        day = parse_session_date(session_date)
        time_of_day = parse_time_of_day(session_time)

        previous = request["status"]
        claimed = self.requests.transition(request["_id"], APPROVABLE, RequestStatus.approved.value)
        if claimed is None:
            raise ConflictError("Request already approved")

        session_doc = {
            "title": request["session_title"],
            "description": request["session_description"],
            "date": day,
            "time": time_of_day,
            "venue": venue.strip(),
            "session_head": request["user_id"],
            "participants": [],
            "session_request_id": request["_id"],
            "status": SessionStatus.upcoming.value,
            "manually_completed": False,
            "target_audience": normalize_audience(request.get("target_audience")),
            "target_departments": normalize_departments(request.get("target_departments")),
            "meeting_link": None,
            "feedback_form_link": None,
            "created_at": datetime.utcnow(),
        }
        try:
            session = self.sessions.insert(session_doc)
        except Exception as exc:
            # Release the claim so the request can be approved again
            self.requests.restore_status(request["_id"], RequestStatus.approved.value, previous)
            logger.exception("Session insert failed while approving request %s", request["_id"])
            raise UpstreamError("Could not create the session; the request was left unchanged") from exc

        logger.info("Request %s approved by %s, session %s created",
                    request["_id"], admin.get("_id"), session["_id"])

        notified = self._notify_students(
            session,
            "New Session Available",
            f"A new session \"{session['title']}\" is now available. "
            f"Please check the sessions page for details.",
        )
        self.fanout.notify(
            request["user_id"],
            "Session Request Approved",
            f"Your session request \"{request['session_title']}\" was approved by admin.",
            NotificationCategory.session,
            PROPOSER_PROFILE_LINK,
        )
        self._email_proposer(request, TEMPLATE_REQUEST_APPROVED, admin,
                             venue=session["venue"], date=day.strftime("%Y-%m-%d"), time=time_of_day)

        return {"session": self._with_effective_status(session), "notified_students": notified}

    def reject_request(self, request_id, admin: dict) -> dict:
        request = self._load_request(request_id)
        if request["status"] == RequestStatus.rejected.value:
            raise ConflictError("Request already rejected")

        claimed = self.requests.transition(request["_id"], REJECTABLE, RequestStatus.rejected.value)
        if claimed is None:
            raise ConflictError("Request already rejected")

        try:
            cancelled = self.sessions.cancel_linked(request["_id"])
        except Exception as exc:
            # Undo the claim so the rejection can be retried
            self.requests.restore_status(request["_id"], RequestStatus.rejected.value, request["status"])
            logger.exception("Cancelling linked sessions failed while rejecting request %s", request["_id"])
            raise UpstreamError("Could not cancel the linked sessions; the request was left unchanged") from exc

        logger.info("Request %s rejected by %s, %d linked sessions cancelled",
                    request["_id"], admin.get("_id"), cancelled)

        self.fanout.notify(
            request["user_id"],
            "Session Request Rejected",
            f"Your session request \"{request['session_title']}\" was rejected by admin.",
            NotificationCategory.session,
            PROPOSER_PROFILE_LINK,
        )
        self._email_proposer(request, TEMPLATE_REQUEST_REJECTED, admin)

        return {"request": claimed, "cancelled_sessions": cancelled}

    # ============================================================
    # Sessions: reads with derived status
    # ============================================================

    def _write_back_status(self, session_id: ObjectId, status: str) -> None:
        try:
            if self.sessions.refresh_status(session_id, status):
                logger.debug("Session %s status refreshed to %s", session_id, status)
        except Exception:
            logger.warning("Status write-back failed for session %s", session_id, exc_info=True)

    def _with_effective_status(self, session: dict, now: datetime = None) -> dict:
        effective = derive_session_status(session, now or self.clock())
        if needs_refresh(session.get("status"), bool(session.get("manually_completed")), effective):
            try:
                self.schedule(self._write_back_status, session["_id"], effective)
            except Exception:
                logger.warning("Could not schedule status write-back for %s", session["_id"], exc_info=True)
        return {**session, "status": effective}

    def _load_session(self, session_id) -> dict:
        session = self.sessions.get_by_id(session_id)
        if not session:
            raise NotFoundError("Session not found")
        return session

    def list_sessions(self, user: dict) -> dict:
        view = session_view_for(user)
        now = self.clock()
        sessions = [
            self._with_effective_status(s, now)
            for s in self.sessions.list_all()
            if view.can_view(s)
        ]
        return {"sessions": sessions, "stats": self._count(sessions)}

    def session_stats(self, user: dict) -> dict:
        return self.list_sessions(user)["stats"]

    @staticmethod
    def _count(sessions: List[dict]) -> dict:
        counts = {"total": len(sessions)}
        for status in (SessionStatus.upcoming, SessionStatus.ongoing,
                       SessionStatus.completed, SessionStatus.cancelled):
            counts[status.value] = sum(1 for s in sessions if s["status"] == status.value)
        return counts

    def get_session(self, session_id, user: dict) -> dict:
        session = self._load_session(session_id)
        if not session_view_for(user).can_view(session):
            raise PermissionDeniedError("You are not eligible for this session")
        return self._with_effective_status(session)

    def user_sessions(self, user_id, caller: dict) -> dict:
        target = to_object_id(user_id, "User")
        if caller["_id"] != target and caller.get("role") != UserRole.admin.value:
            raise PermissionDeniedError("Forbidden")

        now = self.clock()
        hosted = [self._with_effective_status(s, now) for s in self.sessions.list_by_host(target)]
        conducted = [
            s for s in hosted
            if s["status"] in (SessionStatus.completed.value, SessionStatus.ongoing.value)
        ]
        return {
            "requested_sessions": self.requests.list_by_user(target),
            "conducted_sessions": conducted,
        }

    # ============================================================
    # Sessions: admin writes
    # ============================================================

    def create_session(self, admin: dict, payload: dict) -> dict:
        """
        Schedule a session directly, without a request behind it.

        Requires title, description, date, time, venue and host; the start
        must lie in the future. Eligible students are notified.
        """
        required = ("title", "description", "date", "time", "venue", "session_head")
        if any(not str(payload.get(field) or "").strip() for field in required):
            raise InvalidRequestError("Please provide all required fields")

        day = parse_session_date(payload["date"])
        time_of_day = parse_time_of_day(payload["time"])
        hours, minutes = (int(part) for part in time_of_day.split(":"))
        if day.replace(hour=hours, minute=minutes) <= self.clock():
            raise InvalidRequestError("Session date must be in the future")

        host = self.users.get_by_id(payload["session_head"])
        if not host:
            raise NotFoundError("Session host not found")

        session = self.sessions.insert({
            "title": payload["title"].strip(),
            "description": payload["description"].strip(),
            "date": day,
            "time": time_of_day,
            "venue": payload["venue"].strip(),
            "session_head": host["_id"],
            "participants": [],
            "session_request_id": None,
            "status": SessionStatus.upcoming.value,
            "manually_completed": False,
            "target_audience": normalize_audience(payload.get("target_audience")),
            "target_departments": normalize_departments(payload.get("target_departments")),
            "meeting_link": payload.get("meeting_link"),
            "feedback_form_link": payload.get("feedback_form_link"),
            "created_at": datetime.utcnow(),
        })
        logger.info("Session %s created directly by %s", session["_id"], admin.get("_id"))

        notified = self._notify_students(
            session,
            "New Session Available",
            f"A new session \"{session['title']}\" is now available. "
            f"Please check the sessions page for details.",
        )
        return {"session": self._with_effective_status(session), "notified_students": notified}

    def update_status(self, session_id, status: str) -> dict:
        if status not in {s.value for s in SessionStatus}:
            raise InvalidRequestError(f"Invalid status: {status}")
        session = self._load_session(session_id)

        fields = {"status": status}
        if status == SessionStatus.completed.value:
            fields["manually_completed"] = True
        updated = self.sessions.update_fields(session["_id"], fields)
        if updated is None:
            raise NotFoundError("Session not found")
        logger.info("Session %s status set to %s", session["_id"], status)

        if status == SessionStatus.completed.value and session.get("session_request_id"):
            try:
                if self.requests.delete(session["session_request_id"]):
                    logger.info("Deleted session request %s of completed session %s",
                                session["session_request_id"], session["_id"])
            except Exception:
                logger.exception("Could not delete session request %s", session["session_request_id"])
        return self._with_effective_status(updated)

    def update_session(self, session_id, changes: dict) -> dict:
        session = self._load_session(session_id)
        fields = {k: v for k, v in changes.items() if k in EDITABLE_SESSION_FIELDS and v is not None}
        if not fields:
            raise InvalidRequestError("No fields to update")
        if "date" in fields:
            fields["date"] = parse_session_date(fields["date"])
        if "time" in fields:
            fields["time"] = parse_time_of_day(fields["time"])
        if "target_audience" in fields:
            fields["target_audience"] = normalize_audience(fields["target_audience"])
        if "target_departments" in fields:
            fields["target_departments"] = normalize_departments(fields["target_departments"])

        updated = self.sessions.update_fields(session["_id"], fields)
        if updated is None:
            raise NotFoundError("Session not found")
        return self._with_effective_status(updated)

    def delete_session(self, session_id) -> None:
        session = self._load_session(session_id)
        self.sessions.delete(session["_id"])
        removed = self.attendance.delete_for_session(session["_id"])
        logger.info("Session %s deleted with %d attendance records", session["_id"], removed)

    def set_feedback_link(self, session_id, link: str) -> dict:
        link = (link or "").strip()
        if not link:
            raise InvalidRequestError("Feedback form link is required")
        session = self._load_session(session_id)
        updated = self.sessions.update_fields(session["_id"], {"feedback_form_link": link})
        if updated is None:
            raise NotFoundError("Session not found")

        notified = self._notify_students(
            updated,
            "Session Feedback Available",
            f"Feedback form is now available for the session \"{updated['title']}\". "
            f"Please submit your feedback.",
        )
        return {"session": self._with_effective_status(updated), "notified_students": notified}
