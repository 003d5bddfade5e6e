"""
Session Routes

POST   /sessions                               - Propose a session (admin, alumni, faculty)
POST   /sessions/direct                        - Schedule a session without a request (admin)
GET    /sessions                               - List sessions visible to the caller, with derived status
GET    /sessions/stats                         - Session counts by derived status
GET    /sessions/requests                      - List session requests (admin)
PATCH  /sessions/requests/{request_id}/review  - Mark a pending request reviewed (admin)
PATCH  /sessions/requests/{request_id}/approve - Approve a request and schedule the session (admin)
PATCH  /sessions/requests/{request_id}/reject  - Reject a request, cancelling its session (admin)
GET    /sessions/user/{user_id}                - Requested and conducted sessions of a user
GET    /sessions/{session_id}                  - Session details
PUT    /sessions/{session_id}                  - Edit session details (admin)
DELETE /sessions/{session_id}                  - Delete session (admin)
PATCH  /sessions/{session_id}/status           - Set status directly (admin)
PATCH  /sessions/{session_id}/feedback-link    - Publish feedback form link (admin)
GET    /sessions/{session_id}/attendance       - Own attendance record (student)
POST   /sessions/{session_id}/attendance       - Will / won't attend (student)
POST   /sessions/{session_id}/feedback         - Feedback on a completed session (student)
GET    /sessions/{session_id}/attendance-stats - Attendance statistics (admin)
GET    /sessions/{session_id}/attendance-report - Attendance report, JSON or CSV (admin)
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response

from alumni_portal.api.deps import get_attendance_service, get_session_service
from alumni_portal.core.auth import get_current_admin, get_current_student, get_current_user, require_roles
from alumni_portal.schemas.schemas import (
    PROPOSER_ROLES, AttendanceReportResponse, AttendanceResponse, AttendanceStatsResponse,
    AttendanceSubmit, FeedbackLinkUpdate, FeedbackSubmit, MessageResponse, RequestStatus,
    SessionCounts, SessionCreate, SessionListResponse, SessionRequestApprove, SessionRequestCreate,
    SessionRequestResponse, SessionResponse, SessionScheduledResponse, SessionStatusUpdate,
    SessionUpdate, UserSessionsResponse
)
from alumni_portal.services.attendance_service import AttendanceService, render_report_csv
from alumni_portal.services.mongo_service import serialize_doc, serialize_docs
from alumni_portal.services.session_service import SessionLifecycleService

router = APIRouter(prefix="/sessions", tags=["Sessions"])


# ============================================================
# SESSION REQUESTS
# ============================================================

@router.post("", response_model=SessionRequestResponse, status_code=201)
async def create_session_request(
    data: SessionRequestCreate,
    user: dict = Depends(require_roles(*PROPOSER_ROLES)),
    service: SessionLifecycleService = Depends(get_session_service),
):
    """
    Submit a session proposal.

    The request starts as pending; every admin gets a notification.
    Venue, date and time are fixed by the admin at approval.
    """
    request = service.submit_request(user, data.model_dump(mode="json"))
    return serialize_doc(request)


@router.get("/requests", response_model=List[SessionRequestResponse])
async def list_session_requests(
    status: Optional[RequestStatus] = Query(None, description="Filter by request status"),
    admin: dict = Depends(get_current_admin),
    service: SessionLifecycleService = Depends(get_session_service),
):
    """All session requests, newest first."""
    return serialize_docs(service.list_requests(status.value if status else None))


@router.patch("/requests/{request_id}/review", response_model=SessionRequestResponse)
async def review_session_request(
    request_id: str,
    admin: dict = Depends(get_current_admin),
    service: SessionLifecycleService = Depends(get_session_service),
):
    return serialize_doc(service.mark_reviewed(request_id))


@router.patch("/requests/{request_id}/approve", response_model=SessionScheduledResponse)
async def approve_session_request(
    request_id: str,
    data: SessionRequestApprove,
    admin: dict = Depends(get_current_admin),
    service: SessionLifecycleService = Depends(get_session_service),
):
    """
    Approve a request and create the session.

    Requires venue, date (YYYY-MM-DD) and time (HH:MM). Eligible students and
    the proposer are notified; the proposer also gets an email.
    """
    result = service.approve_request(request_id, admin, data.venue, data.date, data.time)
    return {
        "message": "Session request approved and session created",
        "session": serialize_doc(result["session"]),
        "notified_students": result["notified_students"],
    }


@router.patch("/requests/{request_id}/reject", response_model=MessageResponse)
async def reject_session_request(
    request_id: str,
    admin: dict = Depends(get_current_admin),
    service: SessionLifecycleService = Depends(get_session_service),
):
    """Reject a request. Any session already created from it is cancelled."""
    result = service.reject_request(request_id, admin)
    message = "Session request rejected"
    if result["cancelled_sessions"]:
        message += f"; {result['cancelled_sessions']} linked session(s) cancelled"
    return MessageResponse(message=message)


# ============================================================
# SESSIONS
# ============================================================

@router.post("/direct", response_model=SessionScheduledResponse, status_code=201)
async def create_session(
    data: SessionCreate,
    admin: dict = Depends(get_current_admin),
    service: SessionLifecycleService = Depends(get_session_service),
):
    """
    Schedule a session without a request.

    Requires title, description, date, time, venue and host (session_head);
    the start must be in the future. Eligible students are notified.
    """
    result = service.create_session(admin, data.model_dump(mode="json"))
    return {
        "message": "Session created",
        "session": serialize_doc(result["session"]),
        "notified_students": result["notified_students"],
    }


@router.get("", response_model=SessionListResponse)
async def list_sessions(
    user: dict = Depends(get_current_user),
    service: SessionLifecycleService = Depends(get_session_service),
):
    """Sessions the caller may see, ordered by date, with their current status."""
    result = service.list_sessions(user)
    return {"sessions": serialize_docs(result["sessions"]), "stats": result["stats"]}


@router.get("/stats", response_model=SessionCounts)
async def session_stats(
    user: dict = Depends(get_current_user),
    service: SessionLifecycleService = Depends(get_session_service),
):
    return service.session_stats(user)


@router.get("/user/{user_id}", response_model=UserSessionsResponse)
async def user_sessions(
    user_id: str,
    user: dict = Depends(get_current_user),
    service: SessionLifecycleService = Depends(get_session_service),
):
    """Sessions a user proposed and ones they hosted. Self or admin only."""
    result = service.user_sessions(user_id, user)
    return {
        "requested_sessions": serialize_docs(result["requested_sessions"]),
        "conducted_sessions": serialize_docs(result["conducted_sessions"]),
    }


@router.get("/{session_id}", response_model=SessionResponse)
async def get_session(
    session_id: str,
    user: dict = Depends(get_current_user),
    service: SessionLifecycleService = Depends(get_session_service),
):
    return serialize_doc(service.get_session(session_id, user))


@router.put("/{session_id}", response_model=SessionResponse)
async def update_session(
    session_id: str,
    data: SessionUpdate,
    admin: dict = Depends(get_current_admin),
    service: SessionLifecycleService = Depends(get_session_service),
):
    """Update session details. Only provided fields are changed."""
    changes = data.model_dump(mode="json", exclude_none=True)
    return serialize_doc(service.update_session(session_id, changes))


@router.delete("/{session_id}", response_model=MessageResponse)
async def delete_session(
    session_id: str,
    admin: dict = Depends(get_current_admin),
    service: SessionLifecycleService = Depends(get_session_service),
):
    service.delete_session(session_id)
    return MessageResponse(message="Session deleted successfully")


@router.patch("/{session_id}/status", response_model=SessionResponse)
async def update_session_status(
    session_id: str,
    data: SessionStatusUpdate,
    admin: dict = Depends(get_current_admin),
    service: SessionLifecycleService = Depends(get_session_service),
):
    """
    Set a session's status.

    Marking it completed is permanent and removes the originating request.
    """
    return serialize_doc(service.update_status(session_id, data.status.value))


@router.patch("/{session_id}/feedback-link", response_model=SessionResponse)
async def set_feedback_link(
    session_id: str,
    data: FeedbackLinkUpdate,
    admin: dict = Depends(get_current_admin),
    service: SessionLifecycleService = Depends(get_session_service),
):
    """Publish the feedback form link and notify eligible students."""
    result = service.set_feedback_link(session_id, data.feedback_form_link)
    return serialize_doc(result["session"])


# ============================================================
# ATTENDANCE & FEEDBACK
# ============================================================

@router.get("/{session_id}/attendance", response_model=Optional[AttendanceResponse])
async def get_my_attendance(
    session_id: str,
    student: dict = Depends(get_current_student),
    service: AttendanceService = Depends(get_attendance_service),
):
    """The caller's attendance record, or null if they have not responded."""
    return serialize_doc(service.get_attendance(session_id, student))


@router.post("/{session_id}/attendance", response_model=AttendanceResponse)
async def submit_attendance(
    session_id: str,
    data: AttendanceSubmit,
    student: dict = Depends(get_current_student),
    service: AttendanceService = Depends(get_attendance_service),
):
    """Record or change whether the student will attend."""
    return serialize_doc(service.submit_attendance(session_id, student, data.will_attend))


@router.post("/{session_id}/feedback", response_model=AttendanceResponse)
async def submit_feedback(
    session_id: str,
    data: FeedbackSubmit,
    student: dict = Depends(get_current_student),
    service: AttendanceService = Depends(get_attendance_service),
):
    """Feedback is accepted once the session is completed. Rating is optional (1-5)."""
    record = service.submit_feedback(session_id, student, data.feedback_text, data.feedback_rating)
    return serialize_doc(record)


@router.get("/{session_id}/attendance-stats", response_model=AttendanceStatsResponse)
async def attendance_stats(
    session_id: str,
    admin: dict = Depends(get_current_admin),
    service: AttendanceService = Depends(get_attendance_service),
):
    return service.stats(session_id)


@router.get("/{session_id}/attendance-report", response_model=AttendanceReportResponse)
async def attendance_report(
    session_id: str,
    format: str = Query("json", pattern="^(json|csv)$"),
    admin: dict = Depends(get_current_admin),
    service: AttendanceService = Depends(get_attendance_service),
):
    """Per-student attendance and feedback for every eligible student."""
    report = service.report(session_id)
    if format == "csv":
        return Response(
            content=render_report_csv(report),
            media_type="text/csv",
            headers={"Content-Disposition": f"attachment; filename=session_attendance_{session_id}.csv"},
        )
    return report
