"""
Pydantic Schemas - Request/Response Validation

All API request and response schemas in one file for simplicity.
"""

from pydantic import BaseModel, ConfigDict, EmailStr, Field, StrictBool, field_validator
from typing import Optional, List
from datetime import datetime, date as Date
from enum import Enum


# ============================================================
# ENUMS
# ============================================================

class UserRole(str, Enum):
    student = "student"
    alumni = "alumni"
    faculty = "faculty"
    admin = "admin"


PROPOSER_ROLES = (UserRole.admin, UserRole.alumni, UserRole.faculty)


class YearOfStudy(str, Enum):
    e1 = "E-1"
    e2 = "E-2"
    e3 = "E-3"
    e4 = "E-4"


class Department(str, Enum):
    cse = "CSE"
    ece = "ECE"
    eee = "EEE"
    civil = "CIVIL"
    mech = "MECH"
    chem = "CHEM"
    mme = "MME"


# Wildcards are case-sensitive and differ between the two filters
AUDIENCE_WILDCARD = "all"
DEPARTMENT_WILDCARD = "ALL"

AUDIENCE_VALUES = {AUDIENCE_WILDCARD} | {y.value for y in YearOfStudy}
DEPARTMENT_VALUES = {DEPARTMENT_WILDCARD} | {d.value for d in Department}


class RequestStatus(str, Enum):
    pending = "pending"
    reviewed = "reviewed"
    approved = "approved"
    rejected = "rejected"


class SessionStatus(str, Enum):
    pending = "pending"
    upcoming = "upcoming"
    ongoing = "ongoing"
    completed = "completed"
    cancelled = "cancelled"


class SessionMode(str, Enum):
    online = "online"
    offline = "offline"
    hybrid = "hybrid"


class NotificationCategory(str, Enum):
    message = "message"
    event = "event"
    announcement = "announcement"
    welcome = "welcome"
    session = "session"
    terms = "terms"


def _check_values(values: Optional[List[str]], allowed: set, label: str) -> Optional[List[str]]:
    if values is None:
        return values
    unknown = [v for v in values if v not in allowed]
    if unknown:
        raise ValueError(f"Unknown {label}: {', '.join(unknown)}")
    return values


# ============================================================
# USER SCHEMAS
# ============================================================

class UserResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., alias="_id")
    full_name: str
    email: EmailStr
    role: UserRole
    department: Optional[str] = None
    year_of_study: Optional[str] = None
    student_id: Optional[str] = None


# ============================================================
# SESSION REQUEST SCHEMAS
# ============================================================

class SessionRequestCreate(BaseModel):
    full_name: Optional[str] = None
    email: Optional[EmailStr] = None
    phone_number: Optional[str] = None
    affiliation: Optional[str] = None
    graduation_year: Optional[str] = None
    department: Optional[str] = None
    session_title: str = Field(..., min_length=3, max_length=200)
    session_description: str = Field(..., min_length=1)
    session_type: str = Field(..., min_length=1)
    target_audience: Optional[List[str]] = None
    target_departments: Optional[List[str]] = None
    preferred_date: str
    preferred_time: str
    session_mode: SessionMode

    @field_validator("target_audience")
    @classmethod
    def check_audience(cls, v):
        return _check_values(v, AUDIENCE_VALUES, "target audience")

    @field_validator("target_departments")
    @classmethod
    def check_departments(cls, v):
        return _check_values(v, DEPARTMENT_VALUES, "target department")


class SessionRequestApprove(BaseModel):
    # Checked by the workflow so the caller gets a single clear message
    venue: Optional[str] = None
    date: Optional[Date] = None
    time: Optional[str] = None


class SessionRequestResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., alias="_id")
    user_id: str
    user_type: UserRole
    full_name: str
    email: Optional[str] = None
    phone_number: Optional[str] = None
    affiliation: Optional[str] = None
    graduation_year: Optional[str] = None
    department: Optional[str] = None
    session_title: str
    session_description: str
    session_type: str
    target_audience: List[str] = []
    target_departments: List[str] = []
    preferred_date: str
    preferred_time: str
    session_mode: str
    status: RequestStatus
    created_at: datetime


# ============================================================
# SESSION SCHEMAS
# ============================================================

class SessionCreate(BaseModel):
    # Required fields and the HH:MM time are checked by the workflow
    title: Optional[str] = Field(None, max_length=200)
    description: Optional[str] = None
    date: Optional[Date] = None
    time: Optional[str] = None
    venue: Optional[str] = None
    session_head: Optional[str] = None
    meeting_link: Optional[str] = None
    feedback_form_link: Optional[str] = None
    target_audience: Optional[List[str]] = None
    target_departments: Optional[List[str]] = None

    @field_validator("target_audience")
    @classmethod
    def check_audience(cls, v):
        return _check_values(v, AUDIENCE_VALUES, "target audience")

    @field_validator("target_departments")
    @classmethod
    def check_departments(cls, v):
        return _check_values(v, DEPARTMENT_VALUES, "target department")


class SessionUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=3, max_length=200)
    description: Optional[str] = None
    date: Optional[Date] = None
    # HH:MM, normalised by the workflow like the approval time
    time: Optional[str] = None
    venue: Optional[str] = None
    meeting_link: Optional[str] = None
    target_audience: Optional[List[str]] = None
    target_departments: Optional[List[str]] = None

    @field_validator("target_audience")
    @classmethod
    def check_audience(cls, v):
        return _check_values(v, AUDIENCE_VALUES, "target audience")

    @field_validator("target_departments")
    @classmethod
    def check_departments(cls, v):
        return _check_values(v, DEPARTMENT_VALUES, "target department")


class SessionStatusUpdate(BaseModel):
    status: SessionStatus


class FeedbackLinkUpdate(BaseModel):
    feedback_form_link: str = Field(..., min_length=1)


class SessionResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., alias="_id")
    title: str
    description: str
    date: datetime
    time: str
    venue: str
    session_head: str
    participants: List[str] = []
    session_request_id: Optional[str] = None
    status: SessionStatus
    manually_completed: bool = False
    target_audience: List[str] = []
    target_departments: List[str] = []
    meeting_link: Optional[str] = None
    feedback_form_link: Optional[str] = None
    created_at: datetime


class SessionCounts(BaseModel):
    total: int = 0
    upcoming: int = 0
    ongoing: int = 0
    completed: int = 0
    cancelled: int = 0


class SessionListResponse(BaseModel):
    sessions: List[SessionResponse]
    stats: SessionCounts


class SessionScheduledResponse(BaseModel):
    message: str
    session: SessionResponse
    notified_students: int


class UserSessionsResponse(BaseModel):
    requested_sessions: List[SessionRequestResponse]
    conducted_sessions: List[SessionResponse]


# ============================================================
# ATTENDANCE SCHEMAS
# ============================================================

class AttendanceSubmit(BaseModel):
    will_attend: StrictBool


class FeedbackSubmit(BaseModel):
    # Validated by the attendance service
    feedback_text: Optional[str] = None
    feedback_rating: Optional[int] = None


class AttendanceResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., alias="_id")
    session_id: str
    student_id: str
    will_attend: Optional[bool] = None
    response_date: Optional[datetime] = None
    feedback_submitted: bool = False
    feedback_text: Optional[str] = None
    feedback_rating: Optional[int] = None
    feedback_date: Optional[datetime] = None


class AttendanceStatsResponse(BaseModel):
    eligible_count: int
    total_responses: int
    will_attend_count: int
    will_not_attend_count: int
    response_rate: float
    will_attend_percentage: float
    will_not_attend_percentage: float
    feedback_submitted_count: int
    feedback_submitted_percentage: float
    average_rating: Optional[float] = None


class AttendanceReportResponse(BaseModel):
    session_info: dict
    rows: List[dict]


# ============================================================
# NOTIFICATION SCHEMAS
# ============================================================

class NotificationResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., alias="_id")
    recipient: str
    title: str
    message: str
    category: NotificationCategory
    link: Optional[str] = None
    read: bool = False
    created_at: datetime


class NotificationListResponse(BaseModel):
    notifications: List[NotificationResponse]
    unread: int


class UnreadCountResponse(BaseModel):
    unread: int


# ============================================================
# GENERIC SCHEMAS
# ============================================================

class MessageResponse(BaseModel):
    message: str
    success: bool = True
