"""
Service providers for route injection.

Services are built per request on top of the injected database, so tests
only need to override get_database (and optionally get_clock / get_email_sender).
"""

from datetime import datetime
from typing import Callable

from fastapi import BackgroundTasks, Depends
from pymongo.database import Database

from alumni_portal.db.mongodb import get_database
from alumni_portal.services.attendance_service import AttendanceService
from alumni_portal.services.email_service import EmailSender, get_email_sender
from alumni_portal.services.notification_service import NotificationService
from alumni_portal.services.session_service import SessionLifecycleService


def get_clock() -> Callable[[], datetime]:
    return datetime.now


def get_session_service(
    background_tasks: BackgroundTasks,
    db: Database = Depends(get_database),
    email_sender: EmailSender = Depends(get_email_sender),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> SessionLifecycleService:
    # Status write-backs run after the response is sent
    return SessionLifecycleService(
        db=db, email_sender=email_sender, clock=clock, schedule=background_tasks.add_task
    )


def get_attendance_service(
    db: Database = Depends(get_database),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> AttendanceService:
    return AttendanceService(db=db, clock=clock)


def get_notification_service(db: Database = Depends(get_database)) -> NotificationService:
    return NotificationService(db=db)
