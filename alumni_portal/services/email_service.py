"""
Email Sender

Outbound mail is an external collaborator: callers hand over
(recipient address, template kind, parameters) and must catch failures.
SMTP is used when EMAIL_ENABLED is set; otherwise messages are only logged.
"""

import logging
import smtplib
from email.message import EmailMessage
from typing import Tuple

from alumni_portal.core.config import Settings, get_settings

logger = logging.getLogger(__name__)

TEMPLATE_REQUEST_APPROVED = "session_request_approved"
TEMPLATE_REQUEST_REJECTED = "session_request_rejected"


def render_template(template: str, params: dict) -> Tuple[str, str]:
    """Return (subject, plain-text body) for a template kind."""
    name = params.get("full_name") or "there"
    title = params.get("session_title", "")
    contact = params.get("admin_email")
    footer = f"\n\nFor details, contact the admin at {contact}." if contact else ""

    if template == TEMPLATE_REQUEST_APPROVED:
        return (
            "Your Session Request Has Been Accepted!",
            f"Hi {name},\n\nYour session request \"{title}\" has been approved.\n"
            f"Venue: {params.get('venue', 'TBA')}\n"
            f"Date: {params.get('date', 'TBA')} at {params.get('time', 'TBA')}"
            f"{footer}",
        )
    if template == TEMPLATE_REQUEST_REJECTED:
        return (
            "Session Request Status Update",
            f"Hi {name},\n\nWe regret to inform you that your session request \"{title}\" "
            f"could not be approved at this time. You are welcome to submit a new request "
            f"with additional details.{footer}",
        )
    raise ValueError(f"Unknown email template: {template}")


class EmailSender:
    """Base sender: logs instead of delivering."""

    def send(self, to: str, template: str, params: dict) -> None:
        subject, _ = render_template(template, params)
        logger.info("Email disabled, not sending '%s' to %s", subject, to)


class SmtpEmailSender(EmailSender):

    def __init__(self, settings: Settings):
        self.settings = settings

    def send(self, to: str, template: str, params: dict) -> None:
        subject, body = render_template(template, params)
        message = EmailMessage()
        message["From"] = self.settings.smtp_sender or self.settings.smtp_user
        message["To"] = to
        message["Subject"] = subject
        message.set_content(body)

        with smtplib.SMTP(self.settings.smtp_host, self.settings.smtp_port, timeout=10) as smtp:
            smtp.starttls()
            if self.settings.smtp_user:
                smtp.login(self.settings.smtp_user, self.settings.smtp_password)
            smtp.send_message(message)
        logger.info("Sent '%s' email to %s", template, to)


def get_email_sender() -> EmailSender:
    """Dependency - SMTP when enabled, logging sender otherwise."""
    settings = get_settings()
    if settings.email_enabled:
        return SmtpEmailSender(settings)
    return EmailSender()
