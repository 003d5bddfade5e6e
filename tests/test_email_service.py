from unittest.mock import patch

import pytest

from alumni_portal.core.config import Settings
from alumni_portal.services.email_service import (
    TEMPLATE_REQUEST_APPROVED, TEMPLATE_REQUEST_REJECTED, EmailSender, SmtpEmailSender,
    get_email_sender, render_template
)

APPROVED_PARAMS = {
    "full_name": "Asha Alumni",
    "session_title": "Cracking Product Interviews",
    "admin_email": "admin1@rgukt.ac.in",
    "venue": "Hall A",
    "date": "2026-10-18",
    "time": "10:00",
}


def smtp_settings(**overrides):
    values = {
        "email_enabled": True,
        "smtp_host": "smtp.rgukt.ac.in",
        "smtp_port": 2525,
        "smtp_user": "portal@rgukt.ac.in",
        "smtp_password": "secret",
        "smtp_sender": "Alumni Portal <noreply@rgukt.ac.in>",
    }
    values.update(overrides)
    return Settings(**values)


def test_render_approved():
    subject, body = render_template(TEMPLATE_REQUEST_APPROVED, APPROVED_PARAMS)
    assert subject == "Your Session Request Has Been Accepted!"
    assert body.startswith("Hi Asha Alumni,")
    assert "\"Cracking Product Interviews\" has been approved" in body
    assert "Venue: Hall A" in body
    assert "Date: 2026-10-18 at 10:00" in body
    assert "contact the admin at admin1@rgukt.ac.in" in body


def test_render_rejected_without_contact():
    subject, body = render_template(TEMPLATE_REQUEST_REJECTED, {"session_title": "Cracking Product Interviews"})
    assert subject == "Session Request Status Update"
    assert body.startswith("Hi there,")
    assert "could not be approved" in body
    assert "contact the admin" not in body


def test_render_unknown_template():
    with pytest.raises(ValueError, match="Unknown email template"):
        render_template("welcome", {})


@patch("alumni_portal.services.email_service.smtplib.SMTP")
def test_smtp_sender_delivers(mock_smtp):
    SmtpEmailSender(smtp_settings()).send("asha@example.com", TEMPLATE_REQUEST_APPROVED, APPROVED_PARAMS)

    mock_smtp.assert_called_once_with("smtp.rgukt.ac.in", 2525, timeout=10)
    smtp = mock_smtp.return_value.__enter__.return_value
    smtp.starttls.assert_called_once()
    smtp.login.assert_called_once_with("portal@rgukt.ac.in", "secret")

    message = smtp.send_message.call_args[0][0]
    assert message["From"] == "Alumni Portal <noreply@rgukt.ac.in>"
    assert message["To"] == "asha@example.com"
    assert message["Subject"] == "Your Session Request Has Been Accepted!"
    assert "Venue: Hall A" in message.get_content()


@patch("alumni_portal.services.email_service.smtplib.SMTP")
def test_smtp_sender_without_login(mock_smtp):
    settings = smtp_settings(smtp_user="", smtp_sender="")
    SmtpEmailSender(settings).send("asha@example.com", TEMPLATE_REQUEST_REJECTED, APPROVED_PARAMS)

    smtp = mock_smtp.return_value.__enter__.return_value
    smtp.login.assert_not_called()
    smtp.send_message.assert_called_once()


@patch("alumni_portal.services.email_service.smtplib.SMTP")
def test_disabled_sender_only_logs(mock_smtp):
    EmailSender().send("asha@example.com", TEMPLATE_REQUEST_APPROVED, APPROVED_PARAMS)
    mock_smtp.assert_not_called()


def test_sender_follows_settings():
    with patch("alumni_portal.services.email_service.get_settings", return_value=smtp_settings()):
        assert isinstance(get_email_sender(), SmtpEmailSender)
    with patch("alumni_portal.services.email_service.get_settings",
               return_value=smtp_settings(email_enabled=False)):
        sender = get_email_sender()
    assert type(sender) is EmailSender
