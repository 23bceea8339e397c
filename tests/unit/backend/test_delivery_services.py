"""
Unit tests for outbound delivery: EmailService (SMTP mocked) and
EFaxService (email-to-fax gateway).
"""

import smtplib
from unittest.mock import MagicMock, patch

from isynera.config import config
from isynera.services.email_service import EmailService, NOT_CONFIGURED_ERROR
from isynera.services.efax_service import EFaxService, fax_gateway_address


PATIENT = {
    "patient_name": "Jane Doe",
    "date_of_birth": "1940-01-01",
    "allergies": ["penicillin", "sulfa"],
}
PHARMACY = {
    "name": "Main Street Pharmacy",
    "address": "1 Main St",
    "city": "Springfield",
    "state": "IL",
    "zip_code": "62701",
    "fax_number": "(217) 555-0199",
}
PRESCRIPTION = {
    "id": 7,
    "prescription_number": "RX-20261017-ABC123",
    "medication_name": "Furosemide",
    "dosage": "20mg daily",
    "quantity": 30,
    "refills_remaining": 2,
    "prescribed_date": "2026-10-17T09:00:00",
}


class TestEmailService:

    def test_not_configured_is_reported_not_raised(self):
        result = EmailService(api_key="").send_email("a@example.com", "Hi", "body")

        assert result == {"success": False, "error": NOT_CONFIGURED_ERROR}

    @patch("isynera.services.email_service.smtplib.SMTP")
    def test_send_uses_starttls_and_api_key(self, smtp_cls):
        server = smtp_cls.return_value.__enter__.return_value

        result = EmailService(api_key="SG.key").send_email(
            "a@example.com", "Summary", "body", html_body="<p>body</p>",
            attachments=[{"filename": "visit.webm", "content": b"\x00", "type": "audio/webm"}],
        )

        assert result["success"] is True
        assert result["message_id"].startswith("<")
        server.starttls.assert_called_once()
        server.login.assert_called_once_with(config.SMTP_USERNAME, "SG.key")
        message = server.send_message.call_args.args[0]
        assert message["To"] == "a@example.com"
        assert any(part.get_filename() == "visit.webm" for part in message.walk())

    @patch("isynera.services.email_service.smtplib.SMTP")
    def test_smtp_failure_returns_error(self, smtp_cls):
        smtp_cls.return_value.__enter__.return_value.send_message.side_effect = smtplib.SMTPDataError(554, b"rejected")

        result = EmailService(api_key="SG.key").send_email("a@example.com", "Hi", "body")

        assert result["success"] is False
        assert "rejected" in result["error"]
        smtp_cls.return_value.__exit__.assert_called_once()

    @patch("isynera.services.email_service.smtplib.SMTP")
    def test_connection_closed_when_login_fails(self, smtp_cls):
        server = smtp_cls.return_value.__enter__.return_value
        server.login.side_effect = smtplib.SMTPAuthenticationError(535, b"bad credentials")

        result = EmailService(api_key="SG.key").send_email("a@example.com", "Hi", "body")

        assert result["success"] is False
        server.send_message.assert_not_called()
        smtp_cls.return_value.__exit__.assert_called_once()

    @patch("isynera.services.email_service.smtplib.SMTP")
    def test_header_injection_is_rejected(self, smtp_cls):
        result = EmailService(api_key="SG.key").send_email("a@example.com\r\nBcc: b@example.com", "Hi", "body")

        assert result["success"] is False
        assert result["error"].startswith("Invalid email header")
        smtp_cls.assert_not_called()

    def test_summary_html_is_escaped(self):
        page = EmailService.format_summary_html("<script>\nline two", "session_1")

        assert "&lt;script&gt;<br>line two" in page
        assert "session_1" in page


class TestEFaxService:

    def test_gateway_address_uses_digits_only(self):
        assert fax_gateway_address("(217) 555-0199") == f"2175550199@{config.EFAX_GATEWAY_DOMAIN}"

    def test_prescription_rendering(self):
        text = EFaxService(email=MagicMock()).render_prescription(
            PRESCRIPTION, PATIENT, PHARMACY, {"first_name": "Ann", "last_name": "Lee"}
        )

        assert "Prescription ID: RX-20261017-ABC123" in text
        assert "Allergies: penicillin, sulfa" in text
        assert "Take as directed" in text
        assert "Dr. Ann Lee" in text
        assert "Date Prescribed: 2026-10-17" in text
        assert "Address:" not in text

    def test_send_prescription_success(self):
        email = MagicMock()
        email.send_email.return_value = {"success": True, "message_id": "<m1>"}

        result = EFaxService(email=email).send_prescription(PRESCRIPTION, PATIENT, PHARMACY)

        assert result["success"] is True
        assert result["delivery_status"] == "sent"
        kwargs = email.send_email.call_args.kwargs
        assert kwargs["to"].startswith("2175550199@")
        assert kwargs["subject"] == "PRESCRIPTION ORDER - Jane Doe - Furosemide"

    def test_missing_fax_number_fails_without_sending(self):
        email = MagicMock()

        result = EFaxService(email=email).send_prescription(PRESCRIPTION, PATIENT, {**PHARMACY, "fax_number": ""})

        assert result == {"success": False, "error": "Pharmacy fax number is missing", "delivery_status": "failed"}
        email.send_email.assert_not_called()

    def test_unconfigured_email_marks_delivery_failed(self):
        result = EFaxService(email=EmailService(api_key="")).send_refill_authorization(
            {"id": 3, "doctor_notes": "Continue current dose"}, PRESCRIPTION, PATIENT, PHARMACY
        )

        assert result["success"] is False
        assert result["delivery_status"] == "failed"
        assert result["error"] == NOT_CONFIGURED_ERROR
