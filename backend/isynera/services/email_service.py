"""
EmailService: outbound email through the SendGrid SMTP relay.

Used for transcription summaries and as the transport for eFax
(email-to-fax gateways). When SENDGRID_API_KEY is not set, messages are
logged and reported as not sent.
"""

import html
import logging
import smtplib
from email.message import EmailMessage
from email.utils import make_msgid, formataddr
from typing import Any, Dict, List, Optional

from isynera.config import config

logger = logging.getLogger("isynera.email")

FROM_NAME = "iSynera AI Healthcare Platform"
NOT_CONFIGURED_ERROR = (
    "Email service not configured. Provide SENDGRID_API_KEY to enable email delivery. "
    "This email has been logged but not sent."
)


class EmailService:

    def __init__(self, api_key: Optional[str] = None):
        self.api_key = api_key if api_key is not None else config.SENDGRID_API_KEY

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def send_email(
        self,
        to: str,
        subject: str,
        text: str,
        html_body: Optional[str] = None,
        attachments: Optional[List[Dict[str, Any]]] = None,
    ) -> Dict[str, Any]:
        """Send one message.

        attachments: [{"filename", "content" (bytes), "type" (mime type)}]

        Returns {"success": bool, "message_id" | "error": str}.
        """
        if not self.is_configured:
            logger.warning(
                "EMAIL SIMULATION (not configured) to=%s subject=%s preview=%s",
                to, subject, (text or "")[:200],
            )
            return {"success": False, "error": NOT_CONFIGURED_ERROR}

        msg = EmailMessage()
        try:
            msg["Subject"] = subject
            msg["From"] = formataddr((FROM_NAME, config.EMAIL_FROM))
            msg["To"] = to
        except ValueError as exc:
            logger.warning("Rejected email headers for %r: %s", to, exc)
            return {"success": False, "error": f"Invalid email header: {exc}"}
        msg["Message-ID"] = make_msgid(domain=config.EMAIL_FROM.split("@")[-1])
        msg.set_content(text or "")
        if html_body:
            msg.add_alternative(html_body, subtype="html")

        for attachment in attachments or []:
            maintype, _, subtype = (attachment.get("type") or "application/octet-stream").partition("/")
            msg.add_attachment(
                attachment["content"],
                maintype=maintype,
                subtype=subtype or "octet-stream",
                filename=attachment["filename"],
            )

        try:
            with smtplib.SMTP(config.SMTP_HOST, config.SMTP_PORT, timeout=10) as server:
                server.starttls()
                server.login(config.SMTP_USERNAME, self.api_key)
                server.send_message(msg)
        except (smtplib.SMTPException, OSError) as exc:
            logger.exception("Failed to send email to %s: %s", to, exc)
            if isinstance(exc, smtplib.SMTPSenderRefused):
                return {
                    "success": False,
                    "error": f"Sender {config.EMAIL_FROM} must be verified with the email provider",
                }
            return {"success": False, "error": str(exc) or "Unknown email error"}

        logger.info("Email sent to %s (%s)", to, msg["Message-ID"])
        return {"success": True, "message_id": msg["Message-ID"]}

    def send_transcription_summary(
        self,
        to: str,
        subject: str,
        content: str,
        session_id: str,
        audio_attachment: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        return self.send_email(
            to=to,
            subject=subject,
            text=content,
            html_body=self.format_summary_html(content, session_id),
            attachments=[audio_attachment] if audio_attachment else None,
        )

    @staticmethod
    def format_summary_html(content: str, session_id: str) -> str:
        body = html.escape(content).replace("\n", "<br>")
        return (
            "<!DOCTYPE html><html><head><meta charset=\"UTF-8\"></head>"
            "<body style=\"font-family: Arial, sans-serif; line-height: 1.6;\">"
            "<h2>iSynera AI Transcription Summary</h2>"
            f"<p><strong>Session ID:</strong> {html.escape(session_id)}</p>"
            f"<div>{body}</div>"
            "<hr><p style=\"font-size: 11px; color: #666;\">"
            "This message contains confidential health information. "
            "If received in error, notify the sender and delete it.</p>"
            "</body></html>"
        )


# Singleton instance
_email_service = None


def get_email_service() -> EmailService:
    global _email_service
    if _email_service is None:
        _email_service = EmailService()
    return _email_service
