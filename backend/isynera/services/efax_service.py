"""
EFaxService: prescriptions and refill authorizations to pharmacies.

Documents are rendered as plain text and delivered through an
email-to-fax gateway: <fax digits>@<EFAX_GATEWAY_DOMAIN>.
"""

import html
import logging
import re
from datetime import datetime
from typing import Any, Dict, Optional

from isynera.config import config
from isynera.services.email_service import EmailService, get_email_service

logger = logging.getLogger("isynera.efax")

HIPAA_FOOTER = (
    "HIPAA COMPLIANT TRANSMISSION\n"
    "This fax contains confidential medical information.\n"
    "If received in error, please contact sender immediately."
)


def fax_gateway_address(fax_number: str) -> str:
    digits = re.sub(r"\D", "", fax_number or "")
    if not digits:
        raise ValueError("Pharmacy fax number is missing")
    return f"{digits}@{config.EFAX_GATEWAY_DOMAIN}"


def _lines(*parts: Optional[str]) -> str:
    """Join lines, skipping the ones that were left out (None)."""
    return "\n".join(p for p in parts if p is not None)


class EFaxService:

    def __init__(self, email: Optional[EmailService] = None):
        self.email = email or get_email_service()

    # -------------------------------------------------------------------------
    # Transmission
    # -------------------------------------------------------------------------

    def send_prescription(
        self,
        prescription: Dict[str, Any],
        patient: Dict[str, Any],
        pharmacy: Dict[str, Any],
        prescriber: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        content = self.render_prescription(prescription, patient, pharmacy, prescriber)
        subject = f"PRESCRIPTION ORDER - {patient['patient_name']} - {prescription['medication_name']}"
        return self._transmit(pharmacy.get("fax_number"), subject, content, "Prescription Order")

    def send_refill_authorization(
        self,
        refill: Dict[str, Any],
        prescription: Dict[str, Any],
        patient: Dict[str, Any],
        pharmacy: Dict[str, Any],
        prescriber: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        content = self.render_refill(refill, prescription, patient, pharmacy, prescriber)
        subject = f"REFILL AUTHORIZATION - {patient['patient_name']} - {prescription['medication_name']}"
        return self._transmit(pharmacy.get("fax_number"), subject, content, "Refill Authorization")

    def _transmit(self, fax_number: str, subject: str, content: str, title: str) -> Dict[str, Any]:
        try:
            to = fax_gateway_address(fax_number)
        except ValueError as e:
            return {"success": False, "error": str(e), "delivery_status": "failed"}

        result = self.email.send_email(
            to=to, subject=subject, text=content, html_body=self.wrap_html(content, title)
        )
        if result.get("success"):
            logger.info("eFax queued to %s (%s)", to, result.get("message_id"))
            return {
                "success": True,
                "message_id": result.get("message_id"),
                "delivery_status": "sent",
                "sent_at": datetime.utcnow().isoformat(),
            }

        logger.warning("eFax to %s failed: %s", to, result.get("error"))
        return {
            "success": False,
            "error": result.get("error") or f"Failed to send {title.lower()} via eFax",
            "delivery_status": "failed",
        }

    # -------------------------------------------------------------------------
    # Documents
    # -------------------------------------------------------------------------

    def render_prescription(
        self,
        prescription: Dict[str, Any],
        patient: Dict[str, Any],
        pharmacy: Dict[str, Any],
        prescriber: Optional[Dict[str, Any]] = None,
    ) -> str:
        prescriber = prescriber or {}
        allergies = patient.get("allergies")
        if isinstance(allergies, list):
            allergies = ", ".join(str(a) for a in allergies)

        return _lines(
            "PRESCRIPTION ORDER",
            "================",
            "",
            f"Date: {datetime.utcnow():%m/%d/%Y}",
            f"Prescription ID: {prescription.get('prescription_number') or prescription.get('id')}",
            "",
            f"TO: {pharmacy.get('name')}",
            f"    {pharmacy.get('address')}, {pharmacy.get('city')}, {pharmacy.get('state')} {pharmacy.get('zip_code')}",
            f"    Phone: {pharmacy.get('phone_number') or 'N/A'}",
            f"    Fax: {pharmacy.get('fax_number')}",
            "",
            "PATIENT INFORMATION:",
            f"Name: {patient.get('patient_name')}",
            f"DOB: {patient.get('date_of_birth')}",
            f"Address: {patient['address']}" if patient.get("address") else None,
            f"Phone: {patient['phone']}" if patient.get("phone") else None,
            f"Allergies: {allergies}" if allergies else "No known allergies",
            "",
            "PRESCRIPTION:",
            f"Medication: {prescription.get('medication_name')}",
            f"Strength/Dosage: {prescription.get('dosage')}",
            f"Quantity: {prescription.get('quantity')}",
            f"Refills: {prescription.get('refills_remaining', 0)}",
            "",
            "INSTRUCTIONS:",
            prescription.get("instructions") or "Take as directed",
            "",
            "PRESCRIBER:",
            self._prescriber_line(prescriber),
            f"License: {prescriber['license_number']}" if prescriber.get("license_number") else None,
            "SIGNATURE: [Electronic Signature]",
            f"Date Prescribed: {(prescription.get('prescribed_date') or '')[:10]}",
            "",
            "================",
            HIPAA_FOOTER,
            "================",
        )

    def render_refill(
        self,
        refill: Dict[str, Any],
        prescription: Dict[str, Any],
        patient: Dict[str, Any],
        pharmacy: Dict[str, Any],
        prescriber: Optional[Dict[str, Any]] = None,
    ) -> str:
        prescriber = prescriber or {}
        return _lines(
            "REFILL AUTHORIZATION",
            "===================",
            "",
            f"Date: {datetime.utcnow():%m/%d/%Y}",
            f"Refill Request ID: {refill.get('id')}",
            "",
            f"TO: {pharmacy.get('name')}",
            f"Fax: {pharmacy.get('fax_number')}",
            "",
            f"PATIENT: {patient.get('patient_name')}",
            f"MEDICATION: {prescription.get('medication_name')}",
            f"CURRENT DOSAGE: {prescription.get('dosage')}",
            "",
            "AUTHORIZATION: APPROVED",
            f"Authorized Refills: {prescription.get('refills_remaining', 0)}",
            "",
            f"DOSAGE CHANGES:\n{refill['dosage_changes']}" if refill.get("dosage_changes") else None,
            f"DOCTOR NOTES:\n{refill['doctor_notes']}" if refill.get("doctor_notes") else None,
            "",
            "PRESCRIBER:",
            self._prescriber_line(prescriber),
            "SIGNATURE: [Electronic Signature]",
            "",
            "===================",
            HIPAA_FOOTER,
            "===================",
        )

    @staticmethod
    def _prescriber_line(prescriber: Dict[str, Any]) -> str:
        name = " ".join(p for p in (prescriber.get("first_name"), prescriber.get("last_name")) if p)
        return f"Dr. {name or prescriber.get('username') or '[Prescriber Name]'}"

    @staticmethod
    def wrap_html(content: str, title: str) -> str:
        return (
            "<!DOCTYPE html><html><head><meta charset=\"UTF-8\">"
            f"<title>{html.escape(title)}</title>"
            "<style>body { font-family: 'Courier New', monospace; font-size: 12px; margin: 20px; }</style>"
            f"</head><body><pre>{html.escape(content)}</pre></body></html>"
        )
