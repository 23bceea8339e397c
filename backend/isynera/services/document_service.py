"""
DocumentService: referral packet upload, text extraction and AI field
extraction.

Text-based PDFs are read with pypdf; scanned PDFs without a text layer
yield no text and the document is marked failed. Plain text and CCD/C-CDA
XML are decoded directly. Scanned images (PNG, JPEG, TIFF) go through
OCRService.
"""

import io
import logging
import os
import uuid
from datetime import datetime
from typing import Any, Dict, Optional

from pypdf import PdfReader
from pypdf.errors import PdfReadError
from werkzeug.utils import secure_filename

from isynera.config import config
from isynera.db.postgres import get_db_session
from isynera.errors import NotFoundError, ValidationError, AIServiceError
from isynera.models import Document, Referral
from isynera.services.llm import LLMClient, get_llm_client
from isynera.services.ocr_service import OCRService

logger = logging.getLogger("isynera.documents")

ALLOWED_EXTENSIONS = {"pdf", "txt", "png", "jpg", "jpeg", "tiff", "xml"}
IMAGE_EXTENSIONS = {"png", "jpg", "jpeg", "tiff"}
MAX_TEXT_CHARS = 20000

EXTRACTION_SYSTEM_PROMPT = (
    "You are a medical data extraction expert. Extract patient information from the text "
    "of medical referrals. Be precise and only extract clearly present information. "
    "Respond only with a JSON object."
)

# Extractor key -> Referral/patient field
EXTRACTED_FIELDS = {
    "patientName": "patient_name",
    "dateOfBirth": "date_of_birth",
    "diagnosis": "diagnosis",
    "physician": "physician",
    "referralDate": "referral_date",
    "insuranceInfo": "insurance_info",
}


def file_extension(filename: str) -> str:
    return filename.rsplit(".", 1)[-1].lower() if "." in filename else ""


def extract_pdf_text(data: bytes) -> str:
    reader = PdfReader(io.BytesIO(data))
    parts = []
    for page in reader.pages:
        text = (page.extract_text() or "").strip()
        if text:
            parts.append(text)
    return "\n\n".join(parts).strip()


class DocumentService:

    def __init__(
        self,
        llm: Optional[LLMClient] = None,
        upload_dir: Optional[str] = None,
        ocr: Optional[OCRService] = None,
    ):
        self.llm = llm or get_llm_client()
        self.ocr = ocr or OCRService()
        self.upload_dir = upload_dir or config.UPLOAD_DIR

    def upload(
        self,
        file_storage,
        user_id: Optional[int],
        document_type: str = "referral",
        patient_id: Optional[int] = None,
        referral_id: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Store a werkzeug FileStorage under UPLOAD_DIR with a generated name."""
        original_name = secure_filename(file_storage.filename or "")
        extension = file_extension(original_name)
        if not original_name or extension not in ALLOWED_EXTENSIONS:
            raise ValidationError(
                f"Unsupported file type. Allowed: {', '.join(sorted(ALLOWED_EXTENSIONS))}"
            )

        data = file_storage.read()
        if not data:
            raise ValidationError("Uploaded file is empty")
        if len(data) > config.MAX_UPLOAD_BYTES:
            raise ValidationError(f"File exceeds {config.MAX_UPLOAD_BYTES // (1024 * 1024)} MB limit")

        os.makedirs(self.upload_dir, exist_ok=True)
        storage_path = os.path.join(self.upload_dir, f"{uuid.uuid4().hex}.{extension}")
        with open(storage_path, "wb") as fh:
            fh.write(data)

        with get_db_session() as session:
            document = Document(
                filename=original_name,
                content_type=file_storage.mimetype,
                size=len(data),
                storage_path=storage_path,
                document_type=document_type or "referral",
                status="uploaded",
                patient_id=patient_id,
                referral_id=referral_id,
                uploaded_by=user_id,
            )
            session.add(document)
            session.commit()
            result = document.to_dict()

        logger.info("Uploaded document %s (%s, %d bytes)", result["id"], original_name, len(data))
        return result

    def get_document(self, document_id: int) -> Dict[str, Any]:
        with get_db_session() as session:
            document = session.get(Document, document_id)
            if not document:
                raise NotFoundError(f"Document not found: {document_id}")
            return document.to_dict()

    def process(self, document_id: int) -> Dict[str, Any]:
        """Extract text and referral fields. Failures are recorded on the document."""
        with get_db_session() as session:
            document = session.get(Document, document_id)
            if not document:
                raise NotFoundError(f"Document not found: {document_id}")
            document.status = "processing"
            session.commit()
            storage_path = document.storage_path
            filename = document.filename

        try:
            text = self.extract_text(storage_path, filename)
            if not text:
                raise ValidationError("No text could be extracted from the document")
            extracted = self.extract_referral_data(text)
        except (ValidationError, AIServiceError, PdfReadError, OSError) as e:
            logger.warning("Processing document %s failed: %s", document_id, e)
            return self._finish(document_id, status="failed", error_message=str(e))

        missing = [str(f) for f in (extracted.pop("missingFields", None) or [])]
        return self._finish(
            document_id,
            status="processed",
            extracted_text=text[:MAX_TEXT_CHARS],
            extracted_data=extracted,
            missing_fields=missing,
        )

    def extract_text(self, storage_path: str, filename: str) -> str:
        extension = file_extension(filename)
        with open(storage_path, "rb") as fh:
            data = fh.read()

        if extension == "pdf":
            return extract_pdf_text(data)
        if extension in ("txt", "xml"):
            return data.decode("utf-8", errors="replace").strip()
        if extension in IMAGE_EXTENSIONS:
            ocr = self.ocr.extract_text(data)
            logger.info("OCR read %d characters from %s (confidence %.2f)", len(ocr["text"]), filename, ocr["confidence"])
            return ocr["text"]
        raise ValidationError(f"Unsupported file type: {extension}")

    def extract_referral_data(self, text: str) -> Dict[str, Any]:
        prompt = f"""
Extract referral information from this document text:

{text[:MAX_TEXT_CHARS]}

Respond in JSON:
{{
  "patientName": "", "dateOfBirth": "YYYY-MM-DD", "diagnosis": "", "physician": "",
  "referralDate": "YYYY-MM-DD", "insuranceInfo": {{"provider": "", "policyNumber": ""}},
  "missingFields": ["fields required for home health intake that are absent"]
}}
"""
        return self.llm.complete_json(EXTRACTION_SYSTEM_PROMPT, prompt)

    # -------------------------------------------------------------------------

    def _finish(self, document_id: int, status: str, **fields) -> Dict[str, Any]:
        with get_db_session() as session:
            document = session.get(Document, document_id)
            document.status = status
            document.processed_at = datetime.utcnow()
            for key, value in fields.items():
                setattr(document, key, value)

            if status == "processed" and document.referral_id:
                referral = session.get(Referral, document.referral_id)
                if referral is not None:
                    referral.extracted_data = {
                        EXTRACTED_FIELDS.get(k, k): v for k, v in (document.extracted_data or {}).items()
                    }
                    referral.missing_fields = document.missing_fields or []
                    referral.status = "missing_info" if referral.missing_fields else "complete"
                    referral.ocr_status = "complete"

            session.commit()
            return document.to_dict()
