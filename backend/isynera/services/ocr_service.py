"""
OCRService: text from scanned referral images through the Google Vision
images:annotate REST endpoint (DOCUMENT_TEXT_DETECTION, API key auth).
"""

import base64
import logging
from typing import Any, Dict, Optional

import requests

from isynera.config import config
from isynera.errors import AIServiceError, ValidationError

logger = logging.getLogger("isynera.ocr")

DEFAULT_CONFIDENCE = 0.8


class OCRService:

    def __init__(self, api_key: Optional[str] = None, http: Optional[requests.Session] = None):
        self.api_key = api_key if api_key is not None else config.GOOGLE_VISION_API_KEY
        self.http = http or requests.Session()

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def extract_text(self, image: bytes) -> Dict[str, Any]:
        """Return {"text", "confidence"} for an image; raises when nothing is detected."""
        if not self.configured:
            raise ValidationError("Image OCR is not configured (GOOGLE_VISION_API_KEY)")

        body = {
            "requests": [{
                "image": {"content": base64.b64encode(image).decode("ascii")},
                "features": [{"type": "DOCUMENT_TEXT_DETECTION", "maxResults": 1}],
            }]
        }
        try:
            response = self.http.post(
                config.GOOGLE_VISION_API_URL,
                params={"key": self.api_key},
                json=body,
                timeout=config.OCR_TIMEOUT_SECONDS,
            )
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            logger.error("Vision OCR request failed: %s", e)
            raise AIServiceError(f"OCR processing failed: {e}") from e

        return self.parse_annotation(data)

    @staticmethod
    def parse_annotation(data: Dict[str, Any]) -> Dict[str, Any]:
        result = (data.get("responses") or [{}])[0]
        if result.get("error"):
            raise AIServiceError(f"OCR processing failed: {result['error'].get('message', 'unknown error')}")

        full = result.get("fullTextAnnotation") or {}
        text = (full.get("text") or "").strip()
        confidence = None
        pages = full.get("pages") or []
        if pages:
            confidence = pages[0].get("confidence")
        if not text:
            annotations = result.get("textAnnotations") or []
            if annotations:
                text = (annotations[0].get("description") or "").strip()
                confidence = annotations[0].get("confidence")
        if not text:
            raise ValidationError("No text detected in the image")

        return {"text": text, "confidence": confidence if confidence is not None else DEFAULT_CONFIDENCE}
