"""
LLM client used by the clinical agents and AI documentation services.

Two providers:
- OpenAI chat completions, JSON mode (response_format=json_object)
- Anthropic Messages API (homebound assessments)

Also transcribes audio through OpenAI Whisper.

Any provider or parsing failure surfaces as AIServiceError; callers decide
whether to fall back.
"""

import io
import json
import logging
import re
from typing import Any, Dict, Optional

from isynera.config import config
from isynera.errors import AIServiceError

logger = logging.getLogger("isynera.llm")

ANTHROPIC_MAX_TOKENS = 2048

_FENCE_RE = re.compile(r"```(?:json)?", re.IGNORECASE)
_OBJECT_RE = re.compile(r"\{.*\}", re.DOTALL)


# =============================================================================
# Response parsing
# =============================================================================

def clean_ai_response(text: str) -> str:
    """Strip markdown fences and surrounding chatter, keeping the JSON object."""
    cleaned = _FENCE_RE.sub("", text or "").strip()
    match = _OBJECT_RE.search(cleaned)
    return match.group(0) if match else cleaned


def parse_ai_json(text: str, fallback: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Parse an LLM reply into a dict, returning fallback on failure."""
    try:
        parsed = json.loads(clean_ai_response(text))
        if isinstance(parsed, dict):
            return parsed
        logger.warning("AI response was JSON but not an object: %s", type(parsed).__name__)
    except (json.JSONDecodeError, TypeError) as e:
        logger.warning("Failed to parse AI response: %s", e)
    return dict(fallback) if fallback is not None else {}


# =============================================================================
# Client
# =============================================================================

class LLMClient:
    """Thin wrapper over the OpenAI and Anthropic SDK clients."""

    def __init__(self, openai_client=None, anthropic_client=None):
        self._openai = openai_client
        self._anthropic = anthropic_client

    @property
    def openai(self):
        if self._openai is None:
            if not config.OPENAI_API_KEY:
                raise AIServiceError("OpenAI API key is not configured")
            from openai import OpenAI

            self._openai = OpenAI(api_key=config.OPENAI_API_KEY)
        return self._openai

    @property
    def anthropic(self):
        if self._anthropic is None:
            if not config.ANTHROPIC_API_KEY:
                raise AIServiceError("Anthropic API key is not configured")
            from anthropic import Anthropic

            self._anthropic = Anthropic(api_key=config.ANTHROPIC_API_KEY)
        return self._anthropic

    # -------------------------------------------------------------------------

    def complete_json(
        self,
        system: str,
        prompt: str,
        provider: str = "openai",
        model: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Run a completion that must return a JSON object."""
        if provider == "anthropic":
            text = self._anthropic_text(system, prompt, model)
        else:
            text = self._openai_text(system, prompt, model, json_mode=True)

        parsed = parse_ai_json(text, fallback=None)
        if not parsed:
            raise AIServiceError("AI service returned an unparseable response")
        return parsed

    def complete_text(
        self,
        system: str,
        prompt: str,
        provider: str = "openai",
        model: Optional[str] = None,
    ) -> str:
        if provider == "anthropic":
            return self._anthropic_text(system, prompt, model)
        return self._openai_text(system, prompt, model, json_mode=False)

    def transcribe(self, audio_bytes: bytes, filename: str = "audio.webm") -> str:
        """Speech to text through Whisper."""
        buffer = io.BytesIO(audio_bytes)
        buffer.name = filename
        try:
            result = self.openai.audio.transcriptions.create(
                model=config.OPENAI_TRANSCRIBE_MODEL,
                file=buffer,
            )
        except AIServiceError:
            raise
        except Exception as e:
            logger.error("Whisper transcription failed: %s", e)
            raise AIServiceError(f"Audio transcription failed: {e}") from e
        return getattr(result, "text", "") or ""

    # -------------------------------------------------------------------------

    def _openai_text(self, system: str, prompt: str, model: Optional[str], json_mode: bool) -> str:
        kwargs = {
            "model": model or config.OPENAI_MODEL,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": prompt},
            ],
        }
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        try:
            response = self.openai.chat.completions.create(**kwargs)
        except AIServiceError:
            raise
        except Exception as e:
            logger.error("OpenAI request failed: %s", e)
            raise AIServiceError(f"AI service request failed: {e}") from e

        return response.choices[0].message.content or ""

    def _anthropic_text(self, system: str, prompt: str, model: Optional[str]) -> str:
        try:
            message = self.anthropic.messages.create(
                model=model or config.ANTHROPIC_MODEL,
                max_tokens=ANTHROPIC_MAX_TOKENS,
                system=system,
                messages=[{"role": "user", "content": prompt}],
            )
        except AIServiceError:
            raise
        except Exception as e:
            logger.error("Anthropic request failed: %s", e)
            raise AIServiceError(f"AI service request failed: {e}") from e

        return "".join(
            block.text for block in message.content if getattr(block, "type", "") == "text"
        )


# Singleton instance
_llm_client = None


def get_llm_client() -> LLMClient:
    """Get the singleton LLM client."""
    global _llm_client
    if _llm_client is None:
        _llm_client = LLMClient()
    return _llm_client
