"""
Base Clinical Agent - Template for all LLM-backed clinical agents.

Every agent builds a prompt, calls the LLM, and wraps the JSON reply in a
standardized AgentResponse. Subclasses override the prompt and, where an
offline answer exists, the fallback hook.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
import json
import logging
import threading
import time

from isynera.errors import AIServiceError
from isynera.services.llm import LLMClient, get_llm_client


# =============================================================================
# Enums
# =============================================================================

class Urgency(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @classmethod
    def coerce(cls, value: Any) -> "Urgency":
        """Map free-form LLM output onto a known urgency (default MEDIUM)."""
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.MEDIUM


# =============================================================================
# Response
# =============================================================================

@dataclass
class AgentResponse:
    """
    Standardized result from any clinical agent.
    """

    agent_id: str
    recommendation: str

    # Confidence score (0.0 to 1.0)
    confidence: float = 0.0

    reasoning: str = ""
    next_steps: List[str] = field(default_factory=list)
    urgency: Urgency = Urgency.MEDIUM

    # Agent-specific extras (cmsCompliance, determination, source, ...)
    metadata: Dict[str, Any] = field(default_factory=dict)

    computed_at: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "agent_id": self.agent_id,
            "recommendation": self.recommendation,
            "confidence": self.confidence,
            "reasoning": self.reasoning,
            "next_steps": self.next_steps,
            "urgency": self.urgency.value,
            "metadata": self.metadata,
            "computed_at": self.computed_at.isoformat(),
        }


CORE_RESPONSE_KEYS = {"recommendation", "confidence", "reasoning", "nextSteps", "next_steps", "urgency"}


def clamp_confidence(value: Any) -> float:
    """Coerce to a 0..1 float. Percentages (1 < x <= 100) are rescaled."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if 1.0 < number <= 100.0:
        number = number / 100.0
    return max(0.0, min(number, 1.0))


def _as_str_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value.strip() else []
    if isinstance(value, (list, tuple)):
        return [v if isinstance(v, str) else json.dumps(v) for v in value]
    return [str(value)]


# =============================================================================
# Base Clinical Agent
# =============================================================================

class BaseClinicalAgent(ABC):
    """
    Base class for all clinical agents.

    Subclasses must implement:
    - agent_id / name / specialty
    - build_prompt(): the user prompt for analyze()

    Subclasses may override:
    - system_prompt: system message
    - provider: "openai" or "anthropic"
    - fallback(): answer to give when the LLM call fails (default re-raises)
    - post_process(): enrich the wrapped response
    """

    provider = "openai"
    system_prompt = "You are a healthcare AI assistant. Respond only with a JSON object."
    capabilities: List[str] = []

    def __init__(self, llm: Optional[LLMClient] = None):
        self.llm = llm or get_llm_client()
        self.logger = logging.getLogger(f"agent.{self.name}")
        self._stats_lock = threading.Lock()
        self._tasks_completed = 0
        self._tasks_failed = 0
        self._fallbacks_used = 0
        self._total_seconds = 0.0

    # -------------------------------------------------------------------------
    # Abstract members (MUST implement)
    # -------------------------------------------------------------------------

    @property
    @abstractmethod
    def agent_id(self) -> str:
        pass

    @property
    @abstractmethod
    def name(self) -> str:
        pass

    @property
    @abstractmethod
    def specialty(self) -> str:
        pass

    @abstractmethod
    def build_prompt(self, payload: Dict[str, Any], **kwargs) -> str:
        pass

    # -------------------------------------------------------------------------
    # Template method (DO NOT override)
    # -------------------------------------------------------------------------

    def analyze(self, payload: Dict[str, Any], **kwargs) -> AgentResponse:
        """
        Main entry point.

        Pipeline:
        1. Build prompt
        2. LLM call (JSON)
        3. Wrap reply in AgentResponse
        4. Post-process hook
        On AIServiceError the fallback hook decides the outcome.
        """
        started = time.monotonic()
        try:
            prompt = self.build_prompt(payload, **kwargs)
            raw = self.llm.complete_json(self.system_prompt, prompt, provider=self.provider)
            response = self.post_process(payload, self._make_response(raw))
        except AIServiceError as e:
            self.logger.warning(f"{self.name} LLM call failed: {e}")
            try:
                response = self.fallback(payload, e)
            except AIServiceError:
                self._record(started, ok=False)
                raise
            self._record(started, ok=True, fallback=True)
            return response

        self._record(started, ok=True)
        self.logger.info(
            f"{self.name} analyzed payload (confidence={response.confidence}, urgency={response.urgency.value})"
        )
        return response

    # -------------------------------------------------------------------------
    # Hooks (MAY override)
    # -------------------------------------------------------------------------

    def fallback(self, payload: Dict[str, Any], error: AIServiceError) -> AgentResponse:
        raise error

    def post_process(self, payload: Dict[str, Any], response: AgentResponse) -> AgentResponse:
        return response

    # -------------------------------------------------------------------------
    # Helpers for auxiliary calls
    # -------------------------------------------------------------------------

    def ask_for_list(self, prompt: str, key: str) -> List[str]:
        """Run a JSON completion and return the list stored under key."""
        started = time.monotonic()
        try:
            raw = self.llm.complete_json(self.system_prompt, prompt, provider="openai")
        except AIServiceError:
            self._record(started, ok=False)
            raise
        self._record(started, ok=True)
        return _as_str_list(raw.get(key))

    def ask_for_text(self, prompt: str) -> str:
        started = time.monotonic()
        try:
            text = self.llm.complete_text(self.system_prompt, prompt, provider="openai")
        except AIServiceError:
            self._record(started, ok=False)
            raise
        self._record(started, ok=True)
        return text

    @staticmethod
    def to_json(data: Any) -> str:
        return json.dumps(data, indent=2, default=str)

    def _make_response(self, raw: Dict[str, Any]) -> AgentResponse:
        return AgentResponse(
            agent_id=self.agent_id,
            recommendation=str(raw.get("recommendation") or ""),
            confidence=clamp_confidence(raw.get("confidence")),
            reasoning=str(raw.get("reasoning") or ""),
            next_steps=_as_str_list(raw.get("nextSteps", raw.get("next_steps"))),
            urgency=Urgency.coerce(raw.get("urgency")),
            metadata={k: v for k, v in raw.items() if k not in CORE_RESPONSE_KEYS},
        )

    # -------------------------------------------------------------------------
    # Stats
    # -------------------------------------------------------------------------

    def _record(self, started: float, ok: bool, fallback: bool = False):
        elapsed = time.monotonic() - started
        with self._stats_lock:
            if ok:
                self._tasks_completed += 1
            else:
                self._tasks_failed += 1
            if fallback:
                self._fallbacks_used += 1
            self._total_seconds += elapsed

    def describe(self) -> Dict[str, Any]:
        """Agent card with live in-process counters."""
        with self._stats_lock:
            calls = self._tasks_completed + self._tasks_failed
            performance = {
                "tasks_completed": self._tasks_completed,
                "tasks_failed": self._tasks_failed,
                "fallbacks_used": self._fallbacks_used,
                "avg_processing_seconds": round(self._total_seconds / calls, 3) if calls else None,
            }
        return {
            "id": self.agent_id,
            "name": self.name,
            "specialty": self.specialty,
            "status": "active",
            "capabilities": list(self.capabilities),
            "performance": performance,
        }
