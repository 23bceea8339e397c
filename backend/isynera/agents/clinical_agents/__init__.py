"""
Clinical Agents Module.

All clinical agents inherit from BaseClinicalAgent and follow
the same prompt -> LLM -> AgentResponse template.

Usage:
    from isynera.agents.clinical_agents import AIAgentOrchestrator

    orchestrator = AIAgentOrchestrator()
    result = orchestrator.orchestrate_workflow("patient_intake", data)
"""

from .base import AgentResponse, BaseClinicalAgent, Urgency, clamp_confidence

from .referral_agent import ReferralIntelligenceAgent
from .eligibility_agent import EligibilityVerificationAgent
from .homebound_agent import HomeboundAssessmentAgent
from .scheduling_agent import SmartSchedulingAgent
from .consent_agent import ConsentManagementAgent
from .voice_agent import VoiceAssistantAgent

from .orchestrator import AIAgentOrchestrator, WorkflowResult, WORKFLOW_TYPES, get_orchestrator

__all__ = [
    # Base
    "AgentResponse",
    "BaseClinicalAgent",
    "Urgency",
    "clamp_confidence",
    # Agents
    "ReferralIntelligenceAgent",
    "EligibilityVerificationAgent",
    "HomeboundAssessmentAgent",
    "SmartSchedulingAgent",
    "ConsentManagementAgent",
    "VoiceAssistantAgent",
    # Orchestrator
    "AIAgentOrchestrator",
    "WorkflowResult",
    "WORKFLOW_TYPES",
    "get_orchestrator",
]
