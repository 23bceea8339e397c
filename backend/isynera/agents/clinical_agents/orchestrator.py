"""
AIAgentOrchestrator - Registry of clinical agents and multi-agent workflows.

Workflows run their agents sequentially on the same payload:
- patient_intake:    referral -> eligibility -> consent (home_health)
- care_coordination: scheduler -> homebound
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional
import logging

from isynera.errors import NotFoundError, ValidationError
from isynera.services.llm import LLMClient, get_llm_client

from .base import AgentResponse, BaseClinicalAgent
from .referral_agent import ReferralIntelligenceAgent
from .eligibility_agent import EligibilityVerificationAgent
from .homebound_agent import HomeboundAssessmentAgent
from .scheduling_agent import SmartSchedulingAgent
from .consent_agent import ConsentManagementAgent
from .voice_agent import VoiceAssistantAgent


WORKFLOW_TYPES = ("patient_intake", "care_coordination")


@dataclass
class WorkflowResult:
    workflow_type: str
    responses: List[AgentResponse] = field(default_factory=list)
    computed_at: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "workflow_type": self.workflow_type,
            "responses": [r.to_dict() for r in self.responses],
            "computed_at": self.computed_at.isoformat(),
        }


class AIAgentOrchestrator:
    """
    Owns one instance of each clinical agent, keyed by short type name.

    Usage:
        orchestrator = AIAgentOrchestrator()
        result = orchestrator.orchestrate_workflow("patient_intake", data)
    """

    def __init__(self, llm: Optional[LLMClient] = None):
        self.logger = logging.getLogger("orchestrator")
        llm = llm or get_llm_client()
        self.agents: Dict[str, BaseClinicalAgent] = {
            "referral": ReferralIntelligenceAgent(llm),
            "eligibility": EligibilityVerificationAgent(llm),
            "homebound": HomeboundAssessmentAgent(llm),
            "scheduler": SmartSchedulingAgent(llm),
            "consent": ConsentManagementAgent(llm),
            "voice": VoiceAssistantAgent(llm),
        }

    def get_agent(self, agent_type: str) -> BaseClinicalAgent:
        agent = self.agents.get(agent_type)
        if agent is None:
            raise NotFoundError(f"Agent not found: {agent_type}")
        return agent

    def orchestrate_workflow(self, workflow_type: str, data: Dict[str, Any]) -> WorkflowResult:
        """Run a named workflow. Any agent failure aborts the workflow."""
        result = WorkflowResult(workflow_type=workflow_type)

        if workflow_type == "patient_intake":
            result.responses.append(self.agents["referral"].analyze_referral(data))
            result.responses.append(self.agents["eligibility"].predict_eligibility(data))
            result.responses.append(
                self.agents["consent"].analyze_consent_requirements(data, "home_health")
            )
        elif workflow_type == "care_coordination":
            result.responses.append(self.agents["scheduler"].optimize_scheduling(data))
            result.responses.append(self.agents["homebound"].assess_homebound_status(data))
        else:
            raise ValidationError(f"Unknown workflow type: {workflow_type}")

        self.logger.info(f"Workflow {workflow_type} completed with {len(result.responses)} agent responses")
        return result

    def get_agent_insights(self, agent_type: str) -> Dict[str, Any]:
        return self.get_agent(agent_type).describe()

    def list_agents(self) -> List[Dict[str, Any]]:
        return [agent.describe() for agent in self.agents.values()]


# Singleton instance
_orchestrator = None


def get_orchestrator() -> AIAgentOrchestrator:
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = AIAgentOrchestrator()
    return _orchestrator
