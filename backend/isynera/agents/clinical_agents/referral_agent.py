"""
ReferralIntelligenceAgent - Referral completeness, urgency and care pathway.
"""

from typing import Any, Dict, List

from .base import BaseClinicalAgent, AgentResponse


class ReferralIntelligenceAgent(BaseClinicalAgent):

    agent_id = "referral-ai-001"
    name = "ReferralIntelligenceAgent"
    specialty = "Referral analysis and intake triage"
    capabilities = [
        "referral_analysis",
        "missing_information_detection",
        "urgency_triage",
        "care_pathway_recommendation",
    ]
    system_prompt = (
        "You are a healthcare AI specializing in referral analysis. "
        "Provide clinical insights while maintaining HIPAA compliance. "
        "Respond only with a JSON object."
    )

    def build_prompt(self, payload: Dict[str, Any], **kwargs) -> str:
        return f"""
As a healthcare referral intelligence agent, analyze this referral data and provide comprehensive insights:

Referral Data: {self.to_json(payload)}

Analyze for:
1. Completeness and accuracy of medical information
2. Urgency based on diagnosis and patient condition
3. Insurance coverage likelihood and potential issues
4. Care coordination requirements
5. Risk factors and complications
6. Recommended care pathway

Respond in JSON with: recommendation, confidence (0-1), reasoning, nextSteps (array), urgency (low|medium|high|critical).
"""

    def analyze_referral(self, referral_data: Dict[str, Any]) -> AgentResponse:
        return self.analyze(referral_data)

    def identify_missing_information(self, referral_data: Dict[str, Any]) -> List[str]:
        prompt = f"""
Analyze this referral data and identify any missing critical information:
{self.to_json(referral_data)}

Respond in JSON as {{"missingFields": [...]}} listing fields required for home health intake.
"""
        return self.ask_for_list(prompt, "missingFields")
