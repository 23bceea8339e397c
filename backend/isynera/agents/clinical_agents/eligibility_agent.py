"""
EligibilityVerificationAgent - Coverage likelihood and verification strategy.
"""

from typing import Any, Dict, List

from .base import BaseClinicalAgent, AgentResponse


class EligibilityVerificationAgent(BaseClinicalAgent):

    agent_id = "eligibility-ai-002"
    name = "EligibilityVerificationAgent"
    specialty = "Insurance eligibility prediction"
    capabilities = [
        "coverage_prediction",
        "preauthorization_detection",
        "denial_risk_estimation",
        "verification_strategy",
    ]
    system_prompt = (
        "You are an insurance eligibility AI specializing in healthcare coverage analysis. "
        "Respond only with a JSON object."
    )

    def build_prompt(self, payload: Dict[str, Any], **kwargs) -> str:
        return f"""
As a healthcare eligibility verification AI agent, analyze this patient data and predict insurance eligibility:

Patient Data: {self.to_json(payload)}

Predict:
1. Likelihood of coverage approval
2. Potential coverage limitations
3. Pre-authorization requirements
4. Alternative coverage options
5. Risk of claim denial
6. Recommended verification strategy

Respond in JSON with: recommendation, confidence (0-1), reasoning, nextSteps (array), urgency (low|medium|high|critical).
"""

    def predict_eligibility(self, patient_data: Dict[str, Any]) -> AgentResponse:
        return self.analyze(patient_data)

    def optimize_verification_strategy(self, insurance_type: str, diagnosis: str) -> List[str]:
        prompt = f"""
Given insurance type "{insurance_type}" and diagnosis "{diagnosis}",
recommend the most efficient eligibility verification strategy.
Respond in JSON as {{"steps": [...]}}.
"""
        return self.ask_for_list(prompt, "steps")
