"""
ConsentManagementAgent - Consent requirements and form drafting.
"""

from typing import Any, Dict

from .base import BaseClinicalAgent, AgentResponse


class ConsentManagementAgent(BaseClinicalAgent):

    agent_id = "consent-ai-005"
    name = "ConsentManagementAgent"
    specialty = "Patient consent and HIPAA compliance"
    capabilities = [
        "consent_requirement_analysis",
        "consent_form_generation",
    ]
    system_prompt = (
        "You are a healthcare compliance AI specializing in patient consent and HIPAA regulations. "
        "Respond only with a JSON object."
    )

    def build_prompt(self, payload: Dict[str, Any], service_type: str = "home_health", **kwargs) -> str:
        return f"""
As a healthcare consent management AI agent, analyze consent requirements:

Patient Data: {self.to_json(payload)}
Service Type: {service_type}

Determine:
1. Required consent forms
2. HIPAA compliance requirements
3. State-specific consent laws
4. Special populations considerations
5. Electronic signature validity
6. Witness requirements
7. Renewal timelines

Respond in JSON with: recommendation, confidence (0-1), reasoning, nextSteps (array),
urgency (low|medium|high|critical), requiredForms (array).
"""

    def analyze_consent_requirements(self, patient_data: Dict[str, Any], service_type: str) -> AgentResponse:
        return self.analyze(patient_data, service_type=service_type)

    def generate_consent_form(self, patient_info: Dict[str, Any], service_details: Dict[str, Any]) -> str:
        prompt = f"""
Generate a customized consent form for:
Patient: {self.to_json(patient_info)}
Services: {self.to_json(service_details)}

Create a HIPAA-compliant consent form with appropriate legal language.
"""
        return self.ask_for_text(prompt)
