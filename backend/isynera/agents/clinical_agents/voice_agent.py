"""
VoiceAssistantAgent - Spoken workflow queries and proactive alerts.
"""

from typing import Any, Dict, List, Optional

from .base import BaseClinicalAgent, AgentResponse


class VoiceAssistantAgent(BaseClinicalAgent):

    agent_id = "voice-ai-006"
    name = "VoiceAssistantAgent"
    specialty = "Clinical workflow voice assistance"
    capabilities = [
        "intent_recognition",
        "workflow_guidance",
        "proactive_alerts",
    ]
    system_prompt = (
        "You are a healthcare voice AI assistant specializing in clinical workflow support "
        "and patient care coordination. Respond only with a JSON object."
    )

    def build_prompt(self, payload: Dict[str, Any], **kwargs) -> str:
        return f"""
As a healthcare voice assistant AI agent, process this voice query:

Transcript: "{payload.get('transcript', '')}"
Context: {self.to_json(payload.get('context') or {})}

Provide:
1. Intent recognition
2. Appropriate healthcare response
3. Action recommendations
4. Workflow guidance
5. HIPAA-compliant handling

Respond in JSON with: recommendation (natural language reply), confidence (0-1), reasoning,
nextSteps (array), urgency (low|medium|high|critical), intent.
"""

    def process_voice_query(self, transcript: str, context: Optional[Dict[str, Any]] = None) -> AgentResponse:
        return self.analyze({"transcript": transcript, "context": context or {}})

    def generate_proactive_alerts(self, system_data: Dict[str, Any]) -> List[str]:
        prompt = f"""
Based on this healthcare system data, generate proactive alerts and recommendations:
{self.to_json(system_data)}

Respond in JSON as {{"alerts": [...]}}.
"""
        return self.ask_for_list(prompt, "alerts")
