"""
SmartSchedulingAgent - Visit scheduling and route optimization.
"""

from typing import Any, Dict, List

from .base import BaseClinicalAgent, AgentResponse


class SmartSchedulingAgent(BaseClinicalAgent):

    agent_id = "scheduler-ai-004"
    name = "SmartSchedulingAgent"
    specialty = "Staff scheduling and route optimization"
    capabilities = [
        "schedule_optimization",
        "travel_time_minimization",
        "conflict_prediction",
    ]
    system_prompt = (
        "You are a healthcare operations AI specializing in staff scheduling and route optimization. "
        "Respond only with a JSON object."
    )

    def build_prompt(self, payload: Dict[str, Any], **kwargs) -> str:
        return f"""
As a healthcare scheduling optimization AI agent, analyze this scheduling scenario:

Scheduling Data: {self.to_json(payload)}

Optimize for:
1. Staff efficiency and utilization
2. Travel time minimization
3. Patient preferences and needs
4. Appointment type requirements
5. Geographic clustering
6. Capacity planning
7. Emergency accommodation

Respond in JSON with: recommendation, confidence (0-1), reasoning, nextSteps (array), urgency (low|medium|high|critical).
"""

    def optimize_scheduling(self, scheduling_data: Dict[str, Any]) -> AgentResponse:
        return self.analyze(scheduling_data)

    def predict_scheduling_conflicts(self, appointments: List[Dict[str, Any]]) -> List[str]:
        prompt = f"""
Analyze these upcoming appointments and predict potential scheduling conflicts:
{self.to_json(appointments)}

Respond in JSON as {{"conflicts": [...]}}.
"""
        return self.ask_for_list(prompt, "conflicts")
