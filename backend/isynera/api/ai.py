"""
AI API Blueprint

- POST /api/ai/agents/workflow - Run a multi-agent workflow (patient_intake | care_coordination)
- GET  /api/ai/agents - Agent cards
- GET  /api/ai/agents/<type> - One agent card with performance counters
- POST /api/ai/chart-review - Coding review over chart documents
- POST /api/ai/rag/query - Question answering over patient records
- POST /api/ai/voice/query - Voice assistant query
"""

from flask import Blueprint, jsonify

from isynera.agents.clinical_agents import get_orchestrator
from isynera.api.common import require_auth, current_user, json_body, require_fields
from isynera.errors import ValidationError
from isynera.services.chart_review import get_chart_review_engine
from isynera.services.rag_assistant import get_rag_assistant

ai_bp = Blueprint("ai", __name__, url_prefix="/api/ai")


@ai_bp.route("/agents/workflow", methods=["POST"])
@require_auth()
def run_workflow():
    data = json_body()
    require_fields(data, "workflow_type")
    result = get_orchestrator().orchestrate_workflow(data["workflow_type"], data.get("data") or {})
    return jsonify({"ok": True, "workflow": result.to_dict()})


@ai_bp.route("/agents", methods=["GET"])
@require_auth()
def list_agents():
    return jsonify({"ok": True, "agents": get_orchestrator().list_agents()})


@ai_bp.route("/agents/<agent_type>", methods=["GET"])
@require_auth()
def get_agent(agent_type):
    return jsonify({"ok": True, "agent": get_orchestrator().get_agent_insights(agent_type)})


@ai_bp.route("/chart-review", methods=["POST"])
@require_auth(("doctor", "billing"))
def chart_review():
    data = json_body()
    require_fields(data, "patient_id")
    documents = data.get("chart_documents")
    if not isinstance(documents, list):
        raise ValidationError("chart_documents must be a list of document texts")

    review = get_chart_review_engine().conduct_chart_review(
        data["patient_id"], documents, reviewer_id=current_user()["id"]
    )
    return jsonify({"ok": True, "review": review}), 201


@ai_bp.route("/rag/query", methods=["POST"])
@require_auth()
def rag_query():
    data = json_body()
    question = (data.get("question") or "").strip()
    if not question:
        raise ValidationError("Question is required")

    return jsonify({"ok": True, **get_rag_assistant().query(question, patient_id=data.get("patient_id"))})


@ai_bp.route("/voice/query", methods=["POST"])
@require_auth()
def voice_query():
    data = json_body()
    transcript = (data.get("transcript") or "").strip()
    if not transcript:
        raise ValidationError("Transcript is required")

    agent = get_orchestrator().get_agent("voice")
    response = agent.process_voice_query(transcript, context=data.get("context"))
    return jsonify({"ok": True, "response": response.to_dict()})
