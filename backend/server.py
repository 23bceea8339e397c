"""
Flask application entry point for the iSynera backend.

Registers the auth/admin routes and the domain API blueprints (shared
database session per request, JSON errors everywhere).
"""

import json
import logging
import time

from flask import Flask, g, jsonify, request
from werkzeug.exceptions import HTTPException

from isynera.config import config
from isynera.api import ALL_BLUEPRINTS
from isynera.routes import auth_bp, admin_bp
from isynera.db.postgres import close_db_session, rollback_session
from isynera.errors import ISyneraError

LOG_LINE_LIMIT = 80

logging.basicConfig(
    level=logging.DEBUG if config.DEBUG else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
request_logger = logging.getLogger("isynera.requests")


def _request_log_line(method: str, path: str, status: int, elapsed_ms: int, payload) -> str:
    line = f"{method} {path} {status} in {elapsed_ms}ms"
    if payload is not None:
        line += f" :: {json.dumps(payload, default=str)}"
    if len(line) > LOG_LINE_LIMIT:
        line = line[:LOG_LINE_LIMIT - 1] + "…"
    return line


def create_app(init_database: bool = False):
    """Create and configure Flask app."""
    app = Flask(__name__)

    # Load config
    app.config["SECRET_KEY"] = config.SECRET_KEY
    app.config["DEBUG"] = config.DEBUG
    app.config["MAX_CONTENT_LENGTH"] = config.MAX_UPLOAD_BYTES

    # Enable CORS for the web client
    @app.after_request
    def after_request(response):
        response.headers.add("Access-Control-Allow-Origin", "*")
        response.headers.add("Access-Control-Allow-Headers", "Content-Type,Authorization")
        response.headers.add("Access-Control-Allow-Methods", "GET,PUT,POST,DELETE,OPTIONS")
        return response

    # Ensure clean session state at the start of each request
    @app.before_request
    def ensure_clean_session():
        g.request_started = time.perf_counter()
        rollback_session()

    @app.after_request
    def log_request(response):
        if request.path.startswith("/api"):
            elapsed_ms = int((time.perf_counter() - g.get("request_started", time.perf_counter())) * 1000)
            payload = response.get_json(silent=True) if response.is_json else None
            request_logger.info(
                _request_log_line(request.method, request.path, response.status_code, elapsed_ms, payload)
            )
        return response

    # Clean up database session at the end of each request
    @app.teardown_appcontext
    def shutdown_session(exception=None):
        close_db_session(exception)

    # Errors are JSON for every route
    @app.errorhandler(ISyneraError)
    def handle_isynera_error(error):
        return jsonify({"ok": False, "error": error.message}), error.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(error):
        return jsonify({"ok": False, "error": error.description}), error.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(error):
        app.logger.exception("Unhandled error on %s %s", request.method, request.path)
        return jsonify({"ok": False, "error": "Internal Server Error"}), 500

    # Register blueprints
    app.register_blueprint(auth_bp)   # /api/auth/*
    app.register_blueprint(admin_bp)  # /api/admin/*
    for blueprint in ALL_BLUEPRINTS:
        app.register_blueprint(blueprint)

    # Health check endpoint
    @app.route("/health")
    def health():
        return {"status": "ok", "firestore_enabled": config.ENABLE_FIRESTORE}

    # Initialize database tables if requested (development only)
    if init_database:
        with app.app_context():
            from isynera.db.postgres import init_db
            init_db()
            print("[iSynera] Database tables initialized")

    return app


if __name__ == "__main__":
    app = create_app(init_database=False)
    print(f"[iSynera] Starting server on port {config.PORT}...")
    print(f"[iSynera] Firestore enabled: {config.ENABLE_FIRESTORE}")
    print(f"[iSynera] Debug mode: {config.DEBUG}")
    print(f"[iSynera] Routes:")
    print(f"  - /api/auth/*, /api/admin/* (Accounts)")
    print(f"  - /api/patients/*, /api/referrals/* (Intake)")
    print(f"  - /api/eligibility/verify, /api/homebound/assess")
    print(f"  - /api/ai/*, /api/ai/transcription/* (Agents, scribe)")
    print(f"  - /api/doctor/soap-notes/*, /api/prescriptions/*")
    print(f"  - /api/documents/*, /api/recycle/*, /api/billing/*")
    print(f"  - /health (Health check)")
    app.run(debug=config.DEBUG, port=config.PORT)
