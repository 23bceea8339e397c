"""
Service-level exceptions.

Each carries the HTTP status the API layer reports it with; server.py
registers a single handler for the base class.
"""


class ISyneraError(Exception):
    status_code = 500

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(ISyneraError):
    status_code = 400


class AuthError(ISyneraError):
    status_code = 401


class PermissionDeniedError(ISyneraError):
    status_code = 403


class NotFoundError(ISyneraError):
    status_code = 404


class ConflictError(ISyneraError):
    status_code = 409


class AIServiceError(ISyneraError):
    """AI provider (LLM or OCR) unreachable, misconfigured, or returned unparseable output."""

    status_code = 502
