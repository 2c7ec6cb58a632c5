# app/errors.py
"""
Error taxonomy for the credential engine.
Services raise these; app.main renders them as {"error", "message", "details"}
with the HTTP status below.
"""

from typing import Any, Optional


class EngineError(Exception):
    code = "INTERNAL_ERROR"
    status_code = 500

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        body = {"error": self.code, "message": self.message}
        if self.details is not None:
            body["details"] = self.details
        return body


class ValidationError(EngineError):
    """Malformed or missing input. `details` lists every failing field."""
    code = "VALIDATION_ERROR"
    status_code = 400


class ForbiddenError(EngineError):
    code = "FORBIDDEN"
    status_code = 403


class NotFoundError(EngineError):
    code = "NOT_FOUND"
    status_code = 404


class ConflictError(EngineError):
    code = "CONFLICT"
    status_code = 409


class PreconditionFailedError(EngineError):
    code = "PRECONDITION_FAILED"
    status_code = 412


class ExternalRejectedError(EngineError):
    """The issuer/verifier answered with a business error code."""
    code = "EXTERNAL_REJECTED"
    status_code = 502

    def __init__(self, message: str, upstream_code: Optional[str] = None, details: Optional[Any] = None):
        super().__init__(message, details)
        self.upstream_code = upstream_code

    def to_dict(self) -> dict:
        body = super().to_dict()
        body["upstream_code"] = self.upstream_code
        return body


class ExternalUnavailableError(EngineError):
    """Issuer/verifier unreachable, timed out, or answered 5xx."""
    code = "EXTERNAL_UNAVAILABLE"
    status_code = 503
