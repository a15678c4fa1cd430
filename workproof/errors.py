# workproof/errors.py
"""Error kinds shared by the services and the HTTP layer.

Every error carries a stable ``kind`` so callers can branch on it without
matching message text. ``context`` holds extra structured detail that is
rendered alongside the message.
"""
from typing import Any, Dict, Optional


class WorkproofError(Exception):
    kind = "error"
    status_code = 500

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.kind, "detail": self.message, **self.context}


class Unauthorized(WorkproofError):
    kind = "unauthorized"
    status_code = 401


class Forbidden(WorkproofError):
    kind = "forbidden"
    status_code = 403


class NotFound(WorkproofError):
    kind = "not_found"
    status_code = 404


class ValidationError(WorkproofError):
    kind = "validation_error"
    status_code = 400


class InvalidState(WorkproofError):
    kind = "invalid_state"
    status_code = 409


class InvalidTransition(InvalidState):
    kind = "invalid_transition"

    def __init__(self, current: str, attempted: str, role: str):
        super().__init__(
            f"cannot move job from {current} to {attempted} as {role}",
            {"current": current, "attempted": attempted, "role": role},
        )
        self.current = current
        self.attempted = attempted
        self.role = role


class InvalidSignature(WorkproofError):
    kind = "invalid_signature"
    status_code = 400


class ProcessorUnavailable(WorkproofError):
    """The payment processor failed or timed out. Safe to retry."""

    kind = "processor_unavailable"
    status_code = 503


class Conflict(WorkproofError):
    """A conditional write lost a race. Re-read and retry."""

    kind = "conflict"
    status_code = 409
