# app/core/exceptions.py
"""
Scheduling error taxonomy.

Services raise these; the API maps them to HTTP responses and the Celery
tasks log them. SlotUnavailable is an expected outcome, not a bug, and is
kept distinct from PersistenceFailure so callers can offer "pick another
time" instead of "try again".
"""
from typing import Any, Dict, Optional


class SchedulingError(Exception):
    """Base class for all scheduling errors"""

    code = "scheduling_error"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.code, "message": self.message, "details": self.details}


class NotFound(SchedulingError):
    """Referenced business/service/staff/appointment/template/reminder is missing"""
    code = "not_found"


class InvalidInput(SchedulingError):
    """Malformed interval, weekday out of range, unsupported frequency, ..."""
    code = "invalid_input"


class SlotUnavailable(SchedulingError):
    """The requested interval conflicts with an existing booking or business hours"""
    code = "slot_unavailable"


class InvalidState(SchedulingError):
    """Operation not permitted in the current status"""
    code = "invalid_state"


class PersistenceFailure(SchedulingError):
    """Underlying storage error"""
    code = "persistence_failure"
