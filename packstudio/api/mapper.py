"""
API Mapper
==========

Transforms internal error data into response payloads.

Errors cross the HTTP boundary with their code, message and context
intact; nothing is smoothed into a generic message.
"""
from typing import Any, Dict, List

from pydantic import BaseModel

from ..contracts.base import Error
from ..contracts.events import AuditLogEntry


class ErrorPayload(BaseModel):
    code: str
    message: str
    context: Dict[str, str] = {}


class ErrorResponse(BaseModel):
    error: ErrorPayload


class HealthResponse(BaseModel):
    status: str
    format: str


def map_error_to_payload(error: Error) -> Dict[str, Any]:
    """Map an Error to the JSON body of an error response."""
    return ErrorResponse(
        error=ErrorPayload(
            code=error.code.name,
            message=error.message,
            context=dict(error.context),
        )
    ).model_dump()


def map_audit_entries(entries: List[AuditLogEntry]) -> List[Dict[str, Any]]:
    """Map audit entries to plain dicts, newest last."""
    return [
        {
            "entry_id": e.entry_id,
            "event_type": e.event_type.value,
            "timestamp": e.timestamp.isoformat().replace('+00:00', 'Z'),
            "layer": e.layer,
            "action": e.action,
            "entity_id": e.entity_id,
            "metadata": dict(e.metadata),
        }
        for e in entries
    ]
