"""
Typed errors raised by the change-control workflow.

Every error carries a machine-readable ``kind`` and the HTTP status the API
answers with. Guard and validation failures are raised before anything is
mutated, so a caller that catches one can rely on the record being untouched.
"""
from __future__ import annotations
from typing import Any, Dict, Optional


class WorkflowError(Exception):
    kind: str = "WorkflowError"
    status_code: int = 400

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"detail": self.message, "kind": self.kind}
        if self.details:
            out["details"] = self.details
        return out


class NotFoundError(WorkflowError):
    """Record absent or soft-deleted."""
    kind = "NotFound"
    status_code = 404


class ForbiddenError(WorkflowError):
    """Actor lacks the role or relationship the guard requires."""
    kind = "Forbidden"
    status_code = 403


class InvalidStateError(WorkflowError):
    """Action not legal from the record's current status (or the status moved underneath us)."""
    kind = "InvalidState"
    status_code = 409


class ValidationError(WorkflowError):
    kind = "ValidationError"
    status_code = 422


class RoutingError(WorkflowError):
    """No active user can fill the approver role the transition needs."""
    kind = "RoutingError"
    status_code = 409


class StorageError(WorkflowError):
    kind = "StorageError"
    status_code = 500


class ImmutableRecordError(WorkflowError):
    """Attempt to edit or remove an approval record or audit entry."""
    kind = "ImmutableRecord"
    status_code = 500

    def __init__(self, entity_type: str, entity_id: Any, operation: str):
        super().__init__(
            f"{entity_type} {entity_id} is append-only; {operation} is not allowed",
            {"entity_type": entity_type, "entity_id": entity_id, "operation": operation},
        )
