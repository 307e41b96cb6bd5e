from __future__ import annotations
from typing import Optional, Dict, Any
import logging

from app.models.audit import AuditEntry
from app.models.change_request import ChangeRequest
from app.utils.audit_sink import write_event

logger = logging.getLogger(__name__)

def record_audit(
    cr: ChangeRequest,
    action: str,
    actor,
    details: Dict[str, Any],
    ip_address: Optional[str] = None,
) -> AuditEntry:
    """
    Append one audit entry to the change request.
    Does not commit: the entry is persisted by the same commit as the state change.
    """
    return cr.add_audit_log(action, actor, details, ip_address)

def mirror_audit(cr: ChangeRequest, entry: AuditEntry) -> None:
    """Mirror a committed audit entry to the JSONL sink. Never raises."""
    try:
        write_event({
            "id": entry.id,
            "change_request_id": cr.id,
            "change_control_number": cr.change_control_number,
            "action": entry.action,
            "performed_by": entry.performed_by,
            "details": entry.details or {},
            "ip_address": entry.ip_address,
            "created_at": entry.created_at.isoformat() if entry.created_at else None,
        })
    except Exception as e:
        logger.warning("audit mirror failed for change_request=%s entry=%s: %s", cr.id, entry.id, e)
