# app/crud/change_request.py
from __future__ import annotations
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional, Tuple
import logging

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from app.core.database import utcnow
from app.core.errors import (
    WorkflowError, NotFoundError, ForbiddenError, InvalidStateError,
    ValidationError, RoutingError, StorageError, ImmutableRecordError,
)
from app.metrics import workflow_transitions_total, workflow_guard_failures_total, routing_failures_total
from app.models.approval import ApprovalAction
from app.models.audit import AuditEntry
from app.models.change_request import (
    ChangeRequest, ChangeRequestStatus as S, ChangeType, Category, Priority, ImpactLevel, IMPACT_AREAS,
)
from app.models.notification import NotificationType as NT
from app.models.user import User, UserRole
from app.services import workflow as wf
from app.services.audit import record_audit, mirror_audit
from app.services.directory import UserDirectory, SqlUserDirectory
from app.services.notifications import Notifier, notify_safely
from app.services.numbering import next_control_number
from app.utils.policy import page_limit

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = (
    "title",
    "description",
    "change_type",
    "category",
    "current_state",
    "proposed_change",
    "justification",
    "impact_assessment",
    "proposed_implementation_date",
)

MAX_LENGTHS = {
    "title": 200,
    "description": 2000,
    "current_state": 1000,
    "proposed_change": 2000,
    "justification": 1000,
}

SORTABLE_FIELDS = {
    "request_date": ChangeRequest.request_date,
    "created_at": ChangeRequest.created_at,
    "updated_at": ChangeRequest.updated_at,
    "proposed_implementation_date": ChangeRequest.proposed_implementation_date,
    "change_control_number": ChangeRequest.change_control_number,
    "title": ChangeRequest.title,
    "status": ChangeRequest.status,
    "priority": ChangeRequest.priority,
}


@dataclass
class ChangeRequestFilters:
    status: Optional[str] = None
    department: Optional[str] = None
    change_type: Optional[str] = None
    category: Optional[str] = None
    priority: Optional[str] = None
    requester_id: Optional[int] = None
    from_date: Optional[datetime] = None
    to_date: Optional[datetime] = None
    search: Optional[str] = None


def refuse(err: WorkflowError) -> WorkflowError:
    workflow_guard_failures_total.labels(kind=err.kind).inc()
    logger.info("workflow refused (%s): %s", err.kind, err.message)
    return err


# -------------------------- field validation --------------------------

def to_naive_utc(value: Any) -> datetime:
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            raise ValidationError(f"Invalid date '{value}'; expected ISO 8601")
    if isinstance(value, date) and not isinstance(value, datetime):
        value = datetime(value.year, value.month, value.day)
    if not isinstance(value, datetime):
        raise ValidationError("proposed_implementation_date must be a date")
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value

def _check_choice(field: str, value: str, enum_cls) -> str:
    v = getattr(value, "value", value)
    allowed = [e.value for e in enum_cls]
    if v not in allowed:
        raise ValidationError(f"Invalid {field} '{v}'. Must be one of {allowed}.")
    return v

def _clean_impact(value: Any) -> Dict[str, Any]:
    if not isinstance(value, dict):
        raise ValidationError("impact_assessment must be an object")
    out: Dict[str, Any] = {}
    for area, entry in value.items():
        if area not in IMPACT_AREAS:
            raise ValidationError(f"Unknown impact area '{area}'. Must be one of {list(IMPACT_AREAS)}.")
        if entry is None:
            continue
        if not isinstance(entry, dict):
            raise ValidationError(f"impact_assessment.{area} must be an object")
        entry = {k: v for k, v in entry.items() if v is not None}
        if "impact" in entry:
            entry["impact"] = _check_choice(f"{area} impact", entry["impact"], ImpactLevel)
        out[area] = entry
    return out

def validate_fields(fields: Dict[str, Any], partial: bool) -> Dict[str, Any]:
    """
    Keep only editable fields and normalise them.
    partial=False (create) requires every field in REQUIRED_FIELDS.
    """
    data: Dict[str, Any] = {}
    for key in wf.EDITABLE_FIELDS:
        if key not in fields:
            continue
        v = fields[key]
        if v is None or (isinstance(v, str) and not v.strip()):
            continue
        data[key] = v.strip() if isinstance(v, str) else v

    if not partial:
        missing = [k for k in REQUIRED_FIELDS if k not in data]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}", {"missing": missing})

    for key, limit in MAX_LENGTHS.items():
        if key in data and len(str(data[key])) > limit:
            raise ValidationError(f"{key} cannot exceed {limit} characters")
    if "change_type" in data:
        data["change_type"] = _check_choice("change_type", data["change_type"], ChangeType)
    if "category" in data:
        data["category"] = _check_choice("category", data["category"], Category)
    if "priority" in data:
        data["priority"] = _check_choice("priority", data["priority"], Priority)
    if "impact_assessment" in data:
        data["impact_assessment"] = _clean_impact(data["impact_assessment"])
    if "proposed_implementation_date" in data:
        data["proposed_implementation_date"] = to_naive_utc(data["proposed_implementation_date"])
    return data


# -------------------------- persistence helpers --------------------------

def load_change_request(db: Session, cr_id: int) -> ChangeRequest:
    cr = (
        db.query(ChangeRequest)
        .filter(ChangeRequest.id == cr_id, ChangeRequest.is_deleted.is_(False))
        .first()
    )
    if not cr:
        raise refuse(NotFoundError(f"Change request {cr_id} not found"))
    return cr

def commit_change(db: Session, cr: ChangeRequest, entry: AuditEntry, action: str) -> ChangeRequest:
    """
    Commit the state change and its audit entry together.
    A concurrent writer that got there first surfaces as InvalidStateError.
    """
    cr_id = cr.id
    try:
        db.commit()
    except StaleDataError:
        db.rollback()
        raise refuse(InvalidStateError(
            "Change request was modified by another operation (stale precondition); reload and retry",
            {"change_request_id": cr_id, "action": action},
        ))
    except ImmutableRecordError:
        db.rollback()
        raise
    except SQLAlchemyError:
        db.rollback()
        logger.exception("storage failure during %s on change_request=%s", action, cr_id)
        raise refuse(StorageError(f"Storage failure during {action}", {"change_request_id": cr_id}))
    db.refresh(cr)
    mirror_audit(cr, entry)
    workflow_transitions_total.labels(action=action, status=cr.status).inc()
    return cr


# -------------------------- mutations --------------------------

def create_change_request(db: Session, requester: User, fields: Dict[str, Any],
                          ip_address: Optional[str] = None) -> ChangeRequest:
    data = validate_fields(fields, partial=False)
    data.setdefault("priority", Priority.MEDIUM.value)
    now = utcnow()
    cr = ChangeRequest(
        **data,
        requester_id=requester.id,
        department=requester.department,
        request_date=now,
        status=S.DRAFT.value,
        created_at=now,
        updated_at=now,
    )
    db.add(cr)
    entry = record_audit(cr, "Change request created", requester, {"status": S.DRAFT.value}, ip_address)
    commit_change(db, cr, entry, "create")
    logger.info("change_request=%s created by user=%s", cr.id, requester.id)
    return cr

def update_change_request(db: Session, cr_id: int, actor: User, fields: Dict[str, Any],
                          ip_address: Optional[str] = None) -> ChangeRequest:
    cr = load_change_request(db, cr_id)
    if not wf.can_edit(actor, cr):
        raise refuse(ForbiddenError("Not authorized to edit this change request"))
    data = validate_fields(fields, partial=True)

    changed: List[str] = []
    for key, value in data.items():
        if getattr(cr, key) != value:
            setattr(cr, key, value)
            changed.append(key)
    cr.updated_at = utcnow()

    entry = record_audit(cr, "Change request updated", actor, {"updatedFields": changed}, ip_address)
    return commit_change(db, cr, entry, "update")

def submit_change_request(db: Session, cr_id: int, actor: User,
                          directory: Optional[UserDirectory] = None,
                          notifier: Optional[Notifier] = None,
                          ip_address: Optional[str] = None) -> ChangeRequest:
    cr = load_change_request(db, cr_id)
    if not wf.can_submit(actor, cr):
        raise refuse(ForbiddenError("Only the requester can submit the change request"))
    if cr.status != S.DRAFT.value:
        raise refuse(InvalidStateError(
            "Change request has already been submitted", {"status": cr.status}))

    directory = directory or SqlUserDirectory(db)
    hod = directory.find_active_user_by_role_and_department(UserRole.HOD.value, cr.department)
    if not hod:
        routing_failures_total.labels(role=UserRole.HOD.value).inc()
        raise refuse(RoutingError(
            f"No HOD found for department '{cr.department}'", {"role": UserRole.HOD.value}))

    previous = cr.status
    # a request reopened after rejection keeps the number it was first given
    if not cr.change_control_number:
        cr.change_control_number = next_control_number(db)
    cr.status = S.SUBMITTED.value
    cr.current_approver_id = hod.id
    cr.updated_at = utcnow()

    entry = record_audit(cr, "Change request submitted for approval", actor, {
        "previousStatus": previous,
        "newStatus": S.SUBMITTED.value,
        "assignedTo": hod.id,
        "changeControlNumber": cr.change_control_number,
    }, ip_address)
    commit_change(db, cr, entry, "submit")
    logger.info("change_request=%s submitted as %s; routed to hod=%s", cr.id, cr.change_control_number, hod.id)

    notify_safely(notifier, hod.id, NT.APPROVAL_REQUEST.value, cr)
    return cr

def approve_change_request(db: Session, cr_id: int, actor: User,
                           comments: Optional[str] = None, signature: Optional[str] = None,
                           directory: Optional[UserDirectory] = None,
                           notifier: Optional[Notifier] = None,
                           ip_address: Optional[str] = None) -> ChangeRequest:
    cr = load_change_request(db, cr_id)
    if not wf.can_approve(actor, cr):
        raise refuse(ForbiddenError("Not authorized to approve this change request"))

    t = wf.approval_transition(cr.status, actor.role)
    if t is None:
        raise refuse(InvalidStateError(
            "Invalid approval workflow state", {"status": cr.status, "role": actor.role}))

    next_approver = None
    if t.next_role:
        directory = directory or SqlUserDirectory(db)
        next_approver = directory.find_active_user_by_role(t.next_role)
        if not next_approver:
            routing_failures_total.labels(role=t.next_role).inc()
            raise refuse(RoutingError(
                f"No active {t.next_role} available to route to", {"role": t.next_role}))

    previous = cr.status
    cr.record_approval(actor, actor.role, ApprovalAction.APPROVED.value, comments, signature)
    cr.status = t.new_status
    cr.current_approver_id = next_approver.id if next_approver else None
    cr.updated_at = utcnow()

    entry = record_audit(cr, f"Approved by {actor.role}", actor, {
        "previousStatus": previous,
        "newStatus": t.new_status,
        "outcome": t.outcome,
        "assignedTo": cr.current_approver_id,
        "comments": comments,
    }, ip_address)
    commit_change(db, cr, entry, "approve")
    logger.info("change_request=%s approved by %s=%s: %s -> %s",
                cr.id, actor.role, actor.id, previous, cr.status)

    if next_approver:
        notify_safely(notifier, next_approver.id, NT.APPROVAL_REQUEST.value, cr)
        notify_safely(notifier, cr.requester_id, NT.APPROVAL_GIVEN.value, cr)
    else:
        notify_safely(notifier, cr.requester_id, NT.ALL_APPROVALS_COMPLETE.value, cr)
    return cr

def reject_change_request(db: Session, cr_id: int, actor: User, comments: Optional[str],
                          signature: Optional[str] = None,
                          notifier: Optional[Notifier] = None,
                          ip_address: Optional[str] = None) -> ChangeRequest:
    if not comments or not str(comments).strip():
        raise refuse(ValidationError("Comments are required for rejection"))
    comments = str(comments).strip()

    cr = load_change_request(db, cr_id)
    if not wf.can_approve(actor, cr):
        raise refuse(ForbiddenError("Not authorized to reject this change request"))

    rejected = wf.rejection_status(cr.status, actor.role)
    if rejected is None:
        raise refuse(InvalidStateError(
            "Invalid rejection workflow state", {"status": cr.status, "role": actor.role}))

    previous = cr.status
    cr.status = rejected
    cr.current_approver_id = None
    cr.record_approval(actor, actor.role, ApprovalAction.REJECTED.value, comments, signature)
    cr.updated_at = utcnow()

    entry = record_audit(cr, f"Rejected by {actor.role}", actor, {
        "previousStatus": previous,
        "newStatus": rejected,
        "comments": comments,
    }, ip_address)
    commit_change(db, cr, entry, "reject")
    logger.info("change_request=%s rejected by %s=%s", cr.id, actor.role, actor.id)

    notify_safely(notifier, cr.requester_id, NT.REJECTION.value, cr, comments)
    return cr

def reopen_change_request(db: Session, cr_id: int, actor: User,
                          ip_address: Optional[str] = None) -> ChangeRequest:
    """Return a rejected request to draft so it can be edited and submitted again."""
    cr = load_change_request(db, cr_id)
    if not wf.can_reopen(actor, cr):
        raise refuse(ForbiddenError("Only the requester can return this change request to draft"))
    if cr.status not in wf.REOPENABLE_STATUSES:
        raise refuse(InvalidStateError(
            "Only HOD- or QA-rejected change requests can be returned to draft", {"status": cr.status}))

    previous = cr.status
    cr.status = S.DRAFT.value
    cr.updated_at = utcnow()
    entry = record_audit(cr, "Change request returned to draft", actor, {
        "previousStatus": previous,
        "newStatus": S.DRAFT.value,
    }, ip_address)
    return commit_change(db, cr, entry, "reopen")

def discontinue_change_request(db: Session, cr_id: int, actor: User, reason: Optional[str] = None,
                               notifier: Optional[Notifier] = None,
                               ip_address: Optional[str] = None) -> ChangeRequest:
    cr = load_change_request(db, cr_id)
    if actor.role != UserRole.ADMIN.value:
        raise refuse(ForbiddenError("Only an administrator can discontinue a change request"))
    if cr.status in wf.TERMINAL_STATUSES:
        raise refuse(InvalidStateError(
            f"Change request is already {cr.status}", {"status": cr.status}))

    previous = cr.status
    cr.status = S.DISCONTINUED.value
    cr.current_approver_id = None
    cr.updated_at = utcnow()
    entry = record_audit(cr, "Change request discontinued", actor, {
        "previousStatus": previous,
        "newStatus": S.DISCONTINUED.value,
        "reason": reason,
    }, ip_address)
    commit_change(db, cr, entry, "discontinue")

    notify_safely(notifier, cr.requester_id, NT.DISCONTINUED.value, cr, reason)
    return cr

TASK_STATUSES = ("pending", "in_progress", "completed")
EFFECTIVENESS_RESULTS = ("effective", "partially_effective", "ineffective")

def _optional_text(payload: Dict[str, Any], key: str, limit: int = 2000) -> Optional[str]:
    v = payload.get(key)
    if v is None:
        return None
    v = str(v).strip()
    if len(v) > limit:
        raise ValidationError(f"{key} cannot exceed {limit} characters")
    return v or None

def validate_action_plan(db: Session, payload: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    payload = payload or {}
    tasks = payload.get("tasks") or []
    if not isinstance(tasks, list) or not tasks:
        raise ValidationError("An action plan needs at least one task", {"missing": ["tasks"]})
    cleaned = []
    for i, task in enumerate(tasks):
        if not isinstance(task, dict):
            raise ValidationError(f"Task {i + 1} must be an object")
        description = str(task.get("description") or "").strip()
        if not description:
            raise ValidationError(f"Task {i + 1} needs a description")
        responsible = task.get("responsible_id")
        if responsible is not None:
            user = db.get(User, responsible)
            if not user or not user.is_active:
                raise ValidationError(f"Task {i + 1}: responsible user {responsible} is not an active user")
        due = task.get("due_date")
        status = task.get("status") or "pending"
        if status not in TASK_STATUSES:
            raise ValidationError(f"Task {i + 1}: invalid status '{status}'. Must be one of {list(TASK_STATUSES)}.")
        cleaned.append({
            "description": description,
            "responsible_id": responsible,
            "due_date": to_naive_utc(due).isoformat() if due else None,
            "status": status,
        })
    return {
        "tasks": cleaned,
        "resources": _optional_text(payload, "resources"),
        "timeline": _optional_text(payload, "timeline"),
        "success_criteria": _optional_text(payload, "success_criteria"),
        "risk_mitigation": _optional_text(payload, "risk_mitigation"),
    }

def validate_effectiveness_check(payload: Optional[Dict[str, Any]], checker: User) -> Dict[str, Any]:
    payload = payload or {}
    result = payload.get("overall_result")
    if result not in EFFECTIVENESS_RESULTS:
        raise ValidationError(
            f"overall_result must be one of {list(EFFECTIVENESS_RESULTS)}", {"missing": ["overall_result"]})
    criteria = []
    for c in payload.get("criteria") or []:
        if not isinstance(c, dict):
            raise ValidationError("Every effectiveness criterion must be an object")
        description = str(c.get("description") or "").strip()
        if not description:
            raise ValidationError("Every effectiveness criterion needs a description")
        criteria.append({"description": description, "met": bool(c.get("met")), "evidence": c.get("evidence")})
    follow_up_actions = [str(a).strip() for a in payload.get("follow_up_actions") or [] if str(a).strip()]
    return {
        "overall_result": result,
        "criteria": criteria,
        "comments": _optional_text(payload, "comments"),
        "follow_up_required": bool(payload.get("follow_up_required")) or bool(follow_up_actions),
        "follow_up_actions": follow_up_actions,
        "checked_by": checker.id,
        "check_date": utcnow().isoformat(),
    }

def advance_change_request(db: Session, cr_id: int, actor: User, step_name: str,
                           comments: Optional[str] = None, payload: Optional[Dict[str, Any]] = None,
                           notifier: Optional[Notifier] = None,
                           ip_address: Optional[str] = None) -> ChangeRequest:
    """
    Apply one post-approval step from LIFECYCLE_STEPS
    (action plan, implementation, effectiveness check, closure).
    """
    step = wf.lifecycle_step(step_name)
    if step is None:
        raise refuse(ValidationError(f"Unknown workflow step '{step_name}'"))
    comments = str(comments).strip() if comments is not None else None
    if step.requires_comments and not comments:
        raise refuse(ValidationError("Comments are required for this step"))

    cr = load_change_request(db, cr_id)
    if not wf.can_perform_step(actor, cr, step):
        raise refuse(ForbiddenError("Not authorized to perform this step"))
    if cr.status != step.from_status:
        raise refuse(InvalidStateError(
            f"Cannot {step_name.replace('_', ' ')} while the change request is {cr.status}",
            {"status": cr.status, "expected": step.from_status}))

    details: Dict[str, Any] = {
        "previousStatus": cr.status,
        "newStatus": step.new_status,
        "comments": comments,
    }
    if step_name == "submit_action_plan":
        cr.action_plan = validate_action_plan(db, payload)
        details["taskCount"] = len(cr.action_plan["tasks"])
    elif step_name == "record_effectiveness_check":
        cr.effectiveness_check = validate_effectiveness_check(payload, actor)
        details["overallResult"] = cr.effectiveness_check["overall_result"]

    cr.status = step.new_status
    cr.updated_at = utcnow()
    entry = record_audit(cr, step.audit_action, actor, details, ip_address)
    commit_change(db, cr, entry, step_name)
    logger.info("change_request=%s %s by user=%s: %s -> %s",
                cr.id, step_name, actor.id, details["previousStatus"], cr.status)

    if step.notify_requester and actor.id != cr.requester_id:
        notify_safely(notifier, cr.requester_id, step.notify_requester, cr, comments)
    return cr

def delete_change_request(db: Session, cr_id: int, actor: User,
                          ip_address: Optional[str] = None) -> ChangeRequest:
    """Soft delete: the row stays, every default query skips it."""
    cr = load_change_request(db, cr_id)
    if not wf.can_delete(actor, cr):
        raise refuse(ForbiddenError("Not authorized to delete this change request"))

    now = utcnow()
    cr.is_deleted = True
    cr.deleted_by = actor.id
    cr.deleted_at = now
    cr.updated_at = now
    entry = record_audit(cr, "Change request deleted", actor, {"status": cr.status}, ip_address)
    return commit_change(db, cr, entry, "delete")


# -------------------------- queries --------------------------

def _scope_to_viewer(q, viewer: User):
    if viewer.role in (UserRole.ADMIN.value, UserRole.CCT.value):
        return q
    if viewer.role == UserRole.REQUESTER.value:
        return q.filter(ChangeRequest.requester_id == viewer.id)
    return q.filter(or_(
        ChangeRequest.requester_id == viewer.id,
        ChangeRequest.current_approver_id == viewer.id,
        ChangeRequest.department == viewer.department,
    ))

def _apply_filters(q, f: ChangeRequestFilters):
    if f.status:
        q = q.filter(ChangeRequest.status == f.status)
    if f.department:
        q = q.filter(ChangeRequest.department == f.department)
    if f.change_type:
        q = q.filter(ChangeRequest.change_type == f.change_type)
    if f.category:
        q = q.filter(ChangeRequest.category == f.category)
    if f.priority:
        q = q.filter(ChangeRequest.priority == f.priority)
    if f.requester_id is not None:
        q = q.filter(ChangeRequest.requester_id == f.requester_id)
    if f.from_date:
        q = q.filter(ChangeRequest.request_date >= to_naive_utc(f.from_date))
    if f.to_date:
        q = q.filter(ChangeRequest.request_date <= to_naive_utc(f.to_date))
    if f.search:
        like = f"%{f.search.strip()}%"
        q = q.filter(or_(
            ChangeRequest.title.ilike(like),
            ChangeRequest.description.ilike(like),
            ChangeRequest.change_control_number.ilike(like),
        ))
    return q

def _paginate(q, page: int, limit: Optional[int]) -> Tuple[List[ChangeRequest], int, int, int]:
    page = max(int(page or 1), 1)
    limit = page_limit(limit)
    total = q.order_by(None).count()
    rows = q.offset((page - 1) * limit).limit(limit).all()
    return rows, total, page, limit

def list_change_requests(db: Session, viewer: User, filters: Optional[ChangeRequestFilters] = None,
                         page: int = 1, limit: Optional[int] = None,
                         sort_by: str = "request_date", sort_order: str = "desc"):
    col = SORTABLE_FIELDS.get(sort_by or "request_date")
    if col is None:
        raise ValueError(f"Invalid sort field '{sort_by}'. Must be one of {sorted(SORTABLE_FIELDS)}.")
    q = db.query(ChangeRequest).filter(ChangeRequest.is_deleted.is_(False))
    q = _scope_to_viewer(q, viewer)
    q = _apply_filters(q, filters or ChangeRequestFilters())
    q = q.order_by(col.asc() if sort_order == "asc" else col.desc(), ChangeRequest.id.asc())
    return _paginate(q, page, limit)

def list_my_change_requests(db: Session, user: User, status: Optional[str] = None,
                            page: int = 1, limit: Optional[int] = None):
    q = db.query(ChangeRequest).filter(
        ChangeRequest.requester_id == user.id,
        ChangeRequest.is_deleted.is_(False),
    )
    if status:
        q = q.filter(ChangeRequest.status == status)
    q = q.order_by(ChangeRequest.request_date.desc(), ChangeRequest.id.desc())
    return _paginate(q, page, limit)

def list_pending_approvals(db: Session, user: User) -> List[ChangeRequest]:
    return (
        db.query(ChangeRequest)
        .filter(
            ChangeRequest.current_approver_id == user.id,
            ChangeRequest.is_deleted.is_(False),
            ChangeRequest.status.in_(wf.ACTIVE_REVIEW_STATUSES),
        )
        .order_by(ChangeRequest.request_date.asc(), ChangeRequest.id.asc())  # oldest first
        .all()
    )

def get_visible_change_request(db: Session, cr_id: int, viewer: User) -> ChangeRequest:
    cr = load_change_request(db, cr_id)
    if not wf.can_view(viewer, cr):
        raise refuse(ForbiddenError("Not authorized to view this change request"))
    return cr

def get_audit_log(db: Session, cr_id: int, viewer: User) -> tuple:
    return get_visible_change_request(db, cr_id, viewer).audit_log
