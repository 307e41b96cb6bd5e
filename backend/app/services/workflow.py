"""
Change-request approval state machine and authorization guards.

Nothing in here touches the database: the transition table is keyed by
(current status, actor role), the guards look only at the actor and the
record, and the CRUD layer (app/crud/change_request.py) applies the result.

    draft --submit--> submitted --hod--> under_qa_review --qa--> under_cct_review --cct--> action_plan_pending
                          |                    |                        |
                       hod_rejected         qa_rejected            cct_rejected

After the approval chain the requester and CCT take turns (LIFECYCLE_STEPS):

    action_plan_pending -> action_plan_submitted -> implementation_pending
        -> implementation_in_progress -> implementation_completed
        -> effectiveness_check_pending -> effectiveness_check_completed -> closed

CCT may send a submitted action plan back to action_plan_pending.

There is no resting ``under_hod_review`` status: the HOD acts on a
``submitted`` request.
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, FrozenSet, Optional, Tuple

from app.models.change_request import ChangeRequestStatus as S
from app.models.notification import NotificationType as NT
from app.models.user import UserRole as R

@dataclass(frozen=True)
class Transition:
    new_status: str
    outcome: str                      # stage label recorded in the audit entry, e.g. "hod_approved"
    next_role: Optional[str] = None   # role to route to; None clears the current approver

APPROVAL_TRANSITIONS: Dict[Tuple[str, str], Transition] = {
    (S.SUBMITTED.value, R.HOD.value): Transition(
        S.UNDER_QA_REVIEW.value, S.HOD_APPROVED.value, R.QA_CORRESPONDENT.value),
    (S.UNDER_QA_REVIEW.value, R.QA_CORRESPONDENT.value): Transition(
        S.UNDER_CCT_REVIEW.value, S.QA_APPROVED.value, R.CCT.value),
    (S.UNDER_CCT_REVIEW.value, R.CCT.value): Transition(
        S.ACTION_PLAN_PENDING.value, S.CCT_APPROVED.value, None),
}

REJECTION_STATUS: Dict[str, str] = {
    R.HOD.value: S.HOD_REJECTED.value,
    R.QA_CORRESPONDENT.value: S.QA_REJECTED.value,
    R.CCT.value: S.CCT_REJECTED.value,
}

# statuses in which current_approver may be set
ACTIVE_REVIEW_STATUSES: FrozenSet[str] = frozenset({
    S.SUBMITTED.value,
    S.UNDER_HOD_REVIEW.value,
    S.UNDER_QA_REVIEW.value,
    S.UNDER_CCT_REVIEW.value,
})

# requester may still edit (and reopen) in these
EDITABLE_STATUSES: FrozenSet[str] = frozenset({
    S.DRAFT.value,
    S.HOD_REJECTED.value,
    S.QA_REJECTED.value,
})

REOPENABLE_STATUSES: FrozenSet[str] = frozenset({
    S.HOD_REJECTED.value,
    S.QA_REJECTED.value,
})

TERMINAL_STATUSES: FrozenSet[str] = frozenset({
    S.HOD_REJECTED.value,
    S.QA_REJECTED.value,
    S.CCT_REJECTED.value,
    S.CLOSED.value,
    S.DISCONTINUED.value,
})

# fields update() may merge; never status or workflow fields
EDITABLE_FIELDS: Tuple[str, ...] = (
    "title",
    "description",
    "change_type",
    "category",
    "priority",
    "current_state",
    "proposed_change",
    "justification",
    "impact_assessment",
    "proposed_implementation_date",
)

@dataclass(frozen=True)
class LifecycleStep:
    from_status: str
    new_status: str
    performer: str                    # a role, or "requester" for the record's own requester
    audit_action: str
    requires_comments: bool = False
    notify_requester: Optional[str] = None   # notification type sent to the requester afterwards

LIFECYCLE_STEPS: Dict[str, LifecycleStep] = {
    "submit_action_plan": LifecycleStep(
        S.ACTION_PLAN_PENDING.value, S.ACTION_PLAN_SUBMITTED.value, R.REQUESTER.value,
        "Action plan submitted"),
    "approve_action_plan": LifecycleStep(
        S.ACTION_PLAN_SUBMITTED.value, S.IMPLEMENTATION_PENDING.value, R.CCT.value,
        "Action plan approved", notify_requester=NT.APPROVAL_GIVEN.value),
    "return_action_plan": LifecycleStep(
        S.ACTION_PLAN_SUBMITTED.value, S.ACTION_PLAN_PENDING.value, R.CCT.value,
        "Action plan returned", requires_comments=True, notify_requester=NT.REJECTION.value),
    "start_implementation": LifecycleStep(
        S.IMPLEMENTATION_PENDING.value, S.IMPLEMENTATION_IN_PROGRESS.value, R.REQUESTER.value,
        "Implementation started"),
    "complete_implementation": LifecycleStep(
        S.IMPLEMENTATION_IN_PROGRESS.value, S.IMPLEMENTATION_COMPLETED.value, R.REQUESTER.value,
        "Implementation completed"),
    "verify_implementation": LifecycleStep(
        S.IMPLEMENTATION_COMPLETED.value, S.EFFECTIVENESS_CHECK_PENDING.value, R.CCT.value,
        "Implementation verified"),
    "record_effectiveness_check": LifecycleStep(
        S.EFFECTIVENESS_CHECK_PENDING.value, S.EFFECTIVENESS_CHECK_COMPLETED.value, R.CCT.value,
        "Effectiveness check recorded"),
    "close": LifecycleStep(
        S.EFFECTIVENESS_CHECK_COMPLETED.value, S.CLOSED.value, R.CCT.value,
        "Change request closed", notify_requester=NT.CLOSED.value),
}

def approval_transition(status: str, role: str) -> Optional[Transition]:
    return APPROVAL_TRANSITIONS.get((status, role))

def lifecycle_step(name: str) -> Optional[LifecycleStep]:
    return LIFECYCLE_STEPS.get(name)

def rejection_status(status: str, role: str) -> Optional[str]:
    if status not in ACTIVE_REVIEW_STATUSES:
        return None
    return REJECTION_STATUS.get(role)

# -------------------------- guards --------------------------

def _is_admin(user) -> bool:
    return getattr(user, "role", None) == R.ADMIN.value

def _is_requester(user, cr) -> bool:
    return cr.requester_id is not None and cr.requester_id == getattr(user, "id", None)

def _is_current_approver(user, cr) -> bool:
    return cr.current_approver_id is not None and cr.current_approver_id == getattr(user, "id", None)

def can_edit(user, cr) -> bool:
    if _is_admin(user):
        return True
    return _is_requester(user, cr) and cr.status in EDITABLE_STATUSES

def can_approve(user, cr) -> bool:
    if _is_admin(user):
        return True
    return _is_current_approver(user, cr)

def can_perform_step(user, cr, step: LifecycleStep) -> bool:
    if _is_admin(user):
        return True
    if step.performer == R.REQUESTER.value:
        return _is_requester(user, cr)
    return getattr(user, "role", None) == step.performer

def can_submit(user, cr) -> bool:
    return _is_admin(user) or _is_requester(user, cr)

def can_reopen(user, cr) -> bool:
    return _is_admin(user) or _is_requester(user, cr)

def can_delete(user, cr) -> bool:
    if _is_admin(user):
        return True
    return _is_requester(user, cr) and cr.status == S.DRAFT.value

def can_view(user, cr) -> bool:
    if getattr(user, "role", None) in (R.ADMIN.value, R.CCT.value):
        return True
    return (
        _is_requester(user, cr)
        or _is_current_approver(user, cr)
        or cr.department == getattr(user, "department", None)
    )

def can_upload_attachment(user, cr) -> bool:
    return _is_admin(user) or _is_requester(user, cr) or _is_current_approver(user, cr)

def can_delete_attachment(user, cr, attachment) -> bool:
    if _is_admin(user):
        return True
    if attachment.uploaded_by == getattr(user, "id", None):
        return True
    return _is_requester(user, cr) and cr.status in EDITABLE_STATUSES
