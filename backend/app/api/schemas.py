from datetime import datetime
from math import ceil
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

# -------------------------- users --------------------------

class UserBrief(BaseModel):
    id: int
    name: str
    email: str
    role: str
    department: str

    class Config:
        from_attributes = True

class UserOut(UserBrief):
    employee_id: Optional[str] = None
    position: Optional[str] = None
    phone: Optional[str] = None
    is_active: bool
    permissions: Optional[List[Dict[str, Any]]] = None
    last_login: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

class UserCreate(BaseModel):
    name: str
    email: str
    department: str
    role: str = "requester"
    employee_id: Optional[str] = None
    position: Optional[str] = None
    phone: Optional[str] = None
    permissions: Optional[List[Dict[str, Any]]] = None

class UserUpdate(BaseModel):
    name: Optional[str] = None
    role: Optional[str] = None
    department: Optional[str] = None
    position: Optional[str] = None
    phone: Optional[str] = None
    employee_id: Optional[str] = None
    permissions: Optional[List[Dict[str, Any]]] = None
    signature: Optional[str] = None

# -------------------------- change requests --------------------------

class ImpactEntry(BaseModel):
    impact: Optional[str] = None          # none | low | medium | high
    description: Optional[str] = None
    estimated_cost: Optional[float] = None

class ImpactAssessmentIn(BaseModel):
    quality: Optional[ImpactEntry] = None
    safety: Optional[ImpactEntry] = None
    regulatory: Optional[ImpactEntry] = None
    financial: Optional[ImpactEntry] = None
    operational: Optional[ImpactEntry] = None

class ChangeRequestIn(BaseModel):
    """Create and update share this body; create-time required fields are checked by the CRUD layer."""
    title: Optional[str] = None
    description: Optional[str] = None
    change_type: Optional[str] = None
    category: Optional[str] = None
    priority: Optional[str] = None
    current_state: Optional[str] = None
    proposed_change: Optional[str] = None
    justification: Optional[str] = None
    impact_assessment: Optional[ImpactAssessmentIn] = None
    proposed_implementation_date: Optional[datetime] = None

class DecisionIn(BaseModel):
    comments: Optional[str] = None
    signature: Optional[str] = None

class DiscontinueIn(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=1000)

class StepIn(BaseModel):
    comments: Optional[str] = Field(default=None, max_length=1000)

class ActionPlanTaskIn(BaseModel):
    description: str
    responsible_id: Optional[int] = None
    due_date: Optional[datetime] = None
    status: Optional[str] = None          # pending | in_progress | completed

class ActionPlanIn(BaseModel):
    tasks: List[ActionPlanTaskIn] = []
    resources: Optional[str] = None
    timeline: Optional[str] = None
    success_criteria: Optional[str] = None
    risk_mitigation: Optional[str] = None
    comments: Optional[str] = None

class CriterionIn(BaseModel):
    description: str
    met: bool = False
    evidence: Optional[str] = None

class EffectivenessCheckIn(BaseModel):
    overall_result: Optional[str] = None  # effective | partially_effective | ineffective
    criteria: List[CriterionIn] = []
    comments: Optional[str] = None
    follow_up_required: bool = False
    follow_up_actions: List[str] = []

class ApprovalOut(BaseModel):
    id: int
    approver_id: int
    role: str
    action: str
    comments: Optional[str] = None
    signature: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True

class AuditEntryOut(BaseModel):
    id: int
    action: str
    performed_by: Optional[int] = None
    details: Optional[Dict[str, Any]] = None
    ip_address: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True

class AttachmentOut(BaseModel):
    id: int
    change_request_id: int
    filename: str
    original_name: str
    mimetype: Optional[str] = None
    size: int
    uploaded_by: int
    category: str
    upload_date: datetime

    class Config:
        from_attributes = True

class ChangeRequestOut(BaseModel):
    id: int
    change_control_number: Optional[str] = None
    title: str
    description: str
    change_type: str
    category: str
    priority: str
    requester_id: int
    requester: Optional[UserBrief] = None
    department: str
    request_date: datetime
    current_state: str
    proposed_change: str
    justification: str
    impact_assessment: Optional[Dict[str, Any]] = None
    proposed_implementation_date: datetime
    action_plan: Optional[Dict[str, Any]] = None
    effectiveness_check: Optional[Dict[str, Any]] = None
    status: str
    workflow_step: str
    overall_impact: str
    days_since_request: int
    days_until_implementation: Optional[int] = None
    current_approver_id: Optional[int] = None
    current_approver: Optional[UserBrief] = None
    approvals: List[ApprovalOut] = []
    attachments: List[AttachmentOut] = []
    version_id: int
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True

class NotificationOut(BaseModel):
    id: int
    change_request_id: Optional[int] = None
    type: str
    subject: str
    message: str
    read: bool
    sent_at: datetime

    class Config:
        from_attributes = True

# -------------------------- helpers --------------------------

def paged(rows, total: int, page: int, limit: int, schema) -> Dict[str, Any]:
    return {
        "count": len(rows),
        "total": total,
        "pagination": {"page": page, "limit": limit, "pages": ceil(total / limit) if limit else 0},
        "data": [schema.model_validate(r) for r in rows],
    }
