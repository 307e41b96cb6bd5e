import enum

from sqlalchemy import Column, Integer, String, DateTime, Text, JSON, Boolean, ForeignKey
from sqlalchemy.orm import relationship

from app.core.database import Base, utcnow

class ChangeRequestStatus(str, enum.Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    UNDER_HOD_REVIEW = "under_hod_review"
    HOD_APPROVED = "hod_approved"
    HOD_REJECTED = "hod_rejected"
    UNDER_QA_REVIEW = "under_qa_review"
    QA_APPROVED = "qa_approved"
    QA_REJECTED = "qa_rejected"
    UNDER_CCT_REVIEW = "under_cct_review"
    CCT_APPROVED = "cct_approved"
    CCT_REJECTED = "cct_rejected"
    ACTION_PLAN_PENDING = "action_plan_pending"
    ACTION_PLAN_SUBMITTED = "action_plan_submitted"
    IMPLEMENTATION_PENDING = "implementation_pending"
    IMPLEMENTATION_IN_PROGRESS = "implementation_in_progress"
    IMPLEMENTATION_COMPLETED = "implementation_completed"
    EFFECTIVENESS_CHECK_PENDING = "effectiveness_check_pending"
    EFFECTIVENESS_CHECK_COMPLETED = "effectiveness_check_completed"
    CLOSED = "closed"
    DISCONTINUED = "discontinued"

class ChangeType(str, enum.Enum):
    MAJOR = "major"
    MINOR = "minor"
    EMERGENCY = "emergency"

class Category(str, enum.Enum):
    PROCESS = "process"
    PRODUCT = "product"
    EQUIPMENT = "equipment"
    DOCUMENTATION = "documentation"
    FACILITY = "facility"
    PERSONNEL = "personnel"
    SUPPLIER = "supplier"
    SYSTEM = "system"
    OTHER = "other"

class Priority(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

class ImpactLevel(str, enum.Enum):
    NONE = "none"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

IMPACT_AREAS = ("quality", "safety", "regulatory", "financial", "operational")

WORKFLOW_STEPS = {
    "draft": "Draft",
    "submitted": "Submitted",
    "under_hod_review": "HOD Review",
    "hod_approved": "HOD Approved",
    "under_qa_review": "QA Review",
    "qa_approved": "QA Approved",
    "under_cct_review": "CCT Review",
    "cct_approved": "CCT Approved",
    "action_plan_pending": "Action Plan Pending",
    "action_plan_submitted": "Action Plan Submitted",
    "implementation_pending": "Implementation Pending",
    "implementation_in_progress": "Implementation In Progress",
    "implementation_completed": "Implementation Completed",
    "effectiveness_check_pending": "Effectiveness Check Pending",
    "effectiveness_check_completed": "Effectiveness Check Completed",
    "closed": "Closed",
}

class ChangeRequest(Base):
    __tablename__ = "change_requests"

    id = Column(Integer, primary_key=True, index=True)
    # assigned on first submission; NULL (not "") while draft so the unique index never collides
    change_control_number = Column(String(32), unique=True, index=True, nullable=True)

    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=False)
    change_type = Column(String(16), index=True, nullable=False)
    category = Column(String(32), index=True, nullable=False)
    priority = Column(String(16), index=True, default=Priority.MEDIUM.value, nullable=False)

    requester_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=False)
    department = Column(String(100), index=True, nullable=False)
    request_date = Column(DateTime, default=utcnow, index=True, nullable=False)

    current_state = Column(Text, nullable=False)
    proposed_change = Column(Text, nullable=False)
    justification = Column(Text, nullable=False)
    impact_assessment = Column(JSON, default=dict)       # {"quality": {"impact": "low", "description": ...}, ...}
    proposed_implementation_date = Column(DateTime, index=True, nullable=False)

    action_plan = Column(JSON, nullable=True)            # {"tasks": [...], "resources": ..., "timeline": ...}
    effectiveness_check = Column(JSON, nullable=True)    # {"overall_result": ..., "criteria": [...], "checked_by": ...}

    status = Column(String(40), index=True, default=ChangeRequestStatus.DRAFT.value, nullable=False)
    current_approver_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=True)

    is_deleted = Column(Boolean, default=False, index=True, nullable=False)
    deleted_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    deleted_at = Column(DateTime, nullable=True)

    version_id = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, nullable=False)

    requester = relationship("User", foreign_keys=[requester_id])
    current_approver = relationship("User", foreign_keys=[current_approver_id])

    # history collections are append-only: read through the tuple properties,
    # write through record_approval / add_audit_log
    _approvals = relationship(
        "ApprovalRecord", order_by="ApprovalRecord.id",
        back_populates="change_request", cascade="save-update, merge",
    )
    _audit_log = relationship(
        "AuditEntry", order_by="AuditEntry.id",
        back_populates="change_request", cascade="save-update, merge",
    )
    attachments = relationship(
        "Attachment", order_by="Attachment.id",
        back_populates="change_request", cascade="all, delete-orphan",
    )

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def approvals(self) -> tuple:
        return tuple(self._approvals)

    @property
    def audit_log(self) -> tuple:
        return tuple(self._audit_log)

    def record_approval(self, approver, role: str, action: str, comments=None, signature=None):
        from app.models.approval import ApprovalRecord
        rec = ApprovalRecord(
            approver_id=approver.id,
            role=role,
            action=action,
            comments=comments,
            signature=signature,
            created_at=utcnow(),
        )
        self._approvals.append(rec)
        return rec

    def add_audit_log(self, action: str, performed_by, details=None, ip_address=None):
        from app.models.audit import AuditEntry
        entry = AuditEntry(
            action=action,
            performed_by=getattr(performed_by, "id", performed_by),
            details=details or {},
            ip_address=ip_address,
            created_at=utcnow(),
        )
        self._audit_log.append(entry)
        return entry

    @property
    def workflow_step(self) -> str:
        return WORKFLOW_STEPS.get(self.status, self.status)

    @property
    def overall_impact(self) -> str:
        ia = self.impact_assessment or {}
        levels = {((ia.get(area) or {}).get("impact")) for area in IMPACT_AREAS}
        for level in ("high", "medium", "low"):
            if level in levels:
                return level
        return "none"

    @property
    def days_since_request(self) -> int:
        return (utcnow() - self.request_date).days if self.request_date else 0

    @property
    def days_until_implementation(self):
        if not self.proposed_implementation_date:
            return None
        return (self.proposed_implementation_date - utcnow()).days

    def __repr__(self) -> str:
        return f"<ChangeRequest id={self.id} number={self.change_control_number!r} status={self.status}>"
