from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Text, event
from sqlalchemy.orm import relationship, object_session
import enum

from app.core.database import Base, utcnow
from app.core.errors import ImmutableRecordError

class ApprovalAction(str, enum.Enum):
    APPROVED = "approved"
    REJECTED = "rejected"
    REQUESTED_CHANGES = "requested_changes"

class ApprovalRecord(Base):
    __tablename__ = "change_request_approvals"
    id = Column(Integer, primary_key=True)
    change_request_id = Column(Integer, ForeignKey("change_requests.id"), nullable=False, index=True)
    approver_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    role = Column(String(32), nullable=False)            # role the approver held when acting
    action = Column(String(32), nullable=False)          # "approved" | "rejected" | "requested_changes"
    comments = Column(Text, nullable=True)
    signature = Column(Text, nullable=True)              # base64 signature image
    created_at = Column(DateTime, default=utcnow, nullable=False)

    change_request = relationship("ChangeRequest", back_populates="_approvals")
    approver = relationship("User")

@event.listens_for(ApprovalRecord, "before_update")
def _block_approval_update(mapper, connection, target):
    sess = object_session(target)
    if sess is not None and not sess.is_modified(target, include_collections=False):
        return
    raise ImmutableRecordError("ApprovalRecord", target.id, "update")

@event.listens_for(ApprovalRecord, "before_delete")
def _block_approval_delete(mapper, connection, target):
    raise ImmutableRecordError("ApprovalRecord", target.id, "delete")
