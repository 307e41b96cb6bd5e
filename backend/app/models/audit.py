from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, JSON, event
from sqlalchemy.orm import relationship, object_session

from app.core.database import Base, utcnow
from app.core.errors import ImmutableRecordError

class AuditEntry(Base):
    __tablename__ = "change_request_audit_log"
    id = Column(Integer, primary_key=True)
    change_request_id = Column(Integer, ForeignKey("change_requests.id"), nullable=False, index=True)
    action = Column(String(128), index=True)             # e.g. "Change request submitted for approval"
    performed_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    details = Column(JSON, default=dict)
    ip_address = Column(String(64), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    change_request = relationship("ChangeRequest", back_populates="_audit_log")

@event.listens_for(AuditEntry, "before_update")
def _block_audit_update(mapper, connection, target):
    sess = object_session(target)
    if sess is not None and not sess.is_modified(target, include_collections=False):
        return
    raise ImmutableRecordError("AuditEntry", target.id, "update")

@event.listens_for(AuditEntry, "before_delete")
def _block_audit_delete(mapper, connection, target):
    raise ImmutableRecordError("AuditEntry", target.id, "delete")
