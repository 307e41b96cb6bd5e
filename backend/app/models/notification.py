from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Boolean
import enum

from app.core.database import Base, utcnow

class NotificationType(str, enum.Enum):
    APPROVAL_REQUEST = "approval_request"
    APPROVAL_GIVEN = "approval_given"
    REJECTION = "rejection"
    REMINDER = "reminder"
    DEADLINE_APPROACHING = "deadline_approaching"
    ALL_APPROVALS_COMPLETE = "all_approvals_complete"
    DISCONTINUED = "discontinued"
    CLOSED = "closed"

class Notification(Base):
    __tablename__ = "notifications"
    id = Column(Integer, primary_key=True)
    recipient_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=False)
    change_request_id = Column(Integer, ForeignKey("change_requests.id"), index=True, nullable=True)
    type = Column(String(32), nullable=False)
    subject = Column(String(300), nullable=False)
    message = Column(String(2000), nullable=False)
    read = Column(Boolean, default=False, nullable=False)
    sent_at = Column(DateTime, default=utcnow, nullable=False)
