from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship
import enum

from app.core.database import Base, utcnow

class AttachmentCategory(str, enum.Enum):
    INITIAL_DOCUMENTATION = "initial_documentation"
    EVIDENCE = "evidence"
    IMPLEMENTATION_PROOF = "implementation_proof"
    EFFECTIVENESS_CHECK = "effectiveness_check"

class Attachment(Base):
    __tablename__ = "attachments"
    id = Column(Integer, primary_key=True)
    change_request_id = Column(Integer, ForeignKey("change_requests.id"), nullable=False, index=True)
    filename = Column(String(255), nullable=False)       # name on disk
    original_name = Column(String(255), nullable=False)
    mimetype = Column(String(128), nullable=True)
    size = Column(Integer, nullable=False, default=0)
    uploaded_by = Column(Integer, ForeignKey("users.id"), nullable=False)
    category = Column(String(32), default=AttachmentCategory.INITIAL_DOCUMENTATION.value, nullable=False)
    upload_date = Column(DateTime, default=utcnow, nullable=False)

    change_request = relationship("ChangeRequest", back_populates="attachments")
