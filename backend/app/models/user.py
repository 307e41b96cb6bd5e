from sqlalchemy import Column, Integer, String, DateTime, Boolean, JSON
import enum

from app.core.database import Base, utcnow

class UserRole(str, enum.Enum):
    REQUESTER = "requester"
    HOD = "hod"
    QA_CORRESPONDENT = "qa_correspondent"
    CCT = "cct"
    ADMIN = "admin"

class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    role = Column(String(32), default=UserRole.REQUESTER.value, index=True, nullable=False)
    department = Column(String(100), index=True, nullable=False)
    employee_id = Column(String(64), unique=True, nullable=True)
    position = Column(String(100), nullable=True)
    phone = Column(String(32), nullable=True)
    is_active = Column(Boolean, default=True, index=True, nullable=False)
    signature = Column(String, nullable=True)            # base64 image
    permissions = Column(JSON, default=list)             # [{"module": ..., "actions": [...]}]
    last_login = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, nullable=False)

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN.value

    def has_permission(self, module: str, action: str) -> bool:
        # admin is the only role that bypasses the permission list
        if self.is_admin:
            return True
        for p in self.permissions or []:
            if p.get("module") == module:
                return action in (p.get("actions") or [])
        return False

    def __repr__(self) -> str:
        return f"<User id={self.id} email={self.email!r} role={self.role}>"
