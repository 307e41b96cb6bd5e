from __future__ import annotations
from typing import Optional, Protocol

from sqlalchemy.orm import Session

from app.models.user import User

class UserDirectory(Protocol):
    """Approver lookup used for routing. Implementations must ignore inactive users."""

    def find_active_user_by_role_and_department(self, role: str, department: str) -> Optional[User]: ...

    def find_active_user_by_role(self, role: str) -> Optional[User]: ...

class SqlUserDirectory:
    def __init__(self, db: Session):
        self.db = db

    def find_active_user_by_role_and_department(self, role: str, department: str) -> Optional[User]:
        return (
            self.db.query(User)
            .filter(User.role == role, User.department == department, User.is_active.is_(True))
            .order_by(User.id.asc())
            .first()
        )

    def find_active_user_by_role(self, role: str) -> Optional[User]:
        return (
            self.db.query(User)
            .filter(User.role == role, User.is_active.is_(True))
            .order_by(User.id.asc())
            .first()
        )
