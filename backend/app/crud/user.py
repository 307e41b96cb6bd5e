from typing import Any, Dict, List, Optional
import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.database import utcnow
from app.core.errors import NotFoundError, ValidationError
from app.models.user import User, UserRole
from app.utils.policy import page_limit

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ("name", "role", "department", "position", "phone", "employee_id", "permissions", "signature")

def _check_role(role: str) -> str:
    role = (role or "").strip().lower()
    allowed = [r.value for r in UserRole]
    if role not in allowed:
        raise ValidationError(f"Invalid role '{role}'. Must be one of {allowed}.")
    return role

def get_user(db: Session, user_id: int) -> User:
    u = db.get(User, user_id)
    if not u:
        raise NotFoundError(f"User {user_id} not found")
    return u

def get_user_by_email(db: Session, email: str) -> Optional[User]:
    return db.query(User).filter(User.email == (email or "").strip().lower()).first()

def list_users(db: Session, role: Optional[str] = None, department: Optional[str] = None,
               is_active: Optional[bool] = None, page: int = 1, limit: Optional[int] = None):
    q = db.query(User)
    if role:
        q = q.filter(User.role == role)
    if department:
        q = q.filter(User.department == department)
    if is_active is not None:
        q = q.filter(User.is_active.is_(is_active))
    page = max(int(page or 1), 1)
    limit = page_limit(limit)
    total = q.count()
    rows = q.order_by(User.name.asc(), User.id.asc()).offset((page - 1) * limit).limit(limit).all()
    return rows, total, page, limit

def list_users_by_role(db: Session, role: str) -> List[User]:
    role = _check_role(role)
    return (
        db.query(User)
        .filter(User.role == role, User.is_active.is_(True))
        .order_by(User.name.asc())
        .all()
    )

def list_users_by_department(db: Session, department: str) -> List[User]:
    return (
        db.query(User)
        .filter(User.department == department, User.is_active.is_(True))
        .order_by(User.role.asc(), User.name.asc())
        .all()
    )

def create_user(db: Session, fields: Dict[str, Any]) -> User:
    name = (fields.get("name") or "").strip()
    email = (fields.get("email") or "").strip().lower()
    department = (fields.get("department") or "").strip()
    if not name or not email or not department:
        raise ValidationError("name, email and department are required")
    if get_user_by_email(db, email):
        raise ValidationError(f"User with email {email} already exists")

    now = utcnow()
    u = User(
        name=name,
        email=email,
        role=_check_role(fields.get("role") or UserRole.REQUESTER.value),
        department=department,
        employee_id=fields.get("employee_id"),
        position=fields.get("position"),
        phone=fields.get("phone"),
        permissions=fields.get("permissions") or [],
        is_active=True,
        created_at=now,
        updated_at=now,
    )
    db.add(u)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ValidationError("User with this email or employee id already exists")
    db.refresh(u)
    logger.info("user=%s created (%s, role=%s)", u.id, u.email, u.role)
    return u

def update_user(db: Session, user_id: int, fields: Dict[str, Any]) -> User:
    u = get_user(db, user_id)
    for key in UPDATABLE_FIELDS:
        if key not in fields or fields[key] is None:
            continue
        value = _check_role(fields[key]) if key == "role" else fields[key]
        setattr(u, key, value)
    u.updated_at = utcnow()
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ValidationError("Employee id already in use")
    db.refresh(u)
    logger.info("user=%s updated", u.id)
    return u

def set_user_active(db: Session, user_id: int, active: bool) -> User:
    u = get_user(db, user_id)
    u.is_active = active
    u.updated_at = utcnow()
    db.commit()
    db.refresh(u)
    logger.info("user=%s %s", u.id, "reactivated" if active else "deactivated")
    return u

def touch_last_login(db: Session, user: User) -> None:
    user.last_login = utcnow()
    db.commit()
