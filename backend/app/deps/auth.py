from fastapi import BackgroundTasks, Depends, Header, HTTPException
from sqlalchemy.orm import Session
from typing import Callable

from app.core.database import get_db, SessionLocal
from app.core.security import decode_token
from app.models.user import User, UserRole
from app.services.notifications import BackgroundNotifier, Notifier

def get_current_user(authorization: str | None = Header(default=None),
                     db: Session = Depends(get_db)) -> User:
    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(status_code=401, detail="Missing bearer token")
    token = authorization.split(" ", 1)[1].strip()
    try:
        data = decode_token(token, expected_type="access")
        user_id = int(data.get("sub"))
    except Exception:
        raise HTTPException(status_code=401, detail="Invalid/expired token")
    user = db.get(User, user_id)
    if not user or not user.is_active:
        raise HTTPException(status_code=401, detail="User not found or inactive")
    return user

def require_role(*allowed: str) -> Callable:
    def checker(user: User = Depends(get_current_user)) -> User:
        if allowed and user.role != UserRole.ADMIN.value and user.role not in allowed:
            raise HTTPException(status_code=403, detail="Forbidden")
        return user
    return checker

def require_permission(module: str, action: str, *roles: str) -> Callable:
    """Pass users holding one of `roles`, or a permission entry granting `action` on `module`."""
    def checker(user: User = Depends(get_current_user)) -> User:
        if user.role not in roles and not user.has_permission(module, action):
            raise HTTPException(status_code=403, detail="Forbidden")
        return user
    return checker

def get_notifier(background_tasks: BackgroundTasks) -> Notifier:
    return BackgroundNotifier(background_tasks, SessionLocal)
