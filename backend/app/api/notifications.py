from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api.schemas import NotificationOut
from app.core.database import get_db
from app.crud.notification import list_notifications, unread_count, mark_read, mark_all_read
from app.deps.auth import get_current_user
from app.models.user import User

router = APIRouter(prefix="/api/notifications", tags=["notifications"])

@router.get("", response_model=dict)
def my_notifications(unread_only: bool = False, limit: int = Query(50, ge=1, le=200),
                     db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    rows = list_notifications(db, user, unread_only, limit)
    return {
        "count": len(rows),
        "unread": unread_count(db, user),
        "data": [NotificationOut.model_validate(n) for n in rows],
    }

@router.put("/mark-all-read", response_model=dict)
def read_all(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return {"updated": mark_all_read(db, user)}

@router.put("/{notification_id}/read", response_model=NotificationOut)
def read_one(notification_id: int, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return NotificationOut.model_validate(mark_read(db, notification_id, user))
