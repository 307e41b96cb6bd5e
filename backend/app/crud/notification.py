from typing import List, Optional

from sqlalchemy.orm import Session

from app.core.errors import NotFoundError, ForbiddenError
from app.models.notification import Notification
from app.models.user import User

def list_notifications(db: Session, user: User, unread_only: bool = False,
                       limit: int = 50) -> List[Notification]:
    q = db.query(Notification).filter(Notification.recipient_id == user.id)
    if unread_only:
        q = q.filter(Notification.read.is_(False))
    return q.order_by(Notification.sent_at.desc(), Notification.id.desc()).limit(limit).all()

def unread_count(db: Session, user: User) -> int:
    return (
        db.query(Notification)
        .filter(Notification.recipient_id == user.id, Notification.read.is_(False))
        .count()
    )

def mark_read(db: Session, notification_id: int, user: User) -> Notification:
    n: Optional[Notification] = db.get(Notification, notification_id)
    if not n:
        raise NotFoundError(f"Notification {notification_id} not found")
    if n.recipient_id != user.id:
        raise ForbiddenError("Not your notification")
    n.read = True
    db.commit()
    db.refresh(n)
    return n

def mark_all_read(db: Session, user: User) -> int:
    updated = (
        db.query(Notification)
        .filter(Notification.recipient_id == user.id, Notification.read.is_(False))
        .update({Notification.read: True}, synchronize_session=False)
    )
    db.commit()
    return updated
