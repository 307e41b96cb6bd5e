# app/services/reminders.py
from __future__ import annotations
from datetime import datetime, timedelta
from typing import Dict, Optional
import logging

from sqlalchemy.orm import Session

from app.core.database import utcnow
from app.metrics import refresh_pending_gauge
from app.models.change_request import ChangeRequest, ChangeRequestStatus as S
from app.models.notification import NotificationType as NT
from app.services.notifications import Notifier, notify_safely
from app.services.workflow import ACTIVE_REVIEW_STATUSES
from app.utils.policy import policy_value

logger = logging.getLogger(__name__)

IMPLEMENTATION_STATUSES = (
    S.IMPLEMENTATION_PENDING.value,
    S.IMPLEMENTATION_IN_PROGRESS.value,
)

def run_reminder_pass(db: Session, notifier: Optional[Notifier], now: Optional[datetime] = None) -> Dict[str, int]:
    """
    One sweep over open requests:
      - `reminder` to the current approver of anything pending longer than the overdue threshold
      - `deadline_approaching` to the requester when implementation is due within the window
    """
    now = now or utcnow()
    overdue_days = int(policy_value("reminders", "overdue_approval_days", 7))
    window_days = int(policy_value("reminders", "deadline_window_days", 3))

    overdue = (
        db.query(ChangeRequest)
        .filter(
            ChangeRequest.is_deleted.is_(False),
            ChangeRequest.status.in_(ACTIVE_REVIEW_STATUSES),
            ChangeRequest.current_approver_id.isnot(None),
            ChangeRequest.updated_at <= now - timedelta(days=overdue_days),
        )
        .order_by(ChangeRequest.request_date.asc())
        .all()
    )
    for cr in overdue:
        notify_safely(notifier, cr.current_approver_id, NT.REMINDER.value, cr,
                      f"Awaiting your action for more than {overdue_days} days.")

    due = (
        db.query(ChangeRequest)
        .filter(
            ChangeRequest.is_deleted.is_(False),
            ChangeRequest.status.in_(IMPLEMENTATION_STATUSES),
            ChangeRequest.proposed_implementation_date >= now,
            ChangeRequest.proposed_implementation_date <= now + timedelta(days=window_days),
        )
        .all()
    )
    for cr in due:
        notify_safely(notifier, cr.requester_id, NT.DEADLINE_APPROACHING.value, cr)

    refresh_pending_gauge(db)
    result = {"reminders": len(overdue), "deadline_warnings": len(due)}
    logger.info("reminder pass: %s", result)
    return result
