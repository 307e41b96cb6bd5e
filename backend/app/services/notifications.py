"""
Best-effort notification dispatch.

Workflow operations call ``notify_safely`` after their commit. A notifier
either schedules the dispatch on FastAPI's BackgroundTasks (HTTP path) or runs
it inline (reminder loop). Dispatch stores an in-app notification for the
recipient and posts the message to the configured webhook. Failures are
logged and counted, never raised to the workflow caller.
"""
from __future__ import annotations
from typing import Any, Callable, Dict, Optional, Protocol
import logging
import os

import requests
from fastapi import BackgroundTasks
from sqlalchemy.orm import Session

from app.core.database import SessionLocal
from app.metrics import notifications_total
from app.models.change_request import ChangeRequest
from app.models.notification import Notification, NotificationType as NT
from app.models.user import User
from app.utils.runtime_config import get_notify_webhook

logger = logging.getLogger(__name__)

APP_BASE_URL = os.getenv("APP_BASE_URL", "http://localhost:8000").rstrip("/")
APP_NAME = os.getenv("APP_NAME", "QMS Change Control")

class Notifier(Protocol):
    def notify(self, user_id: int, event_type: str, snapshot: Dict[str, Any], message: Optional[str] = None) -> None: ...

def snapshot_change_request(cr: ChangeRequest) -> Dict[str, Any]:
    """Plain-dict view of a change request, safe to hand to a background task."""
    requester = cr.requester
    return {
        "id": cr.id,
        "change_control_number": cr.change_control_number,
        "title": cr.title,
        "status": cr.status,
        "workflow_step": cr.workflow_step,
        "department": cr.department,
        "priority": cr.priority,
        "requester_id": cr.requester_id,
        "requester_name": requester.name if requester else None,
        "request_date": cr.request_date.isoformat() if cr.request_date else None,
        "proposed_implementation_date": (
            cr.proposed_implementation_date.isoformat() if cr.proposed_implementation_date else None
        ),
        "days_since_request": cr.days_since_request,
    }

def notify_safely(notifier: Optional[Notifier], user_id: Optional[int], event_type: str,
                  cr: ChangeRequest, message: Optional[str] = None) -> None:
    if notifier is None or user_id is None:
        return
    try:
        notifier.notify(user_id, event_type, snapshot_change_request(cr), message)
    except Exception as e:
        notifications_total.labels(type=event_type, outcome="error").inc()
        logger.warning("notification %s for user=%s change_request=%s not scheduled: %s",
                       event_type, user_id, cr.id, e)

# -------------------------- content --------------------------

def build_message(event_type: str, snapshot: Dict[str, Any], recipient: User,
                  custom: Optional[str] = None) -> tuple[str, str]:
    title = snapshot.get("title") or ""
    number = snapshot.get("change_control_number") or "Pending"
    link = f"{APP_BASE_URL}/change-requests/{snapshot.get('id')}"
    header = f"Change Control Number: {number}\nTitle: {title}"

    if event_type == NT.APPROVAL_REQUEST.value:
        subject = f"QMS: Approval Required - {title}"
        body = (f"You have a new change request requiring your approval.\n\n{header}\n"
                f"Requester: {snapshot.get('requester_name')}\n\n"
                "Please log in to the QMS system to review and approve this request.")
    elif event_type == NT.APPROVAL_GIVEN.value:
        subject = f"QMS: Request Approved - {title}"
        body = (f"Your change request has been approved.\n\n{header}\n"
                f"Current Status: {snapshot.get('workflow_step')}")
    elif event_type == NT.REJECTION.value:
        subject = f"QMS: Request Rejected - {title}"
        body = (f"Your change request has been rejected.\n\n{header}\nReason: {custom or ''}\n\n"
                "Please review the comments and resubmit if necessary.")
    elif event_type == NT.REMINDER.value:
        subject = f"QMS: Reminder - Action Required for {title}"
        body = (f"This is a reminder that you have a pending action on change request:\n\n{header}\n"
                f"Days Pending: {snapshot.get('days_since_request')}")
        if custom:
            body += f"\n\n{custom}"
    elif event_type == NT.DEADLINE_APPROACHING.value:
        subject = f"QMS: Deadline Approaching - {title}"
        body = (f"The implementation deadline for change request is approaching:\n\n{header}\n"
                f"Deadline: {snapshot.get('proposed_implementation_date')}")
    elif event_type == NT.ALL_APPROVALS_COMPLETE.value:
        subject = f"QMS: All Approvals Complete - {title}"
        body = (f"All required approvals have been obtained for your change request.\n\n{header}\n\n"
                "You can now proceed with implementation planning.")
    elif event_type == NT.CLOSED.value:
        subject = f"QMS: Change Closed - {title}"
        body = (f"Your change request has completed its effectiveness check and is now closed.\n\n{header}")
    elif event_type == NT.DISCONTINUED.value:
        subject = f"QMS: Request Discontinued - {title}"
        body = f"Your change request has been discontinued.\n\n{header}\nReason: {custom or ''}"
    else:
        subject = f"QMS: Notification - {title}"
        body = custom or "You have a new notification regarding your change request."

    return subject, f"Dear {recipient.name},\n\n{body}\n\n{link}"

# -------------------------- transport --------------------------

def send_webhook(payload: dict) -> bool:
    """POST to the notification webhook; never raises. Resolves the URL on each call."""
    url = (get_notify_webhook() or os.getenv("NOTIFY_WEBHOOK_URL", "")).strip()
    if not url:
        logger.debug("notify webhook not set; skipping send")
        return False
    if "text" not in payload:
        payload = {**payload, "text": payload.get("fallback", f"{APP_NAME} notification")}
    try:
        r = requests.post(url, json=payload, timeout=10)
        if r.status_code >= 300:
            logger.warning("notify webhook status=%s body=%s", r.status_code, r.text[:300])
            return False
        return True
    except Exception as e:
        logger.warning("notify webhook send error: %s", e)
        return False

def dispatch_notification(
    user_id: int,
    event_type: str,
    snapshot: Dict[str, Any],
    message: Optional[str] = None,
    session_factory: Callable[[], Session] = SessionLocal,
) -> Optional[Notification]:
    """Store the in-app notification and push it to the webhook."""
    db = session_factory()
    try:
        user = db.get(User, user_id)
        if not user:
            logger.warning("notification %s: user %s not found", event_type, user_id)
            notifications_total.labels(type=event_type, outcome="no_recipient").inc()
            return None
        subject, text = build_message(event_type, snapshot, user, message)
        row = Notification(
            recipient_id=user.id,
            change_request_id=snapshot.get("id"),
            type=event_type,
            subject=subject[:300],
            message=text[:2000],
        )
        db.add(row)
        db.commit()
        db.refresh(row)

        delivered = send_webhook({
            "text": f"*{subject}*\n{text}",
            "recipient": user.email,
            "event": event_type,
            "change_request_id": snapshot.get("id"),
        })
        notifications_total.labels(type=event_type, outcome="sent" if delivered else "stored").inc()
        logger.info("notification %s -> %s (change_request=%s)", event_type, user.email, snapshot.get("id"))
        return row
    except Exception as e:
        db.rollback()
        notifications_total.labels(type=event_type, outcome="error").inc()
        logger.warning("notification %s for user=%s failed: %s", event_type, user_id, e)
        return None
    finally:
        db.close()

class BackgroundNotifier:
    """Schedules dispatch after the response has been sent."""

    def __init__(self, background_tasks: BackgroundTasks, session_factory: Callable[[], Session] = SessionLocal):
        self.background_tasks = background_tasks
        self.session_factory = session_factory

    def notify(self, user_id, event_type, snapshot, message=None):
        self.background_tasks.add_task(
            dispatch_notification, user_id, event_type, snapshot, message, self.session_factory
        )

class DirectNotifier:
    """Dispatches inline; used by the reminder loop, which has no request."""

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal):
        self.session_factory = session_factory

    def notify(self, user_id, event_type, snapshot, message=None):
        dispatch_notification(user_id, event_type, snapshot, message, self.session_factory)
