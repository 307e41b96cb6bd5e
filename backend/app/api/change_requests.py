from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from app.api.schemas import (
    ChangeRequestIn, ChangeRequestOut, DecisionIn, DiscontinueIn, AuditEntryOut, paged,
    StepIn, ActionPlanIn, EffectivenessCheckIn,
)
from app.core.database import get_db
from app.crud import change_request as crud
from app.deps.auth import get_current_user, get_notifier
from app.models.user import User
from app.services.notifications import Notifier

router = APIRouter(prefix="/api/change-requests", tags=["change-requests"])

def _ip(request: Request) -> Optional[str]:
    return request.client.host if request.client else None

@router.get("", response_model=dict)
def list_change_requests(
    status: Optional[str] = None,
    department: Optional[str] = None,
    change_type: Optional[str] = None,
    category: Optional[str] = None,
    priority: Optional[str] = None,
    requester: Optional[int] = None,
    from_date: Optional[datetime] = None,
    to_date: Optional[datetime] = None,
    search: Optional[str] = None,
    sort_by: str = "request_date",
    sort_order: str = Query("desc", pattern="^(asc|desc)$"),
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    filters = crud.ChangeRequestFilters(
        status=status, department=department, change_type=change_type, category=category,
        priority=priority, requester_id=requester, from_date=from_date, to_date=to_date, search=search,
    )
    rows, total, page, limit = crud.list_change_requests(db, user, filters, page, limit, sort_by, sort_order)
    return paged(rows, total, page, limit, ChangeRequestOut)

@router.post("", response_model=ChangeRequestOut, status_code=201)
def create_change_request(body: ChangeRequestIn, request: Request,
                          db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    cr = crud.create_change_request(db, user, body.model_dump(exclude_none=True), _ip(request))
    return ChangeRequestOut.model_validate(cr)

@router.get("/my-requests", response_model=dict)
def my_requests(status: Optional[str] = None,
                page: int = Query(1, ge=1), limit: Optional[int] = Query(None, ge=1),
                db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    rows, total, page, limit = crud.list_my_change_requests(db, user, status, page, limit)
    return paged(rows, total, page, limit, ChangeRequestOut)

@router.get("/pending-approvals", response_model=dict)
def pending_approvals(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    rows = crud.list_pending_approvals(db, user)
    return {"count": len(rows), "data": [ChangeRequestOut.model_validate(r) for r in rows]}

@router.get("/status/{status}", response_model=dict)
def by_status(status: str,
              page: int = Query(1, ge=1), limit: Optional[int] = Query(None, ge=1),
              db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    rows, total, page, limit = crud.list_change_requests(
        db, user, crud.ChangeRequestFilters(status=status), page, limit)
    return paged(rows, total, page, limit, ChangeRequestOut)

@router.get("/{cr_id}", response_model=ChangeRequestOut)
def get_change_request(cr_id: int, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return ChangeRequestOut.model_validate(crud.get_visible_change_request(db, cr_id, user))

@router.put("/{cr_id}", response_model=ChangeRequestOut)
def update_change_request(cr_id: int, body: ChangeRequestIn, request: Request,
                          db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    cr = crud.update_change_request(db, cr_id, user, body.model_dump(exclude_none=True), _ip(request))
    return ChangeRequestOut.model_validate(cr)

@router.delete("/{cr_id}", response_model=dict)
def delete_change_request(cr_id: int, request: Request,
                          db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    crud.delete_change_request(db, cr_id, user, _ip(request))
    return {"deleted": True, "id": cr_id}

@router.get("/{cr_id}/audit", response_model=List[AuditEntryOut])
def audit_log(cr_id: int, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return [AuditEntryOut.model_validate(e) for e in crud.get_audit_log(db, cr_id, user)]

@router.post("/{cr_id}/submit", response_model=ChangeRequestOut)
def submit(cr_id: int, request: Request, db: Session = Depends(get_db),
           user: User = Depends(get_current_user), notifier: Notifier = Depends(get_notifier)):
    cr = crud.submit_change_request(db, cr_id, user, notifier=notifier, ip_address=_ip(request))
    return ChangeRequestOut.model_validate(cr)

@router.post("/{cr_id}/approve", response_model=ChangeRequestOut)
def approve(cr_id: int, request: Request, body: DecisionIn = DecisionIn(),
            db: Session = Depends(get_db), user: User = Depends(get_current_user),
            notifier: Notifier = Depends(get_notifier)):
    cr = crud.approve_change_request(db, cr_id, user, body.comments, body.signature,
                                     notifier=notifier, ip_address=_ip(request))
    return ChangeRequestOut.model_validate(cr)

@router.post("/{cr_id}/reject", response_model=ChangeRequestOut)
def reject(cr_id: int, body: DecisionIn, request: Request,
           db: Session = Depends(get_db), user: User = Depends(get_current_user),
           notifier: Notifier = Depends(get_notifier)):
    cr = crud.reject_change_request(db, cr_id, user, body.comments, body.signature,
                                    notifier=notifier, ip_address=_ip(request))
    return ChangeRequestOut.model_validate(cr)

@router.post("/{cr_id}/reopen", response_model=ChangeRequestOut)
def reopen(cr_id: int, request: Request, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return ChangeRequestOut.model_validate(crud.reopen_change_request(db, cr_id, user, _ip(request)))

@router.post("/{cr_id}/discontinue", response_model=ChangeRequestOut)
def discontinue(cr_id: int, request: Request, body: DiscontinueIn = DiscontinueIn(),
                db: Session = Depends(get_db), user: User = Depends(get_current_user),
                notifier: Notifier = Depends(get_notifier)):
    cr = crud.discontinue_change_request(db, cr_id, user, body.reason, notifier=notifier, ip_address=_ip(request))
    return ChangeRequestOut.model_validate(cr)

# -------------------------- after approval --------------------------

def _advance(db: Session, cr_id: int, user: User, step: str, request: Request, notifier: Notifier,
             comments: Optional[str] = None, payload: Optional[dict] = None) -> ChangeRequestOut:
    cr = crud.advance_change_request(db, cr_id, user, step, comments, payload,
                                     notifier=notifier, ip_address=_ip(request))
    return ChangeRequestOut.model_validate(cr)

@router.post("/{cr_id}/action-plan", response_model=ChangeRequestOut)
def submit_action_plan(cr_id: int, body: ActionPlanIn, request: Request,
                       db: Session = Depends(get_db), user: User = Depends(get_current_user),
                       notifier: Notifier = Depends(get_notifier)):
    plan = body.model_dump(exclude={"comments"})
    return _advance(db, cr_id, user, "submit_action_plan", request, notifier, body.comments, plan)

@router.post("/{cr_id}/action-plan/approve", response_model=ChangeRequestOut)
def approve_action_plan(cr_id: int, request: Request, body: StepIn = StepIn(),
                        db: Session = Depends(get_db), user: User = Depends(get_current_user),
                        notifier: Notifier = Depends(get_notifier)):
    return _advance(db, cr_id, user, "approve_action_plan", request, notifier, body.comments)

@router.post("/{cr_id}/action-plan/return", response_model=ChangeRequestOut)
def return_action_plan(cr_id: int, body: StepIn, request: Request,
                       db: Session = Depends(get_db), user: User = Depends(get_current_user),
                       notifier: Notifier = Depends(get_notifier)):
    return _advance(db, cr_id, user, "return_action_plan", request, notifier, body.comments)

@router.post("/{cr_id}/implementation/{action}", response_model=ChangeRequestOut)
def implementation(cr_id: int, action: str, request: Request, body: StepIn = StepIn(),
                   db: Session = Depends(get_db), user: User = Depends(get_current_user),
                   notifier: Notifier = Depends(get_notifier)):
    steps = {"start": "start_implementation", "complete": "complete_implementation",
             "verify": "verify_implementation"}
    if action not in steps:
        raise ValueError(f"Unknown implementation action '{action}'. Must be one of {sorted(steps)}.")
    return _advance(db, cr_id, user, steps[action], request, notifier, body.comments)

@router.post("/{cr_id}/effectiveness-check", response_model=ChangeRequestOut)
def effectiveness_check(cr_id: int, body: EffectivenessCheckIn, request: Request,
                        db: Session = Depends(get_db), user: User = Depends(get_current_user),
                        notifier: Notifier = Depends(get_notifier)):
    return _advance(db, cr_id, user, "record_effectiveness_check", request, notifier,
                    body.comments, body.model_dump())

@router.post("/{cr_id}/close", response_model=ChangeRequestOut)
def close(cr_id: int, request: Request, body: StepIn = StepIn(),
          db: Session = Depends(get_db), user: User = Depends(get_current_user),
          notifier: Notifier = Depends(get_notifier)):
    return _advance(db, cr_id, user, "close", request, notifier, body.comments)
