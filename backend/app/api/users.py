from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api.schemas import UserCreate, UserOut, UserUpdate, paged
from app.core.database import get_db
from app.crud import user as crud
from app.deps.auth import get_current_user, require_permission, require_role
from app.models.user import User

router = APIRouter(prefix="/api/users", tags=["users"])

# cct by role; anyone else through a {"module": "users", "actions": ["manage"]} grant
manage = require_permission("users", "manage", "cct")

@router.get("", response_model=dict)
def list_users(role: Optional[str] = None, department: Optional[str] = None,
               is_active: Optional[bool] = None,
               page: int = Query(1, ge=1), limit: Optional[int] = Query(None, ge=1),
               db: Session = Depends(get_db), user: User = Depends(manage)):
    rows, total, page, limit = crud.list_users(db, role, department, is_active, page, limit)
    return paged(rows, total, page, limit, UserOut)

@router.post("", response_model=UserOut, status_code=201)
def create_user(body: UserCreate, db: Session = Depends(get_db), user: User = Depends(manage)):
    return UserOut.model_validate(crud.create_user(db, body.model_dump(exclude_none=True)))

@router.get("/me", response_model=UserOut)
def whoami(user: User = Depends(get_current_user)):
    return UserOut.model_validate(user)

@router.get("/role/{role}", response_model=List[UserOut])
def users_by_role(role: str, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return [UserOut.model_validate(u) for u in crud.list_users_by_role(db, role)]

@router.get("/department/{department}", response_model=List[UserOut])
def users_by_department(department: str, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return [UserOut.model_validate(u) for u in crud.list_users_by_department(db, department)]

@router.get("/{user_id}", response_model=UserOut)
def get_user(user_id: int, db: Session = Depends(get_db), user: User = Depends(manage)):
    return UserOut.model_validate(crud.get_user(db, user_id))

@router.put("/{user_id}", response_model=UserOut)
def update_user(user_id: int, body: UserUpdate, db: Session = Depends(get_db), user: User = Depends(manage)):
    return UserOut.model_validate(crud.update_user(db, user_id, body.model_dump(exclude_none=True)))

@router.post("/{user_id}/deactivate", response_model=UserOut)
def deactivate_user(user_id: int, db: Session = Depends(get_db), user: User = Depends(require_role("admin"))):
    return UserOut.model_validate(crud.set_user_active(db, user_id, False))

@router.post("/{user_id}/reactivate", response_model=UserOut)
def reactivate_user(user_id: int, db: Session = Depends(get_db), user: User = Depends(require_role("admin"))):
    return UserOut.model_validate(crud.set_user_active(db, user_id, True))
