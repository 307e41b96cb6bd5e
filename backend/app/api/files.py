from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile
from fastapi.responses import FileResponse
from sqlalchemy.orm import Session

from app.api.schemas import AttachmentOut
from app.core.database import get_db
from app.core.errors import NotFoundError
from app.crud.attachment import add_attachments, get_attachment, delete_attachment
from app.deps.auth import get_current_user
from app.models.user import User
from app.services.file_store import LocalFileStore

router = APIRouter(prefix="/api/files", tags=["files"])

def get_file_store() -> LocalFileStore:
    return LocalFileStore()

@router.post("/upload", response_model=dict, status_code=201)
def upload_files(
    request: Request,
    change_request_id: int = Form(...),
    category: Optional[str] = Form(None),
    files: List[UploadFile] = File(...),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    store: LocalFileStore = Depends(get_file_store),
):
    uploads = [(f.file, f.filename, f.content_type) for f in files]
    rows = add_attachments(db, change_request_id, user, uploads, category, store,
                           request.client.host if request.client else None)
    return {"count": len(rows), "data": [AttachmentOut.model_validate(r) for r in rows]}

@router.get("/{attachment_id}")
def download_file(attachment_id: int, db: Session = Depends(get_db),
                  user: User = Depends(get_current_user),
                  store: LocalFileStore = Depends(get_file_store)):
    att, _ = get_attachment(db, attachment_id, user)
    if not store.exists(att.filename):
        raise NotFoundError("File not found on server")
    return FileResponse(
        store.path(att.filename),
        media_type=att.mimetype or "application/octet-stream",
        filename=att.original_name,
    )

@router.get("/{attachment_id}/info", response_model=AttachmentOut)
def file_info(attachment_id: int, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    att, _ = get_attachment(db, attachment_id, user)
    return AttachmentOut.model_validate(att)

@router.delete("/{attachment_id}", response_model=dict)
def remove_file(attachment_id: int, request: Request, db: Session = Depends(get_db),
                user: User = Depends(get_current_user),
                store: LocalFileStore = Depends(get_file_store)):
    delete_attachment(db, attachment_id, user, store, request.client.host if request.client else None)
    return {"deleted": True, "id": attachment_id}
