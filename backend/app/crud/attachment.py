from __future__ import annotations
from typing import BinaryIO, List, Optional, Tuple
import logging

from sqlalchemy.orm import Session

from app.core.database import utcnow
from app.core.errors import NotFoundError, ForbiddenError, ValidationError
from app.crud.change_request import load_change_request, commit_change, refuse
from app.models.attachment import Attachment, AttachmentCategory
from app.models.change_request import ChangeRequest
from app.models.user import User
from app.services import workflow as wf
from app.services.audit import record_audit
from app.services.file_store import FileTooLargeError, LocalFileStore
from app.utils.policy import policy_value

logger = logging.getLogger(__name__)

# (stream, original filename, mimetype)
Upload = Tuple[BinaryIO, str, Optional[str]]

def _discard(store: LocalFileStore, names: List[str]) -> None:
    for n in names:
        store.delete(n)

def add_attachments(db: Session, cr_id: int, actor: User, uploads: List[Upload],
                    category: Optional[str] = None, store: Optional[LocalFileStore] = None,
                    ip_address: Optional[str] = None) -> List[Attachment]:
    if not uploads:
        raise refuse(ValidationError("No files uploaded"))
    max_files = int(policy_value("attachments", "max_files_per_upload", 10))
    if len(uploads) > max_files:
        raise refuse(ValidationError(f"Too many files; at most {max_files} per upload"))
    category = category or AttachmentCategory.INITIAL_DOCUMENTATION.value
    allowed = [c.value for c in AttachmentCategory]
    if category not in allowed:
        raise refuse(ValidationError(f"Invalid category '{category}'. Must be one of {allowed}."))

    cr = load_change_request(db, cr_id)
    if not wf.can_upload_attachment(actor, cr):
        raise refuse(ForbiddenError("Not authorized to upload files to this change request"))

    store = store or LocalFileStore()
    max_size = int(policy_value("attachments", "max_file_size", 10 * 1024 * 1024))
    saved: List[str] = []
    rows: List[Attachment] = []
    for stream, original_name, mimetype in uploads:
        try:
            stored, size = store.save(stream, original_name, max_size)
        except FileTooLargeError:
            _discard(store, saved)
            raise refuse(ValidationError(
                f"File '{original_name}' exceeds the {max_size} byte limit", {"limit": max_size}))
        except Exception:
            _discard(store, saved)
            raise
        saved.append(stored)
        rows.append(Attachment(
            filename=stored,
            original_name=original_name or stored,
            mimetype=mimetype,
            size=size,
            uploaded_by=actor.id,
            category=category,
            upload_date=utcnow(),
        ))

    for row in rows:
        cr.attachments.append(row)
    cr.updated_at = utcnow()
    entry = record_audit(cr, "Files uploaded", actor, {
        "fileCount": len(rows),
        "category": category,
        "files": [r.original_name for r in rows],
    }, ip_address)
    try:
        commit_change(db, cr, entry, "upload")
    except Exception:
        # bytes without a row are orphans
        _discard(store, saved)
        raise
    logger.info("change_request=%s: %d file(s) uploaded by user=%s", cr.id, len(rows), actor.id)
    return rows

def get_attachment(db: Session, attachment_id: int, viewer: User) -> Tuple[Attachment, ChangeRequest]:
    att = db.get(Attachment, attachment_id)
    if not att:
        raise refuse(NotFoundError(f"File {attachment_id} not found"))
    cr = load_change_request(db, att.change_request_id)
    if not wf.can_view(viewer, cr):
        raise refuse(ForbiddenError("Not authorized to access this file"))
    return att, cr

def delete_attachment(db: Session, attachment_id: int, actor: User,
                      store: Optional[LocalFileStore] = None,
                      ip_address: Optional[str] = None) -> ChangeRequest:
    att = db.get(Attachment, attachment_id)
    if not att:
        raise refuse(NotFoundError(f"File {attachment_id} not found"))
    cr = load_change_request(db, att.change_request_id)
    if not wf.can_delete_attachment(actor, cr, att):
        raise refuse(ForbiddenError("Not authorized to delete this file"))

    stored, original, category = att.filename, att.original_name, att.category
    cr.attachments.remove(att)
    cr.updated_at = utcnow()
    entry = record_audit(cr, "File deleted", actor, {
        "filename": original,
        "category": category,
    }, ip_address)
    commit_change(db, cr, entry, "delete_file")

    # the row is gone; a missing file on disk is only worth a warning
    (store or LocalFileStore()).delete(stored)
    return cr
