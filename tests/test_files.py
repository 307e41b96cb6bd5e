import io

import pytest

from conftest import auth, cr_fields
from backend.main import app
from app.api.files import get_file_store
from app.core.errors import ForbiddenError, ValidationError
from app.crud import attachment as attachment_crud
from app.crud import change_request as crud
from app.services.file_store import FileTooLargeError, LocalFileStore


@pytest.fixture
def store(tmp_path):
    s = LocalFileStore(tmp_path / "uploads")
    app.dependency_overrides[get_file_store] = lambda: s
    return s


@pytest.fixture
def draft(db, users):
    return crud.create_change_request(db, users.requester, cr_fields())


def upload(client, user, cr_id, files, category=None):
    data = {"change_request_id": str(cr_id)}
    if category:
        data["category"] = category
    return client.post("/api/files/upload", data=data, files=files, headers=auth(user))


def test_upload_download_info_delete(client, users, store, draft):
    r = upload(client, users.requester, draft.id,
               [("files", ("sop.txt", b"step one\nstep two\n", "text/plain"))], "evidence")
    assert r.status_code == 201, r.text
    att = r.json()["data"][0]
    assert att["original_name"] == "sop.txt"
    assert att["size"] == 18
    assert att["category"] == "evidence"
    assert store.exists(att["filename"])

    r = client.get(f"/api/files/{att['id']}", headers=auth(users.colleague))
    assert r.status_code == 200
    assert r.content == b"step one\nstep two\n"

    r = client.get(f"/api/files/{att['id']}/info", headers=auth(users.outsider))
    assert r.status_code == 403

    r = client.delete(f"/api/files/{att['id']}", headers=auth(users.requester))
    assert r.json() == {"deleted": True, "id": att["id"]}
    assert not store.exists(att["filename"])
    assert client.get(f"/api/files/{att['id']}/info", headers=auth(users.requester)).status_code == 404

    audit = client.get(f"/api/change-requests/{draft.id}/audit", headers=auth(users.requester)).json()
    assert [e["action"] for e in audit][-2:] == ["Files uploaded", "File deleted"]


def test_upload_forbidden_for_bystander(client, users, store, draft):
    r = upload(client, users.colleague, draft.id, [("files", ("x.txt", b"x", "text/plain"))])
    assert r.status_code == 403


def test_upload_bad_category(client, users, store, draft):
    r = upload(client, users.requester, draft.id, [("files", ("x.txt", b"x", "text/plain"))], "selfies")
    assert (r.status_code, r.json()["kind"]) == (422, "ValidationError")


def test_oversized_upload_leaves_nothing_behind(db, users, tmp_path, draft, monkeypatch):
    store = LocalFileStore(tmp_path / "uploads")
    limits = {"max_file_size": 4, "max_files_per_upload": 10}
    monkeypatch.setattr(attachment_crud, "policy_value", lambda section, key, default=None: limits.get(key, default))

    with pytest.raises(ValidationError):
        attachment_crud.add_attachments(db, draft.id, users.requester,
                                        [(io.BytesIO(b"ok"), "a.txt", "text/plain"),
                                         (io.BytesIO(b"far too large"), "b.txt", "text/plain")],
                                        store=store)
    assert list((tmp_path / "uploads").iterdir()) == []
    db.refresh(draft)
    assert draft.attachments == []
    assert len(draft.audit_log) == 1


class BrokenStream:
    def read(self, n=-1):
        raise OSError("connection reset")


def test_failed_stream_discards_earlier_files(db, users, tmp_path, draft):
    store = LocalFileStore(tmp_path / "uploads")
    with pytest.raises(OSError):
        attachment_crud.add_attachments(db, draft.id, users.requester,
                                        [(io.BytesIO(b"first"), "a.txt", "text/plain"),
                                         (BrokenStream(), "b.txt", "text/plain")],
                                        store=store)
    assert list((tmp_path / "uploads").iterdir()) == []
    db.refresh(draft)
    assert draft.attachments == []


def test_store_stops_at_size_limit(tmp_path):
    store = LocalFileStore(tmp_path)
    with pytest.raises(FileTooLargeError):
        store.save(io.BytesIO(b"x" * 10), "big.bin", max_size=4)
    assert list(tmp_path.iterdir()) == []
    name, size = store.save(io.BytesIO(b"x" * 4), "ok.bin", max_size=4)
    assert size == 4 and store.exists(name)


def test_attachment_delete_gated_by_status(db, users, tmp_path, draft):
    store = LocalFileStore(tmp_path / "uploads")
    [att] = attachment_crud.add_attachments(db, draft.id, users.requester,
                                            [(io.BytesIO(b"spec"), "spec.pdf", "application/pdf")], store=store)
    crud.submit_change_request(db, draft.id, users.requester)
    crud.approve_change_request(db, draft.id, users.hod)
    with pytest.raises(ForbiddenError):
        attachment_crud.delete_attachment(db, att.id, users.colleague, store)

    # the uploader may still remove their own file mid-review
    attachment_crud.delete_attachment(db, att.id, users.requester, store)
    db.refresh(draft)
    assert draft.attachments == []


def test_missing_file_on_disk_is_tolerated(db, users, tmp_path, draft):
    store = LocalFileStore(tmp_path / "uploads")
    [att] = attachment_crud.add_attachments(db, draft.id, users.requester,
                                            [(io.BytesIO(b"x"), "x.txt", "text/plain")], store=store)
    store.path(att.filename).unlink()
    attachment_crud.delete_attachment(db, att.id, users.admin, store)
    db.refresh(draft)
    assert draft.audit_log[-1].action == "File deleted"


def test_store_rejects_path_traversal(tmp_path):
    with pytest.raises(ValueError):
        LocalFileStore(tmp_path).path("../etc/passwd")
