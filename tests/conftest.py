import os
import tempfile
from datetime import datetime, timedelta
from types import SimpleNamespace

import pytest

# configure before the app (and its module-level engine) is imported
_TMP = tempfile.mkdtemp(prefix="qms-tests-")
os.environ.setdefault("DATABASE_URL", f"sqlite:///{os.path.join(_TMP, 'app.db')}")
os.environ.setdefault("AUDIT_DIR", os.path.join(_TMP, "audit"))
os.environ.setdefault("UPLOAD_DIR", os.path.join(_TMP, "uploads"))
os.environ.setdefault("REMINDER_ENABLED", "0")
os.environ.setdefault("NOTIFY_WEBHOOK_URL", "")

from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from backend.main import app  # noqa: E402
from app.core.database import Base, get_db, make_engine, utcnow  # noqa: E402
from app.core.security import create_access_token  # noqa: E402
from app.deps.auth import get_notifier  # noqa: E402
from app.models.user import User  # noqa: E402


class RecordingNotifier:
    def __init__(self):
        self.sent = []

    def notify(self, user_id, event_type, snapshot, message=None):
        self.sent.append((user_id, event_type, snapshot, message))

    def events(self):
        return [(user_id, event_type) for user_id, event_type, _, _ in self.sent]


def make_user(db, name, role, department="Production", active=True, **kw) -> User:
    now = utcnow()
    u = User(
        name=name,
        email=f"{name.lower().replace(' ', '.')}@example.com",
        role=role,
        department=department,
        is_active=active,
        created_at=now,
        updated_at=now,
        **kw,
    )
    db.add(u)
    db.commit()
    db.refresh(u)
    return u


def cr_fields(**overrides) -> dict:
    fields = {
        "title": "Upgrade scale calibration",
        "description": "Replace the calibration routine on line 3 scales",
        "change_type": "minor",
        "category": "equipment",
        "current_state": "Scales calibrated monthly by hand",
        "proposed_change": "Automated weekly calibration",
        "justification": "Drift observed between manual calibrations",
        "impact_assessment": {
            "quality": {"impact": "medium", "description": "Tighter tolerances"},
            "financial": {"impact": "low", "description": "One-off tooling cost", "estimated_cost": 1200},
        },
        "proposed_implementation_date": utcnow() + timedelta(days=30),
    }
    fields.update(overrides)
    return fields


def auth(user) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user.id, user.role)}"}


@pytest.fixture
def engine(tmp_path):
    eng = make_engine(f"sqlite:///{tmp_path / 'qms.db'}")
    Base.metadata.create_all(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    s = session_factory()
    yield s
    s.close()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def users(db):
    return SimpleNamespace(
        requester=make_user(db, "Rita Requester", "requester", "Production"),
        colleague=make_user(db, "Carl Colleague", "requester", "Production"),
        outsider=make_user(db, "Olga Outsider", "requester", "Logistics"),
        hod=make_user(db, "Hank Hod", "hod", "Production"),
        qa=make_user(db, "Quinn Qa", "qa_correspondent", "Quality"),
        cct=make_user(db, "Cora Cct", "cct", "Quality"),
        admin=make_user(db, "Ada Admin", "admin", "IT"),
    )


@pytest.fixture
def client(session_factory, notifier):
    def override_get_db():
        s = session_factory()
        try:
            yield s
        finally:
            s.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notifier] = lambda: notifier
    yield TestClient(app)
    app.dependency_overrides.clear()
