import asyncio
import threading

from backend import main as server
from backend.main import app


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "healthy"
    assert "change_requests" in body["tables"]


def test_list_change_requests_requires_auth(client):
    r = client.get("/api/change-requests")
    assert r.status_code == 401


def test_metrics_exposed(client):
    r = client.get("/metrics")
    assert r.status_code == 200
    assert "workflow_transitions_total" in r.text


def test_routes_registered():
    paths = set(app.openapi()["paths"])
    assert "/api/change-requests/{cr_id}/approve" in paths
    assert "/api/files/upload" in paths
    assert "/admin/reminders/run" in paths


def test_reminder_pass_runs_in_worker_thread(monkeypatch):
    seen = []
    monkeypatch.setattr(server, "_reminders_once", lambda: seen.append(threading.get_ident()))
    asyncio.run(server._run_reminders())
    assert len(seen) == 1
    assert seen[0] != threading.get_ident()


def test_reminder_pass_errors_do_not_escape(monkeypatch):
    def boom():
        raise RuntimeError("db down")

    monkeypatch.setattr(server, "_reminders_once", boom)
    asyncio.run(server._run_reminders())
