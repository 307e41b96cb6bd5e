from conftest import auth, cr_fields


def body(**overrides) -> dict:
    fields = cr_fields(**overrides)
    fields["proposed_implementation_date"] = fields["proposed_implementation_date"].isoformat() + "Z"
    return fields


def create(client, user, **overrides) -> dict:
    r = client.post("/api/change-requests", json=body(**overrides), headers=auth(user))
    assert r.status_code == 201, r.text
    return r.json()


def test_login_by_email_issues_tokens(client, users):
    r = client.post("/auth/login", json={"email": users.hod.email})
    assert r.status_code == 200
    data = r.json()
    assert data["role"] == "hod"
    me = client.get("/api/users/me", headers={"Authorization": f"Bearer {data['access_token']}"})
    assert me.json()["id"] == users.hod.id

    refreshed = client.post("/auth/refresh", json={"refresh_token": data["refresh_token"]})
    assert refreshed.status_code == 200
    assert client.post("/auth/refresh", json={"refresh_token": data["access_token"]}).status_code == 401


def test_login_unknown_or_inactive(client, users, db):
    assert client.post("/auth/login", json={"email": "nobody@example.com"}).status_code == 401
    users.colleague.is_active = False
    db.commit()
    assert client.post("/auth/login", json={"email": users.colleague.email}).status_code == 401


def test_create_and_fetch(client, users):
    cr = create(client, users.requester)
    assert cr["status"] == "draft"
    assert cr["workflow_step"] == "Draft"
    assert cr["change_control_number"] is None
    assert cr["requester"]["id"] == users.requester.id

    r = client.get(f"/api/change-requests/{cr['id']}", headers=auth(users.requester))
    assert r.status_code == 200
    assert r.json()["title"] == "Upgrade scale calibration"


def test_create_missing_fields_is_422_with_kind(client, users):
    r = client.post("/api/change-requests", json={"title": "Only a title"}, headers=auth(users.requester))
    assert r.status_code == 422
    assert r.json()["kind"] == "ValidationError"


def test_full_workflow_over_http(client, users, notifier):
    cr = create(client, users.requester)
    cid = cr["id"]

    r = client.post(f"/api/change-requests/{cid}/submit", headers=auth(users.requester))
    assert r.status_code == 200
    assert r.json()["status"] == "submitted"
    assert r.json()["change_control_number"].startswith("CC-")

    pending = client.get("/api/change-requests/pending-approvals", headers=auth(users.hod)).json()
    assert [p["id"] for p in pending["data"]] == [cid]

    r = client.post(f"/api/change-requests/{cid}/approve", json={"comments": "ok"}, headers=auth(users.hod))
    assert r.json()["status"] == "under_qa_review"
    r = client.post(f"/api/change-requests/{cid}/approve", headers=auth(users.qa))
    assert r.json()["status"] == "under_cct_review"
    r = client.post(f"/api/change-requests/{cid}/approve", json={"signature": "data:sig"}, headers=auth(users.cct))
    data = r.json()
    assert data["status"] == "action_plan_pending"
    assert data["current_approver_id"] is None
    assert [a["role"] for a in data["approvals"]] == ["hod", "qa_correspondent", "cct"]

    audit = client.get(f"/api/change-requests/{cid}/audit", headers=auth(users.requester)).json()
    assert [e["action"] for e in audit] == [
        "Change request created",
        "Change request submitted for approval",
        "Approved by hod",
        "Approved by qa_correspondent",
        "Approved by cct",
    ]
    assert [e for _, e in notifier.events()] == [
        "approval_request",
        "approval_request", "approval_given",
        "approval_request", "approval_given",
        "all_approvals_complete",
    ]


def test_error_kinds(client, users):
    cid = create(client, users.requester)["id"]

    r = client.get("/api/change-requests/4242", headers=auth(users.admin))
    assert (r.status_code, r.json()["kind"]) == (404, "NotFound")

    r = client.get(f"/api/change-requests/{cid}", headers=auth(users.outsider))
    assert (r.status_code, r.json()["kind"]) == (403, "Forbidden")

    r = client.post(f"/api/change-requests/{cid}/approve", headers=auth(users.hod))
    assert (r.status_code, r.json()["kind"]) == (403, "Forbidden")

    r = client.post(f"/api/change-requests/{cid}/reject", json={}, headers=auth(users.hod))
    assert (r.status_code, r.json()["kind"]) == (422, "ValidationError")

    client.post(f"/api/change-requests/{cid}/submit", headers=auth(users.requester))
    r = client.post(f"/api/change-requests/{cid}/submit", headers=auth(users.requester))
    assert (r.status_code, r.json()["kind"]) == (409, "InvalidState")


def test_routing_error_over_http(client, users, db):
    users.hod.is_active = False
    db.commit()
    cid = create(client, users.requester)["id"]
    r = client.post(f"/api/change-requests/{cid}/submit", headers=auth(users.requester))
    assert (r.status_code, r.json()["kind"]) == (409, "RoutingError")


def test_reject_then_reopen(client, users, notifier):
    cid = create(client, users.requester)["id"]
    client.post(f"/api/change-requests/{cid}/submit", headers=auth(users.requester))
    r = client.post(f"/api/change-requests/{cid}/reject",
                    json={"comments": "insufficient justification"}, headers=auth(users.hod))
    assert r.json()["status"] == "hod_rejected"
    assert notifier.sent[-1][3] == "insufficient justification"

    r = client.put(f"/api/change-requests/{cid}", json={"justification": "Now justified"},
                   headers=auth(users.requester))
    assert r.status_code == 200
    r = client.post(f"/api/change-requests/{cid}/reopen", headers=auth(users.requester))
    assert r.json()["status"] == "draft"


def test_list_shape_and_filters(client, users):
    for i in range(3):
        create(client, users.requester, title=f"Scale {i}", priority="high" if i == 0 else "low")
    r = client.get("/api/change-requests", params={"limit": 2}, headers=auth(users.admin))
    data = r.json()
    assert data["total"] == 3
    assert data["count"] == 2
    assert data["pagination"] == {"page": 1, "limit": 2, "pages": 2}

    r = client.get("/api/change-requests", params={"priority": "high"}, headers=auth(users.admin))
    assert [d["title"] for d in r.json()["data"]] == ["Scale 0"]

    r = client.get("/api/change-requests/status/draft", headers=auth(users.admin))
    assert r.json()["total"] == 3

    r = client.get("/api/change-requests", params={"sort_by": "nope"}, headers=auth(users.admin))
    assert r.status_code == 400


def test_my_requests(client, users):
    create(client, users.requester)
    create(client, users.colleague)
    r = client.get("/api/change-requests/my-requests", headers=auth(users.requester))
    assert r.json()["total"] == 1


def test_discontinue_and_delete(client, users):
    cid = create(client, users.requester)["id"]
    r = client.post(f"/api/change-requests/{cid}/discontinue", json={"reason": "dup"}, headers=auth(users.requester))
    assert r.status_code == 403
    r = client.post(f"/api/change-requests/{cid}/discontinue", json={"reason": "dup"}, headers=auth(users.admin))
    assert r.json()["status"] == "discontinued"

    other = create(client, users.requester)["id"]
    r = client.delete(f"/api/change-requests/{other}", headers=auth(users.requester))
    assert r.json() == {"deleted": True, "id": other}
    assert client.get(f"/api/change-requests/{other}", headers=auth(users.requester)).status_code == 404


def test_policy_and_webhook_config(client, users):
    r = client.get("/api/policy", headers=auth(users.requester))
    assert r.json()["pagination"]["max_limit"] == 100

    assert client.post("/config/notify-webhook", json={"webhook_url": "https://hooks.example.com/x"},
                       headers=auth(users.hod)).status_code == 403
    r = client.post("/config/notify-webhook", json={"webhook_url": "https://hooks.example.com/x"},
                    headers=auth(users.admin))
    assert r.json() == {"saved": True}
    assert client.get("/config/notify-webhook", headers=auth(users.admin)).json()["configured"] is True
    client.post("/config/notify-webhook", json={"webhook_url": ""}, headers=auth(users.admin))
