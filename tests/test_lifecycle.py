from datetime import timedelta

import pytest

from conftest import auth, cr_fields
from app.core.database import utcnow
from app.core.errors import ForbiddenError, InvalidStateError, ValidationError
from app.crud import change_request as crud
from app.services.reminders import run_reminder_pass

PLAN = {
    "tasks": [
        {"description": "Install calibration script", "due_date": "2030-01-10T00:00:00Z"},
        {"description": "Train line operators", "status": "in_progress"},
    ],
    "resources": "One technician, two days",
    "success_criteria": "Drift below 0.1% for a month",
}

CHECK = {
    "overall_result": "effective",
    "criteria": [{"description": "Drift below 0.1%", "met": True, "evidence": "Weekly logs"}],
    "comments": "Holding well",
}


def approved(db, users, **overrides):
    cr = crud.create_change_request(db, users.requester, cr_fields(**overrides))
    crud.submit_change_request(db, cr.id, users.requester)
    for approver in (users.hod, users.qa, users.cct):
        cr = crud.approve_change_request(db, cr.id, approver)
    assert cr.status == "action_plan_pending"
    return cr


def test_full_lifecycle_to_closed(db, users, notifier):
    cr = approved(db, users)

    cr = crud.advance_change_request(db, cr.id, users.requester, "submit_action_plan", payload=PLAN)
    assert cr.status == "action_plan_submitted"
    assert [t["status"] for t in cr.action_plan["tasks"]] == ["pending", "in_progress"]
    assert cr.action_plan["tasks"][0]["due_date"] == "2030-01-10T00:00:00"

    cr = crud.advance_change_request(db, cr.id, users.cct, "approve_action_plan", notifier=notifier)
    assert cr.status == "implementation_pending"
    cr = crud.advance_change_request(db, cr.id, users.requester, "start_implementation")
    cr = crud.advance_change_request(db, cr.id, users.requester, "complete_implementation")
    assert cr.status == "implementation_completed"
    cr = crud.advance_change_request(db, cr.id, users.cct, "verify_implementation")
    assert cr.status == "effectiveness_check_pending"

    cr = crud.advance_change_request(db, cr.id, users.cct, "record_effectiveness_check", payload=CHECK)
    assert cr.effectiveness_check["overall_result"] == "effective"
    assert cr.effectiveness_check["checked_by"] == users.cct.id
    assert cr.effectiveness_check["follow_up_required"] is False

    cr = crud.advance_change_request(db, cr.id, users.cct, "close", notifier=notifier)
    assert cr.status == "closed"
    assert cr.workflow_step == "Closed"

    actions = [e.action for e in cr.audit_log][5:]
    assert actions == [
        "Action plan submitted",
        "Action plan approved",
        "Implementation started",
        "Implementation completed",
        "Implementation verified",
        "Effectiveness check recorded",
        "Change request closed",
    ]
    assert cr.audit_log[-1].details["previousStatus"] == "effectiveness_check_completed"
    assert notifier.events() == [
        (users.requester.id, "approval_given"),
        (users.requester.id, "closed"),
    ]

    # closed is terminal
    with pytest.raises(InvalidStateError):
        crud.discontinue_change_request(db, cr.id, users.admin, "late")


def test_steps_are_guarded_by_performer(db, users):
    cr = approved(db, users)
    with pytest.raises(ForbiddenError):
        crud.advance_change_request(db, cr.id, users.colleague, "submit_action_plan", payload=PLAN)
    with pytest.raises(ForbiddenError):
        crud.advance_change_request(db, cr.id, users.cct, "submit_action_plan", payload=PLAN)

    crud.advance_change_request(db, cr.id, users.requester, "submit_action_plan", payload=PLAN)
    with pytest.raises(ForbiddenError):
        crud.advance_change_request(db, cr.id, users.requester, "approve_action_plan")

    # admin may act for either side
    cr = crud.advance_change_request(db, cr.id, users.admin, "approve_action_plan")
    assert cr.status == "implementation_pending"


def test_steps_out_of_order_are_invalid_state(db, users):
    cr = approved(db, users)
    with pytest.raises(InvalidStateError):
        crud.advance_change_request(db, cr.id, users.cct, "close")
    with pytest.raises(InvalidStateError):
        crud.advance_change_request(db, cr.id, users.requester, "start_implementation")
    db.refresh(cr)
    assert cr.status == "action_plan_pending"
    assert len(cr.audit_log) == 5


def test_lifecycle_steps_refused_during_review(db, users):
    cr = crud.create_change_request(db, users.requester, cr_fields())
    crud.submit_change_request(db, cr.id, users.requester)
    with pytest.raises(InvalidStateError):
        crud.advance_change_request(db, cr.id, users.requester, "submit_action_plan", payload=PLAN)


@pytest.mark.parametrize("plan", [
    {},
    {"tasks": []},
    {"tasks": [{"description": "  "}]},
    {"tasks": [{"description": "x", "status": "someday"}]},
    {"tasks": [{"description": "x", "responsible_id": 4242}]},
])
def test_invalid_action_plan(db, users, plan):
    cr = approved(db, users)
    with pytest.raises(ValidationError):
        crud.advance_change_request(db, cr.id, users.requester, "submit_action_plan", payload=plan)
    db.refresh(cr)
    assert cr.status == "action_plan_pending"
    assert cr.action_plan is None


def test_return_action_plan_needs_comments(db, users, notifier):
    cr = approved(db, users)
    crud.advance_change_request(db, cr.id, users.requester, "submit_action_plan", payload=PLAN)
    with pytest.raises(ValidationError):
        crud.advance_change_request(db, cr.id, users.cct, "return_action_plan", "  ")

    cr = crud.advance_change_request(db, cr.id, users.cct, "return_action_plan", "split task two",
                                     notifier=notifier)
    assert cr.status == "action_plan_pending"
    assert notifier.sent[-1][1] == "rejection"
    assert notifier.sent[-1][3] == "split task two"

    # resubmission replaces the plan
    cr = crud.advance_change_request(db, cr.id, users.requester, "submit_action_plan",
                                     payload={"tasks": [{"description": "Only task"}]})
    assert [t["description"] for t in cr.action_plan["tasks"]] == ["Only task"]


def test_effectiveness_check_requires_result(db, users):
    cr = approved(db, users)
    for step, actor, payload in (
        ("submit_action_plan", users.requester, PLAN),
        ("approve_action_plan", users.cct, None),
        ("start_implementation", users.requester, None),
        ("complete_implementation", users.requester, None),
        ("verify_implementation", users.cct, None),
    ):
        crud.advance_change_request(db, cr.id, actor, step, payload=payload)

    with pytest.raises(ValidationError):
        crud.advance_change_request(db, cr.id, users.cct, "record_effectiveness_check",
                                    payload={"overall_result": "great"})
    cr = crud.advance_change_request(db, cr.id, users.cct, "record_effectiveness_check", payload={
        "overall_result": "partially_effective", "follow_up_actions": ["Re-check in Q3"],
    })
    assert cr.effectiveness_check["follow_up_required"] is True


def test_unknown_step(db, users):
    cr = approved(db, users)
    with pytest.raises(ValidationError):
        crud.advance_change_request(db, cr.id, users.admin, "skip_to_the_end")


def test_deadline_warning_after_action_plan_approval(db, users, notifier):
    now = utcnow()
    cr = approved(db, users, proposed_implementation_date=now + timedelta(days=2))
    assert run_reminder_pass(db, notifier, now=now)["deadline_warnings"] == 0

    crud.advance_change_request(db, cr.id, users.requester, "submit_action_plan", payload=PLAN)
    crud.advance_change_request(db, cr.id, users.cct, "approve_action_plan")
    assert run_reminder_pass(db, notifier, now=now)["deadline_warnings"] == 1

    crud.advance_change_request(db, cr.id, users.requester, "start_implementation")
    notifier.sent.clear()
    run_reminder_pass(db, notifier, now=now)
    assert notifier.events() == [(users.requester.id, "deadline_approaching")]


def test_lifecycle_over_http(client, users, db):
    cr = approved(db, users)
    cid = cr.id

    r = client.post(f"/api/change-requests/{cid}/action-plan", json=PLAN, headers=auth(users.requester))
    assert r.status_code == 200, r.text
    assert r.json()["workflow_step"] == "Action Plan Submitted"
    assert len(r.json()["action_plan"]["tasks"]) == 2

    r = client.post(f"/api/change-requests/{cid}/action-plan/return", json={}, headers=auth(users.cct))
    assert (r.status_code, r.json()["kind"]) == (422, "ValidationError")
    r = client.post(f"/api/change-requests/{cid}/action-plan/approve", headers=auth(users.cct))
    assert r.json()["status"] == "implementation_pending"

    r = client.post(f"/api/change-requests/{cid}/implementation/verify", headers=auth(users.cct))
    assert (r.status_code, r.json()["kind"]) == (409, "InvalidState")
    r = client.post(f"/api/change-requests/{cid}/implementation/someday", headers=auth(users.requester))
    assert r.status_code == 400

    for action, actor in (("start", users.requester), ("complete", users.requester), ("verify", users.cct)):
        r = client.post(f"/api/change-requests/{cid}/implementation/{action}", headers=auth(actor))
        assert r.status_code == 200, r.text

    r = client.post(f"/api/change-requests/{cid}/effectiveness-check", json=CHECK, headers=auth(users.requester))
    assert (r.status_code, r.json()["kind"]) == (403, "Forbidden")
    r = client.post(f"/api/change-requests/{cid}/effectiveness-check", json=CHECK, headers=auth(users.cct))
    assert r.json()["effectiveness_check"]["criteria"][0]["met"] is True

    r = client.post(f"/api/change-requests/{cid}/close", json={"comments": "done"}, headers=auth(users.cct))
    assert r.json()["status"] == "closed"
