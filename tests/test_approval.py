from datetime import date

import pytest

from fieldops.models.models import AuditLog, ServiceReport

from conftest import auth_headers, signature_data_url


@pytest.fixture
def submitted(db, world):
    report = ServiceReport(
        complaint_no="COMP-1714550400000",
        complaint_type="maintenance",
        project_phase="phase1",
        system_type="cctv",
        zone="Central",
        date=date(2024, 5, 1),
        location="MG Road",
        latitude=18.5209,
        longitude=73.8567,
        nature_of_complaint="Camera offline",
        field_team_remarks="Replaced fuse",
        tech_engineer="Ravi Technician",
        tech_mobile="9876543210",
        tech_signature=signature_data_url(),
        status="submitted",
        approval_status="pending",
        technician_id=world.tech.id,
        team_leader_id=world.leader.id,
    )
    db.add(report)
    db.commit()
    return report


def decide(client, user, report_id, **body):
    return client.post(f"/approvals/{report_id}", json=body, headers=auth_headers(user))


def test_pending_queue_for_team_leader(client, world, submitted):
    r = client.get("/approvals/pending", headers=auth_headers(world.leader))
    assert r.status_code == 200
    assert [item["complaint_no"] for item in r.json()] == ["COMP-1714550400000"]


def test_reject_requires_remarks(client, world, submitted):
    r = decide(client, world.leader, submitted.id, approval_status="reject", tl_signature=signature_data_url())
    assert r.status_code == 422
    assert [e["field"] for e in r.json()["errors"]] == ["rejection_remarks"]


def test_decision_requires_signature(client, world, submitted):
    r = decide(client, world.leader, submitted.id, approval_status="approve")
    assert r.status_code == 422
    assert [e["field"] for e in r.json()["errors"]] == ["tl_signature"]


def test_bad_profile_mobile_points_at_the_profile(client, db, world, submitted):
    world.leader.mobile = "12345"
    db.commit()
    r = decide(client, world.leader, submitted.id, approval_status="approve", tl_signature=signature_data_url())
    assert r.status_code == 422
    assert r.json()["errors"] == [
        {"field": "tl_mobile", "message": "Your profile mobile number must be 10 digits. Update your profile, then retry."}
    ]
    db.refresh(submitted)
    assert submitted.approval_status == "pending"


def test_reject_with_remarks(client, db, world, submitted):
    r = decide(
        client,
        world.leader,
        submitted.id,
        approval_status="reject",
        rejection_remarks="Incomplete photos",
        tl_signature=signature_data_url(),
    )
    assert r.status_code == 200, r.text
    report = r.json()
    assert report["approval_status"] == "reject"
    assert report["rejection_remarks"] == "Incomplete photos"
    assert report["tl_name"] == "Tarun Leader"
    assert report["tl_mobile"] == "9876500002"
    assert report["approved_by"] == str(world.leader.id)
    assert report["approved_at"] is not None
    # technician-authored content is untouched
    assert report["field_team_remarks"] == "Replaced fuse"
    assert report["status"] == "submitted"

    log = db.query(AuditLog).filter(AuditLog.entity_id == submitted.id).one()
    assert log.action == "REJECT"
    assert log.changes_json["diff"]["approval_status"] == {"before": "pending", "after": "reject"}


def test_approve_drops_rejection_remarks(client, world, submitted):
    r = decide(
        client,
        world.manager,
        submitted.id,
        approval_status="approve",
        rejection_remarks="ignored",
        approval_notes="Good work",
        tl_signature=signature_data_url(),
    )
    assert r.status_code == 200, r.text
    assert r.json()["approval_status"] == "approve"
    assert r.json()["rejection_remarks"] is None
    assert r.json()["approval_notes"] == "Good work"


def test_reports_are_decided_once(client, world, submitted):
    body = dict(approval_status="approve", tl_signature=signature_data_url())
    assert decide(client, world.leader, submitted.id, **body).status_code == 200
    r = decide(client, world.manager, submitted.id, **body)
    assert r.status_code == 409
    assert r.json()["approval_status"] == "approve"


def test_technicians_cannot_decide(client, world, submitted):
    r = decide(client, world.tech, submitted.id, approval_status="approve", tl_signature=signature_data_url())
    assert r.status_code == 403


def test_drafts_cannot_be_decided(client, db, world, submitted):
    submitted.status = "draft"
    db.commit()
    r = decide(client, world.leader, submitted.id, approval_status="approve", tl_signature=signature_data_url())
    assert r.status_code == 409
