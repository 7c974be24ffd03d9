import re
from urllib.parse import unquote

from fieldops.models.models import ServiceReport
from fieldops.workflow.checklist import DEFAULT_SCHEMA

from conftest import auth_headers, make_image, signature_data_url

RAW = "Raw Power Supply"
RN = "Voltage Level (R-N)"


def start(client, user, **body):
    r = client.post("/wizard/sessions", json=body, headers=auth_headers(user))
    assert r.status_code == 200, r.text
    return r.json()


def upload(client, user, sid, field, data, name="photo.jpg", content_type="image/jpeg"):
    return client.post(
        f"/wizard/sessions/{sid}/images/{field}",
        files={"file": (name, data, content_type)},
        headers=auth_headers(user),
    )


def next_step(client, user, sid):
    return client.post(f"/wizard/sessions/{sid}/next", headers=auth_headers(user))


def test_full_report_happy_path(client, world, storage):
    tech = world.tech
    h = auth_headers(tech)
    state = start(client, tech, position={"latitude": 18.5209, "longitude": 73.8567})
    sid = state["session_id"]
    record = state["record"]
    assert re.match(r"^COMP-\d+$", record["complaint_no"])
    assert record["tech_engineer"] == "Ravi Technician"
    assert record["tech_mobile"] == "9876543210"
    assert record["latitude"] == 18.5209
    assert record["checklist_data"][RAW][RN] == "ok"
    assert state["current_step"] == 1

    # step 1
    r = client.patch(
        f"/wizard/sessions/{sid}/fields",
        json={"fields": {"complaint_type": "maintenance", "system_type": "cctv"}},
        headers=h,
    )
    assert r.status_code == 200, r.text
    r = client.post(f"/wizard/sessions/{sid}/location", json={"rfp_no": "RFP-001"}, headers=h)
    assert r.status_code == 200, r.text
    record = r.json()["record"]
    assert record["location"] == "MG Road"
    assert record["zone"] == "Central"
    assert record["location_latitude"] == 18.5204
    assert r.json()["distance_from_site_m"] < 150
    assert next_step(client, tech, sid).json()["current_step"] == 2

    # step 2
    assert next_step(client, tech, sid).json()["current_step"] == 3

    # step 3
    original = make_image()
    for field in ("before_image_url", "after_image_url"):
        r = upload(client, tech, sid, field, original)
        assert r.status_code == 200, r.text
        assert r.json()["warnings"] == []
    url = r.json()["record"]["after_image_url"]
    stored = storage.read(unquote(url.split("/files/local/", 1)[1]))
    assert stored and stored != original
    assert next_step(client, tech, sid).json()["current_step"] == 4

    # step 4
    for body in (
        {"section": RAW, "item": RN, "status": "issue"},
        {"section": RAW, "item": RN, "remark": "fluctuating"},
    ):
        assert client.put(f"/wizard/sessions/{sid}/checklist", json=body, headers=h).status_code == 200
    for section in ("UPS System", "Battery"):
        for item in DEFAULT_SCHEMA.section(section).items:
            r = client.put(
                f"/wizard/sessions/{sid}/checklist",
                json={"section": section, "item": item, "value": "12.6"},
                headers=h,
            )
            assert r.status_code == 200, r.text
    client.patch(f"/wizard/sessions/{sid}/fields", json={"fields": {"jb_temperature": 35.5}}, headers=h)
    assert next_step(client, tech, sid).json()["current_step"] == 5

    # step 5
    client.patch(
        f"/wizard/sessions/{sid}/fields",
        json={"fields": {"nature_of_complaint": "Camera offline", "field_team_remarks": "Replaced fuse"}},
        headers=h,
    )
    assert next_step(client, tech, sid).json()["current_step"] == 6

    # step 6
    client.patch(f"/wizard/sessions/{sid}/fields", json={"fields": {"tech_signature": signature_data_url()}}, headers=h)
    state = next_step(client, tech, sid).json()
    assert state["progress_pct"] == 100

    r = client.post(f"/wizard/sessions/{sid}/submit", headers=h)
    assert r.status_code == 200, r.text
    report = r.json()
    assert re.match(r"^COMP-\d+$", report["complaint_no"])
    assert report["status"] == "submitted"
    assert report["approval_status"] == "pending"
    assert report["checklist_data"][RAW][RN] == "issue"
    assert report["equipment_remarks"][f"{RAW}-{RN}"] == "fluctuating"
    assert report["team_leader_id"] == str(world.leader.id)
    assert report["jb_temperature"] == 35.5

    # the session is gone after submit
    assert client.get(f"/wizard/sessions/{sid}", headers=h).status_code == 404

    r = client.get(f"/reports/{report['id']}", headers=h)
    assert r.status_code == 200
    assert r.json()["complaint_no"] == report["complaint_no"]

    r = client.get(f"/reports/{report['id']}/history", headers=h)
    assert [entry["action"] for entry in r.json()] == ["CREATE"]
    assert r.json()[0]["verified"] is True

    r = client.get(f"/reports/{report['id']}/pdf", headers=h)
    assert r.status_code == 200
    assert r.headers["content-type"] == "application/pdf"
    assert r.content.startswith(b"%PDF")


def test_department_without_form_is_denied(client, world):
    r = client.post("/wizard/sessions", json={}, headers=auth_headers(world.outsider))
    assert r.status_code == 403
    body = r.json()
    assert body["retry"] is True
    assert body["form"] == "service_report"


def test_requests_need_a_token(client, world):
    assert client.post("/wizard/sessions", json={}).status_code == 401


def test_next_reports_errors_and_is_idempotent(client, world):
    sid = start(client, world.tech)["session_id"]
    first = next_step(client, world.tech, sid)
    second = next_step(client, world.tech, sid)
    assert first.status_code == second.status_code == 422
    assert first.json()["errors"] == second.json()["errors"]
    assert [e["field"] for e in first.json()["errors"]] == ["complaint_type", "project_phase", "system_type", "zone"]
    assert client.get(f"/wizard/sessions/{sid}", headers=auth_headers(world.tech)).json()["current_step"] == 1


def test_sessions_are_private(client, world):
    sid = start(client, world.tech)["session_id"]
    r = client.get(f"/wizard/sessions/{sid}", headers=auth_headers(world.leader))
    assert r.status_code == 404


def test_catalog_coordinates_are_read_only(client, world):
    h = auth_headers(world.tech)
    sid = start(client, world.tech)["session_id"]
    client.post(f"/wizard/sessions/{sid}/location", json={"rfp_no": "RFP-001"}, headers=h)
    r = client.patch(f"/wizard/sessions/{sid}/fields", json={"fields": {"location_latitude": 1.0}}, headers=h)
    assert r.status_code == 400
    assert r.json()["fields"] == ["location_latitude"]

    r = client.post(f"/wizard/sessions/{sid}/location", json={"rfp_no": "RFP-404"}, headers=h)
    assert r.status_code == 404


def test_unknown_fields_are_rejected(client, world):
    sid = start(client, world.tech)["session_id"]
    r = client.patch(
        f"/wizard/sessions/{sid}/fields",
        json={"fields": {"colour": "blue"}},
        headers=auth_headers(world.tech),
    )
    assert r.status_code == 422


def test_upload_without_gps_warns(client, world):
    sid = start(client, world.tech)["session_id"]
    r = upload(client, world.tech, sid, "before_image_url", make_image())
    assert r.status_code == 200, r.text
    assert r.json()["warnings"] == ["GPS location not available. Image uploaded without watermark."]
    assert r.json()["record"]["before_image_url"].startswith("http://testserver/files/local/service_reports/")

    r = upload(client, world.tech, sid, "after_image_url", b"%PDF-1.4", name="a.pdf", content_type="application/pdf")
    assert r.status_code == 400


def test_drafts_keep_their_identifier(client, world):
    tech = world.tech
    h = auth_headers(tech)
    sid = start(client, tech)["session_id"]
    client.patch(f"/wizard/sessions/{sid}/fields", json={"fields": {"zone": "East"}}, headers=h)
    r = client.post(f"/wizard/sessions/{sid}/draft", headers=h)
    assert r.status_code == 200, r.text
    draft = r.json()["record"]
    assert draft["complaint_no"].startswith(f"DRAFT-{tech.id}-")

    drafts = client.get("/reports/drafts", headers=h).json()
    assert [d["id"] for d in drafts] == [draft["id"]]
    # other users do not see it
    assert client.get("/reports/drafts", headers=auth_headers(world.leader)).json() == []

    resumed = start(client, tech, draft_id=draft["id"])
    assert resumed["record"]["complaint_no"] == draft["complaint_no"]
    assert resumed["record"]["zone"] == "East"
    again = client.post(f"/wizard/sessions/{resumed['session_id']}/draft", headers=h).json()["record"]
    assert again["id"] == draft["id"]
    assert again["complaint_no"] == draft["complaint_no"]

    assert client.delete(f"/reports/drafts/{draft['id']}", headers=h).status_code == 200
    assert client.get("/reports/drafts", headers=h).json() == []
    assert client.post("/wizard/sessions", json={"draft_id": draft["id"]}, headers=h).status_code == 404


def test_location_search(client, world):
    h = auth_headers(world.tech)
    r = client.get("/locations", params={"q": "mg road"}, headers=h)
    assert [loc["rfp_no"] for loc in r.json()] == ["RFP-001"]
    assert client.get("/locations/RFP-001", headers=h).json()["pole_id"] == "P-1001"
    assert client.get("/locations/RFP-999", headers=h).status_code == 404


def test_clone_starts_complete_and_only_from_own_reports(client, db, world):
    report = ServiceReport(
        complaint_no="COMP-1714550400000",
        complaint_type="maintenance",
        project_phase="phase1",
        system_type="cctv",
        zone="Central",
        nature_of_complaint="Camera offline",
        status="submitted",
        approval_status="pending",
        technician_id=world.tech.id,
        team_leader_id=world.leader.id,
    )
    db.add(report)
    db.commit()

    r = client.post("/wizard/sessions", json={"clone_id": str(report.id)}, headers=auth_headers(world.leader))
    assert r.status_code == 404

    state = start(client, world.tech, clone_id=str(report.id))
    assert state["progress_pct"] == 100
    assert all(step["completed"] for step in state["steps"])
    assert state["current_step"] == 1
    record = state["record"]
    assert record["zone"] == "Central"
    assert record["nature_of_complaint"] == "Camera offline"
    assert "id" not in record
    assert record["complaint_no"] != "COMP-1714550400000"
    assert "approval_status" not in record
