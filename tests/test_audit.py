import uuid

from fieldops.services.audit import compute_diff, create_audit_log, get_audit_logs, verify_audit_log


def test_entries_verify_until_tampered(db, world):
    report_id = uuid.uuid4()
    entry = create_audit_log(
        db,
        entity_type="service_reports",
        entity_id=str(report_id),
        action="CREATE",
        actor_id=str(world.tech.id),
        actor_role="technician",
        source="app",
        changes_json={"after": {"complaint_no": "COMP-1", "id": report_id}},
        context={"status": "submitted"},
    )
    assert entry.changes_json["after"]["id"] == str(report_id)
    assert verify_audit_log(entry)

    entry.context = {"status": "draft"}
    db.commit()
    assert not verify_audit_log(entry)


def test_logs_are_filtered_by_entity(db, world):
    first, second = uuid.uuid4(), uuid.uuid4()
    for entity_id in (first, second, first):
        create_audit_log(db, entity_type="service_reports", entity_id=str(entity_id), action="CREATE")
    assert len(get_audit_logs(db, entity_type="service_reports", entity_id=str(first))) == 2
    assert len(get_audit_logs(db, entity_type="service_reports")) == 3


def test_compute_diff_lists_changed_fields_only():
    before = {"approval_status": "pending", "tl_name": None, "status": "submitted"}
    after = {"approval_status": "reject", "tl_name": "Tarun Leader", "status": "submitted"}
    assert compute_diff(before, after) == {
        "approval_status": {"before": "pending", "after": "reject"},
        "tl_name": {"before": None, "after": "Tarun Leader"},
    }
