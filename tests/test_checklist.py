import json

import pytest

from fieldops.workflow.checklist import (
    DEFAULT_SCHEMA,
    EquipmentChecklist,
    default_checklist,
    load_schema,
    normalize_checklist,
)
from fieldops.workflow.errors import ChecklistError
from fieldops.workflow.steps import checklist_contract

RAW = "Raw Power Supply"
RN = "Voltage Level (R-N)"


def fill_values(checklist):
    for section in ("UPS System", "Battery"):
        for item in DEFAULT_SCHEMA.section(section).items:
            checklist.set_value(section, item, "230")


def test_default_checklist_is_complete_and_ok():
    data = default_checklist()
    assert len(data) == 6
    assert sum(len(items) for items in data.values()) == 33 == DEFAULT_SCHEMA.item_count
    assert {status for items in data.values() for status in items.values()} == {"ok"}


def test_normalize_fills_missing_items():
    data = normalize_checklist({RAW: {RN: "issue"}})
    assert data[RAW][RN] == "issue"
    assert data[RAW]["Phase Balance"] == "ok"
    assert data["Cameras"]["IR LED Status"] == "ok"


def test_normalize_rejects_unknown_entries():
    with pytest.raises(ChecklistError):
        normalize_checklist({"Generator": {"Fuel": "ok"}})
    with pytest.raises(ChecklistError):
        normalize_checklist({RAW: {"Frequency": "ok"}})
    with pytest.raises(ChecklistError):
        normalize_checklist({RAW: {RN: "broken"}})


@pytest.mark.parametrize("first", ["ok", "na"])
def test_leaving_issue_prunes_the_remark(first):
    checklist = EquipmentChecklist()
    checklist.set_status(RAW, RN, first)
    checklist.set_status(RAW, RN, "issue")
    checklist.set_remark(RAW, RN, "fluctuating")
    assert checklist.remarks[f"{RAW}-{RN}"] == "fluctuating"

    checklist.set_status(RAW, RN, "ok")
    assert f"{RAW}-{RN}" not in checklist.remarks


def test_remark_only_for_issue_items():
    checklist = EquipmentChecklist()
    with pytest.raises(ChecklistError):
        checklist.set_remark(RAW, RN, "fine")


def test_measured_values_do_not_depend_on_status():
    checklist = EquipmentChecklist()
    checklist.set_status("UPS System", "UPS Input Voltage", "na")
    checklist.set_value("UPS System", "UPS Input Voltage", 229.5)
    assert checklist.remarks["UPS System-UPS Input Voltage-value"] == 229.5
    # leaving issue keeps measured values
    checklist.set_status("UPS System", "UPS Input Voltage", "issue")
    checklist.set_status("UPS System", "UPS Input Voltage", "ok")
    assert checklist.remarks["UPS System-UPS Input Voltage-value"] == 229.5

    with pytest.raises(ChecklistError):
        checklist.set_value(RAW, RN, 230)


def test_validate_requires_remarks_and_values():
    checklist = EquipmentChecklist()
    checklist.set_status(RAW, RN, "issue")
    errors = checklist.validate()
    fields = [e["field"] for e in errors]
    assert f"equipment_remarks.{RAW}-{RN}" in fields
    assert "equipment_remarks.UPS System-UPS Input Voltage-value" in fields
    assert len([f for f in fields if f.endswith("-value")]) == 4

    checklist.set_remark(RAW, RN, "fluctuating")
    fill_values(checklist)
    assert checklist.validate() == []


def test_to_update_hands_back_full_structures():
    original = default_checklist()
    checklist = EquipmentChecklist(original, {})
    checklist.set_status(RAW, RN, "issue")
    update = checklist.to_update()
    assert original[RAW][RN] == "ok"
    assert update["checklist_data"][RAW][RN] == "issue"
    assert set(update) == {"checklist_data", "equipment_remarks"}


def test_step_contract_checks_temperature():
    checklist = EquipmentChecklist()
    fill_values(checklist)
    record = dict(checklist.to_update(), jb_temperature="warm")
    assert [e["field"] for e in checklist_contract(record, DEFAULT_SCHEMA)] == ["jb_temperature"]


def test_schema_loads_from_json(tmp_path):
    path = tmp_path / "checklist.json"
    path.write_text(json.dumps({
        "version": "2025.2",
        "sections": [
            {"name": "Solar Panel", "items": ["Panel Surface", "Output Voltage"], "value_required": True},
            {"name": "Cameras", "items": ["Image Quality"]},
        ],
    }))
    schema = load_schema(str(path))
    assert schema.version == "2025.2"
    assert schema.item_count == 3
    assert default_checklist(schema) == {
        "Solar Panel": {"Panel Surface": "ok", "Output Voltage": "ok"},
        "Cameras": {"Image Quality": "ok"},
    }
    errors = EquipmentChecklist(schema=schema).validate()
    assert len(errors) == 2


def test_schema_rejects_duplicate_sections(tmp_path):
    path = tmp_path / "checklist.json"
    path.write_text(json.dumps({"sections": [{"name": "A", "items": ["x"]}, {"name": "A", "items": ["y"]}]}))
    with pytest.raises(ChecklistError):
        load_schema(str(path))
