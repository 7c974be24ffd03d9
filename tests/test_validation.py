from datetime import date

from fieldops.workflow.steps import STEPS, required_superset, validate_step
from fieldops.workflow.validation import is_present, validate_fields, validate_optional_formats


def fields(errors):
    return [e["field"] for e in errors]


def test_presence_trims_strings():
    errors = validate_fields({"zone": "   ", "location": "MG Road"}, ["zone", "location"])
    assert errors == [{"field": "zone", "message": "ZONE is required"}]


def test_zero_is_present():
    assert is_present(0)
    assert is_present(0.0)
    assert not is_present("")
    assert not is_present([])
    assert not is_present(None)


def test_missing_date_falls_back_to_today_without_recording():
    record = {}
    assert validate_fields(record, ["date"], today=date(2024, 5, 1)) == []
    assert "date" not in record


def test_coordinate_ranges():
    errors = validate_fields({"latitude": 91, "longitude": -180.5}, ["latitude", "longitude"])
    assert errors == [
        {"field": "latitude", "message": "Invalid latitude value"},
        {"field": "longitude", "message": "Invalid longitude value"},
    ]
    assert validate_fields({"latitude": -90, "longitude": 180}, ["latitude", "longitude"]) == []


def test_phone_needs_exactly_ten_digits():
    assert validate_fields({"tech_mobile": "+91 98765-43210"}, ["tech_mobile"])[0]["message"] == "Mobile number must be 10 digits"
    assert validate_fields({"tech_mobile": "98765 43210"}, ["tech_mobile"]) == []
    assert validate_fields({"tech_mobile": "98765"}, ["tech_mobile"])[0]["message"] == "Mobile number must be 10 digits"


def test_complaint_number_min_length():
    assert fields(validate_fields({"complaint_no": "AB"}, ["complaint_no"])) == ["complaint_no"]
    assert validate_fields({"complaint_no": "ABC"}, ["complaint_no"]) == []


def test_optional_temperature_must_be_numeric():
    assert validate_optional_formats({"jb_temperature": "hot"}, ["jb_temperature"])[0]["field"] == "jb_temperature"
    assert validate_optional_formats({"jb_temperature": "35.5"}, ["jb_temperature"]) == []
    assert validate_optional_formats({}, ["jb_temperature"]) == []


def test_errors_follow_required_field_order():
    step = STEPS[0]
    errors = validate_step(step, {"complaint_no": "COMP-1"}, today=date(2024, 5, 1))
    assert fields(errors) == ["complaint_type", "project_phase", "system_type", "zone"]


def test_required_superset_covers_every_step():
    superset = required_superset()
    assert superset[:2] == ("complaint_no", "complaint_type")
    for step in STEPS:
        assert set(step.required_fields) <= set(superset)
    assert len(superset) == len(set(superset))
