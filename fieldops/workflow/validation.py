"""
Step validation rules.

Rules are evaluated against the latest accumulated record. The output is an
ordered list of ``{"field", "message"}`` dicts; an empty list means valid.
Validation never mutates the record.
"""
import re
from datetime import date
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

PHONE_FIELDS = ("tech_mobile", "tl_mobile")
NUMERIC_FIELDS = ("jb_temperature",)

FieldError = Dict[str, str]
Rule = Callable[[str, Any], Optional[str]]


def label_for(field: str) -> str:
    return field.replace("_", " ").upper()


def is_present(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return value.strip() != ""
    if isinstance(value, (list, tuple, dict, set)):
        return len(value) > 0
    return True


def _as_float(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _range_rule(low: float, high: float, message: str) -> Rule:
    def _check(field: str, value: Any) -> Optional[str]:
        number = _as_float(value)
        if number is None or number != number or number < low or number > high:
            return message
        return None
    return _check


def _min_length_rule(length: int, message: str) -> Rule:
    def _check(field: str, value: Any) -> Optional[str]:
        if isinstance(value, str) and len(value.strip()) < length:
            return message
        return None
    return _check


def _phone_rule(field: str, value: Any) -> Optional[str]:
    digits = re.sub(r"\D", "", str(value))
    if len(digits) != 10:
        return "Mobile number must be 10 digits"
    return None


def _numeric_rule(field: str, value: Any) -> Optional[str]:
    if _as_float(value) is None:
        return f"{label_for(field)} must be a number"
    return None


FORMAT_RULES: Dict[str, Rule] = {
    "latitude": _range_rule(-90, 90, "Invalid latitude value"),
    "longitude": _range_rule(-180, 180, "Invalid longitude value"),
    "complaint_no": _min_length_rule(3, "Complaint number must be at least 3 characters"),
    "jb_temperature": _numeric_rule,
}
for _f in PHONE_FIELDS:
    FORMAT_RULES[_f] = _phone_rule


def resolve_value(record: Mapping[str, Any], field: str, today: Optional[date] = None) -> Any:
    """Value used for validation. A missing ``date`` falls back to today without being recorded."""
    value = record.get(field)
    if field == "date" and not is_present(value):
        return (today or date.today()).isoformat()
    return value


def validate_fields(record: Mapping[str, Any], required: Iterable[str], today: Optional[date] = None) -> List[FieldError]:
    errors: List[FieldError] = []
    for field in required:
        value = resolve_value(record, field, today)
        if not is_present(value):
            errors.append({"field": field, "message": f"{label_for(field)} is required"})
            continue
        rule = FORMAT_RULES.get(field)
        if rule:
            message = rule(field, value)
            if message:
                errors.append({"field": field, "message": message})
    return errors


def validate_optional_formats(record: Mapping[str, Any], fields: Iterable[str]) -> List[FieldError]:
    """Format-check fields that are not required but were filled in."""
    errors: List[FieldError] = []
    for field in fields:
        value = record.get(field)
        if not is_present(value):
            continue
        rule = FORMAT_RULES.get(field)
        message = rule(field, value) if rule else None
        if message:
            errors.append({"field": field, "message": message})
    return errors
