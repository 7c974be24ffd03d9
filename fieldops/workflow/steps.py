"""
Step definitions for the service report wizard.

Each step names the fields it is responsible for (its required-field contract)
and may add extra validators that inspect the whole record.
"""
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from .checklist import ChecklistSchema, DEFAULT_SCHEMA, EquipmentChecklist
from .errors import ChecklistError
from .validation import FieldError, validate_fields, validate_optional_formats

StepValidator = Callable[[Mapping[str, Any], ChecklistSchema], List[FieldError]]


@dataclass(frozen=True)
class StepDefinition:
    id: int
    name: str
    required_fields: Tuple[str, ...]
    optional_fields: Tuple[str, ...] = ()
    validators: Tuple[StepValidator, ...] = field(default_factory=tuple)

    @property
    def fields(self) -> Tuple[str, ...]:
        return self.required_fields + self.optional_fields


def checklist_contract(record: Mapping[str, Any], schema: ChecklistSchema) -> List[FieldError]:
    if not record.get("checklist_data"):
        return []
    try:
        checklist = EquipmentChecklist(record.get("checklist_data"), record.get("equipment_remarks"), schema)
    except ChecklistError as exc:
        return [{"field": "checklist_data", "message": exc.message}]
    errors = checklist.validate()
    return errors + validate_optional_formats(record, ("jb_temperature",))


STEPS: Tuple[StepDefinition, ...] = (
    StepDefinition(
        id=1,
        name="Basic Information",
        required_fields=("complaint_no", "complaint_type", "project_phase", "system_type", "date", "zone"),
    ),
    StepDefinition(
        id=2,
        name="Location Details",
        required_fields=("location", "latitude", "longitude"),
        optional_fields=("rfp_no", "ward_no", "ps_limits", "pole_id", "jb_sl_no", "location_latitude", "location_longitude"),
    ),
    StepDefinition(
        id=3,
        name="Image Upload",
        required_fields=("before_image_url", "after_image_url"),
        optional_fields=("ups_input_image_url", "ups_output_image_url", "thermistor_image_url", "raw_power_supply_images"),
    ),
    StepDefinition(
        id=4,
        name="Equipment Checklist",
        required_fields=("checklist_data",),
        optional_fields=("equipment_remarks", "jb_temperature"),
        validators=(checklist_contract,),
    ),
    StepDefinition(
        id=5,
        name="Report Content",
        required_fields=("nature_of_complaint", "field_team_remarks"),
        optional_fields=("customer_feedback",),
    ),
    StepDefinition(
        id=6,
        name="Technician Signature",
        required_fields=("tech_signature", "tech_engineer", "tech_mobile"),
    ),
)


def required_superset(steps: Tuple[StepDefinition, ...] = STEPS) -> Tuple[str, ...]:
    seen: Dict[str, None] = {}
    for step in steps:
        for f in step.required_fields:
            seen.setdefault(f, None)
    return tuple(seen)


def validate_step(
    step: StepDefinition,
    record: Mapping[str, Any],
    schema: ChecklistSchema = DEFAULT_SCHEMA,
    today: Optional[date] = None,
) -> List[FieldError]:
    errors = validate_fields(record, step.required_fields, today)
    for validator in step.validators:
        errors.extend(validator(record, schema))
    return errors


def validate_all_steps(
    record: Mapping[str, Any],
    steps: Tuple[StepDefinition, ...] = STEPS,
    schema: ChecklistSchema = DEFAULT_SCHEMA,
    today: Optional[date] = None,
) -> List[FieldError]:
    errors: List[FieldError] = []
    for step in steps:
        errors.extend(validate_step(step, record, schema, today))
    return errors
