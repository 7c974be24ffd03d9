"""
Equipment checklist model.

The checklist is a fixed taxonomy of sections and inspection items, described by
a versioned schema that can be loaded from JSON. Each item carries a tri-state
status (ok/issue/na). Issues need a remark, and sections flagged
``value_required`` need a measured value for every item regardless of status.

Remarks and values share the flat ``equipment_remarks`` mapping:
``"<section>-<item>"`` holds the issue remark and ``"<section>-<item>-value"``
the measured value.
"""
import copy
import json
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import structlog

from ..config import settings
from .errors import ChecklistError

logger = structlog.get_logger(__name__)

STATUSES = ("ok", "issue", "na")
DEFAULT_STATUS = "ok"


@dataclass(frozen=True)
class ChecklistSection:
    name: str
    items: Tuple[str, ...]
    value_required: bool = False
    has_temperature: bool = False


@dataclass(frozen=True)
class ChecklistSchema:
    version: str
    sections: Tuple[ChecklistSection, ...] = field(default_factory=tuple)

    def section(self, name: str) -> ChecklistSection:
        for s in self.sections:
            if s.name == name:
                return s
        raise ChecklistError(f"Unknown checklist section: {name}", section=name)

    def require_item(self, section: str, item: str) -> ChecklistSection:
        s = self.section(section)
        if item not in s.items:
            raise ChecklistError(f"Unknown checklist item: {section} / {item}", section=section, item=item)
        return s

    @property
    def item_count(self) -> int:
        return sum(len(s.items) for s in self.sections)


DEFAULT_SCHEMA = ChecklistSchema(
    version="2024.1",
    sections=(
        ChecklistSection(
            name="Junction Box",
            items=(
                "Junction Box Condition",
                "Lock and Key Available",
                "Door Opening/Closing",
                "Earthing Connection",
                "Water Seepage",
                "Ventilation",
                "Internal Wiring",
                "Label/Marking",
                "Overall Cleanliness",
            ),
            has_temperature=True,
        ),
        ChecklistSection(
            name="Raw Power Supply",
            items=(
                "Voltage Level (R-N)",
                "Voltage Level (Y-N)",
                "Voltage Level (B-N)",
                "Neutral Connection",
                "Phase Balance",
            ),
        ),
        ChecklistSection(
            name="UPS System",
            items=("UPS Input Voltage", "UPS Output Voltage"),
            value_required=True,
        ),
        ChecklistSection(
            name="Battery",
            items=("Battery Condition", "Battery Voltage"),
            value_required=True,
        ),
        ChecklistSection(
            name="Network Switch",
            items=("Switch Power Status", "Port Status", "LED Indicators", "Configuration"),
        ),
        ChecklistSection(
            name="Cameras",
            items=(
                "Camera Power Status",
                "Image Quality",
                "Pan/Tilt Operation",
                "Zoom Function",
                "Night Vision",
                "Housing Condition",
                "Lens Cleanliness",
                "Cable Connection",
                "Mounting Stability",
                "IR LED Status",
                "Overall Performance",
            ),
        ),
    ),
)


def schema_from_dict(data: Dict[str, Any]) -> ChecklistSchema:
    """
    Build a schema from its JSON form:
    {"version": "...", "sections": [{"name": ..., "items": [...], "value_required": bool, "has_temperature": bool}]}
    """
    sections = []
    seen = set()
    for raw in data.get("sections") or []:
        name = str(raw.get("name") or "").strip()
        items = tuple(str(i) for i in (raw.get("items") or []))
        if not name or not items:
            raise ChecklistError("Checklist sections need a name and at least one item")
        if name in seen:
            raise ChecklistError(f"Duplicate checklist section: {name}")
        seen.add(name)
        sections.append(ChecklistSection(
            name=name,
            items=items,
            value_required=bool(raw.get("value_required", False)),
            has_temperature=bool(raw.get("has_temperature", False)),
        ))
    if not sections:
        raise ChecklistError("Checklist schema has no sections")
    return ChecklistSchema(version=str(data.get("version") or "custom"), sections=tuple(sections))


def load_schema(path: Optional[str] = None) -> ChecklistSchema:
    if not path:
        return DEFAULT_SCHEMA
    schema = schema_from_dict(json.loads(Path(path).read_text(encoding="utf-8")))
    logger.info("checklist_schema_loaded", path=path, version=schema.version, items=schema.item_count)
    return schema


def remark_key(section: str, item: str) -> str:
    return f"{section}-{item}"


def value_key(section: str, item: str) -> str:
    return f"{section}-{item}-value"


def default_checklist(schema: ChecklistSchema = DEFAULT_SCHEMA) -> Dict[str, Dict[str, str]]:
    return {s.name: {item: DEFAULT_STATUS for item in s.items} for s in schema.sections}


def normalize_checklist(data: Optional[Dict[str, Dict[str, str]]], schema: ChecklistSchema = DEFAULT_SCHEMA) -> Dict[str, Dict[str, str]]:
    """
    Return a checklist holding every section/item of the schema. Missing entries
    default to ok. Unknown sections/items and invalid statuses are rejected.
    """
    data = data or {}
    known = {s.name for s in schema.sections}
    unknown = [name for name in data if name not in known]
    if unknown:
        raise ChecklistError(f"Unknown checklist section: {unknown[0]}", section=unknown[0])
    out = default_checklist(schema)
    for section_name, items in data.items():
        section = schema.section(section_name)
        for item, status in (items or {}).items():
            if item not in section.items:
                raise ChecklistError(f"Unknown checklist item: {section_name} / {item}", section=section_name, item=item)
            if status not in STATUSES:
                raise ChecklistError(f"Invalid status '{status}' for {section_name} / {item}", section=section_name, item=item)
            out[section_name][item] = status
    return out


class EquipmentChecklist:
    """
    Working copy of a report's checklist. Mutations never touch the input
    mappings; ``to_update()`` hands the complete nested structures back to the
    accumulator, which does not deep-merge.
    """

    def __init__(
        self,
        checklist_data: Optional[Dict[str, Dict[str, str]]] = None,
        equipment_remarks: Optional[Dict[str, Any]] = None,
        schema: ChecklistSchema = DEFAULT_SCHEMA,
    ):
        self.schema = schema
        self.data = normalize_checklist(copy.deepcopy(checklist_data), schema)
        self.remarks: Dict[str, Any] = dict(equipment_remarks or {})

    def status(self, section: str, item: str) -> str:
        self.schema.require_item(section, item)
        return self.data[section][item]

    def set_status(self, section: str, item: str, status: str) -> None:
        self.schema.require_item(section, item)
        if status not in STATUSES:
            raise ChecklistError(f"Invalid status '{status}'", section=section, item=item)
        self.data[section][item] = status
        if status != "issue":
            # stale issue remarks are pruned, measured values are kept
            self.remarks.pop(remark_key(section, item), None)

    def set_remark(self, section: str, item: str, remark: str) -> None:
        self.schema.require_item(section, item)
        if self.data[section][item] != "issue":
            raise ChecklistError("Remarks can only be recorded for items marked as issue", section=section, item=item)
        text = (remark or "").strip()
        if text:
            self.remarks[remark_key(section, item)] = text
        else:
            self.remarks.pop(remark_key(section, item), None)

    def set_value(self, section: str, item: str, value: Any) -> None:
        s = self.schema.require_item(section, item)
        if not s.value_required:
            raise ChecklistError(f"Section '{section}' does not record measured values", section=section, item=item)
        if value is None or (isinstance(value, str) and not value.strip()):
            self.remarks.pop(value_key(section, item), None)
        else:
            self.remarks[value_key(section, item)] = value

    def issues(self) -> List[Tuple[str, str]]:
        return [(s, i) for s, items in self.data.items() for i, st in items.items() if st == "issue"]

    def validate(self) -> List[Dict[str, str]]:
        errors = []
        for section in self.schema.sections:
            for item in section.items:
                if self.data[section.name][item] == "issue" and not str(self.remarks.get(remark_key(section.name, item), "")).strip():
                    errors.append({
                        "field": f"equipment_remarks.{remark_key(section.name, item)}",
                        "message": f"Remark is required for {section.name} / {item} marked as issue",
                    })
                if section.value_required:
                    value = self.remarks.get(value_key(section.name, item))
                    if value is None or (isinstance(value, str) and not value.strip()):
                        errors.append({
                            "field": f"equipment_remarks.{value_key(section.name, item)}",
                            "message": f"Measured value is required for {section.name} / {item}",
                        })
        return errors

    def to_update(self) -> Dict[str, Any]:
        return {"checklist_data": copy.deepcopy(self.data), "equipment_remarks": dict(self.remarks)}


@lru_cache(maxsize=1)
def configured_schema() -> ChecklistSchema:
    return load_schema(settings.checklist_schema_path)
