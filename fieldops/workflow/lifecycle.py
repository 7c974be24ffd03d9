"""
Draft/submission lifecycle.

Owns the report identifier and status. Drafts get ``DRAFT-<technician>-<ms>``
once and keep it across saves; every submit mints a fresh ``COMP-<ms>``.
The accumulator is only told about the new id/identifier/status after the
storage call succeeded, so a failed persist can simply be retried.
"""
from datetime import date
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

import structlog
from pydantic import ValidationError

from ..config import settings
from ..models.models import User
from ..schemas.reports import ServiceReportRecord
from ..services.audit import record_audit
from ..services.records import RecordNotFound, RecordStore
from ..services.time_rules import MillisClock, local_today, millis_clock
from .accumulator import FieldAccumulator
from .checklist import ChecklistSchema, DEFAULT_SCHEMA
from .errors import StepValidationError, UnknownFieldError
from .steps import STEPS, validate_all_steps
from .uploads import IMAGE_FIELDS
from .validation import FieldError, is_present, label_for

logger = structlog.get_logger(__name__)

TABLE = "service_reports"
DRAFT_PREFIX = "DRAFT-"
SUBMITTED_PREFIX = "COMP-"

APPROVAL_FIELDS = (
    "tl_name",
    "tl_mobile",
    "tl_signature",
    "rejection_remarks",
    "approval_notes",
    "approved_at",
    "approved_by",
)
# storage-owned or actor-derived, never taken from the working record
SYSTEM_FIELDS = ("id", "created_at", "updated_at", "technician_id", "team_leader_id", "status", "approval_status")
CLONE_STRIP = SYSTEM_FIELDS + APPROVAL_FIELDS + ("complaint_no", "tech_signature")


def is_draft_identifier(complaint_no: Optional[str]) -> bool:
    return bool(complaint_no) and complaint_no.startswith(DRAFT_PREFIX)


def clone_seed(record: Mapping[str, Any]) -> Dict[str, Any]:
    """A cloned report behaves as new: no id, no signatures, no approval or lifecycle state."""
    return {k: v for k, v in record.items() if k not in CLONE_STRIP and v is not None}


def draft_seed(record: Mapping[str, Any]) -> Dict[str, Any]:
    seed = {k: v for k, v in record.items() if k not in APPROVAL_FIELDS and v is not None}
    seed.pop("created_at", None)
    seed.pop("updated_at", None)
    return seed


def load_draft(store: RecordStore, draft_id, owner: User) -> Dict[str, Any]:
    record = store.get(TABLE, draft_id)
    if record is None or record.get("status") != "draft" or record.get("technician_id") != owner.id:
        raise RecordNotFound(f"{TABLE}/{draft_id}")
    return record


def _pydantic_errors(exc: ValidationError) -> List[FieldError]:
    out = []
    for err in exc.errors():
        field = ".".join(str(p) for p in err.get("loc", ()))
        out.append({"field": field, "message": f"{label_for(field)}: {err.get('msg')}"})
    return out


class LifecycleManager:
    def __init__(
        self,
        store: RecordStore,
        actor: User,
        schema: ChecklistSchema = DEFAULT_SCHEMA,
        clock: MillisClock = millis_clock,
        today: Optional[Callable[[], date]] = None,
        source: str = "app",
    ):
        self.store = store
        self.actor = actor
        self.schema = schema
        self.clock = clock
        self._today = today or local_today
        self.source = source

    def draft_identifier(self) -> str:
        return f"{DRAFT_PREFIX}{self.actor.id}-{self.clock.next()}"

    def submitted_identifier(self) -> str:
        return f"{SUBMITTED_PREFIX}{self.clock.next()}"

    def compose(self, record: Mapping[str, Any], status: str, complaint_no: str) -> Dict[str, Any]:
        """
        Build the typed row for storage from the working record. Approval fields
        are cleared, lifecycle fields come from the actor. Unknown keys fail.
        """
        values = {k: v for k, v in record.items() if k not in SYSTEM_FIELDS and k not in APPROVAL_FIELDS}
        values.update({
            "complaint_no": complaint_no,
            "status": status,
            "approval_status": "pending",
            "technician_id": self.actor.id,
            "team_leader_id": self.actor.team_leader_id,
        })
        values.update({f: None for f in APPROVAL_FIELDS})
        try:
            row = ServiceReportRecord.model_validate(values)
        except ValidationError as exc:
            extra = [".".join(str(p) for p in e["loc"]) for e in exc.errors() if e.get("type") == "extra_forbidden"]
            if extra:
                raise UnknownFieldError(extra)
            raise StepValidationError(_pydantic_errors(exc))
        return row.model_dump(exclude={"id", "created_at", "updated_at"})

    def _persist(self, record_id, payload: Dict[str, Any]):
        if record_id:
            self.store.update(TABLE, record_id, payload)
            return record_id
        return self.store.create(TABLE, payload)

    def _audit(self, action: str, record_id, after: Mapping[str, Any], context: Dict[str, Any]) -> None:
        record_audit(
            self.store.db,
            entity_type=TABLE,
            entity_id=str(record_id),
            action=action,
            actor_id=str(self.actor.id),
            actor_role=self.actor.role,
            source=self.source,
            changes_json={"after": dict(after)},
            context=context,
        )

    async def save_draft(self, accumulator: FieldAccumulator) -> Dict[str, Any]:
        await accumulator.settle()
        record = accumulator.snapshot()
        record_id = record.get("id")
        complaint_no = record.get("complaint_no")
        if not complaint_no or (not record_id and not is_draft_identifier(complaint_no)):
            complaint_no = self.draft_identifier()

        payload = self.compose(record, "draft", complaint_no)
        new_id = self._persist(record_id, payload)
        accumulator.update({"id": new_id, "complaint_no": complaint_no, "status": "draft"}, force=True)

        saved = self.store.get(TABLE, new_id)
        if not record_id:
            self._audit("CREATE", new_id, saved, {"complaint_no": complaint_no, "status": "draft"})
        logger.info("report_draft_saved", report_id=str(new_id), complaint_no=complaint_no, created=not record_id)
        return saved

    def submission_errors(self, record: Mapping[str, Any], unwatermarked: Iterable[str] = ()) -> List[FieldError]:
        errors = validate_all_steps(record, STEPS, self.schema, self._today())
        if settings.require_gps_for_submit:
            unwatermarked = set(unwatermarked)
            for field in IMAGE_FIELDS:
                value = record.get(field)
                urls = value if isinstance(value, list) else [value]
                if any(url in unwatermarked for url in urls if url):
                    errors.append({"field": field, "message": "Image was uploaded without a GPS watermark. Capture GPS and upload it again."})
        return errors

    async def submit(self, accumulator: FieldAccumulator, unwatermarked: Iterable[str] = ()) -> Dict[str, Any]:
        """
        ``unwatermarked`` lists image URLs uploaded while no device position was
        known; they block submission only when REQUIRE_GPS_FOR_SUBMIT is on.
        """
        await accumulator.settle()
        record = accumulator.snapshot()
        errors = self.submission_errors(record, unwatermarked)
        if errors:
            logger.info("report_submit_rejected", errors=len(errors))
            raise StepValidationError(errors)

        if not is_present(record.get("date")):
            record["date"] = self._today()
        record_id = record.get("id")
        previous_status = record.get("status") or ("draft" if record_id else None)
        complaint_no = self.submitted_identifier()

        payload = self.compose(record, "submitted", complaint_no)
        new_id = self._persist(record_id, payload)
        accumulator.update({"id": new_id, "complaint_no": complaint_no, "status": "submitted"}, force=True)

        saved = self.store.get(TABLE, new_id)
        self._audit(
            "SUBMIT" if record_id else "CREATE",
            new_id,
            saved,
            {"complaint_no": complaint_no, "from_status": previous_status, "status": "submitted"},
        )
        logger.info("report_submitted", report_id=str(new_id), complaint_no=complaint_no)
        return saved
