"""
Approval gate.

A reviewer decides on a submitted report. Only the approval block is written;
technician-authored fields are never touched.
"""
from typing import Any, Dict, List

import structlog

from ..models.models import User
from ..schemas.approvals import ApprovalDecisionRequest
from ..services.audit import compute_diff, record_audit
from ..services.records import RecordNotFound, RecordStore
from ..services.time_rules import utc_now
from .errors import ApprovalStateError, StepValidationError
from .validation import FieldError, is_present, validate_optional_formats

logger = structlog.get_logger(__name__)

TABLE = "service_reports"
DECISION_FIELDS = (
    "approval_status",
    "tl_name",
    "tl_mobile",
    "tl_signature",
    "rejection_remarks",
    "approval_notes",
    "approved_at",
    "approved_by",
)
PROFILE_MOBILE_MESSAGE = "Your profile mobile number must be 10 digits. Update your profile, then retry."


class ApprovalGate:
    def __init__(self, store: RecordStore, approver: User, source: str = "app"):
        self.store = store
        self.approver = approver
        self.source = source

    def check_decision(self, decision: ApprovalDecisionRequest) -> List[FieldError]:
        errors: List[FieldError] = []
        if decision.approval_status == "reject" and not is_present(decision.rejection_remarks):
            errors.append({"field": "rejection_remarks", "message": "Please provide rejection remarks"})
        if not is_present(decision.tl_signature):
            errors.append({"field": "tl_signature", "message": "Please provide your signature"})
        return errors

    def decide(self, report_id, decision: ApprovalDecisionRequest) -> Dict[str, Any]:
        report = self.store.get(TABLE, report_id)
        if report is None:
            raise RecordNotFound(f"{TABLE}/{report_id}")
        if report.get("status") != "submitted":
            raise ApprovalStateError("Only submitted reports can be reviewed")
        if report.get("approval_status") != "pending":
            raise ApprovalStateError(
                "Report has already been reviewed",
                approval_status=report.get("approval_status"),
            )

        errors = self.check_decision(decision)
        values = {
            "approval_status": decision.approval_status,
            "tl_name": self.approver.full_name,
            "tl_mobile": self.approver.mobile,
            "tl_signature": decision.tl_signature,
            "rejection_remarks": decision.rejection_remarks if decision.approval_status == "reject" else None,
            "approval_notes": decision.approval_notes,
            "approved_at": utc_now(),
            "approved_by": self.approver.id,
        }
        if validate_optional_formats(values, ("tl_mobile",)):
            # copied from the reviewer profile, not something the decision can correct
            errors.append({"field": "tl_mobile", "message": PROFILE_MOBILE_MESSAGE})
        if errors:
            raise StepValidationError(errors)

        self.store.update(TABLE, report_id, values)
        updated = self.store.get(TABLE, report_id)

        before = {k: report.get(k) for k in DECISION_FIELDS}
        after = {k: updated.get(k) for k in DECISION_FIELDS}
        record_audit(
            self.store.db,
            entity_type=TABLE,
            entity_id=str(report_id),
            action="APPROVE" if decision.approval_status == "approve" else "REJECT",
            actor_id=str(self.approver.id),
            actor_role=self.approver.role,
            source=self.source,
            changes_json={"before": before, "after": after, "diff": compute_diff(before, after)},
            context={"complaint_no": report.get("complaint_no")},
        )
        logger.info(
            "report_reviewed",
            report_id=str(report_id),
            decision=decision.approval_status,
            approver_id=str(self.approver.id),
        )
        return updated
