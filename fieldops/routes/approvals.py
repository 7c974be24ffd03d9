import uuid
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import or_
from sqlalchemy.orm import Session

from ..auth.security import require_roles
from ..db import get_db
from ..models.models import ServiceReport, User
from ..schemas.approvals import ApprovalDecisionRequest
from ..schemas.reports import ReportSummaryOut, ServiceReportRecord
from ..services.permissions import can_review_report
from ..services.records import RecordStore
from ..workflow.approval import ApprovalGate

router = APIRouter(prefix="/approvals", tags=["approvals"])


@router.get("/pending", response_model=List[ReportSummaryOut])
def pending_reports(
    db: Session = Depends(get_db),
    me: User = Depends(require_roles("team_leader", "manager")),
):
    q = db.query(ServiceReport).filter(
        ServiceReport.status == "submitted",
        ServiceReport.approval_status == "pending",
    )
    if (me.role or "").lower() == "team_leader":
        q = q.filter(or_(ServiceReport.team_leader_id == me.id, ServiceReport.team_leader_id.is_(None)))
    return q.order_by(ServiceReport.created_at.asc()).all()


@router.post("/{report_id}", response_model=ServiceReportRecord)
def decide(
    report_id: uuid.UUID,
    req: ApprovalDecisionRequest,
    db: Session = Depends(get_db),
    me: User = Depends(require_roles("team_leader", "manager")),
):
    report = db.get(ServiceReport, report_id)
    if report is None:
        raise HTTPException(status_code=404, detail="Report not found")
    if not can_review_report(me, report):
        raise HTTPException(status_code=403, detail="Forbidden")
    return ApprovalGate(RecordStore(db), me).decide(report_id, req)
