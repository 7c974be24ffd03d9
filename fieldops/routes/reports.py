import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import Response
from sqlalchemy import or_
from sqlalchemy.orm import Session

from ..auth.security import get_current_user
from ..db import get_db
from ..document_creator.pdf_builder import build_report_pdf
from ..models.models import ServiceReport, User
from ..schemas.reports import ReportSummaryOut, ServiceReportRecord
from ..services.audit import get_audit_logs, record_audit, verify_audit_log
from ..services.records import RecordStore, row_to_dict
from ..storage.factory import get_storage
from ..storage.provider import StorageProvider
from ..workflow.checklist import configured_schema

router = APIRouter(prefix="/reports", tags=["reports"])


def _can_view(user: User, report: ServiceReport) -> bool:
    role = (user.role or "").lower()
    if role in {"admin", "manager"}:
        return True
    if report.technician_id == user.id:
        return True
    return role == "team_leader" and report.status == "submitted" and report.team_leader_id in (None, user.id)


def _get_report(db: Session, report_id: uuid.UUID, me: User) -> ServiceReport:
    report = db.get(ServiceReport, report_id)
    if report is None or not _can_view(me, report):
        raise HTTPException(status_code=404, detail="Report not found")
    return report


@router.get("", response_model=List[ReportSummaryOut])
def list_reports(
    status: Optional[str] = Query(default=None),
    approval_status: Optional[str] = Query(default=None),
    limit: int = Query(default=50, le=200),
    offset: int = 0,
    db: Session = Depends(get_db),
    me: User = Depends(get_current_user),
):
    q = db.query(ServiceReport)
    role = (me.role or "").lower()
    if role == "team_leader":
        q = q.filter(or_(
            ServiceReport.technician_id == me.id,
            (ServiceReport.status == "submitted") & ((ServiceReport.team_leader_id == me.id) | ServiceReport.team_leader_id.is_(None)),
        ))
    elif role not in {"admin", "manager"}:
        q = q.filter(ServiceReport.technician_id == me.id)
    if status:
        q = q.filter(ServiceReport.status == status)
    if approval_status:
        q = q.filter(ServiceReport.approval_status == approval_status)
    return q.order_by(ServiceReport.created_at.desc()).offset(offset).limit(limit).all()


@router.get("/drafts", response_model=List[ReportSummaryOut])
def list_drafts(db: Session = Depends(get_db), me: User = Depends(get_current_user)):
    return RecordStore(db).query(
        "service_reports",
        {"technician_id": me.id, "status": "draft"},
        order_by="updated_at",
    )


@router.delete("/drafts/{report_id}")
def delete_draft(report_id: uuid.UUID, db: Session = Depends(get_db), me: User = Depends(get_current_user)):
    report = db.get(ServiceReport, report_id)
    if report is None or report.technician_id != me.id:
        raise HTTPException(status_code=404, detail="Draft not found")
    if report.status != "draft":
        raise HTTPException(status_code=400, detail="Only drafts can be deleted")
    before = row_to_dict(report)
    RecordStore(db).delete("service_reports", report_id)
    record_audit(
        db,
        entity_type="service_reports",
        entity_id=str(report_id),
        action="DELETE",
        actor_id=str(me.id),
        actor_role=me.role,
        source="app",
        changes_json={"before": before},
        context={"complaint_no": before.get("complaint_no"), "status": "draft"},
    )
    return {"status": "ok"}


@router.get("/{report_id}", response_model=ServiceReportRecord)
def get_report(report_id: uuid.UUID, db: Session = Depends(get_db), me: User = Depends(get_current_user)):
    return row_to_dict(_get_report(db, report_id, me))


@router.get("/{report_id}/history")
def report_history(report_id: uuid.UUID, db: Session = Depends(get_db), me: User = Depends(get_current_user)):
    _get_report(db, report_id, me)
    logs = get_audit_logs(db, entity_type="service_reports", entity_id=str(report_id))
    return [
        {
            "id": str(log.id),
            "action": log.action,
            "actor_id": str(log.actor_id) if log.actor_id else None,
            "actor_role": log.actor_role,
            "timestamp_utc": log.timestamp_utc.isoformat() if log.timestamp_utc else None,
            "context": log.context,
            "changes": log.changes_json,
            "verified": verify_audit_log(log),
        }
        for log in logs
    ]


@router.get("/{report_id}/pdf")
def report_pdf(
    report_id: uuid.UUID,
    db: Session = Depends(get_db),
    me: User = Depends(get_current_user),
    storage: StorageProvider = Depends(get_storage),
):
    report = row_to_dict(_get_report(db, report_id, me))
    pdf = build_report_pdf(report, storage, configured_schema())
    filename = f"{report.get('complaint_no') or report_id}.pdf"
    return Response(
        content=pdf,
        media_type="application/pdf",
        headers={"Content-Disposition": f'inline; filename="{filename}"'},
    )
