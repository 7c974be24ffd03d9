from typing import Optional

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile
from sqlalchemy.orm import Session

from ..auth.security import get_current_user
from ..config import settings
from ..db import get_db
from ..models.models import User
from ..schemas.reports import (
    ChecklistEntryRequest,
    FieldsUpdateRequest,
    LocationSelectRequest,
    PositionIn,
    ServiceReportRecord,
    WizardStartRequest,
    WizardStateOut,
)
from ..services.permissions import can_author_reports, department_has_form
from ..services.records import RecordNotFound, RecordStore
from ..storage.factory import get_storage
from ..storage.provider import StorageProvider
from ..workflow.checklist import ChecklistSchema, EquipmentChecklist, configured_schema, normalize_checklist
from ..workflow.errors import FormAccessDenied, ImageLimitError, StepValidationError
from ..workflow.geolocation import ReportedPosition
from ..workflow.lifecycle import LifecycleManager, clone_seed, draft_seed, load_draft
from ..workflow.locations import apply_location, find_location
from ..workflow.session import WizardSession, WizardSessionStore, get_session_store
from ..workflow.uploads import MULTI_IMAGE_FIELDS, remove_image, upload_image

router = APIRouter(prefix="/wizard/sessions", tags=["wizard"])


def get_checklist_schema() -> ChecklistSchema:
    return configured_schema()


def _session(session_id: str, user: User, store: WizardSessionStore) -> WizardSession:
    return store.get(session_id, user.id)


@router.post("", response_model=WizardStateOut)
async def start_session(
    req: WizardStartRequest,
    db: Session = Depends(get_db),
    me: User = Depends(get_current_user),
    store: WizardSessionStore = Depends(get_session_store),
    schema: ChecklistSchema = Depends(get_checklist_schema),
):
    if not can_author_reports(me):
        raise HTTPException(status_code=403, detail="Forbidden")
    if settings.require_department_form and not department_has_form(db, me.department_id):
        raise FormAccessDenied(str(me.department_id) if me.department_id else None, settings.report_form_name)

    records = RecordStore(db)
    seed = {}
    if req.draft_id:
        try:
            seed = draft_seed(load_draft(records, req.draft_id, me))
        except RecordNotFound:
            raise HTTPException(status_code=404, detail="Draft not found")
    elif req.clone_id:
        source = records.get("service_reports", req.clone_id)
        if source is None or source.get("technician_id") != me.id:
            raise HTTPException(status_code=404, detail="Report not found")
        seed = clone_seed(source)

    session = store.create(me.id, seed, schema)
    if req.clone_id:
        # a clone starts from a finished report, every step already passed once
        session.sequencer.mark_completed(s.id for s in session.sequencer.steps)
    await session.mount(me, position=req.position)
    return session.state()


@router.get("/{session_id}", response_model=WizardStateOut)
def get_session(
    session_id: str,
    me: User = Depends(get_current_user),
    store: WizardSessionStore = Depends(get_session_store),
):
    return _session(session_id, me, store).state()


@router.patch("/{session_id}/fields", response_model=WizardStateOut)
def update_fields(
    session_id: str,
    req: FieldsUpdateRequest,
    me: User = Depends(get_current_user),
    store: WizardSessionStore = Depends(get_session_store),
):
    session = _session(session_id, me, store)
    partial = req.fields.model_dump(exclude_unset=True)
    if "checklist_data" in partial:
        partial["checklist_data"] = normalize_checklist(partial["checklist_data"], session.schema)
    for field in MULTI_IMAGE_FIELDS:
        if len(partial.get(field) or []) > settings.max_raw_power_images:
            raise ImageLimitError(field, settings.max_raw_power_images)
    session.accumulator.update(partial)
    return session.state()


@router.post("/{session_id}/position", response_model=WizardStateOut)
async def report_position(
    session_id: str,
    req: PositionIn,
    me: User = Depends(get_current_user),
    store: WizardSessionStore = Depends(get_session_store),
):
    session = _session(session_id, me, store)
    await session.request_position(ReportedPosition(req.latitude, req.longitude, req.accuracy_m))
    return session.state()


@router.post("/{session_id}/location", response_model=WizardStateOut)
def select_location(
    session_id: str,
    req: LocationSelectRequest,
    db: Session = Depends(get_db),
    me: User = Depends(get_current_user),
    store: WizardSessionStore = Depends(get_session_store),
):
    session = _session(session_id, me, store)
    location = find_location(RecordStore(db), req.rfp_no)
    if location is None:
        raise HTTPException(status_code=404, detail="Location not found")
    apply_location(session.accumulator, location)
    return session.state()


@router.put("/{session_id}/checklist", response_model=WizardStateOut)
def update_checklist(
    session_id: str,
    req: ChecklistEntryRequest,
    me: User = Depends(get_current_user),
    store: WizardSessionStore = Depends(get_session_store),
):
    session = _session(session_id, me, store)
    acc = session.accumulator
    checklist = EquipmentChecklist(acc.get("checklist_data"), acc.get("equipment_remarks"), session.schema)
    if req.status is not None:
        checklist.set_status(req.section, req.item, req.status)
    if req.remark is not None:
        checklist.set_remark(req.section, req.item, req.remark)
    if req.value is not None:
        checklist.set_value(req.section, req.item, req.value)
    acc.update(checklist.to_update())
    return session.state()


@router.post("/{session_id}/next", response_model=WizardStateOut)
async def next_step(
    session_id: str,
    me: User = Depends(get_current_user),
    store: WizardSessionStore = Depends(get_session_store),
):
    session = _session(session_id, me, store)
    errors = await session.sequencer.go_next()
    if errors:
        raise StepValidationError(errors)
    return session.state()


@router.post("/{session_id}/previous", response_model=WizardStateOut)
def previous_step(
    session_id: str,
    me: User = Depends(get_current_user),
    store: WizardSessionStore = Depends(get_session_store),
):
    session = _session(session_id, me, store)
    session.sequencer.go_previous()
    return session.state()


@router.post("/{session_id}/images/{field}", response_model=WizardStateOut)
async def upload_step_image(
    session_id: str,
    field: str,
    file: UploadFile = File(...),
    me: User = Depends(get_current_user),
    store: WizardSessionStore = Depends(get_session_store),
    storage: StorageProvider = Depends(get_storage),
):
    session = _session(session_id, me, store)
    data = await file.read()
    result = await upload_image(session.accumulator, storage, field, data, file.content_type, file.filename)
    session.add_warning(result.warning)
    if not result.watermarked:
        session.unwatermarked.add(result.url)
    return session.state()


@router.delete("/{session_id}/images/{field}", response_model=WizardStateOut)
def delete_step_image(
    session_id: str,
    field: str,
    index: Optional[int] = Query(default=None),
    me: User = Depends(get_current_user),
    store: WizardSessionStore = Depends(get_session_store),
):
    session = _session(session_id, me, store)
    remove_image(session.accumulator, field, index)
    return session.state()


@router.post("/{session_id}/draft", response_model=WizardStateOut)
async def save_draft(
    session_id: str,
    db: Session = Depends(get_db),
    me: User = Depends(get_current_user),
    store: WizardSessionStore = Depends(get_session_store),
):
    session = _session(session_id, me, store)
    manager = LifecycleManager(RecordStore(db), me, schema=session.schema)
    await manager.save_draft(session.accumulator)
    return session.state()


@router.post("/{session_id}/submit", response_model=ServiceReportRecord)
async def submit_report(
    session_id: str,
    db: Session = Depends(get_db),
    me: User = Depends(get_current_user),
    store: WizardSessionStore = Depends(get_session_store),
):
    session = _session(session_id, me, store)
    manager = LifecycleManager(RecordStore(db), me, schema=session.schema)
    report = await manager.submit(session.accumulator, session.unwatermarked)
    store.discard(session_id)
    return report


@router.delete("/{session_id}")
def close_session(
    session_id: str,
    me: User = Depends(get_current_user),
    store: WizardSessionStore = Depends(get_session_store),
):
    _session(session_id, me, store)
    store.discard(session_id)
    return {"status": "ok"}
