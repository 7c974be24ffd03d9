import uuid
from datetime import date as date_type, datetime
from typing import Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


ChecklistStatus = Literal["ok", "issue", "na"]
ReportStatus = Literal["draft", "submitted"]
ApprovalStatus = Literal["pending", "approve", "reject"]


class ServiceReportFields(BaseModel):
    """Fields a technician may write through the wizard."""
    model_config = ConfigDict(extra="forbid")

    complaint_no: Optional[str] = None
    complaint_type: Optional[str] = None
    system_type: Optional[str] = None
    project_phase: Optional[str] = None
    zone: Optional[str] = None
    date: Optional[date_type] = None

    rfp_no: Optional[str] = None
    location: Optional[str] = None
    ward_no: Optional[str] = None
    ps_limits: Optional[str] = None
    pole_id: Optional[str] = None
    jb_sl_no: Optional[str] = None
    location_latitude: Optional[float] = None
    location_longitude: Optional[float] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    before_image_url: Optional[str] = None
    after_image_url: Optional[str] = None
    ups_input_image_url: Optional[str] = None
    ups_output_image_url: Optional[str] = None
    thermistor_image_url: Optional[str] = None
    raw_power_supply_images: Optional[List[str]] = None

    checklist_data: Optional[Dict[str, Dict[str, ChecklistStatus]]] = None
    equipment_remarks: Optional[Dict[str, Union[str, float]]] = None
    jb_temperature: Optional[float] = None

    nature_of_complaint: Optional[str] = None
    field_team_remarks: Optional[str] = None
    customer_feedback: Optional[str] = None

    tech_engineer: Optional[str] = None
    tech_mobile: Optional[str] = None
    tech_signature: Optional[str] = None


class ServiceReportRecord(ServiceReportFields):
    """The full persisted shape. Unknown keys are rejected."""

    id: Optional[uuid.UUID] = None

    tl_name: Optional[str] = None
    tl_mobile: Optional[str] = None
    tl_signature: Optional[str] = None
    approval_status: ApprovalStatus = "pending"
    rejection_remarks: Optional[str] = None
    approval_notes: Optional[str] = None
    approved_at: Optional[datetime] = None
    approved_by: Optional[uuid.UUID] = None

    status: ReportStatus = "draft"
    technician_id: Optional[uuid.UUID] = None
    team_leader_id: Optional[uuid.UUID] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class FieldErrorOut(BaseModel):
    field: str
    message: str


class PositionIn(BaseModel):
    latitude: float
    longitude: float
    accuracy_m: Optional[float] = None


class WizardStartRequest(BaseModel):
    draft_id: Optional[uuid.UUID] = None
    clone_id: Optional[uuid.UUID] = None
    position: Optional[PositionIn] = None


class FieldsUpdateRequest(BaseModel):
    fields: ServiceReportFields


class LocationSelectRequest(BaseModel):
    rfp_no: str = Field(min_length=1)


class ChecklistEntryRequest(BaseModel):
    section: str
    item: str
    status: Optional[ChecklistStatus] = None
    remark: Optional[str] = None
    value: Optional[Union[float, str]] = None


class StepOut(BaseModel):
    id: int
    name: str
    required_fields: List[str]
    completed: bool


class WizardStateOut(BaseModel):
    session_id: str
    current_step: int
    steps: List[StepOut]
    progress_pct: int
    record: dict
    errors: List[FieldErrorOut] = []
    warnings: List[str] = []
    distance_from_site_m: Optional[float] = None


class ReportSummaryOut(BaseModel):
    id: uuid.UUID
    complaint_no: str
    status: str
    approval_status: str
    location: Optional[str] = None
    technician_id: Optional[uuid.UUID] = None
    team_leader_id: Optional[uuid.UUID] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True
