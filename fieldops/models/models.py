import uuid
from datetime import datetime, date as date_type
from typing import Optional

from sqlalchemy import (
    String,
    DateTime,
    Date,
    Boolean,
    ForeignKey,
    Integer,
    Float,
    JSON,
    UniqueConstraint,
    Text,
    Index,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship, Mapped, mapped_column

from ..db import Base


def uuid_pk() -> Mapped[uuid.UUID]:
    return mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)


class Department(Base):
    __tablename__ = "departments"

    id: Mapped[uuid.UUID] = uuid_pk()
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(String(255))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)

    forms = relationship("DepartmentForm", back_populates="department", cascade="all, delete-orphan")


class Form(Base):
    __tablename__ = "forms"

    id: Mapped[uuid.UUID] = uuid_pk()
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)  # service_report
    display_name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    form_type: Mapped[str] = mapped_column(String(50), default="report")
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)


class DepartmentForm(Base):
    __tablename__ = "department_forms"

    id: Mapped[uuid.UUID] = uuid_pk()
    department_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("departments.id", ondelete="CASCADE"), nullable=False, index=True)
    form_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("forms.id", ondelete="CASCADE"), nullable=False)
    is_enabled: Mapped[bool] = mapped_column(Boolean, default=True)

    department = relationship("Department", back_populates="forms")
    form = relationship("Form")

    __table_args__ = (UniqueConstraint("department_id", "form_id", name="uq_department_form"),)


class Project(Base):
    __tablename__ = "projects"

    id: Mapped[uuid.UUID] = uuid_pk()
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    code: Mapped[Optional[str]] = mapped_column(String(50), unique=True)
    department_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), ForeignKey("departments.id", ondelete="SET NULL"), index=True)
    logo_url: Mapped[Optional[str]] = mapped_column(Text)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)


class User(Base):
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = uuid_pk()
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    employee_id: Mapped[Optional[str]] = mapped_column(String(50))
    role: Mapped[str] = mapped_column(String(50), nullable=False, default="technician")  # admin|manager|team_leader|technician|technical_executive
    mobile: Mapped[Optional[str]] = mapped_column(String(20))
    department_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), ForeignKey("departments.id", ondelete="SET NULL"))
    team_leader_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"))
    signature: Mapped[Optional[str]] = mapped_column(Text)  # data URL of the saved profile signature
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)

    department = relationship("Department")
    team_leader = relationship("User", remote_side="User.id")


class LocationDetail(Base):
    """Location catalog, keyed by RFP number"""
    __tablename__ = "location_details"

    id: Mapped[uuid.UUID] = uuid_pk()
    rfp_no: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)
    project_phase: Mapped[Optional[str]] = mapped_column(String(50))
    location_type: Mapped[Optional[str]] = mapped_column(String(50))
    zone: Mapped[Optional[str]] = mapped_column(String(100))
    location: Mapped[str] = mapped_column(String(255), nullable=False)
    ward_no: Mapped[Optional[str]] = mapped_column(String(50))
    ps_limits: Mapped[Optional[str]] = mapped_column(String(100))
    no_of_pole: Mapped[Optional[int]] = mapped_column(Integer)
    pole_id: Mapped[Optional[str]] = mapped_column(String(100))
    jb_sl_no: Mapped[Optional[str]] = mapped_column(String(100))
    no_of_cameras: Mapped[Optional[int]] = mapped_column(Integer)
    fix_box: Mapped[Optional[int]] = mapped_column(Integer)
    ptz: Mapped[Optional[int]] = mapped_column(Integer)
    latitude: Mapped[Optional[float]] = mapped_column(Float)
    longitude: Mapped[Optional[float]] = mapped_column(Float)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)


class ServiceReport(Base):
    __tablename__ = "service_reports"

    id: Mapped[uuid.UUID] = uuid_pk()
    complaint_no: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)  # COMP-<ms> | DRAFT-<user>-<ms>

    # Classification
    complaint_type: Mapped[Optional[str]] = mapped_column(String(50))
    system_type: Mapped[Optional[str]] = mapped_column(String(50))
    project_phase: Mapped[Optional[str]] = mapped_column(String(50))
    zone: Mapped[Optional[str]] = mapped_column(String(100))
    date: Mapped[Optional[date_type]] = mapped_column(Date)

    # Location
    rfp_no: Mapped[Optional[str]] = mapped_column(String(50), index=True)
    location: Mapped[Optional[str]] = mapped_column(String(255))
    ward_no: Mapped[Optional[str]] = mapped_column(String(50))
    ps_limits: Mapped[Optional[str]] = mapped_column(String(100))
    pole_id: Mapped[Optional[str]] = mapped_column(String(100))
    jb_sl_no: Mapped[Optional[str]] = mapped_column(String(100))
    location_latitude: Mapped[Optional[float]] = mapped_column(Float)  # catalog
    location_longitude: Mapped[Optional[float]] = mapped_column(Float)  # catalog
    latitude: Mapped[Optional[float]] = mapped_column(Float)  # device
    longitude: Mapped[Optional[float]] = mapped_column(Float)  # device

    # Media
    before_image_url: Mapped[Optional[str]] = mapped_column(Text)
    after_image_url: Mapped[Optional[str]] = mapped_column(Text)
    ups_input_image_url: Mapped[Optional[str]] = mapped_column(Text)
    ups_output_image_url: Mapped[Optional[str]] = mapped_column(Text)
    thermistor_image_url: Mapped[Optional[str]] = mapped_column(Text)
    raw_power_supply_images: Mapped[Optional[list]] = mapped_column(JSON, default=list)

    # Equipment checklist
    checklist_data: Mapped[Optional[dict]] = mapped_column(JSON)  # {section: {item: ok|issue|na}}
    equipment_remarks: Mapped[Optional[dict]] = mapped_column(JSON)  # {"section-item": text, "section-item-value": value}
    jb_temperature: Mapped[Optional[float]] = mapped_column(Float)

    # Content
    nature_of_complaint: Mapped[Optional[str]] = mapped_column(Text)
    field_team_remarks: Mapped[Optional[str]] = mapped_column(Text)
    customer_feedback: Mapped[Optional[str]] = mapped_column(Text)

    # Technician signature block
    tech_engineer: Mapped[Optional[str]] = mapped_column(String(255))
    tech_mobile: Mapped[Optional[str]] = mapped_column(String(20))
    tech_signature: Mapped[Optional[str]] = mapped_column(Text)

    # Approval block
    tl_name: Mapped[Optional[str]] = mapped_column(String(255))
    tl_mobile: Mapped[Optional[str]] = mapped_column(String(20))
    tl_signature: Mapped[Optional[str]] = mapped_column(Text)
    approval_status: Mapped[str] = mapped_column(String(20), default="pending", nullable=False)  # pending|approve|reject
    rejection_remarks: Mapped[Optional[str]] = mapped_column(Text)
    approval_notes: Mapped[Optional[str]] = mapped_column(Text)
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    approved_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"))

    # Lifecycle
    status: Mapped[str] = mapped_column(String(20), default="draft", nullable=False)  # draft|submitted
    technician_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), index=True)
    team_leader_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("idx_report_technician_status", "technician_id", "status"),
        Index("idx_report_leader_approval", "team_leader_id", "approval_status"),
    )


class AuditLog(Base):
    """Append-only audit log for report workflow actions"""
    __tablename__ = "audit_logs"

    id: Mapped[uuid.UUID] = uuid_pk()
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)  # table name: service_reports|location_details
    entity_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    action: Mapped[str] = mapped_column(String(50), nullable=False)  # CREATE|UPDATE|SUBMIT|APPROVE|REJECT|DELETE
    actor_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), index=True)
    actor_role: Mapped[Optional[str]] = mapped_column(String(50))
    source: Mapped[Optional[str]] = mapped_column(String(50))  # app|api|system
    changes_json: Mapped[Optional[dict]] = mapped_column(JSON)  # {"before": ..., "after": ...}
    timestamp_utc: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, nullable=False, index=True)
    context: Mapped[Optional[dict]] = mapped_column(JSON)
    integrity_hash: Mapped[Optional[str]] = mapped_column(String(64))  # SHA256 hash for integrity verification

    __table_args__ = (
        Index("idx_audit_entity", "entity_type", "entity_id"),
        Index("idx_audit_actor", "actor_id", "timestamp_utc"),
    )
