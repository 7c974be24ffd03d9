"""
Seed the local database with a demo department, the service report form,
a project, users for every role and a small location catalog.

Usage:
  python scripts/seed_test_data.py

This script is idempotent: running it multiple times will upsert the same
records based on unique fields (name for departments/forms, email for users,
rfp_no for locations).
"""

from fieldops.config import settings
from fieldops.db import SessionLocal, Base, engine
from fieldops.models.models import (
    Department,
    DepartmentForm,
    Form,
    LocationDetail,
    Project,
    User,
)


def ensure_department(session, name: str, description: str = "") -> Department:
    dept = session.query(Department).filter(Department.name == name).first()
    if dept:
        return dept
    dept = Department(name=name, description=description or name)
    session.add(dept)
    session.flush()
    return dept


def ensure_form(session, name: str, display_name: str) -> Form:
    form = session.query(Form).filter(Form.name == name).first()
    if form:
        form.display_name = display_name
        form.is_active = True
        session.add(form)
        session.flush()
        return form
    form = Form(name=name, display_name=display_name, form_type="report", is_active=True)
    session.add(form)
    session.flush()
    return form


def enable_form(session, department: Department, form: Form) -> DepartmentForm:
    row = (
        session.query(DepartmentForm)
        .filter(DepartmentForm.department_id == department.id, DepartmentForm.form_id == form.id)
        .first()
    )
    if row:
        row.is_enabled = True
    else:
        row = DepartmentForm(department_id=department.id, form_id=form.id, is_enabled=True)
    session.add(row)
    session.flush()
    return row


def ensure_user(session, email: str, full_name: str, role: str, **kwargs) -> User:
    user = session.query(User).filter(User.email == email).first()
    if user:
        user.full_name = full_name
        user.role = role
        for k, v in kwargs.items():
            if hasattr(user, k):
                setattr(user, k, v)
        session.add(user)
        session.flush()
        return user
    user = User(email=email, full_name=full_name, role=role, is_active=True, **kwargs)
    session.add(user)
    session.flush()
    return user


def ensure_location(session, rfp_no: str, **kwargs) -> LocationDetail:
    row = session.query(LocationDetail).filter(LocationDetail.rfp_no == rfp_no).first()
    if row:
        for k, v in kwargs.items():
            setattr(row, k, v)
    else:
        row = LocationDetail(rfp_no=rfp_no, **kwargs)
    session.add(row)
    session.flush()
    return row


def main() -> None:
    # Ensure tables exist (safe for SQLite dev)
    Base.metadata.create_all(bind=engine)

    session = SessionLocal()
    try:
        field_ops = ensure_department(session, "Field Operations", "CCTV and power maintenance crews")
        form = ensure_form(session, settings.report_form_name, "Service Report")
        enable_form(session, field_ops, form)

        if not session.query(Project).filter(Project.code == "CITY-CCTV").first():
            session.add(Project(name="City Surveillance", code="CITY-CCTV", department_id=field_ops.id))

        admin = ensure_user(session, "admin@example.com", "Admin User", "admin", department_id=field_ops.id)
        manager = ensure_user(session, "manager@example.com", "Maya Manager", "manager", mobile="9876500001", department_id=field_ops.id)
        leader = ensure_user(session, "leader@example.com", "Tarun Leader", "team_leader", mobile="9876500002", department_id=field_ops.id)
        tech = ensure_user(
            session,
            "tech@example.com",
            "Ravi Technician",
            "technician",
            mobile="9876543210",
            department_id=field_ops.id,
            team_leader_id=leader.id,
        )

        ensure_location(
            session, "RFP-001",
            project_phase="phase1", location_type="junction", zone="Central", location="MG Road",
            ward_no="12", ps_limits="Shivajinagar", no_of_pole=2, pole_id="P-1001", jb_sl_no="JB-7781",
            no_of_cameras=4, fix_box=3, ptz=1, latitude=18.5204, longitude=73.8567,
        )
        ensure_location(
            session, "RFP-002",
            project_phase="phase2", location_type="chowk", zone="East", location="Station Road",
            ward_no="7", ps_limits="Bund Garden", no_of_pole=1, pole_id="P-2002", jb_sl_no="JB-7782",
            no_of_cameras=2, fix_box=2, ptz=0, latitude=18.5289, longitude=73.8744,
        )

        session.commit()
        print("Seed complete:")
        for u in (admin, manager, leader, tech):
            print(f"  {u.role:<12} {u.email} id={u.id}")
    finally:
        session.close()


if __name__ == "__main__":
    main()
