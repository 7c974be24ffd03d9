import base64
import io
import os
from types import SimpleNamespace

# settings are read at import time
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["AUTO_CREATE_DB"] = "false"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["RATE_LIMIT"] = "100000/minute"
os.environ["REQUIRE_GPS_FOR_SUBMIT"] = "false"

import pytest
from fastapi.testclient import TestClient
from PIL import Image
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from fieldops.auth.security import create_access_token
from fieldops.db import Base, get_db
from fieldops.main import app
from fieldops.models.models import Department, DepartmentForm, Form, LocationDetail, User
from fieldops.storage.factory import get_storage
from fieldops.storage.local_provider import LocalStorageProvider
from fieldops.workflow.session import WizardSessionStore, get_session_store


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def storage(tmp_path):
    return LocalStorageProvider(str(tmp_path / "storage"), "http://testserver")


@pytest.fixture
def session_store():
    return WizardSessionStore()


@pytest.fixture
def client(session_factory, storage, session_store):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_storage] = lambda: storage
    app.dependency_overrides[get_session_store] = lambda: session_store
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def world(db):
    """A department with the report form enabled, a crew and one catalog site."""
    dept = Department(name="Field Operations")
    closed_dept = Department(name="Back Office")
    form = Form(name="service_report", display_name="Service Report")
    db.add_all([dept, closed_dept, form])
    db.flush()
    db.add(DepartmentForm(department_id=dept.id, form_id=form.id, is_enabled=True))
    db.add(DepartmentForm(department_id=closed_dept.id, form_id=form.id, is_enabled=False))

    leader = User(email="leader@example.com", full_name="Tarun Leader", role="team_leader", mobile="9876500002", department_id=dept.id)
    manager = User(email="manager@example.com", full_name="Maya Manager", role="manager", mobile="9876500001", department_id=dept.id)
    db.add_all([leader, manager])
    db.flush()
    tech = User(
        email="tech@example.com",
        full_name="Ravi Technician",
        role="technician",
        mobile="9876543210",
        department_id=dept.id,
        team_leader_id=leader.id,
    )
    outsider = User(email="clerk@example.com", full_name="Cara Clerk", role="technician", mobile="9876500003", department_id=closed_dept.id)
    db.add_all([tech, outsider])
    db.add(LocationDetail(
        rfp_no="RFP-001",
        project_phase="phase1",
        zone="Central",
        location="MG Road",
        ward_no="12",
        ps_limits="Shivajinagar",
        pole_id="P-1001",
        jb_sl_no="JB-7781",
        latitude=18.5204,
        longitude=73.8567,
    ))
    db.commit()
    return SimpleNamespace(dept=dept, form=form, leader=leader, manager=manager, tech=tech, outsider=outsider)


def auth_headers(user) -> dict:
    return {"Authorization": f"Bearer {create_access_token(str(user.id), user.role)}"}


def make_image(fmt: str = "JPEG", size=(320, 240), color=(40, 120, 200)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", size, color).save(buf, format=fmt)
    return buf.getvalue()


def signature_data_url() -> str:
    return "data:image/png;base64," + base64.b64encode(make_image("PNG", (200, 80), (255, 255, 255))).decode()
