"""
Permission checks used by the report workflow.
"""
from typing import Optional
from sqlalchemy.orm import Session

from ..config import settings
from ..models.models import DepartmentForm, Form, ServiceReport, User

APPROVER_ROLES = {"team_leader", "manager", "admin"}
AUTHOR_ROLES = {"technician", "technical_executive", "team_leader"}


def is_admin(user: User) -> bool:
    return (user.role or "").lower() == "admin"


def is_approver(user: User) -> bool:
    return (user.role or "").lower() in APPROVER_ROLES


def can_author_reports(user: User) -> bool:
    return (user.role or "").lower() in AUTHOR_ROLES or is_admin(user)


def department_has_form(db: Session, department_id, form_name: Optional[str] = None) -> bool:
    """True when the department has the named form enabled and the form itself is active."""
    if department_id is None:
        return False
    form_name = form_name or settings.report_form_name
    row = (
        db.query(DepartmentForm)
        .join(Form, Form.id == DepartmentForm.form_id)
        .filter(
            DepartmentForm.department_id == department_id,
            DepartmentForm.is_enabled.is_(True),
            Form.name == form_name,
            Form.is_active.is_(True),
        )
        .first()
    )
    return row is not None


def can_review_report(user: User, report: ServiceReport) -> bool:
    """
    - Admin and managers can review any submitted report
    - A team leader reviews reports routed to them
    - Authors never approve their own report
    """
    if report.technician_id is not None and report.technician_id == user.id:
        return False
    role = (user.role or "").lower()
    if role in {"admin", "manager"}:
        return True
    if role == "team_leader":
        return report.team_leader_id is None or report.team_leader_id == user.id
    return False
