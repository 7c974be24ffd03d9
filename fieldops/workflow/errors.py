"""
Workflow error taxonomy.

Every error carries the HTTP status it maps to and a JSON-able detail so the
app can convert it at the boundary with a single handler.
"""
from typing import Any, Dict, List, Optional


class WorkflowError(Exception):
    status_code = 400

    def __init__(self, message: str, **extra: Any):
        super().__init__(message)
        self.message = message
        self.extra = extra

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"detail": self.message}
        body.update(self.extra)
        return body


class StepValidationError(WorkflowError):
    status_code = 422

    def __init__(self, errors: List[Dict[str, str]], message: str = "Please fix the following errors"):
        super().__init__(message, errors=errors)
        self.errors = errors


class UnknownFieldError(WorkflowError):
    def __init__(self, fields: List[str]):
        super().__init__(f"Unknown report fields: {', '.join(sorted(fields))}", fields=sorted(fields))
        self.fields = fields


class ReadOnlyFieldError(WorkflowError):
    def __init__(self, fields: List[str]):
        super().__init__(f"Fields are read-only once auto-filled: {', '.join(sorted(fields))}", fields=sorted(fields))
        self.fields = fields


class ChecklistError(WorkflowError):
    pass


class UploadError(WorkflowError):
    status_code = 502

    def __init__(self, field: str, message: str):
        super().__init__(message, field=field)
        self.field = field


class InvalidUploadError(UploadError):
    status_code = 400


class ImageLimitError(UploadError):
    status_code = 400

    def __init__(self, field: str, limit: int):
        super().__init__(field, f"Maximum {limit} images allowed for {field}")
        self.limit = limit


class PersistenceError(WorkflowError):
    status_code = 503

    def __init__(self, message: str = "Could not save the report. Please try again."):
        super().__init__(message, retryable=True)


class FormAccessDenied(WorkflowError):
    status_code = 403

    def __init__(self, department_id: Optional[str], form_name: str):
        super().__init__(
            "The service report form is not enabled for your department. "
            "Contact your administrator, then retry.",
            department_id=department_id,
            form=form_name,
            retry=True,
        )


class ApprovalStateError(WorkflowError):
    status_code = 409


class SessionNotFound(WorkflowError):
    status_code = 404

    def __init__(self, session_id: str):
        super().__init__("Wizard session not found", session_id=session_id)


class GeolocationError(WorkflowError):
    pass
