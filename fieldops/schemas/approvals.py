from typing import Literal, Optional

from pydantic import BaseModel


class ApprovalDecisionRequest(BaseModel):
    approval_status: Literal["approve", "reject"]
    tl_signature: Optional[str] = None
    rejection_remarks: Optional[str] = None
    approval_notes: Optional[str] = None
