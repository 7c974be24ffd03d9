import uuid
from typing import Optional

from pydantic import BaseModel


class LocationOut(BaseModel):
    id: uuid.UUID
    rfp_no: str
    project_phase: Optional[str] = None
    location_type: Optional[str] = None
    zone: Optional[str] = None
    location: str
    ward_no: Optional[str] = None
    ps_limits: Optional[str] = None
    no_of_pole: Optional[int] = None
    pole_id: Optional[str] = None
    jb_sl_no: Optional[str] = None
    no_of_cameras: Optional[int] = None
    fix_box: Optional[int] = None
    ptz: Optional[int] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    class Config:
        from_attributes = True
