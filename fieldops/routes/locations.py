from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ..auth.security import get_current_user
from ..db import get_db
from ..models.models import User
from ..schemas.locations import LocationOut
from ..services.records import RecordStore
from ..workflow.locations import find_location, search_locations

router = APIRouter(prefix="/locations", tags=["locations"])


@router.get("", response_model=List[LocationOut])
def list_locations(
    q: Optional[str] = Query(default=None),
    limit: int = Query(default=50, le=500),
    db: Session = Depends(get_db),
    me: User = Depends(get_current_user),
):
    return search_locations(db, q, limit)


@router.get("/{rfp_no}", response_model=LocationOut)
def get_location(rfp_no: str, db: Session = Depends(get_db), me: User = Depends(get_current_user)):
    location = find_location(RecordStore(db), rfp_no)
    if location is None:
        raise HTTPException(status_code=404, detail="Location not found")
    return location
