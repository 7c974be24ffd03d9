"""
Location catalog lookups and RFP autofill.
"""
from typing import Any, Dict, List, Mapping, Optional

import structlog
from sqlalchemy import or_
from sqlalchemy.orm import Session

from ..models.models import LocationDetail
from ..services.records import RecordStore
from .accumulator import FieldAccumulator

logger = structlog.get_logger(__name__)

# catalog column -> report field
AUTOFILL_FIELDS = {
    "rfp_no": "rfp_no",
    "location": "location",
    "zone": "zone",
    "ward_no": "ward_no",
    "ps_limits": "ps_limits",
    "pole_id": "pole_id",
    "jb_sl_no": "jb_sl_no",
    "project_phase": "project_phase",
    "latitude": "location_latitude",
    "longitude": "location_longitude",
}
CATALOG_READ_ONLY = ("location_latitude", "location_longitude")


def find_location(store: RecordStore, rfp_no: str) -> Optional[Dict[str, Any]]:
    rows = store.query("location_details", {"rfp_no": rfp_no.strip()}, limit=1)
    return rows[0] if rows else None


def search_locations(db: Session, q: Optional[str] = None, limit: int = 50) -> List[LocationDetail]:
    query = db.query(LocationDetail)
    if q:
        like = f"%{q.strip()}%"
        query = query.filter(or_(
            LocationDetail.rfp_no.ilike(like),
            LocationDetail.location.ilike(like),
            LocationDetail.zone.ilike(like),
        ))
    return query.order_by(LocationDetail.rfp_no.asc()).limit(limit).all()


def autofill_values(location: Mapping[str, Any]) -> Dict[str, Any]:
    """Report fields filled from a catalog row. Empty catalog values are skipped."""
    return {
        target: location.get(source)
        for source, target in AUTOFILL_FIELDS.items()
        if location.get(source) not in (None, "")
    }


def apply_location(accumulator: FieldAccumulator, location: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Merge the catalog values into the record and lock the site coordinates.
    Selecting another RFP number re-fills them; direct edits are refused.
    """
    values = autofill_values(location)
    # fields of the previous selection that the new one does not carry
    stale = [f for f in CATALOG_READ_ONLY if f not in values and f in accumulator]
    if stale:
        values.update({f: None for f in stale})
    accumulator.update(values, force=True)
    accumulator.lock_fields(CATALOG_READ_ONLY)
    logger.info("location_autofilled", rfp_no=location.get("rfp_no"), fields=sorted(values))
    return values
