"""
Report audit trail.

Entries are append-only and signed with a SHA256 hash over a canonical JSON
form, so a tampered row can be told apart from a genuine one.
"""
import hashlib
import json
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

import structlog
from sqlalchemy.orm import Session

from ..config import settings
from ..models.models import AuditLog

logger = structlog.get_logger(__name__)


def to_jsonable(value: Any) -> Any:
    """Round-trip through JSON so dates and UUIDs fit a JSON column."""
    if value is None:
        return None
    return json.loads(json.dumps(value, default=str))


def _as_uuid(value) -> uuid.UUID:
    return value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))


def integrity_hash_for(
    entity_type: str,
    entity_id,
    action: str,
    timestamp_utc: datetime,
    actor_id=None,
    actor_role: Optional[str] = None,
    source: Optional[str] = None,
    changes: Optional[Dict] = None,
    context: Optional[Dict] = None,
    secret: Optional[str] = None,
) -> Optional[str]:
    secret = settings.jwt_secret if secret is None else secret
    if not secret:
        return None
    canonical = {
        "entity_type": entity_type,
        "entity_id": str(entity_id),
        "action": action,
        "actor_id": str(actor_id) if actor_id else None,
        "actor_role": actor_role,
        "source": source,
        "timestamp_utc": timestamp_utc.isoformat(),
        "changes": changes,
        "context": context,
    }
    # None values are left out so optional columns don't change the digest
    canonical = {k: v for k, v in canonical.items() if v is not None}
    payload = json.dumps(canonical, sort_keys=True, default=str)
    return hashlib.sha256(f"{payload}:{secret}".encode()).hexdigest()


def create_audit_log(
    db: Session,
    entity_type: str,
    entity_id: str,
    action: str,
    actor_id: Optional[str] = None,
    actor_role: Optional[str] = None,
    source: Optional[str] = None,
    changes_json: Optional[Dict] = None,
    context: Optional[Dict] = None,
    integrity_secret: Optional[str] = None
) -> AuditLog:
    """
    Write one audit entry and commit it.

    Args:
        entity_type: Table the record lives in (service_reports|location_details)
        entity_id: Record ID
        action: CREATE|SUBMIT|APPROVE|REJECT|DELETE
        actor_role: technician|team_leader|manager|admin
        source: app|api|system
        changes_json: before/after images of the record, plus a diff for reviews
        context: complaint_no, status transition ...
        integrity_secret: defaults to JWT_SECRET
    """
    timestamp_utc = datetime.utcnow().replace(tzinfo=None)
    source = source or "system"
    changes_json = to_jsonable(changes_json)
    context = to_jsonable(context)

    entry = AuditLog(
        entity_type=entity_type,
        entity_id=_as_uuid(entity_id),
        action=action,
        actor_id=_as_uuid(actor_id) if actor_id else None,
        actor_role=actor_role,
        source=source,
        changes_json=changes_json,
        timestamp_utc=timestamp_utc,
        context=context,
        integrity_hash=integrity_hash_for(
            entity_type,
            entity_id,
            action,
            timestamp_utc,
            actor_id=actor_id,
            actor_role=actor_role,
            source=source,
            changes=changes_json,
            context=context,
            secret=integrity_secret,
        ),
    )
    db.add(entry)
    db.commit()
    db.refresh(entry)
    return entry


def record_audit(db: Session, **kwargs) -> Optional[AuditLog]:
    """
    Best-effort variant of create_audit_log: a failing audit write is logged and
    rolled back, never raised to the caller.
    """
    try:
        return create_audit_log(db, **kwargs)
    except Exception:
        db.rollback()
        logger.warning(
            "audit_write_failed",
            entity_type=kwargs.get("entity_type"),
            entity_id=str(kwargs.get("entity_id")),
            action=kwargs.get("action"),
            exc_info=True,
        )
        return None


def verify_audit_log(entry: AuditLog, secret: Optional[str] = None) -> bool:
    if not entry.integrity_hash:
        return False
    expected = integrity_hash_for(
        entry.entity_type,
        entry.entity_id,
        entry.action,
        entry.timestamp_utc.replace(tzinfo=None),
        actor_id=entry.actor_id,
        actor_role=entry.actor_role,
        source=entry.source,
        changes=entry.changes_json,
        context=entry.context,
        secret=secret,
    )
    return expected == entry.integrity_hash


def get_audit_logs(
    db: Session,
    entity_type: Optional[str] = None,
    entity_id: Optional[str] = None,
    limit: int = 100,
    offset: int = 0
) -> List[AuditLog]:
    """Newest first."""
    query = db.query(AuditLog)
    if entity_type:
        query = query.filter(AuditLog.entity_type == entity_type)
    if entity_id:
        query = query.filter(AuditLog.entity_id == _as_uuid(entity_id))
    return query.order_by(AuditLog.timestamp_utc.desc()).limit(limit).offset(offset).all()


def compute_diff(before: Dict, after: Dict) -> Dict:
    """{field: {"before": ..., "after": ...}} for every field whose value changed."""
    return {
        key: {"before": before.get(key), "after": after.get(key)}
        for key in sorted(set(before) | set(after))
        if before.get(key) != after.get(key)
    }
