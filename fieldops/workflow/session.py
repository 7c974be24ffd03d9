"""
Server-side wizard sessions.

A session pairs one accumulator with one sequencer for a single editor. Mount
logic may run more than once (page reloads, reconnects); every derived value
it produces goes through the accumulator's one-time guard.
"""
import threading
import time
import uuid
from datetime import date
from typing import Any, Callable, Dict, List, Mapping, Optional, Set

import structlog

from ..config import settings
from ..models.models import User
from ..services.geofence import check_site_distance
from ..services.time_rules import local_today, millis_clock
from .accumulator import FieldAccumulator
from .checklist import ChecklistSchema, DEFAULT_SCHEMA, normalize_checklist
from .errors import SessionNotFound
from .geolocation import ReportedPosition, capture_position
from .locations import CATALOG_READ_ONLY
from .sequencer import StepSequencer

logger = structlog.get_logger(__name__)


def technician_autofill(user: User, record: Mapping[str, Any]) -> Dict[str, Any]:
    values = {}
    if not record.get("tech_engineer") and user.full_name:
        values["tech_engineer"] = user.full_name
    if not record.get("tech_mobile") and user.mobile:
        values["tech_mobile"] = user.mobile
    if not record.get("tech_signature") and user.signature:
        values["tech_signature"] = user.signature
    return values


class WizardSession:
    def __init__(self, owner_id, seed: Optional[Mapping[str, Any]] = None, schema: ChecklistSchema = DEFAULT_SCHEMA):
        self.id = uuid.uuid4().hex
        self.owner_id = owner_id
        self.schema = schema
        self.accumulator = FieldAccumulator(seed)
        self.sequencer = StepSequencer(self.accumulator, schema=schema, today=local_today)
        self.warnings: List[str] = []
        # image URLs uploaded while no device position was known
        self.unwatermarked: Set[str] = set()
        # monotonic time of the last create or get, kept by the store
        self.last_seen = 0.0
        # resumed drafts keep their catalog coordinates locked
        if any(self.accumulator.get(f) is not None for f in CATALOG_READ_ONLY):
            self.accumulator.lock_fields(CATALOG_READ_ONLY)

    async def mount(self, user: User, position=None, today: Optional[date] = None) -> None:
        acc = self.accumulator
        acc.once("complaint_no", lambda r: None if r.get("complaint_no") else {"complaint_no": f"COMP-{millis_clock.next()}"})
        acc.once("date", lambda r: None if r.get("date") else {"date": today or local_today()})
        acc.once("technician", lambda r: technician_autofill(user, r))
        acc.once("checklist", lambda r: {"checklist_data": normalize_checklist(r.get("checklist_data"), self.schema)})
        if position is not None and not acc.get("latitude"):
            await self.request_position(ReportedPosition(position.latitude, position.longitude, position.accuracy_m))
        await self.settle()

    async def request_position(self, source) -> Optional[Dict[str, float]]:
        """One-shot position request. A failure becomes a warning, the record is untouched."""
        future = capture_position(self.accumulator, source)
        await self.settle()
        if future.exception() is not None:
            self.add_warning(str(future.exception()))
            return None
        return future.result()

    async def settle(self) -> None:
        await self.accumulator.settle()

    def add_warning(self, message: Optional[str]) -> None:
        if message and message not in self.warnings:
            self.warnings.append(message)

    def site_distance(self):
        distance, is_far = check_site_distance(self.accumulator.snapshot())
        if is_far:
            self.add_warning(f"Device position is {round(distance)} m away from the selected site")
        return distance

    def state(self) -> Dict[str, Any]:
        seq = self.sequencer
        distance = self.site_distance()
        return {
            "session_id": self.id,
            "current_step": seq.current_step,
            "steps": [
                {
                    "id": s.id,
                    "name": s.name,
                    "required_fields": list(s.required_fields),
                    "completed": seq.is_step_completed(s.id),
                }
                for s in seq.steps
            ],
            "progress_pct": seq.progress_pct,
            "record": self.accumulator.snapshot(),
            "errors": list(seq.last_errors),
            "warnings": list(self.warnings),
            "distance_from_site_m": round(distance, 1) if distance is not None else None,
        }


class WizardSessionStore:
    """
    In-process session registry.

    Sessions idle for longer than ttl_seconds are evicted on the next create or
    get, so abandoned wizards do not accumulate.
    """

    def __init__(self, ttl_seconds: Optional[int] = None, clock: Callable[[], float] = time.monotonic):
        self._sessions: Dict[str, WizardSession] = {}
        self._lock = threading.Lock()
        self.ttl_seconds = settings.wizard_session_ttl_seconds if ttl_seconds is None else ttl_seconds
        self._clock = clock

    def _evict_idle(self, now: float) -> None:
        # caller holds the lock
        expired = [sid for sid, s in self._sessions.items() if now - s.last_seen > self.ttl_seconds]
        for sid in expired:
            self._sessions.pop(sid)
            logger.info("wizard_session_expired", session_id=sid)

    def create(self, owner_id, seed: Optional[Mapping[str, Any]] = None, schema: ChecklistSchema = DEFAULT_SCHEMA) -> WizardSession:
        session = WizardSession(owner_id, seed, schema)
        with self._lock:
            now = self._clock()
            self._evict_idle(now)
            session.last_seen = now
            self._sessions[session.id] = session
        logger.info("wizard_session_started", session_id=session.id, resumed=bool(seed and seed.get("id")))
        return session

    def get(self, session_id: str, owner_id) -> WizardSession:
        with self._lock:
            now = self._clock()
            self._evict_idle(now)
            session = self._sessions.get(session_id)
            if session is None or session.owner_id != owner_id:
                raise SessionNotFound(session_id)
            session.last_seen = now
        return session

    def discard(self, session_id: str) -> None:
        with self._lock:
            self._sessions.pop(session_id, None)

    def __len__(self) -> int:
        return len(self._sessions)


sessions = WizardSessionStore()


def get_session_store() -> WizardSessionStore:
    return sessions
