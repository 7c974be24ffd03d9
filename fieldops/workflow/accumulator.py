"""
Field accumulator: the single in-memory record every wizard step writes into.

Updates are shallow merges applied in call order (last writer wins per field).
Asynchronous producers (geolocation, uploads) hand their result in through
``contribute``; the partial is applied when the awaitable resolves, and
``settle`` waits until every pending contribution has been applied.
"""
import asyncio
import copy
import threading
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Mapping, Optional, Set

import structlog

from .errors import ReadOnlyFieldError

logger = structlog.get_logger(__name__)

Listener = Callable[[Dict[str, Any]], None]


class FieldAccumulator:
    def __init__(self, seed: Optional[Mapping[str, Any]] = None):
        self._record: Dict[str, Any] = copy.deepcopy(dict(seed or {}))
        self._lock = threading.RLock()
        self._listeners: List[Listener] = []
        self._pending: Set[asyncio.Future] = set()
        self._initialized: Set[str] = set()
        self._read_only: Set[str] = set()
        self.version = 0

    # --- reads ---
    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            return copy.deepcopy(self._record)

    def get(self, field: str, default: Any = None) -> Any:
        with self._lock:
            return copy.deepcopy(self._record.get(field, default))

    def __contains__(self, field: str) -> bool:
        with self._lock:
            return field in self._record

    # --- writes ---
    def subscribe(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def lock_fields(self, fields: Iterable[str]) -> None:
        with self._lock:
            self._read_only.update(fields)

    def is_read_only(self, field: str) -> bool:
        return field in self._read_only

    def update(self, partial: Mapping[str, Any], *, force: bool = False) -> Dict[str, Any]:
        """Shallow-merge ``partial``. Nested values replace, never merge."""
        if not partial:
            return self.snapshot()
        with self._lock:
            if not force:
                blocked = [k for k, v in partial.items() if k in self._read_only and self._record.get(k) != v]
                if blocked:
                    raise ReadOnlyFieldError(blocked)
            for key, value in partial.items():
                self._record[key] = copy.deepcopy(value)
            self.version += 1
            changed = list(partial.keys())
        for listener in list(self._listeners):
            listener({"fields": changed, "version": self.version})
        return self.snapshot()

    # --- one-time derived fields ---
    def once(self, key: str, compute: Callable[[Dict[str, Any]], Optional[Mapping[str, Any]]]) -> bool:
        """
        Run ``compute`` at most once per session for ``key``. The guard lives on
        the accumulator so a re-mounted step cannot regenerate derived values.
        Returns True when ``compute`` ran.
        """
        with self._lock:
            if key in self._initialized:
                return False
            partial = compute(copy.deepcopy(self._record))
            if partial:
                self.update(partial, force=True)
            # a failing compute leaves the key free for the next mount
            self._initialized.add(key)
        return True

    # --- asynchronous contributions ---
    def contribute(self, source: Awaitable[Optional[Mapping[str, Any]]], *, label: str = "contribution") -> asyncio.Future:
        """
        Schedule ``source``; its partial is merged when it resolves. Failures are
        logged and leave the record untouched.
        """
        async def _apply():
            try:
                partial = await source
            except Exception as exc:
                logger.warning("accumulator_contribution_failed", label=label, error=str(exc))
                raise
            if partial:
                self.update(partial)
            return partial

        task = asyncio.ensure_future(_apply())
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    @property
    def has_pending(self) -> bool:
        return any(not t.done() for t in self._pending)

    async def settle(self) -> None:
        """Wait until every pending contribution has been applied (or failed)."""
        while self._pending:
            pending = list(self._pending)
            await asyncio.gather(*pending, return_exceptions=True)
            for t in pending:
                self._pending.discard(t)
