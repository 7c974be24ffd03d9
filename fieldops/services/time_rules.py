"""
Clock helpers shared by the report workflow.
Local dates follow the configured default timezone.
"""
import threading
import time
from datetime import date, datetime
from typing import Optional

import pytz

from ..config import settings


def local_now(tz_name: Optional[str] = None) -> datetime:
    """Current time in the given (or default) timezone."""
    tz = pytz.timezone(tz_name or settings.tz_default)
    return datetime.now(pytz.UTC).astimezone(tz)


def local_today(tz_name: Optional[str] = None) -> date:
    return local_now(tz_name).date()


def utc_now() -> datetime:
    return datetime.now(pytz.UTC)


class MillisClock:
    """
    Millisecond timestamps that never repeat within the process.
    Two identifiers minted in the same millisecond get consecutive values.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._last = 0

    def next(self) -> int:
        with self._lock:
            now = int(time.time() * 1000)
            if now <= self._last:
                now = self._last + 1
            self._last = now
            return now


millis_clock = MillisClock()
