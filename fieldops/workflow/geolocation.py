"""
Geolocation collaborator.

The device reports its own position (browser geolocation runs client side); the
server treats the report as a one-shot position source whose result is merged
into the accumulator as an asynchronous contribution.
"""
import asyncio
from typing import Dict, Optional

import structlog

from .accumulator import FieldAccumulator
from .errors import GeolocationError

logger = structlog.get_logger(__name__)


class ReportedPosition:
    """One-shot position source backed by coordinates posted by the device."""

    def __init__(self, latitude: Optional[float], longitude: Optional[float], accuracy_m: Optional[float] = None):
        self.latitude = latitude
        self.longitude = longitude
        self.accuracy_m = accuracy_m

    async def get_current_position(self) -> Dict[str, float]:
        await asyncio.sleep(0)
        if self.latitude is None or self.longitude is None:
            raise GeolocationError("Unable to get location. Please enable GPS.")
        if not (-90 <= self.latitude <= 90) or not (-180 <= self.longitude <= 180):
            raise GeolocationError("Reported position is out of range")
        return {"latitude": float(self.latitude), "longitude": float(self.longitude)}


def capture_position(accumulator: FieldAccumulator, source) -> asyncio.Future:
    """
    Ask ``source`` for the current position and merge it into the device pair
    (latitude/longitude). The catalog pair is never touched.
    """
    async def _position():
        position = await source.get_current_position()
        logger.info("position_captured", latitude=position["latitude"], longitude=position["longitude"])
        return {"latitude": position["latitude"], "longitude": position["longitude"]}

    return accumulator.contribute(_position(), label="geolocation")
