"""Position resolution for a request cycle."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, List, Optional

from models.records import Coordinates
from services.errors import LocationError, PositionErrorCode
from settings import Settings

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 15.0
DEFAULT_MAXIMUM_AGE = 60.0


class LocationProvider:
    """Resolve the phone's current coordinates or raise ``LocationError``."""

    async def locate(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        maximum_age: float = DEFAULT_MAXIMUM_AGE,
    ) -> Coordinates:
        raise NotImplementedError


class FixedLocationProvider(LocationProvider):
    """Always answers with the configured coordinates."""

    def __init__(
        self,
        latitude: float,
        longitude: float,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.latitude = latitude
        self.longitude = longitude
        self._clock = clock

    async def locate(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        maximum_age: float = DEFAULT_MAXIMUM_AGE,
    ) -> Coordinates:
        return Coordinates(
            latitude=self.latitude,
            longitude=self.longitude,
            timestamp=self._clock(),
        )


class ReportedLocationProvider(LocationProvider):
    """Coordinates pushed by the phone.

    ``locate`` answers from the last fix while it is younger than
    ``maximum_age``; otherwise it waits for the next report. A reported
    position error fails every caller currently waiting.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._last_fix: Optional[Coordinates] = None
        self._waiters: List[asyncio.Future[Coordinates]] = []

    @property
    def waiting(self) -> int:
        return sum(1 for waiter in self._waiters if not waiter.done())

    def report_position(
        self,
        latitude: float,
        longitude: float,
        accuracy: Optional[float] = None,
    ) -> int:
        """Store a new fix and hand it to pending callers; return how many were waiting."""
        fix = Coordinates(
            latitude=latitude,
            longitude=longitude,
            timestamp=self._clock(),
            accuracy=accuracy,
        )
        self._last_fix = fix
        delivered = 0
        for waiter in self._drain_waiters():
            waiter.set_result(fix)
            delivered += 1
        return delivered

    def report_error(self, code: PositionErrorCode | int, message: str) -> int:
        """Fail pending callers with the phone's position error."""
        failed = 0
        for waiter in self._drain_waiters():
            waiter.set_exception(LocationError(code, message))
            failed += 1
        logger.warning(
            "Phone reported position error %s: %s",
            int(code),
            message,
            extra={"reason": message},
        )
        return failed

    async def locate(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        maximum_age: float = DEFAULT_MAXIMUM_AGE,
    ) -> Coordinates:
        fix = self._last_fix
        if fix is not None and self._clock() - fix.timestamp <= maximum_age:
            return fix

        waiter: asyncio.Future[Coordinates] = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        try:
            return await asyncio.wait_for(waiter, timeout)
        except asyncio.TimeoutError:
            raise LocationError(
                PositionErrorCode.timeout,
                f"No position reported within {timeout:g}s.",
            ) from None
        finally:
            if waiter in self._waiters:
                self._waiters.remove(waiter)

    def _drain_waiters(self) -> List[asyncio.Future[Coordinates]]:
        waiters, self._waiters = self._waiters, []
        return [waiter for waiter in waiters if not waiter.done()]


def build_location_provider(settings: Settings) -> LocationProvider:
    if settings.location_mode == "fixed":
        return FixedLocationProvider(settings.fixed_latitude, settings.fixed_longitude)
    return ReportedLocationProvider()
