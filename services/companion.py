"""Event receiver and the fetch-parse-send cycle for each device session."""

from __future__ import annotations

import asyncio
import logging
import time
from collections import OrderedDict
from datetime import datetime, timedelta, timezone
from enum import Flag
from functools import lru_cache, partial
from typing import Any, Callable, Dict, Mapping, Optional
from zoneinfo import ZoneInfo

import httpx

from models.records import ReadingStatus, WeatherReading
from services.errors import CompanionError
from services.location import LocationProvider, build_location_provider
from services.sender import MessageSender, Outbox
from services.weather import WeatherFetcher, build_weather_fetcher
from settings import Settings, get_settings

logger = logging.getLogger(__name__)


class Capability(Flag):
    NONE = 0
    TIMEZONE = 1
    LOCATION = 2
    WEATHER = 4
    ALL = TIMEZONE | LOCATION | WEATHER


_REQUEST_FLAGS = {
    "req_timezone": Capability.TIMEZONE,
    "req_location": Capability.LOCATION,
    "req_weather": Capability.WEATHER,
    "req_all": Capability.ALL,
}
_TRUE_STRINGS = {"1", "true", "yes", "on"}


def _is_set(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in _TRUE_STRINGS
    if isinstance(value, (bool, int, float)):
        return bool(value)
    return False


def parse_request(payload: Mapping[str, Any]) -> Optional[Capability]:
    """Map an inbound AppMessage to the capabilities it asks for, or ``None``."""
    requested = Capability.NONE
    for key, capability in _REQUEST_FLAGS.items():
        if _is_set(payload.get(key)):
            requested |= capability
    status = payload.get("status")
    if isinstance(status, str) and status.strip().lower() == "retrieve":
        requested |= Capability.ALL
    return requested or None


def timezone_offset_seconds(
    zone: Optional[str] = None, now: Optional[datetime] = None
) -> int:
    """Seconds to add to local time to get UTC (positive west of Greenwich)."""
    instant = now or datetime.now(timezone.utc)
    local = instant.astimezone(ZoneInfo(zone)) if zone else instant.astimezone()
    offset = local.utcoffset() or timedelta(0)
    return -int(offset.total_seconds())


class CompanionSession:
    """One device's companion: serialises triggers and sends one message per trigger."""

    def __init__(
        self,
        session_id: str,
        location: LocationProvider,
        fetcher: WeatherFetcher,
        sender: MessageSender,
        timezone_offset: Callable[[], int] = timezone_offset_seconds,
        location_timeout: float = 15.0,
        location_max_age: float = 60.0,
        refresh_on_ready: bool = False,
    ) -> None:
        self.session_id = session_id
        self.location = location
        self.fetcher = fetcher
        self.sender = sender
        self._timezone_offset = timezone_offset
        self.location_timeout = location_timeout
        self.location_max_age = location_max_age
        self.refresh_on_ready = refresh_on_ready
        self._lock = asyncio.Lock()

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    async def handle_ready(self) -> str:
        """Tell the device the companion is up."""
        if self.refresh_on_ready:
            return await self.run_cycle(Capability.ALL, trigger="ready")
        async with self._lock:
            reading = WeatherReading(
                timezone_offset=self._timezone_offset(),
                status=ReadingStatus.ready,
            )
            return self.sender.send(reading)

    async def handle_message(self, payload: Mapping[str, Any]) -> Optional[str]:
        capabilities = parse_request(payload)
        if capabilities is None:
            logger.warning(
                "Ignoring message without a request flag",
                extra={"session_id": self.session_id, "reason": sorted(payload)},
            )
            return None
        return await self.run_cycle(capabilities, trigger="appmessage")

    async def run_cycle(self, capabilities: Capability, trigger: str = "appmessage") -> str:
        async with self._lock:
            start = time.perf_counter()
            reading = WeatherReading(timezone_offset=self._timezone_offset())
            context: Dict[str, Any] = {"session_id": self.session_id, "trigger": trigger}
            try:
                await self._collect(reading, capabilities)
            except CompanionError as exc:
                reading.status = ReadingStatus.failed
                logger.warning(
                    "Request cycle degraded: %s",
                    exc.message,
                    extra={
                        **context,
                        "error_kind": exc.kind.value,
                        "http_status": getattr(exc, "status_code", None),
                    },
                )
            except Exception:  # pragma: no cover - defensive catch-all
                reading.status = ReadingStatus.failed
                logger.exception("Request cycle crashed", extra=context)

            message_id = self.sender.send(reading)
            logger.info(
                "Request cycle finished",
                extra={
                    **context,
                    "status": reading.status.value,
                    "message_id": message_id,
                    "elapsed_ms": int((time.perf_counter() - start) * 1000),
                },
            )
            return message_id

    async def _collect(self, reading: WeatherReading, capabilities: Capability) -> None:
        wants_location = bool(capabilities & Capability.LOCATION)
        wants_weather = bool(capabilities & Capability.WEATHER)

        if wants_location or (wants_weather and self.fetcher.needs_location):
            coordinates = await self.location.locate(
                timeout=self.location_timeout,
                maximum_age=self.location_max_age,
            )
            reading.latitude = coordinates.latitude
            reading.longitude = coordinates.longitude
            logger.debug(
                "Resolved position",
                extra={
                    "session_id": self.session_id,
                    "latitude": coordinates.latitude,
                    "longitude": coordinates.longitude,
                },
            )

        if wants_weather:
            observed = await self.fetcher.fetch(reading.latitude, reading.longitude)
            reading.merge(observed)


class SessionRegistry:
    """Creates and keeps one ``CompanionSession`` per device session id."""

    def __init__(self, settings: Settings, client: httpx.AsyncClient) -> None:
        self.settings = settings
        self.client = client
        self.fetcher = build_weather_fetcher(settings, client)
        self._timezone_offset = partial(timezone_offset_seconds, settings.timezone)
        if settings.timezone:
            # unknown zone names fail at startup, not mid-cycle
            ZoneInfo(settings.timezone)
        self.max_sessions = settings.max_sessions
        self._sessions: "OrderedDict[str, CompanionSession]" = OrderedDict()

    def get(self, session_id: str) -> CompanionSession:
        session = self._sessions.get(session_id)
        if session is None:
            session = self._create(session_id)
            self._sessions[session_id] = session
            self._evict_idle()
        else:
            self._sessions.move_to_end(session_id)
        return session

    def find(self, session_id: str) -> CompanionSession:
        session = self._sessions.get(session_id)
        if session is None:
            raise KeyError(f"Session {session_id!r} not found.")
        self._sessions.move_to_end(session_id)
        return session

    def _evict_idle(self) -> None:
        """Drop least recently used idle sessions beyond ``max_sessions``."""
        excess = len(self._sessions) - self.max_sessions
        # the newest session is never a candidate
        for session_id in list(self._sessions)[:-1]:
            if excess <= 0:
                break
            if self._sessions[session_id].busy:
                continue
            del self._sessions[session_id]
            excess -= 1
            logger.info("Evicted idle device session", extra={"session_id": session_id})

    async def aclose(self) -> None:
        await self.client.aclose()

    def _create(self, session_id: str) -> CompanionSession:
        settings = self.settings
        sender = MessageSender(
            Outbox(max_pending=settings.outbox_max_pending),
            session_id=session_id,
            temperature_format=settings.temperature_format,
        )
        logger.info("Opened device session", extra={"session_id": session_id})
        return CompanionSession(
            session_id=session_id,
            location=build_location_provider(settings),
            fetcher=self.fetcher,
            sender=sender,
            timezone_offset=self._timezone_offset,
            location_timeout=settings.location_timeout,
            location_max_age=settings.location_max_age,
            refresh_on_ready=settings.refresh_on_ready,
        )


@lru_cache
def build_default_registry() -> SessionRegistry:
    """Factory that wires sessions with the configured upstream client."""
    settings = get_settings()
    client = httpx.AsyncClient(timeout=settings.weather_timeout)
    return SessionRegistry(settings=settings, client=client)
