"""Flatten readings into AppMessages and queue them for the device."""

from __future__ import annotations

import logging
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional
from uuid import uuid4

from models.records import WeatherReading

logger = logging.getLogger(__name__)

AppMessage = Dict[str, Any]
AckCallback = Callable[["OutboundMessage"], None]
NackCallback = Callable[["OutboundMessage", Optional[str]], None]


def build_app_message(
    reading: WeatherReading,
    temperature_format: str = "int",
    clock: Callable[[], float] = time.time,
) -> AppMessage:
    """Flat key-value form of ``reading``; unset fields are left out."""
    message: AppMessage = {
        "status": reading.status.value,
        "timezoneOffset": reading.timezone_offset,
    }
    if reading.latitude is not None and reading.longitude is not None:
        message["latitude"] = reading.latitude
        message["longitude"] = reading.longitude
    if reading.sunrise is not None:
        message["sunrise"] = reading.sunrise
    if reading.sunset is not None:
        message["sunset"] = reading.sunset
    if reading.temperature is not None:
        if temperature_format == "text":
            message["temperature"] = f"{reading.temperature}°C"
        else:
            message["temperature"] = reading.temperature
    message["timeStamp"] = int(clock())
    return message


@dataclass
class OutboundMessage:
    message_id: str
    payload: AppMessage
    queued_at: float
    on_ack: Optional[AckCallback] = field(default=None, repr=False)
    on_nack: Optional[NackCallback] = field(default=None, repr=False)


class Outbox:
    """Bounded queue of messages waiting for the device to pick them up."""

    def __init__(self, max_pending: int = 16, clock: Callable[[], float] = time.time) -> None:
        self.max_pending = max_pending
        self._clock = clock
        self._pending: "OrderedDict[str, OutboundMessage]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._pending)

    def put(
        self,
        payload: AppMessage,
        on_ack: Optional[AckCallback] = None,
        on_nack: Optional[NackCallback] = None,
    ) -> OutboundMessage:
        while len(self._pending) >= self.max_pending:
            _, dropped = self._pending.popitem(last=False)
            logger.warning(
                "Outbox full, dropping oldest message",
                extra={"message_id": dropped.message_id},
            )
        entry = OutboundMessage(
            message_id=uuid4().hex,
            payload=dict(payload),
            queued_at=self._clock(),
            on_ack=on_ack,
            on_nack=on_nack,
        )
        self._pending[entry.message_id] = entry
        return entry

    def pending(self) -> List[OutboundMessage]:
        return list(self._pending.values())

    def acknowledge(
        self, message_id: str, delivered: bool, reason: Optional[str] = None
    ) -> OutboundMessage:
        try:
            entry = self._pending.pop(message_id)
        except KeyError:
            raise KeyError(f"Outbound message {message_id!r} not found.") from None
        if delivered:
            if entry.on_ack is not None:
                entry.on_ack(entry)
        elif entry.on_nack is not None:
            entry.on_nack(entry, reason)
        return entry


class MessageSender:
    """Fire-and-forget delivery of readings to one device session."""

    def __init__(
        self,
        outbox: Outbox,
        session_id: str,
        temperature_format: str = "int",
    ) -> None:
        self.outbox = outbox
        self.session_id = session_id
        self.temperature_format = temperature_format

    def send(
        self,
        reading: WeatherReading,
        on_ack: Optional[AckCallback] = None,
        on_nack: Optional[NackCallback] = None,
    ) -> str:
        payload = build_app_message(reading, self.temperature_format)
        entry = self.outbox.put(
            payload,
            on_ack=on_ack or self._log_ack,
            on_nack=on_nack or self._log_nack,
        )
        logger.info(
            "Queued message for device",
            extra={
                "session_id": self.session_id,
                "message_id": entry.message_id,
                "status": payload["status"],
            },
        )
        return entry.message_id

    def _log_ack(self, entry: OutboundMessage) -> None:
        logger.info(
            "Message delivered to device",
            extra={"session_id": self.session_id, "message_id": entry.message_id},
        )

    def _log_nack(self, entry: OutboundMessage, reason: Optional[str]) -> None:
        logger.warning(
            "Message delivery failed",
            extra={
                "session_id": self.session_id,
                "message_id": entry.message_id,
                "reason": reason or "unknown",
            },
        )
