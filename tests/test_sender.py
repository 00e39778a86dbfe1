from __future__ import annotations

import logging

import pytest

from models.records import ReadingStatus, WeatherReading
from services.sender import MessageSender, Outbox, build_app_message


def _reading(**overrides) -> WeatherReading:
    values = dict(
        timezone_offset=14400,
        sunrise=1000,
        sunset=2000,
        temperature=17,
        latitude=42.73,
        longitude=-84.56,
    )
    values.update(overrides)
    return WeatherReading(**values)


def test_build_app_message_flattens_reading() -> None:
    message = build_app_message(_reading(), clock=lambda: 1234.9)

    assert message == {
        "status": "reporting",
        "timezoneOffset": 14400,
        "latitude": 42.73,
        "longitude": -84.56,
        "sunrise": 1000,
        "sunset": 2000,
        "temperature": 17,
        "timeStamp": 1234,
    }


def test_build_app_message_text_temperature() -> None:
    message = build_app_message(_reading(temperature=-3), temperature_format="text")

    assert message["temperature"] == "-3°C"


def test_failed_reading_keeps_timezone_and_drops_unknowns() -> None:
    reading = WeatherReading(timezone_offset=-3600, status=ReadingStatus.failed)

    message = build_app_message(reading)

    assert message["status"] == "failed"
    assert message["timezoneOffset"] == -3600
    assert not {"sunrise", "sunset", "temperature", "latitude", "longitude"} & message.keys()


def test_outbox_acknowledge_fires_matching_callback() -> None:
    outbox = Outbox()
    acked: list[str] = []
    nacked: list[tuple[str, str | None]] = []

    first = outbox.put({"status": "ready"}, on_ack=lambda e: acked.append(e.message_id))
    second = outbox.put(
        {"status": "failed"},
        on_nack=lambda e, reason: nacked.append((e.message_id, reason)),
    )

    outbox.acknowledge(first.message_id, delivered=True)
    outbox.acknowledge(second.message_id, delivered=False, reason="APP_MSG_BUSY")

    assert acked == [first.message_id]
    assert nacked == [(second.message_id, "APP_MSG_BUSY")]
    assert len(outbox) == 0


def test_outbox_unknown_message_raises_key_error() -> None:
    with pytest.raises(KeyError):
        Outbox().acknowledge("missing", delivered=True)


def test_outbox_drops_oldest_when_full(caplog) -> None:
    outbox = Outbox(max_pending=2)
    first = outbox.put({"n": 1})
    outbox.put({"n": 2})

    with caplog.at_level(logging.WARNING, logger="services.sender"):
        outbox.put({"n": 3})

    assert [entry.payload["n"] for entry in outbox.pending()] == [2, 3]
    assert any(
        getattr(record, "message_id", None) == first.message_id for record in caplog.records
    )


def test_sender_logs_delivery_outcome(caplog) -> None:
    outbox = Outbox()
    sender = MessageSender(outbox, session_id="watch-1")

    with caplog.at_level(logging.INFO, logger="services.sender"):
        delivered_id = sender.send(_reading())
        failed_id = sender.send(_reading())
        outbox.acknowledge(delivered_id, delivered=True)
        outbox.acknowledge(failed_id, delivered=False, reason="timeout")

    messages = {record.getMessage() for record in caplog.records}
    assert {"Queued message for device", "Message delivered to device", "Message delivery failed"} <= messages
    assert all(getattr(record, "session_id", None) == "watch-1" for record in caplog.records)
