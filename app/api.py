"""HTTP route definitions for the service."""

from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, HTTPException, status

from app.schemas import (
    DeliveryReport,
    OutboundMessageView,
    OutboxView,
    PositionAccepted,
    PositionReport,
    TriggerAccepted,
)
from services.companion import SessionRegistry, build_default_registry
from services.location import ReportedLocationProvider

router = APIRouter()


def get_registry() -> SessionRegistry:
    return build_default_registry()


@router.post(
    "/sessions/{session_id}/ready",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=TriggerAccepted,
    summary="Signal that the device app is ready.",
)
async def device_ready(
    session_id: str,
    registry: SessionRegistry = Depends(get_registry),
) -> TriggerAccepted:
    message_id = await registry.get(session_id).handle_ready()
    return TriggerAccepted(session_id=session_id, message_id=message_id)


@router.post(
    "/sessions/{session_id}/messages",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=TriggerAccepted,
    summary="Deliver an inbound AppMessage from the device.",
)
async def device_message(
    session_id: str,
    payload: Dict[str, Any] = Body(..., description="Flat AppMessage fields."),
    registry: SessionRegistry = Depends(get_registry),
) -> TriggerAccepted:
    message_id = await registry.get(session_id).handle_message(payload)
    return TriggerAccepted(session_id=session_id, message_id=message_id)


@router.post(
    "/sessions/{session_id}/position",
    response_model=PositionAccepted,
    summary="Report the phone's position or a position error.",
)
async def report_position(
    session_id: str,
    report: PositionReport,
    registry: SessionRegistry = Depends(get_registry),
) -> PositionAccepted:
    try:
        provider = registry.find(session_id).location
    except KeyError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    if not isinstance(provider, ReportedLocationProvider):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Companion uses fixed coordinates; position reports are not accepted.",
        )
    if report.error_code is not None:
        waiting = provider.report_error(
            report.error_code, report.message or "Position unavailable."
        )
    else:
        waiting = provider.report_position(
            report.latitude, report.longitude, accuracy=report.accuracy
        )
    return PositionAccepted(session_id=session_id, waiting=waiting)


@router.get(
    "/sessions/{session_id}/outbox",
    response_model=OutboxView,
    summary="List messages waiting for the device.",
)
async def get_outbox(
    session_id: str,
    registry: SessionRegistry = Depends(get_registry),
) -> OutboxView:
    try:
        session = registry.find(session_id)
    except KeyError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    messages = [
        OutboundMessageView(
            message_id=entry.message_id,
            payload=entry.payload,
            queued_at=entry.queued_at,
        )
        for entry in session.sender.outbox.pending()
    ]
    return OutboxView(session_id=session_id, messages=messages)


@router.post(
    "/sessions/{session_id}/outbox/{message_id}/ack",
    response_model=OutboundMessageView,
    summary="Acknowledge or reject delivery of an outbound message.",
)
async def acknowledge_message(
    session_id: str,
    message_id: str,
    report: DeliveryReport,
    registry: SessionRegistry = Depends(get_registry),
) -> OutboundMessageView:
    try:
        session = registry.find(session_id)
        entry = session.sender.outbox.acknowledge(
            message_id, delivered=report.delivered, reason=report.reason
        )
    except KeyError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    return OutboundMessageView(
        message_id=entry.message_id,
        payload=entry.payload,
        queued_at=entry.queued_at,
    )


@router.get(
    "/health",
    summary="Health check endpoint.",
    status_code=status.HTTP_200_OK,
)
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.get(
    "/",
    summary="Root endpoint mirrors health information.",
    status_code=status.HTTP_200_OK,
)
async def root() -> dict[str, str]:
    return {"status": "ok", "detail": "See /health for service status."}
