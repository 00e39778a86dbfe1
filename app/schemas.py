"""Pydantic schemas for the HTTP API layer."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, model_validator

from services.errors import PositionErrorCode


class TriggerAccepted(BaseModel):
    """Response after a trigger has been handled."""

    session_id: str
    message_id: Optional[str] = Field(
        default=None, description="Queued outbound message, or null when the trigger was ignored."
    )


class PositionReport(BaseModel):
    """A fix, or a position error, pushed by the phone."""

    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)
    accuracy: Optional[float] = Field(default=None, ge=0)
    error_code: Optional[PositionErrorCode] = None
    message: Optional[str] = None

    @model_validator(mode="after")
    def _fix_or_error(self) -> "PositionReport":
        has_fix = self.latitude is not None and self.longitude is not None
        if has_fix == (self.error_code is not None):
            raise ValueError("Provide either latitude and longitude or an error_code.")
        return self


class PositionAccepted(BaseModel):
    session_id: str
    waiting: int = Field(..., ge=0, description="Pending position requests that were answered.")


class OutboundMessageView(BaseModel):
    message_id: str
    payload: Dict[str, Any]
    queued_at: float


class OutboxView(BaseModel):
    session_id: str
    messages: List[OutboundMessageView] = Field(default_factory=list)


class DeliveryReport(BaseModel):
    """Device-side outcome for one outbound message."""

    delivered: bool = True
    reason: Optional[str] = None
