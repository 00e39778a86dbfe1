"""Domain models shared across services."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class ReadingStatus(str, Enum):
    """Status values understood by the device app."""

    ready = "ready"
    reporting = "reporting"
    failed = "failed"


@dataclass(slots=True, frozen=True)
class Coordinates:
    """A single position fix reported by the phone."""

    latitude: float
    longitude: float
    timestamp: float
    accuracy: Optional[float] = None


@dataclass(slots=True)
class WeatherReading:
    """Everything gathered for one trigger, discarded after it is sent."""

    timezone_offset: int = 0
    status: ReadingStatus = ReadingStatus.reporting
    sunrise: Optional[int] = None
    sunset: Optional[int] = None
    temperature: Optional[int] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    location_name: Optional[str] = None

    def merge(self, other: WeatherReading) -> None:
        """Copy the weather fields of ``other`` that are set onto this reading."""
        for name in ("sunrise", "sunset", "temperature", "location_name"):
            value = getattr(other, name)
            if value is not None:
                setattr(self, name, value)
        if self.latitude is None and other.latitude is not None:
            self.latitude = other.latitude
            self.longitude = other.longitude
