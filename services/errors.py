"""Failure taxonomy for a companion request cycle."""

from __future__ import annotations

from enum import Enum, IntEnum
from typing import Optional


class ErrorKind(str, Enum):
    geolocation_unavailable = "geolocation-unavailable"
    geolocation_timeout = "geolocation-timeout"
    http_transport_error = "http-transport-error"
    http_non_200 = "http-non-200"
    json_parse_error = "json-parse-error"
    json_shape_mismatch = "json-shape-mismatch"


class PositionErrorCode(IntEnum):
    """Position error codes as reported by the phone's geolocation API."""

    permission_denied = 1
    position_unavailable = 2
    timeout = 3


class CompanionError(Exception):
    """Base class for failures that degrade a cycle instead of aborting it."""

    kind: ErrorKind

    def __init__(self, kind: ErrorKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message


class LocationError(CompanionError):

    def __init__(self, code: PositionErrorCode | int, message: str) -> None:
        code = PositionErrorCode(code)
        kind = (
            ErrorKind.geolocation_timeout
            if code is PositionErrorCode.timeout
            else ErrorKind.geolocation_unavailable
        )
        super().__init__(kind, message)
        self.code = code


class WeatherFetchError(CompanionError):

    def __init__(
        self, kind: ErrorKind, message: str, status_code: Optional[int] = None
    ) -> None:
        super().__init__(kind, message)
        self.status_code = status_code
