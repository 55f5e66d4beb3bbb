"""Exception types raised by the tracking engine and its collaborators."""

from __future__ import annotations

from enum import Enum


class TrackingError(Exception):
    """Base class for all tracking errors."""


class TrackingStateError(TrackingError):
    """An operation was requested in a lifecycle state that does not allow it."""


class PositionErrorKind(Enum):
    PERMISSION_DENIED = "permission_denied"
    UNAVAILABLE = "unavailable"
    TIMEOUT = "timeout"


_MESSAGES = {
    PositionErrorKind.PERMISSION_DENIED: "location permission denied",
    PositionErrorKind.UNAVAILABLE: "position unavailable, check GPS signal",
    PositionErrorKind.TIMEOUT: "timed out acquiring position",
}


class PositionError(TrackingError):
    """Failure reported by a position source."""

    def __init__(self, kind: PositionErrorKind, detail: str = ""):
        self.kind = kind
        self.detail = detail
        message = _MESSAGES[kind]
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class DirectoryError(TrackingError):
    """The proximity directory could not answer a query."""


class NmeaParseError(ValueError):
    """A sentence could not be parsed as NMEA 0183."""
