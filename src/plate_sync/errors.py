from __future__ import annotations

from typing import Optional


class PlateSyncError(Exception):
    """
    Base error for the sync service.

    `source` is the camera name when the error is tied to one camera, so log
    lines can always say which camera was involved.
    """

    def __init__(self, message: str, *, source: Optional[str] = None) -> None:
        self.message = message
        self.source = source
        super().__init__(message)


class ConfigurationError(PlateSyncError):
    """Settings or camera list are unusable (startup only)."""


class DeviceError(PlateSyncError):
    """Base for failures talking to a camera."""


class DeviceUnreachable(DeviceError):
    """Network failure or timeout while calling the camera."""


class DeviceProtocolError(DeviceError):
    """Camera answered with a non-success HTTP status."""

    def __init__(self, message: str, *, status_code: int, source: Optional[str] = None) -> None:
        super().__init__(message, source=source)
        self.status_code = status_code


class MalformedResponse(PlateSyncError):
    """Camera answer is not well-formed XML."""


class MalformedEvent(PlateSyncError):
    """One <Plate> record is missing a field or carries a bad value."""


class MalformedTimestamp(MalformedEvent):
    """captureTime could not be decoded."""


class StoreUnavailable(PlateSyncError):
    """Read or write against the database failed."""
