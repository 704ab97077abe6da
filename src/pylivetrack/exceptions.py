"""Custom exception hierarchy for pylivetrack."""

from __future__ import annotations


class LiveTrackError(Exception):
    """Base exception for all pylivetrack errors."""


class TrackerConfigError(LiveTrackError):
    """Invalid or missing configuration."""


class TrackerTransportError(LiveTrackError):
    """HTTP or websocket failure (network, non-200, invalid JSON)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        endpoint: str = "",
    ) -> None:
        self.status_code = status_code
        self.endpoint = endpoint
        super().__init__(message)


class TrackerApiError(LiveTrackError):
    """Upstream answered with an error payload or an unexpected shape."""

    def __init__(
        self,
        message: str,
        *,
        code: str = "",
        endpoint: str = "",
    ) -> None:
        self.code = code
        self.endpoint = endpoint
        super().__init__(message)


class RealtimeJoinError(TrackerApiError):
    """The realtime server refused to join the change channel."""


class GateError(LiveTrackError):
    """Base for authentication gate failures."""


class InvalidEventCodeError(GateError):
    """The entered event code does not match."""


class GateLockedError(GateError):
    """The map view was started without a valid login."""


class LayerLoadError(LiveTrackError):
    """A static route/point layer could not be loaded."""

    def __init__(self, message: str, *, source: str = "") -> None:
        self.source = source
        super().__init__(message)


class SurfaceError(LiveTrackError):
    """Invalid operation on the map rendering surface (unknown layer, duplicate feature)."""
