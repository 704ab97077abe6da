"""Tracker configuration for pylivetrack."""

from __future__ import annotations

import dataclasses
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any
from urllib.parse import urlsplit, urlunsplit

from pylivetrack._constants import (
    DEFAULT_CENTER,
    DEFAULT_CHANNEL,
    DEFAULT_DIMMED_OPACITY,
    DEFAULT_HEARTBEAT_INTERVAL,
    DEFAULT_LOGIN_DURATION,
    DEFAULT_RECONNECT_DELAY,
    DEFAULT_SCHEMA,
    DEFAULT_STALE_AFTER,
    DEFAULT_SWEEP_INTERVAL,
    DEFAULT_TABLE,
    DEFAULT_ZOOM,
    REALTIME_PATH,
    REALTIME_VSN,
    REST_PATH,
)
from pylivetrack.exceptions import TrackerConfigError
from pylivetrack.models.layer import (
    DEFAULT_POINTS,
    DEFAULT_ROUTES,
    ParticipantStyle,
    PointLayerConfig,
    RouteLayerConfig,
)

DEFAULT_LOGIN_STATE_PATH = Path.home() / ".pylivetrack" / "login.json"
DEFAULT_BASEMAP_URL = "https://tile.openstreetmap.org/{z}/{x}/{y}.png"


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _env_float(env: Mapping[str, str], key: str) -> float | None:
    raw = env.get(key)
    if raw is None or not raw.strip():
        return None
    try:
        return float(raw)
    except ValueError as exc:
        raise TrackerConfigError(f"{key} must be a number, got {raw!r}") from exc


@dataclasses.dataclass(frozen=True)
class TrackerConfig:
    """Tracker configuration.

    Parameters
    ----------
    supabase_url : str
        Project base URL (``https://<ref>.supabase.co``).
    supabase_key : str
        Anon/public API key used for REST and realtime.
    event_code : str or None
        Shared event code for the gate. ``None`` disables the gate
        (development mode).
    table : str
        Participants table name.
    schema : str
        Database schema of the table.
    channel : str
        Realtime channel name.
    login_duration : float
        Seconds a successful gate check stays valid.
    stale_after : float
        Seconds after which a participant position is no longer shown.
    sweep_interval : float
        Seconds between expiry sweeps.
    heartbeat_interval : float
        Seconds between realtime heartbeats.
    reconnect_delay : float
        Seconds to wait before reconnecting a dropped realtime socket.
    realtime_enabled : bool
        Subscribe to the change feed after the initial snapshot.
    login_state_path : Path or None
        File holding the last login timestamp. ``None`` keeps it in memory.
    http_timeout : float
        Total timeout for REST requests, in seconds.
    center : tuple of float
        Initial view center as (lon, lat).
    zoom : float
        Initial view zoom level.
    basemap_url : str
        XYZ tile URL template of the basemap.
    routes : tuple of RouteLayerConfig
        Route overlays.
    points : tuple of PointLayerConfig
        Start/finish overlays.
    participant_style : ParticipantStyle
        Marker style.
    dimmed_opacity : float
        Opacity of route layers excluded by the category filter.
    web_mercator : bool
        Project surface geometries to EPSG:3857.
    """

    supabase_url: str
    supabase_key: str
    event_code: str | None = None
    table: str = DEFAULT_TABLE
    schema: str = DEFAULT_SCHEMA
    channel: str = DEFAULT_CHANNEL
    login_duration: float = DEFAULT_LOGIN_DURATION
    stale_after: float = DEFAULT_STALE_AFTER
    sweep_interval: float = DEFAULT_SWEEP_INTERVAL
    heartbeat_interval: float = DEFAULT_HEARTBEAT_INTERVAL
    reconnect_delay: float = DEFAULT_RECONNECT_DELAY
    realtime_enabled: bool = True
    login_state_path: Path | None = DEFAULT_LOGIN_STATE_PATH
    http_timeout: float = 15.0
    center: tuple[float, float] = DEFAULT_CENTER
    zoom: float = DEFAULT_ZOOM
    basemap_url: str = DEFAULT_BASEMAP_URL
    routes: tuple[RouteLayerConfig, ...] = DEFAULT_ROUTES
    points: tuple[PointLayerConfig, ...] = DEFAULT_POINTS
    participant_style: ParticipantStyle = dataclasses.field(default_factory=ParticipantStyle)
    dimmed_opacity: float = DEFAULT_DIMMED_OPACITY
    web_mercator: bool = False

    def __post_init__(self) -> None:
        parts = urlsplit(self.supabase_url)
        if parts.scheme not in {"http", "https"} or not parts.netloc:
            raise TrackerConfigError(f"supabase_url must be an http(s) URL, got {self.supabase_url!r}")
        if not self.supabase_key:
            raise TrackerConfigError("supabase_key is required")
        if self.event_code is not None and not self.event_code.strip():
            object.__setattr__(self, "event_code", None)
        for name in ("login_duration", "stale_after", "sweep_interval", "heartbeat_interval"):
            if getattr(self, name) <= 0:
                raise TrackerConfigError(f"{name} must be positive, got {getattr(self, name)}")
        if self.reconnect_delay < 0:
            raise TrackerConfigError(f"reconnect_delay must not be negative, got {self.reconnect_delay}")
        if not 0.0 <= self.dimmed_opacity <= 1.0:
            raise TrackerConfigError(f"dimmed_opacity must be within [0, 1], got {self.dimmed_opacity}")
        if isinstance(self.login_state_path, str):
            object.__setattr__(self, "login_state_path", Path(self.login_state_path).expanduser())

    @property
    def base_url(self) -> str:
        return self.supabase_url.rstrip("/")

    @property
    def rest_url(self) -> str:
        return f"{self.base_url}{REST_PATH}/{self.table}"

    @property
    def realtime_url(self) -> str:
        """Websocket URL of the realtime endpoint (without the API key)."""
        parts = urlsplit(self.base_url)
        scheme = "wss" if parts.scheme == "https" else "ws"
        path = f"{parts.path.rstrip('/')}{REALTIME_PATH}"
        return urlunsplit((scheme, parts.netloc, path, f"vsn={REALTIME_VSN}", ""))

    @property
    def gate_enabled(self) -> bool:
        return self.event_code is not None

    @classmethod
    def from_env(cls, **overrides: Any) -> TrackerConfig:
        """Create configuration from environment variables.

        Reads ``LIVETRACK_SUPABASE_URL``, ``LIVETRACK_SUPABASE_KEY`` and the
        optional ``LIVETRACK_*`` variables. Explicit keyword arguments
        override environment values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        TrackerConfig
            Populated configuration.

        Raises
        ------
        TrackerConfigError
            When the URL or key is missing, or a numeric variable is invalid.
        """
        env = os.environ

        _ENV_CONFIG_MAP = {
            "LIVETRACK_SUPABASE_URL": "supabase_url",
            "LIVETRACK_SUPABASE_KEY": "supabase_key",
            "LIVETRACK_EVENT_CODE": "event_code",
            "LIVETRACK_TABLE": "table",
            "LIVETRACK_SCHEMA": "schema",
            "LIVETRACK_CHANNEL": "channel",
        }
        config_kwargs: dict[str, Any] = {}
        for env_key, field_name in _ENV_CONFIG_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        _ENV_FLOAT_MAP = {
            "LIVETRACK_LOGIN_DURATION": "login_duration",
            "LIVETRACK_STALE_AFTER": "stale_after",
            "LIVETRACK_SWEEP_INTERVAL": "sweep_interval",
            "LIVETRACK_HEARTBEAT_INTERVAL": "heartbeat_interval",
            "LIVETRACK_RECONNECT_DELAY": "reconnect_delay",
            "LIVETRACK_HTTP_TIMEOUT": "http_timeout",
        }
        for env_key, field_name in _ENV_FLOAT_MAP.items():
            if field_name in overrides:
                continue
            parsed = _env_float(env, env_key)
            if parsed is not None:
                config_kwargs[field_name] = parsed

        if "realtime_enabled" not in overrides:
            config_kwargs["realtime_enabled"] = _env_bool(env.get("LIVETRACK_REALTIME_ENABLED"), True)

        if "web_mercator" not in overrides:
            config_kwargs["web_mercator"] = _env_bool(env.get("LIVETRACK_WEB_MERCATOR"), False)

        state_path = env.get("LIVETRACK_LOGIN_STATE_PATH")
        if state_path is not None and "login_state_path" not in overrides:
            config_kwargs["login_state_path"] = Path(state_path).expanduser() if state_path.strip() else None

        config_kwargs.update(overrides)

        for required in ("supabase_url", "supabase_key"):
            if not config_kwargs.get(required):
                raise TrackerConfigError(f"Missing required setting {required} (LIVETRACK_{required.upper()})")

        return cls(**config_kwargs)
