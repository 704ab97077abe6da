"""Internal constants shared across the library."""

USER_AGENT = "pylivetrack"
DEFAULT_TABLE = "participants"
DEFAULT_SCHEMA = "public"
DEFAULT_CHANNEL = "tracking"

#: Login validity after a successful gate check (10 minutes).
DEFAULT_LOGIN_DURATION: float = 10 * 60
#: Positions older than this are not shown.
DEFAULT_STALE_AFTER: float = 10 * 60
DEFAULT_SWEEP_INTERVAL: float = 30.0

# Phoenix channel protocol used by Supabase Realtime.
REALTIME_PATH = "/realtime/v1/websocket"
REALTIME_VSN = "1.0.0"
DEFAULT_HEARTBEAT_INTERVAL: float = 25.0
DEFAULT_RECONNECT_DELAY: float = 5.0

REST_PATH = "/rest/v1"

# ------------------------------------------------------------------
# Map view
# ------------------------------------------------------------------

DEFAULT_CENTER: tuple[float, float] = (7.785, 51.981)
"""Default view center as (lon, lat)."""
DEFAULT_ZOOM: float = 14.0

BASEMAP_Z_INDEX = 0
ROUTE_Z_INDEX = 1
POINT_Z_INDEX = 50
PARTICIPANT_Z_INDEX = 100

PARTICIPANT_LAYER_ID = "participants"
DEFAULT_DIMMED_OPACITY = 0.2
