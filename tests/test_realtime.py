from __future__ import annotations

import asyncio
import json
from types import SimpleNamespace
from typing import Any

import aiohttp
import pytest

from pylivetrack.config import TrackerConfig
from pylivetrack.exceptions import RealtimeJoinError, TrackerTransportError
from pylivetrack.ingestion.realtime import (
    RealtimeSubscription,
    build_heartbeat_message,
    build_join_message,
    build_leave_message,
    channel_topic,
    extract_change,
    parse_realtime_message,
    realtime_connect_url,
)
from pylivetrack.models.change import ChangeType, PostgresChange


def _config(**overrides: Any) -> TrackerConfig:
    return TrackerConfig(
        supabase_url="https://demo.supabase.co",
        supabase_key="anon-key",
        login_state_path=None,
        reconnect_delay=0,
        **overrides,
    )


def _change_frame(record: dict[str, Any], *, table: str = "participants", change_type: str = "UPDATE") -> dict:
    return {
        "topic": "realtime:tracking",
        "event": "postgres_changes",
        "payload": {
            "data": {
                "schema": "public",
                "table": table,
                "type": change_type,
                "commit_timestamp": "2026-05-17T09:30:00Z",
                "record": record,
                "old_record": {"id": record.get("id")},
            },
            "ids": [1],
        },
        "ref": None,
    }


def _reply(ref: str, status: str = "ok", *, topic: str = "realtime:tracking", response: Any = None) -> dict:
    return {"topic": topic, "event": "phx_reply", "payload": {"status": status, "response": response or {}}, "ref": ref}


def _subscription(**kwargs: Any) -> tuple[RealtimeSubscription, list[PostgresChange], list[bool]]:
    changes: list[PostgresChange] = []
    joins: list[bool] = []
    sub = RealtimeSubscription(
        config=kwargs.pop("config", _config()),
        http=kwargs.pop("http", None),  # type: ignore[arg-type]
        on_change=kwargs.pop("on_change", changes.append),
        on_join=joins.append,
    )
    return sub, changes, joins


def test_join_message_subscribes_to_table_changes() -> None:
    config = _config(table="runners", channel="live")

    join = build_join_message(config, "1")

    assert join["topic"] == "realtime:live"
    assert join["event"] == "phx_join"
    assert join["ref"] == join["join_ref"] == "1"
    assert join["payload"]["access_token"] == "anon-key"
    assert join["payload"]["config"]["postgres_changes"] == [{"event": "*", "schema": "public", "table": "runners"}]


def test_heartbeat_and_leave_messages() -> None:
    assert build_heartbeat_message("5") == {"topic": "phoenix", "event": "heartbeat", "payload": {}, "ref": "5"}
    assert build_leave_message(_config(), "6")["event"] == "phx_leave"
    assert channel_topic(_config()) == "realtime:tracking"


def test_realtime_url_uses_websocket_scheme() -> None:
    assert _config().realtime_url == "wss://demo.supabase.co/realtime/v1/websocket?vsn=1.0.0"
    local = TrackerConfig(supabase_url="http://localhost:54321", supabase_key="k", login_state_path=None)
    assert local.realtime_url.startswith("ws://localhost:54321/")


def test_parse_rejects_malformed_frames() -> None:
    assert parse_realtime_message([]) is None
    assert parse_realtime_message({"topic": "x"}) is None
    message = parse_realtime_message({"topic": "x", "event": "y", "payload": None, "ref": 3})
    assert message is not None
    assert message.payload == {}
    assert message.ref == "3"


def test_extract_change_filters_by_table() -> None:
    ours = parse_realtime_message(_change_frame({"id": 1, "latitude": 51.0}))
    other = parse_realtime_message(_change_frame({"id": 1}, table="results"))
    assert ours is not None and other is not None

    change = extract_change(ours, table="participants")

    assert change is not None
    assert change.change_type == ChangeType.UPDATE
    assert change.record["latitude"] == 51.0
    assert extract_change(other, table="participants") is None


def test_extract_change_drops_frames_without_change_type() -> None:
    frame = _change_frame({"id": 1})
    del frame["payload"]["data"]["type"]
    message = parse_realtime_message(frame)
    assert message is not None

    assert extract_change(message) is None


@pytest.mark.asyncio
async def test_change_frames_reach_the_callback() -> None:
    sub, changes, _ = _subscription()

    await sub._handle(_change_frame({"id": 7, "latitude": 51.9, "longitude": 7.7}))  # type: ignore[attr-defined]
    other_topic = {"topic": "realtime:other", "event": "postgres_changes", "payload": {}}
    await sub._handle(other_topic)  # type: ignore[attr-defined]

    assert len(changes) == 1
    assert changes[0].record["id"] == 7


@pytest.mark.asyncio
async def test_failing_change_callback_is_contained() -> None:
    def _boom(_: PostgresChange) -> None:
        raise RuntimeError("handler failed")

    sub, _, _ = _subscription(on_change=_boom)

    await sub._handle(_change_frame({"id": 7}))  # type: ignore[attr-defined]


@pytest.mark.asyncio
async def test_join_reply_marks_channel_joined_and_tracks_rejoins() -> None:
    sub, _, joins = _subscription()

    sub._join_ref = "1"  # type: ignore[attr-defined]
    await sub._handle(_reply("1"))  # type: ignore[attr-defined]
    assert sub.is_joined
    # Duplicate replies are ignored.
    await sub._handle(_reply("1"))  # type: ignore[attr-defined]

    sub._joined = False  # type: ignore[attr-defined]
    sub._join_ref = "4"  # type: ignore[attr-defined]
    await sub._handle(_reply("4"))  # type: ignore[attr-defined]

    assert joins == [False, True]


@pytest.mark.asyncio
async def test_join_rejection_raises() -> None:
    sub, _, joins = _subscription()
    sub._join_ref = "1"  # type: ignore[attr-defined]

    with pytest.raises(RealtimeJoinError) as exc_info:
        await sub._handle(_reply("1", "error", response={"reason": "invalid table"}))  # type: ignore[attr-defined]

    assert "invalid table" in str(exc_info.value)
    assert joins == []


@pytest.mark.asyncio
async def test_heartbeat_reply_clears_pending_ref() -> None:
    sub, _, _ = _subscription()
    sub._pending_heartbeat = "9"  # type: ignore[attr-defined]

    await sub._handle(_reply("9", topic="phoenix"))  # type: ignore[attr-defined]

    assert sub._pending_heartbeat is None  # type: ignore[attr-defined]


@pytest.mark.asyncio
async def test_channel_error_raises_transport_error() -> None:
    sub, _, _ = _subscription()

    with pytest.raises(TrackerTransportError):
        await sub._handle({"topic": "realtime:tracking", "event": "phx_error"})  # type: ignore[attr-defined]


def _text(frame: dict[str, Any]) -> SimpleNamespace:
    return SimpleNamespace(type=aiohttp.WSMsgType.TEXT, data=json.dumps(frame))


class _FakeWebSocket:
    """Replays frames, then stays open until closed.

    With *answer_heartbeats* every heartbeat gets an ok reply; with
    *drop_after_heartbeat* the socket closes right after the first one.
    """

    def __init__(
        self,
        frames: list[SimpleNamespace],
        *,
        answer_heartbeats: bool = False,
        drop_after_heartbeat: bool = False,
    ) -> None:
        self._queue: asyncio.Queue[SimpleNamespace | None] = asyncio.Queue()
        for frame in frames:
            self._queue.put_nowait(frame)
        self._answer_heartbeats = answer_heartbeats
        self._drop_after_heartbeat = drop_after_heartbeat
        self.sent: list[dict[str, Any]] = []
        self.closed = False

    async def send_json(self, data: dict[str, Any]) -> None:
        self.sent.append(data)
        if data["event"] != "heartbeat":
            return
        if self._drop_after_heartbeat:
            self._queue.put_nowait(SimpleNamespace(type=aiohttp.WSMsgType.CLOSED, data=None))
        elif self._answer_heartbeats:
            self._queue.put_nowait(_text(_reply(data["ref"], topic="phoenix")))

    async def close(self) -> None:
        self.closed = True
        self._queue.put_nowait(None)

    def exception(self) -> BaseException | None:
        return None

    def __aiter__(self) -> Any:
        return self._iterate()

    async def _iterate(self) -> Any:
        while True:
            frame = await self._queue.get()
            if frame is None:
                return
            yield frame

    async def __aenter__(self) -> _FakeWebSocket:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        self.closed = True

    def events(self) -> list[str]:
        return [frame["event"] for frame in self.sent]


class _FakeHttp:
    def __init__(self, sockets: list[_FakeWebSocket]) -> None:
        self._sockets = sockets
        self.urls: list[str] = []

    def ws_connect(self, url: str, **kwargs: Any) -> _FakeWebSocket:
        self.urls.append(url)
        return self._sockets.pop(0)


async def _wait_for(predicate: Any) -> None:
    for _ in range(200):
        if predicate():
            return
        await asyncio.sleep(0.01)
    raise AssertionError("condition not reached")


@pytest.mark.asyncio
async def test_subscription_reconnects_and_reports_rejoin() -> None:
    first = _FakeWebSocket(
        [
            _text(_reply("1")),
            _text(_change_frame({"id": 7, "latitude": 51.9, "longitude": 7.7})),
            SimpleNamespace(type=aiohttp.WSMsgType.CLOSED, data=None),
        ]
    )
    second = _FakeWebSocket([_text(_reply("2"))])
    http = _FakeHttp([first, second])
    sub, changes, joins = _subscription(http=http)

    sub.start()
    await _wait_for(lambda: joins == [False, True])
    await sub.stop()

    assert len(changes) == 1
    assert not sub.is_running
    assert http.urls[0].endswith("?vsn=1.0.0&apikey=anon-key")
    assert first.sent[0]["event"] == "phx_join"
    assert second.events() == ["phx_join", "phx_leave"]


@pytest.mark.asyncio
async def test_rejected_join_stops_the_subscription() -> None:
    socket = _FakeWebSocket([_text(_reply("1", "error", response={"reason": "not allowed"}))])
    sub, _, joins = _subscription(http=_FakeHttp([socket]))

    sub.start()
    await _wait_for(lambda: not sub.is_running)

    assert isinstance(sub.error, RealtimeJoinError)
    assert joins == []
    await sub.stop()


@pytest.mark.asyncio
async def test_unanswered_heartbeat_of_a_dropped_socket_does_not_close_the_next_one() -> None:
    # Refs: join "1", heartbeat "2" (then the socket drops), rejoin "3".
    first = _FakeWebSocket([_text(_reply("1"))], drop_after_heartbeat=True)
    second = _FakeWebSocket([_text(_reply("3"))], answer_heartbeats=True)
    http = _FakeHttp([first, second])
    sub, _, joins = _subscription(http=http, config=_config(heartbeat_interval=0.05))

    sub.start()
    await _wait_for(lambda: second.events().count("heartbeat") >= 2)
    await sub.stop()

    assert len(http.urls) == 2
    assert joins == [False, True]
    assert first.events() == ["phx_join", "heartbeat"]
    assert second.events()[:3] == ["phx_join", "heartbeat", "heartbeat"]


def test_connect_url_encodes_the_api_key() -> None:
    config = _config()
    url = realtime_connect_url(TrackerConfig(supabase_url="https://demo.supabase.co", supabase_key="a+b/c=&d"))

    assert url == "wss://demo.supabase.co/realtime/v1/websocket?vsn=1.0.0&apikey=a%2Bb%2Fc%3D%26d"
    assert realtime_connect_url(config).endswith("&apikey=anon-key")
