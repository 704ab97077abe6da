"""Realtime change-feed subscription.

Speaks the Phoenix channel protocol used by Supabase Realtime over an
aiohttp websocket: join the channel with a ``postgres_changes`` filter for
the participants table, keep the socket alive with heartbeats, and hand
every decoded change to a callback on the event loop. Dropped sockets are
reconnected; each successful (re)join is reported so the caller can resync.
"""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import itertools
import json
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlencode

import aiohttp
from pydantic import ValidationError

from pylivetrack._redact import redact_for_log, redact_url
from pylivetrack.config import TrackerConfig
from pylivetrack.exceptions import RealtimeJoinError, TrackerTransportError
from pylivetrack.models.change import PostgresChange

_logger = logging.getLogger(__name__)

PHOENIX_TOPIC = "phoenix"
ALL_CHANGES = "*"


@dataclass(frozen=True)
class RealtimeMessage:
    """Decoded Phoenix frame."""

    topic: str
    event: str
    payload: dict[str, Any]
    ref: str | None = None


def channel_topic(config: TrackerConfig) -> str:
    return f"realtime:{config.channel}"


def build_join_message(config: TrackerConfig, ref: str, *, event: str = ALL_CHANGES) -> dict[str, Any]:
    return {
        "topic": channel_topic(config),
        "event": "phx_join",
        "payload": {
            "config": {
                "broadcast": {"ack": False, "self": False},
                "presence": {"key": ""},
                "postgres_changes": [{"event": event, "schema": config.schema, "table": config.table}],
                "private": False,
            },
            "access_token": config.supabase_key,
        },
        "ref": ref,
        "join_ref": ref,
    }


def realtime_connect_url(config: TrackerConfig) -> str:
    """Websocket URL including the URL-encoded API key."""
    return f"{config.realtime_url}&{urlencode({'apikey': config.supabase_key})}"


def build_heartbeat_message(ref: str) -> dict[str, Any]:
    return {"topic": PHOENIX_TOPIC, "event": "heartbeat", "payload": {}, "ref": ref}


def build_leave_message(config: TrackerConfig, ref: str) -> dict[str, Any]:
    return {"topic": channel_topic(config), "event": "phx_leave", "payload": {}, "ref": ref}


def parse_realtime_message(raw: Any) -> RealtimeMessage | None:
    if not isinstance(raw, dict):
        return None
    topic = raw.get("topic")
    event = raw.get("event")
    if not isinstance(topic, str) or not isinstance(event, str):
        return None
    payload = raw.get("payload")
    ref = raw.get("ref")
    return RealtimeMessage(
        topic=topic,
        event=event,
        payload=payload if isinstance(payload, dict) else {},
        ref=str(ref) if ref is not None else None,
    )


def extract_change(message: RealtimeMessage, *, table: str | None = None) -> PostgresChange | None:
    """Return the change carried by a ``postgres_changes`` frame, if any."""
    if message.event != "postgres_changes":
        return None
    data = message.payload.get("data")
    if not isinstance(data, dict):
        return None
    try:
        change = PostgresChange.model_validate(data)
    except ValidationError:
        _logger.debug("Malformed change frame: %s", redact_for_log(data), exc_info=True)
        return None
    if table is not None and change.table and change.table != table:
        return None
    return change


class RealtimeSubscription:
    """Long-running websocket subscription to table changes."""

    def __init__(
        self,
        *,
        config: TrackerConfig,
        http: aiohttp.ClientSession,
        on_change: Callable[[PostgresChange], None],
        on_join: Callable[[bool], Awaitable[None] | None] | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._config = config
        self._http = http
        self._on_change = on_change
        self._on_join = on_join
        self._logger = logger or _logger
        self._refs = itertools.count(1)
        self._task: asyncio.Task[None] | None = None
        self._ws: aiohttp.ClientWebSocketResponse | None = None
        self._join_ref: str | None = None
        self._pending_heartbeat: str | None = None
        self._joined = False
        self._join_count = 0
        self._stopping = False
        self.error: BaseException | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def is_joined(self) -> bool:
        return self._joined

    def _next_ref(self) -> str:
        return str(next(self._refs))

    def start(self) -> None:
        """Start the connect/read loop on the running loop (idempotent)."""
        if self.is_running:
            return
        self._stopping = False
        self.error = None
        self._task = asyncio.get_running_loop().create_task(self._run(), name="pylivetrack-realtime")

    async def stop(self) -> None:
        """Leave the channel, close the socket and cancel the loop."""
        self._stopping = True
        ws = self._ws
        if ws is not None and not ws.closed:
            if self._joined:
                with contextlib.suppress(Exception):
                    await ws.send_json(build_leave_message(self._config, self._next_ref()))
            await ws.close()
        task = self._task
        self._task = None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._joined = False
        self._logger.debug("Realtime subscription stopped")

    async def _run(self) -> None:
        while not self._stopping:
            try:
                await self._connect_once()
            except asyncio.CancelledError:
                raise
            except RealtimeJoinError as exc:
                self._logger.error("Realtime channel join rejected: %s", exc)
                self.error = exc
                return
            except (aiohttp.ClientError, TrackerTransportError, TimeoutError) as exc:
                self._logger.warning("Realtime connection lost: %s", exc)
            finally:
                self._joined = False
                self._ws = None
            if self._stopping:
                return
            await asyncio.sleep(self._config.reconnect_delay)

    async def _connect_once(self) -> None:
        url = realtime_connect_url(self._config)
        self._pending_heartbeat = None
        self._logger.debug("Realtime connecting to %s", redact_url(url))
        async with self._http.ws_connect(url, heartbeat=None) as ws:
            self._ws = ws
            self._join_ref = self._next_ref()
            join = build_join_message(self._config, self._join_ref)
            self._logger.debug("Realtime join %s", redact_for_log(join))
            await ws.send_json(join)

            heartbeat = asyncio.create_task(self._heartbeat_loop(ws))
            try:
                async for msg in ws:
                    if msg.type == aiohttp.WSMsgType.TEXT:
                        try:
                            raw = json.loads(msg.data)
                        except json.JSONDecodeError:
                            self._logger.debug("Non-JSON realtime frame dropped")
                            continue
                        await self._handle(raw)
                    elif msg.type == aiohttp.WSMsgType.ERROR:
                        raise TrackerTransportError(f"Websocket error: {ws.exception()}", endpoint="realtime")
                    elif msg.type in (aiohttp.WSMsgType.CLOSE, aiohttp.WSMsgType.CLOSED, aiohttp.WSMsgType.CLOSING):
                        break
            finally:
                heartbeat.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await heartbeat
        if not self._stopping:
            raise TrackerTransportError("Websocket closed by server", endpoint="realtime")

    async def _heartbeat_loop(self, ws: aiohttp.ClientWebSocketResponse) -> None:
        while not ws.closed:
            await asyncio.sleep(self._config.heartbeat_interval)
            if self._pending_heartbeat is not None:
                self._logger.warning("Realtime heartbeat %s unanswered; reconnecting", self._pending_heartbeat)
                self._pending_heartbeat = None
                await ws.close()
                return
            ref = self._next_ref()
            self._pending_heartbeat = ref
            await ws.send_json(build_heartbeat_message(ref))

    async def _handle(self, raw: Any) -> None:
        message = parse_realtime_message(raw)
        if message is None:
            self._logger.debug("Unrecognized realtime frame: %s", redact_for_log(raw))
            return

        if message.event == "phx_reply":
            await self._handle_reply(message)
            return

        if message.topic != channel_topic(self._config):
            return

        if message.event == "postgres_changes":
            change = extract_change(message, table=self._config.table)
            if change is None:
                return
            try:
                self._on_change(change)
            except Exception:
                self._logger.warning("Change handler failed", exc_info=True)
        elif message.event in ("phx_error", "phx_close"):
            raise TrackerTransportError(f"Channel {message.event}", endpoint="realtime")
        elif message.event == "system":
            status = message.payload.get("status")
            if status == "error":
                self._logger.warning("Realtime system error: %s", message.payload.get("message"))
            else:
                self._logger.debug("Realtime system message: %s", message.payload.get("message"))

    async def _handle_reply(self, message: RealtimeMessage) -> None:
        if message.topic == PHOENIX_TOPIC:
            if message.ref == self._pending_heartbeat:
                self._pending_heartbeat = None
            return
        if message.ref != self._join_ref or self._joined:
            return
        status = message.payload.get("status")
        if status != "ok":
            response = message.payload.get("response")
            reason = response.get("reason") if isinstance(response, dict) else response
            raise RealtimeJoinError(f"Join rejected: {reason}", code=str(status or ""), endpoint="realtime")

        self._joined = True
        rejoined = self._join_count > 0
        self._join_count += 1
        self._logger.debug("Realtime channel %s joined (rejoin=%s)", channel_topic(self._config), rejoined)
        if self._on_join is None:
            return
        try:
            result = self._on_join(rejoined)
            if inspect.isawaitable(result):
                await result
        except Exception:
            self._logger.warning("Realtime join callback failed", exc_info=True)
