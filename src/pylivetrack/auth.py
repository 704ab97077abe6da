"""Event-code gate with a locally persisted login timestamp."""

from __future__ import annotations

import hmac
import json
import logging
import time
from collections.abc import Callable
from pathlib import Path
from typing import Protocol

from pylivetrack._constants import DEFAULT_LOGIN_DURATION
from pylivetrack.exceptions import GateLockedError, InvalidEventCodeError

_logger = logging.getLogger(__name__)

STORAGE_KEY = "tri_login_timestamp"


class LoginStateStore(Protocol):
    """Where the last successful login time (epoch seconds) is kept."""

    def load(self) -> float | None: ...
    def save(self, timestamp: float) -> None: ...
    def clear(self) -> None: ...


class MemoryLoginStore:
    def __init__(self, timestamp: float | None = None) -> None:
        self._timestamp = timestamp

    def load(self) -> float | None:
        return self._timestamp

    def save(self, timestamp: float) -> None:
        self._timestamp = timestamp

    def clear(self) -> None:
        self._timestamp = None


class FileLoginStore:
    """JSON file store; unreadable or corrupt files count as "not logged in"."""

    def __init__(self, path: Path) -> None:
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> float | None:
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, ValueError):
            _logger.debug("Unreadable login state at %s", self._path, exc_info=True)
            return None
        value = data.get(STORAGE_KEY) if isinstance(data, dict) else None
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return None
        return float(value)

    def save(self, timestamp: float) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(json.dumps({STORAGE_KEY: timestamp}), encoding="utf-8")

    def clear(self) -> None:
        self._path.unlink(missing_ok=True)


class AuthGate:
    """Shared-secret gate in front of the map view.

    Without an event code the gate is open (development mode). A
    successful login is valid for ``login_duration`` seconds, measured
    from the last login or the last view start, whichever is later.
    """

    def __init__(
        self,
        event_code: str | None,
        *,
        store: LoginStateStore | None = None,
        login_duration: float = DEFAULT_LOGIN_DURATION,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._event_code = event_code or None
        self._store = store or MemoryLoginStore()
        self._login_duration = login_duration
        self._clock = clock

    @property
    def enabled(self) -> bool:
        return self._event_code is not None

    def expires_at(self) -> float | None:
        last_login = self._store.load()
        if last_login is None:
            return None
        return last_login + self._login_duration

    def is_authenticated(self) -> bool:
        if not self.enabled:
            return True
        last_login = self._store.load()
        if last_login is None:
            return False
        return self._clock() - last_login < self._login_duration

    def login(self, code: str) -> None:
        """Check *code* and start a login window.

        Raises
        ------
        InvalidEventCodeError
            When the code does not match.
        """
        if not self.enabled:
            return
        assert self._event_code is not None  # noqa: S101
        if not hmac.compare_digest(code.strip().encode(), self._event_code.encode()):
            _logger.info("Rejected event code")
            raise InvalidEventCodeError("Invalid code")
        self._store.save(self._clock())
        _logger.debug("Gate opened for %.0fs", self._login_duration)

    def require(self) -> None:
        """Raise :class:`GateLockedError` unless the gate is open."""
        if not self.is_authenticated():
            raise GateLockedError("Event code required")

    def touch(self) -> None:
        """Restart the login window (called whenever the map view starts)."""
        if self.enabled and self.is_authenticated():
            self._store.save(self._clock())

    def logout(self) -> None:
        self._store.clear()
