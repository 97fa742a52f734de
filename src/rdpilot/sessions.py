"""Session Orchestrator.

Owns the authoritative registry of remote-desktop sessions and their
lifecycle:

    Disconnected -> Connecting -> Connected -> Disconnecting -> (removed)
    Connected -> Reconnecting -> Connecting
    any state -> Failed;  Failed / Disconnected -> Connecting (reconnect)

Key constraints:
- The registry is only reachable through accessor methods, which hand out
  copies; callers never hold the lock across calls.
- Status changes and their notifications happen under one lock, so every
  session's notification stream arrives in transition order.
- Connect attempts run as asyncio tasks bounded by a timeout. A cancelled
  attempt leaves the session Disconnected, a timed-out one Failed.
- Unknown ids and repeated disconnects return False / None, never raise.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Protocol
from uuid import uuid4

from .config import RDP_DEFAULTS, TIMEOUTS
from .settings import settings

logger = logging.getLogger(__name__)


class SessionStatus(Enum):
    DISCONNECTED = "Disconnected"
    CONNECTING = "Connecting"
    CONNECTED = "Connected"
    RECONNECTING = "Reconnecting"
    DISCONNECTING = "Disconnecting"
    FAILED = "Failed"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionStatus.DISCONNECTED, SessionStatus.FAILED)


def _now() -> datetime:
    return datetime.now(UTC)


def _new_id() -> str:
    return uuid4().hex[:12]


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


@dataclass
class ConnectionRequest:
    """Everything needed to open one session."""

    host: str
    username: str | None = None
    password: str | None = field(default=None, repr=False)
    port: int = RDP_DEFAULTS.PORT
    session_name: str | None = None
    width: int = RDP_DEFAULTS.WIDTH
    height: int = RDP_DEFAULTS.HEIGHT
    color_depth: int = RDP_DEFAULTS.COLOR_DEPTH
    full_screen: bool = False


@dataclass
class SessionRecord:
    id: str
    host: str
    port: int
    username: str | None
    session_name: str | None
    status: SessionStatus = SessionStatus.DISCONNECTED
    created_at: datetime = field(default_factory=_now)
    connected_at: datetime | None = None
    last_activity: datetime = field(default_factory=_now)
    error_message: str | None = None

    @property
    def display_name(self) -> str:
        return self.session_name or self.host

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "host": self.host,
            "port": self.port,
            "username": self.username,
            "session_name": self.session_name,
            "display_name": self.display_name,
            "status": self.status.value,
            "created_at": _iso(self.created_at),
            "connected_at": _iso(self.connected_at),
            "last_activity": _iso(self.last_activity),
            "error_message": self.error_message,
        }


@dataclass(frozen=True)
class StatusChange:
    """Notification payload for one status update."""

    session_id: str
    host: str
    old_status: SessionStatus
    new_status: SessionStatus
    error_message: str | None = None
    timestamp: datetime = field(default_factory=_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "host": self.host,
            "old_status": self.old_status.value,
            "new_status": self.new_status.value,
            "error_message": self.error_message,
            "timestamp": self.timestamp.isoformat(),
        }


StatusListener = Callable[[StatusChange], None]


class Connector(Protocol):
    """Transport that actually opens and closes sessions."""

    async def connect(self, record: SessionRecord, request: ConnectionRequest) -> None:
        """Return once connected; raise on failure."""
        ...

    async def disconnect(self, record: SessionRecord) -> None:
        ...


class SimulatedConnector:
    """Stand-in transport: waits ``delay`` seconds and reports success.

    Hosts listed in ``fail_hosts`` raise ConnectionError instead.
    """

    def __init__(self, delay: float | None = None, *, fail_hosts: set[str] | None = None) -> None:
        self.delay = settings.simulated_connect_delay if delay is None else delay
        self.fail_hosts = {h.lower() for h in (fail_hosts or set())}

    async def connect(self, record: SessionRecord, request: ConnectionRequest) -> None:
        await asyncio.sleep(self.delay)
        if record.host.lower() in self.fail_hosts:
            raise ConnectionError(f"Host {record.host} refused the connection")

    async def disconnect(self, record: SessionRecord) -> None:
        await asyncio.sleep(0)


class SessionOrchestrator:
    """Process-wide session registry and lifecycle driver."""

    def __init__(
        self,
        connector: Connector | None = None,
        *,
        connect_timeout: float = TIMEOUTS.CONNECT,
    ) -> None:
        self._connector: Connector = connector or SimulatedConnector()
        self._connect_timeout = connect_timeout
        self._lock = threading.RLock()
        self._sessions: dict[str, SessionRecord] = {}
        self._requests: dict[str, ConnectionRequest] = {}
        self._tasks: dict[str, asyncio.Task[None]] = {}
        self._listeners: list[StatusListener] = []

    # -------------------------------------------------------------------------
    # Notifications
    # -------------------------------------------------------------------------

    def add_listener(self, listener: StatusListener) -> Callable[[], None]:
        """Subscribe to status changes; returns an unsubscribe callable."""
        with self._lock:
            self._listeners.append(listener)
        return lambda: self.remove_listener(listener)

    def remove_listener(self, listener: StatusListener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def _emit(self, change: StatusChange) -> None:
        for listener in list(self._listeners):
            try:
                listener(change)
            except Exception:
                logger.exception("Status listener failed for session %s", change.session_id)

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get_session(self, session_id: str) -> SessionRecord | None:
        with self._lock:
            record = self._sessions.get(session_id)
            return replace(record) if record else None

    def sessions(self) -> list[SessionRecord]:
        """Copies of all sessions, oldest first."""
        with self._lock:
            return [replace(r) for r in self._sessions.values()]

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    # -------------------------------------------------------------------------
    # Status
    # -------------------------------------------------------------------------

    def update_status(
        self,
        session_id: str,
        status: SessionStatus,
        error_message: str | None = None,
    ) -> None:
        """Set a session's status and notify listeners. No-op for unknown ids."""
        with self._lock:
            self._set_status(session_id, status, error_message)

    def _set_status(
        self,
        session_id: str,
        status: SessionStatus,
        error_message: str | None = None,
    ) -> bool:
        # Caller holds self._lock.
        record = self._sessions.get(session_id)
        if record is None:
            return False
        old = record.status
        now = _now()
        record.status = status
        record.last_activity = now
        if status is SessionStatus.CONNECTED:
            record.connected_at = now
            record.error_message = None
        elif status is SessionStatus.FAILED:
            record.error_message = error_message or record.error_message or "Connection failed"
        elif status is SessionStatus.CONNECTING:
            record.error_message = None
        elif error_message:
            record.error_message = error_message

        if old is status:
            logger.debug("Session %s status refreshed: %s", session_id, status.value)
        else:
            logger.debug("Session %s: %s -> %s", session_id, old.value, status.value)
        self._emit(
            StatusChange(
                session_id=session_id,
                host=record.host,
                old_status=old,
                new_status=status,
                error_message=record.error_message if status is SessionStatus.FAILED else error_message,
                timestamp=now,
            )
        )
        return True

    def _transition_if(
        self,
        session_id: str,
        expected: set[SessionStatus],
        status: SessionStatus,
        error_message: str | None = None,
    ) -> bool:
        with self._lock:
            record = self._sessions.get(session_id)
            if record is None or record.status not in expected:
                return False
            return self._set_status(session_id, status, error_message)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def start_session(self, request: ConnectionRequest) -> str | None:
        """Register a session and begin connecting in the background.

        Returns the new session id, or None when the request is unusable
        (empty host or port out of range). Nothing is registered on rejection.
        """
        host = (request.host or "").strip()
        if not host:
            logger.warning("Rejected session request with empty host")
            return None
        if not RDP_DEFAULTS.MIN_PORT <= request.port <= RDP_DEFAULTS.MAX_PORT:
            logger.warning("Rejected session request for %s: bad port %s", host, request.port)
            return None

        session_id = _new_id()
        record = SessionRecord(
            id=session_id,
            host=host,
            port=request.port,
            username=request.username,
            session_name=request.session_name,
        )
        with self._lock:
            while session_id in self._sessions:
                session_id = _new_id()
                record.id = session_id
            self._sessions[session_id] = record
            self._requests[session_id] = replace(request, host=host)
            self._set_status(session_id, SessionStatus.CONNECTING)
            self._launch_connect(session_id)

        logger.info("Started session %s to %s:%d", session_id, host, request.port)
        return session_id

    def _launch_connect(self, session_id: str) -> None:
        # Caller holds self._lock.
        task = asyncio.get_running_loop().create_task(
            self._run_connect(session_id), name=f"rdpilot-connect-{session_id}"
        )
        self._tasks[session_id] = task

    async def _run_connect(self, session_id: str) -> None:
        record = self.get_session(session_id)
        with self._lock:
            request = self._requests.get(session_id)
        if record is None or request is None:
            return
        try:
            await asyncio.wait_for(
                self._connector.connect(record, request), timeout=self._connect_timeout
            )
        except asyncio.CancelledError:
            if self._transition_if(
                session_id,
                {SessionStatus.CONNECTING, SessionStatus.RECONNECTING},
                SessionStatus.DISCONNECTED,
            ):
                logger.info("Connect to %s cancelled", record.host)
            raise
        except TimeoutError:
            logger.warning(
                "Connect to %s timed out after %.1fs", record.host, self._connect_timeout
            )
            self._transition_if(
                session_id,
                {SessionStatus.CONNECTING, SessionStatus.RECONNECTING},
                SessionStatus.FAILED,
                f"Connection timed out after {self._connect_timeout:g}s",
            )
        except Exception as exc:
            logger.warning("Connect to %s failed: %s", record.host, exc)
            self._transition_if(
                session_id,
                {SessionStatus.CONNECTING, SessionStatus.RECONNECTING},
                SessionStatus.FAILED,
                str(exc) or type(exc).__name__,
            )
        else:
            if self._transition_if(session_id, {SessionStatus.CONNECTING}, SessionStatus.CONNECTED):
                logger.info("Session %s connected to %s", session_id, record.host)
        finally:
            with self._lock:
                if self._tasks.get(session_id) is asyncio.current_task():
                    del self._tasks[session_id]

    async def end_session(self, session_id: str) -> bool:
        """Disconnect and remove a session. False for unknown or already-ending ids."""
        with self._lock:
            record = self._sessions.get(session_id)
            if record is None or record.status is SessionStatus.DISCONNECTING:
                return False
            self._set_status(session_id, SessionStatus.DISCONNECTING)
            task = self._tasks.pop(session_id, None)
            snapshot = replace(record)

        if task is not None and not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

        try:
            await self._connector.disconnect(snapshot)
        except Exception as exc:
            logger.warning("Disconnect from %s reported an error: %s", snapshot.host, exc)

        with self._lock:
            self._set_status(session_id, SessionStatus.DISCONNECTED)
            self._sessions.pop(session_id, None)
            self._requests.pop(session_id, None)

        logger.info("Ended session %s (%s)", session_id, snapshot.host)
        return True

    async def disconnect_all_sessions(self) -> bool:
        """End every session; True only if every one ended cleanly."""
        ids = [r.id for r in self.sessions()]
        results = [await self.end_session(sid) for sid in ids]
        return all(results)

    async def reconnect_session(self, session_id: str) -> bool:
        """Start a fresh connect attempt for a Connected, Failed or Disconnected session."""
        with self._lock:
            record = self._sessions.get(session_id)
            if record is None:
                return False
            if record.status is SessionStatus.CONNECTED:
                self._set_status(session_id, SessionStatus.RECONNECTING)
            elif not record.status.is_terminal:
                return False
            self._set_status(session_id, SessionStatus.CONNECTING)
            self._launch_connect(session_id)

        logger.info("Reconnecting session %s to %s", session_id, record.host)
        return True

    async def cancel_connect(self, session_id: str) -> bool:
        """Abort an in-flight connect attempt, leaving the session Disconnected."""
        with self._lock:
            task = self._tasks.get(session_id)
        if task is None or task.done():
            return False
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        # A task cancelled before its first step never reaches its own handler.
        self._transition_if(
            session_id,
            {SessionStatus.CONNECTING, SessionStatus.RECONNECTING},
            SessionStatus.DISCONNECTED,
        )
        return True

    async def wait_for_connection(
        self, session_id: str, timeout: float | None = None
    ) -> SessionStatus | None:
        """Wait for the current connect attempt to settle; return the status."""
        with self._lock:
            task = self._tasks.get(session_id)
        if task is not None and not task.done():
            try:
                await asyncio.wait_for(asyncio.shield(task), timeout=timeout)
            except TimeoutError:
                pass
            except asyncio.CancelledError:
                if not task.cancelled():
                    raise
        record = self.get_session(session_id)
        return record.status if record else None

    async def shutdown(self) -> None:
        """Cancel pending connects and end every session."""
        with self._lock:
            tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        await self.disconnect_all_sessions()
        logger.info("Session orchestrator shut down")
