"""Screenshot collaborator.

Bitmap capture is out of scope; the placeholder capturer only tracks which
sessions are capturable and hands back the reference a real capture would
be stored under. Sessions are tracked from orchestrator status changes:
registered on Connecting, dropped on Disconnected or Failed.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Protocol

from .commands import ScreenshotMode
from .errors import NotFoundError, ValidationError
from .sessions import SessionOrchestrator, SessionRecord, SessionStatus, StatusChange
from .settings import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScreenshotResult:
    session_id: str
    mode: ScreenshotMode
    reference: str
    captured_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "mode": self.mode.value,
            "reference": self.reference,
            "captured_at": self.captured_at.isoformat(),
        }


class ScreenshotCapturer(Protocol):
    def capture(self, session: SessionRecord, mode: ScreenshotMode) -> ScreenshotResult:
        """Capture ``session``; raise an RdpilotError when it cannot be captured."""
        ...


class PlaceholderCapturer:
    """Capturer that records intent without grabbing pixels."""

    def __init__(self, output_dir: Path | None = None) -> None:
        self.output_dir = output_dir or (settings.data_dir / "screenshots")
        self._lock = threading.Lock()
        self._tracked: set[str] = set()
        self._unsubscribe = None

    def attach(self, orchestrator: SessionOrchestrator) -> None:
        self._unsubscribe = orchestrator.add_listener(self.on_status_change)

    def detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def on_status_change(self, change: StatusChange) -> None:
        with self._lock:
            if change.new_status is SessionStatus.CONNECTING:
                self._tracked.add(change.session_id)
            elif change.new_status.is_terminal:
                self._tracked.discard(change.session_id)

    def tracked_sessions(self) -> set[str]:
        with self._lock:
            return set(self._tracked)

    def capture(self, session: SessionRecord, mode: ScreenshotMode) -> ScreenshotResult:
        with self._lock:
            tracked = session.id in self._tracked
        if not tracked:
            raise NotFoundError(
                f"Session {session.display_name} is not available for capture",
                resource_type="session",
                resource_id=session.id,
            )
        if session.status is not SessionStatus.CONNECTED:
            raise ValidationError(
                f"Session {session.display_name} is {session.status.value.lower()}, not connected",
                field="sessionId",
                constraint="connected",
            )

        stamp = datetime.now(UTC)
        name = f"rdpilot_{mode.value}_{session.id}_{stamp:%Y%m%d_%H%M%S}.png"
        reference = str(self.output_dir / name)
        logger.info("Screenshot of %s (%s) -> %s", session.id, mode.value, reference)
        return ScreenshotResult(session_id=session.id, mode=mode, reference=reference, captured_at=stamp)
