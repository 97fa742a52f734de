from __future__ import annotations

import asyncio

import pytest

from rdpilot.commands import ScreenshotMode
from rdpilot.errors import NotFoundError, ValidationError
from rdpilot.screenshots import PlaceholderCapturer
from rdpilot.sessions import ConnectionRequest, SessionOrchestrator, SessionRecord


def _open(orchestrator: SessionOrchestrator, host: str, *, settle: bool = True) -> SessionRecord:
    async def scenario() -> SessionRecord:
        sid = await orchestrator.start_session(ConnectionRequest(host=host))
        assert sid is not None
        if settle:
            await orchestrator.wait_for_connection(sid, timeout=1.0)
        record = orchestrator.get_session(sid)
        assert record is not None
        return record

    return asyncio.run(scenario())


class TestTracking:
    def test_connecting_session_is_tracked(
        self, orchestrator: SessionOrchestrator, capturer: PlaceholderCapturer
    ) -> None:
        record = _open(orchestrator, "a.example.com")
        assert record.id in capturer.tracked_sessions()

    def test_ended_session_is_untracked(
        self, orchestrator: SessionOrchestrator, capturer: PlaceholderCapturer
    ) -> None:
        record = _open(orchestrator, "a.example.com")
        asyncio.run(orchestrator.end_session(record.id))
        assert record.id not in capturer.tracked_sessions()

    def test_detach_stops_tracking(self, orchestrator: SessionOrchestrator, capturer: PlaceholderCapturer) -> None:
        capturer.detach()
        record = _open(orchestrator, "a.example.com")
        assert capturer.tracked_sessions() == set()
        with pytest.raises(NotFoundError):
            capturer.capture(record, ScreenshotMode.SESSION)


class TestCapture:
    def test_capture_connected_session(
        self, orchestrator: SessionOrchestrator, capturer: PlaceholderCapturer
    ) -> None:
        record = _open(orchestrator, "a.example.com")
        shot = capturer.capture(record, ScreenshotMode.FULLSCREEN)

        assert shot.session_id == record.id
        assert shot.mode is ScreenshotMode.FULLSCREEN
        assert shot.reference.endswith(".png")
        assert f"rdpilot_fullscreen_{record.id}_" in shot.reference
        assert shot.to_dict()["mode"] == "fullscreen"

    def test_capture_before_connected_is_rejected(
        self, orchestrator: SessionOrchestrator, capturer: PlaceholderCapturer
    ) -> None:
        record = _open(orchestrator, "a.example.com", settle=False)
        with pytest.raises(ValidationError):
            capturer.capture(record, ScreenshotMode.SESSION)
