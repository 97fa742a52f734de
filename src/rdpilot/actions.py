"""Command runner: execute one assistant command.

Bridges the command model to the session orchestrator and its collaborators
(profile store, screenshot capturer). Every outcome is a ``StepResult``;
orchestration errors come back as ``success=False`` with a readable message,
never as exceptions.

Session references accepted wherever a command names a session:
- an exact session id;
- a 1-based position in the creation-ordered session list;
- a host or session name (case-insensitive, most recent match wins);
- ``last`` for the session this conversation opened most recently, else the
  newest session overall.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from .commands import ActionType, Command
from .config import RDP_DEFAULTS
from .errors import RdpilotError
from .fallback_rules import canned_reply
from .profiles import ProfileStore, SessionProfile
from .screenshots import ScreenshotCapturer
from .services.conversation_store import ConversationContext
from .sessions import ConnectionRequest, SessionOrchestrator, SessionRecord, SessionStatus

logger = logging.getLogger(__name__)

LAST_SESSION = "last"


@dataclass
class StepResult:
    command: Command
    success: bool
    message: str
    data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "command": self.command.to_dict(),
            "success": self.success,
            "message": self.message,
            "data": dict(self.data),
        }


def resolve_session(
    orchestrator: SessionOrchestrator,
    reference: str | None,
    ctx: ConversationContext | None = None,
) -> SessionRecord | None:
    """Find the session ``reference`` points at, or None."""
    ref = (reference or "").strip()
    if not ref:
        return None

    record = orchestrator.get_session(ref)
    if record is not None:
        return record

    sessions = orchestrator.sessions()
    if not sessions:
        return None

    lowered = ref.lower()
    if lowered == LAST_SESSION:
        if ctx is not None:
            last_id = ctx.session_context.get("lastSessionId")
            record = orchestrator.get_session(last_id) if isinstance(last_id, str) else None
            if record is not None:
                return record
        return sessions[-1]

    if lowered.isdigit():
        index = int(lowered)
        if 1 <= index <= len(sessions):
            return sessions[index - 1]
        return None

    for record in reversed(sessions):
        if record.host.lower() == lowered or (record.session_name or "").lower() == lowered:
            return record
    return None


def describe_session(position: int, record: SessionRecord) -> str:
    line = f"{position}. {record.display_name} ({record.status.value}) [{record.id}]"
    if record.username:
        line += f" as {record.username}"
    if record.error_message and record.status is SessionStatus.FAILED:
        line += f": {record.error_message}"
    return line


class CommandRunner:
    """Run single, non-chained commands against the session layer."""

    def __init__(
        self,
        orchestrator: SessionOrchestrator,
        profiles: ProfileStore,
        capturer: ScreenshotCapturer,
        *,
        profile_source: str = "fallback",
        connect_wait: float | None = None,
    ) -> None:
        self.orchestrator = orchestrator
        self.profiles = profiles
        self.capturer = capturer
        self._profile_source = profile_source
        self._connect_wait = connect_wait

    async def run(
        self,
        command: Command,
        ctx: ConversationContext | None = None,
        *,
        wait: bool = False,
    ) -> StepResult:
        """Execute ``command``.

        With ``wait`` set, connect-type commands return only once the
        connect attempt has settled, so a following step sees its outcome.
        """
        if not command.is_valid():
            missing = command.missing_fields()
            if command.action is ActionType.UNKNOWN:
                message = "I couldn't work out what to do with that request."
            else:
                message = f"Cannot {command.describe()}: missing {', '.join(missing)}"
            if command.follow_up_questions:
                message += f". {command.follow_up_questions[0]}"
            return StepResult(command, False, message, {"missing": missing})

        action = command.action
        if action is ActionType.CONNECT:
            return await self._connect(command, ctx, wait=wait)
        if action is ActionType.DISCONNECT:
            return await self._disconnect(command, ctx)
        if action is ActionType.DISCONNECT_ALL:
            return await self._disconnect_all(command, ctx)
        if action is ActionType.LIST_SESSIONS:
            return self._list_sessions(command)
        if action is ActionType.SCREENSHOT:
            return self._screenshot(command, ctx)
        if action is ActionType.CREATE_PROFILE:
            return self._create_profile(command, ctx)
        if action is ActionType.LOAD_PROFILE:
            return await self._load_profile(command, ctx, wait=wait)
        if action is ActionType.GENERAL_HELP:
            return StepResult(command, True, command.explanation or canned_reply("help"))
        return StepResult(command, False, "Chained commands run through the chain executor")

    # -------------------------------------------------------------------------
    # Sessions
    # -------------------------------------------------------------------------

    async def open_session(
        self,
        command: Command,
        request: ConnectionRequest,
        ctx: ConversationContext | None = None,
        *,
        wait: bool = False,
        data: dict[str, Any] | None = None,
    ) -> StepResult:
        session_id = await self.orchestrator.start_session(request)
        if session_id is None:
            return StepResult(
                command, False, f"Could not start a session to {request.host}:{request.port}"
            )

        if ctx is not None:
            ctx.update_session_context(
                currentHost=request.host,
                currentUsername=request.username,
                currentPort=request.port,
                lastSessionId=session_id,
            )

        payload = {"sessionId": session_id, **(data or {})}
        target = request.host if request.port == RDP_DEFAULTS.PORT else f"{request.host}:{request.port}"
        if not wait:
            payload["status"] = SessionStatus.CONNECTING.value
            return StepResult(command, True, f"Connecting to {target} (session {session_id})", payload)

        status = await self.orchestrator.wait_for_connection(session_id, timeout=self._connect_wait)
        payload["status"] = status.value if status else None
        if status is SessionStatus.CONNECTED:
            return StepResult(command, True, f"Connected to {target} (session {session_id})", payload)
        if status is SessionStatus.CONNECTING:
            return StepResult(command, True, f"Still connecting to {target} (session {session_id})", payload)

        record = self.orchestrator.get_session(session_id)
        reason = record.error_message if record and record.error_message else "connection did not complete"
        return StepResult(command, False, f"Could not connect to {target}: {reason}", payload)

    async def _connect(
        self, command: Command, ctx: ConversationContext | None, *, wait: bool
    ) -> StepResult:
        request = ConnectionRequest(
            host=(command.host or "").strip(),
            username=command.username,
            password=command.password,
            port=command.port,
        )
        return await self.open_session(command, request, ctx, wait=wait)

    async def _disconnect(self, command: Command, ctx: ConversationContext | None) -> StepResult:
        record = resolve_session(self.orchestrator, command.session_id, ctx)
        if record is None:
            return StepResult(command, False, f"No session matches '{command.session_id}'")

        ended = await self.orchestrator.end_session(record.id)
        if not ended:
            return StepResult(command, False, f"Session {record.display_name} is already disconnecting")
        if ctx is not None and ctx.session_context.get("lastSessionId") == record.id:
            ctx.update_session_context(lastSessionId=None)
        return StepResult(
            command, True, f"Disconnected from {record.display_name}", {"sessionId": record.id}
        )

    async def _disconnect_all(self, command: Command, ctx: ConversationContext | None) -> StepResult:
        count = len(self.orchestrator)
        if count == 0:
            return StepResult(command, True, "There are no active sessions to disconnect", {"count": 0})

        clean = await self.orchestrator.disconnect_all_sessions()
        if ctx is not None:
            ctx.update_session_context(lastSessionId=None)
        if clean:
            noun = "session" if count == 1 else "sessions"
            return StepResult(command, True, f"Disconnected {count} {noun}", {"count": count})
        return StepResult(
            command, False, "Some sessions could not be disconnected cleanly", {"count": count}
        )

    def _list_sessions(self, command: Command) -> StepResult:
        sessions = self.orchestrator.sessions()
        data = {"sessions": [r.to_dict() for r in sessions]}
        if not sessions:
            return StepResult(command, True, "There are no active sessions", data)
        lines = [describe_session(i, r) for i, r in enumerate(sessions, start=1)]
        header = f"{len(sessions)} active session" + ("" if len(sessions) == 1 else "s")
        return StepResult(command, True, header + ":\n" + "\n".join(lines), data)

    def _screenshot(self, command: Command, ctx: ConversationContext | None) -> StepResult:
        record = resolve_session(self.orchestrator, command.session_id, ctx)
        if record is None:
            return StepResult(command, False, f"No session matches '{command.session_id}'")
        try:
            shot = self.capturer.capture(record, command.screenshot_mode)
        except RdpilotError as exc:
            return StepResult(command, False, exc.message, {"sessionId": record.id})
        return StepResult(
            command,
            True,
            f"Captured {shot.mode.value} screenshot of {record.display_name}: {shot.reference}",
            shot.to_dict(),
        )

    # -------------------------------------------------------------------------
    # Profiles
    # -------------------------------------------------------------------------

    def _create_profile(self, command: Command, ctx: ConversationContext | None) -> StepResult:
        known = ctx.session_context if ctx is not None else {}
        host = command.host or known.get("currentHost")
        if not host:
            return StepResult(
                command,
                False,
                f"Cannot save profile {command.profile_name}: no host given and no current connection",
                {"missing": ["host"]},
            )

        username = command.username or (known.get("currentUsername") if not command.host else None)
        port = command.port
        if not command.host and isinstance(known.get("currentPort"), int):
            port = known["currentPort"]

        profile = SessionProfile(
            name=command.profile_name or host,
            host=host,
            username=username,
            port=port,
            created_by=self._profile_source,
        )
        if not self.profiles.save(profile):
            return StepResult(command, False, f"Could not save profile {profile.name}")
        logger.info("Saved profile %s for %s", profile.name, host)
        return StepResult(
            command, True, f"Saved profile {profile.name} for {host}", {"profile": profile.to_dict()}
        )

    async def _load_profile(
        self, command: Command, ctx: ConversationContext | None, *, wait: bool
    ) -> StepResult:
        name = command.profile_name or ""
        profile = self.profiles.record_use(name)
        if profile is None:
            return StepResult(command, False, f"No profile named '{name}'")

        request = ConnectionRequest(
            host=profile.host,
            username=profile.username,
            port=profile.port,
            session_name=profile.name,
        )
        return await self.open_session(
            command, request, ctx, wait=wait, data={"profile": profile.to_dict()}
        )
