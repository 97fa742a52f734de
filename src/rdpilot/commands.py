"""Assistant command model.

A Command is a tagged union keyed by ``action``. Only the fields relevant to
the action are meaningful; the rest stay at their defaults. Validity is a pure
function of the command's own fields and never consults session state.

The JSON shape (``to_dict`` / ``from_dict``) is shared by the external model
output and internal serialization:

    {"action": "Connect", "host": "server1.com", "username": "admin",
     "sessionId": null, "port": 3389, "screenshotMode": "session",
     "chainedCommands": null, "profileName": null, "explanation": null,
     "needsMoreInfo": false, "followUpQuestions": null, "priority": 0}
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

from .config import RDP_DEFAULTS
from .errors import CommandShapeError


class ActionType(Enum):
    CONNECT = "Connect"
    DISCONNECT = "Disconnect"
    DISCONNECT_ALL = "DisconnectAll"
    LIST_SESSIONS = "ListSessions"
    SCREENSHOT = "Screenshot"
    CREATE_PROFILE = "CreateProfile"
    LOAD_PROFILE = "LoadProfile"
    CHAINED_COMMANDS = "ChainedCommands"
    GENERAL_HELP = "GeneralHelp"
    UNKNOWN = "Unknown"

    @classmethod
    def parse(cls, raw: str) -> ActionType:
        """Resolve an action name, ignoring case, underscores and spaces."""
        key = raw.replace("_", "").replace(" ", "").lower()
        for action in cls:
            if action.value.lower() == key:
                return action
        raise CommandShapeError(f"Unknown action: {raw}", field="action")


class ScreenshotMode(Enum):
    SESSION = "session"
    APPLICATION = "application"
    FULLSCREEN = "fullscreen"


# Fields each action needs before it can run, by JSON name.
REQUIRED_FIELDS: dict[ActionType, tuple[str, ...]] = {
    ActionType.CONNECT: ("host",),
    ActionType.DISCONNECT: ("sessionId",),
    ActionType.SCREENSHOT: ("sessionId",),
    ActionType.CREATE_PROFILE: ("profileName",),
    ActionType.LOAD_PROFILE: ("profileName",),
    ActionType.CHAINED_COMMANDS: ("chainedCommands",),
    ActionType.DISCONNECT_ALL: (),
    ActionType.LIST_SESSIONS: (),
    ActionType.GENERAL_HELP: (),
}


def _filled(value: str | None) -> bool:
    return value is not None and value.strip() != ""


@dataclass
class Command:
    action: ActionType = ActionType.UNKNOWN
    host: str | None = None
    username: str | None = None
    # Never serialized and never part of equality.
    password: str | None = field(default=None, repr=False, compare=False)
    session_id: str | None = None
    port: int = RDP_DEFAULTS.PORT
    screenshot_mode: ScreenshotMode = ScreenshotMode.SESSION
    chained_commands: list[Command] = field(default_factory=list)
    profile_name: str | None = None
    explanation: str | None = None
    needs_more_info: bool = False
    follow_up_questions: list[str] = field(default_factory=list)
    priority: int = 0

    def missing_fields(self) -> list[str]:
        """Names of required fields that are empty for this action."""
        if self.action is ActionType.UNKNOWN:
            return ["action"]

        values = {
            "host": _filled(self.host),
            "sessionId": _filled(self.session_id),
            "profileName": _filled(self.profile_name),
            "chainedCommands": bool(self.chained_commands),
        }
        return [name for name in REQUIRED_FIELDS[self.action] if not values[name]]

    def is_valid(self) -> bool:
        if self.action is ActionType.UNKNOWN:
            return False
        return not self.missing_fields()

    def with_priority(self, priority: int) -> Command:
        return replace(self, priority=priority)

    def describe(self) -> str:
        """Short human-readable label, used in progress messages."""
        action = self.action
        if action is ActionType.CONNECT:
            target = self.host or "?"
            return f"connect to {target}" + (f" as {self.username}" if self.username else "")
        if action is ActionType.DISCONNECT:
            return f"disconnect session {self.session_id or '?'}"
        if action is ActionType.DISCONNECT_ALL:
            return "disconnect all sessions"
        if action is ActionType.LIST_SESSIONS:
            return "list sessions"
        if action is ActionType.SCREENSHOT:
            return f"{self.screenshot_mode.value} screenshot of session {self.session_id or '?'}"
        if action is ActionType.CREATE_PROFILE:
            return f"save profile {self.profile_name or '?'}"
        if action is ActionType.LOAD_PROFILE:
            return f"load profile {self.profile_name or '?'}"
        if action is ActionType.CHAINED_COMMANDS:
            return f"{len(self.chained_commands)} chained commands"
        if action is ActionType.GENERAL_HELP:
            return "help"
        return "unrecognized request"

    # -------------------------------------------------------------------------
    # JSON shape
    # -------------------------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        return {
            "action": self.action.value,
            "host": self.host,
            "username": self.username,
            "sessionId": self.session_id,
            "port": self.port,
            "screenshotMode": self.screenshot_mode.value,
            "chainedCommands": [c.to_dict() for c in self.chained_commands] or None,
            "profileName": self.profile_name,
            "explanation": self.explanation,
            "needsMoreInfo": self.needs_more_info,
            "followUpQuestions": list(self.follow_up_questions) or None,
            "priority": self.priority,
        }

    @classmethod
    def from_dict(cls, payload: Any) -> Command:
        """Build a command from its JSON shape.

        Raises:
            CommandShapeError: If the payload does not match the shape.
        """
        if not isinstance(payload, dict):
            raise CommandShapeError("Command must be a JSON object")

        raw_action = payload.get("action")
        if not isinstance(raw_action, str) or not raw_action.strip():
            raise CommandShapeError("action is required", field="action")

        chained_raw = payload.get("chainedCommands")
        if chained_raw is None:
            chained: list[Command] = []
        elif isinstance(chained_raw, list):
            chained = [cls.from_dict(item) for item in chained_raw]
        else:
            raise CommandShapeError("chainedCommands must be a list", field="chainedCommands")

        questions_raw = payload.get("followUpQuestions")
        if questions_raw is None:
            questions: list[str] = []
        elif isinstance(questions_raw, list) and all(isinstance(q, str) for q in questions_raw):
            questions = list(questions_raw)
        else:
            raise CommandShapeError(
                "followUpQuestions must be a list of strings", field="followUpQuestions"
            )

        mode_raw = payload.get("screenshotMode")
        if mode_raw is None:
            mode = ScreenshotMode.SESSION
        elif isinstance(mode_raw, str):
            try:
                mode = ScreenshotMode(mode_raw.strip().lower())
            except ValueError as exc:
                raise CommandShapeError(
                    f"Unknown screenshotMode: {mode_raw}", field="screenshotMode"
                ) from exc
        else:
            raise CommandShapeError("screenshotMode must be a string", field="screenshotMode")

        needs_more_info = payload.get("needsMoreInfo", False)
        if needs_more_info is None:
            needs_more_info = False
        if not isinstance(needs_more_info, bool):
            raise CommandShapeError("needsMoreInfo must be a boolean", field="needsMoreInfo")

        return cls(
            action=ActionType.parse(raw_action),
            host=_optional_str(payload, "host"),
            username=_optional_str(payload, "username"),
            session_id=_optional_str(payload, "sessionId", allow_int=True),
            port=_int_field(payload, "port", RDP_DEFAULTS.PORT),
            screenshot_mode=mode,
            chained_commands=chained,
            profile_name=_optional_str(payload, "profileName"),
            explanation=_optional_str(payload, "explanation"),
            needs_more_info=needs_more_info,
            follow_up_questions=questions,
            priority=_int_field(payload, "priority", 0),
        )


def _optional_str(payload: dict[str, Any], key: str, *, allow_int: bool = False) -> str | None:
    value = payload.get(key)
    if value is None or isinstance(value, str):
        return value
    # Models sometimes emit session numbers as bare integers.
    if allow_int and isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    raise CommandShapeError(f"{key} must be a string", field=key)


def _int_field(payload: dict[str, Any], key: str, default: int) -> int:
    value = payload.get(key)
    if value is None:
        return default
    if isinstance(value, bool):
        raise CommandShapeError(f"{key} must be an integer", field=key)
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    raise CommandShapeError(f"{key} must be an integer", field=key)
