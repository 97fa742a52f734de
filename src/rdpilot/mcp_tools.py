"""Tool catalog exposed through the RPC gateway.

Each tool declares a JSON-schema-like ``input_schema``; arguments are checked
against it (required, type, enum, minimum/maximum) before the tool runs.
Tools delegate to the same command runner as the chat surface, so a request
is accepted or rejected the same way whichever surface it comes through.

Tool outcomes are MCP content envelopes::

    {"content": [{"type": "text", "text": "..."}], "isError": false}

Argument problems and failed operations are ``isError: true`` results, never
exceptions; only unexpected failures propagate to the gateway.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from .actions import CommandRunner, StepResult
from .commands import ActionType, Command, ScreenshotMode
from .config import RDP_DEFAULTS
from .sessions import ConnectionRequest

logger = logging.getLogger(__name__)

_JSON = dict[str, Any]


class ToolError(RuntimeError):
    def __init__(self, code: str, message: str, data: Any | None = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.data = data


@dataclass(frozen=True)
class Tool:
    name: str
    description: str
    input_schema: dict[str, Any]

    def to_dict(self) -> _JSON:
        return {"name": self.name, "description": self.description, "inputSchema": self.input_schema}


# =============================================================================
# Argument validation
# =============================================================================

_TYPE_CHECKS: dict[str, Callable[[Any], bool]] = {
    "string": lambda v: isinstance(v, str),
    "integer": lambda v: isinstance(v, int) and not isinstance(v, bool),
    "number": lambda v: isinstance(v, int | float) and not isinstance(v, bool),
    "boolean": lambda v: isinstance(v, bool),
    "object": lambda v: isinstance(v, dict),
    "array": lambda v: isinstance(v, list),
}


def validate_arguments(schema: dict[str, Any], arguments: dict[str, Any] | None) -> _JSON:
    """Check ``arguments`` against ``schema`` and return them with nulls dropped.

    Raises:
        ToolError: ``invalid_args`` naming the first offending field.
    """
    args = {k: v for k, v in (arguments or {}).items() if v is not None}
    properties: dict[str, Any] = schema.get("properties", {})

    missing = [
        name
        for name in schema.get("required", [])
        if name not in args or (isinstance(args[name], str) and not args[name].strip())
    ]
    if missing:
        raise ToolError(
            code="invalid_args",
            message=f"Missing required arguments: {', '.join(missing)}",
            data={"missing": missing},
        )

    for name, value in args.items():
        prop = properties.get(name)
        if prop is None:
            continue
        expected = prop.get("type")
        check = _TYPE_CHECKS.get(expected) if isinstance(expected, str) else None
        if check is not None and not check(value):
            raise ToolError(
                code="invalid_args",
                message=f"{name} must be of type {expected}",
                data={"field": name},
            )
        if "enum" in prop and value not in prop["enum"]:
            raise ToolError(
                code="invalid_args",
                message=f"{name} must be one of {', '.join(str(e) for e in prop['enum'])}",
                data={"field": name},
            )
        if "minimum" in prop and value < prop["minimum"]:
            raise ToolError(
                code="invalid_args",
                message=f"{name} must be at least {prop['minimum']}",
                data={"field": name},
            )
        if "maximum" in prop and value > prop["maximum"]:
            raise ToolError(
                code="invalid_args",
                message=f"{name} must be at most {prop['maximum']}",
                data={"field": name},
            )
    return args


# =============================================================================
# Results
# =============================================================================


def render_tool_result(result: Any) -> str:
    if result is None:
        return "null"
    if isinstance(result, str):
        return result
    return json.dumps(result, indent=2, ensure_ascii=False)


def tool_result(text: str, *, is_error: bool = False) -> _JSON:
    return {"content": [{"type": "text", "text": text}], "isError": is_error}


def step_to_tool_result(step: StepResult, *, include_data: bool = True) -> _JSON:
    text = step.message
    if include_data and step.data:
        text += f"\n\n```json\n{render_tool_result(step.data)}\n```"
    return tool_result(text, is_error=not step.success)


# =============================================================================
# Catalog
# =============================================================================

ToolHandler = Callable[[_JSON], Awaitable[_JSON]]


def list_tools() -> list[Tool]:
    return [
        Tool(
            name="connect_rdp",
            description="Connect to a remote desktop server. The connection completes in the background.",
            input_schema={
                "type": "object",
                "properties": {
                    "host": {"type": "string", "description": "Server hostname or IP address"},
                    "username": {"type": "string", "description": "Username for authentication"},
                    "password": {"type": "string", "description": "Password for authentication (optional)"},
                    "port": {
                        "type": "integer",
                        "description": f"RDP port (default: {RDP_DEFAULTS.PORT})",
                        "minimum": RDP_DEFAULTS.MIN_PORT,
                        "maximum": RDP_DEFAULTS.MAX_PORT,
                    },
                    "width": {
                        "type": "integer",
                        "description": f"Screen width (default: {RDP_DEFAULTS.WIDTH})",
                        "minimum": RDP_DEFAULTS.MIN_WIDTH,
                        "maximum": RDP_DEFAULTS.MAX_WIDTH,
                    },
                    "height": {
                        "type": "integer",
                        "description": f"Screen height (default: {RDP_DEFAULTS.HEIGHT})",
                        "minimum": RDP_DEFAULTS.MIN_HEIGHT,
                        "maximum": RDP_DEFAULTS.MAX_HEIGHT,
                    },
                    "colorDepth": {
                        "type": "integer",
                        "description": "Color depth in bits",
                        "enum": list(RDP_DEFAULTS.COLOR_DEPTHS),
                    },
                    "fullScreen": {"type": "boolean", "description": "Use full screen mode (default: false)"},
                    "sessionName": {"type": "string", "description": "Custom name for the session"},
                },
                "required": ["host", "username"],
            },
        ),
        Tool(
            name="list_rdp_sessions",
            description="List remote desktop sessions with their status.",
            input_schema={
                "type": "object",
                "properties": {
                    "includeDetails": {"type": "boolean", "description": "Include the full session records"},
                },
            },
        ),
        Tool(
            name="disconnect_rdp",
            description="Disconnect one session by id, list position, host or 'last'.",
            input_schema={
                "type": "object",
                "properties": {
                    "sessionId": {"type": "string", "description": "Session id or reference"},
                },
                "required": ["sessionId"],
            },
        ),
        Tool(
            name="disconnect_all_rdp",
            description="Disconnect every session.",
            input_schema={"type": "object", "properties": {}},
        ),
        Tool(
            name="capture_rdp_screenshot",
            description="Capture a screenshot of a connected session.",
            input_schema={
                "type": "object",
                "properties": {
                    "sessionId": {"type": "string", "description": "Session id or reference"},
                    "mode": {
                        "type": "string",
                        "description": "What to capture (default: session)",
                        "enum": [m.value for m in ScreenshotMode],
                    },
                },
                "required": ["sessionId"],
            },
        ),
    ]


class ToolRegistry:
    """Tool lookup plus execution against the command runner."""

    def __init__(self, runner: CommandRunner) -> None:
        self.runner = runner
        self._tools = {t.name: t for t in list_tools()}
        self._handlers: dict[str, ToolHandler] = {
            "connect_rdp": self._connect,
            "list_rdp_sessions": self._list_sessions,
            "disconnect_rdp": self._disconnect,
            "disconnect_all_rdp": self._disconnect_all,
            "capture_rdp_screenshot": self._screenshot,
        }

    def list_tools(self) -> list[Tool]:
        return list(self._tools.values())

    def get(self, name: str) -> Tool | None:
        return self._tools.get(name)

    async def call(self, name: str, arguments: dict[str, Any] | None = None) -> _JSON:
        """Run tool ``name``.

        Raises:
            ToolError: ``unknown_tool`` when no tool has that name.
        """
        tool = self._tools.get(name)
        if tool is None:
            raise ToolError(code="unknown_tool", message=f"Unknown tool: {name}")
        try:
            args = validate_arguments(tool.input_schema, arguments)
        except ToolError as exc:
            logger.info("Tool %s rejected arguments: %s", name, exc.message)
            return tool_result(exc.message, is_error=True)
        logger.debug("Calling tool %s", name)
        return await self._handlers[name](args)

    # -------------------------------------------------------------------------
    # Handlers
    # -------------------------------------------------------------------------

    async def _connect(self, args: _JSON) -> _JSON:
        command = Command(
            action=ActionType.CONNECT,
            host=args["host"].strip(),
            username=args["username"],
            password=args.get("password"),
            port=args.get("port", RDP_DEFAULTS.PORT),
        )
        if not command.is_valid():
            return tool_result(
                f"Missing required arguments: {', '.join(command.missing_fields())}", is_error=True
            )
        request = ConnectionRequest(
            host=command.host or "",
            username=command.username,
            password=command.password,
            port=command.port,
            session_name=args.get("sessionName"),
            width=args.get("width", RDP_DEFAULTS.WIDTH),
            height=args.get("height", RDP_DEFAULTS.HEIGHT),
            color_depth=args.get("colorDepth", RDP_DEFAULTS.COLOR_DEPTH),
            full_screen=args.get("fullScreen", False),
        )
        step = await self.runner.open_session(command, request)
        return step_to_tool_result(step)

    async def _list_sessions(self, args: _JSON) -> _JSON:
        step = await self.runner.run(Command(action=ActionType.LIST_SESSIONS))
        return step_to_tool_result(step, include_data=bool(args.get("includeDetails")))

    async def _disconnect(self, args: _JSON) -> _JSON:
        step = await self.runner.run(Command(action=ActionType.DISCONNECT, session_id=args["sessionId"]))
        return step_to_tool_result(step)

    async def _disconnect_all(self, args: _JSON) -> _JSON:  # noqa: ARG002
        step = await self.runner.run(Command(action=ActionType.DISCONNECT_ALL))
        return step_to_tool_result(step)

    async def _screenshot(self, args: _JSON) -> _JSON:
        command = Command(
            action=ActionType.SCREENSHOT,
            session_id=args["sessionId"],
            screenshot_mode=ScreenshotMode(args.get("mode", ScreenshotMode.SESSION.value)),
        )
        step = await self.runner.run(command)
        return step_to_tool_result(step)
