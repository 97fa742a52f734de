"""Tests for the assistant command model and its JSON shape."""

from __future__ import annotations

import pytest

from rdpilot.commands import ActionType, Command, ScreenshotMode
from rdpilot.errors import CommandShapeError


class TestActionType:
    def test_parse_ignores_case_and_separators(self) -> None:
        """Action names resolve regardless of case, underscores or spaces."""
        assert ActionType.parse("connect") is ActionType.CONNECT
        assert ActionType.parse("disconnect_all") is ActionType.DISCONNECT_ALL
        assert ActionType.parse("List Sessions") is ActionType.LIST_SESSIONS

    def test_parse_unknown_raises(self) -> None:
        with pytest.raises(CommandShapeError):
            ActionType.parse("Teleport")


class TestValidity:
    def test_connect_requires_host(self) -> None:
        assert not Command(action=ActionType.CONNECT).is_valid()
        assert Command(action=ActionType.CONNECT).missing_fields() == ["host"]
        assert Command(action=ActionType.CONNECT, host="a.example.com").is_valid()

    def test_blank_host_is_missing(self) -> None:
        cmd = Command(action=ActionType.CONNECT, host="   ")
        assert cmd.missing_fields() == ["host"]

    def test_session_actions_require_session_id(self) -> None:
        for action in (ActionType.DISCONNECT, ActionType.SCREENSHOT):
            assert Command(action=action).missing_fields() == ["sessionId"]
            assert Command(action=action, session_id="1").is_valid()

    def test_profile_actions_require_name(self) -> None:
        for action in (ActionType.CREATE_PROFILE, ActionType.LOAD_PROFILE):
            assert Command(action=action).missing_fields() == ["profileName"]

    def test_chain_requires_steps(self) -> None:
        assert not Command(action=ActionType.CHAINED_COMMANDS).is_valid()
        chain = Command(
            action=ActionType.CHAINED_COMMANDS,
            chained_commands=[Command(action=ActionType.LIST_SESSIONS)],
        )
        assert chain.is_valid()

    def test_unknown_is_never_valid(self) -> None:
        cmd = Command(action=ActionType.UNKNOWN, host="a.example.com")
        assert not cmd.is_valid()
        assert cmd.missing_fields() == ["action"]

    def test_field_free_actions_are_valid(self) -> None:
        for action in (ActionType.DISCONNECT_ALL, ActionType.LIST_SESSIONS, ActionType.GENERAL_HELP):
            assert Command(action=action).is_valid()


class TestJsonShape:
    def test_to_dict_uses_camel_case_keys(self) -> None:
        cmd = Command(action=ActionType.SCREENSHOT, session_id="abc", screenshot_mode=ScreenshotMode.FULLSCREEN)
        data = cmd.to_dict()

        assert data["action"] == "Screenshot"
        assert data["sessionId"] == "abc"
        assert data["screenshotMode"] == "fullscreen"
        assert data["port"] == 3389
        assert data["chainedCommands"] is None
        assert data["followUpQuestions"] is None

    def test_password_is_never_serialized(self) -> None:
        cmd = Command(action=ActionType.CONNECT, host="a.example.com", password="hunter2")
        assert "password" not in cmd.to_dict()
        assert "hunter2" not in repr(cmd)

    @pytest.mark.parametrize("action", [a for a in ActionType if a is not ActionType.CHAINED_COMMANDS])
    def test_round_trip_every_action(self, action: ActionType) -> None:
        cmd = Command(action=action, host="h.example.com", session_id="2", profile_name="prod", priority=3)
        assert Command.from_dict(cmd.to_dict()) == cmd

    def test_round_trip_nested_chain(self) -> None:
        chain = Command(
            action=ActionType.CHAINED_COMMANDS,
            chained_commands=[
                Command(action=ActionType.CONNECT, host="a.example.com", priority=1),
                Command(action=ActionType.SCREENSHOT, session_id="last", priority=2),
            ],
            follow_up_questions=["anything else?"],
        )
        assert Command.from_dict(chain.to_dict()) == chain

    def test_from_dict_accepts_integer_session_id(self) -> None:
        cmd = Command.from_dict({"action": "Disconnect", "sessionId": 2})
        assert cmd.session_id == "2"

    def test_from_dict_accepts_numeric_port_string(self) -> None:
        cmd = Command.from_dict({"action": "Connect", "host": "a.example.com", "port": "3390"})
        assert cmd.port == 3390

    def test_from_dict_defaults(self) -> None:
        cmd = Command.from_dict({"action": "ListSessions"})
        assert cmd.port == 3389
        assert cmd.screenshot_mode is ScreenshotMode.SESSION
        assert cmd.needs_more_info is False
        assert cmd.chained_commands == []

    @pytest.mark.parametrize(
        "payload",
        [
            [],
            {},
            {"action": ""},
            {"action": 5},
            {"action": "Connect", "host": 12},
            {"action": "Connect", "port": True},
            {"action": "Connect", "port": "abc"},
            {"action": "Screenshot", "screenshotMode": "panorama"},
            {"action": "ChainedCommands", "chainedCommands": "connect"},
            {"action": "Connect", "followUpQuestions": [1, 2]},
            {"action": "Connect", "needsMoreInfo": "yes"},
        ],
    )
    def test_from_dict_rejects_wrong_shape(self, payload: object) -> None:
        with pytest.raises(CommandShapeError):
            Command.from_dict(payload)


class TestHelpers:
    def test_with_priority_returns_copy(self) -> None:
        cmd = Command(action=ActionType.LIST_SESSIONS)
        updated = cmd.with_priority(4)
        assert updated.priority == 4
        assert cmd.priority == 0

    def test_describe(self) -> None:
        assert Command(action=ActionType.CONNECT, host="a.example.com", username="bob").describe() == (
            "connect to a.example.com as bob"
        )
        assert Command(action=ActionType.DISCONNECT).describe() == "disconnect session ?"
        assert Command(action=ActionType.UNKNOWN).describe() == "unrecognized request"
