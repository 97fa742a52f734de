from __future__ import annotations

import asyncio
import json

import pytest

from rdpilot.assistant import APOLOGY, Assistant
from rdpilot.chain_executor import ProgressEvent
from rdpilot.intent_parser import IntentParser
from rdpilot.runtime import Runtime


@pytest.fixture
def assistant(runtime: Runtime) -> Assistant:
    return runtime.assistant


def _stream(assistant: Assistant, text: str, conversation_id: str | None = None) -> list[ProgressEvent]:
    async def scenario() -> list[ProgressEvent]:
        return [event async for event in assistant.stream(text, conversation_id)]

    return asyncio.run(scenario())


class TestRespond:
    def test_single_command(self, assistant: Assistant, runtime: Runtime) -> None:
        reply = asyncio.run(assistant.respond("connect to a.example.com as admin"))

        assert reply.success
        assert reply.text.startswith("Connected to a.example.com")
        ctx = runtime.conversations.get(reply.conversation_id)
        assert ctx is not None
        assert [m.role for m in ctx.messages] == ["user", "assistant", "assistant"]
        assert ctx.messages[-1].content == reply.text

    def test_chain(self, assistant: Assistant) -> None:
        reply = asyncio.run(assistant.respond("connect to a.example.com and take a fullscreen screenshot"))

        assert reply.command is not None
        assert reply.command.action.value == "ChainedCommands"
        assert len(reply.results) == 2
        assert reply.success, reply.text
        assert reply.text.startswith("Completed 2 of 2 steps:")

    def test_follow_up_question_for_incomplete_request(self, assistant: Assistant, runtime: Runtime) -> None:
        reply = asyncio.run(assistant.respond("connect"))

        assert reply.text == "What server would you like to connect to?"
        assert reply.results == []
        assert len(runtime.orchestrator) == 0

    def test_general_help(self, assistant: Assistant) -> None:
        reply = asyncio.run(assistant.respond("hello"))
        assert reply.text.startswith("Hello!")
        assert reply.results == []

    def test_empty_input_gets_reply(self, assistant: Assistant) -> None:
        reply = asyncio.run(assistant.respond(""))
        assert reply.text

    def test_conversation_is_reused(self, assistant: Assistant) -> None:
        async def scenario():  # noqa: ANN202
            first = await assistant.respond("connect to a.example.com")
            second = await assistant.respond("take a screenshot of the last session", first.conversation_id)
            return first, second

        first, second = asyncio.run(scenario())
        assert second.conversation_id == first.conversation_id
        assert second.success, second.text
        assert second.results[0].data["session_id"] == first.results[0].data["sessionId"]

    def test_unexpected_failure_returns_apology(
        self, assistant: Assistant, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        async def boom(*_args, **_kwargs):  # noqa: ANN002, ANN003, ANN202
            raise RuntimeError("database on fire")

        monkeypatch.setattr(assistant.runner, "run", boom)
        reply = asyncio.run(assistant.respond("list sessions"))

        assert reply.text == APOLOGY
        assert "database on fire" not in reply.text

    def test_model_source_reported(self, runtime: Runtime, make_provider) -> None:  # noqa: ANN001
        provider = make_provider(reply=json.dumps({"action": "ListSessions"}))
        assistant = Assistant(IntentParser(provider), runtime.runner, runtime.executor, runtime.conversations)

        reply = asyncio.run(assistant.respond("what's open right now?"))

        assert reply.source == "model"
        assert reply.text == "There are no active sessions"


class TestStream:
    def test_single_command_events(self, assistant: Assistant) -> None:
        events = _stream(assistant, "list sessions")

        assert events[0].percent == 0
        assert events[0].message == "Understanding your request"
        assert events[1].message == "Listing active sessions"
        assert events[-1].done
        assert events[-1].result is not None and events[-1].result.success
        assert events[-1].data["conversation_id"] == events[0].data["conversation_id"]
        assert events[-1].data["source"] == "fallback"

    def test_chain_events(self, assistant: Assistant) -> None:
        events = _stream(assistant, "connect to a.example.com and list sessions")

        steps = [e for e in events if e.result is not None]
        assert [e.step for e in steps] == [1, 2]
        assert events[-1].done
        assert events[-1].data["conversation_id"]

    def test_clarification_ends_stream(self, assistant: Assistant) -> None:
        events = _stream(assistant, "disconnect")
        assert events[-1].done
        assert events[-1].message == "Which session would you like to disconnect?"
