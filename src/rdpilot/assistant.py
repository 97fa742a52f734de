"""Chat surface core: text in, reply out.

``respond`` parses the request, runs it (a single command through the
command runner, a chain through the chain executor) and returns the reply
text. ``stream`` does the same while yielding progress events.

Every input gets a textual reply, including empty and very long strings.
Unexpected failures are logged and answered with a generic apology rather
than the raw exception text.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any

from .actions import CommandRunner, StepResult
from .chain_executor import ChainExecutor, ProgressEvent, summarize
from .commands import ActionType, Command
from .config import CHAIN
from .fallback_rules import canned_reply
from .intent_parser import IntentParser, interpretation_text
from .services.conversation_store import ConversationContext, ConversationStore

logger = logging.getLogger(__name__)

APOLOGY = "Sorry, something went wrong while handling that request. Please try again."


@dataclass
class AssistantReply:
    conversation_id: str
    text: str
    command: Command | None = None
    results: list[StepResult] = field(default_factory=list)
    source: str = "fallback"

    @property
    def success(self) -> bool:
        return bool(self.results) and all(r.success for r in self.results)

    def to_dict(self) -> dict[str, Any]:
        return {
            "conversation_id": self.conversation_id,
            "text": self.text,
            "command": self.command.to_dict() if self.command else None,
            "results": [r.to_dict() for r in self.results],
            "source": self.source,
        }


class Assistant:
    def __init__(
        self,
        parser: IntentParser,
        runner: CommandRunner,
        executor: ChainExecutor,
        conversations: ConversationStore,
    ) -> None:
        self.parser = parser
        self.runner = runner
        self.executor = executor
        self.conversations = conversations

    async def respond(self, text: str | None, conversation_id: str | None = None) -> AssistantReply:
        ctx = self.conversations.get_or_create(conversation_id)
        try:
            command = await self.parser.parse(text, ctx)
            source = _source_of(ctx)
            if command.action is ActionType.CHAINED_COMMANDS and command.is_valid():
                results = await self.executor.execute(command.chained_commands, ctx)
                reply_text = summarize(results)
                ctx.add_message("assistant", reply_text, metadata={"action": command.action.value})
                return self._reply(ctx, reply_text, command, results, source=source)

            if not command.is_valid() or command.needs_more_info:
                return self._reply(ctx, self._clarify(command), command, source=source)

            if command.action is ActionType.GENERAL_HELP:
                return self._reply(ctx, command.explanation or canned_reply(text), command, source=source)

            result = await self.runner.run(command, ctx, wait=True)
            ctx.add_message(
                "assistant",
                result.message,
                metadata={"action": command.action.value, "success": result.success},
            )
            return self._reply(ctx, result.message, command, [result], source=source)
        except Exception:
            logger.exception("Assistant failed on conversation %s", ctx.id)
            ctx.add_message("assistant", APOLOGY, metadata={"error": True})
            return self._reply(ctx, APOLOGY)

    async def stream(
        self,
        text: str | None,
        conversation_id: str | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> AsyncIterator[ProgressEvent]:
        """Yield progress events for one request; the last has ``done`` set."""
        ctx = self.conversations.get_or_create(conversation_id)
        ids = {"conversation_id": ctx.id}
        yield ProgressEvent(0, "Understanding your request", data=dict(ids))
        try:
            command = await self.parser.parse(text, ctx)
            ids["source"] = _source_of(ctx)
            yield ProgressEvent(
                CHAIN.START_PERCENT,
                interpretation_text(command),
                data={**ids, "command": command.to_dict()},
            )

            if command.action is ActionType.CHAINED_COMMANDS and command.is_valid():
                async for event in self.executor.stream(command.chained_commands, ctx, cancel_event):
                    if event.done:
                        ctx.add_message("assistant", event.message, metadata={"action": command.action.value})
                        event.data.update(ids)
                    yield event
                return

            if not command.is_valid() or command.needs_more_info:
                yield ProgressEvent(100, self._clarify(command), done=True, data=ids)
                return

            if command.action is ActionType.GENERAL_HELP:
                yield ProgressEvent(100, command.explanation or canned_reply(text), done=True, data=ids)
                return

            result = await self.runner.run(command, ctx, wait=True)
            ctx.add_message(
                "assistant",
                result.message,
                metadata={"action": command.action.value, "success": result.success},
            )
            yield ProgressEvent(100, result.message, step=1, total=1, result=result, done=True, data=ids)
        except Exception:
            logger.exception("Assistant stream failed on conversation %s", ctx.id)
            ctx.add_message("assistant", APOLOGY, metadata={"error": True})
            yield ProgressEvent(100, APOLOGY, done=True, data={**ids, "error": True})

    def _clarify(self, command: Command) -> str:
        if command.follow_up_questions:
            return command.follow_up_questions[0]
        missing = command.missing_fields()
        if command.action is ActionType.UNKNOWN or not missing:
            return interpretation_text(command)
        return f"I need more information to {command.describe()}: missing {', '.join(missing)}."

    def _reply(
        self,
        ctx: ConversationContext,
        text: str,
        command: Command | None = None,
        results: list[StepResult] | None = None,
        *,
        source: str = "fallback",
    ) -> AssistantReply:
        return AssistantReply(
            conversation_id=ctx.id,
            text=text,
            command=command,
            results=list(results or []),
            source=source,
        )


def _source_of(ctx: ConversationContext) -> str:
    """Which parser mode produced the latest interpretation on ``ctx``."""
    for message in reversed(ctx.recent(2)):
        source = message.metadata.get("source")
        if isinstance(source, str):
            return source
    return "fallback"
