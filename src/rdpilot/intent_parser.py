"""Intent parser: free text to a Command.

Two modes:
- model mode: the configured provider returns JSON in the assistant command
  shape, validated through ``Command.from_dict`` within a bounded timeout;
- fallback mode: the deterministic rules in ``fallback_rules``.

Any failure in model mode (timeout, HTTP error, malformed JSON, wrong shape)
drops to fallback mode for that request. ``parse`` never raises.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

from .commands import ActionType, Command
from .config import LIMITS, TIMEOUTS
from .fallback_rules import parse_fallback
from .prompts import COMMAND_SYSTEM_PROMPT, build_user_prompt
from .providers.base import LLMProvider
from .services.conversation_store import ConversationContext

logger = logging.getLogger(__name__)


def interpretation_text(command: Command) -> str:
    """What the assistant says right after understanding a request."""
    if command.needs_more_info and command.follow_up_questions:
        return command.follow_up_questions[0]
    if command.explanation:
        return command.explanation
    if command.action is ActionType.UNKNOWN:
        return "I'm not sure what you'd like to do. Try 'help' to see example requests."
    return command.describe().capitalize()


class IntentParser:
    """Resolve user text into a Command, preferring the model when present."""

    def __init__(
        self,
        provider: LLMProvider | None = None,
        *,
        timeout_seconds: float = TIMEOUTS.LLM_PARSE,
        max_input_chars: int = LIMITS.MAX_INPUT_CHARS,
        history_limit: int = LIMITS.HISTORY_MESSAGES,
    ) -> None:
        self._provider = provider
        self._timeout = timeout_seconds
        self._max_input_chars = max_input_chars
        self._history_limit = history_limit

    @property
    def mode(self) -> str:
        return "model" if self._provider is not None else "fallback"

    @property
    def provider(self) -> LLMProvider | None:
        return self._provider

    def normalize(self, text: str | None) -> str:
        text = (text or "").strip()
        if len(text) > self._max_input_chars:
            logger.debug("Truncating %d-char input to %d", len(text), self._max_input_chars)
            text = text[: self._max_input_chars]
        return text

    async def parse(self, text: str | None, ctx: ConversationContext | None = None) -> Command:
        """Parse ``text`` and record the exchange on ``ctx``.

        Appends the user's message, then the assistant's interpretation.
        """
        text = self.normalize(text)
        prompt = build_user_prompt(text, ctx, self._history_limit) if self._provider else ""

        if ctx is not None:
            ctx.add_message("user", text)

        command: Command | None = None
        source = "fallback"
        if self._provider is not None and text:
            command = await self._parse_with_model(self._provider, prompt)
            if command is not None:
                source = "model"
        if command is None:
            command = parse_fallback(text)

        if ctx is not None:
            ctx.add_message(
                "assistant",
                interpretation_text(command),
                metadata={"action": command.action.value, "source": source},
            )
        return command

    async def _parse_with_model(self, provider: LLMProvider, prompt: str) -> Command | None:
        try:
            raw = await asyncio.wait_for(
                asyncio.to_thread(
                    provider.chat_json,
                    system=COMMAND_SYSTEM_PROMPT,
                    user=prompt,
                    timeout_seconds=self._timeout,
                ),
                timeout=self._timeout,
            )
            return command_from_model_output(raw)
        except TimeoutError:
            logger.warning("Model parse timed out after %.1fs; using rules", self._timeout)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Model parse failed (%s: %s); using rules", type(exc).__name__, exc)
        return None


def command_from_model_output(raw: str) -> Command:
    """Decode model JSON into a Command.

    Accepts the bare command object or one wrapped as ``{"command": {...}}``.

    Raises:
        ValueError: If the text is not JSON.
        CommandShapeError: If the JSON is not a command.
    """
    payload: Any = json.loads(raw)
    if isinstance(payload, dict) and "action" not in payload and isinstance(payload.get("command"), dict):
        payload = payload["command"]
    command = Command.from_dict(payload)
    if command.action is ActionType.CHAINED_COMMANDS and all(c.priority == 0 for c in command.chained_commands):
        command.chained_commands = [c.with_priority(i) for i, c in enumerate(command.chained_commands, start=1)]
    return command
