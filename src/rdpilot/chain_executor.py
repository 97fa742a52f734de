"""Chain executor.

Runs an ordered list of commands as one logical request:

1. Order by ascending priority; ties keep their input order. Nested
   ChainedCommands are expanded in place.
2. Dispatch strictly one at a time. Each step waits for connects to settle
   so step N's effects are visible to step N+1.
3. An invalid step yields a failure result naming its missing fields and
   the chain carries on.
4. Sleep ``step_delay`` between steps; a set cancel event stops dispatch
   before the next step, keeping the results gathered so far.
5. Append each step's outcome to the conversation as a progress message.

``stream`` exposes the same run as an async iterator of ProgressEvent;
``execute`` drains it and returns the step results.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any

from .actions import CommandRunner, StepResult
from .commands import ActionType, Command
from .config import CHAIN
from .services.conversation_store import ConversationContext
from .settings import settings

logger = logging.getLogger(__name__)


@dataclass
class ProgressEvent:
    """One progress update: ``percent`` in 0..100 plus a message."""

    percent: int
    message: str
    step: int | None = None
    total: int | None = None
    result: StepResult | None = None
    done: bool = False
    cancelled: bool = False
    data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "percent": self.percent,
            "message": self.message,
            "step": self.step,
            "total": self.total,
            "result": self.result.to_dict() if self.result else None,
            "done": self.done,
            "cancelled": self.cancelled,
            "data": dict(self.data),
        }


def order_commands(commands: list[Command]) -> list[Command]:
    """Flatten nested chains and order by priority (stable)."""
    ordered: list[Command] = []
    for command in sorted(commands, key=lambda c: c.priority):
        if command.action is ActionType.CHAINED_COMMANDS and command.chained_commands:
            ordered.extend(order_commands(command.chained_commands))
        else:
            ordered.append(command)
    return ordered


def summarize(results: list[StepResult], *, cancelled: bool = False) -> str:
    if not results:
        return "Nothing to run."
    succeeded = sum(1 for r in results if r.success)
    lines = [f"Completed {succeeded} of {len(results)} steps" + (" (cancelled)" if cancelled else "") + ":"]
    for i, result in enumerate(results, start=1):
        mark = "ok" if result.success else "failed"
        lines.append(f"{i}. [{mark}] {result.message}")
    return "\n".join(lines)


class ChainExecutor:
    def __init__(
        self,
        runner: CommandRunner,
        *,
        step_delay: float | None = None,
        max_steps: int = CHAIN.MAX_STEPS,
    ) -> None:
        self.runner = runner
        self.step_delay = settings.chain_step_delay if step_delay is None else step_delay
        self.max_steps = max_steps

    async def execute(
        self,
        commands: list[Command],
        ctx: ConversationContext | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> list[StepResult]:
        results: list[StepResult] = []
        async for event in self.stream(commands, ctx, cancel_event):
            if event.result is not None:
                results.append(event.result)
        return results

    async def stream(
        self,
        commands: list[Command],
        ctx: ConversationContext | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> AsyncIterator[ProgressEvent]:
        steps = order_commands(commands)
        overflow: list[Command] = []
        if len(steps) > self.max_steps:
            logger.warning("Chain of %d steps truncated to %d", len(steps), self.max_steps)
            steps, overflow = steps[: self.max_steps], steps[self.max_steps :]

        total = len(steps) + len(overflow)
        yield ProgressEvent(CHAIN.START_PERCENT, f"Running {total} step" + ("" if total == 1 else "s"), total=total)

        results: list[StepResult] = []
        cancelled = False
        for index, command in enumerate(steps, start=1):
            if cancel_event is not None and cancel_event.is_set():
                cancelled = True
                break
            if index > 1 and self.step_delay > 0:
                await asyncio.sleep(self.step_delay)
                if cancel_event is not None and cancel_event.is_set():
                    cancelled = True
                    break

            result = await self._run_step(command, ctx)
            results.append(result)
            message = f"Step {index}/{total}: {result.message}"
            if ctx is not None:
                ctx.add_message(
                    "assistant",
                    message,
                    metadata={"progress": True, "action": command.action.value, "success": result.success},
                )
            yield ProgressEvent(
                _percent(index, total), message, step=index, total=total, result=result
            )

        if not cancelled:
            for offset, command in enumerate(overflow, start=len(steps) + 1):
                result = StepResult(
                    command, False, f"Skipped: chains are limited to {self.max_steps} steps"
                )
                results.append(result)
                yield ProgressEvent(
                    _percent(offset, total), result.message, step=offset, total=total, result=result
                )
        else:
            logger.info("Chain cancelled after %d of %d steps", len(results), total)

        yield ProgressEvent(
            100,
            summarize(results, cancelled=cancelled),
            total=total,
            done=True,
            cancelled=cancelled,
        )

    async def _run_step(self, command: Command, ctx: ConversationContext | None) -> StepResult:
        try:
            return await self.runner.run(command, ctx, wait=True)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Chain step %s failed", command.action.value)
            return StepResult(command, False, f"Could not {command.describe()}: {type(exc).__name__}")


def _percent(step: int, total: int) -> int:
    if total <= 0:
        return 100
    span = 99 - CHAIN.START_PERCENT
    return CHAIN.START_PERCENT + (span * step) // total
