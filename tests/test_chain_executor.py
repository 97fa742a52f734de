from __future__ import annotations

import asyncio

from rdpilot.actions import CommandRunner, StepResult
from rdpilot.chain_executor import ChainExecutor, ProgressEvent, order_commands, summarize
from rdpilot.commands import ActionType, Command
from rdpilot.services.conversation_store import ConversationStore


def _cmd(action: ActionType, priority: int = 0, **fields: object) -> Command:
    return Command(action=action, priority=priority, **fields)  # type: ignore[arg-type]


def _collect(executor: ChainExecutor, commands: list[Command], **kwargs: object) -> list[ProgressEvent]:
    async def scenario() -> list[ProgressEvent]:
        return [event async for event in executor.stream(commands, **kwargs)]  # type: ignore[arg-type]

    return asyncio.run(scenario())


class TestOrdering:
    def test_sorted_by_priority_stable(self) -> None:
        a = _cmd(ActionType.LIST_SESSIONS, 2, explanation="a")
        b = _cmd(ActionType.LIST_SESSIONS, 1, explanation="b")
        c = _cmd(ActionType.LIST_SESSIONS, 2, explanation="c")
        assert [x.explanation for x in order_commands([a, b, c])] == ["b", "a", "c"]

    def test_nested_chains_are_flattened(self) -> None:
        inner = _cmd(
            ActionType.CHAINED_COMMANDS,
            2,
            chained_commands=[_cmd(ActionType.LIST_SESSIONS, 1), _cmd(ActionType.DISCONNECT_ALL, 2)],
        )
        flat = order_commands([inner, _cmd(ActionType.GENERAL_HELP, 1)])
        assert [c.action for c in flat] == [
            ActionType.GENERAL_HELP,
            ActionType.LIST_SESSIONS,
            ActionType.DISCONNECT_ALL,
        ]


class TestExecute:
    def test_runs_in_priority_order(self, executor: ChainExecutor) -> None:
        """Screenshot listed first but with a later priority runs after the connect."""
        commands = [
            _cmd(ActionType.SCREENSHOT, 2, session_id="last"),
            _cmd(ActionType.CONNECT, 1, host="a.example.com"),
        ]
        results = asyncio.run(executor.execute(commands))

        assert [r.command.action for r in results] == [ActionType.CONNECT, ActionType.SCREENSHOT]
        assert all(r.success for r in results), [r.message for r in results]

    def test_invalid_step_does_not_stop_chain(self, executor: ChainExecutor) -> None:
        commands = [
            _cmd(ActionType.DISCONNECT, 1),
            _cmd(ActionType.LIST_SESSIONS, 2),
        ]
        results = asyncio.run(executor.execute(commands))

        assert len(results) == 2
        assert results[0].success is False
        assert results[0].data == {"missing": ["sessionId"]}
        assert results[1].success is True

    def test_progress_messages_added_to_conversation(self, executor: ChainExecutor, store: ConversationStore) -> None:
        ctx = store.get_or_create("c")
        commands = [_cmd(ActionType.CONNECT, 1, host="a.example.com"), _cmd(ActionType.LIST_SESSIONS, 2)]

        asyncio.run(executor.execute(commands, ctx))

        progress = [m for m in ctx.messages if m.metadata.get("progress")]
        assert [m.content.split(":")[0] for m in progress] == ["Step 1/2", "Step 2/2"]
        assert progress[0].metadata["action"] == "Connect"
        assert ctx.session_context["currentHost"] == "a.example.com"

    def test_step_exception_becomes_failure(self, runner: CommandRunner) -> None:
        class ExplodingRunner:
            async def run(self, command, ctx=None, *, wait=False):  # noqa: ANN001, ANN202
                if command.action is ActionType.DISCONNECT_ALL:
                    raise RuntimeError("boom")
                return await runner.run(command, ctx, wait=wait)

        executor = ChainExecutor(ExplodingRunner(), step_delay=0.0)  # type: ignore[arg-type]
        results = asyncio.run(
            executor.execute([_cmd(ActionType.DISCONNECT_ALL, 1), _cmd(ActionType.LIST_SESSIONS, 2)])
        )
        assert results[0].success is False
        assert results[0].message == "Could not disconnect all sessions: RuntimeError"
        assert results[1].success is True


class TestStream:
    def test_progress_events(self, executor: ChainExecutor) -> None:
        events = _collect(executor, [_cmd(ActionType.LIST_SESSIONS, 1), _cmd(ActionType.GENERAL_HELP, 2)])

        assert events[0].percent == 5
        assert events[0].result is None
        assert [e.step for e in events[1:-1]] == [1, 2]
        percents = [e.percent for e in events]
        assert percents == sorted(percents)
        assert events[-1].percent == 100
        assert events[-1].done is True
        assert events[-1].message.startswith("Completed 2 of 2 steps:")

    def test_cancel_before_start_keeps_nothing(self, executor: ChainExecutor) -> None:
        cancel = asyncio.Event()
        cancel.set()
        events = _collect(executor, [_cmd(ActionType.LIST_SESSIONS, 1)], cancel_event=cancel)

        final = events[-1]
        assert final.done and final.cancelled
        assert [e for e in events if e.result is not None] == []

    def test_cancel_between_steps(self, runner: CommandRunner) -> None:
        executor = ChainExecutor(runner, step_delay=0.0)
        cancel = asyncio.Event()

        async def scenario() -> list[ProgressEvent]:
            events = []
            commands = [_cmd(ActionType.LIST_SESSIONS, 1), _cmd(ActionType.LIST_SESSIONS, 2)]
            async for event in executor.stream(commands, cancel_event=cancel):
                events.append(event)
                if event.step == 1:
                    cancel.set()
            return events

        events = asyncio.run(scenario())
        results = [e.result for e in events if e.result is not None]
        assert len(results) == 1
        assert events[-1].cancelled is True
        assert "(cancelled)" in events[-1].message

    def test_overflow_steps_are_skipped(self, runner: CommandRunner) -> None:
        executor = ChainExecutor(runner, step_delay=0.0, max_steps=2)
        results = asyncio.run(executor.execute([_cmd(ActionType.LIST_SESSIONS, i) for i in range(1, 5)]))

        assert len(results) == 4
        assert [r.success for r in results] == [True, True, False, False]
        assert results[-1].message == "Skipped: chains are limited to 2 steps"

    def test_empty_chain(self, executor: ChainExecutor) -> None:
        events = _collect(executor, [])
        assert events[-1].done
        assert events[-1].message == "Nothing to run."


class TestSummarize:
    def test_marks_each_step(self) -> None:
        results = [
            StepResult(Command(action=ActionType.LIST_SESSIONS), True, "listed"),
            StepResult(Command(action=ActionType.DISCONNECT), False, "nope"),
        ]
        assert summarize(results) == "Completed 1 of 2 steps:\n1. [ok] listed\n2. [failed] nope"
