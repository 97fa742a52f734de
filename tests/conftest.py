from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from rdpilot.actions import CommandRunner
from rdpilot.chain_executor import ChainExecutor
from rdpilot.profiles import InMemoryProfileStore
from rdpilot.runtime import Runtime, build_runtime
from rdpilot.screenshots import PlaceholderCapturer
from rdpilot.services.conversation_store import ConversationStore
from rdpilot.sessions import SessionOrchestrator, SimulatedConnector
from rdpilot.settings import Settings


class StubProvider:
    """LLM provider double: returns canned JSON or raises."""

    provider_type = "stub"
    model = "stub-model"

    def __init__(self, reply: str | None = None, error: Exception | None = None) -> None:
        self.reply = reply
        self.error = error
        self.calls: list[dict[str, Any]] = []

    def chat_text(self, *, system: str, user: str, timeout_seconds: float = 30.0, temperature: float | None = None) -> str:
        return self.chat_json(system=system, user=user, timeout_seconds=timeout_seconds, temperature=temperature)

    def chat_json(self, *, system: str, user: str, timeout_seconds: float = 30.0, temperature: float | None = None) -> str:
        self.calls.append({"system": system, "user": user, "timeout_seconds": timeout_seconds})
        if self.error is not None:
            raise self.error
        return self.reply or ""

    def check_health(self) -> Any:
        return None


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    """Settings rooted in a temp dir with no artificial delays."""
    data_dir = tmp_path / "rdpilot-data"
    return Settings(
        data_dir=data_dir,
        profiles_dir=data_dir / "profiles",
        log_path=data_dir / "rdpilot.log",
        log_to_file=False,
        simulated_connect_delay=0.0,
        chain_step_delay=0.0,
        persist_profiles=False,
    )


@pytest.fixture
def orchestrator() -> SessionOrchestrator:
    return SessionOrchestrator(SimulatedConnector(delay=0.0))


@pytest.fixture
def profiles() -> InMemoryProfileStore:
    return InMemoryProfileStore()


@pytest.fixture
def capturer(tmp_path: Path, orchestrator: SessionOrchestrator) -> PlaceholderCapturer:
    cap = PlaceholderCapturer(tmp_path / "shots")
    cap.attach(orchestrator)
    return cap


@pytest.fixture
def runner(orchestrator, profiles, capturer) -> CommandRunner:  # noqa: ANN001
    return CommandRunner(orchestrator, profiles, capturer)


@pytest.fixture
def executor(runner: CommandRunner) -> ChainExecutor:
    return ChainExecutor(runner, step_delay=0.0)


@pytest.fixture
def store() -> ConversationStore:
    return ConversationStore()


@pytest.fixture
def runtime(test_settings: Settings) -> Runtime:
    """Rule-based runtime with an instant simulated connector."""
    return build_runtime(
        settings=test_settings,
        use_model=False,
        connector=SimulatedConnector(delay=0.0),
        profiles=InMemoryProfileStore(),
    )


@pytest.fixture
def make_provider() -> Callable[..., StubProvider]:
    """Factory for provider doubles: ``make_provider(reply=...)`` or ``make_provider(error=...)``."""
    return StubProvider
