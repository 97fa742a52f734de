"""Process-scoped object graph.

One ``Runtime`` owns the single session orchestrator and everything wired to
it; the chat surface and the RPC gateway both consume the same instance.
Build it with ``build_runtime`` and release it with ``Runtime.shutdown``.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass

from .actions import CommandRunner
from .assistant import Assistant
from .chain_executor import ChainExecutor
from .intent_parser import IntentParser
from .mcp_server import McpGateway
from .mcp_tools import ToolRegistry
from .profiles import InMemoryProfileStore, JsonFileProfileStore, ProfileStore
from .providers import LLMProvider, get_provider_or_none
from .screenshots import PlaceholderCapturer
from .services.conversation_store import ConversationStore
from .sessions import Connector, SessionOrchestrator, SimulatedConnector
from .settings import Settings, settings as default_settings

logger = logging.getLogger(__name__)


@dataclass
class Runtime:
    settings: Settings
    orchestrator: SessionOrchestrator
    conversations: ConversationStore
    profiles: ProfileStore
    capturer: PlaceholderCapturer
    parser: IntentParser
    runner: CommandRunner
    executor: ChainExecutor
    assistant: Assistant
    tools: ToolRegistry
    gateway: McpGateway

    async def shutdown(self) -> None:
        self.capturer.detach()
        await self.orchestrator.shutdown()
        logger.info("Runtime shut down")


def build_runtime(
    *,
    settings: Settings | None = None,
    provider: LLMProvider | None = None,
    use_model: bool = True,
    connector: Connector | None = None,
    profiles: ProfileStore | None = None,
    connect_timeout: float | None = None,
    environ: Mapping[str, str] | None = None,
) -> Runtime:
    """Wire the object graph.

    Args:
        provider: Model backend; when None and ``use_model`` is set, one is
            looked up from the environment (absent key means rule mode).
        connector: Session transport; defaults to the simulated connector.
        profiles: Profile store; defaults to JSON files under the data dir,
            or memory when profile persistence is off.
    """
    cfg = settings or default_settings

    if provider is None and use_model:
        provider = get_provider_or_none(environ)

    if profiles is None:
        profiles = JsonFileProfileStore(cfg.profiles_dir) if cfg.persist_profiles else InMemoryProfileStore()

    connector = connector or SimulatedConnector(cfg.simulated_connect_delay)
    orchestrator = (
        SessionOrchestrator(connector)
        if connect_timeout is None
        else SessionOrchestrator(connector, connect_timeout=connect_timeout)
    )
    capturer = PlaceholderCapturer(cfg.data_dir / "screenshots")
    capturer.attach(orchestrator)

    conversations = ConversationStore()
    parser = IntentParser(provider)
    runner = CommandRunner(orchestrator, profiles, capturer, profile_source=parser.mode)
    executor = ChainExecutor(runner, step_delay=cfg.chain_step_delay)
    assistant = Assistant(parser, runner, executor, conversations)
    tools = ToolRegistry(runner)
    gateway = McpGateway(tools, orchestrator, profiles)

    logger.info("Runtime ready (parser mode: %s)", parser.mode)
    return Runtime(
        settings=cfg,
        orchestrator=orchestrator,
        conversations=conversations,
        profiles=profiles,
        capturer=capturer,
        parser=parser,
        runner=runner,
        executor=executor,
        assistant=assistant,
        tools=tools,
        gateway=gateway,
    )
