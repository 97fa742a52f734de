"""Model backend interface.

The intent parser only needs two calls from a backend: a JSON-shaped answer
for command extraction and a plain-text one for health probes and replies.
Any object with this shape can be handed to ``build_runtime``; tests pass a
stub.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Protocol, runtime_checkable

from rdpilot.errors import LLMError


@dataclass
class ProviderHealth:
    reachable: bool
    error: str | None = None
    current_model: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@runtime_checkable
class LLMProvider(Protocol):
    """A chat-completion backend.

    Both chat methods raise ``LLMError`` (or a subclass) for every failure;
    callers never see transport exceptions.
    """

    @property
    def provider_type(self) -> str:
        """Short backend name, e.g. ``openai`` or ``azure-openai``."""
        ...

    @property
    def model(self) -> str: ...

    def chat_text(
        self,
        *,
        system: str,
        user: str,
        timeout_seconds: float = 30.0,
        temperature: float | None = None,
    ) -> str: ...

    def chat_json(
        self,
        *,
        system: str,
        user: str,
        timeout_seconds: float = 30.0,
        temperature: float | None = None,
    ) -> str:
        """Return the raw JSON object text; parsing and shape checks are the caller's."""
        ...

    def check_health(self) -> ProviderHealth: ...


__all__ = ["LLMError", "LLMProvider", "ProviderHealth"]
