"""Conversation Store.

Keeps multi-turn dialogue state keyed by an opaque conversation id.

Key constraints:
- Contexts are created on first reference and never destroyed implicitly;
  idle pruning is an explicit call owned by the caller.
- The id map is guarded by one lock, held only for lookups and inserts, so
  callers working on different conversations never wait on each other.
- Each context carries its own lock; appends and map updates on the same
  conversation are serialized through it.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import uuid4

logger = logging.getLogger(__name__)

VALID_ROLES = frozenset({"user", "assistant", "system"})


def _now() -> datetime:
    return datetime.now(UTC)


def _new_id() -> str:
    return uuid4().hex[:12]


@dataclass
class ConversationMessage:
    """One message in a conversation."""

    role: str
    content: str
    timestamp: datetime = field(default_factory=_now)
    metadata: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.role not in VALID_ROLES:
            raise ValueError(f"Invalid message role: {self.role}")

    def to_dict(self) -> dict[str, Any]:
        return {
            "role": self.role,
            "content": self.content,
            "timestamp": self.timestamp.isoformat(),
            "metadata": dict(self.metadata),
        }


@dataclass
class ConversationContext:
    """Dialogue state for one conversation.

    Mutate through the store (or the helpers here), which take the
    context's lock; reading ``messages`` directly is a snapshot at best.
    """

    id: str
    messages: list[ConversationMessage] = field(default_factory=list)
    session_context: dict[str, Any] = field(default_factory=dict)
    user_preferences: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=_now)
    last_activity: datetime = field(default_factory=_now)
    _lock: threading.RLock = field(default_factory=threading.RLock, repr=False, compare=False)

    def add_message(
        self, role: str, content: str, metadata: dict[str, Any] | None = None
    ) -> ConversationMessage:
        message = ConversationMessage(role=role, content=content, metadata=dict(metadata or {}))
        with self._lock:
            self.messages.append(message)
            self.last_activity = message.timestamp
        return message

    def touch(self) -> None:
        with self._lock:
            self.last_activity = _now()

    def update_session_context(self, **values: Any) -> None:
        """Set session-scoped keys; None values remove the key."""
        with self._lock:
            for key, value in values.items():
                if value is None:
                    self.session_context.pop(key, None)
                else:
                    self.session_context[key] = value

    def snapshot(self) -> list[ConversationMessage]:
        with self._lock:
            return list(self.messages)

    def recent(self, limit: int) -> list[ConversationMessage]:
        with self._lock:
            return list(self.messages[-limit:]) if limit > 0 else []

    def to_dict(self) -> dict[str, Any]:
        with self._lock:
            return {
                "id": self.id,
                "messages": [m.to_dict() for m in self.messages],
                "session_context": dict(self.session_context),
                "user_preferences": dict(self.user_preferences),
                "created_at": self.created_at.isoformat(),
                "last_activity": self.last_activity.isoformat(),
            }


class ConversationStore:
    """Thread-safe map of conversation id to ConversationContext."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._contexts: dict[str, ConversationContext] = {}

    def get_or_create(self, conversation_id: str | None = None) -> ConversationContext:
        """Return the context for ``conversation_id``, creating it if needed.

        A missing or blank id yields a fresh context with a unique id.
        """
        with self._lock:
            if conversation_id and conversation_id.strip():
                ctx = self._contexts.get(conversation_id)
                if ctx is None:
                    ctx = ConversationContext(id=conversation_id)
                    self._contexts[conversation_id] = ctx
                    logger.debug("Created conversation %s", conversation_id)
                return ctx

            new_id = _new_id()
            while new_id in self._contexts:
                new_id = _new_id()
            ctx = ConversationContext(id=new_id)
            self._contexts[new_id] = ctx
            logger.debug("Created conversation %s", new_id)
            return ctx

    def get(self, conversation_id: str) -> ConversationContext | None:
        with self._lock:
            return self._contexts.get(conversation_id)

    def append(self, ctx: ConversationContext, message: ConversationMessage) -> None:
        with ctx._lock:
            ctx.messages.append(message)
            ctx.last_activity = _now()

    def record_activity(self, ctx: ConversationContext) -> None:
        ctx.touch()

    def remove(self, conversation_id: str) -> bool:
        with self._lock:
            return self._contexts.pop(conversation_id, None) is not None

    def ids(self) -> list[str]:
        with self._lock:
            return list(self._contexts)

    def prune_idle(self, max_idle: timedelta) -> list[str]:
        """Drop contexts idle for longer than ``max_idle``; return their ids."""
        cutoff = _now() - max_idle
        with self._lock:
            stale = [cid for cid, ctx in self._contexts.items() if ctx.last_activity < cutoff]
            for cid in stale:
                del self._contexts[cid]
        if stale:
            logger.info("Pruned %d idle conversations", len(stale))
        return stale

    def __len__(self) -> int:
        with self._lock:
            return len(self._contexts)
