"""Stateful services shared by the chat surface and the RPC gateway."""

from .conversation_store import (
    ConversationContext,
    ConversationMessage,
    ConversationStore,
)

__all__ = [
    "ConversationContext",
    "ConversationMessage",
    "ConversationStore",
]
