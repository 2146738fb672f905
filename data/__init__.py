"""Data layer – conversation models and the in-memory conversation store."""

from data.models import (
    Conversation,
    ConversationStatus,
    Message,
    MessageRole,
    MessageType,
    ResearchTask,
    ResearchTaskStatus,
    ToolUsage,
)
from data.store import ConversationStore

__all__ = [
    "Conversation",
    "ConversationStatus",
    "ConversationStore",
    "Message",
    "MessageRole",
    "MessageType",
    "ResearchTask",
    "ResearchTaskStatus",
    "ToolUsage",
]
