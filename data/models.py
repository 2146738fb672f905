"""Pydantic models for conversations, messages and their bookkeeping records."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


class ConversationStatus(str, Enum):
    GATHERING_CONTEXT = "gathering-context"
    RESEARCHING = "researching"
    SYNTHESIZING = "synthesizing"
    COMPLETED = "completed"
    PAUSED = "paused"
    DEBATING = "debating"
    STOPPED = "stopped"


class MessageRole(str, Enum):
    USER = "user"
    MODERATOR = "moderator"
    BOT = "bot"
    SYSTEM = "system"


class MessageType(str, Enum):
    USER_QUESTION = "user-question"
    CLARIFYING_QUESTION = "clarifying-question"
    USER_RESPONSE = "user-response"
    USER_INTERJECTION = "user-interjection"
    BOT_QUERY = "bot-query"
    BOT_RESPONSE = "bot-response"
    MODERATOR_THINKING = "moderator-thinking"
    PROGRESS_UPDATE = "progress-update"
    FINAL_REPORT = "final-report"
    SYSTEM_MESSAGE = "system-message"


# Which message types each role may emit.
ROLE_MESSAGE_TYPES: dict[MessageRole, frozenset[MessageType]] = {
    MessageRole.USER: frozenset(
        {MessageType.USER_QUESTION, MessageType.USER_RESPONSE, MessageType.USER_INTERJECTION}
    ),
    MessageRole.MODERATOR: frozenset(
        {
            MessageType.CLARIFYING_QUESTION,
            MessageType.BOT_QUERY,
            MessageType.MODERATOR_THINKING,
            MessageType.PROGRESS_UPDATE,
            MessageType.FINAL_REPORT,
        }
    ),
    MessageRole.BOT: frozenset({MessageType.BOT_RESPONSE}),
    MessageRole.SYSTEM: frozenset({MessageType.SYSTEM_MESSAGE}),
}


class _Record(BaseModel):
    """Base config: snake_case in Python, camelCase when serialised by alias."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ToolUsage(_Record):
    """Audit record of one external tool call made while producing a message."""

    model_config = ConfigDict(frozen=True)

    tool: str
    query: str
    result: str
    timestamp: datetime = Field(default_factory=_utcnow)


class Message(_Record):
    """One immutable entry in a conversation transcript."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_new_id)
    conversation_id: str
    role: MessageRole
    type: MessageType
    content: str
    timestamp: datetime = Field(default_factory=_utcnow)
    bot_id: str | None = None
    model_name: str | None = None
    tools_used: tuple[ToolUsage, ...] = ()

    @model_validator(mode="after")
    def _type_matches_role(self) -> Message:
        if self.type not in ROLE_MESSAGE_TYPES[self.role]:
            raise ValueError(
                f"Message type {self.type.value!r} cannot be sent by role {self.role.value!r}"
            )
        return self


class ResearchTaskStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    FAILED = "failed"


class ResearchTask(_Record):
    """Bookkeeping for one specialist consultation in a guided conversation."""

    model_config = ConfigDict(validate_assignment=True)

    id: str = Field(default_factory=_new_id)
    description: str
    assigned_bot_id: str
    status: ResearchTaskStatus = ResearchTaskStatus.PENDING
    result: str | None = None
    created_at: datetime = Field(default_factory=_utcnow)
    completed_at: datetime | None = None


class Conversation(_Record):
    """A single user conversation and its append-only transcript.

    Instances are owned by :class:`data.store.ConversationStore`; everything
    else reads them and routes mutations through the store.
    """

    model_config = ConfigDict(validate_assignment=True)

    id: str = Field(default_factory=_new_id)
    user_id: str
    status: ConversationStatus
    title: str = Field(frozen=True)
    messages: list[Message] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    current_phase: str = ""
    active_bot: str | None = None
    pending_questions: list[str] = Field(default_factory=list)
    research_tasks: list[ResearchTask] = Field(default_factory=list)

    debate_mode: bool = False
    debate_round: int | None = None
    participating_bots: list[str] = Field(default_factory=list)

    def messages_of_type(self, message_type: MessageType) -> list[Message]:
        return [m for m in self.messages if m.type == message_type]

    @property
    def bot_responses(self) -> list[Message]:
        return self.messages_of_type(MessageType.BOT_RESPONSE)

    def last_bot_response(self) -> Message | None:
        for message in reversed(self.messages):
            if message.type == MessageType.BOT_RESPONSE:
                return message
        return None
