"""In-memory conversation store.

The store is the sole owner of :class:`Conversation` instances.  Every
mutator works on the single stored object (readers see in-progress turns)
and fires the ``on_change`` callback afterwards so a transport layer can
broadcast the new state.

Mutators are plain synchronous methods, so each one is atomic with respect
to the event loop.  Whole turns, which span several awaits, are serialised
per conversation with :meth:`ConversationStore.turn_lock`.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

from data.models import (
    Conversation,
    ConversationStatus,
    Message,
    MessageRole,
    MessageType,
)
from orchestration.errors import ConversationNotFoundError

logger = logging.getLogger(__name__)

ChangeCallback = Callable[[str, Conversation], None]

_PHASE_STARTING_DEBATE = "Starting debate"
_PHASE_ANALYZING = "Analyzing your question"


class ConversationStore:
    """Mapping of conversation id to :class:`Conversation`.

    Parameters
    ----------
    on_change : ChangeCallback | None
        Invoked as ``on_change(conversation_id, conversation)`` after every
        externally visible mutation.
    """

    def __init__(self, on_change: ChangeCallback | None = None) -> None:
        self._conversations: dict[str, Conversation] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self.on_change = on_change

    # ------------------------------------------------------------------
    # Creation / lookup
    # ------------------------------------------------------------------

    def create(
        self,
        user_id: str,
        question: str,
        *,
        debate_mode: bool = False,
        participating_bots: list[str] | None = None,
    ) -> tuple[Conversation, Message]:
        """Create a conversation seeded with the user's question."""
        conversation = Conversation(
            user_id=user_id,
            title=question,
            status=(
                ConversationStatus.DEBATING if debate_mode else ConversationStatus.GATHERING_CONTEXT
            ),
            current_phase=_PHASE_STARTING_DEBATE if debate_mode else _PHASE_ANALYZING,
            debate_mode=debate_mode,
            debate_round=1 if debate_mode else None,
            participating_bots=list(participating_bots or []) if debate_mode else [],
        )
        initial = Message(
            conversation_id=conversation.id,
            role=MessageRole.USER,
            type=MessageType.USER_QUESTION,
            content=question,
        )
        conversation.messages.append(initial)
        self._conversations[conversation.id] = conversation
        logger.info(
            "Created %s conversation %s for user %s",
            "debate" if debate_mode else "guided",
            conversation.id,
            user_id,
        )
        self._notify(conversation)
        return conversation, initial

    def get(self, conversation_id: str) -> Conversation | None:
        return self._conversations.get(conversation_id)

    def require(self, conversation_id: str) -> Conversation:
        """Like :meth:`get` but raises :class:`ConversationNotFoundError`."""
        conversation = self._conversations.get(conversation_id)
        if conversation is None:
            raise ConversationNotFoundError(conversation_id)
        return conversation

    def list_by_user(self, user_id: str) -> list[Conversation]:
        return [c for c in self._conversations.values() if c.user_id == user_id]

    def __contains__(self, conversation_id: object) -> bool:
        return conversation_id in self._conversations

    def __len__(self) -> int:
        return len(self._conversations)

    # ------------------------------------------------------------------
    # Mutators
    # ------------------------------------------------------------------

    def append_message(self, conversation_id: str, message: Message) -> Message:
        """Append *message*, clamping its timestamp so the log never goes backwards.

        Returns the message actually stored.
        """
        conversation = self.require(conversation_id)
        if message.conversation_id != conversation_id:
            raise ValueError(
                f"Message belongs to {message.conversation_id}, not {conversation_id}"
            )
        if conversation.messages and message.timestamp < conversation.messages[-1].timestamp:
            message = message.model_copy(update={"timestamp": conversation.messages[-1].timestamp})
        conversation.messages.append(message)
        self._touch(conversation)
        return message

    def add_message(
        self,
        conversation_id: str,
        role: MessageRole,
        message_type: MessageType,
        content: str,
        **metadata: Any,
    ) -> Message:
        """Build a :class:`Message` for this conversation and append it."""
        message = Message(
            conversation_id=conversation_id,
            role=role,
            type=message_type,
            content=content,
            **metadata,
        )
        return self.append_message(conversation_id, message)

    def set_status(self, conversation_id: str, status: ConversationStatus) -> None:
        conversation = self.require(conversation_id)
        if conversation.status != status:
            logger.debug("Conversation %s: %s -> %s", conversation_id, conversation.status.value, status.value)
        conversation.status = status
        self._touch(conversation)

    def set_phase(self, conversation_id: str, phase: str) -> None:
        conversation = self.require(conversation_id)
        conversation.current_phase = phase
        self._touch(conversation)

    def set_active_bot(self, conversation_id: str, bot_id: str | None) -> None:
        conversation = self.require(conversation_id)
        if (
            bot_id is not None
            and conversation.debate_mode
            and bot_id not in conversation.participating_bots
        ):
            raise ValueError(f"{bot_id!r} is not participating in conversation {conversation_id}")
        conversation.active_bot = bot_id
        self._touch(conversation)

    def update(self, conversation_id: str, **fields: Any) -> Conversation:
        """Assign several attributes at once and notify a single time."""
        conversation = self.require(conversation_id)
        for name, value in fields.items():
            if name in ("id", "title", "messages", "user_id"):
                raise ValueError(f"{name!r} cannot be updated")
            setattr(conversation, name, value)
        self._touch(conversation)
        return conversation

    # ------------------------------------------------------------------
    # Per-conversation serialisation
    # ------------------------------------------------------------------

    def turn_lock(self, conversation_id: str) -> asyncio.Lock:
        """Lock that serialises whole turns for one conversation."""
        lock = self._locks.get(conversation_id)
        if lock is None:
            lock = self._locks[conversation_id] = asyncio.Lock()
        return lock

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _touch(self, conversation: Conversation) -> None:
        conversation.updated_at = datetime.now(timezone.utc)
        self._notify(conversation)

    def _notify(self, conversation: Conversation) -> None:
        if self.on_change is None:
            return
        try:
            self.on_change(conversation.id, conversation)
        except Exception:  # noqa: BLE001
            logger.exception("on_change callback failed for conversation %s", conversation.id)
