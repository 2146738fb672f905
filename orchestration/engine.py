"""ConversationEngine – the interface a transport layer (HTTP, WebSocket, CLI) talks to.

Guided conversations are driven by the :class:`ActionDispatcher`; debates by
the :class:`DebateScheduler`.  Both write through one
:class:`ConversationStore`, whose ``on_change`` callback lets the transport
broadcast every state change.
"""

from __future__ import annotations

import logging
from typing import Any

from agents.catalog import ModelCatalog, ModelSelection, build_debate_participants
from agents.roster import DEFAULT_SEARCH_AGENT_ID, load_roster
from data.models import Conversation, Message, MessageRole, MessageType
from data.store import ChangeCallback, ConversationStore
from orchestration.debate_scheduler import DEFAULT_CONTEXT_WINDOW, DEFAULT_TURN_DELAY, DebateScheduler
from orchestration.dispatcher import ActionDispatcher
from orchestration.registry import AgentRegistry, ProviderFactory
from tools.search import SearchTool

logger = logging.getLogger(__name__)

_USER_MESSAGE_TYPES = {
    MessageType.USER_QUESTION,
    MessageType.USER_RESPONSE,
    MessageType.USER_INTERJECTION,
}


class ConversationEngine:
    """Owns the store, the registry and both conversation drivers.

    Parameters
    ----------
    registry : AgentRegistry
        Moderator and specialists.  Debate participants built from model
        selections are registered off the roster for the lifetime of their
        debate and removed once it is concluded.
    catalog : ModelCatalog | None
        Models that debate participants can be created from.
    on_change : ChangeCallback | None
        ``on_change(conversation_id, conversation)`` after every mutation.
    default_search_agent : str
        Specialist queried when the moderator's first analysis is unusable.
    turn_delay, context_window, max_turns
        Forwarded to :class:`DebateScheduler`.
    """

    def __init__(
        self,
        registry: AgentRegistry,
        catalog: ModelCatalog | None = None,
        *,
        on_change: ChangeCallback | None = None,
        default_search_agent: str = DEFAULT_SEARCH_AGENT_ID,
        turn_delay: float = DEFAULT_TURN_DELAY,
        context_window: int = DEFAULT_CONTEXT_WINDOW,
        max_turns: int | None = None,
    ) -> None:
        self.registry = registry
        self.catalog = catalog or ModelCatalog()
        self.store = ConversationStore(on_change)
        self.dispatcher = ActionDispatcher(self.store, registry, default_search_agent)
        self.debates = DebateScheduler(
            self.store,
            registry,
            turn_delay=turn_delay,
            context_window=context_window,
            max_turns=max_turns,
        )
        self._participants: dict[str, list[str]] = {}

    @classmethod
    def from_config(
        cls,
        cfg: dict[str, Any],
        provider_factory: ProviderFactory,
        *,
        search_tool: SearchTool | None = None,
        on_change: ChangeCallback | None = None,
    ) -> ConversationEngine:
        """Build an engine from a parsed YAML config (see ``config/default.yaml``)."""
        moderator, specialists = load_roster(cfg)
        registry = AgentRegistry(provider_factory, moderator, specialists, search_tool)
        debate_cfg = cfg.get("debate") or {}
        return cls(
            registry,
            ModelCatalog.from_config(cfg.get("models")),
            on_change=on_change,
            default_search_agent=cfg.get("default_search_agent", DEFAULT_SEARCH_AGENT_ID),
            turn_delay=debate_cfg.get("turn_delay", DEFAULT_TURN_DELAY),
            context_window=debate_cfg.get("context_window", DEFAULT_CONTEXT_WINDOW),
            max_turns=debate_cfg.get("max_turns"),
        )

    # ------------------------------------------------------------------
    # Conversation lifecycle
    # ------------------------------------------------------------------

    async def create_conversation(
        self,
        user_id: str,
        question: str,
        debate_mode: bool = True,
        model_selections: list[ModelSelection] | None = None,
    ) -> tuple[Conversation, Message]:
        """Open a conversation and start it.

        Guided conversations run their first turn before this returns;
        debates start a background loop and return immediately.
        """
        if not question.strip():
            raise ValueError("question must not be empty")

        participants: list[str] = []
        if debate_mode:
            participants = self._debate_participants(question, model_selections)
            if not participants:
                raise ValueError("A debate needs at least one participant")

        conversation, initial = self.store.create(
            user_id,
            question,
            debate_mode=debate_mode,
            participating_bots=participants,
        )
        if debate_mode and model_selections:
            self._participants[conversation.id] = participants

        if debate_mode:
            self.debates.start(conversation.id)
        else:
            async with self.store.turn_lock(conversation.id):
                await self.dispatcher.analyze(conversation.id, question)
        return conversation, initial

    async def process_user_message(
        self,
        conversation_id: str,
        content: str,
        message_type: MessageType | str = MessageType.USER_RESPONSE,
    ) -> None:
        """Feed a user message into a conversation and run the resulting turn.

        In a debate the message is recorded as an interjection for the next
        speaker, and a stopped debate is resumed.
        """
        conversation = self.store.require(conversation_id)
        message_type = MessageType(message_type)
        if message_type not in _USER_MESSAGE_TYPES:
            raise ValueError(f"{message_type.value!r} is not a user message type")

        if conversation.debate_mode:
            self.store.add_message(
                conversation_id, MessageRole.USER, MessageType.USER_INTERJECTION, content
            )
            self.debates.resume(conversation_id)
            return

        async with self.store.turn_lock(conversation_id):
            if message_type != MessageType.USER_QUESTION:
                self.store.add_message(conversation_id, MessageRole.USER, message_type, content)

            if len(conversation.messages) == 1:
                await self.dispatcher.analyze(conversation_id, content)
                return
            if message_type == MessageType.USER_RESPONSE and self.dispatcher.ask_pending_question(
                conversation_id
            ):
                return
            await self.dispatcher.resume(conversation_id)

    def stop_debate(self, conversation_id: str) -> bool:
        return self.debates.stop(conversation_id)

    def resume_debate(self, conversation_id: str) -> bool:
        return self.debates.resume(conversation_id)

    async def generate_conclusion(self, conversation_id: str) -> str | None:
        self.store.require(conversation_id)
        conclusion = await self.debates.conclude(conversation_id)
        if conclusion is not None:
            self._release_participants(conversation_id)
        return conclusion

    def get_conversation(self, conversation_id: str) -> Conversation | None:
        return self.store.get(conversation_id)

    def list_conversations(self, user_id: str) -> list[Conversation]:
        return self.store.list_by_user(user_id)

    async def shutdown(self) -> None:
        await self.debates.shutdown()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _debate_participants(
        self, question: str, selections: list[ModelSelection] | None
    ) -> list[str]:
        if not selections:
            return [config.id for config in self.registry.configs()]

        configs = build_debate_participants(question, selections, self.catalog)
        for config in configs:
            self.registry.add(config, roster=False)
        logger.info("Registered %d debate participants", len(configs))
        return [config.id for config in configs]

    def _release_participants(self, conversation_id: str) -> None:
        for agent_id in self._participants.pop(conversation_id, []):
            self.registry.remove(agent_id)
