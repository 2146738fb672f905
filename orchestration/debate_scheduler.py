"""Debate Scheduler – free-running round-robin debates with stop / resume.

Each debating conversation gets one ``asyncio.Task`` that takes a turn,
sleeps ``turn_delay`` seconds and goes again.  Whether another turn starts
is decided in one place, :meth:`DebateScheduler._should_continue`, which
runs right before every turn.  ``stop`` only flips the status, so a turn
already waiting on its model call still finishes and appends its reply.
"""

from __future__ import annotations

import asyncio
import logging
import math

from data.models import Conversation, ConversationStatus, Message, MessageRole, MessageType
from data.store import ConversationStore
from orchestration.errors import AgentCallError
from orchestration.registry import AgentRegistry

logger = logging.getLogger(__name__)

DEFAULT_TURN_DELAY = 1.0
DEFAULT_CONTEXT_WINDOW = 6

PHASE_STOPPED = "Debate stopped"
PHASE_RESUMING = "Resuming debate"
PHASE_AWAITING_CONCLUSION = "Waiting for conclusion"
PHASE_CONCLUDING = "Generating conclusion"
PHASE_CONCLUDED = "Concluded"

NO_CONTEXT = "No previous discussion yet. You are the first to respond."


def debate_round(total_responses: int, participants: int) -> int:
    """Round number after *total_responses* replies (the first round is 1)."""
    return max(1, math.ceil(total_responses / participants))


class DebateScheduler:
    """Runs and controls round-robin debates.

    Parameters
    ----------
    store : ConversationStore
        Conversation state.
    registry : AgentRegistry
        Holds the debate participants (registered at conversation start).
    turn_delay : float
        Seconds between two turns, to stay clear of provider rate limits.
    context_window : int
        Number of most recent bot responses shown to the next speaker.
    max_turns : int | None
        Stop scheduling once this many bot responses exist; ``None`` runs
        until the debate is stopped or concluded.
    """

    def __init__(
        self,
        store: ConversationStore,
        registry: AgentRegistry,
        *,
        turn_delay: float = DEFAULT_TURN_DELAY,
        context_window: int = DEFAULT_CONTEXT_WINDOW,
        max_turns: int | None = None,
    ) -> None:
        self.store = store
        self.registry = registry
        self.turn_delay = turn_delay
        self.context_window = context_window
        self.max_turns = max_turns
        self._tasks: dict[str, asyncio.Task[None]] = {}

    # ------------------------------------------------------------------
    # Loop control
    # ------------------------------------------------------------------

    def start(self, conversation_id: str) -> asyncio.Task[None]:
        """Start the debate loop for a conversation (no-op if already running)."""
        task = self._tasks.get(conversation_id)
        if task is not None and not task.done():
            return task
        task = asyncio.create_task(self._run(conversation_id), name=f"debate-{conversation_id}")
        self._tasks[conversation_id] = task
        task.add_done_callback(lambda t, cid=conversation_id: self._forget(cid, t))
        logger.info("Debate loop started for conversation %s", conversation_id)
        return task

    def is_running(self, conversation_id: str) -> bool:
        task = self._tasks.get(conversation_id)
        return task is not None and not task.done()

    async def wait(self, conversation_id: str) -> None:
        """Wait until the debate loop for *conversation_id* has exited."""
        task = self._tasks.get(conversation_id)
        if task is not None:
            await task

    async def shutdown(self) -> None:
        """Cancel every running debate loop."""
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()

    async def _run(self, conversation_id: str) -> None:
        while self._should_continue(conversation_id):
            if not await self.take_turn(conversation_id):
                break
            if not self._should_continue(conversation_id):
                break
            await asyncio.sleep(self.turn_delay)
        logger.info("Debate loop exited for conversation %s", conversation_id)

    def _should_continue(self, conversation_id: str) -> bool:
        conversation = self.store.get(conversation_id)
        if conversation is None or conversation.status != ConversationStatus.DEBATING:
            return False
        if self.max_turns is not None and len(conversation.bot_responses) >= self.max_turns:
            return False
        return True

    def _forget(self, conversation_id: str, task: asyncio.Task[None]) -> None:
        if self._tasks.get(conversation_id) is task:
            del self._tasks[conversation_id]
        if not task.cancelled() and task.exception() is not None:
            logger.error(
                "Debate loop for conversation %s crashed",
                conversation_id,
                exc_info=task.exception(),
            )

    # ------------------------------------------------------------------
    # Turns
    # ------------------------------------------------------------------

    async def take_turn(self, conversation_id: str) -> bool:
        """Let the next speaker reply once.

        Returns ``False`` when the debate cannot continue (no participants or
        an unregistered speaker); a failed model call still returns ``True``.
        """
        async with self.store.turn_lock(conversation_id):
            conversation = self.store.require(conversation_id)
            participants = conversation.participating_bots
            if not participants:
                logger.error("Conversation %s has no debate participants", conversation_id)
                return False

            speaker_id = participants[len(conversation.bot_responses) % len(participants)]
            agent = self.registry.get(speaker_id)
            if agent is None:
                logger.error("Conversation %s: debate participant %r not registered", conversation_id, speaker_id)
                return False

            self.store.set_active_bot(conversation_id, speaker_id)
            self.store.set_phase(conversation_id, f"{agent.name} is responding")
            prompt = self._debate_prompt(conversation)

            try:
                reply = await agent.answer_query(prompt)
            except AgentCallError as exc:
                logger.warning("Conversation %s: %s", conversation_id, exc)
                self.store.add_message(
                    conversation_id,
                    MessageRole.SYSTEM,
                    MessageType.SYSTEM_MESSAGE,
                    f"Error getting response from {agent.name}. Continuing with other participants.",
                )
                return True

            self.store.add_message(
                conversation_id,
                MessageRole.BOT,
                MessageType.BOT_RESPONSE,
                reply.content,
                bot_id=speaker_id,
                model_name=reply.model,
                tools_used=reply.tools_used,
            )
            total = len(conversation.bot_responses)
            self.store.update(conversation_id, debate_round=debate_round(total, len(participants)))
            logger.debug(
                "Conversation %s: %s replied (response %d, round %d)",
                conversation_id,
                speaker_id,
                total,
                conversation.debate_round,
            )

            if (
                self.max_turns is not None
                and total >= self.max_turns
                and conversation.status == ConversationStatus.DEBATING
            ):
                self.store.update(
                    conversation_id, active_bot=None, current_phase=PHASE_AWAITING_CONCLUSION
                )
            return True

    def build_context(self, conversation: Conversation) -> str:
        """The last ``context_window`` bot responses, each tagged with speaker and model."""
        recent = conversation.bot_responses[-self.context_window:] if self.context_window > 0 else []
        if not recent:
            return NO_CONTEXT
        return "\n".join(
            f"\n[{self._speaker_name(m)} ({m.model_name or 'Unknown Model'})]: {m.content}"
            for m in recent
        )

    def _speaker_name(self, message: Message) -> str:
        agent = self.registry.get(message.bot_id) if message.bot_id else None
        return agent.name if agent is not None else "Unknown"

    def _debate_prompt(self, conversation: Conversation) -> str:
        prompt = (
            "You are participating in a collaborative debate with other AI models "
            f'about the following topic:\n\n"{conversation.title}"\n\n'
            f"Previous discussion:\n{self.build_context(conversation)}\n\n"
        )
        interjections = _interjections_since_last_reply(conversation)
        if interjections:
            joined = "\n".join(f"- {text}" for text in interjections)
            prompt += f"The user has added the following remarks:\n{joined}\n\n"
        prompt += (
            "Provide your perspective, insights, or counterpoints. Build upon or "
            "respectfully challenge the previous points. Be thoughtful and substantive."
        )
        return prompt

    # ------------------------------------------------------------------
    # Stop / resume / conclude
    # ------------------------------------------------------------------

    def stop(self, conversation_id: str) -> bool:
        """Stop scheduling further turns.

        Returns ``False`` for a guided conversation or a debate that is
        already stopped or completed.
        """
        conversation = self.store.require(conversation_id)
        if not conversation.debate_mode or conversation.status in (
            ConversationStatus.STOPPED,
            ConversationStatus.COMPLETED,
        ):
            return False
        self.store.update(
            conversation_id,
            status=ConversationStatus.STOPPED,
            current_phase=PHASE_STOPPED,
            active_bot=None,
        )
        self.store.add_message(
            conversation_id,
            MessageRole.SYSTEM,
            MessageType.SYSTEM_MESSAGE,
            "Debate has been stopped by the user.",
        )
        logger.info("Debate %s stopped", conversation_id)
        return True

    def resume(self, conversation_id: str) -> bool:
        """Restart a stopped debate; returns ``False`` if it was not stopped."""
        conversation = self.store.require(conversation_id)
        if not conversation.debate_mode or conversation.status != ConversationStatus.STOPPED:
            return False
        self.store.update(
            conversation_id,
            status=ConversationStatus.DEBATING,
            current_phase=PHASE_RESUMING,
        )
        self.store.add_message(
            conversation_id, MessageRole.SYSTEM, MessageType.SYSTEM_MESSAGE, "Debate resumed."
        )
        self.start(conversation_id)
        return True

    async def conclude(self, conversation_id: str) -> str | None:
        """Have the moderator write a balanced conclusion and complete the debate.

        A turn already in flight is allowed to finish first so its reply is
        part of the conclusion.  Returns ``None`` when the moderator call
        fails; the debate is then left stopped.
        """
        self.store.update(
            conversation_id,
            status=ConversationStatus.SYNTHESIZING,
            current_phase=PHASE_CONCLUDING,
            active_bot=None,
        )
        async with self.store.turn_lock(conversation_id):
            conversation = self.store.require(conversation_id)
            moderator = self.registry.moderator
            try:
                reply = await moderator.summarize_debate(conversation.title, self.build_context(conversation))
            except AgentCallError as exc:
                logger.warning("Conversation %s: conclusion failed: %s", conversation_id, exc)
                self.store.add_message(
                    conversation_id,
                    MessageRole.SYSTEM,
                    MessageType.SYSTEM_MESSAGE,
                    "The moderator could not write a conclusion. Resume the debate or try again.",
                )
                self.store.update(
                    conversation_id, status=ConversationStatus.STOPPED, current_phase=PHASE_STOPPED
                )
                return None

            self.store.add_message(
                conversation_id,
                MessageRole.MODERATOR,
                MessageType.FINAL_REPORT,
                reply.content,
                model_name=moderator.config.model,
            )
            self.store.update(
                conversation_id,
                status=ConversationStatus.COMPLETED,
                current_phase=PHASE_CONCLUDED,
            )
            logger.info("Debate %s concluded", conversation_id)
            return reply.content


def _interjections_since_last_reply(conversation: Conversation) -> list[str]:
    remarks: list[str] = []
    for message in reversed(conversation.messages):
        if message.type == MessageType.BOT_RESPONSE:
            break
        if message.type == MessageType.USER_INTERJECTION:
            remarks.append(message.content)
    return list(reversed(remarks))
