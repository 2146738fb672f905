"""Action Dispatcher – executes moderator decisions against a guided conversation.

One call to :meth:`ActionDispatcher.run` is one turn: the decision is
executed, and whenever it produced a fresh specialist reply the moderator is
asked again and the next decision is executed in the same turn.  The chain
ends on ``ask-user`` (a human must answer), on ``synthesize-report`` or on a
failed agent call.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from data.models import ConversationStatus, MessageRole, MessageType, ResearchTask, ResearchTaskStatus
from data.store import ConversationStore
from orchestration.decisions import AskUser, ContinueResearch, Decision, QueryBot, SynthesizeReport
from orchestration.errors import AgentCallError
from orchestration.registry import AgentRegistry

logger = logging.getLogger(__name__)

PHASE_ANALYZING_QUESTION = "Analyzing your question"
PHASE_STARTING_RESEARCH = "Starting research"
PHASE_ANALYZING_INFO = "Analyzing information"
PHASE_WAITING_FOR_USER = "Waiting for your input"
PHASE_PREPARING_REPORT = "Preparing your report"
PHASE_COMPLETE = "Complete"


class ActionDispatcher:
    """Drives the moderator → specialist → moderator chain for one conversation turn.

    Parameters
    ----------
    store : ConversationStore
        Where every message and state change is written.
    registry : AgentRegistry
        Source of the moderator and the specialists it delegates to.
    default_search_agent : str
        Target used when the moderator's initial analysis cannot be parsed.
    """

    def __init__(
        self,
        store: ConversationStore,
        registry: AgentRegistry,
        default_search_agent: str,
    ) -> None:
        self.store = store
        self.registry = registry
        self.default_search_agent = default_search_agent

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def analyze(self, conversation_id: str, question: str) -> None:
        """Start a turn from the moderator's initial analysis of *question*."""
        self.store.set_phase(conversation_id, PHASE_ANALYZING_QUESTION)
        decision = await self._initial_decision(conversation_id, question)
        if decision is not None:
            await self.run(conversation_id, decision)

    async def resume(self, conversation_id: str) -> None:
        """Start a turn from the latest specialist reply (or from scratch if none)."""
        decision = await self._next_decision(conversation_id)
        if decision is not None:
            await self.run(conversation_id, decision)

    async def run(self, conversation_id: str, decision: Decision) -> None:
        """Execute *decision* and every decision it leads to within this turn."""
        next_decision: Decision | None = decision
        while next_decision is not None:
            next_decision = await self.execute(conversation_id, next_decision)

    async def execute(self, conversation_id: str, decision: Decision) -> Decision | None:
        """Execute a single decision; return the follow-up decision, if any."""
        self.store.add_message(
            conversation_id,
            MessageRole.MODERATOR,
            MessageType.MODERATOR_THINKING,
            decision.reasoning,
            model_name=self.registry.moderator.config.model,
        )
        logger.info("Conversation %s: executing %s", conversation_id, decision.action)

        if isinstance(decision, AskUser):
            self._ask_user(conversation_id, decision)
            return None
        if isinstance(decision, QueryBot):
            return await self._query_bot(conversation_id, decision)
        if isinstance(decision, SynthesizeReport):
            await self._synthesize_report(conversation_id)
            return None
        if isinstance(decision, ContinueResearch):
            return await self._next_decision(conversation_id)
        raise TypeError(f"Unsupported decision {decision!r}")

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    def _ask_user(self, conversation_id: str, decision: AskUser) -> None:
        self.store.update(
            conversation_id,
            status=ConversationStatus.GATHERING_CONTEXT,
            current_phase=PHASE_WAITING_FOR_USER,
            active_bot=None,
            pending_questions=list(decision.next_steps),
        )
        self.store.add_message(
            conversation_id,
            MessageRole.MODERATOR,
            MessageType.CLARIFYING_QUESTION,
            decision.content,
        )

    def ask_pending_question(self, conversation_id: str) -> bool:
        """Ask the next queued clarifying question; ``False`` if none is queued."""
        conversation = self.store.require(conversation_id)
        if not conversation.pending_questions:
            return False
        question, *remaining = conversation.pending_questions
        self.store.update(
            conversation_id,
            status=ConversationStatus.GATHERING_CONTEXT,
            current_phase=PHASE_WAITING_FOR_USER,
            pending_questions=remaining,
        )
        self.store.add_message(
            conversation_id, MessageRole.MODERATOR, MessageType.CLARIFYING_QUESTION, question
        )
        return True

    async def _query_bot(self, conversation_id: str, decision: QueryBot) -> Decision | None:
        self.store.set_status(conversation_id, ConversationStatus.RESEARCHING)
        agent = self.registry.get(decision.target)
        if agent is None:
            logger.error(
                "Conversation %s: moderator targeted unknown agent %r, aborting turn",
                conversation_id,
                decision.target,
            )
            return None

        conversation = self.store.require(conversation_id)
        task = ResearchTask(
            description=decision.content,
            assigned_bot_id=agent.agent_id,
            status=ResearchTaskStatus.IN_PROGRESS,
        )
        self.store.update(
            conversation_id,
            active_bot=agent.agent_id,
            current_phase=f"Consulting {agent.name}",
            research_tasks=[*conversation.research_tasks, task],
        )
        self.store.add_message(
            conversation_id,
            MessageRole.MODERATOR,
            MessageType.BOT_QUERY,
            decision.content,
            bot_id=agent.agent_id,
            model_name=self.registry.moderator.config.model,
        )

        try:
            reply = await agent.answer_query(decision.content)
        except AgentCallError as exc:
            logger.warning("Conversation %s: %s", conversation_id, exc)
            task.status = ResearchTaskStatus.FAILED
            task.completed_at = datetime.now(timezone.utc)
            self.store.set_active_bot(conversation_id, None)
            self.store.add_message(
                conversation_id,
                MessageRole.SYSTEM,
                MessageType.SYSTEM_MESSAGE,
                f"Error consulting {agent.name}. Continuing with available information.",
            )
            return None

        task.status = ResearchTaskStatus.COMPLETED
        task.result = reply.content
        task.completed_at = datetime.now(timezone.utc)
        self.store.add_message(
            conversation_id,
            MessageRole.BOT,
            MessageType.BOT_RESPONSE,
            reply.content,
            bot_id=agent.agent_id,
            model_name=reply.model,
            tools_used=reply.tools_used,
        )
        return await self._next_decision(conversation_id)

    async def _synthesize_report(self, conversation_id: str) -> None:
        self.store.update(
            conversation_id,
            status=ConversationStatus.SYNTHESIZING,
            current_phase=PHASE_PREPARING_REPORT,
        )
        moderator = self.registry.moderator
        try:
            reply = await moderator.synthesize_report(self.store.require(conversation_id))
        except AgentCallError as exc:
            logger.warning("Conversation %s: report synthesis failed: %s", conversation_id, exc)
            self._report_moderator_failure(conversation_id)
            return

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
            current_phase=PHASE_COMPLETE,
            active_bot=None,
        )
        logger.info("Conversation %s completed with a final report", conversation_id)

    # ------------------------------------------------------------------
    # Moderator consultations
    # ------------------------------------------------------------------

    async def _initial_decision(self, conversation_id: str, question: str) -> Decision | None:
        conversation = self.store.require(conversation_id)
        try:
            return await self.registry.moderator.analyze_question(
                question,
                conversation,
                self.registry.configs(),
                self.default_search_agent,
            )
        except AgentCallError as exc:
            logger.warning("Conversation %s: initial analysis failed: %s", conversation_id, exc)
            self._report_moderator_failure(conversation_id)
            return None

    async def _next_decision(self, conversation_id: str) -> Decision | None:
        """Re-derive the next decision from the latest specialist reply."""
        conversation = self.store.require(conversation_id)
        last = conversation.last_bot_response()
        if last is None:
            self.store.set_phase(conversation_id, PHASE_STARTING_RESEARCH)
            return await self._initial_decision(conversation_id, conversation.title)

        self.store.set_phase(conversation_id, PHASE_ANALYZING_INFO)
        try:
            return await self.registry.moderator.process_bot_response(
                last.content, last.bot_id or "unknown", conversation
            )
        except AgentCallError as exc:
            logger.warning("Conversation %s: follow-up analysis failed: %s", conversation_id, exc)
            self._report_moderator_failure(conversation_id)
            return None

    def _report_moderator_failure(self, conversation_id: str) -> None:
        self.store.set_active_bot(conversation_id, None)
        self.store.add_message(
            conversation_id,
            MessageRole.SYSTEM,
            MessageType.SYSTEM_MESSAGE,
            "The moderator could not be reached. Send another message to try again.",
        )
