"""Moderator agent – analyses questions, steers research and writes the final report."""

from __future__ import annotations

from collections.abc import Iterable

from agents.base import SEARCH_TOOL, AgentConfig, AgentReply, BaseAgent
from data.models import Conversation, MessageType
from orchestration.decisions import Decision, decide_follow_up, decide_initial

_CLARIFICATION_TYPES = (MessageType.CLARIFYING_QUESTION, MessageType.USER_RESPONSE)


def render_transcript(conversation: Conversation) -> str:
    """Render every non-system message as ``[role - bot]: content`` blocks."""
    blocks = []
    for message in conversation.messages:
        if message.type == MessageType.SYSTEM_MESSAGE:
            continue
        speaker = message.role.value
        if message.bot_id:
            speaker = f"{speaker} - {message.bot_id}"
        blocks.append(f"[{speaker}]: {message.content}")
    return "\n\n".join(blocks)


def render_roster(specialists: Iterable[AgentConfig]) -> str:
    lines = []
    for config in specialists:
        suffix = f" (has {SEARCH_TOOL} tool)" if SEARCH_TOOL in config.tools else ""
        lines.append(f"- {config.id}: {config.role}{suffix}")
    return "\n".join(lines) or "- (no specialists available)"


class Moderator(BaseAgent):
    """The agent that decides what happens next in a guided conversation.

    Decision methods return a :data:`~orchestration.decisions.Decision`
    even when the model's reply is malformed; only a failed model call
    (:class:`~orchestration.errors.AgentCallError`) escapes.
    """

    async def analyze_question(
        self,
        question: str,
        conversation: Conversation,
        specialists: Iterable[AgentConfig],
        default_target: str,
    ) -> Decision:
        clarifications = [
            f"{m.role.value}: {m.content}"
            for m in conversation.messages
            if m.type in _CLARIFICATION_TYPES
        ]
        clarification_block = ""
        if clarifications:
            clarification_block = (
                "\nClarifications exchanged so far:\n" + "\n".join(clarifications) + "\n"
            )

        prompt = f"""You are the Moderator in a collaborative AI system. A user has asked:

"{question}"
{clarification_block}
Your job is to:
1. Determine if you need clarification from the user
2. Identify which specialist bots you should consult
3. Plan your research strategy

Available specialist bots:
{render_roster(specialists)}

Analyze this question and respond in JSON format:
{{
  "needsClarification": true/false,
  "clarifyingQuestions": ["question1", "question2"],
  "researchPlan": ["step1", "step2"],
  "botsToConsult": ["bot-id-1", "bot-id-2"],
  "reasoning": "your reasoning here"
}}"""
        reply = await self.respond(prompt)
        return decide_initial(reply.content, question, default_target)

    async def process_bot_response(
        self,
        bot_response: str,
        bot_id: str,
        conversation: Conversation,
    ) -> Decision:
        prompt = f"""You are the Moderator analyzing responses from specialist bots.

Original question: "{conversation.title}"

Bot "{bot_id}" responded with:
{bot_response}

Current conversation context:
{render_transcript(conversation)}

Decide your next action:
1. "continue-research" - Query another bot for more information
2. "ask-user" - Ask the user for clarification or additional input
3. "synthesize-report" - You have enough information to provide a final answer

Respond in JSON format:
{{
  "action": "continue-research" | "ask-user" | "synthesize-report",
  "reasoning": "your reasoning",
  "nextBot": "bot-id" (if continue-research),
  "question": "question for user" (if ask-user),
  "confidence": 0-100
}}"""
        reply = await self.respond(prompt)
        return decide_follow_up(reply.content, bot_response)

    async def synthesize_report(self, conversation: Conversation) -> AgentReply:
        prompt = f"""You are the Moderator synthesizing a final report.

Original question: "{conversation.title}"

All information gathered:
{render_transcript(conversation)}

Create a comprehensive, well-structured report that:
1. Directly answers the user's question
2. Synthesizes information from all specialist bots
3. Provides actionable recommendations
4. Cites sources where relevant
5. Is clear, concise, and friendly

Write your report now:"""
        return await self.respond(prompt)

    async def summarize_debate(self, topic: str, debate_context: str) -> AgentReply:
        prompt = f"""Analyze and summarize the following AI debate:

Topic: "{topic}"

Debate discussion:
{debate_context}

Provide a comprehensive conclusion that:
1. Summarizes the key points and perspectives presented
2. Identifies areas of agreement and disagreement
3. Highlights the most valuable insights
4. Provides a balanced synthesis of the discussion

Your conclusion:"""
        return await self.respond(prompt)

    async def generate_clarifying_question(self, question: str, context: str) -> str:
        prompt = (
            f'The user asked: "{question}"\n\n'
            f"Context: {context}\n\n"
            "Generate ONE clarifying question that would help you better understand "
            "what the user needs. Make it friendly and conversational."
        )
        reply = await self.respond(prompt)
        return reply.content.strip()
