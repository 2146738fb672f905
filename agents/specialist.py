"""Specialist agent – answers delegated queries within a declared expertise."""

from __future__ import annotations

from agents.base import AgentReply, BaseAgent


class Specialist(BaseAgent):
    """A non-moderator agent; its expertise comes entirely from its config."""

    async def answer_query(self, query: str, context: str | None = None) -> AgentReply:
        prompt = f"Context: {context}\n\nQuery: {query}" if context else query
        return await self.respond(prompt)

    async def provide_expert_opinion(self, topic: str, question: str) -> AgentReply:
        prompt = (
            f"As an expert in {self.config.role}, provide your professional opinion on:\n\n"
            f"Topic: {topic}\n"
            f"Specific Question: {question}\n\n"
            f"Provide a detailed, well-reasoned response based on your expertise."
        )
        return await self.respond(prompt)

    async def compare_options(self, options: list[str], criteria: list[str]) -> AgentReply:
        option_lines = "\n".join(f"{i}. {opt}" for i, opt in enumerate(options, start=1))
        criteria_lines = "\n".join(f"{i}. {c}" for i, c in enumerate(criteria, start=1))
        prompt = (
            f"As an expert in {self.config.role}, compare the following options:\n\n"
            f"Options:\n{option_lines}\n\n"
            f"Criteria:\n{criteria_lines}\n\n"
            f"Provide a detailed comparison with recommendations."
        )
        return await self.respond(prompt)
