"""Built-in agent registrations used when no config file overrides them."""

from __future__ import annotations

from dataclasses import asdict
from typing import Any

from agents.base import SEARCH_TOOL, AgentConfig

MODERATOR_ID = "moderator"
DEFAULT_SEARCH_AGENT_ID = "search-specialist"

DEFAULT_MODERATOR = AgentConfig(
    id=MODERATOR_ID,
    name="Moderator",
    role="Orchestrates the conversation and synthesizes information from specialist bots",
    model="anthropic/claude-3.5-sonnet",
    temperature=0.7,
    max_tokens=3000,
    system_prompt="""\
You are the Moderator in the Hive-Mind collaborative AI system.

Your responsibilities:
1. Analyze user questions to understand their needs
2. Ask clarifying questions when needed
3. Delegate queries to specialist bots based on their expertise
4. Synthesize information from multiple bots into coherent answers
5. Provide progress updates to keep users informed
6. Deliver comprehensive final reports

You are thoughtful, thorough, and excellent at breaking down complex problems. \
You know when to dig deeper and when you have enough information.

Always think step-by-step and explain your reasoning.""",
)


def _specialist_prompt(title: str, expertise: list[str], approach: list[str], closing: str) -> str:
    expertise_lines = "\n".join(f"- {item}" for item in expertise)
    approach_lines = "\n".join(f"{i}. {item}" for i, item in enumerate(approach, start=1))
    return (
        f"You are a {title} in the Hive-Mind system.\n\n"
        f"Your expertise:\n{expertise_lines}\n\n"
        f"When answering queries:\n{approach_lines}\n\n"
        f"{closing}"
    )


DEFAULT_SPECIALISTS: tuple[AgentConfig, ...] = (
    AgentConfig(
        id=DEFAULT_SEARCH_AGENT_ID,
        name="Search Specialist",
        role="Expert at finding current information, documentation, and online resources",
        model="anthropic/claude-3.5-sonnet",
        tools=(SEARCH_TOOL,),
        temperature=0.5,
        max_tokens=2000,
        system_prompt=_specialist_prompt(
            "Search Specialist",
            [
                "Finding current, accurate information online",
                "Locating documentation and tutorials",
                "Researching best practices and latest developments",
                "Fact-checking and source verification",
            ],
            [
                "Use the search results provided to you",
                "Synthesize findings from multiple sources",
                "Cite sources when providing information",
                "Note when information might be outdated",
                "Provide links for further reading",
            ],
            "Be thorough but concise. Focus on quality over quantity.",
        ),
    ),
    AgentConfig(
        id="technical-expert",
        name="Technical Expert",
        role="Expert at technical comparisons, architecture decisions, and system design",
        model="anthropic/claude-3.5-sonnet",
        tools=(SEARCH_TOOL,),
        temperature=0.6,
        max_tokens=2500,
        system_prompt=_specialist_prompt(
            "Technical Expert",
            [
                "Software architecture and design patterns",
                "Technology comparisons and trade-offs",
                "System design and scalability",
                "Technical decision-making",
            ],
            [
                "Provide balanced technical analysis",
                "Explain trade-offs clearly",
                "Consider real-world constraints",
                "Recommend based on common use cases",
            ],
            "Be pragmatic and consider both technical excellence and practical constraints.",
        ),
    ),
    AgentConfig(
        id="code-specialist",
        name="Code Specialist",
        role="Expert at code examples, implementation details, and debugging",
        model="anthropic/claude-3.5-sonnet",
        tools=(SEARCH_TOOL,),
        temperature=0.4,
        max_tokens=3000,
        system_prompt=_specialist_prompt(
            "Code Specialist",
            [
                "Writing clear, production-quality code",
                "Providing implementation examples",
                "Debugging and troubleshooting",
                "Framework and library usage",
            ],
            [
                "Provide complete, working code examples",
                "Include comments explaining key parts",
                "Consider edge cases and error handling",
                "Suggest testing approaches",
            ],
            "Write code that is clean, maintainable, and well-documented.",
        ),
    ),
    AgentConfig(
        id="integration-specialist",
        name="Integration Specialist",
        role="Expert at API integrations, third-party services, and connecting systems",
        model="openai/gpt-4-turbo",
        tools=(SEARCH_TOOL,),
        temperature=0.5,
        max_tokens=2500,
        system_prompt=_specialist_prompt(
            "Integration Specialist",
            [
                "API integrations and webhooks",
                "Third-party service connections",
                "Authentication and authorization flows",
                "Data transformation and mapping",
            ],
            [
                "Provide step-by-step integration guides",
                "Show request/response examples",
                "Warn about common pitfalls",
                "Suggest error handling strategies",
            ],
            "Focus on practical, production-ready integration solutions.",
        ),
    ),
)


def load_roster(cfg: dict[str, Any]) -> tuple[AgentConfig, list[AgentConfig]]:
    """Return ``(moderator, specialists)`` with YAML overrides applied.

    ``cfg["moderator"]`` is merged field-by-field over :data:`DEFAULT_MODERATOR`;
    a ``cfg["specialists"]`` list replaces the default specialists entirely.
    Disabled specialists are dropped.
    """
    moderator = DEFAULT_MODERATOR
    overrides = cfg.get("moderator") or {}
    if overrides:
        merged = {**asdict(moderator), **overrides}
        moderator = AgentConfig.from_dict(merged)

    entries = cfg.get("specialists")
    if entries is None:
        specialists = list(DEFAULT_SPECIALISTS)
    else:
        specialists = [AgentConfig.from_dict(entry) for entry in entries]
    return moderator, [s for s in specialists if s.enabled]
