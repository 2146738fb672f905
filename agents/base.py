"""Base agent with a provider-agnostic ``respond`` and optional web search.

Every agent (moderator or specialist) wraps:
- an immutable :class:`AgentConfig` registration,
- an :class:`LLMProvider` bound to the configured model,
- optionally a :class:`SearchTool` when the config declares ``"search"``.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any

from agents.llm_provider import LLMProvider, LLMResponse
from data.models import ToolUsage
from orchestration.errors import AgentCallError
from tools.search import SearchTool

logger = logging.getLogger(__name__)

SEARCH_TOOL = "search"

# Prompts containing any of these trigger a web search for search-capable agents.
_SEARCH_KEYWORDS = (
    "latest",
    "current",
    "recent",
    "search",
    "find",
    "look up",
    "what is",
    "how to",
    "documentation",
    "tutorial",
    "guide",
)
_LEADING_POLITENESS = re.compile(r"^(please|can you|could you|would you)\s+", re.IGNORECASE)
_LEADING_VERB = re.compile(r"^(search for|find|look up|tell me about)\s+", re.IGNORECASE)
_MAX_QUERY_CHARS = 100


# ---------------------------------------------------------------------------
# Data containers
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class AgentConfig:
    """Registration of one agent: identity, model and capabilities."""

    id: str
    name: str
    role: str
    model: str
    system_prompt: str
    tools: tuple[str, ...] = ()
    temperature: float = 0.7
    max_tokens: int = 2000
    enabled: bool = True

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AgentConfig:
        """Build a config from a YAML/JSON mapping (``tools`` may be a list)."""
        values = dict(data)
        values["tools"] = tuple(values.get("tools", ()))
        return cls(**values)


@dataclass(frozen=True)
class AgentReply:
    """Text produced by an agent plus the audit trail of tool calls."""

    agent_id: str
    content: str
    model: str
    tools_used: tuple[ToolUsage, ...] = ()
    tokens_used: int = 0
    latency_ms: float = 0.0


# ---------------------------------------------------------------------------
# BaseAgent
# ---------------------------------------------------------------------------

class BaseAgent:
    """Common behaviour of the moderator and every specialist.

    Parameters
    ----------
    config : AgentConfig
        The agent's registration.
    provider : LLMProvider
        Backend used for generation; its model should match ``config.model``.
    search_tool : SearchTool | None
        Only consulted when ``config.tools`` contains ``"search"``.
    """

    def __init__(
        self,
        config: AgentConfig,
        provider: LLMProvider,
        search_tool: SearchTool | None = None,
    ) -> None:
        self.config = config
        self.provider = provider
        self.search_tool = search_tool if self.has_tool(SEARCH_TOOL) else None
        self._total_tokens_used = 0

    @property
    def agent_id(self) -> str:
        return self.config.id

    @property
    def name(self) -> str:
        return self.config.name

    def has_tool(self, tool: str) -> bool:
        return tool in self.config.tools

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def respond(
        self,
        prompt: str,
        history: list[dict[str, str]] | None = None,
    ) -> AgentReply:
        """Send *prompt* to the model and return the reply.

        The message list is ``[system_prompt, *history, user(prompt)]``; when
        the agent can search and the prompt asks for research, formatted
        search results are appended to the user turn first.  A failed search
        is logged and the prompt goes out without results.

        Raises :class:`AgentCallError` when the provider gives up.
        """
        tools_used: list[ToolUsage] = []
        if self.search_tool is not None and self._should_search(prompt):
            try:
                usage = await self._run_search(prompt)
            except Exception as exc:  # noqa: BLE001
                logger.warning("Agent %s search failed, answering without results: %s", self.agent_id, exc)
                usage = None
            if usage is not None:
                prompt = f"{prompt}\n\n{usage.result}"
                tools_used.append(usage)

        messages = self._build_messages(prompt, history or [])
        try:
            llm_resp: LLMResponse = await self.provider.generate(
                messages,
                temperature=self.config.temperature,
                max_tokens=self.config.max_tokens,
            )
        except Exception as exc:  # noqa: BLE001
            logger.warning("Agent %s (%s) call failed: %s", self.agent_id, self.config.model, exc)
            raise AgentCallError(self.agent_id, exc) from exc

        self._total_tokens_used += llm_resp.tokens_used
        return AgentReply(
            agent_id=self.agent_id,
            content=llm_resp.text,
            model=self.config.model,
            tools_used=tuple(tools_used),
            tokens_used=llm_resp.tokens_used,
            latency_ms=llm_resp.latency_ms,
        )

    @property
    def total_tokens_used(self) -> int:
        return self._total_tokens_used

    # ------------------------------------------------------------------
    # Search support
    # ------------------------------------------------------------------

    @staticmethod
    def _should_search(prompt: str) -> bool:
        lowered = prompt.lower()
        return any(keyword in lowered for keyword in _SEARCH_KEYWORDS)

    @staticmethod
    def _extract_search_query(prompt: str) -> str:
        query = _LEADING_POLITENESS.sub("", prompt.strip())
        query = _LEADING_VERB.sub("", query)
        query = query.rstrip("?").strip()
        return query[:_MAX_QUERY_CHARS]

    async def _run_search(self, prompt: str) -> ToolUsage | None:
        assert self.search_tool is not None
        query = self._extract_search_query(prompt)
        response = await self.search_tool.search(query, max_results=5)
        if not response.results:
            return None
        return ToolUsage(tool=SEARCH_TOOL, query=query, result=SearchTool.format_for_llm(response))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _build_messages(
        self, prompt: str, history: list[dict[str, str]]
    ) -> list[dict[str, str]]:
        messages: list[dict[str, str]] = []
        if self.config.system_prompt:
            messages.append({"role": "system", "content": self.config.system_prompt})
        messages.extend(history)
        messages.append({"role": "user", "content": prompt})
        return messages

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(id={self.agent_id!r}, "
            f"model={self.config.model!r}, provider={self.provider})"
        )
