"""Agent Registry – the moderator singleton plus a mutable table of specialists."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable

from agents.base import AgentConfig
from agents.llm_provider import LLMProvider
from agents.moderator import Moderator
from agents.specialist import Specialist
from orchestration.errors import DuplicateAgentError
from tools.search import SearchTool

logger = logging.getLogger(__name__)

ProviderFactory = Callable[[str], LLMProvider]


class AgentRegistry:
    """Owns every agent instance the engine can talk to.

    Parameters
    ----------
    provider_factory : ProviderFactory
        Called with a model identifier, returns the provider that serves it.
    moderator_config : AgentConfig
        Registration of the moderator.
    specialist_configs : Iterable[AgentConfig]
        Specialists available from the start; disabled entries are skipped.
    search_tool : SearchTool | None
        Shared by every agent that declares the ``search`` capability.
    """

    def __init__(
        self,
        provider_factory: ProviderFactory,
        moderator_config: AgentConfig,
        specialist_configs: Iterable[AgentConfig] = (),
        search_tool: SearchTool | None = None,
    ) -> None:
        self._provider_factory = provider_factory
        self._search_tool = search_tool
        self._moderator = Moderator(
            moderator_config,
            provider_factory(moderator_config.model),
            search_tool,
        )
        self._specialists: dict[str, Specialist] = {}
        self._roster: list[str] = []
        for config in specialist_configs:
            if config.enabled:
                self.add(config)
        logger.info("Initialised %d specialist agents", len(self._specialists))

    @property
    def moderator(self) -> Moderator:
        return self._moderator

    def get(self, agent_id: str) -> Specialist | None:
        return self._specialists.get(agent_id)

    def all(self) -> list[Specialist]:
        return list(self._specialists.values())

    def configs(self) -> list[AgentConfig]:
        """Registrations of the roster specialists; debate participants are left out."""
        return [self._specialists[agent_id].config for agent_id in self._roster]

    def with_tool(self, tool: str) -> list[Specialist]:
        return [agent for agent in self._specialists.values() if agent.has_tool(tool)]

    def add(self, config: AgentConfig, *, roster: bool = True) -> Specialist:
        """Register a specialist; ids must be unique (including the moderator's).

        With ``roster=False`` the agent can be looked up and spoken to but is
        not listed by :meth:`configs`.
        """
        if config.id in self._specialists or config.id == self._moderator.agent_id:
            raise DuplicateAgentError(config.id)
        agent = Specialist(config, self._provider_factory(config.model), self._search_tool)
        self._specialists[config.id] = agent
        if roster:
            self._roster.append(config.id)
        logger.debug("Registered agent %s (%s)", config.id, config.model)
        return agent

    def remove(self, agent_id: str) -> bool:
        if agent_id in self._roster:
            self._roster.remove(agent_id)
        return self._specialists.pop(agent_id, None) is not None

    def __contains__(self, agent_id: object) -> bool:
        return agent_id in self._specialists

    def __len__(self) -> int:
        return len(self._specialists)
