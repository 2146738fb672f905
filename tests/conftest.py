"""Shared fixtures for the test suite.

Provides a MockProvider that simulates LLM responses without network calls,
a ProviderPool that hands one MockProvider per model to the registry, and
pre-built registries and engines whose agents all run on mock providers.
"""

from __future__ import annotations

import asyncio
from typing import Any

import pytest
import pytest_asyncio

from agents.base import SEARCH_TOOL, AgentConfig
from agents.llm_provider import LLMProvider
from orchestration.engine import ConversationEngine
from orchestration.registry import AgentRegistry


# ---------------------------------------------------------------------------
# Mock LLM provider
# ---------------------------------------------------------------------------

class MockProvider(LLMProvider):
    """Deterministic mock provider for testing – no network calls.

    ``failures`` makes that many leading calls raise; ``fail=True`` makes
    every call raise.  When ``gate`` is set, each call is logged and then
    blocks until the event is set.
    """

    name = "mock"

    def __init__(
        self,
        model: str = "mock-v1",
        responses: list[str] | None = None,
        *,
        failures: int = 0,
        fail: bool = False,
        gate: asyncio.Event | None = None,
        **kwargs: Any,
    ) -> None:
        # Bypass API-key validation
        self.model = model
        self.timeout = kwargs.get("timeout", 30)
        self.max_retries = kwargs.get("max_retries", 1)
        self.api_key = "mock-key"

        self._responses = responses or ["This is a mock response."]
        self._call_count = 0
        self.failures = failures
        self.fail = fail
        self.gate = gate
        self.call_log: list[dict[str, Any]] = []

    def set_responses(self, responses: list[str]) -> None:
        self._responses = responses
        self._call_count = 0

    @property
    def last_prompt(self) -> str:
        return self.call_log[-1]["messages"][-1]["content"]

    async def _call_api(
        self,
        messages: list[dict[str, str]],
        *,
        temperature: float,
        max_tokens: int,
        **kwargs: Any,
    ) -> dict[str, Any]:
        self.call_log.append(
            {"messages": messages, "temperature": temperature, "max_tokens": max_tokens}
        )
        if self.gate is not None:
            await self.gate.wait()
        if self.fail or self.failures > 0:
            self.failures = max(0, self.failures - 1)
            raise RuntimeError(f"mock failure from {self.model}")

        text = self._responses[self._call_count % len(self._responses)]
        self._call_count += 1
        return {"text": text, "tokens_used": len(text.split()) * 2, "raw": {}}


class ProviderPool:
    """Provider factory returning one shared MockProvider per model name."""

    def __init__(self) -> None:
        self.providers: dict[str, MockProvider] = {}

    def __call__(self, model: str) -> MockProvider:
        if model not in self.providers:
            self.providers[model] = MockProvider(model=model)
        return self.providers[model]

    def __getitem__(self, model: str) -> MockProvider:
        return self(model)


# ---------------------------------------------------------------------------
# Agent registrations
# ---------------------------------------------------------------------------

MODERATOR_MODEL = "mock-moderator"
SEARCH_MODEL = "mock-search"
TECH_MODEL = "mock-tech"


def make_config(agent_id: str, name: str, model: str, tools: tuple[str, ...] = ()) -> AgentConfig:
    return AgentConfig(
        id=agent_id,
        name=name,
        role=f"{name} for tests",
        model=model,
        system_prompt=f"You are {name}.",
        tools=tools,
    )


@pytest.fixture
def moderator_config() -> AgentConfig:
    return make_config("moderator", "Moderator", MODERATOR_MODEL)


@pytest.fixture
def specialist_configs() -> list[AgentConfig]:
    return [
        make_config("search-specialist", "Search Specialist", SEARCH_MODEL, (SEARCH_TOOL,)),
        make_config("technical-expert", "Technical Expert", TECH_MODEL),
    ]


@pytest.fixture
def debater_configs() -> list[AgentConfig]:
    return [
        make_config("alpha", "Alpha", "mock-a"),
        make_config("beta", "Beta", "mock-b"),
    ]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def mock_provider() -> MockProvider:
    return MockProvider()


@pytest.fixture
def pool() -> ProviderPool:
    return ProviderPool()


@pytest.fixture
def registry(pool, moderator_config, specialist_configs) -> AgentRegistry:
    return AgentRegistry(pool, moderator_config, specialist_configs)


@pytest.fixture
def changes() -> list[tuple[str, str]]:
    """Records ``(conversation_id, status)`` for every ``on_change`` call."""
    return []


@pytest_asyncio.fixture
async def engine(registry, changes) -> ConversationEngine:
    """Guided-conversation engine with two specialists."""
    eng = ConversationEngine(
        registry,
        on_change=lambda cid, conv: changes.append((cid, conv.status.value)),
        turn_delay=0,
        max_turns=4,
    )
    yield eng
    await eng.shutdown()


@pytest_asyncio.fixture
async def debate_engine(pool, moderator_config, debater_configs) -> ConversationEngine:
    """Engine whose registry holds the two debaters Alpha and Beta."""
    pool["mock-a"].set_responses(["A says"])
    pool["mock-b"].set_responses(["B says"])
    eng = ConversationEngine(
        AgentRegistry(pool, moderator_config, debater_configs),
        turn_delay=0,
        max_turns=4,
    )
    yield eng
    await eng.shutdown()
