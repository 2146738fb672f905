"""Agents – moderator, specialists, model catalog and the provider layer."""

from agents.base import AgentConfig, AgentReply, BaseAgent
from agents.catalog import ModelCatalog, ModelDescriptor, ModelSelection, build_debate_participants
from agents.llm_provider import (
    LLMProvider,
    LLMResponse,
    OpenAIProvider,
    OpenRouterProvider,
    create_provider,
)
from agents.moderator import Moderator
from agents.specialist import Specialist

__all__ = [
    "AgentConfig",
    "AgentReply",
    "BaseAgent",
    "LLMProvider",
    "LLMResponse",
    "ModelCatalog",
    "ModelDescriptor",
    "ModelSelection",
    "Moderator",
    "OpenAIProvider",
    "OpenRouterProvider",
    "Specialist",
    "build_debate_participants",
    "create_provider",
]
