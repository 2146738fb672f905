"""Exception hierarchy for the orchestration core."""

from __future__ import annotations


class OrchestrationError(Exception):
    """Base class for every error raised by the orchestration layer."""


class ConversationNotFoundError(OrchestrationError, KeyError):
    """Raised when a conversation id is not known to the store."""

    def __init__(self, conversation_id: str) -> None:
        super().__init__(f"Conversation not found: {conversation_id}")
        self.conversation_id = conversation_id

    def __str__(self) -> str:
        return self.args[0]


class DuplicateAgentError(OrchestrationError, ValueError):
    """Raised when an agent id is registered twice."""

    def __init__(self, agent_id: str) -> None:
        super().__init__(f"Agent with id {agent_id!r} already exists")
        self.agent_id = agent_id


class AgentCallError(OrchestrationError):
    """An agent's underlying model call failed (network, provider, timeout)."""

    def __init__(self, agent_id: str, cause: BaseException) -> None:
        super().__init__(f"Agent {agent_id!r} failed: {cause}")
        self.agent_id = agent_id
        self.cause = cause
