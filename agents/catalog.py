"""Model catalog and the factory that turns model selections into debate participants."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Any

from agents.base import SEARCH_TOOL, AgentConfig

logger = logging.getLogger(__name__)

_DEBATE_SYSTEM_PROMPT = """\
You are participating in a collaborative debate about: "{question}"

Your role:
- Provide thoughtful, well-reasoned perspectives
- Engage constructively with other participants
- Challenge assumptions when appropriate
- Build on others' ideas
- Aim for comprehensive, nuanced answers

Be concise but thorough. Each response should add value to the discussion."""


@dataclass(frozen=True)
class ModelDescriptor:
    """One selectable model (``model_id`` is the provider-side identifier)."""

    id: str
    name: str
    provider: str
    model_id: str
    description: str = ""
    context_window: int = 0
    prompt_price: float | None = None
    completion_price: float | None = None


@dataclass(frozen=True)
class ModelSelection:
    """A request for *count* debate participants backed by catalog entry *model_id*."""

    model_id: str
    count: int = 1

    def __post_init__(self) -> None:
        if self.count < 1:
            raise ValueError(f"count must be at least 1, got {self.count}")

    @classmethod
    def parse(cls, text: str) -> ModelSelection:
        """Parse ``"gpt-4o"`` or ``"gpt-4o:2"``."""
        model_id, _, count = text.partition(":")
        if not model_id:
            raise ValueError(f"Invalid model selection {text!r}")
        return cls(model_id=model_id.strip(), count=int(count) if count else 1)


DEFAULT_MODELS: tuple[ModelDescriptor, ...] = (
    ModelDescriptor("claude-3.5-sonnet", "Claude 3.5 Sonnet", "Anthropic", "anthropic/claude-3.5-sonnet",
                    "Most intelligent model, best for complex reasoning and analysis", 200_000, 3, 15),
    ModelDescriptor("claude-3-opus", "Claude 3 Opus", "Anthropic", "anthropic/claude-3-opus",
                    "Powerful model for complex tasks requiring deep understanding", 200_000, 15, 75),
    ModelDescriptor("claude-3-haiku", "Claude 3 Haiku", "Anthropic", "anthropic/claude-3-haiku",
                    "Fast and efficient, great for quick responses", 200_000, 0.25, 1.25),
    ModelDescriptor("gpt-4-turbo", "GPT-4 Turbo", "OpenAI", "openai/gpt-4-turbo",
                    "Powerful general-purpose model with broad knowledge", 128_000, 10, 30),
    ModelDescriptor("gpt-4o", "GPT-4o", "OpenAI", "openai/gpt-4o",
                    "Fast and intelligent, optimized for speed and quality", 128_000, 5, 15),
    ModelDescriptor("gpt-3.5-turbo", "GPT-3.5 Turbo", "OpenAI", "openai/gpt-3.5-turbo",
                    "Fast and cost-effective for simpler tasks", 16_385, 0.5, 1.5),
    ModelDescriptor("gemini-pro-1.5", "Gemini Pro 1.5", "Google", "google/gemini-pro-1.5",
                    "Google's advanced model with large context window", 1_000_000, 2.5, 10),
    ModelDescriptor("llama-3.1-70b", "Llama 3.1 70B", "Meta", "meta-llama/llama-3.1-70b-instruct",
                    "Open-source model with strong performance", 131_072, 0.88, 0.88),
    ModelDescriptor("mixtral-8x7b", "Mixtral 8x7B", "Mistral", "mistralai/mixtral-8x7b-instruct",
                    "Efficient mixture-of-experts model", 32_768, 0.54, 0.54),
)


class ModelCatalog:
    """Lookup table of selectable models keyed by catalog id."""

    def __init__(self, models: tuple[ModelDescriptor, ...] | list[ModelDescriptor] = DEFAULT_MODELS) -> None:
        self._models = {m.id: m for m in models}

    @classmethod
    def from_config(cls, entries: list[dict[str, Any]] | None) -> ModelCatalog:
        """Build from YAML ``models:`` entries; ``None`` means the defaults."""
        if entries is None:
            return cls()
        return cls([ModelDescriptor(**entry) for entry in entries])

    def resolve(self, model_selection_id: str) -> ModelDescriptor | None:
        return self._models.get(model_selection_id)

    def by_model_id(self, model_id: str) -> ModelDescriptor | None:
        for model in self._models.values():
            if model.model_id == model_id:
                return model
        return None

    def __iter__(self):
        return iter(self._models.values())

    def __len__(self) -> int:
        return len(self._models)


def build_debate_participants(
    question: str,
    selections: list[ModelSelection],
    catalog: ModelCatalog,
) -> list[AgentConfig]:
    """Create one immutable registration per requested model instance.

    Unknown catalog ids are logged and skipped.  Ids are
    ``<catalog-id>-<8 hex chars>``; names get a ``#n`` suffix when more than
    one instance of the same model is requested.
    """
    participants: list[AgentConfig] = []
    for selection in selections:
        model = catalog.resolve(selection.model_id)
        if model is None:
            logger.warning("Model %s not found in catalog, skipping", selection.model_id)
            continue

        for instance in range(1, selection.count + 1):
            name = f"{model.name} #{instance}" if selection.count > 1 else model.name
            participants.append(
                AgentConfig(
                    id=f"{model.id}-{uuid.uuid4().hex[:8]}",
                    name=name,
                    role=f"Debate participant using {model.name}",
                    model=model.model_id,
                    tools=(SEARCH_TOOL,),
                    system_prompt=_DEBATE_SYSTEM_PROMPT.format(question=question),
                    temperature=0.7,
                    max_tokens=2000,
                )
            )
    return participants
