"""Decision Engine – turn the moderator's free-text replies into structured decisions.

The moderator is asked to answer in JSON, but models routinely wrap the
object in prose or code fences, truncate it, or drop fields.  Decoding goes
through pydantic schemas; anything that fails to decode maps to a fixed
fallback decision, so callers always receive a usable :data:`Decision`.
"""

from __future__ import annotations

import json
import logging
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, model_validator
from pydantic.alias_generators import to_camel

logger = logging.getLogger(__name__)

CONFIDENCE_THRESHOLD = 80
FOLLOW_UP_EXCERPT_CHARS = 200

FALLBACK_INITIAL_REASONING = "Starting with general search"
FALLBACK_INITIAL_STEPS = ("Analyze results", "Consult additional bots if needed")
FALLBACK_FOLLOW_UP_REASONING = "Proceeding to synthesize with available information"


# ---------------------------------------------------------------------------
# Decisions (tagged variant)
# ---------------------------------------------------------------------------

class _DecisionBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    reasoning: str = ""
    next_steps: tuple[str, ...] = ()


class AskUser(_DecisionBase):
    action: Literal["ask-user"] = "ask-user"
    content: str


class QueryBot(_DecisionBase):
    action: Literal["query-bot"] = "query-bot"
    target: str = Field(min_length=1)
    content: str


class SynthesizeReport(_DecisionBase):
    action: Literal["synthesize-report"] = "synthesize-report"


class ContinueResearch(_DecisionBase):
    action: Literal["continue-research"] = "continue-research"


Decision = Annotated[
    Union[AskUser, QueryBot, SynthesizeReport, ContinueResearch],
    Field(discriminator="action"),
]
decision_adapter: TypeAdapter[Decision] = TypeAdapter(Decision)


# ---------------------------------------------------------------------------
# Moderator reply schemas
# ---------------------------------------------------------------------------

class _Reply(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class InitialAnalysis(_Reply):
    """Expected shape of the moderator's first look at a question."""

    needs_clarification: bool
    clarifying_questions: list[str] = Field(default_factory=list)
    research_plan: list[str] = Field(default_factory=list)
    bots_to_consult: list[str] = Field(default_factory=list)
    reasoning: str = ""

    @model_validator(mode="after")
    def _has_next_step(self) -> InitialAnalysis:
        if self.needs_clarification:
            if not self.clarifying_questions or not self.clarifying_questions[0].strip():
                raise ValueError("needsClarification without clarifyingQuestions")
        elif not self.bots_to_consult or not self.bots_to_consult[0].strip():
            raise ValueError("no botsToConsult")
        return self


class FollowUpAnalysis(_Reply):
    """Expected shape of the moderator's verdict on a specialist reply."""

    action: Literal["continue-research", "ask-user", "synthesize-report"]
    reasoning: str = ""
    next_bot: str | None = None
    question: str | None = None
    confidence: float = 0

    @property
    def wants_report(self) -> bool:
        return self.action == "synthesize-report" or self.confidence > CONFIDENCE_THRESHOLD

    @model_validator(mode="after")
    def _has_required_field(self) -> FollowUpAnalysis:
        if self.wants_report:
            return self
        if self.action == "ask-user" and not (self.question or "").strip():
            raise ValueError("ask-user without question")
        if self.action == "continue-research" and not (self.next_bot or "").strip():
            raise ValueError("continue-research without nextBot")
        return self


# ---------------------------------------------------------------------------
# JSON extraction
# ---------------------------------------------------------------------------

def extract_json(text: str) -> Any:
    """Parse the JSON object embedded in *text*.

    Takes the span from the first ``{`` to the last ``}``; when there are no
    braces the whole text is parsed.  Raises :class:`ValueError` on failure.
    """
    start = text.find("{")
    end = text.rfind("}")
    candidate = text[start : end + 1] if start != -1 and end > start else text
    try:
        return json.loads(candidate)
    except RecursionError as exc:
        raise ValueError("JSON nested too deeply") from exc


# ---------------------------------------------------------------------------
# Decision rules
# ---------------------------------------------------------------------------

def follow_up_query(previous_response: str) -> str:
    """Query text sent to the next specialist in a research chain."""
    return (
        "Based on the previous information, provide additional insights: "
        f"{previous_response[:FOLLOW_UP_EXCERPT_CHARS]}..."
    )


def decide_initial(text: str, question: str, default_target: str) -> Decision:
    """Map the moderator's initial analysis to a decision; never raises."""
    try:
        analysis = InitialAnalysis.model_validate(extract_json(text))
    except (ValueError, ValidationError) as exc:
        logger.warning("Unparseable initial analysis, querying %s instead: %s", default_target, exc)
        return QueryBot(
            reasoning=FALLBACK_INITIAL_REASONING,
            target=default_target,
            content=question,
            next_steps=FALLBACK_INITIAL_STEPS,
        )

    if analysis.needs_clarification:
        return AskUser(
            reasoning=analysis.reasoning,
            content=analysis.clarifying_questions[0],
            next_steps=tuple(analysis.clarifying_questions[1:]),
        )
    return QueryBot(
        reasoning=analysis.reasoning,
        target=analysis.bots_to_consult[0],
        content=question,
        next_steps=tuple(analysis.research_plan),
    )


def decide_follow_up(text: str, bot_response: str) -> Decision:
    """Map the moderator's verdict on a specialist reply to a decision; never raises.

    A confidence above :data:`CONFIDENCE_THRESHOLD` ends research even when
    the moderator asked to continue.
    """
    try:
        analysis = FollowUpAnalysis.model_validate(extract_json(text))
    except (ValueError, ValidationError) as exc:
        logger.warning("Unparseable follow-up analysis, synthesizing: %s", exc)
        return SynthesizeReport(reasoning=FALLBACK_FOLLOW_UP_REASONING)

    if analysis.wants_report:
        return SynthesizeReport(reasoning=analysis.reasoning)
    if analysis.action == "ask-user":
        return AskUser(reasoning=analysis.reasoning, content=analysis.question or "")
    return QueryBot(
        reasoning=analysis.reasoning,
        target=analysis.next_bot or "",
        content=follow_up_query(bot_response),
    )
