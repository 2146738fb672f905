"""Tests for orchestration.decisions – JSON extraction and the decision rules."""

from __future__ import annotations

import pytest

from orchestration.decisions import (
    FALLBACK_FOLLOW_UP_REASONING,
    FALLBACK_INITIAL_REASONING,
    FALLBACK_INITIAL_STEPS,
    AskUser,
    QueryBot,
    SynthesizeReport,
    decide_follow_up,
    decide_initial,
    decision_adapter,
    extract_json,
    follow_up_query,
)


class TestExtractJson:
    def test_prose_wrapped_object(self):
        text = 'Sure! Here you go:\n```json\n{"a": 1, "b": {"c": 2}}\n```\nHope that helps.'
        assert extract_json(text) == {"a": 1, "b": {"c": 2}}

    def test_no_braces_parses_whole_text(self):
        assert extract_json(" [1, 2] ") == [1, 2]

    def test_invalid_json_raises_value_error(self):
        with pytest.raises(ValueError):
            extract_json("{not json}")

    def test_deep_nesting_raises_value_error(self):
        with pytest.raises(ValueError):
            extract_json("{" + '"a":[' * 100_000 + "]" * 100_000 + "}")


class TestDecideInitial:
    def test_clarification_asks_first_question(self):
        text = (
            '{"needsClarification": true, "clarifyingQuestions": ["Budget?", "Team size?"],'
            ' "reasoning": "Too vague"}'
        )
        decision = decide_initial(text, "Which cloud?", "search-specialist")
        assert isinstance(decision, AskUser)
        assert decision.content == "Budget?"
        assert decision.reasoning == "Too vague"
        assert decision.next_steps == ("Team size?",)

    def test_query_first_bot_with_original_question(self):
        text = (
            '{"needsClarification": false, "botsToConsult": ["technical-expert", "code-specialist"],'
            ' "researchPlan": ["compare", "recommend"], "reasoning": "Technical"}'
        )
        decision = decide_initial(text, "Postgres or MongoDB?", "search-specialist")
        assert isinstance(decision, QueryBot)
        assert decision.target == "technical-expert"
        assert decision.content == "Postgres or MongoDB?"
        assert decision.next_steps == ("compare", "recommend")

    def test_prose_wrapped_reply(self):
        text = (
            "Let me think about this.\n"
            '{"needsClarification": false, "botsToConsult": ["code-specialist"], "reasoning": "code"}\n'
            "That is my plan."
        )
        decision = decide_initial(text, "How do I parse JSON?", "search-specialist")
        assert isinstance(decision, QueryBot)
        assert decision.target == "code-specialist"

    @pytest.mark.parametrize(
        "text",
        [
            "I'm not sure, let's just search.",
            "",
            "{",
            '{"needsClarification": "maybe"}',
            '{"needsClarification": true, "clarifyingQuestions": []}',
            '{"needsClarification": false, "botsToConsult": []}',
            '{"needsClarification": false, "botsToConsult": [""]}',
            '{"botsToConsult": ["technical-expert"]}',
            "[1, 2, 3]",
            "null",
        ],
    )
    def test_unusable_reply_falls_back_to_search(self, text):
        decision = decide_initial(text, "What is Rust?", "search-specialist")
        assert isinstance(decision, QueryBot)
        assert decision.target == "search-specialist"
        assert decision.content == "What is Rust?"
        assert decision.reasoning == FALLBACK_INITIAL_REASONING
        assert decision.next_steps == FALLBACK_INITIAL_STEPS

    def test_fallback_with_empty_question(self):
        decision = decide_initial("garbage", "", "search-specialist")
        assert isinstance(decision, QueryBot)
        assert decision.content == ""


class TestDecideFollowUp:
    def test_synthesize(self):
        decision = decide_follow_up('{"action": "synthesize-report", "reasoning": "enough"}', "resp")
        assert isinstance(decision, SynthesizeReport)
        assert decision.reasoning == "enough"

    def test_ask_user(self):
        decision = decide_follow_up(
            '{"action": "ask-user", "question": "Which region?", "confidence": 40}', "resp"
        )
        assert isinstance(decision, AskUser)
        assert decision.content == "Which region?"

    def test_continue_research_queries_next_bot(self):
        decision = decide_follow_up(
            '{"action": "continue-research", "nextBot": "code-specialist", "confidence": 50}',
            "Postgres is a relational database.",
        )
        assert isinstance(decision, QueryBot)
        assert decision.target == "code-specialist"
        assert decision.content == follow_up_query("Postgres is a relational database.")

    def test_high_confidence_overrides_action(self):
        decision = decide_follow_up(
            '{"action": "continue-research", "nextBot": "code-specialist", "confidence": 85}', "resp"
        )
        assert isinstance(decision, SynthesizeReport)

    def test_confidence_at_threshold_does_not_override(self):
        decision = decide_follow_up(
            '{"action": "continue-research", "nextBot": "code-specialist", "confidence": 80}', "resp"
        )
        assert isinstance(decision, QueryBot)

    def test_high_confidence_without_next_bot_is_still_a_report(self):
        decision = decide_follow_up('{"action": "continue-research", "confidence": 95}', "resp")
        assert isinstance(decision, SynthesizeReport)

    @pytest.mark.parametrize(
        "text",
        [
            "Looks good to me.",
            '{"action": "dance"}',
            '{"action": "continue-research", "confidence": 10}',
            '{"action": "ask-user", "question": "   "}',
            '{"reasoning": "no action"}',
        ],
    )
    def test_unusable_reply_falls_back_to_report(self, text):
        decision = decide_follow_up(text, "resp")
        assert isinstance(decision, SynthesizeReport)
        assert decision.reasoning == FALLBACK_FOLLOW_UP_REASONING


class TestFollowUpQuery:
    def test_excerpt_is_truncated(self):
        query = follow_up_query("x" * 500)
        assert query == (
            "Based on the previous information, provide additional insights: " + "x" * 200 + "..."
        )


class TestDecisionVariant:
    def test_adapter_dispatches_on_action(self):
        decision = decision_adapter.validate_python(
            {"action": "query-bot", "target": "t", "content": "c", "reasoning": "r"}
        )
        assert isinstance(decision, QueryBot)

    def test_query_bot_requires_target(self):
        with pytest.raises(ValueError):
            QueryBot(target="", content="c")

    def test_decisions_are_frozen(self):
        decision = SynthesizeReport(reasoning="r")
        with pytest.raises(ValueError):
            decision.reasoning = "changed"
