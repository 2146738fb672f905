"""Tests for orchestration.debate_scheduler – round-robin debates with stop / resume."""

from __future__ import annotations

import asyncio

import httpx
import pytest

from agents.base import SEARCH_TOOL
from data.models import ConversationStatus, MessageType
from orchestration.debate_scheduler import (
    NO_CONTEXT,
    PHASE_AWAITING_CONCLUSION,
    PHASE_CONCLUDED,
    PHASE_STOPPED,
    debate_round,
)
from orchestration.engine import ConversationEngine
from orchestration.registry import AgentRegistry
from tests.conftest import MODERATOR_MODEL, make_config
from tools.search import SearchTool


async def _wait_for(predicate, timeout: float = 2.0) -> None:
    async def poll() -> None:
        while not predicate():
            await asyncio.sleep(0)

    await asyncio.wait_for(poll(), timeout)


def _speakers(conversation) -> list[str | None]:
    return [m.bot_id for m in conversation.bot_responses]


class TestRoundRobin:
    @pytest.mark.asyncio
    async def test_two_participants_four_turns(self, debate_engine):
        conversation, _ = await debate_engine.create_conversation("u1", "X vs Y?")
        await debate_engine.debates.wait(conversation.id)

        assert conversation.participating_bots == ["alpha", "beta"]
        assert _speakers(conversation) == ["alpha", "beta", "alpha", "beta"]
        assert [m.content for m in conversation.bot_responses] == ["A says", "B says", "A says", "B says"]
        assert [m.model_name for m in conversation.bot_responses[:2]] == ["mock-a", "mock-b"]
        assert conversation.debate_round == 2
        assert conversation.status == ConversationStatus.DEBATING
        assert conversation.current_phase == PHASE_AWAITING_CONCLUSION
        assert conversation.active_bot is None
        assert not debate_engine.debates.is_running(conversation.id)

    @pytest.mark.parametrize(
        "total, participants, expected",
        [(0, 2, 1), (1, 2, 1), (2, 2, 1), (3, 2, 2), (4, 2, 2), (5, 3, 2), (7, 3, 3)],
    )
    def test_round_law(self, total, participants, expected):
        assert debate_round(total, participants) == expected

    @pytest.mark.asyncio
    async def test_first_speaker_sees_no_context(self, debate_engine, pool):
        conversation, _ = await debate_engine.create_conversation("u1", "X vs Y?")
        await debate_engine.debates.wait(conversation.id)

        first_prompt = pool["mock-a"].call_log[0]["messages"][-1]["content"]
        assert '"X vs Y?"' in first_prompt
        assert NO_CONTEXT in first_prompt
        second_prompt = pool["mock-b"].call_log[0]["messages"][-1]["content"]
        assert "[Alpha (mock-a)]: A says" in second_prompt

    @pytest.mark.asyncio
    async def test_context_is_bounded(self, debate_engine, pool):
        debate_engine.debates.max_turns = 9
        pool["mock-a"].set_responses([f"A{i}" for i in range(5)])
        pool["mock-b"].set_responses([f"B{i}" for i in range(5)])
        conversation, _ = await debate_engine.create_conversation("u1", "X vs Y?")
        await debate_engine.debates.wait(conversation.id)

        context = debate_engine.debates.build_context(conversation)
        # nine replies A0 B0 A1 B1 A2 B2 A3 B3 A4; only the last six are shown
        assert context.count("\n[") == 6
        assert context.startswith("\n[Beta (mock-b)]: B1")
        assert context.endswith("[Alpha (mock-a)]: A4")
        assert "[Alpha (mock-a)]: A1" not in context
        assert conversation.debate_round == 5

    @pytest.mark.asyncio
    async def test_failed_turn_is_reported_and_debate_continues(self, debate_engine, pool):
        debate_engine.debates.max_turns = 2
        pool["mock-a"].failures = 1

        conversation, _ = await debate_engine.create_conversation("u1", "X vs Y?")
        await debate_engine.debates.wait(conversation.id)

        assert conversation.messages[1].type == MessageType.SYSTEM_MESSAGE
        assert conversation.messages[1].content == (
            "Error getting response from Alpha. Continuing with other participants."
        )
        assert _speakers(conversation) == ["alpha", "beta"]

    @pytest.mark.asyncio
    async def test_independent_debates_run_concurrently(self, debate_engine):
        first, _ = await debate_engine.create_conversation("u1", "X vs Y?")
        second, _ = await debate_engine.create_conversation("u2", "P vs Q?")
        await asyncio.gather(
            debate_engine.debates.wait(first.id),
            debate_engine.debates.wait(second.id),
        )
        assert _speakers(first) == ["alpha", "beta", "alpha", "beta"]
        assert _speakers(second) == ["alpha", "beta", "alpha", "beta"]
        assert all(m.conversation_id == first.id for m in first.messages)

    @pytest.mark.asyncio
    async def test_broken_search_backend_does_not_stall_debate(self, pool, moderator_config, monkeypatch):
        monkeypatch.delenv("SERPER_API_KEY", raising=False)
        client = httpx.AsyncClient(
            transport=httpx.MockTransport(lambda request: httpx.Response(200, json={"results": None}))
        )
        debaters = [
            make_config("alpha", "Alpha", "mock-a", (SEARCH_TOOL,)),
            make_config("beta", "Beta", "mock-b", (SEARCH_TOOL,)),
        ]
        registry = AgentRegistry(pool, moderator_config, debaters, SearchTool("t-key", client=client))
        engine = ConversationEngine(registry, turn_delay=0, max_turns=2)

        conversation, _ = await engine.create_conversation("u1", "What is the latest Python release?")
        await engine.debates.wait(conversation.id)
        await engine.shutdown()

        assert _speakers(conversation) == ["alpha", "beta"]
        assert all(m.tools_used == () for m in conversation.bot_responses)
        assert conversation.current_phase == PHASE_AWAITING_CONCLUSION


class TestStopResume:
    @pytest.mark.asyncio
    async def test_stop_lets_in_flight_turn_finish(self, debate_engine, pool):
        debate_engine.debates.max_turns = None
        gate = asyncio.Event()
        pool["mock-a"].gate = gate

        conversation, _ = await debate_engine.create_conversation("u1", "X vs Y?")
        await _wait_for(lambda: pool["mock-a"].call_log)

        assert debate_engine.stop_debate(conversation.id) is True
        assert conversation.status == ConversationStatus.STOPPED
        assert conversation.current_phase == PHASE_STOPPED
        assert conversation.messages[-1].content == "Debate has been stopped by the user."

        gate.set()
        await debate_engine.debates.wait(conversation.id)

        # the reply that was already on its way is kept, nothing after it
        assert conversation.messages[-1].type == MessageType.BOT_RESPONSE
        assert _speakers(conversation) == ["alpha"]
        assert pool["mock-b"].call_log == []
        assert conversation.status == ConversationStatus.STOPPED

    @pytest.mark.asyncio
    async def test_stop_is_idempotent(self, debate_engine):
        conversation, _ = await debate_engine.create_conversation("u1", "X vs Y?")
        await debate_engine.debates.wait(conversation.id)

        assert debate_engine.stop_debate(conversation.id) is True
        assert debate_engine.stop_debate(conversation.id) is False
        stops = [m for m in conversation.messages if m.content == "Debate has been stopped by the user."]
        assert len(stops) == 1

    @pytest.mark.asyncio
    async def test_stop_ignores_guided_conversation(self, engine, pool):
        pool[MODERATOR_MODEL].set_responses(
            ['{"needsClarification": true, "clarifyingQuestions": ["Which region?"]}']
        )
        conversation, _ = await engine.create_conversation("u1", "Which cloud?", debate_mode=False)
        assert conversation.status == ConversationStatus.GATHERING_CONTEXT
        count = len(conversation.messages)

        assert engine.stop_debate(conversation.id) is False
        assert conversation.status == ConversationStatus.GATHERING_CONTEXT
        assert len(conversation.messages) == count

    @pytest.mark.asyncio
    async def test_resume_continues_rotation(self, debate_engine):
        debate_engine.debates.max_turns = 1
        conversation, _ = await debate_engine.create_conversation("u1", "X vs Y?")
        await debate_engine.debates.wait(conversation.id)
        debate_engine.stop_debate(conversation.id)

        debate_engine.debates.max_turns = 3
        assert debate_engine.resume_debate(conversation.id) is True
        assert conversation.status == ConversationStatus.DEBATING
        assert conversation.messages[-1].content == "Debate resumed."
        await debate_engine.debates.wait(conversation.id)

        assert _speakers(conversation) == ["alpha", "beta", "alpha"]
        assert conversation.debate_round == 2

    @pytest.mark.asyncio
    async def test_resume_requires_stopped_debate(self, debate_engine):
        conversation, _ = await debate_engine.create_conversation("u1", "X vs Y?")
        await debate_engine.debates.wait(conversation.id)
        assert debate_engine.resume_debate(conversation.id) is False

    @pytest.mark.asyncio
    async def test_user_message_resumes_stopped_debate(self, debate_engine, pool):
        debate_engine.debates.max_turns = 2
        conversation, _ = await debate_engine.create_conversation("u1", "X vs Y?")
        await debate_engine.debates.wait(conversation.id)
        debate_engine.stop_debate(conversation.id)

        debate_engine.debates.max_turns = 3
        await debate_engine.process_user_message(conversation.id, "What about cost?")
        await debate_engine.debates.wait(conversation.id)

        interjection = conversation.messages_of_type(MessageType.USER_INTERJECTION)
        assert [m.content for m in interjection] == ["What about cost?"]
        assert len(conversation.bot_responses) == 3
        assert "- What about cost?" in pool["mock-a"].last_prompt

    @pytest.mark.asyncio
    async def test_interjection_reaches_next_speaker_only(self, debate_engine, pool):
        debate_engine.debates.max_turns = 2
        conversation, _ = await debate_engine.create_conversation("u1", "X vs Y?")
        await debate_engine.debates.wait(conversation.id)

        await debate_engine.process_user_message(conversation.id, "Consider latency")
        await debate_engine.debates.take_turn(conversation.id)
        await debate_engine.debates.take_turn(conversation.id)

        assert "The user has added the following remarks:\n- Consider latency" in pool["mock-a"].last_prompt
        assert "Consider latency" not in pool["mock-b"].last_prompt


class TestConclude:
    @pytest.mark.asyncio
    async def test_conclusion_completes_debate(self, debate_engine, pool):
        pool[MODERATOR_MODEL].set_responses(["Both sides agree on testing."])
        conversation, _ = await debate_engine.create_conversation("u1", "X vs Y?")
        await debate_engine.debates.wait(conversation.id)

        conclusion = await debate_engine.generate_conclusion(conversation.id)

        assert conclusion == "Both sides agree on testing."
        assert conversation.messages[-1].type == MessageType.FINAL_REPORT
        assert conversation.messages[-1].model_name == MODERATOR_MODEL
        assert conversation.status == ConversationStatus.COMPLETED
        assert conversation.current_phase == PHASE_CONCLUDED
        prompt = pool[MODERATOR_MODEL].last_prompt
        assert 'Topic: "X vs Y?"' in prompt
        assert "[Beta (mock-b)]: B says" in prompt

    @pytest.mark.asyncio
    async def test_conclude_waits_for_in_flight_turn(self, debate_engine, pool):
        debate_engine.debates.max_turns = None
        gate = asyncio.Event()
        pool["mock-a"].gate = gate
        conversation, _ = await debate_engine.create_conversation("u1", "X vs Y?")
        await _wait_for(lambda: pool["mock-a"].call_log)

        concluding = asyncio.create_task(debate_engine.generate_conclusion(conversation.id))
        await asyncio.sleep(0)
        assert conversation.status == ConversationStatus.SYNTHESIZING
        gate.set()
        await concluding
        await debate_engine.debates.wait(conversation.id)

        types = [m.type for m in conversation.messages]
        assert types[-2:] == [MessageType.BOT_RESPONSE, MessageType.FINAL_REPORT]
        assert len(conversation.bot_responses) == 1
        assert conversation.status == ConversationStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_stop_after_conclusion_is_a_no_op(self, debate_engine):
        conversation, _ = await debate_engine.create_conversation("u1", "X vs Y?")
        await debate_engine.debates.wait(conversation.id)
        await debate_engine.generate_conclusion(conversation.id)

        assert debate_engine.stop_debate(conversation.id) is False
        assert conversation.status == ConversationStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_failed_conclusion_leaves_debate_stopped(self, debate_engine, pool):
        pool[MODERATOR_MODEL].fail = True
        conversation, _ = await debate_engine.create_conversation("u1", "X vs Y?")
        await debate_engine.debates.wait(conversation.id)

        assert await debate_engine.generate_conclusion(conversation.id) is None
        assert conversation.status == ConversationStatus.STOPPED
        assert conversation.messages[-1].type == MessageType.SYSTEM_MESSAGE
        assert debate_engine.resume_debate(conversation.id) is True
