"""Tests for ResponseGenerator.

Covers:
- Fallback table order and exhaustiveness
- Crisis bypass of the model
- Timeout, error and guardrail fallbacks
- Prompt construction from pipeline state
"""
import asyncio
import itertools
import random
from types import SimpleNamespace

import pytest
from unittest.mock import AsyncMock, MagicMock

from mindmesh.services.llm_service.base_llm import LLMResponse
from mindmesh.services.recommendation_engine import SuggestionCatalog
from mindmesh.services.recommendation_engine.suggestions import HABIT_SUGGESTIONS, JOURNAL_PROMPTS
from mindmesh.services.response_service import (
    CRISIS_REPLY,
    CRISIS_REPLY_UNESCALATED,
    DEFAULT_REPLY,
    FALLBACK_REPLIES,
    ReplySource,
    ResponseConfig,
    ResponseGenerator,
    validate_reply,
)
from mindmesh.shared.models import (
    ActionType,
    AlertOutcome,
    AlertType,
    Context,
    EmotionalSignal,
    EscalationResult,
    HabitRecord,
    JournalRecord,
    MemoryMatch,
    Priority,
    Recommendation,
    SafetyFlag,
    ShortTermHistory,
)
from mindmesh.shared.utils import configure_pii_salt


@pytest.fixture(autouse=True)
def setup_pii_salt():
    """Configure PII salt for all tests."""
    configure_pii_salt("test_salt_that_is_at_least_32_characters_long")


def make_state(actions=(), text="I feel off today", signal=None, context=None, escalation=None):
    alert_type = AlertType.CRISIS if ActionType.ALERT_THERAPIST in actions else None
    recommendation = Recommendation(
        actions=tuple(actions),
        priority=Priority.CRITICAL if alert_type else Priority.MEDIUM,
        alert_type=alert_type,
    )
    return SimpleNamespace(
        user_id="user_1",
        input_text=text,
        emotional_signal=signal,
        context=context,
        recommendation=recommendation,
        escalation=escalation,
    )


def recorded_escalation(outcome=AlertOutcome.ISSUED):
    flag = SafetyFlag(flag_id="flag_1", user_id="user_1", flag_type=AlertType.CRISIS)
    return EscalationResult(outcome=outcome, flag=flag)


def _llm_returning(text):
    llm = MagicMock()
    llm.generate = AsyncMock(
        return_value=LLMResponse(text=text, model="m", provider="openai", latency_ms=12.0)
    )
    return llm


class TestFallbackReply:
    """Tests for the decision table."""

    def test_every_action_has_an_entry(self):
        assert set(FALLBACK_REPLIES) == set(ActionType)

    def test_table_order(self):
        assert list(FALLBACK_REPLIES) == [
            ActionType.ALERT_THERAPIST,
            ActionType.SUGGEST_THERAPY,
            ActionType.SUGGEST_JOURNAL,
            ActionType.SUGGEST_HABIT,
        ]

    def test_alert_wins_over_everything(self):
        generator = ResponseGenerator()
        state = make_state(
            [ActionType.SUGGEST_JOURNAL, ActionType.ALERT_THERAPIST],
            escalation=recorded_escalation(),
        )

        assert generator.fallback_reply(state) == CRISIS_REPLY

    def test_existing_flag_keeps_follow_up_wording(self):
        generator = ResponseGenerator()
        state = make_state(
            [ActionType.ALERT_THERAPIST],
            escalation=recorded_escalation(AlertOutcome.ALREADY_ACTIVE),
        )

        assert generator.fallback_reply(state) == CRISIS_REPLY

    def test_unrecorded_escalation_promises_no_follow_up(self):
        """Without a recorded flag the reply gives resources only."""
        generator = ResponseGenerator()
        state = make_state([ActionType.ALERT_THERAPIST])

        reply = generator.fallback_reply(state)

        assert reply == CRISIS_REPLY_UNESCALATED
        assert "therapist" not in reply
        assert "988" in reply
        assert "741741" in reply

    def test_crisis_replies_share_resources(self):
        for reply in (CRISIS_REPLY, CRISIS_REPLY_UNESCALATED):
            assert "988" in reply
            assert "911" in reply

    def test_therapy_wins_over_journal(self):
        generator = ResponseGenerator()
        state = make_state([ActionType.SUGGEST_JOURNAL, ActionType.SUGGEST_THERAPY])

        assert "therapy session" in generator.fallback_reply(state)

    def test_journal_reply_embeds_prompt(self):
        generator = ResponseGenerator(catalog=SuggestionCatalog(random.Random(0)))

        reply = generator.fallback_reply(make_state([ActionType.SUGGEST_JOURNAL]))

        assert any(prompt in reply for prompt in JOURNAL_PROMPTS)

    def test_habit_reply_embeds_suggestion(self):
        generator = ResponseGenerator(catalog=SuggestionCatalog(random.Random(0)))

        reply = generator.fallback_reply(make_state([ActionType.SUGGEST_HABIT]))

        assert any(habit.name in reply for habit in HABIT_SUGGESTIONS)

    def test_no_actions_gives_default(self):
        assert ResponseGenerator().fallback_reply(make_state()) == DEFAULT_REPLY

    def test_missing_recommendation_gives_default(self):
        state = make_state()
        state.recommendation = None

        assert ResponseGenerator().fallback_reply(state) == DEFAULT_REPLY

    @pytest.mark.parametrize("size", [1, 2, 3, 4])
    def test_every_action_set_gives_non_empty_reply(self, size):
        """Every combination of actions yields a non-empty reply."""
        generator = ResponseGenerator()
        for combo in itertools.combinations(list(ActionType), size):
            reply = generator.fallback_reply(make_state(combo))
            assert reply.strip()


class TestValidateReply:
    """Tests for post-generation guardrails."""

    @pytest.mark.parametrize("text", [
        "",
        "   ",
        "Maybe you should kill yourself",
        "Based on this, you have depression.",
        "Please stop taking your medication.",
    ])
    def test_rejected(self, text):
        assert validate_reply(text) is False

    def test_supportive_reply_accepted(self):
        assert validate_reply("That sounds really hard. I'm here with you.") is True


@pytest.mark.asyncio
class TestGenerate:
    """Tests for the model path and its fallbacks."""

    async def test_uses_model_reply(self):
        llm = _llm_returning("  That sounds hard. Want to talk about it?  ")
        generator = ResponseGenerator(llm)

        reply = await generator.compose(make_state([ActionType.SUGGEST_JOURNAL]))

        assert reply.source == ReplySource.LLM_GENERATED
        assert reply.text == "That sounds hard. Want to talk about it?"
        assert llm.generate.call_args.kwargs["system_prompt"]

    async def test_no_model_uses_fallback(self):
        reply = await ResponseGenerator().compose(make_state([ActionType.SUGGEST_THERAPY]))

        assert reply.source == ReplySource.FALLBACK
        assert "therapy session" in reply.text

    async def test_crisis_bypasses_model(self):
        """The model is never called for a crisis recommendation."""
        llm = _llm_returning("anything")
        generator = ResponseGenerator(llm)

        reply = await generator.compose(
            make_state([ActionType.ALERT_THERAPIST], escalation=recorded_escalation())
        )

        assert reply.source == ReplySource.CRISIS_PROTOCOL
        assert reply.text == CRISIS_REPLY
        llm.generate.assert_not_called()

    async def test_crisis_bypass_can_be_disabled(self):
        llm = _llm_returning("I'm so sorry you're feeling this way. Please call 988.")
        generator = ResponseGenerator(llm, config=ResponseConfig(bypass_llm_on_crisis=False))

        reply = await generator.compose(make_state([ActionType.ALERT_THERAPIST]))

        assert reply.source == ReplySource.LLM_GENERATED
        llm.generate.assert_awaited_once()

    async def test_model_error_falls_back(self):
        llm = MagicMock()
        llm.generate = AsyncMock(side_effect=RuntimeError("quota exceeded"))

        text = await ResponseGenerator(llm).generate(make_state([ActionType.SUGGEST_THERAPY]))

        assert "therapy session" in text

    async def test_model_timeout_falls_back(self):
        async def slow_generate(*args, **kwargs):
            await asyncio.sleep(1)

        llm = MagicMock()
        llm.generate = slow_generate
        generator = ResponseGenerator(llm, config=ResponseConfig(timeout_seconds=0.01))

        reply = await generator.compose(make_state())

        assert reply.source == ReplySource.FALLBACK
        assert reply.text == DEFAULT_REPLY

    async def test_harmful_output_replaced(self):
        generator = ResponseGenerator(_llm_returning("You should die."))

        reply = await generator.compose(make_state())

        assert reply.source == ReplySource.SAFETY_GUARDRAIL
        assert reply.text == DEFAULT_REPLY

    async def test_empty_output_replaced(self):
        reply = await ResponseGenerator(_llm_returning("")).compose(make_state())

        assert reply.source == ReplySource.SAFETY_GUARDRAIL
        assert reply.text


class TestBuildPrompt:
    """Tests for prompt construction."""

    def test_includes_text_signal_context_and_actions(self):
        context = Context(
            recent_records=ShortTermHistory(
                journal_entries=(JournalRecord("j1", "Monday", "rough day"),),
                habits=(HabitRecord("h1", "Walk"),),
            ),
            semantic_matches=(
                MemoryMatch("m1", 0.4, "I lost my job"),
                MemoryMatch("m2", 0.9, "My exam is next week"),
            ),
        )
        state = make_state(
            [ActionType.SUGGEST_JOURNAL],
            text="I am stressed",
            signal=EmotionalSignal.from_scores(sentiment=-0.5, anxiety=0.8),
            context=context,
        )

        prompt = ResponseGenerator().build_prompt(state)

        assert 'User: "I am stressed"' in prompt
        assert "anxiety 0.8" in prompt
        assert "sentiment -0.5" in prompt
        assert "User has 1 journals, 1 habits, 0 recent emotions." in prompt
        assert prompt.index("My exam is next week") < prompt.index("I lost my job")
        assert "Suggested: SUGGEST_JOURNAL" in prompt

    def test_minimal_state(self):
        state = make_state(text="hi")

        prompt = ResponseGenerator().build_prompt(state)

        assert prompt.startswith('User: "hi"')
        assert "Suggested" not in prompt
        assert "User has" not in prompt
