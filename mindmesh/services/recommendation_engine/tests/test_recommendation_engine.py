"""Tests for RecommendationEngine.

The crisis override is safety-critical: any crisis phrase must yield
ALERT_THERAPIST at critical priority, whatever the emotion scores say.
"""
import random
import pytest

from mindmesh.services.recommendation_engine import (
    CRISIS_KEYWORDS,
    HABIT_SUGGESTIONS,
    JOURNAL_PROMPTS,
    RecommendationEngine,
    RecommendationThresholds,
    SuggestionCatalog,
    TextNormalizer,
)
from mindmesh.shared.models import ActionType, AlertType, EmotionalSignal, Priority


def signal(sentiment=0.0, **scores):
    return EmotionalSignal.from_scores(sentiment=sentiment, **scores)


@pytest.fixture
def engine():
    return RecommendationEngine()


class TestScenarios:
    """End-to-end decision scenarios."""

    def test_sad_message_suggests_journal(self, engine):
        """Strong sadness and negative sentiment suggest journaling, no alert."""
        rec = engine.recommend("I feel really sad and down", signal(sentiment=-0.8, sadness=0.9))

        assert ActionType.SUGGEST_JOURNAL in rec.actions
        assert ActionType.ALERT_THERAPIST not in rec.actions
        assert rec.alert_type is None

    def test_anxious_message_suggests_habit_and_therapy(self, engine):
        """Anxiety suggests both a calming habit and therapy."""
        rec = engine.recommend("I am so anxious about everything", signal(anxiety=0.8, fear=0.6))

        assert ActionType.SUGGEST_HABIT in rec.actions
        assert ActionType.SUGGEST_THERAPY in rec.actions
        assert ActionType.ALERT_THERAPIST not in rec.actions

    def test_anxiety_with_fear_above_threshold_is_high(self, engine):
        """anxiety > 0.7 and fear > 0.6 is high priority."""
        rec = engine.recommend("I am so anxious about everything", signal(anxiety=0.8, fear=0.65))

        assert rec.priority == Priority.HIGH

    def test_crisis_phrase(self, engine):
        """A crisis phrase alerts the therapist at critical priority."""
        rec = engine.recommend("I want to end it all", signal())

        assert ActionType.ALERT_THERAPIST in rec.actions
        assert rec.priority == Priority.CRITICAL
        assert rec.alert_type == AlertType.CRISIS

    def test_neutral_message_is_empty_low(self, engine):
        """No branch fires for a neutral message."""
        rec = engine.recommend("Had lunch with a friend", signal(joy=0.4, sentiment=0.3))

        assert rec.actions == ()
        assert rec.priority == Priority.LOW


class TestCrisisOverride:
    """Tests that the crisis branch always wins."""

    @pytest.mark.parametrize("keyword", sorted(CRISIS_KEYWORDS))
    def test_every_keyword_triggers(self, engine, keyword):
        """Each crisis phrase triggers regardless of case."""
        rec = engine.recommend(f"Honestly {keyword.upper()} tonight", signal(joy=1.0, sentiment=1.0))

        assert ActionType.ALERT_THERAPIST in rec.actions
        assert rec.priority == Priority.CRITICAL

    @pytest.mark.parametrize("scores", [
        {},
        {"joy": 1.0, "sentiment": 1.0},
        {"sadness": 1.0, "anxiety": 1.0, "fear": 1.0, "sentiment": -1.0},
        {"anxiety": 0.65},
    ])
    def test_not_suppressed_by_other_branches(self, engine, scores):
        """Other branches may add actions but never remove the alert."""
        rec = engine.recommend("i want to kill myself", signal(**scores))

        assert rec.actions[0] == ActionType.ALERT_THERAPIST
        assert rec.priority == Priority.CRITICAL

    def test_not_suppressed_by_explicit_intent(self, engine):
        """Asking for a therapist keeps the alert and critical priority."""
        rec = engine.recommend("I need a therapist, I want to die", signal())

        assert rec.has(ActionType.ALERT_THERAPIST)
        assert rec.has(ActionType.SUGGEST_THERAPY)
        assert rec.priority == Priority.CRITICAL

    def test_extreme_sadness_and_hopelessness(self, engine):
        """Scores alone can trigger the override."""
        rec = engine.recommend("everything is grey", signal(sadness=0.9, hopelessness=0.8))

        assert rec.requires_alert
        assert rec.alert_type == AlertType.CRISIS

    def test_thresholds_exclusive_for_crisis(self, engine):
        """Exactly at the threshold does not fire."""
        rec = engine.recommend("everything is grey", signal(sadness=0.85, hopelessness=0.75))

        assert not rec.requires_alert

    def test_obfuscated_phrase_detected(self, engine):
        """Leetspeak and separators do not hide a crisis phrase."""
        assert engine.detect_crisis_keywords("i want to k1ll mys3lf")
        assert engine.detect_crisis_keywords("s.u.i.c.i.d.e")


class TestThresholds:
    """Boundary tests for the non-crisis branches."""

    def test_high_sadness_boundary(self, engine):
        assert engine.recommend("x", signal(sadness=0.8)).priority == Priority.MEDIUM
        assert engine.recommend("x", signal(sadness=0.81)).priority == Priority.HIGH

    def test_medium_boundary(self, engine):
        assert engine.recommend("x", signal(anxiety=0.6)).actions == ()
        rec = engine.recommend("x", signal(anxiety=0.61))
        assert rec.priority == Priority.MEDIUM
        assert rec.actions == (ActionType.SUGGEST_THERAPY, ActionType.SUGGEST_HABIT)

    def test_journal_by_sentiment(self, engine):
        assert not engine.recommend("x", signal(sentiment=-0.7)).has(ActionType.SUGGEST_JOURNAL)
        assert engine.recommend("x", signal(sentiment=-0.71)).has(ActionType.SUGGEST_JOURNAL)

    def test_custom_thresholds(self):
        """Thresholds are injectable."""
        engine = RecommendationEngine(RecommendationThresholds(HABIT_ANXIETY=0.1, MEDIUM_ANXIETY=0.9))

        rec = engine.recommend("x", signal(anxiety=0.2))

        assert rec.actions == (ActionType.SUGGEST_HABIT,)

    def test_actions_never_duplicated(self, engine):
        """Journal from scores and from intent appear once."""
        rec = engine.recommend("I should journal about this", signal(sadness=0.75, sentiment=-0.9))

        assert rec.actions.count(ActionType.SUGGEST_JOURNAL) == 1


class TestExplicitIntent:
    """Tests for explicit user requests."""

    def test_journal_request(self, engine):
        rec = engine.recommend("how do I start journaling?", signal())

        assert rec.actions == (ActionType.SUGGEST_JOURNAL,)
        assert rec.priority == Priority.MEDIUM

    def test_therapy_request_is_high(self, engine):
        rec = engine.recommend("Can I book a session with a counselor?", signal())

        assert rec.actions == (ActionType.SUGGEST_THERAPY,)
        assert rec.priority == Priority.HIGH

    def test_habit_request(self, engine):
        rec = engine.recommend("I want a better morning routine", signal())

        assert rec.actions == (ActionType.SUGGEST_HABIT,)

    def test_word_boundaries(self, engine):
        """'habitat' is not a habit request."""
        rec = engine.recommend("We visited a wildlife habitat", signal())

        assert rec.actions == ()


class TestKeywords:
    """Tests for emotional keyword extraction."""

    def test_extracts_present_keywords(self, engine):
        rec = engine.recommend("I'm lonely and overwhelmed", signal())

        assert rec.keywords == ("lonely", "overwhelmed")


class TestTextNormalizer:
    """Tests for obfuscation folding."""

    def test_leetspeak(self):
        assert TextNormalizer().normalize("K1LL") == "kill"

    def test_separators(self):
        assert TextNormalizer().normalize("k.i.l.l") == "kill"

    def test_invisible_characters(self):
        assert TextNormalizer().normalize("ki\u200bll") == "kill"

    def test_empty(self):
        assert TextNormalizer().normalize("") == ""


class TestSuggestionCatalog:
    """Tests for seeded suggestion choice."""

    def test_seeded_choices_are_reproducible(self):
        first = SuggestionCatalog(random.Random(7))
        second = SuggestionCatalog(random.Random(7))

        assert first.journal_prompt() == second.journal_prompt()
        assert first.habit_suggestion() == second.habit_suggestion()

    def test_choices_come_from_lists(self):
        catalog = SuggestionCatalog()

        assert catalog.journal_prompt() in JOURNAL_PROMPTS
        assert catalog.habit_suggestion() in HABIT_SUGGESTIONS
