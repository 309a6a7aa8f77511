"""Recommendation engine - rule-based intervention selection.

Pure and deterministic: maps (text, emotional signal) to a prioritized
action set. No I/O besides logging.

Decision policy:
- Crisis override: crisis phrase in the text, or extreme sadness with
  hopelessness. Always evaluated; nothing else can suppress it.
- Otherwise therapy at high or medium priority by emotion thresholds.
- Journal and habit suggestions accumulate independently.
- Explicit user requests (journal, therapist, habit) add their action
  and can only raise priority.
"""
import logging
import re
from typing import List, Optional, Pattern, Tuple

from mindmesh.shared.models import (
    ActionType,
    AlertType,
    EmotionalSignal,
    Priority,
    Recommendation,
)
from mindmesh.shared.utils import hash_text_for_audit
from .config import (
    CRISIS_KEYWORDS,
    EMOTIONAL_KEYWORDS,
    HABIT_INTENT_PATTERNS,
    JOURNAL_INTENT_PATTERNS,
    THERAPY_INTENT_PATTERNS,
    RecommendationThresholds,
)
from .text_normalizer import TextNormalizer

logger = logging.getLogger(__name__)


def _compile_intent(patterns: Tuple[str, ...]) -> Pattern:
    alternation = "|".join(re.escape(p) for p in patterns)
    return re.compile(rf"\b(?:{alternation})\b", re.IGNORECASE)


class _ActionSet:
    """Insertion-ordered, duplicate-free action accumulator."""

    def __init__(self):
        self.actions: List[ActionType] = []
        self.priority = Priority.LOW
        self.reasons: List[str] = []

    def add(self, action: ActionType, priority: Optional[Priority], reason: str) -> None:
        if action not in self.actions:
            self.actions.append(action)
        if priority is not None and self.priority < priority:
            self.priority = priority
        self.reasons.append(reason)


class RecommendationEngine:
    """Maps an emotional signal and message text to a Recommendation."""

    def __init__(
        self,
        thresholds: Optional[RecommendationThresholds] = None,
        normalizer: Optional[TextNormalizer] = None,
    ):
        self.thresholds = thresholds or RecommendationThresholds()
        self._normalizer = normalizer or TextNormalizer()
        self._journal_intent = _compile_intent(JOURNAL_INTENT_PATTERNS)
        self._therapy_intent = _compile_intent(THERAPY_INTENT_PATTERNS)
        self._habit_intent = _compile_intent(HABIT_INTENT_PATTERNS)

        logger.info(
            "RECOMMENDATION_ENGINE_INITIALIZED",
            extra={"crisis_keyword_count": len(CRISIS_KEYWORDS)}
        )

    def recommend(self, text: str, signal: EmotionalSignal) -> Recommendation:
        """Produce the recommendation for one message.

        Args:
            text: Raw user message
            signal: Validated emotional signal for the message

        Returns:
            Recommendation; empty actions at low priority when nothing fires
        """
        text = text or ""
        t = self.thresholds
        result = _ActionSet()
        alert_type: Optional[AlertType] = None

        crisis_matches = self.detect_crisis_keywords(text)
        extreme_distress = (
            signal.sadness > t.CRISIS_SADNESS and signal.hopelessness > t.CRISIS_HOPELESSNESS
        )

        if crisis_matches or extreme_distress:
            alert_type = AlertType.CRISIS
            result.add(
                ActionType.ALERT_THERAPIST,
                Priority.CRITICAL,
                "Crisis indicators detected, therapist alert required",
            )
            logger.critical(
                "CRISIS_INDICATORS_DETECTED",
                extra={
                    "text_hash": hash_text_for_audit(text),
                    "matched_keywords": crisis_matches,
                    "extreme_distress": extreme_distress,
                }
            )
        elif signal.sadness > t.HIGH_SADNESS or (
            signal.anxiety > t.HIGH_ANXIETY and signal.fear > t.HIGH_FEAR
        ):
            result.add(
                ActionType.SUGGEST_THERAPY,
                Priority.HIGH,
                "Severe emotional distress, therapy session recommended",
            )
        elif signal.anxiety > t.MEDIUM_ANXIETY or signal.sadness > t.MEDIUM_SADNESS:
            result.add(
                ActionType.SUGGEST_THERAPY,
                Priority.MEDIUM,
                "Moderate distress, therapy may help",
            )

        if signal.sadness > t.JOURNAL_SADNESS or signal.sentiment < t.JOURNAL_SENTIMENT:
            result.add(
                ActionType.SUGGEST_JOURNAL,
                None,
                "Sadness or negative sentiment, journaling could help process emotions",
            )
        if signal.anxiety > t.HABIT_ANXIETY:
            result.add(
                ActionType.SUGGEST_HABIT,
                None,
                "Anxiety present, a calming habit might help",
            )

        self._apply_explicit_intents(text, result)

        recommendation = Recommendation(
            actions=tuple(result.actions),
            priority=result.priority,
            reasoning="; ".join(result.reasons),
            alert_type=alert_type,
            keywords=tuple(self.extract_emotional_keywords(text)),
        )

        logger.info(
            "RECOMMENDATION_PRODUCED",
            extra={
                "actions": [a.value for a in recommendation.actions],
                "priority": recommendation.priority.value,
                "alert_type": alert_type.value if alert_type else None,
            }
        )
        return recommendation

    def _apply_explicit_intents(self, text: str, result: _ActionSet) -> None:
        if self._journal_intent.search(text):
            result.add(ActionType.SUGGEST_JOURNAL, Priority.MEDIUM, "User asked about journaling")
        if self._therapy_intent.search(text):
            result.add(ActionType.SUGGEST_THERAPY, Priority.HIGH, "User asked for therapy")
        if self._habit_intent.search(text):
            result.add(ActionType.SUGGEST_HABIT, Priority.MEDIUM, "User asked about habits or routines")

    def detect_crisis_keywords(self, text: str) -> List[str]:
        """Crisis phrases contained in the text, sorted.

        Case-insensitive substring match against the plain text and
        against its normalized form.
        """
        lowered = text.lower()
        normalized = self._normalizer.normalize(text)
        return sorted(
            keyword for keyword in CRISIS_KEYWORDS
            if keyword in lowered or keyword in normalized
        )

    @staticmethod
    def extract_emotional_keywords(text: str) -> List[str]:
        lowered = text.lower()
        return [keyword for keyword in EMOTIONAL_KEYWORDS if keyword in lowered]
