"""Recommendation engine thresholds and keyword lists.

Thresholds are exclusive: a score must be strictly greater than the
threshold to fire its branch.
"""
import os
from dataclasses import dataclass
from typing import FrozenSet, Tuple


@dataclass(frozen=True)
class RecommendationThresholds:
    """Emotion-score thresholds for each decision branch."""

    # Crisis override: sadness AND hopelessness
    CRISIS_SADNESS: float = 0.85
    CRISIS_HOPELESSNESS: float = 0.75

    # High-priority therapy: sadness, OR anxiety AND fear
    HIGH_SADNESS: float = 0.8
    HIGH_ANXIETY: float = 0.7
    HIGH_FEAR: float = 0.6

    # Medium-priority therapy: anxiety OR sadness
    MEDIUM_ANXIETY: float = 0.6
    MEDIUM_SADNESS: float = 0.6

    # Journal: sadness OR sentiment below (negative) threshold
    JOURNAL_SADNESS: float = 0.7
    JOURNAL_SENTIMENT: float = -0.7

    # Habit: anxiety
    HABIT_ANXIETY: float = 0.6

    @classmethod
    def from_env(cls) -> "RecommendationThresholds":
        """Override defaults from RECOMMENDATION_<FIELD> environment variables."""
        overrides = {}
        for name in cls.__dataclass_fields__:
            value = os.getenv(f"RECOMMENDATION_{name}")
            if value is not None:
                overrides[name] = float(value)
        return cls(**overrides)


# Hard-coded crisis phrases; a case-insensitive substring match on any of
# these forces ALERT_THERAPIST regardless of emotion scores.
CRISIS_KEYWORDS: FrozenSet[str] = frozenset({
    "suicide",
    "suicidal",
    "kill myself",
    "end my life",
    "end it all",
    "ending it all",
    "want to die",
    "better off dead",
    "no point in living",
    "not worth living",
    "overdose",
    "self harm",
    "self-harm",
    "cut myself",
    "harm myself",
    "hurt myself",
    "hang myself",
})

# Explicit requests from the user. Matched on word boundaries.
JOURNAL_INTENT_PATTERNS: Tuple[str, ...] = (
    "journal",
    "journaling",
    "write down",
    "write about",
    "help me write",
    "how to journal",
)

THERAPY_INTENT_PATTERNS: Tuple[str, ...] = (
    "therapist",
    "therapy",
    "counselor",
    "counseling",
    "talk to someone",
    "professional help",
    "book a session",
)

HABIT_INTENT_PATTERNS: Tuple[str, ...] = (
    "habit",
    "routine",
    "meditation",
    "mindfulness",
    "breathing exercise",
)

# Words surfaced in Recommendation.keywords when present in the text
EMOTIONAL_KEYWORDS: Tuple[str, ...] = (
    "sad", "depressed", "anxious", "worried", "stressed", "angry",
    "frustrated", "lonely", "hurt", "scared", "afraid", "overwhelmed",
    "helpless", "hopeless", "suicidal", "death", "harm", "pain",
    "suffering", "crisis", "emergency",
)
