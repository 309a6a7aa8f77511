"""Emotion analysis configuration and fallback lexicons.

The lexicons drive the deterministic fallback scorer used whenever the
language-understanding model is unavailable, slow or returns bad output.
"""
from dataclasses import dataclass
from typing import Dict, FrozenSet, Tuple

from mindmesh.shared.models import MAX_KEYWORDS


@dataclass(frozen=True)
class EmotionAnalysisConfig:
    """Behaviour of the emotion analyzer."""

    # Timeout for the language-understanding model call (seconds)
    model_timeout_seconds: float = 3.0

    # Each lexicon match adds this much to its emotion (capped at 1.0)
    match_increment: float = 0.2

    # Each positive/negative word moves sentiment by this much
    sentiment_step: float = 0.2

    # Keywords shorter than this are dropped
    min_keyword_length: int = 4

    max_keywords: int = MAX_KEYWORDS

    def __post_init__(self):
        if self.model_timeout_seconds <= 0:
            raise ValueError("model_timeout_seconds must be positive")
        if not 0 < self.max_keywords <= MAX_KEYWORDS:
            raise ValueError(
                f"max_keywords must be between 1 and {MAX_KEYWORDS}, got {self.max_keywords}"
            )


# Word stems per emotion; a match is counted for every occurrence in the text.
EMOTION_LEXICON: Dict[str, Tuple[str, ...]] = {
    "sadness": ("sad", "depressed", "down", "miserable", "unhappy"),
    "anxiety": ("anxious", "worried", "nervous", "stress", "stressed"),
    "anger": ("angry", "mad", "furious", "irritated", "frustrated"),
    "fear": ("scared", "afraid", "terrified", "panic", "fearful"),
    "joy": ("happy", "joyful", "excited", "great", "wonderful"),
    "hopelessness": ("hopeless", "helpless", "worthless", "useless", "despair"),
}

POSITIVE_WORDS: FrozenSet[str] = frozenset({
    "good",
    "great",
    "happy",
    "love",
    "wonderful",
    "excellent",
    "blessed",
    "grateful",
})

NEGATIVE_WORDS: FrozenSet[str] = frozenset({
    "bad",
    "terrible",
    "hate",
    "awful",
    "sad",
    "depressed",
    "useless",
    "worthless",
})

STOP_WORDS: FrozenSet[str] = frozenset({
    "the", "a", "an", "and", "or", "but", "is", "are", "was", "were",
    "be", "been", "being", "have", "has", "had", "do", "does", "did",
    "will", "would", "could", "should", "this", "that", "with", "from",
    "about", "just", "really", "very", "feel", "feeling", "what", "when",
    "they", "them", "there", "their", "your", "mine",
})
