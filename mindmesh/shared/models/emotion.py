"""Emotional signal domain model.

The signal is produced once per message by the EmotionAnalyzer and read by
every later stage. All ranges are validated at construction, so consumers
never need to re-check them.
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, Mapping, Tuple


class Emotion(Enum):
    """Fixed set of emotions scored for every message."""
    SADNESS = "sadness"
    ANXIETY = "anxiety"
    ANGER = "anger"
    FEAR = "fear"
    JOY = "joy"
    HOPELESSNESS = "hopelessness"


EMOTION_NAMES: Tuple[str, ...] = tuple(e.value for e in Emotion)

MAX_KEYWORDS = 10


class SignalSource(Enum):
    """Which path produced the signal."""
    MODEL = "model"
    FALLBACK = "fallback"


@dataclass(frozen=True)
class EmotionalSignal:
    """Per-emotion scores, overall sentiment and extracted keywords.

    Immutable; set exactly once per pipeline invocation.
    """
    scores: Mapping[str, float]
    sentiment: float = 0.0
    keywords: Tuple[str, ...] = ()
    source: SignalSource = SignalSource.FALLBACK
    analyzed_at: datetime = field(default_factory=datetime.utcnow)

    def __post_init__(self):
        unknown = set(self.scores) - set(EMOTION_NAMES)
        if unknown:
            raise ValueError(f"Unknown emotions: {sorted(unknown)}")
        for name, value in self.scores.items():
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"Score for {name} must be 0.0-1.0, got {value}")
        if not -1.0 <= self.sentiment <= 1.0:
            raise ValueError(f"Sentiment must be -1.0-1.0, got {self.sentiment}")
        if len(self.keywords) > MAX_KEYWORDS:
            raise ValueError(f"At most {MAX_KEYWORDS} keywords, got {len(self.keywords)}")

    @classmethod
    def from_scores(
        cls,
        sentiment: float = 0.0,
        keywords: Tuple[str, ...] = (),
        source: SignalSource = SignalSource.FALLBACK,
        **scores: float,
    ) -> "EmotionalSignal":
        """Build a signal, defaulting every unspecified emotion to 0.0."""
        full = {name: 0.0 for name in EMOTION_NAMES}
        full.update(scores)
        return cls(scores=full, sentiment=sentiment, keywords=tuple(keywords), source=source)

    def score(self, emotion: str) -> float:
        """Score for one emotion (0.0 when absent)."""
        return self.scores.get(emotion, 0.0)

    @property
    def sadness(self) -> float:
        return self.score(Emotion.SADNESS.value)

    @property
    def anxiety(self) -> float:
        return self.score(Emotion.ANXIETY.value)

    @property
    def anger(self) -> float:
        return self.score(Emotion.ANGER.value)

    @property
    def fear(self) -> float:
        return self.score(Emotion.FEAR.value)

    @property
    def joy(self) -> float:
        return self.score(Emotion.JOY.value)

    @property
    def hopelessness(self) -> float:
        return self.score(Emotion.HOPELESSNESS.value)

    @property
    def dominant_emotion(self) -> str:
        """Highest-scoring emotion name ("neutral" when all are zero)."""
        name, value = max(self.scores.items(), key=lambda kv: kv[1], default=("neutral", 0.0))
        return name if value > 0.0 else "neutral"

    def to_dict(self) -> Dict:
        return {
            "emotion_scores": dict(self.scores),
            "sentiment": round(self.sentiment, 3),
            "keywords": list(self.keywords),
            "source": self.source.value,
            "analyzed_at": self.analyzed_at.isoformat(),
        }
