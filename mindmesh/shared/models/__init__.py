"""Shared domain models for the MindMesh pipeline."""
from .emotion import (
    Emotion,
    EMOTION_NAMES,
    MAX_KEYWORDS,
    SignalSource,
    EmotionalSignal,
)
from .context import (
    JournalRecord,
    HabitRecord,
    EmotionReading,
    ShortTermHistory,
    MemoryMatch,
    Context,
)
from .recommendation import (
    ActionType,
    Priority,
    AlertType,
    Recommendation,
)
from .safety import (
    FlagStatus,
    FlagSeverity,
    AlertOutcome,
    SafetyFlag,
    EscalationResult,
)

__all__ = [
    "Emotion",
    "EMOTION_NAMES",
    "MAX_KEYWORDS",
    "SignalSource",
    "EmotionalSignal",
    "JournalRecord",
    "HabitRecord",
    "EmotionReading",
    "ShortTermHistory",
    "MemoryMatch",
    "Context",
    "ActionType",
    "Priority",
    "AlertType",
    "Recommendation",
    "FlagStatus",
    "FlagSeverity",
    "AlertOutcome",
    "SafetyFlag",
    "EscalationResult",
]
