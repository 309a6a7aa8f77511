"""Recommendation Engine - rule-based intervention selection with crisis override."""
from .config import CRISIS_KEYWORDS, RecommendationThresholds
from .engine import RecommendationEngine
from .suggestions import (
    HABIT_SUGGESTIONS,
    JOURNAL_PROMPTS,
    HabitSuggestion,
    SuggestionCatalog,
)
from .text_normalizer import TextNormalizer

__all__ = [
    "CRISIS_KEYWORDS",
    "RecommendationThresholds",
    "RecommendationEngine",
    "HABIT_SUGGESTIONS",
    "JOURNAL_PROMPTS",
    "HabitSuggestion",
    "SuggestionCatalog",
    "TextNormalizer",
]
