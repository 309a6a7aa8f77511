"""Emotion Service - turns raw message text into an EmotionalSignal.

Primary path is an LLM-backed language-understanding client; the
deterministic lexicon scorer takes over whenever that path fails.
"""
from .analyzer import EmotionAnalyzer, TextAnalysisService
from .config import EmotionAnalysisConfig
from .understanding import LanguageUnderstandingClient, MalformedAnalysisError

__all__ = [
    "EmotionAnalyzer",
    "TextAnalysisService",
    "EmotionAnalysisConfig",
    "LanguageUnderstandingClient",
    "MalformedAnalysisError",
]
