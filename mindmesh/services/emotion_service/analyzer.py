"""Emotion analyzer - first stage of the message pipeline.

Primary path: language-understanding model, bounded by a timeout, output
validated and clamped. Fallback path: deterministic lexicon scoring. The
analyzer never raises to its caller; every failure of the primary path is
logged and answered by the fallback so the pipeline can always proceed.
"""
import asyncio
import logging
import math
import re
from typing import Any, Dict, List, Mapping, Optional, Pattern, Protocol, Tuple

from mindmesh.shared.models import EMOTION_NAMES, EmotionalSignal, SignalSource
from mindmesh.shared.utils import hash_text_for_audit
from .config import (
    EMOTION_LEXICON,
    NEGATIVE_WORDS,
    POSITIVE_WORDS,
    STOP_WORDS,
    EmotionAnalysisConfig,
)
from .understanding import MalformedAnalysisError

logger = logging.getLogger(__name__)

_WORD_RE = re.compile(r"[a-z][a-z'\-]*")


class TextAnalysisService(Protocol):
    """Anything exposing the language-understanding contract."""

    async def analyze_text(self, text: str) -> Dict[str, Any]:
        ...


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def _as_number(value: Any, field_name: str) -> float:
    if isinstance(value, bool):
        raise MalformedAnalysisError(f"{field_name} is a boolean")
    try:
        number = float(value)
    except (TypeError, ValueError) as e:
        raise MalformedAnalysisError(f"{field_name} is not numeric: {value!r}") from e
    if math.isnan(number):
        raise MalformedAnalysisError(f"{field_name} is NaN")
    return number


class EmotionAnalyzer:
    """Converts raw text into an EmotionalSignal."""

    def __init__(
        self,
        service: Optional[TextAnalysisService] = None,
        config: Optional[EmotionAnalysisConfig] = None,
    ):
        """Initialize analyzer.

        Args:
            service: Language-understanding service; None runs fallback only
            config: Analyzer behaviour configuration
        """
        self.service = service
        self.config = config or EmotionAnalysisConfig()
        self._lexicon_patterns: Dict[str, Pattern] = {
            emotion: self._compile_lexicon(words)
            for emotion, words in EMOTION_LEXICON.items()
        }

        logger.info(
            "EMOTION_ANALYZER_INITIALIZED",
            extra={
                "model_enabled": service is not None,
                "model_timeout_seconds": self.config.model_timeout_seconds,
            }
        )

    @staticmethod
    def _compile_lexicon(words: Tuple[str, ...]) -> Pattern:
        alternation = "|".join(re.escape(w) for w in words)
        return re.compile(rf"\b(?:{alternation})\b", re.IGNORECASE)

    async def analyze(self, text: str) -> EmotionalSignal:
        """Analyze text, falling back to lexicon scoring on any failure.

        Args:
            text: Raw user message

        Returns:
            EmotionalSignal with scores in [0,1] and sentiment in [-1,1]
        """
        if self.service is None:
            return self.fallback_analysis(text)

        try:
            raw = await asyncio.wait_for(
                self.service.analyze_text(text),
                timeout=self.config.model_timeout_seconds,
            )
            signal = self.validate(raw)
        except asyncio.CancelledError:
            raise
        except asyncio.TimeoutError:
            logger.warning(
                "EMOTION_ANALYSIS_TIMEOUT",
                extra={
                    "text_hash": hash_text_for_audit(text),
                    "timeout_seconds": self.config.model_timeout_seconds,
                    "action": "using_fallback",
                }
            )
            return self.fallback_analysis(text)
        except Exception as e:
            logger.error(
                "EMOTION_ANALYSIS_FAILED",
                extra={
                    "text_hash": hash_text_for_audit(text),
                    "error": str(e),
                    "error_type": type(e).__name__,
                    "action": "using_fallback",
                }
            )
            return self.fallback_analysis(text)

        logger.info(
            "EMOTION_ANALYSIS_COMPLETED",
            extra={
                "source": signal.source.value,
                "dominant_emotion": signal.dominant_emotion,
                "sentiment": signal.sentiment,
            }
        )
        return signal

    def validate(self, raw: Mapping[str, Any]) -> EmotionalSignal:
        """Validate and clamp model output into an EmotionalSignal.

        Unknown emotions are ignored and missing ones default to 0.0.
        Non-numeric values make the whole analysis malformed.

        Raises:
            MalformedAnalysisError: If the structure or values are unusable
        """
        if not isinstance(raw, Mapping):
            raise MalformedAnalysisError("Analysis is not a mapping")

        raw_scores = raw.get("emotionScores", raw.get("emotion_scores"))
        if not isinstance(raw_scores, Mapping):
            raise MalformedAnalysisError("emotionScores missing or not an object")

        scores = {}
        for name in EMOTION_NAMES:
            value = raw_scores.get(name, 0.0)
            scores[name] = _clamp(_as_number(value, name), 0.0, 1.0)

        sentiment = _clamp(_as_number(raw.get("sentiment", 0.0), "sentiment"), -1.0, 1.0)

        raw_keywords = raw.get("keywords") or []
        if not isinstance(raw_keywords, (list, tuple)):
            raise MalformedAnalysisError("keywords is not a list")
        keywords = self._dedupe(
            str(k).strip().lower() for k in raw_keywords if str(k).strip()
        )

        return EmotionalSignal(
            scores=scores,
            sentiment=sentiment,
            keywords=tuple(keywords[: self.config.max_keywords]),
            source=SignalSource.MODEL,
        )

    def fallback_analysis(self, text: str) -> EmotionalSignal:
        """Deterministic lexicon-based analysis. Total for any string."""
        text = text or ""
        scores = {}
        for emotion in EMOTION_NAMES:
            pattern = self._lexicon_patterns.get(emotion)
            matches = len(pattern.findall(text)) if pattern else 0
            scores[emotion] = round(min(matches * self.config.match_increment, 1.0), 2)

        return EmotionalSignal(
            scores=scores,
            sentiment=self._lexicon_sentiment(text),
            keywords=tuple(self.extract_keywords(text)),
            source=SignalSource.FALLBACK,
        )

    def _lexicon_sentiment(self, text: str) -> float:
        words = _WORD_RE.findall(text.lower())
        score = 0.0
        for word in words:
            if word in POSITIVE_WORDS:
                score += self.config.sentiment_step
            elif word in NEGATIVE_WORDS:
                score -= self.config.sentiment_step
        return round(_clamp(score, -1.0, 1.0), 2)

    def extract_keywords(self, text: str) -> List[str]:
        """Stop-word filtered, length filtered, order-preserving keywords."""
        words = (
            w.strip("'-") for w in _WORD_RE.findall((text or "").lower())
        )
        candidates = (
            w for w in words
            if len(w) >= self.config.min_keyword_length and w not in STOP_WORDS
        )
        return self._dedupe(candidates)[: self.config.max_keywords]

    @staticmethod
    def _dedupe(items) -> List[str]:
        seen = set()
        result = []
        for item in items:
            if item not in seen:
                seen.add(item)
                result.append(item)
        return result
