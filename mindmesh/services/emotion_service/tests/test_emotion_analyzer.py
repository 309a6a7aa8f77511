"""Tests for EmotionAnalyzer.

The analyzer must always return a valid signal: model failures of any
kind degrade to the lexicon scorer instead of surfacing.
"""
import asyncio
import pytest
from unittest.mock import AsyncMock, MagicMock

from mindmesh.services.emotion_service import (
    EmotionAnalysisConfig,
    EmotionAnalyzer,
    LanguageUnderstandingClient,
    MalformedAnalysisError,
)
from mindmesh.services.llm_service.base_llm import LLMResponse
from mindmesh.shared.models import EMOTION_NAMES, MAX_KEYWORDS, SignalSource
from mindmesh.shared.utils import configure_pii_salt


@pytest.fixture(autouse=True)
def setup_pii_salt():
    """Configure PII salt for all tests."""
    configure_pii_salt("test_salt_that_is_at_least_32_characters_long")


def _service(result=None, side_effect=None):
    service = MagicMock()
    service.analyze_text = AsyncMock(return_value=result, side_effect=side_effect)
    return service


def _llm_returning(text):
    llm = MagicMock()
    llm.generate = AsyncMock(return_value=LLMResponse(text=text, model="m", provider="openai"))
    return llm


class TestFallbackAnalysis:
    """Tests for the deterministic lexicon path."""

    def test_each_match_adds_increment(self):
        """Two sadness words should score 0.4."""
        analyzer = EmotionAnalyzer()

        signal = analyzer.fallback_analysis("I feel sad and really down today")

        assert signal.sadness == pytest.approx(0.4)
        assert signal.joy == 0.0
        assert signal.source == SignalSource.FALLBACK

    def test_scores_capped_at_one(self):
        """Many matches should never push a score above 1.0."""
        analyzer = EmotionAnalyzer()

        signal = analyzer.fallback_analysis("sad " * 20)

        assert signal.sadness == 1.0

    def test_matches_whole_words_only(self):
        """'madness' must not count as 'mad'."""
        analyzer = EmotionAnalyzer()

        signal = analyzer.fallback_analysis("the madness of downloads")

        assert signal.anger == 0.0
        assert signal.sadness == 0.0

    def test_sentiment_clamped(self):
        """Sentiment stays within [-1, 1] regardless of word count."""
        analyzer = EmotionAnalyzer()

        negative = analyzer.fallback_analysis("bad terrible awful hate sad depressed useless")
        positive = analyzer.fallback_analysis("good great happy love wonderful excellent")

        assert negative.sentiment == -1.0
        assert positive.sentiment == 1.0

    def test_keywords_filtered_and_bounded(self):
        """Stop-words and short words are dropped, order kept, max 10."""
        analyzer = EmotionAnalyzer()

        signal = analyzer.fallback_analysis(
            "I have been feeling lonely lately, lonely and tired of school work "
            "exams grades friends family weekends holidays summer winter"
        )

        assert signal.keywords[0] == "lonely"
        assert signal.keywords.count("lonely") == 1
        assert "have" not in signal.keywords
        assert "of" not in signal.keywords
        assert len(signal.keywords) == 10

    @pytest.mark.parametrize("text", [
        "",
        "   ",
        "!!!???",
        "😢😢😢",
        "x" * 20000,
        "sad anxious angry scared happy hopeless " * 50,
    ])
    def test_fallback_totality(self, text):
        """Any input yields a signal within the documented ranges."""
        analyzer = EmotionAnalyzer()

        signal = analyzer.fallback_analysis(text)

        assert set(signal.scores) == set(EMOTION_NAMES)
        assert all(0.0 <= v <= 1.0 for v in signal.scores.values())
        assert -1.0 <= signal.sentiment <= 1.0
        assert len(signal.keywords) <= 10


class TestValidate:
    """Tests for model-output validation and clamping."""

    def test_clamps_out_of_range_values(self):
        """Scores and sentiment are clamped into range."""
        analyzer = EmotionAnalyzer()

        signal = analyzer.validate({
            "emotionScores": {"sadness": 1.7, "joy": -0.3},
            "sentiment": -4,
            "keywords": ["Alone", "alone", "tired"],
        })

        assert signal.sadness == 1.0
        assert signal.joy == 0.0
        assert signal.sentiment == -1.0
        assert signal.keywords == ("alone", "tired")
        assert signal.source == SignalSource.MODEL

    def test_missing_emotions_default_to_zero(self):
        """Unknown emotions are ignored, missing ones are 0.0."""
        analyzer = EmotionAnalyzer()

        signal = analyzer.validate({"emotionScores": {"anxiety": 0.5, "boredom": 0.9}})

        assert signal.anxiety == 0.5
        assert signal.fear == 0.0
        assert "boredom" not in signal.scores

    @pytest.mark.parametrize("raw", [
        [],
        {"sentiment": 0.1},
        {"emotionScores": "sad"},
        {"emotionScores": {"sadness": "very"}},
        {"emotionScores": {"sadness": float("nan")}},
        {"emotionScores": {"sadness": True}},
        {"emotionScores": {}, "keywords": "sad"},
    ])
    def test_malformed_rejected(self, raw):
        """Structurally unusable output raises MalformedAnalysisError."""
        analyzer = EmotionAnalyzer()

        with pytest.raises(MalformedAnalysisError):
            analyzer.validate(raw)


@pytest.mark.asyncio
class TestAnalyze:
    """Tests for the full analyze() path."""

    async def test_uses_model_output(self):
        """Valid model output is accepted."""
        service = _service({"emotionScores": {"sadness": 0.9}, "sentiment": -0.8, "keywords": ["sad"]})
        analyzer = EmotionAnalyzer(service)

        signal = await analyzer.analyze("I feel really sad and down")

        assert signal.source == SignalSource.MODEL
        assert signal.sadness == 0.9
        service.analyze_text.assert_awaited_once_with("I feel really sad and down")

    async def test_no_service_uses_fallback(self):
        """Without a model the lexicon path runs directly."""
        analyzer = EmotionAnalyzer()

        signal = await analyzer.analyze("I am so anxious")

        assert signal.source == SignalSource.FALLBACK
        assert signal.anxiety == pytest.approx(0.2)

    async def test_service_error_falls_back(self):
        """Quota or transport errors never reach the caller."""
        analyzer = EmotionAnalyzer(_service(side_effect=RuntimeError("quota exceeded")))

        signal = await analyzer.analyze("I am so anxious")

        assert signal.source == SignalSource.FALLBACK

    async def test_malformed_output_falls_back(self):
        """Garbage model output degrades to fallback."""
        analyzer = EmotionAnalyzer(_service({"emotionScores": "nope"}))

        signal = await analyzer.analyze("sad")

        assert signal.source == SignalSource.FALLBACK
        assert signal.sadness == pytest.approx(0.2)

    async def test_timeout_falls_back(self):
        """A slow model is abandoned after the configured timeout."""
        async def slow(text):
            await asyncio.sleep(5)
            return {"emotionScores": {}}

        service = MagicMock()
        service.analyze_text = slow
        analyzer = EmotionAnalyzer(service, EmotionAnalysisConfig(model_timeout_seconds=0.05))

        signal = await analyzer.analyze("scared")

        assert signal.source == SignalSource.FALLBACK
        assert signal.fear == pytest.approx(0.2)


@pytest.mark.asyncio
class TestLanguageUnderstandingClient:
    """Tests for JSON parsing of LLM analysis output."""

    async def test_parses_json(self):
        """Plain JSON output is decoded."""
        client = LanguageUnderstandingClient(_llm_returning('{"emotionScores": {"joy": 0.7}}'))

        result = await client.analyze_text("great day")

        assert result == {"emotionScores": {"joy": 0.7}}

    async def test_strips_code_fence(self):
        """Markdown fenced JSON is accepted."""
        client = LanguageUnderstandingClient(
            _llm_returning('```json\n{"sentiment": 0.5}\n```')
        )

        result = await client.analyze_text("fine")

        assert result == {"sentiment": 0.5}

    async def test_requests_json_mode(self):
        """The model is asked for a JSON object at zero temperature."""
        llm = _llm_returning("{}")
        client = LanguageUnderstandingClient(llm)

        await client.analyze_text("hello")

        kwargs = llm.generate.call_args.kwargs
        assert kwargs["json_mode"] is True
        assert kwargs["temperature"] == 0.0

    async def test_invalid_json_raises(self):
        """Non-JSON output raises MalformedAnalysisError."""
        client = LanguageUnderstandingClient(_llm_returning("I think you are sad"))

        with pytest.raises(MalformedAnalysisError):
            await client.analyze_text("hello")

    async def test_non_object_raises(self):
        """A JSON array is not an analysis."""
        client = LanguageUnderstandingClient(_llm_returning("[1, 2]"))

        with pytest.raises(MalformedAnalysisError):
            await client.analyze_text("hello")


class TestEmotionAnalysisConfig:
    """Tests for analyzer configuration limits."""

    def test_max_keywords_above_signal_limit_rejected(self):
        """A keyword limit the signal cannot hold is refused up front."""
        with pytest.raises(ValueError):
            EmotionAnalysisConfig(max_keywords=MAX_KEYWORDS + 1)

    def test_non_positive_values_rejected(self):
        with pytest.raises(ValueError):
            EmotionAnalysisConfig(max_keywords=0)
        with pytest.raises(ValueError):
            EmotionAnalysisConfig(model_timeout_seconds=0)

    def test_fallback_at_limit_keeps_signal_valid(self):
        analyzer = EmotionAnalyzer(config=EmotionAnalysisConfig(max_keywords=MAX_KEYWORDS))
        text = (
            "alpha bravo charlie delta echo foxtrot golf hotel india juliet "
            "kilo lima mike november oscar papa quebec romeo sierra tango"
        )

        signal = analyzer.fallback_analysis(text)

        assert len(signal.keywords) == MAX_KEYWORDS
