"""Language-understanding client backed by an LLM.

Asks the model for a strict JSON emotional analysis and parses it. The
client only parses; range validation and clamping happen in the analyzer.
"""
import json
import logging
from typing import Any, Dict

from ..llm_service.base_llm import BaseLLM

logger = logging.getLogger(__name__)


class MalformedAnalysisError(Exception):
    """Model output could not be interpreted as an emotional analysis."""
    pass


ANALYSIS_SYSTEM_PROMPT = """You are an expert emotional analysis AI. Analyze the user's message and extract emotional information.
Return a JSON object with this exact structure:
{
  "emotionScores": {
    "sadness": 0.0-1.0,
    "anxiety": 0.0-1.0,
    "anger": 0.0-1.0,
    "fear": 0.0-1.0,
    "joy": 0.0-1.0,
    "hopelessness": 0.0-1.0
  },
  "sentiment": -1.0 to 1.0,
  "keywords": ["keyword1", "keyword2", ...]
}

Be accurate and empathetic. Only return valid JSON."""


def _strip_code_fence(text: str) -> str:
    stripped = text.strip()
    if not stripped.startswith("```"):
        return stripped
    lines = stripped.splitlines()[1:]
    if lines and lines[-1].strip().startswith("```"):
        lines = lines[:-1]
    return "\n".join(lines).strip()


class LanguageUnderstandingClient:
    """Adapter exposing ``analyze_text`` over any BaseLLM."""

    def __init__(self, llm: BaseLLM, max_tokens: int = 256):
        self.llm = llm
        self.max_tokens = max_tokens

    async def analyze_text(self, text: str) -> Dict[str, Any]:
        """Run the model and return the raw decoded analysis.

        Args:
            text: User message

        Returns:
            Dict with ``emotionScores``, ``sentiment`` and ``keywords``

        Raises:
            MalformedAnalysisError: If the output is not a JSON object
            Exception: Transport errors from the model client propagate
        """
        response = await self.llm.generate(
            prompt=f'Analyze this message: "{text}"',
            system_prompt=ANALYSIS_SYSTEM_PROMPT,
            max_tokens=self.max_tokens,
            temperature=0.0,
            json_mode=True,
        )

        try:
            decoded = json.loads(_strip_code_fence(response.text))
        except (TypeError, ValueError) as e:
            raise MalformedAnalysisError(f"Model returned invalid JSON: {e}") from e

        if not isinstance(decoded, dict):
            raise MalformedAnalysisError(
                f"Expected JSON object, got {type(decoded).__name__}"
            )

        return decoded
