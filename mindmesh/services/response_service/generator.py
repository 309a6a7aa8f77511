"""Response generator - produces the user-facing reply.

Primary path: generative model with the accumulated pipeline state as
prompt context, bounded by a timeout and checked by post-generation
guardrails. Fallback path: a fixed decision table keyed by the
highest-priority action in the recommendation. Crisis recommendations
bypass the model by default and get the deterministic crisis reply.

The generator never returns an empty string and never raises to its
caller (cancellation excepted).
"""
import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Callable, Dict, List, Optional

from mindmesh.shared.models import ActionType, Context, EmotionalSignal, Recommendation
from mindmesh.shared.utils import hash_pii
from ..llm_service.base_llm import BaseLLM
from ..recommendation_engine.suggestions import SuggestionCatalog
from .config import (
    CRISIS_REPLY,
    CRISIS_REPLY_UNESCALATED,
    DEFAULT_REPLY,
    HABIT_REPLY_TEMPLATE,
    HARMFUL_PATTERNS,
    JOURNAL_REPLY_TEMPLATE,
    MEDICAL_ADVICE_PATTERNS,
    RESPONSE_SYSTEM_PROMPT,
    THERAPY_REPLY,
    ResponseConfig,
)

if TYPE_CHECKING:
    from mindmesh.services.pipeline.state import PipelineState

logger = logging.getLogger(__name__)


class ReplySource(Enum):
    """Where a reply came from."""
    CRISIS_PROTOCOL = "crisis_protocol"  # Deterministic crisis reply, model bypassed
    LLM_GENERATED = "llm_generated"
    SAFETY_GUARDRAIL = "safety_guardrail"  # Model output rejected
    FALLBACK = "fallback"


@dataclass(frozen=True)
class GeneratedReply:
    text: str
    source: ReplySource


def _crisis_reply(catalog: SuggestionCatalog, state: "PipelineState") -> str:
    escalation = getattr(state, "escalation", None)
    if escalation is not None and escalation.flag is not None:
        return CRISIS_REPLY
    return CRISIS_REPLY_UNESCALATED


def _therapy_reply(catalog: SuggestionCatalog, state: "PipelineState") -> str:
    return THERAPY_REPLY


def _journal_reply(catalog: SuggestionCatalog, state: "PipelineState") -> str:
    return JOURNAL_REPLY_TEMPLATE.format(prompt=catalog.journal_prompt())


def _habit_reply(catalog: SuggestionCatalog, state: "PipelineState") -> str:
    habit = catalog.habit_suggestion()
    return HABIT_REPLY_TEMPLATE.format(name=habit.name, description=habit.description)


# Highest priority first; iteration order is the decision order
FALLBACK_REPLIES: Dict[ActionType, Callable[[SuggestionCatalog, "PipelineState"], str]] = {
    ActionType.ALERT_THERAPIST: _crisis_reply,
    ActionType.SUGGEST_THERAPY: _therapy_reply,
    ActionType.SUGGEST_JOURNAL: _journal_reply,
    ActionType.SUGGEST_HABIT: _habit_reply,
}

_unhandled_actions = set(ActionType) - set(FALLBACK_REPLIES)
if _unhandled_actions:
    raise RuntimeError(
        f"No fallback reply for actions: {sorted(a.value for a in _unhandled_actions)}"
    )


def validate_reply(text: Optional[str]) -> bool:
    """Post-generation guardrail for model output.

    Args:
        text: Model-generated reply

    Returns:
        True if the reply may be shown to the user
    """
    if not text or not text.strip():
        logger.warning("LLM_RESPONSE_EMPTY")
        return False

    lowered = text.lower()
    for pattern in HARMFUL_PATTERNS:
        if pattern in lowered:
            logger.critical(
                "HARMFUL_CONTENT_IN_LLM_RESPONSE",
                extra={"pattern": pattern}
            )
            return False

    for pattern in MEDICAL_ADVICE_PATTERNS:
        if pattern in lowered:
            logger.warning(
                "MEDICAL_ADVICE_IN_LLM_RESPONSE",
                extra={"pattern": pattern}
            )
            return False

    return True


class ResponseGenerator:
    """Generates replies from pipeline state."""

    def __init__(
        self,
        llm: Optional[BaseLLM] = None,
        catalog: Optional[SuggestionCatalog] = None,
        config: Optional[ResponseConfig] = None,
    ):
        """Initialize generator.

        Args:
            llm: Generative model; None always uses the fallback table
            catalog: Journal prompt and habit suggestion source
            config: Timeout, token and guardrail settings
        """
        self.llm = llm
        self.catalog = catalog or SuggestionCatalog()
        self.config = config or ResponseConfig()

    async def generate(self, state: "PipelineState") -> str:
        """Reply text for the state. Never empty."""
        return (await self.compose(state)).text

    async def compose(self, state: "PipelineState") -> GeneratedReply:
        """Reply text plus where it came from."""
        recommendation = state.recommendation
        user_id_hash = hash_pii(state.user_id)

        if recommendation is not None and recommendation.requires_alert and self.config.bypass_llm_on_crisis:
            logger.critical(
                "CRISIS_RESPONSE_LLM_BYPASSED",
                extra={
                    "user_id_hash": user_id_hash,
                    "alert_type": recommendation.alert_type.value,
                }
            )
            return GeneratedReply(self.fallback_reply(state), ReplySource.CRISIS_PROTOCOL)

        if self.llm is None:
            return GeneratedReply(self.fallback_reply(state), ReplySource.FALLBACK)

        prompt = self.build_prompt(state)
        try:
            response = await asyncio.wait_for(
                self.llm.generate(
                    prompt,
                    system_prompt=RESPONSE_SYSTEM_PROMPT,
                    max_tokens=self.config.max_tokens,
                    temperature=self.config.temperature,
                ),
                timeout=self.config.timeout_seconds,
            )
        except asyncio.CancelledError:
            raise
        except asyncio.TimeoutError:
            logger.warning(
                "RESPONSE_GENERATION_TIMEOUT",
                extra={
                    "user_id_hash": user_id_hash,
                    "timeout_seconds": self.config.timeout_seconds,
                    "action": "using_fallback",
                }
            )
            return GeneratedReply(self.fallback_reply(state), ReplySource.FALLBACK)
        except Exception as e:
            logger.error(
                "LLM_GENERATION_FAILED",
                extra={
                    "user_id_hash": user_id_hash,
                    "error": str(e),
                    "error_type": type(e).__name__,
                    "action": "using_fallback",
                }
            )
            return GeneratedReply(self.fallback_reply(state), ReplySource.FALLBACK)

        text = (response.text or "").strip()
        if not validate_reply(text):
            logger.warning(
                "LLM_RESPONSE_FAILED_SAFETY_CHECK",
                extra={"user_id_hash": user_id_hash}
            )
            return GeneratedReply(self.fallback_reply(state), ReplySource.SAFETY_GUARDRAIL)

        logger.info(
            "LLM_RESPONSE_GENERATED",
            extra={
                "user_id_hash": user_id_hash,
                "latency_ms": response.latency_ms,
                "tokens_used": response.tokens_used,
            }
        )
        return GeneratedReply(text[: self.config.max_reply_chars], ReplySource.LLM_GENERATED)

    def fallback_reply(self, state: "PipelineState") -> str:
        """Templated reply for the highest-priority action present."""
        recommendation = state.recommendation
        if recommendation is not None:
            for action, reply in FALLBACK_REPLIES.items():
                if recommendation.has(action):
                    return reply(self.catalog, state)
        return DEFAULT_REPLY

    def build_prompt(self, state: "PipelineState") -> str:
        """User prompt carrying text, signal, context and suggested actions."""
        lines = [f'User: "{state.input_text}"']

        signal_line = self._signal_summary(state.emotional_signal)
        if signal_line:
            lines.append(signal_line)

        lines.extend(self._context_summary(state.context))

        actions_line = self._actions_summary(state.recommendation)
        if actions_line:
            lines.append(actions_line)

        lines.append("")
        lines.append("Respond with empathy and support (2-4 sentences).")
        return "\n".join(lines)

    @staticmethod
    def _signal_summary(signal: Optional[EmotionalSignal]) -> str:
        if signal is None:
            return ""
        notable = sorted(
            ((name, score) for name, score in signal.scores.items() if score > 0),
            key=lambda item: item[1],
            reverse=True,
        )[:3]
        parts = [f"{name} {score:.1f}" for name, score in notable]
        parts.append(f"sentiment {signal.sentiment:+.1f}")
        return f"Emotional state: {', '.join(parts)}"

    def _context_summary(self, context: Optional[Context]) -> List[str]:
        if context is None or context.is_empty:
            return []
        lines = []
        counts = context.recent_records.counts()
        if any(counts.values()):
            lines.append(
                f"User has {counts['journal_entries']} journals, "
                f"{counts['habits']} habits, {counts['recent_emotions']} recent emotions."
            )
        memories = sorted(context.semantic_matches, key=lambda m: m.score, reverse=True)
        memories = [m for m in memories if m.content][: self.config.max_memories_in_prompt]
        if memories:
            lines.append("Related things the user said before:")
            lines.extend(f'- "{m.content[:200]}"' for m in memories)
        return lines

    @staticmethod
    def _actions_summary(recommendation: Optional[Recommendation]) -> str:
        if recommendation is None or not recommendation.actions:
            return ""
        return f"Suggested: {', '.join(a.value for a in recommendation.actions)}"
