"""Pipeline state - the per-invocation accumulator.

One PipelineState is created per message and discarded after the result
(or the last stream event) is delivered. Stage outputs are
single-assignment: each is written once by the stage that owns it and is
read-only afterwards. Stages advance strictly forward, one at a time.
"""
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

from mindmesh.shared.models import (
    Context,
    EmotionalSignal,
    EscalationResult,
    Recommendation,
)
from mindmesh.shared.utils import hash_pii


class StateTransitionError(Exception):
    """Illegal stage transition or second write to a single-assignment field."""
    pass


class Stage(Enum):
    """Pipeline state machine, in transition order."""
    CREATED = "created"
    EMOTION_ANALYZED = "emotion_analyzed"
    CONTEXT_RETRIEVED = "context_retrieved"
    RECOMMENDED = "recommended"
    ESCALATED = "escalated"
    RESPONDED = "responded"
    TERMINAL = "terminal"

    @property
    def index(self) -> int:
        return _STAGE_ORDER.index(self)

    @property
    def next(self) -> Optional["Stage"]:
        position = self.index + 1
        return _STAGE_ORDER[position] if position < len(_STAGE_ORDER) else None


_STAGE_ORDER: Tuple[Stage, ...] = tuple(Stage)


class _SetOnce:
    """Descriptor for a field that may be assigned exactly once."""

    def __set_name__(self, owner, name):
        self.name = name
        self.private = f"_{name}"

    def __get__(self, instance, owner):
        if instance is None:
            return self
        return getattr(instance, self.private, None)

    def __set__(self, instance, value):
        if value is None:
            raise StateTransitionError(f"{self.name} cannot be set to None")
        if getattr(instance, self.private, None) is not None:
            raise StateTransitionError(f"{self.name} is already set")
        setattr(instance, self.private, value)


class PipelineState:
    """Mutable accumulator owned by exactly one pipeline invocation."""

    emotional_signal: Optional[EmotionalSignal] = _SetOnce()
    context: Optional[Context] = _SetOnce()
    recommendation: Optional[Recommendation] = _SetOnce()
    escalation: Optional[EscalationResult] = _SetOnce()
    reply_text: Optional[str] = _SetOnce()

    def __init__(self, user_id: str, input_text: str, message_id: Optional[str] = None):
        if not user_id:
            raise ValueError("user_id is required")
        if not isinstance(input_text, str):
            raise ValueError("input_text must be a string")
        self._user_id = user_id
        self._input_text = input_text
        self._message_id = message_id or f"msg_{uuid.uuid4().hex[:16]}"
        self._user_id_hash = hash_pii(user_id)
        self._stage = Stage.CREATED
        self._alert_issued = False
        self._degraded: List[Stage] = []
        self.created_at = datetime.utcnow()

    @property
    def user_id(self) -> str:
        return self._user_id

    @property
    def input_text(self) -> str:
        return self._input_text

    @property
    def message_id(self) -> str:
        return self._message_id

    @property
    def user_id_hash(self) -> str:
        return self._user_id_hash

    @property
    def stage(self) -> Stage:
        return self._stage

    @property
    def alert_issued(self) -> bool:
        return self._alert_issued

    @property
    def degraded_stages(self) -> Tuple[Stage, ...]:
        return tuple(self._degraded)

    @property
    def is_terminal(self) -> bool:
        return self._stage == Stage.TERMINAL

    def advance(self, stage: Stage) -> None:
        """Move to the next stage. Only the immediate successor is allowed."""
        if stage != self._stage.next:
            raise StateTransitionError(
                f"Cannot move from {self._stage.value} to {stage.value}"
            )
        self._stage = stage

    def mark_alert_issued(self) -> None:
        if self._alert_issued:
            raise StateTransitionError("alert_issued is already set")
        self._alert_issued = True

    def mark_degraded(self, stage: Stage) -> None:
        if stage not in self._degraded:
            self._degraded.append(stage)

    def delta_for(self, stage: Stage) -> Dict[str, Any]:
        """Fields written by the given stage, serialized."""
        if stage == Stage.EMOTION_ANALYZED:
            return {"emotional_signal": _to_dict(self.emotional_signal)}
        if stage == Stage.CONTEXT_RETRIEVED:
            return {"context": _to_dict(self.context)}
        if stage == Stage.RECOMMENDED:
            return {"recommendation": _to_dict(self.recommendation)}
        if stage == Stage.ESCALATED:
            return {
                "alert_issued": self.alert_issued,
                "alert_outcome": self.escalation.outcome.value if self.escalation else None,
            }
        if stage == Stage.RESPONDED:
            return {"reply_text": self.reply_text}
        if stage == Stage.TERMINAL:
            return {"degraded_stages": [s.value for s in self._degraded]}
        return {}

    def to_dict(self) -> Dict[str, Any]:
        """Serializable view. Carries the hashed user id only."""
        return {
            "message_id": self.message_id,
            "user_id_hash": self.user_id_hash,
            "stage": self.stage.value,
            "emotional_signal": _to_dict(self.emotional_signal),
            "context": _to_dict(self.context),
            "recommendation": _to_dict(self.recommendation),
            "alert_issued": self.alert_issued,
            "reply_text": self.reply_text,
            "degraded_stages": [s.value for s in self._degraded],
        }

    def __repr__(self) -> str:
        return (
            f"PipelineState(message_id={self.message_id!r}, stage={self.stage.value}, "
            f"alert_issued={self.alert_issued})"
        )


def _to_dict(value) -> Optional[Dict[str, Any]]:
    return value.to_dict() if value is not None else None


@dataclass(frozen=True)
class StageEvent:
    """One streamed transition: the stage reached and what it added."""
    stage: Stage
    delta: Mapping[str, Any] = field(default_factory=dict)
    message_id: Optional[str] = None
    emitted_at: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stage": self.stage.value,
            "delta": dict(self.delta),
            "message_id": self.message_id,
            "emitted_at": self.emitted_at.isoformat(),
        }
