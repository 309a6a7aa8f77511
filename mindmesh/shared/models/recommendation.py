"""Recommendation domain models.

Action kinds, priority levels and alert types are closed enums so the
response fallback table can be checked for exhaustiveness.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Tuple


class ActionType(Enum):
    """Interventions the engine can recommend."""
    SUGGEST_JOURNAL = "SUGGEST_JOURNAL"
    SUGGEST_HABIT = "SUGGEST_HABIT"
    SUGGEST_THERAPY = "SUGGEST_THERAPY"
    ALERT_THERAPIST = "ALERT_THERAPIST"  # CRITICAL - triggers safety escalation


class Priority(Enum):
    """Recommendation priority, ordered low < medium < high < critical."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]

    def __lt__(self, other: "Priority") -> bool:
        if not isinstance(other, Priority):
            return NotImplemented
        return self.rank < other.rank


_PRIORITY_RANK = {
    Priority.LOW: 0,
    Priority.MEDIUM: 1,
    Priority.HIGH: 2,
    Priority.CRITICAL: 3,
}


class AlertType(Enum):
    """Therapist alert categories. Doubles as the safety flag type."""
    CRISIS = "CRISIS"
    SUICIDAL_IDEATION = "SUICIDAL_IDEATION"
    SEVERE_DEPRESSION = "SEVERE_DEPRESSION"
    URGENT_HELP_NEEDED = "URGENT_HELP_NEEDED"
    SESSION_RECOMMENDED = "SESSION_RECOMMENDED"
    FOLLOW_UP_NEEDED = "FOLLOW_UP_NEEDED"


@dataclass(frozen=True)
class Recommendation:
    """Prioritized action set with reasoning.

    Immutable - read-only once the engine has produced it.
    """
    actions: Tuple[ActionType, ...] = ()
    priority: Priority = Priority.LOW
    reasoning: str = ""
    alert_type: Optional[AlertType] = None
    keywords: Tuple[str, ...] = ()

    def __post_init__(self):
        if len(set(self.actions)) != len(self.actions):
            raise ValueError(f"Duplicate actions: {[a.value for a in self.actions]}")
        if ActionType.ALERT_THERAPIST in self.actions and self.alert_type is None:
            raise ValueError("ALERT_THERAPIST requires an alert_type")

    def has(self, action: ActionType) -> bool:
        return action in self.actions

    @property
    def requires_alert(self) -> bool:
        return ActionType.ALERT_THERAPIST in self.actions

    def to_dict(self) -> Dict[str, Any]:
        return {
            "actions": [a.value for a in self.actions],
            "priority": self.priority.value,
            "reasoning": self.reasoning,
            "alert_type": self.alert_type.value if self.alert_type else None,
            "keywords": list(self.keywords),
        }
