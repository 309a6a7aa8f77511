"""Safety flag domain models.

A SafetyFlag is the persisted record of an open safety concern. At most one
flag with status ACTIVE may exist per (user_id, flag_type); the flag stores
enforce this, and the escalator serializes its check-then-create per pair.
"""
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Optional

from .recommendation import AlertType


class FlagStatus(Enum):
    """Lifecycle of a safety flag."""
    ACTIVE = "active"
    INVESTIGATING = "investigating"
    RESOLVED = "resolved"
    ESCALATED = "escalated"


class FlagSeverity(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class AlertOutcome(Enum):
    """What the escalator did for one recommendation."""
    NOT_NEEDED = "not_needed"          # No ALERT_THERAPIST action
    ISSUED = "issued"                  # New flag created this call
    ALREADY_ACTIVE = "already_active"  # Existing active flag, nothing created


@dataclass(frozen=True)
class SafetyFlag:
    """Persisted safety concern for a user.

    Referenced, not owned, by the pipeline. Updates produce new instances.
    """
    flag_id: str
    user_id: str
    flag_type: AlertType
    status: FlagStatus = FlagStatus.ACTIVE
    severity: FlagSeverity = FlagSeverity.CRITICAL
    details: str = ""
    confidence: float = 1.0
    source_message_id: Optional[str] = None
    notified: bool = False
    notified_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=datetime.utcnow)
    resolved_at: Optional[datetime] = None
    resolved_by: Optional[str] = None
    notes: Optional[str] = None

    def __post_init__(self):
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"Confidence must be 0.0-1.0, got {self.confidence}")
        if len(self.details) > 1000:
            raise ValueError("Flag details must be at most 1000 characters")

    @property
    def is_active(self) -> bool:
        return self.status == FlagStatus.ACTIVE

    def mark_notified(self, at: Optional[datetime] = None) -> "SafetyFlag":
        return replace(self, notified=True, notified_at=at or datetime.utcnow())

    def mark_resolved(self, resolved_by: str, notes: Optional[str] = None) -> "SafetyFlag":
        return replace(
            self,
            status=FlagStatus.RESOLVED,
            resolved_at=datetime.utcnow(),
            resolved_by=resolved_by,
            notes=notes if notes is not None else self.notes,
        )


@dataclass(frozen=True)
class EscalationResult:
    """Outcome of one SafetyEscalator.escalate() call."""
    outcome: AlertOutcome
    flag: Optional[SafetyFlag] = None
    notified: bool = False

    @property
    def newly_issued(self) -> bool:
        return self.outcome == AlertOutcome.ISSUED
