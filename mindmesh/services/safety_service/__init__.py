"""Safety Service - deduplicated crisis escalation and therapist alerts.

A SafetyFlag is created at most once per active (user, flag type) pair;
therapist notification is a best-effort side channel on top of it.
"""
from .config import (
    ALERT_MESSAGES,
    SEVERITY_BY_ALERT_TYPE,
    NotificationConfig,
    severity_for,
)
from .escalator import SafetyEscalator
from .flag_store import (
    SAFETY_FLAGS_DDL,
    FlagStore,
    InMemoryFlagStore,
    PostgresFlagStore,
    SafetyFlagRepository,
    dedupe_active,
)
from .notifier import (
    KinesisNotificationChannel,
    NotificationChannel,
    TherapistAlertEvent,
)

__all__ = [
    "ALERT_MESSAGES",
    "SEVERITY_BY_ALERT_TYPE",
    "NotificationConfig",
    "severity_for",
    "SafetyEscalator",
    "SAFETY_FLAGS_DDL",
    "FlagStore",
    "InMemoryFlagStore",
    "PostgresFlagStore",
    "SafetyFlagRepository",
    "dedupe_active",
    "KinesisNotificationChannel",
    "NotificationChannel",
    "TherapistAlertEvent",
]
