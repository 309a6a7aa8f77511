"""Safety Service configuration: alert severities and therapist messages."""
import os
from dataclasses import dataclass
from typing import Dict

from mindmesh.shared.models import AlertType, FlagSeverity


SEVERITY_BY_ALERT_TYPE: Dict[AlertType, FlagSeverity] = {
    AlertType.CRISIS: FlagSeverity.CRITICAL,
    AlertType.SUICIDAL_IDEATION: FlagSeverity.CRITICAL,
    AlertType.SEVERE_DEPRESSION: FlagSeverity.CRITICAL,
    AlertType.URGENT_HELP_NEEDED: FlagSeverity.HIGH,
    AlertType.SESSION_RECOMMENDED: FlagSeverity.MEDIUM,
    AlertType.FOLLOW_UP_NEEDED: FlagSeverity.LOW,
}

ALERT_MESSAGES: Dict[AlertType, str] = {
    AlertType.CRISIS: "CRISIS ALERT: user requires immediate assistance",
    AlertType.SUICIDAL_IDEATION: "CRITICAL: user expressing suicidal thoughts",
    AlertType.SEVERE_DEPRESSION: "SEVERE: user showing severe depression symptoms",
    AlertType.URGENT_HELP_NEEDED: "User needs urgent therapeutic support",
    AlertType.SESSION_RECOMMENDED: "Recommendation: user would benefit from a therapy session",
    AlertType.FOLLOW_UP_NEEDED: "Follow-up: user may need a check-in session",
}


def severity_for(alert_type: AlertType) -> FlagSeverity:
    return SEVERITY_BY_ALERT_TYPE.get(alert_type, FlagSeverity.MEDIUM)


@dataclass(frozen=True)
class NotificationConfig:
    """Therapist alert stream settings."""
    stream_name: str = "mindmesh-therapist-alerts"
    enabled: bool = True
    region: str = "us-east-1"

    @classmethod
    def from_env(cls) -> "NotificationConfig":
        """Create config from environment variables.

        Environment variables:
            THERAPIST_ALERT_STREAM: Kinesis stream name
            THERAPIST_ALERTS_ENABLED: "false" disables publishing (local dev)
            AWS_REGION: AWS region (default us-east-1)
        """
        return cls(
            stream_name=os.getenv("THERAPIST_ALERT_STREAM", cls.stream_name),
            enabled=os.getenv("THERAPIST_ALERTS_ENABLED", "true").lower() == "true",
            region=os.getenv("AWS_REGION", cls.region),
        )
