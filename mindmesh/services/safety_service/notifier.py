"""Therapist notification channel.

Publishes therapist alerts to a Kinesis stream for decoupled delivery.
Notification is a side channel: the persisted SafetyFlag is the source of
truth, so a failed publish is logged at CRITICAL and never raised.
"""
import asyncio
import json
import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Mapping, Optional

from mindmesh.shared.models import AlertType
from mindmesh.shared.utils import hash_pii
from .config import ALERT_MESSAGES, NotificationConfig, severity_for

logger = logging.getLogger(__name__)


class NotificationChannel(ABC):
    """Best-effort delivery of therapist alerts."""

    @abstractmethod
    async def notify(
        self,
        user_id: str,
        alert_type: AlertType,
        payload: Mapping[str, Any],
    ) -> bool:
        """Send one alert. Returns True when delivered, False otherwise."""
        pass


@dataclass(frozen=True)
class TherapistAlertEvent:
    """Immutable therapist alert published to the stream."""
    event_id: str
    user_id_hash: str
    alert_type: AlertType
    event_type: str = "safety.therapist_alert"
    flag_id: Optional[str] = None
    payload: Mapping[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.utcnow)

    @property
    def severity(self) -> str:
        return severity_for(self.alert_type).value.upper()

    @property
    def message(self) -> str:
        return ALERT_MESSAGES.get(self.alert_type, "Therapist notification")

    def to_kinesis_payload(self) -> Dict[str, Any]:
        """Convert to the Kinesis record Data payload."""
        return {
            "event_id": self.event_id,
            "event_type": self.event_type,
            "timestamp": self.timestamp.isoformat() + "Z",
            "source": "safety-service",
            "data": {
                "user_id_hash": self.user_id_hash,
                "flag_id": self.flag_id,
                "alert_type": self.alert_type.value,
                "severity": self.severity,
                "message": self.message,
                "requires_human_intervention": self.severity in ("CRITICAL", "HIGH"),
                "details": dict(self.payload),
            }
        }


class KinesisNotificationChannel(NotificationChannel):
    """Publishes TherapistAlertEvents to Kinesis.

    Failure Handling:
        - Publishing failure does NOT fail the pipeline or roll back the flag
        - Failures are logged at CRITICAL level with the full payload for
          manual processing
    """

    def __init__(self, config: Optional[NotificationConfig] = None):
        self.config = config or NotificationConfig()
        self._kinesis_client = None

        logger.info(
            "THERAPIST_NOTIFIER_INITIALIZED",
            extra={
                "stream_name": self.config.stream_name,
                "enabled": self.config.enabled,
                "region": self.config.region,
            }
        )

    @property
    def kinesis_client(self):
        """Lazy initialization of Kinesis client."""
        if self._kinesis_client is None and self.config.enabled:
            try:
                import boto3
                self._kinesis_client = boto3.client(
                    "kinesis",
                    region_name=self.config.region,
                )
            except Exception as e:
                logger.error(
                    "KINESIS_CLIENT_INIT_FAILED",
                    extra={"error": str(e)}
                )
        return self._kinesis_client

    async def notify(
        self,
        user_id: str,
        alert_type: AlertType,
        payload: Mapping[str, Any],
    ) -> bool:
        user_id_hash = hash_pii(user_id)

        if not self.config.enabled:
            logger.info(
                "THERAPIST_ALERT_PUBLISH_SKIPPED",
                extra={
                    "user_id_hash": user_id_hash,
                    "alert_type": alert_type.value,
                    "reason": "publishing_disabled",
                }
            )
            return False

        event = TherapistAlertEvent(
            event_id=f"evt_{uuid.uuid4().hex[:12]}",
            user_id_hash=user_id_hash,
            alert_type=alert_type,
            flag_id=payload.get("flag_id"),
            payload=payload,
        )
        record = event.to_kinesis_payload()

        try:
            client = self.kinesis_client
            if client is None:
                logger.critical(
                    "THERAPIST_ALERT_FALLBACK_LOG",
                    extra={
                        "event_id": event.event_id,
                        "payload": json.dumps(record, default=str),
                        "reason": "kinesis_client_unavailable",
                        "action": "MANUAL_PROCESSING_REQUIRED",
                    }
                )
                return False

            # Same user -> same shard keeps a user's alerts ordered
            response = await asyncio.to_thread(
                client.put_record,
                StreamName=self.config.stream_name,
                Data=json.dumps(record, default=str),
                PartitionKey=user_id_hash,
            )

            logger.critical(
                "THERAPIST_ALERT_PUBLISHED",
                extra={
                    "event_id": event.event_id,
                    "user_id_hash": user_id_hash,
                    "alert_type": alert_type.value,
                    "severity": event.severity,
                    "shard_id": response.get("ShardId"),
                    "sequence_number": response.get("SequenceNumber"),
                }
            )
            return True

        except Exception as e:
            logger.critical(
                "THERAPIST_ALERT_PUBLISH_FAILED",
                extra={
                    "event_id": event.event_id,
                    "user_id_hash": user_id_hash,
                    "error": str(e),
                    "error_type": type(e).__name__,
                    "action": "MANUAL_REVIEW_REQUIRED",
                    "payload": json.dumps(record, default=str),
                }
            )
            return False
