"""Safety escalator - turns an ALERT_THERAPIST recommendation into a flag.

Check-then-create is serialized per (user_id, flag_type) in-process, and
the flag store enforces the same uniqueness at the storage layer, so
concurrent crisis messages from one user produce exactly one active flag.

Notification is best-effort and happens after the flag is persisted: a
failed notification never rolls back the flag. ``record`` and ``deliver``
are separate steps so a caller can persist synchronously and notify in
the background.
"""
import asyncio
import logging
import uuid
import weakref
from typing import Any, Dict, Optional, Tuple

from mindmesh.shared.database import DuplicateError
from mindmesh.shared.models import (
    AlertOutcome,
    AlertType,
    EmotionalSignal,
    EscalationResult,
    Recommendation,
    SafetyFlag,
)
from mindmesh.shared.utils import hash_pii, hash_text_for_audit
from .config import severity_for
from .flag_store import FlagStore
from .notifier import NotificationChannel

logger = logging.getLogger(__name__)

MAX_DETAILS_LENGTH = 1000


class SafetyEscalator:
    """Creates deduplicated safety flags and notifies therapists."""

    def __init__(
        self,
        flag_store: FlagStore,
        channel: Optional[NotificationChannel] = None,
    ):
        """Initialize escalator.

        Args:
            flag_store: Persistence for safety flags
            channel: Therapist notification channel; None skips notification
        """
        self.flag_store = flag_store
        self.channel = channel
        self._locks: "weakref.WeakValueDictionary[Tuple[str, AlertType], asyncio.Lock]" = (
            weakref.WeakValueDictionary()
        )

    def _lock_for(self, user_id: str, flag_type: AlertType) -> asyncio.Lock:
        key = (user_id, flag_type)
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    async def escalate(
        self,
        user_id: str,
        recommendation: Recommendation,
        message: Optional[str] = None,
        signal: Optional[EmotionalSignal] = None,
        message_id: Optional[str] = None,
    ) -> EscalationResult:
        """Record a flag if the recommendation requires it, then notify.

        Equivalent to ``record()`` followed by ``deliver()`` for a newly
        issued flag. Callers that must not wait on the notification
        channel call the two steps separately.

        Returns:
            EscalationResult; ``newly_issued`` is True only when this call
            created the flag
        """
        result = await self.record(user_id, recommendation, signal=signal, message_id=message_id)
        if not result.newly_issued:
            return result
        return await self.deliver(user_id, result.flag, recommendation, message=message)

    async def record(
        self,
        user_id: str,
        recommendation: Recommendation,
        signal: Optional[EmotionalSignal] = None,
        message_id: Optional[str] = None,
    ) -> EscalationResult:
        """Persist a flag for an alert recommendation unless one is active.

        Args:
            user_id: User the recommendation is for
            recommendation: Engine output for the message
            signal: Emotional signal, recorded in flag details
            message_id: Source message identifier

        Returns:
            EscalationResult with ``notified`` False; ISSUED only when this
            call created the flag
        """
        if not recommendation.requires_alert:
            return EscalationResult(outcome=AlertOutcome.NOT_NEEDED)

        flag_type = recommendation.alert_type
        user_id_hash = hash_pii(user_id)

        async with self._lock_for(user_id, flag_type):
            existing = await self.flag_store.find_active(user_id, flag_type)
            if existing is not None:
                return self._already_active(existing, user_id_hash)

            flag = SafetyFlag(
                flag_id=f"flag_{uuid.uuid4().hex[:16]}",
                user_id=user_id,
                flag_type=flag_type,
                severity=severity_for(flag_type),
                details=self._details(recommendation, signal),
                source_message_id=message_id,
            )
            try:
                flag = await self.flag_store.create(flag)
            except DuplicateError:
                # Another process won the race at the storage layer
                existing = await self.flag_store.find_active(user_id, flag_type)
                return self._already_active(existing, user_id_hash)

        logger.critical(
            "SAFETY_FLAG_CREATED",
            extra={
                "flag_id": flag.flag_id,
                "user_id_hash": user_id_hash,
                "flag_type": flag_type.value,
                "severity": flag.severity.value,
                "message_id": message_id,
            }
        )

        return EscalationResult(outcome=AlertOutcome.ISSUED, flag=flag)

    async def deliver(
        self,
        user_id: str,
        flag: SafetyFlag,
        recommendation: Recommendation,
        message: Optional[str] = None,
    ) -> EscalationResult:
        """Notify therapists about a recorded flag. Never raises.

        Args:
            user_id: Flag owner
            flag: Flag returned by ``record()``
            recommendation: Recommendation the flag was created from
            message: Message text (only its hash is sent)

        Returns:
            ISSUED result carrying the (possibly updated) flag and whether
            the channel accepted the notification
        """
        user_id_hash = hash_pii(user_id)
        notified = await self._notify(user_id, user_id_hash, flag, recommendation, message)
        if notified:
            try:
                flag = await self.flag_store.mark_notified(flag.flag_id)
            except Exception as e:
                logger.error(
                    "SAFETY_FLAG_MARK_NOTIFIED_FAILED",
                    extra={"flag_id": flag.flag_id, "error": str(e)}
                )

        return EscalationResult(outcome=AlertOutcome.ISSUED, flag=flag, notified=notified)

    def _already_active(self, existing: Optional[SafetyFlag], user_id_hash: str) -> EscalationResult:
        logger.warning(
            "SAFETY_FLAG_ALREADY_ACTIVE",
            extra={
                "user_id_hash": user_id_hash,
                "flag_id": existing.flag_id if existing else None,
                "flag_type": existing.flag_type.value if existing else None,
                "action": "skipped_duplicate",
            }
        )
        return EscalationResult(outcome=AlertOutcome.ALREADY_ACTIVE, flag=existing)

    async def _notify(
        self,
        user_id: str,
        user_id_hash: str,
        flag: SafetyFlag,
        recommendation: Recommendation,
        message: Optional[str],
    ) -> bool:
        if self.channel is None:
            logger.warning(
                "THERAPIST_NOTIFICATION_SKIPPED",
                extra={"flag_id": flag.flag_id, "reason": "no_channel_configured"}
            )
            return False

        payload: Dict[str, Any] = {
            "flag_id": flag.flag_id,
            "priority": recommendation.priority.value,
            "reasoning": recommendation.reasoning,
            "keywords": list(recommendation.keywords),
            "source_message_id": flag.source_message_id,
        }
        if message is not None:
            payload["text_hash"] = hash_text_for_audit(message)

        try:
            return bool(await self.channel.notify(user_id, flag.flag_type, payload))
        except Exception as e:
            logger.critical(
                "THERAPIST_NOTIFICATION_FAILED",
                extra={
                    "flag_id": flag.flag_id,
                    "user_id_hash": user_id_hash,
                    "error": str(e),
                    "error_type": type(e).__name__,
                    "action": "MANUAL_REVIEW_REQUIRED",
                }
            )
            return False

    @staticmethod
    def _details(recommendation: Recommendation, signal: Optional[EmotionalSignal]) -> str:
        parts = [recommendation.reasoning]
        if recommendation.keywords:
            parts.append(f"keywords: {', '.join(recommendation.keywords)}")
        if signal is not None:
            parts.append(
                f"sadness={signal.sadness:.2f} hopelessness={signal.hopelessness:.2f} "
                f"sentiment={signal.sentiment:.2f}"
            )
        return " | ".join(p for p in parts if p)[:MAX_DETAILS_LENGTH]
