"""Tests for SafetyEscalator.

Covers the critical guarantees:
- At most one active flag per (user, flag type), also under concurrency
- Notification failure never removes the flag
- Non-alert recommendations are a no-op
"""
import asyncio

import pytest
from unittest.mock import AsyncMock

from mindmesh.services.safety_service import (
    InMemoryFlagStore,
    NotificationChannel,
    SafetyEscalator,
)
from mindmesh.shared.database import DuplicateError
from mindmesh.shared.models import (
    ActionType,
    AlertOutcome,
    AlertType,
    EmotionalSignal,
    FlagSeverity,
    Priority,
    Recommendation,
)
from mindmesh.shared.utils import configure_pii_salt


@pytest.fixture(autouse=True)
def setup_pii_salt():
    """Configure PII salt for all tests."""
    configure_pii_salt("test_salt_that_is_at_least_32_characters_long")


def crisis_recommendation(alert_type=AlertType.CRISIS):
    return Recommendation(
        actions=(ActionType.ALERT_THERAPIST, ActionType.SUGGEST_THERAPY),
        priority=Priority.CRITICAL,
        reasoning="Crisis indicators detected: want to die",
        alert_type=alert_type,
        keywords=("want to die",),
    )


class RecordingChannel(NotificationChannel):
    """Channel that records calls and can be told to fail."""

    def __init__(self, result=True, error=None, delay=0.0):
        self.result = result
        self.error = error
        self.delay = delay
        self.calls = []

    async def notify(self, user_id, alert_type, payload):
        self.calls.append((user_id, alert_type, dict(payload)))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.result


class SlowCheckStore(InMemoryFlagStore):
    """Yields to the loop between find_active and create."""

    async def find_active(self, user_id, flag_type):
        await asyncio.sleep(0)
        return await super().find_active(user_id, flag_type)


@pytest.mark.asyncio
class TestEscalate:
    """Tests for flag creation and notification."""

    async def test_not_needed_without_alert_action(self):
        """A recommendation without ALERT_THERAPIST creates nothing."""
        store = InMemoryFlagStore()
        channel = RecordingChannel()
        escalator = SafetyEscalator(store, channel)

        result = await escalator.escalate(
            "user_1",
            Recommendation(actions=(ActionType.SUGGEST_JOURNAL,), priority=Priority.MEDIUM),
        )

        assert result.outcome == AlertOutcome.NOT_NEEDED
        assert result.flag is None
        assert store.all_flags == []
        assert channel.calls == []

    async def test_crisis_creates_flag_and_notifies(self):
        """A crisis recommendation creates one critical flag and notifies."""
        store = InMemoryFlagStore()
        channel = RecordingChannel()
        escalator = SafetyEscalator(store, channel)

        result = await escalator.escalate(
            "user_1",
            crisis_recommendation(),
            message="I want to die",
            signal=EmotionalSignal.from_scores(sentiment=-0.9, sadness=0.9),
            message_id="msg_1",
        )

        assert result.newly_issued
        assert result.notified is True
        assert result.flag.notified is True
        assert result.flag.severity == FlagSeverity.CRITICAL
        assert result.flag.source_message_id == "msg_1"
        assert "want to die" in result.flag.details
        assert len(store.all_flags) == 1

        user_id, alert_type, payload = channel.calls[0]
        assert user_id == "user_1"
        assert alert_type == AlertType.CRISIS
        assert payload["flag_id"] == result.flag.flag_id
        assert payload["priority"] == "critical"
        assert "I want to die" not in str(payload)
        assert len(payload["text_hash"]) == 64

    async def test_second_escalation_is_idempotent(self):
        """A second crisis for the same user reports the existing flag."""
        store = InMemoryFlagStore()
        channel = RecordingChannel()
        escalator = SafetyEscalator(store, channel)

        first = await escalator.escalate("user_1", crisis_recommendation())
        second = await escalator.escalate("user_1", crisis_recommendation())

        assert first.outcome == AlertOutcome.ISSUED
        assert second.outcome == AlertOutcome.ALREADY_ACTIVE
        assert second.flag.flag_id == first.flag.flag_id
        assert len(store.all_flags) == 1
        assert len(channel.calls) == 1

    async def test_different_flag_types_are_independent(self):
        store = InMemoryFlagStore()
        escalator = SafetyEscalator(store, RecordingChannel())

        await escalator.escalate("user_1", crisis_recommendation(AlertType.CRISIS))
        result = await escalator.escalate(
            "user_1", crisis_recommendation(AlertType.SUICIDAL_IDEATION)
        )

        assert result.newly_issued
        assert len(await store.list_active("user_1")) == 2

    async def test_resolved_flag_allows_new_one(self):
        """Once resolved, a new crisis creates a fresh flag."""
        store = InMemoryFlagStore()
        escalator = SafetyEscalator(store, RecordingChannel())

        first = await escalator.escalate("user_1", crisis_recommendation())
        await store.resolve(first.flag.flag_id, resolved_by="therapist_1")
        second = await escalator.escalate("user_1", crisis_recommendation())

        assert second.newly_issued
        assert second.flag.flag_id != first.flag.flag_id

    async def test_concurrent_escalations_create_one_flag(self):
        """Simultaneous crisis messages from one user produce one flag."""
        store = SlowCheckStore()
        channel = RecordingChannel(delay=0.01)
        escalator = SafetyEscalator(store, channel)

        results = await asyncio.gather(
            *(escalator.escalate("user_1", crisis_recommendation()) for _ in range(5))
        )

        outcomes = [r.outcome for r in results]
        assert outcomes.count(AlertOutcome.ISSUED) == 1
        assert outcomes.count(AlertOutcome.ALREADY_ACTIVE) == 4
        assert len(store.all_flags) == 1
        assert len(channel.calls) == 1

    async def test_storage_duplicate_reported_as_already_active(self):
        """A DuplicateError from the store is not an error for the caller."""
        store = InMemoryFlagStore()
        existing = (await SafetyEscalator(store).escalate("user_1", crisis_recommendation())).flag
        racing_store = AsyncMock(spec=InMemoryFlagStore)
        racing_store.find_active.side_effect = [None, existing]
        racing_store.create.side_effect = DuplicateError("exists")

        result = await SafetyEscalator(racing_store).escalate("user_1", crisis_recommendation())

        assert result.outcome == AlertOutcome.ALREADY_ACTIVE
        assert result.flag == existing

    async def test_notification_failure_keeps_flag(self):
        """A raising channel leaves the flag active and unnotified."""
        store = InMemoryFlagStore()
        channel = RecordingChannel(error=ConnectionError("stream down"))
        escalator = SafetyEscalator(store, channel)

        result = await escalator.escalate("user_1", crisis_recommendation())

        assert result.newly_issued
        assert result.notified is False
        flag = store.all_flags[0]
        assert flag.is_active
        assert flag.notified is False

    async def test_channel_returning_false_is_not_notified(self):
        store = InMemoryFlagStore()
        escalator = SafetyEscalator(store, RecordingChannel(result=False))

        result = await escalator.escalate("user_1", crisis_recommendation())

        assert result.notified is False
        assert store.all_flags[0].notified is False

    async def test_no_channel_still_creates_flag(self):
        store = InMemoryFlagStore()

        result = await SafetyEscalator(store).escalate("user_1", crisis_recommendation())

        assert result.newly_issued
        assert result.notified is False

    async def test_details_truncated(self):
        """Long reasoning is cut to the flag details limit."""
        store = InMemoryFlagStore()
        recommendation = Recommendation(
            actions=(ActionType.ALERT_THERAPIST,),
            priority=Priority.CRITICAL,
            reasoning="x" * 5000,
            alert_type=AlertType.CRISIS,
        )

        result = await SafetyEscalator(store).escalate("user_1", recommendation)

        assert len(result.flag.details) == 1000


@pytest.mark.asyncio
class TestRecordAndDeliver:
    """Tests for persisting and notifying as separate steps."""

    async def test_record_does_not_touch_channel(self):
        """Recording persists the flag without waiting on the channel."""
        store = InMemoryFlagStore()
        channel = RecordingChannel()
        escalator = SafetyEscalator(store, channel)

        result = await escalator.record("user_1", crisis_recommendation(), message_id="msg_1")

        assert result.newly_issued is True
        assert result.notified is False
        assert result.flag.source_message_id == "msg_1"
        assert len(store.all_flags) == 1
        assert channel.calls == []

    async def test_record_is_idempotent(self):
        escalator = SafetyEscalator(InMemoryFlagStore(), RecordingChannel())

        first = await escalator.record("user_1", crisis_recommendation())
        second = await escalator.record("user_1", crisis_recommendation())

        assert first.outcome == AlertOutcome.ISSUED
        assert second.outcome == AlertOutcome.ALREADY_ACTIVE
        assert second.flag.flag_id == first.flag.flag_id

    async def test_deliver_marks_flag_notified(self):
        store = InMemoryFlagStore()
        channel = RecordingChannel()
        escalator = SafetyEscalator(store, channel)
        recorded = await escalator.record("user_1", crisis_recommendation())

        delivered = await escalator.deliver(
            "user_1", recorded.flag, crisis_recommendation(), message="I want to die"
        )

        assert delivered.notified is True
        assert delivered.flag.notified is True
        assert store.all_flags[0].notified is True
        assert len(channel.calls[0][2]["text_hash"]) == 64

    async def test_deliver_failure_returns_not_notified(self):
        store = InMemoryFlagStore()
        escalator = SafetyEscalator(store, RecordingChannel(error=TimeoutError("kinesis")))
        recorded = await escalator.record("user_1", crisis_recommendation())

        delivered = await escalator.deliver("user_1", recorded.flag, crisis_recommendation())

        assert delivered.notified is False
        assert store.all_flags[0].is_active
        assert store.all_flags[0].notified is False
