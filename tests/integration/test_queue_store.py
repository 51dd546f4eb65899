# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Integration tests for the queue store against SQLite."""

from datetime import timedelta

import pytest
import pytest_asyncio

from notiflow.domains.queue.store import (
    InvalidTransitionError,
    QueueError,
    QueueItemNotFoundError,
    QueueStore,
    backoff_delay,
)
from notiflow.infrastructure.database.models import QueueStatus
from notiflow.models.notification import NotificationPayload
from notiflow.models.queue import EnqueueOptions

pytestmark = pytest.mark.integration

PAYLOAD = NotificationPayload(title="Reminder", message="Class starts at 9")


@pytest_asyncio.fixture
async def store(database, clock) -> QueueStore:
    return QueueStore(database, clock=clock, default_max_attempts=3)


async def claimed_item(store: QueueStore, **options) -> str:
    item_id = await store.enqueue("n-1", ["member-1"], PAYLOAD, EnqueueOptions(**options))
    assert await store.claim(item_id) is True
    return item_id


class TestBackoff:
    """Tests for the backoff schedule."""

    def test_doubles_per_attempt(self) -> None:
        delays = [backoff_delay(n) for n in range(1, 5)]

        assert delays == [timedelta(minutes=m) for m in (2, 4, 8, 16)]
        assert all(a < b for a, b in zip(delays, delays[1:]))

    def test_base_multiplier(self) -> None:
        assert backoff_delay(2, base_minutes=0.5) == timedelta(minutes=2)


class TestEnqueue:
    """Tests for submission."""

    @pytest.mark.asyncio
    async def test_enqueue_creates_pending_item(self, store, clock) -> None:
        item_id = await store.enqueue(
            "n-1", ["a", "b", "a", ""], PAYLOAD, EnqueueOptions(batch_id="batch-1")
        )

        item = await store.get(item_id)
        assert item.status == QueueStatus.PENDING.value
        assert item.recipient_ids == ["a", "b"]
        assert item.attempts == 0
        assert item.max_attempts == 3
        assert item.not_before == clock.now
        assert item.batch_id == "batch-1"
        assert item.payload["title"] == "Reminder"

    @pytest.mark.asyncio
    async def test_delay_and_schedule(self, store, clock) -> None:
        delayed = await store.enqueue("n-1", ["a"], PAYLOAD, EnqueueOptions(delay_minutes=15))
        at = clock.now + timedelta(days=1)
        scheduled = await store.enqueue("n-2", ["a"], PAYLOAD, scheduled_for=at)

        assert (await store.get(delayed)).not_before == clock.now + timedelta(minutes=15)
        item = await store.get(scheduled)
        assert item.not_before == at
        assert item.scheduled_for == at

    @pytest.mark.asyncio
    async def test_requires_recipient(self, store) -> None:
        with pytest.raises(QueueError, match="at least one recipient"):
            await store.enqueue("n-1", [], PAYLOAD)

    @pytest.mark.asyncio
    async def test_get_missing(self, store) -> None:
        with pytest.raises(QueueItemNotFoundError):
            await store.get("missing")


class TestFetchAndClaim:
    """Tests for readiness ordering and atomic claims."""

    @pytest.mark.asyncio
    async def test_fetch_due_is_fifo_by_readiness(self, store, clock) -> None:
        first = await store.enqueue("n-1", ["a"], PAYLOAD)
        clock.advance(seconds=1)
        second = await store.enqueue("n-2", ["a"], PAYLOAD.model_copy(update={"priority": "urgent"}))
        later = await store.enqueue("n-3", ["a"], PAYLOAD, EnqueueOptions(delay_minutes=5))

        due = await store.fetch_due(limit=10)

        assert [i.id for i in due] == [first, second]
        assert later not in [i.id for i in due]

        clock.advance(minutes=5)
        assert [i.id for i in await store.fetch_due(limit=10)] == [first, second, later]

    @pytest.mark.asyncio
    async def test_fetch_due_respects_limit(self, store) -> None:
        for n in range(3):
            await store.enqueue(f"n-{n}", ["a"], PAYLOAD)

        assert len(await store.fetch_due(limit=2)) == 2

    @pytest.mark.asyncio
    async def test_second_claim_loses(self, store, clock) -> None:
        item_id = await store.enqueue("n-1", ["a"], PAYLOAD)

        assert await store.claim(item_id) is True
        assert await store.claim(item_id) is False

        item = await store.get(item_id)
        assert item.status == QueueStatus.PROCESSING.value
        assert item.processed_at == clock.now
        assert await store.fetch_due(limit=10) == []


class TestAttemptFailures:
    """Tests for retry bookkeeping."""

    @pytest.mark.asyncio
    async def test_retryable_failure_backs_off(self, store, clock) -> None:
        item_id = await claimed_item(store)

        item = await store.mark_attempt_failed(item_id, "provider down", {})

        assert item.status == QueueStatus.PENDING.value
        assert item.attempts == 1
        assert item.last_error == "provider down"
        assert item.not_before == clock.now + timedelta(minutes=2)
        assert item.error_history[0]["attempt"] == 1

    @pytest.mark.asyncio
    async def test_backoff_grows_between_attempts(self, store, clock) -> None:
        item_id = await claimed_item(store, max_attempts=5)
        gaps = []

        for _ in range(3):
            item = await store.mark_attempt_failed(item_id, "provider down", {})
            gaps.append(item.not_before - clock.now)
            clock.now = item.not_before
            assert await store.claim(item_id) is True

        assert gaps[0] < gaps[1] < gaps[2]

    @pytest.mark.asyncio
    async def test_failed_exactly_when_budget_spent(self, store) -> None:
        item_id = await claimed_item(store, max_attempts=2)

        first = await store.mark_attempt_failed(item_id, "e1", {})
        assert first.status == QueueStatus.PENDING.value

        await store.retry(item_id)
        assert await store.claim(item_id) is True
        second = await store.mark_attempt_failed(item_id, "e2", {})

        assert second.status == QueueStatus.FAILED.value
        assert second.attempts == second.max_attempts == 2
        assert second.completed_at is not None
        assert [h["error"] for h in second.error_history] == ["e1", "e2"]

    @pytest.mark.asyncio
    async def test_non_retryable_failure_is_terminal(self, store) -> None:
        item_id = await claimed_item(store)

        item = await store.mark_attempt_failed(item_id, "no providers", {}, retryable=False)

        assert item.status == QueueStatus.FAILED.value
        assert item.attempts == 3

    @pytest.mark.asyncio
    async def test_failure_on_unclaimed_item_is_ignored(self, store) -> None:
        item_id = await store.enqueue("n-1", ["a"], PAYLOAD)

        assert await store.mark_attempt_failed(item_id, "late", {}) is None
        assert (await store.get(item_id)).attempts == 0


class TestOperatorControls:
    """Tests for cancel, retry and purge."""

    @pytest.mark.asyncio
    async def test_cancel_mid_flight_wins(self, store) -> None:
        item_id = await claimed_item(store)

        cancelled = await store.cancel(item_id)
        assert cancelled.status == QueueStatus.CANCELLED.value

        assert await store.mark_sent(item_id, {"member-1": {"success": True}}) is False
        assert await store.mark_attempt_failed(item_id, "late", {}) is None
        assert (await store.get(item_id)).status == QueueStatus.CANCELLED.value

    @pytest.mark.asyncio
    async def test_cancel_finished_item_rejected(self, store) -> None:
        item_id = await claimed_item(store)
        await store.mark_sent(item_id, {})

        with pytest.raises(InvalidTransitionError, match="status 'sent'"):
            await store.cancel(item_id)

    @pytest.mark.asyncio
    async def test_retry_failed_item_resets_attempts(self, store, clock) -> None:
        item_id = await claimed_item(store)
        await store.mark_attempt_failed(item_id, "no providers", {}, retryable=False)
        clock.advance(minutes=30)

        item = await store.retry(item_id)

        assert item.status == QueueStatus.PENDING.value
        assert item.attempts == 0
        assert item.last_error is None
        assert item.completed_at is None
        assert item.not_before == clock.now

    @pytest.mark.asyncio
    async def test_retry_pending_is_idempotent(self, store, clock) -> None:
        item_id = await claimed_item(store)
        await store.mark_attempt_failed(item_id, "provider down", {})
        clock.advance(seconds=10)

        first = await store.retry(item_id)
        second = await store.retry(item_id)

        assert first.attempts == second.attempts == 1
        assert second.status == QueueStatus.PENDING.value
        assert second.not_before == clock.now

    @pytest.mark.asyncio
    async def test_retry_rejected_for_processing_item(self, store) -> None:
        item_id = await claimed_item(store)

        with pytest.raises(InvalidTransitionError):
            await store.retry(item_id)

    @pytest.mark.asyncio
    async def test_purge_only_old_terminal_items(self, store, clock) -> None:
        old_sent = await claimed_item(store)
        await store.mark_sent(old_sent, {})
        old_pending = await store.enqueue("n-2", ["a"], PAYLOAD)

        clock.advance(days=8)
        recent_sent = await claimed_item(store)
        await store.mark_sent(recent_sent, {})

        deleted = await store.purge_older_than(7)

        assert deleted == 1
        with pytest.raises(QueueItemNotFoundError):
            await store.get(old_sent)
        assert (await store.get(old_pending)).status == QueueStatus.PENDING.value
        assert (await store.get(recent_sent)).status == QueueStatus.SENT.value


class TestRecoveryAndStats:
    """Tests for stuck-claim recovery and statistics."""

    @pytest.mark.asyncio
    async def test_reset_stuck_returns_items_to_pending(self, store, clock) -> None:
        stuck = await claimed_item(store)
        clock.advance(minutes=45)
        fresh = await claimed_item(store)

        assert await store.reset_stuck(30) == 1

        item = await store.get(stuck)
        assert item.status == QueueStatus.PENDING.value
        assert item.attempts == 0
        assert (await store.get(fresh)).status == QueueStatus.PROCESSING.value

    @pytest.mark.asyncio
    async def test_stats(self, store, clock) -> None:
        sent = await claimed_item(store)
        clock.advance(seconds=4)
        await store.mark_sent(sent, {})
        failed = await claimed_item(store)
        await store.mark_attempt_failed(failed, "boom", {}, retryable=False)
        await store.enqueue("n-3", ["a"], PAYLOAD)
        await store.enqueue("n-4", ["a"], PAYLOAD)

        stats = await store.get_stats()

        assert stats["total_in_queue"] == 4
        assert stats["pending"] == 2
        assert stats["sent"] == 1
        assert stats["failed"] == 1
        assert stats["cancelled"] == 0
        assert stats["average_processing_time_seconds"] == pytest.approx(4.0)
        assert stats["throughput_per_hour"] == 1
        assert stats["error_rate_percent"] == 25.0

    @pytest.mark.asyncio
    async def test_list_items_newest_first(self, store, clock) -> None:
        first = await store.enqueue("n-1", ["a"], PAYLOAD)
        clock.advance(seconds=1)
        second = await store.enqueue("n-2", ["a"], PAYLOAD)
        await store.cancel(second)

        assert [i.id for i in await store.list_items()] == [second, first]
        assert [i.id for i in await store.list_items(status="cancelled")] == [second]
