# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Queue store: the durable boundary between submitted and executed work.

Every status change is a single conditional UPDATE keyed by item ID whose
WHERE clause names the status the change starts from. Two processors
polling the same table can therefore never both claim an item, and a
cancellation that lands while an item is being dispatched is never
overwritten by the dispatch result.

State machine:
    pending -> processing -> sent | failed
    pending | processing -> cancelled
    failed -> pending (operator retry)

Example:
    store = QueueStore(database)
    item_id = await store.enqueue("welcome", ["member-1"], payload)
    for item in await store.fetch_due(limit=10):
        if await store.claim(item.id):
            ...
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Sequence

from sqlalchemy import delete, func, select, update

from notiflow.core.exceptions import NotiflowError
from notiflow.infrastructure.database.connection import Database
from notiflow.infrastructure.database.models import QueueItem, QueueStatus
from notiflow.models.notification import NotificationPayload
from notiflow.models.queue import EnqueueOptions
from notiflow.utils.datetime import Clock, utc_now

logger = logging.getLogger(__name__)


class QueueError(NotiflowError):
    """Base exception for queue store errors."""

    pass


class QueueItemNotFoundError(QueueError):
    """Raised when a queue item does not exist."""

    pass


class InvalidTransitionError(QueueError):
    """Raised when an operator action does not apply to the item's state."""

    pass


def backoff_delay(attempts: int, base_minutes: float = 1.0) -> timedelta:
    """Return the retry delay after the given number of failed attempts.

    Args:
        attempts: Failed attempts so far (after incrementing).
        base_minutes: Multiplier, one minute by default.

    Returns:
        base_minutes * 2^attempts minutes.
    """
    return timedelta(minutes=base_minutes * (2 ** attempts))


class QueueStore:
    """Persisted queue of dispatch work.

    Attributes:
        _database: Database holding the queue_items table.
        _clock: Source of the current time.
        _default_max_attempts: Retry cap for items enqueued without one.
    """

    def __init__(
        self,
        database: Database,
        clock: Clock = utc_now,
        default_max_attempts: int = 3,
    ) -> None:
        self._database = database
        self._clock = clock
        self._default_max_attempts = default_max_attempts

    # =========================================================================
    # Submission
    # =========================================================================

    async def enqueue(
        self,
        notification_id: str,
        recipient_ids: Sequence[str],
        payload: NotificationPayload,
        options: EnqueueOptions | None = None,
        scheduled_for: datetime | None = None,
        source: str = "direct",
    ) -> str:
        """Create a pending queue item.

        Args:
            notification_id: Logical notification the item delivers.
            recipient_ids: Recipient references; duplicates are dropped.
            payload: Notification content.
            options: Retry cap, delay and batch correlation.
            scheduled_for: Absolute instant to deliver at; overrides the delay.
            source: What created the item (direct, schedule, trigger).

        Returns:
            ID of the new queue item.

        Raises:
            QueueError: If no recipients are given.
        """
        options = options or EnqueueOptions()
        recipients = list(dict.fromkeys(r for r in recipient_ids if r))
        if not recipients:
            raise QueueError("Queue items need at least one recipient")

        now = self._clock()
        not_before = scheduled_for or now + timedelta(minutes=options.delay_minutes)

        item = QueueItem(
            notification_id=notification_id,
            recipient_ids=recipients,
            payload=payload.model_dump(mode="json"),
            status=QueueStatus.PENDING.value,
            attempts=0,
            max_attempts=options.max_attempts or self._default_max_attempts,
            not_before=not_before,
            scheduled_for=scheduled_for,
            error_history=[],
            delivery_results={},
            batch_id=options.batch_id,
            batch_size=options.batch_size,
            source=source,
            created_at=now,
            updated_at=now,
        )

        async with self._database.session() as session:
            session.add(item)
            await session.flush()
            item_id = item.id

        logger.info(
            "Enqueued item %s for notification %s (%d recipients, not before %s)",
            item_id,
            notification_id,
            len(recipients),
            not_before.isoformat(),
        )
        return item_id

    # =========================================================================
    # Processor operations
    # =========================================================================

    async def fetch_due(self, limit: int) -> list[QueueItem]:
        """Return pending items whose not_before has passed, earliest first.

        Ordering is strictly by readiness; the priority tag in the payload
        never reorders work.
        """
        now = self._clock()
        async with self._database.session() as session:
            result = await session.execute(
                select(QueueItem)
                .where(
                    QueueItem.status == QueueStatus.PENDING.value,
                    QueueItem.not_before <= now,
                )
                .order_by(QueueItem.not_before, QueueItem.created_at, QueueItem.id)
                .limit(limit)
            )
            return list(result.scalars().all())

    async def claim(self, item_id: str) -> bool:
        """Atomically move an item from pending to processing.

        Returns:
            True if this caller won the claim, False if another claimer
            (or a cancellation) got there first.
        """
        now = self._clock()
        async with self._database.session() as session:
            result = await session.execute(
                update(QueueItem)
                .where(
                    QueueItem.id == item_id,
                    QueueItem.status == QueueStatus.PENDING.value,
                )
                .values(
                    status=QueueStatus.PROCESSING.value,
                    processed_at=now,
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            claimed = result.rowcount == 1

        if not claimed:
            logger.debug("Lost claim on queue item %s", item_id)
        return claimed

    async def save_progress(self, item_id: str, delivery_results: dict[str, Any]) -> None:
        """Persist per-recipient results while an item is still processing."""
        async with self._database.session() as session:
            await session.execute(
                update(QueueItem)
                .where(
                    QueueItem.id == item_id,
                    QueueItem.status == QueueStatus.PROCESSING.value,
                )
                .values(delivery_results=delivery_results)
                .execution_options(synchronize_session=False)
            )

    async def mark_sent(self, item_id: str, delivery_results: dict[str, Any]) -> bool:
        """Finish a claimed item successfully.

        Returns:
            False if the item is no longer processing (cancelled meanwhile).
        """
        now = self._clock()
        async with self._database.session() as session:
            result = await session.execute(
                update(QueueItem)
                .where(
                    QueueItem.id == item_id,
                    QueueItem.status == QueueStatus.PROCESSING.value,
                )
                .values(
                    status=QueueStatus.SENT.value,
                    completed_at=now,
                    updated_at=now,
                    last_error=None,
                    delivery_results=delivery_results,
                )
                .execution_options(synchronize_session=False)
            )
            return result.rowcount == 1

    async def mark_attempt_failed(
        self,
        item_id: str,
        error: str,
        delivery_results: dict[str, Any],
        retryable: bool = True,
        backoff_base_minutes: float = 1.0,
    ) -> QueueItem | None:
        """Record a failed attempt and schedule the next one.

        The attempt counter is incremented; once it reaches max_attempts
        the item becomes failed. Otherwise it returns to pending with
        not_before pushed out by the exponential backoff. A non-retryable
        failure spends the whole budget at once so the item fails now.

        Args:
            item_id: Claimed item.
            error: Error description for this attempt.
            delivery_results: Per-recipient results so far.
            retryable: Whether another attempt could succeed.
            backoff_base_minutes: Backoff multiplier.

        Returns:
            The updated item, or None if it was no longer processing.
        """
        now = self._clock()
        async with self._database.session() as session:
            item = await session.get(QueueItem, item_id)
            if item is None or item.status != QueueStatus.PROCESSING.value:
                return None

            previous_attempts = item.attempts
            attempts = previous_attempts + 1 if retryable else item.max_attempts
            attempts = min(attempts, item.max_attempts)
            history = list(item.error_history or [])
            history.append({"attempt": attempts, "error": error, "timestamp": now.isoformat()})

            values: dict[str, Any] = {
                "attempts": attempts,
                "last_error": error,
                "error_history": history,
                "delivery_results": delivery_results,
                "updated_at": now,
            }
            if attempts >= item.max_attempts:
                values["status"] = QueueStatus.FAILED.value
                values["completed_at"] = now
            else:
                values["status"] = QueueStatus.PENDING.value
                values["not_before"] = now + backoff_delay(attempts, backoff_base_minutes)

            result = await session.execute(
                update(QueueItem)
                .where(
                    QueueItem.id == item_id,
                    QueueItem.status == QueueStatus.PROCESSING.value,
                    QueueItem.attempts == previous_attempts,
                )
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                return None

        if values["status"] == QueueStatus.FAILED.value:
            logger.error(
                "Queue item %s failed after %d attempt(s): %s", item_id, attempts, error
            )
        else:
            logger.warning(
                "Queue item %s attempt %d failed, retrying at %s: %s",
                item_id,
                attempts,
                values["not_before"].isoformat(),
                error,
            )
        return await self.get(item_id)

    async def reset_stuck(self, older_than_minutes: int) -> int:
        """Return abandoned processing claims to pending.

        Used at startup to recover items claimed by a processor that
        crashed mid-dispatch. The attempt counter is left untouched.

        Returns:
            Number of items reset.
        """
        now = self._clock()
        cutoff = now - timedelta(minutes=older_than_minutes)
        async with self._database.session() as session:
            result = await session.execute(
                update(QueueItem)
                .where(
                    QueueItem.status == QueueStatus.PROCESSING.value,
                    QueueItem.processed_at < cutoff,
                )
                .values(status=QueueStatus.PENDING.value, not_before=now, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            count = result.rowcount

        if count:
            logger.warning("Reset %d stuck queue item(s) to pending", count)
        return count

    # =========================================================================
    # Operator controls
    # =========================================================================

    async def get(self, item_id: str) -> QueueItem:
        """Fetch one queue item.

        Raises:
            QueueItemNotFoundError: If the item does not exist.
        """
        async with self._database.session() as session:
            item = await session.get(QueueItem, item_id)
        if item is None:
            raise QueueItemNotFoundError(f"Queue item {item_id} not found")
        return item

    async def cancel(self, item_id: str) -> QueueItem:
        """Cancel a pending or processing item.

        A send already handed to a transport is not interrupted; the
        cancellation only prevents further attempts.

        Raises:
            QueueItemNotFoundError: If the item does not exist.
            InvalidTransitionError: If the item already finished.
        """
        now = self._clock()
        async with self._database.session() as session:
            result = await session.execute(
                update(QueueItem)
                .where(
                    QueueItem.id == item_id,
                    QueueItem.status.in_(
                        [QueueStatus.PENDING.value, QueueStatus.PROCESSING.value]
                    ),
                )
                .values(status=QueueStatus.CANCELLED.value, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            cancelled = result.rowcount == 1

        item = await self.get(item_id)
        if not cancelled:
            raise InvalidTransitionError(f"Cannot cancel queue item in status '{item.status}'")

        logger.info("Cancelled queue item %s", item_id)
        return item

    async def retry(self, item_id: str) -> QueueItem:
        """Make an item eligible again immediately.

        A failed item returns to pending with its attempts and error
        cleared. A pending item keeps its attempts and only has
        not_before moved to now, so repeated retries are harmless.

        Raises:
            QueueItemNotFoundError: If the item does not exist.
            InvalidTransitionError: If the item is processing, sent or cancelled.
        """
        now = self._clock()
        item = await self.get(item_id)

        if item.status == QueueStatus.FAILED.value:
            values: dict[str, Any] = {
                "status": QueueStatus.PENDING.value,
                "attempts": 0,
                "last_error": None,
                "completed_at": None,
                "processed_at": None,
                "not_before": now,
                "updated_at": now,
            }
        elif item.status == QueueStatus.PENDING.value:
            values = {"not_before": now, "updated_at": now}
        else:
            raise InvalidTransitionError(f"Cannot retry queue item in status '{item.status}'")

        async with self._database.session() as session:
            result = await session.execute(
                update(QueueItem)
                .where(QueueItem.id == item_id, QueueItem.status == item.status)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise InvalidTransitionError(f"Queue item {item_id} changed state during retry")

        logger.info("Queue item %s scheduled for immediate retry", item_id)
        return await self.get(item_id)

    async def purge_older_than(self, days: int) -> int:
        """Delete terminal items last updated before the retention window.

        Pending and processing items are never purged, however old.

        Returns:
            Number of deleted items.
        """
        cutoff = self._clock() - timedelta(days=days)
        async with self._database.session() as session:
            result = await session.execute(
                delete(QueueItem)
                .where(
                    QueueItem.status.in_([s.value for s in QueueStatus.terminal()]),
                    QueueItem.updated_at < cutoff,
                )
                .execution_options(synchronize_session=False)
            )
            deleted = result.rowcount

        if deleted:
            logger.info("Purged %d queue item(s) older than %d days", deleted, days)
        return deleted

    # =========================================================================
    # Queries
    # =========================================================================

    async def list_items(self, status: str | None = None, limit: int = 50) -> list[QueueItem]:
        """List items, newest first, optionally filtered by status."""
        query = select(QueueItem)
        if status:
            query = query.where(QueueItem.status == status)
        query = query.order_by(QueueItem.created_at.desc(), QueueItem.id).limit(limit)

        async with self._database.session() as session:
            result = await session.execute(query)
            return list(result.scalars().all())

    async def count_by_status(self) -> dict[str, int]:
        """Count items per status."""
        async with self._database.session() as session:
            result = await session.execute(
                select(QueueItem.status, func.count()).group_by(QueueItem.status)
            )
            counts = {status: count for status, count in result.all()}
        return {s.value: counts.get(s.value, 0) for s in QueueStatus}

    async def get_stats(self) -> dict[str, Any]:
        """Compute queue statistics.

        Returns:
            Counts per status, total, average claim-to-completion time of
            sent items, items sent during the last hour and the failed
            share of all items as a percentage.
        """
        now = self._clock()
        counts = await self.count_by_status()
        total = sum(counts.values())

        async with self._database.session() as session:
            durations = await session.execute(
                select(QueueItem.processed_at, QueueItem.completed_at).where(
                    QueueItem.status == QueueStatus.SENT.value,
                    QueueItem.processed_at.is_not(None),
                    QueueItem.completed_at.is_not(None),
                )
            )
            seconds = [
                (completed - processed).total_seconds()
                for processed, completed in durations.all()
            ]
            throughput = await session.scalar(
                select(func.count()).select_from(QueueItem).where(
                    QueueItem.status == QueueStatus.SENT.value,
                    QueueItem.completed_at >= now - timedelta(hours=1),
                )
            )

        return {
            "total_in_queue": total,
            **counts,
            "average_processing_time_seconds": round(sum(seconds) / len(seconds), 3)
            if seconds
            else 0.0,
            "throughput_per_hour": throughput or 0,
            "error_rate_percent": round(counts[QueueStatus.FAILED.value] / total * 100, 2)
            if total
            else 0.0,
        }
