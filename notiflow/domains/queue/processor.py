# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Queue processor: the single place that decides an item's fate.

Each poll cycle fetches due items in readiness order, claims every one of
them with a compare-and-set update, then dispatches the claimed items
through the hybrid delivery coordinator. Per-recipient outcomes are kept
on the item so a retry only re-attempts recipients that have not been
reached yet.

Decision table for a dispatched item:
    every recipient delivered           -> sent
    any transient failure               -> attempt recorded, backoff retry
    configuration failure, no transient -> failed (budget exhausted)
    only recipient data failures        -> sent if anyone was reached,
                                           failed otherwise
"""

import logging
from typing import Any

from pydantic import ValidationError

from notiflow.domains.queue.store import QueueStore
from notiflow.domains.recipients.directory import RecipientResolver
from notiflow.infrastructure.database.connection import DatabaseError
from notiflow.infrastructure.database.models import QueueItem
from notiflow.infrastructure.notifications.hybrid import (
    DeliveryResult,
    FailureKind,
    HybridDeliveryCoordinator,
)
from notiflow.models.notification import NotificationPayload

logger = logging.getLogger(__name__)

RECIPIENT_NOT_FOUND = "Recipient not found in directory"


def _is_settled(result: dict[str, Any] | None) -> bool:
    """Whether a stored recipient result needs no further attempt."""
    if not result:
        return False
    return bool(result.get("success")) or result.get("error_kind") == FailureKind.RECIPIENT_DATA.value


class QueueProcessor:
    """Polls the queue store and dispatches due items.

    The in-flight flag keeps two poll cycles of this instance from
    overlapping; the pause flag lets an operator halt dispatch while
    queued items stay in place.

    Attributes:
        store: Queue store the processor drains.
        coordinator: Delivers one payload to many recipients.
        resolver: Looks up contact fields for recipient references.
        batch_size: Maximum items claimed per poll cycle.
        backoff_base_minutes: Multiplier for the retry backoff.
    """

    def __init__(
        self,
        store: QueueStore,
        coordinator: HybridDeliveryCoordinator,
        resolver: RecipientResolver,
        batch_size: int = 10,
        backoff_base_minutes: float = 1.0,
    ) -> None:
        self.store = store
        self.coordinator = coordinator
        self.resolver = resolver
        self.batch_size = batch_size
        self.backoff_base_minutes = backoff_base_minutes
        self._in_flight = False
        self._paused = False

    @property
    def is_paused(self) -> bool:
        return self._paused

    @property
    def is_processing(self) -> bool:
        return self._in_flight

    def pause(self) -> None:
        """Stop dispatching at the next poll cycle."""
        self._paused = True
        logger.info("Queue processing paused")

    def resume(self) -> None:
        """Resume dispatching."""
        self._paused = False
        logger.info("Queue processing resumed")

    async def process_queue(self) -> int:
        """Run one poll cycle.

        Returns:
            Number of items this cycle claimed and dispatched.
        """
        if self._paused:
            logger.debug("Queue processor paused, skipping poll")
            return 0
        if self._in_flight:
            logger.debug("Previous poll cycle still running, skipping")
            return 0

        self._in_flight = True
        try:
            due = await self.store.fetch_due(self.batch_size)
            if not due:
                return 0

            claimed = [item for item in due if await self.store.claim(item.id)]
            for item in claimed:
                try:
                    await self._process_item(item)
                except Exception as e:
                    # A claimed item must leave PROCESSING whatever went wrong.
                    logger.exception("Unexpected error dispatching queue item %s", item.id)
                    await self.store.mark_attempt_failed(
                        item.id,
                        f"Unexpected error: {e}",
                        dict(item.delivery_results or {}),
                        backoff_base_minutes=self.backoff_base_minutes,
                    )

            if claimed:
                logger.info("Processed %d queue item(s)", len(claimed))
            return len(claimed)
        finally:
            self._in_flight = False

    async def _process_item(self, item: QueueItem) -> None:
        try:
            payload = NotificationPayload.model_validate(item.payload)
        except ValidationError as e:
            await self.store.mark_attempt_failed(
                item.id,
                f"Invalid payload: {e.errors()[0]['msg']}",
                dict(item.delivery_results or {}),
                retryable=False,
            )
            return

        results: dict[str, Any] = dict(item.delivery_results or {})
        outstanding = [rid for rid in item.recipient_ids if not _is_settled(results.get(rid))]

        try:
            await self._deliver(item, payload, outstanding, results)
        except (DatabaseError, OSError) as e:
            logger.error("Dispatch of queue item %s failed: %s", item.id, e)
            await self.store.mark_attempt_failed(
                item.id,
                str(e),
                results,
                backoff_base_minutes=self.backoff_base_minutes,
            )
            return

        await self._finalize(item, results)

    async def _deliver(
        self,
        item: QueueItem,
        payload: NotificationPayload,
        outstanding: list[str],
        results: dict[str, Any],
    ) -> None:
        """Deliver to every outstanding recipient, recording into results."""
        if not outstanding:
            return

        recipients = await self.resolver.resolve(outstanding)

        for rid in outstanding:
            if rid not in recipients:
                results[rid] = DeliveryResult(
                    recipient_id=rid,
                    success=False,
                    error=RECIPIENT_NOT_FOUND,
                    error_kind=FailureKind.RECIPIENT_DATA,
                ).to_dict()

        deliveries = [(recipients[rid], payload) for rid in outstanding if rid in recipients]
        if not deliveries:
            return

        bulk = await self.coordinator.deliver_bulk(deliveries)
        for result in bulk.results:
            results[result.recipient_id] = result.to_dict()

        await self.store.save_progress(item.id, results)
        logger.debug(
            "Queue item %s: %d delivered, %d failed",
            item.id,
            bulk.success_count,
            bulk.failure_count,
        )

    async def _finalize(self, item: QueueItem, results: dict[str, Any]) -> None:
        failures = {
            rid: r for rid, r in results.items() if rid in item.recipient_ids and not r.get("success")
        }
        if not failures:
            if not await self.store.mark_sent(item.id, results):
                logger.info("Queue item %s changed state during dispatch", item.id)
            return

        kinds = {r.get("error_kind") for r in failures.values()}
        error = "; ".join(f"{rid}: {r.get('error')}" for rid, r in failures.items())

        if FailureKind.TRANSIENT.value in kinds:
            await self.store.mark_attempt_failed(
                item.id, error, results, backoff_base_minutes=self.backoff_base_minutes
            )
        elif FailureKind.CONFIGURATION.value in kinds:
            await self.store.mark_attempt_failed(item.id, error, results, retryable=False)
        elif len(failures) < len(item.recipient_ids):
            logger.warning("Queue item %s sent with recipient errors: %s", item.id, error)
            await self.store.mark_sent(item.id, results)
        else:
            await self.store.mark_attempt_failed(item.id, error, results, retryable=False)
