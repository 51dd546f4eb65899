# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Notification pipeline: the long-lived service object callers hold.

The pipeline wires the queue store, queue processor, scheduler, trigger
service and hybrid coordinator together and owns their timers. Nothing
runs at import time; timers start with start() and stop with stop().

Example:
    pipeline = NotificationPipeline.from_settings(get_settings())
    await pipeline.start()

    item_id = await pipeline.enqueue(
        "invoice-ready",
        ["member-1", "member-2"],
        NotificationPayload(title="Invoice", message="Your invoice is ready"),
    )

    await pipeline.stop()
"""

from datetime import datetime
from typing import Any, Sequence

from notiflow.core.config.settings import Settings
from notiflow.core.exceptions import ConfigurationError
from notiflow.domains.queue.processor import QueueProcessor
from notiflow.domains.queue.store import QueueStore
from notiflow.domains.recipients.directory import (
    ContactDirectory,
    RecipientResolver,
    TargetResolver,
)
from notiflow.domains.scheduling.service import SchedulerService
from notiflow.domains.scheduling.triggers import TriggerService
from notiflow.infrastructure.background.scheduler import JobScheduler
from notiflow.infrastructure.database.connection import Database
from notiflow.infrastructure.database.models import QueueItem, ScheduleDefinition
from notiflow.infrastructure.notifications.channels.base import ChannelType
from notiflow.infrastructure.notifications.hybrid import (
    BulkDeliveryResult,
    DeliveryResult,
    HybridDeliveryCoordinator,
)
from notiflow.infrastructure.notifications.registry import build_coordinator, build_routers
from notiflow.infrastructure.notifications.templates import MessageTemplate
from notiflow.models.notification import NotificationPayload, Recipient
from notiflow.models.queue import EnqueueOptions, QueueStats
from notiflow.models.schedule import ScheduleDefinitionCreate
from notiflow.utils.logging import get_logger

logger = get_logger(__name__)


class NotificationPipeline:
    """Facade over the queue, scheduler and delivery services.

    Attributes:
        database: Database holding every pipeline table.
        store: Persisted queue.
        processor: Dispatches due queue items.
        coordinator: Cross-channel delivery.
        scheduler: Recurring schedule definitions.
        triggers: Event triggers.
        jobs: Timers driving the processor, scheduler and purge.
    """

    def __init__(
        self,
        database: Database,
        store: QueueStore,
        processor: QueueProcessor,
        coordinator: HybridDeliveryCoordinator,
        scheduler: SchedulerService,
        triggers: TriggerService,
        settings: Settings,
        jobs: JobScheduler | None = None,
    ) -> None:
        self.database = database
        self.store = store
        self.processor = processor
        self.coordinator = coordinator
        self.scheduler = scheduler
        self.triggers = triggers
        self.jobs = jobs or JobScheduler()
        self._settings = settings
        self._started = False

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        database: Database | None = None,
        resolver: RecipientResolver | None = None,
        targets: TargetResolver | None = None,
        coordinator: HybridDeliveryCoordinator | None = None,
    ) -> "NotificationPipeline":
        """Build a pipeline from settings.

        Args:
            settings: Application settings.
            database: Existing database; created from settings when omitted.
            resolver: Recipient resolver; defaults to the contacts table.
            targets: Target resolver; defaults to the contacts table.
            coordinator: Prebuilt coordinator; built from settings when omitted.

        Returns:
            A pipeline that has not been started.
        """
        database = database or Database.from_settings(settings)
        directory = ContactDirectory(database)
        coordinator = coordinator or build_coordinator(
            settings, database, build_routers(settings)
        )

        store = QueueStore(database, default_max_attempts=settings.queue.max_attempts)
        processor = QueueProcessor(
            store,
            coordinator,
            resolver or directory,
            batch_size=settings.queue.batch_size,
            backoff_base_minutes=settings.queue.backoff_base_minutes,
        )
        scheduler = SchedulerService(
            database,
            store,
            targets or directory,
            batch_size=settings.scheduler.batch_size,
            retry_delay_minutes=settings.scheduler.retry_delay_minutes,
        )
        triggers = TriggerService(database, store, targets or directory)

        return cls(
            database=database,
            store=store,
            processor=processor,
            coordinator=coordinator,
            scheduler=scheduler,
            triggers=triggers,
            settings=settings,
        )

    # =========================================================================
    # Lifecycle
    # =========================================================================

    @property
    def is_running(self) -> bool:
        return self._started

    async def start(self, run_workers: bool = True) -> None:
        """Create tables, recover stuck items and start the timers.

        Args:
            run_workers: Start the processor, scheduler and purge timers.
                API-only processes pass False and leave dispatch to a
                separate worker.
        """
        if self._started:
            return

        await self.database.create_all()
        await self.store.reset_stuck(self._settings.queue.stuck_after_minutes)

        if run_workers:
            queue = self._settings.queue
            self.jobs.add_interval_job(
                "Queue Processor",
                self.processor.process_queue,
                seconds=queue.poll_interval_seconds,
                run_immediately=True,
            )
            self.jobs.add_interval_job(
                "Schedule Tick",
                self.scheduler.tick,
                seconds=self._settings.scheduler.tick_interval_seconds,
                run_immediately=True,
            )
            self.jobs.add_interval_job(
                "Queue Retention Purge",
                self.purge_expired,
                seconds=queue.purge_interval_minutes * 60,
            )
            await self.jobs.start()

        self._started = True
        logger.info("Notification pipeline started", workers=run_workers)

    async def stop(self) -> None:
        """Stop the timers and release transport and database resources."""
        if not self._started:
            return

        await self.jobs.stop()
        for job in self.jobs.list_jobs():
            self.jobs.remove_job(job.id)
        for router in self.coordinator.routers.values():
            await router.aclose()
        await self.database.dispose()

        self._started = False
        logger.info("Notification pipeline stopped")

    # =========================================================================
    # Submission
    # =========================================================================

    def _require_deliverable(self, payload: NotificationPayload) -> None:
        if not self.coordinator.can_deliver(payload.channels):
            channels = ", ".join(c.value for c in payload.channels)
            raise ConfigurationError(
                f"No provider configured for any requested channel ({channels})",
                {"channels": [c.value for c in payload.channels]},
            )

    async def enqueue(
        self,
        notification_id: str,
        recipient_ids: Sequence[str],
        payload: NotificationPayload,
        options: EnqueueOptions | None = None,
    ) -> str:
        """Accept a notification for asynchronous delivery.

        Returns as soon as the work is persisted; delivery outcome is only
        visible through get_stats and list_items.

        Raises:
            ConfigurationError: If none of the payload's channels can deliver.
        """
        self._require_deliverable(payload)
        return await self.store.enqueue(notification_id, recipient_ids, payload, options)

    async def enqueue_template(
        self,
        notification_id: str,
        recipient_ids: Sequence[str],
        template: MessageTemplate,
        values: dict[str, Any],
        options: EnqueueOptions | None = None,
    ) -> str:
        """Render a template and enqueue the result.

        Raises:
            TemplateValidationError: If values do not match the template.
            ConfigurationError: If none of the template's channels can deliver.
        """
        return await self.enqueue(notification_id, recipient_ids, template.render(values), options)

    async def schedule_once(
        self,
        notification_id: str,
        recipient_ids: Sequence[str],
        payload: NotificationPayload,
        at: datetime,
        options: EnqueueOptions | None = None,
    ) -> str:
        """Enqueue a notification that becomes eligible at ``at``."""
        self._require_deliverable(payload)
        return await self.store.enqueue(
            notification_id, recipient_ids, payload, options, scheduled_for=at
        )

    async def define_recurring(self, request: ScheduleDefinitionCreate) -> ScheduleDefinition:
        return await self.scheduler.define_recurring(request)

    # =========================================================================
    # Queries and controls
    # =========================================================================

    async def get_stats(self) -> QueueStats:
        stats = await self.store.get_stats()
        return QueueStats(**stats, paused=self.processor.is_paused)

    async def list_items(self, status: str | None = None, limit: int = 50) -> list[QueueItem]:
        return await self.store.list_items(status=status, limit=limit)

    def pause(self) -> None:
        self.processor.pause()

    def resume(self) -> None:
        self.processor.resume()

    async def cancel(self, item_id: str) -> QueueItem:
        return await self.store.cancel(item_id)

    async def retry(self, item_id: str) -> QueueItem:
        return await self.store.retry(item_id)

    async def purge_older_than(self, days: int) -> int:
        return await self.store.purge_older_than(days)

    async def purge_expired(self) -> int:
        """Purge terminal items outside the configured retention window."""
        retention_days = self._settings.queue.retention_days
        deleted = await self.store.purge_older_than(retention_days)
        if deleted:
            logger.info("Retention purge finished", deleted=deleted, retention_days=retention_days)
        return deleted

    async def list_providers(self) -> dict[str, list[dict[str, Any]]]:
        """Report every provider per channel with its configuration and status."""
        providers: dict[str, list[dict[str, Any]]] = {}
        for channel, router in self.coordinator.routers.items():
            providers[channel.value] = [p.to_dict() for p in await router.list_providers()]
        if self.coordinator.in_app is not None:
            in_app = await self.coordinator.in_app.describe()
            providers[ChannelType.IN_APP.value] = [in_app.to_dict()]
        return providers

    # =========================================================================
    # Direct delivery
    # =========================================================================

    async def send_now(self, recipient: Recipient, payload: NotificationPayload) -> DeliveryResult:
        """Deliver immediately, bypassing the queue and its retries."""
        return await self.coordinator.deliver(recipient, payload)

    async def send_bulk(
        self, deliveries: Sequence[tuple[Recipient, NotificationPayload]]
    ) -> BulkDeliveryResult:
        """Deliver many notifications immediately in staggered sub-batches."""
        return await self.coordinator.deliver_bulk(deliveries)
