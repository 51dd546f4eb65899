# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Scheduler service for recurring and one-off notification definitions.

On every tick, due definitions are executed: targeting is resolved to
recipient references and one queue item is enqueued through the queue
store, the same path direct submissions take. The next execution is
then recomputed from the execution instant.

A failed execution never ends a series. The definition is paused with
retry_pending set and a retry time a fixed delay out; the tick picks it
up again once that time arrives. An operator pause clears the flag so
it stays paused until resumed explicitly.

Example:
    scheduler = SchedulerService(database, queue_store, directory)
    definition = await scheduler.define_recurring(request)
    await scheduler.tick()
"""

import logging
from datetime import datetime, timedelta
from typing import Any

from pydantic import ValidationError
from sqlalchemy import and_, delete, func, or_, select

from notiflow.core.exceptions import NotiflowError
from notiflow.domains.queue.store import QueueStore
from notiflow.domains.recipients.directory import TargetResolver
from notiflow.domains.scheduling.recurrence import compute_next
from notiflow.infrastructure.database.connection import Database, DatabaseError
from notiflow.infrastructure.database.models import (
    ScheduleDefinition,
    ScheduleExecution,
    ScheduleStatus,
)
from notiflow.models.notification import NotificationPayload
from notiflow.models.queue import EnqueueOptions
from notiflow.models.schedule import (
    ScheduleConfig,
    ScheduleDefinitionCreate,
    SchedulerStats,
    ScheduleUpdate,
    Targeting,
    UpcomingExecution,
)
from notiflow.utils.datetime import Clock, utc_now

logger = logging.getLogger(__name__)

UPCOMING_LIMIT = 50


class ScheduleError(NotiflowError):
    """Base exception for scheduler errors."""

    pass


class ScheduleNotFoundError(ScheduleError):
    """Raised when a schedule definition does not exist."""

    pass


class ScheduleValidationError(ScheduleError):
    """Raised when a definition's timing can never execute."""

    pass


class ScheduleStateError(ScheduleError):
    """Raised when an operator action does not apply to the definition's status."""

    pass


def _runnable(definition: ScheduleDefinition) -> bool:
    """Check whether the tick may still advance a definition.

    Active definitions and those paused by a failed execution are owned
    by the tick; any other status was set by an operator.
    """
    if definition.status == ScheduleStatus.ACTIVE.value:
        return True
    return definition.status == ScheduleStatus.PAUSED.value and bool(definition.retry_pending)


class SchedulerService:
    """Owns schedule definitions and executes them on tick.

    Attributes:
        _database: Database holding the schedule tables.
        _queue: Queue store executions enqueue into.
        _targets: Expands targeting into recipient references.
        _clock: Source of the current time.
        _batch_size: Maximum definitions executed per tick.
        _retry_delay: Delay before a failed execution is retried.
    """

    def __init__(
        self,
        database: Database,
        queue: QueueStore,
        targets: TargetResolver,
        clock: Clock = utc_now,
        batch_size: int = 10,
        retry_delay_minutes: int = 30,
    ) -> None:
        self._database = database
        self._queue = queue
        self._targets = targets
        self._clock = clock
        self._batch_size = batch_size
        self._retry_delay = timedelta(minutes=retry_delay_minutes)
        self._in_flight = False

    # =========================================================================
    # Definitions
    # =========================================================================

    async def define_recurring(self, request: ScheduleDefinitionCreate) -> ScheduleDefinition:
        """Create a schedule definition.

        A template is rendered here, once, so every execution sends the
        same content.

        Args:
            request: Definition content, timing and targeting.

        Returns:
            The stored definition.

        Raises:
            TemplateValidationError: If template values do not match.
            ScheduleValidationError: If the timing has no future execution.
        """
        if request.template is not None:
            payload = request.template.render(request.template_values)
        else:
            payload = request.payload

        now = self._clock()
        next_execution = compute_next(request.schedule, now)
        if next_execution is None:
            raise ScheduleValidationError("Schedule has no execution in the future")

        definition = ScheduleDefinition(
            name=request.name,
            description=request.description,
            notification_id=request.notification_id,
            payload=payload.model_dump(mode="json"),
            schedule=request.schedule.model_dump(mode="json"),
            targeting=request.targeting.model_dump(mode="json"),
            status=(ScheduleStatus.ACTIVE if request.activate else ScheduleStatus.DRAFT).value,
            next_execution=next_execution,
            execution_count=0,
            max_executions=request.max_executions,
            max_attempts=request.max_attempts,
            retry_pending=False,
            total_enqueued=0,
            created_by=request.created_by,
            created_at=now,
            updated_at=now,
        )

        async with self._database.session() as session:
            session.add(definition)
            await session.flush()

        logger.info(
            "Defined schedule %s (%s), next execution %s",
            definition.id,
            definition.name,
            next_execution.isoformat(),
        )
        return definition

    async def get_definition(self, definition_id: str) -> ScheduleDefinition:
        """Fetch one definition.

        Raises:
            ScheduleNotFoundError: If the definition does not exist.
        """
        async with self._database.session() as session:
            definition = await session.get(ScheduleDefinition, definition_id)
        if definition is None:
            raise ScheduleNotFoundError(f"Schedule {definition_id} not found")
        return definition

    async def list_definitions(
        self, status: str | None = None, limit: int = 50
    ) -> list[ScheduleDefinition]:
        query = select(ScheduleDefinition)
        if status:
            query = query.where(ScheduleDefinition.status == status)
        query = query.order_by(ScheduleDefinition.created_at.desc()).limit(limit)

        async with self._database.session() as session:
            result = await session.execute(query)
            return list(result.scalars().all())

    async def update_schedule(
        self, definition_id: str, update: ScheduleUpdate
    ) -> ScheduleDefinition:
        """Replace a definition's timing and recompute its next execution.

        A definition waiting for an automatic retry keeps its retry time.

        Raises:
            ScheduleNotFoundError: If the definition does not exist.
            ScheduleStateError: If the definition is completed or cancelled.
            ScheduleValidationError: If the new timing has no future execution.
        """
        now = self._clock()
        async with self._database.session() as session:
            definition = await self._load(session, definition_id)
            self._require_status(
                definition,
                "update",
                ScheduleStatus.DRAFT,
                ScheduleStatus.ACTIVE,
                ScheduleStatus.PAUSED,
            )

            next_execution = compute_next(update.schedule, now)
            if next_execution is None:
                raise ScheduleValidationError("Schedule has no execution in the future")

            definition.schedule = update.schedule.model_dump(mode="json")
            definition.max_executions = update.max_executions
            if not definition.retry_pending:
                definition.next_execution = next_execution
            definition.updated_at = now

        logger.info("Updated timing of schedule %s", definition_id)
        return definition

    async def pause(self, definition_id: str) -> ScheduleDefinition:
        """Pause a definition until an operator resumes it."""
        now = self._clock()
        async with self._database.session() as session:
            definition = await self._load(session, definition_id)
            self._require_status(definition, "pause", ScheduleStatus.ACTIVE, ScheduleStatus.PAUSED)
            definition.status = ScheduleStatus.PAUSED.value
            definition.retry_pending = False
            definition.updated_at = now

        logger.info("Paused schedule %s", definition_id)
        return definition

    async def resume(self, definition_id: str) -> ScheduleDefinition:
        """Activate a paused or draft definition.

        The next execution is recomputed from now; occurrences missed while
        paused are skipped. A series with nothing left to run completes.
        """
        now = self._clock()
        async with self._database.session() as session:
            definition = await self._load(session, definition_id)
            self._require_status(definition, "resume", ScheduleStatus.PAUSED, ScheduleStatus.DRAFT)

            next_execution = compute_next(ScheduleConfig.model_validate(definition.schedule), now)
            definition.retry_pending = False
            definition.next_execution = next_execution
            definition.status = (
                ScheduleStatus.ACTIVE if next_execution else ScheduleStatus.COMPLETED
            ).value
            definition.updated_at = now

        logger.info("Resumed schedule %s (status %s)", definition_id, definition.status)
        return definition

    async def cancel(self, definition_id: str) -> ScheduleDefinition:
        now = self._clock()
        async with self._database.session() as session:
            definition = await self._load(session, definition_id)
            self._require_status(
                definition,
                "cancel",
                ScheduleStatus.DRAFT,
                ScheduleStatus.ACTIVE,
                ScheduleStatus.PAUSED,
            )
            definition.status = ScheduleStatus.CANCELLED.value
            definition.next_execution = None
            definition.retry_pending = False
            definition.updated_at = now

        logger.info("Cancelled schedule %s", definition_id)
        return definition

    async def delete(self, definition_id: str) -> None:
        """Delete a definition and its execution log."""
        async with self._database.session() as session:
            definition = await self._load(session, definition_id)
            await session.execute(
                delete(ScheduleExecution).where(ScheduleExecution.definition_id == definition_id)
            )
            await session.delete(definition)

        logger.info("Deleted schedule %s", definition_id)

    async def list_executions(
        self, definition_id: str, limit: int = 20
    ) -> list[ScheduleExecution]:
        await self.get_definition(definition_id)
        async with self._database.session() as session:
            result = await session.execute(
                select(ScheduleExecution)
                .where(ScheduleExecution.definition_id == definition_id)
                .order_by(ScheduleExecution.executed_at.desc())
                .limit(limit)
            )
            return list(result.scalars().all())

    # =========================================================================
    # Execution
    # =========================================================================

    async def tick(self) -> int:
        """Execute every due definition.

        Due means active with next_execution reached, or paused by a failed
        execution whose retry time has been reached.

        Returns:
            Number of definitions executed successfully.
        """
        if self._in_flight:
            logger.debug("Previous scheduler tick still running, skipping")
            return 0

        self._in_flight = True
        try:
            now = self._clock()
            async with self._database.session() as session:
                result = await session.execute(
                    select(ScheduleDefinition)
                    .where(
                        ScheduleDefinition.next_execution <= now,
                        or_(
                            ScheduleDefinition.status == ScheduleStatus.ACTIVE.value,
                            and_(
                                ScheduleDefinition.status == ScheduleStatus.PAUSED.value,
                                ScheduleDefinition.retry_pending.is_(True),
                            ),
                        ),
                    )
                    .order_by(ScheduleDefinition.next_execution)
                    .limit(self._batch_size)
                )
                due = list(result.scalars().all())

            executed = 0
            for definition in due:
                if await self._execute(definition, now):
                    executed += 1

            if due:
                logger.info("Scheduler tick executed %d of %d due schedule(s)", executed, len(due))
            return executed
        finally:
            self._in_flight = False

    async def _execute(self, definition: ScheduleDefinition, now: datetime) -> bool:
        try:
            config = ScheduleConfig.model_validate(definition.schedule)
            targeting = Targeting.model_validate(definition.targeting)
            payload = NotificationPayload.model_validate(definition.payload)

            recipient_ids = await self._targets.resolve_targets(targeting)
            queue_item_id = None
            if recipient_ids:
                queue_item_id = await self._queue.enqueue(
                    definition.notification_id or f"schedule-{definition.id}",
                    recipient_ids,
                    payload,
                    EnqueueOptions(max_attempts=definition.max_attempts),
                    source="schedule",
                )
        except (NotiflowError, DatabaseError, ValidationError) as e:
            await self._record_failure(definition.id, now, str(e))
            return False

        await self._record_success(definition.id, config, now, queue_item_id, len(recipient_ids))
        return True

    async def _record_success(
        self,
        definition_id: str,
        config: ScheduleConfig,
        now: datetime,
        queue_item_id: str | None,
        target_count: int,
    ) -> None:
        async with self._database.session() as session:
            definition = await session.get(ScheduleDefinition, definition_id)
            if definition is None:
                logger.warning("Schedule %s was deleted during execution", definition_id)
                return

            if queue_item_id is not None:
                definition.execution_count += 1
                definition.last_execution = now
                definition.total_enqueued += target_count
                session.add(
                    ScheduleExecution(
                        definition_id=definition_id,
                        queue_item_id=queue_item_id,
                        target_count=target_count,
                        status="completed",
                        executed_at=now,
                    )
                )
            else:
                logger.warning("Schedule %s matched no recipients, skipping occurrence", definition_id)

            if not _runnable(definition):
                # An operator paused or cancelled it mid-execution; their state stands.
                logger.info(
                    "Schedule %s changed to %s during execution, keeping it",
                    definition_id,
                    definition.status,
                )
                return

            next_execution = None if config.type == "once" else compute_next(config, now)
            exhausted = (
                definition.max_executions is not None
                and definition.execution_count >= definition.max_executions
            )

            definition.retry_pending = False
            definition.last_error = None
            definition.updated_at = now
            if next_execution is None or exhausted:
                definition.status = ScheduleStatus.COMPLETED.value
                definition.next_execution = None
            else:
                definition.status = ScheduleStatus.ACTIVE.value
                definition.next_execution = next_execution

        logger.info(
            "Executed schedule %s: %d recipient(s), next %s",
            definition_id,
            target_count,
            next_execution.isoformat() if next_execution and not exhausted else "none",
        )

    async def _record_failure(self, definition_id: str, now: datetime, error: str) -> None:
        retry_at = now + self._retry_delay
        async with self._database.session() as session:
            definition = await session.get(ScheduleDefinition, definition_id)
            if definition is None:
                logger.warning("Schedule %s was deleted during execution", definition_id)
                return

            session.add(
                ScheduleExecution(
                    definition_id=definition_id,
                    target_count=0,
                    status="failed",
                    error=error,
                    executed_at=now,
                )
            )
            definition.last_error = error
            definition.updated_at = now
            if not _runnable(definition):
                logger.error(
                    "Schedule %s execution failed after it changed to %s: %s",
                    definition_id,
                    definition.status,
                    error,
                )
                return

            definition.status = ScheduleStatus.PAUSED.value
            definition.retry_pending = True
            definition.next_execution = retry_at

        logger.error(
            "Schedule %s execution failed, retrying at %s: %s",
            definition_id,
            retry_at.isoformat(),
            error,
        )

    # =========================================================================
    # Statistics
    # =========================================================================

    async def get_stats(self) -> SchedulerStats:
        """Count definitions per status and list upcoming executions."""
        now = self._clock()
        async with self._database.session() as session:
            result = await session.execute(
                select(ScheduleDefinition.status, func.count()).group_by(ScheduleDefinition.status)
            )
            counts: dict[str, Any] = dict(result.all())

            upcoming = await session.execute(
                select(ScheduleDefinition)
                .where(
                    ScheduleDefinition.status == ScheduleStatus.ACTIVE.value,
                    ScheduleDefinition.next_execution >= now,
                    ScheduleDefinition.next_execution <= now + timedelta(hours=24),
                )
                .order_by(ScheduleDefinition.next_execution)
                .limit(UPCOMING_LIMIT)
            )
            upcoming_day = list(upcoming.scalars().all())

            upcoming_week = await session.scalar(
                select(func.count())
                .select_from(ScheduleDefinition)
                .where(
                    ScheduleDefinition.status == ScheduleStatus.ACTIVE.value,
                    ScheduleDefinition.next_execution >= now,
                    ScheduleDefinition.next_execution <= now + timedelta(days=7),
                )
            )

        return SchedulerStats(
            total=sum(counts.values()),
            **{s.value: counts.get(s.value, 0) for s in ScheduleStatus},
            upcoming_24h=[
                UpcomingExecution(
                    definition_id=d.id,
                    name=d.name,
                    next_execution=d.next_execution,
                )
                for d in upcoming_day
            ],
            upcoming_week=upcoming_week or 0,
        )

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    async def _load(session: Any, definition_id: str) -> ScheduleDefinition:
        definition = await session.get(ScheduleDefinition, definition_id)
        if definition is None:
            raise ScheduleNotFoundError(f"Schedule {definition_id} not found")
        return definition

    @staticmethod
    def _require_status(
        definition: ScheduleDefinition, action: str, *allowed: ScheduleStatus
    ) -> None:
        if definition.status not in {s.value for s in allowed}:
            raise ScheduleStateError(
                f"Cannot {action} schedule in status '{definition.status}'"
            )
