# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Integration tests for schedule definitions and the scheduler tick."""

from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio

from notiflow.domains.queue.store import QueueStore
from notiflow.domains.recipients.directory import ContactDirectory
from notiflow.domains.scheduling.service import (
    ScheduleNotFoundError,
    SchedulerService,
    ScheduleStateError,
    ScheduleValidationError,
)
from notiflow.infrastructure.database.connection import DatabaseError
from notiflow.infrastructure.database.models import ScheduleStatus
from notiflow.infrastructure.notifications.templates import (
    MessageTemplate,
    TemplateValidationError,
    TemplateVariable,
)
from notiflow.models.notification import NotificationPayload
from notiflow.models.schedule import (
    ScheduleConfig,
    ScheduleDefinitionCreate,
    ScheduleUpdate,
    Targeting,
)

pytestmark = pytest.mark.integration

UTC = timezone.utc
TUESDAY_9 = datetime(2024, 6, 4, 9, 0, tzinfo=UTC)


class FlakyDirectory(ContactDirectory):
    """Directory whose target lookup fails while ``down`` is set.

    ``during_lookup`` runs before each lookup, standing in for an operator
    acting while an execution is in flight.
    """

    down = False
    during_lookup = None

    async def resolve_targets(self, targeting):
        if self.during_lookup is not None:
            await self.during_lookup()
        if self.down:
            raise DatabaseError("directory unavailable")
        return await super().resolve_targets(targeting)


@pytest_asyncio.fixture
async def members(add_contact) -> None:
    await add_contact("ana", phone="+5491112345601", user_type="member")
    await add_contact("ben", phone="+5491112345602", user_type="member")
    await add_contact("cho", phone="+5491112345603", user_type="staff")


@pytest.fixture
def queue(database, clock) -> QueueStore:
    return QueueStore(database, clock=clock)


@pytest.fixture
def directory(database) -> FlakyDirectory:
    return FlakyDirectory(database)


@pytest.fixture
def scheduler(database, queue, directory, clock) -> SchedulerService:
    return SchedulerService(database, queue, directory, clock=clock, retry_delay_minutes=30)


def daily_request(**kwargs) -> ScheduleDefinitionCreate:
    values = {
        "name": "Daily reminder",
        "payload": NotificationPayload(title="Reminder", message="Training at 19:00"),
        "schedule": ScheduleConfig(
            type="recurring",
            frequency="daily",
            time="09:00",
            start_date=datetime(2024, 6, 1, tzinfo=UTC),
        ),
        "targeting": Targeting(user_types=["member"]),
    }
    values.update(kwargs)
    return ScheduleDefinitionCreate(**values)


class TestDefinitions:
    """Tests for defining and managing schedules."""

    @pytest.mark.asyncio
    async def test_define_computes_next_execution(self, scheduler) -> None:
        definition = await scheduler.define_recurring(daily_request())

        assert definition.status == ScheduleStatus.ACTIVE.value
        assert definition.next_execution == TUESDAY_9
        assert definition.execution_count == 0

    @pytest.mark.asyncio
    async def test_define_as_draft(self, scheduler) -> None:
        definition = await scheduler.define_recurring(daily_request(activate=False))

        assert definition.status == ScheduleStatus.DRAFT.value

    @pytest.mark.asyncio
    async def test_once_in_the_past_rejected(self, scheduler) -> None:
        request = daily_request(
            schedule=ScheduleConfig(type="once", start_date=datetime(2024, 6, 1, tzinfo=UTC))
        )

        with pytest.raises(ScheduleValidationError, match="no execution in the future"):
            await scheduler.define_recurring(request)

    @pytest.mark.asyncio
    async def test_template_rendered_at_definition(self, scheduler) -> None:
        template = MessageTemplate(
            name="fees",
            title="Fees due",
            message="Pay {{amount}} before Friday",
            variables=[TemplateVariable(name="amount", type="number")],
        )
        request = daily_request(payload=None, template=template, template_values={"amount": 30})

        definition = await scheduler.define_recurring(request)

        assert definition.payload["message"] == "Pay 30 before Friday"
        assert definition.payload["data"] == {"template": "fees"}

    @pytest.mark.asyncio
    async def test_template_values_validated(self, scheduler) -> None:
        template = MessageTemplate(
            name="fees",
            title="Fees due",
            message="Pay {{amount}}",
            variables=[TemplateVariable(name="amount", type="number")],
        )

        with pytest.raises(TemplateValidationError):
            await scheduler.define_recurring(
                daily_request(payload=None, template=template, template_values={})
            )

    @pytest.mark.asyncio
    async def test_lifecycle_transitions(self, scheduler, clock) -> None:
        definition = await scheduler.define_recurring(daily_request())

        paused = await scheduler.pause(definition.id)
        assert paused.status == ScheduleStatus.PAUSED.value

        clock.advance(days=2)
        resumed = await scheduler.resume(definition.id)
        assert resumed.status == ScheduleStatus.ACTIVE.value
        assert resumed.next_execution == datetime(2024, 6, 6, 9, 0, tzinfo=UTC)

        with pytest.raises(ScheduleStateError, match="Cannot resume schedule in status 'active'"):
            await scheduler.resume(definition.id)

        cancelled = await scheduler.cancel(definition.id)
        assert cancelled.status == ScheduleStatus.CANCELLED.value
        assert cancelled.next_execution is None

        with pytest.raises(ScheduleStateError):
            await scheduler.pause(definition.id)

    @pytest.mark.asyncio
    async def test_update_timing(self, scheduler) -> None:
        definition = await scheduler.define_recurring(daily_request())

        updated = await scheduler.update_schedule(
            definition.id,
            ScheduleUpdate(
                schedule=ScheduleConfig(
                    type="recurring",
                    frequency="weekly",
                    days_of_week=[5],
                    time="18:00",
                    start_date=datetime(2024, 6, 1, tzinfo=UTC),
                ),
                max_executions=4,
            ),
        )

        assert updated.next_execution == datetime(2024, 6, 7, 18, 0, tzinfo=UTC)
        assert updated.max_executions == 4
        assert updated.schedule["frequency"] == "weekly"

    @pytest.mark.asyncio
    async def test_delete_removes_definition_and_history(self, scheduler, members, clock) -> None:
        definition = await scheduler.define_recurring(daily_request())
        clock.now = TUESDAY_9
        await scheduler.tick()

        await scheduler.delete(definition.id)

        with pytest.raises(ScheduleNotFoundError):
            await scheduler.get_definition(definition.id)
        with pytest.raises(ScheduleNotFoundError):
            await scheduler.list_executions(definition.id)

    @pytest.mark.asyncio
    async def test_list_definitions_by_status(self, scheduler, clock) -> None:
        active = await scheduler.define_recurring(daily_request())
        clock.advance(seconds=1)
        draft = await scheduler.define_recurring(daily_request(activate=False))

        assert [d.id for d in await scheduler.list_definitions()] == [draft.id, active.id]
        assert [d.id for d in await scheduler.list_definitions(status="draft")] == [draft.id]


class TestTick:
    """Tests for executing due definitions."""

    @pytest.mark.asyncio
    async def test_nothing_due(self, scheduler, members) -> None:
        await scheduler.define_recurring(daily_request())

        assert await scheduler.tick() == 0

    @pytest.mark.asyncio
    async def test_due_definition_enqueues_targets(self, scheduler, queue, members, clock) -> None:
        definition = await scheduler.define_recurring(daily_request(notification_id="daily"))
        clock.now = TUESDAY_9

        assert await scheduler.tick() == 1

        items = await queue.list_items()
        assert len(items) == 1
        assert items[0].recipient_ids == ["ana", "ben"]
        assert items[0].source == "schedule"
        assert items[0].notification_id == "daily"

        stored = await scheduler.get_definition(definition.id)
        assert stored.execution_count == 1
        assert stored.last_execution == TUESDAY_9
        assert stored.next_execution == TUESDAY_9 + timedelta(days=1)
        assert stored.next_execution > stored.last_execution
        assert stored.total_enqueued == 2

        executions = await scheduler.list_executions(definition.id)
        assert [(e.status, e.target_count, e.queue_item_id) for e in executions] == [
            ("completed", 2, items[0].id)
        ]

    @pytest.mark.asyncio
    async def test_max_executions_completes(self, scheduler, members, clock) -> None:
        definition = await scheduler.define_recurring(daily_request(max_executions=1))
        clock.now = TUESDAY_9

        await scheduler.tick()

        stored = await scheduler.get_definition(definition.id)
        assert stored.status == ScheduleStatus.COMPLETED.value
        assert stored.next_execution is None

    @pytest.mark.asyncio
    async def test_once_schedule_completes(self, scheduler, queue, members, clock) -> None:
        request = daily_request(schedule=ScheduleConfig(type="once", start_date=TUESDAY_9))
        definition = await scheduler.define_recurring(request)
        clock.now = TUESDAY_9 + timedelta(minutes=1)

        await scheduler.tick()
        clock.advance(days=1)
        await scheduler.tick()

        stored = await scheduler.get_definition(definition.id)
        assert stored.status == ScheduleStatus.COMPLETED.value
        assert stored.execution_count == 1
        assert len(await queue.list_items()) == 1

    @pytest.mark.asyncio
    async def test_no_recipients_skips_occurrence(self, scheduler, queue, clock) -> None:
        definition = await scheduler.define_recurring(
            daily_request(targeting=Targeting(recipient_ids=["nobody"]))
        )
        clock.now = TUESDAY_9

        await scheduler.tick()

        stored = await scheduler.get_definition(definition.id)
        assert stored.status == ScheduleStatus.ACTIVE.value
        assert stored.execution_count == 0
        assert stored.next_execution == TUESDAY_9 + timedelta(days=1)
        assert await queue.list_items() == []

    @pytest.mark.asyncio
    async def test_failed_execution_pauses_and_retries(
        self, scheduler, directory, queue, members, clock
    ) -> None:
        definition = await scheduler.define_recurring(daily_request())
        clock.now = TUESDAY_9
        directory.down = True

        assert await scheduler.tick() == 0

        stored = await scheduler.get_definition(definition.id)
        assert stored.status == ScheduleStatus.PAUSED.value
        assert stored.retry_pending is True
        assert stored.next_execution == TUESDAY_9 + timedelta(minutes=30)
        assert stored.last_error == "directory unavailable"
        executions = await scheduler.list_executions(definition.id)
        assert [e.status for e in executions] == ["failed"]

        directory.down = False
        clock.advance(minutes=30)
        assert await scheduler.tick() == 1

        stored = await scheduler.get_definition(definition.id)
        assert stored.status == ScheduleStatus.ACTIVE.value
        assert stored.retry_pending is False
        assert stored.execution_count == 1
        assert len(await queue.list_items()) == 1

    @pytest.mark.asyncio
    async def test_operator_pause_is_not_retried(self, scheduler, directory, members, clock) -> None:
        definition = await scheduler.define_recurring(daily_request())
        clock.now = TUESDAY_9
        directory.down = True
        await scheduler.tick()

        await scheduler.pause(definition.id)
        directory.down = False
        clock.advance(hours=2)

        assert await scheduler.tick() == 0
        assert (await scheduler.get_definition(definition.id)).status == ScheduleStatus.PAUSED.value

    @pytest.mark.asyncio
    async def test_cancel_during_execution_is_kept(
        self, scheduler, directory, queue, members, clock
    ) -> None:
        definition = await scheduler.define_recurring(daily_request())
        clock.now = TUESDAY_9

        async def cancel() -> None:
            await scheduler.cancel(definition.id)

        directory.during_lookup = cancel
        await scheduler.tick()

        stored = await scheduler.get_definition(definition.id)
        assert stored.status == ScheduleStatus.CANCELLED.value
        assert stored.next_execution is None
        assert stored.execution_count == 1
        assert len(await queue.list_items()) == 1

        directory.during_lookup = None
        clock.advance(days=1)
        assert await scheduler.tick() == 0
        assert len(await queue.list_items()) == 1

    @pytest.mark.asyncio
    async def test_pause_during_failed_execution_is_kept(
        self, scheduler, directory, members, clock
    ) -> None:
        definition = await scheduler.define_recurring(daily_request())
        clock.now = TUESDAY_9

        async def pause() -> None:
            await scheduler.pause(definition.id)

        directory.during_lookup = pause
        directory.down = True
        await scheduler.tick()

        stored = await scheduler.get_definition(definition.id)
        assert stored.status == ScheduleStatus.PAUSED.value
        assert stored.retry_pending is False
        assert stored.next_execution == TUESDAY_9
        assert stored.last_error == "directory unavailable"

        directory.during_lookup = None
        directory.down = False
        clock.advance(hours=1)
        assert await scheduler.tick() == 0

    @pytest.mark.asyncio
    async def test_update_keeps_retry_time(self, scheduler, directory, members, clock) -> None:
        definition = await scheduler.define_recurring(daily_request())
        clock.now = TUESDAY_9
        directory.down = True
        await scheduler.tick()

        updated = await scheduler.update_schedule(
            definition.id,
            ScheduleUpdate(schedule=ScheduleConfig.model_validate(definition.schedule)),
        )

        assert updated.next_execution == TUESDAY_9 + timedelta(minutes=30)

    @pytest.mark.asyncio
    async def test_stats(self, scheduler, clock) -> None:
        await scheduler.define_recurring(daily_request())
        await scheduler.define_recurring(daily_request(activate=False))
        weekly = await scheduler.define_recurring(
            daily_request(
                name="Weekly digest",
                schedule=ScheduleConfig(
                    type="recurring",
                    frequency="weekly",
                    days_of_week=[0],
                    start_date=datetime(2024, 6, 1, tzinfo=UTC),
                ),
            )
        )

        stats = await scheduler.get_stats()

        assert stats.total == 3
        assert stats.active == 2
        assert stats.draft == 1
        assert [u.name for u in stats.upcoming_24h] == ["Daily reminder"]
        assert stats.upcoming_week == 2
        assert weekly.next_execution == datetime(2024, 6, 9, 9, 0, tzinfo=UTC)
