# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Event triggers: notifications sent when an application event occurs.

A trigger names an event, optional conditions over the event data, the
payload to send and who receives it. Firing a trigger enqueues through
the queue store, immediately or after the trigger's delay.
"""

import logging
from datetime import timedelta
from typing import Any

from sqlalchemy import select

from notiflow.core.exceptions import NotiflowError
from notiflow.domains.queue.store import QueueStore
from notiflow.domains.recipients.directory import TargetResolver
from notiflow.infrastructure.database.connection import Database
from notiflow.infrastructure.database.models import TriggerDefinition
from notiflow.models.notification import NotificationPayload
from notiflow.models.schedule import (
    FireTriggerResponse,
    Targeting,
    TriggerCondition,
    TriggerCreate,
)
from notiflow.utils.datetime import Clock, utc_now

logger = logging.getLogger(__name__)


class TriggerNotFoundError(NotiflowError):
    """Raised when a trigger does not exist."""

    pass


def _lookup(data: dict[str, Any], path: str) -> Any:
    """Resolve a dotted path such as 'order.total' in nested event data."""
    value: Any = data
    for part in path.split("."):
        if not isinstance(value, dict) or part not in value:
            return None
        value = value[part]
    return value


def _as_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def evaluate_condition(condition: TriggerCondition, event_data: dict[str, Any]) -> bool:
    """Evaluate one condition against event data.

    Comparison operators require both sides to be numeric; a missing
    field or non-numeric value never matches them.
    """
    actual = _lookup(event_data, condition.field)
    expected = condition.value

    if condition.operator == "equals":
        return actual == expected
    if condition.operator == "not_equals":
        return actual != expected
    if condition.operator == "contains":
        if isinstance(actual, str):
            return str(expected) in actual
        if isinstance(actual, (list, tuple, set)):
            return expected in actual
        return False

    left, right = _as_number(actual), _as_number(expected)
    if left is None or right is None:
        return False
    if condition.operator == "greater_than":
        return left > right
    return left < right


def conditions_met(conditions: list[TriggerCondition], event_data: dict[str, Any]) -> bool:
    """Whether every condition holds; no conditions always match."""
    return all(evaluate_condition(c, event_data) for c in conditions)


class TriggerService:
    """Stores triggers and fires them into the queue."""

    def __init__(
        self,
        database: Database,
        queue: QueueStore,
        targets: TargetResolver,
        clock: Clock = utc_now,
    ) -> None:
        self._database = database
        self._queue = queue
        self._targets = targets
        self._clock = clock

    async def create_trigger(self, request: TriggerCreate) -> TriggerDefinition:
        now = self._clock()
        trigger = TriggerDefinition(
            name=request.name,
            event=request.event,
            conditions=[c.model_dump(mode="json") for c in request.conditions],
            payload=request.payload.model_dump(mode="json"),
            targeting=request.targeting.model_dump(mode="json") if request.targeting else {},
            delay_minutes=request.delay_minutes,
            is_active=request.is_active,
            total_triggers=0,
            created_at=now,
            updated_at=now,
        )
        async with self._database.session() as session:
            session.add(trigger)
            await session.flush()

        logger.info("Created trigger %s for event %s", trigger.id, trigger.event)
        return trigger

    async def get_trigger(self, trigger_id: str) -> TriggerDefinition:
        async with self._database.session() as session:
            trigger = await session.get(TriggerDefinition, trigger_id)
        if trigger is None:
            raise TriggerNotFoundError(f"Trigger {trigger_id} not found")
        return trigger

    async def list_triggers(
        self, event: str | None = None, active_only: bool = False
    ) -> list[TriggerDefinition]:
        query = select(TriggerDefinition)
        if event:
            query = query.where(TriggerDefinition.event == event)
        if active_only:
            query = query.where(TriggerDefinition.is_active.is_(True))
        query = query.order_by(TriggerDefinition.created_at, TriggerDefinition.id)

        async with self._database.session() as session:
            result = await session.execute(query)
            return list(result.scalars().all())

    async def set_active(self, trigger_id: str, is_active: bool) -> TriggerDefinition:
        async with self._database.session() as session:
            trigger = await session.get(TriggerDefinition, trigger_id)
            if trigger is None:
                raise TriggerNotFoundError(f"Trigger {trigger_id} not found")
            trigger.is_active = is_active
            trigger.updated_at = self._clock()
        return trigger

    async def fire_trigger(
        self,
        trigger_id: str,
        event_data: dict[str, Any],
        user_id: str | None = None,
    ) -> FireTriggerResponse:
        """Fire one trigger for an event occurrence.

        Args:
            trigger_id: Trigger to fire.
            event_data: Data the conditions are evaluated against.
            user_id: Recipient of the notification; when omitted the
                trigger's targeting selects recipients.

        Returns:
            Whether the trigger fired and the queue item it created.

        Raises:
            TriggerNotFoundError: If the trigger does not exist.
        """
        trigger = await self.get_trigger(trigger_id)
        if not trigger.is_active:
            return FireTriggerResponse(fired=False, reason="Trigger is inactive")

        conditions = [TriggerCondition.model_validate(c) for c in trigger.conditions]
        if not conditions_met(conditions, event_data):
            logger.debug("Trigger %s conditions not met", trigger_id)
            return FireTriggerResponse(fired=False, reason="Conditions not met")

        if user_id:
            recipient_ids = [user_id]
        elif trigger.targeting:
            recipient_ids = await self._targets.resolve_targets(
                Targeting.model_validate(trigger.targeting)
            )
        else:
            recipient_ids = []
        if not recipient_ids:
            return FireTriggerResponse(fired=False, reason="No recipients")

        now = self._clock()
        payload = NotificationPayload.model_validate(trigger.payload)
        scheduled_for = (
            now + timedelta(minutes=trigger.delay_minutes) if trigger.delay_minutes else None
        )
        queue_item_id = await self._queue.enqueue(
            f"trigger-{trigger.id}",
            recipient_ids,
            payload,
            scheduled_for=scheduled_for,
            source="trigger",
        )

        async with self._database.session() as session:
            stored = await session.get(TriggerDefinition, trigger_id)
            if stored is not None:
                stored.total_triggers += 1
                stored.last_triggered = now

        logger.info(
            "Trigger %s fired for %d recipient(s), queue item %s",
            trigger_id,
            len(recipient_ids),
            queue_item_id,
        )
        return FireTriggerResponse(fired=True, queue_item_id=queue_item_id)

    async def fire_event(
        self,
        event: str,
        event_data: dict[str, Any],
        user_id: str | None = None,
    ) -> list[FireTriggerResponse]:
        """Fire every active trigger registered for an event."""
        triggers = await self.list_triggers(event=event, active_only=True)
        return [await self.fire_trigger(t.id, event_data, user_id) for t in triggers]
