# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Recurring schedule, execution log and event trigger tables."""

from datetime import datetime
from enum import Enum
from typing import Any

from sqlalchemy import Boolean, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from notiflow.infrastructure.database.models.base import (
    Base,
    JSONType,
    TimestampMixin,
    UTCDateTime,
    new_id,
)
from notiflow.utils.datetime import utc_now


class ScheduleStatus(str, Enum):
    """Lifecycle states of a schedule definition."""

    DRAFT = "draft"
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ScheduleDefinition(Base, TimestampMixin):
    """A recurring or one-off notification schedule."""

    __tablename__ = "schedule_definitions"
    __table_args__ = (
        Index("idx_schedule_definitions_due", "status", "next_execution"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    notification_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    payload: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False)
    schedule: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False)
    targeting: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ScheduleStatus.DRAFT.value
    )
    next_execution: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    last_execution: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    execution_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_executions: Mapped[int | None] = mapped_column(Integer, nullable=True)
    max_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=3)

    retry_pending: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    total_enqueued: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_by: Mapped[str] = mapped_column(String(100), nullable=False, default="system")


class ScheduleExecution(Base):
    """One executed occurrence of a schedule definition."""

    __tablename__ = "schedule_executions"
    __table_args__ = (
        Index("idx_schedule_executions_definition", "definition_id", "executed_at"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    definition_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("schedule_definitions.id", ondelete="CASCADE"),
        nullable=False,
    )
    queue_item_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    target_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    executed_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utc_now)


class TriggerDefinition(Base, TimestampMixin):
    """Event-driven notification rule."""

    __tablename__ = "notification_triggers"
    __table_args__ = (
        Index("idx_notification_triggers_event", "event", "is_active"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    event: Mapped[str] = mapped_column(String(100), nullable=False)
    conditions: Mapped[list[Any]] = mapped_column(JSONType, nullable=False, default=list)
    payload: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False)
    targeting: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    delay_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    total_triggers: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_triggered: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
