# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Schedule, targeting and trigger models."""

import re
from datetime import datetime, timezone
from typing import Any, Literal, Self
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from notiflow.infrastructure.notifications.templates import MessageTemplate
from notiflow.models.notification import NotificationPayload

_TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")

Frequency = Literal["daily", "weekly", "monthly", "yearly"]


class ScheduleConfig(BaseModel):
    """Timing of a schedule definition.

    Naive start and end dates are read as wall-clock times in the
    schedule's timezone; all dates are stored as UTC.

    Attributes:
        type: 'once' fires at start_date; 'recurring' repeats.
        start_date: First eligible instant.
        end_date: Last eligible instant for recurring schedules.
        frequency: Recurrence unit.
        interval: Every N units, counted from start_date.
        days_of_week: Weekly days, 0 = Sunday through 6 = Saturday.
        day_of_month: Monthly/yearly day; clamped to the month's last day.
        month: Yearly month; defaults to start_date's month.
        time: Wall-clock time of day as HH:MM.
        timezone: IANA timezone for wall-clock arithmetic.
    """

    type: Literal["once", "recurring"] = "once"
    start_date: datetime
    end_date: datetime | None = None
    frequency: Frequency | None = None
    interval: int = Field(default=1, ge=1, le=366)
    days_of_week: list[int] = Field(default_factory=list)
    day_of_month: int | None = Field(default=None, ge=1, le=31)
    month: int | None = Field(default=None, ge=1, le=12)
    time: str = "09:00"
    timezone: str = "UTC"

    @field_validator("time")
    @classmethod
    def validate_time(cls, value: str) -> str:
        if not _TIME_PATTERN.match(value):
            raise ValueError("time must be HH:MM (24-hour)")
        return value

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone: {value}") from e
        return value

    @field_validator("days_of_week")
    @classmethod
    def validate_days_of_week(cls, value: list[int]) -> list[int]:
        if any(day < 0 or day > 6 for day in value):
            raise ValueError("days_of_week entries must be between 0 (Sunday) and 6 (Saturday)")
        return sorted(set(value))

    @model_validator(mode="after")
    def normalize_dates(self) -> Self:
        """Localize naive dates and check the recurrence is complete."""
        zone = ZoneInfo(self.timezone)
        self.start_date = _to_utc(self.start_date, zone)
        if self.end_date is not None:
            self.end_date = _to_utc(self.end_date, zone)
            if self.end_date <= self.start_date:
                raise ValueError("end_date must be after start_date")

        if self.type == "recurring" and self.frequency is None:
            raise ValueError("Recurring schedules require a frequency")
        return self

    @property
    def hour(self) -> int:
        return int(self.time[:2])

    @property
    def minute(self) -> int:
        return int(self.time[3:])

    @property
    def zone(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)


def _to_utc(value: datetime, zone: ZoneInfo) -> datetime:
    if value.tzinfo is None:
        value = value.replace(tzinfo=zone)
    return value.astimezone(timezone.utc)


class Targeting(BaseModel):
    """Recipient selection criteria, resolved at execution time.

    Attributes:
        user_types: Directory user types to include; 'all' selects everyone.
        groups: Directory groups to include.
        recipient_ids: Explicit recipients to include.
        exclude_ids: Recipients removed from the final selection.
    """

    user_types: list[str] = Field(default_factory=list)
    groups: list[str] = Field(default_factory=list)
    recipient_ids: list[str] = Field(default_factory=list)
    exclude_ids: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def require_criterion(self) -> Self:
        if not (self.user_types or self.groups or self.recipient_ids):
            raise ValueError("Targeting needs user_types, groups or recipient_ids")
        return self


class ScheduleDefinitionCreate(BaseModel):
    """Request to define a scheduled notification.

    Exactly one of payload or template must be given. A template is
    rendered once, at definition time, with template_values.
    """

    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    notification_id: str | None = Field(default=None, max_length=100)
    payload: NotificationPayload | None = None
    template: MessageTemplate | None = None
    template_values: dict[str, Any] = Field(default_factory=dict)
    schedule: ScheduleConfig
    targeting: Targeting
    max_executions: int | None = Field(default=None, ge=1)
    max_attempts: int = Field(default=3, ge=1, le=20)
    activate: bool = True
    created_by: str = "system"

    @model_validator(mode="after")
    def require_content(self) -> Self:
        if (self.payload is None) == (self.template is None):
            raise ValueError("Provide exactly one of payload or template")
        return self


class ScheduleUpdate(BaseModel):
    """Replace the timing of an existing definition."""

    schedule: ScheduleConfig
    max_executions: int | None = Field(default=None, ge=1)


class ScheduleDefinitionResponse(BaseModel):
    """Read model of a schedule definition."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    description: str | None = None
    notification_id: str | None = None
    payload: dict[str, Any]
    schedule: dict[str, Any]
    targeting: dict[str, Any]
    status: str
    next_execution: datetime | None = None
    last_execution: datetime | None = None
    execution_count: int
    max_executions: int | None = None
    retry_pending: bool = False
    last_error: str | None = None
    total_enqueued: int = 0
    created_at: datetime
    updated_at: datetime


class ScheduleExecutionResponse(BaseModel):
    """Read model of one schedule execution."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    definition_id: str
    queue_item_id: str | None = None
    target_count: int
    status: str
    error: str | None = None
    executed_at: datetime


class UpcomingExecution(BaseModel):
    """A definition due within a reporting window."""

    definition_id: str
    name: str
    next_execution: datetime


class SchedulerStats(BaseModel):
    """Schedule counts per status and upcoming work."""

    total: int = 0
    draft: int = 0
    active: int = 0
    paused: int = 0
    completed: int = 0
    cancelled: int = 0
    upcoming_24h: list[UpcomingExecution] = Field(default_factory=list)
    upcoming_week: int = 0


ConditionOperator = Literal["equals", "not_equals", "greater_than", "less_than", "contains"]


class TriggerCondition(BaseModel):
    """Condition evaluated against the event data."""

    field: str = Field(..., min_length=1)
    operator: ConditionOperator
    value: Any = None


class TriggerCreate(BaseModel):
    """Request to define an event trigger."""

    name: str = Field(..., min_length=1, max_length=255)
    event: str = Field(..., min_length=1, max_length=100)
    conditions: list[TriggerCondition] = Field(default_factory=list)
    payload: NotificationPayload
    targeting: Targeting | None = None
    delay_minutes: int = Field(default=0, ge=0)
    is_active: bool = True


class TriggerResponse(BaseModel):
    """Read model of an event trigger."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    event: str
    conditions: list[dict[str, Any]]
    payload: dict[str, Any]
    targeting: dict[str, Any]
    delay_minutes: int
    is_active: bool
    total_triggers: int
    last_triggered: datetime | None = None


class FireTriggerRequest(BaseModel):
    """Event occurrence submitted to a trigger."""

    event_data: dict[str, Any] = Field(default_factory=dict)
    user_id: str | None = None


class FireTriggerResponse(BaseModel):
    """Result of firing a trigger."""

    fired: bool
    queue_item_id: str | None = None
    reason: str | None = None
