# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Recurring schedules and event triggers."""

from notiflow.domains.scheduling.recurrence import compute_next
from notiflow.domains.scheduling.service import (
    ScheduleError,
    ScheduleNotFoundError,
    SchedulerService,
    ScheduleStateError,
    ScheduleValidationError,
)
from notiflow.domains.scheduling.triggers import (
    TriggerNotFoundError,
    TriggerService,
    conditions_met,
    evaluate_condition,
)

__all__ = [
    "ScheduleError",
    "ScheduleNotFoundError",
    "ScheduleStateError",
    "ScheduleValidationError",
    "SchedulerService",
    "TriggerNotFoundError",
    "TriggerService",
    "compute_next",
    "conditions_met",
    "evaluate_condition",
]
