# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""SQLAlchemy models for Notiflow.

Importing this package registers every table on Base.metadata.
"""

from notiflow.infrastructure.database.models.base import Base, TimestampMixin, UTCDateTime
from notiflow.infrastructure.database.models.notification import Contact, InAppNotification
from notiflow.infrastructure.database.models.queue import QueueItem, QueueStatus
from notiflow.infrastructure.database.models.schedule import (
    ScheduleDefinition,
    ScheduleExecution,
    ScheduleStatus,
    TriggerDefinition,
)

__all__ = [
    "Base",
    "Contact",
    "InAppNotification",
    "QueueItem",
    "QueueStatus",
    "ScheduleDefinition",
    "ScheduleExecution",
    "ScheduleStatus",
    "TimestampMixin",
    "TriggerDefinition",
    "UTCDateTime",
]
