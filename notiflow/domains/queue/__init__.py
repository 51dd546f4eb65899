# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Persisted notification queue and its processor."""

from notiflow.domains.queue.processor import QueueProcessor
from notiflow.domains.queue.store import (
    InvalidTransitionError,
    QueueError,
    QueueItemNotFoundError,
    QueueStore,
    backoff_delay,
)

__all__ = [
    "InvalidTransitionError",
    "QueueError",
    "QueueItemNotFoundError",
    "QueueProcessor",
    "QueueStore",
    "backoff_delay",
]
