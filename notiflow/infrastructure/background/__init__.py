# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Background timers for the notification pipeline."""

from notiflow.infrastructure.background.scheduler import JobScheduler, ScheduledJob

__all__ = ["JobScheduler", "ScheduledJob"]
