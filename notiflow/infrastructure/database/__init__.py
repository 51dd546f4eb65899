# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Persistence layer for the queue store, schedules and in-app inbox."""

from notiflow.infrastructure.database.connection import Database, DatabaseError

__all__ = ["Database", "DatabaseError"]
