# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Pydantic request, response and value models.

Modules:
    notification: NotificationPayload and Recipient.
    queue: Enqueue options, queue item views and statistics.
    schedule: Schedule timing, targeting, definitions and triggers.
"""
