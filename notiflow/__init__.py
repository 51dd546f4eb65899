# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Notiflow: asynchronous multi-channel notification delivery.

Notiflow accepts notification work, persists it in a queue store and
delivers it through a cost-aware chain of chat, email and in-app
providers. A recurring schedule engine feeds the same queue.

Example:
    >>> from notiflow.core.config import get_settings
    >>> from notiflow.pipeline import NotificationPipeline
    >>> pipeline = NotificationPipeline.from_settings(get_settings())
    >>> await pipeline.start()
"""

__version__ = "0.1.0"
