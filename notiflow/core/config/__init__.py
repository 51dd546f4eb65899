# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Configuration package for Notiflow.

Example:
    >>> from notiflow.core.config import get_settings
    >>> settings = get_settings()
    >>> settings.environment
    'development'
"""

from notiflow.core.config.settings import (
    APISettings,
    CallMeBotSettings,
    DatabaseSettings,
    DeliverySettings,
    GreenAPISettings,
    MetaWhatsAppSettings,
    QueueSettings,
    ResendSettings,
    SchedulerSettings,
    SendGridSettings,
    Settings,
    SMTPSettings,
    TwilioSettings,
    clear_settings_cache,
    get_settings,
)

__all__ = [
    "APISettings",
    "CallMeBotSettings",
    "DatabaseSettings",
    "DeliverySettings",
    "GreenAPISettings",
    "MetaWhatsAppSettings",
    "QueueSettings",
    "ResendSettings",
    "SchedulerSettings",
    "SendGridSettings",
    "Settings",
    "SMTPSettings",
    "TwilioSettings",
    "clear_settings_cache",
    "get_settings",
]
