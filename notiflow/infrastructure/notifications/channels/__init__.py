# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Transport adapters for each delivery channel.

Chat: GreenAPIChannel, CallMeBotChannel, MetaWhatsAppChannel, TwilioChannel
Email: EmailChannel (SMTP), ResendChannel, SendGridChannel
In-app: InAppChannel
"""

from notiflow.infrastructure.notifications.channels.addressing import (
    InvalidAddressError,
    normalize_chat_address,
)
from notiflow.infrastructure.notifications.channels.base import (
    ChannelType,
    CostTier,
    ProviderStatus,
    SendOutcome,
    TransportAdapter,
)
from notiflow.infrastructure.notifications.channels.callmebot import CallMeBotChannel
from notiflow.infrastructure.notifications.channels.email import EmailChannel, is_valid_email
from notiflow.infrastructure.notifications.channels.green_api import GreenAPIChannel
from notiflow.infrastructure.notifications.channels.in_app import InAppChannel
from notiflow.infrastructure.notifications.channels.meta_whatsapp import MetaWhatsAppChannel
from notiflow.infrastructure.notifications.channels.resend import ResendChannel
from notiflow.infrastructure.notifications.channels.sendgrid import SendGridChannel
from notiflow.infrastructure.notifications.channels.twilio import TwilioChannel

__all__ = [
    "CallMeBotChannel",
    "ChannelType",
    "CostTier",
    "EmailChannel",
    "GreenAPIChannel",
    "InAppChannel",
    "InvalidAddressError",
    "MetaWhatsAppChannel",
    "ProviderStatus",
    "ResendChannel",
    "SendGridChannel",
    "SendOutcome",
    "TransportAdapter",
    "TwilioChannel",
    "is_valid_email",
    "normalize_chat_address",
]
