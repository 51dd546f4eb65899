# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Build the provider chains and the hybrid coordinator from settings."""

import logging

import httpx

from notiflow.core.config.settings import Settings
from notiflow.infrastructure.database.connection import Database
from notiflow.infrastructure.notifications.channels import (
    CallMeBotChannel,
    ChannelType,
    EmailChannel,
    GreenAPIChannel,
    InAppChannel,
    MetaWhatsAppChannel,
    ResendChannel,
    SendGridChannel,
    TwilioChannel,
)
from notiflow.infrastructure.notifications.hybrid import HybridDeliveryCoordinator
from notiflow.infrastructure.notifications.router import FallbackRouter

logger = logging.getLogger(__name__)


def build_routers(
    settings: Settings,
    client: httpx.AsyncClient | None = None,
) -> dict[ChannelType, FallbackRouter]:
    """Create one fallback router per network channel.

    Args:
        settings: Application settings with provider credentials.
        client: Optional HTTP client shared by every HTTP provider.

    Returns:
        Router per channel with every known provider registered.
        Unconfigured providers are kept so operators can see them.
    """
    timeout = settings.delivery.request_timeout_seconds

    chat = FallbackRouter(
        ChannelType.CHAT,
        [
            GreenAPIChannel(settings.green_api, timeout=timeout, client=client),
            CallMeBotChannel(settings.callmebot, timeout=timeout, client=client),
            MetaWhatsAppChannel(settings.meta_whatsapp, timeout=timeout, client=client),
            TwilioChannel(settings.twilio, timeout=timeout, client=client),
        ],
    )
    email = FallbackRouter(
        ChannelType.EMAIL,
        [
            EmailChannel(settings.smtp, timeout=timeout),
            ResendChannel(settings.resend, timeout=timeout, client=client),
            SendGridChannel(settings.sendgrid, timeout=timeout, client=client),
        ],
    )

    for router in (chat, email):
        configured = [a.name for a in router.adapters if a.is_configured()]
        if configured:
            logger.info("%s providers configured: %s", router.channel.value, ", ".join(configured))
        else:
            logger.warning("No %s providers configured", router.channel.value)

    return {ChannelType.CHAT: chat, ChannelType.EMAIL: email}


def build_coordinator(
    settings: Settings,
    database: Database,
    routers: dict[ChannelType, FallbackRouter] | None = None,
) -> HybridDeliveryCoordinator:
    """Create the hybrid coordinator with its in-app floor.

    Args:
        settings: Application settings.
        database: Database holding the in-app inbox.
        routers: Prebuilt routers; built from settings when omitted.

    Returns:
        Configured HybridDeliveryCoordinator.
    """
    delivery = settings.delivery
    return HybridDeliveryCoordinator(
        routers=routers if routers is not None else build_routers(settings),
        in_app=InAppChannel(database, expiration_days=delivery.in_app_expiration_days),
        enable_email_fallback=delivery.enable_email_fallback,
        enable_in_app_floor=delivery.enable_in_app_floor,
        default_country_prefix=delivery.default_country_prefix,
        bulk_batch_size=delivery.bulk_batch_size,
        stagger_seconds=delivery.stagger_seconds,
        batch_delay_seconds=delivery.batch_delay_seconds,
    )
