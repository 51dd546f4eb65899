# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Per-channel fallback router.

The router holds the adapters of one channel ordered by priority (free and
self-hosted providers first, metered ones last) and tries them in turn
until one accepts the message.

Example:
    router = FallbackRouter(ChannelType.CHAT, [green_api, callmebot, twilio])
    result = await router.send("5491112345678", "Hello", title="Reminder")
    if result.success:
        print(result.provider_used, result.fallback_used)
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable

from notiflow.infrastructure.notifications.channels.base import (
    ChannelType,
    ProviderStatus,
    SendOutcome,
    TransportAdapter,
)

logger = logging.getLogger(__name__)


@dataclass
class RouteResult:
    """Outcome of routing one message through a channel.

    Attributes:
        channel: Channel the message was routed on.
        success: Whether any provider accepted the message.
        provider_used: Name of the provider that delivered it.
        provider_message_id: ID returned by that provider.
        fallback_used: True when a provider other than the first was used.
        channel_unavailable: True whenever the channel as a whole failed.
        not_configured: True when no provider was configured and available,
            which retrying cannot fix.
        error: Channel-level error summary on failure.
        attempts: Per-provider outcomes in the order they were tried.
        cost: Cost reported by the delivering provider.
    """

    channel: ChannelType
    success: bool
    provider_used: str | None = None
    provider_message_id: str | None = None
    fallback_used: bool = False
    channel_unavailable: bool = False
    not_configured: bool = False
    error: str | None = None
    attempts: list[SendOutcome] = field(default_factory=list)
    cost: float = 0.0

    @property
    def errors(self) -> list[str]:
        """Errors reported by each failed provider."""
        return [f"{a.provider}: {a.error}" for a in self.attempts if not a.success]

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON storage."""
        return {
            "channel": self.channel.value,
            "success": self.success,
            "provider_used": self.provider_used,
            "provider_message_id": self.provider_message_id,
            "fallback_used": self.fallback_used,
            "channel_unavailable": self.channel_unavailable,
            "not_configured": self.not_configured,
            "error": self.error,
            "errors": self.errors,
            "cost": self.cost,
        }


class FallbackRouter:
    """Tries the adapters of one channel in priority order."""

    def __init__(self, channel: ChannelType, adapters: Iterable[TransportAdapter]) -> None:
        """Initialize the router.

        Args:
            channel: Channel this router serves.
            adapters: Adapters for the channel, in any order.

        Raises:
            ValueError: If an adapter belongs to a different channel.
        """
        self.channel = channel
        self._adapters = sorted(adapters, key=lambda a: a.priority)
        for adapter in self._adapters:
            if adapter.channel != channel:
                raise ValueError(
                    f"Adapter {adapter.name} serves {adapter.channel.value}, not {channel.value}"
                )

    @property
    def adapters(self) -> list[TransportAdapter]:
        """All adapters in priority order."""
        return list(self._adapters)

    def usable_adapters(self) -> list[TransportAdapter]:
        """Adapters that are both configured and available, in priority order."""
        return [a for a in self._adapters if a.is_configured() and a.is_available()]

    def has_configured_provider(self) -> bool:
        """Check whether at least one adapter is configured."""
        return any(a.is_configured() for a in self._adapters)

    async def send(self, to: str, message: str, title: str | None = None) -> RouteResult:
        """Deliver a message through the first provider that succeeds.

        Args:
            to: Channel-specific address.
            message: Message body.
            title: Optional subject or heading.

        Returns:
            RouteResult naming the provider used, or the aggregated failure.
        """
        usable = self.usable_adapters()
        if not usable:
            logger.warning("No %s providers available", self.channel.value)
            return RouteResult(
                channel=self.channel,
                success=False,
                channel_unavailable=True,
                not_configured=True,
                error=f"{self.channel.value} channel unavailable: no providers available",
            )

        attempts: list[SendOutcome] = []
        for index, adapter in enumerate(usable):
            outcome = await adapter.send(to, message, title)
            attempts.append(outcome)

            if outcome.success:
                if index > 0:
                    logger.info(
                        "%s delivered via fallback provider %s after %d failure(s)",
                        self.channel.value,
                        adapter.name,
                        index,
                    )
                return RouteResult(
                    channel=self.channel,
                    success=True,
                    provider_used=adapter.name,
                    provider_message_id=outcome.provider_message_id,
                    fallback_used=index > 0,
                    attempts=attempts,
                    cost=outcome.cost,
                )

            logger.warning(
                "%s provider %s failed: %s",
                self.channel.value,
                adapter.name,
                outcome.error,
            )

        result = RouteResult(
            channel=self.channel,
            success=False,
            channel_unavailable=True,
            attempts=attempts,
        )
        result.error = f"{self.channel.value} channel unavailable: all providers failed"
        logger.warning("%s (%s)", result.error, "; ".join(result.errors))
        return result

    async def list_providers(self) -> list[ProviderStatus]:
        """Describe every adapter for operator visibility."""
        return [await adapter.describe() for adapter in self._adapters]

    async def aclose(self) -> None:
        """Release adapter resources."""
        for adapter in self._adapters:
            await adapter.aclose()
