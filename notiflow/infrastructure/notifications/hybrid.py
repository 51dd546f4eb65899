# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Hybrid delivery coordinator.

Delivers one logical notification to one recipient across channels:

1. The chat channel is tried first through its fallback router.
2. On total chat failure, and only if the recipient has an email address,
   the email channel is tried with a note that the message is a fallback
   copy.
3. If every network channel failed, an in-app record is written. This is
   a local write, so it is the delivery floor for any resolvable
   recipient.

Failures are classified so the queue processor can decide between
retrying, failing terminally and recording a per-recipient error.

Example:
    coordinator = HybridDeliveryCoordinator(
        routers={ChannelType.CHAT: chat_router, ChannelType.EMAIL: email_router},
        in_app=in_app_channel,
    )
    result = await coordinator.deliver(recipient, payload)
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Sequence

from notiflow.infrastructure.notifications.channels.addressing import (
    InvalidAddressError,
    normalize_chat_address,
)
from notiflow.infrastructure.notifications.channels.base import ChannelType
from notiflow.infrastructure.notifications.channels.email import is_valid_email
from notiflow.infrastructure.notifications.channels.in_app import InAppChannel
from notiflow.infrastructure.notifications.router import FallbackRouter, RouteResult
from notiflow.models.notification import NotificationPayload, Recipient

logger = logging.getLogger(__name__)

NETWORK_CHANNEL_ORDER = (ChannelType.CHAT, ChannelType.EMAIL)

FALLBACK_NOTES = {
    ChannelType.EMAIL: "You are receiving this by email because it could not be delivered by chat.",
    ChannelType.CHAT: "You are receiving this by chat because it could not be delivered by email.",
    ChannelType.IN_APP: "This message could not be delivered by chat or email.",
}

Sleep = Callable[[float], Awaitable[None]]


class FailureKind(str, Enum):
    """Why a delivery failed."""

    TRANSIENT = "transient"
    CONFIGURATION = "configuration"
    RECIPIENT_DATA = "recipient_data"


@dataclass
class ChannelAttempt:
    """One channel tried for one recipient."""

    channel: ChannelType
    success: bool
    provider: str | None = None
    fallback_used: bool = False
    error: str | None = None
    kind: FailureKind | None = None
    cost: float = 0.0

    @classmethod
    def from_route(cls, route: RouteResult) -> "ChannelAttempt":
        if route.success:
            kind = None
        elif route.not_configured:
            kind = FailureKind.CONFIGURATION
        else:
            kind = FailureKind.TRANSIENT
        return cls(
            channel=route.channel,
            success=route.success,
            provider=route.provider_used,
            fallback_used=route.fallback_used,
            error=route.error if not route.success else None,
            kind=kind,
            cost=route.cost,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "channel": self.channel.value,
            "success": self.success,
            "provider": self.provider,
            "fallback_used": self.fallback_used,
            "error": self.error,
            "kind": self.kind.value if self.kind else None,
            "cost": self.cost,
        }


@dataclass
class DeliveryResult:
    """Outcome of delivering one notification to one recipient.

    Attributes:
        recipient_id: Recipient the result belongs to.
        success: Whether any channel (including the floor) delivered it.
        channel: Channel that delivered it.
        provider_used: Provider that delivered it.
        fallback_used: True when the delivering provider or channel was not
            the first choice.
        floor_used: True when only the in-app floor succeeded.
        error: Summary of the failure when success is False.
        error_kind: Classification of the failure.
        attempts: Every channel tried, in order.
        cost: Cost reported by the delivering provider.
    """

    recipient_id: str
    success: bool
    channel: ChannelType | None = None
    provider_used: str | None = None
    fallback_used: bool = False
    floor_used: bool = False
    error: str | None = None
    error_kind: FailureKind | None = None
    attempts: list[ChannelAttempt] = field(default_factory=list)
    cost: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON storage."""
        return {
            "success": self.success,
            "channel": self.channel.value if self.channel else None,
            "provider": self.provider_used,
            "fallback_used": self.fallback_used,
            "floor_used": self.floor_used,
            "error": self.error,
            "error_kind": self.error_kind.value if self.error_kind else None,
            "attempts": [a.to_dict() for a in self.attempts],
            "cost": self.cost,
        }


@dataclass
class BulkDeliveryResult:
    """Aggregated outcome of a bulk send."""

    results: list[DeliveryResult] = field(default_factory=list)

    @property
    def success_count(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failure_count(self) -> int:
        return sum(1 for r in self.results if not r.success)

    @property
    def total_cost(self) -> float:
        return round(sum(r.cost for r in self.results), 6)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success_count": self.success_count,
            "failure_count": self.failure_count,
            "total_cost": self.total_cost,
            "results": {r.recipient_id: r.to_dict() for r in self.results},
        }


class HybridDeliveryCoordinator:
    """Cross-channel delivery with a guaranteed in-app floor."""

    def __init__(
        self,
        routers: dict[ChannelType, FallbackRouter],
        in_app: InAppChannel | None = None,
        enable_email_fallback: bool = True,
        enable_in_app_floor: bool = True,
        default_country_prefix: str = "",
        bulk_batch_size: int = 10,
        stagger_seconds: float = 0.2,
        batch_delay_seconds: float = 1.0,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        """Initialize the coordinator.

        Args:
            routers: Fallback router per network channel.
            in_app: In-app channel used for in-app delivery and the floor.
            enable_email_fallback: Allow email as a secondary channel.
            enable_in_app_floor: Write an in-app record when all else fails.
            default_country_prefix: Prefix for local chat numbers.
            bulk_batch_size: Deliveries per concurrent sub-batch.
            stagger_seconds: Delay step between sends in a sub-batch.
            batch_delay_seconds: Pause between sub-batches.
            sleep: Awaitable sleep, replaceable in tests.
        """
        self._routers = routers
        self._in_app = in_app
        self._enable_email_fallback = enable_email_fallback
        self._enable_in_app_floor = enable_in_app_floor
        self._default_country_prefix = default_country_prefix
        self._bulk_batch_size = max(1, bulk_batch_size)
        self._stagger_seconds = stagger_seconds
        self._batch_delay_seconds = batch_delay_seconds
        self._sleep = sleep

    @property
    def routers(self) -> dict[ChannelType, FallbackRouter]:
        return dict(self._routers)

    @property
    def in_app(self) -> InAppChannel | None:
        return self._in_app

    def can_deliver(self, channels: Sequence[ChannelType]) -> bool:
        """Check whether any requested channel has a configured provider."""
        for channel in channels:
            if channel == ChannelType.IN_APP and self._in_app is not None:
                return True
            router = self._routers.get(channel)
            if router is not None and router.has_configured_provider():
                return True
        return False

    def _address_for(self, channel: ChannelType, recipient: Recipient) -> str:
        """Return the recipient's address for a network channel.

        Raises:
            InvalidAddressError: If the recipient has no usable address.
        """
        if channel == ChannelType.CHAT:
            if not recipient.chat_address:
                raise InvalidAddressError("Recipient has no chat address")
            return normalize_chat_address(recipient.chat_address, self._default_country_prefix)

        if not is_valid_email(recipient.email):
            raise InvalidAddressError("Recipient has no valid email address")
        return recipient.email.strip()

    def _planned_channels(
        self, payload: NotificationPayload
    ) -> list[ChannelType]:
        planned = [c for c in NETWORK_CHANNEL_ORDER if c in payload.channels]
        if not self._enable_email_fallback and ChannelType.CHAT in planned:
            planned = [c for c in planned if c != ChannelType.EMAIL]
        return planned

    async def deliver(self, recipient: Recipient, payload: NotificationPayload) -> DeliveryResult:
        """Deliver a notification to one recipient.

        Args:
            recipient: Recipient with resolved contact fields.
            payload: Notification content and channel set.

        Returns:
            DeliveryResult describing which channel delivered it, or why
            nothing could.
        """
        attempts: list[ChannelAttempt] = []
        tried_network = False

        for channel in self._planned_channels(payload):
            try:
                address = self._address_for(channel, recipient)
            except InvalidAddressError as e:
                attempts.append(
                    ChannelAttempt(
                        channel=channel,
                        success=False,
                        error=str(e),
                        kind=FailureKind.RECIPIENT_DATA,
                    )
                )
                continue

            router = self._routers.get(channel)
            if router is None:
                attempts.append(
                    ChannelAttempt(
                        channel=channel,
                        success=False,
                        error=f"{channel.value} channel unavailable: no router configured",
                        kind=FailureKind.CONFIGURATION,
                    )
                )
                continue

            message = payload.message
            if tried_network:
                message = f"{message}\n\n{FALLBACK_NOTES[channel]}"

            route = await router.send(address, message, payload.title)
            attempt = ChannelAttempt.from_route(route)
            attempts.append(attempt)
            tried_network = True

            if route.success:
                return DeliveryResult(
                    recipient_id=recipient.id,
                    success=True,
                    channel=channel,
                    provider_used=route.provider_used,
                    fallback_used=route.fallback_used or len(attempts) > 1,
                    attempts=attempts,
                    cost=route.cost,
                )

        # The floor does not depend on the payload's channel set.
        only_in_app = not attempts and ChannelType.IN_APP in payload.channels
        if self._in_app is not None and (only_in_app or self._enable_in_app_floor):
            return await self._deliver_in_app(recipient, payload, attempts, is_fallback=not only_in_app)

        return self._failure(recipient, attempts)

    async def _deliver_in_app(
        self,
        recipient: Recipient,
        payload: NotificationPayload,
        attempts: list[ChannelAttempt],
        is_fallback: bool,
    ) -> DeliveryResult:
        message = payload.message
        if is_fallback:
            message = f"{message}\n\n{FALLBACK_NOTES[ChannelType.IN_APP]}"

        data = dict(payload.data)
        if is_fallback:
            data["failed_channels"] = {a.channel.value: a.error for a in attempts}

        outcome = await self._in_app.write(
            recipient_id=recipient.id,
            title=payload.title,
            message=message,
            notification_type=payload.notification_type,
            data=data,
            is_fallback=is_fallback,
        )
        attempt = ChannelAttempt(
            channel=ChannelType.IN_APP,
            success=outcome.success,
            provider=outcome.provider,
            fallback_used=is_fallback,
            error=outcome.error,
            kind=None if outcome.success else FailureKind.TRANSIENT,
        )
        attempts.append(attempt)

        if outcome.success:
            if is_fallback:
                logger.info("Recipient %s reached through the in-app floor", recipient.id)
            return DeliveryResult(
                recipient_id=recipient.id,
                success=True,
                channel=ChannelType.IN_APP,
                provider_used=outcome.provider,
                fallback_used=is_fallback,
                floor_used=is_fallback,
                attempts=attempts,
            )

        return self._failure(recipient, attempts)

    def _failure(self, recipient: Recipient, attempts: list[ChannelAttempt]) -> DeliveryResult:
        kinds = {a.kind for a in attempts if not a.success}
        if FailureKind.TRANSIENT in kinds:
            kind = FailureKind.TRANSIENT
        elif FailureKind.CONFIGURATION in kinds:
            kind = FailureKind.CONFIGURATION
        else:
            kind = FailureKind.RECIPIENT_DATA

        errors = [f"{a.channel.value}: {a.error}" for a in attempts if a.error]
        error = "; ".join(errors) if errors else "No deliverable channel for recipient"

        logger.warning("Delivery to %s failed (%s): %s", recipient.id, kind.value, error)
        return DeliveryResult(
            recipient_id=recipient.id,
            success=False,
            error=error,
            error_kind=kind,
            attempts=attempts,
        )

    async def _deliver_staggered(
        self, index: int, recipient: Recipient, payload: NotificationPayload
    ) -> DeliveryResult:
        if index and self._stagger_seconds:
            await self._sleep(index * self._stagger_seconds)
        return await self.deliver(recipient, payload)

    async def deliver_bulk(
        self,
        deliveries: Sequence[tuple[Recipient, NotificationPayload]],
    ) -> BulkDeliveryResult:
        """Deliver many notifications in staggered concurrent sub-batches.

        Sends within a sub-batch run concurrently, each delayed by its
        index times the stagger step. Sub-batches run one after another
        with a fixed pause between them.

        Args:
            deliveries: Recipient and payload pairs.

        Returns:
            BulkDeliveryResult with per-recipient results and total cost.
        """
        bulk = BulkDeliveryResult()
        size = self._bulk_batch_size

        for start in range(0, len(deliveries), size):
            if start and self._batch_delay_seconds:
                await self._sleep(self._batch_delay_seconds)

            batch = deliveries[start:start + size]
            results = await asyncio.gather(
                *(
                    self._deliver_staggered(index, recipient, payload)
                    for index, (recipient, payload) in enumerate(batch)
                )
            )
            bulk.results.extend(results)

        logger.info(
            "Bulk delivery finished: %d/%d delivered, cost %.4f",
            bulk.success_count,
            len(bulk.results),
            bulk.total_cost,
        )
        return bulk
