# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Base classes for transport adapters.

This module defines the abstract base class and shared types for every
delivery provider. Each adapter talks to one concrete backend for one
channel (chat, email or in-app).

Adapters make exactly one outbound call per send() and never retry
internally. Errors are returned as failed outcomes and never raised past
the adapter boundary, so the fallback router can inspect and log each
provider's failure.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from notiflow.utils.datetime import utc_now


class ChannelType(str, Enum):
    """Available delivery channels."""

    CHAT = "chat"
    EMAIL = "email"
    IN_APP = "in_app"


class CostTier(str, Enum):
    """Cost profile of a provider."""

    FREE = "free"
    PAID = "paid"


@dataclass
class SendOutcome:
    """Result of a single adapter send.

    Attributes:
        success: Whether the provider accepted the message.
        provider: Name of the adapter that produced this outcome.
        provider_message_id: External message ID (if available).
        error: Error description if failed.
        cost: Cost reported by the provider for this message.
        sent_at: When the send completed.
        metadata: Additional provider-specific details.
    """

    success: bool
    provider: str
    provider_message_id: str | None = None
    error: str | None = None
    cost: float = 0.0
    sent_at: datetime = field(default_factory=utc_now)
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON storage.

        Returns:
            Dictionary representation.
        """
        return {
            "success": self.success,
            "provider": self.provider,
            "provider_message_id": self.provider_message_id,
            "error": self.error,
            "cost": self.cost,
            "sent_at": self.sent_at.isoformat(),
        }


@dataclass
class ProviderStatus:
    """Operator-facing snapshot of one provider."""

    name: str
    channel: ChannelType
    priority: int
    configured: bool
    available: bool
    cost: CostTier
    status: str
    limitations: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for API responses."""
        return {
            "name": self.name,
            "channel": self.channel.value,
            "priority": self.priority,
            "configured": self.configured,
            "available": self.available,
            "cost": self.cost.value,
            "status": self.status,
            "limitations": list(self.limitations),
        }


class TransportAdapter(ABC):
    """Abstract base class for delivery providers.

    Subclasses set the class attributes below and implement
    is_configured() and send().

    Attributes:
        name: Unique provider name, reported as provider_used.
        channel: Channel this provider delivers on.
        priority: Position in the fallback chain (lower is tried first).
        cost_tier: Whether the provider is metered.
        limitations: Human-readable caveats shown to operators.
    """

    name: str = "base"
    channel: ChannelType = ChannelType.CHAT
    priority: int = 100
    cost_tier: CostTier = CostTier.FREE
    limitations: tuple[str, ...] = ()

    def __init__(self) -> None:
        """Initialize the adapter."""
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    @abstractmethod
    def is_configured(self) -> bool:
        """Return True when every required credential is present."""
        ...

    def is_available(self) -> bool:
        """Return True when the provider is configured and operational.

        Providers with session state (for example a linked chat instance)
        override this to report their live state.
        """
        return self.is_configured()

    @abstractmethod
    async def send(self, to: str, message: str, title: str | None = None) -> SendOutcome:
        """Send one message through this provider.

        Args:
            to: Channel-specific address (chat number, email, recipient id).
            message: Message body.
            title: Optional subject or heading.

        Returns:
            SendOutcome describing the result. Never raises.
        """
        ...

    async def status(self) -> str:
        """Describe the provider state for operators."""
        if not self.is_configured():
            return "not_configured"
        return "ready" if self.is_available() else "unavailable"

    async def describe(self) -> ProviderStatus:
        """Build the operator-facing status snapshot."""
        return ProviderStatus(
            name=self.name,
            channel=self.channel,
            priority=self.priority,
            configured=self.is_configured(),
            available=self.is_configured() and self.is_available(),
            cost=self.cost_tier,
            status=await self.status(),
            limitations=list(self.limitations),
        )

    async def aclose(self) -> None:
        """Release any held resources."""
        return None

    def create_success_result(
        self,
        message_id: str | None = None,
        cost: float = 0.0,
        metadata: dict[str, Any] | None = None,
    ) -> SendOutcome:
        """Create a successful outcome.

        Args:
            message_id: External message ID.
            cost: Cost reported by the provider.
            metadata: Additional metadata.

        Returns:
            Successful SendOutcome.
        """
        return SendOutcome(
            success=True,
            provider=self.name,
            provider_message_id=message_id,
            cost=cost,
            metadata=metadata or {},
        )

    def create_failure_result(
        self,
        error: str,
        metadata: dict[str, Any] | None = None,
    ) -> SendOutcome:
        """Create a failed outcome.

        Args:
            error: Error description.
            metadata: Additional metadata.

        Returns:
            Failed SendOutcome.
        """
        return SendOutcome(
            success=False,
            provider=self.name,
            error=error,
            metadata=metadata or {},
        )
