# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Pytest configuration and shared fixtures.

This module provides fixtures used across all test types:
- A temporary SQLite database with every table created
- A controllable clock
- Scripted transport adapters
- Contact directory seeding
"""

from collections.abc import AsyncGenerator, Callable
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import pytest
import pytest_asyncio

from notiflow.infrastructure.database.connection import Database
from notiflow.infrastructure.database.models import Contact
from notiflow.infrastructure.notifications.channels.base import (
    ChannelType,
    CostTier,
    SendOutcome,
    TransportAdapter,
)


# =============================================================================
# Marker Configuration
# =============================================================================


def pytest_configure(config: pytest.Config) -> None:
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test (uses a real SQLite database)"
    )
    config.addinivalue_line(
        "markers", "slow: mark test as slow running"
    )


# =============================================================================
# Clock
# =============================================================================


class FrozenClock:
    """Clock that only moves when told to."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock() -> FrozenClock:
    """Provide a clock frozen at Monday 2024-06-03 10:00 UTC."""
    return FrozenClock(datetime(2024, 6, 3, 10, 0, tzinfo=timezone.utc))


# =============================================================================
# Database
# =============================================================================


@pytest_asyncio.fixture
async def database(tmp_path: Path) -> AsyncGenerator[Database, None]:
    """Provide a file-backed SQLite database with all tables created."""
    db = Database(f"sqlite+aiosqlite:///{tmp_path / 'notiflow-test.db'}")
    await db.create_all()
    yield db
    await db.dispose()


@pytest.fixture
def add_contact(database: Database) -> Callable[..., Any]:
    """Provide a coroutine function that inserts a contact."""

    async def _add(
        contact_id: str,
        name: str = "Test Member",
        email: str | None = None,
        phone: str | None = None,
        user_type: str = "member",
        group_id: str | None = None,
        is_active: bool = True,
        created_at: datetime | None = None,
    ) -> Contact:
        contact = Contact(
            id=contact_id,
            name=name,
            email=email,
            phone=phone,
            user_type=user_type,
            group_id=group_id,
            is_active=is_active,
        )
        if created_at is not None:
            contact.created_at = created_at
        async with database.session() as session:
            session.add(contact)
        return contact

    return _add


# =============================================================================
# Transport adapters
# =============================================================================


class ScriptedAdapter(TransportAdapter):
    """Adapter whose outcomes are scripted by the test.

    Each send pops the next scripted result; once the script runs out the
    adapter keeps repeating ``succeed``.
    """

    def __init__(
        self,
        name: str,
        channel: ChannelType = ChannelType.CHAT,
        priority: int = 1,
        succeed: bool = True,
        script: list[bool] | None = None,
        configured: bool = True,
        available: bool = True,
        cost: float = 0.0,
        error: str = "provider down",
    ) -> None:
        super().__init__()
        self.name = name
        self.channel = channel
        self.priority = priority
        self.cost_tier = CostTier.PAID if cost else CostTier.FREE
        self.succeed = succeed
        self.script = list(script or [])
        self.configured = configured
        self.available = available
        self.cost = cost
        self.error = error
        self.calls: list[tuple[str, str, str | None]] = []

    def is_configured(self) -> bool:
        return self.configured

    def is_available(self) -> bool:
        return self.configured and self.available

    async def send(self, to: str, message: str, title: str | None = None) -> SendOutcome:
        self.calls.append((to, message, title))
        ok = self.script.pop(0) if self.script else self.succeed
        if ok:
            return self.create_success_result(
                message_id=f"{self.name}-{len(self.calls)}", cost=self.cost
            )
        return self.create_failure_result(self.error)


@pytest.fixture
def make_adapter() -> Callable[..., ScriptedAdapter]:
    """Provide a factory for scripted adapters."""
    return ScriptedAdapter


async def no_sleep(_: float) -> None:
    """Sleep replacement that returns immediately."""
    return None


@pytest.fixture
def instant_sleep() -> Callable[[float], Any]:
    """Provide an awaitable sleep that does not wait."""
    return no_sleep
