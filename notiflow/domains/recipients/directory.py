# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Recipient resolution.

Queue items store only recipient references. Contact fields are looked up
at processing time through a RecipientResolver, and schedule targeting is
expanded through a TargetResolver. Both are injected into the services
that need them, so alternative directories (an external member service,
a fixed list in tests) plug in without touching the pipeline.
"""

import logging
from typing import Iterable, Protocol

from sqlalchemy import or_, select

from notiflow.infrastructure.database.connection import Database
from notiflow.infrastructure.database.models import Contact
from notiflow.models.notification import Recipient
from notiflow.models.schedule import Targeting

logger = logging.getLogger(__name__)

ALL_USER_TYPES = "all"


class RecipientResolver(Protocol):
    """Looks up contact fields for recipient references."""

    async def resolve(self, recipient_ids: Iterable[str]) -> dict[str, Recipient]:
        """Return resolved recipients keyed by ID; unknown IDs are omitted."""
        ...


class TargetResolver(Protocol):
    """Expands targeting criteria into recipient references."""

    async def resolve_targets(self, targeting: Targeting) -> list[str]:
        """Return matching recipient IDs in a stable order."""
        ...


class ContactDirectory:
    """Recipient and target resolver backed by the contacts table.

    Attributes:
        _database: Database holding the contacts table.
    """

    def __init__(self, database: Database) -> None:
        self._database = database

    async def resolve(self, recipient_ids: Iterable[str]) -> dict[str, Recipient]:
        ids = list(dict.fromkeys(recipient_ids))
        if not ids:
            return {}

        async with self._database.session() as session:
            result = await session.execute(
                select(Contact).where(Contact.id.in_(ids), Contact.is_active.is_(True))
            )
            contacts = result.scalars().all()

        resolved = {
            c.id: Recipient(id=c.id, name=c.name, email=c.email, chat_address=c.phone)
            for c in contacts
        }
        missing = len(ids) - len(resolved)
        if missing:
            logger.debug("%d of %d recipients not found in directory", missing, len(ids))
        return resolved

    async def resolve_targets(self, targeting: Targeting) -> list[str]:
        filters = []
        if ALL_USER_TYPES in targeting.user_types:
            filters.append(Contact.is_active.is_(True))
        elif targeting.user_types:
            filters.append(Contact.user_type.in_(targeting.user_types))
        if targeting.groups:
            filters.append(Contact.group_id.in_(targeting.groups))
        if targeting.recipient_ids:
            filters.append(Contact.id.in_(targeting.recipient_ids))

        if not filters:
            return []

        async with self._database.session() as session:
            result = await session.execute(
                select(Contact.id)
                .where(Contact.is_active.is_(True), or_(*filters))
                .order_by(Contact.created_at, Contact.id)
            )
            ids = list(result.scalars().all())

        excluded = set(targeting.exclude_ids)
        return [i for i in ids if i not in excluded]
