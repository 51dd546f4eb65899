# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Declarative base and shared column types for Notiflow tables.

Models use the SQLAlchemy 2.0 typed mapping API. JSON columns are stored
as JSONB on PostgreSQL and as plain JSON elsewhere, so the same models
work with asyncpg in production and aiosqlite in tests.
"""

from datetime import datetime
from uuid import uuid4

from sqlalchemy import JSON, DateTime, TypeDecorator
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.engine import Dialect
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from notiflow.utils.datetime import ensure_utc, utc_now

JSONType = JSON().with_variant(JSONB(), "postgresql")


class UTCDateTime(TypeDecorator[datetime]):
    """Timezone-aware datetime column that always round-trips as UTC.

    SQLite stores datetimes without an offset; values are normalized on
    the way in and re-tagged as UTC on the way out so comparisons against
    utc_now() never mix naive and aware values.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        value = ensure_utc(value)
        if value is not None and dialect.name == "sqlite":
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        return ensure_utc(value)


def new_id() -> str:
    """Generate a new primary key."""
    return str(uuid4())


class Base(DeclarativeBase):
    """Declarative base for all Notiflow models."""

    type_annotation_map = {
        datetime: UTCDateTime,
    }


class TimestampMixin:
    """Adds created_at/updated_at columns maintained by the ORM."""

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utc_now, onupdate=utc_now
    )
