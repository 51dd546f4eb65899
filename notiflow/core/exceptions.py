# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Shared exception hierarchy.

Service-specific errors live next to their services and derive from
NotiflowError so callers can catch everything raised by the pipeline with
a single except clause.
"""

from typing import Any


class NotiflowError(Exception):
    """Base exception for pipeline errors.

    Attributes:
        message: Human-readable error description.
        details: Additional structured context.
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ConfigurationError(NotiflowError):
    """Raised when no provider is configured for a requested channel.

    Retrying cannot fix missing configuration, so the queue never
    schedules another attempt for work failing with this error.
    """

    pass
