# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Recipient resolution domain."""

from notiflow.domains.recipients.directory import (
    ContactDirectory,
    RecipientResolver,
    TargetResolver,
)

__all__ = ["ContactDirectory", "RecipientResolver", "TargetResolver"]
