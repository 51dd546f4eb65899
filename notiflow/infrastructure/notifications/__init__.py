# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Multi-channel notification delivery.

Key Components:
- channels: One transport adapter per provider (chat, email, in-app)
- router.FallbackRouter: Tries a channel's providers in priority order
- hybrid.HybridDeliveryCoordinator: Chat first, then email, then the
  in-app delivery floor
- templates.MessageTemplate: Typed message templates
- registry: Builds routers and the coordinator from settings

Usage:
    from notiflow.infrastructure.notifications.registry import build_coordinator

    coordinator = build_coordinator(settings, database)
    result = await coordinator.deliver(recipient, payload)

Submodules are imported directly rather than re-exported here so the
payload models can depend on the channel types without an import cycle.
"""
