# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Resend email API channel."""

import httpx

from notiflow.core.config.settings import ResendSettings
from notiflow.infrastructure.notifications.channels.base import (
    ChannelType,
    CostTier,
    SendOutcome,
)
from notiflow.infrastructure.notifications.channels.email import (
    DEFAULT_SUBJECT,
    build_html,
    build_plain_text,
    is_valid_email,
)
from notiflow.infrastructure.notifications.channels.gateway import HTTPAdapter

RESEND_API_URL = "https://api.resend.com/emails"


class ResendChannel(HTTPAdapter):
    """Email delivery through Resend."""

    name = "resend"
    channel = ChannelType.EMAIL
    priority = 2
    cost_tier = CostTier.FREE
    limitations = ("Free tier: 100 emails per day", "Sender domain must be verified")

    def __init__(
        self,
        settings: ResendSettings,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(timeout=timeout, client=client)
        self._settings = settings

    def is_configured(self) -> bool:
        return self._settings.is_configured

    async def send(self, to: str, message: str, title: str | None = None) -> SendOutcome:
        if not self.is_configured():
            return self.create_failure_result("Resend not configured")

        if not is_valid_email(to):
            return self.create_failure_result(f"Invalid email address: {to!r}")

        subject = title or DEFAULT_SUBJECT
        brand = self._settings.from_name
        api_key = self._settings.api_key.get_secret_value() if self._settings.api_key else ""
        try:
            response = await self.client.post(
                RESEND_API_URL,
                headers={"Authorization": f"Bearer {api_key}"},
                json={
                    "from": f"{brand} <{self._settings.from_email}>",
                    "to": [to],
                    "subject": subject,
                    "html": build_html(subject, message, brand),
                    "text": build_plain_text(subject, message, brand),
                },
            )
        except httpx.HTTPError as e:
            return self.failure_from_exception(e, to)

        if response.is_error:
            return self.failure_from_response(response)

        message_id = self.json_or_empty(response).get("id")
        self.logger.info("Resend email %s sent to %s", message_id, to)
        return self.create_success_result(message_id=message_id)
