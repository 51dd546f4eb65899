# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""SendGrid email API channel (metered, last in the email chain)."""

import httpx

from notiflow.core.config.settings import SendGridSettings
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

SENDGRID_API_URL = "https://api.sendgrid.com/v3/mail/send"


class SendGridChannel(HTTPAdapter):
    """Email delivery through SendGrid.

    SendGrid answers 202 with an empty body; the message ID is returned in
    the X-Message-Id header.
    """

    name = "sendgrid"
    channel = ChannelType.EMAIL
    priority = 3
    cost_tier = CostTier.PAID
    limitations = ("Charged per email beyond the free allowance",)

    def __init__(
        self,
        settings: SendGridSettings,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(timeout=timeout, client=client)
        self._settings = settings

    def is_configured(self) -> bool:
        return self._settings.is_configured

    async def send(self, to: str, message: str, title: str | None = None) -> SendOutcome:
        if not self.is_configured():
            return self.create_failure_result("SendGrid not configured")

        if not is_valid_email(to):
            return self.create_failure_result(f"Invalid email address: {to!r}")

        subject = title or DEFAULT_SUBJECT
        brand = self._settings.from_name
        api_key = self._settings.api_key.get_secret_value() if self._settings.api_key else ""
        try:
            response = await self.client.post(
                SENDGRID_API_URL,
                headers={"Authorization": f"Bearer {api_key}"},
                json={
                    "personalizations": [{"to": [{"email": to}]}],
                    "from": {"email": self._settings.from_email, "name": brand},
                    "subject": subject,
                    "content": [
                        {"type": "text/plain", "value": build_plain_text(subject, message, brand)},
                        {"type": "text/html", "value": build_html(subject, message, brand)},
                    ],
                },
            )
        except httpx.HTTPError as e:
            return self.failure_from_exception(e, to)

        if response.is_error:
            return self.failure_from_response(response)

        message_id = response.headers.get("X-Message-Id")
        self.logger.info("SendGrid email %s sent to %s", message_id, to)
        return self.create_success_result(
            message_id=message_id,
            cost=self._settings.cost_per_message,
        )
