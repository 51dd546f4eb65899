# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Twilio WhatsApp channel (metered, last in the chat chain).

Twilio reports the charged price on the message resource; it is negative
(a debit) and may be null until the message is rated.
"""

import httpx

from notiflow.core.config.settings import TwilioSettings
from notiflow.infrastructure.notifications.channels.addressing import (
    InvalidAddressError,
    normalize_chat_address,
)
from notiflow.infrastructure.notifications.channels.base import (
    ChannelType,
    CostTier,
    SendOutcome,
)
from notiflow.infrastructure.notifications.channels.gateway import HTTPAdapter

TWILIO_MESSAGES_URL = "https://api.twilio.com/2010-04-01/Accounts/{sid}/Messages.json"


def _parse_price(value: object) -> float:
    try:
        return abs(float(value)) if value is not None else 0.0
    except (TypeError, ValueError):
        return 0.0


class TwilioChannel(HTTPAdapter):
    """Chat delivery through Twilio's WhatsApp API."""

    name = "twilio"
    channel = ChannelType.CHAT
    priority = 5
    cost_tier = CostTier.PAID
    limitations = ("Sandbox numbers need recipient opt-in",)

    def __init__(
        self,
        settings: TwilioSettings,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(timeout=timeout, client=client)
        self._settings = settings

    def is_configured(self) -> bool:
        return self._settings.is_configured

    async def send(self, to: str, message: str, title: str | None = None) -> SendOutcome:
        if not self.is_configured():
            return self.create_failure_result("Twilio not configured")

        try:
            number = normalize_chat_address(to)
        except InvalidAddressError as e:
            return self.create_failure_result(str(e))

        sid = self._settings.account_sid or ""
        token = self._settings.auth_token.get_secret_value() if self._settings.auth_token else ""
        try:
            response = await self.client.post(
                TWILIO_MESSAGES_URL.format(sid=sid),
                auth=(sid, token),
                data={
                    "From": self._settings.whatsapp_from,
                    "To": f"whatsapp:+{number}",
                    "Body": self.format_chat_message(message, title),
                },
            )
        except httpx.HTTPError as e:
            return self.failure_from_exception(e, number)

        if response.is_error:
            return self.failure_from_response(response)

        data = self.json_or_empty(response)
        self.logger.info("Twilio message %s sent to %s", data.get("sid"), number)
        return self.create_success_result(
            message_id=data.get("sid"),
            cost=_parse_price(data.get("price")),
            metadata={"status": data.get("status")},
        )
