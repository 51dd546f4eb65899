# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Meta WhatsApp Cloud API channel (metered)."""

import httpx

from notiflow.core.config.settings import MetaWhatsAppSettings
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

GRAPH_API_URL = "https://graph.facebook.com/{version}/{phone_number_id}/messages"


class MetaWhatsAppChannel(HTTPAdapter):
    """Chat delivery through the official WhatsApp Cloud API."""

    name = "meta_whatsapp"
    channel = ChannelType.CHAT
    priority = 4
    cost_tier = CostTier.PAID
    limitations = ("Business verification required", "Charged per conversation")

    def __init__(
        self,
        settings: MetaWhatsAppSettings,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(timeout=timeout, client=client)
        self._settings = settings

    def is_configured(self) -> bool:
        return self._settings.is_configured

    async def send(self, to: str, message: str, title: str | None = None) -> SendOutcome:
        if not self.is_configured():
            return self.create_failure_result("Meta WhatsApp not configured")

        try:
            number = normalize_chat_address(to)
        except InvalidAddressError as e:
            return self.create_failure_result(str(e))

        token = self._settings.access_token.get_secret_value() if self._settings.access_token else ""
        url = GRAPH_API_URL.format(
            version=self._settings.api_version,
            phone_number_id=self._settings.phone_number_id,
        )
        try:
            response = await self.client.post(
                url,
                headers={"Authorization": f"Bearer {token}"},
                json={
                    "messaging_product": "whatsapp",
                    "to": number,
                    "type": "text",
                    "text": {"body": self.format_chat_message(message, title)},
                },
            )
        except httpx.HTTPError as e:
            return self.failure_from_exception(e, number)

        if response.is_error:
            return self.failure_from_response(response)

        messages = self.json_or_empty(response).get("messages") or [{}]
        message_id = messages[0].get("id")

        self.logger.info("Meta WhatsApp message %s sent to %s", message_id, number)
        return self.create_success_result(
            message_id=message_id,
            cost=self._settings.cost_per_message,
        )
