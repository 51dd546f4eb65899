# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Green API chat channel.

Green API relays messages through a linked WhatsApp instance. It is free
for low volumes, so it sits first in the chat fallback chain. The linked
instance can drop its session; status() polls the instance state and
is_available() reports the last state seen.

Configuration (via environment variables):
- GREEN_API_INSTANCE_ID: Instance identifier
- GREEN_API_TOKEN: Instance API token
- GREEN_API_BASE_URL: API base URL (default: https://api.green-api.com)
"""

import httpx

from notiflow.core.config.settings import GreenAPISettings
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

AUTHORIZED_STATE = "authorized"


class GreenAPIChannel(HTTPAdapter):
    """Chat delivery through a Green API instance."""

    name = "green_api"
    channel = ChannelType.CHAT
    priority = 1
    cost_tier = CostTier.FREE
    limitations = ("Requires a linked phone session", "Free tier rate limits")

    def __init__(
        self,
        settings: GreenAPISettings,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(timeout=timeout, client=client)
        self._settings = settings
        self._instance_state: str | None = None

    def is_configured(self) -> bool:
        return self._settings.is_configured

    def is_available(self) -> bool:
        if not self.is_configured():
            return False
        # Unknown state counts as available until a status poll says otherwise.
        return self._instance_state in (None, AUTHORIZED_STATE)

    def _url(self, method: str) -> str:
        token = self._settings.token.get_secret_value() if self._settings.token else ""
        base = self._settings.base_url.rstrip("/")
        return f"{base}/waInstance{self._settings.instance_id}/{method}/{token}"

    async def send(self, to: str, message: str, title: str | None = None) -> SendOutcome:
        if not self.is_configured():
            return self.create_failure_result("Green API not configured")

        try:
            number = normalize_chat_address(to)
        except InvalidAddressError as e:
            return self.create_failure_result(str(e))

        try:
            response = await self.client.post(
                self._url("sendMessage"),
                json={
                    "chatId": f"{number}@c.us",
                    "message": self.format_chat_message(message, title),
                },
            )
        except httpx.HTTPError as e:
            return self.failure_from_exception(e, number)

        if response.is_error:
            return self.failure_from_response(response)

        data = self.json_or_empty(response)
        message_id = data.get("idMessage")
        if not message_id:
            return self.create_failure_result("Green API response has no idMessage")

        self.logger.info("Green API message %s sent to %s", message_id, number)
        return self.create_success_result(message_id=str(message_id))

    async def status(self) -> str:
        if not self.is_configured():
            return "not_configured"

        try:
            response = await self.client.get(self._url("getStateInstance"))
        except httpx.HTTPError as e:
            self.logger.warning("Green API state check failed: %s", e)
            return "unreachable"

        if response.is_error:
            return f"error_{response.status_code}"

        self._instance_state = str(self.json_or_empty(response).get("stateInstance", "unknown"))
        return self._instance_state
