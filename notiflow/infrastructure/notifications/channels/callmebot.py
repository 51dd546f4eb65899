# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""CallMeBot chat channel.

CallMeBot is a free relay meant for personal alerts: the API key is tied
to the phone that registered it. It is a useful second free option but
has no delivery receipts and no message identifiers.
"""

import httpx

from notiflow.core.config.settings import CallMeBotSettings
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


class CallMeBotChannel(HTTPAdapter):
    """Chat delivery through the CallMeBot relay."""

    name = "callmebot"
    channel = ChannelType.CHAT
    priority = 2
    cost_tier = CostTier.FREE
    limitations = ("API key bound to a single registered phone", "No message IDs")

    def __init__(
        self,
        settings: CallMeBotSettings,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(timeout=timeout, client=client)
        self._settings = settings

    def is_configured(self) -> bool:
        return self._settings.is_configured

    async def send(self, to: str, message: str, title: str | None = None) -> SendOutcome:
        if not self.is_configured():
            return self.create_failure_result("CallMeBot not configured")

        try:
            number = normalize_chat_address(to)
        except InvalidAddressError as e:
            return self.create_failure_result(str(e))

        api_key = self._settings.api_key.get_secret_value() if self._settings.api_key else ""
        try:
            response = await self.client.get(
                self._settings.base_url,
                params={
                    "phone": f"+{number}",
                    "text": self.format_chat_message(message, title),
                    "apikey": api_key,
                },
            )
        except httpx.HTTPError as e:
            return self.failure_from_exception(e, number)

        if response.is_error:
            return self.failure_from_response(response)

        # The relay answers 200 with an HTML page even when it rejects the key.
        if "error" in response.text.lower():
            return self.create_failure_result(f"CallMeBot rejected message: {response.text[:200]}")

        self.logger.info("CallMeBot message sent to %s", number)
        return self.create_success_result()
