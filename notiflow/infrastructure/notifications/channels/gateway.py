# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Shared plumbing for adapters that talk to an HTTP API.

Every HTTP provider owns an httpx.AsyncClient. A client can be injected
(tests pass one built on httpx.MockTransport); otherwise one is created
lazily with the configured timeout and closed by aclose().
"""

from typing import Any

import httpx

from notiflow.infrastructure.notifications.channels.base import SendOutcome, TransportAdapter


class HTTPAdapter(TransportAdapter):
    """Transport adapter backed by an httpx.AsyncClient."""

    def __init__(
        self,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the adapter.

        Args:
            timeout: Request timeout in seconds.
            client: Optional preconfigured HTTP client.
        """
        super().__init__()
        self._timeout = timeout
        self._client = client
        self._owns_client = client is None

    @property
    def client(self) -> httpx.AsyncClient:
        """Return the HTTP client, creating it on first use."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def aclose(self) -> None:
        """Close the HTTP client if this adapter created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def format_chat_message(self, message: str, title: str | None) -> str:
        """Prefix the message with a bold title line for chat transports."""
        if title:
            return f"*{title}*\n\n{message}"
        return message

    def failure_from_response(self, response: httpx.Response) -> SendOutcome:
        """Build a failed outcome from a non-success HTTP response."""
        body = response.text[:300] if response.text else ""
        return self.create_failure_result(
            f"HTTP {response.status_code}: {body}".strip(),
            metadata={"status_code": response.status_code},
        )

    def failure_from_exception(self, error: Exception, to: str) -> SendOutcome:
        """Log and wrap a transport exception as a failed outcome."""
        self.logger.warning("%s send to %s failed: %s", self.name, to, error)
        return self.create_failure_result(f"{type(error).__name__}: {error}")

    @staticmethod
    def json_or_empty(response: httpx.Response) -> dict[str, Any]:
        """Decode a JSON object body, tolerating empty or non-JSON bodies."""
        try:
            data = response.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}
