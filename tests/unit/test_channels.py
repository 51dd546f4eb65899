# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for transport adapters.

HTTP providers run against httpx.MockTransport so the request each one
builds can be inspected without network access.
"""

import json
from collections.abc import Callable
from unittest.mock import AsyncMock, patch

import aiosmtplib
import httpx
import pytest
from sqlalchemy import select

from notiflow.core.config.settings import (
    CallMeBotSettings,
    GreenAPISettings,
    MetaWhatsAppSettings,
    ResendSettings,
    SendGridSettings,
    SMTPSettings,
    TwilioSettings,
)
from notiflow.infrastructure.database.models import InAppNotification
from notiflow.infrastructure.notifications.channels import (
    CallMeBotChannel,
    EmailChannel,
    GreenAPIChannel,
    InAppChannel,
    MetaWhatsAppChannel,
    ResendChannel,
    SendGridChannel,
    TwilioChannel,
)
from notiflow.infrastructure.notifications.channels.addressing import (
    InvalidAddressError,
    normalize_chat_address,
)
from notiflow.infrastructure.notifications.channels.base import ChannelType, CostTier
from notiflow.infrastructure.notifications.channels.email import (
    build_html,
    is_valid_email,
)


def mock_client(
    handler: Callable[[httpx.Request], httpx.Response],
    requests: list[httpx.Request],
) -> httpx.AsyncClient:
    """Create a client that records requests and answers with ``handler``."""

    def _record(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return handler(request)

    return httpx.AsyncClient(transport=httpx.MockTransport(_record))


def green_api_settings() -> GreenAPISettings:
    return GreenAPISettings(instance_id="1101", token="tok")  # type: ignore[arg-type]


class TestChatAddressing:
    """Tests for chat number normalization."""

    def test_local_number_gets_default_prefix(self) -> None:
        assert normalize_chat_address("011 1234-5678", "549") == "5491112345678"

    def test_international_number_is_kept(self) -> None:
        assert normalize_chat_address("+54 9 11 1234 5678", "1") == "5491112345678"

    def test_double_zero_prefix_is_international(self) -> None:
        assert normalize_chat_address("0044 20 7946 0958") == "442079460958"

    def test_number_already_prefixed_is_unchanged(self) -> None:
        assert normalize_chat_address("5491112345678", "549") == "5491112345678"

    @pytest.mark.parametrize("address", ["", "   ", "12345", "+1234567890123456"])
    def test_rejects_implausible_numbers(self, address: str) -> None:
        with pytest.raises(InvalidAddressError):
            normalize_chat_address(address)


class TestEmailHelpers:
    """Tests for email content helpers."""

    def test_is_valid_email(self) -> None:
        assert is_valid_email("member@example.com") is True
        assert is_valid_email("not-an-email") is False
        assert is_valid_email(None) is False

    def test_html_is_escaped(self) -> None:
        body = build_html("<b>Title</b>", "line one\nline two", "Notiflow")

        assert "&lt;b&gt;Title&lt;/b&gt;" in body
        assert "line one<br>line two" in body


class TestGreenAPIChannel:
    """Tests for GreenAPIChannel."""

    def test_metadata(self) -> None:
        channel = GreenAPIChannel(green_api_settings())

        assert channel.channel == ChannelType.CHAT
        assert channel.priority == 1
        assert channel.cost_tier == CostTier.FREE

    @pytest.mark.asyncio
    async def test_send_posts_chat_id_and_message(self) -> None:
        requests: list[httpx.Request] = []
        client = mock_client(lambda r: httpx.Response(200, json={"idMessage": "ABC"}), requests)
        channel = GreenAPIChannel(green_api_settings(), client=client)

        outcome = await channel.send("+5491112345678", "Hello", "Greeting")

        assert outcome.success is True
        assert outcome.provider == "green_api"
        assert outcome.provider_message_id == "ABC"
        assert str(requests[0].url) == (
            "https://api.green-api.com/waInstance1101/sendMessage/tok"
        )
        body = json.loads(requests[0].content)
        assert body == {"chatId": "5491112345678@c.us", "message": "*Greeting*\n\nHello"}
        await client.aclose()

    @pytest.mark.asyncio
    async def test_http_error_is_returned_not_raised(self) -> None:
        requests: list[httpx.Request] = []
        client = mock_client(lambda r: httpx.Response(500, text="boom"), requests)
        channel = GreenAPIChannel(green_api_settings(), client=client)

        outcome = await channel.send("+5491112345678", "Hello")

        assert outcome.success is False
        assert "HTTP 500" in outcome.error
        await client.aclose()

    @pytest.mark.asyncio
    async def test_transport_exception_is_returned_not_raised(self) -> None:
        def _fail(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = httpx.AsyncClient(transport=httpx.MockTransport(_fail))
        channel = GreenAPIChannel(green_api_settings(), client=client)

        outcome = await channel.send("+5491112345678", "Hello")

        assert outcome.success is False
        assert "ConnectError" in outcome.error
        await client.aclose()

    @pytest.mark.asyncio
    async def test_unauthorized_instance_is_unavailable(self) -> None:
        requests: list[httpx.Request] = []
        client = mock_client(
            lambda r: httpx.Response(200, json={"stateInstance": "notAuthorized"}), requests
        )
        channel = GreenAPIChannel(green_api_settings(), client=client)

        assert channel.is_available() is True
        assert await channel.status() == "notAuthorized"
        assert channel.is_available() is False
        await client.aclose()

    @pytest.mark.asyncio
    async def test_unconfigured_send_fails(self) -> None:
        channel = GreenAPIChannel(GreenAPISettings())

        outcome = await channel.send("+5491112345678", "Hello")

        assert outcome.success is False
        assert channel.is_available() is False


class TestCallMeBotChannel:
    """Tests for CallMeBotChannel."""

    @pytest.mark.asyncio
    async def test_send_uses_query_parameters(self) -> None:
        requests: list[httpx.Request] = []
        client = mock_client(lambda r: httpx.Response(200, text="Message queued"), requests)
        channel = CallMeBotChannel(CallMeBotSettings(api_key="key"), client=client)  # type: ignore[arg-type]

        outcome = await channel.send("+5491112345678", "Hello")

        assert outcome.success is True
        params = requests[0].url.params
        assert params["phone"] == "+5491112345678"
        assert params["text"] == "Hello"
        assert params["apikey"] == "key"
        await client.aclose()

    @pytest.mark.asyncio
    async def test_error_page_is_a_failure(self) -> None:
        requests: list[httpx.Request] = []
        client = mock_client(
            lambda r: httpx.Response(200, text="<p>ERROR: APIKey is invalid</p>"), requests
        )
        channel = CallMeBotChannel(CallMeBotSettings(api_key="key"), client=client)  # type: ignore[arg-type]

        outcome = await channel.send("+5491112345678", "Hello")

        assert outcome.success is False
        await client.aclose()


class TestMetaWhatsAppChannel:
    """Tests for MetaWhatsAppChannel."""

    @pytest.mark.asyncio
    async def test_send_reports_cost_and_message_id(self) -> None:
        requests: list[httpx.Request] = []
        client = mock_client(
            lambda r: httpx.Response(200, json={"messages": [{"id": "wamid.1"}]}), requests
        )
        settings = MetaWhatsAppSettings(access_token="tok", phone_number_id="999")  # type: ignore[arg-type]
        channel = MetaWhatsAppChannel(settings, client=client)

        outcome = await channel.send("+5491112345678", "Hello")

        assert outcome.success is True
        assert outcome.provider_message_id == "wamid.1"
        assert outcome.cost == pytest.approx(0.005)
        assert channel.cost_tier == CostTier.PAID
        assert requests[0].url.path == "/v18.0/999/messages"
        assert requests[0].headers["Authorization"] == "Bearer tok"
        await client.aclose()


class TestTwilioChannel:
    """Tests for TwilioChannel."""

    @pytest.mark.asyncio
    async def test_send_posts_form_and_parses_price(self) -> None:
        requests: list[httpx.Request] = []
        client = mock_client(
            lambda r: httpx.Response(
                201, json={"sid": "SM1", "status": "queued", "price": "-0.0050"}
            ),
            requests,
        )
        settings = TwilioSettings(account_sid="AC1", auth_token="secret")  # type: ignore[arg-type]
        channel = TwilioChannel(settings, client=client)

        outcome = await channel.send("+5491112345678", "Hello")

        assert outcome.success is True
        assert outcome.provider_message_id == "SM1"
        assert outcome.cost == pytest.approx(0.005)
        form = dict(httpx.QueryParams(requests[0].content.decode()))
        assert form["To"] == "whatsapp:+5491112345678"
        assert "Authorization" in requests[0].headers
        await client.aclose()


class TestResendChannel:
    """Tests for ResendChannel."""

    @pytest.mark.asyncio
    async def test_send_posts_email(self) -> None:
        requests: list[httpx.Request] = []
        client = mock_client(lambda r: httpx.Response(200, json={"id": "re_1"}), requests)
        settings = ResendSettings(api_key="key", from_email="noreply@example.com")  # type: ignore[arg-type]
        channel = ResendChannel(settings, client=client)

        outcome = await channel.send("member@example.com", "Hello", "Subject")

        assert outcome.success is True
        assert outcome.provider_message_id == "re_1"
        body = json.loads(requests[0].content)
        assert body["to"] == ["member@example.com"]
        assert body["subject"] == "Subject"
        await client.aclose()

    @pytest.mark.asyncio
    async def test_invalid_address_fails_without_request(self) -> None:
        requests: list[httpx.Request] = []
        client = mock_client(lambda r: httpx.Response(200, json={"id": "re_1"}), requests)
        settings = ResendSettings(api_key="key", from_email="noreply@example.com")  # type: ignore[arg-type]
        channel = ResendChannel(settings, client=client)

        outcome = await channel.send("nobody", "Hello")

        assert outcome.success is False
        assert requests == []
        await client.aclose()


class TestSendGridChannel:
    """Tests for SendGridChannel."""

    @pytest.mark.asyncio
    async def test_message_id_comes_from_header(self) -> None:
        requests: list[httpx.Request] = []
        client = mock_client(
            lambda r: httpx.Response(202, headers={"X-Message-Id": "sg-1"}), requests
        )
        settings = SendGridSettings(api_key="key", from_email="noreply@example.com")  # type: ignore[arg-type]
        channel = SendGridChannel(settings, client=client)

        outcome = await channel.send("member@example.com", "Hello", "Subject")

        assert outcome.success is True
        assert outcome.provider_message_id == "sg-1"
        assert outcome.cost == pytest.approx(0.001)
        await client.aclose()


class TestEmailChannel:
    """Tests for the SMTP EmailChannel."""

    @pytest.fixture
    def smtp_settings(self) -> SMTPSettings:
        return SMTPSettings(
            host="smtp.example.com",
            username="mailer",
            password="secret",  # type: ignore[arg-type]
            from_email="noreply@example.com",
        )

    @pytest.mark.asyncio
    async def test_send_success(self, smtp_settings: SMTPSettings) -> None:
        channel = EmailChannel(smtp_settings)

        with patch("aiosmtplib.send", new_callable=AsyncMock) as mock_send:
            outcome = await channel.send("member@example.com", "Hello", "Subject")

        assert outcome.success is True
        assert outcome.provider == "smtp"
        sent = mock_send.call_args.args[0]
        assert sent["To"] == "member@example.com"
        assert sent["Subject"] == "Subject"
        assert mock_send.call_args.kwargs["hostname"] == "smtp.example.com"

    @pytest.mark.asyncio
    async def test_smtp_error_is_returned(self, smtp_settings: SMTPSettings) -> None:
        channel = EmailChannel(smtp_settings)

        with patch(
            "aiosmtplib.send",
            new_callable=AsyncMock,
            side_effect=aiosmtplib.SMTPException("relay denied"),
        ):
            outcome = await channel.send("member@example.com", "Hello")

        assert outcome.success is False
        assert "relay denied" in outcome.error


class TestInAppChannel:
    """Tests for InAppChannel against a real database."""

    @pytest.mark.asyncio
    async def test_write_creates_record(self, database, clock) -> None:
        channel = InAppChannel(database, expiration_days=10, clock=clock)

        outcome = await channel.write(
            recipient_id="member-1",
            title="Title",
            message="Body",
            data={"k": "v"},
            is_fallback=True,
        )

        assert outcome.success is True
        async with database.session() as session:
            record = (await session.execute(select(InAppNotification))).scalar_one()
        assert record.id == outcome.provider_message_id
        assert record.is_fallback is True
        assert record.data == {"k": "v"}
        assert record.expires_at == clock.now.replace(day=13)
