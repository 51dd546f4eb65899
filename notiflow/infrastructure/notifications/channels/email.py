# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Email notification channel using async SMTP.

This channel sends email through aiosmtplib. It also owns the plain text
and HTML rendering shared by the HTTP email providers, so every email
provider produces the same message.

Configuration (via environment variables):
- SMTP_HOST: SMTP server hostname
- SMTP_PORT: SMTP server port (default: 587)
- SMTP_USERNAME: SMTP authentication username
- SMTP_PASSWORD: SMTP authentication password
- SMTP_USE_TLS: Use STARTTLS (default: true)
- SMTP_FROM_EMAIL: Sender email address
- SMTP_FROM_NAME: Sender display name
"""

import html
import re
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import make_msgid

import aiosmtplib

from notiflow.core.config.settings import SMTPSettings
from notiflow.infrastructure.notifications.channels.base import (
    ChannelType,
    CostTier,
    SendOutcome,
    TransportAdapter,
)

_EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

DEFAULT_SUBJECT = "Notification"


def is_valid_email(address: str | None) -> bool:
    """Check that an address looks like a deliverable email."""
    return bool(address) and bool(_EMAIL_PATTERN.match(address.strip()))


def build_plain_text(title: str, message: str, brand: str) -> str:
    """Build plain text email content.

    Args:
        title: Email heading.
        message: Message body.
        brand: Sender name shown in the footer.

    Returns:
        Plain text email body.
    """
    lines = [
        title,
        "=" * len(title),
        "",
        message,
        "",
        "---",
        f"This notification was sent by {brand}.",
    ]
    return "\n".join(lines)


def build_html(title: str, message: str, brand: str) -> str:
    """Build HTML email content.

    Args:
        title: Email heading.
        message: Message body.
        brand: Sender name shown in the footer.

    Returns:
        HTML email body.
    """
    safe_title = html.escape(title)
    safe_message = html.escape(message).replace("\n", "<br>")
    safe_brand = html.escape(brand)

    return f"""<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
</head>
<body style="font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto,
             Arial, sans-serif; line-height: 1.6; color: #1F2937; margin: 0;
             padding: 0; background-color: #F3F4F6;">
    <div style="max-width: 600px; margin: 0 auto; padding: 20px;">
        <div style="background-color: white; border-radius: 8px; padding: 32px;">
            <h1 style="color: #4F46E5; font-size: 22px; margin: 0 0 24px 0;">{safe_title}</h1>
            <p style="font-size: 16px; color: #374151; margin: 0 0 16px 0;">{safe_message}</p>
            <p style="border-top: 1px solid #E5E7EB; padding-top: 16px; margin-top: 24px;
                      font-size: 12px; color: #9CA3AF;">
                This notification was sent by {safe_brand}.
            </p>
        </div>
    </div>
</body>
</html>"""


class EmailChannel(TransportAdapter):
    """Email delivery via SMTP.

    The channel generates both plain text and HTML versions of the
    message for maximum compatibility.
    """

    name = "smtp"
    channel = ChannelType.EMAIL
    priority = 1
    cost_tier = CostTier.FREE
    limitations = ("Subject to the SMTP relay's sending limits",)

    def __init__(self, settings: SMTPSettings, timeout: float = 10.0) -> None:
        """Initialize the email channel.

        Args:
            settings: SMTP settings.
            timeout: SMTP connection timeout in seconds.
        """
        super().__init__()
        self._settings = settings
        self._timeout = timeout

    def is_configured(self) -> bool:
        return self._settings.is_configured

    async def send(self, to: str, message: str, title: str | None = None) -> SendOutcome:
        """Send an email via SMTP.

        Args:
            to: Recipient email address.
            message: Message body.
            title: Email subject.

        Returns:
            SendOutcome with delivery status.
        """
        if not self.is_configured():
            return self.create_failure_result("SMTP not configured")

        if not is_valid_email(to):
            return self.create_failure_result(f"Invalid email address: {to!r}")

        mime_message = self._build_email_message(to, message, title or DEFAULT_SUBJECT)
        password = self._settings.password.get_secret_value() if self._settings.password else None

        try:
            await aiosmtplib.send(
                mime_message,
                hostname=self._settings.host,
                port=self._settings.port,
                username=self._settings.username,
                password=password,
                start_tls=self._settings.use_tls,
                timeout=self._timeout,
            )
        except (aiosmtplib.SMTPException, OSError) as e:
            self.logger.error("Failed to send email to %s: %s", to, str(e))
            return self.create_failure_result(f"SMTP error: {e}")

        self.logger.info("Email sent to %s: %s", to, title)
        return self.create_success_result(message_id=mime_message["Message-ID"])

    def _build_email_message(self, to: str, message: str, title: str) -> MIMEMultipart:
        """Build the MIME message with text and HTML alternatives."""
        brand = self._settings.from_name
        mime_message = MIMEMultipart("alternative")
        mime_message["From"] = f"{brand} <{self._settings.from_email}>"
        mime_message["To"] = to
        mime_message["Subject"] = title
        mime_message["Message-ID"] = make_msgid()

        mime_message.attach(MIMEText(build_plain_text(title, message, brand), "plain", "utf-8"))
        mime_message.attach(MIMEText(build_html(title, message, brand), "html", "utf-8"))
        return mime_message
