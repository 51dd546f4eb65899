# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Application configuration settings using Pydantic Settings.

This module provides centralized configuration management for Notiflow.
Settings are loaded from environment variables with sensible defaults and
are read once at process start.

The Settings class is the main entry point and aggregates all subsettings.
A cached instance is provided via get_settings() for dependency injection.

Example:
    >>> from notiflow.core.config.settings import get_settings
    >>> settings = get_settings()
    >>> settings.queue.poll_interval_seconds
    30
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


def _has_secret(value: SecretStr | None) -> bool:
    return value is not None and bool(value.get_secret_value())


class DatabaseSettings(BaseSettings):
    """Queue store database configuration.

    Attributes:
        url: SQLAlchemy async connection URL.
        echo: Log every SQL statement.
        pool_size: Connection pool size (ignored for SQLite).
        max_overflow: Maximum overflow connections (ignored for SQLite).
    """

    model_config = SettingsConfigDict(
        env_prefix="DATABASE_",
        extra="ignore",
    )

    url: str = "sqlite+aiosqlite:///./notiflow.db"
    echo: bool = False
    pool_size: int = 10
    max_overflow: int = 20

    @property
    def is_sqlite(self) -> bool:
        """Check if the URL points at a SQLite database."""
        return self.url.startswith("sqlite")


class QueueSettings(BaseSettings):
    """Queue processor configuration.

    Attributes:
        poll_interval_seconds: Seconds between poll cycles.
        batch_size: Maximum items claimed per poll cycle.
        max_attempts: Default retry cap for new items.
        backoff_base_minutes: Multiplier for the 2^attempts backoff.
        retention_days: Age after which terminal items are purged.
        purge_interval_minutes: Minutes between retention purges.
        stuck_after_minutes: Age after which a processing claim is reclaimed.
    """

    model_config = SettingsConfigDict(
        env_prefix="QUEUE_",
        extra="ignore",
    )

    poll_interval_seconds: int = 30
    batch_size: int = 10
    max_attempts: int = 3
    backoff_base_minutes: float = 1.0
    retention_days: int = 7
    purge_interval_minutes: int = 60
    stuck_after_minutes: int = 30


class SchedulerSettings(BaseSettings):
    """Recurring schedule engine configuration.

    Attributes:
        tick_interval_seconds: Seconds between scheduler ticks.
        batch_size: Maximum definitions executed per tick.
        retry_delay_minutes: Delay before a failed execution is retried.
    """

    model_config = SettingsConfigDict(
        env_prefix="SCHEDULER_",
        extra="ignore",
    )

    tick_interval_seconds: int = 60
    batch_size: int = 10
    retry_delay_minutes: int = 30


class DeliverySettings(BaseSettings):
    """Hybrid delivery configuration shared by all channels.

    Attributes:
        enable_email_fallback: Try email when the chat channel fails.
        enable_in_app_floor: Write an in-app record when every channel fails.
        bulk_batch_size: Recipients per bulk sub-batch.
        stagger_seconds: Delay step between sends inside a sub-batch.
        batch_delay_seconds: Pause between bulk sub-batches.
        request_timeout_seconds: Timeout for provider HTTP calls.
        default_country_prefix: Prefix added to local chat addresses.
        brand_name: Name used in message headers and email sender names.
        in_app_expiration_days: Lifetime of in-app records.
    """

    model_config = SettingsConfigDict(
        env_prefix="DELIVERY_",
        extra="ignore",
    )

    enable_email_fallback: bool = True
    enable_in_app_floor: bool = True
    bulk_batch_size: int = 10
    stagger_seconds: float = 0.2
    batch_delay_seconds: float = 1.0
    request_timeout_seconds: float = 10.0
    default_country_prefix: str = "549"
    brand_name: str = "Notiflow"
    in_app_expiration_days: int = 30


class GreenAPISettings(BaseSettings):
    """Green API chat gateway credentials."""

    model_config = SettingsConfigDict(
        env_prefix="GREEN_API_",
        extra="ignore",
    )

    enabled: bool = True
    instance_id: str | None = None
    token: SecretStr | None = None
    base_url: str = "https://api.green-api.com"

    @property
    def is_configured(self) -> bool:
        """Check if all credentials are present."""
        return self.enabled and bool(self.instance_id) and _has_secret(self.token)


class CallMeBotSettings(BaseSettings):
    """CallMeBot chat gateway credentials."""

    model_config = SettingsConfigDict(
        env_prefix="CALLMEBOT_",
        extra="ignore",
    )

    enabled: bool = True
    api_key: SecretStr | None = None
    base_url: str = "https://api.callmebot.com/whatsapp.php"

    @property
    def is_configured(self) -> bool:
        """Check if all credentials are present."""
        return self.enabled and _has_secret(self.api_key)


class MetaWhatsAppSettings(BaseSettings):
    """Meta WhatsApp Cloud API credentials."""

    model_config = SettingsConfigDict(
        env_prefix="META_WHATSAPP_",
        extra="ignore",
    )

    enabled: bool = True
    access_token: SecretStr | None = None
    phone_number_id: str | None = None
    api_version: str = "v18.0"
    cost_per_message: float = 0.005

    @property
    def is_configured(self) -> bool:
        """Check if all credentials are present."""
        return self.enabled and bool(self.phone_number_id) and _has_secret(self.access_token)


class TwilioSettings(BaseSettings):
    """Twilio WhatsApp credentials."""

    model_config = SettingsConfigDict(
        env_prefix="TWILIO_",
        extra="ignore",
    )

    enabled: bool = True
    account_sid: str | None = None
    auth_token: SecretStr | None = None
    whatsapp_from: str = "whatsapp:+14155238886"

    @property
    def is_configured(self) -> bool:
        """Check if all credentials are present."""
        return self.enabled and bool(self.account_sid) and _has_secret(self.auth_token)


class SMTPSettings(BaseSettings):
    """SMTP email configuration.

    Attributes:
        host: SMTP server hostname.
        port: SMTP server port.
        username: SMTP authentication username.
        password: SMTP authentication password.
        use_tls: Use STARTTLS.
        from_email: Sender email address.
        from_name: Sender display name.
    """

    model_config = SettingsConfigDict(
        env_prefix="SMTP_",
        extra="ignore",
    )

    enabled: bool = True
    host: str | None = None
    port: int = 587
    username: str | None = None
    password: SecretStr | None = None
    use_tls: bool = True
    from_email: str | None = None
    from_name: str = "Notiflow"

    @property
    def is_configured(self) -> bool:
        """Check if all credentials are present."""
        return (
            self.enabled
            and bool(self.host)
            and bool(self.username)
            and _has_secret(self.password)
            and bool(self.from_email)
        )


class ResendSettings(BaseSettings):
    """Resend email API credentials."""

    model_config = SettingsConfigDict(
        env_prefix="RESEND_",
        extra="ignore",
    )

    enabled: bool = True
    api_key: SecretStr | None = None
    from_email: str | None = None
    from_name: str = "Notiflow"

    @property
    def is_configured(self) -> bool:
        """Check if all credentials are present."""
        return self.enabled and _has_secret(self.api_key) and bool(self.from_email)


class SendGridSettings(BaseSettings):
    """SendGrid email API credentials."""

    model_config = SettingsConfigDict(
        env_prefix="SENDGRID_",
        extra="ignore",
    )

    enabled: bool = True
    api_key: SecretStr | None = None
    from_email: str | None = None
    from_name: str = "Notiflow"
    cost_per_message: float = 0.001

    @property
    def is_configured(self) -> bool:
        """Check if all credentials are present."""
        return self.enabled and _has_secret(self.api_key) and bool(self.from_email)


class APISettings(BaseSettings):
    """API server configuration.

    Attributes:
        host: Host to bind to.
        port: Port to listen on.
        run_workers: Start the queue processor and scheduler with the API.
    """

    model_config = SettingsConfigDict(
        env_prefix="API_",
        extra="ignore",
    )

    host: str = "0.0.0.0"
    port: int = 8000
    run_workers: bool = True


class Settings(BaseSettings):
    """Main application settings aggregating all subsettings.

    Use get_settings() to obtain a cached instance.

    Attributes:
        environment: Current environment (development, staging, production).
        debug: Enable debug mode.
        log_level: Logging level.
        database: Queue store database settings.
        queue: Queue processor settings.
        scheduler: Recurring schedule settings.
        delivery: Hybrid delivery settings.
        green_api: Green API provider settings.
        callmebot: CallMeBot provider settings.
        meta_whatsapp: Meta WhatsApp provider settings.
        twilio: Twilio provider settings.
        smtp: SMTP provider settings.
        resend: Resend provider settings.
        sendgrid: SendGrid provider settings.
        api: API server settings.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # Environment
    environment: Literal["development", "test", "staging", "production"] = "development"
    debug: bool = True
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"

    # Subsettings - loaded with their own env prefixes
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    queue: QueueSettings = Field(default_factory=QueueSettings)
    scheduler: SchedulerSettings = Field(default_factory=SchedulerSettings)
    delivery: DeliverySettings = Field(default_factory=DeliverySettings)
    green_api: GreenAPISettings = Field(default_factory=GreenAPISettings)
    callmebot: CallMeBotSettings = Field(default_factory=CallMeBotSettings)
    meta_whatsapp: MetaWhatsAppSettings = Field(default_factory=MetaWhatsAppSettings)
    twilio: TwilioSettings = Field(default_factory=TwilioSettings)
    smtp: SMTPSettings = Field(default_factory=SMTPSettings)
    resend: ResendSettings = Field(default_factory=ResendSettings)
    sendgrid: SendGridSettings = Field(default_factory=SendGridSettings)
    api: APISettings = Field(default_factory=APISettings)

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    Call clear_settings_cache() if you need to reload settings.

    Returns:
        Cached Settings instance.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache.

    Useful for testing with patched environment variables.
    """
    get_settings.cache_clear()
