"""Watcher configuration loaded from environment variables.

Uses pydantic-settings so every field can be overridden via env vars.
Credentials are required fields without defaults: a process started
without them fails in :func:`load_config` instead of running degraded.
"""

from __future__ import annotations

from pydantic import Field, SecretStr, ValidationError
from pydantic_settings import BaseSettings

from .errors import ConfigError


class ImapConfig(BaseSettings):
    """IMAP server connection and session-lifecycle settings."""

    model_config = {"env_prefix": "IMAP_"}

    host: str = Field(description="IMAP server hostname")
    port: int = Field(default=993, description="IMAP server port")
    use_ssl: bool = Field(default=True, description="Use SSL/TLS connection")
    username: str = Field(description="IMAP login username")
    password: SecretStr = Field(description="IMAP login password")
    mailbox: str = Field(default="INBOX", description="IMAP mailbox/folder to watch")
    timeout_seconds: float = Field(
        default=30.0,
        description="Socket timeout for IMAP commands",
    )
    idle_timeout_seconds: float = Field(
        default=300.0,
        description="Maximum time to hold one IDLE before re-issuing it",
    )
    idle_restart_delay_seconds: float = Field(
        default=1.0,
        description="Delay before re-entering IDLE on the same connection",
    )
    reconnect_delay_seconds: float = Field(
        default=5.0,
        description="Delay before reconnecting after the server closed the session cleanly",
    )
    error_reconnect_delay_seconds: float = Field(
        default=30.0,
        description="Delay before reconnecting after a connection error",
    )


class ClassifierConfig(BaseSettings):
    """OpenAI-compatible chat-completions endpoint used for importance scoring."""

    model_config = {"env_prefix": "CLASSIFIER_"}

    api_key: SecretStr = Field(description="API key for the classifier provider")
    base_url: str = Field(
        default="https://api.openai.com/v1",
        description="Base URL of the chat-completions API",
    )
    model: str = Field(default="gpt-4o-mini", description="Model name")
    timeout_seconds: float = Field(default=30.0, description="HTTP request timeout")
    max_body_chars: int = Field(
        default=8000,
        description="Body text beyond this length is cut before prompting",
    )


class TelegramConfig(BaseSettings):
    """Telegram Bot API settings for important-email alerts."""

    model_config = {"env_prefix": "TELEGRAM_"}

    bot_token: SecretStr = Field(description="Telegram bot token")
    chat_id: str = Field(description="Target chat / user ID that receives alerts")
    api_base_url: str = Field(
        default="https://api.telegram.org",
        description="Telegram Bot API base URL",
    )
    timeout_seconds: float = Field(default=10.0, description="HTTP request timeout")


class StoreConfig(BaseSettings):
    """Processed-record store settings."""

    model_config = {"env_prefix": "STORE_"}

    database_url: str = Field(
        default="sqlite+aiosqlite:///pingpal.db",
        description="SQLAlchemy async database URL",
    )


class RetryConfig(BaseSettings):
    """Retry / backoff settings for processed-record writes."""

    model_config = {"env_prefix": "RETRY_"}

    max_attempts: int = Field(default=3, description="Maximum write attempts per record")
    initial_wait_seconds: float = Field(
        default=0.5,
        description="Initial backoff wait in seconds",
    )
    max_wait_seconds: float = Field(
        default=5.0,
        description="Maximum backoff wait in seconds",
    )
    multiplier: float = Field(default=2.0, description="Exponential backoff multiplier")


class WatcherConfig(BaseSettings):
    """Root configuration for one watched mailbox.

    Nested configs are populated from their own env-var prefixes.
    """

    model_config = {"env_prefix": "PINGPAL_"}

    name: str = Field(default="pingpal-email", description="Service name used in logs and health")
    health_port: int = Field(
        default=8080,
        description="Port for health probe endpoints (0 to disable)",
    )
    log_json: bool = Field(default=True, description="Emit JSON log lines")
    log_level: str = Field(default="INFO", description="Root log level")
    user_email_address: str | None = Field(
        default=None,
        description="Address shown in alerts (defaults to the IMAP username)",
    )

    imap: ImapConfig = Field(default_factory=ImapConfig)
    classifier: ClassifierConfig = Field(default_factory=ClassifierConfig)
    telegram: TelegramConfig = Field(default_factory=TelegramConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)

    @property
    def alert_address(self) -> str:
        return self.user_email_address or self.imap.username


_SECTIONS: dict[str, type[BaseSettings]] = {
    "imap": ImapConfig,
    "classifier": ClassifierConfig,
    "telegram": TelegramConfig,
    "store": StoreConfig,
    "retry": RetryConfig,
}


def _problems(exc: ValidationError) -> list[str]:
    return [
        f"{exc.title}.{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
        for error in exc.errors()
    ]


def load_config(**overrides: object) -> WatcherConfig:
    """Build :class:`WatcherConfig`, reporting missing settings as :class:`ConfigError`.

    Each nested section is loaded on its own first so that one error
    message names every missing setting, not just the first section's.
    """
    problems: list[str] = []
    sections: dict[str, object] = {}
    for name, section in _SECTIONS.items():
        if name in overrides:
            continue
        try:
            sections[name] = section()
        except ValidationError as exc:
            problems.extend(_problems(exc))

    if not problems:
        try:
            return WatcherConfig(**sections, **overrides)
        except ValidationError as exc:
            problems.extend(_problems(exc))

    raise ConfigError("invalid or missing configuration: " + "; ".join(sorted(problems)))
