"""Tests for pingpal_email.config."""

from __future__ import annotations

import pytest
from pydantic import SecretStr

from pingpal_email.config import (
    ClassifierConfig,
    ImapConfig,
    RetryConfig,
    StoreConfig,
    TelegramConfig,
    WatcherConfig,
    load_config,
)
from pingpal_email.errors import ConfigError

REQUIRED_ENV = {
    "IMAP_HOST": "imap.env.com",
    "IMAP_USERNAME": "me@env.com",
    "IMAP_PASSWORD": "envpass",
    "CLASSIFIER_API_KEY": "sk-env",
    "TELEGRAM_BOT_TOKEN": "999:xyz",
    "TELEGRAM_CHAT_ID": "777",
}


@pytest.fixture
def clean_env(monkeypatch):
    for name in REQUIRED_ENV:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.delenv("PINGPAL_USER_EMAIL_ADDRESS", raising=False)
    return monkeypatch


@pytest.fixture
def full_env(clean_env):
    for name, value in REQUIRED_ENV.items():
        clean_env.setenv(name, value)
    return clean_env


class TestImapConfig:
    def test_defaults(self):
        cfg = ImapConfig(host="imap.test.com", username="u", password="p")
        assert cfg.port == 993
        assert cfg.use_ssl is True
        assert cfg.mailbox == "INBOX"
        assert cfg.idle_timeout_seconds == 300.0
        assert cfg.reconnect_delay_seconds == 5.0
        assert cfg.error_reconnect_delay_seconds == 30.0

    def test_password_is_secret(self):
        cfg = ImapConfig(host="h", username="u", password="hunter2")
        assert isinstance(cfg.password, SecretStr)
        assert "hunter2" not in repr(cfg)
        assert cfg.password.get_secret_value() == "hunter2"

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("IMAP_HOST", "env-imap.example.com")
        monkeypatch.setenv("IMAP_PORT", "143")
        monkeypatch.setenv("IMAP_USE_SSL", "false")
        monkeypatch.setenv("IMAP_USERNAME", "envuser")
        monkeypatch.setenv("IMAP_PASSWORD", "envpass")
        monkeypatch.setenv("IMAP_MAILBOX", "Priority")
        cfg = ImapConfig()
        assert cfg.host == "env-imap.example.com"
        assert cfg.port == 143
        assert cfg.use_ssl is False
        assert cfg.mailbox == "Priority"


class TestOtherSections:
    def test_classifier_defaults(self):
        cfg = ClassifierConfig(api_key="k")
        assert cfg.base_url == "https://api.openai.com/v1"
        assert cfg.model == "gpt-4o-mini"

    def test_telegram_token_is_secret(self):
        cfg = TelegramConfig(bot_token="123:abc", chat_id="1")
        assert "123:abc" not in repr(cfg)
        assert cfg.api_base_url == "https://api.telegram.org"

    def test_store_default(self):
        assert StoreConfig().database_url.startswith("sqlite+aiosqlite://")

    def test_retry_defaults(self):
        cfg = RetryConfig()
        assert cfg.max_attempts == 3
        assert cfg.multiplier == 2.0


class TestWatcherConfig:
    def test_alert_address_defaults_to_username(self, watcher_config: WatcherConfig):
        assert watcher_config.alert_address == "testuser@test.com"

    def test_alert_address_override(self, watcher_config: WatcherConfig):
        cfg = watcher_config.model_copy(update={"user_email_address": "alerts@home.org"})
        assert cfg.alert_address == "alerts@home.org"


class TestLoadConfig:
    def test_loads_from_env(self, full_env):
        full_env.setenv("PINGPAL_HEALTH_PORT", "0")
        cfg = load_config()
        assert cfg.imap.host == "imap.env.com"
        assert cfg.telegram.chat_id == "777"
        assert cfg.classifier.api_key.get_secret_value() == "sk-env"
        assert cfg.health_port == 0

    def test_missing_credentials_reported_together(self, clean_env):
        with pytest.raises(ConfigError) as excinfo:
            load_config()
        message = str(excinfo.value)
        assert "ImapConfig.host" in message
        assert "ImapConfig.password" in message
        assert "ClassifierConfig.api_key" in message
        assert "TelegramConfig.bot_token" in message
        assert "TelegramConfig.chat_id" in message

    def test_invalid_value(self, full_env):
        full_env.setenv("IMAP_PORT", "not-a-port")
        with pytest.raises(ConfigError, match="ImapConfig.port"):
            load_config()

    def test_overrides_skip_env_sections(self, clean_env, imap_config, classifier_config, telegram_config):
        cfg = load_config(imap=imap_config, classifier=classifier_config, telegram=telegram_config)
        assert cfg.imap.host == "imap.test.com"
