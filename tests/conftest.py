"""Shared test fixtures for the watcher test suite."""

from __future__ import annotations

from pathlib import Path

import pytest
from builders import make_envelope
from imapclient.response_types import Envelope

from pingpal_email.config import (
    ClassifierConfig,
    ImapConfig,
    RetryConfig,
    StoreConfig,
    TelegramConfig,
    WatcherConfig,
)


@pytest.fixture
def imap_config() -> ImapConfig:
    return ImapConfig(
        host="imap.test.com",
        port=993,
        use_ssl=True,
        username="testuser@test.com",
        password="testpass",
        mailbox="INBOX",
        idle_timeout_seconds=5.0,
        idle_restart_delay_seconds=0.0,
        reconnect_delay_seconds=0.0,
        error_reconnect_delay_seconds=0.0,
    )


@pytest.fixture
def classifier_config() -> ClassifierConfig:
    return ClassifierConfig(
        api_key="sk-test",
        base_url="https://llm.test/v1",
        model="test-model",
    )


@pytest.fixture
def telegram_config() -> TelegramConfig:
    return TelegramConfig(
        bot_token="123:abc",
        chat_id="4242",
        api_base_url="https://telegram.test",
    )


@pytest.fixture
def store_config(tmp_path: Path) -> StoreConfig:
    return StoreConfig(database_url=f"sqlite+aiosqlite:///{tmp_path / 'pingpal-test.db'}")


@pytest.fixture
def retry_config() -> RetryConfig:
    return RetryConfig(max_attempts=3, initial_wait_seconds=0.0, max_wait_seconds=0.0)


@pytest.fixture
def watcher_config(
    imap_config: ImapConfig,
    classifier_config: ClassifierConfig,
    telegram_config: TelegramConfig,
    store_config: StoreConfig,
    retry_config: RetryConfig,
) -> WatcherConfig:
    return WatcherConfig(
        name="pingpal-test",
        health_port=0,
        log_json=False,
        imap=imap_config,
        classifier=classifier_config,
        telegram=telegram_config,
        store=store_config,
        retry=retry_config,
    )


@pytest.fixture
def envelope() -> Envelope:
    return make_envelope()
