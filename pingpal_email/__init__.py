"""PingPal email watcher.

Watches one IMAP mailbox, classifies each new message for importance
and sends a Telegram alert at most once per message::

    from pingpal_email import MailWatcher, load_config
"""

from .classifier import ClassifierAdapter, LLMClassifier, parse_verdict
from .config import (
    ClassifierConfig,
    ImapConfig,
    RetryConfig,
    StoreConfig,
    TelegramConfig,
    WatcherConfig,
    load_config,
)
from .dedup import DedupGate
from .errors import (
    ClassificationError,
    ConfigError,
    DedupError,
    DuplicateRecordError,
    FetchError,
    MailConnectionError,
    NotificationError,
    PingPalError,
    StoreError,
)
from .fetcher import MessageFetcher
from .imap_client import AsyncImapClient
from .logging import setup_logging
from .models import (
    HealthStatus,
    NormalizedMessage,
    ProcessedRecord,
    ProcessingOutcome,
    SessionState,
    Verdict,
    WatcherStatus,
)
from .notifier import NotifierAdapter, TelegramNotifier
from .pipeline import PipelineCoordinator
from .session import NewMessagesEvent, SessionManager
from .store import ProcessedRecordStore
from .watcher import MailWatcher

__all__ = [
    "AsyncImapClient",
    "ClassificationError",
    "ClassifierAdapter",
    "ClassifierConfig",
    "ConfigError",
    "DedupError",
    "DedupGate",
    "DuplicateRecordError",
    "FetchError",
    "HealthStatus",
    "ImapConfig",
    "LLMClassifier",
    "MailConnectionError",
    "MailWatcher",
    "MessageFetcher",
    "NewMessagesEvent",
    "NormalizedMessage",
    "NotificationError",
    "NotifierAdapter",
    "PingPalError",
    "PipelineCoordinator",
    "ProcessedRecord",
    "ProcessedRecordStore",
    "ProcessingOutcome",
    "RetryConfig",
    "SessionManager",
    "SessionState",
    "StoreConfig",
    "StoreError",
    "TelegramConfig",
    "TelegramNotifier",
    "Verdict",
    "WatcherConfig",
    "WatcherStatus",
    "load_config",
    "parse_verdict",
    "setup_logging",
]
