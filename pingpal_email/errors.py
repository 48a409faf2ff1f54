"""Exception hierarchy for the mailbox watcher."""

from __future__ import annotations


class PingPalError(Exception):
    """Base class for all watcher errors."""


class ConfigError(PingPalError):
    """Required configuration is missing or invalid (fatal at startup)."""


class MailConnectionError(PingPalError):
    """Network, authentication or session failure.

    Recovered by tearing the session down and reconnecting after a delay.
    """


class FetchError(PingPalError):
    """A single message could not be fetched; the message is skipped."""

    def __init__(self, uid: int, reason: str) -> None:
        super().__init__(f"failed to fetch uid {uid}: {reason}")
        self.uid = uid
        self.reason = reason


class StoreError(PingPalError):
    """The processed-record store is unavailable or rejected a write."""


class DedupError(StoreError):
    """The dedup gate could not query the store."""


class DuplicateRecordError(StoreError):
    """A record for this message id already exists.

    Raised by the unique constraint, never retried: the message has
    already been handled by an earlier delivery.
    """



class ClassificationError(PingPalError):
    """The classifier failed or returned a response of the wrong shape."""


class NotificationError(PingPalError):
    """The notifier failed to deliver an alert."""
