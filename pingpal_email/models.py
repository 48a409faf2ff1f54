"""Data models shared across the watcher pipeline."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator

NO_SUBJECT = "No Subject"
UNKNOWN_ADDRESS = "unknown"

CLASSIFICATION_FAILED_REASON = "LLM processing failed"
CLASSIFICATION_FAILED_ERROR = "LLM_PROCESSING_FAILED"


class SessionState(str, Enum):
    """Lifecycle state of the IMAP session for one watched mailbox."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    AUTHENTICATED = "authenticated"
    MAILBOX_SELECTED = "mailbox_selected"
    WAITING = "waiting"
    ERROR = "error"


class WatcherStatus(str, Enum):
    """Runtime status of the watcher process."""

    STARTING = "starting"
    RUNNING = "running"
    DEGRADED = "degraded"
    STOPPING = "stopping"
    STOPPED = "stopped"


class ProcessingOutcome(str, Enum):
    """What happened to one message in a wake-up batch."""

    FETCH_FAILED = "fetch_failed"
    DUPLICATE = "duplicate"
    DEDUP_FAILED = "dedup_failed"
    STORE_FAILED = "store_failed"
    RECORDED = "recorded"
    NOTIFIED = "notified"
    NOTIFY_FAILED = "notify_failed"
    FAILED = "failed"


class NormalizedMessage(BaseModel):
    """Canonical representation of one newly reported message."""

    model_config = {"frozen": True}

    message_id: str = Field(description="Stable identifier used as the dedup key")
    uid: int = Field(description="Server-assigned UID the message was fetched by")
    from_address: str = Field(description="Sender as mailbox@host, display name or 'unknown'")
    to_addresses: list[str] = Field(default_factory=list, description="Resolved recipients")
    subject: str = Field(default=NO_SUBJECT, description="Decoded subject line")
    body_text: str = Field(default="", description="Best-effort plain-text body")
    body_source: str = Field(
        default="",
        description="MIME type of the part the body was taken from",
    )

    @field_validator("message_id")
    @classmethod
    def _message_id_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("message_id must not be blank")
        return value


class Verdict(BaseModel):
    """The classifier's importance judgement for one message."""

    model_config = {"frozen": True, "strict": True}

    important: bool
    summary: str
    reason: str

    @classmethod
    def failed(cls) -> Verdict:
        return cls(important=False, summary="", reason=CLASSIFICATION_FAILED_REASON)


class ProcessedRecord(BaseModel):
    """One persisted entry per message that went through classification."""

    model_config = {"frozen": True}

    message_id: str = Field(description="Matches NormalizedMessage.message_id")
    sender: str = Field(description="Resolved sender address")
    notified: bool = Field(description="True when an alert was due for this message")
    verdict: Verdict = Field(description="Classifier verdict, or the failed verdict")
    classification_error: str | None = Field(
        default=None,
        description="Error marker when classification failed",
    )
    processed_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        description="When the record was created (UTC)",
    )

    @property
    def classification_failed(self) -> bool:
        return self.classification_error is not None


class HealthStatus(BaseModel):
    """Response model for the /health endpoint."""

    service: str = Field(description="Name of the watcher")
    status: WatcherStatus = Field(description="Current watcher status")
    session_state: SessionState = Field(description="Current IMAP session state")
    uptime_seconds: float = Field(description="Seconds since the watcher started")
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Mailbox and pipeline counters",
    )
