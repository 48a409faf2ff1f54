"""PipelineCoordinator: fetch, dedup, classify, record, maybe notify."""

from __future__ import annotations

import asyncio
from collections.abc import Iterable

import structlog

from .classifier import ClassifierAdapter
from .config import RetryConfig
from .dedup import DedupGate
from .errors import DedupError, DuplicateRecordError, FetchError, NotificationError, StoreError
from .fetcher import MessageFetcher
from .models import (
    CLASSIFICATION_FAILED_ERROR,
    NormalizedMessage,
    ProcessedRecord,
    ProcessingOutcome,
    Verdict,
)
from .notifier import NotifierAdapter
from .retry import with_retry
from .store import ProcessedRecordStore

logger = structlog.get_logger()


class PipelineCoordinator:
    """Processes wake-up batches one message at a time, in server order.

    The record is written before the notifier runs, so a message that
    has been notified always has a record and is rejected by the dedup
    gate on any later delivery.  A failure on one message never stops
    the rest of the batch.
    """

    def __init__(
        self,
        fetcher: MessageFetcher,
        gate: DedupGate,
        store: ProcessedRecordStore,
        classifier: ClassifierAdapter,
        notifier: NotifierAdapter,
        *,
        retry_config: RetryConfig,
        lock: asyncio.Lock,
    ) -> None:
        self._fetcher = fetcher
        self._gate = gate
        self._store = store
        self._classifier = classifier
        self._notifier = notifier
        self._retry_config = retry_config
        self._lock = lock

        self.processed = 0
        self.duplicates = 0
        self.failures = 0
        self.notifications = 0

    def counters(self) -> dict[str, int]:
        return {
            "messages_processed": self.processed,
            "duplicates_skipped": self.duplicates,
            "failures": self.failures,
            "notifications_sent": self.notifications,
        }

    async def process_batch(self, uids: Iterable[int]) -> list[ProcessingOutcome]:
        """Run every UID through the pipeline while holding the mailbox lock."""
        outcomes: list[ProcessingOutcome] = []
        async with self._lock:
            for uid in uids:
                try:
                    outcome = await self.process_message(uid)
                except Exception:
                    self.failures += 1
                    logger.exception("message_processing_failed", uid=uid)
                    outcome = ProcessingOutcome.FAILED
                outcomes.append(outcome)
        return outcomes

    async def process_message(self, uid: int) -> ProcessingOutcome:
        """Process one UID.  Callers must hold the mailbox lock."""
        try:
            message = await self._fetcher.fetch(uid)
        except FetchError as exc:
            self.failures += 1
            logger.warning("fetch_failed", uid=uid, error=exc.reason)
            return ProcessingOutcome.FETCH_FAILED

        try:
            admitted = await self._gate.admit(message.message_id)
        except DedupError as exc:
            self.failures += 1
            logger.error("dedup_check_failed", uid=uid, message_id=message.message_id, error=str(exc))
            return ProcessingOutcome.DEDUP_FAILED
        if not admitted:
            self.duplicates += 1
            logger.info("duplicate_skipped", uid=uid, message_id=message.message_id)
            return ProcessingOutcome.DUPLICATE

        record = await self._classify(message)

        try:
            await self._append(record)
        except DuplicateRecordError:
            self.duplicates += 1
            logger.info("duplicate_skipped", uid=uid, message_id=message.message_id, reason="record_exists")
            return ProcessingOutcome.DUPLICATE
        except StoreError as exc:
            self.failures += 1
            logger.error(
                "record_append_failed",
                uid=uid,
                message_id=message.message_id,
                attempts=self._retry_config.max_attempts,
                error=str(exc),
            )
            return ProcessingOutcome.STORE_FAILED
        self.processed += 1

        if not record.notified:
            logger.info(
                "message_recorded",
                uid=uid,
                message_id=message.message_id,
                important=record.verdict.important,
                classification_failed=record.classification_failed,
            )
            return ProcessingOutcome.RECORDED

        try:
            await self._notifier.notify(message.from_address, record.verdict.summary)
        except NotificationError as exc:
            self.failures += 1
            logger.error("notification_failed", uid=uid, message_id=message.message_id, error=str(exc))
            return ProcessingOutcome.NOTIFY_FAILED
        self.notifications += 1
        logger.info("message_notified", uid=uid, message_id=message.message_id)
        return ProcessingOutcome.NOTIFIED

    async def _classify(self, message: NormalizedMessage) -> ProcessedRecord:
        """Build the record for *message*; any classifier failure becomes the failed verdict."""
        try:
            verdict = await self._classifier.classify(message.subject, message.body_text)
            if not isinstance(verdict, Verdict):
                raise TypeError(f"classifier returned {type(verdict).__name__}, not Verdict")
        except Exception as exc:
            logger.warning(
                "classification_failed",
                uid=message.uid,
                message_id=message.message_id,
                error=str(exc),
            )
            return ProcessedRecord(
                message_id=message.message_id,
                sender=message.from_address,
                notified=False,
                verdict=Verdict.failed(),
                classification_error=CLASSIFICATION_FAILED_ERROR,
            )

        return ProcessedRecord(
            message_id=message.message_id,
            sender=message.from_address,
            notified=verdict.important,
            verdict=verdict,
        )

    async def _append(self, record: ProcessedRecord) -> None:
        @with_retry(
            self._retry_config,
            retryable_exceptions=(StoreError,),
            final_exceptions=(DuplicateRecordError,),
        )
        async def _write() -> None:
            await self._store.append(record)

        await _write()
