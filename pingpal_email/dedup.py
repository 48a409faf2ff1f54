"""DedupGate: admit each resolved message id at most once."""

from __future__ import annotations

import structlog

from .errors import DedupError, StoreError
from .store import ProcessedRecordStore

logger = structlog.get_logger()


class DedupGate:
    """Thin check against the processed-record store.

    Admission is not a reservation: the record is only written once the
    message has been classified, so a message that fails between
    ``admit`` and ``append`` is admitted again on its next delivery.
    """

    def __init__(self, store: ProcessedRecordStore) -> None:
        self._store = store

    async def admit(self, message_id: str) -> bool:
        """Return ``False`` if *message_id* already has a record."""
        try:
            seen = await self._store.exists(message_id)
        except StoreError as exc:
            raise DedupError(f"dedup lookup failed for {message_id}: {exc}") from exc
        if seen:
            logger.debug("dedup_rejected", message_id=message_id)
        return not seen
