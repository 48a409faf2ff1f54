"""SessionManager: owns the IMAP session and turns mailbox growth into
:class:`NewMessagesEvent` wake-ups.

The session retries forever: connection errors tear the session down
and reconnect after a fixed delay.  Only a shutdown ends
:meth:`SessionManager.events`.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import AsyncIterator, Iterable
from dataclasses import dataclass, field

import structlog

from .config import ImapConfig
from .errors import MailConnectionError
from .imap_client import AsyncImapClient, IdleReport
from .models import SessionState

logger = structlog.get_logger()


@dataclass
class NewMessagesEvent:
    """UIDs of messages to process, in server order."""

    uids: list[int] = field(default_factory=list)
    exists: int = 0


def select_new_uids(unseen: Iterable[int], high_water: int) -> list[int]:
    """Keep only the unseen UIDs above *high_water*, ascending."""
    return sorted(uid for uid in set(unseen) if uid > high_water)


def mailbox_grew(previous_exists: int, report: IdleReport) -> bool:
    """True if the count reported during IDLE is above the count we last saw,
    net of the messages expunged in the same wait.
    """
    if report.exists is None:
        return False
    return report.exists > previous_exists - report.expunged


class SessionManager:
    """Connection lifecycle for one watched mailbox.

    Consumers iterate :meth:`events`; each event is yielded with the
    mailbox lock released, so the consumer may take it for the batch.
    """

    def __init__(
        self,
        client: AsyncImapClient,
        config: ImapConfig,
        shutdown_event: asyncio.Event,
    ) -> None:
        self._client = client
        self._config = config
        self._shutdown = shutdown_event
        self._state = SessionState.DISCONNECTED
        self.mailbox_lock = asyncio.Lock()
        self.exists = 0
        self.high_water = 0
        self.reconnects = 0

    @property
    def state(self) -> SessionState:
        return self._state

    # ------------------------------------------------------------------
    # Event stream
    # ------------------------------------------------------------------

    async def events(self) -> AsyncIterator[NewMessagesEvent]:
        try:
            while not self._shutdown.is_set():
                delay = self._config.reconnect_delay_seconds
                try:
                    await self._establish()
                    initial = await self._initial_batch()
                    rescan = bool(initial.uids)
                    if initial.uids:
                        yield initial

                    while not self._shutdown.is_set():
                        # EXISTS pushed while a batch ran reaches the client outside
                        # IDLE and is lost, so every batch and every IDLE timeout is
                        # followed by a fresh UNSEEN search
                        if rescan:
                            rescan = False
                            event = await self._rescan()
                            if event is not None:
                                yield event
                                rescan = True
                                continue

                        async with self.mailbox_lock:
                            report = await self._client.wait_for_changes(
                                self._config.idle_timeout_seconds,
                                self._shutdown,
                            )
                        if report.aborted:
                            break
                        if report.closed:
                            logger.info("imap_server_closed_session", mailbox=self._config.mailbox)
                            break

                        grew = self._apply(report)
                        if report.timed_out:
                            rescan = True
                            continue
                        event = await self._rescan() if grew else None
                        if event is None:
                            await self._sleep(self._config.idle_restart_delay_seconds)
                            continue
                        yield event
                        rescan = True
                except MailConnectionError as exc:
                    self._transition(SessionState.ERROR, error=str(exc))
                    delay = self._config.error_reconnect_delay_seconds

                await self._teardown()
                if self._shutdown.is_set():
                    break
                logger.info("imap_reconnect_scheduled", delay_seconds=delay)
                await self._sleep(delay)
                self.reconnects += 1
        finally:
            await self._teardown()

    # ------------------------------------------------------------------
    # Lifecycle steps
    # ------------------------------------------------------------------

    async def _establish(self) -> None:
        self._transition(SessionState.CONNECTING)
        await self._client.connect()
        await self._client.login()
        self._transition(SessionState.AUTHENTICATED)
        self.exists = await self._client.select_mailbox()
        self._transition(SessionState.MAILBOX_SELECTED, exists=self.exists)

    async def _initial_batch(self) -> NewMessagesEvent:
        """Everything unseen at select time; covers mail that arrived offline."""
        async with self.mailbox_lock:
            unseen = await self._client.search_unseen()
        uids = select_new_uids(unseen, 0)
        self.high_water = max(uids, default=0)
        self._transition(SessionState.WAITING, unseen=len(uids))
        return NewMessagesEvent(uids=uids, exists=self.exists)

    def _apply(self, report: IdleReport) -> bool:
        """Fold an IDLE report into :attr:`exists`; True if the mailbox grew."""
        grew = mailbox_grew(self.exists, report)
        if report.exists is not None:
            self.exists = report.exists
        else:
            self.exists = max(self.exists - report.expunged, 0)
        return grew

    async def _rescan(self) -> NewMessagesEvent | None:
        async with self.mailbox_lock:
            unseen = await self._client.search_unseen()
        uids = select_new_uids(unseen, self.high_water)
        if not uids:
            logger.debug("rescan_without_new_unseen", exists=self.exists)
            return None
        self.high_water = uids[-1]
        logger.info("new_messages", count=len(uids), exists=self.exists)
        return NewMessagesEvent(uids=uids, exists=self.exists)

    async def _teardown(self) -> None:
        if self._client.connected:
            await self._client.disconnect()
        if self._state != SessionState.DISCONNECTED:
            self._transition(SessionState.DISCONNECTED)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _transition(self, state: SessionState, **context: object) -> None:
        previous, self._state = self._state, state
        log = logger.warning if state == SessionState.ERROR else logger.info
        log(
            "session_state_changed",
            mailbox=self._config.mailbox,
            previous=previous.value,
            state=state.value,
            **context,
        )

    async def _sleep(self, delay: float) -> None:
        """Sleep for *delay* seconds, returning early on shutdown."""
        with contextlib.suppress(TimeoutError):
            await asyncio.wait_for(self._shutdown.wait(), timeout=delay)
