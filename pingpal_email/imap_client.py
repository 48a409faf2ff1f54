"""Async IMAP client wrapping imapclient with asyncio.to_thread."""

from __future__ import annotations

import asyncio
import threading
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any, TypeVar

import structlog
from imapclient import IMAPClient
from imapclient.exceptions import IMAPClientError
from imapclient.response_types import BodyData, Envelope

from .config import ImapConfig
from .errors import MailConnectionError

logger = structlog.get_logger()

T = TypeVar("T")

# Upper bound for one idle_check() so an abort request is noticed quickly
IDLE_SLICE_SECONDS = 1.0

_SUMMARY_ITEMS = [b"ENVELOPE", b"BODYSTRUCTURE", b"BODY.PEEK[HEADER]"]


@dataclass
class MessageSummary:
    """Envelope, part tree and raw header block of one message."""

    uid: int
    seq: int | None
    envelope: Envelope | None
    bodystructure: BodyData | None
    header_bytes: bytes


@dataclass
class IdleReport:
    """What the server pushed while the session was in IDLE."""

    exists: int | None = None
    expunged: int = 0
    closed: bool = False
    aborted: bool = False

    @property
    def timed_out(self) -> bool:
        """IDLE ended on its deadline with no new message count."""
        return self.exists is None and not self.closed and not self.aborted

    @classmethod
    def from_responses(cls, responses: Iterable[tuple], *, aborted: bool = False) -> IdleReport:
        report = cls(aborted=aborted)
        for response in responses:
            if _is_bye(response):
                report.closed = True
            elif _is_count(response, b"EXISTS"):
                report.exists = response[0]
            elif _is_count(response, b"EXPUNGE"):
                report.expunged += 1
        return report


def _is_count(response: tuple, kind: bytes) -> bool:
    return len(response) >= 2 and isinstance(response[0], int) and response[1] == kind


def _is_bye(response: tuple) -> bool:
    return bool(response) and response[0] == b"BYE"


class AsyncImapClient:
    """Async-friendly IMAP client for one mailbox session.

    All blocking ``imapclient`` operations are wrapped with
    ``asyncio.to_thread()`` to avoid blocking the event loop.  Protocol
    and socket failures surface as :class:`MailConnectionError`.
    """

    def __init__(self, config: ImapConfig) -> None:
        self._config = config
        self._conn: IMAPClient | None = None
        self._abort_idle = threading.Event()

    @property
    def connected(self) -> bool:
        return self._conn is not None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """Open the TCP (optionally TLS) connection."""
        self._conn = await self._run(self._connect_sync)
        logger.info(
            "imap_connected",
            host=self._config.host,
            port=self._config.port,
            ssl=self._config.use_ssl,
        )

    def _connect_sync(self) -> IMAPClient:
        return IMAPClient(
            self._config.host,
            port=self._config.port,
            ssl=self._config.use_ssl,
            timeout=self._config.timeout_seconds,
        )

    async def login(self) -> None:
        conn = self._require_conn()
        await self._run(
            conn.login,
            self._config.username,
            self._config.password.get_secret_value(),
        )
        logger.info("imap_authenticated", username=self._config.username)

    async def select_mailbox(self) -> int:
        """Select the configured mailbox and return its message count."""
        conn = self._require_conn()
        info = await self._run(conn.select_folder, self._config.mailbox)
        exists = int(info.get(b"EXISTS", 0))
        logger.info("imap_mailbox_selected", mailbox=self._config.mailbox, exists=exists)
        return exists

    async def disconnect(self) -> None:
        """Log out, falling back to closing the socket if that fails."""
        if self._conn is None:
            return
        conn, self._conn = self._conn, None
        try:
            await asyncio.to_thread(conn.logout)
            logger.info("imap_logged_out")
        except (IMAPClientError, OSError) as exc:
            logger.warning("imap_logout_failed", error=str(exc))
            await self._force_close(conn)

    async def close(self) -> None:
        """Drop the connection without a LOGOUT exchange."""
        if self._conn is None:
            return
        conn, self._conn = self._conn, None
        await self._force_close(conn)

    async def _force_close(self, conn: IMAPClient) -> None:
        try:
            await asyncio.to_thread(conn.shutdown)
        except (IMAPClientError, OSError) as exc:
            logger.debug("imap_shutdown_failed", error=str(exc))
        logger.info("imap_connection_closed")

    # ------------------------------------------------------------------
    # Message retrieval
    # ------------------------------------------------------------------

    async def search_unseen(self) -> list[int]:
        """Return UIDs of unseen messages in server order."""
        conn = self._require_conn()
        uids = await self._run(conn.search, ["UNSEEN"])
        return [int(uid) for uid in uids]

    async def fetch_summary(self, uid: int) -> MessageSummary | None:
        """Fetch envelope, body structure and header block without setting \\Seen."""
        conn = self._require_conn()
        data = await self._run(conn.fetch, [uid], _SUMMARY_ITEMS)
        item = data.get(uid)
        if item is None:
            return None
        return MessageSummary(
            uid=uid,
            seq=item.get(b"SEQ"),
            envelope=item.get(b"ENVELOPE"),
            bodystructure=item.get(b"BODYSTRUCTURE"),
            header_bytes=item.get(b"BODY[HEADER]") or b"",
        )

    async def download_part(self, uid: int, section: str) -> bytes | None:
        """Download one body section (e.g. ``"1.2"``) without setting \\Seen."""
        conn = self._require_conn()
        data = await self._run(conn.fetch, [uid], [f"BODY.PEEK[{section}]"])
        item = data.get(uid)
        if item is None:
            return None
        payload = item.get(f"BODY[{section}]".encode())
        if payload is None:
            # Some servers echo the section with extra qualifiers; take any body item
            payload = next(
                (value for key, value in item.items() if key.startswith(b"BODY[")),
                None,
            )
        return payload

    # ------------------------------------------------------------------
    # IDLE
    # ------------------------------------------------------------------

    async def wait_for_changes(self, timeout: float, abort: asyncio.Event) -> IdleReport:
        """Hold IDLE until the mailbox grows, the server closes, *timeout* passes
        or *abort* is set.

        On cancellation the worker thread is told to send DONE and awaited
        before the cancellation propagates, so nothing else touches the
        socket while it is still in IDLE.
        """
        self._abort_idle.clear()
        idle_task = asyncio.ensure_future(self._run(self._idle_sync, timeout))
        abort_task = asyncio.ensure_future(abort.wait())
        try:
            await asyncio.wait({idle_task, abort_task}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            self._abort_idle.set()
            try:
                await asyncio.shield(idle_task)
            except MailConnectionError as exc:
                logger.debug("imap_idle_failed_during_cancel", error=str(exc))
            raise
        finally:
            abort_task.cancel()
            if not idle_task.done():
                self._abort_idle.set()
        return await idle_task

    def _idle_sync(self, timeout: float) -> IdleReport:
        conn = self._require_conn()
        responses: list[tuple] = []
        deadline = time.monotonic() + timeout

        conn.idle()
        while not self._abort_idle.is_set():
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            batch = conn.idle_check(timeout=min(IDLE_SLICE_SECONDS, remaining))
            responses.extend(batch)
            if any(_is_bye(r) for r in batch):
                # Server is going away; DONE would only hit a dead socket
                return IdleReport.from_responses(responses)
            if any(_is_count(r, b"EXISTS") for r in batch):
                break

        _, done_responses = conn.idle_done()
        responses.extend(done_responses)
        return IdleReport.from_responses(responses, aborted=self._abort_idle.is_set())

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _require_conn(self) -> IMAPClient:
        if self._conn is None:
            raise MailConnectionError("not connected")
        return self._conn

    async def _run(self, func: Callable[..., T], *args: Any) -> T:
        try:
            return await asyncio.to_thread(func, *args)
        except (IMAPClientError, OSError) as exc:
            raise MailConnectionError(f"{type(exc).__name__}: {exc}") from exc
