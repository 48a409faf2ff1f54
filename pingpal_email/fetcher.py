"""MessageFetcher: turn a server UID into a NormalizedMessage."""

from __future__ import annotations

import structlog

from .envelope import resolve_message_id, resolve_recipients, resolve_sender, resolve_subject
from .errors import FetchError, MailConnectionError
from .imap_client import AsyncImapClient
from .models import NormalizedMessage
from .parser import BodyPart, flatten_parts, render_body, select_body_part

logger = structlog.get_logger()


class MessageFetcher:
    """Fetches envelope and part tree, then downloads only the body part.

    Body priority is text/plain, then text/html (markup stripped), then
    any other text/* part.  A message without a text part gets an empty
    body.  All downloads use ``BODY.PEEK`` so the message stays unseen.
    """

    def __init__(self, client: AsyncImapClient) -> None:
        self._client = client

    async def fetch(self, uid: int) -> NormalizedMessage:
        try:
            summary = await self._client.fetch_summary(uid)
        except MailConnectionError as exc:
            raise FetchError(uid, str(exc)) from exc
        if summary is None:
            raise FetchError(uid, "server returned no data")

        message_id = resolve_message_id(
            summary.envelope,
            summary.header_bytes,
            seq=summary.seq,
            uid=uid,
        )
        part = select_body_part(flatten_parts(summary.bodystructure))
        body_text = await self._download_body(uid, part) if part is not None else ""

        return NormalizedMessage(
            message_id=message_id,
            uid=uid,
            from_address=resolve_sender(summary.envelope),
            to_addresses=resolve_recipients(summary.envelope),
            subject=resolve_subject(summary.envelope),
            body_text=body_text,
            body_source=part.mime_type if part is not None else "",
        )

    async def _download_body(self, uid: int, part: BodyPart) -> str:
        if part.mime_type not in ("text/plain", "text/html"):
            logger.warning(
                "nonstandard_text_part_used",
                uid=uid,
                mime_type=part.mime_type,
                section=part.section,
            )
        try:
            payload = await self._client.download_part(uid, part.section)
        except MailConnectionError as exc:
            raise FetchError(uid, str(exc)) from exc
        if payload is None:
            raise FetchError(uid, f"body section {part.section} missing from response")
        return render_body(payload, part)
