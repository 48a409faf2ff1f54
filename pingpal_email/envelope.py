"""Identifier, subject and address resolution from IMAP envelope data.

The IMAP ``ENVELOPE`` gives subject, addresses and Message-ID without
downloading the body.  When the envelope carries no Message-ID the raw
header block (``BODY.PEEK[HEADER]``) is searched as a second source.
"""

from __future__ import annotations

import re
import time
from email.errors import HeaderParseError
from email.header import decode_header, make_header

from imapclient.response_types import Address, Envelope

from .models import NO_SUBJECT, UNKNOWN_ADDRESS

_FOLDED_LINE = re.compile(rb"\r?\n[ \t]+")
_MESSAGE_ID_LINE = re.compile(rb"^message-id:[ \t]*(.*?)[ \t]*\r?$", re.IGNORECASE | re.MULTILINE)


def decode_text(value: bytes | str | None) -> str:
    """Decode a header value, including RFC 2047 encoded words."""
    if value is None:
        return ""
    if isinstance(value, bytes):
        value = value.decode("utf-8", errors="replace")
    try:
        return str(make_header(decode_header(value)))
    except (HeaderParseError, LookupError, UnicodeDecodeError):
        return value


def resolve_subject(envelope: Envelope | None) -> str:
    subject = decode_text(envelope.subject if envelope else None).strip()
    return subject or NO_SUBJECT


def format_address(address: Address | None) -> str:
    """Render one address as ``mailbox@host``, else display name, else ``unknown``."""
    if address is None:
        return UNKNOWN_ADDRESS
    mailbox = decode_text(address.mailbox).strip()
    host = decode_text(address.host).strip()
    if mailbox and host:
        return f"{mailbox}@{host}"
    name = decode_text(address.name).strip()
    return name or UNKNOWN_ADDRESS


def resolve_sender(envelope: Envelope | None) -> str:
    if envelope is None or not envelope.from_:
        return UNKNOWN_ADDRESS
    return format_address(envelope.from_[0])


def resolve_recipients(envelope: Envelope | None) -> list[str]:
    if envelope is None or not envelope.to:
        return []
    return [format_address(address) for address in envelope.to]


def message_id_from_headers(header_bytes: bytes) -> str:
    """Return the first ``Message-ID`` header value in a raw header block."""
    if not header_bytes:
        return ""
    unfolded = _FOLDED_LINE.sub(b" ", header_bytes)
    match = _MESSAGE_ID_LINE.search(unfolded)
    if match is None:
        return ""
    return match.group(1).decode("ascii", errors="replace").strip()


def synthesize_message_id(seq: int | None, uid: int) -> str:
    """Build a fallback identifier that is unique within the session."""
    return f"<{seq if seq is not None else 0}.{uid}.{time.time_ns()}@pingpal.generated>"


def resolve_message_id(
    envelope: Envelope | None,
    header_bytes: bytes,
    *,
    seq: int | None,
    uid: int,
) -> str:
    """Envelope Message-ID, else the header block's, else a synthesized one."""
    if envelope is not None:
        from_envelope = decode_text(envelope.message_id).strip()
        if from_envelope:
            return from_envelope
    from_headers = message_id_from_headers(header_bytes)
    if from_headers:
        return from_headers
    return synthesize_message_id(seq, uid)
