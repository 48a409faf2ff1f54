"""Body-structure traversal and body-text rendering.

Works on the IMAP ``BODYSTRUCTURE`` tree so only the one part chosen as
the body is downloaded, never the whole message.
"""

from __future__ import annotations

import base64
import binascii
import quopri
from dataclasses import dataclass
from typing import Any

from bs4 import BeautifulSoup

# Block-level elements that end a line of text when rendered
_BLOCK_TAGS = (
    "p", "div", "tr", "li", "table", "ul", "ol", "blockquote",
    "h1", "h2", "h3", "h4", "h5", "h6", "pre",
)
# Dropped entirely, not represented as text
_DROPPED_TAGS = ("img", "hr", "script", "style", "head")


@dataclass(frozen=True)
class BodyPart:
    """One leaf of the MIME part tree."""

    section: str
    mime_type: str
    encoding: str = "7bit"
    charset: str | None = None
    disposition: str | None = None

    @property
    def is_attachment(self) -> bool:
        return self.disposition == "attachment"


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("ascii", errors="replace")
    return str(value)


def _children(node: Any) -> list[Any]:
    """Sub-parts of a multipart node, or an empty list for a leaf.

    imapclient nests the sub-parts in a list at index 0; a raw parsed
    response has them as leading tuples instead.
    """
    if not node:
        return []
    if isinstance(node[0], list):
        return node[0]
    children = []
    for item in node:
        if not isinstance(item, tuple):
            break
        children.append(item)
    return children


def _params(raw: Any) -> dict[str, str]:
    if not isinstance(raw, (list, tuple)):
        return {}
    items = [_text(item) for item in raw]
    return {key.lower(): value for key, value in zip(items[::2], items[1::2])}


def _describe(node: Any, section: str) -> BodyPart:
    maintype = _text(node[0]).lower()
    subtype = _text(node[1]).lower()
    params = _params(node[2]) if len(node) > 2 else {}
    encoding = _text(node[5]).lower() if len(node) > 5 else ""

    # Extension data offsets differ by body type (RFC 3501 section 7.4.2)
    if maintype == "text":
        disposition_index = 9
    elif maintype == "message" and subtype == "rfc822":
        disposition_index = 11
    else:
        disposition_index = 8

    disposition = None
    if len(node) > disposition_index and isinstance(node[disposition_index], (list, tuple)):
        disposition = _text(node[disposition_index][0]).lower() or None

    return BodyPart(
        section=section,
        mime_type=f"{maintype}/{subtype}",
        encoding=encoding or "7bit",
        charset=params.get("charset"),
        disposition=disposition,
    )


def flatten_parts(bodystructure: Any) -> list[BodyPart]:
    """Return leaf parts in depth-first order with their IMAP section numbers."""
    parts: list[BodyPart] = []
    if bodystructure:
        _walk(bodystructure, "", parts)
    return parts


def _walk(node: Any, prefix: str, out: list[BodyPart]) -> None:
    children = _children(node)
    if children:
        for index, child in enumerate(children, start=1):
            _walk(child, f"{prefix}.{index}" if prefix else str(index), out)
        return
    # A non-multipart message has its single body at section 1
    out.append(_describe(node, prefix or "1"))


def select_body_part(parts: list[BodyPart]) -> BodyPart | None:
    """Pick the body part: text/plain, then text/html, then any text/*."""
    candidates = [part for part in parts if not part.is_attachment]
    for wanted in ("text/plain", "text/html"):
        for part in candidates:
            if part.mime_type == wanted:
                return part
    for part in candidates:
        if part.mime_type.startswith("text/"):
            return part
    return None


def decode_payload(payload: bytes, part: BodyPart) -> str:
    """Undo the transfer encoding and charset of a downloaded part."""
    data = payload
    if part.encoding == "base64":
        try:
            data = base64.b64decode(payload)
        except binascii.Error:
            data = payload
    elif part.encoding == "quoted-printable":
        data = quopri.decodestring(payload)

    charset = part.charset or "utf-8"
    try:
        return data.decode(charset, errors="replace")
    except LookupError:
        return data.decode("utf-8", errors="replace")


def html_to_text(html: str) -> str:
    """Strip markup into plain text; images and rules are dropped."""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup.find_all(_DROPPED_TAGS):
        # Nested matches are already gone with their decomposed parent
        if not tag.decomposed:
            tag.decompose()
    for br in soup.find_all("br"):
        br.replace_with("\n")
    for block in soup.find_all(_BLOCK_TAGS):
        block.insert_after("\n")

    lines = (" ".join(line.split()) for line in soup.get_text().splitlines())
    return "\n".join(line for line in lines if line)


def render_body(payload: bytes, part: BodyPart) -> str:
    text = decode_payload(payload, part)
    if part.mime_type == "text/html":
        return html_to_text(text)
    return text
