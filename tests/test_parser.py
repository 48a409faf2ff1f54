"""Tests for pingpal_email.parser."""

from __future__ import annotations

import base64

from builders import binary_part, multipart, text_part
from imapclient.response_types import BodyData

from pingpal_email.parser import (
    BodyPart,
    decode_payload,
    flatten_parts,
    html_to_text,
    render_body,
    select_body_part,
)


class TestFlattenParts:
    def test_single_part_is_section_one(self):
        parts = flatten_parts(BodyData.create(text_part("plain")))
        assert [(p.section, p.mime_type) for p in parts] == [("1", "text/plain")]

    def test_nested_sections(self):
        structure = multipart(
            multipart(text_part("plain"), text_part("html"), subtype="alternative"),
            binary_part(),
        )
        parts = flatten_parts(structure)
        assert [(p.section, p.mime_type) for p in parts] == [
            ("1.1", "text/plain"),
            ("1.2", "text/html"),
            ("2", "application/pdf"),
        ]

    def test_raw_tuple_structure(self):
        # Unwrapped multipart: children as leading tuples
        raw = (text_part("plain"), text_part("html"), b"alternative", None)
        parts = flatten_parts(raw)
        assert [p.section for p in parts] == ["1", "2"]

    def test_charset_encoding_and_disposition(self):
        structure = multipart(
            text_part("plain", charset="ISO-8859-1", encoding="quoted-printable"),
            binary_part(),
        )
        plain, pdf = flatten_parts(structure)
        assert plain.charset == "ISO-8859-1"
        assert plain.encoding == "quoted-printable"
        assert plain.disposition is None
        assert pdf.is_attachment

    def test_empty(self):
        assert flatten_parts(None) == []


class TestSelectBodyPart:
    def test_plain_preferred_over_html(self):
        parts = flatten_parts(multipart(text_part("html"), text_part("plain"), subtype="alternative"))
        assert select_body_part(parts).mime_type == "text/plain"

    def test_html_when_no_plain(self):
        parts = flatten_parts(multipart(text_part("html"), binary_part()))
        assert select_body_part(parts).mime_type == "text/html"

    def test_other_text_type(self):
        parts = flatten_parts(multipart(text_part("calendar"), binary_part()))
        assert select_body_part(parts).mime_type == "text/calendar"

    def test_attachments_are_not_candidates(self):
        parts = flatten_parts(
            multipart(text_part("plain", disposition="attachment"), text_part("html"))
        )
        selected = select_body_part(parts)
        assert selected.mime_type == "text/html"
        assert selected.section == "2"

    def test_no_text_part(self):
        parts = flatten_parts(multipart(binary_part("image", "png"), binary_part()))
        assert select_body_part(parts) is None


class TestDecodePayload:
    def test_base64(self):
        part = BodyPart(section="1", mime_type="text/plain", encoding="base64", charset="utf-8")
        payload = base64.b64encode("Grüße".encode())
        assert decode_payload(payload, part) == "Grüße"

    def test_quoted_printable_latin1(self):
        part = BodyPart(
            section="1",
            mime_type="text/plain",
            encoding="quoted-printable",
            charset="iso-8859-1",
        )
        assert decode_payload(b"caf=E9 ol=E9", part) == "café olé"

    def test_unknown_charset_falls_back_to_utf8(self):
        part = BodyPart(section="1", mime_type="text/plain", charset="x-made-up")
        assert decode_payload("naïve".encode(), part) == "naïve"

    def test_invalid_bytes_replaced(self):
        part = BodyPart(section="1", mime_type="text/plain", charset="utf-8")
        assert decode_payload(b"ok \xff", part) == "ok �"


class TestHtmlToText:
    def test_strips_tags(self):
        assert html_to_text("<p>Hello <b>World</b></p>") == "Hello World"

    def test_images_and_rules_dropped(self):
        html = '<p>Top</p><img src="cid:logo" alt="Logo"><hr><p>Bottom</p>'
        text = html_to_text(html)
        assert "Logo" not in text
        assert text.splitlines() == ["Top", "Bottom"]

    def test_script_and_style_removed(self):
        html = "<style>p {color: red}</style><script>alert(1)</script><div>Body</div>"
        assert html_to_text(html) == "Body"

    def test_line_breaks_and_whitespace(self):
        html = "<div>Line   one<br>Line\n two</div>"
        assert html_to_text(html).splitlines() == ["Line one", "Line", "two"]

    def test_nested_dropped_tags(self):
        html = "<head><style>x</style></head><body><p>Only</p></body>"
        assert html_to_text(html) == "Only"


class TestRenderBody:
    def test_plain_verbatim(self):
        part = BodyPart(section="1", mime_type="text/plain")
        assert render_body(b"Meeting is now at 3pm", part) == "Meeting is now at 3pm"

    def test_html_stripped(self):
        part = BodyPart(section="1", mime_type="text/html")
        assert render_body(b"<p>Meeting is <i>now</i></p>", part) == "Meeting is now"
