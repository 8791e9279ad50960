"""Full MIME parser that walks the entire message to extract body text, HTML,
attachments, and all headers.
"""

from __future__ import annotations

import email
import email.message
import email.policy
import email.utils
import hashlib
import re
from datetime import datetime

import html2text

from .errors import MessageParseError
from .models import ParsedAttachment, ParsedMessage

# Exceptions the stdlib email package raises on malformed input.
_PARSE_FAILURES = (ValueError, LookupError, TypeError, AttributeError)


class MimeParser:
    """Stateless parser: raw RFC 822 bytes → ParsedMessage."""

    def parse(self, raw_bytes: bytes, *, folder: str, uid: str = "") -> ParsedMessage:
        if not raw_bytes:
            raise MessageParseError("empty message")
        try:
            return self._parse(raw_bytes, folder=folder, uid=uid)
        except _PARSE_FAILURES as exc:
            raise MessageParseError(f"{type(exc).__name__}: {exc}") from exc

    def _parse(self, raw_bytes: bytes, *, folder: str, uid: str) -> ParsedMessage:
        msg = email.message_from_bytes(raw_bytes, policy=email.policy.default)
        if not msg.keys():
            raise MessageParseError("no headers found")

        body_text, body_html = self._extract_bodies(msg)
        if body_text is None and body_html:
            body_text = html_to_text(body_html)

        return ParsedMessage(
            subject=_header(msg, "Subject"),
            text=body_text or "",
            html=body_html or "",
            sender=self._resolve_sender(msg),
            date=self._parse_date(_header(msg, "Date")),
            folder=folder,
            headers=_header_map(msg),
            message_id=_header(msg, "Message-ID"),
            uid=uid,
            attachments=self._extract_attachments(msg),
        )

    def _resolve_sender(self, msg: email.message.Message) -> str:
        """Reply-To wins over From so replies route where the sender wants."""
        for name in ("Reply-To", "From"):
            value = _header(msg, name)
            if value.strip():
                return value
        return ""

    def _parse_date(self, value: str) -> datetime | None:
        if not value:
            return None
        try:
            return email.utils.parsedate_to_datetime(value)
        except (TypeError, ValueError):
            return None

    def _extract_bodies(self, msg: email.message.Message) -> tuple[str | None, str | None]:
        """Walk MIME parts and return (plain_text, html_text)."""
        body_text: str | None = None
        body_html: str | None = None

        for part in msg.walk():
            # Multipart containers have no content of their own
            if part.is_multipart() or _is_attachment(part):
                continue

            content_type = part.get_content_type()
            if content_type == "text/plain" and body_text is None:
                body_text = _decode_text(part)
            elif content_type == "text/html" and body_html is None:
                body_html = _decode_text(part)

        return body_text, body_html

    def _extract_attachments(self, msg: email.message.Message) -> list[ParsedAttachment]:
        """Walk MIME parts and collect attachments."""
        attachments: list[ParsedAttachment] = []

        for part in msg.walk():
            if part.is_multipart() or not _is_attachment(part):
                continue

            raw = part.get_payload(decode=True)
            if raw is None:
                continue

            checksum = hashlib.md5(raw).hexdigest()
            content_id = _strip_angle_brackets(part.get("Content-ID"))
            encoding = part.get("Content-Transfer-Encoding")

            attachments.append(
                ParsedAttachment(
                    content_type=part.get_content_type(),
                    filename=part.get_filename(),
                    transfer_encoding=str(encoding).lower() if encoding else None,
                    content_disposition=part.get_content_disposition(),
                    generated_file_name=content_id or checksum,
                    content_id=content_id,
                    checksum=checksum,
                    length=len(raw),
                    content=raw,
                )
            )

        return attachments


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------


def html_to_text(html: str) -> str:
    """Render an HTML body as plain text for messages without a text part."""
    converter = html2text.HTML2Text()
    converter.ignore_images = True
    converter.body_width = 0
    return converter.handle(html).strip()


def _is_attachment(part: email.message.Message) -> bool:
    """Attachment: Content-Disposition attachment, a named part, or any non-text leaf."""
    if part.get_content_disposition() == "attachment":
        return True
    if part.get_filename():
        return True
    return part.get_content_maintype() not in ("text", "multipart", "message")


def _decode_text(part: email.message.Message) -> str:
    try:
        content = part.get_content()  # type: ignore[attr-defined]
    except LookupError:
        # Unknown charset: fall back to a lossy UTF-8 decode
        raw = part.get_payload(decode=True) or b""
        return raw.decode("utf-8", errors="replace")
    return content if isinstance(content, str) else ""


def _strip_angle_brackets(value: object) -> str | None:
    if value is None:
        return None
    text = str(value).strip().strip("<>").strip()
    return text or None


def _header(msg: email.message.Message, name: str) -> str:
    """First value of header *name*, or ``""`` when absent."""
    wanted = name.lower()
    for key, raw in msg.raw_items():
        if key.lower() == wanted:
            return _header_value(msg, key, raw)
    return ""


def _header_map(msg: email.message.Message) -> dict[str, list[str]]:
    """Every header in message order; repeated headers keep all values."""
    headers: dict[str, list[str]] = {}
    for key, raw in msg.raw_items():
        headers.setdefault(key, []).append(_header_value(msg, key, raw))
    return headers


def _header_value(msg: email.message.Message, name: str, raw: str) -> str:
    try:
        return str(msg.policy.header_fetch_parse(name, raw))
    except _PARSE_FAILURES:
        # Malformed optional header: keep the unfolded source text
        return re.sub(r"\r?\n(?=[ \t])", "", raw).strip()
