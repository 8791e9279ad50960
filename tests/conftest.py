"""Shared test fixtures for the imap_receiver test suite."""

from __future__ import annotations

from collections.abc import AsyncIterator
from email import encoders
from email.mime.base import MIMEBase
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

import pytest

from imap_receiver.config import ImapConfig, KafkaSinkConfig, S3Config
from imap_receiver.errors import (
    ConnectionFatalError,
    FolderOpenError,
    FolderSearchError,
)
from imap_receiver.imap_client import FetchedEmail
from imap_receiver.interface import MessageSink, StatusReporter
from imap_receiver.models import OutcomeSummary, ParsedMessage, StatusLevel


@pytest.fixture
def imap_config() -> ImapConfig:
    return ImapConfig(
        host="imap.test.com",
        port=993,
        use_ssl=True,
        username="testuser",
        password="testpass",
    )


@pytest.fixture
def kafka_config() -> KafkaSinkConfig:
    return KafkaSinkConfig(
        bootstrap_servers="localhost:9092",
        messages_topic="parsed-messages",
        status_topic="receiver-status",
    )


@pytest.fixture
def s3_config() -> S3Config:
    return S3Config(
        bucket="test-bucket",
        attachments_prefix="email/attachments",
        region="us-east-1",
    )


# ------------------------------------------------------------------
# Sample EML builders
# ------------------------------------------------------------------


def _build_plain_email(
    *,
    subject: str = "Test Subject",
    from_addr: str = "sender@example.com",
    to_addr: str = "recipient@example.com",
    body: str = "Hello, World!",
    message_id: str = "<test-001@example.com>",
    reply_to: str | None = None,
) -> bytes:
    """Build a simple plain-text email as raw bytes."""
    msg = MIMEText(body, "plain")
    msg["Subject"] = subject
    msg["From"] = from_addr
    msg["To"] = to_addr
    msg["Message-ID"] = message_id
    msg["Date"] = "Sun, 01 Jun 2025 12:00:00 +0000"
    if reply_to:
        msg["Reply-To"] = reply_to
    return msg.as_bytes()


def _build_html_email(*, body_html: str = "<p>Hello <b>there</b></p>") -> bytes:
    msg = MIMEText(body_html, "html")
    msg["Subject"] = "HTML Email"
    msg["From"] = "sender@example.com"
    msg["To"] = "recipient@example.com"
    msg["Message-ID"] = "<html-001@example.com>"
    msg["Date"] = "Sun, 01 Jun 2025 12:00:00 +0000"
    return msg.as_bytes()


def _build_multipart_email(
    *,
    body_text: str = "Plain body",
    body_html: str = "<p>HTML body</p>",
    attachments: list[tuple[str, str, bytes]] | None = None,
    inline_images: list[tuple[str, bytes]] | None = None,
) -> bytes:
    """Build a multipart email with text, HTML, and optional attachments.

    *inline_images* are ``(content_id, payload)`` pairs attached as
    ``image/png`` parts with a Content-ID and no filename.
    """
    msg = MIMEMultipart("mixed")
    msg["Subject"] = "Multipart Email"
    msg["From"] = "sender@example.com"
    msg["To"] = "recipient@example.com"
    msg["Message-ID"] = "<multi-001@example.com>"
    msg["Date"] = "Sun, 01 Jun 2025 12:00:00 +0000"

    alt = MIMEMultipart("alternative")
    alt.attach(MIMEText(body_text, "plain"))
    alt.attach(MIMEText(body_html, "html"))
    msg.attach(alt)

    for filename, content_type, payload in attachments or []:
        maintype, subtype = content_type.split("/", 1)
        part = MIMEBase(maintype, subtype)
        part.set_payload(payload)
        encoders.encode_base64(part)
        part.add_header("Content-Disposition", "attachment", filename=filename)
        msg.attach(part)

    for content_id, payload in inline_images or []:
        part = MIMEBase("image", "png")
        part.set_payload(payload)
        encoders.encode_base64(part)
        part.add_header("Content-ID", f"<{content_id}>")
        part.add_header("Content-Disposition", "inline")
        msg.attach(part)

    return msg.as_bytes()


@pytest.fixture
def plain_eml_bytes() -> bytes:
    return _build_plain_email()


@pytest.fixture
def html_eml_bytes() -> bytes:
    return _build_html_email()


@pytest.fixture
def multipart_eml_bytes() -> bytes:
    return _build_multipart_email(
        attachments=[
            ("report.pdf", "application/pdf", b"%PDF-1.4 fake pdf content"),
            ("data.csv", "text/csv", b"col1,col2\na,b\n"),
        ],
    )


UNPARSEABLE = b"this is not an email message"


# ------------------------------------------------------------------
# Collaborator fakes
# ------------------------------------------------------------------


class FakeImapClient:
    """Scripted stand-in for AsyncImapClient.

    *mailboxes* maps folder name → list of ``(uid, raw_bytes)`` UNSEEN hits.
    Failure sets name the folders whose open or search fails; *fatal_on*
    names folders whose open loses the connection.
    """

    def __init__(
        self,
        mailboxes: dict[str, list[tuple[str, bytes]]] | None = None,
        *,
        connect_error: Exception | None = None,
        open_errors: set[str] | None = None,
        search_errors: set[str] | None = None,
        fetch_errors: dict[str, Exception] | None = None,
        fatal_on: set[str] | None = None,
    ) -> None:
        self.mailboxes = mailboxes or {}
        self.connect_error = connect_error
        self.open_errors = open_errors or set()
        self.search_errors = search_errors or set()
        self.fetch_errors = fetch_errors or {}
        self.fatal_on = fatal_on or set()
        self.calls: list[tuple] = []
        self.close_calls = 0
        self._current = ""

    async def connect(self) -> None:
        self.calls.append(("connect",))
        if self.connect_error is not None:
            raise self.connect_error

    async def open_mailbox(self, name: str, *, readonly: bool) -> int:
        self.calls.append(("open", name, readonly))
        if name in self.fatal_on:
            raise ConnectionFatalError("connection lost: socket closed")
        if name in self.open_errors:
            raise FolderOpenError(name, "NO Mailbox doesn't exist")
        self._current = name
        return len(self.mailboxes.get(name, []))

    async def search(self, criterion: str) -> list[str]:
        self.calls.append(("search", self._current, criterion))
        if self._current in self.search_errors:
            raise FolderSearchError(self._current, "BAD search failed")
        return [uid for uid, _ in self.mailboxes.get(self._current, [])]

    async def fetch(self, uids: list[str], *, mark_seen: bool) -> AsyncIterator[FetchedEmail]:
        self.calls.append(("fetch", self._current, list(uids), mark_seen))
        for uid, raw in self.mailboxes.get(self._current, []):
            if uid in uids:
                yield FetchedEmail(uid=uid, raw_bytes=raw)
        error = self.fetch_errors.get(self._current)
        if error is not None:
            raise error

    async def close(self) -> None:
        self.calls.append(("close",))
        self.close_calls += 1

    def folders_fetched(self) -> list[str]:
        return [c[1] for c in self.calls if c[0] == "fetch"]

    def folders_opened(self) -> list[str]:
        return [c[1] for c in self.calls if c[0] == "open"]


class RecordingSink(MessageSink):
    def __init__(self) -> None:
        self.messages: list[ParsedMessage] = []

    async def send(self, message: ParsedMessage) -> None:
        self.messages.append(message)


class RecordingReporter(StatusReporter):
    def __init__(self) -> None:
        self.progress_events: list[tuple[StatusLevel, str]] = []
        self.summaries: list[OutcomeSummary] = []

    def progress(self, level: StatusLevel, text: str) -> None:
        self.progress_events.append((level, text))

    async def report(self, summary: OutcomeSummary) -> None:
        self.summaries.append(summary)


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def reporter() -> RecordingReporter:
    return RecordingReporter()
