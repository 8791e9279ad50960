"""Async IMAP client wrapping stdlib imaplib with asyncio.to_thread.

``imaplib`` failures are translated at this boundary: a lost or unusable
connection becomes :class:`ConnectionFatalError`, while NO/BAD responses to
a mailbox, search or fetch command become the matching recoverable error.
"""

from __future__ import annotations

import asyncio
import imaplib
import re
import socket
import ssl
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

import structlog

from .config import ImapConfig
from .errors import (
    ConnectionFatalError,
    FetchStreamError,
    FolderOpenError,
    FolderSearchError,
)

logger = structlog.get_logger()

T = TypeVar("T")

_UID_RE = re.compile(rb"UID (\d+)")


@dataclass
class FetchedEmail:
    """Raw email data fetched from IMAP."""

    uid: str
    raw_bytes: bytes


class AsyncImapClient:
    """Async-friendly IMAP client owning one connection.

    All blocking ``imaplib`` operations are wrapped with
    ``asyncio.to_thread()`` to avoid blocking the event loop.
    """

    def __init__(self, config: ImapConfig) -> None:
        self._config = config
        self._conn: imaplib.IMAP4_SSL | imaplib.IMAP4 | None = None
        self._mailbox: str = ""

    @property
    def mailbox(self) -> str:
        """Name of the currently selected mailbox, or ``""``."""
        return self._mailbox

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """Connect and log in.  Any failure is fatal for the session."""
        try:
            await self._run(self._connect_sync)
        except imaplib.IMAP4.error as exc:
            raise ConnectionFatalError(f"connect failed: {exc}") from exc
        logger.info("imap_connected", host=self._config.host, port=self._config.port)

    def _connect_sync(self) -> None:
        cfg = self._config
        context = self._ssl_context()
        if cfg.use_ssl:
            conn: imaplib.IMAP4 = imaplib.IMAP4_SSL(
                cfg.host,
                cfg.port,
                ssl_context=context,
                timeout=cfg.connect_timeout_seconds,
            )
        else:
            conn = imaplib.IMAP4(cfg.host, cfg.port, timeout=cfg.connect_timeout_seconds)

        try:
            if not cfg.use_ssl and cfg.starttls != "never":
                self._starttls(conn, context)
            if cfg.keepalive:
                conn.sock.setsockopt(socket.SOL_SOCKET, socket.SO_KEEPALIVE, 1)
            conn.sock.settimeout(cfg.auth_timeout_seconds)
            conn.login(cfg.username, cfg.password.get_secret_value())
            # No per-command timeout once authenticated
            conn.sock.settimeout(None)
        except Exception:
            _shutdown_quietly(conn)
            raise

        self._conn = conn

    def _starttls(self, conn: imaplib.IMAP4, context: ssl.SSLContext) -> None:
        if "STARTTLS" not in conn.capabilities:
            if self._config.starttls == "required":
                raise imaplib.IMAP4.error("server does not offer STARTTLS")
            logger.warning("imap_starttls_unavailable", host=self._config.host)
            return
        conn.starttls(ssl_context=context)

    def _ssl_context(self) -> ssl.SSLContext:
        context = ssl.create_default_context()
        if not self._config.verify_tls:
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE
        return context

    async def close(self) -> None:
        """Close the mailbox and log out.  A no-op when already closed."""
        if self._conn is None:
            return
        conn, self._conn = self._conn, None
        await asyncio.to_thread(_logout_quietly, conn)
        logger.info("imap_disconnected", host=self._config.host)

    async def is_connected(self) -> bool:
        """Check connection liveness with a NOOP command."""
        if self._conn is None:
            return False
        try:
            status, _ = await asyncio.to_thread(self._conn.noop)
            return status == "OK"
        except (imaplib.IMAP4.error, OSError):
            return False

    # ------------------------------------------------------------------
    # Mailbox operations
    # ------------------------------------------------------------------

    async def open_mailbox(self, name: str, *, readonly: bool) -> int:
        """SELECT (or EXAMINE when *readonly*) a mailbox.  Returns its message count."""
        conn = self._require_conn()
        self._mailbox = ""
        try:
            status, data = await self._run(conn.select, _quote_mailbox(name), readonly=readonly)
        except imaplib.IMAP4.error as exc:
            raise FolderOpenError(name, str(exc)) from exc
        if status != "OK":
            raise FolderOpenError(name, _response_text(data))
        self._mailbox = name
        try:
            return int(data[0])
        except (TypeError, ValueError, IndexError):
            return 0

    async def search(self, criterion: str) -> list[str]:
        """UID SEARCH the selected mailbox.  Returns matching UIDs in server order."""
        conn = self._require_conn()
        try:
            status, data = await self._run(conn.uid, "SEARCH", None, criterion)
        except imaplib.IMAP4.error as exc:
            raise FolderSearchError(self._mailbox, str(exc)) from exc
        if status != "OK":
            raise FolderSearchError(self._mailbox, _response_text(data))
        if not data or not data[0]:
            return []
        return [uid.decode() for uid in data[0].split()]

    async def fetch(self, uids: list[str], *, mark_seen: bool) -> AsyncIterator[FetchedEmail]:
        """Fetch full bodies for *uids* with a single UID FETCH command.

        ``BODY[]`` lets the server set ``\\Seen``; ``BODY.PEEK[]`` leaves the
        flags untouched.  Messages are yielded in response order.  A NO/BAD
        response raises :class:`FetchStreamError` after any messages that
        did arrive have been yielded.
        """
        conn = self._require_conn()
        item = "(UID BODY[])" if mark_seen else "(UID BODY.PEEK[])"
        try:
            status, data = await self._run(conn.uid, "FETCH", ",".join(uids), item)
        except imaplib.IMAP4.error as exc:
            raise FetchStreamError(str(exc)) from exc

        for fetched in _split_fetch_response(data, uids):
            yield fetched

        if status != "OK":
            raise FetchStreamError(_response_text(data))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _require_conn(self) -> imaplib.IMAP4:
        if self._conn is None:
            raise ConnectionFatalError("not connected")
        return self._conn

    async def _run(self, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Run a blocking imaplib call in a thread, mapping transport failures."""
        try:
            return await asyncio.to_thread(func, *args, **kwargs)
        except imaplib.IMAP4.readonly:
            # Subclass of abort, but the connection is still usable
            raise
        except imaplib.IMAP4.abort as exc:
            raise ConnectionFatalError(f"connection lost: {exc}") from exc
        except OSError as exc:
            raise ConnectionFatalError(f"socket error: {exc}") from exc


def _split_fetch_response(data: list[Any], uids: list[str]) -> list[FetchedEmail]:
    """Pull (uid, raw bytes) pairs out of an imaplib FETCH response.

    Servers may put ``UID n`` before the literal, in the tuple envelope, or
    after it, in the bytes element that closes the item.  Only when neither
    carries it is the UID taken by position from *uids*.
    """
    parts = list(data or [])
    results: list[FetchedEmail] = []
    for index, part in enumerate(parts):
        if not isinstance(part, tuple) or len(part) < 2:
            continue
        envelope, raw = part[0], part[1]
        match = _UID_RE.search(envelope)
        if match is None and index + 1 < len(parts) and isinstance(parts[index + 1], bytes):
            match = _UID_RE.search(parts[index + 1])
        if match:
            uid = match.group(1).decode()
        elif len(results) < len(uids):
            uid = uids[len(results)]
        else:
            uid = ""
        results.append(FetchedEmail(uid=uid, raw_bytes=raw))
    return results


def _quote_mailbox(name: str) -> str:
    if re.fullmatch(r"[A-Za-z0-9._/\-]+", name):
        return name
    escaped = name.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def _response_text(data: list[Any] | None) -> str:
    if not data or data[0] is None:
        return "no response text"
    first = data[0]
    if isinstance(first, tuple):
        first = first[0]
    return first.decode(errors="replace") if isinstance(first, bytes) else str(first)


def _logout_quietly(conn: imaplib.IMAP4) -> None:
    try:
        conn.close()
    except (imaplib.IMAP4.error, OSError):
        pass
    try:
        conn.logout()
    except (imaplib.IMAP4.error, OSError):
        pass


def _shutdown_quietly(conn: imaplib.IMAP4) -> None:
    try:
        conn.shutdown()
    except OSError:
        pass
