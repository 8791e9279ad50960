"""Folder processor: open one mailbox, search UNSEEN, fetch and parse hits."""

from __future__ import annotations

import asyncio
from collections import deque
from typing import TYPE_CHECKING

import structlog

from .errors import FetchStreamError, FolderOpenError, FolderSearchError, MessageParseError
from .models import SEARCH_CRITERION, FolderOutcome, ParsedMessage, SessionStats

if TYPE_CHECKING:
    from .imap_client import AsyncImapClient, FetchedEmail
    from .interface import MessageSink
    from .parser import MimeParser

logger = structlog.get_logger()


class FolderProcessor:
    """Processes one mailbox at a time on a connection it does not own.

    Parses of fetched messages run concurrently, but the processor waits
    for every parse it started before returning, and hands the results to
    the sink in fetch order.  Parse failures drop the single message;
    open and search failures fail the folder; a broken fetch stream is
    logged and the folder still completes.  :class:`ConnectionFatalError`
    is never caught here.
    """

    def __init__(
        self,
        client: AsyncImapClient,
        parser: MimeParser,
        sink: MessageSink,
        stats: SessionStats,
        *,
        mark_seen: bool,
    ) -> None:
        self._client = client
        self._parser = parser
        self._sink = sink
        self._stats = stats
        self._mark_seen = mark_seen

    async def process(self, folder: str) -> FolderOutcome:
        log = logger.bind(folder=folder)

        try:
            await self._client.open_mailbox(folder, readonly=not self._mark_seen)
        except FolderOpenError as exc:
            log.error("folder_open_failed", reason=exc.reason)
            return FolderOutcome.open_failed(folder, f'Could not open folder "{folder}": {exc.reason}')

        self._stats.folder_counts.setdefault(folder, 0)

        try:
            uids = await self._client.search(SEARCH_CRITERION)
        except FolderSearchError as exc:
            log.error("folder_search_failed", reason=exc.reason)
            return FolderOutcome.search_failed(
                folder, f'Search failed in folder "{folder}": {exc.reason}'
            )

        if not uids:
            log.info("folder_empty")
            return FolderOutcome.empty(folder)

        log.info("folder_fetch_started", hits=len(uids))
        await self._fetch_and_parse(folder, uids)
        return FolderOutcome.completed(folder, len(uids))

    async def _fetch_and_parse(self, folder: str, uids: list[str]) -> None:
        pending: deque[asyncio.Task[ParsedMessage | None]] = deque()
        try:
            try:
                async for fetched in self._client.fetch(uids, mark_seen=self._mark_seen):
                    pending.append(asyncio.create_task(self._parse(folder, fetched)))
                    await self._deliver(folder, pending, wait=False)
            except FetchStreamError as exc:
                logger.error("fetch_stream_failed", folder=folder, error=str(exc))
            await self._deliver(folder, pending, wait=True)
        finally:
            # Only non-empty when the fetch or a delivery raised
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

    async def _parse(self, folder: str, fetched: FetchedEmail) -> ParsedMessage | None:
        try:
            return await asyncio.to_thread(
                self._parser.parse, fetched.raw_bytes, folder=folder, uid=fetched.uid
            )
        except MessageParseError as exc:
            logger.error("message_parse_failed", folder=folder, uid=fetched.uid, error=str(exc))
            return None

    async def _deliver(
        self,
        folder: str,
        pending: deque[asyncio.Task[ParsedMessage | None]],
        *,
        wait: bool,
    ) -> None:
        """Send finished parses to the sink, oldest first.

        With ``wait=False`` stops at the first parse still running so that
        fetch order is kept.
        """
        while pending and (wait or pending[0].done()):
            parsed = await pending[0]
            pending.popleft()
            if parsed is None:
                continue
            self._stats.folder_counts[folder] = self._stats.folder_counts.get(folder, 0) + 1
            await self._sink.send(parsed)
            logger.debug("message_delivered", folder=folder, uid=parsed.uid)
