"""RetrievalSession: owns one IMAP connection for one multi-folder run."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import NoReturn

import structlog

from .config import ImapConfig
from .errors import ConfigurationError, ConnectionFatalError, SessionClosedError
from .folder import FolderProcessor
from .imap_client import AsyncImapClient
from .interface import MessageSink, StatusReporter
from .models import (
    FolderOutcome,
    OutcomeStatus,
    OutcomeSummary,
    SessionState,
    SessionStats,
    StatusLevel,
)
from .parser import MimeParser

logger = structlog.get_logger()

ClientFactory = Callable[[ImapConfig], AsyncImapClient]


class RetrievalSession:
    """Walks an ordered folder list over a single connection.

    A session is single-use: :meth:`start` runs the whole retrieval and
    returns the :class:`OutcomeSummary`, after which the session is
    ``CLOSED``.  Folders are processed strictly one after another.  Folder
    failures are counted and skipped; a :class:`ConnectionFatalError` ends
    the run early.  Either way the summary is reported and the connection
    is closed exactly once, from a single ``finally`` block.

    Collaborators are injected so the host decides where messages, progress
    and the outcome go::

        session = RetrievalSession(sink, reporter)
        summary = await session.start(imap_config, ["INBOX", "Spam"])
    """

    def __init__(
        self,
        sink: MessageSink,
        reporter: StatusReporter,
        *,
        parser: MimeParser | None = None,
        client_factory: ClientFactory = AsyncImapClient,
    ) -> None:
        self._sink = sink
        self._reporter = reporter
        self._parser = parser or MimeParser()
        self._client_factory = client_factory
        self.state: SessionState = SessionState.IDLE
        self.stats: SessionStats | None = None
        self.outcomes: list[FolderOutcome] = []

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    async def start(
        self,
        imap: ImapConfig,
        folders: Sequence[str],
        *,
        mark_seen: bool = True,
    ) -> OutcomeSummary:
        """Connect, process every folder in order, then finalize.

        Raises :class:`ConfigurationError` without connecting when required
        connection fields or folders are missing.
        """
        if self.state is not SessionState.IDLE:
            raise SessionClosedError(f"session already {self.state.value}")

        folder_list = self._validate(imap, folders)
        stats = self.stats = SessionStats(total_folders=len(folder_list))
        client = self._client_factory(imap)
        error: BaseException | None = None

        try:
            self._enter(SessionState.CONNECTING)
            self._reporter.progress(StatusLevel.PENDING, "Connecting to IMAP...")
            await client.connect()

            self._enter(SessionState.READY)
            self._reporter.progress(StatusLevel.OK, "connected")

            processor = FolderProcessor(
                client, self._parser, self._sink, stats, mark_seen=mark_seen
            )
            for folder in folder_list:
                await self._process_folder(processor, folder)

            self._enter(SessionState.ALL_FOLDERS_DONE)
        except ConnectionFatalError as exc:
            error = exc
            self._enter(SessionState.FATAL_ERROR)
            logger.error("imap_session_fatal", error=str(exc))
        except BaseException as exc:
            error = exc
            logger.exception("imap_session_crashed")
            raise
        finally:
            summary = await self._finalize(client, folder_list, error)

        return summary

    # ------------------------------------------------------------------
    # Folder sequencing
    # ------------------------------------------------------------------

    async def _process_folder(self, processor: FolderProcessor, folder: str) -> None:
        assert self.stats is not None
        stats = self.stats

        self._enter(SessionState.PROCESSING_FOLDER)
        self._reporter.progress(StatusLevel.PENDING, f'Fetching from "{folder}"...')

        outcome = await processor.process(folder)
        self.outcomes.append(outcome)
        stats.processed_folders += 1

        if outcome.succeeded:
            stats.successes += 1
            stats.total_messages += outcome.message_count
            self._enter(SessionState.FOLDER_DONE)
            self._reporter.progress(
                StatusLevel.OK, f'Fetched {outcome.message_count} from "{folder}".'
            )
        else:
            stats.failures += 1
            stats.errors.append(outcome.reason or f'Folder "{folder}" failed')
            self._enter(SessionState.FOLDER_FAILED)
            self._reporter.progress(StatusLevel.FAILED, outcome.reason or folder)

        logger.info(
            "folder_processed",
            folder=folder,
            outcome=outcome.kind.value,
            messages=outcome.message_count,
            processed=stats.processed_folders,
            total=stats.total_folders,
        )

    # ------------------------------------------------------------------
    # Finalization
    # ------------------------------------------------------------------

    async def _finalize(
        self,
        client: AsyncImapClient,
        folders: list[str],
        error: BaseException | None,
    ) -> OutcomeSummary:
        assert self.stats is not None
        stats = self.stats
        self._enter(SessionState.FINALIZING)

        if error is not None:
            status = OutcomeStatus.ERROR
            message = f"IMAP session terminated: {error}"
            stats.errors.append(message)
            self._reporter.progress(StatusLevel.FAILED, "connection error")
        elif stats.failures > 0:
            status = OutcomeStatus.WARNING
            message = (
                f"Done, {stats.total_messages} mails from "
                f"{stats.successes}/{stats.total_folders} folders. {stats.failures} failed."
            )
            self._reporter.progress(StatusLevel.FAILED, message)
        else:
            status = OutcomeStatus.SUCCESS
            message = f"Done, fetched {stats.total_messages} mails from {', '.join(folders)}."
            self._reporter.progress(StatusLevel.OK, message)

        summary = OutcomeSummary(
            status=status,
            message=message,
            folders=folders,
            total_messages=stats.total_messages,
            folder_counts=dict(stats.folder_counts),
            total_folders=stats.total_folders,
            processed_folders=stats.processed_folders,
            successes=stats.successes,
            failures=stats.failures,
            errors=list(stats.errors),
        )

        try:
            await self._reporter.report(summary)
        finally:
            await client.close()
            self._enter(SessionState.CLOSED)
            logger.info(
                "session_finalized",
                status=status.value,
                total_messages=stats.total_messages,
                successes=stats.successes,
                failures=stats.failures,
            )
        return summary

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _enter(self, state: SessionState) -> None:
        logger.debug("session_state", previous=self.state.value, state=state.value)
        self.state = state

    def _validate(self, imap: ImapConfig, folders: Sequence[str]) -> list[str]:
        if isinstance(folders, str):
            self._config_error("The folder list must be a sequence of mailbox names.")

        missing = imap.missing_fields()
        folder_list = list(folders or [])
        if not folder_list:
            missing.append("folders")
        if missing:
            self._config_error(f"Missing required IMAP config: {', '.join(missing)}. Aborting.")

        if any(not isinstance(f, str) or not f.strip() for f in folder_list):
            self._config_error("Every folder must be a non-empty string.")
        return folder_list

    def _config_error(self, message: str) -> NoReturn:
        logger.error("session_config_invalid", error=message)
        self._reporter.progress(StatusLevel.FAILED, "missing config")
        raise ConfigurationError(message)
