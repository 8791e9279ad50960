"""Exception taxonomy for a retrieval run.

Only :class:`ConnectionFatalError` ends a run early.  Folder errors are
counted as folder failures, parse and fetch-stream errors are logged and
otherwise ignored.
"""

from __future__ import annotations


class ReceiverError(Exception):
    """Base class for all receiver errors."""


class ConfigurationError(ReceiverError):
    """Required connection parameters or the folder list are missing or invalid."""


class SessionClosedError(ReceiverError):
    """A retrieval session was started after it had already been closed."""


class ConnectionFatalError(ReceiverError):
    """The IMAP connection failed or was lost; the run cannot continue."""


class FolderError(ReceiverError):
    """A single mailbox could not be processed."""

    def __init__(self, folder: str, reason: str) -> None:
        super().__init__(reason)
        self.folder = folder
        self.reason = reason


class FolderOpenError(FolderError):
    """The mailbox could not be selected."""


class FolderSearchError(FolderError):
    """The UNSEEN search failed in an open mailbox."""


class FetchStreamError(ReceiverError):
    """The fetch for a mailbox broke off before delivering every message."""


class MessageParseError(ReceiverError):
    """Raw message bytes could not be turned into a ParsedMessage."""
