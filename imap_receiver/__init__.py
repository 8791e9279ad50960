"""IMAP receiver: fetch UNSEEN mail from several folders over one connection.

Public API re-exported here for convenience::

    from imap_receiver import RetrievalSession, ImapConfig, JsonLinesSink
"""

from .config import (
    ImapConfig,
    KafkaSinkConfig,
    ReceiverConfig,
    RetrievalConfig,
    S3Config,
)
from .errors import (
    ConfigurationError,
    ConnectionFatalError,
    FetchStreamError,
    FolderError,
    FolderOpenError,
    FolderSearchError,
    MessageParseError,
    ReceiverError,
    SessionClosedError,
)
from .folder import FolderProcessor
from .imap_client import AsyncImapClient, FetchedEmail
from .interface import MessageSink, StatusReporter
from .logging import setup_logging
from .models import (
    FolderOutcome,
    FolderOutcomeKind,
    OutcomeStatus,
    OutcomeSummary,
    ParsedAttachment,
    ParsedMessage,
    SessionState,
    SessionStats,
    StatusLevel,
)
from .parser import MimeParser
from .s3 import S3AttachmentStore
from .session import RetrievalSession
from .sinks import JsonLinesSink, KafkaSink, LoggingStatusReporter

__all__ = [
    "AsyncImapClient",
    "ConfigurationError",
    "ConnectionFatalError",
    "FetchStreamError",
    "FetchedEmail",
    "FolderError",
    "FolderOpenError",
    "FolderOutcome",
    "FolderOutcomeKind",
    "FolderProcessor",
    "FolderSearchError",
    "ImapConfig",
    "JsonLinesSink",
    "KafkaSink",
    "KafkaSinkConfig",
    "LoggingStatusReporter",
    "MessageParseError",
    "MessageSink",
    "MimeParser",
    "OutcomeStatus",
    "OutcomeSummary",
    "ParsedAttachment",
    "ParsedMessage",
    "ReceiverConfig",
    "ReceiverError",
    "RetrievalConfig",
    "RetrievalSession",
    "S3AttachmentStore",
    "S3Config",
    "SessionClosedError",
    "SessionState",
    "SessionStats",
    "StatusLevel",
    "StatusReporter",
    "setup_logging",
]
