"""Data models for a retrieval run."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, Field

SEARCH_CRITERION = "UNSEEN"


class SessionState(str, Enum):
    """Lifecycle of a :class:`~imap_receiver.session.RetrievalSession`."""

    IDLE = "idle"
    CONNECTING = "connecting"
    READY = "ready"
    PROCESSING_FOLDER = "processing_folder"
    FOLDER_DONE = "folder_done"
    FOLDER_FAILED = "folder_failed"
    ALL_FOLDERS_DONE = "all_folders_done"
    FATAL_ERROR = "fatal_error"
    FINALIZING = "finalizing"
    CLOSED = "closed"


class OutcomeStatus(str, Enum):
    """Final category of a retrieval run."""

    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class StatusLevel(str, Enum):
    """Severity of a transient progress notification."""

    PENDING = "pending"
    OK = "ok"
    FAILED = "failed"


# ------------------------------------------------------------------
# Parsed messages
# ------------------------------------------------------------------


@dataclass
class ParsedAttachment:
    """A single attachment extracted from a MIME message."""

    content_type: str
    filename: str | None
    transfer_encoding: str | None
    content_disposition: str | None
    generated_file_name: str
    content_id: str | None
    checksum: str
    length: int
    content: bytes


@dataclass
class ParsedMessage:
    """Structured representation of one fetched and parsed message.

    ``sender`` holds the Reply-To display text when present, otherwise the
    From display text.  ``folder`` is the mailbox the message was fetched
    from.  ``headers`` maps each header name to all of its values in
    message order.
    """

    subject: str
    text: str
    html: str
    sender: str
    date: datetime | None
    folder: str
    headers: dict[str, list[str]]
    message_id: str = ""
    uid: str = ""
    attachments: list[ParsedAttachment] = field(default_factory=list)


# ------------------------------------------------------------------
# Folder and session bookkeeping
# ------------------------------------------------------------------


class FolderOutcomeKind(str, Enum):
    COMPLETED = "completed"
    OPEN_FAILED = "open_failed"
    SEARCH_FAILED = "search_failed"


@dataclass(frozen=True)
class FolderOutcome:
    """Result of processing one mailbox."""

    folder: str
    kind: FolderOutcomeKind
    message_count: int = 0
    reason: str | None = None

    @classmethod
    def completed(cls, folder: str, message_count: int) -> FolderOutcome:
        return cls(folder, FolderOutcomeKind.COMPLETED, message_count)

    @classmethod
    def empty(cls, folder: str) -> FolderOutcome:
        """No UNSEEN hits; still a successful folder."""
        return cls(folder, FolderOutcomeKind.COMPLETED, 0)

    @classmethod
    def open_failed(cls, folder: str, reason: str) -> FolderOutcome:
        return cls(folder, FolderOutcomeKind.OPEN_FAILED, reason=reason)

    @classmethod
    def search_failed(cls, folder: str, reason: str) -> FolderOutcome:
        return cls(folder, FolderOutcomeKind.SEARCH_FAILED, reason=reason)

    @property
    def succeeded(self) -> bool:
        return self.kind is FolderOutcomeKind.COMPLETED


@dataclass
class SessionStats:
    """Mutable counters owned by one retrieval session."""

    total_folders: int
    processed_folders: int = 0
    successes: int = 0
    failures: int = 0
    total_messages: int = 0
    folder_counts: dict[str, int] = field(default_factory=dict)
    errors: list[str] = field(default_factory=list)


class OutcomeSummary(BaseModel):
    """Terminal report emitted once per retrieval run."""

    status: OutcomeStatus = Field(description="success, warning or error")
    message: str = Field(description="One-line human readable outcome")
    folders: list[str] = Field(description="Configured folders in processing order")
    total_messages: int = Field(description="UNSEEN hits across all completed folders")
    folder_counts: dict[str, int] = Field(
        default_factory=dict,
        description="Parsed messages per folder",
    )
    total_folders: int = Field(description="Number of configured folders")
    processed_folders: int = Field(description="Folders attempted before finalization")
    successes: int = Field(description="Folders that completed")
    failures: int = Field(description="Folders that failed to open or search")
    errors: list[str] = Field(default_factory=list, description="Recorded error descriptions")
    finished_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        description="Timestamp when the run was finalized (UTC)",
    )
