"""Host-owned collaborators the retrieval session reports to."""

from __future__ import annotations

import abc

from .models import OutcomeSummary, ParsedMessage, StatusLevel


class MessageSink(abc.ABC):
    """Receives every parsed message of a run.

    ``send`` is awaited once per :class:`ParsedMessage`, in the order the
    messages were fetched.
    """

    async def start(self) -> None:
        """Acquire resources before the run.  Default: nothing."""

    async def stop(self) -> None:
        """Release resources after the run.  Default: nothing."""

    @abc.abstractmethod
    async def send(self, message: ParsedMessage) -> None:
        """Deliver one parsed message."""
        ...


class StatusReporter(abc.ABC):
    """Receives transient progress updates and the final outcome of a run."""

    def progress(self, level: StatusLevel, text: str) -> None:
        """Show a short progress line such as ``Fetching from "INBOX"...``.

        Override to surface progress in a host UI.  The default ignores it.
        """

    @abc.abstractmethod
    async def report(self, summary: OutcomeSummary) -> None:
        """Deliver the single outcome summary of a finished run."""
        ...
