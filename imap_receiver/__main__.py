"""Entry point for a one-shot retrieval run.

Usage::

    python -m imap_receiver

Configuration comes from environment variables (``IMAP_*``,
``RETRIEVAL_*``, ``RECEIVER_*``, ``KAFKA_*``, ``S3_*``).  With the default
``RECEIVER_SINK=stdout`` every parsed message is printed as a JSON line;
``RECEIVER_SINK=kafka`` publishes to Kafka instead.  Exits 1 when the run
ends in ``error`` and 2 on invalid configuration.
"""

from __future__ import annotations

import asyncio
import sys

from .config import ReceiverConfig
from .errors import ConfigurationError
from .interface import MessageSink, StatusReporter
from .logging import setup_logging
from .models import OutcomeStatus, OutcomeSummary
from .s3 import S3AttachmentStore
from .session import RetrievalSession
from .sinks import JsonLinesSink, KafkaSink, LoggingStatusReporter


def build_sink(config: ReceiverConfig) -> tuple[MessageSink, StatusReporter]:
    if config.sink == "kafka":
        store = S3AttachmentStore(config.s3) if config.s3.bucket else None
        kafka = KafkaSink(config.kafka, attachment_store=store)
        return kafka, kafka
    return JsonLinesSink(), LoggingStatusReporter()


async def run(config: ReceiverConfig) -> OutcomeSummary:
    sink, reporter = build_sink(config)
    await sink.start()
    try:
        session = RetrievalSession(sink, reporter)
        return await session.start(
            config.imap,
            config.retrieval.folders,
            mark_seen=config.retrieval.mark_seen,
        )
    finally:
        await sink.stop()


def main() -> None:
    config = ReceiverConfig()
    setup_logging(json=config.log_json, level=config.log_level)

    try:
        summary = asyncio.run(run(config))
    except ConfigurationError as exc:
        print(f"imap_receiver: {exc}", file=sys.stderr)
        sys.exit(2)

    sys.exit(1 if summary.status is OutcomeStatus.ERROR else 0)


if __name__ == "__main__":
    main()
