"""Concrete message sinks and status reporters.

* :class:`LoggingStatusReporter`: progress and outcome as structlog events.
* :class:`JsonLinesSink`: one JSON object per parsed message on a text stream.
* :class:`KafkaSink`: parsed messages and the outcome summary to Kafka,
  with attachments optionally claim-checked to S3.
"""

from __future__ import annotations

import base64
import json
import sys
from typing import Any, TextIO

import structlog
from aiokafka import AIOKafkaProducer

from .config import KafkaSinkConfig
from .interface import MessageSink, StatusReporter
from .models import OutcomeStatus, OutcomeSummary, ParsedMessage, StatusLevel
from .s3 import S3AttachmentStore

logger = structlog.get_logger()


def message_to_payload(
    message: ParsedMessage,
    *,
    attachment_refs: list[str] | None = None,
) -> dict[str, Any]:
    """Build the JSON-serialisable form of a parsed message.

    Attachment content is inlined as base64 unless *attachment_refs* (one
    URI per attachment) is given, in which case the URI replaces it.
    """
    attachments: list[dict[str, Any]] = []
    for index, att in enumerate(message.attachments):
        entry: dict[str, Any] = {
            "content_type": att.content_type,
            "filename": att.filename,
            "transfer_encoding": att.transfer_encoding,
            "content_disposition": att.content_disposition,
            "generated_file_name": att.generated_file_name,
            "content_id": att.content_id,
            "checksum": att.checksum,
            "length": att.length,
        }
        if attachment_refs is not None:
            entry["uri"] = attachment_refs[index]
        else:
            entry["content_base64"] = base64.b64encode(att.content).decode("ascii")
        attachments.append(entry)

    return {
        "message_id": message.message_id,
        "uid": message.uid,
        "folder": message.folder,
        "subject": message.subject,
        "from": message.sender,
        "date": message.date.isoformat() if message.date else None,
        "text": message.text,
        "html": message.html,
        "headers": message.headers,
        "attachments": attachments,
    }


class LoggingStatusReporter(StatusReporter):
    """Reports progress and the final outcome through structlog."""

    async def report(self, summary: OutcomeSummary) -> None:
        log = logger.bind(**summary.model_dump(mode="json", exclude={"message"}))
        if summary.status is OutcomeStatus.ERROR:
            log.error("retrieval_outcome", message=summary.message)
        elif summary.status is OutcomeStatus.WARNING:
            log.warning("retrieval_outcome", message=summary.message)
        else:
            log.info("retrieval_outcome", message=summary.message)

    def progress(self, level: StatusLevel, text: str) -> None:
        logger.info("retrieval_progress", level=level.value, text=text)


class JsonLinesSink(MessageSink):
    """Writes each parsed message as a JSON line to *stream* (stdout by default)."""

    def __init__(self, stream: TextIO | None = None) -> None:
        self._stream = stream
        self.sent: int = 0

    async def send(self, message: ParsedMessage) -> None:
        stream = self._stream or sys.stdout
        stream.write(json.dumps(message_to_payload(message)) + "\n")
        stream.flush()
        self.sent += 1


class KafkaSink(MessageSink, LoggingStatusReporter):
    """Publishes parsed messages and the outcome summary to Kafka.

    Messages go to ``messages_topic`` keyed by Message-ID; the outcome
    summary goes to ``status_topic``.  When an attachment store is given,
    attachments are uploaded first and only their URIs are published.
    """

    def __init__(
        self,
        config: KafkaSinkConfig,
        attachment_store: S3AttachmentStore | None = None,
    ) -> None:
        self._config = config
        self._store = attachment_store
        self._producer: AIOKafkaProducer | None = None

    async def start(self) -> None:
        self._producer = AIOKafkaProducer(
            bootstrap_servers=self._config.bootstrap_servers,
            acks=self._config.producer_acks,
            compression_type=self._config.producer_compression,
        )
        await self._producer.start()
        if self._store is not None:
            await self._store.start()
        logger.info("kafka_sink_started", servers=self._config.bootstrap_servers)

    async def stop(self) -> None:
        if self._store is not None:
            await self._store.stop()
        if self._producer is not None:
            await self._producer.stop()
            self._producer = None
            logger.info("kafka_sink_stopped")

    async def send(self, message: ParsedMessage) -> None:
        assert self._producer is not None, "Producer not started"
        refs = None
        if self._store is not None and message.attachments:
            refs = await self._store.upload_attachments(message.attachments)

        value = json.dumps(message_to_payload(message, attachment_refs=refs)).encode("utf-8")
        key = message.message_id or f"{message.folder}:{message.uid}"
        await self._producer.send_and_wait(
            self._config.messages_topic,
            value=value,
            key=key.encode("utf-8"),
        )
        logger.debug(
            "parsed_message_sent",
            topic=self._config.messages_topic,
            folder=message.folder,
            uid=message.uid,
            attachments=len(message.attachments),
        )

    async def report(self, summary: OutcomeSummary) -> None:
        await super().report(summary)
        assert self._producer is not None, "Producer not started"
        await self._producer.send_and_wait(
            self._config.status_topic,
            value=summary.model_dump_json().encode("utf-8"),
            key=summary.status.value.encode("utf-8"),
        )
