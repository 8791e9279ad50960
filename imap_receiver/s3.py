"""S3 claim-check storage for parsed attachments.

Attachments are keyed by their generated file name (content-id, else MD5
checksum), so the same attachment arriving in several messages lands on the
same key.  All boto3 calls are wrapped with ``asyncio.to_thread()`` to avoid
blocking.
"""

from __future__ import annotations

import asyncio
import re

import boto3
import structlog

from .config import S3Config
from .models import ParsedAttachment

logger = structlog.get_logger()


class S3AttachmentStore:
    """Upload parsed attachments and return their ``s3://`` URIs."""

    def __init__(self, config: S3Config) -> None:
        self._config = config
        self._client = None  # type: ignore[assignment]

    async def start(self) -> None:
        """Create the boto3 S3 client."""
        kwargs: dict = {"region_name": self._config.region}
        if self._config.endpoint_url:
            kwargs["endpoint_url"] = self._config.endpoint_url
        self._client = await asyncio.to_thread(boto3.client, "s3", **kwargs)
        logger.info("s3_store_started", bucket=self._config.bucket)

    async def stop(self) -> None:
        """Clean up the boto3 client."""
        self._client = None
        logger.info("s3_store_stopped")

    def key_for(self, attachment: ParsedAttachment) -> str:
        return f"{self._config.attachments_prefix}/{_sanitize_key(attachment.generated_file_name)}"

    async def upload_attachment(self, attachment: ParsedAttachment) -> str:
        """Upload a single parsed attachment. Returns the ``s3://`` URI."""
        assert self._client is not None, "S3 client not started"
        key = self.key_for(attachment)
        extra: dict[str, str] = {}
        if attachment.filename:
            extra["filename"] = attachment.filename.encode("ascii", "replace").decode()

        await asyncio.to_thread(
            self._client.put_object,
            Bucket=self._config.bucket,
            Key=key,
            Body=attachment.content,
            ContentType=attachment.content_type,
            Metadata=extra,
        )
        uri = f"s3://{self._config.bucket}/{key}"
        logger.debug(
            "attachment_uploaded",
            filename=attachment.filename,
            checksum=attachment.checksum,
            uri=uri,
        )
        return uri

    async def upload_attachments(self, attachments: list[ParsedAttachment]) -> list[str]:
        """Upload all attachments of a message. Returns list of S3 URIs."""
        uris: list[str] = []
        for att in attachments:
            uri = await self.upload_attachment(att)
            uris.append(uri)
        return uris


def _sanitize_key(name: str) -> str:
    """Remove characters unsafe for S3 keys."""
    return re.sub(r"[^\w.\-@]", "_", name)
