"""Receiver configuration loaded from environment variables.

Uses pydantic-settings so every field can be overridden via env vars.
Loosely typed host input (comma-separated folder strings, ``"yes"``/``"off"``
flags) is normalised here, so the retrieval session only ever sees a typed
folder list and real booleans.
"""

from __future__ import annotations

from typing import Annotated, Literal

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, NoDecode


class ImapConfig(BaseSettings):
    """IMAP server connection settings.

    Required fields default to empty values so that the retrieval session
    can report every missing one at once instead of failing on the first.
    """

    model_config = {"env_prefix": "IMAP_", "frozen": True}

    host: str = Field(default="", description="IMAP server hostname")
    port: int = Field(default=993, description="IMAP server port")
    use_ssl: bool = Field(default=True, description="Use implicit SSL/TLS connection")
    username: str = Field(default="", description="IMAP login username")
    password: SecretStr = Field(default=SecretStr(""), description="IMAP login password")
    connect_timeout_seconds: float = Field(
        default=10.0,
        description="Socket timeout while establishing the connection",
    )
    auth_timeout_seconds: float = Field(
        default=5.0,
        description="Socket timeout while authenticating",
    )
    keepalive: bool = Field(default=True, description="Enable TCP keep-alive on the socket")
    starttls: Literal["never", "always", "required"] = Field(
        default="never",
        description="STARTTLS upgrade mode for non-SSL connections",
    )
    verify_tls: bool = Field(
        default=True,
        description="Verify the server certificate and hostname",
    )

    def missing_fields(self) -> list[str]:
        """Names of required fields that are empty or zero."""
        missing: list[str] = []
        if not self.username:
            missing.append("user")
        if not self.password.get_secret_value():
            missing.append("password")
        if not self.port:
            missing.append("port")
        if not self.host:
            missing.append("host")
        return missing


class RetrievalConfig(BaseSettings):
    """Which mailboxes to read and how to treat fetched messages."""

    model_config = {"env_prefix": "RETRIEVAL_"}

    folders: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: ["INBOX"],
        description="Ordered mailbox names; a comma-separated string is accepted",
    )
    mark_seen: bool = Field(
        default=True,
        description="Flag fetched messages as \\Seen on the server",
    )

    @field_validator("folders", mode="before")
    @classmethod
    def _split_folders(cls, value: object) -> object:
        if isinstance(value, str):
            return [f.strip() for f in value.split(",") if f.strip()]
        return value


class KafkaSinkConfig(BaseSettings):
    """Kafka sink settings for parsed messages and outcome summaries."""

    model_config = {"env_prefix": "KAFKA_"}

    bootstrap_servers: str = Field(
        default="localhost:9092",
        description="Comma-separated Kafka bootstrap servers",
    )
    messages_topic: str = Field(
        default="parsed-messages",
        description="Topic for parsed messages",
    )
    status_topic: str = Field(
        default="receiver-status",
        description="Topic for the per-run outcome summary",
    )
    producer_acks: str = Field(default="all", description="Producer acknowledgement level")
    producer_compression: str = Field(
        default="gzip",
        description="Compression codec for produced messages",
    )


class S3Config(BaseSettings):
    """S3 storage settings for attachment claim-check uploads."""

    model_config = {"env_prefix": "S3_"}

    bucket: str = Field(default="", description="S3 bucket name; empty disables uploads")
    attachments_prefix: str = Field(
        default="email/attachments",
        description="S3 key prefix for attachment uploads",
    )
    region: str = Field(default="us-east-1", description="AWS region")
    endpoint_url: str | None = Field(
        default=None,
        description="Custom S3 endpoint URL (e.g. for MinIO)",
    )


class ReceiverConfig(BaseSettings):
    """Root configuration for one ``python -m imap_receiver`` run.

    Nested configs are populated from their own env-var prefixes.
    """

    model_config = {"env_prefix": "RECEIVER_"}

    sink: Literal["stdout", "kafka"] = Field(
        default="stdout",
        description="Where parsed messages and the outcome summary are sent",
    )
    log_json: bool = Field(default=True, description="Render logs as JSON lines")
    log_level: str = Field(default="INFO", description="Root log level name")

    imap: ImapConfig = Field(default_factory=ImapConfig)
    retrieval: RetrievalConfig = Field(default_factory=RetrievalConfig)
    kafka: KafkaSinkConfig = Field(default_factory=KafkaSinkConfig)
    s3: S3Config = Field(default_factory=S3Config)
