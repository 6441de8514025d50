"""IMAP input configuration loaded from environment variables.

Uses pydantic-settings so every field can be overridden via env vars.
Each section reads its own prefix (``IMAP_``, ``DECODER_``, ...).
"""

from __future__ import annotations

from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings


class ImapConfig(BaseSettings):
    """IMAP server connection settings."""

    model_config = {"env_prefix": "IMAP_"}

    host: str = Field(description="IMAP server hostname")
    port: int = Field(default=993, description="IMAP server port")
    use_ssl: bool = Field(default=True, description="Use implicit SSL/TLS connection")
    starttls: bool = Field(
        default=False,
        description="Upgrade a plain connection with STARTTLS (ignored when use_ssl)",
    )
    verify_cert: bool = Field(default=True, description="Verify the server TLS certificate")
    username: str = Field(description="IMAP login username")
    password: SecretStr = Field(description="IMAP login password")
    mailbox: str = Field(default="INBOX", description="IMAP mailbox/folder to poll")
    timeout_seconds: float = Field(
        default=30.0,
        description="Socket timeout for every IMAP command",
    )


class DecoderConfig(BaseSettings):
    """How fetched messages are turned into events."""

    model_config = {"env_prefix": "DECODER_"}

    content_type: str = Field(
        default="text/plain",
        description="MIME type of the part used as the event message",
    )
    save_attachments: bool = Field(
        default=False,
        description="Include attachment content in the event",
    )
    strip_attachments: bool = Field(
        default=False,
        description="Drop attachment descriptors entirely",
    )
    lowercase_headers: bool = Field(
        default=True,
        description="Lowercase header names used as event keys",
    )


class RetryConfig(BaseSettings):
    """Retry / backoff settings for sink delivery, driven by Tenacity."""

    model_config = {"env_prefix": "RETRY_"}

    max_attempts: int = Field(default=3, ge=1, description="Maximum delivery attempts per event")
    initial_wait_seconds: float = Field(
        default=1.0,
        description="Initial backoff wait in seconds",
    )
    max_wait_seconds: float = Field(
        default=30.0,
        description="Maximum backoff wait in seconds",
    )
    multiplier: float = Field(default=2.0, description="Exponential backoff multiplier")


class KafkaConfig(BaseSettings):
    """Kafka connection and topic settings for the Kafka event sink."""

    model_config = {"env_prefix": "KAFKA_"}

    bootstrap_servers: str = Field(
        default="localhost:9092",
        description="Comma-separated Kafka bootstrap servers",
    )
    topic: str = Field(default="imap-events", description="Topic events are published to")
    producer_acks: str = Field(
        default="all",
        description="Producer acknowledgement level",
    )
    producer_compression: str = Field(
        default="gzip",
        description="Compression codec for produced messages",
    )


class PollerConfig(BaseSettings):
    """Root configuration for one mailbox poller.

    Nested configs are populated from their own env-var prefixes.
    """

    model_config = {"env_prefix": "POLLER_"}

    poll_interval_seconds: float = Field(
        default=300.0,
        description="Seconds between IMAP poll cycles",
    )
    fetch_count: int = Field(
        default=50,
        ge=1,
        description="Messages fetched and flagged per batch",
    )
    delete: bool = Field(
        default=False,
        description="Delete and expunge messages after they are emitted",
    )
    mark_undecodable: bool = Field(
        default=False,
        description="Flag messages that fail to decode so they are not fetched again",
    )
    reconnect_each_cycle: bool = Field(
        default=False,
        description="Log out after every cycle instead of keeping the session open",
    )
    health_port: int = Field(
        default=8080,
        description="Port for health probe endpoints (0 disables the server)",
    )
    sink: Literal["stdout", "kafka"] = Field(
        default="stdout",
        description="Where events are emitted",
    )
    log_json: bool = Field(default=True, description="Emit JSON log lines")
    log_level: str = Field(default="INFO", description="Root log level")

    imap: ImapConfig = Field(default_factory=ImapConfig)
    decoder: DecoderConfig = Field(default_factory=DecoderConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    kafka: KafkaConfig = Field(default_factory=KafkaConfig)
