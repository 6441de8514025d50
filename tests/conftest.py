"""Shared test fixtures for the imap_input test suite."""

from __future__ import annotations

import base64
from collections.abc import Callable

import pytest

from imap_input.config import DecoderConfig, ImapConfig, PollerConfig, RetryConfig
from imap_input.models import Event

MSG_TEXT = "foo\nbar\nbaz"
MSG_HTML = "<p>a paragraph</p>\n\n"
MSG_BINARY = b"\x42\x43\x44"
MSG_UNENCODED = "raw text 🐐"


@pytest.fixture
def imap_config() -> ImapConfig:
    return ImapConfig(
        host="imap.test.com",
        port=993,
        use_ssl=True,
        username="testuser",
        password="testpass",
        mailbox="INBOX",
        timeout_seconds=5.0,
    )


@pytest.fixture
def retry_config() -> RetryConfig:
    return RetryConfig(
        max_attempts=2,
        initial_wait_seconds=0.01,
        max_wait_seconds=0.01,
        multiplier=1.0,
    )


@pytest.fixture
def poller_config(imap_config: ImapConfig, retry_config: RetryConfig) -> PollerConfig:
    return PollerConfig(
        poll_interval_seconds=60.0,
        fetch_count=50,
        health_port=0,
        imap=imap_config,
        decoder=DecoderConfig(),
        retry=retry_config,
    )


# ------------------------------------------------------------------
# Sample EML builders
# ------------------------------------------------------------------


def _b64(data: bytes) -> str:
    return base64.encodebytes(data).decode("ascii")


def _header_block(
    *,
    subject: str,
    message_id: str,
    extra_headers: list[tuple[str, str]] | None = None,
    date: str | None = "Mon, 02 Jun 2025 12:00:00 +0000",
) -> str:
    lines = [
        "From: me@example.com",
        "To: you@example.com",
        f"Subject: {subject}",
    ]
    if date is not None:
        lines.append(f"Date: {date}")
    lines.append(f"Message-ID: {message_id}")
    lines.extend(f"{name}: {value}" for name, value in extra_headers or [])
    lines.append("MIME-Version: 1.0")
    return "\n".join(lines) + "\n"


def _build_plain_email(
    *,
    body: str = MSG_TEXT,
    content_type: str = "text/plain; charset=utf-8",
    subject: str = "imap input test",
    message_id: str = "<plain-001@example.com>",
    extra_headers: list[tuple[str, str]] | None = None,
    date: str | None = "Mon, 02 Jun 2025 12:00:00 +0000",
) -> bytes:
    """Build a single-part email as raw bytes."""
    return (
        _header_block(
            subject=subject,
            message_id=message_id,
            extra_headers=extra_headers,
            date=date,
        )
        + f"Content-Type: {content_type}\n"
        + "Content-Transfer-Encoding: 8bit\n"
        + "\n"
        + body
    ).encode("utf-8")


def _build_alternative_email(
    *,
    body_text: str = MSG_TEXT,
    body_html: str = MSG_HTML,
) -> bytes:
    """Build a multipart/mixed email wrapping a text + HTML alternative."""
    return (
        _header_block(subject="alternative", message_id="<alt-001@example.com>")
        + 'Content-Type: multipart/mixed; boundary="MIXED"\n'
        + "\n"
        + "--MIXED\n"
        + 'Content-Type: multipart/alternative; boundary="ALT"\n'
        + "\n"
        + "--ALT\n"
        + "Content-Type: text/plain; charset=utf-8\n"
        + "\n"
        + f"{body_text}\n"
        + "--ALT\n"
        + "Content-Type: text/html; charset=utf-8\n"
        + "\n"
        + f"{body_html}\n"
        + "--ALT--\n"
        + "\n"
        + "--MIXED--\n"
    ).encode("utf-8")


def _build_attachment_email(
    *,
    subject: str = "imap input test",
    extra_headers: list[tuple[str, str]] | None = None,
) -> bytes:
    """Text body plus three attachments: a base64 HTML file, a base64
    binary image and a 7bit text file holding non-ASCII characters.
    """
    return (
        _header_block(
            subject=subject,
            message_id="<attach-001@example.com>",
            extra_headers=extra_headers,
        )
        + 'Content-Type: multipart/mixed; boundary="BOUNDARY"\n'
        + "\n"
        + "--BOUNDARY\n"
        + "Content-Type: text/plain; charset=utf-8\n"
        + "Content-Transfer-Encoding: 7bit\n"
        + "\n"
        + f"{MSG_TEXT}\n"
        + "--BOUNDARY\n"
        + 'Content-Type: text/html; charset=utf-8; name="some.html"\n'
        + "Content-Transfer-Encoding: base64\n"
        + 'Content-Disposition: attachment; filename="some.html"\n'
        + "\n"
        + _b64(MSG_HTML.encode("utf-8"))
        + "--BOUNDARY\n"
        + 'Content-Type: image/png; name="image.png"\n'
        + "Content-Transfer-Encoding: base64\n"
        + 'Content-Disposition: attachment; filename="image.png"\n'
        + "\n"
        + _b64(MSG_BINARY)
        + "--BOUNDARY\n"
        + 'Content-Type: application/octet-stream; charset=utf-8; name="unencoded.data"\n'
        + "Content-Transfer-Encoding: 7bit\n"
        + 'Content-Disposition: attachment; filename="unencoded.data"\n'
        + "\n"
        + f"{MSG_UNENCODED}\n"
        + "--BOUNDARY--\n"
    ).encode("utf-8")


@pytest.fixture
def plain_eml_bytes() -> bytes:
    return _build_plain_email()


@pytest.fixture
def alternative_eml_bytes() -> bytes:
    return _build_alternative_email()


@pytest.fixture
def attachment_eml_bytes() -> bytes:
    return _build_attachment_email()


# ------------------------------------------------------------------
# Collaborator fakes
# ------------------------------------------------------------------


class RecordingSink:
    """In-memory sink; ``on_emit`` runs on the event loop after each event."""

    def __init__(self, on_emit: Callable[[Event], None] | None = None) -> None:
        self.events: list[Event] = []
        self.started = False
        self.stopped = False
        self._on_emit = on_emit

    async def start(self) -> None:
        self.started = True

    async def stop(self) -> None:
        self.stopped = True

    async def emit(self, event: Event) -> None:
        self.events.append(event)
        if self._on_emit is not None:
            self._on_emit(event)


class FakeSession:
    """In-memory stand-in for :class:`imap_input.session.ImapSession`.

    Records every call in ``calls``; failures are queued per operation.
    Setting ``stale`` makes the NOOP liveness check fail until reconnect.
    """

    def __init__(self, messages: dict[str, bytes] | None = None) -> None:
        self.messages = dict(messages or {})
        self.unseen = list(self.messages)
        self.stale = False
        self.connected = False
        self.calls: list[tuple] = []
        self.connect_errors: list[Exception] = []
        self.select_errors: list[Exception] = []
        self.search_errors: list[Exception] = []
        self.fetch_errors: dict[str, Exception] = {}
        self.mark_errors: list[Exception] = []

    def count(self, name: str) -> int:
        return sum(1 for call in self.calls if call[0] == name)

    @property
    def fetched(self) -> list[str]:
        return [call[1] for call in self.calls if call[0] == "fetch"]

    @property
    def marked(self) -> list[tuple[list[str], bool]]:
        return [(call[1], call[2]) for call in self.calls if call[0] == "mark"]

    def connect(self) -> None:
        self.calls.append(("connect",))
        if self.connect_errors:
            raise self.connect_errors.pop(0)
        self.connected = True
        self.stale = False

    def select_mailbox(self, name: str | None = None) -> None:
        self.calls.append(("select",))
        if self.select_errors:
            raise self.select_errors.pop(0)

    def search_unseen(self) -> list[str]:
        self.calls.append(("search",))
        if self.search_errors:
            raise self.search_errors.pop(0)
        return list(self.unseen)

    def fetch(self, uid: str) -> bytes:
        self.calls.append(("fetch", uid))
        if uid in self.fetch_errors:
            raise self.fetch_errors[uid]
        return self.messages[uid]

    def mark_processed(self, uids: list[str], *, delete: bool = False) -> None:
        self.calls.append(("mark", list(uids), delete))
        if self.mark_errors:
            raise self.mark_errors.pop(0)
        self.unseen = [uid for uid in self.unseen if uid not in uids]

    def disconnect(self) -> None:
        self.calls.append(("disconnect",))
        self.connected = False

    def is_connected(self) -> bool:
        self.calls.append(("noop",))
        return self.connected and not self.stale
