"""Synchronous IMAP session wrapping stdlib imaplib.

The session is a thin state holder: it never retries and never sleeps.
Every I/O failure is translated into an :mod:`imap_input.errors` type and
left to the poll loop, which owns retry timing and runs these blocking
calls with ``asyncio.to_thread()``.
"""

from __future__ import annotations

import imaplib
import socket
import ssl
from collections.abc import Iterator, Sequence

import structlog

from .config import ImapConfig
from .errors import (
    FetchError,
    FlagUpdateError,
    MailboxError,
    MisconfigurationError,
    SearchError,
    SessionConnectError,
)

logger = structlog.get_logger()

_NETWORK_ERRORS = (imaplib.IMAP4.error, OSError)
_CONNECTION_LOST = (imaplib.IMAP4.abort, OSError)
_SEEN = r"(\Seen)"
_SEEN_AND_DELETED = r"(\Seen \Deleted)"


class ImapSession:
    """One logical connection to the IMAP server.

    Not safe for concurrent use: one session belongs to one poll loop.
    """

    def __init__(self, config: ImapConfig, *, batch_size: int = 50) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self._config = config
        self._batch_size = batch_size
        self._conn: imaplib.IMAP4_SSL | imaplib.IMAP4 | None = None
        self._selected = False

    @property
    def connected(self) -> bool:
        return self._conn is not None

    def __enter__(self) -> ImapSession:
        self.connect()
        self.select_mailbox()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.disconnect()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def connect(self) -> None:
        """Open the transport and LOGIN.

        Raises :class:`MisconfigurationError` when the host cannot be
        resolved and :class:`SessionConnectError` for any other failure.
        """
        if self._conn is not None:
            self.disconnect()

        host, port = self._config.host, self._config.port
        try:
            conn = self._open()
        except socket.gaierror as exc:
            raise MisconfigurationError(f"cannot resolve IMAP host {host!r}: {exc}") from exc
        except _NETWORK_ERRORS as exc:
            raise SessionConnectError(f"cannot connect to {host}:{port}: {exc}") from exc

        try:
            conn.login(self._config.username, self._config.password.get_secret_value())
        except _NETWORK_ERRORS as exc:
            _shutdown_quietly(conn)
            raise SessionConnectError(
                f"login failed for {self._config.username!r} on {host}: {exc}"
            ) from exc

        self._conn = conn
        logger.info("imap_connected", host=host, port=port, ssl=self._config.use_ssl)

    def _open(self) -> imaplib.IMAP4_SSL | imaplib.IMAP4:
        host, port = self._config.host, self._config.port
        timeout = self._config.timeout_seconds
        if self._config.use_ssl:
            return imaplib.IMAP4_SSL(
                host,
                port,
                ssl_context=self._ssl_context(),
                timeout=timeout,
            )

        conn = imaplib.IMAP4(host, port, timeout=timeout)
        if self._config.starttls:
            try:
                conn.starttls(ssl_context=self._ssl_context())
            except _NETWORK_ERRORS:
                _shutdown_quietly(conn)
                raise
        return conn

    def _ssl_context(self) -> ssl.SSLContext:
        context = ssl.create_default_context()
        if not self._config.verify_cert:
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE
        return context

    def select_mailbox(self, name: str | None = None) -> None:
        """SELECT the mailbox read-write so flags can be updated."""
        assert self._conn is not None, "Not connected"
        mailbox = name or self._config.mailbox
        try:
            status, data = self._conn.select(_quote_mailbox(mailbox))
        except _NETWORK_ERRORS as exc:
            raise MailboxError(f"cannot select mailbox {mailbox!r}: {exc}") from exc
        if status != "OK":
            raise MailboxError(f"cannot select mailbox {mailbox!r}: {_describe(data)}")
        self._selected = True
        logger.info("imap_mailbox_selected", mailbox=mailbox, exists=_describe(data))

    def disconnect(self) -> None:
        """Best-effort CLOSE and LOGOUT.  Never raises."""
        conn = self._conn
        if conn is None:
            return
        self._conn = None
        selected, self._selected = self._selected, False

        if selected:
            try:
                conn.close()
            except _NETWORK_ERRORS as exc:
                logger.debug("imap_close_failed", error=str(exc))
        try:
            conn.logout()
        except _NETWORK_ERRORS as exc:
            logger.debug("imap_logout_failed", error=str(exc))
            _shutdown_quietly(conn)
        logger.info("imap_disconnected")

    def is_connected(self) -> bool:
        """Check connection liveness with a NOOP command."""
        if self._conn is None:
            return False
        try:
            status, _ = self._conn.noop()
        except _NETWORK_ERRORS:
            return False
        return status == "OK"

    # ------------------------------------------------------------------
    # Message retrieval
    # ------------------------------------------------------------------

    def search_unseen(self) -> list[str]:
        """Return UIDs of messages without the ``\\Seen`` flag, ascending."""
        assert self._conn is not None, "Not connected"
        try:
            status, data = self._conn.uid("SEARCH", None, "UNSEEN")
        except _NETWORK_ERRORS as exc:
            raise SearchError(f"UNSEEN search failed: {exc}") from exc
        if status != "OK":
            raise SearchError(f"UNSEEN search failed: {_describe(data)}")
        if not data or not data[0]:
            return []
        uids = [uid.decode() for uid in data[0].split()]
        return sorted(uids, key=int)

    def fetch(self, uid: str) -> bytes:
        """Fetch the full message without setting ``\\Seen``."""
        assert self._conn is not None, "Not connected"
        try:
            status, data = self._conn.uid("FETCH", uid, "(BODY.PEEK[])")
        except _CONNECTION_LOST as exc:
            raise FetchError(uid, str(exc), connection_lost=True) from exc
        except _NETWORK_ERRORS as exc:
            raise FetchError(uid, str(exc)) from exc

        if status != "OK":
            raise FetchError(uid, _describe(data))
        raw = _literal(data)
        if raw is None:
            raise FetchError(uid, "no message data returned")
        return raw

    # ------------------------------------------------------------------
    # Post-processing
    # ------------------------------------------------------------------

    def mark_processed(self, uids: Sequence[str], *, delete: bool = False) -> None:
        """Set ``\\Seen`` (and ``\\Deleted`` + EXPUNGE when *delete*).

        UIDs are stored in batches of ``batch_size``.  Every batch is
        attempted; failed batches are raised together as one
        :class:`FlagUpdateError`.
        """
        assert self._conn is not None, "Not connected"
        if not uids:
            return

        flags = _SEEN_AND_DELETED if delete else _SEEN
        failed: list[list[str]] = []
        reasons: list[str] = []
        stored = 0

        for batch in _chunks(list(uids), self._batch_size):
            try:
                status, data = self._conn.uid("STORE", ",".join(batch), "+FLAGS.SILENT", flags)
            except _NETWORK_ERRORS as exc:
                status, data = "NO", [str(exc).encode()]
            if status != "OK":
                failed.append(batch)
                reasons.append(_describe(data))
                logger.warning(
                    "imap_flag_batch_failed",
                    uids=batch,
                    delete=delete,
                    error=reasons[-1],
                )
                continue
            stored += len(batch)

        if delete and stored:
            self._expunge()

        logger.debug("imap_flags_stored", stored=stored, failed=len(failed), delete=delete)
        if failed:
            raise FlagUpdateError(failed, "; ".join(reasons))

    def _expunge(self) -> None:
        assert self._conn is not None
        try:
            status, data = self._conn.expunge()
        except _NETWORK_ERRORS as exc:
            status, data = "NO", [str(exc).encode()]
        if status != "OK":
            # Messages already carry \Seen \Deleted; the next EXPUNGE removes them.
            logger.warning("imap_expunge_failed", error=_describe(data))


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------


def _chunks(items: list[str], size: int) -> Iterator[list[str]]:
    for start in range(0, len(items), size):
        yield items[start : start + size]


def _literal(data: list) -> bytes | None:
    """Pull the message literal out of an imaplib FETCH response."""
    for item in data or []:
        if isinstance(item, tuple) and len(item) >= 2 and isinstance(item[1], bytes):
            return item[1]
    return None


def _describe(data: list | None) -> str:
    parts = []
    for item in data or []:
        if isinstance(item, bytes):
            parts.append(item.decode(errors="replace"))
        elif item is not None:
            parts.append(str(item))
    return " ".join(parts)


def _quote_mailbox(name: str) -> str:
    if name.startswith('"') or not any(ch.isspace() for ch in name):
        return name
    return '"' + name.replace("\\", "\\\\").replace('"', '\\"') + '"'


def _shutdown_quietly(conn: imaplib.IMAP4) -> None:
    try:
        conn.shutdown()
    except OSError as exc:
        logger.debug("imap_socket_shutdown_failed", error=str(exc))
