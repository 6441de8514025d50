"""Error taxonomy for the IMAP input.

Every failure here is recoverable by the poll loop ("retry next cycle" or
"skip this message") except :class:`MisconfigurationError` raised before
the first successful connection.
"""

from __future__ import annotations


class ImapInputError(Exception):
    """Base class for all IMAP input errors."""


class SessionConnectError(ImapInputError, ConnectionError):
    """Connecting to or authenticating with the IMAP server failed."""


class MisconfigurationError(SessionConnectError):
    """The connection parameters can never work (e.g. unresolvable host)."""


class MailboxError(ImapInputError):
    """The configured mailbox does not exist or could not be selected."""


class SearchError(ImapInputError):
    """The UNSEEN search failed."""


class FetchError(ImapInputError):
    """A single message could not be fetched.

    ``connection_lost`` is set when the underlying socket is gone, so the
    rest of the cycle cannot proceed on this session.
    """

    def __init__(self, uid: str, reason: str, *, connection_lost: bool = False) -> None:
        super().__init__(f"fetch of UID {uid} failed: {reason}")
        self.uid = uid
        self.reason = reason
        self.connection_lost = connection_lost


class DecodeError(ImapInputError):
    """A fetched message could not be decoded into an event."""


class FlagUpdateError(ImapInputError):
    """One or more mark-processed batches failed.

    ``failed_batches`` holds the UID lists of the batches that failed, in
    the order they were attempted.
    """

    def __init__(self, failed_batches: list[list[str]], reason: str) -> None:
        count = sum(len(batch) for batch in failed_batches)
        super().__init__(
            f"{len(failed_batches)} flag update batch(es) failed ({count} messages): {reason}"
        )
        self.failed_batches = failed_batches
        self.reason = reason
