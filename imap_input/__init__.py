"""IMAP input: polls a mailbox for unseen messages and emits one
structured event per message.

Public API re-exported here for convenience::

    from imap_input import MailDecoder, MailPoller, PollerConfig
"""

from .config import DecoderConfig, ImapConfig, KafkaConfig, PollerConfig, RetryConfig
from .decoder import MailDecoder
from .errors import (
    DecodeError,
    FetchError,
    FlagUpdateError,
    ImapInputError,
    MailboxError,
    MisconfigurationError,
    SearchError,
    SessionConnectError,
)
from .models import AttachmentDescriptor, Event, PollState
from .poller import MailPoller
from .service import ImapInputService
from .session import ImapSession
from .sinks import EventSink, JsonLinesSink, KafkaEventSink

__all__ = [
    "AttachmentDescriptor",
    "DecodeError",
    "DecoderConfig",
    "Event",
    "EventSink",
    "FetchError",
    "FlagUpdateError",
    "ImapConfig",
    "ImapInputError",
    "ImapInputService",
    "ImapSession",
    "JsonLinesSink",
    "KafkaConfig",
    "KafkaEventSink",
    "MailDecoder",
    "MailPoller",
    "MailboxError",
    "MisconfigurationError",
    "PollState",
    "PollerConfig",
    "RetryConfig",
    "SearchError",
    "SessionConnectError",
]
