"""Mail decoder: walks a message's MIME tree and produces a flat
:class:`~imap_input.models.Event` with body, headers and attachments.
"""

from __future__ import annotations

import base64
import email
import email.policy
import email.utils
import quopri
from datetime import datetime
from email.message import Message

from .config import DecoderConfig
from .errors import DecodeError
from .headers import build_header_map, decode_header_value
from .mime import Leaf, Part, build_tree, iter_leaves
from .models import AttachmentDescriptor, Event

BASE64_LINE_LENGTH = 60


class MailDecoder:
    """Stateless decoder: raw RFC 822 bytes (or a parsed message) → Event."""

    def __init__(self, config: DecoderConfig | None = None) -> None:
        self._config = config or DecoderConfig()
        self._target_type = self._config.content_type.strip().lower()

    def decode(self, raw: bytes | Message) -> Event:
        """Decode one message.

        Accepts raw bytes or an already-parsed :class:`email.message.Message`
        of any policy.  Raises :class:`DecodeError` if the message cannot be
        turned into an event.
        """
        try:
            return self._decode(raw)
        except DecodeError:
            raise
        except Exception as exc:
            raise DecodeError(f"cannot decode message: {exc}") from exc

    def _decode(self, raw: bytes | Message) -> Event:
        if isinstance(raw, Message):
            msg = raw
        else:
            msg = email.message_from_bytes(raw, policy=email.policy.default)

        tree = build_tree(msg)
        body = self._select_body(tree)

        attachments: tuple[AttachmentDescriptor, ...] = ()
        if not self._config.strip_attachments:
            attachments = tuple(self._collect_attachments(tree, body))

        return Event(
            message=body.text() if body is not None else "",
            headers=build_header_map(
                msg.raw_items(),
                lowercase=self._config.lowercase_headers,
            ),
            attachments=attachments,
            timestamp=_message_date(msg),
        )

    # ------------------------------------------------------------------
    # Tree walks
    # ------------------------------------------------------------------

    def _select_body(self, tree: Part) -> Leaf | None:
        """Single-part messages are their own body; otherwise the first
        leaf of the target content type, or ``None``.
        """
        if isinstance(tree, Leaf):
            return tree
        for leaf in iter_leaves(tree):
            if leaf.content_type == self._target_type:
                return leaf
        return None

    def _collect_attachments(
        self,
        tree: Part,
        body: Leaf | None,
    ) -> list[AttachmentDescriptor]:
        attachments: list[AttachmentDescriptor] = []
        for leaf in iter_leaves(tree):
            if leaf is body or not leaf.filename:
                continue
            data = _attachment_data(leaf) if self._config.save_attachments else None
            attachments.append(AttachmentDescriptor(filename=leaf.filename, data=data))
        return attachments


def _attachment_data(leaf: Leaf) -> str:
    """Attachment content in the form it is emitted.

    7bit parts are emitted as text and quoted-printable parts in their
    quoted-printable transfer form; everything else becomes base64.
    """
    if leaf.transfer_encoding == "7bit":
        return leaf.text()
    if leaf.transfer_encoding == "quoted-printable":
        payload = leaf.payload.replace(b"\r\n", b"\n")
        return quopri.encodestring(payload).decode("ascii").replace("\n", "\r\n")
    return _base64_lines(leaf.payload)


def _base64_lines(payload: bytes) -> str:
    # 60-character lines, each terminated by CRLF.
    encoded = base64.b64encode(payload).decode("ascii")
    return "".join(
        encoded[start : start + BASE64_LINE_LENGTH] + "\r\n"
        for start in range(0, len(encoded), BASE64_LINE_LENGTH)
    )


def _message_date(msg: Message) -> datetime | None:
    for name, value in msg.raw_items():
        if name.lower() != "date" or value is None:
            continue
        try:
            return email.utils.parsedate_to_datetime(decode_header_value(value))
        except (TypeError, ValueError):
            return None
    return None
