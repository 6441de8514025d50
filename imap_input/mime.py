"""MIME content tree as a tagged variant.

A parsed :class:`email.message.Message` is converted once into a tree of
:class:`Leaf` and :class:`Multipart` nodes.  Body selection and
attachment collection are separate depth-first walks over that tree, so
neither depends on the ``email`` package's runtime type of each part.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from email.message import Message

from .headers import decode_header_value


@dataclass(frozen=True)
class Leaf:
    """A part that carries content."""

    content_type: str
    transfer_encoding: str
    charset: str | None
    payload: bytes
    filename: str | None = None

    def text(self) -> str:
        """Decode the payload with the part's charset (utf-8 fallback)."""
        charset = self.charset or "utf-8"
        try:
            return self.payload.decode(charset, errors="replace")
        except LookupError:
            return self.payload.decode("utf-8", errors="replace")


@dataclass(frozen=True)
class Multipart:
    """A container part; ``parts`` are in document order."""

    content_type: str
    parts: tuple[Part, ...]


Part = Leaf | Multipart


def build_tree(msg: Message) -> Part:
    """Convert a parsed message (any policy) into a :data:`Part` tree.

    An enclosed message (``message/*``) that carries a filename is kept
    whole as one leaf so it is reported as a single attachment; without
    a filename it is descended into like any other container.
    """
    filename = _filename(msg)
    if msg.is_multipart() and not _is_attached_message(msg, filename):
        children = msg.get_payload()
        return Multipart(
            content_type=msg.get_content_type(),
            parts=tuple(build_tree(child) for child in children),
        )

    return Leaf(
        content_type=msg.get_content_type(),
        transfer_encoding=transfer_encoding(msg),
        charset=msg.get_content_charset(),
        payload=_payload_bytes(msg),
        filename=filename,
    )


def iter_leaves(part: Part) -> Iterator[Leaf]:
    """Yield every leaf depth-first, in document order."""
    if isinstance(part, Leaf):
        yield part
        return
    for child in part.parts:
        yield from iter_leaves(child)


def transfer_encoding(msg: Message) -> str:
    """Declared Content-Transfer-Encoding, lowercased; RFC 2045 default is 7bit."""
    value = msg.get("Content-Transfer-Encoding")
    if value is None:
        return "7bit"
    return str(value).strip().lower() or "7bit"


def _is_attached_message(msg: Message, filename: str | None) -> bool:
    return bool(filename) and msg.get_content_maintype() == "message"


def _payload_bytes(msg: Message) -> bytes:
    if msg.is_multipart():
        # message/rfc822 and friends: the enclosed message, serialized.
        return b"".join(part.as_bytes() for part in msg.get_payload())
    decoded = msg.get_payload(decode=True)
    return decoded if isinstance(decoded, bytes) else b""


def _filename(msg: Message) -> str | None:
    filename = msg.get_filename()
    if not filename:
        return None
    return decode_header_value(filename)
