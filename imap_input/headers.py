"""Header decoding: RFC 2047 encoded words and the scalar/sequence header map."""

from __future__ import annotations

import email.errors
import email.header
import re
from collections.abc import Iterable

from .models import HeaderValue

_FOLD_RE = re.compile(r"\r?\n(?=[ \t])")


def decode_header_value(value: object) -> str | None:
    """Decode a raw header value into plain text.

    Returns ``None`` for an absent value so callers can drop it.
    Encoded words in unknown charsets fall back to utf-8 with replacement;
    malformed encoded words are returned as written.
    """
    if value is None:
        return None

    text = str(value)
    if _has_surrogates(text):
        text = text.encode("ascii", errors="surrogateescape").decode("utf-8", errors="replace")
    text = _FOLD_RE.sub("", text)

    try:
        chunks = email.header.decode_header(text)
    except email.errors.HeaderParseError:
        return text.strip()

    fragments: list[str] = []
    for fragment, charset in chunks:
        if isinstance(fragment, str):
            fragments.append(fragment)
        else:
            fragments.append(_decode_fragment(fragment, charset))
    return "".join(fragments).strip()


def build_header_map(
    items: Iterable[tuple[str, object]],
    *,
    lowercase: bool = True,
) -> dict[str, HeaderValue]:
    """Group header fields by name, preserving source order.

    A name seen once maps to a ``str``; a name seen two or more times maps
    to a ``tuple`` of its values in source order.  Absent values are
    skipped, so a header whose only value is absent does not appear.
    Names are matched case-insensitively; without *lowercase* the first
    spelling encountered is kept as the key.
    """
    display: dict[str, str] = {}
    grouped: dict[str, list[str]] = {}

    for name, raw in items:
        value = decode_header_value(raw)
        if value is None:
            continue
        folded = name.lower()
        display.setdefault(folded, folded if lowercase else name)
        grouped.setdefault(folded, []).append(value)

    return {
        display[folded]: values[0] if len(values) == 1 else tuple(values)
        for folded, values in grouped.items()
    }


def _decode_fragment(fragment: bytes, charset: str | None) -> str:
    if charset is None:
        # Unencoded runs come back from decode_header as raw-unicode-escape bytes.
        try:
            return fragment.decode("ascii")
        except UnicodeDecodeError:
            return fragment.decode("raw-unicode-escape")
    try:
        return fragment.decode(charset, errors="replace")
    except LookupError:
        return fragment.decode("utf-8", errors="replace")


def _has_surrogates(text: str) -> bool:
    try:
        text.encode("utf-8")
    except UnicodeEncodeError:
        return True
    return False
