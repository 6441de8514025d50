"""Entry point for the IMAP input.

Usage::

    python -m imap_input        # configured entirely from IMAP_*, POLLER_*, ... env vars
"""

from __future__ import annotations

import asyncio
import sys

from pydantic import ValidationError


def main() -> None:
    from .config import PollerConfig
    from .errors import MisconfigurationError
    from .service import ImapInputService

    try:
        config = PollerConfig()
    except ValidationError as exc:
        print(f"imap-input: invalid configuration\n{exc}", file=sys.stderr)
        sys.exit(2)

    service = ImapInputService(config)
    try:
        asyncio.run(service.run())
    except MisconfigurationError as exc:
        print(f"imap-input: {exc}", file=sys.stderr)
        sys.exit(2)


if __name__ == "__main__":
    main()
