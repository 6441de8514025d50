"""Graceful shutdown handling via SIGTERM / SIGINT."""

from __future__ import annotations

import asyncio
import signal

import structlog

logger = structlog.get_logger()


def install_signal_handlers(stop_event: asyncio.Event) -> None:
    """Register SIGTERM and SIGINT handlers that set *stop_event*.

    Call this once from the running event loop.  The poll loop checks the
    event between protocol calls and wakes from its inter-cycle sleep
    when it is set; a blocking IMAP call already in flight still runs to
    completion or to its socket timeout.
    """
    loop = asyncio.get_running_loop()

    def _handle(sig: signal.Signals) -> None:
        logger.info("shutdown_signal_received", signal=sig.name)
        stop_event.set()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, _handle, sig)
