"""Poll loop: connect, search UNSEEN, fetch → decode → emit → flag, sleep.

The loop exclusively owns one :class:`~imap_input.session.ImapSession`.
Blocking session calls run in a worker thread with ``asyncio.to_thread``;
the stop signal is an :class:`asyncio.Event` checked between protocol
calls and awaited by the inter-cycle sleep.  A call already in flight is
never preempted: it finishes or hits the socket timeout
(``ImapConfig.timeout_seconds``), which bounds how long a stop can take.
"""

from __future__ import annotations

import asyncio
import contextlib
import time
from datetime import UTC, datetime

import structlog

from .config import PollerConfig
from .decoder import MailDecoder
from .errors import (
    DecodeError,
    FetchError,
    FlagUpdateError,
    MailboxError,
    MisconfigurationError,
    SearchError,
    SessionConnectError,
)
from .models import PollState
from .retry import emit_with_retry
from .session import ImapSession
from .sinks import EventSink

logger = structlog.get_logger()


class MailPoller:
    """Polls one mailbox and emits an event per unseen message.

    Delivery is at-least-once: a message is flagged only after its event
    was handed to the sink, so any failure in between leaves it unseen
    for the next cycle.
    """

    def __init__(
        self,
        config: PollerConfig,
        sink: EventSink,
        *,
        session: ImapSession | None = None,
        decoder: MailDecoder | None = None,
        stop_event: asyncio.Event | None = None,
    ) -> None:
        self._config = config
        self._sink = sink
        self._session = session or ImapSession(config.imap, batch_size=config.fetch_count)
        self._decoder = decoder or MailDecoder(config.decoder)
        self._stop_event = stop_event or asyncio.Event()
        self._has_connected = False

        self.state: PollState = PollState.IDLE
        self.start_time: float = time.monotonic()
        self.last_poll_time: datetime | None = None
        self.events_emitted: int = 0

    @property
    def stopping(self) -> bool:
        return self._stop_event.is_set()

    @property
    def ready(self) -> bool:
        return self._session.connected and self.state is not PollState.STOPPED

    def stop(self) -> None:
        """Request shutdown; the current message is allowed to finish."""
        self._stop_event.set()

    # ------------------------------------------------------------------
    # Main loop
    # ------------------------------------------------------------------

    async def run(self) -> None:
        """Poll until :meth:`stop` is called (or the stop event is set).

        Raises :class:`MisconfigurationError` if the very first connection
        attempt shows the configuration can never work.
        """
        self.start_time = time.monotonic()
        logger.info(
            "poller_started",
            host=self._config.imap.host,
            mailbox=self._config.imap.mailbox,
            interval=self._config.poll_interval_seconds,
        )
        try:
            while not self.stopping:
                await self._run_cycle()
                if self.stopping:
                    break
                self.state = PollState.SLEEPING
                await self._sleep(self._config.poll_interval_seconds)
        finally:
            await asyncio.to_thread(self._session.disconnect)
            self.state = PollState.STOPPED
            logger.info("poller_stopped", events_emitted=self.events_emitted)

    async def _run_cycle(self) -> None:
        uids = await self._search_unseen()
        if uids is None:
            return

        self.last_poll_time = datetime.now(UTC)
        logger.info("imap_poll_complete", unseen=len(uids))

        self.state = PollState.PROCESSING
        batch_size = self._config.fetch_count
        for start in range(0, len(uids), batch_size):
            if self.stopping:
                break
            processed, connection_lost = await self._process_batch(uids[start : start + batch_size])
            if connection_lost:
                if processed:
                    logger.warning("imap_flags_not_stored", uids=processed, reason="connection_lost")
                await self._drop_session()
                return
            if processed:
                await self._mark_processed(processed)

        if self._config.reconnect_each_cycle:
            await self._drop_session()

    async def _process_batch(self, batch: list[str]) -> tuple[list[str], bool]:
        """Fetch, decode and emit each UID in *batch*.

        Returns the UIDs to flag and whether the connection was lost.
        """
        processed: list[str] = []

        for uid in batch:
            if self.stopping:
                break

            try:
                raw = await asyncio.to_thread(self._session.fetch, uid)
            except FetchError as exc:
                logger.warning(
                    "imap_fetch_failed",
                    uid=uid,
                    error=exc.reason,
                    connection_lost=exc.connection_lost,
                )
                if exc.connection_lost:
                    return processed, True
                continue

            try:
                event = self._decoder.decode(raw)
            except DecodeError as exc:
                logger.warning(
                    "mail_decode_failed",
                    uid=uid,
                    error=str(exc),
                    marked=self._config.mark_undecodable,
                )
                if self._config.mark_undecodable:
                    processed.append(uid)
                continue

            try:
                await emit_with_retry(self._sink, event, self._config.retry)
            except Exception as exc:
                logger.error("event_emit_failed", uid=uid, error=str(exc))
                continue

            processed.append(uid)
            self.events_emitted += 1
            logger.debug("event_emitted", uid=uid, attachments=len(event.attachments))

        return processed, False

    # ------------------------------------------------------------------
    # Session helpers
    # ------------------------------------------------------------------

    async def _search_unseen(self) -> list[str] | None:
        """Search UNSEEN, or return ``None`` if this cycle cannot poll.

        A session kept open from an earlier cycle may have been dropped by
        the server while idle, so its failed search is retried once on a
        fresh connection.
        """
        attempts = 2 if self._session.connected else 1
        for attempt in range(1, attempts + 1):
            if not await self._ensure_session() or self.stopping:
                return None

            self.state = PollState.POLLING
            try:
                return await asyncio.to_thread(self._session.search_unseen)
            except SearchError as exc:
                logger.warning("imap_search_failed", error=str(exc), attempt=attempt)
                await self._drop_session()
        return None

    async def _ensure_session(self) -> bool:
        if self._session.connected:
            if await asyncio.to_thread(self._session.is_connected):
                return True
            logger.info("imap_session_stale", host=self._config.imap.host)
            await self._drop_session()

        self.state = PollState.CONNECTING
        try:
            await asyncio.to_thread(self._session.connect)
            await asyncio.to_thread(self._session.select_mailbox)
        except MisconfigurationError as exc:
            if not self._has_connected:
                logger.error("imap_misconfigured", host=self._config.imap.host, error=str(exc))
                raise
            logger.warning("imap_connect_failed", host=self._config.imap.host, error=str(exc))
            await self._drop_session()
            return False
        except (SessionConnectError, MailboxError) as exc:
            logger.warning("imap_connect_failed", host=self._config.imap.host, error=str(exc))
            await self._drop_session()
            return False

        self._has_connected = True
        return True

    async def _mark_processed(self, uids: list[str]) -> None:
        try:
            await asyncio.to_thread(
                self._session.mark_processed,
                uids,
                delete=self._config.delete,
            )
        except FlagUpdateError as exc:
            logger.error(
                "imap_flag_update_failed",
                failed_batches=len(exc.failed_batches),
                error=exc.reason,
            )

    async def _drop_session(self) -> None:
        await asyncio.to_thread(self._session.disconnect)

    async def _sleep(self, seconds: float) -> None:
        """Wait *seconds*, returning early when the stop event is set."""
        with contextlib.suppress(TimeoutError):
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    async def health_check(self) -> dict[str, object]:
        # Reads local state only: the session is never touched from here.
        return {
            "imap_connected": self._session.connected,
            "imap_host": self._config.imap.host,
            "imap_mailbox": self._config.imap.mailbox,
            "last_poll_time": (
                self.last_poll_time.isoformat() if self.last_poll_time else None
            ),
            "events_emitted": self.events_emitted,
        }
