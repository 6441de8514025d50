"""ImapInputService: wires config, logging, signals, sink, health server
and the poll loop into one runnable process.
"""

from __future__ import annotations

import asyncio

import structlog
import uvicorn

from .config import PollerConfig
from .errors import MisconfigurationError
from .health import create_health_app
from .logging import setup_logging
from .poller import MailPoller
from .shutdown import install_signal_handlers
from .sinks import EventSink, JsonLinesSink, KafkaEventSink

logger = structlog.get_logger()


def build_sink(config: PollerConfig) -> EventSink:
    if config.sink == "kafka":
        return KafkaEventSink(config.kafka)
    return JsonLinesSink()


class ImapInputService:
    """Runs one :class:`MailPoller` plus its health server.

    ``run()`` starts the following concurrently via
    :class:`asyncio.TaskGroup`:

    * the poll loop
    * a FastAPI health server (skipped when ``health_port`` is 0)

    Both stop when SIGTERM / SIGINT sets the shared stop event, or when
    the poll loop exits on its own.
    """

    def __init__(self, config: PollerConfig, *, sink: EventSink | None = None) -> None:
        self.config = config
        self._stop_event = asyncio.Event()
        self._sink = sink or build_sink(config)
        self.poller = MailPoller(config, self._sink, stop_event=self._stop_event)

    async def _run_poller(self) -> None:
        try:
            await self.poller.run()
        finally:
            # Let the health server exit even if the poller failed.
            self._stop_event.set()

    async def _run_health_server(self) -> None:
        """Start the FastAPI health server and shut it down on stop."""
        app = create_health_app(self.poller, mailbox=self.config.imap.mailbox)
        server = uvicorn.Server(
            uvicorn.Config(
                app,
                host="0.0.0.0",
                port=self.config.health_port,
                log_level="warning",
            )
        )
        serve_task = asyncio.create_task(server.serve())
        await self._stop_event.wait()
        server.should_exit = True
        await serve_task

    async def run(self) -> None:
        """Run until shutdown.

        Re-raises :class:`MisconfigurationError` from the first connection
        attempt so the caller can exit non-zero.
        """
        setup_logging(
            json=self.config.log_json,
            level=self.config.log_level,
            mailbox=self.config.imap.mailbox,
        )
        install_signal_handlers(self._stop_event)
        logger.info("imap_input_starting", sink=self.config.sink)

        await self._sink.start()
        fatal: MisconfigurationError | None = None
        try:
            async with asyncio.TaskGroup() as tg:
                tg.create_task(self._run_poller())
                if self.config.health_port:
                    tg.create_task(self._run_health_server())
        except* MisconfigurationError as group:
            fatal = group.exceptions[0]
        except* Exception:
            logger.exception("imap_input_task_group_error")
        finally:
            await self._sink.stop()
            logger.info("imap_input_stopped", events_emitted=self.poller.events_emitted)

        if fatal is not None:
            raise fatal
