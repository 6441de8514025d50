"""structlog configuration for the poller process.

Both structlog loggers and plain stdlib loggers (imaplib callers,
aiokafka, uvicorn) end up in one stderr handler with the same
timestamp / level / context enrichment.  Stdout is left to the
JSON-lines sink.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import MutableMapping
from typing import Any

import structlog
from structlog.types import Processor

_QUIET_LOGGERS = ("aiokafka", "uvicorn.access")
_SECRET_KEYS = frozenset({"password", "secret", "token"})


def _redact_secrets(
    _logger: Any, _method: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    for key in _SECRET_KEYS.intersection(event_dict):
        event_dict[key] = "***"
    return event_dict


def _enrichment() -> list[Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        _redact_secrets,
    ]


def _stderr_handler(renderer: Processor) -> logging.Handler:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            # Records from stdlib loggers skip structlog's chain; enrich them here.
            foreign_pre_chain=_enrichment(),
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                renderer,
            ],
        )
    )
    return handler


def setup_logging(*, json: bool = True, level: str = "INFO", **context: str) -> None:
    """Route all logging through structlog to stderr.

    ``json`` picks the JSON renderer (default) over the console one,
    ``level`` is the root level name, and any extra keyword arguments are
    bound as context on every line (e.g. ``mailbox="INBOX"``).  Calling it
    again replaces the previous configuration.
    """
    structlog.configure(
        processors=[
            *_enrichment(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    renderer: Processor = (
        structlog.processors.JSONRenderer() if json else structlog.dev.ConsoleRenderer()
    )
    root = logging.getLogger()
    root.handlers[:] = [_stderr_handler(renderer)]
    root.setLevel(level.upper())
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(root.level, logging.WARNING))

    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(**context)
