"""Tenacity-driven delivery of events to a sink."""

from __future__ import annotations

import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from .config import RetryConfig
from .models import Event
from .sinks import EventSink

logger = structlog.get_logger()


def _log_retry(state: RetryCallState) -> None:
    exc = state.outcome.exception() if state.outcome else None
    logger.warning(
        "event_emit_retrying",
        attempt=state.attempt_number,
        error=str(exc) if exc else None,
    )


def delivery_policy(
    config: RetryConfig,
    *,
    retryable_exceptions: tuple[type[BaseException], ...] = (Exception,),
) -> AsyncRetrying:
    """Build an :class:`AsyncRetrying` controller from *config*.

    The final failure is re-raised unchanged so callers see the sink's
    own exception type.
    """
    return AsyncRetrying(
        stop=stop_after_attempt(config.max_attempts),
        wait=wait_exponential(
            multiplier=config.multiplier,
            min=config.initial_wait_seconds,
            max=config.max_wait_seconds,
        ),
        retry=retry_if_exception_type(retryable_exceptions),
        before_sleep=_log_retry,
        reraise=True,
    )


async def emit_with_retry(sink: EventSink, event: Event, config: RetryConfig) -> None:
    """Hand *event* to *sink*, retrying with exponential backoff."""
    async for attempt in delivery_policy(config):
        with attempt:
            await sink.emit(event)
