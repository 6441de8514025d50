"""Event sinks: where decoded events are handed to the downstream pipeline."""

from __future__ import annotations

import json
import sys
from typing import Protocol, TextIO, runtime_checkable

import structlog
from aiokafka import AIOKafkaProducer

from .config import KafkaConfig
from .models import Event

logger = structlog.get_logger()


@runtime_checkable
class EventSink(Protocol):
    """Anything that accepts events.

    ``emit`` must only return once the event is handed off; the poll loop
    marks the message processed after it returns.
    """

    async def start(self) -> None: ...

    async def stop(self) -> None: ...

    async def emit(self, event: Event) -> None: ...


def serialize_event(event: Event) -> str:
    return json.dumps(event.to_dict(), ensure_ascii=False)


class JsonLinesSink:
    """Writes one JSON document per line to a text stream (stdout by default)."""

    def __init__(self, stream: TextIO | None = None) -> None:
        self._stream = stream if stream is not None else sys.stdout

    async def start(self) -> None:
        pass

    async def stop(self) -> None:
        self._stream.flush()

    async def emit(self, event: Event) -> None:
        self._stream.write(serialize_event(event) + "\n")
        self._stream.flush()


class KafkaEventSink:
    """Thin async wrapper around :class:`AIOKafkaProducer`.

    Each event is published as JSON to the configured topic, keyed by its
    ``message-id`` header when the message has one.
    """

    def __init__(self, config: KafkaConfig) -> None:
        self._config = config
        self._producer: AIOKafkaProducer | None = None

    async def start(self) -> None:
        self._producer = AIOKafkaProducer(
            bootstrap_servers=self._config.bootstrap_servers,
            acks=self._config.producer_acks,
            compression_type=self._config.producer_compression,
        )
        await self._producer.start()
        logger.info("kafka_sink_started", servers=self._config.bootstrap_servers)

    async def stop(self) -> None:
        if self._producer is not None:
            await self._producer.stop()
            self._producer = None
            logger.info("kafka_sink_stopped")

    async def emit(self, event: Event) -> None:
        assert self._producer is not None, "Producer not started"
        key = _event_key(event)
        await self._producer.send_and_wait(
            self._config.topic,
            value=serialize_event(event).encode("utf-8"),
            key=key.encode("utf-8") if key else None,
        )
        logger.debug("event_sent", topic=self._config.topic, message_id=key)


def _event_key(event: Event) -> str | None:
    for name, value in event.headers.items():
        if name.lower() == "message-id":
            return value if isinstance(value, str) else value[0]
    return None
