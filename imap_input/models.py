"""Data models for decoded mail events and poller runtime state."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any

from pydantic import BaseModel, Field

HeaderValue = str | tuple[str, ...]


@dataclass(frozen=True)
class AttachmentDescriptor:
    """One attachment found in a message.

    ``data`` is only populated when attachment saving is enabled.
    """

    filename: str
    data: str | None = None

    def to_dict(self) -> dict[str, str]:
        out = {"filename": self.filename}
        if self.data is not None:
            out["data"] = self.data
        return out


@dataclass(frozen=True)
class Event:
    """Structured, immutable representation of one fetched message."""

    message: str
    headers: Mapping[str, HeaderValue] = field(default_factory=dict)
    attachments: tuple[AttachmentDescriptor, ...] = ()
    timestamp: datetime | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.headers, MappingProxyType):
            object.__setattr__(self, "headers", MappingProxyType(dict(self.headers)))

    def get(self, key: str) -> Any:
        """Look up a field the way the emitted dict exposes it."""
        return self.to_dict().get(key)

    def to_dict(self) -> dict[str, Any]:
        """Flatten into the emitted shape.

        Headers go first so ``message``, ``attachments`` and ``@timestamp``
        always win over a header of the same name.
        """
        out: dict[str, Any] = {
            name: list(value) if isinstance(value, tuple) else value
            for name, value in self.headers.items()
        }
        out["message"] = self.message
        out["attachments"] = [a.to_dict() for a in self.attachments]
        if self.timestamp is not None:
            out["@timestamp"] = self.timestamp.isoformat()
        return out


class PollState(str, Enum):
    """Runtime state of the poll loop."""

    IDLE = "idle"
    CONNECTING = "connecting"
    POLLING = "polling"
    PROCESSING = "processing"
    SLEEPING = "sleeping"
    STOPPED = "stopped"


class HealthStatus(BaseModel):
    """Response model for the /health probe endpoint."""

    mailbox: str = Field(description="Mailbox being polled")
    state: PollState = Field(description="Current poll loop state")
    uptime_seconds: float = Field(description="Seconds since the poller started")
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Poller details (last poll time, events emitted, connectivity)",
    )
