"""Tests for imap_input.models."""

from __future__ import annotations

import dataclasses
from datetime import UTC, datetime

import pytest

from imap_input.models import AttachmentDescriptor, Event, HealthStatus, PollState


class TestAttachmentDescriptor:
    def test_filename_only(self):
        assert AttachmentDescriptor(filename="a.pdf").to_dict() == {"filename": "a.pdf"}

    def test_with_data(self):
        desc = AttachmentDescriptor(filename="a.txt", data="hi")
        assert desc.to_dict() == {"filename": "a.txt", "data": "hi"}


class TestEvent:
    def test_to_dict_order_and_shape(self):
        event = Event(
            message="m",
            headers={"subject": "s", "received": ("r1", "r2")},
            timestamp=datetime(2025, 1, 1, tzinfo=UTC),
        )
        assert list(event.to_dict()) == [
            "subject",
            "received",
            "message",
            "attachments",
            "@timestamp",
        ]
        assert event.get("received") == ["r1", "r2"]
        assert event.get("attachments") == []

    def test_reserved_keys_win_over_headers(self):
        event = Event(message="body", headers={"message": "header value"})
        assert event.get("message") == "body"

    def test_missing_key(self):
        assert Event(message="m").get("x-nope") is None

    def test_immutable(self):
        event = Event(message="m", headers={"subject": "s"})
        with pytest.raises(dataclasses.FrozenInstanceError):
            event.message = "other"
        with pytest.raises(TypeError):
            event.headers["subject"] = "other"

    def test_headers_copied_from_source(self):
        source = {"subject": "s"}
        event = Event(message="m", headers=source)
        source["subject"] = "changed"
        assert event.headers["subject"] == "s"

    def test_equality(self):
        assert Event(message="m", headers={"a": "1"}) == Event(message="m", headers={"a": "1"})


class TestHealthStatus:
    def test_serialises_state_value(self):
        status = HealthStatus(mailbox="INBOX", state=PollState.POLLING, uptime_seconds=1.5)
        data = status.model_dump(mode="json")
        assert data["state"] == "polling"
        assert data["details"] == {}
