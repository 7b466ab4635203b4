"""
Pytest configuration and fixtures for broker tests.
"""

import json
from typing import Optional

import pytest

from broker import Broker
from connection import Connection
from lifecycle import ConnectionLifecycleManager
from registry import RoomRegistry


class RecordingTransport:
    """Transport double that keeps every frame it was asked to send."""

    def __init__(self, fail_sends: bool = False):
        self.sent = []
        self.closed = False
        self.close_calls = 0
        self.fail_sends = fail_sends

    async def send_text(self, data: str) -> None:
        if self.fail_sends:
            raise ConnectionError("WebSocket closed")
        self.sent.append(json.loads(data))

    async def close(self, code: int = 1000, reason: Optional[str] = None) -> None:
        self.close_calls += 1
        self.closed = True

    def frames_of_type(self, frame_type: str):
        return [f for f in self.sent if f.get("type") == frame_type]


@pytest.fixture
def registry():
    """Fresh registry per test."""
    return RoomRegistry()


@pytest.fixture
def broker(registry):
    return Broker(registry)


@pytest.fixture
def manager(registry, broker):
    return ConnectionLifecycleManager(registry, broker)


@pytest.fixture
def make_connection():
    """Build an open Connection over a RecordingTransport."""
    def _make(user_id: str = "alice", fail_sends: bool = False) -> Connection:
        connection = Connection(RecordingTransport(fail_sends=fail_sends), user_id=user_id)
        connection.mark_open()
        return connection

    return _make


@pytest.fixture
def assert_bidirectional(registry):
    """Room lists the connection iff the connection lists the room."""
    def _check(connections):
        for room in registry.rooms():
            for connection in registry.members_of(room):
                assert room in connection.rooms
        for connection in connections:
            for room in connection.rooms:
                assert connection in registry.members_of(room)

    return _check


@pytest.fixture
def make_transport():
    return RecordingTransport
