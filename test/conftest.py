"""
Pytest configuration and shared fixtures for the card table server.
"""

import json
import os
import random
import sys

import pytest
from websockets.exceptions import ConnectionClosedOK

# Add src to path for testing
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from cardtable.server.game import GameRoom  # noqa: E402
from cardtable.server.registry import RoomRegistry  # noqa: E402


class FakeConnection:
    """Records frames sent to it; can be closed to simulate a dropped socket."""

    def __init__(self, name="conn"):
        self.name = name
        self.sent = []
        self.closed = False
        self.remote_address = ("127.0.0.1", 50000)

    def send(self, text):
        if self.closed:
            raise ConnectionClosedOK(None, None)
        self.sent.append(json.loads(text))

    def close(self):
        self.closed = True

    def of_type(self, msg_type):
        return [m for m in self.sent if m["type"] == msg_type]

    def last(self, msg_type=None):
        frames = self.sent if msg_type is None else self.of_type(msg_type)
        return frames[-1] if frames else None

    def clear(self):
        self.sent.clear()

    def __repr__(self):
        return f"FakeConnection({self.name})"


@pytest.fixture
def make_conn():
    return FakeConnection


@pytest.fixture
def rng():
    return random.Random(1234)


@pytest.fixture
def room(rng):
    return GameRoom("ABC123", rng=rng)


@pytest.fixture
def registry(rng):
    return RoomRegistry(rng=rng)
