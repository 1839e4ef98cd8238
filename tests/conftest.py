"""Pytest fixtures and fakes for the dispatch service tests."""
from datetime import datetime, timedelta, timezone

import pytest

from quikaid.coordinator import DispatchCoordinator
from quikaid.ledger import RequestLedger
from quikaid.transport import Transport


class FakeTransport(Transport):
    """Records every delivery instead of talking to sockets."""

    def __init__(self):
        self.sent = []

    def send(self, connection_id, event, payload):
        self.sent.append((connection_id, event, payload))

    def broadcast(self, event, payload):
        self.sent.append((None, event, payload))

    def to(self, connection_id, event=None):
        return [
            payload for target, name, payload in self.sent
            if target == connection_id and (event is None or name == event)
        ]

    def named(self, event):
        return [(target, payload) for target, name, payload in self.sent if name == event]

    def clear(self):
        self.sent.clear()


class FakeClock:
    def __init__(self, start=None):
        self.current = start or datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.current

    def advance(self, **kwargs):
        self.current += timedelta(**kwargs)


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def ledger(clock):
    return RequestLedger(clock=clock)


@pytest.fixture
def coordinator(transport, ledger):
    return DispatchCoordinator(transport, ledger=ledger)


@pytest.fixture
def sos_payload():
    return {
        "sosId": "S1",
        "userName": "Asha",
        "userMobile": "9876543210",
        "location": "12.90,77.60",
        "type": "cardiac",
    }
