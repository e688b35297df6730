"""
Shared fixtures for the jabsip test suite.

The FakeTransport records everything the session asks of it and lets tests
inject transport events; the ManualScheduler holds deferred calls until a
test runs them.
"""

from typing import List, Optional
from unittest.mock import Mock

import pytest

from jabsip import (
    ApprovalPolicy,
    BaseTransport,
    EventName,
    Iq,
    Jid,
    MemorySettings,
    Session,
)
from jabsip._models._stanza import RosterItem
from jabsip._transports._base import (
    CONNECTED,
    DISCONNECTED,
    IQ,
    MESSAGE,
    PRESENCE,
    STANZA_SENT,
    SUBSCRIPTION,
)
from jabsip._types import DisconnectReason


class FakeTransport(BaseTransport):
    """Transport double recording calls and firing events on demand."""

    def __init__(self, config=None):
        super().__init__(config)
        self.sent: list = []
        self.connected = False
        self.connect_calls = 0
        self.disconnect_calls = 0
        self.presence: Optional[tuple] = None
        self.ping_interval: Optional[float] = None
        self.roster_loads = 0
        self.roster: dict = {}
        self.subscriptions: list = []
        self.answers: list = []
        self.bound_resource: Optional[str] = None

    # BaseTransport contract

    def connect(self) -> None:
        self.connect_calls += 1

    def disconnect_from_server(self) -> None:
        self.disconnect_calls += 1

    def is_connected(self) -> bool:
        return self.connected

    @property
    def jid(self) -> Jid:
        return Jid.parse(self.config.jid).with_resource(
            self.bound_resource or self.config.resource
        )

    def send(self, stanza) -> None:
        self.sent.append(stanza)
        self._fire(STANZA_SENT, stanza)

    def set_presence(self, show: str, status: str, priority: int) -> None:
        self.presence = (show, status, priority)

    def set_ping_interval(self, seconds: float) -> None:
        self.ping_interval = seconds

    def load_roster(self) -> None:
        self.roster_loads += 1

    def roster_item(self, jid: Jid) -> Optional[RosterItem]:
        return self.roster.get(jid.bare)

    def subscribe(self, jid, message="", name="", groups=None) -> None:
        self.subscriptions.append((jid, message, name, list(groups or [])))

    def allow_subscription(self, jid: Jid, allow: bool) -> None:
        self.answers.append((jid, allow))

    # Test helpers

    def simulate_connected(self) -> None:
        self.connected = True
        self._fire(CONNECTED)

    def simulate_disconnected(self, reason: DisconnectReason = DisconnectReason.USER) -> None:
        self.connected = False
        self._fire(DISCONNECTED, reason)

    def receive_presence(self, presence) -> None:
        self._fire(PRESENCE, presence)

    def receive_subscription(self, presence) -> None:
        self._fire(SUBSCRIPTION, self.roster_item(presence.from_jid), presence)

    def receive_message(self, message) -> None:
        self._fire(MESSAGE, message)

    def receive_iq(self, iq) -> None:
        self._fire(IQ, iq)

    def sent_iqs(self) -> List[Iq]:
        return [stanza for stanza in self.sent if isinstance(stanza, Iq)]


class ScheduledCall:
    def __init__(self, delay: float, callback):
        self.delay = delay
        self.callback = callback
        self.cancelled = False
        self.done = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Scheduler double: calls run only when the test says so."""

    def __init__(self):
        self.calls: List[ScheduledCall] = []

    def __call__(self, delay, callback) -> ScheduledCall:
        call = ScheduledCall(delay, callback)
        self.calls.append(call)
        return call

    @property
    def pending(self) -> List[ScheduledCall]:
        return [call for call in self.calls if not call.cancelled and not call.done]

    def run_pending(self) -> None:
        for call in self.pending:
            call.done = True
            call.callback()


@pytest.fixture
def settings():
    """Settings holding one complete account."""
    return MemorySettings(
        {
            "jabber-1/username": "alice@example.org",
            "jabber-1/password": "secret",
        }
    )


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def approval():
    """Approval policy that never answers on its own."""
    return Mock(spec=ApprovalPolicy)


@pytest.fixture
def session(transport, settings, scheduler, approval):
    return Session(
        "jabber-1",
        transport,
        settings,
        approval=approval,
        scheduler=scheduler,
    )


@pytest.fixture
def recorder(session):
    """Every notification the session emits, in order."""
    events = []
    for name in EventName:
        session.events.add_listener(name, events.append)
    return events


@pytest.fixture
def connected_session(session, transport, scheduler):
    """A session that went through connect() and the transport's connected."""
    session.connect()
    scheduler.run_pending()
    transport.simulate_connected()
    transport.sent.clear()
    return session
