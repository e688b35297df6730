"""
Base transport abstraction for the presence network.

The signaling core never talks to an XMPP library directly. It drives a
transport through this narrow contract and receives stanzas back through the
transport's event callbacks.
"""

from __future__ import annotations

import abc
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional, Union

from .._types import DisconnectReason, TransportConfig

if TYPE_CHECKING:
    from .._models._jid import Jid
    from .._models._stanza import Iq, Message, Presence, RosterItem

Stanza = Union["Iq", "Message", "Presence"]

# Transport events and the arguments their callbacks receive
CONNECTED = "connected"  # ()
DISCONNECTED = "disconnected"  # (reason: DisconnectReason)
MESSAGE = "message"  # (message: Message)
IQ = "iq"  # (iq: Iq)
PRESENCE = "presence"  # (presence: Presence)
SUBSCRIPTION = "subscription"  # (item: Optional[RosterItem], presence: Presence)
STANZA_SENT = "stanza_sent"  # (stanza)

TRANSPORT_EVENTS = (
    CONNECTED,
    DISCONNECTED,
    MESSAGE,
    IQ,
    PRESENCE,
    SUBSCRIPTION,
    STANZA_SENT,
)


class BaseTransport(abc.ABC):
    """
    Abstract base class for presence network transports.

    Events are delivered serially on the thread (or event loop) driving the
    transport. Implementations call :meth:`_fire` when something happens:

    - ``connected``: stream established, server features received
    - ``disconnected(reason)``: stream closed
    - ``message(message)``, ``iq(iq)``, ``presence(presence)``
    - ``subscription(item, presence)``: subscription request or change
    """

    def __init__(self, config: Optional[TransportConfig] = None) -> None:
        """
        Initialize transport with configuration.

        Args:
            config: Connection parameters. If None, uses defaults.
        """
        self.config = config or TransportConfig()
        self._listeners: Dict[str, List[Callable[..., Any]]] = {}

    # Event subscription

    def on(self, event: str, callback: Callable[..., Any]) -> None:
        """
        Subscribe to a transport event.

        Raises:
            ValueError: If ``event`` is not a known transport event
        """
        if event not in TRANSPORT_EVENTS:
            raise ValueError(f"Unknown transport event: {event}")
        self._listeners.setdefault(event, []).append(callback)

    def off(self, event: str, callback: Callable[..., Any]) -> None:
        listeners = self._listeners.get(event, [])
        if callback in listeners:
            listeners.remove(callback)

    def _fire(self, event: str, *args: Any) -> None:
        for callback in list(self._listeners.get(event, [])):
            callback(*args)

    # Configuration

    def configure(self, config: TransportConfig) -> None:
        """Replace connection parameters, effective on the next connect."""
        self.config = config

    # Connection

    @abc.abstractmethod
    def connect(self) -> None:
        """Start connecting; completion is reported by the ``connected`` event."""
        ...

    @abc.abstractmethod
    def disconnect_from_server(self) -> None:
        """Close the stream; completion is reported by ``disconnected``."""
        ...

    @abc.abstractmethod
    def is_connected(self) -> bool:
        ...

    @property
    @abc.abstractmethod
    def jid(self) -> Jid:
        """Our own full JID, as bound by the server once connected."""
        ...

    # Stanzas

    @abc.abstractmethod
    def send(self, stanza: Stanza) -> None:
        """
        Send a stanza without waiting.

        Replies to IQ requests arrive later through the ``iq`` event and carry
        the request's id.
        """
        ...

    @abc.abstractmethod
    def set_presence(self, show: str, status: str, priority: int) -> None:
        """Publish our own presence (with capabilities attached)."""
        ...

    @abc.abstractmethod
    def set_ping_interval(self, seconds: float) -> None:
        """Configure the keep-alive ping."""
        ...

    # Contact list

    @abc.abstractmethod
    def load_roster(self) -> None:
        """Request the contact list from the server."""
        ...

    @abc.abstractmethod
    def roster_item(self, jid: Jid) -> Optional[RosterItem]:
        """Look up a contact list entry by bare JID."""
        ...

    @abc.abstractmethod
    def subscribe(
        self, jid: Jid, message: str = "", name: str = "", groups: Optional[List[str]] = None
    ) -> None:
        """Add a contact to the roster and ask for its presence."""
        ...

    @abc.abstractmethod
    def allow_subscription(self, jid: Jid, allow: bool) -> None:
        """Answer a subscription request (subscribed / unsubscribed)."""
        ...

    def __repr__(self) -> str:
        state = "connected" if self.is_connected() else "disconnected"
        return f"<{self.__class__.__name__}({self.config.jid}, {state})>"


__all__ = [
    "BaseTransport",
    "DisconnectReason",
    "Stanza",
    "TRANSPORT_EVENTS",
    "CONNECTED",
    "DISCONNECTED",
    "MESSAGE",
    "IQ",
    "PRESENCE",
    "SUBSCRIPTION",
    "STANZA_SENT",
]
