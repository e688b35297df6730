"""
Presence network transport layer.

This package provides the transport contract the signaling core drives and
a concrete XMPP implementation:
- BaseTransport: abstract contract (connect, send, roster, events)
- XmppTransport: slixmpp-backed implementation
"""

from .._types import DisconnectReason, TransportConfig, TransportError
from ._base import BaseTransport, TRANSPORT_EVENTS

__all__ = [
    "BaseTransport",
    "TransportConfig",
    "TransportError",
    "DisconnectReason",
    "TRANSPORT_EVENTS",
]


# The XMPP transport is lazy-loaded so the core imports without slixmpp overhead
def __getattr__(name: str):
    """Lazy import transport implementations."""
    if name == "XmppTransport":
        from ._xmpp import XmppTransport

        return XmppTransport

    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
