"""
Stanza Handlers Package.

Inbound stanzas flow through a chain of handlers, each reacting to the
stanzas it cares about and passing them on (or stopping the chain).

Base Classes:
    - StanzaHandler: Base class for handlers
    - EventContext: Context passed between handlers
    - HandlerChain: Chain of handlers executed in sequence

Signaling Handlers:
    - CapabilityProber: Probes capability-bearing presence for our feature
    - SignalingHandler: Surfaces SipInfo and answers plain chat
    - SubscriptionGate: Approves or prompts on subscription requests

Utility Handlers:
    - LoggingHandler: Stanza trace (the account's XML console)

Example:
    ```python
    from jabsip import Session
    from jabsip._handlers import StanzaHandler

    class PresenceCounter(StanzaHandler):
        def __init__(self):
            self.count = 0

        def on_presence(self, presence, context):
            self.count += 1
            return presence

    session = Session("jabber-1", transport, settings)
    session.add_handler(PresenceCounter())
    ```
"""

# Base classes
from ._base import (
    EventContext,
    HandlerChain,
    StanzaHandler,
)

# Signaling handlers
from ._caps import CapabilityProber
from ._signaling import SignalingHandler
from ._subscription import SubscriptionGate

# Utility handlers
from ._utility import LoggingHandler

__all__ = [
    # Base
    "EventContext",
    "StanzaHandler",
    "HandlerChain",
    # Signaling
    "CapabilityProber",
    "SignalingHandler",
    "SubscriptionGate",
    # Utility
    "LoggingHandler",
]
