"""jabsip - Peer discovery and SipInfo signaling over XMPP presence."""

from __future__ import annotations

# Session - Main API
from ._session import Session, default_scheduler

# Notifications
from ._events import (
    ApprovalRequestEvent,
    ErrorEvent,
    Event,
    EventName,
    Events,
    JidChangedEvent,
    MessageEvent,
    PeerEvent,
    SipInfoEvent,
    SoftwareVersionEvent,
    StateChangedEvent,
    event_handler,
)

# Core components
from ._correlator import (
    Acknowledged,
    DiscoReply,
    PendingRequest,
    Reply,
    RequestCorrelator,
    SipInfoPush,
    Unsolicited,
    VersionReply,
    decode_reply,
)
from ._fsm import ConnectionStateMachine, Transition
from ._registry import PeerRegistry

# Handler system
from ._handlers import (
    CapabilityProber,
    EventContext,
    HandlerChain,
    LoggingHandler,
    SignalingHandler,
    StanzaHandler,
    SubscriptionGate,
)

# Configuration and approval
from ._approval import (
    ApprovalPolicy,
    ApprovalTask,
    AutoApprove,
    AutoDecline,
    ConsoleApproval,
    ManualApproval,
)
from ._config import AccountConfig, JsonFileSettings, MemorySettings, SettingsStore

# Models
from ._models import (
    Capabilities,
    DiscoInfo,
    Iq,
    Jid,
    Message,
    Presence,
    RosterItem,
    SipInfo,
    SoftwareVersion,
    decode_sipinfo,
    encode_sipinfo,
    looks_like_sipinfo,
)

# Transport layer
from ._transports import BaseTransport, TRANSPORT_EVENTS

# Types
from ._types import (
    ConnectionState,
    DecodeError,
    DisconnectReason,
    ErrorKind,
    InvalidStateTransition,
    IqType,
    JabsipError,
    MessageType,
    PresenceState,
    PresenceType,
    RequestContext,
    SessionConfig,
    Subscription,
    TransportConfig,
    TransportError,
    ValidationError,
    presence_means_online,
)

# Utilities
from ._utils import console, logger

__version__ = "0.1.0"


def __getattr__(name: str):
    """Lazy import of the slixmpp transport."""
    if name == "XmppTransport":
        from ._transports._xmpp import XmppTransport

        return XmppTransport

    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    # Session - Main API
    "Session",
    "default_scheduler",
    # Utilities - Console & Logging
    "console",
    "logger",
    # Notifications
    "Events",
    "event_handler",
    "EventName",
    "Event",
    "StateChangedEvent",
    "PeerEvent",
    "SipInfoEvent",
    "MessageEvent",
    "SoftwareVersionEvent",
    "ApprovalRequestEvent",
    "JidChangedEvent",
    "ErrorEvent",
    # Core - Connection FSM
    "ConnectionStateMachine",
    "Transition",
    "ConnectionState",
    # Core - Peers
    "PeerRegistry",
    "PresenceState",
    "PresenceType",
    "presence_means_online",
    # Core - Correlation
    "RequestCorrelator",
    "RequestContext",
    "PendingRequest",
    "Reply",
    "DiscoReply",
    "VersionReply",
    "SipInfoPush",
    "Acknowledged",
    "Unsolicited",
    "decode_reply",
    # Handlers
    "StanzaHandler",
    "HandlerChain",
    "EventContext",
    "CapabilityProber",
    "SignalingHandler",
    "SubscriptionGate",
    "LoggingHandler",
    # Approval
    "ApprovalPolicy",
    "ApprovalTask",
    "AutoApprove",
    "AutoDecline",
    "ManualApproval",
    "ConsoleApproval",
    # Configuration
    "AccountConfig",
    "SettingsStore",
    "MemorySettings",
    "JsonFileSettings",
    "SessionConfig",
    "TransportConfig",
    # Models
    "Jid",
    "SipInfo",
    "encode_sipinfo",
    "decode_sipinfo",
    "looks_like_sipinfo",
    "Presence",
    "Iq",
    "Message",
    "RosterItem",
    "Capabilities",
    "DiscoInfo",
    "SoftwareVersion",
    "IqType",
    "MessageType",
    "Subscription",
    # Transport
    "BaseTransport",
    "XmppTransport",
    "TRANSPORT_EVENTS",
    "DisconnectReason",
    # Errors
    "ErrorKind",
    "JabsipError",
    "TransportError",
    "DecodeError",
    "ValidationError",
    "InvalidStateTransition",
]
