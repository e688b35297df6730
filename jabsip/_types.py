"""
Type definitions and aliases for the signaling layer.

This module centralizes the enums, configuration dataclasses and the
exception taxonomy used throughout the package.
"""

from __future__ import annotations

import typing
from dataclasses import dataclass
from enum import Enum, auto
from typing import Any, Optional

from ._utils import (
    AUTO_REPLY,
    CAPS_NODE,
    CONNECT_DELAY,
    DEFAULT_PORT,
    DEFAULT_SUFFIX,
    DISCONNECT_MESSAGES,
    FEATURE_URI,
    PING_INTERVAL,
    PRESENCE_PRIORITY,
    PRESENCE_SHOW,
    PRESENCE_STATUS,
    REQUEST_TTL,
    RESOURCE_PREFIX,
    ROSTER_GROUP,
    SOFTWARE_NAME,
    SOFTWARE_OS,
    SOFTWARE_VERSION,
)

if typing.TYPE_CHECKING:
    from ._models._jid import Jid


# =============================================================================
# Session Configuration
# =============================================================================


@dataclass
class SessionConfig:
    """Protocol constants and policy knobs for a signaling session."""

    # Capability discovery
    feature_uri: str = FEATURE_URI
    caps_node: str = CAPS_NODE

    # Contact list
    roster_group: str = ROSTER_GROUP
    default_suffix: str = DEFAULT_SUFFIX
    resource_prefix: str = RESOURCE_PREFIX

    # Own presence
    presence_show: str = PRESENCE_SHOW
    presence_status: str = PRESENCE_STATUS
    presence_priority: int = PRESENCE_PRIORITY

    # Timers (in seconds)
    ping_interval: float = PING_INTERVAL
    connect_delay: float = CONNECT_DELAY
    request_ttl: float = REQUEST_TTL

    # Software version answered to peers (XEP-0092)
    software_name: str = SOFTWARE_NAME
    software_version: str = SOFTWARE_VERSION
    software_os: str = SOFTWARE_OS

    # Reply sent to humans chatting with the automatic presence
    auto_reply: Optional[str] = AUTO_REPLY


@dataclass
class TransportConfig:
    """Connection parameters handed to a transport."""

    jid: str = ""
    password: str = ""

    # Empty server means "resolve from the domain" (DNS SRV)
    server: str = ""
    port: Optional[int] = DEFAULT_PORT

    resource: str = ""

    # Mirror stanzas to the console
    xml_console: bool = False


# =============================================================================
# Session Enums
# =============================================================================


class ConnectionState(Enum):
    """
    States of a signaling session.

    DISCONNECTED → CONNECTING → CONNECTED → DISCONNECTING → DISCONNECTED
    """

    DISCONNECTED = auto()
    CONNECTING = auto()
    CONNECTED = auto()
    DISCONNECTING = auto()


class PresenceType(Enum):
    """Raw presence as delivered by the presence network."""

    AVAILABLE = "available"
    CHAT = "chat"
    AWAY = "away"
    XA = "xa"
    DND = "dnd"
    UNAVAILABLE = "unavailable"
    ERROR = "error"
    INVALID = "invalid"

    # Subscription management
    SUBSCRIBE = "subscribe"
    SUBSCRIBED = "subscribed"
    UNSUBSCRIBE = "unsubscribe"
    UNSUBSCRIBED = "unsubscribed"
    PROBE = "probe"

    @classmethod
    def parse(cls, value: Optional[str]) -> PresenceType:
        """Map a wire value to a PresenceType, unknown values are INVALID."""
        if not value:
            return cls.AVAILABLE
        try:
            return cls(value.lower())
        except ValueError:
            return cls.INVALID


class PresenceState(Enum):
    """Effective, application-level state held per peer."""

    UNKNOWN = auto()
    AVAILABLE = auto()
    UNAVAILABLE = auto()


def presence_means_online(presence: Optional[PresenceType]) -> bool:
    """Check whether a raw presence counts as "online"."""
    return presence not in (
        None,
        PresenceType.UNAVAILABLE,
        PresenceType.ERROR,
        PresenceType.INVALID,
    )


class RequestContext(Enum):
    """Purpose tag attached to outgoing requests, read back on the reply."""

    NONE = auto()
    DISCO_FEATURE_PROBE = auto()
    SOFTWARE_VERSION_PROBE = auto()
    SENT_DISCO_REPLY = auto()
    SENT_SIP_MESSAGE = auto()


class IqType(Enum):
    GET = "get"
    SET = "set"
    RESULT = "result"
    ERROR = "error"


class MessageType(Enum):
    NORMAL = "normal"
    CHAT = "chat"
    GROUPCHAT = "groupchat"
    HEADLINE = "headline"
    ERROR = "error"


class Subscription(Enum):
    """Roster subscription state (RFC 6121 Section 2.1.2.5)."""

    NONE = "none"
    TO = "to"
    FROM = "from"
    BOTH = "both"
    REMOVE = "remove"


class DisconnectReason(Enum):
    """Why the transport dropped the session."""

    USER = "user"
    HOST_UNKNOWN = "host_unknown"
    ITEM_NOT_FOUND = "item_not_found"
    AUTHORIZATION_ERROR = "authorization_error"
    REMOTE_STREAM_ERROR = "remote_stream_error"
    REMOTE_CONNECTION_FAILED = "remote_connection_failed"
    INTERNAL_SERVER_ERROR = "internal_server_error"
    SYSTEM_SHUTDOWN = "system_shutdown"
    CONFLICT = "conflict"
    UNKNOWN = "unknown"

    @property
    def message(self) -> str:
        return DISCONNECT_MESSAGES[self.value]


class ErrorKind(Enum):
    """Kinds of errors surfaced to consumers."""

    AUTH_ERROR = auto()
    CONNECTION_ERROR = auto()


# =============================================================================
# Exceptions
# =============================================================================


class JabsipError(Exception):
    """Base exception for the package."""

    pass


class TransportError(JabsipError):
    """Raised when the transport cannot carry out a request."""

    pass


class DecodeError(JabsipError):
    """Raised when a signaling payload cannot be parsed."""

    pass


class ValidationError(DecodeError):
    """Raised when a parsed SipInfo is incomplete."""

    pass


class InvalidStateTransition(JabsipError):
    """Raised on an illegal connection state change."""

    def __init__(self, current: ConnectionState, target: ConnectionState) -> None:
        super().__init__(f"Cannot go from {current.name} to {target.name}")
        self.current = current
        self.target = target


# =============================================================================
# Type Aliases
# =============================================================================

JidLike = typing.Union["Jid", str]

# Callback types
PeerCallback = typing.Callable[["Jid"], None]
Scheduler = typing.Callable[[float, typing.Callable[[], Any]], Any]


__all__ = [
    # Config
    "SessionConfig",
    "TransportConfig",
    # Enums
    "ConnectionState",
    "PresenceType",
    "PresenceState",
    "RequestContext",
    "IqType",
    "MessageType",
    "Subscription",
    "DisconnectReason",
    "ErrorKind",
    "presence_means_online",
    # Exceptions
    "JabsipError",
    "TransportError",
    "DecodeError",
    "ValidationError",
    "InvalidStateTransition",
    # Type aliases
    "JidLike",
    "PeerCallback",
    "Scheduler",
]
