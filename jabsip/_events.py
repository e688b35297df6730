"""
Notification system for signaling events.

This module provides a declarative, decorator-based API for reacting to the
notifications a session raises (state changes, peers coming and going,
SipInfo received, errors, approval requests).
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Optional, Union

from ._utils import logger
from ._types import ConnectionState, ErrorKind

if TYPE_CHECKING:
    from ._models._jid import Jid
    from ._models._sipinfo import SipInfo


class EventName(str, Enum):
    """Names of the notifications a session raises."""

    CONNECTION_STATE_CHANGED = "connection_state_changed"
    PEER_ONLINE = "peer_online"
    PEER_OFFLINE = "peer_offline"
    SIP_INFO_RECEIVED = "sip_info_received"
    MESSAGE_RECEIVED = "message_received"
    SOFTWARE_VERSION_RECEIVED = "software_version_received"
    APPROVAL_REQUESTED = "approval_requested"
    JID_CHANGED = "jid_changed"
    ERROR = "error"


# ============================================================================
# Event Payloads
# ============================================================================


@dataclass(slots=True)
class Event:
    name: EventName


@dataclass(slots=True)
class StateChangedEvent(Event):
    state: ConnectionState
    previous: ConnectionState


@dataclass(slots=True)
class PeerEvent(Event):
    jid: Jid


@dataclass(slots=True)
class SipInfoEvent(Event):
    sender: Jid
    info: SipInfo


@dataclass(slots=True)
class MessageEvent(Event):
    sender: Jid
    body: str


@dataclass(slots=True)
class SoftwareVersionEvent(Event):
    jid: Jid
    version: str


@dataclass(slots=True)
class ApprovalRequestEvent(Event):
    jid: Jid
    prompt: str


@dataclass(slots=True)
class JidChangedEvent(Event):
    jid: Jid


@dataclass(slots=True)
class ErrorEvent(Event):
    kind: ErrorKind
    message: str


# ============================================================================
# Event Handler Decorator
# ============================================================================


def event_handler(*names: Union[str, EventName]):
    """
    Decorator for notification handlers.

    Marks methods of an Events subclass as handlers for one or more
    notifications. With no names the handler receives every notification.

    Example:
        >>> class MyEvents(Events):
        ...     @event_handler(EventName.PEER_ONLINE)
        ...     def on_peer_online(self, event):
        ...         print(f"{event.jid} is running the application")
        ...
        ...     @event_handler("peer_online", "peer_offline")
        ...     def on_peer_change(self, event):
        ...         print(event.name, event.jid)
    """

    def decorator(func: Callable) -> Callable:
        func._event_handler_names = (
            tuple(EventName(name) for name in names) if names else None
        )
        func._is_event_handler = True
        return func

    return decorator


class Events:
    """
    Base class for notification handlers with declarative API.

    Inherit from this class and decorate methods with ``@event_handler(...)``,
    or register plain callables with :meth:`add_listener`. Handlers receive a
    single Event payload. A handler that raises is logged and does not stop
    the remaining handlers.

    Usage with Session:
        >>> session = Session("jabber-1", transport, settings)
        >>> session.events = MyEvents()
    """

    # Class-level reference to decorator for standalone use
    event_handler = staticmethod(event_handler)

    def __init__(self) -> None:
        """Initialize Events instance and discover decorated handlers."""
        self._handlers: list[tuple[Callable, Optional[tuple]]] = []
        self._listeners: dict[EventName, list[Callable[[Any], Any]]] = {}
        self._discover_handlers()

    def _discover_handlers(self) -> None:
        """Discover all methods decorated with @event_handler."""
        for name in dir(self):
            # Skip private/magic methods and class attributes
            if name.startswith("_") or name in ("event_handler", "emit"):
                continue

            attr = getattr(self, name)
            if callable(attr) and getattr(attr, "_is_event_handler", False):
                names = getattr(attr, "_event_handler_names", None)
                self._handlers.append((attr, names))

        logger.debug(
            f"Discovered {len(self._handlers)} event handlers in {self.__class__.__name__}"
        )

    def add_listener(
        self, name: Union[str, EventName], callback: Callable[[Any], Any]
    ) -> None:
        """Register a callable for one notification."""
        self._listeners.setdefault(EventName(name), []).append(callback)

    def remove_listener(
        self, name: Union[str, EventName], callback: Callable[[Any], Any]
    ) -> None:
        listeners = self._listeners.get(EventName(name), [])
        if callback in listeners:
            listeners.remove(callback)

    def emit(self, event: Event) -> None:
        """Deliver an event to every matching handler and listener."""
        for handler, names in self._handlers:
            if names is None or event.name in names:
                self._invoke(handler, event)

        for listener in list(self._listeners.get(event.name, [])):
            self._invoke(listener, event)

    def _invoke(self, handler: Callable, event: Event) -> None:
        try:
            handler(event)
        except Exception as e:
            handler_name = getattr(handler, "__name__", repr(handler))
            logger.error(f"Error in event handler {handler_name}: {e}")
