"""
Base classes for inbound stanza handlers.

This module provides the abstract handler class, the context passed along
the chain and the chain itself.
"""

from __future__ import annotations

from abc import ABC
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Optional

from .._utils import logger

if TYPE_CHECKING:
    from .._models._jid import Jid
    from .._models._stanza import Iq, Message, Presence, RosterItem


@dataclass
class EventContext:
    """
    Context information passed to stanza handlers.

    Carries the session the stanza arrived on and metadata that can be
    shared between handlers in the chain.
    """

    # Session that received the stanza
    session: Any = None

    # Our own full JID at the time the stanza arrived
    own_jid: Optional[Jid] = None

    # Flexible metadata storage for handler communication
    metadata: dict = field(default_factory=dict)


class StanzaHandler(ABC):
    """
    Abstract base class for stanza handlers.

    Every hook receives the stanza and returns it (possibly modified) to pass
    it on to the next handler, or None to stop the chain. Custom handlers
    override only the hooks they need.
    """

    def on_presence(self, presence: Presence, context: EventContext) -> Optional[Presence]:
        """
        Called for every presence update that is not a subscription request.

        Args:
            presence: The received presence
            context: Event context

        Returns:
            The presence, or None to stop the chain
        """
        return presence

    def on_subscription(
        self, item: Optional[RosterItem], presence: Presence, context: EventContext
    ) -> Optional[Presence]:
        """
        Called for subscription presences (subscribe, subscribed, ...).

        Args:
            item: Our roster entry for the sender, None if unknown
            presence: The subscription presence
            context: Event context
        """
        return presence

    def on_message(self, message: Message, context: EventContext) -> Optional[Message]:
        """Called for every chat message."""
        return message

    def on_iq(self, iq: Iq, context: EventContext) -> Optional[Iq]:
        """Called for every IQ, before the correlator routes it."""
        return iq

    def on_sent(self, stanza: Any, context: EventContext) -> None:
        """Called after a stanza was handed to the transport."""
        pass

    def on_error(self, error: Exception, context: EventContext) -> None:
        """
        Called when a handler raised while processing a stanza.

        Args:
            error: The exception that occurred
            context: Event context at the time of error
        """
        pass


class HandlerChain:
    """
    Chain of stanza handlers executed in sequence.

    Handlers are called in the order they were added. A handler returning
    None stops the chain for that stanza. An exception raised by a handler is
    reported to every handler's ``on_error`` and the chain continues with
    the next handler.
    """

    def __init__(self):
        """Initialize empty handler chain."""
        self._handlers: list[StanzaHandler] = []

    def add_handler(self, handler: StanzaHandler) -> None:
        """
        Add a handler to the end of the chain.

        Args:
            handler: Stanza handler to add
        """
        self._handlers.append(handler)

    def remove_handler(self, handler: StanzaHandler) -> None:
        if handler in self._handlers:
            self._handlers.remove(handler)

    def clear(self) -> None:
        """Remove all handlers from the chain."""
        self._handlers.clear()

    def _run(self, hook: str, stanza: Any, context: EventContext, *extra: Any) -> Any:
        for handler in list(self._handlers):
            try:
                result = getattr(handler, hook)(*extra, stanza, context)
            except Exception as e:
                self.on_error(e, context)
                continue
            if result is None:
                return None
            stanza = result
        return stanza

    def on_presence(self, presence: Presence, context: EventContext) -> Optional[Presence]:
        return self._run("on_presence", presence, context)

    def on_subscription(
        self, item: Optional[RosterItem], presence: Presence, context: EventContext
    ) -> Optional[Presence]:
        return self._run("on_subscription", presence, context, item)

    def on_message(self, message: Message, context: EventContext) -> Optional[Message]:
        return self._run("on_message", message, context)

    def on_iq(self, iq: Iq, context: EventContext) -> Optional[Iq]:
        return self._run("on_iq", iq, context)

    def on_sent(self, stanza: Any, context: EventContext) -> None:
        for handler in list(self._handlers):
            try:
                handler.on_sent(stanza, context)
            except Exception as e:
                self.on_error(e, context)

    def on_error(self, error: Exception, context: EventContext) -> None:
        """
        Execute all handlers' on_error methods.

        Args:
            error: Exception that occurred
            context: Event context
        """
        logger.debug(f"Handler error: {error!r}")
        for handler in self._handlers:
            try:
                handler.on_error(error, context)
            except Exception as e:
                logger.debug(f"Error in error handler {handler!r}: {e}")

    def __len__(self) -> int:
        """Return number of handlers in chain."""
        return len(self._handlers)

    def __iter__(self):
        return iter(list(self._handlers))
