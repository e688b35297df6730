"""
Utility handlers.

This module provides the stanza trace used as the account's XML console.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Optional

from ._base import EventContext, StanzaHandler
from .._utils import console, logger

if TYPE_CHECKING:
    from .._models._stanza import Iq, Message, Presence, RosterItem


class LoggingHandler(StanzaHandler):
    """
    Handler that traces stanzas.

    Every stanza is logged at debug level. With ``console_trace`` enabled
    (the account's xml_console setting) the full stanza is also printed to
    the rich console.
    """

    def __init__(self, console_trace: bool = False, custom_logger=None):
        """
        Initialize logging handler.

        Args:
            console_trace: Print full stanzas to the console
            custom_logger: Optional custom logger instance
        """
        self.console_trace = console_trace
        self.logger = custom_logger or logger

    def _trace(self, banner: str, style: str, stanza: Any) -> None:
        if not self.console_trace:
            return
        console.print(f"\n[bold {style}]{banner}:[/bold {style}]")
        console.print(stanza)
        console.print("=" * 80)

    def _received(self, kind: str, sender: Any, stanza: Any) -> None:
        self.logger.debug(f"<<< {kind} from {sender}")
        self._trace(f"<<< RECEIVED {kind.upper()} from {sender}", "green", stanza)

    def on_presence(self, presence: Presence, context: EventContext) -> Optional[Presence]:
        self._received("presence", presence.from_jid, presence)
        return presence

    def on_subscription(
        self, item: Optional[RosterItem], presence: Presence, context: EventContext
    ) -> Optional[Presence]:
        self._received(f"{presence.type.value}", presence.from_jid, presence)
        return presence

    def on_message(self, message: Message, context: EventContext) -> Optional[Message]:
        self._received("message", message.from_jid, message)
        return message

    def on_iq(self, iq: Iq, context: EventContext) -> Optional[Iq]:
        self._received(f"iq {iq.type.value}", iq.from_jid, iq)
        return iq

    def on_sent(self, stanza: Any, context: EventContext) -> None:
        to = getattr(stanza, "to", None)
        kind = type(stanza).__name__.lower()
        self.logger.debug(f">>> {kind} to {to}")
        self._trace(f">>> SENDING {kind.upper()} to {to}", "cyan", stanza)

    def on_error(self, error: Exception, context: EventContext) -> None:
        """Log error."""
        self.logger.error(f"!!! Error: {error}")
