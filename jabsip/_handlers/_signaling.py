"""
Signaling handler.

Surfaces SipInfo received from peers, whether pushed inside an IQ or sent
as a plain chat message body, and answers humans who chat with the
automatic presence.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from ._base import EventContext, StanzaHandler
from .._utils import logger
from .._events import EventName, MessageEvent, SipInfoEvent
from .._models._sipinfo import SipInfo
from .._models._stanza import Iq, Message
from .._types import DecodeError, IqType, MessageType

if TYPE_CHECKING:
    from .._correlator import SipInfoPush
    from .._events import Events
    from .._transports._base import BaseTransport


class SignalingHandler(StanzaHandler):
    """
    Delivers SipInfo to the application.

    Args:
        events: Notification emitter
        transport: Used for IQ acknowledgements and chat auto-replies
        auto_reply: Text sent back to non-signaling chat messages, None to
            stay silent
    """

    def __init__(
        self,
        events: Events,
        transport: BaseTransport,
        auto_reply: Optional[str] = None,
    ) -> None:
        self.events = events
        self.transport = transport
        self.auto_reply = auto_reply

    def on_message(self, message: Message, context: EventContext) -> Optional[Message]:
        sender = message.from_jid
        body = message.body

        if not body or sender is None:
            return None

        if message.type is MessageType.ERROR:
            logger.debug(f"Error message from {sender}, not answering ({message.error})")
            return None

        info = self._decode_body(body)
        if info is None:
            self._reply(message)
            self.events.emit(
                MessageEvent(EventName.MESSAGE_RECEIVED, sender=sender, body=body)
            )
            return message

        logger.debug(f"SipInfo from {sender} via chat: {info}")
        self.events.emit(SipInfoEvent(EventName.SIP_INFO_RECEIVED, sender=sender, info=info))
        return message

    def _decode_body(self, body: str) -> Optional[SipInfo]:
        try:
            info = SipInfo.from_json(body)
        except DecodeError:
            return None
        return info if info.is_valid else None

    def _reply(self, message: Message) -> None:
        if not self.auto_reply:
            return
        self.transport.send(
            Message(
                to=message.from_jid,
                body=self.auto_reply,
                type=MessageType.ERROR,
            )
        )

    def on_sip_push(self, push: SipInfoPush) -> None:
        """Handle a SipInfo a peer pushed to us inside an IQ."""
        iq = push.iq
        if iq.type is IqType.SET:
            self.transport.send(iq.make_result())

        if push.sender is None:
            return

        logger.debug(f"SipInfo from {push.sender}: {push.info}")
        self.events.emit(
            SipInfoEvent(EventName.SIP_INFO_RECEIVED, sender=push.sender, info=push.info)
        )

    def reject(self, iq: Iq, condition: str = "bad-request") -> None:
        """Answer a request we cannot use with an IQ error."""
        if iq.type not in (IqType.GET, IqType.SET):
            return
        logger.debug(f"Rejecting IQ {iq.id} from {iq.from_jid}: {condition}")
        self.transport.send(iq.make_error(condition))
