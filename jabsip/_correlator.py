"""
Request/reply correlation.

Replies on the presence network carry no call-site context, only the id of
the request they answer. Every outgoing request that expects a reply is
therefore registered here with a RequestContext tag; when the reply arrives
the tag is read back (exactly once) and the reply is decoded and routed to
the handler registered for that tag.

Decoding order:
  1. The tag decides what the payload should be (disco info, version, ack).
  2. Any payload shaped like a SipInfo map is decoded as a SipInfo push,
     whatever the tag, since peers may push SipInfo unsolicited.
  3. Everything else is Unsolicited and ignored.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable, Dict, List, Optional

from ._utils import logger
from ._models._sipinfo import SipInfo, decode_sipinfo, looks_like_sipinfo
from ._models._stanza import DiscoInfo, Iq, SoftwareVersion
from ._types import DecodeError, RequestContext

if TYPE_CHECKING:
    from ._models._jid import Jid
    from ._transports._base import BaseTransport


@dataclass(frozen=True)
class PendingRequest:
    """A request waiting for its reply."""

    id: str
    context: RequestContext
    to: Optional[Jid] = None
    sent_at: float = field(default_factory=time.monotonic)


# ============================================================================
# Reply Variants
# ============================================================================


@dataclass
class Reply:
    iq: Iq
    context: RequestContext

    @property
    def sender(self) -> Optional[Jid]:
        return self.iq.from_jid


@dataclass
class DiscoReply(Reply):
    info: DiscoInfo


@dataclass
class VersionReply(Reply):
    version: SoftwareVersion


@dataclass
class SipInfoPush(Reply):
    info: SipInfo


@dataclass
class Acknowledged(Reply):
    pass


@dataclass
class Unsolicited(Reply):
    pass


def decode_reply(iq: Iq, context: RequestContext) -> Reply:
    """Try to decode an IQ as one of the known message kinds."""
    payload = iq.payload

    if context is RequestContext.DISCO_FEATURE_PROBE and isinstance(payload, DiscoInfo):
        return DiscoReply(iq, context, payload)

    if context is RequestContext.SOFTWARE_VERSION_PROBE and isinstance(
        payload, SoftwareVersion
    ):
        return VersionReply(iq, context, payload)

    if context in (RequestContext.SENT_SIP_MESSAGE, RequestContext.SENT_DISCO_REPLY):
        return Acknowledged(iq, context)

    if looks_like_sipinfo(payload):
        try:
            return SipInfoPush(iq, context, decode_sipinfo(payload))
        except DecodeError as e:
            logger.debug(f"Dropping SipInfo from {iq.from_jid}: {e}")

    return Unsolicited(iq, context)


ReplyHandler = Callable[[Reply], None]


class RequestCorrelator:
    """
    Tags outgoing requests and routes their replies.

    Example:
        >>> correlator = RequestCorrelator(transport)
        >>> correlator.on(RequestContext.DISCO_FEATURE_PROBE, prober.on_disco_reply)
        >>> correlator.send(iq, RequestContext.DISCO_FEATURE_PROBE)
        >>> ...
        >>> correlator.dispatch(reply_iq)   # calls prober.on_disco_reply
    """

    def __init__(
        self,
        transport: BaseTransport,
        request_ttl: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize the correlator.

        Args:
            transport: Transport used to send requests
            request_ttl: Seconds after which an unanswered request is forgotten
            clock: Monotonic time source
        """
        self.transport = transport
        self.request_ttl = request_ttl
        self._clock = clock
        self._pending: Dict[str, PendingRequest] = {}
        self._handlers: Dict[RequestContext, ReplyHandler] = {}

    def on(self, context: RequestContext, handler: ReplyHandler) -> None:
        """Route replies tagged ``context`` to ``handler``."""
        self._handlers[context] = handler

    def send(self, iq: Iq, context: RequestContext) -> str:
        """
        Send a request and remember its purpose.

        Returns:
            The request id the reply will carry
        """
        self.expire()

        if not iq.id:
            iq.id = f"jabsip-{uuid.uuid4().hex[:12]}"

        self._pending[iq.id] = PendingRequest(
            id=iq.id, context=context, to=iq.to, sent_at=self._clock()
        )
        logger.debug(f"Sending {context.name} request {iq.id} to {iq.to}")
        self.transport.send(iq)
        return iq.id

    def match(self, iq: Iq) -> RequestContext:
        """
        Read back the tag of a reply.

        The pending entry is consumed, so a second reply with the same id
        is treated as unsolicited.
        """
        if not iq.is_reply or not iq.id:
            return RequestContext.NONE

        pending = self._pending.pop(iq.id, None)
        if pending is None:
            return RequestContext.NONE

        return pending.context

    def dispatch(self, iq: Iq) -> Reply:
        """Match, decode and route one incoming IQ."""
        context = self.match(iq)
        reply = decode_reply(iq, context)

        # SipInfo pushes take the untagged route whatever their tag
        route = RequestContext.NONE if isinstance(reply, SipInfoPush) else context
        handler = self._handlers.get(route)
        if handler:
            handler(reply)
        else:
            logger.debug(f"No handler for {route.name} reply from {iq.from_jid}")

        return reply

    def expire(self) -> int:
        """
        Forget requests older than ``request_ttl``.

        Returns:
            Number of requests removed
        """
        now = self._clock()
        to_remove = [
            request_id
            for request_id, pending in self._pending.items()
            if now - pending.sent_at > self.request_ttl
        ]

        for request_id in to_remove:
            del self._pending[request_id]

        if to_remove:
            logger.debug(f"Expired {len(to_remove)} unanswered requests")

        return len(to_remove)

    def clear(self) -> None:
        self._pending.clear()

    @property
    def pending(self) -> List[PendingRequest]:
        return list(self._pending.values())

    def __len__(self) -> int:
        return len(self._pending)

    def __repr__(self) -> str:
        return f"<RequestCorrelator({len(self._pending)} pending)>"
