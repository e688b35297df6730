"""
Transport-neutral stanza models.

Transports translate whatever their client library produces into these small
dataclasses, so the signaling core never depends on a particular XMPP stack.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from .._types import IqType, MessageType, PresenceType, Subscription
from ._jid import Jid


# ============================================================================
# Extensions
# ============================================================================


@dataclass(frozen=True)
class Capabilities:
    """Entity capabilities advertised in presence (XEP-0115)."""

    node: str
    ver: str = ""
    hash: str = "sha-1"

    @property
    def node_ver(self) -> str:
        """Node used for the disco#info query, ``node#ver``."""
        return f"{self.node}#{self.ver}"


@dataclass
class DiscoInfo:
    """Service discovery info query/result (XEP-0030)."""

    node: Optional[str] = None
    features: set[str] = field(default_factory=set)
    identities: list[tuple[str, str, str]] = field(default_factory=list)

    def has_feature(self, feature: str) -> bool:
        return feature in self.features


@dataclass
class SoftwareVersion:
    """Software version query/result (XEP-0092). Empty fields on a query."""

    name: str = ""
    version: str = ""
    os: str = ""

    def describe(self) -> str:
        return " ".join(part for part in (self.name, self.os, self.version) if part)


# ============================================================================
# Stanzas
# ============================================================================


@dataclass
class Presence:
    """Presence update or subscription request."""

    from_jid: Jid
    type: PresenceType = PresenceType.AVAILABLE
    caps: Optional[Capabilities] = None

    # Error condition when type is ERROR (or an error child was attached)
    error: Optional[str] = None

    status: str = ""
    priority: int = 0

    @property
    def is_subscription(self) -> bool:
        return self.type in (
            PresenceType.SUBSCRIBE,
            PresenceType.SUBSCRIBED,
            PresenceType.UNSUBSCRIBE,
            PresenceType.UNSUBSCRIBED,
        )

    @property
    def has_error(self) -> bool:
        return self.type is PresenceType.ERROR or self.error is not None


@dataclass
class Iq:
    """
    Info/query request or reply.

    ``payload`` is one of DiscoInfo, SoftwareVersion, or a plain map for
    application-level content such as the SipInfo wire map.
    """

    type: IqType
    to: Optional[Jid] = None
    from_jid: Optional[Jid] = None
    id: str = ""
    payload: Any = None
    error: Optional[str] = None

    @property
    def is_reply(self) -> bool:
        return self.type in (IqType.RESULT, IqType.ERROR)

    def make_result(self, payload: Any = None) -> Iq:
        """Build the ``result`` reply to this request."""
        return Iq(
            type=IqType.RESULT,
            to=self.from_jid,
            from_jid=self.to,
            id=self.id,
            payload=payload,
        )

    def make_error(self, condition: str = "bad-request") -> Iq:
        """Build the ``error`` reply to this request."""
        return Iq(
            type=IqType.ERROR,
            to=self.from_jid,
            from_jid=self.to,
            id=self.id,
            error=condition,
        )


@dataclass
class Message:
    """Chat message."""

    to: Optional[Jid] = None
    from_jid: Optional[Jid] = None
    body: str = ""
    type: MessageType = MessageType.CHAT
    error: Optional[str] = None


@dataclass
class RosterItem:
    """Contact list entry as seen when a subscription request arrives."""

    jid: Jid
    subscription: Subscription = Subscription.NONE

    # Pending outbound request ("subscribe") or empty
    ask: str = ""

    name: str = ""
    groups: list[str] = field(default_factory=list)

    @property
    def subscribed_to_us(self) -> bool:
        """Contact already receives our presence (from/both)."""
        return self.subscription in (Subscription.FROM, Subscription.BOTH)

    @property
    def we_asked(self) -> bool:
        """We already receive their presence or asked to."""
        return self.subscription is Subscription.TO or (
            self.subscription is Subscription.NONE and bool(self.ask)
        )
