"""
Capability prober.

Decides, from presence updates, which peers run this application. A peer
counts as online only after its disco#info features (queried through the
capability node it advertises) were seen to include our feature URI.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from ._base import EventContext, StanzaHandler
from .._utils import logger
from .._models._stanza import DiscoInfo, Iq, Presence
from .._types import IqType, PresenceType, RequestContext

if TYPE_CHECKING:
    from .._correlator import Reply, RequestCorrelator
    from .._registry import PeerRegistry


class CapabilityProber(StanzaHandler):
    """
    Turns capability-bearing presence into feature probes.

    Args:
        registry: Peer registry updated with probe outcomes
        correlator: Used to tag the probes so replies find their way back
        feature_uri: Feature a peer must advertise to count as ours
    """

    def __init__(
        self,
        registry: PeerRegistry,
        correlator: RequestCorrelator,
        feature_uri: str,
    ) -> None:
        self.registry = registry
        self.correlator = correlator
        self.feature_uri = feature_uri

    def on_presence(self, presence: Presence, context: EventContext) -> Optional[Presence]:
        jid = presence.from_jid

        if presence.has_error:
            logger.debug(f"Presence error from {jid}: {presence.error}")
            return presence

        if presence.type is PresenceType.UNAVAILABLE:
            self.registry.observe(jid, PresenceType.UNAVAILABLE)
            return presence

        if presence.caps is not None and presence.caps.node:
            self.probe(presence)
            return presence

        # Capability advertisement dropped: not one of ours any more
        self.registry.observe(jid, PresenceType.UNAVAILABLE)
        return presence

    def probe(self, presence: Presence) -> str:
        """Ask the sender which features its capability node supports."""
        node = presence.caps.node_ver
        logger.debug(f"Probing {presence.from_jid} features ({node})")
        iq = Iq(
            type=IqType.GET,
            to=presence.from_jid,
            payload=DiscoInfo(node=node),
        )
        return self.correlator.send(iq, RequestContext.DISCO_FEATURE_PROBE)

    def on_disco_reply(self, reply: Reply) -> None:
        """Handle a reply tagged DISCO_FEATURE_PROBE."""
        info = getattr(reply, "info", None)
        if not isinstance(info, DiscoInfo) or reply.sender is None:
            logger.debug(f"Feature probe to {reply.sender} failed: {reply.iq.error}")
            return

        if info.has_feature(self.feature_uri):
            self.registry.observe(reply.sender, PresenceType.AVAILABLE)
        else:
            logger.debug(f"{reply.sender} does not run {self.feature_uri}")
