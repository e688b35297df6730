"""
Peer registry.

Maps every full JID seen during a session to its effective presence state
and turns raw presence updates into online/offline transitions. Repeated
"still online" updates are absorbed silently, so listeners see at most one
online notification between two offline notifications for the same peer.
"""

from __future__ import annotations

from typing import Callable, Dict, Iterator, List, Optional

from ._utils import logger
from ._models._jid import Jid
from ._types import PeerCallback, PresenceState, PresenceType, presence_means_online


class PeerRegistry:
    """
    Effective presence state per peer.

    Args:
        on_online: Called with the JID when a peer comes online
        on_offline: Called with the JID when a peer goes offline
        version_probe: Fire-and-forget software version query, sent whenever
            a peer comes online
    """

    def __init__(
        self,
        on_online: Optional[PeerCallback] = None,
        on_offline: Optional[PeerCallback] = None,
        version_probe: Optional[Callable[[Jid], object]] = None,
    ) -> None:
        self._peers: Dict[Jid, PresenceState] = {}
        self.on_online = on_online
        self.on_offline = on_offline
        self.version_probe = version_probe

    def observe(self, jid: Jid, presence: Optional[PresenceType]) -> Optional[bool]:
        """
        Feed one raw presence update.

        Args:
            jid: Full JID of the peer
            presence: Raw presence, None when absent

        Returns:
            True if the peer went online, False if it went offline, None if
            the update did not change the effective state
        """
        previous = self._peers.get(jid, PresenceState.UNKNOWN)
        online = presence_means_online(presence)

        # "going offline" event
        if not online and previous is PresenceState.AVAILABLE:
            self._peers[jid] = PresenceState.UNAVAILABLE
            logger.debug(f"* Peer goes offline: {jid}")
            if self.on_offline:
                self.on_offline(jid)
            return False

        # "coming online" event
        if online and previous is not PresenceState.AVAILABLE:
            self._peers[jid] = PresenceState.AVAILABLE
            logger.debug(f"* Peer goes online: {jid}")
            if self.on_online:
                self.on_online(jid)
            if self.version_probe:
                self.version_probe(jid)
            return True

        self._peers[jid] = PresenceState.AVAILABLE if online else PresenceState.UNAVAILABLE
        return None

    def state(self, jid: Jid) -> PresenceState:
        return self._peers.get(jid, PresenceState.UNKNOWN)

    def is_online(self, jid: Jid) -> bool:
        return self._peers.get(jid) is PresenceState.AVAILABLE

    def peers(self) -> List[Jid]:
        """All tracked peers, online or not."""
        return list(self._peers)

    def online_peers(self) -> List[Jid]:
        return [jid for jid, state in self._peers.items() if state is PresenceState.AVAILABLE]

    def peers_for_bare(self, bare: str) -> List[Jid]:
        """Every tracked resource of one account."""
        return [jid for jid in self._peers if jid.bare == bare]

    def mark_all_offline(self) -> List[Jid]:
        """
        Synthesize an offline transition for every online peer.

        Returns:
            The peers reported offline
        """
        dropped = []
        for jid in self.peers():
            if self.observe(jid, PresenceType.UNAVAILABLE) is False:
                dropped.append(jid)
        return dropped

    def clear(self) -> None:
        """Forget every peer without raising notifications."""
        self._peers.clear()

    def __contains__(self, jid: object) -> bool:
        return jid in self._peers

    def __iter__(self) -> Iterator[Jid]:
        return iter(list(self._peers))

    def __len__(self) -> int:
        return len(self._peers)

    def __repr__(self) -> str:
        return f"<PeerRegistry({len(self.online_peers())}/{len(self._peers)} online)>"
