"""
Subscription gate.

Answers incoming subscription (contact-add) requests. Known contacts are
approved on the spot; strangers go through the approval policy, with at most
one outstanding prompt per account.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Callable, Dict, List, Optional

from ._base import EventContext, StanzaHandler
from .._utils import logger
from .._approval import ApprovalPolicy, ApprovalTask
from .._events import ApprovalRequestEvent, EventName
from .._models._jid import Jid
from .._types import PresenceType

if TYPE_CHECKING:
    from .._events import Events
    from .._models._stanza import Presence, RosterItem
    from .._transports._base import BaseTransport

PROMPT = "Do you want to grant {jid} access to your presence?"


class SubscriptionGate(StanzaHandler):
    """
    Decides on incoming subscription requests.

    Args:
        transport: Receives the allow/deny answer
        policy: Asked about requesters we know nothing about
        events: Notification emitter (``approval_requested``)
        add_contact: Called with the bare JID of an approved requester
    """

    def __init__(
        self,
        transport: BaseTransport,
        policy: ApprovalPolicy,
        events: Events,
        add_contact: Optional[Callable[[Jid], object]] = None,
    ) -> None:
        self.transport = transport
        self.policy = policy
        self.events = events
        self.add_contact = add_contact
        self._pending: Dict[str, ApprovalTask] = {}

    def on_subscription(
        self, item: Optional[RosterItem], presence: Presence, context: EventContext
    ) -> Optional[Presence]:
        if presence.type is not PresenceType.SUBSCRIBE:
            logger.debug(f"Ignoring {presence.type.value} from {presence.from_jid}")
            return presence

        jid = presence.from_jid

        if item is not None and item.subscribed_to_us:
            logger.debug(f"{jid.bare} already receives our presence, approving again")
            self.transport.allow_subscription(jid, True)
            return None

        if item is not None and item.we_asked:
            logger.info(f"{jid.bare} already on the roster, approving subscription")
            self.transport.allow_subscription(jid, True)
            return None

        self.request(jid)
        return None

    def request(self, jid: Jid) -> ApprovalTask:
        """
        Register a pending approval for ``jid`` and ask the policy.

        A second request while the first is unresolved only rebinds the
        pending entry to the newer identity.
        """
        task = self._pending.get(jid.bare)
        if task is not None and not task.resolved:
            logger.debug(f"Approval for {jid.bare} already pending")
            task.jid = jid
            return task

        task = ApprovalTask(jid, PROMPT.format(jid=jid.bare), self._on_resolved)
        self._pending[jid.bare] = task

        self.events.emit(
            ApprovalRequestEvent(EventName.APPROVAL_REQUESTED, jid=jid, prompt=task.prompt)
        )
        self.policy.request(task)
        return task

    def resolve(self, jid: Jid, accepted: bool) -> bool:
        """Answer the pending request of ``jid``; False if there is none."""
        task = self._pending.get(jid.bare)
        if task is None:
            return False
        return task.resolve(accepted)

    def _on_resolved(self, task: ApprovalTask, accepted: bool) -> None:
        if self._pending.get(task.jid.bare) is not task:
            logger.debug(f"Dropping stale approval answer for {task.jid.bare}")
            return
        del self._pending[task.jid.bare]

        if accepted:
            logger.info(f"{task.jid.bare} accepted, adding to roster")
            if self.add_contact:
                self.add_contact(task.jid.bare_jid())
        else:
            logger.info(f"{task.jid.bare} declined")

        self.transport.allow_subscription(task.jid, accepted)

    def pending(self) -> List[Jid]:
        """Identities still waiting for an answer."""
        return [task.jid for task in self._pending.values()]

    def clear(self) -> None:
        """Forget outstanding requests; late answers become no-ops."""
        self._pending.clear()

    def __len__(self) -> int:
        return len(self._pending)
