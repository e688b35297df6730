"""
Signaling session.

A Session is one account on the presence network. It drives the connection
lifecycle, tracks which peers run the application and exchanges SipInfo
with them. Everything it knows is owned by the session and touched only
from the thread (or event loop) that delivers transport events.
"""

from __future__ import annotations

import asyncio
import random
from typing import Any, Callable, List, Optional

from ._utils import logger
from ._approval import ApprovalPolicy, ManualApproval
from ._config import USERNAME, AccountConfig, SettingsStore
from ._correlator import RequestCorrelator, Reply, SipInfoPush, VersionReply
from ._events import (
    ErrorEvent,
    EventName,
    Events,
    JidChangedEvent,
    PeerEvent,
    SoftwareVersionEvent,
    StateChangedEvent,
)
from ._fsm import ConnectionStateMachine
from ._handlers import (
    CapabilityProber,
    EventContext,
    HandlerChain,
    LoggingHandler,
    SignalingHandler,
    StanzaHandler,
    SubscriptionGate,
)
from ._models._jid import Jid
from ._models._sipinfo import SipInfo, encode_sipinfo
from ._models._stanza import Iq, Message, Presence, RosterItem, SoftwareVersion
from ._registry import PeerRegistry
from ._transports import _base as transport_events
from ._transports._base import BaseTransport
from ._types import (
    ConnectionState,
    DecodeError,
    DisconnectReason,
    ErrorKind,
    IqType,
    JabsipError,
    JidLike,
    RequestContext,
    Scheduler,
    SessionConfig,
    TransportConfig,
)


def default_scheduler(delay: float, callback: Callable[[], Any]) -> Any:
    """
    Run ``callback`` after ``delay`` seconds.

    The callback runs on the running event loop, the same loop that
    delivers transport events. A session driven from outside an event loop
    must be given its own scheduler.

    Raises:
        JabsipError: If no event loop is running
    """
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        raise JabsipError(
            "The default scheduler needs a running event loop, pass a scheduler"
        ) from None
    return loop.call_later(delay, callback)


class Session:
    """
    Signaling session for one presence-network account.

    Example:
        >>> class MyEvents(Events):
        ...     @event_handler(EventName.PEER_ONLINE)
        ...     def on_peer_online(self, event):
        ...         session.send_msg(event.jid, my_sipinfo)
        ...
        >>> session = Session("jabber-1", XmppTransport(), settings)
        >>> session.events = MyEvents()
        >>> session.connect()
    """

    friendly_name = "Jabber"

    def __init__(
        self,
        plugin_id: str,
        transport: BaseTransport,
        settings: SettingsStore,
        approval: Optional[ApprovalPolicy] = None,
        config: Optional[SessionConfig] = None,
        scheduler: Optional[Scheduler] = None,
        events: Optional[Events] = None,
    ) -> None:
        """
        Initialize the session.

        Args:
            plugin_id: Namespace of this account in ``settings``
            transport: Presence network transport (not yet connected)
            settings: Account settings store
            approval: Policy for subscription requests from strangers
                (default: leave them pending for the application)
            config: Protocol constants and policy knobs
            scheduler: ``scheduler(delay, callback) -> handle`` used for the
                deferred connect (default: the running event loop)
            events: Notification handlers
        """
        self.plugin_id = plugin_id
        self.settings = settings
        self.config = config or SessionConfig()

        self._transport = transport
        self._scheduler = scheduler or default_scheduler
        self._events = events or Events()

        # Deferred transport connect
        self._connect_handle: Any = None
        self._connect_started = False

        # Connect again once the current link is closed (settings changed)
        self._reconnect = False

        # Requested resource, servers may bind another one
        self.resource = f"{self.config.resource_prefix}{random.randint(0, 9999)}"

        # Core components
        self.fsm = ConnectionStateMachine()
        self.fsm.on_state_change(self._on_state_change)

        self.correlator = RequestCorrelator(transport, request_ttl=self.config.request_ttl)
        self.registry = PeerRegistry(
            on_online=self._on_peer_online,
            on_offline=self._on_peer_offline,
            version_probe=self.probe_version,
        )

        # Inbound stanza handlers
        self.prober = CapabilityProber(self.registry, self.correlator, self.config.feature_uri)
        self.signaling = SignalingHandler(self._events, transport, self.config.auto_reply)
        self.gate = SubscriptionGate(
            transport,
            approval or ManualApproval(),
            self._events,
            add_contact=self.add_contact,
        )
        self.trace = LoggingHandler()

        self.handlers = HandlerChain()
        for handler in (self.trace, self.prober, self.signaling, self.gate):
            self.handlers.add_handler(handler)

        # Reply routing
        self.correlator.on(RequestContext.DISCO_FEATURE_PROBE, self.prober.on_disco_reply)
        self.correlator.on(RequestContext.SOFTWARE_VERSION_PROBE, self._on_version_reply)
        self.correlator.on(RequestContext.SENT_SIP_MESSAGE, self._on_acknowledged)
        self.correlator.on(RequestContext.SENT_DISCO_REPLY, self._on_acknowledged)
        self.correlator.on(RequestContext.NONE, self._on_untagged)

        # Transport events
        transport.on(transport_events.CONNECTED, self._on_transport_connected)
        transport.on(transport_events.DISCONNECTED, self._on_transport_disconnected)
        transport.on(transport_events.PRESENCE, self._on_presence)
        transport.on(transport_events.SUBSCRIPTION, self._on_subscription)
        transport.on(transport_events.MESSAGE, self._on_message)
        transport.on(transport_events.IQ, self._on_iq)
        transport.on(transport_events.STANZA_SENT, self._on_stanza_sent)

        # Account in use for the current (or next) connection
        self._account = self._read_account()
        self.trace.console_trace = self._account.xml_console
        transport.configure(self._transport_config())

        logger.debug(f"Session {plugin_id} set up for {self._account.username or '<no account>'}")

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def events(self) -> Events:
        return self._events

    @events.setter
    def events(self, events_instance: Events) -> None:
        """
        Set the Events instance receiving notifications.

        Example:
            >>> session.events = MyEvents()
        """
        self._events = events_instance
        self.signaling.events = events_instance
        self.gate.events = events_instance

    @property
    def transport(self) -> BaseTransport:
        return self._transport

    @property
    def state(self) -> ConnectionState:
        return self.fsm.state

    @property
    def connection_state(self) -> ConnectionState:
        """Current connection state (UI adapter)."""
        return self.fsm.state

    @property
    def account_name(self) -> str:
        """Configured account, as stored in the settings."""
        return self.settings.value(f"{self.plugin_id}/{USERNAME}", "") or ""

    @property
    def account(self) -> AccountConfig:
        """Account used for the current (or next) connection."""
        return self._account

    @property
    def jid(self) -> Optional[Jid]:
        """Our own full JID, None while no account is configured."""
        if not self._account.username:
            return None
        return self._transport.jid

    def is_connected(self) -> bool:
        return self.fsm.is_connected()

    def peers(self) -> List[Jid]:
        return self.registry.peers()

    def online_peers(self) -> List[Jid]:
        return self.registry.online_peers()

    def add_handler(self, handler: StanzaHandler) -> None:
        """Append a custom handler to the inbound stanza chain."""
        self.handlers.add_handler(handler)

    def emit(self, event: Any) -> None:
        self._events.emit(event)

    # =========================================================================
    # Connection Lifecycle
    # =========================================================================

    def connect(self) -> bool:
        """
        Start connecting to the server.

        The transport connect runs after ``config.connect_delay`` seconds;
        the session is CONNECTING until the transport reports back.

        Returns:
            True if connected or connecting, False if the session cannot
            connect right now
        """
        if self.state is ConnectionState.CONNECTED:
            logger.debug("Already connected to server, not connecting again...")
            return True

        if self.state is ConnectionState.CONNECTING:
            logger.debug("Connect already in progress")
            return True

        if self.state is ConnectionState.DISCONNECTING or self._transport.is_connected():
            logger.warning("Still disconnecting, try again once disconnected")
            return False

        if not self._account.username:
            logger.warning(f"No account configured for {self.plugin_id}")
            return False

        logger.info(f"Connecting to the XMPP server as {self._account.username}...")
        self._connect_started = False
        self._connect_handle = self._scheduler(self.config.connect_delay, self._start_connect)
        self.fsm.transition_to(ConnectionState.CONNECTING)
        return True

    def _start_connect(self) -> None:
        self._connect_handle = None
        if self.state is not ConnectionState.CONNECTING:
            return

        self._connect_started = True
        try:
            self._transport.connect()
        except Exception as e:
            logger.error(f"Transport connect failed: {e}")
            self.emit(ErrorEvent(EventName.ERROR, kind=ErrorKind.CONNECTION_ERROR, message=str(e)))
            if self.state is ConnectionState.CONNECTING:
                self.fsm.transition_to(ConnectionState.DISCONNECTED)
            self._teardown()

    def _cancel_scheduled_connect(self) -> None:
        if self._connect_handle is not None:
            self._connect_handle.cancel()
            self._connect_handle = None

    def disconnect(self) -> None:
        """
        Leave the server.

        From CONNECTED the transport is asked to close and the session waits
        in DISCONNECTING for the transport to report back. In any other state
        the session goes straight to DISCONNECTED.
        """
        self._reconnect = False
        self._cancel_scheduled_connect()

        if self.state is ConnectionState.CONNECTED and self._transport.is_connected():
            self.registry.clear()
            self._transport.disconnect_from_server()
            self.fsm.transition_to(ConnectionState.DISCONNECTING)
            return

        if self.state is ConnectionState.DISCONNECTING and self._transport.is_connected():
            return

        # Connecting (maybe half-way) or the link is already gone
        if self._connect_started or self._transport.is_connected():
            self._connect_started = False
            self._transport.disconnect_from_server()

        if self.state is not ConnectionState.DISCONNECTED:
            self.fsm.transition_to(ConnectionState.DISCONNECTED)
            self._teardown()

    def _teardown(self) -> None:
        self.registry.clear()
        self.correlator.clear()
        self.gate.clear()

    def _on_state_change(self, old_state: ConnectionState, new_state: ConnectionState) -> None:
        logger.debug(f"State {old_state.name} -> {new_state.name}")
        self.emit(
            StateChangedEvent(
                EventName.CONNECTION_STATE_CHANGED, state=new_state, previous=old_state
            )
        )

    def _on_transport_connected(self) -> None:
        self._connect_started = False

        if self.state is ConnectionState.CONNECTED:
            logger.debug("Transport reported connected twice")
            return

        if self.state is not ConnectionState.CONNECTING:
            logger.warning(f"Transport connected while {self.state.name}, dropping link")
            self._transport.disconnect_from_server()
            return

        # Servers using resource binding may have changed our resource
        bound = self._transport.jid
        if bound.resource and bound.resource != self.resource:
            self.resource = bound.resource
            self.emit(JidChangedEvent(EventName.JID_CHANGED, jid=bound))

        logger.info(f"Connected as {bound}")

        self._transport.set_presence(
            self.config.presence_show,
            self.config.presence_status,
            self.config.presence_priority,
        )
        self._transport.set_ping_interval(self.config.ping_interval)
        self._transport.load_roster()

        self.fsm.transition_to(ConnectionState.CONNECTED)

    def _on_transport_disconnected(self, reason: DisconnectReason) -> None:
        if self.state is ConnectionState.CONNECTING and not self._connect_started:
            # Late report for a link abandoned before this attempt began
            logger.debug(f"Ignoring stale disconnect ({reason.message}), connect pending")
            return

        self._connect_started = False
        self._cancel_scheduled_connect()
        logger.info(f"Disconnected from server: {reason.message}")

        if reason is DisconnectReason.AUTHORIZATION_ERROR:
            self.emit(ErrorEvent(EventName.ERROR, kind=ErrorKind.AUTH_ERROR, message=reason.message))
        elif reason is not DisconnectReason.USER:
            self.emit(
                ErrorEvent(EventName.ERROR, kind=ErrorKind.CONNECTION_ERROR, message=reason.message)
            )

        if self.state is not ConnectionState.DISCONNECTED:
            self.fsm.transition_to(ConnectionState.DISCONNECTED)

        self.registry.mark_all_offline()
        self._teardown()

        if self._reconnect:
            self._reconnect = False
            self.connect()

    # =========================================================================
    # Settings
    # =========================================================================

    def _read_account(self) -> AccountConfig:
        account = self.settings.load_account(self.plugin_id)

        # A username without a domain gets the default one, persisted
        if account.username and "@" not in account.username:
            account.username += self.config.default_suffix
            self.settings.set_value(f"{self.plugin_id}/{USERNAME}", account.username)
            logger.info(f"Account name completed to {account.username}")

        return account

    def _transport_config(self) -> TransportConfig:
        account = self._account
        server: str = account.server
        port: Optional[int] = account.port

        if not server:
            # Let the transport look the server up from the domain
            port = None
            try:
                server = Jid.parse(account.username).domain if account.username else ""
            except ValueError:
                logger.warning(f"Invalid account name {account.username!r}")
                server = ""

        return TransportConfig(
            jid=account.username,
            password=account.password,
            server=server,
            port=port,
            resource=self.resource,
            xml_console=account.xml_console,
        )

    def check_settings(self) -> bool:
        """
        Pick up changed account settings.

        When username, password, server or port changed the session
        disconnects, reconfigures the transport and connects again.

        Returns:
            True if the session reconnected
        """
        account = self._read_account()
        previous = self._account

        self.trace.console_trace = account.xml_console

        changed = (
            account.username != previous.username
            or account.password != previous.password
            or account.server != previous.server
            or account.port != previous.port
        )
        self._account = account
        if not changed:
            return False

        logger.info(f"Account settings of {self.plugin_id} changed, reconnecting...")
        self.disconnect()
        self._transport.configure(self._transport_config())
        if self.state is ConnectionState.DISCONNECTED:
            self.connect()
        else:
            self._reconnect = True
        return True

    def save_config(self, account: AccountConfig) -> bool:
        """Store new account settings and apply them."""
        self.settings.save_account(self.plugin_id, account)
        return self.check_settings()

    def delete(self) -> None:
        """Disconnect and remove this account's settings."""
        self.disconnect()
        self.settings.remove(self.plugin_id)

    def account_exists(self, username: str, server: str = "") -> bool:
        """
        Check whether another session is configured with this account.

        ``username`` may be a full account name or just its local part.
        """
        username = username.strip()
        if not username:
            return False

        for plugin_id in self.settings.plugin_ids():
            if plugin_id == self.plugin_id:
                continue
            saved = self.settings.value(f"{plugin_id}/{USERNAME}", "") or ""
            saved_server = self.settings.value(f"{plugin_id}/server", "") or ""
            if (saved == username or username in saved.split("@")) and saved_server == server:
                return True

        return False

    # =========================================================================
    # Operations
    # =========================================================================

    def send_msg(self, to: JidLike, msg: Any) -> Optional[str]:
        """
        Send SipInfo to a peer.

        Args:
            to: Peer full JID
            msg: SipInfo, or its JSON text form

        Returns:
            The request id, or None if nothing was sent
        """
        if isinstance(msg, SipInfo):
            info = msg
        else:
            try:
                info = SipInfo.from_json(msg)
            except DecodeError as e:
                logger.warning(f"Invalid SipInfo for {to}: {e}")
                return None

        try:
            payload = encode_sipinfo(info)
        except DecodeError as e:
            logger.warning(f"Not sending to {to}: {e}")
            return None

        if not self._transport.is_connected():
            logger.debug(f"Not connected, dropping SipInfo for {to}")
            return None

        logger.debug(f"Sending {info} to {to}")
        iq = Iq(type=IqType.SET, to=Jid.parse(to), payload=payload)
        return self.correlator.send(iq, RequestContext.SENT_SIP_MESSAGE)

    def broadcast_msg(self, msg: Any) -> List[str]:
        """Send SipInfo to every online peer."""
        ids = []
        for jid in self.registry.online_peers():
            request_id = self.send_msg(jid, msg)
            if request_id:
                ids.append(request_id)
        return ids

    def add_contact(self, jid: JidLike, message: str = "") -> Jid:
        """
        Add an account to the roster (in the application's group) and ask
        for its presence.
        """
        text = str(jid)
        if "@" not in text:
            text += self.config.default_suffix

        contact = Jid.parse(text).bare_jid()
        logger.info(f"Adding {contact} to the roster")
        self._transport.subscribe(
            contact, message=message, name=contact.bare, groups=[self.config.roster_group]
        )
        return contact

    def probe_version(self, jid: Jid) -> str:
        """Ask a peer for its software version."""
        iq = Iq(type=IqType.GET, to=jid, payload=SoftwareVersion())
        return self.correlator.send(iq, RequestContext.SOFTWARE_VERSION_PROBE)

    def resolve_approval(self, jid: JidLike, accepted: bool) -> bool:
        """Answer a pending subscription request."""
        return self.gate.resolve(Jid.parse(jid), accepted)

    def pending_approvals(self) -> List[Jid]:
        return self.gate.pending()

    # =========================================================================
    # Inbound
    # =========================================================================

    def _context(self) -> EventContext:
        return EventContext(session=self, own_jid=self.jid)

    def _accepting(self) -> bool:
        return self.state is ConnectionState.CONNECTED

    def _on_presence(self, presence: Presence) -> None:
        if not self._accepting():
            return
        if presence.from_jid == self.jid:
            return
        self.handlers.on_presence(presence, self._context())

    def _on_subscription(self, item: Optional[RosterItem], presence: Presence) -> None:
        if not self._accepting():
            return
        self.handlers.on_subscription(item, presence, self._context())

    def _on_message(self, message: Message) -> None:
        if not self._accepting():
            return
        self.handlers.on_message(message, self._context())

    def _on_iq(self, iq: Iq) -> None:
        if not self._accepting():
            return
        if self.handlers.on_iq(iq, self._context()) is None:
            return
        self.correlator.dispatch(iq)

    def _on_stanza_sent(self, stanza: Any) -> None:
        self.handlers.on_sent(stanza, self._context())

    def _on_peer_online(self, jid: Jid) -> None:
        self.emit(PeerEvent(EventName.PEER_ONLINE, jid=jid))

    def _on_peer_offline(self, jid: Jid) -> None:
        self.emit(PeerEvent(EventName.PEER_OFFLINE, jid=jid))

    # Reply handlers

    def _on_version_reply(self, reply: Reply) -> None:
        if not isinstance(reply, VersionReply) or reply.sender is None:
            logger.debug(f"No software version from {reply.sender}")
            return

        version = reply.version.describe()
        logger.debug(f"Software version of {reply.sender}: {version}")
        self.emit(
            SoftwareVersionEvent(
                EventName.SOFTWARE_VERSION_RECEIVED, jid=reply.sender, version=version
            )
        )

    def _on_acknowledged(self, reply: Reply) -> None:
        logger.debug(f"{reply.context.name} {reply.iq.id} answered by {reply.sender}")

    def _on_untagged(self, reply: Reply) -> None:
        if isinstance(reply, SipInfoPush):
            self.signaling.on_sip_push(reply)
            return
        if reply.iq.type in (IqType.GET, IqType.SET):
            # Malformed SipInfo push, the sender is waiting for an answer
            self.signaling.reject(reply.iq)
            return
        logger.debug(f"Ignoring unsolicited IQ {reply.iq.id} from {reply.sender}")

    def __repr__(self) -> str:
        return f"<Session({self.plugin_id}, {self._account.username}, {self.state.name})>"
