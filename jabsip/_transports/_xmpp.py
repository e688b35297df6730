"""
XMPP transport implementation backed by slixmpp.

The transport owns one ``slixmpp.ClientXMPP`` per configuration and converts
between slixmpp stanzas and the neutral models in ``jabsip._models``. It must
be driven from the asyncio event loop slixmpp runs on.
"""

from __future__ import annotations

import asyncio
from typing import Any, List, Optional

from slixmpp import ClientXMPP
from slixmpp.exceptions import IqError, IqTimeout
from slixmpp.stanza import Iq as SlixIq
from slixmpp.xmlstream import ElementBase, register_stanza_plugin
from slixmpp.xmlstream.handler import Callback
from slixmpp.xmlstream.matcher import StanzaPath

from .._utils import SIP_NAMESPACE, logger
from .._models._jid import Jid
from .._models._stanza import (
    Capabilities,
    DiscoInfo,
    Iq,
    Message,
    Presence,
    RosterItem,
    SoftwareVersion,
)
from .._types import (
    DisconnectReason,
    IqType,
    MessageType,
    PresenceType,
    SessionConfig,
    Subscription,
    TransportConfig,
    TransportError,
)
from ._base import (
    CONNECTED,
    DISCONNECTED,
    IQ,
    MESSAGE,
    PRESENCE,
    STANZA_SENT,
    SUBSCRIPTION,
    BaseTransport,
)

CAPS_NS = "http://jabber.org/protocol/caps"
DISCO_INFO_NS = "http://jabber.org/protocol/disco#info"
VERSION_NS = "jabber:iq:version"

# Stream error conditions with a dedicated disconnect reason
STREAM_ERRORS = {
    "conflict": DisconnectReason.CONFLICT,
    "host-unknown": DisconnectReason.HOST_UNKNOWN,
    "internal-server-error": DisconnectReason.INTERNAL_SERVER_ERROR,
    "system-shutdown": DisconnectReason.SYSTEM_SHUTDOWN,
    "item-not-found": DisconnectReason.ITEM_NOT_FOUND,
}


class SipStanza(ElementBase):
    """
    SipInfo payload carried inside an IQ set::

        <iq type="set"><sip xmlns="urn:jabsip:sip:0">
          <visible>true</visible><ip>..</ip><port>..</port>
          <uniqname>..</uniqname><key>..</key>
        </sip></iq>
    """

    name = "sip"
    namespace = SIP_NAMESPACE
    plugin_attrib = "jabsip_sip"
    interfaces = {"visible", "ip", "port", "uniqname", "key"}
    sub_interfaces = interfaces


register_stanza_plugin(SlixIq, SipStanza)


class XmppTransport(BaseTransport):
    """
    slixmpp-backed transport.

    Example:
        >>> transport = XmppTransport(TransportConfig(jid="alice@example.org",
        ...                                           password="secret"))
        >>> transport.on("connected", lambda: print("up"))
        >>> transport.connect()
    """

    def __init__(
        self,
        config: Optional[TransportConfig] = None,
        session_config: Optional[SessionConfig] = None,
    ) -> None:
        super().__init__(config)
        self.session_config = session_config or SessionConfig()
        self._client: Optional[ClientXMPP] = None
        self._dirty = True

        # Set when we asked for the disconnect, or learned why it happened
        self._user_disconnect = False
        self._reason: Optional[DisconnectReason] = None
        self._connected = False

    def configure(self, config: TransportConfig) -> None:
        super().configure(config)
        self._dirty = True

    # =========================================================================
    # Client Setup
    # =========================================================================

    def _build_client(self) -> ClientXMPP:
        jid = self.config.jid
        if self.config.resource:
            jid = f"{Jid.parse(jid).bare}/{self.config.resource}"

        client = ClientXMPP(jid, self.config.password)
        cfg = self.session_config

        client.register_plugin("xep_0030")
        client.register_plugin(
            "xep_0092",
            pconfig={
                "software_name": cfg.software_name,
                "version": cfg.software_version,
                "os": cfg.software_os or None,
            },
        )
        client.register_plugin("xep_0115", pconfig={"caps_node": cfg.caps_node})
        client.register_plugin("xep_0199")

        client.plugin["xep_0030"].add_feature(cfg.feature_uri)
        client.plugin["xep_0030"].add_identity(
            category="client", itype="pc", name=cfg.software_name
        )

        # Subscription requests are answered by the session, not slixmpp
        client.roster.auto_authorize = False
        client.roster.auto_subscribe = False

        client.add_event_handler("session_start", self._on_session_start)
        client.add_event_handler("disconnected", self._on_disconnected)
        client.add_event_handler("failed_all_auth", self._on_failed_auth)
        client.add_event_handler("connection_failed", self._on_connection_failed)
        client.add_event_handler("stream_error", self._on_stream_error)
        client.add_event_handler("presence", self._on_presence)
        client.add_event_handler("message", self._on_message)
        client.register_handler(
            Callback(
                "jabsip sip push",
                StanzaPath("iq@type=set/jabsip_sip"),
                self._on_sip_iq,
            )
        )

        return client

    @property
    def client(self) -> ClientXMPP:
        if self._client is None or self._dirty:
            self._client = self._build_client()
            self._dirty = False
        return self._client

    # =========================================================================
    # Connection
    # =========================================================================

    def connect(self) -> None:
        self._user_disconnect = False
        self._reason = None
        client = self.client

        server = self.config.server
        if not server or self.config.port is None:
            logger.debug(f"Connecting {self.config.jid} via DNS lookup")
            client.connect()
            return

        port = self.config.port
        logger.debug(f"Connecting {self.config.jid} via {server}:{port}")
        client.connect(host=server, port=port)

    def disconnect_from_server(self) -> None:
        self._user_disconnect = True
        if self._client is not None:
            self._client.disconnect()

    def is_connected(self) -> bool:
        return self._connected

    @property
    def jid(self) -> Jid:
        if self._client is not None and self._client.boundjid.domain:
            return Jid.parse(self._client.boundjid.full)
        return Jid.parse(self.config.jid).with_resource(self.config.resource)

    # =========================================================================
    # Outgoing Stanzas
    # =========================================================================

    def send(self, stanza: Any) -> None:
        if isinstance(stanza, Iq):
            self._send_iq(stanza)
        elif isinstance(stanza, Message):
            if stanza.to is None:
                raise TransportError("Message has no recipient")
            self.client.send_message(
                mto=stanza.to.full, mbody=stanza.body, mtype=stanza.type.value
            )
        else:
            raise TransportError(f"Cannot send {type(stanza).__name__}")

        self._fire(STANZA_SENT, stanza)

    def _send_iq(self, iq: Iq) -> None:
        client = self.client
        slix_iq = client.Iq()
        slix_iq["type"] = iq.type.value
        if iq.to is not None:
            slix_iq["to"] = iq.to.full
        if iq.id:
            slix_iq["id"] = iq.id

        payload = iq.payload
        if isinstance(payload, DiscoInfo):
            disco = slix_iq["disco_info"]
            if payload.node:
                disco["node"] = payload.node
            for feature in payload.features:
                disco.add_feature(feature)
        elif isinstance(payload, SoftwareVersion):
            version = slix_iq["software_version"]
            for key in ("name", "version", "os"):
                if getattr(payload, key):
                    version[key] = getattr(payload, key)
        elif isinstance(payload, dict):
            sip = slix_iq["jabsip_sip"]
            for key, value in payload.items():
                if isinstance(value, bool):
                    value = "true" if value else "false"
                sip[key] = str(value)

        if iq.type is IqType.ERROR and iq.error:
            slix_iq["error"]["type"] = "modify"
            slix_iq["error"]["condition"] = iq.error

        if iq.type not in (IqType.GET, IqType.SET):
            slix_iq.send()
            return

        future = slix_iq.send()
        future.add_done_callback(self._on_iq_reply)

    def set_presence(self, show: str, status: str, priority: int) -> None:
        self.client.send_presence(pshow=show, pstatus=status, ppriority=priority)

    def set_ping_interval(self, seconds: float) -> None:
        self.client.plugin["xep_0199"].enable_keepalive(interval=seconds)

    # =========================================================================
    # Contact List
    # =========================================================================

    def load_roster(self) -> None:
        task = asyncio.ensure_future(self.client.get_roster())
        task.add_done_callback(self._on_roster_task_done)

    def roster_item(self, jid: Jid) -> Optional[RosterItem]:
        roster = self.client.client_roster
        if not roster.has_jid(jid.bare):
            return None

        item = roster[jid.bare]
        try:
            subscription = Subscription(item["subscription"] or "none")
        except ValueError:
            subscription = Subscription.NONE

        return RosterItem(
            jid=jid.bare_jid(),
            subscription=subscription,
            ask="subscribe" if item["pending_out"] else "",
            name=item["name"] or "",
            groups=list(item["groups"]),
        )

    def subscribe(
        self, jid: Jid, message: str = "", name: str = "", groups: Optional[List[str]] = None
    ) -> None:
        client = self.client
        task = asyncio.ensure_future(
            client.update_roster(jid.bare, name=name or None, groups=groups or [])
        )
        task.add_done_callback(self._on_roster_task_done)
        client.send_presence(pto=jid.bare, ptype="subscribe", pstatus=message or None)

    def allow_subscription(self, jid: Jid, allow: bool) -> None:
        ptype = "subscribed" if allow else "unsubscribed"
        self.client.send_presence(pto=jid.bare, ptype=ptype)

    # =========================================================================
    # slixmpp Event Handlers
    # =========================================================================

    def _on_session_start(self, event: Any) -> None:
        logger.debug(f"Session started as {self.client.boundjid.full}")
        self._connected = True
        self._fire(CONNECTED)

    def _on_disconnected(self, event: Any) -> None:
        if self._user_disconnect:
            reason = DisconnectReason.USER
        else:
            reason = self._reason or DisconnectReason.UNKNOWN
        self._connected = False
        self._user_disconnect = False
        self._reason = None
        self._fire(DISCONNECTED, reason)

    def _on_failed_auth(self, event: Any) -> None:
        self._reason = DisconnectReason.AUTHORIZATION_ERROR

    def _on_connection_failed(self, error: Any) -> None:
        logger.debug(f"Connection failed: {error}")
        # slixmpp keeps retrying on its own, we report once and stop it
        cancel = getattr(self.client, "cancel_connection_attempt", None)
        if cancel is not None:
            cancel()
        self._connected = False
        self._fire(DISCONNECTED, DisconnectReason.REMOTE_CONNECTION_FAILED)

    def _on_stream_error(self, error: Any) -> None:
        condition = error["condition"]
        self._reason = STREAM_ERRORS.get(condition, DisconnectReason.REMOTE_STREAM_ERROR)
        logger.debug(f"Stream error: {condition}")

    def _on_presence(self, stanza: Any) -> None:
        presence = self._to_presence(stanza)
        if presence is None:
            return

        if presence.is_subscription:
            self._fire(SUBSCRIPTION, self.roster_item(presence.from_jid), presence)
        else:
            self._fire(PRESENCE, presence)

    def _on_message(self, stanza: Any) -> None:
        try:
            mtype = MessageType(stanza["type"] or "normal")
        except ValueError:
            mtype = MessageType.NORMAL

        error = stanza["error"]["condition"] if mtype is MessageType.ERROR else None
        self._fire(
            MESSAGE,
            Message(
                to=Jid.parse(stanza["to"].full) if stanza["to"].domain else None,
                from_jid=Jid.parse(stanza["from"].full) if stanza["from"].domain else None,
                body=stanza["body"],
                type=mtype,
                error=error or None,
            ),
        )

    def _on_sip_iq(self, stanza: Any) -> None:
        self._fire(IQ, self._to_iq(stanza))

    def _on_iq_reply(self, future: asyncio.Future) -> None:
        if future.cancelled():
            return
        try:
            stanza = future.result()
        except IqError as e:
            stanza = e.iq
        except IqTimeout as e:
            logger.debug(f"IQ {e.iq['id']} timed out")
            return
        self._fire(IQ, self._to_iq(stanza))

    def _on_roster_task_done(self, task: asyncio.Future) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.warning(f"Roster request failed: {error!r}")

    # =========================================================================
    # Conversion
    # =========================================================================

    def _to_presence(self, stanza: Any) -> Optional[Presence]:
        sender = stanza["from"]
        if not sender.domain:
            return None

        caps = None
        c = stanza.xml.find(f"{{{CAPS_NS}}}c")
        if c is not None and c.get("node"):
            caps = Capabilities(
                node=c.get("node"), ver=c.get("ver", ""), hash=c.get("hash", "sha-1")
            )

        ptype = PresenceType.parse(stanza["type"])
        error = stanza["error"]["condition"] if ptype is PresenceType.ERROR else None

        try:
            priority = int(stanza["priority"] or 0)
        except ValueError:
            priority = 0

        return Presence(
            from_jid=Jid.parse(sender.full),
            type=ptype,
            caps=caps,
            error=error or None,
            status=stanza["status"] or "",
            priority=priority,
        )

    def _to_iq(self, stanza: Any) -> Iq:
        payload: Any = None
        if stanza.xml.find(f"{{{DISCO_INFO_NS}}}query") is not None:
            disco = stanza["disco_info"]
            payload = DiscoInfo(
                node=disco["node"] or None,
                features=set(disco["features"]),
                identities=[
                    (identity[0], identity[1], identity[-1] or "")
                    for identity in disco["identities"]
                ],
            )
        elif stanza.xml.find(f"{{{VERSION_NS}}}query") is not None:
            version = stanza["software_version"]
            payload = SoftwareVersion(
                name=version["name"], version=version["version"], os=version["os"]
            )
        elif stanza.xml.find(f"{{{SIP_NAMESPACE}}}sip") is not None:
            sip = stanza["jabsip_sip"]
            payload = {key: sip[key] for key in SipStanza.interfaces if sip[key] != ""}

        iq_type = IqType(stanza["type"])
        error = stanza["error"]["condition"] if iq_type is IqType.ERROR else None

        return Iq(
            type=iq_type,
            to=Jid.parse(stanza["to"].full) if stanza["to"].domain else None,
            from_jid=Jid.parse(stanza["from"].full) if stanza["from"].domain else None,
            id=stanza["id"],
            payload=payload,
            error=error or None,
        )

    def __repr__(self) -> str:
        state = "connected" if self.is_connected() else "disconnected"
        return f"<XmppTransport({self.config.jid}, {state})>"


__all__ = ["XmppTransport", "SipStanza"]
