"""
Tests for the Session: connection lifecycle, peer discovery, signaling and
account settings, driven through a fake transport.
"""

import asyncio
import threading
from unittest.mock import Mock

import pytest

import jabsip
from jabsip import (
    AccountConfig,
    Capabilities,
    ConnectionState,
    DecodeError,
    DiscoInfo,
    DisconnectReason,
    ErrorKind,
    EventName,
    InvalidStateTransition,
    Iq,
    IqType,
    JabsipError,
    Jid,
    Message,
    MessageType,
    MemorySettings,
    Presence,
    PresenceType,
    RosterItem,
    Session,
    SipInfo,
    SoftwareVersion,
    Subscription,
    TransportError,
    ValidationError,
)
from jabsip._session import default_scheduler
from jabsip._utils import AUTO_REPLY, PRESENCE_STATUS

BOB = Jid.parse("bob@example.org/laptop")
CAROL = Jid.parse("carol@example.org/desk")

VISIBLE = SipInfo(visible=True, host="10.0.0.2", port=50210, uniqname="node-1", key="b81a")


def names(recorder):
    return [event.name for event in recorder]


def states(recorder):
    return [event.state for event in recorder if event.name is EventName.CONNECTION_STATE_CHANGED]


def caps_presence(jid):
    return Presence(from_jid=jid, caps=Capabilities(node="http://jabsip", ver="v1"))


def bring_online(session, transport, jid):
    """Run the capability handshake for ``jid`` up to peer_online."""
    transport.receive_presence(caps_presence(jid))
    probe = transport.sent_iqs()[-1]
    transport.receive_iq(
        Iq(
            type=IqType.RESULT,
            from_jid=jid,
            id=probe.id,
            payload=DiscoInfo(features={session.config.feature_uri}),
        )
    )


class TestConnect:
    """Test connecting to the server."""

    def test_connect_is_deferred(self, session, transport, scheduler):
        assert session.connect() is True

        assert session.state is ConnectionState.CONNECTING
        assert transport.connect_calls == 0
        assert scheduler.pending[0].delay == session.config.connect_delay

        scheduler.run_pending()
        assert transport.connect_calls == 1

    def test_connected_setup(self, session, transport, scheduler, recorder):
        session.connect()
        scheduler.run_pending()
        transport.simulate_connected()

        assert session.is_connected()
        assert states(recorder) == [ConnectionState.CONNECTING, ConnectionState.CONNECTED]
        assert transport.presence == ("xa", PRESENCE_STATUS, -127)
        assert transport.ping_interval == 60.0
        assert transport.roster_loads == 1

    def test_transport_config(self, session, transport):
        config = transport.config
        assert config.jid == "alice@example.org"
        assert config.password == "secret"
        assert config.server == "example.org"
        assert config.port is None
        assert config.resource == session.resource
        assert session.resource.startswith("jabsip")

    def test_explicit_server(self, transport, scheduler):
        settings = MemorySettings(
            {
                "jabber-1/username": "alice@example.org",
                "jabber-1/server": "xmpp.example.org",
                "jabber-1/port": 5223,
            }
        )
        Session("jabber-1", transport, settings, scheduler=scheduler)
        assert transport.config.server == "xmpp.example.org"
        assert transport.config.port == 5223

    def test_connect_twice_schedules_once(self, session, scheduler):
        session.connect()
        assert session.connect() is True
        assert len(scheduler.calls) == 1

    def test_connect_when_connected(self, connected_session, scheduler):
        assert connected_session.connect() is True
        assert len(scheduler.calls) == 1

    def test_no_account(self, transport, scheduler):
        session = Session("jabber-1", transport, MemorySettings(), scheduler=scheduler)
        assert session.connect() is False
        assert session.state is ConnectionState.DISCONNECTED
        assert session.jid is None

    def test_connect_while_disconnecting(self, connected_session, scheduler):
        connected_session.disconnect()

        assert connected_session.connect() is False
        assert connected_session.state is ConnectionState.DISCONNECTING
        assert scheduler.pending == []

    def test_reconnect_ignores_late_disconnect(self, session, transport, scheduler, recorder):
        session.connect()
        scheduler.run_pending()
        session.disconnect()
        session.connect()

        # The abandoned attempt reports its close once the new one is scheduled
        transport.simulate_disconnected(DisconnectReason.REMOTE_CONNECTION_FAILED)

        assert session.state is ConnectionState.CONNECTING
        assert EventName.ERROR not in names(recorder)
        scheduler.run_pending()
        assert transport.connect_calls == 2

    def test_transport_failure(self, session, transport, scheduler, recorder):
        transport.connect = Mock(side_effect=OSError("refused"))
        session.connect()
        scheduler.run_pending()

        errors = [e for e in recorder if e.name is EventName.ERROR]
        assert errors[0].kind is ErrorKind.CONNECTION_ERROR
        assert "refused" in errors[0].message
        assert session.state is ConnectionState.DISCONNECTED

    def test_resource_changed_by_server(self, session, transport, scheduler, recorder):
        transport.bound_resource = "server-chosen"
        session.connect()
        scheduler.run_pending()
        transport.simulate_connected()

        changed = [e for e in recorder if e.name is EventName.JID_CHANGED]
        assert changed[0].jid.resource == "server-chosen"
        assert session.resource == "server-chosen"

    def test_same_resource_is_silent(self, recorder, connected_session):
        assert EventName.CONNECTION_STATE_CHANGED in names(recorder)
        assert EventName.JID_CHANGED not in names(recorder)

    def test_unexpected_connected_drops_link(self, session, transport):
        transport.simulate_connected()
        assert session.state is ConnectionState.DISCONNECTED
        assert transport.disconnect_calls == 1


class TestDefaultScheduler:
    """Test the event loop scheduler used when the session gets none."""

    def test_runs_on_the_loop_thread(self):
        fired = []

        async def scenario():
            handle = default_scheduler(0, lambda: fired.append(threading.get_ident()))
            await asyncio.sleep(0.01)
            return handle

        handle = asyncio.run(scenario())

        assert isinstance(handle, asyncio.TimerHandle)
        assert fired == [threading.get_ident()]

    def test_needs_a_running_loop(self):
        with pytest.raises(JabsipError):
            default_scheduler(0, lambda: None)

    def test_session_without_loop_does_not_connect(self, transport, settings):
        session = Session("jabber-1", transport, settings)

        with pytest.raises(JabsipError):
            session.connect()
        assert session.state is ConnectionState.DISCONNECTED
        assert transport.connect_calls == 0


class TestDisconnect:
    """Test leaving the server."""

    def test_disconnect_waits_for_transport(self, connected_session, transport, recorder):
        connected_session.disconnect()
        assert connected_session.state is ConnectionState.DISCONNECTING
        assert transport.disconnect_calls == 1

        transport.simulate_disconnected()
        assert connected_session.state is ConnectionState.DISCONNECTED
        assert EventName.ERROR not in names(recorder)

    def test_disconnect_is_idempotent(self, connected_session, transport):
        connected_session.disconnect()
        connected_session.disconnect()
        transport.simulate_disconnected()
        connected_session.disconnect()

        assert transport.disconnect_calls == 1
        assert connected_session.state is ConnectionState.DISCONNECTED

    def test_disconnect_before_scheduled_connect(self, session, transport, scheduler):
        session.connect()
        session.disconnect()

        assert scheduler.calls[0].cancelled
        assert session.state is ConnectionState.DISCONNECTED
        scheduler.run_pending()
        assert transport.connect_calls == 0
        assert transport.disconnect_calls == 0

    def test_disconnect_while_connecting(self, session, transport, scheduler):
        session.connect()
        scheduler.run_pending()
        session.disconnect()

        assert transport.disconnect_calls == 1
        assert session.state is ConnectionState.DISCONNECTED

    def test_user_disconnect_reports_no_offline(self, connected_session, transport, recorder):
        bring_online(connected_session, transport, BOB)
        connected_session.disconnect()
        transport.simulate_disconnected()

        assert EventName.PEER_OFFLINE not in names(recorder)
        assert connected_session.peers() == []

    def test_link_drop_reports_offline_and_error(self, connected_session, transport, recorder):
        bring_online(connected_session, transport, BOB)
        transport.simulate_disconnected(DisconnectReason.REMOTE_CONNECTION_FAILED)

        offline = [e.jid for e in recorder if e.name is EventName.PEER_OFFLINE]
        assert offline == [BOB]
        error = next(e for e in recorder if e.name is EventName.ERROR)
        assert error.kind is ErrorKind.CONNECTION_ERROR
        assert error.message == "Remote Connection failed"
        assert connected_session.state is ConnectionState.DISCONNECTED

    def test_auth_failure(self, session, transport, scheduler, recorder):
        session.connect()
        scheduler.run_pending()
        transport.simulate_disconnected(DisconnectReason.AUTHORIZATION_ERROR)

        error = next(e for e in recorder if e.name is EventName.ERROR)
        assert error.kind is ErrorKind.AUTH_ERROR
        assert session.state is ConnectionState.DISCONNECTED


class TestPeerDiscovery:
    """Test the capability handshake and presence tracking."""

    def test_caps_presence_sends_probe(self, connected_session, transport):
        transport.receive_presence(caps_presence(BOB))

        probe = transport.sent_iqs()[0]
        assert probe.type is IqType.GET
        assert probe.to == BOB
        assert probe.payload.node == "http://jabsip#v1"

    def test_feature_reply_brings_peer_online(self, connected_session, transport, recorder):
        bring_online(connected_session, transport, BOB)

        online = [e.jid for e in recorder if e.name is EventName.PEER_ONLINE]
        assert online == [BOB]
        assert connected_session.online_peers() == [BOB]

    def test_online_peer_is_asked_for_version(self, connected_session, transport, recorder):
        bring_online(connected_session, transport, BOB)

        query = transport.sent_iqs()[-1]
        assert isinstance(query.payload, SoftwareVersion)

        transport.receive_iq(
            Iq(
                type=IqType.RESULT,
                from_jid=BOB,
                id=query.id,
                payload=SoftwareVersion("jabsip", "0.1.0", "Linux"),
            )
        )

        event = next(e for e in recorder if e.name is EventName.SOFTWARE_VERSION_RECEIVED)
        assert event.jid == BOB
        assert event.version == "jabsip Linux 0.1.0"

    def test_other_applications_stay_offline(self, connected_session, transport, recorder):
        transport.receive_presence(caps_presence(BOB))
        probe = transport.sent_iqs()[0]
        transport.receive_iq(
            Iq(type=IqType.RESULT, from_jid=BOB, id=probe.id, payload=DiscoInfo(features={"urn:x"}))
        )
        assert EventName.PEER_ONLINE not in names(recorder)

    def test_repeated_presence_notifies_once(self, connected_session, transport, recorder):
        bring_online(connected_session, transport, BOB)
        bring_online(connected_session, transport, BOB)

        assert names(recorder).count(EventName.PEER_ONLINE) == 1

    def test_unavailable_goes_offline(self, connected_session, transport, recorder):
        bring_online(connected_session, transport, BOB)
        transport.receive_presence(Presence(from_jid=BOB, type=PresenceType.UNAVAILABLE))

        assert [e.jid for e in recorder if e.name is EventName.PEER_OFFLINE] == [BOB]
        assert connected_session.online_peers() == []

    def test_own_presence_is_ignored(self, connected_session, transport):
        transport.receive_presence(caps_presence(connected_session.jid))
        assert transport.sent == []

    def test_ignored_while_not_connected(self, session, transport):
        transport.receive_presence(caps_presence(BOB))
        transport.receive_message(Message(from_jid=BOB, body="hello"))
        assert transport.sent == []

    def test_late_probe_reply_after_reconnect_is_dropped(
        self, connected_session, transport, scheduler, recorder
    ):
        transport.receive_presence(caps_presence(BOB))
        probe = transport.sent_iqs()[0]

        transport.simulate_disconnected(DisconnectReason.REMOTE_STREAM_ERROR)
        connected_session.connect()
        scheduler.run_pending()
        transport.simulate_connected()

        transport.receive_iq(
            Iq(
                type=IqType.RESULT,
                from_jid=BOB,
                id=probe.id,
                payload=DiscoInfo(features={connected_session.config.feature_uri}),
            )
        )
        assert EventName.PEER_ONLINE not in names(recorder)


class TestSignaling:
    """Test sending and receiving SipInfo."""

    def test_send_msg(self, connected_session, transport):
        request_id = connected_session.send_msg(BOB, VISIBLE)

        iq = transport.sent_iqs()[0]
        assert iq.id == request_id
        assert iq.type is IqType.SET
        assert iq.to == BOB
        assert iq.payload == VISIBLE.to_dict()

    def test_send_json_text(self, connected_session, transport):
        assert connected_session.send_msg(str(BOB), '{"visible": false}')
        assert transport.sent_iqs()[0].payload == {"visible": False}

    def test_ack_is_swallowed(self, connected_session, transport, recorder):
        request_id = connected_session.send_msg(BOB, VISIBLE)
        transport.receive_iq(Iq(type=IqType.RESULT, from_jid=BOB, id=request_id))

        assert len(connected_session.correlator) == 0
        assert EventName.SIP_INFO_RECEIVED not in names(recorder)

    @pytest.mark.parametrize(
        "msg", ["not json", '{"visible": true, "ip": "10.0.0.2"}', SipInfo(visible=True)]
    )
    def test_invalid_sipinfo_is_not_sent(self, connected_session, transport, msg):
        assert connected_session.send_msg(BOB, msg) is None
        assert transport.sent == []

    def test_not_sent_while_disconnected(self, session, transport):
        assert session.send_msg(BOB, VISIBLE) is None
        assert transport.sent == []

    def test_broadcast(self, connected_session, transport):
        bring_online(connected_session, transport, BOB)
        bring_online(connected_session, transport, CAROL)
        transport.sent.clear()

        ids = connected_session.broadcast_msg(VISIBLE)

        assert len(ids) == 2
        assert {iq.to for iq in transport.sent_iqs()} == {BOB, CAROL}

    def test_broadcast_skips_contacts_without_the_feature(self, connected_session, transport):
        bring_online(connected_session, transport, BOB)
        transport.receive_presence(Presence(from_jid=CAROL))
        transport.sent.clear()

        ids = connected_session.broadcast_msg(VISIBLE)

        assert CAROL in connected_session.peers()
        assert len(ids) == 1
        assert [iq.to for iq in transport.sent_iqs()] == [BOB]

    def test_malformed_push_is_rejected(self, connected_session, transport, recorder):
        transport.receive_iq(
            Iq(
                type=IqType.SET,
                from_jid=BOB,
                id="push-2",
                payload={"visible": "true", "ip": "10.0.0.2"},
            )
        )

        error = transport.sent_iqs()[0]
        assert error.type is IqType.ERROR
        assert error.id == "push-2"
        assert error.to == BOB
        assert error.error == "bad-request"
        assert EventName.SIP_INFO_RECEIVED not in names(recorder)

    def test_unsolicited_result_is_not_answered(self, connected_session, transport):
        transport.receive_iq(Iq(type=IqType.RESULT, from_jid=BOB, id="unknown-1"))
        assert transport.sent == []

    def test_pushed_sipinfo(self, connected_session, transport, recorder):
        transport.receive_iq(
            Iq(type=IqType.SET, from_jid=BOB, id="push-1", payload=VISIBLE.to_dict())
        )

        ack = transport.sent_iqs()[0]
        assert ack.type is IqType.RESULT
        assert ack.id == "push-1"

        event = next(e for e in recorder if e.name is EventName.SIP_INFO_RECEIVED)
        assert event.sender == BOB
        assert event.info == VISIBLE

    def test_sipinfo_in_chat(self, connected_session, transport, recorder):
        transport.receive_message(Message(from_jid=BOB, body=VISIBLE.to_json()))

        event = next(e for e in recorder if e.name is EventName.SIP_INFO_RECEIVED)
        assert event.info == VISIBLE
        assert transport.sent == []

    def test_chat_gets_auto_reply(self, connected_session, transport):
        transport.receive_message(Message(from_jid=BOB, body="are you there?"))

        reply = transport.sent[0]
        assert isinstance(reply, Message)
        assert reply.to == BOB
        assert reply.body == AUTO_REPLY
        assert reply.type is MessageType.ERROR


class TestContacts:
    """Test contact list operations and subscription approval."""

    def test_add_contact(self, connected_session, transport):
        contact = connected_session.add_contact("bob@example.org/laptop")

        assert contact == Jid.parse("bob@example.org")
        jid, message, name, groups = transport.subscriptions[0]
        assert jid == contact
        assert name == "bob@example.org"
        assert groups == ["jabsip"]

    def test_add_contact_completes_domain(self, connected_session, transport):
        contact = connected_session.add_contact("dave")
        assert contact.bare == "dave@jabber.org"

    def test_stranger_needs_approval(self, connected_session, transport, approval, recorder):
        transport.receive_subscription(Presence(from_jid=CAROL, type=PresenceType.SUBSCRIBE))

        approval.request.assert_called_once()
        assert EventName.APPROVAL_REQUESTED in names(recorder)
        assert connected_session.pending_approvals() == [CAROL]
        assert transport.answers == []

        assert connected_session.resolve_approval(CAROL, True) is True
        assert transport.answers == [(CAROL, True)]
        assert transport.subscriptions[0][0] == CAROL.bare_jid()

    def test_known_contact_is_approved(self, connected_session, transport, approval):
        transport.roster["carol@example.org"] = RosterItem(
            CAROL.bare_jid(), subscription=Subscription.BOTH
        )
        transport.receive_subscription(Presence(from_jid=CAROL, type=PresenceType.SUBSCRIBE))

        approval.request.assert_not_called()
        assert transport.answers == [(CAROL, True)]

    def test_pending_approval_dropped_on_disconnect(self, connected_session, transport, approval):
        transport.receive_subscription(Presence(from_jid=CAROL, type=PresenceType.SUBSCRIBE))
        task = approval.request.call_args[0][0]

        connected_session.disconnect()
        transport.simulate_disconnected()
        task.accept()

        assert connected_session.pending_approvals() == []
        assert transport.answers == []


class TestSettings:
    """Test account settings handling."""

    def test_default_domain_is_persisted(self, transport, scheduler):
        settings = MemorySettings({"jabber-1/username": "bob"})
        session = Session("jabber-1", transport, settings, scheduler=scheduler)

        assert session.account.username == "bob@jabber.org"
        assert settings.value("jabber-1/username") == "bob@jabber.org"
        assert transport.config.server == "jabber.org"

    def test_account_name(self, session):
        assert session.account_name == "alice@example.org"
        assert session.friendly_name == "Jabber"

    def test_unchanged_settings(self, connected_session):
        assert connected_session.check_settings() is False
        assert connected_session.is_connected()

    def test_xml_console_toggle_does_not_reconnect(self, connected_session, settings):
        settings.set_value("jabber-1/xml_console", True)
        assert connected_session.check_settings() is False
        assert connected_session.trace.console_trace is True

    def test_changed_password_reconnects(self, connected_session, settings, transport, scheduler):
        settings.set_value("jabber-1/password", "new-secret")

        assert connected_session.check_settings() is True
        assert transport.config.password == "new-secret"
        assert connected_session.state is ConnectionState.DISCONNECTING

        transport.simulate_disconnected()
        assert connected_session.state is ConnectionState.CONNECTING
        assert len(scheduler.pending) == 1

    def test_changed_password_while_connecting(self, session, settings, transport, scheduler):
        session.connect()
        scheduler.run_pending()
        settings.set_value("jabber-1/password", "new-secret")

        assert session.check_settings() is True
        assert session.state is ConnectionState.CONNECTING
        assert transport.disconnect_calls == 1

        transport.simulate_disconnected()
        assert session.state is ConnectionState.CONNECTING
        assert len(scheduler.pending) == 1

        scheduler.run_pending()
        assert transport.connect_calls == 2

    def test_changed_settings_while_disconnected(self, session, settings, scheduler):
        settings.set_value("jabber-1/server", "xmpp.example.org")
        assert session.check_settings() is True
        assert session.state is ConnectionState.CONNECTING

    def test_save_config(self, session, transport, settings):
        account = AccountConfig("alice@example.org", "secret", "xmpp.example.org", 5223)

        assert session.save_config(account) is True

        assert settings.value("jabber-1/server") == "xmpp.example.org"
        assert transport.config.server == "xmpp.example.org"
        assert transport.config.port == 5223

    def test_delete(self, connected_session, settings):
        connected_session.delete()
        assert settings.keys() == []
        assert connected_session.account_name == ""

    def test_account_exists(self, session, settings):
        settings.set_value("jabber-2/username", "bob@example.org")

        assert session.account_exists("bob@example.org")
        assert session.account_exists("bob")
        assert not session.account_exists("alice@example.org")
        assert not session.account_exists("bob@example.org", server="xmpp.example.org")
        assert not session.account_exists("  ")


class TestErrorTaxonomy:
    """Test the exceptions the package raises."""

    def test_errors_share_a_base(self):
        for error in (TransportError, DecodeError, ValidationError, InvalidStateTransition):
            assert issubclass(error, JabsipError)

    def test_builtin_connection_error_is_not_shadowed(self):
        # Authorization and link failures arrive as error events, not exceptions
        assert not hasattr(jabsip, "AuthorizationError")
        assert not hasattr(jabsip, "ConnectionError")
