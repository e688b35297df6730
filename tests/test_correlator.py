"""
Tests for request/reply correlation and reply decoding.
"""

from unittest.mock import Mock

import pytest

from jabsip import (
    Acknowledged,
    DiscoInfo,
    DiscoReply,
    Iq,
    IqType,
    Jid,
    RequestContext,
    RequestCorrelator,
    SipInfoPush,
    SoftwareVersion,
    Unsolicited,
    VersionReply,
    decode_reply,
)

BOB = Jid.parse("bob@example.org/laptop")


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def transport():
    return Mock()


@pytest.fixture
def correlator(transport, clock):
    return RequestCorrelator(transport, request_ttl=300.0, clock=clock)


def result_for(request_id, payload=None, type=IqType.RESULT):
    return Iq(type=type, from_jid=BOB, id=request_id, payload=payload)


class TestSend:
    """Test tagging outgoing requests."""

    def test_assigns_id_and_sends(self, correlator, transport):
        iq = Iq(type=IqType.GET, to=BOB, payload=DiscoInfo(node="n#1"))
        request_id = correlator.send(iq, RequestContext.DISCO_FEATURE_PROBE)

        assert request_id
        assert iq.id == request_id
        transport.send.assert_called_once_with(iq)
        assert len(correlator) == 1

    def test_ids_are_unique(self, correlator):
        ids = {
            correlator.send(Iq(type=IqType.GET, to=BOB), RequestContext.SOFTWARE_VERSION_PROBE)
            for _ in range(20)
        }
        assert len(ids) == 20

    def test_keeps_existing_id(self, correlator):
        iq = Iq(type=IqType.GET, to=BOB, id="fixed-1")
        assert correlator.send(iq, RequestContext.SOFTWARE_VERSION_PROBE) == "fixed-1"


class TestMatch:
    """Test reading tags back from replies."""

    def test_consumed_exactly_once(self, correlator):
        request_id = correlator.send(Iq(type=IqType.GET, to=BOB), RequestContext.DISCO_FEATURE_PROBE)

        assert correlator.match(result_for(request_id)) is RequestContext.DISCO_FEATURE_PROBE
        assert correlator.match(result_for(request_id)) is RequestContext.NONE

    def test_error_reply_is_matched(self, correlator):
        request_id = correlator.send(Iq(type=IqType.GET, to=BOB), RequestContext.DISCO_FEATURE_PROBE)
        reply = result_for(request_id, type=IqType.ERROR)
        assert correlator.match(reply) is RequestContext.DISCO_FEATURE_PROBE

    def test_requests_are_not_replies(self, correlator):
        request_id = correlator.send(Iq(type=IqType.GET, to=BOB), RequestContext.DISCO_FEATURE_PROBE)
        incoming = Iq(type=IqType.SET, from_jid=BOB, id=request_id)
        assert correlator.match(incoming) is RequestContext.NONE
        assert len(correlator) == 1

    def test_unknown_id(self, correlator):
        assert correlator.match(result_for("nobody-asked")) is RequestContext.NONE


class TestDecode:
    """Test the reply variant decoding order."""

    def test_disco(self):
        reply = decode_reply(
            result_for("1", DiscoInfo(features={"urn:x"})), RequestContext.DISCO_FEATURE_PROBE
        )
        assert isinstance(reply, DiscoReply)
        assert reply.info.has_feature("urn:x")
        assert reply.sender == BOB

    def test_version(self):
        reply = decode_reply(
            result_for("1", SoftwareVersion("jabsip", "0.1.0", "Linux")),
            RequestContext.SOFTWARE_VERSION_PROBE,
        )
        assert isinstance(reply, VersionReply)
        assert reply.version.describe() == "jabsip Linux 0.1.0"

    @pytest.mark.parametrize(
        "context", [RequestContext.SENT_SIP_MESSAGE, RequestContext.SENT_DISCO_REPLY]
    )
    def test_fire_and_forget_acks(self, context):
        assert isinstance(decode_reply(result_for("1"), context), Acknowledged)

    def test_sipinfo_regardless_of_tag(self):
        reply = decode_reply(result_for("1", {"visible": False}), RequestContext.DISCO_FEATURE_PROBE)
        assert isinstance(reply, SipInfoPush)
        assert reply.info.visible is False

    def test_invalid_sipinfo_is_unsolicited(self):
        reply = decode_reply(result_for("1", {"visible": True, "ip": "1.2.3.4"}), RequestContext.NONE)
        assert isinstance(reply, Unsolicited)

    def test_disco_error_is_unsolicited(self):
        reply = decode_reply(
            result_for("1", type=IqType.ERROR), RequestContext.DISCO_FEATURE_PROBE
        )
        assert isinstance(reply, Unsolicited)


class TestDispatch:
    """Test routing replies to the handler of their tag."""

    def test_routes_by_tag(self, correlator):
        handler = Mock()
        correlator.on(RequestContext.DISCO_FEATURE_PROBE, handler)
        request_id = correlator.send(Iq(type=IqType.GET, to=BOB), RequestContext.DISCO_FEATURE_PROBE)

        reply = correlator.dispatch(result_for(request_id, DiscoInfo(features={"urn:x"})))

        handler.assert_called_once_with(reply)
        assert isinstance(reply, DiscoReply)

    def test_pushed_sipinfo_takes_untagged_route(self, correlator):
        untagged = Mock()
        correlator.on(RequestContext.NONE, untagged)

        push = Iq(type=IqType.SET, from_jid=BOB, id="p1", payload={"visible": False})
        reply = correlator.dispatch(push)

        untagged.assert_called_once_with(reply)
        assert isinstance(reply, SipInfoPush)

    def test_no_handler_is_fine(self, correlator):
        reply = correlator.dispatch(result_for("stray"))
        assert isinstance(reply, Unsolicited)


class TestExpiry:
    """Test forgetting unanswered requests."""

    def test_expire_old_requests(self, correlator, clock):
        old = correlator.send(Iq(type=IqType.GET, to=BOB), RequestContext.DISCO_FEATURE_PROBE)
        clock.now += 200
        fresh = correlator.send(Iq(type=IqType.GET, to=BOB), RequestContext.DISCO_FEATURE_PROBE)
        clock.now += 150

        assert correlator.expire() == 1
        assert [p.id for p in correlator.pending] == [fresh]
        assert correlator.match(result_for(old)) is RequestContext.NONE

    def test_send_sweeps_lazily(self, correlator, clock):
        correlator.send(Iq(type=IqType.GET, to=BOB), RequestContext.DISCO_FEATURE_PROBE)
        clock.now += 301
        correlator.send(Iq(type=IqType.GET, to=BOB), RequestContext.DISCO_FEATURE_PROBE)
        assert len(correlator) == 1

    def test_clear(self, correlator):
        request_id = correlator.send(Iq(type=IqType.GET, to=BOB), RequestContext.DISCO_FEATURE_PROBE)
        correlator.clear()
        assert len(correlator) == 0
        assert isinstance(correlator.dispatch(result_for(request_id)), Unsolicited)
