import pytest

from dtnchat import sms
from dtnchat.bundle import Bundle, CreationTimestamp, decode_bundle, encode_bundle
from dtnchat.codec import encode
from dtnchat.constants import BUNDLE_ADMINISTRATIVE_RECORD, DTN_EPOCH_OFFSET_S
from dtnchat.dispatcher import SendPayload, build_bundle
from dtnchat.endpoint import Endpoint, parse
from dtnchat.router import AutoResponder, Deliver, Ignore, InboundRouter

LOCAL = parse("eliza")
PEER = parse("alice")


def _raw(src: Endpoint = PEER, dst: Endpoint = LOCAL, payload: bytes | None = None, **kw) -> bytes:
    if payload is None:
        payload = sms.encode("hello there", True)
    b = Bundle(
        source=src,
        destination=dst,
        creation_timestamp=CreationTimestamp(10_000, 1),
        lifetime_ms=kw.pop("lifetime_ms", 120_000),
        payload=payload,
        **kw,
    )
    return encode_bundle(b)


def _router(verbose: bool = False) -> InboundRouter:
    return InboundRouter(LOCAL, decode_bundle, verbose=verbose)


def test_delivers_well_formed_message() -> None:
    action = _router().route(_raw())
    assert isinstance(action, Deliver)
    assert action.source == PEER
    assert action.destination == LOCAL
    assert action.text == "hello there"
    assert action.compressed is True
    assert action.timestamp == DTN_EPOCH_OFFSET_S + 10
    assert action.lifetime_ms == 120_000


@pytest.mark.parametrize(
    "raw, reason",
    [
        (b"\x00garbage", "malformed bundle"),
        (_raw(payload=encode({"x": 1})), "unexpected payload"),
        (_raw(payload=b"\xff\xfe"), "unexpected payload"),
    ],
)
def test_bad_input_is_ignored(raw: bytes, reason: str) -> None:
    router = _router()
    action = router.route(raw)
    assert isinstance(action, Ignore)
    assert action.reason.startswith(reason)


def test_administrative_records_are_ignored() -> None:
    router = _router()
    action = router.route(_raw(control_flags=BUNDLE_ADMINISTRATIVE_RECORD))
    assert action == Ignore("administrative record")
    assert router.counters["administrative"] == 1


def test_anonymous_source_is_ignored() -> None:
    assert _router().route(_raw(src=Endpoint.NONE)) == Ignore("anonymous source")


def test_malformed_message_does_not_affect_next_one() -> None:
    router = _router()
    assert isinstance(router.route(b"\x9f\x01"), Ignore)
    assert isinstance(router.route(_raw()), Deliver)
    assert router.counters["malformed"] == 1
    assert router.counters["delivered"] == 1
    assert router.counters["bundles_in"] == 2


def test_display_policy() -> None:
    quiet, loud = _router(), _router(verbose=True)
    own = quiet.route(_raw(src=LOCAL, dst=PEER))
    other = quiet.route(_raw())
    assert not quiet.should_display(own)
    assert quiet.should_display(other)
    assert loud.should_display(own)
    assert not loud.should_display(Ignore("x"))


def test_auto_responder_swaps_endpoints() -> None:
    router = _router()
    sent: list[SendPayload] = []
    responder = AutoResponder(router, lambda text: text.upper(), sent.append)

    reply = responder.on_action(router.route(_raw()))

    assert sent == [reply]
    assert reply is not None
    assert reply.source == LOCAL
    assert reply.destination == PEER
    assert reply.notify is False
    assert reply.lifetime_ms == 120_000
    assert sms.decode(reply.body) == (True, "HELLO THERE")

    bndl = build_bundle(reply)
    assert bndl.report_to == Endpoint.NONE
    assert bndl.control_flags == 0


def test_auto_responder_keeps_uncompressed_form() -> None:
    router = _router()
    sent: list[SendPayload] = []
    responder = AutoResponder(router, lambda text: "ok", sent.append)
    responder.on_action(router.route(_raw(payload=sms.encode("plain", False))))
    assert sms.decode(sent[0].body) == (False, "ok")


def test_auto_responder_skips_own_and_ignored() -> None:
    router = _router()
    sent: list[SendPayload] = []
    responder = AutoResponder(router, lambda text: "ok", sent.append)
    assert responder.on_action(router.route(_raw(src=LOCAL, dst=PEER))) is None
    assert responder.on_action(Ignore("administrative record")) is None
    assert sent == []
    assert responder.replies == 0


def test_auto_responder_drops_empty_answer() -> None:
    router = _router()
    sent: list[SendPayload] = []
    responder = AutoResponder(router, lambda text: "   ", sent.append)
    assert responder.on_action(router.route(_raw())) is None
    assert sent == []
