import pytest

from dtnchat.channel import (
    BUNDLE_PROFILE,
    DATA_PROFILE,
    ChannelState,
    ControlChannel,
    EventKind,
    get_profile,
)
from dtnchat.endpoint import parse
from dtnchat.errors import ProtocolViolation

LOCAL = parse("node1")


def _ready_channel(profile=BUNDLE_PROFILE) -> ControlChannel:
    ch = ControlChannel(profile, LOCAL)
    ch.on_open()
    ch.on_text(profile.mode_ack)
    ch.on_text("200 subscribed to dtn://node1/sms")
    assert ch.state is ChannelState.READY
    return ch


def test_open_sends_mode_command() -> None:
    ch = ControlChannel(BUNDLE_PROFILE, LOCAL)
    events = ch.on_open()
    assert ch.state is ChannelState.MODE_PENDING
    assert [(e.kind, e.text) for e in events] == [(EventKind.SEND, "/bundle")]


def test_mode_ack_moves_to_subscribe_pending() -> None:
    ch = ControlChannel(BUNDLE_PROFILE, LOCAL)
    ch.on_open()
    events = ch.on_text("200 tx mode: bundle")
    assert ch.state is ChannelState.SUBSCRIBE_PENDING
    kinds = [e.kind for e in events]
    assert kinds == [EventKind.MODE_NEGOTIATED, EventKind.SEND]
    assert events[-1].text == "/subscribe dtn://node1/sms"


@pytest.mark.parametrize("text", ["subscribed", "200 tx mode: data", "404 unknown", ""])
def test_unexpected_text_during_mode_switch_fails(text: str) -> None:
    ch = ControlChannel(BUNDLE_PROFILE, LOCAL)
    ch.on_open()
    with pytest.raises(ProtocolViolation):
        ch.on_text(text)
    assert ch.state is ChannelState.FAILED


def test_unexpected_text_during_subscribe_fails() -> None:
    ch = ControlChannel(BUNDLE_PROFILE, LOCAL)
    ch.on_open()
    ch.on_text("200 tx mode: bundle")
    with pytest.raises(ProtocolViolation):
        ch.on_text("500 endpoint not registered")
    assert ch.state is ChannelState.FAILED


def test_subscribe_ack_makes_channel_ready() -> None:
    ch = ControlChannel(BUNDLE_PROFILE, LOCAL)
    ch.on_open()
    ch.on_text("200 tx mode: bundle")
    events = ch.on_text("200 subscribed to dtn://node1/sms")
    assert ch.ready
    assert [e.kind for e in events] == [EventKind.SUBSCRIBED]


def test_binary_before_ready_is_a_violation() -> None:
    ch = ControlChannel(BUNDLE_PROFILE, LOCAL)
    ch.on_open()
    with pytest.raises(ProtocolViolation):
        ch.on_binary(b"\x9f\xff")


def test_ready_text_frames() -> None:
    ch = _ready_channel()
    assert ch.on_text("200 unsubscribed")[0].kind is EventKind.ACK
    ev = ch.on_text("something odd")[0]
    assert ev.kind is EventKind.WARNING
    assert ev.text == "something odd"
    assert ch.ready


def test_ready_binary_frames_become_bundle_events() -> None:
    ch = _ready_channel()
    ev = ch.on_binary(bytearray(b"abc"))[0]
    assert ev.kind is EventKind.BUNDLE
    assert ev.data == b"abc"


def test_close_after_ready() -> None:
    ch = _ready_channel()
    assert ch.on_close()[0].kind is EventKind.CLOSED
    assert ch.state is ChannelState.CLOSED


def test_close_during_handshake_is_fatal() -> None:
    ch = ControlChannel(BUNDLE_PROFILE, LOCAL)
    ch.on_open()
    with pytest.raises(ProtocolViolation):
        ch.on_close()


def test_data_profile_handshake() -> None:
    ch = ControlChannel(DATA_PROFILE, LOCAL)
    assert ch.on_open()[0].text == "/data"
    with pytest.raises(ProtocolViolation):
        ControlChannel(DATA_PROFILE, LOCAL).on_text("200 tx mode: data")
    ch.on_text("200 tx mode: data")
    assert ch.state is ChannelState.SUBSCRIBE_PENDING


def test_get_profile() -> None:
    assert get_profile("bundle") is BUNDLE_PROFILE
    assert get_profile(" DATA ") is DATA_PROFILE
    with pytest.raises(ValueError):
        get_profile("raw")
