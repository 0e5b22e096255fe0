from __future__ import annotations

import threading

import pytest

from dtnchat.channel import BUNDLE_PROFILE
from dtnchat.config import ChatRuntimeConfig
from dtnchat.dispatcher import RawText
from dtnchat.endpoint import parse
from dtnchat.errors import FatalStartup, TransportError
from dtnchat.router import Deliver, Ignore
from dtnchat.service import BridgeService, connect_bridge, resolve_local_endpoint
from dtnchat.transport import Frame, FrameKind

from fakes import HANDSHAKE, LOCAL, FakeClient, FakeTransport, message_from_alice


def _service(transport: FakeTransport, **callbacks) -> BridgeService:
    return BridgeService(ChatRuntimeConfig(), transport, LOCAL, BUNDLE_PROFILE, **callbacks)


def test_handshake_sends_mode_and_subscribe() -> None:
    t = FakeTransport(HANDSHAKE)
    svc = _service(t)
    svc.handshake()
    assert t.texts == ["/bundle", "/subscribe dtn://node1/sms"]
    assert svc.session.mode_negotiated and svc.session.subscribed
    assert svc.channel.ready


@pytest.mark.parametrize(
    "frames",
    [
        [Frame(FrameKind.TEXT, "400 no such mode")],
        [HANDSHAKE[0], Frame(FrameKind.TEXT, "404 not subscribed")],
        [HANDSHAKE[0], Frame(FrameKind.CLOSED)],
        [Frame(FrameKind.BINARY, b"\x9f\xff")],
    ],
)
def test_handshake_failure_is_fatal(frames: list[Frame]) -> None:
    svc = _service(FakeTransport(frames))
    with pytest.raises(FatalStartup):
        svc.handshake()


def test_malformed_bundle_does_not_stop_the_reader() -> None:
    t = FakeTransport(HANDSHAKE)
    actions: list = []
    got_two = threading.Event()

    def on_action(action) -> None:
        actions.append(action)
        if len(actions) == 2:
            got_two.set()

    svc = _service(t, on_action=on_action)
    svc.start()
    t.feed(Frame(FrameKind.BINARY, b"\x01garbage"))
    t.feed(Frame(FrameKind.BINARY, message_from_alice("second")))
    assert got_two.wait(5.0)

    assert isinstance(actions[0], Ignore)
    assert isinstance(actions[1], Deliver)
    assert actions[1].text == "second"
    assert not svc.closed
    svc.stop()
    assert t.closed


def test_warning_frames_are_reported_and_session_continues() -> None:
    t = FakeTransport(HANDSHAKE)
    warned = threading.Event()
    warnings: list[str] = []

    def on_warning(text: str) -> None:
        warnings.append(text)
        warned.set()

    svc = _service(t, on_warning=on_warning)
    svc.start()
    t.feed(Frame(FrameKind.TEXT, "200 subscribed"))
    t.feed(Frame(FrameKind.TEXT, "endpoint unknown"))
    assert warned.wait(5.0)
    assert warnings == ["endpoint unknown"]
    assert not svc.closed
    svc.stop()


def test_outbound_commands_go_through_dispatcher() -> None:
    t = FakeTransport(HANDSHAKE)
    svc = _service(t)
    svc.start()
    svc.session.join(parse("group1"))
    svc.dispatcher.stop()
    svc.dispatcher.join(5.0)
    assert t.texts[-1] == "/subscribe dtn://group1/sms"
    svc.stop()


def test_close_tears_down_session() -> None:
    t = FakeTransport(HANDSHAKE)
    closed = threading.Event()
    svc = _service(t, on_closed=closed.set)
    svc.start()
    t.feed(Frame(FrameKind.CLOSED))
    assert closed.wait(5.0)
    assert svc.wait(1.0)
    svc.dispatcher.join(5.0)
    assert not svc.dispatcher.running
    svc.enqueue(RawText("/subscribe late"))
    assert "/subscribe late" not in t.texts


def test_connect_bridge_registers_and_starts() -> None:
    t = FakeTransport(HANDSHAKE)
    client = FakeClient(t)
    svc = connect_bridge(ChatRuntimeConfig(), client)
    try:
        assert client.registered == ["dtn://node1/sms"]
        assert svc.local_endpoint == LOCAL
        assert svc.channel.ready
    finally:
        svc.stop()


def test_connect_bridge_closes_transport_on_failed_handshake() -> None:
    t = FakeTransport([Frame(FrameKind.TEXT, "500 nope")])
    with pytest.raises(FatalStartup):
        connect_bridge(ChatRuntimeConfig(), FakeClient(t))
    assert t.closed


def test_connect_bridge_rejects_unknown_mode() -> None:
    t = FakeTransport(HANDSHAKE)
    with pytest.raises(FatalStartup):
        connect_bridge(ChatRuntimeConfig(mode="raw"), FakeClient(t))


def test_resolve_local_endpoint() -> None:
    t = FakeTransport()
    assert resolve_local_endpoint(ChatRuntimeConfig(), FakeClient(t, "ipn:23.0")) == parse("23")
    assert resolve_local_endpoint(
        ChatRuntimeConfig(node_id="dtn://other/"), FakeClient(t)
    ) == parse("other")

    class Broken(FakeClient):
        def local_node_id(self) -> str:
            raise TransportError("connection refused")

    with pytest.raises(FatalStartup):
        resolve_local_endpoint(ChatRuntimeConfig(), Broken(t))


class BrokenWriteTransport(FakeTransport):
    def send_text(self, text: str) -> None:
        if text.startswith("/subscribe dtn://group1"):
            raise TransportError("socket gone")
        super().send_text(text)


def test_send_failure_tears_down_session() -> None:
    t = BrokenWriteTransport(HANDSHAKE)
    closed = threading.Event()
    svc = _service(t, on_closed=closed.set)
    svc.start()
    svc.session.join(parse("group1"))
    assert closed.wait(5.0)
    assert svc.closed
    svc.stop()


def test_before_start_runs_before_the_reader() -> None:
    t = FakeTransport(HANDSHAKE + [Frame(FrameKind.BINARY, message_from_alice("early"))])
    seen: list = []
    delivered = threading.Event()
    wired: list[BridgeService] = []

    def on_action(action) -> None:
        seen.append((bool(wired), action))
        delivered.set()

    svc = connect_bridge(
        ChatRuntimeConfig(), FakeClient(t), on_action=on_action, before_start=wired.append
    )
    try:
        assert wired == [svc]
        assert delivered.wait(5.0)
        was_wired, action = seen[0]
        assert was_wired
        assert isinstance(action, Deliver) and action.text == "early"
    finally:
        svc.stop()
