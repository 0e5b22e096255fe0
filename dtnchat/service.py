from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import Protocol

from .channel import ChannelEvent, ControlChannel, EventKind, HandshakeProfile, get_profile
from .config import ChatRuntimeConfig
from .constants import TRAFFIC_LOGGER
from .dispatcher import OutboundCommand, OutboundDispatcher
from .endpoint import Endpoint
from .errors import FatalStartup, InvalidEndpoint, ProtocolViolation, TransportError
from .router import Action, InboundRouter
from .session import SessionState
from .transport import Frame, FrameKind


class Transport(Protocol):
    def send_text(self, text: str) -> None: ...

    def send_binary(self, data: bytes) -> None: ...

    def receive(self) -> Frame: ...

    def close(self) -> None: ...


class BridgeService:
    """
    One daemon session: handshake, reader thread and outbound dispatcher.

    The handshake runs on the caller's thread and raises FatalStartup when
    the daemon does not accept the mode switch or subscription. Afterwards
    the reader thread owns ``transport.receive`` and the dispatcher thread
    owns the write side; results reach the front end through the callbacks.
    """

    def __init__(
        self,
        config: ChatRuntimeConfig,
        transport: Transport,
        local_endpoint: Endpoint,
        profile: HandshakeProfile,
        *,
        on_action: Callable[[Action], None] | None = None,
        on_warning: Callable[[str], None] | None = None,
        on_closed: Callable[[], None] | None = None,
    ) -> None:
        self.config = config
        self.transport = transport
        self.local_endpoint = local_endpoint
        self.profile = profile
        self.log = logging.getLogger("dtnchat.service")
        self.traffic = logging.getLogger(TRAFFIC_LOGGER)

        self.on_action = on_action
        self.on_warning = on_warning
        self.on_closed = on_closed

        self.channel = ControlChannel(profile, local_endpoint)
        self.dispatcher = OutboundDispatcher(
            transport, profile, verbose=config.verbose, on_failed=self._teardown
        )
        self.session = SessionState(local_endpoint, self.enqueue)
        self.router = InboundRouter(
            local_endpoint, profile.decode_incoming, verbose=config.verbose
        )

        self._closed = threading.Event()
        self._reader: threading.Thread | None = None

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def enqueue(self, cmd: OutboundCommand) -> None:
        self.dispatcher.enqueue(cmd)

    def _perform(self, ev: ChannelEvent) -> None:
        if ev.kind is EventKind.SEND:
            assert ev.text is not None
            self.transport.send_text(ev.text)
            self.traffic.debug("[>] %s", ev.text)
        elif ev.kind is EventKind.MODE_NEGOTIATED:
            self.session.mark_mode_negotiated()
            self.traffic.info("[*] %s", ev.text)
        elif ev.kind is EventKind.SUBSCRIBED:
            self.session.mark_subscribed()
            self.traffic.info("[*] %s", ev.text)
        elif ev.kind is EventKind.ACK:
            self.traffic.debug("[<] %s", ev.text)
        elif ev.kind is EventKind.WARNING:
            self.log.warning("Unexpected response: %s", ev.text)
            if self.on_warning is not None:
                self.on_warning(str(ev.text))
        elif ev.kind is EventKind.BUNDLE:
            assert ev.data is not None
            action = self.router.route(ev.data)
            if self.on_action is not None:
                try:
                    self.on_action(action)
                except Exception:
                    self.log.exception("Error handling inbound message")
        elif ev.kind is EventKind.CLOSED:
            self._teardown()

    def handshake(self) -> None:
        try:
            for ev in self.channel.on_open():
                self._perform(ev)

            while self.channel.handshaking:
                frame = self.transport.receive()
                if frame.kind is FrameKind.TEXT:
                    events = self.channel.on_text(str(frame.data))
                elif frame.kind is FrameKind.BINARY:
                    events = self.channel.on_binary(bytes(frame.data or b""))
                else:
                    if frame.data:
                        self.log.error("Connection lost during handshake: %s", frame.data)
                    events = self.channel.on_close()
                for ev in events:
                    self._perform(ev)
        except ProtocolViolation as e:
            raise FatalStartup(str(e)) from e

        self.log.info(
            "Session ready endpoint=%s mode=%s", self.local_endpoint, self.profile.name
        )

    def start(self) -> None:
        self.handshake()
        self.dispatcher.start()
        self._reader = threading.Thread(
            target=self._read_loop, name="dtnchat-reader", daemon=True
        )
        self._reader.start()

    def handle_frame(self, frame: Frame) -> bool:
        """Process one frame once READY; returns False when the session ended."""
        if frame.kind is FrameKind.TEXT:
            events = self.channel.on_text(str(frame.data))
        elif frame.kind is FrameKind.BINARY:
            events = self.channel.on_binary(bytes(frame.data or b""))
        else:
            if frame.kind is FrameKind.ERROR:
                self.log.error("Connection error: %s", frame.data)
            else:
                self.log.info("Connection closed by daemon")
            events = self.channel.on_close()

        for ev in events:
            self._perform(ev)
        return not self.closed

    def _read_loop(self) -> None:
        try:
            while not self.closed:
                if not self.handle_frame(self.transport.receive()):
                    break
        except ProtocolViolation as e:
            self.log.error("Protocol violation: %s", e)
            self._teardown()
        except Exception:
            self.log.exception("Reader failed")
            self._teardown()

    def _teardown(self) -> None:
        if self._closed.is_set():
            return
        self._closed.set()
        self.dispatcher.stop()
        if self.on_closed is not None:
            self.on_closed()

    def wait(self, timeout: float | None = None) -> bool:
        return self._closed.wait(timeout)

    def stop(self) -> None:
        self._teardown()
        self.transport.close()


def resolve_local_endpoint(config: ChatRuntimeConfig, client) -> Endpoint:
    """Local chat endpoint from ``node_id`` in the config or the daemon."""
    try:
        node_id = config.node_id or client.local_node_id()
        return Endpoint.for_node(node_id)
    except (TransportError, InvalidEndpoint) as e:
        raise FatalStartup(f"failed to get local node id: {e}") from e


def connect_bridge(
    config: ChatRuntimeConfig,
    client,
    *,
    on_action: Callable[[Action], None] | None = None,
    on_warning: Callable[[str], None] | None = None,
    on_closed: Callable[[], None] | None = None,
    before_start: Callable[[BridgeService], None] | None = None,
) -> BridgeService:
    """Register the local endpoint, open the websocket and complete the handshake.

    ``before_start`` receives the service before the reader thread exists, so
    front ends can wire their handlers without missing bundles the daemon
    pushes right after the subscription.
    """
    try:
        profile = get_profile(config.mode)
    except ValueError as e:
        raise FatalStartup(str(e)) from e

    local_endpoint = resolve_local_endpoint(config, client)
    log = logging.getLogger("dtnchat.service")
    log.info("Local endpoint %s", local_endpoint)

    try:
        client.register_endpoint(local_endpoint)
        transport = client.ws()
    except TransportError as e:
        raise FatalStartup(str(e)) from e

    svc = BridgeService(
        config,
        transport,
        local_endpoint,
        profile,
        on_action=on_action,
        on_warning=on_warning,
        on_closed=on_closed,
    )
    try:
        if before_start is not None:
            before_start(svc)
        svc.start()
    except FatalStartup:
        transport.close()
        raise
    return svc
