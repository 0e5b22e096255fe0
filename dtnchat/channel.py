from __future__ import annotations

import enum
import logging
from collections.abc import Callable
from dataclasses import dataclass

from .bundle import Bundle, decode_bundle, decode_recv_data, encode_bundle, encode_send_data
from .constants import (
    ACK_MODE_BUNDLE,
    ACK_MODE_DATA,
    ACK_PREFIX,
    ACK_SUBSCRIBED,
    CMD_MODE_BUNDLE,
    CMD_MODE_DATA,
    CMD_SUBSCRIBE,
)
from .endpoint import Endpoint
from .errors import ProtocolViolation


@dataclass(frozen=True)
class HandshakeProfile:
    """Daemon transmission mode: handshake strings plus binary framing."""

    name: str
    mode_command: str
    mode_ack: str
    encode_outgoing: Callable[[Bundle], bytes]
    decode_incoming: Callable[[bytes], Bundle]


BUNDLE_PROFILE = HandshakeProfile(
    name="bundle",
    mode_command=CMD_MODE_BUNDLE,
    mode_ack=ACK_MODE_BUNDLE,
    encode_outgoing=encode_bundle,
    decode_incoming=decode_bundle,
)

DATA_PROFILE = HandshakeProfile(
    name="data",
    mode_command=CMD_MODE_DATA,
    mode_ack=ACK_MODE_DATA,
    encode_outgoing=encode_send_data,
    decode_incoming=decode_recv_data,
)

PROFILES: dict[str, HandshakeProfile] = {
    BUNDLE_PROFILE.name: BUNDLE_PROFILE,
    DATA_PROFILE.name: DATA_PROFILE,
}


def get_profile(name: str) -> HandshakeProfile:
    try:
        return PROFILES[str(name).strip().lower()]
    except KeyError:
        raise ValueError(
            f"unknown mode {name!r} (expected one of: {', '.join(sorted(PROFILES))})"
        ) from None


class ChannelState(enum.Enum):
    CONNECTING = "connecting"
    MODE_PENDING = "mode-pending"
    SUBSCRIBE_PENDING = "subscribe-pending"
    READY = "ready"
    CLOSED = "closed"
    FAILED = "failed"


class EventKind(enum.Enum):
    SEND = "send"  # handshake command to write
    MODE_NEGOTIATED = "mode-negotiated"
    SUBSCRIBED = "subscribed"
    ACK = "ack"
    WARNING = "warning"
    BUNDLE = "bundle"
    CLOSED = "closed"


@dataclass(frozen=True)
class ChannelEvent:
    kind: EventKind
    text: str | None = None
    data: bytes | None = None


class ControlChannel:
    """
    Handshake and framing state machine for the daemon's WebSocket.

    Pure protocol logic: the caller feeds frames in (``on_open``,
    ``on_text``, ``on_binary``, ``on_close``) and performs the returned
    events. Violations move the channel to FAILED and raise
    ProtocolViolation.
    """

    def __init__(self, profile: HandshakeProfile, local_endpoint: Endpoint) -> None:
        self.profile = profile
        self.local_endpoint = local_endpoint
        self.state = ChannelState.CONNECTING
        self.log = logging.getLogger("dtnchat.channel")

    @property
    def ready(self) -> bool:
        return self.state is ChannelState.READY

    @property
    def handshaking(self) -> bool:
        return self.state in (
            ChannelState.CONNECTING,
            ChannelState.MODE_PENDING,
            ChannelState.SUBSCRIBE_PENDING,
        )

    def _fail(self, reason: str) -> ProtocolViolation:
        prev = self.state
        self.state = ChannelState.FAILED
        self.log.debug("Channel failed in state=%s: %s", prev.value, reason)
        return ProtocolViolation(reason)

    def on_open(self) -> list[ChannelEvent]:
        if self.state is not ChannelState.CONNECTING:
            raise self._fail(f"open in state {self.state.value}")
        self.state = ChannelState.MODE_PENDING
        return [ChannelEvent(EventKind.SEND, text=self.profile.mode_command)]

    def on_text(self, text: str) -> list[ChannelEvent]:
        if self.state is ChannelState.MODE_PENDING:
            if not text.startswith(self.profile.mode_ack):
                raise self._fail(
                    f"failed to set mode to {self.profile.name!r}: {text!r}"
                )
            self.state = ChannelState.SUBSCRIBE_PENDING
            return [
                ChannelEvent(EventKind.MODE_NEGOTIATED, text=text),
                ChannelEvent(
                    EventKind.SEND, text=f"{CMD_SUBSCRIBE} {self.local_endpoint}"
                ),
            ]

        if self.state is ChannelState.SUBSCRIBE_PENDING:
            if not text.startswith(ACK_SUBSCRIBED):
                raise self._fail(
                    f"failed to subscribe to {self.local_endpoint}: {text!r}"
                )
            self.state = ChannelState.READY
            return [ChannelEvent(EventKind.SUBSCRIBED, text=text)]

        if self.state is ChannelState.READY:
            if text.startswith(ACK_PREFIX):
                return [ChannelEvent(EventKind.ACK, text=text)]
            return [ChannelEvent(EventKind.WARNING, text=text)]

        raise self._fail(f"text frame in state {self.state.value}: {text!r}")

    def on_binary(self, data: bytes) -> list[ChannelEvent]:
        if self.state is not ChannelState.READY:
            raise self._fail(f"binary frame in state {self.state.value}")
        return [ChannelEvent(EventKind.BUNDLE, data=bytes(data))]

    def on_close(self) -> list[ChannelEvent]:
        was_ready = self.state is ChannelState.READY
        if self.state is not ChannelState.FAILED:
            self.state = ChannelState.CLOSED
        if not was_ready:
            raise ProtocolViolation("connection closed before the handshake completed")
        return [ChannelEvent(EventKind.CLOSED)]
