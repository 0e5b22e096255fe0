from __future__ import annotations

import logging
import queue
import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol, Union

from .bundle import Bundle, CreationTimestamp
from .channel import HandshakeProfile
from .constants import BUNDLE_STATUS_REQUEST_DELIVERY, TRAFFIC_LOGGER
from .endpoint import Endpoint
from .errors import PayloadConstructionError


class ChannelSink(Protocol):
    def send_text(self, text: str) -> None: ...

    def send_binary(self, data: bytes) -> None: ...


@dataclass(frozen=True)
class RawText:
    text: str


@dataclass(frozen=True)
class SendPayload:
    source: Endpoint
    destination: Endpoint
    notify: bool
    lifetime_ms: int
    body: bytes


OutboundCommand = Union[RawText, SendPayload]

_STOP = object()


def control_flags_for(cmd: SendPayload) -> int:
    if cmd.notify and not cmd.destination.suppresses_notifications:
        return BUNDLE_STATUS_REQUEST_DELIVERY
    return 0


def build_bundle(cmd: SendPayload) -> Bundle:
    flags = control_flags_for(cmd)
    try:
        if cmd.source.is_none:
            raise ValueError("source endpoint must not be dtn:none")
        if cmd.destination.is_none:
            raise ValueError("destination endpoint must not be dtn:none")
        if int(cmd.lifetime_ms) <= 0:
            raise ValueError("lifetime must be positive")
        return Bundle(
            source=cmd.source,
            destination=cmd.destination,
            report_to=cmd.source if flags else Endpoint.NONE,
            creation_timestamp=CreationTimestamp.now(),
            lifetime_ms=int(cmd.lifetime_ms),
            control_flags=flags,
            payload=bytes(cmd.body),
        )
    except (TypeError, ValueError) as e:
        raise PayloadConstructionError(str(e)) from e


class OutboundDispatcher:
    """
    Single writer for the daemon connection.

    Producers (UI, bot, router) call ``enqueue`` from any thread; one consumer
    thread drains the FIFO and is the only caller of the channel's send
    methods, so frames are never interleaved.
    """

    def __init__(
        self,
        channel: ChannelSink,
        profile: HandshakeProfile,
        *,
        verbose: bool = False,
        on_failed: Callable[[], None] | None = None,
    ) -> None:
        self.channel = channel
        self.profile = profile
        self.verbose = verbose
        self.on_failed = on_failed
        self.log = logging.getLogger("dtnchat.dispatcher")
        self.traffic = logging.getLogger(TRAFFIC_LOGGER)
        self._queue: queue.Queue[object] = queue.Queue()
        self._thread: threading.Thread | None = None
        self._stopped = threading.Event()
        self.sent = 0
        self.dropped = 0

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def enqueue(self, cmd: OutboundCommand) -> None:
        if self._stopped.is_set():
            self.log.debug("Dispatcher stopped; dropping %s", type(cmd).__name__)
            return
        self._queue.put_nowait(cmd)

    def start(self) -> None:
        if self._thread is not None:
            return
        self._thread = threading.Thread(
            target=self._run, name="dtnchat-dispatcher", daemon=True
        )
        self._thread.start()

    def stop(self) -> None:
        self._stopped.set()
        self._queue.put_nowait(_STOP)

    def join(self, timeout: float | None = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)

    def _run(self) -> None:
        while True:
            cmd = self._queue.get()
            if cmd is _STOP:
                break
            try:
                self.dispatch(cmd)  # type: ignore[arg-type]
            except PayloadConstructionError as e:
                self.dropped += 1
                self.log.warning("Dropping outgoing message: %s", e)
            except Exception:
                self.log.exception("Send failed; stopping dispatcher")
                self._stopped.set()
                if self.on_failed is not None:
                    self.on_failed()
                break
        self.log.debug("Dispatcher stopped sent=%s dropped=%s", self.sent, self.dropped)

    def dispatch(self, cmd: OutboundCommand) -> None:
        """Forward one command to the channel (consumer thread only)."""
        if isinstance(cmd, RawText):
            self.channel.send_text(cmd.text)
            self.traffic.debug("[>] %s", cmd.text)
            self.sent += 1
            return

        if not isinstance(cmd, SendPayload):
            raise PayloadConstructionError(f"unsupported command {cmd!r}")

        bndl = build_bundle(cmd)
        try:
            out_bytes = self.profile.encode_outgoing(bndl)
        except Exception as e:
            raise PayloadConstructionError(f"cannot encode bundle: {e}") from e

        self.channel.send_binary(out_bytes)
        self.sent += 1
        if self.verbose:
            self.log.info(
                "Sent bundle with %s bytes to %s", len(out_bytes), bndl.destination
            )
