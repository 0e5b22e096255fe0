from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Union

from . import sms
from .bundle import Bundle
from .dispatcher import SendPayload
from .endpoint import Endpoint
from .errors import MalformedBundle, UnexpectedPayload


@dataclass(frozen=True)
class Ignore:
    reason: str


@dataclass(frozen=True)
class Deliver:
    source: Endpoint
    destination: Endpoint
    timestamp: int  # unix seconds
    text: str
    compressed: bool = False
    lifetime_ms: int = 0
    bundle_id: str = ""


Action = Union[Ignore, Deliver]


class InboundRouter:
    """
    Classifies inbound bundles for display and for the auto-responder.

    Decoding happens in two stages, raw bytes -> bundle envelope and payload
    -> SMS fields. A failure in either stage drops that one message only.
    """

    def __init__(
        self,
        local_endpoint: Endpoint,
        decode_bundle: Callable[[bytes], Bundle],
        *,
        verbose: bool = False,
    ) -> None:
        self.local_endpoint = local_endpoint
        self.decode_bundle = decode_bundle
        self.verbose = verbose
        self.log = logging.getLogger("dtnchat.router")
        self.counters: dict[str, int] = {
            "bundles_in": 0,
            "malformed": 0,
            "unexpected_payload": 0,
            "administrative": 0,
            "anonymous": 0,
            "delivered": 0,
        }

    def _inc(self, key: str) -> None:
        self.counters[key] = self.counters.get(key, 0) + 1

    def route(self, raw: bytes) -> Action:
        self._inc("bundles_in")

        try:
            bndl = self.decode_bundle(raw)
        except MalformedBundle as e:
            self._inc("malformed")
            self.log.warning("Dropping malformed bundle bytes=%s err=%s", len(raw), e)
            return Ignore(f"malformed bundle: {e}")

        if bndl.is_administrative_record:
            self._inc("administrative")
            self.log.debug(
                "Ignoring administrative record from %s (not implemented)", bndl.source
            )
            return Ignore("administrative record")

        if bndl.source.is_none:
            self._inc("anonymous")
            self.log.debug("Ignoring anonymous bundle to %s", bndl.destination)
            return Ignore("anonymous source")

        try:
            compressed, text = sms.decode(bndl.payload)
        except UnexpectedPayload as e:
            self._inc("unexpected_payload")
            self.log.warning("Unexpected payload from %s: %s", bndl.source, e)
            return Ignore(f"unexpected payload: {e}")

        self._inc("delivered")
        if self.log.isEnabledFor(logging.DEBUG):
            self.log.debug(
                "RX bundle_id=%s src=%s dst=%s compressed=%s chars=%s",
                bndl.bundle_id,
                bndl.source,
                bndl.destination,
                compressed,
                len(text),
            )
        return Deliver(
            source=bndl.source,
            destination=bndl.destination,
            timestamp=bndl.creation_timestamp.unix_seconds,
            text=text,
            compressed=compressed,
            lifetime_ms=bndl.lifetime_ms,
            bundle_id=bndl.bundle_id,
        )

    def is_own(self, action: Deliver) -> bool:
        return action.source == self.local_endpoint

    def should_display(self, action: Action) -> bool:
        if not isinstance(action, Deliver):
            return False
        # Echoes of our own traffic only show up in verbose mode.
        return self.verbose or not self.is_own(action)


class AutoResponder:
    """Answers every externally sourced message through ``respond``."""

    def __init__(
        self,
        router: InboundRouter,
        respond: Callable[[str], str],
        enqueue: Callable[[SendPayload], None],
    ) -> None:
        self.router = router
        self.respond = respond
        self.enqueue = enqueue
        self.log = logging.getLogger("dtnchat.responder")
        self.replies = 0

    def reply_for(self, action: Deliver) -> SendPayload:
        answer = self.respond(action.text)
        body = sms.encode(answer, action.compressed)
        return SendPayload(
            source=action.destination,
            destination=action.source,
            notify=False,
            lifetime_ms=action.lifetime_ms,
            body=body,
        )

    def on_action(self, action: Action) -> SendPayload | None:
        if not isinstance(action, Deliver):
            return None
        if self.router.is_own(action):
            self.log.debug("Not answering own message %s", action.bundle_id)
            return None

        try:
            reply = self.reply_for(action)
        except UnexpectedPayload as e:
            self.log.warning("Cannot answer %s: %s", action.source, e)
            return None

        self.enqueue(reply)
        self.replies += 1
        return reply
