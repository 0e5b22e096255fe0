"""Eliza auto-responder bot for dtnchat / SMS."""

from __future__ import annotations

import logging
import signal
import sys
import time
from typing import TextIO

from .config import ChatRuntimeConfig
from .responder import Eliza, Responder
from .router import Action, AutoResponder, Deliver
from .service import BridgeService, connect_bridge
from .transport import DaemonClient


class ElizaBot:
    def __init__(
        self,
        config: ChatRuntimeConfig,
        *,
        client: DaemonClient | None = None,
        respond: Responder | None = None,
        progress: TextIO | None = None,
    ) -> None:
        self.config = config
        self.log = logging.getLogger("dtnchat.bot")
        self.client = client or DaemonClient(
            config.resolved_host, config.port, timeout=config.connect_timeout_s
        )
        self.respond = respond or Eliza().respond
        self.progress = sys.stdout if progress is None else progress
        self.service: BridgeService | None = None
        self.responder: AutoResponder | None = None
        self._stopping = False

    def _on_action(self, action: Action) -> None:
        assert self.responder is not None
        if not isinstance(action, Deliver):
            return

        started = time.monotonic()
        if self.config.verbose:
            self.log.info(
                "Bundle-Id: %s // From: %s / To: %s",
                action.bundle_id,
                action.source,
                action.destination,
            )
            self.log.info("Message: %s", action.text)

        self.responder.on_action(action)

        if self.config.verbose:
            self.log.info("Processing bundle took %.3fms", (time.monotonic() - started) * 1000)
        else:
            # one dot per handled bundle
            self.progress.write(".")
            self.progress.flush()

    def _wire(self, service: BridgeService) -> None:
        self.service = service
        self.responder = AutoResponder(service.router, self.respond, service.enqueue)

    def connect(self) -> None:
        connect_bridge(
            self.config, self.client, on_action=self._on_action, before_start=self._wire
        )
        assert self.service is not None
        self.log.warning("Eliza listening on %s", self.service.local_endpoint)

    def run_forever(self) -> int:
        if self.service is None:
            self.connect()
        assert self.service is not None

        signal.signal(signal.SIGINT, lambda *_: self.stop())
        signal.signal(signal.SIGTERM, lambda *_: self.stop())

        while not self.service.wait(0.25):
            pass
        # A signal is a clean exit; anything else means the daemon went away.
        return 0 if self._stopping else 1

    def stop(self) -> None:
        self._stopping = True
        if self.service is not None:
            self.service.stop()

    def close(self) -> None:
        if self.service is not None:
            self.service.stop()
        self.client.close()
