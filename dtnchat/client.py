"""Interactive terminal chat front end."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime

from .commands import CommandHandler, UiState
from .config import ChatRuntimeConfig
from .endpoint import Endpoint
from .logging_config import OUTPUT_LOCK
from .router import Action, Deliver
from .service import BridgeService, connect_bridge
from .transport import DaemonClient


def format_delivery(action: Deliver, local_endpoint: Endpoint) -> str:
    when = datetime.fromtimestamp(action.timestamp).strftime("%Y-%m-%d %H:%M:%S")
    src = action.source.node_identity
    if action.destination.node_identity == local_endpoint.node_identity:
        return f"[{when} {src}] {action.text}"
    dst = action.destination.node_identity
    return f"[{when} {src} > {dst} ] {action.text}"


def _install_completer(ui: UiState) -> None:
    try:
        import readline
    except ImportError:
        # No line editing on this platform; input() still works.
        return

    def complete(text: str, state: int) -> str | None:
        matches = ui.completions(readline.get_line_buffer(), text)
        return matches[state] if state < len(matches) else None

    readline.set_completer_delims(" \t")
    readline.set_completer(complete)
    readline.parse_and_bind("tab: complete")


class ChatClient:
    def __init__(
        self,
        config: ChatRuntimeConfig,
        *,
        client: DaemonClient | None = None,
        out: Callable[[str], None] = print,
        read_line: Callable[[str], str] = input,
    ) -> None:
        self.config = config
        self.log = logging.getLogger("dtnchat.client")
        self.client = client or DaemonClient(
            config.resolved_host, config.port, timeout=config.connect_timeout_s
        )
        self._out = out
        self._read_line = read_line
        self.service: BridgeService | None = None
        self.ui: UiState | None = None
        self.handler: CommandHandler | None = None

    def emit(self, text: str) -> None:
        # Reader and UI threads both print, and so does the console log handler.
        with OUTPUT_LOCK:
            self._out(text)

    def _on_action(self, action: Action) -> None:
        assert self.service is not None
        if self.service.router.should_display(action):
            assert isinstance(action, Deliver)
            self.emit(format_delivery(action, self.service.local_endpoint))

    def _on_warning(self, text: str) -> None:
        self.emit(f"Unexpected response: {text}")

    def _wire(self, service: BridgeService) -> None:
        self.service = service
        self.ui = UiState(
            local_endpoint=service.local_endpoint, lifetime_s=self.config.lifetime_s
        )
        self.handler = CommandHandler(
            self.ui,
            service.session,
            out=self.emit,
            registrar=self.client,
            compress=self.config.compress,
        )

    def connect(self) -> None:
        connect_bridge(
            self.config,
            self.client,
            on_action=self._on_action,
            on_warning=self._on_warning,
            before_start=self._wire,
        )
        assert self.service is not None
        self.emit(f"subscribed to {self.service.local_endpoint}")

    def run(self) -> int:
        if self.service is None:
            self.connect()
        assert self.service is not None and self.ui is not None and self.handler is not None

        _install_completer(self.ui)
        self.emit("This is a simple dtn chat and messaging program.")
        self.emit('Enter "/help" for a list of commands.')
        self.emit('Press Ctrl-D or enter "/quit" to exit.')
        self.emit("")

        while True:
            if self.service.closed:
                self.emit("Connection to the daemon was closed.")
                return 1
            try:
                line = self._read_line(self.ui.prompt)
            except (EOFError, KeyboardInterrupt):
                self.emit("")
                break
            if not self.handler.handle(line):
                break

        self.emit("Goodbye.")
        return 0

    def close(self) -> None:
        if self.service is not None:
            self.service.stop()
        self.client.close()
