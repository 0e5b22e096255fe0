"""Command handling for the interactive dtnchat front end."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Protocol

from . import sms
from .dispatcher import SendPayload
from .endpoint import Endpoint, parse
from .errors import DtnChatError, InvalidDuration, InvalidEndpoint, UnexpectedPayload
from .session import SessionState
from .util import format_duration, parse_duration, split_first_word

DTNCHAT_COMMANDS: list[tuple[str, str]] = [
    ("/query", "Open query to specific endpoint"),
    ("/msg", "Compose a new short message"),
    ("/list", "List subscriptions"),
    ("/lifetime", "Manage message lifetime"),
    ("/peers", "List known peers"),
    ("/join", "Join a group"),
    ("/leave", "Leave a group"),
    ("/help", "You're looking at it"),
    ("/quit", "Quit"),
]


class EndpointRegistrar(Protocol):
    def register_endpoint(self, endpoint: object) -> str: ...

    def unregister_endpoint(self, endpoint: object) -> str: ...


@dataclass
class UiState:
    local_endpoint: Endpoint
    lifetime_s: float
    query: Endpoint | None = None
    peers: set[str] = field(default_factory=set)

    @property
    def prompt(self) -> str:
        me = self.local_endpoint.node_identity
        if self.query is None:
            return f"{me} > "
        return f"{me} >> {self.query.node_identity} > "

    def remember_peer(self, endpoint: Endpoint) -> bool:
        ident = endpoint.node_identity
        if ident in self.peers:
            return False
        self.peers.add(ident)
        return True

    def completions(self, line: str, word: str) -> list[str]:
        words = line.split()
        completing_first = not words or (len(words) == 1 and not line.endswith(" "))
        if completing_first:
            return [cmd for cmd, _ in DTNCHAT_COMMANDS if cmd.startswith(word)]
        if words[0] in ("/query", "/msg") and (
            len(words) == 1 or (len(words) == 2 and not line.endswith(" "))
        ):
            return sorted(p for p in self.peers if p.startswith(word))
        return []


class CommandHandler:
    """Turns one line of user input into session and dispatcher actions."""

    def __init__(
        self,
        ui: UiState,
        session: SessionState,
        *,
        out: Callable[[str], None] = print,
        registrar: EndpointRegistrar | None = None,
        compress: bool = True,
    ) -> None:
        self.ui = ui
        self.session = session
        self.out = out
        self.registrar = registrar
        self.compress = compress
        self.log = logging.getLogger("dtnchat.commands")

    def handle(self, line: str) -> bool:
        """Handle one input line. Returns False when the user asked to quit."""
        cmd, args = split_first_word(line)
        if not cmd:
            return True

        try:
            return self._dispatch(cmd, args, line)
        except InvalidEndpoint as e:
            self.out(f"Invalid endpoint: {e}")
        except InvalidDuration as e:
            self.out(f"Invalid lifetime duration format! ({e})")
        except DtnChatError as e:
            self.out(f"Error: {e}")
        return True

    def _dispatch(self, cmd: str, args: str, line: str) -> bool:
        if cmd == "/help":
            self.out("dtnchat commands:")
            self.out("")
            for name, help_text in DTNCHAT_COMMANDS:
                self.out(f"  {name:15} - {help_text}")
            self.out("")
        elif cmd == "/lifetime":
            self._lifetime(args)
        elif cmd == "/join":
            self._join(args)
        elif cmd == "/leave":
            self._leave(args)
        elif cmd == "/list":
            self.out("currently joined groups:")
            for g in sorted(self.session.groups):
                self.out(f"  {g}")
            self.out("")
        elif cmd == "/query":
            self._query(args)
        elif cmd == "/msg":
            dst_node, msg = split_first_word(args)
            dst = parse(dst_node)
            self.ui.remember_peer(dst)
            self.send(dst, msg)
        elif cmd == "/peers":
            self.out("known peers:")
            for p in sorted(self.ui.peers):
                self.out(f"  {p}")
        elif cmd == "/quit":
            return False
        elif cmd.startswith("/"):
            self.out(f"Unknown command: {line.strip()!r}")
        elif self.session.active_query is None:
            self.out("Please open query first")
        else:
            self.send(self.session.active_query, line)
        return True

    def _lifetime(self, args: str) -> None:
        self.out(f"Current bundle lifetime: {format_duration(self.ui.lifetime_s)}")
        if args.strip():
            self.ui.lifetime_s = parse_duration(args)
            self.out(f"New bundle lifetime: {format_duration(self.ui.lifetime_s)}")

    def _join(self, args: str) -> None:
        dst = parse(args)
        self._register(dst, register=True)
        self.ui.remember_peer(dst)
        self.session.join(dst)

    def _leave(self, args: str) -> None:
        dst = parse(args)
        if self.session.leave(dst):
            self._register(dst, register=False)
            self.ui.peers.discard(dst.node_identity)

    def _register(self, dst: Endpoint, *, register: bool) -> None:
        if self.registrar is None:
            return
        try:
            if register:
                self.registrar.register_endpoint(dst)
            else:
                self.registrar.unregister_endpoint(dst)
        except DtnChatError as e:
            # The subscription itself still goes out over the websocket.
            self.log.warning("Endpoint registration for %s failed: %s", dst, e)

    def _query(self, args: str) -> None:
        target, _ = split_first_word(args)
        if not target:
            self.session.set_query(None)
            self.ui.query = None
            return
        dst = parse(target)
        self.ui.remember_peer(dst)
        self.session.set_query(dst)
        self.ui.query = dst

    def send(self, dst: Endpoint, text: str) -> SendPayload | None:
        if not text.strip():
            self.out("Empty message not sent")
            return None
        try:
            body = sms.encode(text, self.compress)
        except UnexpectedPayload as e:
            self.out(f"Cannot send message: {e}")
            return None
        cmd = SendPayload(
            source=self.ui.local_endpoint,
            destination=dst,
            notify=True,
            lifetime_ms=int(self.ui.lifetime_s * 1000),
            body=body,
        )
        self.session.enqueue(cmd)
        return cmd
