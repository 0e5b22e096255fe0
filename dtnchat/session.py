from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field

from .constants import CMD_SUBSCRIBE, CMD_UNSUBSCRIBE
from .dispatcher import OutboundCommand, RawText
from .endpoint import Endpoint


@dataclass
class SessionState:
    """
    Subscription bookkeeping for one daemon connection.

    The daemon is authoritative for subscriptions; the sets here only feed
    the UI. Owned by the command-processing thread and discarded on
    disconnect.
    """

    local_endpoint: Endpoint
    enqueue: Callable[[OutboundCommand], None]
    subscribed_endpoints: set[str] = field(default_factory=set)
    groups: set[str] = field(default_factory=set)
    active_query: Endpoint | None = None
    mode_negotiated: bool = False
    subscribed: bool = False

    def __post_init__(self) -> None:
        self.log = logging.getLogger("dtnchat.session")

    def mark_mode_negotiated(self) -> None:
        self.mode_negotiated = True

    def mark_subscribed(self) -> None:
        self.subscribed = True

    def join(self, endpoint: Endpoint) -> None:
        ident = endpoint.node_identity
        self.enqueue(RawText(f"{CMD_SUBSCRIBE} {endpoint}"))
        self.groups.add(ident)
        self.subscribed_endpoints.add(ident)
        self.log.info("Joined %s", endpoint)

    def leave(self, endpoint: Endpoint) -> bool:
        """Unsubscribe from ``endpoint``; returns False for the local node."""
        ident = endpoint.node_identity
        if ident == self.local_endpoint.node_identity:
            self.log.debug("Ignoring leave of local node %s", ident)
            return False
        self.enqueue(RawText(f"{CMD_UNSUBSCRIBE} {endpoint}"))
        self.groups.discard(ident)
        self.subscribed_endpoints.discard(ident)
        self.log.info("Left %s", endpoint)
        return True

    def set_query(self, endpoint: Endpoint | None) -> None:
        self.active_query = endpoint
