"""Error types raised by the dtnchat protocol bridge."""

from __future__ import annotations


class DtnChatError(Exception):
    """Base class for every dtnchat error."""


class FatalStartup(DtnChatError):
    """The daemon session could not be established or registered."""


class ProtocolViolation(DtnChatError):
    """Unexpected control-frame content from the daemon."""


class MalformedBundle(DtnChatError):
    """Raw bytes could not be decoded into a bundle envelope."""


class UnexpectedPayload(DtnChatError):
    """A bundle payload does not follow the SMS convention."""


class MalformedPayload(UnexpectedPayload):
    pass


class PayloadConstructionError(DtnChatError):
    """An outgoing bundle could not be built."""


class InvalidEndpoint(DtnChatError, ValueError):
    pass


class InvalidDuration(DtnChatError, ValueError):
    pass


class TransportError(DtnChatError):
    """The WebSocket or REST connection to the daemon failed."""
