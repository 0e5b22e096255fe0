"""dtnchat: SMS-style chat and an Eliza bot over a DTN daemon's WebSocket."""

__version__ = "0.1.0"
