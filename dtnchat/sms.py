"""SMS-over-bundle payload convention: ``[compressed, body]`` in CBOR."""

from __future__ import annotations

import zlib

from .codec import decode as cbor_decode
from .codec import encode as cbor_encode
from .constants import SMS_KEY_COMP, SMS_KEY_DATA
from .errors import MalformedPayload


def encode(text: str, compress: bool = True) -> bytes:
    msg = text.strip()
    if not msg:
        raise MalformedPayload("message must not be empty")
    body = msg.encode("utf-8")
    if compress:
        body = zlib.compress(body)
    return cbor_encode([bool(compress), body])


def decode(data: bytes) -> tuple[bool, str]:
    try:
        obj = cbor_decode(bytes(data))
    except Exception as e:
        raise MalformedPayload(f"payload is not CBOR: {e}") from e

    if isinstance(obj, list) and len(obj) == 2:
        compressed, body = obj
    elif isinstance(obj, dict) and SMS_KEY_COMP in obj and SMS_KEY_DATA in obj:
        compressed, body = obj[SMS_KEY_COMP], obj[SMS_KEY_DATA]
    else:
        raise MalformedPayload("payload must be a [compressed, body] pair")

    if not isinstance(compressed, bool):
        raise MalformedPayload("compression flag must be a boolean")
    if not isinstance(body, (bytes, bytearray)):
        raise MalformedPayload("message body must be a byte string")

    raw = bytes(body)
    if compressed:
        try:
            raw = zlib.decompress(raw)
        except zlib.error as e:
            raise MalformedPayload(f"body flagged compressed but is not: {e}") from e

    try:
        text = raw.decode("utf-8", "strict")
    except UnicodeDecodeError as e:
        raise MalformedPayload(f"message body is not UTF-8: {e}") from e

    return compressed, text
