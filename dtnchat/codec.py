from __future__ import annotations

from collections.abc import Iterable

import cbor2

_INDEFINITE_ARRAY = b"\x9f"
_BREAK = b"\xff"


def encode(obj) -> bytes:
    return cbor2.dumps(obj)


def decode(b: bytes):
    return cbor2.loads(b)


def encode_indefinite_array(items: Iterable) -> bytes:
    # BPv7 frames a bundle as an indefinite-length array of blocks, which
    # cbor2 does not emit on its own.
    return _INDEFINITE_ARRAY + b"".join(cbor2.dumps(item) for item in items) + _BREAK
