"""Minimal Bundle Protocol 7 envelope codec.

Only what the chat bridge needs: a primary block and a payload block, CRC-16
and CRC-32C checks, and the daemon's ``/data`` mode send/receive envelopes.
Extension blocks are skipped on decode and never produced.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, replace

from .codec import decode, encode, encode_indefinite_array
from .constants import (
    BP_VERSION,
    BUNDLE_ADMINISTRATIVE_RECORD,
    BUNDLE_IS_FRAGMENT,
    BUNDLE_STATUS_REQUEST_DELIVERY,
    CRC_16,
    CRC_32,
    CRC_NONE,
    D_BID,
    D_DATA,
    D_DELIVERY_NOTIFICATION,
    D_DST,
    D_LIFETIME,
    D_SRC,
    DEFAULT_LIFETIME_S,
    DTN_EPOCH_OFFSET_S,
    PAYLOAD_BLOCK_NUMBER,
    PAYLOAD_BLOCK_TYPE,
)
from .endpoint import Endpoint
from .errors import InvalidEndpoint, MalformedBundle

_seq_lock = threading.Lock()
_last_dtn_time = -1
_last_seq = 0


def dtn_time_now() -> int:
    return int(time.time() * 1000) - DTN_EPOCH_OFFSET_S * 1000


@dataclass(frozen=True)
class CreationTimestamp:
    dtn_time_ms: int
    seq: int = 0

    @classmethod
    def now(cls) -> CreationTimestamp:
        global _last_dtn_time, _last_seq
        with _seq_lock:
            t = dtn_time_now()
            if t == _last_dtn_time:
                _last_seq += 1
            else:
                _last_dtn_time = t
                _last_seq = 0
            return cls(t, _last_seq)

    @property
    def unix_seconds(self) -> int:
        if self.dtn_time_ms == 0:
            return 0
        return self.dtn_time_ms // 1000 + DTN_EPOCH_OFFSET_S

    def to_cbor(self) -> list[int]:
        return [self.dtn_time_ms, self.seq]


@dataclass(frozen=True)
class Bundle:
    source: Endpoint
    destination: Endpoint
    report_to: Endpoint = Endpoint.NONE
    creation_timestamp: CreationTimestamp = CreationTimestamp(0, 0)
    lifetime_ms: int = DEFAULT_LIFETIME_S * 1000
    control_flags: int = 0
    payload: bytes = b""

    @property
    def is_administrative_record(self) -> bool:
        return bool(self.control_flags & BUNDLE_ADMINISTRATIVE_RECORD)

    @property
    def delivery_notification(self) -> bool:
        return bool(self.control_flags & BUNDLE_STATUS_REQUEST_DELIVERY)

    @property
    def bundle_id(self) -> str:
        ts = self.creation_timestamp
        return f"{self.source}-{ts.dtn_time_ms}-{ts.seq}"

    def response(self, payload: bytes, *, lifetime_ms: int | None = None) -> Bundle:
        """A new bundle travelling back from this bundle's destination."""
        return replace(
            self,
            source=self.destination,
            destination=self.source,
            report_to=Endpoint.NONE,
            creation_timestamp=CreationTimestamp.now(),
            lifetime_ms=self.lifetime_ms if lifetime_ms is None else lifetime_ms,
            control_flags=0,
            payload=payload,
        )


# CRC-16/X-25 and CRC-32C as required by RFC 9171 section 4.2.1.


def crc16_x25(data: bytes) -> int:
    crc = 0xFFFF
    for b in data:
        crc ^= b
        for _ in range(8):
            crc = (crc >> 1) ^ 0x8408 if crc & 1 else crc >> 1
    return crc ^ 0xFFFF


def crc32c(data: bytes) -> int:
    crc = 0xFFFFFFFF
    for b in data:
        crc ^= b
        for _ in range(8):
            crc = (crc >> 1) ^ 0x82F63B78 if crc & 1 else crc >> 1
    return crc ^ 0xFFFFFFFF


def _crc_len(crc_type: int) -> int:
    if crc_type == CRC_16:
        return 2
    if crc_type == CRC_32:
        return 4
    return 0


def _crc_value(crc_type: int, data: bytes) -> bytes:
    if crc_type == CRC_16:
        return crc16_x25(data).to_bytes(2, "big")
    if crc_type == CRC_32:
        return crc32c(data).to_bytes(4, "big")
    return b""


def _seal_block(fields: list, crc_type: int) -> list:
    if crc_type == CRC_NONE:
        return fields
    zeroed = fields + [bytes(_crc_len(crc_type))]
    return fields + [_crc_value(crc_type, encode(zeroed))]


def _check_block_crc(block: list, crc_type: int, what: str) -> None:
    if crc_type == CRC_NONE:
        return
    if crc_type not in (CRC_16, CRC_32):
        raise MalformedBundle(f"{what}: unknown crc type {crc_type}")
    crc = block[-1]
    if not isinstance(crc, (bytes, bytearray)) or len(crc) != _crc_len(crc_type):
        raise MalformedBundle(f"{what}: bad crc field")
    zeroed = list(block[:-1]) + [bytes(_crc_len(crc_type))]
    if _crc_value(crc_type, encode(zeroed)) != bytes(crc):
        raise MalformedBundle(f"{what}: crc mismatch")


def encode_bundle(bundle: Bundle, *, crc_type: int = CRC_16) -> bytes:
    primary = _seal_block(
        [
            BP_VERSION,
            int(bundle.control_flags),
            crc_type,
            bundle.destination.to_cbor(),
            bundle.source.to_cbor(),
            bundle.report_to.to_cbor(),
            bundle.creation_timestamp.to_cbor(),
            int(bundle.lifetime_ms),
        ],
        crc_type,
    )
    payload = [
        PAYLOAD_BLOCK_TYPE,
        PAYLOAD_BLOCK_NUMBER,
        0,
        CRC_NONE,
        bytes(bundle.payload),
    ]
    return encode_indefinite_array([primary, payload])


def decode_bundle(data: bytes) -> Bundle:
    try:
        blocks = decode(bytes(data))
    except Exception as e:
        raise MalformedBundle(f"not CBOR: {e}") from e

    if not isinstance(blocks, list) or len(blocks) < 2:
        raise MalformedBundle("bundle must be an array of at least two blocks")

    primary = blocks[0]
    if not isinstance(primary, list) or len(primary) < 8:
        raise MalformedBundle("primary block must be an array of at least 8 items")

    version, flags, crc_type = primary[0], primary[1], primary[2]
    if version != BP_VERSION:
        raise MalformedBundle(f"unsupported bundle version {version!r}")
    if not isinstance(flags, int) or not isinstance(crc_type, int):
        raise MalformedBundle("bundle flags and crc type must be integers")

    expected = 8
    if flags & BUNDLE_IS_FRAGMENT:
        expected += 2
    if crc_type != CRC_NONE:
        expected += 1
    if len(primary) != expected:
        raise MalformedBundle(
            f"primary block has {len(primary)} items, expected {expected}"
        )
    _check_block_crc(primary, crc_type, "primary block")

    try:
        destination = Endpoint.from_cbor(primary[3])
        source = Endpoint.from_cbor(primary[4])
        report_to = Endpoint.from_cbor(primary[5])
    except InvalidEndpoint as e:
        raise MalformedBundle(f"bad endpoint: {e}") from e

    ts = primary[6]
    if not (isinstance(ts, list) and len(ts) == 2 and all(isinstance(x, int) for x in ts)):
        raise MalformedBundle("creation timestamp must be [time, seq]")
    lifetime = primary[7]
    if not isinstance(lifetime, int) or lifetime < 0:
        raise MalformedBundle("lifetime must be an unsigned integer")

    payload = None
    for block in blocks[1:]:
        if not isinstance(block, list) or len(block) < 5:
            raise MalformedBundle("canonical block must be an array of at least 5 items")
        if block[0] != PAYLOAD_BLOCK_TYPE:
            continue
        _check_block_crc(block, block[3], "payload block")
        if not isinstance(block[4], (bytes, bytearray)):
            raise MalformedBundle("payload block data must be a byte string")
        payload = bytes(block[4])
        break

    if payload is None:
        raise MalformedBundle("bundle has no payload block")

    return Bundle(
        source=source,
        destination=destination,
        report_to=report_to,
        creation_timestamp=CreationTimestamp(ts[0], ts[1]),
        lifetime_ms=lifetime,
        control_flags=flags,
        payload=payload,
    )


def encode_send_data(bundle: Bundle) -> bytes:
    """Daemon ``/data`` mode send envelope; the daemon builds the bundle."""
    return encode(
        {
            D_SRC: str(bundle.source),
            D_DST: str(bundle.destination),
            D_DELIVERY_NOTIFICATION: bundle.delivery_notification,
            D_LIFETIME: int(bundle.lifetime_ms),
            D_DATA: bytes(bundle.payload),
        }
    )


def _timestamp_from_bid(bid) -> CreationTimestamp:
    # bundle ids look like "<source>-<dtn time>-<seq>"
    if isinstance(bid, str):
        parts = bid.rsplit("-", 2)
        if len(parts) == 3 and parts[1].isdigit() and parts[2].isdigit():
            return CreationTimestamp(int(parts[1]), int(parts[2]))
    return CreationTimestamp(dtn_time_now(), 0)


def decode_recv_data(data: bytes, *, lifetime_ms: int = DEFAULT_LIFETIME_S * 1000) -> Bundle:
    """Daemon ``/data`` mode receive envelope (``bid``/``src``/``dst``/``data``)."""
    try:
        env = decode(bytes(data))
    except Exception as e:
        raise MalformedBundle(f"not CBOR: {e}") from e

    if not isinstance(env, dict):
        raise MalformedBundle("data envelope must be a CBOR map")
    for k in (D_SRC, D_DST, D_DATA):
        if k not in env:
            raise MalformedBundle(f"missing data envelope key {k!r}")

    src = env[D_SRC]
    dst = env[D_DST]
    payload = env[D_DATA]
    if not isinstance(src, str) or not isinstance(dst, str):
        raise MalformedBundle("data envelope endpoints must be strings")
    if not isinstance(payload, (bytes, bytearray)):
        raise MalformedBundle("data envelope payload must be bytes")

    try:
        source = Endpoint.from_uri(src) if src else Endpoint.NONE
        destination = Endpoint.from_uri(dst)
    except InvalidEndpoint as e:
        raise MalformedBundle(f"bad endpoint: {e}") from e

    return Bundle(
        source=source,
        destination=destination,
        creation_timestamp=_timestamp_from_bid(env.get(D_BID)),
        lifetime_ms=lifetime_ms,
        payload=bytes(payload),
    )
