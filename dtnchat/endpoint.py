from __future__ import annotations

import re
from dataclasses import dataclass
from typing import ClassVar

from .constants import (
    NO_NOTIFY_MARKER,
    SCHEME_CODE_DTN,
    SCHEME_CODE_IPN,
    SCHEME_DTN,
    SCHEME_IPN,
    SMS_SERVICE_NAME,
    SMS_SERVICE_NUMBER,
)
from .errors import InvalidEndpoint

_NODE_NAME_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")
_SERVICE_NAME_RE = re.compile(r"^[A-Za-z0-9._~!$&'()*+,;=:@%/-]*$")
_IPN_RE = re.compile(r"^ipn:(?://)?(\d+)\.(\d+)$")

_NONE_URI = "dtn:none"


@dataclass(frozen=True)
class Endpoint:
    """A node + service address in the ``dtn`` or ``ipn`` naming scheme.

    ``dtn`` endpoints carry a string authority and service name
    (``dtn://node/service``), ``ipn`` endpoints a node and service number
    (``ipn:node.service``). ``Endpoint.NONE`` is ``dtn:none``.
    """

    scheme: str
    node: str | int
    service: str | int = ""

    NONE: ClassVar[Endpoint]

    @classmethod
    def dtn(cls, node: str, service: str = SMS_SERVICE_NAME) -> Endpoint:
        if not _NODE_NAME_RE.match(node):
            raise InvalidEndpoint(f"invalid node name {node!r}")
        if not _SERVICE_NAME_RE.match(service):
            raise InvalidEndpoint(f"invalid service name {service!r}")
        return cls(SCHEME_DTN, node, service)

    @classmethod
    def ipn(cls, node: int, service: int = SMS_SERVICE_NUMBER) -> Endpoint:
        if node < 0 or service < 0:
            raise InvalidEndpoint("ipn node and service numbers must be unsigned")
        return cls(SCHEME_IPN, int(node), int(service))

    @classmethod
    def from_uri(cls, uri: str) -> Endpoint:
        s = uri.strip()
        if s == _NONE_URI:
            return cls.NONE

        if s.startswith("dtn://"):
            rest = s[len("dtn://"):]
            node, sep, service = rest.partition("/")
            if not node:
                raise InvalidEndpoint(f"missing node name in {uri!r}")
            return cls.dtn(node, service if sep else "")

        m = _IPN_RE.match(s)
        if m:
            return cls.ipn(int(m.group(1)), int(m.group(2)))

        raise InvalidEndpoint(f"unsupported endpoint {uri!r}")

    @classmethod
    def for_node(cls, node_id: str | Endpoint) -> Endpoint:
        """Derive the local chat endpoint from a daemon node id."""
        node = node_id if isinstance(node_id, Endpoint) else cls.from_uri(node_id)
        if node.is_none:
            raise InvalidEndpoint("node id must not be dtn:none")
        if node.scheme == SCHEME_IPN:
            return cls.ipn(int(node.node), SMS_SERVICE_NUMBER)
        return cls.dtn(str(node.node), SMS_SERVICE_NAME)

    @property
    def is_none(self) -> bool:
        return self == Endpoint.NONE

    @property
    def node_identity(self) -> str:
        if self.is_none:
            return "none"
        return str(self.node)

    @property
    def suppresses_notifications(self) -> bool:
        return NO_NOTIFY_MARKER in str(self)

    def with_service(self, service: str | int) -> Endpoint:
        if self.scheme == SCHEME_IPN:
            return Endpoint.ipn(int(self.node), int(service))
        return Endpoint.dtn(str(self.node), str(service))

    def to_cbor(self) -> list:
        if self.is_none:
            return [SCHEME_CODE_DTN, 0]
        if self.scheme == SCHEME_IPN:
            return [SCHEME_CODE_IPN, [int(self.node), int(self.service)]]
        return [SCHEME_CODE_DTN, f"//{self.node}/{self.service}"]

    @classmethod
    def from_cbor(cls, value) -> Endpoint:
        if not isinstance(value, list) or len(value) != 2:
            raise InvalidEndpoint("endpoint must be a two element array")
        code, ssp = value
        if code == SCHEME_CODE_DTN:
            if ssp == 0:
                return cls.NONE
            if isinstance(ssp, str):
                return cls.from_uri(f"dtn:{ssp}")
        elif code == SCHEME_CODE_IPN:
            if (
                isinstance(ssp, list)
                and len(ssp) == 2
                and all(isinstance(x, int) for x in ssp)
            ):
                return cls.ipn(ssp[0], ssp[1])
        raise InvalidEndpoint(f"unsupported endpoint encoding {value!r}")

    def __str__(self) -> str:
        return format_endpoint(self)


Endpoint.NONE = Endpoint(SCHEME_DTN, "none", "")


def parse(text: str) -> Endpoint:
    """Parse user input into an Endpoint.

    Numbers become ``ipn:<n>.767``, bare node names ``dtn://<name>/sms``; full
    URIs are taken as given.
    """
    s = text.strip()
    if not s:
        raise InvalidEndpoint("empty endpoint")
    if ":" in s:
        return Endpoint.from_uri(s)
    if s.isdigit():
        return Endpoint.ipn(int(s))
    if _NODE_NAME_RE.match(s):
        return Endpoint.dtn(s)
    raise InvalidEndpoint(f"invalid endpoint {text!r}")


def format_endpoint(ep: Endpoint) -> str:
    if ep.scheme == SCHEME_DTN and ep.node == "none" and ep.service == "":
        return _NONE_URI
    if ep.scheme == SCHEME_IPN:
        return f"ipn:{ep.node}.{ep.service}"
    return f"dtn://{ep.node}/{ep.service}"


def node_identity(ep: Endpoint) -> str:
    return ep.node_identity
