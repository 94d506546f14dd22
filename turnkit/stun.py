"""STUN message and TURN ChannelData encoding and decoding."""

from __future__ import annotations

import base64
import hashlib
import hmac
import ipaddress
import os
import struct
import zlib
from dataclasses import dataclass, field
from enum import IntEnum
from typing import List, Tuple, Union

from turnkit.errors import FailedToDecodeSTUNError

MAGIC_COOKIE = 0x2112A442
HEADER_SIZE = 20
TRANSACTION_ID_SIZE = 12
FINGERPRINT_XOR = 0x5354554E
CODE_STALE_NONCE = 438
PROTO_UDP = 17
MIN_CHANNEL_NUMBER = 0x4000
MAX_CHANNEL_NUMBER = 0x7FFF
CHANNEL_DATA_HEADER_SIZE = 4

_ATTR_HEADER_SIZE = 4
_INTEGRITY_SIZE = 20
_FINGERPRINT_SIZE = 4

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]


class Method(IntEnum):
    BINDING = 0x001
    ALLOCATE = 0x003
    REFRESH = 0x004
    SEND = 0x006
    DATA = 0x007
    CREATE_PERMISSION = 0x008
    CHANNEL_BIND = 0x009

    def __str__(self) -> str:
        return self.name.title().replace("_", "")


class MessageClass(IntEnum):
    REQUEST = 0
    INDICATION = 1
    SUCCESS_RESPONSE = 2
    ERROR_RESPONSE = 3

    def __str__(self) -> str:
        return self.name.lower().replace("_", " ")


class AttrType(IntEnum):
    MAPPED_ADDRESS = 0x0001
    USERNAME = 0x0006
    MESSAGE_INTEGRITY = 0x0008
    ERROR_CODE = 0x0009
    CHANNEL_NUMBER = 0x000C
    LIFETIME = 0x000D
    XOR_PEER_ADDRESS = 0x0012
    DATA = 0x0013
    REALM = 0x0014
    NONCE = 0x0015
    XOR_RELAYED_ADDRESS = 0x0016
    REQUESTED_TRANSPORT = 0x0019
    XOR_MAPPED_ADDRESS = 0x0020
    SOFTWARE = 0x8022
    FINGERPRINT = 0x8028


@dataclass(frozen=True)
class MessageType:
    """Method and class of a STUN message."""

    method: Union[Method, int]
    message_class: MessageClass

    @property
    def value(self) -> int:
        """The 14-bit message type as it appears on the wire."""
        m = int(self.method)
        c = int(self.message_class)
        return (
            (m & 0x000F)
            | ((m & 0x0070) << 1)
            | ((m & 0x0F80) << 2)
            | ((c & 0x1) << 4)
            | ((c & 0x2) << 7)
        )

    @classmethod
    def from_value(cls, value: int) -> "MessageType":
        """Split a wire message type into method and class."""
        m = (value & 0x000F) | ((value >> 1) & 0x0070) | ((value >> 2) & 0x0F80)
        c = ((value >> 4) & 0x1) | ((value >> 7) & 0x2)
        try:
            method: Union[Method, int] = Method(m)
        except ValueError:
            method = m
        return cls(method, MessageClass(c))

    def __str__(self) -> str:
        method = str(self.method) if isinstance(self.method, Method) else f"0x{self.method:x}"
        return f"{method} {self.message_class}"


def new_transaction_id() -> bytes:
    """A random 96-bit transaction ID."""
    return os.urandom(TRANSACTION_ID_SIZE)


def _padded(length: int) -> int:
    return (length + 3) & ~3


def _encode_attr(attr_type: int, value: bytes) -> bytes:
    pad = _padded(len(value)) - len(value)
    return struct.pack("!HH", int(attr_type), len(value)) + value + b"\x00" * pad


@dataclass
class Message:
    """A STUN message: type, transaction ID and an ordered list of attributes."""

    type: MessageType
    transaction_id: bytes = field(default_factory=new_transaction_id)
    attributes: List[Tuple[int, bytes]] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.transaction_id = bytes(self.transaction_id)
        if len(self.transaction_id) != TRANSACTION_ID_SIZE:
            raise ValueError("transaction ID must be 12 bytes")

    def add(self, attr_type: int, value: bytes) -> None:
        """Append an attribute."""
        self.attributes.append((int(attr_type), bytes(value)))

    def get(self, attr_type: int) -> bytes:
        """Value of the first attribute of the type; KeyError if absent."""
        for found_type, value in self.attributes:
            if found_type == attr_type:
                return value
        raise KeyError(attr_type)

    def __contains__(self, attr_type: object) -> bool:
        return any(found_type == attr_type for found_type, _ in self.attributes)

    def _header(self, body_length: int) -> bytes:
        return struct.pack("!HHI", self.type.value, body_length, MAGIC_COOKIE) + self.transaction_id

    def encode(self, integrity_key: bytes | None = None, fingerprint: bool = False) -> bytes:
        """Serialise, optionally appending MESSAGE-INTEGRITY and FINGERPRINT."""
        body = b"".join(_encode_attr(t, v) for t, v in self.attributes)
        if integrity_key is not None:
            header = self._header(len(body) + _ATTR_HEADER_SIZE + _INTEGRITY_SIZE)
            mac = hmac.new(bytes(integrity_key), header + body, hashlib.sha1).digest()
            body += _encode_attr(AttrType.MESSAGE_INTEGRITY, mac)
        if fingerprint:
            header = self._header(len(body) + _ATTR_HEADER_SIZE + _FINGERPRINT_SIZE)
            crc = (zlib.crc32(header + body) ^ FINGERPRINT_XOR) & 0xFFFFFFFF
            body += _encode_attr(AttrType.FINGERPRINT, struct.pack("!I", crc))
        return self._header(len(body)) + body

    def __str__(self) -> str:
        tid = base64.b64encode(self.transaction_id).decode("ascii")
        return f"{self.type} attrs={len(self.attributes)} id={tid}"


def is_message(data: bytes) -> bool:
    """True if the data starts like a STUN message."""
    return len(data) >= HEADER_SIZE and struct.unpack_from("!I", data, 4)[0] == MAGIC_COOKIE


def decode_message(data: bytes) -> Message:
    """Parse a STUN message; raises FailedToDecodeSTUNError when malformed."""
    data = bytes(data)
    if len(data) < HEADER_SIZE:
        raise FailedToDecodeSTUNError("message is shorter than the header")
    raw_type, length, cookie = struct.unpack_from("!HHI", data)
    if cookie != MAGIC_COOKIE:
        raise FailedToDecodeSTUNError(f"bad magic cookie 0x{cookie:08x}")
    end = HEADER_SIZE + length
    if len(data) < end:
        raise FailedToDecodeSTUNError("message is shorter than its length field")
    attributes: List[Tuple[int, bytes]] = []
    offset = HEADER_SIZE
    while offset < end:
        if end - offset < _ATTR_HEADER_SIZE:
            raise FailedToDecodeSTUNError("truncated attribute header")
        attr_type, attr_len = struct.unpack_from("!HH", data, offset)
        offset += _ATTR_HEADER_SIZE
        if end - offset < _padded(attr_len):
            raise FailedToDecodeSTUNError("truncated attribute value")
        attributes.append((attr_type, data[offset:offset + attr_len]))
        offset += _padded(attr_len)
    return Message(MessageType.from_value(raw_type), data[8:HEADER_SIZE], attributes)


@dataclass
class ChannelData:
    """A TURN ChannelData frame: channel number and application data."""

    number: int
    data: bytes

    def encode(self) -> bytes:
        """Serialise with header and padding to a 4-byte boundary."""
        raw = struct.pack("!HH", self.number, len(self.data)) + bytes(self.data)
        return raw + b"\x00" * (_padded(len(raw)) - len(raw))


def _valid_channel_number(number: int) -> bool:
    return MIN_CHANNEL_NUMBER <= number <= MAX_CHANNEL_NUMBER


def is_channel_data(data: bytes) -> bool:
    """True if the data is a well-formed ChannelData frame header."""
    if len(data) < CHANNEL_DATA_HEADER_SIZE:
        return False
    number, length = struct.unpack_from("!HH", data)
    if length > len(data) - CHANNEL_DATA_HEADER_SIZE:
        return False
    return _valid_channel_number(number)


def decode_channel_data(data: bytes) -> ChannelData:
    """Parse a ChannelData frame; raises ValueError when malformed."""
    if len(data) < CHANNEL_DATA_HEADER_SIZE:
        raise ValueError("channel data is shorter than its header")
    number, length = struct.unpack_from("!HH", data)
    if not _valid_channel_number(number):
        raise ValueError(f"invalid channel number 0x{number:04x}")
    if length > len(data) - CHANNEL_DATA_HEADER_SIZE:
        raise ValueError("bad channel data length")
    start = CHANNEL_DATA_HEADER_SIZE
    return ChannelData(number, bytes(data[start:start + length]))


def _as_ip(ip: object) -> IPAddress:
    addr = ip if isinstance(ip, (ipaddress.IPv4Address, ipaddress.IPv6Address)) else ipaddress.ip_address(ip)
    if isinstance(addr, ipaddress.IPv6Address) and addr.ipv4_mapped is not None:
        return addr.ipv4_mapped
    return addr


def _xor_mask(transaction_id: bytes) -> bytes:
    return struct.pack("!I", MAGIC_COOKIE) + bytes(transaction_id)


def encode_xor_address(ip: object, port: int, transaction_id: bytes) -> bytes:
    """Value of an XOR-*-ADDRESS attribute."""
    addr = _as_ip(ip)
    family = 0x01 if addr.version == 4 else 0x02
    mask = _xor_mask(transaction_id)
    xored = bytes(a ^ b for a, b in zip(addr.packed, mask))
    return struct.pack("!BBH", 0, family, port ^ (MAGIC_COOKIE >> 16)) + xored


def decode_xor_address(value: bytes, transaction_id: bytes) -> Tuple[IPAddress, int]:
    """Parse an XOR-*-ADDRESS attribute value into (ip, port)."""
    if len(value) < 4:
        raise ValueError("address attribute is too short")
    _, family, xport = struct.unpack_from("!BBH", value)
    size = {0x01: 4, 0x02: 16}.get(family)
    if size is None:
        raise ValueError(f"unknown address family {family}")
    if len(value) < 4 + size:
        raise ValueError("address attribute is too short")
    mask = _xor_mask(transaction_id)
    packed = bytes(a ^ b for a, b in zip(value[4:4 + size], mask))
    return ipaddress.ip_address(packed), xport ^ (MAGIC_COOKIE >> 16)


def encode_error_code(code: int, reason: str) -> bytes:
    """Value of an ERROR-CODE attribute."""
    return struct.pack("!HBB", 0, code // 100, code % 100) + reason.encode("utf-8")


def decode_error_code(value: bytes) -> Tuple[int, str]:
    """Parse an ERROR-CODE attribute value into (code, reason)."""
    if len(value) < 4:
        raise ValueError("error code attribute is too short")
    _, klass, number = struct.unpack_from("!HBB", value)
    return (klass & 0x07) * 100 + number, bytes(value[4:]).decode("utf-8", errors="replace")


def long_term_key(username: str, realm: str, password: str) -> bytes:
    """Key for the long-term credential mechanism: MD5 of user:realm:password."""
    return hashlib.md5(f"{username}:{realm}:{password}".encode("utf-8")).digest()