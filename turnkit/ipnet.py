"""Transport addresses and helpers to compare them."""

from __future__ import annotations

import ipaddress
from dataclasses import dataclass
from typing import ClassVar, Optional, Tuple, Union

from turnkit.errors import AddrCastError

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]


def _to_ip(value: object) -> Optional[IPAddress]:
    if value is None:
        return None
    ip = value if isinstance(value, (ipaddress.IPv4Address, ipaddress.IPv6Address)) else ipaddress.ip_address(value)
    if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is not None:
        return ip.ipv4_mapped
    return ip


def _format(ip: Optional[IPAddress], port: int) -> str:
    if ip is None:
        return f":{port}"
    if isinstance(ip, ipaddress.IPv6Address):
        return f"[{ip}]:{port}"
    return f"{ip}:{port}"


@dataclass(frozen=True)
class UDPAddr:
    """A UDP transport address; IPv4-mapped IPv6 addresses are stored as IPv4."""

    ip: Optional[IPAddress] = None
    port: int = 0
    network: ClassVar[str] = "udp"

    def __post_init__(self) -> None:
        object.__setattr__(self, "ip", _to_ip(self.ip))

    def __str__(self) -> str:
        return _format(self.ip, self.port)


@dataclass(frozen=True)
class TCPAddr:
    """A TCP transport address; IPv4-mapped IPv6 addresses are stored as IPv4."""

    ip: Optional[IPAddress] = None
    port: int = 0
    network: ClassVar[str] = "tcp"

    def __post_init__(self) -> None:
        object.__setattr__(self, "ip", _to_ip(self.ip))

    def __str__(self) -> str:
        return _format(self.ip, self.port)


def addr_ip_port(addr: object) -> Tuple[Optional[IPAddress], int]:
    """Return the IP and port of a UDP or TCP address."""
    if isinstance(addr, (UDPAddr, TCPAddr)):
        return addr.ip, addr.port
    raise AddrCastError()


def addr_equal(a: object, b: object) -> bool:
    """True when both are UDP addresses with the same IP and port."""
    if not isinstance(a, UDPAddr) or not isinstance(b, UDPAddr):
        return False
    return a.ip == b.ip and a.port == b.port