"""The 5-tuple that identifies a client's allocation on the server."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum


class Protocol(IntEnum):
    UDP = 0
    TCP = 1


@dataclass(frozen=True)
class FiveTuple:
    """Transport protocol plus client and server transport addresses."""

    protocol: Protocol
    src_addr: object
    dst_addr: object

    def fingerprint(self) -> str:
        """String identity of this 5-tuple."""
        return f"{int(self.protocol)}_{self.src_addr}_{self.dst_addr}"

    def equal(self, other: "FiveTuple") -> bool:
        """True when both have the same fingerprint."""
        return self.fingerprint() == other.fingerprint()