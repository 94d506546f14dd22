"""Client-side record of permissions created on the TURN server, keyed by peer IP."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Dict, List, Optional

from turnkit.ipnet import UDPAddr


class PermissionState(IntEnum):
    IDLE = 0
    PERMITTED = 1


@dataclass(eq=False)
class ClientPermission:
    """Permission state for one peer IP; ``lock`` serialises its creation."""

    state: PermissionState = PermissionState.IDLE
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)


class PermissionMap:
    """Thread-safe map from peer IP to its permission."""

    def __init__(self) -> None:
        self._perms: Dict[str, ClientPermission] = {}
        self._mutex = threading.Lock()

    def insert(self, addr: object, perm: ClientPermission) -> bool:
        """Store a permission for a UDP address; False for any other address."""
        if not isinstance(addr, UDPAddr):
            return False
        with self._mutex:
            self._perms[str(addr.ip)] = perm
        return True

    def find(self, addr: object) -> Optional[ClientPermission]:
        """Return the permission for the address's IP, or None."""
        if not isinstance(addr, UDPAddr):
            return None
        with self._mutex:
            return self._perms.get(str(addr.ip))

    def delete(self, addr: object) -> None:
        """Remove the permission for the address's IP, if any."""
        if not isinstance(addr, UDPAddr):
            return
        with self._mutex:
            self._perms.pop(str(addr.ip), None)

    def addrs(self) -> List[UDPAddr]:
        """Addresses (port 0) of every permitted IP."""
        with self._mutex:
            return [UDPAddr(ip) for ip in self._perms]

    def __len__(self) -> int:
        with self._mutex:
            return len(self._perms)