"""Client-side channel bindings and the manager that numbers them."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Dict, Optional

MIN_CHANNEL_NUMBER = 0x4000
MAX_CHANNEL_NUMBER = 0x7FFF


class BindingState(IntEnum):
    IDLE = 0
    REQUEST = 1
    READY = 2
    REFRESH = 3
    FAILED = 4


@dataclass(eq=False)
class Binding:
    """A channel number bound to one peer address."""

    number: int
    addr: object
    manager: Optional["BindingManager"] = field(default=None, repr=False)
    state: BindingState = BindingState.IDLE
    refreshed_at: float = field(default_factory=time.monotonic)
    bind_lock: threading.Lock = field(default_factory=threading.Lock, repr=False)


class BindingManager:
    """Thread-safe map of bindings by channel number and by peer address."""

    def __init__(self) -> None:
        self._by_number: Dict[int, Binding] = {}
        self._by_addr: Dict[str, Binding] = {}
        self.next_number = MIN_CHANNEL_NUMBER
        self._mutex = threading.Lock()

    def assign_channel_number(self) -> int:
        """Return the next channel number, wrapping from the maximum to the minimum."""
        number = self.next_number
        self.next_number = MIN_CHANNEL_NUMBER if number == MAX_CHANNEL_NUMBER else number + 1
        return number

    def create(self, addr: object) -> Binding:
        """Create and register a binding for the address."""
        with self._mutex:
            binding = Binding(number=self.assign_channel_number(), addr=addr, manager=self)
            self._by_number[binding.number] = binding
            self._by_addr[str(addr)] = binding
            return binding

    def find_by_addr(self, addr: object) -> Optional[Binding]:
        with self._mutex:
            return self._by_addr.get(str(addr))

    def find_by_number(self, number: int) -> Optional[Binding]:
        with self._mutex:
            return self._by_number.get(number)

    def delete_by_addr(self, addr: object) -> bool:
        """Remove the binding for the address; False if there was none."""
        with self._mutex:
            binding = self._by_addr.pop(str(addr), None)
            if binding is None:
                return False
            self._by_number.pop(binding.number, None)
            return True

    def delete_by_number(self, number: int) -> bool:
        """Remove the binding with the number; False if there was none."""
        with self._mutex:
            binding = self._by_number.pop(number, None)
            if binding is None:
                return False
            self._by_addr.pop(str(binding.addr), None)
            return True

    def size(self) -> int:
        with self._mutex:
            return len(self._by_number)