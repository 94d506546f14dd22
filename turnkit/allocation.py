"""Server-side allocations with their permissions and channel bindings."""

from __future__ import annotations

import logging
import threading
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from turnkit.errors import SameChannelDifferentPeerError
from turnkit.five_tuple import FiveTuple, Protocol
from turnkit.ipnet import TCPAddr, UDPAddr, addr_equal
from turnkit.stun import (
    TRANSACTION_ID_SIZE,
    AttrType,
    ChannelData,
    Message,
    MessageClass,
    MessageType,
    Method,
    encode_xor_address,
)

PERMISSION_TIMEOUT = 5 * 60.0
RTP_MTU = 1600

_default_log = logging.getLogger("turnkit.allocation")


class _LifetimeTimer:
    """A one-shot timer that can be reset or stopped, like a restartable alarm."""

    def __init__(self, delay: float, callback: Callable[[], None]) -> None:
        self._callback = callback
        self._lock = threading.Lock()
        self._generation = 0
        self._active = False
        self._timer: Optional[threading.Timer] = None
        self._arm(delay)

    def _arm(self, delay: float) -> None:
        self._generation += 1
        generation = self._generation
        self._active = True
        timer = threading.Timer(max(delay, 0.0), self._fire, args=(generation,))
        timer.daemon = True
        self._timer = timer
        timer.start()

    def _fire(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation or not self._active:
                return
            self._active = False
        self._callback()

    def reset(self, delay: float) -> bool:
        """Restart with a new delay; True if the timer had still been pending."""
        with self._lock:
            was_active = self._active
            if self._timer is not None:
                self._timer.cancel()
            self._arm(delay)
            return was_active

    def stop(self) -> bool:
        """Cancel the timer; True if it had still been pending."""
        with self._lock:
            was_active = self._active
            self._active = False
            self._generation += 1
            if self._timer is not None:
                self._timer.cancel()
            return was_active

    @property
    def active(self) -> bool:
        with self._lock:
            return self._active


def _ip_fingerprint(addr: object) -> str:
    if isinstance(addr, (UDPAddr, TCPAddr)):
        return str(addr.ip)
    return ""


def _from_sockaddr(sockaddr: Tuple) -> UDPAddr:
    host = str(sockaddr[0]).split("%", 1)[0]
    return UDPAddr(host, int(sockaddr[1]))


def _to_sockaddr(addr: object) -> Tuple[str, int]:
    if isinstance(addr, (UDPAddr, TCPAddr)):
        return (str(addr.ip), addr.port)
    return addr  # type: ignore[return-value]


class Permission:
    """A TURN permission for one peer IP address."""

    def __init__(self, addr: object, log: Optional[logging.Logger] = None) -> None:
        self.addr = addr
        self.allocation: Optional["Allocation"] = None
        self.lifetime_timer: Optional[_LifetimeTimer] = None
        self._log = log or _default_log

    def _start(self, lifetime: float) -> None:
        def expire() -> None:
            if self.allocation is not None:
                self.allocation.remove_permission(self.addr)

        self.lifetime_timer = _LifetimeTimer(lifetime, expire)

    def refresh(self, lifetime: float) -> None:
        """Extend the permission's lifetime."""
        if self.lifetime_timer is None or not self.lifetime_timer.reset(lifetime):
            five_tuple = self.allocation.five_tuple if self.allocation else None
            self._log.error("Failed to reset permission timer for %s %s", self.addr, five_tuple)


class ChannelBind:
    """A TURN channel: a channel number bound to one peer address."""

    def __init__(self, number: int, peer: object, log: Optional[logging.Logger] = None) -> None:
        self.number = number
        self.peer = peer
        self.allocation: Optional["Allocation"] = None
        self.lifetime_timer: Optional[_LifetimeTimer] = None
        self._log = log or _default_log

    def _start(self, lifetime: float) -> None:
        def expire() -> None:
            allocation = self.allocation
            if allocation is None or not allocation.remove_channel_bind(self.number):
                five_tuple = allocation.five_tuple if allocation else None
                self._log.error(
                    "Failed to remove ChannelBind for %s %s %s", self.number, self.peer, five_tuple
                )

        self.lifetime_timer = _LifetimeTimer(lifetime, expire)

    def refresh(self, lifetime: float) -> None:
        """Extend the channel binding's lifetime."""
        if self.lifetime_timer is None or not self.lifetime_timer.reset(lifetime):
            five_tuple = self.allocation.five_tuple if self.allocation else None
            self._log.error(
                "Failed to reset ChannelBind timer for %s %s %s", self.number, self.peer, five_tuple
            )


class Allocation:
    """Relays traffic for one client 5-tuple through a relay socket."""

    def __init__(
        self,
        turn_socket: object = None,
        five_tuple: Optional[FiveTuple] = None,
        log: Optional[logging.Logger] = None,
    ) -> None:
        self.turn_socket = turn_socket
        self.five_tuple = five_tuple
        self.relay_socket: object = None
        self.relay_addr: object = None
        self.protocol = Protocol.UDP
        self.lifetime_timer: Optional[_LifetimeTimer] = None
        self._log = log or _default_log
        self._permissions: Dict[str, Permission] = {}
        self._permissions_lock = threading.Lock()
        self._channel_bindings: List[ChannelBind] = []
        self._channels_lock = threading.Lock()
        self._closed = threading.Event()
        self._response_cache: Optional[Tuple[bytes, Sequence[object]]] = None
        self._cache_lock = threading.Lock()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def get_permission(self, addr: object) -> Optional[Permission]:
        """Permission for the address's IP, or None."""
        with self._permissions_lock:
            return self._permissions.get(_ip_fingerprint(addr))

    def add_permission(self, permission: Permission) -> None:
        """Add a permission, or refresh the one already held for its IP."""
        fingerprint = _ip_fingerprint(permission.addr)
        with self._permissions_lock:
            existing = self._permissions.get(fingerprint)
        if existing is not None:
            existing.refresh(PERMISSION_TIMEOUT)
            return
        permission.allocation = self
        with self._permissions_lock:
            self._permissions[fingerprint] = permission
        permission._start(PERMISSION_TIMEOUT)

    def remove_permission(self, addr: object) -> None:
        with self._permissions_lock:
            self._permissions.pop(_ip_fingerprint(addr), None)

    def add_channel_bind(self, channel_bind: ChannelBind, lifetime: float) -> None:
        """Add or refresh a channel binding; it also refreshes the peer's permission."""
        by_number = self.get_channel_by_number(channel_bind.number)
        if by_number is not self.get_channel_by_addr(channel_bind.peer):
            raise SameChannelDifferentPeerError()

        if by_number is None:
            with self._channels_lock:
                channel_bind.allocation = self
                self._channel_bindings.append(channel_bind)
                channel_bind._start(lifetime)
            self.add_permission(Permission(channel_bind.peer, self._log))
        else:
            by_number.refresh(lifetime)
            self.add_permission(Permission(by_number.peer, self._log))

    def remove_channel_bind(self, number: int) -> bool:
        """Remove the binding with the number; False if there was none."""
        with self._channels_lock:
            for index in reversed(range(len(self._channel_bindings))):
                if self._channel_bindings[index].number == number:
                    del self._channel_bindings[index]
                    return True
        return False

    def get_channel_by_number(self, number: int) -> Optional[ChannelBind]:
        with self._channels_lock:
            return next((cb for cb in self._channel_bindings if cb.number == number), None)

    def get_channel_by_addr(self, addr: object) -> Optional[ChannelBind]:
        with self._channels_lock:
            return next((cb for cb in self._channel_bindings if addr_equal(cb.peer, addr)), None)

    def start_lifetime(self, lifetime: float, on_expired: Callable[[], None]) -> None:
        """Arm the allocation's lifetime timer."""
        if self.lifetime_timer is not None:
            self.lifetime_timer.stop()
        self.lifetime_timer = _LifetimeTimer(lifetime, on_expired)

    def refresh(self, lifetime: float) -> None:
        """Restart the lifetime timer with a new lifetime."""
        if self.lifetime_timer is None or not self.lifetime_timer.reset(lifetime):
            self._log.error("Failed to reset allocation timer for %s", self.five_tuple)

    def set_response_cache(self, transaction_id: bytes, attrs: Sequence[object]) -> None:
        """Remember the response so a retransmitted request can be answered again."""
        with self._cache_lock:
            self._response_cache = (bytes(transaction_id), attrs)

    def get_response_cache(self) -> Tuple[bytes, Optional[Sequence[object]]]:
        """The cached transaction ID and attributes; a zero ID and None if unset."""
        with self._cache_lock:
            if self._response_cache is None:
                return bytes(TRANSACTION_ID_SIZE), None
            return self._response_cache

    def close(self) -> None:
        """Stop every timer and close the relay socket; later calls do nothing."""
        if self._closed.is_set():
            return
        self._closed.set()

        if self.lifetime_timer is not None:
            self.lifetime_timer.stop()
        with self._permissions_lock:
            permissions = list(self._permissions.values())
        for permission in permissions:
            if permission.lifetime_timer is not None:
                permission.lifetime_timer.stop()
        with self._channels_lock:
            channels = list(self._channel_bindings)
        for channel in channels:
            if channel.lifetime_timer is not None:
                channel.lifetime_timer.stop()

        if self.relay_socket is not None:
            self.relay_socket.close()

    def _send_to_client(self, data: bytes) -> None:
        assert self.five_tuple is not None
        self.turn_socket.sendto(data, _to_sockaddr(self.five_tuple.src_addr))

    def packet_handler(self, on_read_error: Optional[Callable[[], None]]) -> None:
        """Relay datagrams from the relay socket to the client until reading fails."""
        while True:
            try:
                data, sockaddr = self.relay_socket.recvfrom(RTP_MTU)
            except OSError:
                if on_read_error is not None:
                    on_read_error()
                return
            if self._closed.is_set():
                return

            src_addr = _from_sockaddr(sockaddr)
            self._log.debug("relay socket received %d bytes from %s", len(data), src_addr)

            channel = self.get_channel_by_addr(src_addr)
            if channel is not None:
                try:
                    self._send_to_client(ChannelData(channel.number, data).encode())
                except OSError as exc:
                    self._log.error("Failed to send ChannelData from allocation %s %s", src_addr, exc)
            elif self.get_permission(src_addr) is not None:
                msg = Message(MessageType(Method.DATA, MessageClass.INDICATION))
                msg.add(
                    AttrType.XOR_PEER_ADDRESS,
                    encode_xor_address(src_addr.ip, src_addr.port, msg.transaction_id),
                )
                msg.add(AttrType.DATA, data)
                self._log.debug(
                    "relaying message from %s to client at %s", src_addr, self.five_tuple.src_addr
                )
                try:
                    self._send_to_client(msg.encode())
                except OSError as exc:
                    self._log.error("Failed to send DataIndication from allocation %s %s", src_addr, exc)
            else:
                self._log.info(
                    "No Permission or Channel exists for %s on allocation %s", src_addr, self.relay_addr
                )