import socket
import threading
import time

import pytest

from turnkit.allocation import Allocation, ChannelBind, Permission
from turnkit.errors import SameChannelDifferentPeerError
from turnkit.five_tuple import FiveTuple, Protocol
from turnkit.ipnet import UDPAddr
from turnkit.stun import (
    MIN_CHANNEL_NUMBER,
    AttrType,
    decode_channel_data,
    decode_message,
    decode_xor_address,
    is_channel_data,
    is_message,
)

DEFAULT_LIFETIME = 600.0


@pytest.fixture
def allocation():
    a = Allocation()
    yield a
    a.close()


def _udp_socket():
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    sock.bind(("127.0.0.1", 0))
    return sock


def _addr_of(sock):
    host, port = sock.getsockname()
    return UDPAddr(host, port)


def test_get_permission(allocation):
    addr = UDPAddr("127.0.0.1", 3478)
    addr2 = UDPAddr("127.0.0.1", 3479)
    addr3 = UDPAddr("127.0.0.2", 3478)
    p, p2, p3 = Permission(addr), Permission(addr2), Permission(addr3)

    allocation.add_permission(p)
    allocation.add_permission(p2)
    allocation.add_permission(p3)

    assert allocation.get_permission(addr) is p
    assert allocation.get_permission(addr2) is p
    assert allocation.get_permission(addr3) is p3


def test_add_permission(allocation):
    p = Permission(UDPAddr("127.0.0.1", 3478))
    allocation.add_permission(p)
    assert p.allocation is allocation
    assert allocation.get_permission(p.addr) is p


def test_remove_permission(allocation):
    p = Permission(UDPAddr("127.0.0.1", 3478))
    allocation.add_permission(p)
    assert allocation.get_permission(p.addr) is p
    allocation.remove_permission(p.addr)
    assert allocation.get_permission(p.addr) is None


def test_permission_expires():
    a = Allocation()
    p = Permission(UDPAddr("127.0.0.1", 3478))
    p.allocation = a
    with a._permissions_lock:
        a._permissions["127.0.0.1"] = p
    p._start(0.1)
    time.sleep(0.4)
    assert a.get_permission(p.addr) is None
    a.close()


def test_add_channel_bind(allocation):
    addr = UDPAddr("127.0.0.1", 3478)
    c = ChannelBind(MIN_CHANNEL_NUMBER, addr)
    allocation.add_channel_bind(c, DEFAULT_LIFETIME)
    assert c.allocation is allocation
    assert allocation.get_permission(addr) is not None
    assert allocation.get_permission(addr).addr == addr

    c2 = ChannelBind(MIN_CHANNEL_NUMBER + 1, addr)
    with pytest.raises(SameChannelDifferentPeerError):
        allocation.add_channel_bind(c2, DEFAULT_LIFETIME)

    c3 = ChannelBind(MIN_CHANNEL_NUMBER, UDPAddr("127.0.0.1", 3479))
    with pytest.raises(SameChannelDifferentPeerError):
        allocation.add_channel_bind(c3, DEFAULT_LIFETIME)


def test_add_same_channel_bind_refreshes(allocation):
    addr = UDPAddr("127.0.0.1", 3478)
    c = ChannelBind(MIN_CHANNEL_NUMBER, addr)
    allocation.add_channel_bind(c, DEFAULT_LIFETIME)
    allocation.add_channel_bind(ChannelBind(MIN_CHANNEL_NUMBER, addr), DEFAULT_LIFETIME)
    assert allocation.get_channel_by_number(MIN_CHANNEL_NUMBER) is c


def test_get_channel_by_number(allocation):
    c = ChannelBind(MIN_CHANNEL_NUMBER, UDPAddr("127.0.0.1", 3478))
    allocation.add_channel_bind(c, DEFAULT_LIFETIME)
    assert allocation.get_channel_by_number(c.number) is c
    assert allocation.get_channel_by_number(MIN_CHANNEL_NUMBER + 1) is None


def test_get_channel_by_addr(allocation):
    c = ChannelBind(MIN_CHANNEL_NUMBER, UDPAddr("127.0.0.1", 3478))
    allocation.add_channel_bind(c, DEFAULT_LIFETIME)
    assert allocation.get_channel_by_addr(c.peer) is c
    assert allocation.get_channel_by_addr(UDPAddr("127.0.0.1", 3479)) is None


def test_remove_channel_bind(allocation):
    c = ChannelBind(MIN_CHANNEL_NUMBER, UDPAddr("127.0.0.1", 3478))
    allocation.add_channel_bind(c, DEFAULT_LIFETIME)
    assert allocation.remove_channel_bind(c.number) is True
    assert allocation.get_channel_by_number(c.number) is None
    assert allocation.get_channel_by_addr(c.peer) is None
    assert allocation.remove_channel_bind(c.number) is False


def test_refresh(allocation):
    expired = threading.Event()
    allocation.start_lifetime(DEFAULT_LIFETIME, expired.set)
    allocation.refresh(0)
    assert expired.wait(2.0)
    assert allocation.lifetime_timer.stop() is False


def test_close():
    relay = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    relay.bind(("0.0.0.0", 0))
    a = Allocation()
    a.relay_socket = relay
    a.start_lifetime(DEFAULT_LIFETIME, lambda: None)

    addr = UDPAddr("127.0.0.1", 3478)
    c = ChannelBind(MIN_CHANNEL_NUMBER, addr)
    a.add_channel_bind(c, DEFAULT_LIFETIME)
    a.add_permission(Permission(addr))

    a.close()
    assert relay.fileno() == -1
    assert a.closed is True
    assert c.lifetime_timer.active is False
    assert a.lifetime_timer.active is False
    a.close()
    assert a.closed is True


def test_response_cache(allocation):
    transaction_id = bytes([1, 2, 3]) + bytes(9)
    attrs = [("lifetime", DEFAULT_LIFETIME)]
    allocation.set_response_cache(transaction_id, attrs)
    cache_id, cache_attrs = allocation.get_response_cache()
    assert cache_id == transaction_id
    assert cache_attrs == attrs


def test_response_cache_empty(allocation):
    cache_id, cache_attrs = allocation.get_response_cache()
    assert cache_id == bytes(12)
    assert cache_attrs is None


def _bind_with_lifetime(lifetime):
    a = Allocation()
    c = ChannelBind(MIN_CHANNEL_NUMBER, UDPAddr("0.0.0.0", 0))
    a.add_channel_bind(c, lifetime)
    return a, c


def test_channel_bind():
    a, c = _bind_with_lifetime(2.0)
    assert c.allocation.get_channel_by_number(c.number) is c
    a.close()


def test_channel_bind_start():
    a, c = _bind_with_lifetime(0.2)
    time.sleep(0.5)
    assert c.allocation.get_channel_by_number(c.number) is None
    a.close()


def test_channel_bind_reset():
    a, c = _bind_with_lifetime(0.4)
    time.sleep(0.25)
    c.refresh(0.4)
    time.sleep(0.25)
    assert c.allocation.get_channel_by_number(c.number) is c
    a.close()


def test_packet_handler_reports_read_error():
    relay = _udp_socket()
    relay.close()
    a = Allocation(None, FiveTuple(Protocol.UDP, UDPAddr("127.0.0.1", 1), UDPAddr("127.0.0.1", 2)))
    a.relay_socket = relay
    called = []
    a.packet_handler(lambda: called.append(True))
    assert called == [True]


def test_packet_handler():
    turn_socket = _udp_socket()
    client_listener = _udp_socket()
    client_listener.settimeout(3.0)
    relay = _udp_socket()
    peer1 = _udp_socket()
    peer2 = _udp_socket()

    a = Allocation(
        turn_socket,
        FiveTuple(Protocol.UDP, _addr_of(client_listener), _addr_of(turn_socket)),
    )
    a.relay_socket = relay
    a.relay_addr = _addr_of(relay)
    threading.Thread(target=a.packet_handler, args=(None,), daemon=True).start()

    a.add_permission(Permission(_addr_of(peer1)))
    channel_bind = ChannelBind(MIN_CHANNEL_NUMBER, _addr_of(peer2))
    a.add_channel_bind(channel_bind, DEFAULT_LIFETIME)

    relay_target = relay.getsockname()

    try:
        peer1.sendto(b"permission", relay_target)
        data, _ = client_listener.recvfrom(1600)
        assert is_message(data)
        msg = decode_message(data)
        assert msg.get(AttrType.DATA) == b"permission"
        ip, port = decode_xor_address(msg.get(AttrType.XOR_PEER_ADDRESS), msg.transaction_id)
        assert UDPAddr(ip, port) == _addr_of(peer1)

        peer2.sendto(b"channel bind", relay_target)
        data, _ = client_listener.recvfrom(1600)
        assert is_channel_data(data)
        channel_data = decode_channel_data(data)
        assert channel_data.number == channel_bind.number
        assert channel_data.data == b"channel bind"
    finally:
        a.close()
        for sock in (turn_socket, client_listener, peer1, peer2):
            sock.close()