import ipaddress

import pytest

from turnkit.errors import AddrCastError
from turnkit.ipnet import TCPAddr, UDPAddr, addr_equal, addr_ip_port


def test_udp_addr_string():
    assert str(UDPAddr("1.2.3.4", 5000)) == "1.2.3.4:5000"


def test_ipv6_addr_string_is_bracketed():
    assert str(UDPAddr("::1", 80)) == "[::1]:80"


def test_string_ip_converted():
    addr = UDPAddr("127.0.0.1", 3478)
    assert addr.ip == ipaddress.IPv4Address("127.0.0.1")


def test_ipv4_mapped_normalised():
    assert UDPAddr("::ffff:127.0.0.1", 1).ip == ipaddress.IPv4Address("127.0.0.1")


def test_addr_ip_port_udp_roundtrip():
    addr = UDPAddr("10.0.0.5", 1234)
    ip, port = addr_ip_port(addr)
    assert (ip, port) == (addr.ip, 1234)


def test_addr_ip_port_tcp_roundtrip():
    addr = TCPAddr("10.0.0.6", 4321)
    ip, port = addr_ip_port(addr)
    assert UDPAddr(ip, port) == UDPAddr("10.0.0.6", 4321)


def test_addr_ip_port_rejects_other():
    with pytest.raises(AddrCastError):
        addr_ip_port("1.2.3.4:5")


def test_addr_equal_same():
    assert addr_equal(UDPAddr("127.0.0.1", 3478), UDPAddr("127.0.0.1", 3478))


def test_addr_equal_mapped_vs_plain():
    assert addr_equal(UDPAddr("::ffff:127.0.0.1", 3478), UDPAddr("127.0.0.1", 3478))


def test_addr_equal_different_port():
    assert not addr_equal(UDPAddr("127.0.0.1", 3478), UDPAddr("127.0.0.1", 3479))


def test_addr_equal_different_ip():
    assert not addr_equal(UDPAddr("127.0.0.1", 3478), UDPAddr("127.0.0.2", 3478))


def test_addr_equal_only_udp():
    assert not addr_equal(TCPAddr("127.0.0.1", 3478), TCPAddr("127.0.0.1", 3478))
    assert not addr_equal(UDPAddr("127.0.0.1", 3478), TCPAddr("127.0.0.1", 3478))