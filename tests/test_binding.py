from turnkit.binding import MIN_CHANNEL_NUMBER, BindingManager, BindingState
from turnkit.ipnet import UDPAddr


def test_number_assignment():
    m = BindingManager()
    for i in range(10):
        assert m.assign_channel_number() == MIN_CHANNEL_NUMBER + i

    m.next_number = 0x7FF0
    for i in range(16):
        assert m.assign_channel_number() == 0x7FF0 + i

    assert m.assign_channel_number() == MIN_CHANNEL_NUMBER


def test_method_test():
    count = 100
    m = BindingManager()
    for i in range(count):
        addr = UDPAddr("127.0.0.1", 10000 + i)
        b0 = m.create(addr)
        b1 = m.find_by_addr(addr)
        b2 = m.find_by_number(b0.number)
        assert b1 is b0
        assert b2 is b0
        assert b0.state == BindingState.IDLE

    assert m.size() == count

    for i in range(count):
        addr = UDPAddr("127.0.0.1", 10000 + i)
        if i % 2 == 0:
            assert m.delete_by_addr(addr) is True
        else:
            assert m.delete_by_number(MIN_CHANNEL_NUMBER + i) is True

    assert m.size() == 0
    for i in range(count):
        assert m.find_by_addr(UDPAddr("127.0.0.1", 10000 + i)) is None


def test_failure_test():
    addr = UDPAddr("127.0.0.1", 7777)
    m = BindingManager()
    assert m.find_by_addr(addr) is None
    assert m.find_by_number(5555) is None
    assert m.delete_by_addr(addr) is False
    assert m.delete_by_number(5555) is False


def test_delete_by_number_clears_addr_index():
    m = BindingManager()
    addr = UDPAddr("127.0.0.1", 4000)
    binding = m.create(addr)
    assert m.delete_by_number(binding.number) is True
    assert m.find_by_addr(addr) is None