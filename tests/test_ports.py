import random
import socket

import pytest

from synpack.errors import PortExhausted
from synpack.ports import PortAllocator, is_port_available


def test_allocates_within_range(rng):
    allocator = PortAllocator(rng,
                              port_range=(50000, 50010),
                              is_available=lambda ip, port: True)
    for _ in range(20):
        assert 50000 <= allocator.allocate("10.0.0.1") <= 50010


def test_retries_busy_ports():
    busy = {50000, 50001}
    checked = []

    def available(ip, port):
        checked.append(port)
        return port not in busy

    allocator = PortAllocator(random.Random(7),
                              attempts=50,
                              port_range=(50000, 50002),
                              is_available=available)

    assert allocator.allocate("10.0.0.1") == 50002
    assert all(p in busy for p in checked[:-1])


def test_gives_up_after_bounded_attempts(rng):
    calls = []
    allocator = PortAllocator(rng,
                              attempts=4,
                              is_available=lambda ip, port: calls.append(port))

    with pytest.raises(PortExhausted):
        allocator.allocate("10.0.0.1")
    assert len(calls) == 4


def test_same_seed_gives_same_ports():
    ports = []
    for _ in range(2):
        allocator = PortAllocator(random.Random(99),
                                  is_available=lambda ip, port: True)
        ports.append([allocator.allocate("10.0.0.1") for _ in range(5)])
    assert ports[0] == ports[1]


@pytest.mark.parametrize("kwargs", [
    {"attempts": 0},
    {"port_range": (0, 10)},
    {"port_range": (60000, 50000)},
])
def test_invalid_configuration(rng, kwargs):
    with pytest.raises(ValueError):
        PortAllocator(rng, **kwargs)


def test_port_in_use_is_unavailable():
    listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    try:
        listener.bind(("127.0.0.1", 0))
        listener.listen(1)
        port = listener.getsockname()[1]
        assert not is_port_available("127.0.0.1", port)
    finally:
        listener.close()
