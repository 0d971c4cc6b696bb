import random

import pytest

from synpack.packet import (ACK, SYN, EndpointAddress, build_ipv4_header,
                            build_tcp_header)

LOCAL_IP = "192.168.1.10"
TARGET_IP = "93.184.216.34"


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 100.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def rng():
    return random.Random(1234)


@pytest.fixture
def make_reply():
    """Builds an inbound IPv4 + TCP frame sent by the peer."""

    def _make_reply(src_ip=TARGET_IP,
                    src_port=80,
                    dst_ip=LOCAL_IP,
                    dst_port=50000,
                    ack=1001,
                    flags=SYN | ACK,
                    seq=777):
        src = EndpointAddress(src_ip, src_port)
        dst = EndpointAddress(dst_ip, dst_port)
        return build_ipv4_header(src_ip, dst_ip) + build_tcp_header(
            src, dst, seq, flags, ack=ack)

    return _make_reply
