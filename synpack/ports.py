"""
Ephemeral Source Port Allocation

A fresh source port is picked for every probe so stale replies to an
earlier probe can never be mistaken for the current one.
"""

import logging
import random
import socket
from typing import Callable, Optional

from .errors import PortExhausted

logger = logging.getLogger(__name__)

EPHEMERAL_PORT_START = 49152
EPHEMERAL_PORT_END = 65535


def is_port_available(src_ip: str, port: int) -> bool:
    """
    Checks that no local TCP socket already owns src_ip:port.

    LISTEN failure means another process is using the port.
    """
    tcp_sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    try:
        tcp_sock.bind((src_ip, port))
        tcp_sock.listen(1)
        return True
    except OSError:
        return False
    finally:
        tcp_sock.close()


class PortAllocator:

    def __init__(self,
                 rng: random.Random,
                 attempts: int = 10,
                 port_range: tuple = (EPHEMERAL_PORT_START,
                                      EPHEMERAL_PORT_END),
                 is_available: Optional[Callable[[str, int], bool]] = None):
        if attempts < 1:
            raise ValueError("attempts must be at least 1")
        start, end = port_range
        if not 1 <= start <= end <= 65535:
            raise ValueError(f"Invalid port range: {start}-{end}")

        self.rng = rng
        self.attempts = attempts
        self.port_range = (start, end)
        self.is_available = is_available or is_port_available

    def allocate(self, src_ip: str) -> int:
        """
        Picks a random unused port from the ephemeral range.

        Raises:
            PortExhausted after `attempts` busy candidates.
        """
        start, end = self.port_range
        for _ in range(self.attempts):
            port = self.rng.randint(start, end)
            if self.is_available(src_ip, port):
                return port
            logger.debug("source port %d busy, retrying", port)

        raise PortExhausted(
            f"No free source port on {src_ip} after {self.attempts} attempts")
