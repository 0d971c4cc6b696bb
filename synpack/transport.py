"""
Raw Transport Layer

Owns the raw IPPROTO_TCP socket used to send handcrafted frames and
capture replies.

Implementations:
- RawSocketTransport    : Linux and other kernels taking IP_HDRINCL
                          headers in network byte order
- BsdRawSocketTransport : macOS / BSD, where ip_len and ip_off must be
                          supplied in host byte order
- MemoryTransport       : in-memory transport for tests, no privileges

Behavioral Notes:
- Requires root privileges (raw sockets)
- Every receive is bounded by a timeout
- Transports are context managers; close() always runs
"""

import errno
import logging
import socket
import sys
from abc import ABC, abstractmethod
from collections import deque
from struct import pack, unpack
from typing import Callable, Iterable, List, Optional, Tuple

from .errors import (AddressInUse, PermissionDenied, ResourceUnavailable,
                     SendFailed, TransmissionError)
from .packet import EndpointAddress

logger = logging.getLogger(__name__)

BUFFER_SIZE = 65535


class Transport(ABC):
    """Send one frame, receive frames with a bounded wait."""

    @abstractmethod
    def open(self) -> None:
        raise NotImplementedError

    @abstractmethod
    def bind(self, local: EndpointAddress) -> None:
        raise NotImplementedError

    @abstractmethod
    def send(self, frame: bytes, destination: EndpointAddress) -> None:
        raise NotImplementedError

    @abstractmethod
    def receive(self, timeout: float) -> Optional[bytes]:
        """Return one inbound frame, or None if timeout elapsed first."""
        raise NotImplementedError

    @abstractmethod
    def close(self) -> None:
        raise NotImplementedError

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False


class RawSocketTransport(Transport):
    """AF_INET / SOCK_RAW / IPPROTO_TCP socket with IP_HDRINCL enabled."""

    def __init__(self):
        self._sock: Optional[socket.socket] = None

    def open(self) -> None:
        try:
            raw_sock = socket.socket(socket.AF_INET, socket.SOCK_RAW,
                                     socket.IPPROTO_TCP)
        except PermissionError as e:
            raise PermissionDenied(
                "Raw socket creation requires root privileges "
                "(run with sudo or grant CAP_NET_RAW).") from e
        except OSError as e:
            raise ResourceUnavailable(
                f"Raw socket creation failed: {e}") from e

        try:
            # IP header is crafted by us, not by the kernel
            raw_sock.setsockopt(socket.IPPROTO_IP, socket.IP_HDRINCL, 1)
        except OSError as e:
            raw_sock.close()
            raise ResourceUnavailable(
                f"Unable to enable IP_HDRINCL: {e}") from e

        self._sock = raw_sock
        logger.debug("raw socket opened (fd=%d)", raw_sock.fileno())

    def bind(self, local: EndpointAddress) -> None:
        try:
            self._require_socket().bind((local.ip, local.port))
        except OSError as e:
            if e.errno == errno.EADDRINUSE:
                raise AddressInUse(f"{local} is already in use") from e
            raise ResourceUnavailable(f"Unable to bind {local}: {e}") from e

    def prepare_frame(self, frame: bytes) -> bytes:
        return frame

    def send(self, frame: bytes, destination: EndpointAddress) -> None:
        try:
            self._require_socket().sendto(self.prepare_frame(frame),
                                          (destination.ip, destination.port))
        except OSError as e:
            raise SendFailed(f"Sending to {destination} failed: {e}") from e

    def receive(self, timeout: float) -> Optional[bytes]:
        if self._sock is None:
            return None

        self._sock.settimeout(max(timeout, 0.0))
        try:
            packet_recv, _ = self._sock.recvfrom(BUFFER_SIZE)
        except (socket.timeout, BlockingIOError, InterruptedError):
            return None
        except OSError as e:
            if e.errno in (errno.EAGAIN, errno.EWOULDBLOCK):
                return None
            raise TransmissionError(f"Receive failed: {e}") from e

        return packet_recv

    def close(self) -> None:
        if self._sock is not None:
            try:
                self._sock.close()
            finally:
                self._sock = None

    def _require_socket(self) -> socket.socket:
        if self._sock is None:
            raise ResourceUnavailable("Transport is not open")
        return self._sock


class BsdRawSocketTransport(RawSocketTransport):
    """
    Raw transport for macOS and the BSDs.

    With IP_HDRINCL these kernels expect the total length and fragment
    offset fields in host byte order.
    """

    def prepare_frame(self, frame: bytes) -> bytes:
        total_length, = unpack('!H', frame[2:4])
        frag_off, = unpack('!H', frame[6:8])
        return (frame[:2] + pack('=H', total_length) + frame[4:6] +
                pack('=H', frag_off) + frame[8:])


def transport_for_platform(platform: str = sys.platform) -> type:
    """Selects the raw transport class for the running kernel."""
    if platform == "darwin" or platform.startswith(
        ("freebsd", "openbsd", "netbsd")):
        return BsdRawSocketTransport
    return RawSocketTransport


Responder = Callable[[bytes, EndpointAddress], Iterable[bytes]]


class MemoryTransport(Transport):
    """
    In-memory transport for deterministic tests.

    responder: called with every sent frame and its destination,
               returns the frames to queue for receive()
    on_idle:   called with the timeout when receive() finds nothing
               queued (lets a fake clock advance)
    """

    def __init__(self,
                 responder: Optional[Responder] = None,
                 on_idle: Optional[Callable[[float], None]] = None,
                 send_error: Optional[Exception] = None):
        self.responder = responder
        self.on_idle = on_idle
        self.send_error = send_error
        self.sent: List[Tuple[bytes, EndpointAddress]] = []
        self.bound: Optional[EndpointAddress] = None
        self.inbox = deque()
        self.is_open = False
        self.open_count = 0
        self.close_count = 0

    def open(self) -> None:
        self.is_open = True
        self.open_count += 1

    def bind(self, local: EndpointAddress) -> None:
        self.bound = local

    def send(self, frame: bytes, destination: EndpointAddress) -> None:
        if not self.is_open:
            raise SendFailed("Transport is not open")
        if self.send_error is not None:
            raise SendFailed(str(self.send_error)) from self.send_error
        self.sent.append((frame, destination))
        if self.responder is not None:
            self.inbox.extend(self.responder(frame, destination))

    def receive(self, timeout: float) -> Optional[bytes]:
        if self.inbox:
            return self.inbox.popleft()
        if self.on_idle is not None:
            self.on_idle(timeout)
        return None

    def close(self) -> None:
        self.is_open = False
        self.close_count += 1
