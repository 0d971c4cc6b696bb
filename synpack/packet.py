"""
Raw IPv4 / TCP Frame Construction Module

Provides utilities for:
- IPv4 and port validation
- IPv4 header construction (for IP_HDRINCL sockets)
- TCP header construction with pseudo-header checksum
- Decoding of inbound IPv4 + TCP frames

Frames are always a 20-byte IPv4 header followed by a 20-byte
TCP header (no IP options, no TCP options, no payload).

Limitations:
- IPv4 only
- No TCP options (MSS, SACK, Window Scaling not included)
"""

import socket
from dataclasses import dataclass
from struct import pack, unpack
from typing import Optional

from .checksum import checksum

# TCP flag bit masks
FIN = 0x01
SYN = 0x02
RST = 0x04
PSH = 0x08
ACK = 0x10
URG = 0x20

IPV4_HEADER_LEN = 20
TCP_HEADER_LEN = 20
FRAME_LEN = IPV4_HEADER_LEN + TCP_HEADER_LEN

IP_VERSION_IHL = (4 << 4) + 5
IP_TTL = 64
IP_DONT_FRAGMENT = 0x4000
TCP_DATA_OFFSET = 5
TCP_WINDOW = 29200

SEQ_MODULUS = 1 << 32


def validate_ipv4(ip: str, name: str) -> None:
    """
    Validates IPv4 address format using inet_aton().

    Raises:
        ValueError if invalid IPv4 string.
    """
    if not isinstance(ip, str):
        raise TypeError(f"{name} address must be a string")
    try:
        socket.inet_aton(ip)
    except OSError:
        raise ValueError(f"Invalid IPv4 {name} address: {ip}")
    # inet_aton() accepts shorthand such as "10.1"
    if ip.count(".") != 3:
        raise ValueError(f"Invalid IPv4 {name} address: {ip}")


def validate_port(port: int, name: str) -> None:
    """
    Validates TCP port range and type.

    Ensures:
        - Integer type
        - Range 1-65535

    Raises:
        TypeError or ValueError on invalid input.
    """
    if not isinstance(port, int) or isinstance(port, bool):
        raise TypeError(f"{name} must be an integer")
    if port < 1 or port > 65535:
        raise ValueError(f"{name} must be in range 1-65535")


def validate_seq(value: int, name: str) -> None:
    if not isinstance(value, int) or isinstance(value, bool):
        raise TypeError(f"{name} must be an integer")
    if value < 0 or value >= SEQ_MODULUS:
        raise ValueError(f"{name} must be a 32-bit unsigned value")


@dataclass(frozen=True)
class EndpointAddress:
    """IPv4 address plus TCP port, fixed for the lifetime of a probe."""

    ip: str
    port: int

    def __post_init__(self):
        validate_ipv4(self.ip, "Endpoint")
        validate_port(self.port, "Endpoint port")

    @property
    def packed_ip(self) -> bytes:
        return socket.inet_aton(self.ip)

    def __str__(self) -> str:
        return f"{self.ip}:{self.port}"


@dataclass(frozen=True)
class ParsedFrame:
    src_ip: str
    dst_ip: str
    protocol: int
    src_port: int
    dst_port: int
    seq: int
    ack: int
    flags: int
    length: int


def build_ipv4_header(src_ip: str,
                      dst_ip: str,
                      payload_length: int = TCP_HEADER_LEN) -> bytes:
    """
    Constructs a 20-byte IPv4 header carrying TCP.

    Parameters:
        src_ip: Source IPv4 address
        dst_ip: Destination IPv4 address
        payload_length: Bytes following the IP header

    Behavior:
        - Version 4, IHL 5 (no options), TTL 64, DF set
        - Total length = header length + payload length
        - Checksum computed with checksum field zeroed, then inserted

    Returns:
        Raw IPv4 header bytes.
    """

    validate_ipv4(src_ip, "Source")
    validate_ipv4(dst_ip, "Destination")

    total_length = IPV4_HEADER_LEN + payload_length
    identification = 0
    ip_checksum = 0  # Placeholder before checksum calculation

    header = pack('!BBHHHBBH4s4s', IP_VERSION_IHL, 0, total_length,
                  identification, IP_DONT_FRAGMENT, IP_TTL,
                  socket.IPPROTO_TCP, ip_checksum, socket.inet_aton(src_ip),
                  socket.inet_aton(dst_ip))

    ip_checksum = checksum(header)

    return header[:10] + pack('!H', ip_checksum) + header[12:]


def pseudo_header(src_ip: str, dst_ip: str, segment_length: int) -> bytes:
    """
    Builds the 12-byte IPv4 pseudo-header used by the TCP checksum.

    Layout: source IP, destination IP, reserved zero byte,
    protocol number, TCP segment length.
    """
    placeholder = 0
    return pack('!4s4sBBH', socket.inet_aton(src_ip),
                socket.inet_aton(dst_ip), placeholder, socket.IPPROTO_TCP,
                segment_length)


def build_tcp_header(src: EndpointAddress,
                     dst: EndpointAddress,
                     seq: int,
                     flags: int = SYN,
                     ack: Optional[int] = None) -> bytes:
    """
    Constructs a minimal 20-byte TCP header.

    Parameters:
        src: Local address and source port
        dst: Remote address and destination port
        seq: 32-bit sequence number
        flags: Control flag bit mask (SYN for probes, RST for teardown)
        ack: Acknowledgment number override (defaults to 0)

    Behavior:
        - Fixed data offset of 5 (no TCP options)
        - Fixed window, urgent pointer 0
        - Checksum computed over pseudo-header + header (checksum zeroed)

    Returns:
        Raw TCP header bytes (without IP header).
    """

    validate_seq(seq, "Sequence number")
    tcp_ack_seq = 0 if ack is None else ack
    validate_seq(tcp_ack_seq, "Acknowledgment number")

    tcp_offset_res = (TCP_DATA_OFFSET << 4) + 0
    tcp_checksum = 0
    tcp_urg_ptr = 0

    # Pack initial TCP header (network byte order)
    tcp_header = pack('!HHLLBBHHH', src.port, dst.port, seq, tcp_ack_seq,
                      tcp_offset_res, flags & 0xFF, TCP_WINDOW, tcp_checksum,
                      tcp_urg_ptr)

    tcp_checksum = checksum(
        pseudo_header(src.ip, dst.ip, len(tcp_header)) + tcp_header)

    return tcp_header[:16] + pack('!H', tcp_checksum) + tcp_header[18:]


def build_syn_frame(src: EndpointAddress, dst: EndpointAddress,
                    seq: int) -> bytes:
    """IPv4 header + TCP SYN header, ready for an IP_HDRINCL socket."""
    return build_ipv4_header(src.ip, dst.ip) + build_tcp_header(
        src, dst, seq, SYN)


def build_rst_frame(src: EndpointAddress, dst: EndpointAddress, seq: int,
                    ack: int) -> bytes:
    """
    IPv4 header + TCP RST header tearing down a half-open probe.

    seq is the original SYN sequence number, ack the acknowledgment
    number taken from the peer's SYN-ACK.
    """
    return build_ipv4_header(src.ip, dst.ip) + build_tcp_header(
        src, dst, seq, RST, ack=ack)


def parse_frame(frame: bytes) -> Optional[ParsedFrame]:
    """
    Decodes an inbound IPv4 + TCP frame as delivered by a raw socket.

    Returns:
        ParsedFrame, or None when the frame is too short or the
        IPv4 header length is invalid.
    """

    if len(frame) < FRAME_LEN:
        return None

    ip_header = unpack('!BBHHHBBH4s4s', frame[:IPV4_HEADER_LEN])
    ihl = ip_header[0] & 0x0F
    ip_header_len = ihl * 4

    if ihl < 5 or len(frame) < ip_header_len + TCP_HEADER_LEN:
        return None

    tcp_fields = unpack('!HHLLBBHHH',
                        frame[ip_header_len:ip_header_len + TCP_HEADER_LEN])

    return ParsedFrame(src_ip=socket.inet_ntoa(ip_header[8]),
                       dst_ip=socket.inet_ntoa(ip_header[9]),
                       protocol=ip_header[6],
                       src_port=tcp_fields[0],
                       dst_port=tcp_fields[1],
                       seq=tcp_fields[2],
                       ack=tcp_fields[3],
                       flags=tcp_fields[5],
                       length=len(frame))
