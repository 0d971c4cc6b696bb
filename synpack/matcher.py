"""
SYN-ACK Response Matcher

Raw sockets receive all inbound TCP segments delivered to this host,
not just responses to our probe. Each frame is classified against the
probe's 4-tuple and sequence number:

    MALFORMED : too short / broken IPv4 header, keep waiting
    UNRELATED : other traffic, or our peer sending something other
                than the expected SYN-ACK, keep waiting
    ACCEPTED  : SYN-ACK acknowledging our sequence number
"""

import enum
import socket
from dataclasses import dataclass
from typing import Optional

from .packet import ACK, SEQ_MODULUS, SYN, parse_frame


class Verdict(enum.Enum):
    ACCEPTED = "accepted"
    UNRELATED = "unrelated"
    MALFORMED = "malformed"


@dataclass(frozen=True)
class ExpectedReply:
    """Identifying fields of the SYN we sent."""

    src_ip: str
    dst_ip: str
    src_port: int
    dst_port: int
    seq_sent: int


@dataclass(frozen=True)
class MatchResult:
    verdict: Verdict
    ack_number: Optional[int] = None

    @property
    def accepted(self) -> bool:
        return self.verdict is Verdict.ACCEPTED


UNRELATED = MatchResult(Verdict.UNRELATED)
MALFORMED = MatchResult(Verdict.MALFORMED)


def match(frame: bytes, expected: ExpectedReply) -> MatchResult:
    """
    Classifies one inbound frame against the probe that is in flight.

    Parameters:
        frame: IPv4 + TCP bytes as read from the raw socket
        expected: Addresses, ports and sequence number of the SYN sent

    Classification Logic:
        - Reply must be addressed exactly back to our 4-tuple (reversed)
        - SYN and ACK must both be set
        - ack must equal seq_sent + 1 (mod 2^32)

    Returns:
        MatchResult carrying the peer's ack number when accepted.
    """

    parsed = parse_frame(frame)
    if parsed is None:
        return MALFORMED

    if parsed.protocol != socket.IPPROTO_TCP:
        return UNRELATED

    # Match only responses for this probe
    if (parsed.src_ip != expected.dst_ip or parsed.dst_ip != expected.src_ip
            or parsed.src_port != expected.dst_port
            or parsed.dst_port != expected.src_port):
        return UNRELATED

    if (parsed.flags & (SYN | ACK)) != (SYN | ACK):
        return UNRELATED

    if parsed.ack != (expected.seq_sent + 1) % SEQ_MODULUS:
        return UNRELATED

    return MatchResult(Verdict.ACCEPTED, parsed.ack)
