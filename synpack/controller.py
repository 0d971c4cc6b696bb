"""
Probe Cycle Controller

Implements repeated half-open latency probing.

Responsibilities:
- Allocate a fresh source port and sequence number per probe
- Send a handcrafted TCP SYN through the raw transport
- Wait for the matching SYN-ACK within a bounded deadline
- Optionally reset the half-open session at the peer
- Feed every outcome to the RTT aggregator

Probe strategies:
- SynProbeStrategy     : craft our own segment (raw socket, root)
- ConnectProbeStrategy : delegate the handshake to the OS TCP stack

Per-probe state machine:
    IDLE -> PORT_ALLOCATED -> SENT -> WAITING -> MATCHED
                                             -> TIMED_OUT
                                             -> CANCELLED

Behavioral Notes:
- Kernel-generated RST packets for the SYN-ACK may reach the peer
  before ours; they are harmless for latency measurement
- Setup and send failures propagate and end the run
"""

import enum
import logging
import random
import socket
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Optional

from .cancellation import CancellationToken
from .errors import SendFailed
from .matcher import ExpectedReply, match
from .packet import EndpointAddress, build_rst_frame, build_syn_frame
from .ports import PortAllocator
from .stats import RttAggregator, Statistics
from .transport import Transport

logger = logging.getLogger(__name__)


class ProbeState(enum.Enum):
    IDLE = "idle"
    PORT_ALLOCATED = "port_allocated"
    SENT = "sent"
    WAITING = "waiting"
    MATCHED = "matched"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class ProbeOutcome:
    state: ProbeState
    sent_at: Optional[float] = None
    elapsed: Optional[float] = None     # seconds, only when matched
    seq: Optional[int] = None
    source_port: Optional[int] = None

    @property
    def matched(self) -> bool:
        return self.state is ProbeState.MATCHED

    @property
    def cancelled(self) -> bool:
        return self.state is ProbeState.CANCELLED


class ProbeStrategy(ABC):
    name = "abstract"

    @abstractmethod
    def probe(self, target: EndpointAddress,
              token: CancellationToken) -> ProbeOutcome:
        """Run exactly one probe against target."""
        raise NotImplementedError


class SynProbeStrategy(ProbeStrategy):
    """
    Half-open probe using a handcrafted SYN on a raw socket.

    Parameters:
        source_ip: Local IPv4 address replies are routed to
        transport_factory: Returns a fresh, unopened Transport
        rng: Generator for sequence numbers (and ports via allocator)
        allocator: Ephemeral port allocator (unused with source_port)
        timeout: Per-probe deadline in seconds
        poll_interval: Longest single receive, bounds cancel latency
        send_reset: Send RST after a matched SYN-ACK
        source_port: Fixed source port instead of ephemeral allocation
        clock: Monotonic time source in seconds
    """

    name = "syn"

    def __init__(self,
                 source_ip: str,
                 transport_factory: Callable[[], Transport],
                 rng: random.Random,
                 allocator: Optional[PortAllocator] = None,
                 timeout: float = 1.0,
                 poll_interval: float = 0.1,
                 send_reset: bool = False,
                 source_port: Optional[int] = None,
                 clock: Callable[[], float] = time.perf_counter):
        if allocator is None and source_port is None:
            allocator = PortAllocator(rng)
        self.source_ip = source_ip
        self.transport_factory = transport_factory
        self.rng = rng
        self.allocator = allocator
        self.timeout = timeout
        self.poll_interval = poll_interval
        self.send_reset = send_reset
        self.source_port = source_port
        self.clock = clock

    def probe(self, target: EndpointAddress,
              token: CancellationToken) -> ProbeOutcome:
        if token.cancelled:
            return ProbeOutcome(ProbeState.CANCELLED)

        if self.source_port is not None:
            src_port = self.source_port
        else:
            src_port = self.allocator.allocate(self.source_ip)
        _transition(ProbeState.IDLE, ProbeState.PORT_ALLOCATED, src_port)

        src = EndpointAddress(self.source_ip, src_port)
        seq = self.rng.getrandbits(32)
        frame = build_syn_frame(src, target, seq)
        expected = ExpectedReply(src_ip=src.ip,
                                 dst_ip=target.ip,
                                 src_port=src.port,
                                 dst_port=target.port,
                                 seq_sent=seq)

        with self.transport_factory() as transport:
            transport.bind(src)

            sent_at = self.clock()
            transport.send(frame, target)
            _transition(ProbeState.PORT_ALLOCATED, ProbeState.SENT, src_port)

            deadline = sent_at + self.timeout
            _transition(ProbeState.SENT, ProbeState.WAITING, src_port)

            while True:
                if token.cancelled:
                    _transition(ProbeState.WAITING, ProbeState.CANCELLED,
                                src_port)
                    return ProbeOutcome(ProbeState.CANCELLED, sent_at, None,
                                        seq, src_port)

                remaining = deadline - self.clock()
                if remaining <= 0:
                    _transition(ProbeState.WAITING, ProbeState.TIMED_OUT,
                                src_port)
                    return ProbeOutcome(ProbeState.TIMED_OUT, sent_at, None,
                                        seq, src_port)

                reply = transport.receive(min(remaining, self.poll_interval))
                if reply is None:
                    continue

                result = match(reply, expected)
                if not result.accepted:
                    logger.debug("ignoring %s frame (%d bytes)",
                                 result.verdict.value, len(reply))
                    continue

                elapsed = self.clock() - sent_at
                _transition(ProbeState.WAITING, ProbeState.MATCHED, src_port)
                outcome = ProbeOutcome(ProbeState.MATCHED, sent_at, elapsed,
                                       seq, src_port)

                if self.send_reset:
                    self._teardown(transport, src, target, seq,
                                   result.ack_number)

                return outcome

    def _teardown(self, transport: Transport, src: EndpointAddress,
                  target: EndpointAddress, seq: int, ack: int) -> None:
        # The reply already arrived; a failed RST must not lose it
        try:
            transport.send(build_rst_frame(src, target, seq, ack), target)
        except SendFailed as e:
            logger.warning("RST teardown to %s failed: %s", target, e)
            return
        logger.debug("sent RST to %s (ack=%d)", target, ack)


class ConnectProbeStrategy(ProbeStrategy):
    """
    Fallback probe timing a full connect() through the OS TCP stack.

    Works without privileges. Refused, unreachable and timed-out
    connections count as lost probes.
    """

    name = "connect"

    def __init__(self,
                 timeout: float = 1.0,
                 connector: Callable = socket.create_connection,
                 clock: Callable[[], float] = time.perf_counter):
        self.timeout = timeout
        self.connector = connector
        self.clock = clock

    def probe(self, target: EndpointAddress,
              token: CancellationToken) -> ProbeOutcome:
        if token.cancelled:
            return ProbeOutcome(ProbeState.CANCELLED)

        sent_at = self.clock()
        try:
            conn = self.connector((target.ip, target.port),
                                  timeout=self.timeout)
        except OSError as e:
            logger.debug("connect to %s failed: %s", target, e)
            return ProbeOutcome(ProbeState.TIMED_OUT, sent_at)

        elapsed = self.clock() - sent_at
        conn.close()
        return ProbeOutcome(ProbeState.MATCHED, sent_at, elapsed)


class ProbeController:
    """
    Runs probes one at a time until count is reached or cancelled.

    count == 0 means run until the token is cancelled.
    """

    def __init__(self,
                 strategy: ProbeStrategy,
                 target: EndpointAddress,
                 aggregator: RttAggregator,
                 token: CancellationToken,
                 interval: float = 1.0):
        self.strategy = strategy
        self.target = target
        self.aggregator = aggregator
        self.token = token
        self.interval = interval

    def run(self,
            count: int = 0,
            on_outcome: Optional[Callable[[ProbeOutcome], None]] = None
            ) -> Statistics:
        if count < 0:
            raise ValueError("count must be >= 0")

        executed = 0
        while count == 0 or executed < count:
            if self.token.cancelled:
                break

            outcome = self.strategy.probe(self.target, self.token)
            if outcome.cancelled:
                logger.debug("probe abandoned after interrupt")
                break

            self.aggregator.record(outcome)
            executed += 1
            if on_outcome is not None:
                on_outcome(outcome)

            if count and executed >= count:
                break

            # Pause between probes so the target is not flooded
            if self.token.wait(self.interval):
                break

        return self.aggregator.summary()


def _transition(old: ProbeState, new: ProbeState, src_port: int) -> None:
    logger.debug("probe[%d] %s -> %s", src_port, old.value, new.value)
