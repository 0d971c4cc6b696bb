"""
synpack Entry Point

Responsibilities:
- Parse CLI arguments
- Resolve target hostname and local source interface
- Check raw socket privileges and select the probe mode
- Run the probe loop until count is reached or Ctrl+C
- Display per-probe results and final statistics

This module acts strictly as the orchestration and presentation layer.
All probing logic resides in the synpack package.
"""

import logging
import random
import sys
from typing import Optional

from cli import parse_arguments, settings_from_args
from synpack.cancellation import (CancellationToken,
                                  install_interrupt_handler,
                                  restore_interrupt_handler)
from synpack.config import ProbeSettings
from synpack.controller import (ConnectProbeStrategy, ProbeController,
                                ProbeOutcome, ProbeStrategy, SynProbeStrategy)
from synpack.errors import PermissionDenied, SetupError, SynpackError
from synpack.network import has_raw_privilege, local_interface, resolve_host
from synpack.packet import FRAME_LEN, EndpointAddress
from synpack.ports import PortAllocator
from synpack.stats import RttAggregator, format_summary
from synpack.transport import transport_for_platform

logger = logging.getLogger("synpack")


def configure_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr)


def choose_mode(requested: str,
                privileged: bool,
                platform: str = sys.platform) -> str:
    """
    Decides between raw SYN probing and the connect() fallback.

    Raises:
        PermissionDenied when raw probing is required but not permitted.
    """
    if requested == "connect":
        return "connect"

    if privileged:
        if platform == "darwin":
            logger.warning(
                "macOS limits raw sockets; if no replies arrive, "
                "rerun without root to use TCP connect mode")
        return "syn"

    if requested == "auto" and platform == "darwin":
        print("Running without root on macOS: using TCP connect mode")
        return "connect"

    raise PermissionDenied(
        "Raw SYN probing requires root privileges (or CAP_NET_RAW). "
        "Run with sudo, or use '-m connect'.")


def build_strategy(mode: str, settings: ProbeSettings, src_ip: str,
                   rng: random.Random) -> ProbeStrategy:
    if mode == "connect":
        return ConnectProbeStrategy(timeout=settings.timeout)

    allocator = PortAllocator(rng,
                              attempts=settings.port_attempts,
                              port_range=settings.port_range)
    return SynProbeStrategy(src_ip,
                            transport_for_platform(),
                            rng,
                            allocator=allocator,
                            timeout=settings.timeout,
                            poll_interval=settings.poll_interval,
                            send_reset=settings.send_reset,
                            source_port=settings.source_port)


def format_outcome(outcome: ProbeOutcome, target: EndpointAddress) -> str:
    line = f"ip={target.ip} port={target.port}"
    if outcome.seq is not None:
        line += f" seq={outcome.seq}"

    if outcome.matched:
        rtt = f"rtt={outcome.elapsed * 1000:.2f} ms"
        # Only raw mode crafts a frame of known length
        if outcome.seq is not None:
            return f"len={FRAME_LEN} {line} {rtt}"
        return f"{line} {rtt}"
    return f"timeout {line}"


def main(argv: Optional[list] = None) -> int:
    """
    Primary execution flow for synpack.

    Workflow:
        1. Parse CLI arguments.
        2. Resolve target and local interface.
        3. Select probe mode (privilege check).
        4. Probe until count is reached or interrupted.
        5. Display statistics.

    Returns:
        Process exit status.
    """

    args = parse_arguments(argv)
    settings = settings_from_args(args)
    configure_logging(args.verbose)

    try:
        target_ip = resolve_host(args.host)
        iface, src_ip = local_interface(target_ip)
        mode = choose_mode(settings.mode, has_raw_privilege())
    except SetupError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    target = EndpointAddress(target_ip, args.port)
    strategy = build_strategy(mode, settings, src_ip, random.SystemRandom())

    print(f"SYNPACK {iface} ({src_ip}) -> {args.host} ({target_ip}) "
          f"port {target.port} mode {strategy.name}")

    token = CancellationToken()
    aggregator = RttAggregator()
    controller = ProbeController(strategy,
                                 target,
                                 aggregator,
                                 token,
                                 interval=settings.interval)

    status = 0
    previous_handler = install_interrupt_handler(token)
    try:
        controller.run(settings.count,
                       on_outcome=lambda o: print(format_outcome(o, target)))
    except SynpackError as e:
        logger.debug("probe run aborted", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        status = 1
    finally:
        restore_interrupt_handler(previous_handler)

    print()
    print(format_summary(args.host, aggregator.summary()))
    return status


if __name__ == "__main__":
    sys.exit(main())
