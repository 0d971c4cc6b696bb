"""
CLI Parsing Module

Responsible for:
- Parsing command-line arguments
- Validating port, count and timing input
- Turning arguments into ProbeSettings

This module strictly handles user input parsing.
It does not execute any probing logic.
"""

import argparse

from synpack.config import MODES, ProbeSettings


def build_parser() -> argparse.ArgumentParser:
    """
    Defines the synpack command-line interface.

    Arguments:
        host              : Target hostname or IPv4 address
        -p/--port         : Destination TCP port (required)
        -c/--count        : Probes to send (default: 0 = until Ctrl+C)
        -s/--source-port  : Fixed source port (default: random ephemeral)
        -t/--timeout      : Per-probe reply deadline in seconds
        -i/--interval     : Pause between probes in seconds
        -m/--mode         : auto, syn (requires root) or connect
        --reset           : Send RST after each SYN-ACK
        -v/--verbose      : Debug logging
    """

    parser = argparse.ArgumentParser(
        prog="synpack",
        description=(
            "synpack - TCP SYN (half-open) latency probe\n\n"
            "Example Usage:\n"
            "  sudo synpack example.com -p 443 -c 5\n"
            "  sudo synpack 93.184.216.34 -p 80 --reset -t 2\n"
            "  synpack example.com -p 443 -m connect"),
        formatter_class=argparse.RawTextHelpFormatter)

    parser.add_argument("host", help="Target host (IP or domain)")

    parser.add_argument("-p",
                        "--port",
                        type=int,
                        required=True,
                        help="Destination port (1-65535)")

    parser.add_argument("-c",
                        "--count",
                        type=int,
                        default=0,
                        help="Number of probes (default: 0, run until Ctrl+C)")

    parser.add_argument(
        "-s",
        "--source-port",
        type=int,
        default=None,
        help="Fixed source port (default: random ephemeral port per probe)")

    parser.add_argument("-t",
                        "--timeout",
                        type=float,
                        default=1.0,
                        help="Seconds to wait for each SYN-ACK (default: 1.0)")

    parser.add_argument("-i",
                        "--interval",
                        type=float,
                        default=1.0,
                        help="Seconds between probes (default: 1.0)")

    parser.add_argument(
        "-m",
        "--mode",
        choices=MODES,
        default="auto",
        help=("syn: raw SYN probe (requires root)\n"
              "connect: time a full connect() (no privileges)\n"
              "auto: syn when privileged (default)"))

    parser.add_argument("--reset",
                        action="store_true",
                        help="Tear down each half-open session with RST")

    parser.add_argument("-v",
                        "--verbose",
                        action="store_true",
                        help="Enable debug logging")

    return parser


def parse_arguments(argv=None) -> argparse.Namespace:
    """
    Parses and validates arguments.

    Enforces:
        - Port and source port within 1-65535
        - Non-negative count
        - Timeout between 0.1 and 30 seconds
        - Non-negative interval

    Returns:
        Parsed argparse.Namespace object.
    """

    parser = build_parser()
    args = parser.parse_args(argv)

    if args.port < 1 or args.port > 65535:
        parser.error(f"Invalid port: {args.port}")

    if args.source_port is not None and not 1 <= args.source_port <= 65535:
        parser.error(f"Invalid source port: {args.source_port}")

    if args.count < 0:
        parser.error("Count must be 0 (unlimited) or a positive number.")

    if args.timeout < 0.1 or args.timeout > 30:
        parser.error("Timeout must be between 0.1 and 30 seconds.")

    if args.interval < 0:
        parser.error("Interval cannot be negative.")

    return args


def settings_from_args(args: argparse.Namespace) -> ProbeSettings:
    return ProbeSettings(mode=args.mode,
                         count=args.count,
                         timeout=args.timeout,
                         interval=args.interval,
                         send_reset=args.reset,
                         source_port=args.source_port)
