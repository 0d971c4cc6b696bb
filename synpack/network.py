"""
Local Network Collaborators

Responsible for:
- Resolving the target hostname to IPv4
- Picking the local source IPv4 address and interface
- Checking raw socket privileges

None of these send probe traffic.
"""

import logging
import socket
import sys
from struct import pack
from typing import Optional, Tuple

from .errors import InterfaceError, ResolutionError

logger = logging.getLogger(__name__)

# Typical interface name prefixes created by container runtimes
CONTAINER_INTERFACE_PREFIXES = ("docker", "br-", "veth", "tunl", "flannel",
                                "cni")

SIOCGIFADDR = 0x8915


def resolve_host(target: str) -> str:
    """
    Resolves hostname or IPv4 string to an IPv4 address.

    Raises:
        ResolutionError if no IPv4 address exists for target.
    """
    try:
        infos = socket.getaddrinfo(target, None, socket.AF_INET,
                                   socket.SOCK_STREAM)
    except (socket.gaierror, UnicodeError) as e:
        raise ResolutionError(f"Hostname could not be resolved: {target}") \
            from e

    for _, _, _, _, sockaddr in infos:
        return sockaddr[0]

    raise ResolutionError(f"No IPv4 address for {target}")


def route_source_ip(target_ip: str = "8.8.8.8") -> str:
    """
    Determines the local source IPv4 address used to reach target_ip.

    Uses a UDP socket "connect" trick to query kernel routing decision
    without transmitting actual packets.
    """
    temp_sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        temp_sock.connect((target_ip, 80))
        return temp_sock.getsockname()[0]
    finally:
        temp_sock.close()


def is_container_interface(name: str) -> bool:
    return name.startswith(CONTAINER_INTERFACE_PREFIXES)


def interface_ipv4(name: str) -> Optional[str]:
    """IPv4 address assigned to interface name (Linux only)."""
    if not sys.platform.startswith("linux"):
        return None

    import fcntl

    probe_sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        ifreq = fcntl.ioctl(probe_sock.fileno(), SIOCGIFADDR,
                            pack('256s', name[:15].encode()))
    except OSError:
        # Interface without an IPv4 address
        return None
    finally:
        probe_sock.close()

    return socket.inet_ntoa(ifreq[20:24])


def interface_name_for(ip: str) -> Optional[str]:
    """Finds the non-container, non-loopback interface carrying ip."""
    try:
        names = socket.if_nameindex()
    except OSError:
        return None

    for _, name in names:
        if name == "lo" or is_container_interface(name):
            continue
        if interface_ipv4(name) == ip:
            return name
    return None


def local_interface(target_ip: str) -> Tuple[str, str]:
    """
    Returns (interface name, source IPv4) used to reach target_ip.

    Raises:
        InterfaceError if no routable, non-loopback IPv4 address exists.
    """
    try:
        src_ip = route_source_ip(target_ip)
    except OSError as e:
        raise InterfaceError(
            f"No local interface routes to {target_ip}: {e}") from e

    if src_ip.startswith("127.") or src_ip == "0.0.0.0":
        raise InterfaceError("No usable non-loopback IPv4 address found")

    name = interface_name_for(src_ip)
    if name is None:
        logger.debug("could not map %s to an interface name", src_ip)
        name = "unknown"

    return name, src_ip


def has_raw_privilege() -> bool:
    """
    True when the process may open raw sockets.

    Tries a raw IPPROTO_TCP socket once, so root without CAP_NET_RAW
    is refused and non-root with CAP_NET_RAW is accepted. Failures
    other than a permission error are left for the transport to report.
    """
    try:
        raw_sock = socket.socket(socket.AF_INET, socket.SOCK_RAW,
                                 socket.IPPROTO_TCP)
    except PermissionError:
        return False
    except OSError as e:
        logger.debug("raw socket check failed: %s", e)
        return True
    raw_sock.close()
    return True
