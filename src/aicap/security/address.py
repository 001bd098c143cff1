"""IPv4 private/reserved range classification for outbound destinations.

A deny-list of well-known internal blocks. Addresses are compared as
unsigned 32-bit integers against each block's [start, end] bounds.

IPv6 is not classified: any non dotted-quad input (IPv6 included) is
treated as private, so IPv6 destinations are blocked outright. Octets
with a leading zero are also unclassifiable, since libc reads them as
octal (012.0.0.1 connects to 10.0.0.1).
"""

from __future__ import annotations

import ipaddress
import re

_DOTTED_QUAD = re.compile(r"[0-9]+\.[0-9]+\.[0-9]+\.[0-9]+")

_BLOCKED_NETWORKS = (
    ipaddress.IPv4Network("10.0.0.0/8"),
    ipaddress.IPv4Network("172.16.0.0/12"),
    ipaddress.IPv4Network("192.168.0.0/16"),
    ipaddress.IPv4Network("127.0.0.0/8"),  # loopback
    ipaddress.IPv4Network("169.254.0.0/16"),  # link-local, cloud metadata
)

# (cidr, (start, end)) inclusive, unsigned 32-bit
BLOCKED_RANGES: tuple[tuple[str, tuple[int, int]], ...] = tuple(
    (str(net), (int(net.network_address), int(net.broadcast_address)))
    for net in _BLOCKED_NETWORKS
)


def ipv4_to_int(address: str) -> int | None:
    """Convert a dotted-quad string to its unsigned 32-bit value.

    Returns None for anything that is not exactly four decimal octets in
    0-255 without leading zeros.
    """
    try:
        return int(ipaddress.IPv4Address(address))
    except ValueError:
        return None


def looks_like_dotted_quad(host: str) -> bool:
    """True if host is four numeric groups, whether or not each is valid."""
    return bool(host) and _DOTTED_QUAD.fullmatch(host) is not None


def matching_block(address: str) -> str | None:
    """Return the CIDR of the blocked range containing address, if any."""
    value = ipv4_to_int(address)
    if value is None:
        return None
    for cidr, (start, end) in BLOCKED_RANGES:
        if start <= value <= end:
            return cidr
    return None


def is_reserved_or_private(address: str) -> bool:
    """Decide whether an IPv4 address must never be an outbound target.

    Malformed input fails closed and is reported as private.
    """
    if ipv4_to_int(address) is None:
        return True
    return matching_block(address) is not None
