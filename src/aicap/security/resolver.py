"""Hostname → single address resolution for the SSRF guard.

Resolution failure is a security event: every error path raises
ResolutionFailed so the guard blocks the dispatch instead of approving it.
"""

from __future__ import annotations

import asyncio
import socket

import structlog

from aicap.errors import ResolutionFailed
from aicap.security.address import looks_like_dotted_quad

logger = structlog.get_logger()

DEFAULT_DNS_TIMEOUT = 3.0


async def _getaddrinfo(hostname: str) -> list[tuple]:
    loop = asyncio.get_running_loop()
    return await loop.getaddrinfo(
        hostname, None, family=socket.AF_UNSPEC, type=socket.SOCK_STREAM
    )


def pick_address(addr_infos: list[tuple]) -> str | None:
    """Choose the first IPv4 record, else the first record of any family."""
    first: str | None = None
    for family, _type, _proto, _canonname, sockaddr in addr_infos:
        ip = str(sockaddr[0])
        if family == socket.AF_INET:
            return ip
        if first is None:
            first = ip
    return first


async def resolve(hostname: str, timeout: float = DEFAULT_DNS_TIMEOUT) -> str:
    """Resolve hostname to one concrete address.

    A literal dotted-quad is returned unchanged without any DNS lookup.

    Args:
        hostname: Host portion of the destination URL.
        timeout: Upper bound on the DNS lookup, in seconds.

    Returns:
        The selected address string.

    Raises:
        ResolutionFailed: On lookup error, timeout, or an empty answer.
    """
    if not hostname:
        raise ResolutionFailed("Target hostname could not be resolved.")

    if looks_like_dotted_quad(hostname):
        return hostname

    try:
        addr_infos = await asyncio.wait_for(_getaddrinfo(hostname), timeout=timeout)
    except asyncio.TimeoutError as exc:
        await logger.awarning("dns_lookup_timeout", hostname=hostname, timeout=timeout)
        raise ResolutionFailed("Target hostname could not be resolved.") from exc
    except (socket.gaierror, OSError, UnicodeError) as exc:
        await logger.awarning("dns_lookup_failed", hostname=hostname, error=str(exc))
        raise ResolutionFailed("Target hostname could not be resolved.") from exc

    address = pick_address(addr_infos)
    if address is None:
        await logger.awarning("dns_lookup_empty", hostname=hostname)
        raise ResolutionFailed("DNS resolution failed or returned no address.")
    return address
