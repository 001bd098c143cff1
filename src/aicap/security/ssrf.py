"""SSRF guard: approves or rejects an outbound destination URL.

Checks run in a fixed order, each with its own rejection:
1. URL parses as absolute with a host        → InvalidUrl
2. scheme is exactly https                   → ProtocolViolation
3. hostname resolves to an address           → ResolutionFailed
4. address is outside private/reserved space → PrivateNetworkBlocked

Must run on every dispatch, immediately before the outbound call. Results
are never cached: a hostname can be rebound between validation and use.
The returned ResolvedTarget lets the dispatcher connect to the exact
address that was approved.
"""

from __future__ import annotations

from dataclasses import dataclass
from urllib.parse import urlsplit

import structlog

from aicap.errors import InvalidUrl, PrivateNetworkBlocked, ProtocolViolation
from aicap.security import resolver
from aicap.security.address import is_reserved_or_private, matching_block

logger = structlog.get_logger()

ALLOWED_SCHEME = "https"
_DEFAULT_HTTPS_PORT = 443


@dataclass(frozen=True)
class ResolvedTarget:
    """A destination approved for one outbound request."""

    url: str
    hostname: str
    address: str
    port: int
    path: str

    @property
    def pinned_url(self) -> str:
        """URL with the host replaced by the approved address."""
        return f"{ALLOWED_SCHEME}://{self.address}:{self.port}{self.path}"

    @property
    def ascii_hostname(self) -> str:
        """Hostname in IDNA form, as sent in the Host header and TLS SNI."""
        return self.hostname.encode("idna").decode("ascii")

    @property
    def host_header(self) -> str:
        if self.port == _DEFAULT_HTTPS_PORT:
            return self.ascii_hostname
        return f"{self.ascii_hostname}:{self.port}"


async def authorize(
    destination_url: str,
    dns_timeout: float = resolver.DEFAULT_DNS_TIMEOUT,
) -> ResolvedTarget:
    """Run the full SSRF check against a destination URL.

    Args:
        destination_url: Absolute URL supplied by the caller.
        dns_timeout: Upper bound on DNS resolution, in seconds.

    Returns:
        The approved ResolvedTarget.

    Raises:
        InvalidUrl, ProtocolViolation, ResolutionFailed, PrivateNetworkBlocked
    """
    try:
        parsed = urlsplit(str(destination_url).strip())
        hostname = parsed.hostname
        port = parsed.port
    except ValueError as exc:
        raise InvalidUrl("Invalid destination URL format.") from exc

    if not parsed.scheme or not hostname:
        raise InvalidUrl("Invalid destination URL format.")

    if parsed.scheme.lower() != ALLOWED_SCHEME:
        raise ProtocolViolation(
            "Protocol violation. Only HTTPS endpoints are permitted for security reasons."
        )

    address = await resolver.resolve(hostname, timeout=dns_timeout)

    if is_reserved_or_private(address):
        await logger.awarning(
            "ssrf_blocked",
            hostname=hostname,
            address=address,
            network=matching_block(address) or "unclassifiable",
        )
        raise PrivateNetworkBlocked(
            "Security Policy Violation: Target IP resolves to a private or reserved "
            "network. Request blocked to prevent SSRF."
        )

    path = parsed.path or "/"
    if parsed.query:
        path = f"{path}?{parsed.query}"

    return ResolvedTarget(
        url=str(destination_url).strip(),
        hostname=hostname,
        address=address,
        port=port or _DEFAULT_HTTPS_PORT,
        path=path,
    )
