"""Outbound webhook dispatcher: one SSRF-checked POST per call.

SECURITY:
- The SSRF guard runs inside every dispatch; nothing is sent on rejection.
- The connection is pinned to the address the guard approved. The original
  hostname is kept for the Host header and TLS SNI/certificate checks.
- The shared secret travels only in the X-Webhook-Secret header and is
  never logged.
- Each send has a total deadline (http_timeout) covering connect, upload
  and the response, and error bodies are read only up to a short excerpt.

Remote errors and transport failures are soft failures: they come back as
a DeliveryResult, not as exceptions. No retries are attempted here.
"""

from __future__ import annotations

import asyncio
import enum
import json
import time
from dataclasses import dataclass
from typing import Any

import httpx
import structlog

from aicap.errors import InvalidRequest
from aicap.security import ssrf
from aicap.security.resolver import DEFAULT_DNS_TIMEOUT

logger = structlog.get_logger()

SECRET_HEADER = "X-Webhook-Secret"
USER_AGENT = "AICAP-Webhook-Dispatcher/1.0"
DEFAULT_HTTP_TIMEOUT = 5.0
_MAX_LOGGED_BODY = 100


class DeliveryOutcome(str, enum.Enum):
    """Classification of a dispatch that passed validation."""

    DELIVERED = "DELIVERED"
    REMOTE_REJECTED = "REMOTE_REJECTED"
    TRANSPORT_FAILURE = "TRANSPORT_FAILURE"


@dataclass(frozen=True)
class DeliveryResult:
    """Structured outcome of a single delivery attempt."""

    outcome: DeliveryOutcome
    target_status: int | None = None
    error: str | None = None
    duration_ms: int = 0

    @property
    def success(self) -> bool:
        return self.outcome is DeliveryOutcome.DELIVERED

    @property
    def message(self) -> str:
        if self.success:
            return "Webhook delivered successfully."
        if self.outcome is DeliveryOutcome.REMOTE_REJECTED:
            return f"Webhook failed. Target responded with status: {self.target_status}."
        return f"Network connection failed or timed out: {self.error}"


def _encode_payload(payload: Any) -> str:
    try:
        return json.dumps(payload)
    except (TypeError, ValueError) as exc:
        raise InvalidRequest("Payload must be JSON-serializable.") from exc


class WebhookDispatcher:
    """Delivers payloads to caller-supplied HTTPS destinations.

    Args:
        http_client: Optional shared httpx.AsyncClient. One is created per
            dispatcher if omitted.
        dns_timeout: DNS resolution bound, in seconds.
        http_timeout: Outbound POST bound, in seconds.
        pin_resolved_ip: Connect to the approved address rather than
            re-resolving the hostname inside the HTTP client.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient | None = None,
        dns_timeout: float = DEFAULT_DNS_TIMEOUT,
        http_timeout: float = DEFAULT_HTTP_TIMEOUT,
        pin_resolved_ip: bool = True,
    ) -> None:
        self._client = http_client or httpx.AsyncClient(timeout=http_timeout)
        self._owns_client = http_client is None
        self._dns_timeout = dns_timeout
        self._http_timeout = http_timeout
        self._pin_resolved_ip = pin_resolved_ip

    async def close(self) -> None:
        """Close the HTTP client if this dispatcher created it."""
        if self._owns_client:
            await self._client.aclose()

    async def dispatch(
        self,
        destination_url: str | None,
        secret: str | None,
        payload: Any,
    ) -> DeliveryResult:
        """Validate the destination and POST the payload to it.

        Raises:
            InvalidRequest: A required argument is missing or unusable.
            InvalidUrl, ProtocolViolation, ResolutionFailed,
            PrivateNetworkBlocked: The SSRF guard refused the destination.
        """
        if not destination_url or not secret or payload is None:
            raise InvalidRequest(
                "Missing destinationUrl, secretKey, or payload in the request body."
            )
        body = _encode_payload(payload)

        target = await ssrf.authorize(destination_url, dns_timeout=self._dns_timeout)
        return await self._post(target, secret, body)

    def _build_request(self, target: ssrf.ResolvedTarget, secret: str, body: str) -> httpx.Request:
        headers = {
            "Content-Type": "application/json",
            SECRET_HEADER: secret,
            "User-Agent": USER_AGENT,
        }
        if not self._pin_resolved_ip:
            return self._client.build_request(
                "POST", target.url, content=body, headers=headers,
                timeout=self._http_timeout,
            )

        headers["Host"] = target.host_header
        return self._client.build_request(
            "POST",
            target.pinned_url,
            content=body,
            headers=headers,
            timeout=self._http_timeout,
            extensions={"sni_hostname": target.ascii_hostname},
        )

    async def _exchange(self, request: httpx.Request) -> tuple[int, str]:
        """Send request and return (status, body excerpt).

        The response is streamed; at most _MAX_LOGGED_BODY bytes of an error
        body are read and the rest is discarded unread.
        """
        response = await self._client.send(request, stream=True)
        excerpt = b""
        try:
            if not response.is_success:
                async for chunk in response.aiter_bytes():
                    excerpt += chunk
                    if len(excerpt) >= _MAX_LOGGED_BODY:
                        break
        finally:
            await response.aclose()
        return response.status_code, excerpt[:_MAX_LOGGED_BODY].decode("utf-8", errors="replace")

    async def _post(self, target: ssrf.ResolvedTarget, secret: str, body: str) -> DeliveryResult:
        start = time.monotonic()
        try:
            request = self._build_request(target, secret, body)
            async with asyncio.timeout(self._http_timeout):
                status_code, excerpt = await self._exchange(request)
        except (httpx.HTTPError, httpx.InvalidURL, ValueError, TimeoutError) as exc:
            duration_ms = int((time.monotonic() - start) * 1000)
            await logger.awarning(
                "webhook_transport_failure",
                host=target.hostname,
                error_type=type(exc).__name__,
                duration_ms=duration_ms,
            )
            if isinstance(exc, TimeoutError):
                error = f"Request exceeded {self._http_timeout}s time limit"
            else:
                error = str(exc) or type(exc).__name__
            return DeliveryResult(
                outcome=DeliveryOutcome.TRANSPORT_FAILURE,
                error=error,
                duration_ms=duration_ms,
            )

        duration_ms = int((time.monotonic() - start) * 1000)
        if 200 <= status_code < 300:
            await logger.ainfo(
                "webhook_delivered",
                host=target.hostname,
                status_code=status_code,
                duration_ms=duration_ms,
            )
            return DeliveryResult(
                outcome=DeliveryOutcome.DELIVERED,
                target_status=status_code,
                duration_ms=duration_ms,
            )

        await logger.awarning(
            "webhook_remote_rejected",
            host=target.hostname,
            status_code=status_code,
            response_excerpt=excerpt,
            duration_ms=duration_ms,
        )
        return DeliveryResult(
            outcome=DeliveryOutcome.REMOTE_REJECTED,
            target_status=status_code,
            error=f"Target responded with status: {status_code}",
            duration_ms=duration_ms,
        )
