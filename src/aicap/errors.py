"""Domain exceptions for webhook dispatch and API key issuance.

Validation and security rejections raise before any I/O. Each carries a
stable reason code and the HTTP status the API layer maps it to.
Remote/transport delivery failures are NOT exceptions; they are reported
as a DeliveryResult (see aicap.webhooks.dispatcher).
"""

from __future__ import annotations

import enum


class RejectionReason(str, enum.Enum):
    """Why a dispatch request was refused before any outbound call."""

    INVALID_REQUEST = "INVALID_REQUEST"
    INVALID_URL = "INVALID_URL"
    PROTOCOL_VIOLATION = "PROTOCOL_VIOLATION"
    RESOLUTION_FAILED = "RESOLUTION_FAILED"
    PRIVATE_NETWORK_BLOCKED = "PRIVATE_NETWORK_BLOCKED"


class DispatchRejected(Exception):
    """Base class for request-level dispatch rejections."""

    reason: RejectionReason = RejectionReason.INVALID_REQUEST
    status_code: int = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidRequest(DispatchRejected):
    """A required field (destination, secret, payload) is missing."""

    reason = RejectionReason.INVALID_REQUEST
    status_code = 400


class InvalidUrl(DispatchRejected):
    """The destination could not be parsed as an absolute URL."""

    reason = RejectionReason.INVALID_URL
    status_code = 400


class ProtocolViolation(DispatchRejected):
    """The destination scheme is not https."""

    reason = RejectionReason.PROTOCOL_VIOLATION
    status_code = 403


class ResolutionFailed(DispatchRejected):
    """DNS lookup failed, timed out, or returned no usable address."""

    reason = RejectionReason.RESOLUTION_FAILED
    status_code = 403


class PrivateNetworkBlocked(DispatchRejected):
    """The destination resolves to a private or reserved address."""

    reason = RejectionReason.PRIVATE_NETWORK_BLOCKED
    status_code = 403


class InvalidName(Exception):
    """An API key name was empty after trimming."""

    status_code = 400

    def __init__(self, message: str = "A valid key name is required.") -> None:
        super().__init__(message)
        self.message = message
