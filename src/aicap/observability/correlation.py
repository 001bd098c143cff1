"""Correlation ID middleware.

Every request gets a server-generated correlation ID, bound into the
structlog context and echoed in the response. A client-supplied
X-Correlation-ID is never trusted as the ID; when well-formed it is logged
separately as client_correlation_id.
"""

from __future__ import annotations

import re
from uuid import uuid4

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

CORRELATION_HEADER = "X-Correlation-ID"

_CORRELATION_PATTERN = re.compile(r"^[a-zA-Z0-9_\-]{1,64}$")


class CorrelationMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        correlation_id = str(uuid4())
        request.state.correlation_id = correlation_id

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            correlation_id=correlation_id,
            path=request.url.path,
        )
        client_correlation = request.headers.get(CORRELATION_HEADER, "")
        if client_correlation and _CORRELATION_PATTERN.match(client_correlation):
            structlog.contextvars.bind_contextvars(
                client_correlation_id=client_correlation,
            )

        response = await call_next(request)
        response.headers[CORRELATION_HEADER] = correlation_id
        return response
