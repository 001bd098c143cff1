"""Owner authentication: validates Authorization: Bearer <token>.

Two-tier authentication:
1. Service key: AICAP_SERVICE_API_KEY, held by the dashboard backend that
   acts for a signed-in user. The owner comes from the X-Owner-ID header
   the backend sets from its own session, never from end users directly.
   Compared with secrets.compare_digest() (timing-safe).
2. Issued API keys: bcrypt-verified by KeyVerifier; the owner is the
   key's owner_id.

The resolved owner id is attached to request.state.owner_id.
"""

from __future__ import annotations

import secrets

import structlog
from fastapi import Depends, Header, HTTPException, Request, Security, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from aicap.api.dependencies import get_settings, get_verifier
from aicap.keys.verifier import KeyVerifier

logger = structlog.get_logger()

bearer_scheme = HTTPBearer(auto_error=False)

OWNER_HEADER = "X-Owner-ID"
_MAX_OWNER_ID_LENGTH = 255


def _missing_credentials() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Missing authorization header",
        headers={"WWW-Authenticate": "Bearer"},
    )


def _invalid_key() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid API key",
        headers={"WWW-Authenticate": "Bearer"},
    )


async def require_api_key_owner(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Security(bearer_scheme),
    verifier: KeyVerifier = Depends(get_verifier),
) -> str:
    """Resolve the owner of an issued API key.

    This is the dependency for business endpoints that accept API keys.

    Raises:
        HTTPException 401: No credentials, or the key matches no active key.
    """
    if credentials is None:
        raise _missing_credentials()

    owner_id = await verifier.resolve_owner(credentials.credentials)
    if owner_id is None:
        await logger.awarning("api_key_rejected")
        raise _invalid_key()

    request.state.owner_id = owner_id
    return owner_id


async def require_owner(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Security(bearer_scheme),
    x_owner_id: str | None = Header(default=None, alias=OWNER_HEADER),
    verifier: KeyVerifier = Depends(get_verifier),
) -> str:
    """Resolve the acting owner from the service key or an issued API key.

    Raises:
        HTTPException 400: Service key used without an X-Owner-ID header.
        HTTPException 401: No credentials or an unknown key.
    """
    if credentials is None:
        raise _missing_credentials()

    settings = get_settings(request)

    # Fast path: service key
    if secrets.compare_digest(
        credentials.credentials.encode(), settings.aicap_service_api_key.encode()
    ):
        owner_id = (x_owner_id or "").strip()
        if not owner_id or len(owner_id) > _MAX_OWNER_ID_LENGTH:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Service requests must carry a valid {OWNER_HEADER} header",
            )
        request.state.owner_id = owner_id
        return owner_id

    # Slow path: issued key
    return await require_api_key_owner(request, credentials, verifier)
