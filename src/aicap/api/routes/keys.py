"""API key issuance, listing, and revoke/reactivate.

All routes are owner-scoped: the owner comes from require_owner, never
from the request body. Keys of other owners answer 404, same as missing.
"""

from fastapi import APIRouter, Depends, HTTPException, Request, status

from aicap.api.auth import require_api_key_owner, require_owner
from aicap.api.dependencies import get_issuer, get_lifecycle
from aicap.api.rate_limit import KEY_ISSUE_LIMIT, limiter
from aicap.api.schemas import (
    ApiKeyResponse,
    KeyCreateRequest,
    KeyCreateResponse,
    KeyStateRequest,
    KeyStateResponse,
    WhoAmIResponse,
)
from aicap.keys.issuer import KeyIssuer
from aicap.keys.lifecycle import KeyLifecycle

router = APIRouter()


@router.post("/api/keys", response_model=KeyCreateResponse, status_code=201)
@limiter.limit(KEY_ISSUE_LIMIT)
async def create_key(
    request: Request,
    body: KeyCreateRequest,
    owner_id: str = Depends(require_owner),
    issuer: KeyIssuer = Depends(get_issuer),
) -> KeyCreateResponse:
    """Issue a new API key. The plaintext is in this response and nowhere else."""
    plaintext = await issuer.issue(owner_id, body.key_name)
    return KeyCreateResponse(plain_text_key=plaintext)


@router.get("/api/keys", response_model=list[ApiKeyResponse])
async def list_keys(
    owner_id: str = Depends(require_owner),
    lifecycle: KeyLifecycle = Depends(get_lifecycle),
) -> list[ApiKeyResponse]:
    keys = await lifecycle.list(owner_id)
    return [
        ApiKeyResponse(
            id=k.id,
            name=k.name,
            is_active=k.is_active,
            created_at=k.created_at,
            last_used_at=k.last_used_at,
        )
        for k in keys
    ]


@router.patch("/api/keys/{key_id}", response_model=KeyStateResponse)
async def set_key_state(
    key_id: str,
    body: KeyStateRequest,
    owner_id: str = Depends(require_owner),
    lifecycle: KeyLifecycle = Depends(get_lifecycle),
) -> KeyStateResponse:
    """Set isActive on an owned key. Idempotent."""
    return await _set_state(lifecycle, key_id, owner_id, body.is_active)


@router.post("/api/keys/{key_id}/revoke", response_model=KeyStateResponse)
async def revoke_key(
    key_id: str,
    owner_id: str = Depends(require_owner),
    lifecycle: KeyLifecycle = Depends(get_lifecycle),
) -> KeyStateResponse:
    """Revoke a key. The record is kept and can be reactivated."""
    return await _set_state(lifecycle, key_id, owner_id, False)


@router.post("/api/keys/{key_id}/activate", response_model=KeyStateResponse)
async def activate_key(
    key_id: str,
    owner_id: str = Depends(require_owner),
    lifecycle: KeyLifecycle = Depends(get_lifecycle),
) -> KeyStateResponse:
    return await _set_state(lifecycle, key_id, owner_id, True)


@router.get("/api/auth/whoami", response_model=WhoAmIResponse)
async def whoami(owner_id: str = Depends(require_api_key_owner)) -> WhoAmIResponse:
    """Resolve the bearer API key to its owner."""
    return WhoAmIResponse(owner_id=owner_id)


async def _set_state(
    lifecycle: KeyLifecycle, key_id: str, owner_id: str, active: bool
) -> KeyStateResponse:
    if not await lifecycle.set_active(key_id, owner_id, active):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="API key not found")
    return KeyStateResponse(id=key_id, is_active=active)
