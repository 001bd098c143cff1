"""POST /api/webhook/dispatch: SSRF-guarded one-shot webhook delivery.

Status contract:
- 400: malformed JSON, missing fields, unparseable URL
- 403: non-https scheme, DNS failure, private/reserved destination
- 200: request accepted and processed; body.success tells whether the
  remote accepted it. Callers must branch on the body, not the status.
"""

from fastapi import APIRouter, Depends, Request
from pydantic import ValidationError

from aicap.api.auth import require_owner
from aicap.api.dependencies import get_dispatcher
from aicap.api.rate_limit import DISPATCH_LIMIT, limiter
from aicap.api.schemas import DispatchRequest, DispatchResponse, RejectionResponse
from aicap.errors import InvalidRequest
from aicap.webhooks.dispatcher import DeliveryResult, WebhookDispatcher

router = APIRouter()


def delivery_response(result: DeliveryResult) -> DispatchResponse:
    if result.success:
        return DispatchResponse(
            success=True,
            outcome=result.outcome,
            message=result.message,
            target_status=result.target_status,
        )
    return DispatchResponse(
        success=False,
        outcome=result.outcome,
        error=result.message,
        target_status=result.target_status,
    )


@router.post(
    "/api/webhook/dispatch",
    response_model=DispatchResponse,
    responses={400: {"model": RejectionResponse}, 403: {"model": RejectionResponse}},
)
@limiter.limit(DISPATCH_LIMIT)
async def dispatch_webhook(
    request: Request,
    _owner_id: str = Depends(require_owner),
    dispatcher: WebhookDispatcher = Depends(get_dispatcher),
) -> DispatchResponse:
    """Deliver a payload to a caller-supplied HTTPS destination.

    Body: {destinationUrl, secretKey, payload}. The body is parsed here so
    malformed JSON still gets the structured {success: false} rejection.
    """
    try:
        raw = await request.json()
        body = DispatchRequest.model_validate(raw)
    except (ValueError, ValidationError) as exc:
        raise InvalidRequest("Invalid JSON body or missing required fields.") from exc

    result = await dispatcher.dispatch(body.destination_url, body.secret_key, body.payload)
    return delivery_response(result)
