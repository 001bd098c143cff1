"""Stored webhook credentials: CRUD, test ping, and event fan-out.

Owner-scoped throughout; another owner's webhook answers 404.
Secrets are accepted on write and never returned.
"""

from fastapi import APIRouter, Depends, HTTPException, Request, status

from aicap.api.auth import require_owner
from aicap.api.dependencies import get_dispatcher, get_webhook_store
from aicap.api.rate_limit import DISPATCH_LIMIT, limiter
from aicap.api.routes.dispatch import delivery_response
from aicap.api.schemas import (
    DispatchResponse,
    EventDeliveryResponse,
    EventDispatchRequest,
    EventDispatchResponse,
    RejectionResponse,
    WebhookCreateRequest,
    WebhookResponse,
    WebhookTestRequest,
    WebhookUpdateRequest,
)
from aicap.db.models import TriggerEvent
from aicap.errors import InvalidRequest
from aicap.webhooks.dispatcher import WebhookDispatcher
from aicap.webhooks.store import EventDelivery, WebhookStore, WebhookSummary

router = APIRouter()


def _to_response(summary: WebhookSummary) -> WebhookResponse:
    return WebhookResponse(
        id=summary.id,
        destination_url=summary.destination_url,
        trigger_event=summary.trigger_event,
        is_active=summary.is_active,
        created_at=summary.created_at,
        updated_at=summary.updated_at,
    )


def _not_found() -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Webhook not found")


@router.get("/api/webhooks/events", response_model=list[str])
async def list_trigger_events() -> list[str]:
    return [event.value for event in TriggerEvent]


@router.post(
    "/api/webhooks",
    response_model=WebhookResponse,
    status_code=201,
    responses={400: {"model": RejectionResponse}, 403: {"model": RejectionResponse}},
)
async def create_webhook(
    body: WebhookCreateRequest,
    owner_id: str = Depends(require_owner),
    store: WebhookStore = Depends(get_webhook_store),
) -> WebhookResponse:
    summary = await store.create(
        owner_id=owner_id,
        destination_url=body.destination_url,
        secret=body.secret_key,
        trigger_event=body.trigger_event,
        is_active=body.is_active,
    )
    return _to_response(summary)


@router.get("/api/webhooks", response_model=list[WebhookResponse])
async def list_webhooks(
    owner_id: str = Depends(require_owner),
    store: WebhookStore = Depends(get_webhook_store),
) -> list[WebhookResponse]:
    return [_to_response(s) for s in await store.list(owner_id)]


@router.patch("/api/webhooks/{webhook_id}", response_model=WebhookResponse)
async def update_webhook(
    webhook_id: str,
    body: WebhookUpdateRequest,
    owner_id: str = Depends(require_owner),
    store: WebhookStore = Depends(get_webhook_store),
) -> WebhookResponse:
    summary = await store.update(
        webhook_id,
        owner_id,
        destination_url=body.destination_url,
        secret=body.secret_key,
        trigger_event=body.trigger_event,
        is_active=body.is_active,
    )
    if summary is None:
        raise _not_found()
    return _to_response(summary)


@router.delete("/api/webhooks/{webhook_id}", status_code=204)
async def delete_webhook(
    webhook_id: str,
    owner_id: str = Depends(require_owner),
    store: WebhookStore = Depends(get_webhook_store),
) -> None:
    if not await store.delete(webhook_id, owner_id):
        raise _not_found()


@router.post(
    "/api/webhooks/{webhook_id}/test",
    response_model=DispatchResponse,
    responses={400: {"model": RejectionResponse}, 403: {"model": RejectionResponse}},
)
@limiter.limit(DISPATCH_LIMIT)
async def test_webhook(
    request: Request,
    webhook_id: str,
    body: WebhookTestRequest | None = None,
    owner_id: str = Depends(require_owner),
    store: WebhookStore = Depends(get_webhook_store),
    dispatcher: WebhookDispatcher = Depends(get_dispatcher),
) -> DispatchResponse:
    """Send a test payload to a stored webhook, active or not."""
    payload = (body or WebhookTestRequest()).payload
    result = await store.send(dispatcher, webhook_id, owner_id, payload)
    if result is None:
        raise _not_found()
    return delivery_response(result)


def _event_delivery_response(delivery: EventDelivery) -> EventDeliveryResponse:
    if delivery.rejection is not None:
        return EventDeliveryResponse(
            webhook_id=delivery.webhook_id,
            success=False,
            reason=delivery.rejection.reason.value,
            error=delivery.rejection.message,
        )
    if delivery.result is None:
        return EventDeliveryResponse(
            webhook_id=delivery.webhook_id, success=False, error=delivery.error
        )
    result = delivery.result
    return EventDeliveryResponse(
        webhook_id=delivery.webhook_id,
        success=result.success,
        outcome=result.outcome,
        target_status=result.target_status,
        error=None if result.success else result.message,
    )


@router.post("/api/webhooks/events/{trigger_event}", response_model=EventDispatchResponse)
@limiter.limit(DISPATCH_LIMIT)
async def dispatch_event(
    request: Request,
    trigger_event: TriggerEvent,
    body: EventDispatchRequest,
    owner_id: str = Depends(require_owner),
    store: WebhookStore = Depends(get_webhook_store),
    dispatcher: WebhookDispatcher = Depends(get_dispatcher),
) -> EventDispatchResponse:
    """Deliver a domain event to every active webhook of the owner that subscribes to it."""
    if body.payload is None:
        raise InvalidRequest("Missing payload in the request body.")

    deliveries = await store.dispatch_event(dispatcher, owner_id, trigger_event, body.payload)
    return EventDispatchResponse(
        trigger_event=trigger_event,
        deliveries=[_event_delivery_response(d) for d in deliveries],
    )
