"""Pydantic request/response schemas for all API endpoints.

Wire format is camelCase (destinationUrl, secretKey, plainTextKey, ...);
Python attributes stay snake_case. These are separate from the ORM models
(db/models.py) and the service-level dataclasses.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from aicap.db.models import TriggerEvent
from aicap.webhooks.dispatcher import DeliveryOutcome


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# --- Dispatch ---


class DispatchRequest(CamelModel):
    """POST /api/webhook/dispatch body. Presence is checked by the dispatcher."""

    destination_url: str | None = None
    secret_key: str | None = None
    payload: Any = None


class DispatchResponse(CamelModel):
    """Accepted-and-processed dispatch, sent with HTTP 200 even on remote failure."""

    success: bool
    outcome: DeliveryOutcome
    message: str | None = None
    error: str | None = None
    target_status: int | None = None


class RejectionResponse(CamelModel):
    """Validation or security rejection (HTTP 400/403)."""

    success: bool = False
    error: str
    reason: str


# --- API keys ---


class KeyCreateRequest(CamelModel):
    key_name: str | None = None


class KeyCreateResponse(CamelModel):
    """Includes the plaintext key. Shown once, never stored, never logged."""

    success: bool = True
    plain_text_key: str
    message: str = "Key generated. Store this key securely, it will not be shown again."


class ApiKeyResponse(CamelModel):
    id: str
    name: str
    is_active: bool
    created_at: datetime
    last_used_at: datetime | None = None


class KeyStateRequest(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    is_active: bool


class KeyStateResponse(CamelModel):
    success: bool = True
    id: str
    is_active: bool


class WhoAmIResponse(CamelModel):
    owner_id: str


# --- Stored webhooks ---


class WebhookCreateRequest(CamelModel):
    destination_url: str = Field(min_length=1, max_length=2048)
    secret_key: str = Field(min_length=1, max_length=1024)
    trigger_event: TriggerEvent = TriggerEvent.CONTENT_COMPLETE
    is_active: bool = True


class WebhookUpdateRequest(CamelModel):
    destination_url: str | None = Field(default=None, max_length=2048)
    secret_key: str | None = Field(default=None, max_length=1024)
    trigger_event: TriggerEvent | None = None
    is_active: bool | None = None


class WebhookResponse(CamelModel):
    """Stored webhook metadata. The secret is never returned."""

    id: str
    destination_url: str
    trigger_event: str
    is_active: bool
    created_at: datetime
    updated_at: datetime


class WebhookTestRequest(CamelModel):
    payload: dict[str, Any] = Field(
        default_factory=lambda: {"event": "test.ping", "message": "Test webhook delivery"}
    )


class EventDispatchRequest(CamelModel):
    payload: Any = None


class EventDeliveryResponse(CamelModel):
    webhook_id: str
    success: bool
    outcome: DeliveryOutcome | None = None
    target_status: int | None = None
    reason: str | None = None
    error: str | None = None


class EventDispatchResponse(CamelModel):
    trigger_event: TriggerEvent
    deliveries: list[EventDeliveryResponse]
