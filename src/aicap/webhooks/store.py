"""Owner-scoped storage for webhook credentials, plus stored-hook delivery.

Every query filters on owner_id taken from the authenticated principal.
Secrets are encrypted before insert and decrypted only to dispatch.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime
from typing import Any
from urllib.parse import urlsplit

import structlog
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from aicap.db.models import TriggerEvent, WebhookCredential
from aicap.errors import DispatchRejected, InvalidRequest, InvalidUrl, ProtocolViolation
from aicap.webhooks.dispatcher import DeliveryResult, WebhookDispatcher
from aicap.webhooks.secrets import SecretBox, SecretDecryptionError

logger = structlog.get_logger()


@dataclass(frozen=True)
class WebhookSummary:
    """Webhook metadata safe to return to the owner (no secret)."""

    id: str
    destination_url: str
    trigger_event: str
    is_active: bool
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_model(cls, hook: WebhookCredential) -> WebhookSummary:
        return cls(
            id=hook.id,
            destination_url=hook.destination_url,
            trigger_event=hook.trigger_event,
            is_active=hook.is_active,
            created_at=hook.created_at,
            updated_at=hook.updated_at,
        )


@dataclass(frozen=True)
class EventDelivery:
    """Outcome of one hook during an event fan-out."""

    webhook_id: str
    result: DeliveryResult | None = None
    rejection: DispatchRejected | None = None
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.result is not None and self.result.success


def validate_destination_url(url: str) -> str:
    """Write-time check: absolute https URL with a host.

    The full SSRF check (resolution and address classification) happens at
    dispatch time.
    """
    url = (url or "").strip()
    try:
        parsed = urlsplit(url)
        hostname = parsed.hostname
    except ValueError as exc:
        raise InvalidUrl("Invalid destination URL format.") from exc
    if not parsed.scheme or not hostname:
        raise InvalidUrl("Invalid destination URL format.")
    if parsed.scheme.lower() != "https":
        raise ProtocolViolation("Webhook destination must use HTTPS.")
    return url


class WebhookStore:
    """CRUD for one owner's webhook credentials.

    Args:
        session_factory: Async session maker for webhook_credential.
        secret_box: Fernet wrapper used for the stored secret.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        secret_box: SecretBox,
    ) -> None:
        self._session_factory = session_factory
        self._secret_box = secret_box

    async def create(
        self,
        owner_id: str,
        destination_url: str,
        secret: str,
        trigger_event: TriggerEvent = TriggerEvent.CONTENT_COMPLETE,
        is_active: bool = True,
    ) -> WebhookSummary:
        url = validate_destination_url(destination_url)
        if not secret:
            raise InvalidRequest("A webhook secret is required.")

        async with self._session_factory() as session:
            async with session.begin():
                hook = WebhookCredential(
                    owner_id=owner_id,
                    destination_url=url,
                    secret_encrypted=self._secret_box.encrypt(secret),
                    trigger_event=TriggerEvent(trigger_event).value,
                    is_active=is_active,
                )
                session.add(hook)
                await session.flush()
                summary = WebhookSummary.from_model(hook)

        await logger.ainfo(
            "webhook_created",
            webhook_id=summary.id,
            owner_id=owner_id,
            host=urlsplit(url).hostname,
        )
        return summary

    async def list(self, owner_id: str) -> list[WebhookSummary]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(WebhookCredential)
                .where(WebhookCredential.owner_id == owner_id)
                .order_by(WebhookCredential.created_at.desc())
            )
            return [WebhookSummary.from_model(h) for h in result.scalars().all()]

    async def update(
        self,
        webhook_id: str,
        owner_id: str,
        *,
        destination_url: str | None = None,
        secret: str | None = None,
        trigger_event: TriggerEvent | None = None,
        is_active: bool | None = None,
    ) -> WebhookSummary | None:
        """Apply the given changes. Returns None if not found or not owned."""
        url = validate_destination_url(destination_url) if destination_url is not None else None
        if secret is not None and not secret:
            raise InvalidRequest("A webhook secret is required.")

        async with self._session_factory() as session:
            async with session.begin():
                hook = await self._get_owned(session, webhook_id, owner_id)
                if hook is None:
                    return None
                if url is not None:
                    hook.destination_url = url
                if secret is not None:
                    hook.secret_encrypted = self._secret_box.encrypt(secret)
                if trigger_event is not None:
                    hook.trigger_event = TriggerEvent(trigger_event).value
                if is_active is not None:
                    hook.is_active = is_active
                await session.flush()
                return WebhookSummary.from_model(hook)

    async def delete(self, webhook_id: str, owner_id: str) -> bool:
        """Hard-delete an owned webhook. False if not found or not owned."""
        async with self._session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    delete(WebhookCredential).where(
                        WebhookCredential.id == webhook_id,
                        WebhookCredential.owner_id == owner_id,
                    )
                )
                deleted = result.rowcount > 0

        if deleted:
            await logger.ainfo("webhook_deleted", webhook_id=webhook_id, owner_id=owner_id)
        return deleted

    async def send(
        self,
        dispatcher: WebhookDispatcher,
        webhook_id: str,
        owner_id: str,
        payload: Any,
    ) -> DeliveryResult | None:
        """Dispatch payload to one stored webhook. None if not found or not owned.

        Raises:
            DispatchRejected: The SSRF guard refused the stored destination.
            SecretDecryptionError: The stored secret no longer decrypts.
        """
        async with self._session_factory() as session:
            hook = await self._get_owned(session, webhook_id, owner_id)
            if hook is None:
                return None
            url, token = hook.destination_url, hook.secret_encrypted

        try:
            secret = self._secret_box.decrypt(token)
        except SecretDecryptionError:
            await logger.aerror("webhook_secret_undecryptable", webhook_id=webhook_id)
            raise
        return await dispatcher.dispatch(url, secret, payload)

    async def dispatch_event(
        self,
        dispatcher: WebhookDispatcher,
        owner_id: str,
        trigger_event: TriggerEvent,
        payload: Any,
    ) -> list[EventDelivery]:
        """Deliver payload to every active hook of owner_id for trigger_event.

        Hooks are independent: one rejection or failure never stops the others.
        """
        async with self._session_factory() as session:
            result = await session.execute(
                select(
                    WebhookCredential.id,
                    WebhookCredential.destination_url,
                    WebhookCredential.secret_encrypted,
                ).where(
                    WebhookCredential.owner_id == owner_id,
                    WebhookCredential.trigger_event == TriggerEvent(trigger_event).value,
                    WebhookCredential.is_active.is_(True),
                )
            )
            targets = list(result.all())

        async def _one(webhook_id: str, url: str, token: str) -> EventDelivery:
            try:
                delivery = await dispatcher.dispatch(url, self._secret_box.decrypt(token), payload)
            except DispatchRejected as exc:
                await logger.awarning(
                    "webhook_event_rejected",
                    webhook_id=webhook_id,
                    reason=exc.reason.value,
                )
                return EventDelivery(webhook_id=webhook_id, rejection=exc)
            except SecretDecryptionError:
                await logger.aerror("webhook_secret_undecryptable", webhook_id=webhook_id)
                return EventDelivery(webhook_id=webhook_id, error="Stored secret could not be decrypted")
            return EventDelivery(webhook_id=webhook_id, result=delivery)

        return list(await asyncio.gather(*(_one(*t) for t in targets)))

    @staticmethod
    async def _get_owned(
        session: AsyncSession, webhook_id: str, owner_id: str
    ) -> WebhookCredential | None:
        result = await session.execute(
            select(WebhookCredential).where(
                WebhookCredential.id == webhook_id,
                WebhookCredential.owner_id == owner_id,
            )
        )
        return result.scalar_one_or_none()
