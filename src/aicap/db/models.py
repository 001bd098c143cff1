"""ORM models: ApiKey and WebhookCredential.

All identifiers are UUID4 strings to prevent enumeration.
Every row belongs to exactly one owner; queries filter on owner_id.
All timestamps are UTC.
"""

from __future__ import annotations

import enum
from datetime import UTC, datetime
from uuid import uuid4

from sqlalchemy import Boolean, DateTime, Index, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _utcnow() -> datetime:
    return datetime.now(UTC)


class Base(DeclarativeBase):
    """Base class for all ORM models."""


class TriggerEvent(str, enum.Enum):
    """Domain events a webhook credential can subscribe to."""

    CONTENT_COMPLETE = "content.complete"
    CONTENT_SCHEDULED = "content.scheduled"


class ApiKey(Base):
    """Issued API key. Only the bcrypt hash is stored, never the plaintext.

    Revocation flips is_active; rows are never deleted.
    """

    __tablename__ = "api_key"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid4())
    )
    owner_id: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    key_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    last_used_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    __table_args__ = (
        Index("ix_api_key_owner_id", "owner_id"),
        Index("ix_api_key_is_active", "is_active"),
    )

    def __repr__(self) -> str:
        return f"<ApiKey(id={self.id}, owner={self.owner_id}, active={self.is_active})>"


class WebhookCredential(Base):
    """Owner-registered outbound webhook destination.

    The shared secret is stored Fernet-encrypted (secret_encrypted).
    destination_url must be https at write time; it is re-checked by the
    SSRF guard on every dispatch.
    """

    __tablename__ = "webhook_credential"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid4())
    )
    owner_id: Mapped[str] = mapped_column(String(255), nullable=False)
    destination_url: Mapped[str] = mapped_column(String(2048), nullable=False)
    secret_encrypted: Mapped[str] = mapped_column(Text, nullable=False)
    trigger_event: Mapped[str] = mapped_column(
        String(64), nullable=False, default=TriggerEvent.CONTENT_COMPLETE.value
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    __table_args__ = (
        Index("ix_webhook_credential_owner_id", "owner_id"),
        Index("ix_webhook_credential_owner_trigger", "owner_id", "trigger_event"),
    )

    def __repr__(self) -> str:
        return (
            f"<WebhookCredential(id={self.id}, owner={self.owner_id}, "
            f"trigger={self.trigger_event}, active={self.is_active})>"
        )
