"""FastAPI dependency injection: services and configuration.

All dependencies read from app.state, which is populated during lifespan startup.
"""

from __future__ import annotations

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from aicap.config import Settings
from aicap.keys.issuer import KeyIssuer
from aicap.keys.lifecycle import KeyLifecycle
from aicap.keys.verifier import KeyVerifier
from aicap.webhooks.dispatcher import WebhookDispatcher
from aicap.webhooks.store import WebhookStore


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_session_factory(request: Request) -> async_sessionmaker[AsyncSession]:
    return request.app.state.session_factory


def get_dispatcher(request: Request) -> WebhookDispatcher:
    return request.app.state.dispatcher


def get_issuer(request: Request) -> KeyIssuer:
    return request.app.state.key_issuer


def get_verifier(request: Request) -> KeyVerifier:
    return request.app.state.key_verifier


def get_lifecycle(request: Request) -> KeyLifecycle:
    return request.app.state.key_lifecycle


def get_webhook_store(request: Request) -> WebhookStore:
    return request.app.state.webhook_store
