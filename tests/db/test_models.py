"""Tests for aicap.db.models: ApiKey and WebhookCredential ORM models.

Covers:
- Record creation with defaults (UUID, timestamps, active flag)
- TriggerEvent enum values
- Index existence
"""

from uuid import UUID

from sqlalchemy import inspect, select

from aicap.db.models import ApiKey, Base, TriggerEvent, WebhookCredential


class TestTriggerEvent:
    def test_values(self):
        assert TriggerEvent.CONTENT_COMPLETE == "content.complete"
        assert TriggerEvent.CONTENT_SCHEDULED == "content.scheduled"


class TestApiKey:
    async def test_defaults(self, session_factory):
        async with session_factory() as session:
            async with session.begin():
                session.add(ApiKey(owner_id="user-1", name="k", key_hash="$2b$04$x"))

        async with session_factory() as session:
            row = (await session.execute(select(ApiKey))).scalar_one()

        UUID(row.id)
        assert row.is_active is True
        assert row.created_at is not None
        assert row.last_used_at is None
        assert "key_hash" not in repr(row)

    def test_persisted_columns(self):
        assert set(ApiKey.__table__.columns.keys()) == {
            "id",
            "owner_id",
            "name",
            "key_hash",
            "is_active",
            "created_at",
            "last_used_at",
        }


class TestWebhookCredential:
    async def test_defaults(self, session_factory):
        async with session_factory() as session:
            async with session.begin():
                session.add(
                    WebhookCredential(
                        owner_id="user-1",
                        destination_url="https://hooks.example.com/",
                        secret_encrypted="gAAAA...",
                    )
                )

        async with session_factory() as session:
            row = (await session.execute(select(WebhookCredential))).scalar_one()

        UUID(row.id)
        assert row.trigger_event == TriggerEvent.CONTENT_COMPLETE.value
        assert row.is_active is True
        assert row.updated_at is not None
        assert "secret" not in repr(row)


class TestIndexes:
    async def test_owner_indexes_exist(self, async_engine):
        async with async_engine.connect() as conn:
            indexes = await conn.run_sync(
                lambda c: {
                    table: {ix["name"] for ix in inspect(c).get_indexes(table)}
                    for table in Base.metadata.tables
                }
            )
        assert any("owner" in name for name in indexes["api_key"])
        assert any("owner" in name for name in indexes["webhook_credential"])
