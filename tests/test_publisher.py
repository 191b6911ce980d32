"""
Tests for the publish pipeline.
"""

from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from keygate.faults import DuplicateFault, FaultKind, ValidationFault
from keygate.pipeline.publisher import (
    validate_item_key,
    validate_max_uses,
    validate_permissions,
)

from conftest import EPOCH, publish_key


class TestPublish:

    @pytest.mark.asyncio
    async def test_publish_persists_record(self, publisher, store, codec, clock):
        published = await publish_key(publisher, clock, permissions=["read", "write"], max_uses=5)

        assert len(published.secret) == 64
        assert published.published_at == EPOCH
        assert published.expires_at == EPOCH + timedelta(hours=1)

        (record,) = await store.find_by_fingerprint(codec.fingerprint(published.secret))
        assert record.id == published.id
        assert record.used_count == 0
        assert record.max_uses == 5
        assert record.permissions == ["read", "write"]
        assert codec.verify(record.verifier, published.secret)

    @pytest.mark.asyncio
    async def test_secret_never_stored(self, publisher, store, clock):
        published = await publish_key(publisher, clock)
        record = await store.find_by_ref(published.id)
        assert published.secret not in record.to_dict().values()

    @pytest.mark.asyncio
    async def test_accepts_iso_string_expiry(self, publisher):
        outcome = await publisher.publish(
            "app://users/u1", ["read"], "2030-01-01T13:00:00Z", 1
        )
        assert outcome.ok
        assert outcome.value.expires_at == EPOCH + timedelta(hours=1)

    @pytest.mark.asyncio
    async def test_envelope_contains_key(self, publisher, clock):
        published = await publish_key(publisher, clock)
        body = published.to_dict()
        assert body["api_key"] == published.secret
        assert body["item_key"] == "app://users/u1"

    @pytest.mark.asyncio
    async def test_success_is_counted(self, publisher, metrics, clock):
        await publish_key(publisher, clock)
        assert metrics.published == 1


class TestPublishRejections:

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "item_key, permissions, expires_in, max_uses, field",
        [
            ("", ["read"], 3600, 1, "item_key"),
            ("not a url", ["read"], 3600, 1, "item_key"),
            ("app:///no-host", ["read"], 3600, 1, "item_key"),
            ("app://users/u1", [], 3600, 1, "permissions"),
            ("app://users/u1", "read", 3600, 1, "permissions"),
            ("app://users/u1", ["read", ""], 3600, 1, "permissions"),
            ("app://users/u1", ["read"], 0, 1, "expires_at"),
            ("app://users/u1", ["read"], -60, 1, "expires_at"),
            ("app://users/u1", ["read"], 3600, 0, "max_uses"),
            ("app://users/u1", ["read"], 3600, True, "max_uses"),
            ("app://users/u1", ["read"], 3600, "2", "max_uses"),
        ],
    )
    async def test_invalid_input(
        self, publisher, store, metrics, item_key, permissions, expires_in, max_uses, field
    ):
        outcome = await publisher.publish(
            item_key, permissions, EPOCH + timedelta(seconds=expires_in), max_uses
        )

        assert outcome.kind is FaultKind.VALIDATION
        assert outcome.fault.field == field
        assert (await store.stats(EPOCH)).total_keys == 0
        assert metrics.failures[FaultKind.VALIDATION.value] == 1

    @pytest.mark.asyncio
    async def test_unparseable_expiry(self, publisher):
        outcome = await publisher.publish("app://users/u1", ["read"], "next week", 1)
        assert outcome.kind is FaultKind.VALIDATION
        assert outcome.fault.field == "expires_at"

    @pytest.mark.asyncio
    async def test_verifier_collision(self, publisher, store):
        store.exists = AsyncMock(return_value=True)
        outcome = await publisher.publish(
            "app://users/u1", ["read"], EPOCH + timedelta(hours=1), 1
        )
        assert outcome.kind is FaultKind.DUPLICATE
        assert outcome.fault.status == 409

    @pytest.mark.asyncio
    async def test_unique_violation_at_insert(self, publisher, store):
        store.create = AsyncMock(side_effect=DuplicateFault())
        outcome = await publisher.publish(
            "app://users/u1", ["read"], EPOCH + timedelta(hours=1), 1
        )
        assert outcome.kind is FaultKind.DUPLICATE

    @pytest.mark.asyncio
    async def test_store_failure_is_internal(self, publisher, store):
        store.create = AsyncMock(side_effect=RuntimeError("disk full"))
        outcome = await publisher.publish(
            "app://users/u1", ["read"], EPOCH + timedelta(hours=1), 1
        )
        assert outcome.kind is FaultKind.INTERNAL
        assert outcome.fault.metadata["cause"] == "RuntimeError"
        assert "disk full" not in outcome.fault.message


class TestValidators:

    def test_item_key_with_query(self):
        key = "s3://bucket/path/to/object?version=2"
        assert validate_item_key(key) == key

    def test_permissions_from_tuple(self):
        assert validate_permissions(("read", "write")) == ["read", "write"]

    def test_max_uses_rejects_float(self):
        with pytest.raises(ValidationFault):
            validate_max_uses(1.5)
