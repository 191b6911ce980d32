"""
Record store tests, run against both the memory and the SQLite store.
"""

import asyncio
import uuid
from datetime import timedelta

import pytest
import pytest_asyncio

from keygate.credentials import CredentialRecord
from keygate.faults import DuplicateFault, StoreFault
from keygate.stores import (
    ExpirySweeper,
    MemoryRecordStore,
    SQLiteRecordStore,
    create_store,
)

from conftest import EPOCH, FakeClock


def make_record(**overrides) -> CredentialRecord:
    data = dict(
        id=uuid.uuid4().hex,
        fingerprint="0123456789abcdef",
        verifier=f"$argon2id$v=19${uuid.uuid4().hex}",
        item_key="app://users/u1",
        permissions=["read", "write"],
        published_at=EPOCH,
        expires_at=EPOCH + timedelta(hours=1),
        max_uses=2,
    )
    data.update(overrides)
    return CredentialRecord(**data)


@pytest_asyncio.fixture(params=["memory", "sqlite"])
async def any_store(request, tmp_path):
    if request.param == "memory":
        s = MemoryRecordStore()
    else:
        s = SQLiteRecordStore(f"sqlite:///{tmp_path / 'keys.db'}")
    await s.initialize()
    yield s
    await s.shutdown()


class TestCreateAndFind:

    @pytest.mark.asyncio
    async def test_create_then_lookup(self, any_store):
        record = make_record()
        await any_store.create(record)

        assert await any_store.exists(record.verifier) is True
        found = await any_store.find_by_verifier(record.verifier)
        assert found.id == record.id
        assert found.permissions == ["read", "write"]
        assert found.used_count == 0
        assert abs((found.expires_at - record.expires_at).total_seconds()) < 0.001

    @pytest.mark.asyncio
    async def test_find_by_ref_accepts_id_or_verifier(self, any_store):
        record = make_record()
        await any_store.create(record)
        assert (await any_store.find_by_ref(record.id)).verifier == record.verifier
        assert (await any_store.find_by_ref(record.verifier)).id == record.id
        assert await any_store.find_by_ref("missing") is None

    @pytest.mark.asyncio
    async def test_fingerprint_returns_all_collisions(self, any_store):
        first = make_record(fingerprint="aaaaaaaaaaaaaaaa")
        second = make_record(fingerprint="aaaaaaaaaaaaaaaa", published_at=EPOCH + timedelta(seconds=1))
        other = make_record(fingerprint="bbbbbbbbbbbbbbbb")
        for r in (first, second, other):
            await any_store.create(r)

        found = await any_store.find_by_fingerprint("aaaaaaaaaaaaaaaa")
        assert [r.id for r in found] == [first.id, second.id]
        assert await any_store.find_by_fingerprint("cccccccccccccccc") == []

    @pytest.mark.asyncio
    async def test_duplicate_verifier_rejected(self, any_store):
        record = make_record()
        await any_store.create(record)
        with pytest.raises(DuplicateFault):
            await any_store.create(make_record(verifier=record.verifier))

    @pytest.mark.asyncio
    async def test_find_by_item_key(self, any_store):
        await any_store.create(make_record(item_key="app://a/1"))
        await any_store.create(make_record(item_key="app://a/1"))
        await any_store.create(make_record(item_key="app://b/2"))
        assert len(await any_store.find_by_item_key("app://a/1")) == 2
        assert await any_store.find_by_item_key("app://none/0") == []

    @pytest.mark.asyncio
    async def test_find_by_item_key_newest_first(self, any_store):
        older = make_record(id="c" * 32)
        tie_b = make_record(id="b" * 32, published_at=EPOCH + timedelta(minutes=5))
        tie_a = make_record(id="a" * 32, published_at=EPOCH + timedelta(minutes=5))
        for record in (older, tie_b, tie_a):
            await any_store.create(record)

        found = await any_store.find_by_item_key("app://users/u1")
        assert [r.id for r in found] == [tie_a.id, tie_b.id, older.id]

    @pytest.mark.asyncio
    async def test_returned_records_are_detached(self, any_store):
        record = make_record()
        await any_store.create(record)
        found = await any_store.find_by_verifier(record.verifier)
        found.permissions.append("admin")
        found.used_count = 99
        again = await any_store.find_by_verifier(record.verifier)
        assert again.permissions == ["read", "write"]
        assert again.used_count == 0


class TestIncrementUsage:

    @pytest.mark.asyncio
    async def test_increments_until_exhausted(self, any_store):
        record = make_record(max_uses=2)
        await any_store.create(record)

        first = await any_store.increment_usage(record.verifier, EPOCH)
        second = await any_store.increment_usage(record.verifier, EPOCH)
        third = await any_store.increment_usage(record.verifier, EPOCH)

        assert first.used_count == 1
        assert second.used_count == 2
        assert third is None
        assert (await any_store.find_by_verifier(record.verifier)).used_count == 2

    @pytest.mark.asyncio
    async def test_refuses_expired_record(self, any_store):
        record = make_record()
        await any_store.create(record)
        assert await any_store.increment_usage(record.verifier, record.expires_at) is None
        assert (await any_store.find_by_verifier(record.verifier)).used_count == 0

    @pytest.mark.asyncio
    async def test_unknown_verifier(self, any_store):
        assert await any_store.increment_usage("$argon2id$nope", EPOCH) is None


class TestRevokeAndExpiry:

    @pytest.mark.asyncio
    async def test_revoke_sets_expiry_to_now(self, any_store):
        record = make_record()
        await any_store.create(record)
        now = EPOCH + timedelta(minutes=5)

        revoked = await any_store.revoke(record.id, now)
        assert revoked is not None
        assert revoked.is_expired(now)
        assert await any_store.increment_usage(record.verifier, now) is None

    @pytest.mark.asyncio
    async def test_revoke_missing(self, any_store):
        assert await any_store.revoke("missing", EPOCH) is None

    @pytest.mark.asyncio
    async def test_delete_expired(self, any_store):
        live = make_record()
        dead = make_record(expires_at=EPOCH + timedelta(seconds=10))
        await any_store.create(live)
        await any_store.create(dead)

        deleted = await any_store.delete_expired(EPOCH + timedelta(seconds=10))
        assert deleted == 1
        assert await any_store.exists(dead.verifier) is False
        assert await any_store.exists(live.verifier) is True

    @pytest.mark.asyncio
    async def test_stats(self, any_store):
        await any_store.create(make_record(item_key="app://a/1"))
        await any_store.create(make_record(item_key="app://a/1", used_count=2))
        await any_store.create(make_record(item_key="app://b/2", expires_at=EPOCH))

        stats = await any_store.stats(EPOCH)
        assert stats.total_keys == 3
        assert stats.active_keys == 1
        assert stats.exhausted_keys == 1
        assert stats.expired_keys == 1
        assert stats.top_items[0] == {"item_key": "app://a/1", "key_count": 2}


class TestHealth:

    @pytest.mark.asyncio
    async def test_health_check(self, any_store):
        assert await any_store.health_check() is True

    @pytest.mark.asyncio
    async def test_sqlite_unopened(self, tmp_path):
        s = SQLiteRecordStore(f"sqlite:///{tmp_path / 'x.db'}")
        assert await s.health_check() is False
        with pytest.raises(StoreFault):
            await s.exists("anything")


class TestCreateStore:
    def test_memory(self):
        assert isinstance(create_store("memory://"), MemoryRecordStore)

    def test_sqlite(self):
        s = create_store("sqlite:///tmp/keys.db")
        assert isinstance(s, SQLiteRecordStore)
        assert s._path == "tmp/keys.db"

    def test_sqlite_in_memory(self):
        assert create_store("sqlite://")._path == ":memory:"

    def test_unknown_scheme(self):
        with pytest.raises(ValueError):
            create_store("postgres://db/keys")


class TestExpirySweeper:

    @pytest.mark.asyncio
    async def test_sweep_once(self, store):
        clock = FakeClock()
        await store.create(make_record(expires_at=EPOCH + timedelta(seconds=1)))
        sweeper = ExpirySweeper(store, interval=60, clock=clock)

        assert await sweeper.sweep_once() == 0
        clock.advance(1)
        assert await sweeper.sweep_once() == 1
        assert sweeper.total_swept == 1

    @pytest.mark.asyncio
    async def test_background_loop(self, store):
        clock = FakeClock(EPOCH + timedelta(hours=2))
        await store.create(make_record())
        sweeper = ExpirySweeper(store, interval=0.01, clock=clock)

        sweeper.start()
        assert sweeper.running
        for _ in range(100):
            if sweeper.total_swept:
                break
            await asyncio.sleep(0.01)
        await sweeper.stop()

        assert sweeper.total_swept == 1
        assert not sweeper.running

    def test_rejects_bad_interval(self, store):
        with pytest.raises(ValueError):
            ExpirySweeper(store, interval=0)
