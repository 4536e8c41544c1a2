"""Tests for the in-memory and file-backed product stores."""

import asyncio

import orjson
import pytest

from errors import NotFound, StoreWriteFailure
from models import Product, ProductAttribute
from store import FileProductStore, MemoryProductStore, Retention


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def _product(sku: str = "1001", **overrides) -> Product:
    fields = dict(
        sku=sku,
        name="Suni Deri Omuz Çantası",
        brand="Shaka",
        discounted_price=342.39,
        original_price=399.99,
        images=["https://cdn.example.com/1_org.jpg"],
        attributes=[ProductAttribute(name="Color", value="Red")],
    )
    fields.update(overrides)
    return Product(**fields)


def run(coro):
    return asyncio.run(coro)


class TestMemoryStore:
    def test_get_missing_raises(self):
        store = MemoryProductStore()
        with pytest.raises(NotFound) as exc_info:
            run(store.get("nope"))
        assert exc_info.value.sku == "nope"

    def test_set_then_get(self):
        store = MemoryProductStore()
        run(store.set("1001", _product()))

        assert run(store.get("1001")).name == "Suni Deri Omuz Çantası"

    def test_sku_must_match_key(self):
        store = MemoryProductStore()
        with pytest.raises(ValueError):
            run(store.set("9999", _product("1001")))

    def test_returned_records_are_copies(self):
        store = MemoryProductStore()
        original = _product()
        run(store.set("1001", original))

        original.images.append("https://cdn.example.com/mutated.jpg")
        fetched = run(store.get("1001"))
        fetched.attributes[0].value = "Blue"

        again = run(store.get("1001"))
        assert again.images == ["https://cdn.example.com/1_org.jpg"]
        assert again.get_attribute("Color") == "Red"

    def test_retention_sets_is_saved(self):
        store = MemoryProductStore()

        assert run(store.set("1001", _product(), Retention.TRANSIENT)).is_saved is False
        assert run(store.set("1002", _product("1002"), Retention.SAVED)).is_saved is True

    def test_list_by_prefix_in_insertion_order(self):
        store = MemoryProductStore()

        async def scenario():
            for sku in ["1001", "1001-s", "2002", "1001-l"]:
                await store.set(sku, _product(sku))
            return await store.list_by_prefix("1001")

        assert [p.sku for p in run(scenario())] == ["1001", "1001-s", "1001-l"]

    def test_remove(self):
        store = MemoryProductStore()

        async def scenario():
            await store.set("1001", _product())
            await store.remove("1001")
            return await store.list_by_prefix()

        assert run(scenario()) == []
        with pytest.raises(NotFound):
            run(store.remove("1001"))


class TestRetention:
    def test_transient_records_expire_saved_survive(self):
        clock = FakeClock()
        store = MemoryProductStore(transient_ttl=60, clock=clock)

        async def scenario():
            await store.set("1001", _product(), Retention.TRANSIENT)
            await store.set("1002", _product("1002"), Retention.SAVED)
            clock.now += 61
            evicted = await store.evict_expired()
            return evicted, [p.sku for p in await store.list_by_prefix()]

        evicted, remaining = run(scenario())
        assert evicted == 1
        assert remaining == ["1002"]

    def test_expired_record_reads_as_missing_before_eviction(self):
        clock = FakeClock()
        store = MemoryProductStore(transient_ttl=60, clock=clock)
        run(store.set("1001", _product()))

        clock.now += 61
        with pytest.raises(NotFound):
            run(store.get("1001"))

    def test_transient_write_never_demotes_saved(self):
        store = MemoryProductStore()

        async def scenario():
            await store.set("1001", _product(name="Saved name"), Retention.SAVED)
            await store.set("1001", _product(name="Recrawled name"), Retention.TRANSIENT)
            return await store.get("1001")

        record = run(scenario())
        assert record.is_saved is True
        assert record.name == "Saved name"

    def test_update_keeps_existing_retention(self):
        store = MemoryProductStore()

        async def scenario():
            await store.set("1001", _product(), Retention.SAVED)
            return await store.update("1001", lambda p: p.model_copy(update={"name": "Renamed"}))

        record = run(scenario())
        assert record.name == "Renamed"
        assert record.is_saved is True


class TestKeyLocks:
    def test_lock_dropped_after_remove(self):
        store = MemoryProductStore()

        async def scenario():
            await store.set("1001", _product())
            await store.remove("1001")

        run(scenario())
        assert "1001" not in store._key_locks

    def test_lock_dropped_after_eviction(self):
        clock = FakeClock()
        store = MemoryProductStore(transient_ttl=60, clock=clock)

        async def scenario():
            await store.set("1001", _product())
            await store.set("1002", _product("1002"), Retention.SAVED)
            clock.now += 61
            await store.evict_expired()

        run(scenario())
        assert "1001" not in store._key_locks
        assert "1002" in store._key_locks

    def test_async_update_holds_key_lock(self):
        store = MemoryProductStore()
        order: list[str] = []

        async def slow_rename(product: Product | None) -> Product:
            await asyncio.sleep(0.02)
            order.append("update")
            return product.model_copy(update={"name": "Renamed"})

        async def scenario():
            await store.set("1001", _product())
            first = asyncio.create_task(store.update("1001", slow_rename))
            await asyncio.sleep(0)
            await store.set("1001", _product(name="Later write"))
            order.append("set")
            await first
            return await store.get("1001")

        assert run(scenario()).name == "Later write"
        assert order == ["update", "set"]


class TestConcurrency:
    def test_concurrent_updates_to_one_key_are_serialized(self):
        store = MemoryProductStore()

        def bump(product: Product | None) -> Product:
            product.favorite_count += 1
            return product

        async def scenario():
            await store.set("1001", _product())
            await asyncio.gather(*[store.update("1001", bump) for _ in range(20)])
            return await store.get("1001")

        assert run(scenario()).favorite_count == 20

    def test_concurrent_writes_to_distinct_keys(self):
        store = MemoryProductStore()

        async def scenario():
            await asyncio.gather(*[store.set(f"1001-{i}", _product(f"1001-{i}")) for i in range(20)])
            return await store.list_by_prefix("1001-")

        assert len(run(scenario())) == 20


class TestFileStore:
    def test_saved_records_survive_reload(self, tmp_path):
        path = tmp_path / "products.json"

        async def scenario():
            store = FileProductStore(path)
            await store.set("1001", _product(), Retention.SAVED)
            await store.set("1002", _product("1002"), Retention.TRANSIENT)

        run(scenario())
        reloaded = FileProductStore(path)

        assert [p.sku for p in run(reloaded.list_by_prefix())] == ["1001"]
        assert run(reloaded.get("1001")).is_saved is True

    def test_file_uses_camel_case_keys(self, tmp_path):
        path = tmp_path / "products.json"
        run(FileProductStore(path).set("1001", _product(), Retention.SAVED))

        records = orjson.loads(path.read_bytes())
        assert records[0]["sku"] == "1001"
        assert records[0]["discountedPrice"] == 342.39
        assert "isSaved" in records[0]
        assert "discounted_price" not in records[0]

    def test_remove_rewrites_file(self, tmp_path):
        path = tmp_path / "products.json"

        async def scenario():
            store = FileProductStore(path)
            await store.set("1001", _product(), Retention.SAVED)
            await store.remove("1001")

        run(scenario())
        assert orjson.loads(path.read_bytes()) == []

    def test_write_failure_leaves_memory_unchanged(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        store = FileProductStore(blocker / "products.json")

        with pytest.raises(StoreWriteFailure):
            run(store.set("1001", _product(), Retention.SAVED))
        with pytest.raises(NotFound):
            run(store.get("1001"))
