import json
from unittest.mock import AsyncMock

import pytest

from utils.cache import CacheEntry, ExpiringCache


@pytest.mark.asyncio
class TestExpiringCacheMemory:
    async def test_round_trip_with_normalized_keys(self, clock):
        cache = ExpiringCache("pokemon_img_", max_size=5, clock=clock)

        await cache.set(" Pikachu ", "https://x/25.png")

        assert await cache.get("pikachu") == "https://x/25.png"
        assert "PIKACHU" in cache

    async def test_miss_returns_none(self, clock):
        cache = ExpiringCache("pokemon_img_", clock=clock)
        assert await cache.get("mew") is None
        assert cache.get_stats()["misses"] == 1

    async def test_entry_expires_at_boundary(self, clock):
        cache = ExpiringCache("pokemon_img_", clock=clock)
        await cache.set("eevee", "url", ttl_minutes=1)

        clock.advance(59)
        assert await cache.get("eevee") == "url"

        clock.advance(1)
        assert await cache.get("eevee") is None
        assert len(cache) == 0

    @pytest.mark.parametrize("ttl", [0, None])
    async def test_zero_or_none_ttl_never_expires(self, clock, ttl):
        cache = ExpiringCache("pokemon_img_", clock=clock)
        await cache.set("mew", "url", ttl_minutes=ttl)

        clock.advance(10 * 365 * 24 * 3600)
        assert await cache.get("mew") == "url"

    async def test_omitted_ttl_uses_default(self, clock):
        cache = ExpiringCache("pokemon_img_", default_ttl_minutes=2, clock=clock)
        await cache.set("mew", "url")

        clock.advance(119)
        assert await cache.get("mew") == "url"
        clock.advance(1)
        assert await cache.get("mew") is None

    async def test_none_values_are_not_stored(self, clock):
        cache = ExpiringCache("pokemon_img_", clock=clock)
        await cache.set("mew", None)
        assert len(cache) == 0

    async def test_fifo_eviction_ignores_reads(self, clock):
        cache = ExpiringCache("pokemon_img_", max_size=2, clock=clock)
        await cache.set("a", 1)
        await cache.set("b", 2)

        # Reading "a" does not refresh it
        assert await cache.get("a") == 1
        await cache.set("c", 3)

        assert await cache.get("a") is None
        assert await cache.get("b") == 2
        assert await cache.get("c") == 3

    async def test_resetting_key_keeps_position(self, clock):
        cache = ExpiringCache("pokemon_img_", max_size=2, clock=clock)
        await cache.set("a", 1)
        await cache.set("b", 2)
        await cache.set("a", 10)
        await cache.set("c", 3)

        assert "a" not in cache
        assert await cache.get("b") == 2
        assert len(cache) == 2

    async def test_callers_get_copies(self, clock):
        cache = ExpiringCache("pokemon_data_", clock=clock)
        original = {"name": "Pikachu", "types": ["Electric"]}
        await cache.set("pikachu", original)

        original["types"].append("Steel")
        first = await cache.get("pikachu")
        first["name"] = "Changed"
        first["types"].append("Ghost")

        assert await cache.get("pikachu") == {"name": "Pikachu", "types": ["Electric"]}

    async def test_rejects_zero_capacity(self):
        with pytest.raises(ValueError):
            ExpiringCache("pokemon_img_", max_size=0)

    async def test_stats(self, clock):
        cache = ExpiringCache("pokemon_img_", max_size=10, clock=clock)
        await cache.set("a", 1)
        await cache.get("a")
        await cache.get("b")

        stats = cache.get_stats()
        assert stats["size"] == 1
        assert stats["max_size"] == 10
        assert stats["hits"] == 1
        assert stats["misses"] == 1
        assert stats["hit_rate"] == "50.0%"


@pytest.mark.asyncio
class TestExpiringCacheMirror:
    async def test_write_through(self, clock, store):
        cache = ExpiringCache("pokemon_img_", store=store, clock=clock)
        await cache.set("Pikachu", "url", ttl_minutes=5)

        raw = await store.get_item("pokemon_img_pikachu")
        assert json.loads(raw) == {"value": "url", "expires": clock.now + 300}

    async def test_read_through_after_restart(self, clock, store):
        first = ExpiringCache("pokemon_data_", store=store, clock=clock)
        await first.set("pikachu", {"id": "0025"})

        second = ExpiringCache("pokemon_data_", store=store, clock=clock)
        assert await second.get("pikachu") == {"id": "0025"}
        # Re-inserted into memory
        assert "pikachu" in second

    async def test_expired_mirror_entry_is_purged(self, clock, store):
        await store.set_item(
            "pokemon_img_ditto", CacheEntry(value="url", expires_at=clock.now - 1).to_json()
        )
        cache = ExpiringCache("pokemon_img_", store=store, clock=clock)

        assert await cache.get("ditto") is None
        assert await store.get_item("pokemon_img_ditto") is None

    async def test_corrupt_mirror_entry_is_discarded(self, clock, store):
        await store.set_item("pokemon_img_ditto", "{not json")
        cache = ExpiringCache("pokemon_img_", store=store, clock=clock)

        assert await cache.get("ditto") is None
        assert await store.get_item("pokemon_img_ditto") is None

    async def test_mirror_hit_returns_copy(self, clock, store):
        await ExpiringCache("pokemon_list_", store=store, clock=clock).set("20:0", [{"id": "0001"}])
        cache = ExpiringCache("pokemon_list_", store=store, clock=clock)

        page = await cache.get("20:0")
        page.clear()

        assert await cache.get("20:0") == [{"id": "0001"}]

    async def test_eviction_removes_mirror_copy(self, clock, store):
        cache = ExpiringCache("pokemon_img_", max_size=1, store=store, clock=clock)
        await cache.set("a", 1)
        await cache.set("b", 2)

        assert await store.get_item("pokemon_img_a") is None
        assert await store.get_item("pokemon_img_b") is not None

    async def test_clear_only_touches_own_namespace(self, clock, store):
        images = ExpiringCache("pokemon_img_", store=store, clock=clock)
        entities = ExpiringCache("pokemon_data_", store=store, clock=clock)
        await images.set("pikachu", "url")
        await entities.set("pikachu", {"id": "0025"})
        await store.set_item("unrelated", "keep")

        await images.clear()

        assert len(images) == 0
        assert await store.get_item("pokemon_img_pikachu") is None
        assert await store.get_item("pokemon_data_pikachu") is not None
        assert await store.get_item("unrelated") == "keep"

    async def test_unserializable_value_stays_in_memory(self, clock, store):
        cache = ExpiringCache("pokemon_img_", store=store, clock=clock)
        value = {"tags": {"electric", "mouse"}}
        await cache.set("weird", value)

        assert await cache.get("weird") == value
        assert await store.get_item("pokemon_img_weird") is None

    async def test_failing_store_degrades_to_memory(self, clock, mocker):
        broken = mocker.MagicMock()
        broken.get_item = AsyncMock(side_effect=RuntimeError("disk gone"))
        broken.set_item = AsyncMock(side_effect=RuntimeError("disk gone"))
        broken.remove_item = AsyncMock(side_effect=RuntimeError("disk gone"))
        broken.remove_prefix = AsyncMock(side_effect=RuntimeError("disk gone"))
        cache = ExpiringCache("pokemon_img_", max_size=1, store=broken, clock=clock)

        await cache.set("a", "url-a")
        assert await cache.get("a") == "url-a"
        await cache.set("b", "url-b")
        assert await cache.get("missing") is None
        await cache.clear()

        assert broken.set_item.await_count == 2
