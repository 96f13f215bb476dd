import asyncio

import pytest

from utils.constants import UNKNOWN_IMAGE
from utils.helpers import decode_listing_entry
from utils.service import PokemonService

from conftest import listing_row

LISTING = [
    listing_row(1, "bulbasaur"),
    listing_row(4, "charmander"),
    listing_row(25, "pikachu"),
    listing_row(26, "raichu"),
]


@pytest.mark.asyncio
class TestPokemonService:
    async def test_entity_and_image(self, upstream, clock, pikachu_raw):
        upstream.fetch_raw.return_value = pikachu_raw
        service = PokemonService(upstream, clock=clock)

        entity = await service.get_entity("Pikachu")
        image = await service.get_image("Pikachu")

        assert entity["id"] == "0025"
        assert image.endswith("/25.png")
        # The image lookup reused the cached entity
        assert upstream.fetch_raw.await_count == 1

    async def test_custom_pokemon_survives_restart(self, upstream, clock, store):
        upstream.fetch_raw.return_value = None
        first = PokemonService(upstream, store, clock=clock)
        await first.start()
        assert await first.get_entity("Fakemon") is None

        second = PokemonService(upstream, store, clock=clock)
        await second.start()

        assert await second.get_image("fakemon") == UNKNOWN_IMAGE
        assert upstream.fetch_raw.await_count == 1

    async def test_cached_entity_survives_restart(self, upstream, clock, store, pikachu_raw):
        upstream.fetch_raw.return_value = pikachu_raw
        await PokemonService(upstream, store, clock=clock).get_entity("pikachu")

        restarted = PokemonService(upstream, store, clock=clock)
        assert (await restarted.get_entity("pikachu"))["name"] == "Pikachu"
        assert upstream.fetch_raw.await_count == 1

    async def test_pokemon_list_is_cached_per_page(self, upstream, clock):
        upstream.fetch_bulk_listing.return_value = LISTING
        service = PokemonService(upstream, clock=clock)

        page = await service.get_pokemon_list(4, 0)
        again = await service.get_pokemon_list(4, 0)

        assert page == again
        assert page[2] == {"id": "0025", "name": "Pikachu"}
        upstream.fetch_bulk_listing.assert_awaited_once_with(4, 0)

    async def test_pokemon_list_failure_is_empty_and_uncached(self, upstream, clock):
        upstream.fetch_bulk_listing.side_effect = [asyncio.TimeoutError(), LISTING]
        service = PokemonService(upstream, clock=clock)

        assert await service.get_pokemon_list(4, 0) == []
        assert len(await service.get_pokemon_list(4, 0)) == 4

    async def test_invalid_page(self, upstream, clock):
        service = PokemonService(upstream, clock=clock)
        assert await service.get_pokemon_list(0, 0) == []
        assert await service.get_pokemon_list(10, -1) == []
        upstream.fetch_bulk_listing.assert_not_awaited()

    async def test_pokemon_types(self, upstream, clock):
        upstream.fetch_types.return_value = [
            {"name": "fire", "url": "u1"},
            {"name": "unknown", "url": "u2"},
        ]
        service = PokemonService(upstream, clock=clock)

        assert await service.get_pokemon_types() == [{"name": "Fire", "url": "u1"}]
        assert await service.get_pokemon_types() == [{"name": "Fire", "url": "u1"}]
        assert upstream.fetch_types.await_count == 1

    async def test_search_results_and_suggestions(self, upstream, clock):
        upstream.fetch_bulk_listing.return_value = LISTING
        service = PokemonService(upstream, clock=clock)

        found = await service.search("chu")
        assert [r["name"] for r in found["results"]] == ["Pikachu", "Raichu"]
        assert found["suggestions"] == []

        typo = await service.search("charmandr")
        assert typo["results"] == []
        assert typo["suggestions"][0] == "Charmander"

        assert await service.search("  ") == {"results": [], "suggestions": []}

    async def test_prime_seeds_caches(self, upstream, clock):
        service = PokemonService(upstream, clock=clock)
        entity = {"id": "0151", "name": "Mew", "weight": "4.0", "height": "0.4", "types": ["Psychic"]}

        await service.prime(entity, "https://x/mew.png")

        assert await service.get_entity("mew") == entity
        assert await service.get_image("Mew") == "https://x/mew.png"
        upstream.fetch_raw.assert_not_awaited()
        upstream.image_available.assert_not_awaited()

    async def test_override_image(self, upstream, clock):
        service = PokemonService(upstream, clock=clock)
        assert await service.get_image("mew", override="https://x/o.png") == "https://x/o.png"

    async def test_clear_cache(self, upstream, clock, store, pikachu_raw):
        upstream.fetch_raw.side_effect = lambda key: pikachu_raw if key == "pikachu" else None
        service = PokemonService(upstream, store, clock=clock)

        await service.get_entity("pikachu")
        await service.get_entity("fakemon")
        await store.set_item("unrelated", "keep")

        await service.clear_cache()

        stats = service.get_cache_stats()
        assert stats["entities"]["size"] == 0
        assert stats["custom_names"] == 0
        assert await store.keys() == ["unrelated"]

        await service.get_entity("pikachu")
        assert upstream.fetch_raw.await_count == 3

    async def test_featured_uses_listing(self, upstream, clock):
        upstream.fetch_bulk_listing.return_value = LISTING
        service = PokemonService(upstream, clock=clock)

        featured = await service.get_featured(2)

        assert len(featured) == 2
        catalog = [decode_listing_entry(row) for row in LISTING]
        assert all(ref in catalog for ref in featured)

    async def test_stats_shape(self, upstream, clock):
        stats = PokemonService(upstream, clock=clock).get_cache_stats()
        assert set(stats) == {"entities", "images", "listings", "custom_names", "deduplication"}

    async def test_close_releases_resources(self, upstream, clock, mocker):
        upstream.close = mocker.AsyncMock()
        store = mocker.MagicMock()
        store.close = mocker.AsyncMock()
        service = PokemonService(upstream, store, clock=clock)

        await service.close()

        upstream.close.assert_awaited_once()
        store.close.assert_awaited_once()

    async def test_changing_an_entity_does_not_touch_the_cache(self, upstream, clock, pikachu_raw):
        upstream.fetch_raw.return_value = pikachu_raw
        service = PokemonService(upstream, clock=clock)

        first = await service.get_entity("pikachu")
        first["name"] = "Hacked"
        first["types"].append("Ghost")

        again = await service.get_entity("pikachu")
        assert again["name"] == "Pikachu"
        assert again["types"] == ["Electric"]
        assert upstream.fetch_raw.await_count == 1

    async def test_changing_a_page_does_not_touch_the_cache(self, upstream, clock):
        upstream.fetch_bulk_listing.return_value = LISTING
        service = PokemonService(upstream, clock=clock)

        page = await service.get_pokemon_list(20, 0)
        page.clear()
        cached = await service.get_pokemon_list(20, 0)
        cached[0]["name"] = "Hacked"

        assert [r["name"] for r in await service.get_pokemon_list(20, 0)] == [
            "Bulbasaur", "Charmander", "Pikachu", "Raichu"
        ]
        results = (await service.search("bulba"))["results"]
        results[0]["name"] = "Hacked"
        assert (await service.get_pokemon_list(20, 0))[0]["name"] == "Bulbasaur"
        assert upstream.fetch_bulk_listing.await_count == 2

    @pytest.mark.parametrize("payload", [None, {"results": []}, "oops"])
    async def test_pokemon_list_rejects_non_list_payload(self, upstream, clock, payload):
        upstream.fetch_bulk_listing.return_value = payload
        service = PokemonService(upstream, clock=clock)

        assert await service.get_pokemon_list(20, 0) == []
        assert await service.search("pika") == {"results": [], "suggestions": []}
