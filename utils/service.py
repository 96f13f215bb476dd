"""
Caller-facing Pokemon service.

One `PokemonService` is built per process (or per test) and owns the whole
cache context: the negative registry, the entity/image/listing caches, the
in-flight request map and the featured rotation. Nothing here is module
level state.

Every coroutine returns a value (None, a sentinel image, a fallback list)
instead of raising, so UI layers can call it without exception handling.
"""

import logging
import time
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from config.settings import (
    DEFAULT_EXPIRATION_MINUTES,
    ENTITY_EXPIRATION_MINUTES,
    FEATURED_COUNT,
    FEATURED_TIMEZONE,
    LISTING_EXPIRATION_MINUTES,
    MAX_CACHE_SIZE,
    MAX_CATALOG_ID,
)
from utils.api_clients import UpstreamSource
from utils.api_models import Entity, EntityRef, PokemonTypeInfo
from utils.cache import ExpiringCache
from utils.constants import (
    ENTITY_NAMESPACE,
    IMAGE_NAMESPACE,
    LISTING_NAMESPACE,
    SEARCH_RESULT_LIMIT,
)
from utils.deduplication import RequestDeduplicator
from utils.featured import FeaturedSelector, utc_now
from utils.helpers import RecordDecodeError, decode_listing_entry, format_type_list
from utils.matching import filter_refs, get_close_matches_async
from utils.negative_registry import NegativeRegistry
from utils.resolvers import EntityResolver, ImageResolver
from utils.session_store import SessionStore
from utils.validators import is_blank_key, normalize_key

logger = logging.getLogger("pokedex_cache.service")


class PokemonService:
    """Facade exposing cached Pokemon lookups to the UI."""

    def __init__(
        self,
        upstream: UpstreamSource,
        store: Optional[SessionStore] = None,
        clock: Callable[[], float] = time.time,
        featured_clock: Callable[[], datetime] = utc_now,
        max_cache_size: int = MAX_CACHE_SIZE,
        featured_timezone: str = FEATURED_TIMEZONE,
        max_catalog_id: int = MAX_CATALOG_ID,
    ):
        """
        Args:
            upstream: Catalog data source.
            store: Optional session store mirroring the caches.
            clock: Epoch-seconds time source for cache expiry.
            featured_clock: Wall clock for the daily rotation.
            max_cache_size: Entry bound of each cache.
            featured_timezone: Reference timezone of the rotation.
            max_catalog_id: Highest valid National Dex number.
        """
        self.upstream = upstream
        self.store = store
        self.max_catalog_id = max_catalog_id

        self.registry = NegativeRegistry(store, max_id=max_catalog_id)
        self.entity_cache: ExpiringCache[Entity] = ExpiringCache(
            ENTITY_NAMESPACE, max_cache_size, ENTITY_EXPIRATION_MINUTES, store, clock
        )
        self.image_cache: ExpiringCache[str] = ExpiringCache(
            IMAGE_NAMESPACE, max_cache_size, DEFAULT_EXPIRATION_MINUTES, store, clock
        )
        self.listing_cache: ExpiringCache[list] = ExpiringCache(
            LISTING_NAMESPACE, max_cache_size, LISTING_EXPIRATION_MINUTES, store, clock
        )
        self.deduplicator = RequestDeduplicator()

        self.entities = EntityResolver(
            upstream, self.entity_cache, self.registry, self.deduplicator
        )
        self.images = ImageResolver(
            upstream, self.image_cache, self.registry, self.entities, self.deduplicator
        )
        self.featured = FeaturedSelector(
            upstream, featured_clock, featured_timezone, max_catalog_id
        )

    async def start(self) -> None:
        """Restore session state (custom Pokemon names) from the store."""
        await self.registry.load()

    async def close(self) -> None:
        """Close the upstream client and the session store."""
        logger.info("Shutting down Pokemon service", extra={"stats": self.get_cache_stats()})

        close_upstream = getattr(self.upstream, "close", None)
        if close_upstream is not None:
            await close_upstream()
        if self.store is not None:
            await self.store.close()

    async def get_entity(self, key: Optional[Union[str, int]]) -> Optional[Entity]:
        """
        Get a Pokemon by name or id.

        Args:
            key: Pokemon name or id.

        Returns:
            The formatted entity, or None if unknown or unavailable.
        """
        return await self.entities.resolve(key)

    async def get_image(
        self,
        name: Optional[str],
        pokemon_id: Optional[Union[str, int]] = None,
        override: Optional[str] = None,
    ) -> str:
        """
        Get the display image URL of a Pokemon.

        Args:
            name: Pokemon name.
            pokemon_id: Optional id; looked up by name when omitted.
            override: Caller-supplied image, returned as is.

        Returns:
            An image URL (a placeholder when nothing better exists).
        """
        return await self.images.resolve_image({"name": name, "id": pokemon_id}, override)

    async def get_featured(self, count: int = FEATURED_COUNT) -> List[EntityRef]:
        """Get today's featured Pokemon (never empty for count >= 1)."""
        return await self.featured.get_featured(count)

    async def get_pokemon_list(self, limit: int = 20, offset: int = 0) -> List[EntityRef]:
        """
        Get one page of the catalog as refs.

        Pages are cached by (limit, offset). Entries above the catalog bound
        are dropped.

        Args:
            limit: Page size.
            offset: Starting position.

        Returns:
            The page, or an empty list if the listing is unavailable.
        """
        if limit < 1 or offset < 0:
            return []

        cache_key = f"{limit}:{offset}"
        cached = await self.listing_cache.get(cache_key)
        if cached is not None:
            return cached

        try:
            rows = await self.deduplicator.run(
                f"listing:{cache_key}", self.upstream.fetch_bulk_listing, limit, offset
            )
        except Exception as e:
            logger.warning(
                f"Error fetching Pokemon list: {e}",
                extra={"limit": limit, "offset": offset},
            )
            return []

        if not isinstance(rows, list):
            logger.warning(
                f"Pokemon list response is not a list: {type(rows).__name__}",
                extra={"limit": limit, "offset": offset},
            )
            return []

        refs: List[EntityRef] = []
        for row in rows:
            try:
                ref = decode_listing_entry(row)
            except RecordDecodeError as e:
                logger.debug(f"Skipping malformed listing entry: {e}")
                continue
            if int(ref["id"]) <= self.max_catalog_id:
                refs.append(ref)

        await self.listing_cache.set(cache_key, refs)
        return refs

    async def get_pokemon_types(self) -> List[PokemonTypeInfo]:
        """
        Get the Pokemon types for filter menus.

        Returns:
            Capitalized types, or an empty list if unavailable.
        """
        cached = await self.listing_cache.get("types")
        if cached is not None:
            return cached

        try:
            types = format_type_list(await self.upstream.fetch_types())
        except Exception as e:
            logger.warning(f"Error fetching Pokemon types: {e}")
            return []

        if types:
            await self.listing_cache.set("types", types)
        return types  # type: ignore

    async def search(self, query: Optional[str], limit: int = SEARCH_RESULT_LIMIT) -> Dict[str, Any]:
        """
        Search the catalog by name fragment or id.

        When nothing matches, close spellings are offered as suggestions.

        Args:
            query: Search text.
            limit: Maximum number of results.

        Returns:
            Dictionary with 'results' (refs) and 'suggestions' (names).
        """
        if is_blank_key(query):
            return {"results": [], "suggestions": []}

        catalog = await self.get_pokemon_list(self.max_catalog_id, 0)
        results = filter_refs(query, catalog, limit)  # type: ignore
        if results:
            return {"results": results, "suggestions": []}

        names = [ref["name"].lower() for ref in catalog]
        matches = await get_close_matches_async(query, names)  # type: ignore
        by_name = {ref["name"].lower(): ref["name"] for ref in catalog}
        return {"results": [], "suggestions": [by_name[m] for m in matches]}

    async def prime(self, entity: Mapping[str, Any], image_url: Optional[str] = None) -> None:
        """
        Seed the caches with data the caller already holds (e.g., server-rendered).

        Args:
            entity: A formatted entity; must carry a name.
            image_url: Optional image to cache for that name.
        """
        name = entity.get("name")
        if is_blank_key(name):
            return

        cache_key = normalize_key(name)  # type: ignore
        await self.entity_cache.set(cache_key, dict(entity))
        if image_url:
            await self.image_cache.set(cache_key, image_url)

    async def clear_cache(self) -> None:
        """Drop every cached entity, image, listing and custom name."""
        await self.entity_cache.clear()
        await self.image_cache.clear()
        await self.listing_cache.clear()
        await self.registry.clear()
        logger.info("Pokemon cache cleared")

    def get_cache_stats(self) -> Dict[str, Any]:
        """
        Get statistics for every cache tier.

        Returns:
            Dictionary of per-cache stats plus registry and deduplication counts.
        """
        return {
            "entities": self.entity_cache.get_stats(),
            "images": self.image_cache.get_stats(),
            "listings": self.listing_cache.get_stats(),
            "custom_names": len(self.registry),
            "deduplication": self.deduplicator.get_stats(),
        }
