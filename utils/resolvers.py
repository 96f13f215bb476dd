"""
Entity and image resolution on top of the cache tiers.

`EntityResolver` turns a name or id into a formatted `Entity`, consulting the
negative registry and the cache before the upstream source. `ImageResolver`
turns an entity into a display URL and always returns one.

Both swallow every failure: callers get None (entities) or a sentinel image,
plus a log line, never an exception.
"""

import logging
from typing import Any, Mapping, Optional, Union

from config.settings import ENTITY_EXPIRATION_MINUTES, OFFICIAL_ARTWORK_URL, SPRITE_BASE_URL
from utils.api_clients import UpstreamSource
from utils.api_models import Entity
from utils.cache import ExpiringCache
from utils.constants import POKE_BALL_IMAGE, UNKNOWN_IMAGE
from utils.deduplication import RequestDeduplicator
from utils.helpers import decode_pokemon_record
from utils.negative_registry import NegativeRegistry
from utils.validators import is_blank_key, normalize_key, parse_leading_int

logger = logging.getLogger("pokedex_cache.resolvers")


class EntityResolver:
    """Resolve Pokemon by name or id through registry, cache and upstream."""

    def __init__(
        self,
        upstream: UpstreamSource,
        cache: ExpiringCache[Entity],
        registry: NegativeRegistry,
        deduplicator: Optional[RequestDeduplicator] = None,
        ttl_minutes: Optional[float] = ENTITY_EXPIRATION_MINUTES,
    ):
        self.upstream = upstream
        self.cache = cache
        self.registry = registry
        self.deduplicator = deduplicator or RequestDeduplicator()
        self.ttl_minutes = ttl_minutes

    async def resolve(self, key: Optional[Union[str, int]]) -> Optional[Entity]:
        """
        Resolve a Pokemon.

        Order of checks: blank key, out-of-range id, known-missing name,
        cache, upstream. Only a confirmed absence from upstream (or an
        out-of-range id) is negative-cached; transient failures are logged
        and retried on the next call.

        Args:
            key: Pokemon name or id.

        Returns:
            The formatted entity, or None.
        """
        if is_blank_key(key):
            return None

        cache_key = normalize_key(key)  # type: ignore

        if self.registry.is_out_of_range_id(cache_key):
            await self.registry.mark_missing(cache_key)
            return None

        if self.registry.is_known_missing(cache_key):
            return None

        cached = await self.cache.get(cache_key)
        if cached is not None:
            return cached

        try:
            return await self.deduplicator.run(
                f"entity:{cache_key}", self._fetch_and_cache, cache_key
            )
        except Exception as e:
            logger.warning(
                f"Failed to resolve Pokemon {cache_key}: {e}",
                extra={"cache_key": cache_key[:50], "error_type": type(e).__name__},
            )
            return None

    async def _fetch_and_cache(self, cache_key: str) -> Optional[Entity]:
        raw = await self.upstream.fetch_raw(cache_key)

        if raw is None:
            logger.info(f"Pokemon {cache_key} not found upstream")
            await self.registry.mark_missing(cache_key)
            return None

        entity = decode_pokemon_record(raw)
        await self.cache.set(cache_key, entity, self.ttl_minutes)
        logger.debug("Resolved Pokemon", extra={"cache_key": cache_key[:50], "id": entity["id"]})
        return entity


class ImageResolver:
    """Resolve display images for entities with a guaranteed fallback."""

    def __init__(
        self,
        upstream: UpstreamSource,
        cache: ExpiringCache[str],
        registry: NegativeRegistry,
        entity_resolver: EntityResolver,
        deduplicator: Optional[RequestDeduplicator] = None,
        official_artwork_url: str = OFFICIAL_ARTWORK_URL,
        sprite_base_url: str = SPRITE_BASE_URL,
    ):
        self.upstream = upstream
        self.cache = cache
        self.registry = registry
        self.entity_resolver = entity_resolver
        self.deduplicator = deduplicator or RequestDeduplicator()
        self.official_artwork_url = official_artwork_url
        self.sprite_base_url = sprite_base_url

    def candidate_urls(self, pokemon_id: int) -> list:
        """Image URLs for an id, best quality first."""
        return [
            f"{self.official_artwork_url}{pokemon_id}.png",
            f"{self.sprite_base_url}{pokemon_id}.png",
        ]

    async def resolve_image(
        self, entity: Optional[Mapping[str, Any]], override: Optional[str] = None
    ) -> str:
        """
        Resolve the image URL for an entity.

        Args:
            entity: Mapping with at least a `name`; `id` is optional.
            override: Caller-supplied URL, returned verbatim.

        Returns:
            An image URL, never empty.
        """
        if override:
            return override

        name = entity.get("name") if entity else None
        if is_blank_key(name):
            return POKE_BALL_IMAGE

        cache_key = normalize_key(name)  # type: ignore
        try:
            cached = await self.cache.get(cache_key)
            if cached is not None:
                return cached

            return await self.deduplicator.run(
                f"image:{cache_key}", self._resolve_uncached, cache_key, entity.get("id")  # type: ignore
            )
        except Exception as e:
            logger.error(
                f"Failed to get image for Pokemon {cache_key}: {e}",
                extra={"cache_key": cache_key[:50]},
                exc_info=True,
            )
            return UNKNOWN_IMAGE

    async def _resolve_uncached(self, name: str, pokemon_id: Optional[Union[str, int]]) -> str:
        if (
            self.registry.is_out_of_range_id(pokemon_id)
            or self.registry.is_out_of_range_id(name)
            or self.registry.is_known_missing(name)
        ):
            await self.cache.set(name, UNKNOWN_IMAGE)
            return UNKNOWN_IMAGE

        numeric_id = None if is_blank_key(pokemon_id) else parse_leading_int(pokemon_id)  # type: ignore
        if numeric_id is None or numeric_id < 1:
            resolved = await self.entity_resolver.resolve(name)
            if resolved is None:
                if self.registry.is_known_missing(name):
                    await self.cache.set(name, UNKNOWN_IMAGE)
                # Transient lookup failure: answer with the sentinel, cache nothing
                return UNKNOWN_IMAGE
            numeric_id = int(resolved["id"])

        url = await self._first_available(name, numeric_id)
        await self.cache.set(name, url)
        return url

    async def _first_available(self, name: str, pokemon_id: int) -> str:
        for url in self.candidate_urls(pokemon_id):
            try:
                if await self.upstream.image_available(url):
                    return url
                logger.debug("Image source denied availability", extra={"url": url})
            except Exception as e:
                logger.warning(
                    f"Image availability check failed for {name}: {e}",
                    extra={"url": url},
                )

        logger.info(f"No image available for {name}, using placeholder")
        return UNKNOWN_IMAGE
