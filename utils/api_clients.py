"""
API Client module for the upstream Pokemon catalog.

This module handles interactions with PokeAPI and the sprite host. It is the
only place that talks HTTP; the cache and resolver layers consume it through
the narrow `UpstreamSource` protocol, which keeps "confirmed absent" (a None
result) separate from "transient failure" (an exception).
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional, Protocol, Union

import aiohttp

from config.settings import (
    API_REQUEST_TIMEOUT,
    MAX_CONCURRENT_API_REQUESTS,
    POKEAPI_URL,
)
from utils.api_models import ListingEntry
from utils.circuit_breaker import CircuitBreaker, CircuitBreakerError
from utils.validators import normalize_key

logger = logging.getLogger("pokedex_cache.api")

# Connection pool settings
CONNECTION_POOL_LIMIT = 50  # Total connections across all hosts
CONNECTION_POOL_LIMIT_PER_HOST = 20  # Max connections per host
CONNECTION_KEEPALIVE_TIMEOUT = 30  # Seconds to keep idle connections

TRANSIENT_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError)


class UpstreamSource(Protocol):
    """
    Contract between the cache layer and whatever serves catalog data.

    `fetch_raw` returns None for a confirmed 404-equivalent and raises for
    anything transient. Listing and type calls raise on any failure.
    `image_available` reports whether an image URL can be served.
    """

    async def fetch_raw(self, key: str) -> Optional[Dict[str, Any]]: ...

    async def fetch_bulk_listing(self, limit: int, offset: int = 0) -> List[ListingEntry]: ...

    async def fetch_types(self) -> List[Dict[str, Any]]: ...

    async def image_available(self, url: str) -> bool: ...


class PokeAPIClient:
    """
    Client for fetching Pokemon records, listings and sprite availability.

    Key Features:
    - **Connection Pooling**: Uses `aiohttp.TCPConnector` to reuse connections.
    - **Circuit Breakers**: Stops hammering PokeAPI or the sprite host while
      they are down.
    - **Rate Limiting**: Caps concurrent upstream calls with a semaphore.

    Nothing here retries. A failed call surfaces once to the resolver, which
    decides what the caller sees.
    """

    def __init__(self, base_url: str = POKEAPI_URL, timeout: float = API_REQUEST_TIMEOUT):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session: Optional[aiohttp.ClientSession] = None

        self._session_lock = asyncio.Lock()
        self._rate_limiter = asyncio.Semaphore(MAX_CONCURRENT_API_REQUESTS)

        self._pokeapi_breaker = CircuitBreaker(
            name="pokeapi",
            failure_threshold=5,
            recovery_timeout=60.0,
            expected_exceptions=TRANSIENT_ERRORS,
        )
        self._sprite_breaker = CircuitBreaker(
            name="sprites",
            failure_threshold=5,
            recovery_timeout=60.0,
            expected_exceptions=TRANSIENT_ERRORS,
        )

    async def get_session(self) -> aiohttp.ClientSession:
        """
        Get or create the aiohttp session with connection pooling.

        Returns:
            Active aiohttp ClientSession.
        """
        async with self._session_lock:
            if self.session is None or self.session.closed:
                connector = aiohttp.TCPConnector(
                    limit=CONNECTION_POOL_LIMIT,
                    limit_per_host=CONNECTION_POOL_LIMIT_PER_HOST,
                    ttl_dns_cache=300,
                    keepalive_timeout=CONNECTION_KEEPALIVE_TIMEOUT,
                )
                self.session = aiohttp.ClientSession(
                    timeout=aiohttp.ClientTimeout(total=self.timeout),
                    connector=connector,
                    headers={"User-Agent": "Pokedex-Cache/1.0"},
                )
                logger.info(
                    "Created aiohttp session with connection pooling",
                    extra={
                        "total_limit": CONNECTION_POOL_LIMIT,
                        "per_host_limit": CONNECTION_POOL_LIMIT_PER_HOST,
                    },
                )
        return self.session

    async def close(self) -> None:
        """Close the aiohttp session."""
        if self.session and not self.session.closed:
            await self.session.close()
            logger.info(
                "API client session closed",
                extra={"breakers": self.get_circuit_breaker_stats()},
            )

    def _pokemon_url(self, key: Union[str, int]) -> str:
        cache_key = normalize_key(key)
        # PokeAPI wants '25', not the zero-padded display id '0025'
        if cache_key.isdigit():
            cache_key = str(int(cache_key))
        return f"{self.base_url}/pokemon/{cache_key}"

    async def _get_json(self, url: str, allow_not_found: bool = False) -> Optional[Any]:
        """GET a JSON document; 404 yields None when allowed, other errors raise."""
        session = await self.get_session()
        logger.debug(f"Fetching {url}")

        async with self._rate_limiter:
            async with session.get(url) as resp:
                if resp.status == 200:
                    return await resp.json()

                if resp.status == 404 and allow_not_found:
                    logger.debug(f"Resource not found: {url}")
                    return None

                logger.warning(f"PokeAPI error {resp.status} for {url}")
                # Raise to trigger circuit breaker
                raise aiohttp.ClientResponseError(
                    request_info=resp.request_info,
                    history=resp.history,
                    status=resp.status,
                )

    async def fetch_raw(self, key: str) -> Optional[Dict[str, Any]]:
        """
        Fetch the raw `/pokemon/{key}` record.

        Args:
            key: Normalized name or id.

        Returns:
            The parsed JSON record, or None if PokeAPI reports 404.

        Raises:
            aiohttp.ClientError, asyncio.TimeoutError: On transient failures.
            CircuitBreakerError: If PokeAPI is currently considered down.
        """
        return await self._pokeapi_breaker.call(
            self._get_json, self._pokemon_url(key), True
        )

    async def fetch_bulk_listing(self, limit: int, offset: int = 0) -> List[ListingEntry]:
        """
        Fetch one page of the `/pokemon` listing.

        Args:
            limit: Page size.
            offset: Starting position.

        Returns:
            List of `{"name", "url"}` rows.
        """
        url = f"{self.base_url}/pokemon?limit={limit}&offset={offset}"
        data = await self._pokeapi_breaker.call(self._get_json, url)
        results = data.get("results") if isinstance(data, dict) else None
        if not isinstance(results, list):
            raise aiohttp.ClientPayloadError(f"Listing response has no results list: {url}")
        return results

    async def fetch_types(self) -> List[Dict[str, Any]]:
        """Fetch the `/type` listing."""
        url = f"{self.base_url}/type"
        data = await self._pokeapi_breaker.call(self._get_json, url)
        results = data.get("results") if isinstance(data, dict) else None
        return results if isinstance(results, list) else []

    async def _head_ok(self, url: str) -> bool:
        session = await self.get_session()
        async with self._rate_limiter:
            async with session.head(url, allow_redirects=True) as resp:
                if resp.status < 400:
                    return True
                if resp.status in (403, 404, 410):
                    return False
                raise aiohttp.ClientResponseError(
                    request_info=resp.request_info,
                    history=resp.history,
                    status=resp.status,
                )

    async def image_available(self, url: str) -> bool:
        """
        Check whether the sprite host can serve an image.

        Returns:
            True if the image exists, False if the host denies it.

        Raises:
            aiohttp.ClientError, asyncio.TimeoutError, CircuitBreakerError: On
                transient failures.
        """
        return await self._sprite_breaker.call(self._head_ok, url)

    async def check_connectivity(self) -> bool:
        """
        Validate connectivity to PokeAPI on startup.

        Returns:
            True if PokeAPI answered a record lookup.
        """
        try:
            record = await self.fetch_raw("1")
        except (CircuitBreakerError, *TRANSIENT_ERRORS) as e:
            logger.warning(
                f"⚠️ PokeAPI validation failed: {e}. Falling back to cached data only."
            )
            return False

        if record is None:
            logger.warning("⚠️ PokeAPI answered but has no record for id 1")
            return False

        logger.info("✅ PokeAPI is reachable")
        return True

    def get_circuit_breaker_stats(self) -> Dict[str, dict]:
        """
        Get circuit breaker statistics for all upstreams.

        Returns:
            Dictionary mapping upstream names to their breaker stats.
        """
        return {
            "pokeapi": self._pokeapi_breaker.get_stats(),
            "sprites": self._sprite_breaker.get_stats(),
        }
