"""
In-flight request coalescing.

Concurrent callers asking for the same resource share one upstream call
instead of each issuing their own.
"""

import asyncio
import logging
from collections import defaultdict
from typing import Any, Awaitable, Callable, Dict

from utils.api_models import DeduplicationStats

logger = logging.getLogger("pokedex_cache.deduplication")


class RequestDeduplicator:
    """Map of in-flight tasks keyed by a normalized request key."""

    def __init__(self):
        self._pending_requests: Dict[str, asyncio.Task] = {}
        self._request_locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self.joined_requests = 0

    async def run(self, key: str, fetch_func: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
        """
        Deduplicate concurrent requests for the same data.

        This employs a 'Release-then-Await' pattern: the lock is held only
        while creating or retrieving the pending task, never while awaiting
        the network result. Exceptions raised by the shared task reach every
        waiter.

        Args:
            key: Unique key identifying this request resource.
            fetch_func: Async function to call if no request is pending.
            *args: Arguments for fetch_func.
            **kwargs: Keyword arguments for fetch_func.

        Returns:
            Result from fetch_func or shared result from a pending request.
        """
        created = False

        async with self._request_locks[key]:
            task = self._pending_requests.get(key)
            if task is not None:
                self.joined_requests += 1
                logger.debug(
                    "Request deduplication: Joining existing request",
                    extra={"key": key[:50]},
                )
            else:
                task = asyncio.create_task(fetch_func(*args, **kwargs))
                self._pending_requests[key] = task
                created = True

        try:
            # shield: a cancelled waiter must not cancel the shared fetch
            return await asyncio.shield(task)
        finally:
            if created:
                async with self._request_locks[key]:
                    if self._pending_requests.get(key) is task:
                        del self._pending_requests[key]
                # Drop the lock once nobody is waiting on it
                lock = self._request_locks.get(key)
                if lock is not None and not lock.locked() and key not in self._pending_requests:
                    del self._request_locks[key]

    def get_stats(self) -> DeduplicationStats:
        """
        Get request deduplication statistics.

        Returns:
            DeduplicationStats object.
        """
        return {
            "pending_requests": len(self._pending_requests),
            "active_locks": len(self._request_locks),
            "joined_requests": self.joined_requests,
        }
