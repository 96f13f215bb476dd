"""
Daily featured Pokemon rotation.

The featured set is a seeded shuffle of the whole catalog. The seed is the
calendar date in a fixed reference timezone, so every process and every user
sees the same Pokemon in the same order for the whole day, and a new
selection appears at local midnight of that timezone.

The shuffle uses a small linear congruential generator rather than `random`
so that a seed reproduces the same permutation on any interpreter version.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, List, Optional, Sequence, TypeVar
from zoneinfo import ZoneInfo

from config.settings import FEATURED_TIMEZONE, MAX_CATALOG_ID
from utils.api_clients import UpstreamSource
from utils.api_models import EntityRef
from utils.constants import (
    DEFAULT_FEATURED_POKEMON,
    LCG_INCREMENT,
    LCG_MODULUS,
    LCG_MULTIPLIER,
)
from utils.helpers import RecordDecodeError, decode_listing_entry

logger = logging.getLogger("pokedex_cache.featured")

T = TypeVar("T")


class SeededRandom:
    """Deterministic LCG producing floats in [0, 1)."""

    def __init__(self, seed: int):
        self.state = seed % LCG_MODULUS

    def next_int(self) -> int:
        self.state = (LCG_MULTIPLIER * self.state + LCG_INCREMENT) % LCG_MODULUS
        return self.state

    def random(self) -> float:
        return self.next_int() / LCG_MODULUS

    def randbelow(self, upper: int) -> int:
        """Return an int in [0, upper)."""
        return int(self.random() * upper)


def seeded_shuffle(items: Sequence[T], seed: int) -> List[T]:
    """
    Fisher-Yates shuffle driven by `SeededRandom`.

    Args:
        items: Items to shuffle (left untouched).
        seed: Seed; equal seeds give equal permutations.

    Returns:
        A new, shuffled list.
    """
    shuffled = list(items)
    rng = SeededRandom(seed)
    for i in range(len(shuffled) - 1, 0, -1):
        j = rng.randbelow(i + 1)
        shuffled[i], shuffled[j] = shuffled[j], shuffled[i]
    return shuffled


def date_key(now: datetime, tz_name: str = FEATURED_TIMEZONE) -> str:
    """
    Format a moment as YYYYMMDD in the reference timezone.

    Naive datetimes are taken to be UTC.
    """
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(ZoneInfo(tz_name)).strftime("%Y%m%d")


def daily_seed(key: str) -> int:
    """Derive the shuffle seed from a date key (its digits as an integer)."""
    digits = "".join(ch for ch in key if ch.isdigit())
    return int(digits) if digits else 0


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class FeaturedSet:
    """Memoized rotation for one date key; `members` is the full permutation."""

    date_key: str
    members: List[EntityRef]


class FeaturedSelector:
    """
    Produce the featured Pokemon of the day.

    State moves Stale -> Computing -> Memoized(date_key) and back to Stale
    only when the reference-timezone date changes. There is no invalidation
    API.
    """

    def __init__(
        self,
        upstream: UpstreamSource,
        clock: Callable[[], datetime] = utc_now,
        tz_name: str = FEATURED_TIMEZONE,
        max_id: int = MAX_CATALOG_ID,
    ):
        self.upstream = upstream
        self.tz_name = tz_name
        self.max_id = max_id
        self._clock = clock
        self._memo: Optional[FeaturedSet] = None
        self._lock = asyncio.Lock()

    @property
    def memo(self) -> Optional[FeaturedSet]:
        return self._memo

    def current_date_key(self) -> str:
        return date_key(self._clock(), self.tz_name)

    async def get_featured(self, count: int) -> List[EntityRef]:
        """
        Return today's featured Pokemon.

        Args:
            count: Maximum number of entries.

        Returns:
            Up to `count` entries; the fixed fallback list if the listing fails.
        """
        if count < 1:
            return []

        today = self.current_date_key()
        memo = self._memo
        if memo is not None and memo.date_key == today:
            return [dict(ref) for ref in memo.members[:count]]  # type: ignore

        async with self._lock:
            # Another task may have finished computing while we waited
            memo = self._memo
            if memo is None or memo.date_key != today:
                memo = await self._compute(today)
                if memo is None:
                    return self._fallback(count)
                self._memo = memo

        return [dict(ref) for ref in memo.members[:count]]  # type: ignore

    async def _compute(self, today: str) -> Optional[FeaturedSet]:
        try:
            listing = await self.upstream.fetch_bulk_listing(self.max_id, 0)
        except Exception as e:
            logger.error(
                f"Error fetching featured Pokemon: {e}",
                extra={"date_key": today},
            )
            return None

        refs: List[EntityRef] = []
        for entry in listing or []:
            try:
                ref = decode_listing_entry(entry)
            except RecordDecodeError as e:
                logger.debug(f"Skipping malformed listing entry: {e}")
                continue
            if int(ref["id"]) <= self.max_id:
                refs.append(ref)

        if not refs:
            logger.warning("Bulk listing returned no eligible Pokemon", extra={"date_key": today})
            return None

        members = seeded_shuffle(refs, daily_seed(today))
        logger.info(
            "Computed featured rotation",
            extra={"date_key": today, "pool_size": len(refs)},
        )
        return FeaturedSet(date_key=today, members=members)

    @staticmethod
    def _fallback(count: int) -> List[EntityRef]:
        return [dict(ref) for ref in DEFAULT_FEATURED_POKEMON[:count]]  # type: ignore
