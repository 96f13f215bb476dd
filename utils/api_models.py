"""
Type definitions for catalog data to ensure strict typing and reduce runtime errors.
"""

from typing import List, Optional, TypedDict, Union


class EntityRef(TypedDict):
    """
    Minimal projection of a Pokemon used by listings and the featured grid.

    Attributes:
        id: National Dex number zero-padded to four digits (e.g., '0025').
        name: Display name with the first letter capitalized.
    """

    id: str
    name: str


class Entity(TypedDict):
    """
    Formatted Pokemon record exposed to callers.

    Values are kept JSON-serializable so entries can be mirrored into
    session storage unchanged.

    Attributes:
        id: Zero-padded National Dex number.
        name: Capitalized display name.
        weight: Weight in kilograms, one decimal place (e.g., '6.0').
        height: Height in meters, one decimal place (e.g., '0.4').
        types: Capitalized type names in slot order.
        sprite_url: Best sprite URL found in the raw record, if any.
        generation: Generation the Pokemon debuted in, if within the dex.
    """

    id: str
    name: str
    weight: str
    height: str
    types: List[str]
    sprite_url: Optional[str]
    generation: Optional[int]


class ListingEntry(TypedDict):
    """
    One row of the upstream bulk listing (`/pokemon?limit=&offset=`).
    """

    name: str
    url: str


class PokemonTypeInfo(TypedDict):
    """A Pokemon type as shown in filter menus."""

    name: str
    url: str


class CacheStats(TypedDict):
    """
    Represents cache statistics.

    Attributes:
        size: Current number of entries held in memory.
        max_size: Maximum allowed entries before eviction triggers.
        hits: Number of successful cache lookups.
        misses: Number of lookups that found nothing usable.
        hit_rate: Percentage string (e.g., '85.5%').
    """

    size: Union[int, str]
    max_size: int
    hits: int
    misses: int
    hit_rate: str


class DeduplicationStats(TypedDict):
    """
    Represents request deduplication statistics.

    Attributes:
        pending_requests: Number of upstream requests currently in flight.
        active_locks: Number of locks currently held for request coordination.
        joined_requests: Number of callers that reused an in-flight request.
    """

    pending_requests: int
    active_locks: int
    joined_requests: int
