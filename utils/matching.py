"""
Name matching for catalog search.

Substring and id matches are cheap and exact; when they find nothing, the
search falls back to `difflib` similarity, which is CPU-bound over a full
dex and therefore runs in a worker thread.
"""

import asyncio
import difflib
from typing import List, Sequence

from utils.api_models import EntityRef
from utils.constants import FUZZY_MATCH_CUTOFF
from utils.validators import normalize_key, parse_leading_int


def filter_refs(query: str, refs: Sequence[EntityRef], limit: int) -> List[EntityRef]:
    """
    Match refs whose name contains the query or whose id equals it.

    Args:
        query: Search text; a number matches on id.
        refs: Candidate refs.
        limit: Maximum number of results.

    Returns:
        Matching refs in their original order.
    """
    needle = normalize_key(query)
    if not needle:
        return list(refs[:limit])

    wanted_id = parse_leading_int(needle) if needle.isdigit() else None
    matches = [
        ref
        for ref in refs
        if needle in ref["name"].lower() or (wanted_id is not None and int(ref["id"]) == wanted_id)
    ]
    return matches[:limit]


def _closest_names(word: str, possibilities: List[str], n: int, cutoff: float) -> List[str]:
    return difflib.get_close_matches(word, possibilities, n=n, cutoff=cutoff)


async def get_close_matches_async(
    word: str, possibilities: List[str], n: int = 3, cutoff: float = FUZZY_MATCH_CUTOFF
) -> List[str]:
    """
    Fuzzy-match a word against candidate names without blocking the event loop.

    Args:
        word: The word to find matches for.
        possibilities: Candidate names.
        n: Maximum number of matches to return.
        cutoff: Similarity threshold (0.0 to 1.0).

    Returns:
        Best matches, most similar first.
    """
    if not possibilities:
        return []

    return await asyncio.to_thread(_closest_names, normalize_key(word), possibilities, n, cutoff)
