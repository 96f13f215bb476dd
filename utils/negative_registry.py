"""
Registry of names known to have no catalog entry (custom Pokemon).

Marked names short-circuit every later lookup until the registry is cleared.
The set is mirrored into session storage as a single JSON list so it
survives a reload within the same session.
"""

import json
import logging
from typing import Callable, Optional, Set, Union

from config.settings import MAX_CATALOG_ID
from utils.constants import CUSTOM_NAMES_KEY
from utils.session_store import SessionStore, best_effort
from utils.validators import is_blank_key, is_out_of_range_id, normalize_key

logger = logging.getLogger("pokedex_cache.negative_registry")


class NegativeRegistry:
    """Set of normalized keys confirmed to be outside the catalog."""

    def __init__(
        self,
        store: Optional[SessionStore] = None,
        on_register: Optional[Callable[[str], None]] = None,
        max_id: int = MAX_CATALOG_ID,
    ):
        """
        Args:
            store: Optional durable mirror.
            on_register: Hook called with the key the first time it is marked.
            max_id: Highest valid catalog id for `is_out_of_range_id`.
        """
        self.store = store
        self.on_register = on_register
        self.max_id = max_id
        self._names: Set[str] = set()

    def __len__(self) -> int:
        return len(self._names)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, (str, int)) and self.is_known_missing(key)

    def is_known_missing(self, key: Optional[Union[str, int]]) -> bool:
        if is_blank_key(key):
            return False
        return normalize_key(key) in self._names  # type: ignore

    def is_out_of_range_id(self, value: Optional[Union[str, int]]) -> bool:
        return is_out_of_range_id(value, self.max_id)

    async def mark_missing(self, key: Optional[Union[str, int]]) -> None:
        """
        Register a key as missing. Repeated marks are no-ops.

        Args:
            key: Name or id to register.
        """
        if is_blank_key(key):
            return

        cache_key = normalize_key(key)  # type: ignore
        if cache_key in self._names:
            return

        self._names.add(cache_key)
        logger.info(f"Registering {cache_key} as a custom Pokemon")

        if self.on_register is not None:
            try:
                self.on_register(cache_key)
            except Exception as e:
                logger.warning(f"Negative registry hook failed: {e}", exc_info=True)

        await self._persist()

    async def _persist(self) -> None:
        if self.store is None:
            return

        payload = json.dumps(sorted(self._names))
        if not await best_effort(self.store.set_item, CUSTOM_NAMES_KEY, payload, default=False):
            logger.warning("Failed to save custom Pokemon to session storage")

    async def load(self) -> int:
        """
        Restore names persisted earlier in this session.

        Returns:
            Number of names loaded.
        """
        if self.store is None:
            return 0

        raw = await best_effort(self.store.get_item, CUSTOM_NAMES_KEY, default=None)
        if raw is None:
            return 0

        try:
            stored = json.loads(raw)
            if not isinstance(stored, list):
                raise ValueError("custom name list is not a list")
        except ValueError as e:
            logger.warning(f"Failed to load custom Pokemon from session storage: {e}")
            return 0

        names = {normalize_key(name) for name in stored if isinstance(name, str) and name.strip()}
        self._names.update(names)
        logger.info(f"Loaded {len(names)} custom Pokemon from session storage")
        return len(names)

    async def clear(self) -> None:
        """Forget every registered name, in memory and in session storage."""
        self._names.clear()
        if self.store is not None:
            await best_effort(self.store.remove_item, CUSTOM_NAMES_KEY, default=False)
