"""
Session-scoped key/value storage backed by SQLite.

This is the durable mirror behind the in-memory caches. It mimics a browser's
`sessionStorage`: string keys, string values, visible only to the session
that wrote them, and gone once that session ends.
"""

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, List, Optional, Tuple, TypeVar
from urllib.parse import urlparse

import aiosqlite

from config.settings import SESSION_ID

logger = logging.getLogger("pokedex_cache.session_store")

T = TypeVar("T")


class SessionStore:
    """
    Async session storage interface.
    Currently supports SQLite via aiosqlite.

    Schema:
    - **session_storage**: One row per stored item.
      Columns: session_id, storage_key (composite PK), value (TEXT), updated_at.

    Every public method is best-effort: failures are logged and reported as
    None/False/empty results so a broken store can never take the caches down.
    """

    def __init__(self, connection_string: str, session_id: str = SESSION_ID):
        """
        Initialize the session store instance.

        Args:
            connection_string: The connection URI (e.g., 'sqlite:///data/session.db'
                or 'sqlite:///:memory:').
            session_id: Identifier of the session whose rows this store can see.
        """
        self.connection_string = connection_string
        self.session_id = session_id
        self._conn: Optional[aiosqlite.Connection] = None
        self._lock = asyncio.Lock()

        self.db_type, self.db_path = self._parse_connection_string(connection_string)

    def _parse_connection_string(self, conn_str: str) -> Tuple[str, str]:
        """
        Parse connection string to determine storage type and path.

        Args:
            conn_str: Connection string in format 'scheme:///path'.

        Returns:
            Tuple containing (scheme, path).
        """
        if conn_str.startswith("sqlite:///"):
            return "sqlite", conn_str.replace("sqlite:///", "", 1)

        parsed = urlparse(conn_str)
        return parsed.scheme, parsed.path

    @property
    def is_connected(self) -> bool:
        return self._conn is not None

    async def connect(self) -> None:
        """
        Open the connection and create the storage table.

        Raises:
            ValueError: If the storage type is not supported (currently only 'sqlite').
        """
        if self.db_type != "sqlite":
            raise ValueError(
                f"Unsupported session store type: {self.db_type}. Only 'sqlite' is currently supported."
            )

        self._conn = await aiosqlite.connect(self.db_path)
        self._conn.row_factory = aiosqlite.Row
        await self._create_tables()
        logger.info(
            f"Session store connected ({self.db_type}): {self.db_path}",
            extra={"session_id": self.session_id},
        )

    async def close(self) -> None:
        """Close the connection."""
        if self._conn:
            await self._conn.close()
            self._conn = None
            logger.info("Session store connection closed")

    async def _create_tables(self) -> None:
        """Create the storage table if it doesn't exist."""
        async with self._lock:
            await self._conn.execute(  # type: ignore
                """
                CREATE TABLE IF NOT EXISTS session_storage (
                    session_id TEXT NOT NULL,
                    storage_key TEXT NOT NULL,
                    value TEXT NOT NULL,
                    updated_at REAL NOT NULL,
                    PRIMARY KEY (session_id, storage_key)
                )
            """
            )
            await self._conn.commit()  # type: ignore

    async def get_item(self, key: str) -> Optional[str]:
        """
        Read a stored value.

        Args:
            key: Storage key.

        Returns:
            The stored string, or None if missing or the store failed.
        """
        if self._conn is None:
            return None

        try:
            async with self._lock:
                cursor = await self._conn.execute(
                    "SELECT value FROM session_storage WHERE session_id = ? AND storage_key = ?",
                    (self.session_id, key),
                )
                row = await cursor.fetchone()
                return row["value"] if row else None

        except Exception as e:
            logger.warning(f"Error reading session storage: {e}", extra={"key": key[:50]})
            return None

    async def set_item(self, key: str, value: str) -> bool:
        """
        Store a value, replacing any previous one.

        Returns:
            True if the write succeeded, False otherwise.
        """
        if self._conn is None:
            return False

        try:
            async with self._lock:
                await self._conn.execute(
                    """
                    INSERT INTO session_storage (session_id, storage_key, value, updated_at)
                    VALUES (?, ?, ?, ?)
                    ON CONFLICT(session_id, storage_key) DO UPDATE SET
                        value = excluded.value,
                        updated_at = excluded.updated_at
                    """,
                    (self.session_id, key, value, time.time()),
                )
                await self._conn.commit()
                return True

        except Exception as e:
            logger.warning(f"Error writing session storage: {e}", extra={"key": key[:50]})
            return False

    async def remove_item(self, key: str) -> bool:
        """Delete a single key. Returns False if the store failed."""
        if self._conn is None:
            return False

        try:
            async with self._lock:
                await self._conn.execute(
                    "DELETE FROM session_storage WHERE session_id = ? AND storage_key = ?",
                    (self.session_id, key),
                )
                await self._conn.commit()
                return True

        except Exception as e:
            logger.warning(f"Error removing session item: {e}", extra={"key": key[:50]})
            return False

    async def keys(self, prefix: str = "") -> List[str]:
        """List this session's keys, optionally restricted to a prefix."""
        if self._conn is None:
            return []

        try:
            async with self._lock:
                cursor = await self._conn.execute(
                    "SELECT storage_key FROM session_storage WHERE session_id = ? ORDER BY updated_at",
                    (self.session_id,),
                )
                rows = await cursor.fetchall()
                return [row["storage_key"] for row in rows if row["storage_key"].startswith(prefix)]

        except Exception as e:
            logger.warning(f"Error listing session keys: {e}")
            return []

    async def remove_prefix(self, prefix: str) -> int:
        """
        Delete every key of this session that starts with a prefix.

        Matching is done in Python rather than with LIKE so that '_' in
        namespaces is not treated as a wildcard.

        Returns:
            Number of keys removed.
        """
        doomed = await self.keys(prefix)
        if not doomed or self._conn is None:
            return 0

        try:
            async with self._lock:
                await self._conn.executemany(
                    "DELETE FROM session_storage WHERE session_id = ? AND storage_key = ?",
                    [(self.session_id, key) for key in doomed],
                )
                await self._conn.commit()
                logger.debug(f"Removed {len(doomed)} session keys", extra={"prefix": prefix})
                return len(doomed)

        except Exception as e:
            logger.warning(f"Error clearing session keys: {e}", extra={"prefix": prefix})
            return 0

    async def end_session(self) -> bool:
        """
        Drop every row belonging to this session.

        Returns:
            True if successful, False otherwise.
        """
        if self._conn is None:
            return False

        try:
            async with self._lock:
                await self._conn.execute(
                    "DELETE FROM session_storage WHERE session_id = ?", (self.session_id,)
                )
                await self._conn.commit()
                logger.info("Session storage ended", extra={"session_id": self.session_id})
                return True

        except Exception as e:
            logger.warning(f"Error ending session: {e}", exc_info=True)
            return False


async def open_session_store(
    connection_string: Optional[str], session_id: str = SESSION_ID
) -> Optional[SessionStore]:
    """
    Open a session store, or return None when none is configured or it fails to open.

    Running without a store is a supported mode (memory-only caching), so
    connection failures are logged rather than raised.

    Args:
        connection_string: Connection URI, or None for memory-only operation.
        session_id: Identifier of the session.

    Returns:
        A connected SessionStore, or None.
    """
    if not connection_string:
        logger.info("No session store configured, caching in memory only")
        return None

    store = SessionStore(connection_string, session_id)
    try:
        await store.connect()
    except Exception as e:
        logger.warning(
            f"Session store unavailable, caching in memory only: {e}",
            extra={"connection_string": connection_string},
        )
        await store.close()
        return None
    return store


async def best_effort(operation: Callable[..., Awaitable[T]], *args: Any, default: T) -> T:
    """
    Run a session store operation, returning `default` if it raises.

    The store itself already degrades on SQLite errors; this covers any other
    store implementation handed to the caches.
    """
    try:
        return await operation(*args)
    except Exception as e:
        logger.warning(
            f"Session storage unavailable: {e}",
            extra={"operation": getattr(operation, "__name__", repr(operation))},
        )
        return default
