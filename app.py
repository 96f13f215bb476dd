"""
Composition root for the Pokedex cache layer.

This module configures logging, validates settings, and wires the upstream
client, the optional session store and the `PokemonService` together. It also
handles graceful startup and shutdown. Run it directly to warm the caches
and log today's featured Pokemon.
"""

import asyncio
import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from config.settings import (
    ENVIRONMENT,
    FEATURED_COUNT,
    LOG_FILE,
    LOG_LEVEL,
    SESSION_DB_CONNECTION_STRING,
    SESSION_ID,
    validate_settings,
)
from utils.api_clients import PokeAPIClient
from utils.service import PokemonService
from utils.session_store import open_session_store

logger = logging.getLogger("pokedex_cache")


def setup_logging(level: str = LOG_LEVEL, log_file: Optional[str] = LOG_FILE) -> None:
    """Configure root logging with stdout and (optionally) file handlers."""
    handlers: list = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=handlers,
    )

    resolved = getattr(logging, level.upper(), logging.INFO)
    logging.getLogger().setLevel(resolved)
    logger.setLevel(resolved)


@asynccontextmanager
async def pokemon_service(
    connection_string: Optional[str] = SESSION_DB_CONNECTION_STRING,
    session_id: str = SESSION_ID,
) -> AsyncIterator[PokemonService]:
    """
    Build a ready-to-use service and tear it down afterwards.

    Args:
        connection_string: Session store URI, or None for memory-only caching.
        session_id: Session whose stored entries are visible.

    Yields:
        The started PokemonService.
    """
    client = PokeAPIClient()
    store = await open_session_store(connection_string, session_id)
    service = PokemonService(client, store)

    try:
        await service.start()
        yield service
    finally:
        await service.close()


async def main() -> int:
    setup_logging()

    try:
        validate_settings()
    except ValueError as e:
        logger.critical(f"❌ Configuration validation failed: {e}")
        return 1

    logger.info(f"Starting Pokedex cache ({ENVIRONMENT})")

    async with pokemon_service() as service:
        await service.upstream.check_connectivity()  # type: ignore

        featured = await service.get_featured(FEATURED_COUNT)
        for ref in featured:
            image = await service.get_image(ref["name"], ref["id"])
            logger.info(f"Featured #{ref['id']} {ref['name']}: {image}")

    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
