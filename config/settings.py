import logging
import os
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv

"""
Configuration settings for the Pokedex cache layer.

This module loads environment variables, defines the tunables for the
caching, featured-rotation and upstream API layers, and validates the
configuration to ensure stability.
"""

load_dotenv()

logger = logging.getLogger("pokedex_cache.config")

ENVIRONMENT = os.getenv("ENVIRONMENT", "production")

# API Configuration
POKEAPI_URL = os.getenv("POKEAPI_URL", "https://pokeapi.co/api/v2")
SPRITE_BASE_URL = os.getenv(
    "SPRITE_BASE_URL",
    "https://raw.githubusercontent.com/PokeAPI/sprites/master/sprites/pokemon/",
)
OFFICIAL_ARTWORK_URL = os.getenv(
    "OFFICIAL_ARTWORK_URL",
    "https://raw.githubusercontent.com/PokeAPI/sprites/master/sprites/pokemon/other/official-artwork/",
)

# Session Storage (durable mirror)
# Format: sqlite:///path/to/file.db
# Leave unset to run the caches memory-only.
SESSION_DB_CONNECTION_STRING = os.getenv("SESSION_DB_CONNECTION_STRING") or None
SESSION_ID = os.getenv("SESSION_ID", "default")

# Catalog bounds
# Highest National Dex number in the canonical dataset.
MAX_CATALOG_ID = int(os.getenv("MAX_CATALOG_ID", "1025"))

# Cache Configuration
MAX_CACHE_SIZE = int(os.getenv("MAX_CACHE_SIZE", "100"))
DEFAULT_EXPIRATION_MINUTES = 60  # Image cache lifetime
ENTITY_EXPIRATION_MINUTES = 24 * 60  # Formatted Pokemon data lifetime
LISTING_EXPIRATION_MINUTES = 24 * 60  # Bulk listings and type lists

# Featured Rotation
# All users see the same featured set for a calendar day in this timezone.
FEATURED_TIMEZONE = os.getenv("FEATURED_TIMEZONE", "Europe/Oslo")
FEATURED_COUNT = int(os.getenv("FEATURED_COUNT", "4"))

# API Rate Limiting (for external APIs)
MAX_CONCURRENT_API_REQUESTS = 5
API_REQUEST_TIMEOUT = float(os.getenv("API_REQUEST_TIMEOUT", "10"))

# Logging Configuration
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE", "pokedex_cache.log")


def validate_settings():
    """
    Validate all configuration settings to catch errors at startup.

    Raises:
        ValueError: If any configuration value is invalid (e.g., non-positive
            cache size, unknown featured timezone).
    """
    if MAX_CACHE_SIZE < 1:
        raise ValueError("MAX_CACHE_SIZE must be at least 1")

    if DEFAULT_EXPIRATION_MINUTES < 0 or ENTITY_EXPIRATION_MINUTES < 0:
        raise ValueError("Cache expiration minutes must be non-negative")

    if MAX_CATALOG_ID < 1:
        raise ValueError("MAX_CATALOG_ID must be at least 1")

    if FEATURED_COUNT < 1:
        raise ValueError("FEATURED_COUNT must be at least 1")

    if MAX_CONCURRENT_API_REQUESTS < 1:
        raise ValueError("MAX_CONCURRENT_API_REQUESTS must be at least 1")

    if API_REQUEST_TIMEOUT <= 0:
        raise ValueError("API_REQUEST_TIMEOUT must be positive")

    try:
        ZoneInfo(FEATURED_TIMEZONE)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValueError(f"FEATURED_TIMEZONE '{FEATURED_TIMEZONE}' is not a known timezone")

    if SESSION_DB_CONNECTION_STRING and not SESSION_DB_CONNECTION_STRING.startswith(
        "sqlite:///"
    ):
        raise ValueError(
            "SESSION_DB_CONNECTION_STRING must use the sqlite:/// scheme"
        )

    logger.info("✅ Configuration validation completed successfully")
