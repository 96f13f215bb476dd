import copy
import os
import sys
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio

# Add project root to python path so we can import modules
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from utils.session_store import SessionStore  # noqa: E402

PIKACHU_RAW = {
    "id": 25,
    "name": "pikachu",
    "weight": 60,
    "height": 4,
    "types": [{"slot": 1, "type": {"name": "electric", "url": "https://pokeapi.co/api/v2/type/13/"}}],
    "sprites": {
        "front_default": "https://example.test/sprites/25.png",
        "other": {"official-artwork": {"front_default": "https://example.test/artwork/25.png"}},
    },
}


def listing_row(pokemon_id: int, name: str) -> dict:
    return {"name": name, "url": f"https://pokeapi.co/api/v2/pokemon/{pokemon_id}/"}


class FakeClock:
    """Controllable epoch-seconds clock."""

    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def upstream():
    """Stub upstream source; tests configure the individual coroutines."""
    source = MagicMock()
    source.fetch_raw = AsyncMock(return_value=None)
    source.fetch_bulk_listing = AsyncMock(return_value=[])
    source.fetch_types = AsyncMock(return_value=[])
    source.image_available = AsyncMock(return_value=True)
    return source


@pytest_asyncio.fixture
async def store():
    """In-memory session store, discarded after the test."""
    session_store = SessionStore("sqlite:///:memory:", "test-session")
    await session_store.connect()
    yield session_store
    await session_store.close()


@pytest.fixture
def pikachu_raw():
    return copy.deepcopy(PIKACHU_RAW)
