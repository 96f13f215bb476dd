import pytest

from app import pokemon_service
from config.settings import validate_settings
from utils.service import PokemonService


def test_default_settings_are_valid():
    validate_settings()


def test_invalid_timezone_rejected(mocker):
    mocker.patch("config.settings.FEATURED_TIMEZONE", "Mars/Olympus_Mons")
    with pytest.raises(ValueError):
        validate_settings()


@pytest.mark.asyncio
async def test_pokemon_service_memory_only():
    async with pokemon_service(connection_string=None) as service:
        assert isinstance(service, PokemonService)
        assert service.store is None


@pytest.mark.asyncio
async def test_pokemon_service_with_session_store(tmp_path):
    conn = f"sqlite:///{tmp_path / 'session.db'}"
    async with pokemon_service(connection_string=conn, session_id="app-test") as service:
        assert service.store.is_connected
        await service.prime({"id": "0151", "name": "Mew"}, "https://x/mew.png")

    assert not service.store.is_connected
