"""
Helper functions for decoding and formatting upstream Pokemon data.

This module contains utility functions to:
- Decode raw PokeAPI records into the strict `Entity` shape in one place.
- Format ids, names, types and measurements for display.
- Pick the best sprite URL out of the various sprite layouts.
- Convert bulk listing rows into `EntityRef` projections.
"""

from typing import Any, Dict, List, Optional

from utils.api_models import Entity, EntityRef
from utils.constants import EXCLUDED_TYPES, GENERATION_RANGES, POKEMON_ID_PAD_LENGTH


class RecordDecodeError(ValueError):
    """Raised when an upstream record does not have the expected shape."""

    pass


def capitalize_first_letter(text: Optional[str]) -> str:
    """
    Uppercase the first character and leave the rest untouched.

    Unlike `str.capitalize`, 'mr-Mime' stays 'Mr-Mime' instead of 'Mr-mime'.
    """
    if not text:
        return ""
    return text[0].upper() + text[1:]


def format_pokemon_id(pokemon_id: Any, pad_length: int = POKEMON_ID_PAD_LENGTH) -> str:
    """
    Format a Pokemon id as a zero-padded string.

    Args:
        pokemon_id: Numeric id or its string form.
        pad_length: Width to pad to.

    Returns:
        The padded id (e.g., 25 -> '0025').
    """
    return str(pokemon_id).rjust(pad_length, "0")


def format_measurement(value: float) -> str:
    """Convert hectograms/decimeters into kg/m with one decimal place."""
    return f"{value / 10:.1f}"


def format_pokemon_types(types: Any) -> List[str]:
    """
    Format type names from a Pokemon's types array.

    Accepts plain strings, `{"name": ...}` objects and the PokeAPI slot
    layout `{"slot": 1, "type": {"name": ...}}`.

    Args:
        types: Raw type list.

    Returns:
        Capitalized type names, or an empty list for anything that is not a list.
    """
    if not isinstance(types, list):
        return []

    formatted = []
    for entry in types:
        if isinstance(entry, str):
            type_name = entry
        elif isinstance(entry, dict):
            nested = entry.get("type")
            if isinstance(nested, dict):
                type_name = nested.get("name") or ""
            else:
                type_name = entry.get("name") or ""
        else:
            type_name = ""
        formatted.append(capitalize_first_letter(type_name))
    return formatted


def get_generation(pokemon_id: int) -> Optional[int]:
    """Return the generation whose dex range contains the id, if any."""
    for generation, (start, end) in GENERATION_RANGES.items():
        if start <= pokemon_id <= end:
            return generation
    return None


def extract_best_sprite_url(sprites: Any) -> Optional[str]:
    """
    Extract the best available sprite URL from a sprites object.

    Sprite data comes in several layouts (PokeAPI's nested `other` block,
    flattened database copies). The priority is:
    1. Official artwork
    2. Default sprite
    3. Any key mentioning "official"
    4. Any http(s) URL as a last resort

    Args:
        sprites: Sprites object from a raw record.

    Returns:
        The sprite URL, or None if none is found.
    """
    if not isinstance(sprites, dict):
        return None

    other = sprites.get("other")
    if isinstance(other, dict):
        artwork = other.get("official-artwork")
        if isinstance(artwork, dict) and isinstance(artwork.get("front_default"), str):
            return artwork["front_default"]

    official = sprites.get("official")
    if isinstance(official, str):
        return official
    if isinstance(official, dict) and isinstance(official.get("official_artwork"), str):
        return official["official_artwork"]

    artwork = sprites.get("official-artwork")
    if isinstance(artwork, dict) and isinstance(artwork.get("front_default"), str):
        return artwork["front_default"]

    for key in ("default", "front_default"):
        if isinstance(sprites.get(key), str):
            return sprites[key]

    for key, value in sprites.items():
        if "official" in key and isinstance(value, str):
            return value

    for value in sprites.values():
        if isinstance(value, str) and value.startswith("http"):
            return value

    return None


def _require(raw: Dict[str, Any], field: str, expected: tuple) -> Any:
    value = raw.get(field)
    # bool is an int subclass; a boolean id or weight is never valid
    if isinstance(value, bool) or not isinstance(value, expected):
        raise RecordDecodeError(
            f"Field '{field}' missing or not {'/'.join(t.__name__ for t in expected)}"
        )
    return value


def decode_pokemon_record(raw: Any) -> Entity:
    """
    Decode a raw PokeAPI `/pokemon/{key}` payload into an `Entity`.

    This is the only place that inspects the upstream shape. Anything
    unexpected raises `RecordDecodeError`, which callers treat like any
    other transient upstream failure.

    Args:
        raw: Parsed JSON payload.

    Returns:
        The formatted entity.

    Raises:
        RecordDecodeError: If a required field is missing or mistyped.
    """
    if not isinstance(raw, dict):
        raise RecordDecodeError(f"Expected an object, got {type(raw).__name__}")

    pokemon_id = _require(raw, "id", (int,))
    name = _require(raw, "name", (str,))
    weight = _require(raw, "weight", (int, float))
    height = _require(raw, "height", (int, float))
    types = _require(raw, "types", (list,))

    if not name.strip():
        raise RecordDecodeError("Field 'name' is empty")

    return {
        "id": format_pokemon_id(pokemon_id),
        "name": capitalize_first_letter(name),
        "weight": format_measurement(weight),
        "height": format_measurement(height),
        "types": format_pokemon_types(types),
        "sprite_url": extract_best_sprite_url(raw.get("sprites")),
        "generation": get_generation(pokemon_id),
    }


def parse_id_from_url(url: str) -> int:
    """
    Extract the numeric id from a resource URL.

    Args:
        url: e.g. 'https://pokeapi.co/api/v2/pokemon/25/'.

    Returns:
        The id (25).

    Raises:
        RecordDecodeError: If the last path segment is not numeric.
    """
    segment = str(url).rstrip("/").split("/")[-1]
    if not segment.isdigit():
        raise RecordDecodeError(f"No numeric id in URL '{url}'")
    return int(segment)


def decode_listing_entry(entry: Any) -> EntityRef:
    """
    Convert a bulk listing row into an `EntityRef`.

    Raises:
        RecordDecodeError: If the row has no name or no id in its URL.
    """
    if not isinstance(entry, dict) or not isinstance(entry.get("name"), str):
        raise RecordDecodeError("Listing entry missing 'name'")

    return {
        "id": format_pokemon_id(parse_id_from_url(entry.get("url", ""))),
        "name": capitalize_first_letter(entry["name"]),
    }


def format_type_list(results: Any) -> List[Dict[str, str]]:
    """
    Format the `/type` listing for filter menus.

    Drops types that never appear on real Pokemon and capitalizes the rest.
    """
    if not isinstance(results, list):
        raise RecordDecodeError("Type listing is not a list")

    return [
        {"name": capitalize_first_letter(entry["name"]), "url": entry.get("url", "")}
        for entry in results
        if isinstance(entry, dict)
        and isinstance(entry.get("name"), str)
        and entry["name"].lower() not in EXCLUDED_TYPES
    ]
