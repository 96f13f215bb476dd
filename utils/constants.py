"""
This module contains static constant definitions used throughout the cache layer,
including:
- Sentinel image URLs used when no real artwork can be resolved
- Session storage namespaces
- Fallback featured Pokemon
- Generation ranges of the National Dex
- Parameters of the seeded generator behind the daily rotation
"""

import re

# Sentinel Images
# Shown for custom or unresolvable Pokemon.
UNKNOWN_IMAGE = (
    "https://raw.githubusercontent.com/PokeAPI/sprites/master/sprites/pokemon/0.png"
)
# Shown when no name was supplied at all.
POKE_BALL_IMAGE = (
    "https://raw.githubusercontent.com/PokeAPI/sprites/master/sprites/items/poke-ball.png"
)

# Session Storage Namespaces
IMAGE_NAMESPACE = "pokemon_img_"
ENTITY_NAMESPACE = "pokemon_data_"
LISTING_NAMESPACE = "pokemon_list_"
CUSTOM_NAMES_KEY = "pokemon_custom_names"

# Identifier Handling
CUSTOM_ID_MARKER = "?"
LEADING_INTEGER_PATTERN = re.compile(r"^\s*[+-]?(\d+)")
POKEMON_ID_PAD_LENGTH = 4

# Types that exist in the upstream API but never appear on real Pokemon
EXCLUDED_TYPES = frozenset({"unknown", "shadow", "stellar"})

# Default featured Pokemon used when the bulk listing cannot be fetched
DEFAULT_FEATURED_POKEMON = [
    {"id": "0001", "name": "Bulbasaur"},
    {"id": "0025", "name": "Pikachu"},
    {"id": "0006", "name": "Charizard"},
    {"id": "0448", "name": "Lucario"},
]

# National Dex ranges per generation (inclusive)
GENERATION_RANGES = {
    1: (1, 151),
    2: (152, 251),
    3: (252, 386),
    4: (387, 493),
    5: (494, 649),
    6: (650, 721),
    7: (722, 809),
    8: (810, 905),
    9: (906, 1025),
}

# Linear congruential generator (Numerical Recipes parameters)
LCG_MULTIPLIER = 1664525
LCG_INCREMENT = 1013904223
LCG_MODULUS = 2**32

# Search
SEARCH_RESULT_LIMIT = 20
FUZZY_MATCH_CUTOFF = 0.6
