"""
Key normalization and identifier validation.

Every cache tier, the negative registry and the resolvers agree on identity
through `normalize_key`, so a lookup for "Pikachu" and " pikachu " lands on
the same entry. Id-based and name-based keys are deliberately not unified.
"""

from typing import Optional, Union

from config.settings import MAX_CATALOG_ID
from utils.constants import CUSTOM_ID_MARKER, LEADING_INTEGER_PATTERN


def normalize_key(value: Union[str, int]) -> str:
    """
    Canonicalize a name or numeric id into a cache key.

    Args:
        value: Pokemon name or id.

    Returns:
        The lowercased, whitespace-trimmed string form of the input.
    """
    return str(value).lower().strip()


def is_blank_key(value: Optional[Union[str, int]]) -> bool:
    """Return True for missing keys (None, empty or whitespace-only strings)."""
    if value is None:
        return True
    return normalize_key(value) == ""


def parse_leading_int(value: Union[str, int]) -> Optional[int]:
    """
    Parse the leading integer of a value, ignoring any trailing text.

    Args:
        value: Input such as '25', '0025' or '25-alola'.

    Returns:
        The parsed integer, or None when the value does not start with digits.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value

    match = LEADING_INTEGER_PATTERN.match(str(value))
    if not match:
        return None
    number = int(match.group(1))
    return -number if str(value).strip().startswith("-") else number


def is_out_of_range_id(value: Optional[Union[str, int]], max_id: int = MAX_CATALOG_ID) -> bool:
    """
    Fast check for identifiers that cannot belong to the canonical catalog.

    An id is out of range when it carries the custom marker character or its
    numeric part exceeds the highest known National Dex number. Names that do
    not start with digits are never out of range.

    Args:
        value: Pokemon id or name.
        max_id: Highest valid catalog id.

    Returns:
        True if the value is definitely outside the catalog.
    """
    if value is None:
        return False

    text = str(value)
    if CUSTOM_ID_MARKER in text:
        return True

    number = parse_leading_int(value)
    return number is not None and number > max_id
