"""Contact matching package."""

from bepaid_reconciler.matching.contacts import (
    ContactMatcher,
    card_key,
    normalize_brand,
)
from bepaid_reconciler.matching.transliteration import (
    NAME_CORRECTIONS,
    TRANSLIT_MAP,
    match_card_name_to_profile,
    names_match,
    transliterate_to_cyrillic,
    transliterate_to_latin,
)

__all__ = [
    "ContactMatcher",
    "card_key",
    "normalize_brand",
    "NAME_CORRECTIONS",
    "TRANSLIT_MAP",
    "match_card_name_to_profile",
    "names_match",
    "transliterate_to_cyrillic",
    "transliterate_to_latin",
]
