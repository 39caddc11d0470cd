from .cache import CityReferenceCache
from .resolver import (
    CityResolution,
    clean_text,
    extract_city_from_address,
    levenshtein,
    resolve_city,
    resolve_sector,
    similarity,
)

__all__ = [
    "CityReferenceCache",
    "CityResolution",
    "clean_text",
    "extract_city_from_address",
    "levenshtein",
    "resolve_city",
    "resolve_sector",
    "similarity",
]
