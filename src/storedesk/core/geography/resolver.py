"""City/sector resolution against the carrier's reference list.

Everything here is pure: (text, reference cities) -> CityResolution.
"""

from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass
from typing import Iterable

from storedesk.core.normalize import CityReference

DEFAULT_THRESHOLD = 0.8
MIN_PARTIAL_LENGTH = 3

_NON_WORD = re.compile(r"[^\w]+", flags=re.UNICODE)
_SPACES = re.compile(r"\s+")


@dataclass(frozen=True, slots=True)
class CityResolution:
    raw: str
    city: str
    sector: str | None
    method: str
    resolved: bool
    city_id: str | None = None
    score: float = 0.0


def clean_text(value: str | None) -> str:
    if not value:
        return ""
    decomposed = unicodedata.normalize("NFD", value)
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    stripped = _NON_WORD.sub(" ", stripped.replace("_", " "))
    return _SPACES.sub(" ", stripped).strip().lower()


def levenshtein(a: str, b: str) -> int:
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)
    previous = list(range(len(b) + 1))
    for i, char_a in enumerate(a, start=1):
        current = [i]
        for j, char_b in enumerate(b, start=1):
            cost = 0 if char_a == char_b else 1
            current.append(min(previous[j] + 1, current[j - 1] + 1, previous[j - 1] + cost))
        previous = current
    return previous[-1]


def similarity(a: str, b: str) -> float:
    longest = max(len(a), len(b))
    if longest == 0:
        return 1.0
    return 1.0 - levenshtein(a, b) / longest


def _tie_break_key(city: CityReference) -> tuple[int, str]:
    return (len(city.name), city.name.lower())


def _contains_phrase(haystack: str, needle: str) -> bool:
    return f" {needle} " in f" {haystack} "


def resolve_sector(city: CityReference, address: str | None) -> str | None:
    cleaned_address = clean_text(address)
    if not cleaned_address or not city.sectors:
        return None
    for sector in sorted(city.sectors, key=lambda s: (-len(s), s.lower())):
        cleaned_sector = clean_text(sector)
        if cleaned_sector and _contains_phrase(cleaned_address, cleaned_sector):
            return sector
    return None


def extract_city_from_address(address: str | None, cities: Iterable[CityReference]) -> CityReference | None:
    """Longest city name found inside the address wins ("Sidi Yahya Lgharb" before "Sidi")."""
    cleaned_address = clean_text(address)
    if not cleaned_address:
        return None
    for city in sorted(cities, key=lambda c: (-len(c.name), c.name.lower())):
        cleaned_city = clean_text(city.name)
        if cleaned_city and _contains_phrase(cleaned_address, cleaned_city):
            return city
    return None


def _resolved(raw: str, city: CityReference, address: str | None, method: str, score: float) -> CityResolution:
    return CityResolution(
        raw=raw,
        city=city.name,
        sector=resolve_sector(city, address),
        method=method,
        resolved=True,
        city_id=city.id,
        score=score,
    )


def resolve_city(
    raw_city: str | None,
    cities: Iterable[CityReference],
    address: str | None = None,
    threshold: float = DEFAULT_THRESHOLD,
) -> CityResolution:
    """
    Resolution order:
    1. exact match after case/diacritic normalization;
    2. prefix/substring match, ties broken by shortest name then alphabetically;
    3. Levenshtein similarity >= threshold, same tie-break;
    4. unresolved, raw text kept.

    With an empty city the address is scanned for a known city name.
    """
    raw = (raw_city or "").strip()
    references = list(cities)
    if not references:
        return CityResolution(raw=raw, city=raw, sector=None, method="no_reference", resolved=False)

    cleaned = clean_text(raw)
    if not cleaned:
        from_address = extract_city_from_address(address, references)
        if from_address is not None:
            return _resolved(raw, from_address, address, "address", 1.0)
        return CityResolution(raw=raw, city=raw, sector=None, method="unresolved", resolved=False)

    by_clean = [(clean_text(city.name), city) for city in references]

    exact = sorted((city for name, city in by_clean if name == cleaned), key=_tie_break_key)
    if exact:
        return _resolved(raw, exact[0], address, "exact", 1.0)

    if len(cleaned) >= MIN_PARTIAL_LENGTH:
        partial = [
            city
            for name, city in by_clean
            if name and (cleaned in name or cleaned.startswith(name) or _contains_phrase(cleaned, name))
        ]
        if partial:
            best = min(partial, key=_tie_break_key)
            return _resolved(raw, best, address, "partial", 1.0)

    scored = [(similarity(cleaned, name), city) for name, city in by_clean if name]
    candidates = [(score, city) for score, city in scored if score >= threshold]
    if candidates:
        top_score = max(score for score, _ in candidates)
        best = min((city for score, city in candidates if score == top_score), key=_tie_break_key)
        return _resolved(raw, best, address, "fuzzy", top_score)

    return CityResolution(raw=raw, city=raw, sector=None, method="unresolved", resolved=False)
