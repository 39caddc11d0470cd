from __future__ import annotations

from storedesk.core.errors import CarrierUnavailable
from storedesk.core.geography import (
    CityReferenceCache,
    clean_text,
    extract_city_from_address,
    levenshtein,
    resolve_city,
    similarity,
)
from storedesk.core.normalize import CityReference

TWO_CITIES = [CityReference(id="1", name="Casablanca"), CityReference(id="2", name="Rabat")]


def test_exact_match_ignores_case_and_spaces() -> None:
    result = resolve_city("casablanca ", TWO_CITIES)

    assert result.resolved is True
    assert result.city == "Casablanca"
    assert result.method == "exact"


def test_unknown_city_kept_raw() -> None:
    result = resolve_city("Xyzzyville", TWO_CITIES)

    assert result.resolved is False
    assert result.city == "Xyzzyville"
    assert result.raw == "Xyzzyville"


def test_diacritics_are_ignored(cities) -> None:  # noqa: ANN001
    assert clean_text("  Fès-Médina ") == "fes medina"
    assert resolve_city("FES", cities).city == "Fès"


def test_partial_match_prefers_shortest_name(cities) -> None:  # noqa: ANN001
    result = resolve_city("Sidi", cities)

    assert result.method == "partial"
    assert result.city == "Sidi Slimane"


def test_partial_match_when_reference_inside_input(cities) -> None:  # noqa: ANN001
    result = resolve_city("Casablanca Anfa", cities)

    assert result.city == "Casablanca"
    assert result.method == "partial"


def test_fuzzy_match_above_threshold(cities) -> None:  # noqa: ANN001
    result = resolve_city("Marrakesh", cities)

    assert result.resolved is True
    assert result.city == "Marrakech"
    assert result.method == "fuzzy"
    assert result.score >= 0.8


def test_fuzzy_match_below_threshold_unresolved(cities) -> None:  # noqa: ANN001
    assert resolve_city("Rbt", cities).resolved is False


def test_empty_city_uses_address_longest_first(cities) -> None:  # noqa: ANN001
    result = resolve_city("", cities, address="Douar Ouled, Sidi Yahya Lgharb")

    assert result.city == "Sidi Yahya Lgharb"
    assert result.method == "address"
    assert extract_city_from_address("rien ici", cities) is None


def test_sector_resolved_from_address(cities) -> None:  # noqa: ANN001
    result = resolve_city("Casablanca", cities, address="12 Rue Ibnou Mounir, Maarif")

    assert result.sector == "Maarif"


def test_no_reference_list_leaves_everything_unresolved() -> None:
    result = resolve_city("Casablanca", [])

    assert result.resolved is False
    assert result.method == "no_reference"


def test_levenshtein_basics() -> None:
    assert levenshtein("kitten", "sitting") == 3
    assert levenshtein("", "abc") == 3
    assert similarity("rabat", "rabat") == 1.0


def test_cache_keeps_snapshot_when_refresh_fails(test_logger, cities) -> None:  # noqa: ANN001
    calls = {"count": 0}

    def fetcher() -> list[CityReference]:
        calls["count"] += 1
        if calls["count"] == 1:
            return cities
        raise CarrierUnavailable("down")

    cache = CityReferenceCache(fetcher=fetcher, logger=test_logger)
    first = cache.refresh()
    second = cache.refresh()

    assert len(first) == len(cities)
    assert second is first


def test_cache_ignores_empty_city_list(test_logger, cities) -> None:  # noqa: ANN001
    cache = CityReferenceCache(fetcher=lambda: [], logger=test_logger)
    cache.replace(cities)

    assert len(cache.refresh()) == len(cities)


def test_cache_persists_and_reloads(repository, test_logger, cities) -> None:  # noqa: ANN001
    cache = CityReferenceCache(repository=repository, fetcher=lambda: cities, logger=test_logger)
    cache.refresh()

    reloaded = CityReferenceCache(repository=repository, logger=test_logger).load_from_repository()

    assert {city.name for city in reloaded.cities} == {city.name for city in cities}
    assert reloaded.fetched_at is not None
    casablanca = next(city for city in reloaded.cities if city.name == "Casablanca")
    assert "Maarif" in casablanca.sectors


def test_cache_staleness(test_logger, cities) -> None:  # noqa: ANN001
    cache = CityReferenceCache(logger=test_logger)
    assert cache.is_stale(60) is True

    cache.replace(cities)
    assert cache.is_stale(60) is False
