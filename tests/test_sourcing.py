import random
from collections import Counter

import pytest

from cinematch.catalog import CatalogError
from cinematch.sourcing import (
    choose_year_bucket,
    merge_unique,
    plan_discover_queries,
    source_candidates,
    year_buckets,
)
from conftest import FakeCatalog, make_movie, make_rating

CURRENT_YEAR = 2024


class FixedRandom(random.Random):
    """Random source whose random() always returns the same value."""

    def __init__(self, value):
        super().__init__(0)
        self.value = value

    def random(self):
        return self.value


def test_year_buckets_resolve_against_current_year():
    buckets = {b.name: (b.min_year, b.max_year) for b in year_buckets(CURRENT_YEAR)}

    assert buckets == {
        "recent": (2022, 2024),
        "recent_past": (2014, 2021),
        "classics": (1990, 2013),
        "older": (1970, 1989),
    }


def test_choose_year_bucket_favors_recent_movies():
    rng = random.Random(0)
    counts = Counter(choose_year_bucket(rng, CURRENT_YEAR).name for _ in range(5000))

    assert counts["recent"] / 5000 == pytest.approx(0.6, abs=0.04)
    assert counts["older"] < counts["classics"]


def test_plan_rotates_sorts_and_spreads_pages():
    # 0.99 picks the oldest bucket and never triggers the extra year query
    queries = plan_discover_queries([28, 12, 35, 18, 878], page=1, rng=FixedRandom(0.99),
                                    current_year=CURRENT_YEAR)

    assert [q.genre for q in queries] == [28, 12, 35, 18, 878]
    assert [q.sort_by for q in queries] == [
        "popularity.desc",
        "vote_average.desc",
        "vote_count.desc",
        "primary_release_date.desc",
        "popularity.desc",
    ]
    assert [q.page for q in queries] == [2, 1, 1, 1, 1]
    assert all(q.year is None for q in queries)
    assert all(q.min_vote_count == 50 for q in queries)
    assert all(q.min_vote_average == 5.5 for q in queries)


def test_plan_moves_to_later_catalog_pages():
    queries = plan_discover_queries([28, 12, 35, 18, 878], page=7, rng=FixedRandom(0.99),
                                    current_year=CURRENT_YEAR)

    assert [q.page for q in queries] == [2, 3, 2, 2, 2]


def test_plan_adds_single_year_queries_for_recent_era():
    # 0.1 picks the recent bucket and always triggers the extra year query
    queries = plan_discover_queries([28, 12], page=1, rng=FixedRandom(0.1), current_year=CURRENT_YEAR)

    main = [q for q in queries if q.year is None]
    extra = [q for q in queries if q.year is not None]

    assert len(main) == 2 and len(extra) == 2
    assert all(q.min_vote_count == 100 for q in main)
    for q in extra:
        assert 2022 <= q.year <= 2024
        assert q.page == 1
        assert q.sort_by == "vote_average.desc"
        assert q.min_vote_count == 30
        assert q.min_vote_average == 6.5


def test_plan_is_reproducible_with_seed():
    first = plan_discover_queries([28, 12, 35], 3, random.Random(42), CURRENT_YEAR)
    second = plan_discover_queries([28, 12, 35], 3, random.Random(42), CURRENT_YEAR)

    assert first == second


def test_plan_without_favorites_is_empty():
    assert plan_discover_queries([], 1, random.Random(0), CURRENT_YEAR) == []


def test_merge_unique_keeps_first_occurrence():
    a = make_movie(1, title="First")
    dup = make_movie(1, title="Duplicate")
    b = make_movie(2)

    merged = merge_unique([[a, b], [dup]])

    assert [m.id for m in merged] == [1, 2]
    assert merged[0].title == "First"


@pytest.mark.asyncio
async def test_source_candidates_dedupes_and_excludes_rated():
    catalog = FakeCatalog({
        28: [make_movie(1, [28]), make_movie(2, [28, 12]), make_movie(3, [28])],
        12: [make_movie(2, [28, 12]), make_movie(4, [12])],
    })
    ratings = [make_rating(3, 1), make_rating(4, -1)]

    pool = await source_candidates(catalog, [28, 12], ratings, 1, random.Random(5), CURRENT_YEAR)

    assert sorted(m.id for m in pool) == [1, 2]
    assert {call["genre"] for call in catalog.discover_calls} == {28, 12}


@pytest.mark.asyncio
async def test_source_candidates_propagates_catalog_failures():
    catalog = FakeCatalog(fail_discover=True)

    with pytest.raises(CatalogError):
        await source_candidates(catalog, [28], [], 1, random.Random(0), CURRENT_YEAR)
