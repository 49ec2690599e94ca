import asyncio
import logging
import random
from dataclasses import dataclass, asdict
from typing import Iterable

from .models import Movie, Rating
from .config import (
    SORT_METHODS,
    YEAR_BUCKET_WEIGHTS,
    CLASSICS_START_YEAR,
    OLDER_START_YEAR,
    OLDER_END_YEAR,
    OLD_ERA_CUTOFF_YEAR,
    DISCOVER_MIN_VOTES,
    DISCOVER_MIN_VOTES_OLD_ERA,
    DISCOVER_MIN_AVERAGE,
    EXTRA_YEAR_QUERY_PROBABILITY,
    EXTRA_YEAR_MIN_VOTES,
    EXTRA_YEAR_MIN_AVERAGE,
    EXTRA_YEAR_SORT,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class YearBucket:
    name: str
    min_year: int
    max_year: int


@dataclass(frozen=True)
class DiscoverQuery:
    genre: int
    sort_by: str
    page: int
    min_vote_count: int
    min_vote_average: float
    year: int | None = None


def year_buckets(current_year: int) -> list[YearBucket]:
    return [
        YearBucket('recent', current_year - 2, current_year),
        YearBucket('recent_past', current_year - 10, current_year - 3),
        YearBucket('classics', CLASSICS_START_YEAR, current_year - 11),
        YearBucket('older', OLDER_START_YEAR, OLDER_END_YEAR),
    ]


def choose_year_bucket(rng: random.Random, current_year: int) -> YearBucket:
    """Pick a release era, weighted so recent movies dominate without crowding out older ones."""
    buckets = year_buckets(current_year)
    weights = [YEAR_BUCKET_WEIGHTS[b.name] for b in buckets]
    return rng.choices(buckets, weights=weights, k=1)[0]


def plan_discover_queries(
    favorite_genres: list[int],
    page: int,
    rng: random.Random,
    current_year: int,
) -> list[DiscoverQuery]:
    """
    Decide which discovery queries to issue for a recommendation page.

    Each favorite genre gets one query whose sort order rotates by genre
    position and whose vote floors depend on a randomly chosen era. The
    requested page is spread across genres so consecutive pages fetch
    different catalog pages. About half the genres also get a single-year
    query with a stricter quality floor for variety.
    """
    if not favorite_genres:
        return []
    page = max(1, page)

    n_genres = len(favorite_genres)
    base_page = (page - 1) // n_genres + 1
    page_offset = (page - 1) % n_genres

    queries = []
    for index, genre_id in enumerate(favorite_genres):
        bucket = choose_year_bucket(rng, current_year)
        fetch_page = base_page + (1 if index == page_offset else 0)

        queries.append(DiscoverQuery(
            genre=genre_id,
            sort_by=SORT_METHODS[index % len(SORT_METHODS)],
            page=fetch_page,
            min_vote_count=DISCOVER_MIN_VOTES_OLD_ERA if bucket.min_year < OLD_ERA_CUTOFF_YEAR else DISCOVER_MIN_VOTES,
            min_vote_average=DISCOVER_MIN_AVERAGE,
        ))

        if rng.random() < EXTRA_YEAR_QUERY_PROBABILITY:
            queries.append(DiscoverQuery(
                genre=genre_id,
                sort_by=EXTRA_YEAR_SORT,
                page=1,
                min_vote_count=EXTRA_YEAR_MIN_VOTES,
                min_vote_average=EXTRA_YEAR_MIN_AVERAGE,
                year=rng.randint(bucket.min_year, bucket.max_year),
            ))

    return queries


def merge_unique(batches: Iterable[list[Movie]]) -> list[Movie]:
    """Flatten result batches, keeping the first occurrence of each movie id."""
    seen: set[int] = set()
    merged = []
    for batch in batches:
        for movie in batch:
            if movie.id in seen:
                continue
            seen.add(movie.id)
            merged.append(movie)
    return merged


async def source_candidates(
    catalog,
    favorite_genres: list[int],
    ratings: list[Rating],
    page: int,
    rng: random.Random,
    current_year: int,
) -> list[Movie]:
    """
    Assemble the unrated candidate pool for a recommendation page.

    All discovery queries run concurrently. A failing query propagates so
    the caller can fall back as a whole. Returns an empty list when every
    discovered movie has already been rated.
    """
    queries = plan_discover_queries(favorite_genres, page, rng, current_year)
    logger.debug(f"Issuing {len(queries)} discovery queries for page {page}")

    pages = await asyncio.gather(*(catalog.discover(**asdict(q)) for q in queries))

    unique = merge_unique(p.results for p in pages)
    rated_ids = {r.movie_id for r in ratings}
    unrated = [m for m in unique if m.id not in rated_ids]

    logger.debug(
        f"Sourced {len(unique)} unique movies, {len(unique) - len(unrated)} already rated"
    )
    return unrated
