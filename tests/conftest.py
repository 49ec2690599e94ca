import importlib
import json
import sys
from datetime import date
from pathlib import Path

import pytest

# Ensure the package under test is importable without installation
PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = PROJECT_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from cinematch.catalog import CatalogError  # noqa: E402
from cinematch.models import Movie, MoviePage, Rating  # noqa: E402

TODAY = date(2024, 6, 1)


class FakeCatalog:
    """
    In-memory stand-in for TMDBClient.

    Discover results are keyed by genre id; popular pages are generated so
    each page number has distinct ids.
    """

    def __init__(self, discover_results=None, fail_discover=False, fail_popular=False):
        self.discover_results = discover_results or {}
        self.fail_discover = fail_discover
        self.fail_popular = fail_popular
        self.discover_calls = []
        self.popular_calls = []

    async def discover(self, genre=None, sort_by='popularity.desc', page=1,
                       min_vote_count=None, min_vote_average=None, year=None):
        self.discover_calls.append({
            "genre": genre,
            "sort_by": sort_by,
            "page": page,
            "min_vote_count": min_vote_count,
            "min_vote_average": min_vote_average,
            "year": year,
        })
        if self.fail_discover:
            raise CatalogError("discover unavailable")
        return MoviePage(results=list(self.discover_results.get(genre, [])), page=page)

    async def popular(self, page=1):
        self.popular_calls.append(page)
        if self.fail_popular:
            raise CatalogError("popular unavailable")
        results = [
            Movie(id=100_000 + page * 100 + i, title=f"Popular {page}.{i}", vote_average=7.0)
            for i in range(20)
        ]
        return MoviePage(results=results, page=page, total_pages=500)


class FakeStore:
    """In-memory stand-in for RatingStore covering the read side."""

    def __init__(self, ratings=None, favorites=None):
        self.ratings = list(ratings or [])
        self.favorites = list(favorites or [])

    async def get_favorite_genre_ids(self, limit=5):
        return self.favorites[:limit]

    async def get_all_ratings(self):
        return list(self.ratings)

    async def get_liked_movies(self):
        return [r for r in self.ratings if r.is_like]

    async def get_disliked_movies(self):
        return [r for r in self.ratings if r.is_dislike]


def make_movie(movie_id, genre_ids=(), vote_average=7.0, vote_count=1000,
               popularity=50.0, release_date="2020-01-01", **kwargs):
    return Movie(
        id=movie_id,
        title=kwargs.pop("title", f"Movie {movie_id}"),
        genre_ids=list(genre_ids),
        vote_average=vote_average,
        vote_count=vote_count,
        popularity=popularity,
        release_date=release_date,
        **kwargs,
    )


def make_rating(movie_id, rating=1, timestamp=0, as_json=True, **snapshot):
    data = snapshot or None
    if data is not None and as_json:
        data = json.dumps(data)
    return Rating(movie_id=movie_id, rating=rating, timestamp=timestamp, movie_data=data)


@pytest.fixture
def fresh_config(monkeypatch, tmp_path):
    """
    Reload config with a temporary database path to keep tests isolated.
    """
    db_path = tmp_path / "test.db"
    monkeypatch.setenv("CINEMATCH_DB", str(db_path))
    import cinematch.config as config

    importlib.reload(config)
    yield config

    monkeypatch.undo()
    importlib.reload(config)


@pytest.fixture
def store(tmp_path):
    """A RatingStore backed by a throwaway database."""
    from cinematch.database import RatingStore

    return RatingStore("tester", db_path=tmp_path / "test.db")
