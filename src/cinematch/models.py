from __future__ import annotations

import logging
from dataclasses import dataclass, field, asdict
from datetime import date
from typing import Any

from .config import (
    GENRE_NAMES,
    LIKE,
    DISLIKE,
    SNAPSHOT_MAX_ACTORS,
    SNAPSHOT_MAX_KEYWORDS,
)

logger = logging.getLogger(__name__)


def genre_name(genre_id: int) -> str:
    return GENRE_NAMES.get(genre_id, 'Unknown')


def parse_release_year(release_date: str | None) -> int | None:
    """Extract the year from an ISO date or a bare YYYY year, None when missing or malformed."""
    if not release_date:
        return None
    text = release_date.strip()
    if len(text) == 4 and text.isdigit():
        return int(text)
    try:
        return date.fromisoformat(text[:10]).year
    except ValueError:
        logger.debug(f"Unparseable release date '{release_date}'")
        return None


@dataclass
class MatchBreakdown:
    """Why a movie was recommended, as shown to the user."""
    percentage: int
    genre_matches: int
    genre_match_names: list[str]
    quality_score: float
    age_category: str
    total_liked_movies: int
    reasons: list[str]
    taste_matches: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            'percentage': self.percentage,
            'genreMatches': self.genre_matches,
            'genreMatchNames': list(self.genre_match_names),
            'qualityScore': self.quality_score,
            'ageCategory': self.age_category,
            'totalLikedMovies': self.total_liked_movies,
            'reasons': list(self.reasons),
            'tasteMatches': list(self.taste_matches),
        }


@dataclass
class Movie:
    id: int
    title: str
    overview: str = ''
    poster_path: str | None = None
    backdrop_path: str | None = None
    release_date: str = ''
    vote_average: float = 0.0
    vote_count: int = 0
    popularity: float = 0.0
    genre_ids: list[int] = field(default_factory=list)
    original_language: str = ''
    adult: bool = False

    # Only populated from the details endpoint
    director: str | None = None
    actors: list[str] = field(default_factory=list)
    keywords: list[str] = field(default_factory=list)
    production_company: str | None = None
    runtime: int | None = None
    tagline: str | None = None

    match_score: MatchBreakdown | None = None

    @property
    def release_year(self) -> int | None:
        return parse_release_year(self.release_date)

    @classmethod
    def from_api(cls, payload: dict) -> "Movie":
        """Build from a catalog list entry (discover/popular/search results)."""
        return cls(
            id=int(payload['id']),
            title=payload.get('title') or payload.get('original_title') or '',
            overview=payload.get('overview') or '',
            poster_path=payload.get('poster_path'),
            backdrop_path=payload.get('backdrop_path'),
            release_date=payload.get('release_date') or '',
            vote_average=float(payload.get('vote_average') or 0.0),
            vote_count=int(payload.get('vote_count') or 0),
            popularity=float(payload.get('popularity') or 0.0),
            genre_ids=[int(g) for g in payload.get('genre_ids') or []],
            original_language=payload.get('original_language') or '',
            adult=bool(payload.get('adult', False)),
        )

    @classmethod
    def from_details(cls, payload: dict) -> "Movie":
        """
        Build from a details payload with credits and keywords appended.

        Details responses carry genre objects instead of ids, and nest cast,
        crew and keywords; these are flattened onto the movie.
        """
        movie = cls.from_api({
            **payload,
            'genre_ids': payload.get('genre_ids') or [g['id'] for g in payload.get('genres') or []],
        })

        credits = payload.get('credits') or {}
        directors = [c['name'] for c in credits.get('crew') or [] if c.get('job') == 'Director']
        movie.director = directors[0] if directors else None
        cast = sorted(credits.get('cast') or [], key=lambda c: c.get('order', 0))
        movie.actors = [c['name'] for c in cast]

        keywords = payload.get('keywords') or {}
        # /movie/{id}?append_to_response=keywords nests the list under "keywords"
        keyword_list = keywords.get('keywords', []) if isinstance(keywords, dict) else keywords
        movie.keywords = [k['name'] for k in keyword_list]

        companies = payload.get('production_companies') or []
        movie.production_company = companies[0]['name'] if companies else None
        movie.runtime = payload.get('runtime')
        movie.tagline = payload.get('tagline') or None
        return movie


@dataclass
class MoviePage:
    results: list[Movie]
    page: int = 1
    total_pages: int = 1
    total_results: int = 0

    @classmethod
    def from_api(cls, payload: dict) -> "MoviePage":
        results = [Movie.from_api(m) for m in payload.get('results') or []]
        return cls(
            results=results,
            page=int(payload.get('page') or 1),
            total_pages=int(payload.get('total_pages') or 1),
            total_results=int(payload.get('total_results') or len(results)),
        )


@dataclass
class Rating:
    movie_id: int
    rating: int
    timestamp: int
    # Raw snapshot as stored: a mapping, a JSON string, or None
    movie_data: dict | str | None = None

    @property
    def is_like(self) -> bool:
        return self.rating == LIKE

    @property
    def is_dislike(self) -> bool:
        return self.rating == DISLIKE


@dataclass
class GenrePreference:
    genre_id: int
    weight: int


@dataclass
class WatchlistEntry:
    movie_id: int
    timestamp: int
    movie_data: dict | str | None = None


def build_snapshot(movie: Movie) -> dict:
    """
    Catalog attributes stored alongside a rating.

    Taste profiles are built from these snapshots, so the richer the movie
    (details vs. list entry) the more the profile learns.
    """
    snapshot = {
        'title': movie.title,
        'poster_path': movie.poster_path,
        'vote_average': movie.vote_average,
        'genre_ids': list(movie.genre_ids),
        'director': movie.director,
        'actors': movie.actors[:SNAPSHOT_MAX_ACTORS],
        'keywords': movie.keywords[:SNAPSHOT_MAX_KEYWORDS],
        'production_company': movie.production_company,
    }
    return {k: v for k, v in snapshot.items() if v is not None and v != []}


def movie_to_dict(movie: Movie) -> dict:
    data = asdict(movie)
    data['match_score'] = movie.match_score.to_dict() if movie.match_score else None
    return data
