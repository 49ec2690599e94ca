import logging
import math
from dataclasses import dataclass, field

from .models import Movie, Rating
from .profile import TasteProfile, normalize_snapshot, disliked_ratings
from .scoring_weights import ScoringWeights
from .config import AGE_CATEGORIES, AGE_CATEGORY_RECENT

logger = logging.getLogger(__name__)


@dataclass
class ScoreComponents:
    """A candidate's raw score plus the pieces needed to explain it."""
    score: float
    genre_match_count: int
    age_category: str
    quality_score: float
    dislike_penalty: float = 0.0
    taste_matches: list[str] = field(default_factory=list)


def age_category(
    release_year: int | None,
    current_year: int,
    weights: ScoringWeights | None = None,
) -> tuple[str, float]:
    """
    Classify a movie by age and return (label, bonus).

    Older movies earn a bonus to offset the recency bias of catalog
    discovery. Movies without a known release year count as recent with
    no bonus, rather than as year 0, which would make every undated movie
    a Classic.
    """
    weights = weights or ScoringWeights()
    if release_year is None:
        return AGE_CATEGORY_RECENT, 0.0

    age = current_year - release_year
    for min_age, label, _ in AGE_CATEGORIES:
        if age > min_age:
            return label, weights.age_bonus[label]
    return AGE_CATEGORY_RECENT, 0.0


def disliked_genre_sets(ratings: list[Rating]) -> list[set[int]]:
    """Genre ids of every disliked movie, one set per dislike."""
    genre_sets = []
    for rating in disliked_ratings(ratings):
        data = normalize_snapshot(rating.movie_data)
        genre_ids = data.get('genre_ids')
        if isinstance(genre_ids, list):
            genre_sets.append({g for g in genre_ids if isinstance(g, int)})
        else:
            genre_sets.append(set())
    return genre_sets


def _taste_matches(movie: Movie, profile: TasteProfile | None) -> list[str]:
    """Liked people, studios and keywords that also appear on the candidate."""
    if profile is None or profile.is_empty:
        return []

    matches = []
    if movie.director and movie.director in profile.directors:
        matches.append(f"Director: {movie.director}")
    for actor in movie.actors:
        if actor in profile.actors:
            matches.append(f"Actor: {actor}")
    if movie.production_company and movie.production_company in profile.studios:
        matches.append(f"Studio: {movie.production_company}")
    for keyword in movie.keywords:
        if keyword in profile.keywords:
            matches.append(f"Theme: {keyword}")
    return matches


def score_candidate(
    movie: Movie,
    favorite_genres: list[int],
    ratings: list[Rating],
    profile: TasteProfile | None,
    current_year: int,
    weights: ScoringWeights | None = None,
    dislikes: list[set[int]] | None = None,
) -> ScoreComponents:
    """
    Score one candidate against a user's taste.

    Terms:
    - genre:       genre_match x number of candidate genres among favorites
    - quality:     quality x vote average (0-10)
    - reliability: reliability x ln(votes + 1), capped
    - popularity:  popularity x ln(popularity + 1), capped lower than reliability
    - age:         bonus for Recent Hit / Modern Classic / Classic
    - dislikes:    minus dislike_penalty per genre shared with each disliked movie

    The dislike penalty is applied per disliked movie, so repeated aversion
    to a genre compounds. The total has no floor.

    Args:
        dislikes: Pre-computed disliked_genre_sets(ratings), to avoid
            re-parsing snapshots for every candidate in a request
    """
    weights = weights or ScoringWeights()
    if dislikes is None:
        dislikes = disliked_genre_sets(ratings)

    favorites = set(favorite_genres)
    genre_match_count = sum(1 for g in movie.genre_ids if g in favorites)
    score = genre_match_count * weights.genre_match

    score += movie.vote_average * weights.quality
    score += min(math.log(movie.vote_count + 1) * weights.reliability, weights.reliability_cap)
    score += min(math.log(movie.popularity + 1) * weights.popularity, weights.popularity_cap)

    category, bonus = age_category(movie.release_year, current_year, weights)
    score += bonus

    penalty = 0.0
    for disliked in dislikes:
        shared = sum(1 for g in movie.genre_ids if g in disliked)
        penalty += shared * weights.dislike_penalty
    score -= penalty

    return ScoreComponents(
        score=score,
        genre_match_count=genre_match_count,
        age_category=category,
        quality_score=movie.vote_average,
        dislike_penalty=penalty,
        taste_matches=_taste_matches(movie, profile),
    )
