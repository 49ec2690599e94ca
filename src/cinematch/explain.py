from .models import Movie, MatchBreakdown, genre_name
from .scoring import ScoreComponents
from .config import (
    AGE_CATEGORY_RECENT,
    HIGH_QUALITY_THRESHOLD,
    STRONG_ALIGNMENT_MIN_LIKES,
    STRONG_ALIGNMENT_MIN_GENRES,
    FALLBACK_REASON,
)


def build_reasons(movie: Movie, components: ScoreComponents, total_liked_movies: int) -> list[str]:
    """Human-readable reasons in display priority order; never empty."""
    reasons = []

    if components.genre_match_count > 0:
        reasons.append(f"Matches {components.genre_match_count} of your favorite genres")

    if movie.vote_average >= HIGH_QUALITY_THRESHOLD:
        reasons.append(f"Highly rated ({movie.vote_average:.1f}/10)")

    if components.age_category != AGE_CATEGORY_RECENT:
        reasons.append(f"{components.age_category} film")

    if total_liked_movies > STRONG_ALIGNMENT_MIN_LIKES and components.genre_match_count >= STRONG_ALIGNMENT_MIN_GENRES:
        reasons.append("Strong genre alignment with your taste")

    return reasons or [FALLBACK_REASON]


def create_match_breakdown(
    movie: Movie,
    percentage: int,
    components: ScoreComponents,
    favorite_genres: list[int],
    total_liked_movies: int,
) -> MatchBreakdown:
    favorites = set(favorite_genres)
    matched = [g for g in movie.genre_ids if g in favorites]

    return MatchBreakdown(
        percentage=percentage,
        genre_matches=components.genre_match_count,
        genre_match_names=[genre_name(g) for g in matched],
        quality_score=movie.vote_average,
        age_category=components.age_category,
        total_liked_movies=total_liked_movies,
        reasons=build_reasons(movie, components, total_liked_movies),
        taste_matches=list(components.taste_matches),
    )
