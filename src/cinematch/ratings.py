import asyncio
import logging

from .models import Movie, build_snapshot
from .config import LIKE, DISLIKE

logger = logging.getLogger(__name__)

_RATING_ALIASES = {
    'like': LIKE,
    'liked': LIKE,
    'up': LIKE,
    '1': LIKE,
    '+1': LIKE,
    'dislike': DISLIKE,
    'disliked': DISLIKE,
    'down': DISLIKE,
    '-1': DISLIKE,
}


def rating_value(text: str | int) -> int:
    """Parse a like/dislike verdict into +1 / -1."""
    value = _RATING_ALIASES.get(str(text).strip().lower())
    if value is None:
        raise ValueError(f"Invalid rating '{text}'. Use 'like' or 'dislike'.")
    return value


async def increment_genre_weights(store, genre_ids: list[int]) -> dict[int, int]:
    """
    Add one to the preference weight of each distinct genre.

    Current weights are read once and the updates are written in parallel.
    Returns the new weight per genre.
    """
    distinct = list(dict.fromkeys(genre_ids))
    if not distinct:
        return {}

    current = {p.genre_id: p.weight for p in await store.get_genre_preferences()}
    new_weights = {g: current.get(g, 0) + 1 for g in distinct}

    await asyncio.gather(*(
        store.upsert_genre_preference(genre_id, weight)
        for genre_id, weight in new_weights.items()
    ))
    return new_weights


async def rate_movie(store, movie: Movie, rating: int) -> None:
    """
    Record a like or dislike for a movie.

    The rating is stored with a snapshot of the movie so taste profiles can
    be rebuilt later without the catalog. Likes also strengthen the user's
    genre preferences; dislikes only record the rating.
    """
    if rating not in (LIKE, DISLIKE):
        raise ValueError(f"rating must be {LIKE} or {DISLIKE}, got {rating}")

    # Genre weights only move once the rating itself is stored
    await store.upsert_rating(movie.id, rating, build_snapshot(movie))
    if rating == LIKE:
        weights = await increment_genre_weights(store, movie.genre_ids)
        logger.debug(f"Liked {movie.id} ({movie.title}); genre weights now {weights}")
    else:
        logger.debug(f"Disliked {movie.id} ({movie.title})")
