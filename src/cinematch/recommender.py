import logging
import random
from dataclasses import replace
from datetime import date

from .models import Movie
from .profile import build_taste_profile, liked_ratings, normalize_snapshot
from .scoring import ScoreComponents, score_candidate, disliked_genre_sets
from .scoring_weights import ScoringWeights, load_scoring_weights
from .selection import rank_with_jitter, select_window, normalize_percentages
from .sourcing import source_candidates
from .explain import create_match_breakdown
from .config import FAVORITE_GENRE_LIMIT, RECOMMENDATION_PAGE_SIZE, SIMILAR_MIN_VOTES

logger = logging.getLogger(__name__)


class Recommender:
    """
    Personalized movie suggestions from a user's likes and dislikes.

    Collaborators are injected: `catalog` provides discover/popular pages,
    `store` the user's ratings and genre preferences. `rng` drives query
    mixing and tie-breaking, and `today` fixes the reference date for movie
    ages; pass both to make results reproducible.
    """

    def __init__(
        self,
        catalog,
        store,
        rng: random.Random | None = None,
        today: date | None = None,
        weights: ScoringWeights | None = None,
        page_size: int = RECOMMENDATION_PAGE_SIZE,
    ):
        self.catalog = catalog
        self.store = store
        self.rng = rng or random.Random()
        self.today = today
        self.weights = weights or load_scoring_weights() or ScoringWeights()
        self.page_size = page_size

    @property
    def current_year(self) -> int:
        return (self.today or date.today()).year

    async def get_popular_movies(self, page: int = 1) -> list[Movie]:
        response = await self.catalog.popular(page)
        return response.results

    async def get_recommendations(self, page: int = 1) -> list[Movie]:
        """
        Generate a page of recommendations, each with a match breakdown.

        Users without genre preferences get the popular page unchanged.
        Any failure while personalizing also falls back to the popular page,
        so callers always receive a list.
        """
        page = max(1, page)
        try:
            return await self._personalized(page)
        except Exception as e:
            logger.warning(f"Recommendations failed for page {page}, falling back to popular movies: {e}")
            logger.debug("Recommendation failure details", exc_info=True)
            try:
                return await self.get_popular_movies(page)
            except Exception as fallback_error:
                logger.error(f"Popular movies fallback failed for page {page}: {fallback_error}")
                return []

    async def _personalized(self, page: int) -> list[Movie]:
        favorite_genres = await self.store.get_favorite_genre_ids(FAVORITE_GENRE_LIMIT)
        if not favorite_genres:
            logger.info("No genre preferences yet; serving popular movies")
            return await self.get_popular_movies(page)

        ratings = await self.store.get_all_ratings()
        current_year = self.current_year

        candidates = await source_candidates(
            self.catalog, favorite_genres, ratings, page, self.rng, current_year
        )
        if not candidates:
            logger.info("No unrated candidates found; serving popular movies")
            return await self.get_popular_movies(page)

        profile = build_taste_profile(ratings)
        dislikes = disliked_genre_sets(ratings)
        total_liked = len(liked_ratings(ratings))

        scored: list[tuple[tuple[Movie, ScoreComponents], float]] = []
        for movie in candidates:
            components = score_candidate(
                movie, favorite_genres, ratings, profile, current_year,
                weights=self.weights, dislikes=dislikes,
            )
            scored.append(((movie, components), components.score))

        ranked = rank_with_jitter(scored, self.rng)
        selected = select_window(ranked, page, size=self.page_size)
        percentages = normalize_percentages([score for _, score in selected])

        results = []
        for ((movie, components), _), percentage in zip(selected, percentages):
            breakdown = create_match_breakdown(
                movie, percentage, components, favorite_genres, total_liked
            )
            results.append(replace(movie, match_score=breakdown))

        logger.info(
            f"Recommended {len(results)} of {len(candidates)} candidates "
            f"(page {page}, favorite genres {favorite_genres})"
        )
        return results

    async def get_similar_to_liked(self, limit: int = RECOMMENDATION_PAGE_SIZE) -> list[Movie]:
        """
        Movies sharing genres with the user's most recently liked movie.

        Returns an empty list when nothing is liked yet or the catalog fails.
        """
        try:
            liked = await self.store.get_liked_movies()
            if not liked:
                return []

            data = normalize_snapshot(liked[0].movie_data)
            genre_ids = [g for g in data.get('genre_ids') or [] if isinstance(g, int)]
            if not genre_ids:
                return []

            rated_ids = {r.movie_id for r in await self.store.get_all_ratings()}
            response = await self.catalog.discover(
                genre=genre_ids[0],
                sort_by='vote_average.desc',
                page=1,
                min_vote_count=SIMILAR_MIN_VOTES,
            )
        except Exception as e:
            logger.warning(f"Could not fetch movies similar to liked ones: {e}")
            return []

        return [m for m in response.results if m.id not in rated_ids][:limit]
