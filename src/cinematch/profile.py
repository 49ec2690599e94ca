import json
import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Iterable

from .models import Rating
from .config import PROFILE_SUMMARY_TOP_N

logger = logging.getLogger(__name__)

PROFILE_ATTRIBUTES = ('keywords', 'directors', 'actors', 'studios')


@dataclass
class TasteProfile:
    """Frequency of attributes across a user's liked movies."""
    keywords: Counter = field(default_factory=Counter)
    directors: Counter = field(default_factory=Counter)
    actors: Counter = field(default_factory=Counter)
    studios: Counter = field(default_factory=Counter)
    n_liked: int = 0

    def top(self, attr: str, n: int = PROFILE_SUMMARY_TOP_N) -> list[tuple[str, int]]:
        """
        Most frequent values of an attribute.

        Equal counts keep the order in which values were first seen, so
        callers wanting a stable ranking should pass ratings pre-sorted.
        """
        if attr not in PROFILE_ATTRIBUTES:
            raise ValueError(f"Unknown taste profile attribute '{attr}'")
        return getattr(self, attr).most_common(n)

    @property
    def is_empty(self) -> bool:
        return not any(getattr(self, attr) for attr in PROFILE_ATTRIBUTES)

    def to_dict(self) -> dict[str, dict[str, int]]:
        return {attr: dict(getattr(self, attr)) for attr in PROFILE_ATTRIBUTES}


def normalize_snapshot(raw) -> dict:
    """
    Canonicalize a stored movie snapshot.

    Snapshots come back from storage either as a mapping or as serialized
    JSON. Anything missing or unparseable is treated as an empty record.
    """
    if not raw:
        return {}
    if isinstance(raw, dict):
        return raw
    if isinstance(raw, (str, bytes)):
        try:
            parsed = json.loads(raw)
        except (json.JSONDecodeError, TypeError, UnicodeDecodeError) as e:
            logger.warning(f"Failed to parse movie snapshot '{str(raw)[:50]}...': {e}")
            return {}
        return parsed if isinstance(parsed, dict) else {}
    logger.warning(f"Ignoring movie snapshot of unexpected type {type(raw).__name__}")
    return {}


def _strings(value) -> list[str]:
    """Non-empty string entries of a snapshot list field; anything else is skipped."""
    if not isinstance(value, list):
        return []
    return [v for v in value if isinstance(v, str) and v]


def liked_ratings(ratings: Iterable[Rating]) -> list[Rating]:
    return [r for r in ratings if r.is_like]


def disliked_ratings(ratings: Iterable[Rating]) -> list[Rating]:
    return [r for r in ratings if r.is_dislike]


def build_taste_profile(ratings: list[Rating]) -> TasteProfile:
    """
    Build a taste profile from a user's rating history.

    Only liked ratings count. For each, every keyword and actor in the
    snapshot is counted once, along with the director and production
    studio when present.
    """
    profile = TasteProfile()

    for rating in liked_ratings(ratings):
        data = normalize_snapshot(rating.movie_data)
        profile.n_liked += 1

        profile.keywords.update(_strings(data.get('keywords')))
        profile.actors.update(_strings(data.get('actors')))

        director = data.get('director')
        if isinstance(director, str) and director:
            profile.directors[director] += 1

        studio = data.get('production_company')
        if isinstance(studio, str) and studio:
            profile.studios[studio] += 1

    logger.debug(
        f"Built taste profile from {profile.n_liked} liked movies: "
        f"{len(profile.keywords)} keywords, {len(profile.directors)} directors, "
        f"{len(profile.actors)} actors, {len(profile.studios)} studios"
    )
    return profile


def summarize_profile(profile: TasteProfile, n: int = PROFILE_SUMMARY_TOP_N) -> list[str]:
    """Render the strongest signals of a profile as short text lines."""
    labels = {
        'directors': 'Favorite directors',
        'actors': 'Favorite actors',
        'keywords': 'Favorite themes',
        'studios': 'Favorite studios',
    }
    lines = []
    for attr in ('directors', 'actors', 'keywords', 'studios'):
        top = profile.top(attr, n)
        if top:
            lines.append(f"{labels[attr]}: " + ", ".join(f"{name} ({count})" for name, count in top))
    return lines
