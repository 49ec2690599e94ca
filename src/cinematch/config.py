"""
Configuration constants for the cinematch recommender.

This module centralizes all magic numbers and configurable parameters.
Values can be overridden via environment variables.
"""
import os
import logging
from pathlib import Path

logger = logging.getLogger(__name__)


def _get_float_env(key: str, default: float, min_val: float = 0) -> float:
    """
    Safely parse float from environment variable with validation.

    Args:
        key: Environment variable name
        default: Default value if not set or invalid
        min_val: Minimum allowed value

    Returns:
        Validated float value
    """
    try:
        val = float(os.environ.get(key, default))
        if val < min_val:
            logger.warning(f"{key}={val} is below minimum {min_val}, using {min_val}")
            return min_val
        return val
    except ValueError:
        logger.warning(f"Invalid {key}='{os.environ.get(key)}', using default {default}")
        return default


def _get_int_env(key: str, default: int, min_val: int = 1) -> int:
    """
    Safely parse integer from environment variable with validation.

    Args:
        key: Environment variable name
        default: Default value if not set or invalid
        min_val: Minimum allowed value

    Returns:
        Validated integer value
    """
    try:
        val = int(os.environ.get(key, default))
        if val < min_val:
            logger.warning(f"{key}={val} is below minimum {min_val}, using {min_val}")
            return min_val
        return val
    except ValueError:
        logger.warning(f"Invalid {key}='{os.environ.get(key)}', using default {default}")
        return default


# Storage
DB_PATH = Path(os.environ.get("CINEMATCH_DB", "data/cinematch.db"))
DEFAULT_USER = os.environ.get("CINEMATCH_USER", "default")
SCORING_WEIGHTS_PATH = Path(os.environ.get("CINEMATCH_SCORING_WEIGHTS", "data/scoring_weights.json"))

# Catalog (TMDB)
TMDB_API_KEY = os.environ.get("TMDB_API_KEY", "")
TMDB_BASE_URL = os.environ.get("TMDB_BASE_URL", "https://api.themoviedb.org/3")
TMDB_IMAGE_BASE_URL = "https://image.tmdb.org/t/p"
IMAGE_SIZES = {
    'poster': 'w500',
    'backdrop': 'w780',
    'profile': 'w185',
}

# HTTP
HTTP_TIMEOUT = _get_float_env("CINEMATCH_HTTP_TIMEOUT", 30.0, min_val=1.0)
DEFAULT_MAX_CONCURRENT = _get_int_env("CINEMATCH_MAX_CONCURRENT", 8, min_val=1)
MAX_HTTP_RETRIES = 3
DEFAULT_RETRY_AFTER = 10  # Default wait time if Retry-After header missing
MAX_RETRY_AFTER = 60

# Chat (Groq, OpenAI-compatible)
GROQ_API_KEY = os.environ.get("GROQ_API_KEY", "")
GROQ_API_URL = os.environ.get("GROQ_API_URL", "https://api.groq.com/openai/v1/chat/completions")
GROQ_MODEL = os.environ.get("GROQ_MODEL", "llama-3.3-70b-versatile")
CHAT_TEMPERATURE = 0.7
CHAT_MAX_TOKENS = 1024
CHAT_LIKED_TITLES = 10
CHAT_DISLIKED_TITLES = 5
CHAT_SEARCH_RESULTS = 5

# Ratings
LIKE = 1
DISLIKE = -1
SNAPSHOT_MAX_ACTORS = 5
SNAPSHOT_MAX_KEYWORDS = 10
MIN_RATINGS_FOR_RECOMMENDATIONS = 5

# Candidate sourcing
FAVORITE_GENRE_LIMIT = 5
SORT_METHODS = [
    'popularity.desc',
    'vote_average.desc',
    'vote_count.desc',
    'primary_release_date.desc',
]
# Release-era buckets; bounds are resolved against the current year per request
YEAR_BUCKET_WEIGHTS = {
    'recent': 0.6,        # last 2 years
    'recent_past': 0.15,  # 3-10 years ago
    'classics': 0.15,     # 1990 up to 11 years ago
    'older': 0.05,        # 1970-1989
}
CLASSICS_START_YEAR = 1990
OLDER_START_YEAR = 1970
OLDER_END_YEAR = 1989
OLD_ERA_CUTOFF_YEAR = 2000  # Buckets starting before this get looser vote floors
DISCOVER_MIN_VOTES = 100
DISCOVER_MIN_VOTES_OLD_ERA = 50
DISCOVER_MIN_AVERAGE = 5.5
EXTRA_YEAR_QUERY_PROBABILITY = 0.5
EXTRA_YEAR_MIN_VOTES = 30
EXTRA_YEAR_MIN_AVERAGE = 6.5
EXTRA_YEAR_SORT = 'vote_average.desc'
SIMILAR_MIN_VOTES = 100

# Scoring weights (overridable through SCORING_WEIGHTS_PATH)
WEIGHT_GENRE_MATCH = 100.0
WEIGHT_QUALITY = 15.0
WEIGHT_RELIABILITY = 3.0
CAP_RELIABILITY = 30.0
WEIGHT_POPULARITY = 2.0
CAP_POPULARITY = 20.0
WEIGHT_DISLIKE_PENALTY = 15.0

# Age categories: (minimum age exclusive, label, bonus), checked oldest first
AGE_CATEGORIES = [
    (40, 'Classic', 20.0),
    (10, 'Modern Classic', 15.0),
    (5, 'Recent Hit', 10.0),
]
AGE_CATEGORY_RECENT = 'Recent'

# Selection and normalization
RECOMMENDATION_PAGE_SIZE = 20
WINDOW_STRIDE = 7
WINDOW_CYCLE = 3
TIE_BREAK_TOLERANCE = 0.1  # Fraction of the top score within which order is shuffled
MATCH_PERCENT_MIN = 50
MATCH_PERCENT_MAX = 99

# Explanations
HIGH_QUALITY_THRESHOLD = 7.5
STRONG_ALIGNMENT_MIN_LIKES = 5
STRONG_ALIGNMENT_MIN_GENRES = 2
FALLBACK_REASON = 'Recommended based on your preferences'

# Taste profile summaries
PROFILE_SUMMARY_TOP_N = 5

GENRE_NAMES = {
    28: 'Action', 12: 'Adventure', 16: 'Animation', 35: 'Comedy', 80: 'Crime',
    99: 'Documentary', 18: 'Drama', 10751: 'Family', 14: 'Fantasy', 36: 'History',
    27: 'Horror', 10402: 'Music', 9648: 'Mystery', 10749: 'Romance', 878: 'Science Fiction',
    10770: 'TV Movie', 53: 'Thriller', 10752: 'War', 37: 'Western',
}
