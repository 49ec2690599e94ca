import asyncio
import json
import logging
import sqlite3
import time
from contextlib import contextmanager
from pathlib import Path

from .models import Rating, GenrePreference, WatchlistEntry
from .config import DB_PATH, FAVORITE_GENRE_LIMIT, MIN_RATINGS_FOR_RECOMMENDATIONS

logger = logging.getLogger(__name__)

SCHEMA = """
    CREATE TABLE IF NOT EXISTS user_ratings (
        username TEXT NOT NULL,
        movie_id INTEGER NOT NULL,
        rating INTEGER NOT NULL CHECK (rating IN (-1, 1)),
        timestamp INTEGER NOT NULL,
        movie_data TEXT,
        PRIMARY KEY (username, movie_id)
    );

    CREATE TABLE IF NOT EXISTS user_preferences (
        username TEXT NOT NULL,
        genre_id INTEGER NOT NULL,
        weight INTEGER NOT NULL DEFAULT 0,
        PRIMARY KEY (username, genre_id)
    );

    CREATE TABLE IF NOT EXISTS watchlist (
        username TEXT NOT NULL,
        movie_id INTEGER NOT NULL,
        timestamp INTEGER NOT NULL,
        movie_data TEXT,
        PRIMARY KEY (username, movie_id)
    );

    CREATE INDEX IF NOT EXISTS idx_ratings_user_time ON user_ratings(username, timestamp DESC);
    CREATE INDEX IF NOT EXISTS idx_prefs_user_weight ON user_preferences(username, weight DESC);
"""


def _now_ms() -> int:
    return int(time.time() * 1000)


def _dump_snapshot(movie_data: dict | None) -> str | None:
    return json.dumps(movie_data) if movie_data else None


@contextmanager
def get_db(db_path: Path, read_only: bool = False):
    """
    Open a connection with proper transaction handling.

    Args:
        read_only: If True, skip commit on exit
    """
    conn = sqlite3.connect(db_path, timeout=30.0)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA busy_timeout = 30000")
    try:
        yield conn
        if not read_only:
            conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def init_db(db_path: Path | None = None) -> None:
    """Create tables if they don't exist."""
    db_path = Path(db_path or DB_PATH)
    db_path.parent.mkdir(exist_ok=True, parents=True)
    with get_db(db_path) as conn:
        conn.execute("PRAGMA journal_mode = WAL")
        conn.executescript(SCHEMA)


def _rating_from_row(row: sqlite3.Row) -> Rating:
    # Snapshots are handed back as stored (JSON text); consumers normalize them
    return Rating(
        movie_id=row['movie_id'],
        rating=row['rating'],
        timestamp=row['timestamp'],
        movie_data=row['movie_data'],
    )


class RatingStore:
    """
    Ratings, genre preferences and watchlist for one user.

    Every public method is a coroutine; the sqlite work runs in a worker
    thread with its own connection so concurrent calls don't block the
    event loop.
    """

    def __init__(self, username: str, db_path: str | Path | None = None):
        if not username:
            raise ValueError("username is required")
        self.username = username
        self.db_path = Path(db_path or DB_PATH)
        init_db(self.db_path)

    async def _run(self, func, *args):
        return await asyncio.to_thread(func, *args)

    # Ratings

    def _upsert_rating(self, movie_id: int, rating: int, movie_data: dict | None, timestamp: int | None) -> None:
        with get_db(self.db_path) as conn:
            conn.execute("""
                INSERT INTO user_ratings (username, movie_id, rating, timestamp, movie_data)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT (username, movie_id) DO UPDATE SET
                    rating = excluded.rating,
                    timestamp = excluded.timestamp,
                    movie_data = excluded.movie_data
            """, (self.username, movie_id, rating, timestamp or _now_ms(), _dump_snapshot(movie_data)))

    async def upsert_rating(
        self,
        movie_id: int,
        rating: int,
        movie_data: dict | None = None,
        timestamp: int | None = None,
    ) -> None:
        """Store a rating, replacing any previous rating of the same movie."""
        if rating not in (1, -1):
            raise ValueError(f"rating must be 1 or -1, got {rating}")
        await self._run(self._upsert_rating, movie_id, rating, movie_data, timestamp)

    def _select_ratings(self, rating: int | None = None) -> list[Rating]:
        query = "SELECT movie_id, rating, timestamp, movie_data FROM user_ratings WHERE username = ?"
        params: tuple = (self.username,)
        if rating is not None:
            query += " AND rating = ?"
            params += (rating,)
        query += " ORDER BY timestamp DESC, rowid DESC"
        with get_db(self.db_path, read_only=True) as conn:
            return [_rating_from_row(row) for row in conn.execute(query, params)]

    async def get_all_ratings(self) -> list[Rating]:
        """All ratings, newest first."""
        return await self._run(self._select_ratings)

    async def get_liked_movies(self) -> list[Rating]:
        return await self._run(self._select_ratings, 1)

    async def get_disliked_movies(self) -> list[Rating]:
        return await self._run(self._select_ratings, -1)

    def _get_movie_rating(self, movie_id: int) -> int | None:
        with get_db(self.db_path, read_only=True) as conn:
            row = conn.execute(
                "SELECT rating FROM user_ratings WHERE username = ? AND movie_id = ?",
                (self.username, movie_id),
            ).fetchone()
        return row['rating'] if row else None

    async def get_movie_rating(self, movie_id: int) -> int | None:
        return await self._run(self._get_movie_rating, movie_id)

    def _delete_rating(self, movie_id: int) -> None:
        with get_db(self.db_path) as conn:
            conn.execute(
                "DELETE FROM user_ratings WHERE username = ? AND movie_id = ?",
                (self.username, movie_id),
            )

    async def delete_rating(self, movie_id: int) -> None:
        await self._run(self._delete_rating, movie_id)

    def _count_ratings(self) -> int:
        with get_db(self.db_path, read_only=True) as conn:
            return conn.execute(
                "SELECT COUNT(*) FROM user_ratings WHERE username = ?", (self.username,)
            ).fetchone()[0]

    async def count_ratings(self) -> int:
        return await self._run(self._count_ratings)

    async def has_enough_ratings(self, min_ratings: int = MIN_RATINGS_FOR_RECOMMENDATIONS) -> bool:
        return await self.count_ratings() >= min_ratings

    # Genre preferences

    def _get_genre_preferences(self) -> list[GenrePreference]:
        with get_db(self.db_path, read_only=True) as conn:
            rows = conn.execute("""
                SELECT genre_id, weight FROM user_preferences
                WHERE username = ?
                ORDER BY weight DESC, genre_id ASC
            """, (self.username,)).fetchall()
        return [GenrePreference(genre_id=row['genre_id'], weight=row['weight']) for row in rows]

    async def get_genre_preferences(self) -> list[GenrePreference]:
        return await self._run(self._get_genre_preferences)

    def _upsert_genre_preference(self, genre_id: int, weight: int) -> None:
        with get_db(self.db_path) as conn:
            conn.execute("""
                INSERT INTO user_preferences (username, genre_id, weight)
                VALUES (?, ?, ?)
                ON CONFLICT (username, genre_id) DO UPDATE SET weight = excluded.weight
            """, (self.username, genre_id, weight))

    async def upsert_genre_preference(self, genre_id: int, weight: int) -> None:
        if weight < 0:
            raise ValueError(f"genre weight must be non-negative, got {weight}")
        await self._run(self._upsert_genre_preference, genre_id, weight)

    def _get_favorite_genre_ids(self, limit: int) -> list[int]:
        with get_db(self.db_path, read_only=True) as conn:
            rows = conn.execute("""
                SELECT genre_id FROM user_preferences
                WHERE username = ? AND weight > 0
                ORDER BY weight DESC, genre_id ASC
                LIMIT ?
            """, (self.username, limit)).fetchall()
        return [row['genre_id'] for row in rows]

    async def get_favorite_genre_ids(self, limit: int = FAVORITE_GENRE_LIMIT) -> list[int]:
        """Top genres by accumulated like weight, heaviest first."""
        return await self._run(self._get_favorite_genre_ids, limit)

    # Watchlist

    def _add_to_watchlist(self, movie_id: int, movie_data: dict | None) -> None:
        with get_db(self.db_path) as conn:
            conn.execute("""
                INSERT INTO watchlist (username, movie_id, timestamp, movie_data)
                VALUES (?, ?, ?, ?)
                ON CONFLICT (username, movie_id) DO UPDATE SET
                    timestamp = excluded.timestamp,
                    movie_data = excluded.movie_data
            """, (self.username, movie_id, _now_ms(), _dump_snapshot(movie_data)))

    async def add_to_watchlist(self, movie_id: int, movie_data: dict | None = None) -> None:
        await self._run(self._add_to_watchlist, movie_id, movie_data)

    def _remove_from_watchlist(self, movie_id: int) -> None:
        with get_db(self.db_path) as conn:
            conn.execute(
                "DELETE FROM watchlist WHERE username = ? AND movie_id = ?",
                (self.username, movie_id),
            )

    async def remove_from_watchlist(self, movie_id: int) -> None:
        await self._run(self._remove_from_watchlist, movie_id)

    def _is_in_watchlist(self, movie_id: int) -> bool:
        with get_db(self.db_path, read_only=True) as conn:
            row = conn.execute(
                "SELECT 1 FROM watchlist WHERE username = ? AND movie_id = ?",
                (self.username, movie_id),
            ).fetchone()
        return row is not None

    async def is_in_watchlist(self, movie_id: int) -> bool:
        return await self._run(self._is_in_watchlist, movie_id)

    def _get_watchlist(self) -> list[WatchlistEntry]:
        with get_db(self.db_path, read_only=True) as conn:
            rows = conn.execute("""
                SELECT movie_id, timestamp, movie_data FROM watchlist
                WHERE username = ?
                ORDER BY timestamp DESC, rowid DESC
            """, (self.username,)).fetchall()
        return [
            WatchlistEntry(movie_id=row['movie_id'], timestamp=row['timestamp'], movie_data=row['movie_data'])
            for row in rows
        ]

    async def get_watchlist(self) -> list[WatchlistEntry]:
        return await self._run(self._get_watchlist)

    # Maintenance

    def _clear_all_data(self) -> None:
        with get_db(self.db_path) as conn:
            for table in ('user_ratings', 'user_preferences', 'watchlist'):
                conn.execute(f"DELETE FROM {table} WHERE username = ?", (self.username,))
        logger.info(f"Cleared all data for {self.username}")

    async def clear_all_data(self) -> None:
        """Remove every rating, genre preference and watchlist entry of the user."""
        await self._run(self._clear_all_data)
