import argparse
import asyncio
import json
import logging
import random
import sys
from dataclasses import asdict
from pathlib import Path

from tqdm import tqdm

from .catalog import TMDBClient, CatalogError, image_url
from .chat import ChatAssistant, ChatError
from .database import RatingStore
from .models import Movie, build_snapshot, genre_name, movie_to_dict
from .profile import build_taste_profile, normalize_snapshot, summarize_profile
from .ratings import rate_movie, rating_value, increment_genre_weights
from .recommender import Recommender
from .utils import format_movie_line
from .config import DEFAULT_USER, DB_PATH, TMDB_API_KEY, LIKE, FAVORITE_GENRE_LIMIT

logger = logging.getLogger(__name__)


def _validate_username(username: str) -> str:
    """Keep usernames to lowercase alphanumerics, underscores and hyphens."""
    cleaned = ''.join(c for c in username.lower() if c.isalnum() or c in '_-')
    if not cleaned:
        raise ValueError(f"Invalid username '{username}'")
    return cleaned


def _open_store(args: argparse.Namespace) -> RatingStore:
    return RatingStore(_validate_username(args.user), db_path=args.db)


def _require_api_key() -> bool:
    if not TMDB_API_KEY:
        logger.error("TMDB_API_KEY is not set; catalog commands need an API key")
        return False
    return True


def _print_movie(index: int, movie: Movie, explain: bool = False) -> None:
    line = format_movie_line(index, movie.title, movie.release_year, movie.vote_average)
    if movie.match_score:
        line += f" - {movie.match_score.percentage}% match"
    print(line)
    if explain and movie.match_score:
        match = movie.match_score
        if match.genre_match_names:
            print(f"     Genres: {', '.join(match.genre_match_names)}")
        for reason in match.reasons:
            print(f"     • {reason}")
        for taste in match.taste_matches:
            print(f"     ♥ {taste}")
        poster = image_url(movie.poster_path)
        if poster:
            print(f"     Poster: {poster}")


async def _recommend(args: argparse.Namespace) -> list[Movie]:
    store = _open_store(args)
    rng = random.Random(args.seed) if args.seed is not None else None
    async with TMDBClient() as catalog:
        recommender = Recommender(catalog, store, rng=rng)
        if args.similar:
            return await recommender.get_similar_to_liked()
        return await recommender.get_recommendations(args.page)


def cmd_recommend(args: argparse.Namespace) -> None:
    """Show a page of personalized recommendations."""
    if not _require_api_key():
        return
    movies = asyncio.run(_recommend(args))
    if not movies:
        logger.info("No recommendations available right now.")
        return

    if args.json:
        print(json.dumps([movie_to_dict(m) for m in movies], indent=2))
        return

    if movies[0].match_score is None:
        print("Popular right now (rate a few movies to personalize):")
    for i, movie in enumerate(movies, start=1):
        _print_movie(i, movie, explain=args.explain)


async def _rate(args: argparse.Namespace, rating: int) -> Movie:
    store = _open_store(args)
    async with TMDBClient() as catalog:
        movie = await catalog.details(args.movie_id)
    await rate_movie(store, movie, rating)
    return movie


def cmd_rate(args: argparse.Namespace) -> None:
    """Like or dislike a movie."""
    rating = rating_value(args.verdict)
    if not _require_api_key():
        return
    try:
        movie = asyncio.run(_rate(args, rating))
    except CatalogError as e:
        logger.error(f"Could not fetch movie {args.movie_id}: {e}")
        return
    verb = "Liked" if rating == LIKE else "Disliked"
    logger.info(f"{verb} '{movie.title}' ({movie.release_year or 'n/a'})")


def cmd_unrate(args: argparse.Namespace) -> None:
    """Remove a rating. Genre weights are left untouched."""
    store = _open_store(args)
    asyncio.run(store.delete_rating(args.movie_id))
    logger.info(f"Removed rating for movie {args.movie_id}")


async def _watchlist(args: argparse.Namespace) -> None:
    store = _open_store(args)
    action = args.action

    if action == 'list':
        entries = await store.get_watchlist()
        if not entries:
            print("Watchlist is empty.")
        for i, entry in enumerate(entries, start=1):
            data = normalize_snapshot(entry.movie_data)
            print(f"{i}. {data.get('title', f'Movie {entry.movie_id}')} (id {entry.movie_id})")
        return

    if args.movie_id is None:
        raise ValueError(f"watchlist {action} needs a movie id")

    if action == 'add':
        snapshot = None
        if TMDB_API_KEY:
            async with TMDBClient() as catalog:
                snapshot = build_snapshot(await catalog.details(args.movie_id))
        await store.add_to_watchlist(args.movie_id, snapshot)
        logger.info(f"Added movie {args.movie_id} to watchlist")
    elif action == 'remove':
        await store.remove_from_watchlist(args.movie_id)
        logger.info(f"Removed movie {args.movie_id} from watchlist")
    elif action == 'check':
        present = await store.is_in_watchlist(args.movie_id)
        print(f"Movie {args.movie_id} is {'in' if present else 'not in'} your watchlist")


def cmd_watchlist(args: argparse.Namespace) -> None:
    """Manage the watchlist."""
    try:
        asyncio.run(_watchlist(args))
    except CatalogError as e:
        logger.error(f"Could not fetch movie {args.movie_id}: {e}")


async def _profile(args: argparse.Namespace):
    store = _open_store(args)
    ratings, preferences, favorites = await asyncio.gather(
        store.get_all_ratings(),
        store.get_genre_preferences(),
        store.get_favorite_genre_ids(FAVORITE_GENRE_LIMIT),
    )
    return ratings, preferences, favorites


def cmd_profile(args: argparse.Namespace) -> None:
    """Show the user's taste profile."""
    ratings, preferences, favorites = asyncio.run(_profile(args))
    profile = build_taste_profile(ratings)

    logger.info(f"\nProfile for {args.user}:")
    logger.info(f"  Ratings: {len(ratings)} ({profile.n_liked} liked)")
    logger.info(f"  Favorite genres: {', '.join(genre_name(g) for g in favorites) or 'none yet'}")
    if preferences:
        weights = ", ".join(f"{genre_name(p.genre_id)}={p.weight}" for p in preferences)
        logger.info(f"  Genre weights: {weights}")
    for line in summarize_profile(profile, n=args.top):
        logger.info(f"  {line}")


async def _search(args: argparse.Namespace):
    async with TMDBClient() as catalog:
        return await catalog.search(args.query, args.page)


def cmd_search(args: argparse.Namespace) -> None:
    """Search the catalog by title."""
    if not _require_api_key():
        return
    try:
        response = asyncio.run(_search(args))
    except CatalogError as e:
        logger.error(f"Search failed: {e}")
        return
    print(f"Page {response.page}/{response.total_pages} ({response.total_results} results)")
    for i, movie in enumerate(response.results, start=1):
        print(f"{format_movie_line(i, movie.title, movie.release_year, movie.vote_average)} [id {movie.id}]")


async def _browse(args: argparse.Namespace):
    async with TMDBClient() as catalog:
        if args.listing == 'trending':
            return await catalog.trending(args.window)
        if args.listing == 'top-rated':
            return await catalog.top_rated(args.page)
        return await catalog.popular(args.page)


def cmd_browse(args: argparse.Namespace) -> None:
    """List popular, top rated or trending movies."""
    if not _require_api_key():
        return
    try:
        response = asyncio.run(_browse(args))
    except CatalogError as e:
        logger.error(f"Browse failed: {e}")
        return
    for i, movie in enumerate(response.results, start=1):
        print(f"{format_movie_line(i, movie.title, movie.release_year, movie.vote_average)} [id {movie.id}]")


async def _chat(args: argparse.Namespace) -> str:
    store = _open_store(args)
    async with TMDBClient() as catalog, ChatAssistant(store, catalog) as assistant:
        message = args.message
        if args.search:
            found = await assistant.search_movies_for_ai(args.search)
            message = f"{message}\n\nCatalog results for \"{args.search}\":\n{found}"
        return await assistant.chat([{'role': 'user', 'content': message}])


def cmd_chat(args: argparse.Namespace) -> None:
    """Ask the movie assistant a question."""
    try:
        print(asyncio.run(_chat(args)))
    except ChatError as e:
        logger.error(f"Chat failed: {e}")


async def _import(args: argparse.Namespace, entries: list[dict]) -> int:
    store = _open_store(args)
    imported = 0
    for entry in tqdm(entries, desc="Importing ratings", unit="rating"):
        try:
            movie_id = int(entry['movie_id'])
            rating = rating_value(entry['rating'])
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Skipping invalid entry {entry!r}: {e}")
            continue

        snapshot = normalize_snapshot(entry.get('movie_data'))
        await store.upsert_rating(movie_id, rating, snapshot or None, entry.get('timestamp'))
        if rating == LIKE:
            await increment_genre_weights(store, snapshot.get('genre_ids') or [])
        imported += 1
    return imported


def cmd_import(args: argparse.Namespace) -> None:
    """Import ratings from a JSON export."""
    path = Path(args.file)
    try:
        payload = json.loads(path.read_text())
    except (OSError, json.JSONDecodeError) as e:
        logger.error(f"Could not read {path}: {e}")
        return

    entries = payload.get('ratings', []) if isinstance(payload, dict) else payload
    if not isinstance(entries, list):
        logger.error(f"{path} must contain a list of ratings")
        return

    imported = asyncio.run(_import(args, entries))
    logger.info(f"Imported {imported}/{len(entries)} ratings from {path}")


async def _export(args: argparse.Namespace) -> dict:
    store = _open_store(args)
    ratings, preferences, watchlist = await asyncio.gather(
        store.get_all_ratings(),
        store.get_genre_preferences(),
        store.get_watchlist(),
    )
    return {
        'user': store.username,
        'ratings': [
            {**asdict(r), 'movie_data': normalize_snapshot(r.movie_data)} for r in ratings
        ],
        'preferences': [asdict(p) for p in preferences],
        'watchlist': [
            {**asdict(w), 'movie_data': normalize_snapshot(w.movie_data)} for w in watchlist
        ],
    }


def cmd_export(args: argparse.Namespace) -> None:
    """Export ratings, preferences and watchlist to JSON."""
    data = asyncio.run(_export(args))
    path = Path(args.file)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2))
    logger.info(f"Exported {len(data['ratings'])} ratings to {path}")


def cmd_clear(args: argparse.Namespace) -> None:
    """Delete every rating, preference and watchlist entry of the user."""
    if not args.yes:
        logger.error("Refusing to clear data without --yes")
        return
    store = _open_store(args)
    asyncio.run(store.clear_all_data())


async def _stats(args: argparse.Namespace):
    store = _open_store(args)
    return await asyncio.gather(
        store.count_ratings(),
        store.get_liked_movies(),
        store.get_watchlist(),
        store.has_enough_ratings(),
    )


def cmd_stats(args: argparse.Namespace) -> None:
    """Show rating statistics."""
    total, liked, watchlist, enough = asyncio.run(_stats(args))
    logger.info(f"\nStatistics for {args.user}:")
    logger.info(f"  Total ratings: {total}")
    logger.info(f"  Liked: {len(liked)}")
    logger.info(f"  Disliked: {total - len(liked)}")
    logger.info(f"  Watchlist: {len(watchlist)}")
    if not enough:
        logger.info("  Rate a few more movies for better recommendations.")


def main():
    parser = argparse.ArgumentParser(description="Cinematch movie recommender")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")
    parser.add_argument("--user", "-u", default=DEFAULT_USER, help="User to act as")
    parser.add_argument("--db", type=Path, default=DB_PATH, help="Path to the ratings database")
    subparsers = parser.add_subparsers(dest="command", required=True)

    rec_parser = subparsers.add_parser("recommend", help="Generate recommendations")
    rec_parser.add_argument("--page", type=int, default=1, help="Page number (refreshes cycle through pages)")
    rec_parser.add_argument("--explain", action="store_true", help="Show why each movie was picked")
    rec_parser.add_argument("--similar", action="store_true", help="Movies similar to your latest like")
    rec_parser.add_argument("--seed", type=int, default=None, help="Random seed for reproducible results")
    rec_parser.add_argument("--json", action="store_true", help="Output JSON")
    rec_parser.set_defaults(func=cmd_recommend)

    rate_parser = subparsers.add_parser("rate", help="Like or dislike a movie")
    rate_parser.add_argument("movie_id", type=int, help="Catalog movie id")
    rate_parser.add_argument("verdict", help="'like' or 'dislike'")
    rate_parser.set_defaults(func=cmd_rate)

    unrate_parser = subparsers.add_parser("unrate", help="Remove a rating")
    unrate_parser.add_argument("movie_id", type=int, help="Catalog movie id")
    unrate_parser.set_defaults(func=cmd_unrate)

    watchlist_parser = subparsers.add_parser("watchlist", help="Manage your watchlist")
    watchlist_parser.add_argument("action", choices=['add', 'remove', 'list', 'check'])
    watchlist_parser.add_argument("movie_id", type=int, nargs='?', help="Catalog movie id")
    watchlist_parser.set_defaults(func=cmd_watchlist)

    profile_parser = subparsers.add_parser("profile", help="Show your taste profile")
    profile_parser.add_argument("--top", type=int, default=5, help="Entries per attribute")
    profile_parser.set_defaults(func=cmd_profile)

    search_parser = subparsers.add_parser("search", help="Search movies by title")
    search_parser.add_argument("query", help="Search text")
    search_parser.add_argument("--page", type=int, default=1)
    search_parser.set_defaults(func=cmd_search)

    browse_parser = subparsers.add_parser("browse", help="Browse catalog listings")
    browse_parser.add_argument("listing", choices=['popular', 'top-rated', 'trending'])
    browse_parser.add_argument("--page", type=int, default=1)
    browse_parser.add_argument("--window", choices=['day', 'week'], default='week', help="Trending time window")
    browse_parser.set_defaults(func=cmd_browse)

    chat_parser = subparsers.add_parser("chat", help="Ask the movie assistant")
    chat_parser.add_argument("message", help="Your question")
    chat_parser.add_argument("--search", default=None, help="Include catalog search results for this query")
    chat_parser.set_defaults(func=cmd_chat)

    import_parser = subparsers.add_parser("import", help="Import ratings from JSON")
    import_parser.add_argument("file", help="JSON file (list of ratings or an export)")
    import_parser.set_defaults(func=cmd_import)

    export_parser = subparsers.add_parser("export", help="Export your data to JSON")
    export_parser.add_argument("file", help="Output file")
    export_parser.set_defaults(func=cmd_export)

    clear_parser = subparsers.add_parser("clear", help="Delete all of your data")
    clear_parser.add_argument("--yes", action="store_true", help="Confirm deletion")
    clear_parser.set_defaults(func=cmd_clear)

    stats_parser = subparsers.add_parser("stats", help="Show rating statistics")
    stats_parser.set_defaults(func=cmd_stats)

    args = parser.parse_args()

    # Configure logging based on verbosity
    log_level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    try:
        args.func(args)
    except ValueError as e:
        logger.error(str(e))
        sys.exit(1)


if __name__ == "__main__":
    main()
