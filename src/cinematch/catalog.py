import asyncio
import logging

import httpx

from .models import Movie, MoviePage
from .config import (
    TMDB_API_KEY,
    TMDB_BASE_URL,
    TMDB_IMAGE_BASE_URL,
    IMAGE_SIZES,
    HTTP_TIMEOUT,
    DEFAULT_MAX_CONCURRENT,
    MAX_HTTP_RETRIES,
    DEFAULT_RETRY_AFTER,
    MAX_RETRY_AFTER,
)

logger = logging.getLogger(__name__)


class CatalogError(Exception):
    """A catalog request failed after transport-level retries."""


def image_url(path: str | None, size: str = 'poster') -> str | None:
    if not path:
        return None
    return f"{TMDB_IMAGE_BASE_URL}/{IMAGE_SIZES[size]}{path}"


class TMDBClient:
    """Async read-only client for the TMDB movie catalog."""

    def __init__(
        self,
        api_key: str = TMDB_API_KEY,
        base_url: str = TMDB_BASE_URL,
        max_concurrent: int = DEFAULT_MAX_CONCURRENT,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip('/')
        self.semaphore = asyncio.Semaphore(max_concurrent)
        self.transport = transport
        self.client = None
        # Coordinated rate limiting: when one request hits 429, all requests pause
        self._rate_limit_event = asyncio.Event()
        self._rate_limit_event.set()

    async def __aenter__(self):
        """Async context manager entry."""
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            params={'api_key': self.api_key},
            headers={'Accept': 'application/json'},
            timeout=HTTP_TIMEOUT,
            transport=self.transport,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        if self.client:
            await self.client.aclose()
            self.client = None
        return False

    async def _get(self, path: str, params: dict | None = None) -> dict:
        """
        GET a catalog endpoint with coordinated rate limiting.

        Rate-limit responses and timeouts are retried here; any other
        failure raises CatalogError for the caller to handle.
        """
        if not self.client:
            raise CatalogError("TMDBClient must be used as an async context manager")

        query = {k: v for k, v in (params or {}).items() if v is not None}

        async with self.semaphore:
            for attempt in range(MAX_HTTP_RETRIES):
                await self._rate_limit_event.wait()

                try:
                    resp = await self.client.get(path, params=query)

                    if resp.status_code == 429:
                        try:
                            retry_after = int(resp.headers.get("Retry-After", DEFAULT_RETRY_AFTER))
                        except ValueError:
                            retry_after = DEFAULT_RETRY_AFTER
                        retry_after = min(retry_after, MAX_RETRY_AFTER)
                        logger.warning(
                            f"Rate limited on {path}, pausing all requests for {retry_after}s "
                            f"(attempt {attempt + 1}/{MAX_HTTP_RETRIES})"
                        )
                        self._rate_limit_event.clear()
                        await asyncio.sleep(retry_after)
                        self._rate_limit_event.set()
                        continue

                    resp.raise_for_status()
                    return resp.json()

                except httpx.TimeoutException:
                    wait_time = 2 ** attempt
                    logger.warning(
                        f"Timeout on {path}, retrying in {wait_time}s (attempt {attempt + 1}/{MAX_HTTP_RETRIES})"
                    )
                    await asyncio.sleep(wait_time)

                except httpx.HTTPStatusError as exc:
                    logger.error(f"HTTP {exc.response.status_code} on {path}: {exc}")
                    raise CatalogError(f"HTTP {exc.response.status_code} on {path}") from exc

                except httpx.HTTPError as exc:
                    logger.error(f"Request error on {path}: {type(exc).__name__}: {exc}")
                    raise CatalogError(f"Request to {path} failed: {exc}") from exc

                except ValueError as exc:
                    raise CatalogError(f"Invalid JSON from {path}") from exc

            logger.error(f"Max retries exceeded for {path}")
            raise CatalogError(f"Max retries exceeded for {path}")

    async def discover(
        self,
        genre: int | None = None,
        sort_by: str = 'popularity.desc',
        page: int = 1,
        min_vote_count: int | None = None,
        min_vote_average: float | None = None,
        year: int | None = None,
    ) -> MoviePage:
        data = await self._get('/discover/movie', {
            'page': page,
            'with_genres': genre,
            'sort_by': sort_by,
            'primary_release_year': year,
            'vote_count.gte': min_vote_count,
            'vote_average.gte': min_vote_average,
        })
        return MoviePage.from_api(data)

    async def popular(self, page: int = 1) -> MoviePage:
        return MoviePage.from_api(await self._get('/movie/popular', {'page': page}))

    async def top_rated(self, page: int = 1) -> MoviePage:
        return MoviePage.from_api(await self._get('/movie/top_rated', {'page': page}))

    async def trending(self, time_window: str = 'week') -> MoviePage:
        if time_window not in ('day', 'week'):
            raise ValueError(f"time_window must be 'day' or 'week', got '{time_window}'")
        return MoviePage.from_api(await self._get(f'/trending/movie/{time_window}'))

    async def search(self, query: str, page: int = 1) -> MoviePage:
        return MoviePage.from_api(await self._get('/search/movie', {'query': query, 'page': page}))

    async def details(self, movie_id: int) -> Movie:
        data = await self._get(f'/movie/{movie_id}', {'append_to_response': 'credits,keywords'})
        return Movie.from_details(data)
