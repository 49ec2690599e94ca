import asyncio
import logging

import httpx

from .catalog import CatalogError
from .models import genre_name
from .profile import build_taste_profile, normalize_snapshot, summarize_profile
from .utils import async_retry_with_backoff, format_movie_line
from .config import (
    GROQ_API_KEY,
    GROQ_API_URL,
    GROQ_MODEL,
    CHAT_TEMPERATURE,
    CHAT_MAX_TOKENS,
    CHAT_LIKED_TITLES,
    CHAT_DISLIKED_TITLES,
    CHAT_SEARCH_RESULTS,
    FAVORITE_GENRE_LIMIT,
    HTTP_TIMEOUT,
)

logger = logging.getLogger(__name__)

ROLES = ('system', 'user', 'assistant')


class ChatError(Exception):
    """The chat service is unavailable or returned an unusable response."""


def _titles(ratings, limit: int) -> list[str]:
    titles = []
    for rating in ratings:
        title = normalize_snapshot(rating.movie_data).get('title')
        if isinstance(title, str) and title:
            titles.append(title)
        if len(titles) >= limit:
            break
    return titles


class ChatAssistant:
    """
    Movie chat backed by an OpenAI-compatible completions endpoint.

    Every conversation is prefixed with a system message describing the
    user's ratings and taste profile.
    """

    def __init__(
        self,
        store,
        catalog,
        api_key: str = GROQ_API_KEY,
        api_url: str = GROQ_API_URL,
        model: str = GROQ_MODEL,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.store = store
        self.catalog = catalog
        self.api_key = api_key
        self.api_url = api_url
        self.model = model
        self.transport = transport
        self.client = None

    async def __aenter__(self):
        self.client = httpx.AsyncClient(timeout=HTTP_TIMEOUT, transport=self.transport)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self.client:
            await self.client.aclose()
            self.client = None
        return False

    async def build_user_context(self) -> str:
        ratings, liked, disliked, favorite_genres = await asyncio.gather(
            self.store.get_all_ratings(),
            self.store.get_liked_movies(),
            self.store.get_disliked_movies(),
            self.store.get_favorite_genre_ids(FAVORITE_GENRE_LIMIT),
        )

        liked_titles = _titles(liked, CHAT_LIKED_TITLES)
        disliked_titles = _titles(disliked, CHAT_DISLIKED_TITLES)
        genres = [genre_name(g) for g in favorite_genres]
        taste_lines = summarize_profile(build_taste_profile(ratings))

        lines = [
            "You are a movie recommendation assistant. Here's what you know about the user:",
            "",
            f"Movies they liked: {', '.join(liked_titles) or 'None yet'}",
            f"Movies they disliked: {', '.join(disliked_titles) or 'None yet'}",
            f"Total movies rated: {len(ratings)}",
            f"Favorite genres: {', '.join(genres) or 'None yet'}",
        ]
        lines.extend(taste_lines)
        lines += [
            "",
            "Based on this information, provide personalized movie recommendations and chat naturally about movies.",
            "Be conversational, enthusiastic, and helpful!",
        ]
        return "\n".join(lines)

    @async_retry_with_backoff(max_retries=3, initial_delay=1.0, exceptions=(httpx.TransportError,))
    async def _complete(self, payload: dict) -> dict:
        resp = await self.client.post(
            self.api_url,
            json=payload,
            headers={'Authorization': f'Bearer {self.api_key}'},
        )
        resp.raise_for_status()
        return resp.json()

    async def chat(self, messages: list[dict]) -> str:
        """
        Send the conversation so far and return the assistant's reply.

        Args:
            messages: Prior turns as {'role': 'user'|'assistant', 'content': str}
        """
        if not self.client:
            raise ChatError("ChatAssistant must be used as an async context manager")
        if not self.api_key:
            raise ChatError("GROQ_API_KEY is not configured")
        for message in messages:
            if message.get('role') not in ROLES or not isinstance(message.get('content'), str):
                raise ValueError(f"Invalid chat message: {message!r}")

        system_message = await self.build_user_context()
        payload = {
            'model': self.model,
            'messages': [{'role': 'system', 'content': system_message}, *messages],
            'temperature': CHAT_TEMPERATURE,
            'max_tokens': CHAT_MAX_TOKENS,
        }

        try:
            data = await self._complete(payload)
        except httpx.HTTPStatusError as exc:
            logger.error(f"Chat service returned HTTP {exc.response.status_code}")
            raise ChatError(f"Chat service returned HTTP {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            logger.error(f"Chat request failed: {type(exc).__name__}: {exc}")
            raise ChatError(f"Chat request failed: {exc}") from exc

        try:
            return data['choices'][0]['message']['content']
        except (KeyError, IndexError, TypeError) as exc:
            raise ChatError("Malformed chat response") from exc

    async def search_movies_for_ai(self, query: str) -> str:
        """Format the top catalog matches for a query as plain text for the assistant."""
        try:
            response = await self.catalog.search(query)
        except CatalogError as e:
            logger.error(f"Error searching movies: {e}")
            return 'Failed to search movies'

        movies = response.results[:CHAT_SEARCH_RESULTS]
        if not movies:
            return f'No movies found for "{query}"'

        return "\n".join(
            format_movie_line(i, m.title, m.release_year, m.vote_average)
            for i, m in enumerate(movies, start=1)
        )
