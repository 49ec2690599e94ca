import json

import httpx
import pytest

from cinematch.catalog import CatalogError
from cinematch.chat import ChatAssistant, ChatError
from cinematch.models import MoviePage
from conftest import FakeCatalog, FakeStore, make_movie, make_rating

API_URL = "https://chat.test/v1/chat/completions"


class FavoriteStore(FakeStore):
    """FakeStore seeded with a small taste history."""

    def __init__(self):
        super().__init__(
            ratings=[
                make_rating(1, 1, title="Heat", director="Michael Mann", genre_ids=[80]),
                make_rating(2, 1, title="Collateral", director="Michael Mann"),
                make_rating(3, -1, title="Cats"),
                make_rating(4, 1),
            ],
            favorites=[80, 53],
        )


class SearchCatalog(FakeCatalog):
    def __init__(self, results=None, fail=False):
        super().__init__()
        self.results = results or []
        self.fail = fail

    async def search(self, query, page=1):
        if self.fail:
            raise CatalogError("search unavailable")
        return MoviePage(results=self.results)


def _assistant(handler=None, store=None, catalog=None, api_key="groq-key"):
    transport = httpx.MockTransport(handler) if handler else None
    return ChatAssistant(
        store or FavoriteStore(),
        catalog or SearchCatalog(),
        api_key=api_key,
        api_url=API_URL,
        model="test-model",
        transport=transport,
    )


@pytest.mark.asyncio
async def test_user_context_describes_taste():
    context = await _assistant().build_user_context()

    assert "Movies they liked: Heat, Collateral" in context
    assert "Movies they disliked: Cats" in context
    assert "Total movies rated: 4" in context
    assert "Favorite genres: Crime, Thriller" in context
    assert "Favorite directors: Michael Mann (2)" in context


@pytest.mark.asyncio
async def test_user_context_for_new_user():
    context = await _assistant(store=FakeStore()).build_user_context()

    assert "Movies they liked: None yet" in context
    assert "Favorite genres: None yet" in context
    assert "Total movies rated: 0" in context


@pytest.mark.asyncio
async def test_chat_sends_system_context_and_returns_reply():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers.get("Authorization")
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"choices": [{"message": {"content": "Try Thief (1981)."}}]})

    async with _assistant(handler) as assistant:
        reply = await assistant.chat([{"role": "user", "content": "More like Heat?"}])

    assert reply == "Try Thief (1981)."
    assert seen["url"] == API_URL
    assert seen["auth"] == "Bearer groq-key"
    body = seen["body"]
    assert body["model"] == "test-model"
    assert body["temperature"] == 0.7
    assert body["max_tokens"] == 1024
    assert body["messages"][0]["role"] == "system"
    assert "Heat" in body["messages"][0]["content"]
    assert body["messages"][1] == {"role": "user", "content": "More like Heat?"}


@pytest.mark.asyncio
async def test_chat_without_api_key_fails():
    async with _assistant(lambda request: httpx.Response(200), api_key="") as assistant:
        with pytest.raises(ChatError):
            await assistant.chat([{"role": "user", "content": "hi"}])


@pytest.mark.asyncio
async def test_chat_outside_context_fails():
    with pytest.raises(ChatError):
        await _assistant().chat([{"role": "user", "content": "hi"}])


@pytest.mark.asyncio
async def test_chat_rejects_malformed_messages():
    async with _assistant(lambda request: httpx.Response(200)) as assistant:
        with pytest.raises(ValueError):
            await assistant.chat([{"role": "robot", "content": "beep"}])


@pytest.mark.asyncio
async def test_chat_http_error_becomes_chat_error():
    async with _assistant(lambda request: httpx.Response(503)) as assistant:
        with pytest.raises(ChatError, match="503"):
            await assistant.chat([{"role": "user", "content": "hi"}])


@pytest.mark.asyncio
async def test_chat_malformed_response_becomes_chat_error():
    async with _assistant(lambda request: httpx.Response(200, json={"choices": []})) as assistant:
        with pytest.raises(ChatError):
            await assistant.chat([{"role": "user", "content": "hi"}])


@pytest.mark.asyncio
async def test_search_movies_for_ai_formats_top_results():
    results = [make_movie(i, title=f"Alien {i}", vote_average=7.3, release_date=f"19{80 + i}-01-01")
               for i in range(1, 8)]
    assistant = _assistant(catalog=SearchCatalog(results))

    text = await assistant.search_movies_for_ai("alien")

    lines = text.splitlines()
    assert len(lines) == 5
    assert lines[0] == "1. Alien 1 (1981) - Rating: 7.3/10"


@pytest.mark.asyncio
async def test_search_movies_for_ai_handles_empty_and_failure():
    assert await _assistant(catalog=SearchCatalog()).search_movies_for_ai("zzz") == 'No movies found for "zzz"'
    assert await _assistant(catalog=SearchCatalog(fail=True)).search_movies_for_ai("x") == "Failed to search movies"


@pytest.mark.asyncio
async def test_user_context_skips_malformed_snapshots():
    store = FakeStore(
        ratings=[
            make_rating(1, 1, title={"en": "Heat"}, actors=[{"name": "Pacino"}], director={"name": "Mann"}),
            make_rating(2, 1, title="Thief"),
        ],
        favorites=[80],
    )

    context = await _assistant(store=store).build_user_context()

    assert "Movies they liked: Thief" in context
    assert "Favorite directors" not in context
