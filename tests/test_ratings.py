import json

import pytest

from cinematch.ratings import increment_genre_weights, rate_movie, rating_value
from conftest import make_movie


@pytest.mark.parametrize("text,expected", [("like", 1), ("LIKED", 1), (" up ", 1), ("+1", 1), (1, 1),
                                           ("dislike", -1), ("down", -1), (-1, -1)])
def test_rating_value_aliases(text, expected):
    assert rating_value(text) == expected


@pytest.mark.parametrize("text", ["meh", "0", "", "2"])
def test_rating_value_rejects_unknown(text):
    with pytest.raises(ValueError):
        rating_value(text)


async def _weights(store):
    return {p.genre_id: p.weight for p in await store.get_genre_preferences()}


@pytest.mark.asyncio
async def test_each_like_adds_one_to_every_genre(store):
    await rate_movie(store, make_movie(1, [28, 12]), 1)
    await rate_movie(store, make_movie(2, [28, 35]), 1)

    assert await _weights(store) == {28: 2, 12: 1, 35: 1}
    assert await store.get_favorite_genre_ids() == [28, 12, 35]


@pytest.mark.asyncio
async def test_dislike_records_rating_without_touching_weights(store):
    await rate_movie(store, make_movie(1, [28]), 1)
    await rate_movie(store, make_movie(2, [28, 27]), -1)

    assert await _weights(store) == {28: 1}
    assert await store.get_movie_rating(2) == -1


@pytest.mark.asyncio
async def test_rate_movie_stores_snapshot(store):
    movie = make_movie(
        1, [18],
        title="Oppenheimer",
        director="Nolan",
        actors=[f"Actor {i}" for i in range(8)],
        keywords=[f"kw{i}" for i in range(12)],
        production_company="Syncopy",
    )

    await rate_movie(store, movie, 1)

    snapshot = json.loads((await store.get_all_ratings())[0].movie_data)
    assert snapshot["title"] == "Oppenheimer"
    assert snapshot["genre_ids"] == [18]
    assert snapshot["director"] == "Nolan"
    assert snapshot["production_company"] == "Syncopy"
    assert len(snapshot["actors"]) == 5
    assert len(snapshot["keywords"]) == 10
    assert "poster_path" not in snapshot


@pytest.mark.asyncio
async def test_rate_movie_rejects_invalid_rating(store):
    with pytest.raises(ValueError):
        await rate_movie(store, make_movie(1, [28]), 0)
    assert await store.count_ratings() == 0


@pytest.mark.asyncio
async def test_increment_genre_weights_dedupes(store):
    assert await increment_genre_weights(store, [28, 28, 12]) == {28: 1, 12: 1}
    assert await increment_genre_weights(store, []) == {}
    assert await increment_genre_weights(store, [28]) == {28: 2}


@pytest.mark.asyncio
async def test_failed_like_leaves_genre_weights_untouched(store, monkeypatch):
    async def failing_upsert(*args, **kwargs):
        raise RuntimeError("disk full")

    monkeypatch.setattr(store, "upsert_rating", failing_upsert)

    with pytest.raises(RuntimeError):
        await rate_movie(store, make_movie(1, [28]), 1)

    assert await store.get_genre_preferences() == []
    assert await store.count_ratings() == 0
