from cinematch.explain import build_reasons, create_match_breakdown
from cinematch.scoring import ScoreComponents
from conftest import make_movie


def _components(genre_matches=0, category="Recent", taste_matches=None):
    return ScoreComponents(
        score=0.0,
        genre_match_count=genre_matches,
        age_category=category,
        quality_score=0.0,
        taste_matches=taste_matches or [],
    )


def test_reasons_follow_display_order():
    movie = make_movie(1, vote_average=8.24)

    reasons = build_reasons(movie, _components(3, "Classic"), total_liked_movies=10)

    assert reasons == [
        "Matches 3 of your favorite genres",
        "Highly rated (8.2/10)",
        "Classic film",
        "Strong genre alignment with your taste",
    ]


def test_strong_alignment_needs_more_than_five_likes():
    movie = make_movie(1, vote_average=5.0)

    assert "Strong genre alignment with your taste" not in build_reasons(movie, _components(2), 5)
    assert "Strong genre alignment with your taste" in build_reasons(movie, _components(2), 6)
    assert "Strong genre alignment with your taste" not in build_reasons(movie, _components(1), 6)


def test_quality_threshold_is_inclusive():
    assert build_reasons(make_movie(1, vote_average=7.5), _components(), 0) == ["Highly rated (7.5/10)"]
    assert build_reasons(make_movie(1, vote_average=7.49), _components(), 0) == [
        "Recommended based on your preferences"
    ]


def test_fallback_reason_when_nothing_applies():
    reasons = build_reasons(make_movie(1, vote_average=6.0), _components(), 0)

    assert reasons == ["Recommended based on your preferences"]


def test_breakdown_names_matched_genres_in_movie_order():
    movie = make_movie(1, genre_ids=[878, 28, 99, 12345], vote_average=7.8)
    components = _components(2, "Modern Classic", ["Director: Nolan"])

    breakdown = create_match_breakdown(movie, 87, components, favorite_genres=[28, 878, 18],
                                       total_liked_movies=4)

    assert breakdown.percentage == 87
    assert breakdown.genre_matches == 2
    assert breakdown.genre_match_names == ["Science Fiction", "Action"]
    assert breakdown.quality_score == 7.8
    assert breakdown.age_category == "Modern Classic"
    assert breakdown.total_liked_movies == 4
    assert breakdown.taste_matches == ["Director: Nolan"]
    assert breakdown.reasons[0] == "Matches 2 of your favorite genres"

    payload = breakdown.to_dict()
    assert payload["genreMatchNames"] == ["Science Fiction", "Action"]
    assert payload["ageCategory"] == "Modern Classic"
    assert payload["tasteMatches"] == ["Director: Nolan"]
