import math
import random
from typing import TypeVar

from .config import (
    RECOMMENDATION_PAGE_SIZE,
    WINDOW_STRIDE,
    WINDOW_CYCLE,
    TIE_BREAK_TOLERANCE,
    MATCH_PERCENT_MIN,
    MATCH_PERCENT_MAX,
)

T = TypeVar('T')


def rank_with_jitter(
    scored: list[tuple[T, float]],
    rng: random.Random,
    tolerance: float = TIE_BREAK_TOLERANCE,
) -> list[tuple[T, float]]:
    """
    Sort (item, score) pairs by score descending with randomized near-ties.

    Each score is perturbed by up to half the tie window (tolerance x the
    top score) in either direction, so two items closer than the window may
    swap while items further apart always keep their order.
    """
    if not scored:
        return []

    top = max(score for _, score in scored)
    window = abs(top) * tolerance

    def jittered(entry: tuple[T, float]) -> float:
        return entry[1] + rng.uniform(-window / 2, window / 2)

    keyed = [(jittered(entry), entry) for entry in scored]
    keyed.sort(key=lambda pair: -pair[0])
    return [entry for _, entry in keyed]


def window_start(page: int, stride: int = WINDOW_STRIDE, cycle: int = WINDOW_CYCLE) -> int:
    return ((max(1, page) - 1) % cycle) * stride


def select_window(
    ranked: list[T],
    page: int,
    size: int = RECOMMENDATION_PAGE_SIZE,
    stride: int = WINDOW_STRIDE,
    cycle: int = WINDOW_CYCLE,
) -> list[T]:
    """
    Pick one page of results out of a ranked list.

    The window start cycles with the page number so repeated refreshes
    surface different slices of a similar top set. A window running past
    the end is topped up with the best-ranked items it skipped.
    """
    start = window_start(page, stride, cycle)
    selected = ranked[start:start + size]
    if len(selected) < size:
        selected.extend(ranked[:start][:size - len(selected)])
    return selected


def normalize_percentages(
    scores: list[float],
    low: int = MATCH_PERCENT_MIN,
    high: int = MATCH_PERCENT_MAX,
) -> list[int]:
    """
    Min-max scale raw scores to 0-100 within this batch, clamp to [low, high]
    and round halves up.

    Percentages are relative to the batch, so equal percentages on different
    pages do not imply equal raw scores.
    """
    if not scores:
        return []
    min_s, max_s = min(scores), max(scores)
    range_s = max_s - min_s if max_s > min_s else 1.0
    return [
        math.floor(max(low, min(high, (s - min_s) / range_s * 100)) + 0.5)
        for s in scores
    ]
