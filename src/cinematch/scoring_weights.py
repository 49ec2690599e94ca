"""
Utilities for loading and tuning the recommendation scoring weights.

Weights are read from a JSON file when one exists. When no file is
available, or a value in it is unusable, the configured defaults apply so
scoring behaves exactly as shipped.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

from .config import (
    SCORING_WEIGHTS_PATH,
    WEIGHT_GENRE_MATCH,
    WEIGHT_QUALITY,
    WEIGHT_RELIABILITY,
    CAP_RELIABILITY,
    WEIGHT_POPULARITY,
    CAP_POPULARITY,
    WEIGHT_DISLIKE_PENALTY,
    AGE_CATEGORIES,
)

logger = logging.getLogger(__name__)


def _default_age_bonuses() -> dict[str, float]:
    return {label: bonus for _, label, bonus in AGE_CATEGORIES}


@dataclass
class ScoringWeights:
    """Hand-tuned weights for every term of the candidate score."""

    genre_match: float = WEIGHT_GENRE_MATCH
    quality: float = WEIGHT_QUALITY
    reliability: float = WEIGHT_RELIABILITY
    reliability_cap: float = CAP_RELIABILITY
    popularity: float = WEIGHT_POPULARITY
    popularity_cap: float = CAP_POPULARITY
    dislike_penalty: float = WEIGHT_DISLIKE_PENALTY
    age_bonus: dict[str, float] = field(default_factory=_default_age_bonuses)
    metadata: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Coerce values to non-negative floats; unusable values revert to defaults."""
        for f in fields(self):
            if f.name in ('age_bonus', 'metadata'):
                continue
            value = getattr(self, f.name)
            try:
                setattr(self, f.name, max(0.0, float(value)))
            except (TypeError, ValueError):
                logger.warning(f"Invalid scoring weight {f.name}={value!r}, using default")
                setattr(self, f.name, float(f.default))

        bonuses = _default_age_bonuses()
        for label, value in (self.age_bonus or {}).items():
            if label not in bonuses:
                logger.warning(f"Ignoring unknown age category '{label}' in scoring weights")
                continue
            try:
                bonuses[label] = max(0.0, float(value))
            except (TypeError, ValueError):
                logger.warning(f"Invalid age bonus for '{label}': {value!r}, using default")
        self.age_bonus = bonuses

    def to_dict(self) -> dict[str, Any]:
        return {
            "metadata": self.metadata,
            "genre_match": self.genre_match,
            "quality": self.quality,
            "reliability": self.reliability,
            "reliability_cap": self.reliability_cap,
            "popularity": self.popularity,
            "popularity_cap": self.popularity_cap,
            "dislike_penalty": self.dislike_penalty,
            "age_bonus": dict(self.age_bonus),
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "ScoringWeights":
        known = {f.name for f in fields(cls)}
        unknown = set(payload) - known
        if unknown:
            logger.warning(f"Ignoring unknown scoring weight keys: {sorted(unknown)}")
        return cls(**{k: v for k, v in payload.items() if k in known})


def load_scoring_weights(path: str | Path | None = None) -> ScoringWeights | None:
    """Load weights from disk; return None if missing or invalid."""
    weight_path = Path(path) if path else SCORING_WEIGHTS_PATH
    if not weight_path.exists():
        logger.debug("Scoring weights file not found at %s; using defaults", weight_path)
        return None

    try:
        payload = json.loads(weight_path.read_text())
    except (OSError, json.JSONDecodeError) as exc:
        logger.warning("Failed to load scoring weights from %s: %s", weight_path, exc)
        return None
    if not isinstance(payload, dict):
        logger.warning("Scoring weights file %s must contain a JSON object", weight_path)
        return None
    return ScoringWeights.from_dict(payload)


def save_scoring_weights(weights: ScoringWeights, path: str | Path | None = None) -> Path:
    """Persist weights to disk."""
    weight_path = Path(path) if path else SCORING_WEIGHTS_PATH
    weight_path.parent.mkdir(parents=True, exist_ok=True)
    weight_path.write_text(json.dumps(weights.to_dict(), indent=2))
    return weight_path
