"""Configuration helpers and Settings container.

This module provides a small `Settings` dataclass and `get_settings` which
reads the Mongo connection and the aggregation knobs (inactivity threshold,
score window, feed size, composite score weights) from the environment.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
import os

from dotenv import load_dotenv
from pydantic import ValidationError

from chapter_insights.models import ScoreWeights

# Explicitly load .env from project root
PROJECT_ROOT = Path(__file__).resolve().parents[2]
load_dotenv(PROJECT_ROOT / ".env")

@dataclass(frozen=True)
class Settings:
    """Container for configuration read from the environment.

    Attributes:
        mongo_uri: MongoDB connection URI.
        mongo_db: Target MongoDB database name.
        mongo_tls: Whether to connect with TLS (certifi CA bundle).
        inactivity_days: Days without a metric or trade after which a member
            is flagged inactive.
        score_window_days: Trailing window used for member composite scores.
        feed_limit: Default number of entries in the activity feed.
        score_weights: Weights of the member composite score.
    """
    mongo_uri: str = "mongodb://localhost:27017"
    mongo_db: str = "chapters"
    mongo_tls: bool = False
    inactivity_days: int = 30
    score_window_days: int = 30
    feed_limit: int = 50
    score_weights: ScoreWeights = field(default_factory=ScoreWeights)


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be an integer, got {raw!r}") from None
    if value <= 0:
        raise RuntimeError(f"{name} must be positive, got {value}")
    return value


def parse_score_weights(raw: str) -> ScoreWeights:
    """Parse a ``participation=1,learning=0.5`` style weight string.

    Metric types that are not mentioned keep their default weight of 1.0.

    Raises:
        RuntimeError: on unknown metric names or non-numeric weights.
    """
    values: dict[str, float] = {}
    for part in raw.split(","):
        part = part.strip()
        if not part:
            continue
        name, sep, weight = part.partition("=")
        if not sep:
            raise RuntimeError(f"SCORE_WEIGHTS entry {part!r} must look like name=weight")
        try:
            values[name.strip()] = float(weight)
        except ValueError:
            raise RuntimeError(f"SCORE_WEIGHTS weight for {name.strip()!r} is not a number") from None
    try:
        return ScoreWeights.model_validate(values)
    except ValidationError as e:
        raise RuntimeError(f"Invalid SCORE_WEIGHTS {raw!r}: {e}") from e


def get_settings() -> Settings:
    """Read environment variables and return a frozen `Settings` object.

    Raises:
        RuntimeError: if any numeric setting or `SCORE_WEIGHTS` is malformed.
    """
    mongo_uri = os.getenv("MONGO_URI", "mongodb://localhost:27017")
    mongo_db = os.getenv("MONGO_DB", "chapters")
    mongo_tls = os.getenv("MONGO_TLS", "false").strip().lower() in {"1", "true", "yes"}

    return Settings(
        mongo_uri=mongo_uri,
        mongo_db=mongo_db,
        mongo_tls=mongo_tls,
        inactivity_days=_int_env("INACTIVITY_DAYS", 30),
        score_window_days=_int_env("SCORE_WINDOW_DAYS", 30),
        feed_limit=_int_env("FEED_LIMIT", 50),
        score_weights=parse_score_weights(os.getenv("SCORE_WEIGHTS", "")),
    )
