"""Source trust scoring: recency decay blended with authority and citation signals."""

from __future__ import annotations

import math
from datetime import datetime, timezone

from answer_engine.config.constants import (
    RECENCY_HALF_LIFE_HOURS,
    SCORE_MODEL_VERSION,
    TRUST_WEIGHT_AUTHOR_AUTHORITY,
    TRUST_WEIGHT_CITATION_COVERAGE,
    TRUST_WEIGHT_RECENCY,
    TRUST_WEIGHT_SOURCE_AUTHORITY,
)
from answer_engine.models.domain import SourceScore, TrustFactors


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    if value is None or math.isnan(value):
        return low
    return max(low, min(high, value))


def parse_timestamp(value: str | datetime | None) -> datetime | None:
    """Parse an ISO-8601 timestamp into an aware datetime. Naive values are UTC."""
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(value.strip())
        except (AttributeError, ValueError):
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def age_hours(updated_at: str | datetime | None, now: datetime) -> float | None:
    parsed = parse_timestamp(updated_at)
    if parsed is None:
        return None
    return (now - parsed).total_seconds() / 3600


def recency_decay(updated_at: str | datetime | None, now: datetime | None = None) -> float:
    """Exponential decay with a 14-day half-life. Unparsable timestamps score 0."""
    now = now or datetime.now(timezone.utc)
    hours = age_hours(updated_at, now)
    if hours is None:
        return 0.0
    hours = max(0.0, hours)
    return clamp(math.exp(-math.log(2) * hours / RECENCY_HALF_LIFE_HOURS))


def compute_source_score(
    updated_at: str | datetime | None,
    source_authority: float,
    author_authority: float,
    citation_coverage: float,
    now: datetime | None = None,
) -> SourceScore:
    now = now or datetime.now(timezone.utc)
    factors = TrustFactors(
        recency=recency_decay(updated_at, now),
        source_authority=clamp(source_authority),
        author_authority=clamp(author_authority),
        citation_coverage=clamp(citation_coverage),
    )
    weighted = (
        factors.recency * TRUST_WEIGHT_RECENCY
        + factors.source_authority * TRUST_WEIGHT_SOURCE_AUTHORITY
        + factors.author_authority * TRUST_WEIGHT_AUTHOR_AUTHORITY
        + factors.citation_coverage * TRUST_WEIGHT_CITATION_COVERAGE
    )
    return SourceScore(
        # Half-up rounding; round() would send 62.5 to 62.
        total=math.floor(clamp(weighted) * 100 + 0.5),
        factors=factors,
        computed_at=now,
        model_version=SCORE_MODEL_VERSION,
    )
