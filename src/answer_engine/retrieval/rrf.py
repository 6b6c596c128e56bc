"""Reciprocal Rank Fusion with trust and recency boosts."""

from __future__ import annotations

from datetime import datetime, timezone

import numpy as np

from answer_engine.config.constants import (
    HYBRID_LEXICAL_WEIGHT,
    HYBRID_RELEVANCE_WEIGHT,
    HYBRID_SEMANTIC_WEIGHT,
    HYBRID_TRUST_WEIGHT,
)
from answer_engine.exceptions import ValidationError
from answer_engine.models.domain import Chunk, RankedCandidate
from answer_engine.scoring.trust import clamp, parse_timestamp

MS_PER_DAY = 24 * 60 * 60 * 1000


def retrieval_pool_size(limit: int, multiplier: int, minimum: int = 30) -> int:
    return max(minimum, limit * multiplier)


def recency_norm(updated_at: str | None, now: datetime, window_days: int = 30) -> float:
    """Linear boost from 1 (just updated) down to 0 at the end of the window."""
    parsed = parse_timestamp(updated_at)
    if parsed is None:
        return 0.0
    age_ms = (now - parsed).total_seconds() * 1000
    return max(0.0, 1.0 - age_ms / (window_days * MS_PER_DAY))


def fuse_ranked_candidates(
    vector_hits: list[tuple[Chunk, float]],
    lexical_hits: list[tuple[Chunk, float]],
    k: int = 60,
    limit: int = 8,
    trust_weight: float = 0.2,
    recency_weight: float = 0.1,
    recency_window_days: int = 30,
    now: datetime | None = None,
) -> list[RankedCandidate]:
    """Merge the vector and lexical passes by chunk id.

    Args:
        vector_hits: (chunk, distance) tuples sorted by ascending distance.
        lexical_hits: (chunk, lexical_score) tuples sorted by descending score.
        k: RRF constant (higher = more weight to lower-ranked results).

    Returns:
        At most ``limit`` candidates sorted by combined score descending.
    """
    now = now or datetime.now(timezone.utc)
    merged: dict[str, RankedCandidate] = {}

    for rank, (chunk, distance) in enumerate(vector_hits, 1):
        entry = merged.get(chunk.chunk_id)
        if entry is None:
            entry = RankedCandidate(chunk=chunk, combined_score=0.0)
            merged[chunk.chunk_id] = entry
        if entry.vector_rank is None:
            entry.vector_rank = rank
            entry.vector_distance = distance

    for rank, (chunk, score) in enumerate(lexical_hits, 1):
        entry = merged.get(chunk.chunk_id)
        if entry is None:
            entry = RankedCandidate(chunk=chunk, combined_score=0.0)
            merged[chunk.chunk_id] = entry
        else:
            entry.chunk = chunk
        if entry.lexical_rank is None:
            entry.lexical_rank = rank
            entry.lexical_score = score

    for entry in merged.values():
        vector_component = 1.0 / (k + entry.vector_rank) if entry.vector_rank else 0.0
        lexical_component = 1.0 / (k + entry.lexical_rank) if entry.lexical_rank else 0.0
        trust = clamp(entry.chunk.source_score / 100)
        recency = recency_norm(entry.chunk.updated_at, now, recency_window_days)
        entry.combined_score = (
            vector_component
            + lexical_component
            + trust_weight * trust
            + recency_weight * recency
        )

    ranked = sorted(merged.values(), key=lambda c: (-c.combined_score, c.chunk.chunk_id))
    return ranked[:limit]


def _max_normalize(scores: np.ndarray) -> np.ndarray:
    peak = max(float(scores.max()) if scores.size else 0.0, 0.0001)
    return scores / peak


def rerank_hybrid(
    chunks: list[Chunk],
    lexical_scores: list[float],
    semantic_scores: list[float],
    limit: int = 8,
) -> list[RankedCandidate]:
    """Fuse caller-supplied per-chunk score arrays into a ranked list."""
    if len(chunks) != len(lexical_scores) or len(chunks) != len(semantic_scores):
        raise ValidationError(
            f"Score and chunk arrays must align: chunks={len(chunks)} "
            f"lexical={len(lexical_scores)} semantic={len(semantic_scores)}"
        )
    if not chunks:
        return []

    lexical = _max_normalize(np.asarray(lexical_scores, dtype=np.float64))
    semantic = _max_normalize(np.asarray(semantic_scores, dtype=np.float64))
    trust = np.clip(np.asarray([c.source_score for c in chunks], dtype=np.float64) / 100, 0.0, 1.0)

    relevance = lexical * HYBRID_LEXICAL_WEIGHT + semantic * HYBRID_SEMANTIC_WEIGHT
    combined = relevance * HYBRID_RELEVANCE_WEIGHT + trust * HYBRID_TRUST_WEIGHT

    order = sorted(range(len(chunks)), key=lambda i: (-combined[i], i))
    return [
        RankedCandidate(chunk=chunks[i], combined_score=float(combined[i]))
        for i in order[:limit]
    ]
