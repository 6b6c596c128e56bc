"""Metric recording helpers for answer traces."""

from __future__ import annotations

from answer_engine.observability.logger import get_logger

logger = get_logger("metrics")


def log_retrieval_metrics(
    trace_id: str,
    retrieval_score: float,
    top_scores: list[float],
    num_candidates: int,
    unique_docs: int,
) -> None:
    logger.info(
        "retrieval_metrics",
        trace_id=trace_id,
        retrieval_score=round(retrieval_score, 4),
        top_scores=[round(s, 4) for s in top_scores[:5]],
        num_candidates=num_candidates,
        unique_docs=unique_docs,
    )


def log_generation_metrics(
    trace_id: str,
    citation_coverage: float,
    unsupported_claims: int,
    attempts: int,
    confidence: float,
) -> None:
    logger.info(
        "generation_metrics",
        trace_id=trace_id,
        citation_coverage=round(citation_coverage, 4),
        unsupported_claims=unsupported_claims,
        attempts=attempts,
        confidence=round(confidence, 4),
    )


def log_quality_contract(
    trace_id: str,
    status: str,
    reason_codes: list[str],
    allow_historical_evidence: bool,
) -> None:
    logger.info(
        "quality_contract",
        trace_id=trace_id,
        status=status,
        reason_codes=reason_codes,
        allow_historical_evidence=allow_historical_evidence,
    )
