"""Answer confidence: blend of model, retrieval, citation coverage and citation trust."""

from __future__ import annotations

from answer_engine.config.constants import RETRIEVAL_SCORE_TOP_N
from answer_engine.config.settings import Settings
from answer_engine.models.schemas import Citation, EvidenceItem
from answer_engine.scoring.trust import clamp


def compute_retrieval_score(sources: list[EvidenceItem]) -> float:
    """Mean of relevance * normalized trust over the top evidence items."""
    top = sources[:RETRIEVAL_SCORE_TOP_N]
    if not top:
        return 0.0
    total = sum(s.relevance * clamp(s.source_score / 100) for s in top)
    return clamp(total / len(top))


def average_citation_trust(citations: list[Citation], chunk_scores: dict[str, float]) -> float:
    if not citations:
        return 0.0
    total = sum(clamp(chunk_scores.get(c.chunk_id, 0.0) / 100) for c in citations)
    return clamp(total / len(citations))


class ConfidenceScorer:
    def __init__(self, settings: Settings) -> None:
        self.model_weight = settings.conf_model_weight
        self.retrieval_weight = settings.conf_retrieval_weight
        self.coverage_weight = settings.conf_coverage_weight
        self.trust_weight = settings.conf_trust_weight
        self.floor = settings.conf_floor
        self.ceiling = settings.conf_ceiling

    def score(
        self,
        model_confidence: float,
        retrieval_score: float,
        citation_coverage: float,
        citation_trust: float,
    ) -> float:
        blended = (
            self.model_weight * model_confidence
            + self.retrieval_weight * retrieval_score
            + self.coverage_weight * citation_coverage
            + self.trust_weight * citation_trust
        )
        return clamp(blended, self.floor, self.ceiling)
