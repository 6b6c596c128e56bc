"""Groundedness check: are the answer's sentences supported by the cited chunk text?"""

from __future__ import annotations

from answer_engine.models.domain import GroundingAssessment
from answer_engine.models.schemas import Citation
from answer_engine.verification.terms import split_sentences, term_set


def assess_grounding(
    answer: str,
    citations: list[Citation],
    chunk_text_by_id: dict[str, str],
) -> GroundingAssessment:
    """Share of sentences with at least one term in common with the cited text.

    Citations whose chunk text is unknown contribute nothing.
    """
    sentences = split_sentences(answer)
    if not sentences:
        return GroundingAssessment(citation_coverage=1.0, unsupported_claim_count=0, sentence_count=0)

    cited_terms: set[str] = set()
    for citation in citations:
        text = chunk_text_by_id.get(citation.chunk_id)
        if text:
            cited_terms |= term_set(text)

    if not cited_terms:
        return GroundingAssessment(
            citation_coverage=0.0,
            unsupported_claim_count=len(sentences),
            sentence_count=len(sentences),
        )

    supported = sum(1 for s in sentences if term_set(s) & cited_terms)
    return GroundingAssessment(
        citation_coverage=supported / len(sentences),
        unsupported_claim_count=max(0, len(sentences) - supported),
        sentence_count=len(sentences),
    )
