"""Split an answer into ordered claims and attach the citations that support each one."""

from __future__ import annotations

from answer_engine.models.schemas import AnswerClaim, Citation
from answer_engine.verification.terms import split_sentences, term_set


def citation_overlap_score(claim_terms: set[str], chunk_text: str) -> float:
    if not claim_terms:
        return 0.0
    chunk_terms = term_set(chunk_text)
    if not chunk_terms:
        return 0.0
    return len(claim_terms & chunk_terms) / len(claim_terms)


def build_claims(
    answer: str,
    citations: list[Citation],
    chunk_text_by_id: dict[str, str],
    min_overlap: float = 0.14,
) -> list[AnswerClaim]:
    sentences = split_sentences(answer)
    if not sentences:
        stripped = answer.strip()
        sentences = [stripped] if stripped else []

    claims: list[AnswerClaim] = []
    for index, text in enumerate(sentences):
        claim_terms = term_set(text)
        matched = [
            c
            for c in citations
            if (chunk_text := chunk_text_by_id.get(c.chunk_id))
            and citation_overlap_score(claim_terms, chunk_text) >= min_overlap
        ]
        claims.append(
            AnswerClaim(
                id=f"claim-{index + 1}",
                text=text,
                order=index,
                supported=bool(matched),
                citations=matched,
            )
        )
    return claims
