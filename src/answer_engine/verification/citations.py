"""Citation validity and claim coverage."""

from __future__ import annotations

from answer_engine.models.schemas import Citation


def validate_citation(citation: Citation) -> bool:
    return (
        len(citation.chunk_id) > 0
        and len(citation.doc_version_id) > 0
        and citation.start_offset >= 0
        and citation.end_offset >= citation.start_offset
        and citation.source_url.startswith("http")
    )


def citation_coverage(claims: int, citations: list[Citation]) -> float:
    """Valid citations per claim, capped at 1. No claims means full coverage."""
    if claims <= 0:
        return 1.0
    valid = sum(1 for c in citations if validate_citation(c))
    return min(1.0, valid / claims)
