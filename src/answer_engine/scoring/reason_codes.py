"""Closed set of answer quality reason codes."""

from __future__ import annotations

from enum import Enum


class QualityReasonCode(str, Enum):
    NO_CITATIONS = "groundedness.no_citations"
    LOW_CITATION_COVERAGE = "groundedness.low_citation_coverage"
    UNSUPPORTED_CLAIMS = "groundedness.unsupported_claims"
    LOW_FRESH_COVERAGE = "freshness.low_fresh_coverage"
    NO_FRESH_EVIDENCE = "freshness.no_fresh_evidence"
    MISSING_VIEWER_IDENTITY = "permission.missing_viewer_identity"
    NO_PERMITTED_EVIDENCE = "permission.no_permitted_evidence"

    def __str__(self) -> str:
        return self.value
