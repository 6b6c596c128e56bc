"""Core domain objects used throughout the system."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from answer_engine.models.schemas import Citation


@dataclass
class Chunk:
    chunk_id: str
    doc_version_id: str
    text: str
    source_url: str
    source_score: float
    updated_at: str | None = None
    author: str | None = None
    connector_type: str | None = None
    document_id: str | None = None
    document_title: str | None = None
    source_format: str | None = None
    source_external_id: str | None = None
    canonical_source_url: str | None = None
    source_checksum: str | None = None
    sync_run_id: str | None = None


@dataclass
class RankedCandidate:
    chunk: Chunk
    combined_score: float
    vector_rank: int | None = None
    lexical_rank: int | None = None
    vector_distance: float | None = None
    lexical_score: float | None = None


@dataclass
class SearchFilters:
    source_type: str | None = None
    owner_id: str | None = None
    author: str | None = None
    tags: list[str] = field(default_factory=list)
    date_from: str | None = None
    date_to: str | None = None
    min_source_score: float | None = None
    document_ids: list[str] = field(default_factory=list)
    knowledge_object_ids: list[str] = field(default_factory=list)
    # None means "no identity supplied"; ACL filtering is skipped entirely.
    viewer_principal_keys: list[str] | None = None


@dataclass
class ContextChunk:
    chunk_id: str
    doc_version_id: str
    source_url: str
    text: str
    source_score: float


@dataclass
class TrustFactors:
    recency: float
    source_authority: float
    author_authority: float
    citation_coverage: float


@dataclass
class SourceScore:
    total: int
    factors: TrustFactors
    computed_at: datetime
    model_version: str


@dataclass
class GroundedAnswer:
    answer: str
    citations: list[Citation] = field(default_factory=list)
    confidence: float = 0.0
    source_score: float = 0.0


@dataclass
class GroundingAssessment:
    citation_coverage: float
    unsupported_claim_count: int
    sentence_count: int


@dataclass
class GenerationOutcome:
    """Final answer attempt chosen by the regeneration policy."""

    answer: GroundedAnswer
    citations: list[Citation]
    grounding: GroundingAssessment
    attempts: int


@dataclass
class SavedAnswer:
    thread_id: str
    message_id: str
    user_message_id: str
