"""Pydantic models for API request/response serialization."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

from answer_engine.scoring.reason_codes import QualityReasonCode

AnswerMode = Literal["ask", "summarize", "trace"]
DimensionStatus = Literal["passed", "blocked"]
EvidenceReason = Literal["vector_similarity", "text_match", "trusted_source", "recency_boost"]
ConnectorType = Literal[
    "google_docs",
    "google_drive",
    "slack",
    "microsoft_teams",
    "microsoft_sharepoint",
    "microsoft_onedrive",
    "knowledge_object",
]


class Citation(BaseModel):
    model_config = {"frozen": True}

    chunk_id: str
    doc_version_id: str
    source_url: str
    start_offset: int = 0
    end_offset: int = 0


class EvidenceProvenance(BaseModel):
    document_id: str | None = None
    document_title: str | None = None
    document_version_id: str
    source_external_id: str | None = None
    source_format: str | None = None
    canonical_source_url: str
    author: str | None = None
    last_updated_at: str | None = None
    sync_run_id: str | None = None
    checksum: str | None = None


class EvidenceItem(BaseModel):
    id: str
    title: str
    connector_type: ConnectorType
    source_url: str
    excerpt: str
    source_score: float
    relevance: float
    reason: EvidenceReason
    citation: Citation
    provenance: EvidenceProvenance


class AnswerClaim(BaseModel):
    id: str
    text: str
    order: int
    supported: bool
    citations: list[Citation] = Field(default_factory=list)


# --- Answer quality contract ---


class GroundednessPolicy(BaseModel):
    require_citations: bool
    min_citation_coverage: float
    max_unsupported_claims: int


class FreshnessPolicy(BaseModel):
    window_days: int
    min_fresh_citation_coverage: float


class PermissionSafetyPolicy(BaseModel):
    mode: Literal["fail_closed"] = "fail_closed"


class QualityPolicySnapshot(BaseModel):
    groundedness: GroundednessPolicy
    freshness: FreshnessPolicy
    permission_safety: PermissionSafetyPolicy


class GroundednessMetrics(BaseModel):
    citation_count: int
    citation_coverage: float
    unsupported_claims: int


class FreshnessMetrics(BaseModel):
    freshness_window_days: int
    citation_count: int
    fresh_citation_count: int
    stale_citation_count: int
    citation_freshness_coverage: float


class PermissionSafetyMetrics(BaseModel):
    candidate_count: int
    citation_count: int
    has_viewer_principal_keys: bool


class GroundednessResult(BaseModel):
    status: DimensionStatus
    reasons: list[str] = Field(default_factory=list)
    reason_codes: list[QualityReasonCode] = Field(default_factory=list)
    metrics: GroundednessMetrics


class FreshnessResult(BaseModel):
    status: DimensionStatus
    reasons: list[str] = Field(default_factory=list)
    reason_codes: list[QualityReasonCode] = Field(default_factory=list)
    metrics: FreshnessMetrics


class PermissionSafetyResult(BaseModel):
    status: DimensionStatus
    reasons: list[str] = Field(default_factory=list)
    reason_codes: list[QualityReasonCode] = Field(default_factory=list)
    metrics: PermissionSafetyMetrics


class QualityDimensions(BaseModel):
    groundedness: GroundednessResult
    freshness: FreshnessResult
    permission_safety: PermissionSafetyResult


class AnswerQualityContractResult(BaseModel):
    version: str
    status: DimensionStatus
    policy: QualityPolicySnapshot
    allow_historical_evidence: bool
    dimensions: QualityDimensions

    @property
    def reason_codes(self) -> list[QualityReasonCode]:
        return (
            self.dimensions.groundedness.reason_codes
            + self.dimensions.freshness.reason_codes
            + self.dimensions.permission_safety.reason_codes
        )


# --- Query request / response ---


class DateRange(BaseModel):
    from_: str | None = Field(default=None, alias="from")
    to: str | None = None

    model_config = {"populate_by_name": True}


class QueryFilters(BaseModel):
    source_type: ConnectorType | None = None
    date_range: DateRange | None = None
    author: str | None = None
    owner_id: str | None = None
    tags: list[str] = Field(default_factory=list)
    min_source_score: float | None = Field(default=None, ge=0, le=100)
    document_ids: list[str] = Field(default_factory=list)
    knowledge_object_ids: list[str] = Field(default_factory=list)


class AnswerQueryRequest(BaseModel):
    query: str = Field(min_length=2)
    mode: AnswerMode = "ask"
    thread_id: str | None = Field(default=None, min_length=8)
    allow_historical_evidence: bool = False
    filters: QueryFilters | None = None


class GroundingMeta(BaseModel):
    citation_coverage: float
    unsupported_claim_count: int
    retrieval_score: float


class Traceability(BaseModel):
    coverage: float
    missing_author_count: int
    missing_date_count: int


class Timings(BaseModel):
    retrieval_ms: int
    generation_ms: int


class AnswerQueryResponse(BaseModel):
    answer: str
    confidence: float
    source_score: float
    citations: list[Citation]
    claims: list[AnswerClaim]
    sources: list[EvidenceItem]
    grounding: GroundingMeta
    traceability: Traceability
    quality_contract: AnswerQualityContractResult
    timings: Timings
    mode: AnswerMode
    model: str
    thread_id: str | None = None
    message_id: str | None = None


# --- Streaming events ---


class StartEvent(BaseModel):
    type: Literal["start"] = "start"
    request_id: str
    mode: AnswerMode


class SourcesEvent(BaseModel):
    type: Literal["sources"] = "sources"
    request_id: str
    sources: list[EvidenceItem]
    retrieval_ms: int


class ChunkEvent(BaseModel):
    type: Literal["chunk"] = "chunk"
    request_id: str
    text: str
    first_token_ms: int | None = None


class CompleteEvent(BaseModel):
    type: Literal["complete"] = "complete"
    request_id: str
    payload: AnswerQueryResponse
    completion_ms: int


class ErrorEvent(BaseModel):
    type: Literal["error"] = "error"
    request_id: str
    message: str


# --- Reporting ---


class RollingPassRates(BaseModel):
    total: int
    blocked: int
    pass_rate: float
    groundedness_pass_rate: float
    freshness_pass_rate: float
    permission_safety_pass_rate: float


class LatestContractRun(BaseModel):
    status: DimensionStatus
    groundedness_status: DimensionStatus
    freshness_status: DimensionStatus
    permission_safety_status: DimensionStatus
    citation_coverage: float
    unsupported_claims: int
    freshness_coverage: float
    stale_citation_count: int
    citation_count: int
    historical_override: bool
    reason_codes: list[QualityReasonCode]
    created_at: str


class QualityContractSummary(BaseModel):
    version: str
    policy: QualityPolicySnapshot
    rolling_7d: RollingPassRates
    latest: LatestContractRun | None = None


class HealthResponse(BaseModel):
    status: str
    chunk_count: int
    knowledge_chunk_count: int
    answer_count: int
