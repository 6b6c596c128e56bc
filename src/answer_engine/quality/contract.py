"""Answer quality contract: groundedness, freshness and permission safety, fail closed."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from answer_engine.config.constants import ANSWER_QUALITY_CONTRACT_VERSION
from answer_engine.config.settings import Settings
from answer_engine.exceptions import ConfigurationError
from answer_engine.models.schemas import (
    AnswerQualityContractResult,
    Citation,
    FreshnessMetrics,
    FreshnessPolicy,
    FreshnessResult,
    GroundednessMetrics,
    GroundednessPolicy,
    GroundednessResult,
    PermissionSafetyMetrics,
    PermissionSafetyPolicy,
    PermissionSafetyResult,
    QualityDimensions,
    QualityPolicySnapshot,
)
from answer_engine.scoring.reason_codes import QualityReasonCode
from answer_engine.scoring.trust import parse_timestamp


@dataclass(frozen=True)
class AnswerQualityPolicy:
    require_citations: bool = True
    min_citation_coverage: float = 0.8
    max_unsupported_claims: int = 0
    freshness_window_days: int = 30
    min_fresh_citation_coverage: float = 0.8
    min_claim_citation_overlap: float = 0.14
    permission_mode: str = "fail_closed"

    @classmethod
    def from_settings(cls, settings: Settings) -> AnswerQualityPolicy:
        for name in (
            "min_citation_coverage",
            "min_fresh_citation_coverage",
            "min_claim_citation_overlap",
        ):
            value = getattr(settings, name)
            if not 0.0 <= value <= 1.0:
                raise ConfigurationError(f"{name} must be within [0, 1], got {value}")
        if settings.freshness_window_days <= 0:
            raise ConfigurationError("freshness_window_days must be positive")
        if settings.max_unsupported_claims < 0:
            raise ConfigurationError("max_unsupported_claims must not be negative")
        return cls(
            require_citations=settings.require_citations,
            min_citation_coverage=settings.min_citation_coverage,
            max_unsupported_claims=settings.max_unsupported_claims,
            freshness_window_days=settings.freshness_window_days,
            min_fresh_citation_coverage=settings.min_fresh_citation_coverage,
            min_claim_citation_overlap=settings.min_claim_citation_overlap,
        )

    def snapshot(self) -> QualityPolicySnapshot:
        return QualityPolicySnapshot(
            groundedness=GroundednessPolicy(
                require_citations=self.require_citations,
                min_citation_coverage=self.min_citation_coverage,
                max_unsupported_claims=self.max_unsupported_claims,
            ),
            freshness=FreshnessPolicy(
                window_days=self.freshness_window_days,
                min_fresh_citation_coverage=self.min_fresh_citation_coverage,
            ),
            permission_safety=PermissionSafetyPolicy(mode=self.permission_mode),
        )


DEFAULT_POLICY = AnswerQualityPolicy()


def _status(codes: list[QualityReasonCode]) -> str:
    return "blocked" if codes else "passed"


def _evaluate_groundedness(
    policy: AnswerQualityPolicy,
    citations: list[Citation],
    citation_coverage: float,
    unsupported_claims: int,
) -> GroundednessResult:
    reasons: list[str] = []
    codes: list[QualityReasonCode] = []
    if policy.require_citations and not citations:
        reasons.append("Citations are required for every answer.")
        codes.append(QualityReasonCode.NO_CITATIONS)
    if citation_coverage < policy.min_citation_coverage:
        reasons.append(
            f"Citation coverage {citation_coverage:.2f} is below {policy.min_citation_coverage:.2f}."
        )
        codes.append(QualityReasonCode.LOW_CITATION_COVERAGE)
    if unsupported_claims > policy.max_unsupported_claims:
        reasons.append(f"{unsupported_claims} unsupported claim(s) detected.")
        codes.append(QualityReasonCode.UNSUPPORTED_CLAIMS)

    return GroundednessResult(
        status=_status(codes),
        reasons=reasons,
        reason_codes=codes,
        metrics=GroundednessMetrics(
            citation_count=len(citations),
            citation_coverage=citation_coverage,
            unsupported_claims=unsupported_claims,
        ),
    )


def _evaluate_freshness(
    policy: AnswerQualityPolicy,
    citations: list[Citation],
    updated_at_by_chunk_id: dict[str, str | None],
    allow_historical_evidence: bool,
    now: datetime,
) -> FreshnessResult:
    window = timedelta(days=policy.freshness_window_days)
    fresh = 0
    stale = 0
    for citation in citations:
        updated_at = parse_timestamp(updated_at_by_chunk_id.get(citation.chunk_id))
        if updated_at is not None and now - updated_at <= window:
            fresh += 1
        else:
            stale += 1

    coverage = fresh / len(citations) if citations else 0.0
    reasons: list[str] = []
    codes: list[QualityReasonCode] = []
    if not allow_historical_evidence:
        if not citations or fresh == 0:
            reasons.append("No fresh evidence found within the freshness window.")
            codes.append(QualityReasonCode.NO_FRESH_EVIDENCE)
        elif coverage < policy.min_fresh_citation_coverage:
            reasons.append(
                f"Fresh evidence coverage {coverage:.2f} is below "
                f"{policy.min_fresh_citation_coverage:.2f}."
            )
            codes.append(QualityReasonCode.LOW_FRESH_COVERAGE)

    return FreshnessResult(
        status=_status(codes),
        reasons=reasons,
        reason_codes=codes,
        metrics=FreshnessMetrics(
            freshness_window_days=policy.freshness_window_days,
            citation_count=len(citations),
            fresh_citation_count=fresh,
            stale_citation_count=stale,
            citation_freshness_coverage=coverage,
        ),
    )


def _evaluate_permission_safety(
    citations: list[Citation],
    candidate_count: int,
    has_viewer_principal_keys: bool,
) -> PermissionSafetyResult:
    reasons: list[str] = []
    codes: list[QualityReasonCode] = []
    if not has_viewer_principal_keys:
        reasons.append("User identity mapping is required for permission-safe retrieval.")
        codes.append(QualityReasonCode.MISSING_VIEWER_IDENTITY)
    elif candidate_count == 0 or not citations:
        reasons.append("No permitted evidence was available for this request.")
        codes.append(QualityReasonCode.NO_PERMITTED_EVIDENCE)

    return PermissionSafetyResult(
        status=_status(codes),
        reasons=reasons,
        reason_codes=codes,
        metrics=PermissionSafetyMetrics(
            candidate_count=candidate_count,
            citation_count=len(citations),
            has_viewer_principal_keys=has_viewer_principal_keys,
        ),
    )


def build_answer_quality_contract(
    citations: list[Citation],
    citation_coverage: float,
    unsupported_claims: int,
    citation_updated_at_by_chunk_id: dict[str, str | None],
    candidate_count: int,
    has_viewer_principal_keys: bool,
    allow_historical_evidence: bool = False,
    policy: AnswerQualityPolicy = DEFAULT_POLICY,
    now: datetime | None = None,
) -> AnswerQualityContractResult:
    """Evaluate each dimension independently; the contract blocks if any dimension does."""
    now = now or datetime.now(timezone.utc)
    allow_historical_evidence = bool(allow_historical_evidence)

    groundedness = _evaluate_groundedness(policy, citations, citation_coverage, unsupported_claims)
    freshness = _evaluate_freshness(
        policy, citations, citation_updated_at_by_chunk_id, allow_historical_evidence, now
    )
    permission_safety = _evaluate_permission_safety(
        citations, candidate_count, has_viewer_principal_keys
    )

    dimensions = QualityDimensions(
        groundedness=groundedness,
        freshness=freshness,
        permission_safety=permission_safety,
    )
    blocked = any(
        d.status == "blocked" for d in (groundedness, freshness, permission_safety)
    )
    return AnswerQualityContractResult(
        version=ANSWER_QUALITY_CONTRACT_VERSION,
        status="blocked" if blocked else "passed",
        policy=policy.snapshot(),
        allow_historical_evidence=allow_historical_evidence,
        dimensions=dimensions,
    )
