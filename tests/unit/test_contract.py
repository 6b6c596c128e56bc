"""Tests for the answer quality contract."""

from datetime import datetime, timedelta, timezone

import pytest

from answer_engine.exceptions import ConfigurationError
from answer_engine.models.schemas import Citation
from answer_engine.quality.contract import (
    DEFAULT_POLICY,
    AnswerQualityPolicy,
    build_answer_quality_contract,
)

NOW = datetime(2026, 3, 1, tzinfo=timezone.utc)
FRESH = (NOW - timedelta(days=3)).isoformat()
STALE = (NOW - timedelta(days=90)).isoformat()


def _cite(chunk_id: str) -> Citation:
    return Citation(
        chunk_id=chunk_id,
        doc_version_id=f"{chunk_id}-v1",
        source_url="https://docs.google.com/document/d/1",
        start_offset=0,
        end_offset=50,
    )


def _contract(citations=None, updated=None, **overrides):
    citations = [_cite("c1")] if citations is None else citations
    args = dict(
        citations=citations,
        citation_coverage=1.0,
        unsupported_claims=0,
        citation_updated_at_by_chunk_id=updated if updated is not None else {"c1": FRESH},
        candidate_count=3,
        has_viewer_principal_keys=True,
        now=NOW,
    )
    args.update(overrides)
    return build_answer_quality_contract(**args)


def test_all_dimensions_pass():
    contract = _contract()
    assert contract.status == "passed"
    assert contract.version == "v1"
    assert contract.reason_codes == []
    assert contract.dimensions.freshness.metrics.fresh_citation_count == 1


def test_no_citations_fails_closed_everywhere():
    contract = _contract(citations=[], updated={})
    assert contract.status == "blocked"
    assert contract.dimensions.groundedness.reason_codes == ["groundedness.no_citations"]
    assert contract.dimensions.freshness.reason_codes == ["freshness.no_fresh_evidence"]
    assert contract.dimensions.permission_safety.reason_codes == [
        "permission.no_permitted_evidence"
    ]


def test_low_coverage_and_unsupported_claims():
    contract = _contract(citation_coverage=0.5, unsupported_claims=2)
    groundedness = contract.dimensions.groundedness
    assert groundedness.status == "blocked"
    assert groundedness.reason_codes == [
        "groundedness.low_citation_coverage",
        "groundedness.unsupported_claims",
    ]
    assert contract.dimensions.freshness.status == "passed"


def test_stale_citations_block_without_override():
    contract = _contract(updated={"c1": STALE})
    assert contract.status == "blocked"
    assert contract.reason_codes == ["freshness.no_fresh_evidence"]
    assert contract.dimensions.freshness.metrics.stale_citation_count == 1


def test_historical_override_passes_freshness_but_keeps_metrics():
    contract = _contract(updated={"c1": STALE}, allow_historical_evidence=True)
    assert contract.status == "passed"
    assert contract.allow_historical_evidence is True
    metrics = contract.dimensions.freshness.metrics
    assert metrics.citation_freshness_coverage == 0.0
    assert metrics.stale_citation_count == 1


def test_low_fresh_coverage():
    citations = [_cite("c1"), _cite("c2")]
    contract = _contract(citations=citations, updated={"c1": FRESH, "c2": STALE})
    assert contract.dimensions.freshness.reason_codes == ["freshness.low_fresh_coverage"]
    assert contract.dimensions.freshness.metrics.citation_freshness_coverage == 0.5


def test_unparsable_or_missing_dates_count_as_stale():
    citations = [_cite("c1"), _cite("c2")]
    contract = _contract(citations=citations, updated={"c1": "last tuesday"})
    metrics = contract.dimensions.freshness.metrics
    assert metrics.fresh_citation_count == 0
    assert metrics.stale_citation_count == 2


def test_missing_viewer_identity_blocks():
    contract = _contract(has_viewer_principal_keys=False)
    assert contract.status == "blocked"
    assert contract.dimensions.permission_safety.reason_codes == [
        "permission.missing_viewer_identity"
    ]
    assert contract.dimensions.groundedness.status == "passed"


def test_no_candidates_blocks_permission_safety():
    contract = _contract(candidate_count=0)
    assert contract.dimensions.permission_safety.reason_codes == [
        "permission.no_permitted_evidence"
    ]


def test_custom_policy_is_applied_and_snapshotted():
    policy = AnswerQualityPolicy(min_citation_coverage=0.5, freshness_window_days=120)
    contract = _contract(citation_coverage=0.6, updated={"c1": STALE}, policy=policy)
    assert contract.status == "passed"
    assert contract.policy.freshness.window_days == 120
    assert contract.policy.groundedness.min_citation_coverage == 0.5


def test_default_snapshot():
    snapshot = DEFAULT_POLICY.snapshot()
    assert snapshot.groundedness.require_citations is True
    assert snapshot.groundedness.max_unsupported_claims == 0
    assert snapshot.freshness.window_days == 30
    assert snapshot.freshness.min_fresh_citation_coverage == 0.8
    assert snapshot.permission_safety.mode == "fail_closed"


def test_policy_from_settings(settings):
    policy = AnswerQualityPolicy.from_settings(settings)
    assert policy == DEFAULT_POLICY


@pytest.mark.parametrize(
    "overrides",
    [
        {"min_citation_coverage": 1.5},
        {"min_fresh_citation_coverage": -0.1},
        {"freshness_window_days": 0},
        {"max_unsupported_claims": -1},
    ],
)
def test_policy_from_settings_rejects_bad_values(settings, overrides):
    with pytest.raises(ConfigurationError):
        AnswerQualityPolicy.from_settings(settings.model_copy(update=overrides))
