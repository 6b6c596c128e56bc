"""Tests for source trust scoring."""

from datetime import datetime, timedelta, timezone

import pytest

from answer_engine.scoring.trust import (
    clamp,
    compute_source_score,
    parse_timestamp,
    recency_decay,
)

NOW = datetime(2026, 3, 1, tzinfo=timezone.utc)


def test_fresh_authoritative_source_scores_full_marks():
    score = compute_source_score(NOW.isoformat(), 1.0, 1.0, 1.0, now=NOW)
    assert score.total == 100
    assert score.model_version == "v1.0.0"
    assert score.computed_at == NOW


@pytest.mark.parametrize(
    "updated_at,source,author,coverage",
    [
        (None, 5.0, -3.0, 0.5),
        ("not a date", float("nan"), 2.0, -1.0),
        ((NOW + timedelta(days=3)).isoformat(), 0.3, 0.3, 0.3),
        ((NOW - timedelta(days=400)).isoformat(), 0.0, 0.0, 0.0),
    ],
)
def test_total_and_factors_stay_in_range(updated_at, source, author, coverage):
    score = compute_source_score(updated_at, source, author, coverage, now=NOW)
    assert 0 <= score.total <= 100
    for value in (
        score.factors.recency,
        score.factors.source_authority,
        score.factors.author_authority,
        score.factors.citation_coverage,
    ):
        assert 0.0 <= value <= 1.0


def test_total_rounds_half_up():
    # 0.5 * 0.25 = 0.125 -> 12.5 points
    score = compute_source_score(None, 0.5, 0.0, 0.0, now=NOW)
    assert score.total == 13


def test_recency_half_life_is_fourteen_days():
    updated = NOW - timedelta(days=14)
    assert recency_decay(updated, NOW) == pytest.approx(0.5)


def test_recency_decay_non_increasing_with_age():
    values = [recency_decay(NOW - timedelta(hours=h), NOW) for h in range(0, 24 * 90, 12)]
    assert all(a >= b for a, b in zip(values, values[1:]))


def test_future_timestamp_treated_as_age_zero():
    assert recency_decay(NOW + timedelta(days=5), NOW) == 1.0


def test_unparsable_timestamp_decays_to_zero():
    assert recency_decay("yesterday-ish", NOW) == 0.0
    assert recency_decay(None, NOW) == 0.0


def test_parse_timestamp_handles_zulu_and_naive():
    assert parse_timestamp("2026-02-27T00:00:00Z") == datetime(2026, 2, 27, tzinfo=timezone.utc)
    naive = parse_timestamp(datetime(2026, 2, 27))
    assert naive.tzinfo is timezone.utc


def test_clamp_nan_goes_low():
    assert clamp(float("nan")) == 0.0
    assert clamp(1.7) == 1.0
    assert clamp(-0.2) == 0.0
