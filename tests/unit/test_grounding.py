"""Tests for sentence grounding and citation coverage."""

import pytest

from answer_engine.models.schemas import Citation
from answer_engine.verification.citations import citation_coverage, validate_citation
from answer_engine.verification.grounding import assess_grounding
from answer_engine.verification.terms import split_sentences, term_set


def _cite(chunk_id: str = "c1", **kw) -> Citation:
    fields = dict(
        chunk_id=chunk_id,
        doc_version_id=f"{chunk_id}-v1",
        source_url="https://docs.google.com/document/d/1",
        start_offset=0,
        end_offset=40,
    )
    fields.update(kw)
    return Citation(**fields)


CHUNKS = {"c1": "Quarterly revenue targets are reviewed by the finance committee every month."}


class TestTerms:
    def test_split_drops_short_fragments(self):
        text = "Short one. This sentence is long enough to count!\nAnother sufficiently long line here"
        assert split_sentences(text) == [
            "This sentence is long enough to count!",
            "Another sufficiently long line here",
        ]

    def test_term_set_lowercases_and_filters(self):
        assert term_set("The Finance-Committee met, at 9am.") == {"finance", "committee"}


class TestAssessGrounding:
    def test_fully_supported(self):
        answer = "Revenue targets are reviewed monthly. The finance committee owns the review."
        result = assess_grounding(answer, [_cite()], CHUNKS)
        assert result.citation_coverage == 1.0
        assert result.unsupported_claim_count == 0
        assert result.sentence_count == 2

    def test_partial_support(self):
        answer = "Revenue targets are reviewed monthly. Office plants get watered on Tuesdays."
        result = assess_grounding(answer, [_cite()], CHUNKS)
        assert result.citation_coverage == pytest.approx(0.5)
        assert result.unsupported_claim_count == 1

    def test_no_sentences_counts_as_covered(self):
        result = assess_grounding("Too short.", [], CHUNKS)
        assert result.citation_coverage == 1.0
        assert result.sentence_count == 0

    def test_unknown_chunk_contributes_nothing(self):
        answer = "Revenue targets are reviewed monthly by finance."
        result = assess_grounding(answer, [_cite("missing")], CHUNKS)
        assert result.citation_coverage == 0.0
        assert result.unsupported_claim_count == 1


class TestCitations:
    def test_valid_citation(self):
        assert validate_citation(_cite())

    @pytest.mark.parametrize(
        "overrides",
        [
            {"chunk_id": ""},
            {"doc_version_id": ""},
            {"start_offset": 10, "end_offset": 5},
            {"source_url": "ftp://files/doc"},
        ],
    )
    def test_invalid_citation(self, overrides):
        assert not validate_citation(_cite(**overrides))

    def test_coverage_counts_only_valid_citations(self):
        assert citation_coverage(4, [_cite(), _cite(source_url="file:///doc")]) == 0.25

    def test_coverage_capped_and_defaults(self):
        assert citation_coverage(1, [_cite(), _cite("c2")]) == 1.0
        assert citation_coverage(0, []) == 1.0
