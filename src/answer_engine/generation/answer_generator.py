"""Answer generation with one bounded, coverage-driven regeneration."""

from __future__ import annotations

from answer_engine.config.constants import FALLBACK_CITATION_COUNT
from answer_engine.generation.prompt_templates import strict_grounding_prompt
from answer_engine.models.domain import (
    ContextChunk,
    GenerationOutcome,
    GroundedAnswer,
    GroundingAssessment,
)
from answer_engine.models.schemas import Citation, EvidenceItem
from answer_engine.observability.logger import get_logger
from answer_engine.protocols.llm import LanguageModelProvider
from answer_engine.verification.grounding import assess_grounding

logger = get_logger("generation")


def fallback_citations(existing: list[Citation], sources: list[EvidenceItem]) -> list[Citation]:
    """Use the generator's citations, or the top evidence citations when it gave none."""
    if existing:
        return list(existing)
    return [s.citation for s in sources[:FALLBACK_CITATION_COUNT]]


class AnswerGenerator:
    def __init__(self, llm: LanguageModelProvider, min_citation_coverage: float = 0.8) -> None:
        self._llm = llm
        self._min_citation_coverage = min_citation_coverage

    @property
    def model_name(self) -> str:
        return self._llm.name

    async def _attempt(
        self,
        question: str,
        context_chunks: list[ContextChunk],
        sources: list[EvidenceItem],
        chunk_text_by_id: dict[str, str],
    ) -> tuple[GroundedAnswer, list[Citation], GroundingAssessment]:
        answer = await self._llm.answer_question(question, context_chunks)
        citations = fallback_citations(answer.citations, sources)
        grounding = assess_grounding(answer.answer, citations, chunk_text_by_id)
        return answer, citations, grounding

    async def generate_grounded(
        self,
        question: str,
        context_chunks: list[ContextChunk],
        sources: list[EvidenceItem],
        chunk_text_by_id: dict[str, str],
    ) -> GenerationOutcome:
        """Generate once; below the coverage bar, regenerate once under strict grounding.

        The retry replaces the first attempt only when its coverage is at least as high.
        Provider errors propagate unchanged.
        """
        answer, citations, grounding = await self._attempt(
            question, context_chunks, sources, chunk_text_by_id
        )
        attempts = 1

        if grounding.citation_coverage < self._min_citation_coverage:
            attempts = 2
            retry, retry_citations, retry_grounding = await self._attempt(
                strict_grounding_prompt(question), context_chunks, sources, chunk_text_by_id
            )
            kept = retry_grounding.citation_coverage >= grounding.citation_coverage
            logger.info(
                "grounding_retry",
                first_coverage=round(grounding.citation_coverage, 4),
                retry_coverage=round(retry_grounding.citation_coverage, 4),
                kept_retry=kept,
            )
            if kept:
                answer, citations, grounding = retry, retry_citations, retry_grounding

        logger.info(
            "generated_answer",
            question_len=len(question),
            answer_len=len(answer.answer),
            citations=len(citations),
            attempts=attempts,
        )
        return GenerationOutcome(
            answer=answer,
            citations=citations,
            grounding=grounding,
            attempts=attempts,
        )
