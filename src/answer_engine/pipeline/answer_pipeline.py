"""Answer query orchestrator: retrieve, generate, verify, gate, persist."""

from __future__ import annotations

import asyncio
import re
from collections.abc import AsyncGenerator, Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from uuid import uuid4

from answer_engine.config.constants import (
    BLOCKED_ANSWER_TEXT,
    JOB_LOW_CONFIDENCE_REVIEW,
    JOB_QUALITY_EVAL_LOOP,
    USAGE_SUMMARY_BLOCKED,
    USAGE_SUMMARY_DELIVERED,
)
from answer_engine.config.settings import Settings
from answer_engine.exceptions import AnswerEngineError, GroundingError
from answer_engine.generation.answer_generator import AnswerGenerator
from answer_engine.generation.prompt_templates import augment_question_for_mode
from answer_engine.models.domain import Chunk, SearchFilters
from answer_engine.models.schemas import (
    AnswerClaim,
    AnswerQueryRequest,
    AnswerQueryResponse,
    ChunkEvent,
    CompleteEvent,
    ErrorEvent,
    EvidenceItem,
    GroundingMeta,
    QueryFilters,
    SourcesEvent,
    StartEvent,
    Timings,
    Traceability,
)
from answer_engine.observability.logger import get_logger
from answer_engine.observability.metrics import (
    log_generation_metrics,
    log_quality_contract,
    log_retrieval_metrics,
)
from answer_engine.observability.tracing import TraceContext
from answer_engine.protocols.answer_store import AnswerStore
from answer_engine.protocols.chunk_store import ChunkStore
from answer_engine.protocols.embedder import Embedder
from answer_engine.protocols.jobs import JobScheduler, UsageMeter
from answer_engine.quality.contract import AnswerQualityPolicy, build_answer_quality_contract
from answer_engine.query.expansion import generate_query_variations, normalize_query
from answer_engine.retrieval.evidence import (
    build_evidence_items,
    cap_context_chunks,
    to_context_chunks,
)
from answer_engine.scoring.confidence import (
    ConfidenceScorer,
    average_citation_trust,
    compute_retrieval_score,
)
from answer_engine.scoring.trust import clamp
from answer_engine.verification.claims import build_claims

logger = get_logger("answer_pipeline")

_STREAM_TOKEN = re.compile(r"\S+\s*|\s+")


def split_stream_chunks(text: str) -> list[str]:
    """Split text into word-sized pieces that concatenate back to the original."""
    return _STREAM_TOKEN.findall(text)


def build_search_filters(
    filters: QueryFilters | None, viewer_principal_keys: list[str] | None
) -> SearchFilters:
    filters = filters or QueryFilters()
    date_range = filters.date_range
    return SearchFilters(
        source_type=filters.source_type,
        owner_id=filters.owner_id,
        author=filters.author,
        tags=list(filters.tags),
        date_from=date_range.from_ if date_range else None,
        date_to=date_range.to if date_range else None,
        min_source_score=filters.min_source_score,
        document_ids=list(filters.document_ids),
        knowledge_object_ids=list(filters.knowledge_object_ids),
        viewer_principal_keys=viewer_principal_keys,
    )


def compute_traceability(
    claims: list[AnswerClaim], sources: list[EvidenceItem], citation_coverage: float
) -> Traceability:
    supported = sum(1 for c in claims if c.supported)
    coverage = supported / len(claims) if claims else citation_coverage
    return Traceability(
        coverage=clamp(coverage),
        missing_author_count=sum(1 for s in sources if not s.provenance.author),
        missing_date_count=sum(1 for s in sources if not s.provenance.last_updated_at),
    )


@dataclass
class RetrievalResult:
    chunks: list[Chunk]
    sources: list[EvidenceItem]
    retrieval_score: float


class AnswerQueryPipeline:
    def __init__(
        self,
        chunk_store: ChunkStore,
        embedder: Embedder,
        answer_generator: AnswerGenerator,
        answer_store: AnswerStore,
        job_scheduler: JobScheduler,
        usage_meter: UsageMeter,
        confidence_scorer: ConfidenceScorer,
        settings: Settings,
        policy: AnswerQualityPolicy | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._chunk_store = chunk_store
        self._embedder = embedder
        self._generator = answer_generator
        self._answer_store = answer_store
        self._jobs = job_scheduler
        self._usage = usage_meter
        self._confidence = confidence_scorer
        self._settings = settings
        self._policy = policy or AnswerQualityPolicy.from_settings(settings)
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._side_effects: set[asyncio.Task] = set()

    @property
    def policy(self) -> AnswerQualityPolicy:
        return self._policy

    async def execute(
        self,
        org_id: str,
        request: AnswerQueryRequest,
        viewer_principal_keys: list[str] | None = None,
        actor_id: str | None = None,
        request_id: str | None = None,
    ) -> AnswerQueryResponse:
        trace = TraceContext(trace_id=request_id)
        retrieval = await self._retrieve(org_id, request, viewer_principal_keys, trace)
        return await self._answer(
            org_id, request, retrieval, viewer_principal_keys, actor_id, trace
        )

    async def execute_stream(
        self,
        org_id: str,
        request: AnswerQueryRequest,
        viewer_principal_keys: list[str] | None = None,
        actor_id: str | None = None,
        request_id: str | None = None,
    ) -> AsyncGenerator[dict, None]:
        """Execute the pipeline and yield SSE-ready dicts ``{"event": ..., "data": <json>}``.

        Order: start, sources, chunk*, then complete or error. Chunks are cut from the
        already gated answer, so nothing provisional reaches the client.
        """
        trace = TraceContext(trace_id=request_id)
        request_id = trace.trace_id

        yield _event(StartEvent(request_id=request_id, mode=request.mode))
        try:
            retrieval = await self._retrieve(org_id, request, viewer_principal_keys, trace)
            yield _event(
                SourcesEvent(
                    request_id=request_id,
                    sources=retrieval.sources,
                    retrieval_ms=trace.duration_of("retrieval"),
                )
            )
            response = await self._answer(
                org_id, request, retrieval, viewer_principal_keys, actor_id, trace
            )
        except AnswerEngineError as e:
            logger.error("answer_stream_failed", request_id=request_id, error=str(e))
            yield _event(ErrorEvent(request_id=request_id, message=str(e)))
            return

        first_token_ms = round(trace.elapsed_ms)
        for index, piece in enumerate(split_stream_chunks(response.answer)):
            yield _event(
                ChunkEvent(
                    request_id=request_id,
                    text=piece,
                    first_token_ms=first_token_ms if index == 0 else None,
                )
            )
        yield _event(
            CompleteEvent(
                request_id=request_id,
                payload=response,
                completion_ms=round(trace.elapsed_ms),
            )
        )

    async def _retrieve(
        self,
        org_id: str,
        request: AnswerQueryRequest,
        viewer_principal_keys: list[str] | None,
        trace: TraceContext,
    ) -> RetrievalResult:
        limit = self._settings.retrieval_limit
        query = normalize_query(request.query)
        filters = build_search_filters(request.filters, viewer_principal_keys)

        with trace.span("retrieval"):
            embedding = await self._embedder.embed_query(query)
            candidates = await self._chunk_store.hybrid_search(
                org_id, query, embedding, filters, limit
            )
            chunks = [c.chunk for c in candidates]
            if len(chunks) < self._settings.query_expansion_min_candidates:
                chunks = await self._expand(org_id, query, filters, chunks, limit)

            sources = build_evidence_items(chunks)
            retrieval_score = compute_retrieval_score(sources)

        log_retrieval_metrics(
            trace.trace_id,
            retrieval_score,
            [c.combined_score for c in candidates],
            len(chunks),
            len({c.document_id or c.doc_version_id for c in chunks}),
        )
        return RetrievalResult(chunks=chunks, sources=sources, retrieval_score=retrieval_score)

    async def _expand(
        self,
        org_id: str,
        query: str,
        filters: SearchFilters,
        chunks: list[Chunk],
        limit: int,
    ) -> list[Chunk]:
        """Search rephrasings concurrently; earlier results win on duplicate chunk ids."""
        variations = generate_query_variations(query)[1:4]
        if not variations:
            return chunks

        async def search(variation: str) -> list[Chunk]:
            embedding = await self._embedder.embed_query(variation)
            hits = await self._chunk_store.hybrid_search(
                org_id, variation, embedding, filters, limit
            )
            return [h.chunk for h in hits]

        results = await asyncio.gather(*(search(v) for v in variations))
        merged: dict[str, Chunk] = {c.chunk_id: c for c in chunks}
        for hits in results:
            for chunk in hits:
                merged.setdefault(chunk.chunk_id, chunk)

        logger.info(
            "query_expanded",
            variations=len(variations),
            before=len(chunks),
            after=len(merged),
        )
        return list(merged.values())[:limit]

    async def _answer(
        self,
        org_id: str,
        request: AnswerQueryRequest,
        retrieval: RetrievalResult,
        viewer_principal_keys: list[str] | None,
        actor_id: str | None,
        trace: TraceContext,
    ) -> AnswerQueryResponse:
        chunks = retrieval.chunks
        chunk_text_by_id = {c.chunk_id: c.text for c in chunks}
        chunk_scores = {c.chunk_id: c.source_score for c in chunks}
        updated_at_by_id = {c.chunk_id: c.updated_at for c in chunks}

        with trace.span("generation"):
            question = augment_question_for_mode(request.query, request.mode)
            context = cap_context_chunks(
                to_context_chunks(chunks), self._settings.context_max_tokens
            )
            outcome = await self._generator.generate_grounded(
                question, context, retrieval.sources, chunk_text_by_id
            )

        citations = outcome.citations
        grounding = outcome.grounding
        claims = build_claims(
            outcome.answer.answer,
            citations,
            chunk_text_by_id,
            min_overlap=self._policy.min_claim_citation_overlap,
        )
        traceability = compute_traceability(claims, retrieval.sources, grounding.citation_coverage)

        citation_trust = average_citation_trust(citations, chunk_scores)
        confidence = self._confidence.score(
            model_confidence=outcome.answer.confidence,
            retrieval_score=retrieval.retrieval_score,
            citation_coverage=grounding.citation_coverage,
            citation_trust=citation_trust,
        )

        contract = build_answer_quality_contract(
            citations=citations,
            citation_coverage=grounding.citation_coverage,
            unsupported_claims=grounding.unsupported_claim_count,
            citation_updated_at_by_chunk_id=updated_at_by_id,
            candidate_count=len(chunks),
            has_viewer_principal_keys=bool(viewer_principal_keys),
            allow_historical_evidence=request.allow_historical_evidence,
            policy=self._policy,
            now=self._clock(),
        )
        blocked = contract.status == "blocked"
        log_generation_metrics(
            trace.trace_id,
            grounding.citation_coverage,
            grounding.unsupported_claim_count,
            outcome.attempts,
            confidence,
        )
        log_quality_contract(
            trace.trace_id,
            contract.status,
            [code.value for code in contract.reason_codes],
            contract.allow_historical_evidence,
        )

        if not blocked and not citations:
            raise GroundingError("missing citations for generated claim")

        if citations:
            source_score = sum(chunk_scores.get(c.chunk_id, 0.0) for c in citations) / len(citations)
        else:
            source_score = 0.0
        source_score = source_score or outcome.answer.source_score

        response = AnswerQueryResponse(
            answer=BLOCKED_ANSWER_TEXT if blocked else outcome.answer.answer,
            confidence=confidence,
            source_score=source_score,
            citations=citations,
            claims=[] if blocked else claims,
            sources=retrieval.sources,
            grounding=GroundingMeta(
                citation_coverage=grounding.citation_coverage,
                unsupported_claim_count=grounding.unsupported_claim_count,
                retrieval_score=retrieval.retrieval_score,
            ),
            traceability=traceability,
            quality_contract=contract,
            timings=Timings(
                retrieval_ms=trace.duration_of("retrieval"),
                generation_ms=trace.duration_of("generation"),
            ),
            mode=request.mode,
            model=self._generator.model_name,
        )

        with trace.span("persistence"):
            saved = await self._answer_store.save_answer(
                org_id, request.query, response, request.thread_id, actor_id
            )
        response.thread_id = saved.thread_id
        response.message_id = saved.message_id

        self._schedule_side_effects(org_id, response, actor_id, trace.trace_id)
        logger.info(
            "answer_completed",
            trace_id=trace.trace_id,
            org_id=org_id,
            status=contract.status,
            citations=len(citations),
            latency_ms=round(trace.elapsed_ms, 2),
        )
        return response

    def _schedule_side_effects(
        self,
        org_id: str,
        response: AnswerQueryResponse,
        actor_id: str | None,
        request_id: str,
    ) -> None:
        contract = response.quality_contract
        blocked = contract.status == "blocked"
        self._spawn(
            "usage_meter",
            self._usage.record_usage(
                org_id,
                USAGE_SUMMARY_BLOCKED if blocked else USAGE_SUMMARY_DELIVERED,
                0 if blocked else 1,
                actor_id=actor_id,
                metadata={
                    "request_id": request_id,
                    "mode": response.mode,
                    "citations": len(response.citations),
                    "reason_codes": [code.value for code in contract.reason_codes],
                },
            ),
        )
        if not blocked:
            return

        s = self._settings
        self._spawn(
            JOB_LOW_CONFIDENCE_REVIEW,
            self._jobs.enqueue(
                JOB_LOW_CONFIDENCE_REVIEW,
                {
                    "org_id": org_id,
                    "confidence_threshold": s.review_confidence_threshold,
                    "window_minutes": s.review_window_minutes,
                    "triggered_by": actor_id,
                },
            ),
        )
        self._spawn(
            JOB_QUALITY_EVAL_LOOP,
            self._jobs.enqueue(
                JOB_QUALITY_EVAL_LOOP,
                {
                    "org_id": org_id,
                    "window_minutes": s.eval_window_minutes,
                    "min_samples": s.eval_min_samples,
                    "min_pass_rate": s.eval_min_pass_rate,
                    "triggered_by": actor_id,
                    "trigger_reason": "chat_answer_blocked",
                    "source_request_id": request_id,
                },
            ),
        )

    def _spawn(self, name: str, coro) -> None:
        task = asyncio.create_task(_best_effort(name, coro))
        self._side_effects.add(task)
        task.add_done_callback(self._side_effects.discard)

    async def wait_for_side_effects(self) -> None:
        """Wait for in-flight usage and job writes, e.g. at shutdown."""
        if self._side_effects:
            await asyncio.gather(*self._side_effects)


async def _best_effort(name: str, coro) -> None:
    try:
        await coro
    except Exception as e:
        logger.warning("side_effect_failed", side_effect=name, error=str(e))


def _event(event) -> dict:
    return {"event": event.type, "data": event.model_dump_json()}
