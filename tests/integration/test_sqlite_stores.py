"""Integration tests for the SQLite corpus, answer and job stores."""

import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

import aiosqlite
import pytest

from answer_engine.config.settings import Settings
from answer_engine.embeddings.hash_embedder import HashEmbedder
from answer_engine.exceptions import PersistenceError
from answer_engine.models.domain import Chunk, SearchFilters
from answer_engine.models.schemas import (
    AnswerClaim,
    AnswerQueryResponse,
    Citation,
    GroundingMeta,
    Timings,
    Traceability,
)
from answer_engine.quality.contract import DEFAULT_POLICY, build_answer_quality_contract
from answer_engine.retrieval.permissions import PermissionRule, RuleEffect
from answer_engine.storage.sqlite_answer_store import SQLiteAnswerStore
from answer_engine.storage.sqlite_chunk_store import SQLiteChunkStore
from answer_engine.storage.sqlite_job_store import SQLiteJobStore

ORG = "org_1"
NOW = datetime(2026, 3, 1, tzinfo=timezone.utc)
FRESH = (NOW - timedelta(days=2)).isoformat()
OLD = (NOW - timedelta(days=60)).isoformat()
QUERY = "incident response policy"

ANA = ["email:ana@company.com", "user:u-ana", "org:org_1"]
BOB = ["email:bob@company.com", "user:u-bob", "org:org_1"]
BOSS = ["email:boss@company.com", "user:u-boss", "org:org_1"]


def _chunk(chunk_id: str, text: str, **kw) -> Chunk:
    fields = dict(
        chunk_id=chunk_id,
        doc_version_id=f"{chunk_id}-v1",
        text=text,
        source_url=f"https://docs.google.com/document/d/{chunk_id}",
        source_score=80.0,
        updated_at=FRESH,
        author="security@company.com",
    )
    fields.update(kw)
    return Chunk(**fields)


@pytest.fixture
async def chunk_store():
    tmp = tempfile.mkdtemp()
    store = SQLiteChunkStore(str(Path(tmp) / "corpus.db"), Settings(), clock=lambda: NOW)
    await store.initialize()
    embedder = HashEmbedder(dimensions=64)

    async def add(org_id, chunk, knowledge_object_id=None):
        [vector] = await embedder.embed_texts([chunk.text])
        await store.upsert_chunk(org_id, chunk, vector, knowledge_object_id=knowledge_object_id)

    await add(ORG, _chunk(
        "d-policy",
        "The incident response policy is owned by security operations.",
        connector_type="google_docs",
        document_id="doc-policy",
        document_title="Incident Response Policy",
    ))
    await add(ORG, _chunk(
        "d-slack",
        "Incident channel: post response updates for every policy breach.",
        connector_type="slack",
        document_id="doc-slack",
        source_url="https://acme.slack.com/archives/C1/p1",
        updated_at=OLD,
        source_score=40.0,
        author="ops@company.com",
    ))
    await store.set_document_acl(ORG, "doc-slack", ["email:ana@company.com"])
    await add("org_2", _chunk(
        "d-other-org",
        "Incident response policy for a different organization.",
        connector_type="google_docs",
        document_id="doc-other",
    ))

    await store.upsert_knowledge_object(
        ORG, "ko-runbook", "On-call runbook", owner_id="u-owner", tags=["oncall"]
    )
    await add(ORG, _chunk("k-runbook", "Runbook: incident response starts with paging."),
              knowledge_object_id="ko-runbook")
    await store.upsert_knowledge_object(
        ORG,
        "ko-private",
        "Leadership notes",
        permissions_mode="custom",
        rules=[PermissionRule(RuleEffect.ALLOW, "user", "user:u-boss")],
    )
    await add(ORG, _chunk("k-private", "Incident response budget policy for leadership."),
              knowledge_object_id="ko-private")
    await store.upsert_knowledge_object(
        ORG, "ko-inherited", "Mirrored doc", permissions_mode="inherited_source_acl"
    )
    await add(ORG, _chunk("k-inherited", "Mirrored incident response policy text."),
              knowledge_object_id="ko-inherited")
    return store


async def _search(store, filters=None, query=QUERY, limit=8):
    embedding = await HashEmbedder(dimensions=64).embed_query(query)
    hits = await store.hybrid_search(ORG, query, embedding, filters or SearchFilters(), limit)
    return [h.chunk.chunk_id for h in hits], hits


@pytest.mark.asyncio
async def test_search_is_scoped_to_org_and_permissions(chunk_store):
    ids, hits = await _search(chunk_store)
    assert "d-policy" in ids
    assert "k-runbook" in ids
    assert "d-other-org" not in ids
    assert "k-private" not in ids
    assert "k-inherited" not in ids
    scores = [h.combined_score for h in hits]
    assert scores == sorted(scores, reverse=True)


@pytest.mark.asyncio
async def test_document_acl_applies_with_viewer_identity(chunk_store):
    ana_ids, _ = await _search(chunk_store, SearchFilters(viewer_principal_keys=ANA))
    bob_ids, _ = await _search(chunk_store, SearchFilters(viewer_principal_keys=BOB))
    assert "d-slack" in ana_ids
    assert "d-slack" not in bob_ids
    assert "d-policy" in bob_ids


@pytest.mark.asyncio
async def test_custom_knowledge_rules(chunk_store):
    boss_ids, _ = await _search(chunk_store, SearchFilters(viewer_principal_keys=BOSS))
    assert "k-private" in boss_ids
    assert "k-inherited" not in boss_ids


@pytest.mark.asyncio
async def test_knowledge_chunks_carry_object_provenance(chunk_store):
    _, hits = await _search(chunk_store)
    runbook = next(h.chunk for h in hits if h.chunk.chunk_id == "k-runbook")
    assert runbook.document_id == "ko-runbook"
    assert runbook.document_title == "On-call runbook"
    assert runbook.source_format == "knowledge_object"
    assert runbook.connector_type == "knowledge_object"


@pytest.mark.asyncio
async def test_source_type_filter_limits_documents(chunk_store):
    _, hits = await _search(chunk_store, SearchFilters(source_type="slack"))
    documents = [h.chunk for h in hits if h.chunk.source_format != "knowledge_object"]
    assert [c.chunk_id for c in documents] == ["d-slack"]


@pytest.mark.asyncio
async def test_tag_and_owner_filters_limit_knowledge(chunk_store):
    _, hits = await _search(chunk_store, SearchFilters(tags=["OnCall"], viewer_principal_keys=BOSS))
    knowledge = [h.chunk.chunk_id for h in hits if h.chunk.source_format == "knowledge_object"]
    assert knowledge == ["k-runbook"]

    _, hits = await _search(chunk_store, SearchFilters(owner_id="nobody"))
    assert all(h.chunk.source_format != "knowledge_object" for h in hits)


@pytest.mark.asyncio
async def test_date_author_and_score_filters(chunk_store):
    ids, _ = await _search(chunk_store, SearchFilters(date_to=(NOW - timedelta(days=30)).isoformat()))
    assert ids == ["d-slack"]

    ids, _ = await _search(chunk_store, SearchFilters(author="OPS@"))
    assert ids == ["d-slack"]

    ids, _ = await _search(chunk_store, SearchFilters(min_source_score=50))
    assert "d-slack" not in ids
    assert "d-policy" in ids


@pytest.mark.asyncio
async def test_limit_and_unsearchable_query(chunk_store):
    ids, _ = await _search(chunk_store, limit=1)
    assert len(ids) == 1

    ids, _ = await _search(chunk_store, query="zzzz qqqq")
    assert "d-other-org" not in ids


@pytest.mark.asyncio
async def test_counts_and_existing_ids(chunk_store):
    assert await chunk_store.count_chunks() == 3
    assert await chunk_store.count_knowledge_chunks() == 3
    assert await chunk_store.existing_chunk_ids(["d-policy", "ghost"]) == {"d-policy"}
    assert await chunk_store.existing_chunk_ids([]) == set()


# --- Answer store ---


def _citation(chunk_id: str) -> Citation:
    return Citation(
        chunk_id=chunk_id,
        doc_version_id=f"{chunk_id}-v1",
        source_url=f"https://docs.google.com/document/d/{chunk_id}",
        start_offset=0,
        end_offset=40,
    )


def _response(citations: list[Citation], passed: bool = True) -> AnswerQueryResponse:
    contract = build_answer_quality_contract(
        citations=citations,
        citation_coverage=1.0 if passed else 0.2,
        unsupported_claims=0 if passed else 2,
        citation_updated_at_by_chunk_id={c.chunk_id: FRESH for c in citations},
        candidate_count=len(citations),
        has_viewer_principal_keys=True,
        now=NOW,
    )
    return AnswerQueryResponse(
        answer="Security operations owns the incident response policy.",
        confidence=0.82,
        source_score=80.0,
        citations=citations,
        claims=[
            AnswerClaim(
                id="claim-1",
                text="Security operations owns the incident response policy.",
                order=0,
                supported=True,
                citations=citations,
            )
        ],
        sources=[],
        grounding=GroundingMeta(citation_coverage=1.0, unsupported_claim_count=0, retrieval_score=0.7),
        traceability=Traceability(coverage=1.0, missing_author_count=0, missing_date_count=0),
        quality_contract=contract,
        timings=Timings(retrieval_ms=5, generation_ms=10),
        mode="ask",
        model="mock",
    )


@pytest.fixture
async def answer_store(chunk_store):
    tmp = tempfile.mkdtemp()
    store = SQLiteAnswerStore(str(Path(tmp) / "answers.db"), chunk_index=chunk_store)
    await store.initialize()
    return store


async def _count_rows(store: SQLiteAnswerStore, table: str) -> int:
    async with aiosqlite.connect(store._db_path) as db:
        async with db.execute(f"SELECT COUNT(*) FROM {table}") as cursor:
            return (await cursor.fetchone())[0]


@pytest.mark.asyncio
async def test_save_answer_skips_citations_to_missing_chunks(answer_store):
    saved = await answer_store.save_answer(
        ORG, "Who owns the policy?", _response([_citation("d-policy"), _citation("ghost")]), actor_id="u-ana"
    )
    assert saved.thread_id
    assert saved.message_id != saved.user_message_id
    assert await answer_store.count_answers() == 1
    assert await _count_rows(answer_store, "chat_messages") == 2
    assert await _count_rows(answer_store, "chat_message_citations") == 1
    assert await _count_rows(answer_store, "answer_claims") == 1
    assert await _count_rows(answer_store, "quality_contract_runs") == 1


@pytest.mark.asyncio
async def test_thread_is_reused_within_org(answer_store):
    first = await answer_store.save_answer(ORG, "First question?", _response([_citation("d-policy")]))
    second = await answer_store.save_answer(
        ORG, "Follow-up question?", _response([_citation("d-policy")]), thread_id=first.thread_id
    )
    assert second.thread_id == first.thread_id
    assert await _count_rows(answer_store, "chat_threads") == 1

    with pytest.raises(PersistenceError):
        await answer_store.save_answer(
            "org_2", "Cross-org question?", _response([]), thread_id=first.thread_id
        )
    assert await answer_store.count_answers() == 2


@pytest.mark.asyncio
async def test_quality_summary_rolls_up_recent_runs(answer_store):
    policy = DEFAULT_POLICY.snapshot()
    empty = await answer_store.get_quality_contract_summary(ORG, policy)
    assert empty.rolling_7d.total == 0
    assert empty.rolling_7d.pass_rate == 100.0
    assert empty.latest is None

    await answer_store.save_answer(ORG, "Good question?", _response([_citation("d-policy")]))
    await answer_store.save_answer(ORG, "Weak question?", _response([_citation("d-policy")], passed=False))

    summary = await answer_store.get_quality_contract_summary(ORG, policy)
    assert summary.version == "v1"
    assert summary.rolling_7d.total == 2
    assert summary.rolling_7d.blocked == 1
    assert summary.rolling_7d.pass_rate == 50.0
    assert summary.rolling_7d.groundedness_pass_rate == 50.0
    assert summary.rolling_7d.freshness_pass_rate == 100.0
    assert summary.latest is not None
    assert summary.latest.citation_count == 1

    later = await answer_store.get_quality_contract_summary(
        ORG, policy, now=datetime.now(timezone.utc) + timedelta(days=8)
    )
    assert later.rolling_7d.total == 0
    assert later.latest is not None


# --- Job store ---


@pytest.fixture
async def job_store():
    tmp = tempfile.mkdtemp()
    store = SQLiteJobStore(str(Path(tmp) / "jobs.db"))
    await store.initialize()
    return store


@pytest.mark.asyncio
async def test_enqueue_and_list_jobs(job_store):
    job_id = await job_store.enqueue("quality_eval_loop", {"org_id": ORG, "min_samples": 5})
    await job_store.enqueue("low_confidence_review_queue", {"org_id": ORG})

    jobs = await job_store.list_jobs("quality_eval_loop")
    assert [j["job_id"] for j in jobs] == [job_id]
    assert jobs[0]["payload"] == {"org_id": ORG, "min_samples": 5}
    assert jobs[0]["status"] == "queued"
    assert len(await job_store.list_jobs()) == 2


@pytest.mark.asyncio
async def test_usage_events(job_store):
    await job_store.record_usage(ORG, "summary_delivered", 1, actor_id="u-ana", metadata={"mode": "ask"})
    await job_store.record_usage("org_2", "summary_blocked", 0)

    events = await job_store.list_usage_events(ORG)
    assert len(events) == 1
    assert events[0]["event_type"] == "summary_delivered"
    assert events[0]["credits"] == 1
    assert events[0]["metadata"] == {"mode": "ask"}
