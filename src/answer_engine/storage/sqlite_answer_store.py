"""SQLite-backed persistence for answered questions and quality contract runs."""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from typing import Protocol
from uuid import uuid4

import aiosqlite

from answer_engine.config.constants import ANSWER_QUALITY_CONTRACT_VERSION
from answer_engine.exceptions import PersistenceError
from answer_engine.models.domain import SavedAnswer
from answer_engine.models.schemas import (
    AnswerQueryResponse,
    LatestContractRun,
    QualityContractSummary,
    QualityPolicySnapshot,
    RollingPassRates,
)
from answer_engine.observability.logger import get_logger
from answer_engine.storage.migrations import initialize_answer_db

logger = get_logger("answer_store")

THREAD_TITLE_CHARS = 120
ROLLING_WINDOW_DAYS = 7


class ChunkIndex(Protocol):
    async def existing_chunk_ids(self, chunk_ids: list[str]) -> set[str]: ...


def _pass_rate(total: int, passed: int) -> float:
    return round(passed / total * 100, 2) if total > 0 else 100.0


class SQLiteAnswerStore:
    def __init__(self, db_path: str, chunk_index: ChunkIndex | None = None) -> None:
        self._db_path = db_path
        self._chunk_index = chunk_index

    async def initialize(self) -> None:
        await initialize_answer_db(self._db_path)

    async def save_answer(
        self,
        org_id: str,
        question: str,
        response: AnswerQueryResponse,
        thread_id: str | None = None,
        actor_id: str | None = None,
    ) -> SavedAnswer:
        """Write the exchange in a single transaction.

        Citations pointing at chunks that left the corpus since retrieval are skipped.
        """
        cited_ids = [c.chunk_id for c in response.citations]
        if self._chunk_index is not None:
            known = await self._chunk_index.existing_chunk_ids(cited_ids)
        else:
            known = set(cited_ids)
        citations = [c for c in response.citations if c.chunk_id in known]
        skipped = len(response.citations) - len(citations)
        if skipped:
            logger.warning("citations_skipped_missing_chunks", org_id=org_id, skipped=skipped)

        now = datetime.now(timezone.utc).isoformat()
        user_message_id = str(uuid4())
        message_id = str(uuid4())
        contract = response.quality_contract
        freshness = contract.dimensions.freshness.metrics
        groundedness = contract.dimensions.groundedness.metrics

        try:
            async with aiosqlite.connect(self._db_path) as db:
                try:
                    thread_id = await self._ensure_thread(db, org_id, question, thread_id, actor_id, now)
                    await db.executemany(
                        "INSERT INTO chat_messages (message_id, thread_id, org_id, role, content, "
                        "confidence, source_score, created_by, created_at) "
                        "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                        [
                            (user_message_id, thread_id, org_id, "user", question,
                             None, None, actor_id, now),
                            (message_id, thread_id, org_id, "assistant", response.answer,
                             response.confidence, response.source_score, actor_id, now),
                        ],
                    )
                    await db.executemany(
                        "INSERT INTO chat_message_citations (message_id, ordinal, chunk_id, "
                        "doc_version_id, source_url, start_offset, end_offset) "
                        "VALUES (?, ?, ?, ?, ?, ?, ?)",
                        [
                            (message_id, i, c.chunk_id, c.doc_version_id, c.source_url,
                             c.start_offset, c.end_offset)
                            for i, c in enumerate(citations)
                        ],
                    )
                    await db.executemany(
                        "INSERT INTO answer_claims (message_id, claim_id, org_id, claim_order, "
                        "text, supported, citations) VALUES (?, ?, ?, ?, ?, ?, ?)",
                        [
                            (
                                message_id,
                                claim.id,
                                org_id,
                                claim.order,
                                claim.text,
                                int(claim.supported),
                                json.dumps(
                                    [c.model_dump() for c in claim.citations if c.chunk_id in known]
                                ),
                            )
                            for claim in response.claims
                        ],
                    )
                    await db.execute(
                        "INSERT INTO quality_contract_runs (run_id, org_id, message_id, version, "
                        "status, groundedness_status, freshness_status, permission_safety_status, "
                        "citation_coverage, unsupported_claims, freshness_coverage, "
                        "stale_citation_count, citation_count, historical_override, reason_codes, "
                        "result, created_by, created_at) "
                        "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                        (
                            str(uuid4()),
                            org_id,
                            message_id,
                            contract.version,
                            contract.status,
                            contract.dimensions.groundedness.status,
                            contract.dimensions.freshness.status,
                            contract.dimensions.permission_safety.status,
                            groundedness.citation_coverage,
                            groundedness.unsupported_claims,
                            freshness.citation_freshness_coverage,
                            freshness.stale_citation_count,
                            freshness.citation_count,
                            int(contract.allow_historical_evidence),
                            json.dumps([code.value for code in contract.reason_codes]),
                            contract.model_dump_json(),
                            actor_id,
                            now,
                        ),
                    )
                    await db.commit()
                except aiosqlite.Error:
                    await db.rollback()
                    raise
        except aiosqlite.Error as e:
            raise PersistenceError(f"Failed to save answer for org {org_id}: {e}") from e

        logger.info(
            "answer_saved",
            org_id=org_id,
            thread_id=thread_id,
            message_id=message_id,
            citations=len(citations),
            claims=len(response.claims),
        )
        return SavedAnswer(
            thread_id=thread_id,
            message_id=message_id,
            user_message_id=user_message_id,
        )

    @staticmethod
    async def _ensure_thread(
        db: aiosqlite.Connection,
        org_id: str,
        question: str,
        thread_id: str | None,
        actor_id: str | None,
        now: str,
    ) -> str:
        if thread_id:
            async with db.execute(
                "SELECT org_id FROM chat_threads WHERE thread_id = ?", (thread_id,)
            ) as cursor:
                row = await cursor.fetchone()
            if row is not None:
                if row[0] != org_id:
                    raise PersistenceError(f"Thread {thread_id} belongs to another organization")
                await db.execute(
                    "UPDATE chat_threads SET updated_at = ? WHERE thread_id = ?", (now, thread_id)
                )
                return thread_id

        thread_id = thread_id or str(uuid4())
        await db.execute(
            "INSERT INTO chat_threads (thread_id, org_id, title, created_by, created_at, updated_at) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (thread_id, org_id, question[:THREAD_TITLE_CHARS], actor_id, now, now),
        )
        return thread_id

    async def count_answers(self) -> int:
        async with aiosqlite.connect(self._db_path) as db:
            async with db.execute(
                "SELECT COUNT(*) FROM chat_messages WHERE role = 'assistant'"
            ) as cursor:
                row = await cursor.fetchone()
                return row[0] if row else 0

    async def get_quality_contract_summary(
        self,
        org_id: str,
        policy: QualityPolicySnapshot,
        now: datetime | None = None,
    ) -> QualityContractSummary:
        """Rolling seven-day pass rates (percent) plus the most recent run."""
        now = now or datetime.now(timezone.utc)
        since = (now - timedelta(days=ROLLING_WINDOW_DAYS)).isoformat()

        async with aiosqlite.connect(self._db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(
                "SELECT COUNT(*) AS total, "
                "COALESCE(SUM(status = 'blocked'), 0) AS blocked, "
                "COALESCE(SUM(groundedness_status = 'passed'), 0) AS groundedness_passed, "
                "COALESCE(SUM(freshness_status = 'passed'), 0) AS freshness_passed, "
                "COALESCE(SUM(permission_safety_status = 'passed'), 0) AS permission_passed "
                "FROM quality_contract_runs WHERE org_id = ? AND created_at >= ?",
                (org_id, since),
            ) as cursor:
                totals = await cursor.fetchone()
            async with db.execute(
                "SELECT * FROM quality_contract_runs WHERE org_id = ? "
                "ORDER BY created_at DESC LIMIT 1",
                (org_id,),
            ) as cursor:
                latest = await cursor.fetchone()

        total = totals["total"]
        blocked = totals["blocked"]
        return QualityContractSummary(
            version=ANSWER_QUALITY_CONTRACT_VERSION,
            policy=policy,
            rolling_7d=RollingPassRates(
                total=total,
                blocked=blocked,
                pass_rate=_pass_rate(total, total - blocked),
                groundedness_pass_rate=_pass_rate(total, totals["groundedness_passed"]),
                freshness_pass_rate=_pass_rate(total, totals["freshness_passed"]),
                permission_safety_pass_rate=_pass_rate(total, totals["permission_passed"]),
            ),
            latest=self._row_to_latest(latest) if latest is not None else None,
        )

    @staticmethod
    def _row_to_latest(row: aiosqlite.Row) -> LatestContractRun:
        return LatestContractRun(
            status=row["status"],
            groundedness_status=row["groundedness_status"],
            freshness_status=row["freshness_status"],
            permission_safety_status=row["permission_safety_status"],
            citation_coverage=row["citation_coverage"],
            unsupported_claims=row["unsupported_claims"],
            freshness_coverage=row["freshness_coverage"],
            stale_citation_count=row["stale_citation_count"],
            citation_count=row["citation_count"],
            historical_override=bool(row["historical_override"]),
            reason_codes=json.loads(row["reason_codes"]),
            created_at=row["created_at"],
        )
