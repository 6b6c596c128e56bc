"""SQLite-backed corpus: FTS5 lexical pass, numpy cosine vector pass, fused with RRF."""

from __future__ import annotations

import asyncio
import json
from collections import defaultdict
from collections.abc import Callable
from datetime import datetime, timezone

import aiosqlite
import numpy as np

from answer_engine.config.constants import ACL_ENFORCED_CONNECTOR_TYPES, GOOGLE_CONNECTOR_TYPES
from answer_engine.config.settings import Settings
from answer_engine.exceptions import RetrievalError
from answer_engine.keyword_search.tokenizer import to_fts_query
from answer_engine.models.domain import Chunk, RankedCandidate, SearchFilters
from answer_engine.observability.logger import get_logger
from answer_engine.retrieval.permissions import (
    KnowledgeObjectAccess,
    PermissionRule,
    RuleEffect,
    is_document_visible,
    is_permitted,
)
from answer_engine.retrieval.rrf import fuse_ranked_candidates, retrieval_pool_size
from answer_engine.scoring.trust import parse_timestamp
from answer_engine.storage.migrations import initialize_corpus_db

logger = get_logger("chunk_store")

_SELECT_COLUMNS = "c.*, ko.permissions_mode AS permissions_mode, ko.title AS knowledge_title"
_KNOWLEDGE_JOIN = (
    "LEFT JOIN knowledge_objects ko ON ko.knowledge_object_id = c.knowledge_object_id"
)


def _placeholders(values: list) -> str:
    return ",".join("?" for _ in values)


def _scope_clause(org_id: str, filters: SearchFilters, knowledge: bool) -> tuple[str, list]:
    """SQL predicates for one retrieval scope. Dates and permissions are checked in Python."""
    clauses = ["c.org_id = ?"]
    params: list = [org_id]

    if knowledge:
        clauses.append("c.knowledge_object_id IS NOT NULL")
        if filters.owner_id:
            clauses.append("ko.owner_id = ?")
            params.append(filters.owner_id)
        if filters.knowledge_object_ids:
            clauses.append(f"c.knowledge_object_id IN ({_placeholders(filters.knowledge_object_ids)})")
            params.extend(filters.knowledge_object_ids)
        if filters.tags:
            tags = [t.lower() for t in filters.tags]
            clauses.append(
                "EXISTS (SELECT 1 FROM json_each(ko.tags) t "
                f"WHERE lower(t.value) IN ({_placeholders(tags)}))"
            )
            params.extend(tags)
    else:
        clauses.append("c.knowledge_object_id IS NULL")
        if filters.source_type:
            clauses.append("c.connector_type = ?")
            params.append(filters.source_type)
        if filters.document_ids:
            clauses.append(f"c.document_id IN ({_placeholders(filters.document_ids)})")
            params.extend(filters.document_ids)

    if filters.author:
        clauses.append("lower(coalesce(c.author, '')) LIKE ?")
        params.append(f"%{filters.author.lower()}%")
    if filters.min_source_score is not None:
        clauses.append("c.source_score >= ?")
        params.append(filters.min_source_score)

    return " AND ".join(clauses), params


def _within_dates(updated_at: str | None, filters: SearchFilters) -> bool:
    if not filters.date_from and not filters.date_to:
        return True
    updated = parse_timestamp(updated_at)
    if updated is None:
        return False
    start = parse_timestamp(filters.date_from)
    end = parse_timestamp(filters.date_to)
    if start is not None and updated < start:
        return False
    if end is not None and updated > end:
        return False
    return True


class SQLiteChunkStore:
    def __init__(
        self,
        db_path: str,
        settings: Settings | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._db_path = db_path
        self._settings = settings or Settings()
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def initialize(self) -> None:
        await initialize_corpus_db(self._db_path)

    # --- Write paths (seeding) ---

    async def upsert_chunk(
        self,
        org_id: str,
        chunk: Chunk,
        embedding: list[float] | None = None,
        knowledge_object_id: str | None = None,
    ) -> None:
        blob = np.asarray(embedding, dtype=np.float32).tobytes() if embedding else None
        async with aiosqlite.connect(self._db_path) as db:
            await db.execute(
                "INSERT OR REPLACE INTO chunks (chunk_id, org_id, doc_version_id, document_id, "
                "document_title, knowledge_object_id, text, source_url, canonical_source_url, "
                "source_score, updated_at, author, connector_type, source_format, "
                "source_external_id, source_checksum, sync_run_id, embedding) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    chunk.chunk_id,
                    org_id,
                    chunk.doc_version_id,
                    chunk.document_id,
                    chunk.document_title,
                    knowledge_object_id,
                    chunk.text,
                    chunk.source_url,
                    chunk.canonical_source_url,
                    chunk.source_score,
                    chunk.updated_at,
                    chunk.author,
                    chunk.connector_type,
                    chunk.source_format,
                    chunk.source_external_id,
                    chunk.source_checksum,
                    chunk.sync_run_id,
                    blob,
                ),
            )
            await db.execute("DELETE FROM chunks_fts WHERE chunk_id = ?", (chunk.chunk_id,))
            await db.execute(
                "INSERT INTO chunks_fts (chunk_id, text) VALUES (?, ?)",
                (chunk.chunk_id, chunk.text),
            )
            await db.commit()

    async def set_document_acl(
        self, org_id: str, document_id: str, principal_keys: list[str]
    ) -> None:
        async with aiosqlite.connect(self._db_path) as db:
            await db.execute(
                "DELETE FROM document_acl WHERE org_id = ? AND document_id = ?",
                (org_id, document_id),
            )
            await db.executemany(
                "INSERT OR IGNORE INTO document_acl (org_id, document_id, principal_key) "
                "VALUES (?, ?, ?)",
                [(org_id, document_id, key) for key in principal_keys],
            )
            await db.commit()

    async def upsert_knowledge_object(
        self,
        org_id: str,
        knowledge_object_id: str,
        title: str,
        permissions_mode: str = "org_wide",
        owner_id: str | None = None,
        tags: list[str] | None = None,
        rules: list[PermissionRule] | None = None,
    ) -> None:
        async with aiosqlite.connect(self._db_path) as db:
            await db.execute(
                "INSERT OR REPLACE INTO knowledge_objects "
                "(knowledge_object_id, org_id, title, owner_id, permissions_mode, tags) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (
                    knowledge_object_id,
                    org_id,
                    title,
                    owner_id,
                    permissions_mode,
                    json.dumps(tags or []),
                ),
            )
            await db.execute(
                "DELETE FROM knowledge_permission_rules WHERE knowledge_object_id = ?",
                (knowledge_object_id,),
            )
            await db.executemany(
                "INSERT INTO knowledge_permission_rules "
                "(knowledge_object_id, effect, principal_type, principal_key) VALUES (?, ?, ?, ?)",
                [
                    (knowledge_object_id, RuleEffect(r.effect).value, r.principal_type, r.principal_key)
                    for r in rules or []
                ],
            )
            await db.commit()

    # --- Read paths ---

    async def existing_chunk_ids(self, chunk_ids: list[str]) -> set[str]:
        if not chunk_ids:
            return set()
        async with aiosqlite.connect(self._db_path) as db:
            async with db.execute(
                f"SELECT chunk_id FROM chunks WHERE chunk_id IN ({_placeholders(chunk_ids)})",
                chunk_ids,
            ) as cursor:
                rows = await cursor.fetchall()
                return {row[0] for row in rows}

    async def count_chunks(self) -> int:
        return await self._count("SELECT COUNT(*) FROM chunks WHERE knowledge_object_id IS NULL")

    async def count_knowledge_chunks(self) -> int:
        return await self._count(
            "SELECT COUNT(*) FROM chunks WHERE knowledge_object_id IS NOT NULL"
        )

    async def _count(self, sql: str) -> int:
        async with aiosqlite.connect(self._db_path) as db:
            async with db.execute(sql) as cursor:
                row = await cursor.fetchone()
                return row[0] if row else 0

    async def hybrid_search(
        self,
        org_id: str,
        query_text: str,
        query_embedding: list[float],
        filters: SearchFilters,
        limit: int = 8,
    ) -> list[RankedCandidate]:
        """Search documents and knowledge objects, each with concurrent lexical and vector passes.

        Each scope is fused on its own, then the two scopes are merged and cut to ``limit``.
        """
        now = self._clock()
        try:
            document_hits, knowledge_hits = await asyncio.gather(
                self._search_scope(
                    org_id, query_text, query_embedding, filters, limit, knowledge=False, now=now
                ),
                self._search_scope(
                    org_id, query_text, query_embedding, filters, limit, knowledge=True, now=now
                ),
            )
        except aiosqlite.Error as e:
            raise RetrievalError(f"Chunk search failed for org {org_id}: {e}") from e

        merged = sorted(
            document_hits + knowledge_hits,
            key=lambda c: (-c.combined_score, c.chunk.chunk_id),
        )[:limit]
        logger.info(
            "hybrid_search",
            org_id=org_id,
            document_candidates=len(document_hits),
            knowledge_candidates=len(knowledge_hits),
            returned=len(merged),
        )
        return merged

    async def _search_scope(
        self,
        org_id: str,
        query_text: str,
        query_embedding: list[float],
        filters: SearchFilters,
        limit: int,
        knowledge: bool,
        now: datetime,
    ) -> list[RankedCandidate]:
        multiplier = (
            self._settings.knowledge_pool_multiplier
            if knowledge
            else self._settings.document_pool_multiplier
        )
        pool = retrieval_pool_size(limit, multiplier, self._settings.min_retrieval_pool)

        lexical_hits, vector_hits = await asyncio.gather(
            self._lexical_pass(org_id, query_text, filters, knowledge, pool),
            self._vector_pass(org_id, query_embedding, filters, knowledge, pool),
        )
        return fuse_ranked_candidates(
            vector_hits,
            lexical_hits,
            k=self._settings.rrf_k,
            limit=limit,
            trust_weight=self._settings.trust_boost_weight,
            recency_weight=self._settings.recency_boost_weight,
            recency_window_days=self._settings.recency_boost_window_days,
            now=now,
        )

    async def _lexical_pass(
        self, org_id: str, query_text: str, filters: SearchFilters, knowledge: bool, pool: int
    ) -> list[tuple[Chunk, float]]:
        match = to_fts_query(query_text)
        if match is None:
            return []
        where, params = _scope_clause(org_id, filters, knowledge)
        sql = (
            f"SELECT {_SELECT_COLUMNS}, bm25(chunks_fts) AS bm25_score "
            "FROM chunks_fts JOIN chunks c ON c.chunk_id = chunks_fts.chunk_id "
            f"{_KNOWLEDGE_JOIN} "
            f"WHERE chunks_fts MATCH ? AND {where} "
            "ORDER BY bm25_score ASC, c.chunk_id ASC"
        )
        async with aiosqlite.connect(self._db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(sql, [match, *params]) as cursor:
                rows = await cursor.fetchall()
            rows = await self._permitted(db, org_id, rows, filters, knowledge)

        # bm25() is lower-is-better; expose it as a positive relevance score.
        return [(self._row_to_chunk(row), -float(row["bm25_score"])) for row in rows[:pool]]

    async def _vector_pass(
        self,
        org_id: str,
        query_embedding: list[float],
        filters: SearchFilters,
        knowledge: bool,
        pool: int,
    ) -> list[tuple[Chunk, float]]:
        query = np.asarray(query_embedding, dtype=np.float32)
        query_norm = float(np.linalg.norm(query)) if query.size else 0.0
        if query_norm == 0.0:
            return []

        where, params = _scope_clause(org_id, filters, knowledge)
        sql = (
            f"SELECT {_SELECT_COLUMNS} FROM chunks c {_KNOWLEDGE_JOIN} "
            f"WHERE c.embedding IS NOT NULL AND {where}"
        )
        async with aiosqlite.connect(self._db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(sql, params) as cursor:
                rows = await cursor.fetchall()
            rows = await self._permitted(db, org_id, rows, filters, knowledge)

        vectors = [np.frombuffer(row["embedding"], dtype=np.float32) for row in rows]
        usable = [(row, vec) for row, vec in zip(rows, vectors) if vec.shape == query.shape]
        if not usable:
            return []

        matrix = np.vstack([vec for _, vec in usable])
        norms = np.linalg.norm(matrix, axis=1) * query_norm
        similarity = (matrix @ query) / np.maximum(norms, 1e-12)
        distances = 1.0 - similarity

        order = sorted(range(len(usable)), key=lambda i: (float(distances[i]), usable[i][0]["chunk_id"]))
        return [(self._row_to_chunk(usable[i][0]), float(distances[i])) for i in order[:pool]]

    async def _permitted(
        self,
        db: aiosqlite.Connection,
        org_id: str,
        rows: list[aiosqlite.Row],
        filters: SearchFilters,
        knowledge: bool,
    ) -> list[aiosqlite.Row]:
        rows = [row for row in rows if _within_dates(row["updated_at"], filters)]
        if not rows:
            return rows
        if knowledge:
            return await self._permitted_knowledge(db, org_id, rows, filters.viewer_principal_keys)
        return await self._permitted_documents(db, org_id, rows, filters.viewer_principal_keys)

    async def _permitted_documents(
        self,
        db: aiosqlite.Connection,
        org_id: str,
        rows: list[aiosqlite.Row],
        viewer_principal_keys: list[str] | None,
    ) -> list[aiosqlite.Row]:
        if viewer_principal_keys is None:
            return rows

        document_ids = sorted({row["document_id"] for row in rows if row["document_id"]})
        acl: dict[str, set[str]] = defaultdict(set)
        if document_ids:
            async with db.execute(
                "SELECT document_id, principal_key FROM document_acl "
                f"WHERE org_id = ? AND document_id IN ({_placeholders(document_ids)})",
                [org_id, *document_ids],
            ) as cursor:
                for document_id, principal_key in await cursor.fetchall():
                    acl[document_id].add(principal_key)

        return [
            row
            for row in rows
            if is_document_visible(
                row["connector_type"],
                acl.get(row["document_id"], set()),
                viewer_principal_keys,
                GOOGLE_CONNECTOR_TYPES,
                ACL_ENFORCED_CONNECTOR_TYPES,
            )
        ]

    async def _permitted_knowledge(
        self,
        db: aiosqlite.Connection,
        org_id: str,
        rows: list[aiosqlite.Row],
        viewer_principal_keys: list[str] | None,
    ) -> list[aiosqlite.Row]:
        object_ids = sorted({row["knowledge_object_id"] for row in rows})
        rules: dict[str, list[PermissionRule]] = defaultdict(list)
        async with db.execute(
            "SELECT knowledge_object_id, effect, principal_type, principal_key "
            "FROM knowledge_permission_rules "
            f"WHERE knowledge_object_id IN ({_placeholders(object_ids)})",
            object_ids,
        ) as cursor:
            for object_id, effect, principal_type, principal_key in await cursor.fetchall():
                rules[object_id].append(
                    PermissionRule(RuleEffect(effect), principal_type, principal_key)
                )

        access = {
            object_id: KnowledgeObjectAccess(
                knowledge_object_id=object_id,
                permissions_mode=mode,
                rules=rules.get(object_id, []),
            )
            for object_id, mode in {
                row["knowledge_object_id"]: row["permissions_mode"] for row in rows
            }.items()
        }
        return [
            row
            for row in rows
            if is_permitted(access[row["knowledge_object_id"]], org_id, viewer_principal_keys)
        ]

    @staticmethod
    def _row_to_chunk(row: aiosqlite.Row) -> Chunk:
        knowledge_object_id = row["knowledge_object_id"]
        return Chunk(
            chunk_id=row["chunk_id"],
            doc_version_id=row["doc_version_id"],
            text=row["text"],
            source_url=row["source_url"],
            source_score=row["source_score"],
            updated_at=row["updated_at"],
            author=row["author"],
            connector_type="knowledge_object" if knowledge_object_id else row["connector_type"],
            document_id=row["document_id"] or knowledge_object_id,
            document_title=row["document_title"] or row["knowledge_title"],
            source_format=row["source_format"] or ("knowledge_object" if knowledge_object_id else None),
            source_external_id=row["source_external_id"] or knowledge_object_id,
            canonical_source_url=row["canonical_source_url"],
            source_checksum=row["source_checksum"],
            sync_run_id=row["sync_run_id"],
        )
