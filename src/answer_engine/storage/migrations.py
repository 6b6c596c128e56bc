"""Idempotent database schema creation."""

from __future__ import annotations

import aiosqlite

CHUNKS_TABLE = """
CREATE TABLE IF NOT EXISTS chunks (
    chunk_id TEXT PRIMARY KEY,
    org_id TEXT NOT NULL,
    doc_version_id TEXT NOT NULL,
    document_id TEXT,
    document_title TEXT,
    knowledge_object_id TEXT,
    text TEXT NOT NULL,
    source_url TEXT NOT NULL,
    canonical_source_url TEXT,
    source_score REAL NOT NULL DEFAULT 50,
    updated_at TEXT,
    author TEXT,
    connector_type TEXT,
    source_format TEXT,
    source_external_id TEXT,
    source_checksum TEXT,
    sync_run_id TEXT,
    embedding BLOB
)
"""

CHUNKS_ORG_INDEX = """
CREATE INDEX IF NOT EXISTS idx_chunks_org ON chunks(org_id, knowledge_object_id)
"""

CHUNKS_FTS_TABLE = """
CREATE VIRTUAL TABLE IF NOT EXISTS chunks_fts USING fts5(
    chunk_id UNINDEXED,
    text
)
"""

DOCUMENT_ACL_TABLE = """
CREATE TABLE IF NOT EXISTS document_acl (
    org_id TEXT NOT NULL,
    document_id TEXT NOT NULL,
    principal_key TEXT NOT NULL,
    PRIMARY KEY (org_id, document_id, principal_key)
)
"""

KNOWLEDGE_OBJECTS_TABLE = """
CREATE TABLE IF NOT EXISTS knowledge_objects (
    knowledge_object_id TEXT PRIMARY KEY,
    org_id TEXT NOT NULL,
    title TEXT NOT NULL,
    owner_id TEXT,
    permissions_mode TEXT NOT NULL DEFAULT 'org_wide',
    tags TEXT NOT NULL DEFAULT '[]'
)
"""

KNOWLEDGE_PERMISSION_RULES_TABLE = """
CREATE TABLE IF NOT EXISTS knowledge_permission_rules (
    knowledge_object_id TEXT NOT NULL,
    effect TEXT NOT NULL,
    principal_type TEXT NOT NULL,
    principal_key TEXT NOT NULL
)
"""

KNOWLEDGE_RULES_INDEX = """
CREATE INDEX IF NOT EXISTS idx_knowledge_rules_object
ON knowledge_permission_rules(knowledge_object_id)
"""

THREADS_TABLE = """
CREATE TABLE IF NOT EXISTS chat_threads (
    thread_id TEXT PRIMARY KEY,
    org_id TEXT NOT NULL,
    title TEXT NOT NULL,
    created_by TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
)
"""

MESSAGES_TABLE = """
CREATE TABLE IF NOT EXISTS chat_messages (
    message_id TEXT PRIMARY KEY,
    thread_id TEXT NOT NULL,
    org_id TEXT NOT NULL,
    role TEXT NOT NULL,
    content TEXT NOT NULL,
    confidence REAL,
    source_score REAL,
    created_by TEXT,
    created_at TEXT NOT NULL,
    FOREIGN KEY (thread_id) REFERENCES chat_threads(thread_id)
)
"""

MESSAGE_CITATIONS_TABLE = """
CREATE TABLE IF NOT EXISTS chat_message_citations (
    message_id TEXT NOT NULL,
    ordinal INTEGER NOT NULL,
    chunk_id TEXT NOT NULL,
    doc_version_id TEXT NOT NULL,
    source_url TEXT NOT NULL,
    start_offset INTEGER NOT NULL,
    end_offset INTEGER NOT NULL,
    PRIMARY KEY (message_id, ordinal),
    FOREIGN KEY (message_id) REFERENCES chat_messages(message_id)
)
"""

ANSWER_CLAIMS_TABLE = """
CREATE TABLE IF NOT EXISTS answer_claims (
    message_id TEXT NOT NULL,
    claim_id TEXT NOT NULL,
    org_id TEXT NOT NULL,
    claim_order INTEGER NOT NULL,
    text TEXT NOT NULL,
    supported INTEGER NOT NULL,
    citations TEXT NOT NULL DEFAULT '[]',
    PRIMARY KEY (message_id, claim_id),
    FOREIGN KEY (message_id) REFERENCES chat_messages(message_id)
)
"""

QUALITY_CONTRACT_RUNS_TABLE = """
CREATE TABLE IF NOT EXISTS quality_contract_runs (
    run_id TEXT PRIMARY KEY,
    org_id TEXT NOT NULL,
    message_id TEXT NOT NULL,
    version TEXT NOT NULL,
    status TEXT NOT NULL,
    groundedness_status TEXT NOT NULL,
    freshness_status TEXT NOT NULL,
    permission_safety_status TEXT NOT NULL,
    citation_coverage REAL NOT NULL,
    unsupported_claims INTEGER NOT NULL,
    freshness_coverage REAL NOT NULL,
    stale_citation_count INTEGER NOT NULL,
    citation_count INTEGER NOT NULL,
    historical_override INTEGER NOT NULL,
    reason_codes TEXT NOT NULL DEFAULT '[]',
    result TEXT NOT NULL,
    created_by TEXT,
    created_at TEXT NOT NULL
)
"""

QUALITY_RUNS_INDEX = """
CREATE INDEX IF NOT EXISTS idx_quality_runs_org_created
ON quality_contract_runs(org_id, created_at)
"""

JOBS_TABLE = """
CREATE TABLE IF NOT EXISTS jobs (
    job_id TEXT PRIMARY KEY,
    job_name TEXT NOT NULL,
    payload TEXT NOT NULL DEFAULT '{}',
    status TEXT NOT NULL DEFAULT 'queued',
    created_at TEXT NOT NULL
)
"""

USAGE_EVENTS_TABLE = """
CREATE TABLE IF NOT EXISTS usage_events (
    event_id TEXT PRIMARY KEY,
    org_id TEXT NOT NULL,
    event_type TEXT NOT NULL,
    credits INTEGER NOT NULL,
    actor_id TEXT,
    metadata TEXT NOT NULL DEFAULT '{}',
    created_at TEXT NOT NULL
)
"""


async def initialize_corpus_db(db_path: str) -> None:
    async with aiosqlite.connect(db_path) as db:
        await db.execute(CHUNKS_TABLE)
        await db.execute(CHUNKS_ORG_INDEX)
        await db.execute(CHUNKS_FTS_TABLE)
        await db.execute(DOCUMENT_ACL_TABLE)
        await db.execute(KNOWLEDGE_OBJECTS_TABLE)
        await db.execute(KNOWLEDGE_PERMISSION_RULES_TABLE)
        await db.execute(KNOWLEDGE_RULES_INDEX)
        await db.commit()


async def initialize_answer_db(db_path: str) -> None:
    async with aiosqlite.connect(db_path) as db:
        await db.execute(THREADS_TABLE)
        await db.execute(MESSAGES_TABLE)
        await db.execute(MESSAGE_CITATIONS_TABLE)
        await db.execute(ANSWER_CLAIMS_TABLE)
        await db.execute(QUALITY_CONTRACT_RUNS_TABLE)
        await db.execute(QUALITY_RUNS_INDEX)
        await db.commit()


async def initialize_jobs_db(db_path: str) -> None:
    async with aiosqlite.connect(db_path) as db:
        await db.execute(JOBS_TABLE)
        await db.execute(USAGE_EVENTS_TABLE)
        await db.commit()
