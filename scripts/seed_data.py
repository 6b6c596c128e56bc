"""Seed a development corpus: documents with ACLs plus curated knowledge objects."""

from __future__ import annotations

import asyncio
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from answer_engine.api.app import build_embedder
from answer_engine.config.settings import Settings
from answer_engine.models.domain import Chunk
from answer_engine.retrieval.permissions import PermissionRule, RuleEffect
from answer_engine.storage.sqlite_chunk_store import SQLiteChunkStore

ORG_ID = "org_demo"


def _days_ago(days: int) -> str:
    return (datetime.now(timezone.utc) - timedelta(days=days)).isoformat()


SAMPLE_DOCUMENTS = [
    {
        "document_id": "doc-incident-policy",
        "title": "Incident Response Policy",
        "connector_type": "google_docs",
        "source_url": "https://docs.google.com/document/d/incident-policy",
        "author": "security@company.com",
        "updated_at": _days_ago(3),
        "source_score": 88.0,
        "acl": [],
        "chunks": [
            "The incident response policy is owned by the security operations team. "
            "Severity one incidents page the on-call security engineer within fifteen minutes.",
            "Incidents without mitigation after thirty minutes escalate to the CISO. "
            "Post-incident reviews are due within five business days.",
        ],
    },
    {
        "document_id": "doc-sev-channel",
        "title": "#sev-updates",
        "connector_type": "slack",
        "source_url": "https://acme.slack.com/archives/C0SEV/p1700000000",
        "author": "oncall-bot@company.com",
        "updated_at": _days_ago(1),
        "source_score": 62.0,
        "acl": ["email:ana@company.com", "role:security"],
        "chunks": [
            "Status updates for active incidents are posted every thirty minutes in this channel "
            "until the incident commander declares resolution.",
        ],
    },
    {
        "document_id": "doc-travel-2023",
        "title": "Travel Policy 2023",
        "connector_type": "microsoft_sharepoint",
        "source_url": "https://acme.sharepoint.com/sites/hr/travel-2023",
        "author": "hr@company.com",
        "updated_at": _days_ago(400),
        "source_score": 55.0,
        "acl": ["org:org_demo"],
        "chunks": [
            "Business travel must be approved by a department manager before booking. "
            "Economy class is required for flights under six hours.",
        ],
    },
]

SAMPLE_KNOWLEDGE_OBJECTS = [
    {
        "knowledge_object_id": "ko-oncall-runbook",
        "title": "On-call runbook",
        "permissions_mode": "org_wide",
        "owner_id": "u-security-lead",
        "tags": ["oncall", "security"],
        "rules": [],
        "chunks": [
            "Runbook: acknowledge the page, open an incident channel, and assign an incident "
            "commander before starting mitigation.",
        ],
    },
    {
        "knowledge_object_id": "ko-exec-notes",
        "title": "Leadership incident notes",
        "permissions_mode": "custom",
        "owner_id": "u-ciso",
        "tags": ["leadership"],
        "rules": [
            PermissionRule(RuleEffect.ALLOW, "role", "role:executive"),
            PermissionRule(RuleEffect.DENY, "user", "user:u-contractor"),
        ],
        "chunks": [
            "Leadership reviews the quarterly incident budget and staffing for the security "
            "operations team.",
        ],
    },
]


async def main():
    settings = Settings()
    Path(settings.sqlite_corpus_db_path).parent.mkdir(parents=True, exist_ok=True)

    store = SQLiteChunkStore(settings.sqlite_corpus_db_path, settings=settings)
    await store.initialize()
    embedder = build_embedder(settings)

    for doc in SAMPLE_DOCUMENTS:
        chunks = [
            Chunk(
                chunk_id=f"{doc['document_id']}-{i}",
                doc_version_id=f"{doc['document_id']}-v1",
                text=text,
                source_url=doc["source_url"],
                source_score=doc["source_score"],
                updated_at=doc["updated_at"],
                author=doc["author"],
                connector_type=doc["connector_type"],
                document_id=doc["document_id"],
                document_title=doc["title"],
            )
            for i, text in enumerate(doc["chunks"])
        ]
        vectors = await embedder.embed_texts([c.text for c in chunks])
        for chunk, vector in zip(chunks, vectors):
            await store.upsert_chunk(ORG_ID, chunk, vector)
        await store.set_document_acl(ORG_ID, doc["document_id"], doc["acl"])
        print(f"Seeded {doc['title']}: {len(chunks)} chunks")

    for ko in SAMPLE_KNOWLEDGE_OBJECTS:
        await store.upsert_knowledge_object(
            ORG_ID,
            ko["knowledge_object_id"],
            ko["title"],
            permissions_mode=ko["permissions_mode"],
            owner_id=ko["owner_id"],
            tags=ko["tags"],
            rules=ko["rules"],
        )
        vectors = await embedder.embed_texts(ko["chunks"])
        for i, (text, vector) in enumerate(zip(ko["chunks"], vectors)):
            chunk = Chunk(
                chunk_id=f"{ko['knowledge_object_id']}-{i}",
                doc_version_id=f"{ko['knowledge_object_id']}-v1",
                text=text,
                source_url=f"https://knowledge.internal/objects/{ko['knowledge_object_id']}",
                source_score=75.0,
                updated_at=_days_ago(7),
                author=ko["owner_id"],
            )
            await store.upsert_chunk(ORG_ID, chunk, vector, knowledge_object_id=ko["knowledge_object_id"])
        print(f"Seeded knowledge object {ko['title']}: {len(ko['chunks'])} chunks")

    print(f"\nDocument chunks: {await store.count_chunks()}")
    print(f"Knowledge chunks: {await store.count_knowledge_chunks()}")


if __name__ == "__main__":
    asyncio.run(main())
