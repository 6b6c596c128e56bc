"""Turn ranked chunks into display evidence and generator context."""

from __future__ import annotations

import math
from typing import get_args

from answer_engine.config.constants import CITATION_EXCERPT_CHARS, EXCERPT_PADDING_CHARS
from answer_engine.models.domain import Chunk, ContextChunk
from answer_engine.models.schemas import Citation, ConnectorType, EvidenceItem, EvidenceProvenance

_REASONS_BY_POSITION = ("vector_similarity", "text_match", "trusted_source")
_KNOWN_CONNECTORS = frozenset(get_args(ConnectorType))


def chunk_to_citation(chunk: Chunk) -> Citation:
    return Citation(
        chunk_id=chunk.chunk_id,
        doc_version_id=chunk.doc_version_id,
        source_url=chunk.source_url,
        start_offset=0,
        end_offset=min(len(chunk.text), CITATION_EXCERPT_CHARS),
    )


def connector_from_source_url(source_url: str) -> str:
    if "slack.com" in source_url:
        return "slack"
    if "teams.microsoft.com" in source_url:
        return "microsoft_teams"
    if "sharepoint.com" in source_url:
        return "microsoft_sharepoint"
    if "onedrive.live.com" in source_url:
        return "microsoft_onedrive"
    if "docs.google.com/document" in source_url:
        return "google_docs"
    return "google_drive"


def _connector_for(chunk: Chunk) -> str:
    if chunk.connector_type in _KNOWN_CONNECTORS:
        return chunk.connector_type
    return connector_from_source_url(chunk.source_url)


def _title_for(chunk: Chunk) -> str:
    if chunk.document_title:
        return chunk.document_title
    return chunk.doc_version_id.replace("-v1", "").replace("-", " ")


def build_evidence_items(chunks: list[Chunk]) -> list[EvidenceItem]:
    """Build evidence items in retrieval order, one per distinct chunk."""
    items: list[EvidenceItem] = []
    seen: set[str] = set()
    for chunk in chunks:
        if chunk.chunk_id in seen:
            continue
        seen.add(chunk.chunk_id)
        index = len(items)

        citation = chunk_to_citation(chunk)
        excerpt_start = max(0, citation.start_offset - EXCERPT_PADDING_CHARS)
        excerpt_end = min(len(chunk.text), citation.end_offset + EXCERPT_PADDING_CHARS)
        reason = _REASONS_BY_POSITION[index] if index < len(_REASONS_BY_POSITION) else "recency_boost"

        items.append(
            EvidenceItem(
                id=f"source-{chunk.chunk_id}",
                title=_title_for(chunk),
                connector_type=_connector_for(chunk),
                source_url=chunk.source_url,
                excerpt=chunk.text[excerpt_start:excerpt_end],
                source_score=chunk.source_score,
                relevance=max(0.1, 1 - index * 0.15),
                reason=reason,
                citation=citation,
                provenance=EvidenceProvenance(
                    document_id=chunk.document_id,
                    document_title=chunk.document_title,
                    document_version_id=chunk.doc_version_id,
                    source_external_id=chunk.source_external_id,
                    source_format=chunk.source_format,
                    canonical_source_url=chunk.canonical_source_url or chunk.source_url,
                    author=chunk.author,
                    last_updated_at=chunk.updated_at,
                    sync_run_id=chunk.sync_run_id,
                    checksum=chunk.source_checksum,
                ),
            )
        )
    return sorted(items, key=lambda item: item.relevance, reverse=True)


def estimate_tokens(text: str) -> int:
    return max(1, math.ceil(len(text) / 4))


def cap_context_chunks(chunks: list[ContextChunk], max_tokens: int = 4000) -> list[ContextChunk]:
    """Keep leading chunks within the token budget; never return fewer than one."""
    selected: list[ContextChunk] = []
    used = 0
    for chunk in chunks:
        tokens = estimate_tokens(chunk.text)
        if selected and used + tokens > max_tokens:
            break
        selected.append(chunk)
        used += tokens
    return selected if selected else chunks[:1]


def to_context_chunks(chunks: list[Chunk]) -> list[ContextChunk]:
    return [
        ContextChunk(
            chunk_id=c.chunk_id,
            doc_version_id=c.doc_version_id,
            source_url=c.source_url,
            text=c.text,
            source_score=c.source_score,
        )
        for c in chunks
    ]
