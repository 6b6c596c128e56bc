"""Protocol for the searchable corpus."""

from __future__ import annotations

from typing import Protocol

from answer_engine.models.domain import RankedCandidate, SearchFilters


class ChunkStore(Protocol):
    async def hybrid_search(
        self,
        org_id: str,
        query_text: str,
        query_embedding: list[float],
        filters: SearchFilters,
        limit: int = 8,
    ) -> list[RankedCandidate]: ...
