"""Protocol for durable storage of answered questions."""

from __future__ import annotations

from typing import Protocol

from answer_engine.models.domain import SavedAnswer
from answer_engine.models.schemas import AnswerQueryResponse


class AnswerStore(Protocol):
    async def save_answer(
        self,
        org_id: str,
        question: str,
        response: AnswerQueryResponse,
        thread_id: str | None = None,
        actor_id: str | None = None,
    ) -> SavedAnswer:
        """Write thread, messages, citations, claims and the quality run in one transaction."""
        ...
