"""Protocol for language model providers."""

from __future__ import annotations

from typing import Protocol

from answer_engine.models.domain import ContextChunk, GroundedAnswer


class LanguageModelProvider(Protocol):
    @property
    def name(self) -> str: ...

    async def answer_question(
        self, question: str, context_chunks: list[ContextChunk]
    ) -> GroundedAnswer: ...
