"""Google Gemini LLM provider using the google-genai SDK."""

from __future__ import annotations

import json

from google import genai
from google.genai import types
from pydantic import BaseModel, Field

from answer_engine.exceptions import GenerationError
from answer_engine.generation.prompt_templates import (
    ANSWER_PROMPT,
    ANSWER_SYSTEM,
    format_context_block,
)
from answer_engine.models.domain import ContextChunk, GroundedAnswer
from answer_engine.models.schemas import Citation
from answer_engine.observability.logger import get_logger

logger = get_logger("gemini")


class CitationPayload(BaseModel):
    chunk_id: str
    doc_version_id: str
    source_url: str
    start_offset: int = Field(default=0, ge=0)
    end_offset: int = Field(default=0, ge=0)


class GroundedAnswerPayload(BaseModel):
    answer: str = Field(min_length=1)
    citations: list[CitationPayload] = Field(default_factory=list)
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    source_score: float = Field(default=0.0, ge=0.0, le=100.0)


class GeminiProvider:
    def __init__(
        self,
        api_key: str,
        model: str = "gemini-2.0-flash",
        temperature: float = 0.1,
        max_tokens: int = 4096,
    ) -> None:
        self._client = genai.Client(api_key=api_key)
        self._model = model
        self._temperature = temperature
        self._max_tokens = max_tokens

    @property
    def name(self) -> str:
        return f"gemini:{self._model}"

    async def answer_question(
        self, question: str, context_chunks: list[ContextChunk]
    ) -> GroundedAnswer:
        prompt = ANSWER_PROMPT.format(
            question=question,
            context_block=format_context_block(context_chunks),
        )
        try:
            config = types.GenerateContentConfig(
                temperature=self._temperature,
                max_output_tokens=self._max_tokens,
                system_instruction=ANSWER_SYSTEM,
                response_mime_type="application/json",
                response_schema=GroundedAnswerPayload,
            )
            response = await self._client.aio.models.generate_content(
                model=self._model,
                contents=prompt,
                config=config,
            )
            payload = GroundedAnswerPayload.model_validate(json.loads(response.text))
        except Exception as e:
            raise GenerationError(f"Gemini generation failed: {e}") from e

        logger.info(
            "gemini_answer",
            context_chunks=len(context_chunks),
            citations=len(payload.citations),
        )
        return GroundedAnswer(
            answer=payload.answer,
            citations=[Citation(**c.model_dump()) for c in payload.citations],
            confidence=payload.confidence,
            source_score=payload.source_score,
        )
