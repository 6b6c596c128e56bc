"""Answer quality contract reporting endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from answer_engine.api.auth import Viewer
from answer_engine.api.dependencies import get_answer_pipeline, get_answer_store
from answer_engine.api.rate_limiter import authorized_viewer
from answer_engine.models.schemas import QualityContractSummary
from answer_engine.pipeline.answer_pipeline import AnswerQueryPipeline
from answer_engine.storage.sqlite_answer_store import SQLiteAnswerStore

router = APIRouter()


@router.get(
    "/orgs/{org_id}/answer-quality/contract",
    response_model=QualityContractSummary,
)
async def quality_contract_summary(
    org_id: str,
    answer_store: SQLiteAnswerStore = Depends(get_answer_store),
    pipeline: AnswerQueryPipeline = Depends(get_answer_pipeline),
    _viewer: Viewer = Depends(authorized_viewer),
) -> QualityContractSummary:
    return await answer_store.get_quality_contract_summary(org_id, pipeline.policy.snapshot())
