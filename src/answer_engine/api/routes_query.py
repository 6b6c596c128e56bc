"""Answer query endpoints."""

from __future__ import annotations

import json

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import StreamingResponse

from answer_engine.api.auth import Viewer
from answer_engine.api.dependencies import get_answer_pipeline
from answer_engine.api.rate_limiter import authorized_viewer
from answer_engine.exceptions import AnswerEngineError, GroundingError
from answer_engine.models.schemas import AnswerQueryRequest, AnswerQueryResponse
from answer_engine.pipeline.answer_pipeline import AnswerQueryPipeline

router = APIRouter()


@router.post("/orgs/{org_id}/answer", response_model=AnswerQueryResponse)
async def answer(
    org_id: str,
    body: AnswerQueryRequest,
    request: Request,
    pipeline: AnswerQueryPipeline = Depends(get_answer_pipeline),
    viewer: Viewer = Depends(authorized_viewer),
) -> AnswerQueryResponse:
    try:
        return await pipeline.execute(
            org_id,
            body,
            viewer_principal_keys=viewer.principal_keys,
            actor_id=viewer.user_id,
            request_id=getattr(request.state, "request_id", None),
        )
    except GroundingError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))
    except AnswerEngineError as e:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))


@router.post("/orgs/{org_id}/answer/stream")
async def answer_stream(
    org_id: str,
    body: AnswerQueryRequest,
    request: Request,
    pipeline: AnswerQueryPipeline = Depends(get_answer_pipeline),
    viewer: Viewer = Depends(authorized_viewer),
):
    """Stream the gated answer via Server-Sent Events."""
    request_id = getattr(request.state, "request_id", None)

    async def event_generator():
        try:
            async for event in pipeline.execute_stream(
                org_id,
                body,
                viewer_principal_keys=viewer.principal_keys,
                actor_id=viewer.user_id,
                request_id=request_id,
            ):
                yield f"event: {event['event']}\ndata: {event['data']}\n\n"
        except AnswerEngineError as e:
            data = json.dumps({"type": "error", "request_id": request_id, "message": str(e)})
            yield f"event: error\ndata: {data}\n\n"

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )
