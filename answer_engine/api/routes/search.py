from __future__ import annotations

import json as _json
from datetime import datetime, timezone

from fastapi import APIRouter, HTTPException
from loguru import logger
from sse_starlette.sse import EventSourceResponse

from answer_engine.agents.orchestrator import AnswerOrchestrator
from answer_engine.exceptions import InvalidRequestError
from answer_engine.models.schemas import SearchRequest, SearchResponse
from answer_engine.services import logger as log_service
from answer_engine.services import streaming

router = APIRouter(prefix="/api/search", tags=["search"])

FAILURE_ANSWER = "Something went wrong while answering this question. Please try again."
PING_SECONDS = 15


def get_orchestrator() -> AnswerOrchestrator:
    return AnswerOrchestrator()


@router.post("", response_model=SearchResponse)
async def search(request: SearchRequest):
    """Answer a question in one shot."""
    log_service.log_event(
        event_type="search_started",
        message="Search started",
        query=request.query[:100],
        depth=request.depth,
        fast=request.fast,
    )
    try:
        return await get_orchestrator().answer(request)
    except InvalidRequestError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except Exception:
        logger.exception("Search failed")
        return SearchResponse(
            formatted_answer=FAILURE_ANSWER,
            last_fetched=datetime.now(timezone.utc).isoformat(),
        )


@router.post("/stream")
async def search_stream(request: SearchRequest):
    """SSE endpoint that streams pipeline progress and the final answer."""
    if not request.query.strip():
        raise HTTPException(status_code=400, detail="Missing query")

    async def event_generator():
        try:
            async for event in get_orchestrator().stream(request):
                yield {
                    "event": event.event.value,
                    "data": _json.dumps(event.data),
                }
        except Exception as e:
            logger.exception("Search stream failed")
            error_event = streaming.error(str(e) or "Answer pipeline failed")
            yield {
                "event": error_event.event.value,
                "data": _json.dumps(error_event.data),
            }

    return EventSourceResponse(event_generator(), ping=PING_SECONDS)
