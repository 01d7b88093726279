from __future__ import annotations

import time
from dataclasses import dataclass

import httpx

from answer_engine.config import settings
from answer_engine.exceptions import RerankUnavailable
from answer_engine.services import logger as log_service
from answer_engine.tools.web_utils import http_session

JINA_RERANK_URL = "https://api.jina.ai/v1/rerank"


@dataclass(slots=True)
class RerankScore:
    index: int
    relevance_score: float


async def rerank(
    query: str,
    documents: list[str],
    top_n: int,
    *,
    client: httpx.AsyncClient | None = None,
) -> list[RerankScore]:
    """Cross-encoder relevance scores, best first.

    Raises RerankUnavailable when no key is configured; HTTP and decode
    errors propagate so the caller can fall back to cosine order.
    """
    if not settings.jina_api_key:
        raise RerankUnavailable("JINA_API_KEY is not configured")
    if not documents:
        return []

    t0 = time.monotonic()
    async with http_session(client, timeout=settings.rerank_timeout_seconds) as session:
        response = await session.post(
            JINA_RERANK_URL,
            json={
                "model": settings.rerank_model,
                "query": query,
                "documents": documents,
                "top_n": min(top_n, len(documents)),
            },
            headers={"Authorization": f"Bearer {settings.jina_api_key}"},
        )
        response.raise_for_status()
        payload = response.json()

    scores = [
        RerankScore(index=int(item["index"]), relevance_score=float(item["relevance_score"]))
        for item in payload.get("results", [])
        if 0 <= int(item.get("index", -1)) < len(documents)
    ]
    log_service.log_provider_call(
        "rerank",
        query,
        results=len(scores),
        duration_ms=int((time.monotonic() - t0) * 1000),
    )
    return sorted(scores, key=lambda s: s.relevance_score, reverse=True)
