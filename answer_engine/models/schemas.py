from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from answer_engine.models.hits import SourceType

Depth = Literal["concise", "detailed", "phd"]


# --- Requests ---


class SearchRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    query: str
    max_web: int = Field(default=8, alias="maxWeb", ge=1, le=50)
    top_chunks: Optional[int] = Field(default=None, alias="topChunks", ge=1, le=100)
    fast: bool = False
    verify: bool = True
    depth: Depth = "concise"
    sources: Optional[list[SourceType]] = None
    max_time: Optional[int] = None  # seconds, clamped server-side


# --- Responses ---


class SourceRef(BaseModel):
    title: str
    url: str


class ResponseMeta(BaseModel):
    rounds_executed: int = 0
    pages_fetched: int = 0
    chunks_ranked: int = 0
    subtasks: int = 1
    runtime_ms: Optional[int] = None


class SearchResponse(BaseModel):
    formatted_answer: str
    sources: list[SourceRef] = []
    images: list[str] = []
    verification: Optional[dict[str, Any]] = None
    plan: Optional[list[dict[str, Any]]] = None
    last_fetched: str
    meta: ResponseMeta = Field(default_factory=ResponseMeta)


class HealthResponse(BaseModel):
    status: str
    version: str
