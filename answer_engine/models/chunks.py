from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any
from uuid import uuid4

from answer_engine.models.hits import SourceType


@dataclass(slots=True)
class ChunkSource:
    type: SourceType
    url: str = ""
    title: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class Chunk:
    text: str
    source: ChunkSource | None = None
    id: str = field(default_factory=lambda: uuid4().hex)

    @property
    def url(self) -> str:
        return self.source.url if self.source else ""


@dataclass(slots=True)
class ScoredChunk:
    chunk: Chunk
    score: float
