"""Embedding similarity ranking with an optional cross-encoder pass.

Chunks are scored by cosine similarity to the query embedding, the best
``pool_size`` are kept, and the first strategy in the chain that succeeds
orders them down to ``top_k``. The cosine strategy never fails, so ranking
always produces a result.
"""
from __future__ import annotations

import math
from typing import Awaitable, Callable, Protocol, Sequence

from loguru import logger

from answer_engine.config import settings
from answer_engine.models.chunks import Chunk, ScoredChunk
from answer_engine.services import embeddings as embedding_service
from answer_engine.tools import reranker as reranker_tool
from answer_engine.tools.reranker import RerankScore

Reranker = Callable[[str, list[str], int], Awaitable[list[RerankScore]]]


class Embedder(Protocol):
    async def embed_texts(self, texts: list[str]) -> list[list[float]]: ...


def cosine_sim(a: Sequence[float], b: Sequence[float]) -> float:
    dot = 0.0
    na = 0.0
    nb = 0.0
    for x, y in zip(a, b):
        dot += x * y
        na += x * x
        nb += y * y
    return dot / (math.sqrt(na) * math.sqrt(nb) + 1e-12)


def score_chunks(
    query_vec: Sequence[float],
    chunk_vecs: Sequence[Sequence[float]],
    chunks: list[Chunk],
) -> list[ScoredChunk]:
    """Descending by score; sorted() is stable so ties keep collection order."""
    scored = [
        ScoredChunk(chunk=chunk, score=cosine_sim(query_vec, vec))
        for chunk, vec in zip(chunks, chunk_vecs)
    ]
    return sorted(scored, key=lambda s: s.score, reverse=True)


class RankStrategy(Protocol):
    name: str

    async def order(self, query: str, pool: list[ScoredChunk], top_k: int) -> list[ScoredChunk]: ...


class CrossEncoderStrategy:
    name = "cross_encoder"

    def __init__(self, reranker: Reranker):
        self._reranker = reranker

    async def order(self, query: str, pool: list[ScoredChunk], top_k: int) -> list[ScoredChunk]:
        scores = await self._reranker(query, [s.chunk.text for s in pool], top_k)
        if not scores:
            raise ValueError("reranker returned no scores")
        return [
            ScoredChunk(chunk=pool[s.index].chunk, score=s.relevance_score)
            for s in scores[:top_k]
        ]


class CosineStrategy:
    name = "cosine"

    async def order(self, query: str, pool: list[ScoredChunk], top_k: int) -> list[ScoredChunk]:
        return pool[:top_k]


async def rank(
    query: str,
    chunks: list[Chunk],
    *,
    top_k: int,
    pool_size: int | None = None,
    fast: bool = False,
    embedder: Embedder | None = None,
    reranker: Reranker | None = None,
) -> list[ScoredChunk]:
    if not chunks or top_k <= 0:
        return []

    embedder = embedder or embedding_service.embedder()
    vectors = await embedder.embed_texts([query, *[c.text for c in chunks]])
    scored = score_chunks(vectors[0], vectors[1:], chunks)

    if pool_size is None:
        pool_size = settings.candidate_pool_fast if fast else settings.candidate_pool
    pool = scored[: max(pool_size, 1)]

    strategies: list[RankStrategy] = []
    if not fast:
        strategies.append(CrossEncoderStrategy(reranker or reranker_tool.rerank))
    strategies.append(CosineStrategy())

    for strategy in strategies:
        try:
            ranked = await strategy.order(query, pool, top_k)
        except Exception as e:
            logger.info(f"Rank strategy {strategy.name} unavailable, falling back: {e}")
            continue
        logger.debug(f"Ranked {len(chunks)} chunks -> {len(ranked)} via {strategy.name}")
        return ranked
    return pool[:top_k]
