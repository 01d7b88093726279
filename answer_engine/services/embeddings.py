"""Text embeddings through an OpenAI-compatible endpoint.

Each text is truncated before embedding and cached by its exact truncated
form. A failed or short batch is padded with zero vectors so callers always
get one vector per input.
"""
from __future__ import annotations

import asyncio
import hashlib
import math
import re
import time
from typing import Any

from loguru import logger

from answer_engine.config import settings
from answer_engine.exceptions import ProviderUnavailable
from answer_engine.services import cache as cache_service
from answer_engine.services import logger as log_service


class EmbeddingService:
    def __init__(
        self,
        openai_client: Any,
        *,
        model: str | None = None,
        batch_size: int | None = None,
        max_chars: int | None = None,
        cache: cache_service.LayeredCache | None = None,
    ):
        self._client = openai_client
        self.model = model or settings.embedding_model
        self.batch_size = batch_size or settings.embed_batch_size
        self.max_chars = max_chars or settings.embed_max_chars
        self.cache = cache if cache is not None else cache_service.embedding_cache

    def _cache_key(self, text: str) -> str:
        return f"{self.model}|{text}"

    async def _embed_batch(self, batch: list[str]) -> list[list[float]]:
        t0 = time.monotonic()
        try:
            response = await asyncio.wait_for(
                self._client.embeddings.create(model=self.model, input=batch),
                timeout=settings.embed_timeout_seconds,
            )
        except Exception as e:
            log_service.log_provider_call(
                "embeddings",
                f"batch of {len(batch)}",
                duration_ms=int((time.monotonic() - t0) * 1000),
                error=str(e) or type(e).__name__,
            )
            return []
        data = sorted(getattr(response, "data", None) or [], key=lambda d: d.index)
        vectors = [list(item.embedding) for item in data]
        log_service.log_provider_call(
            "embeddings",
            f"batch of {len(batch)}",
            results=len(vectors),
            duration_ms=int((time.monotonic() - t0) * 1000),
        )
        return vectors

    async def embed_texts(self, texts: list[str]) -> list[list[float]]:
        truncated = [(t or "")[: self.max_chars] for t in texts]
        vectors: list[list[float] | None] = [None] * len(truncated)

        misses: list[int] = []
        for i, text in enumerate(truncated):
            cached = self.cache.get(self._cache_key(text))
            if cached is not None:
                vectors[i] = cached
            else:
                misses.append(i)

        fetched: list[list[float] | None] = []
        for start in range(0, len(misses), self.batch_size):
            batch = [truncated[i] for i in misses[start : start + self.batch_size]]
            got = await self._embed_batch(batch)
            if len(got) < len(batch):
                logger.warning(
                    f"Embedding batch returned {len(got)}/{len(batch)} vectors; zero-padding"
                )
            got = got[: len(batch)]
            fetched.extend(got + [None] * (len(batch) - len(got)))

        for i, vec in zip(misses, fetched):
            if vec is not None:
                vectors[i] = vec
                self.cache.set(self._cache_key(truncated[i]), vec)

        dim = next((len(v) for v in vectors if v), settings.embed_dimensions)
        return [v if v is not None else [0.0] * dim for v in vectors]


def get_embedder() -> EmbeddingService:
    from openai import AsyncOpenAI

    if not settings.embedding_api_key:
        raise ProviderUnavailable("embeddings", "EMBEDDING_API_KEY is not configured")
    openai_client = AsyncOpenAI(
        api_key=settings.embedding_api_key,
        base_url=settings.embedding_base_url,
    )
    return EmbeddingService(openai_client)


class HashedEmbeddingService:
    """Lexical fallback used when no embedding endpoint is configured.

    Feature-hashes word tokens into a fixed-size unit vector, so texts that
    share words score a positive cosine similarity.
    """

    def __init__(self, dim: int | None = None, max_chars: int | None = None):
        self.dim = dim or settings.embed_dimensions
        self.max_chars = max_chars or settings.embed_max_chars

    async def embed_texts(self, texts: list[str]) -> list[list[float]]:
        return [_hashed_embedding((t or "")[: self.max_chars], self.dim) for t in texts]


def _hashed_embedding(text: str, dim: int) -> list[float]:
    values = [0.0] * dim
    for token in re.findall(r"\w+", text.lower()):
        digest = hashlib.sha256(token.encode("utf-8")).digest()
        index = int.from_bytes(digest[:4], "big") % dim
        values[index] += 1.0 if digest[4] & 1 else -1.0
    norm = math.sqrt(sum(v * v for v in values))
    if norm <= 0:
        return values
    return [v / norm for v in values]


_embedder: EmbeddingService | HashedEmbeddingService | None = None


def embedder() -> EmbeddingService | HashedEmbeddingService:
    """Get or create the shared embedding service."""
    global _embedder
    if _embedder is None:
        try:
            _embedder = get_embedder()
        except ProviderUnavailable as e:
            logger.warning(f"{e}; ranking with hashed lexical embeddings")
            _embedder = HashedEmbeddingService()
    return _embedder
