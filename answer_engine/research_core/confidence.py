from __future__ import annotations

from typing import Iterable

from answer_engine.config import settings
from answer_engine.models.hits import Hit


def _mentions(hit: Hit, needle: str) -> bool:
    return needle in (hit.title or "").lower() or needle in (hit.snippet or "").lower()


def check_confidence(hits: list[Hit], query: str, *, boost: float | None = None) -> float:
    """Share of hits whose title or snippet contains the query, boosted and clamped to [0, 1]."""
    if not hits:
        return 0.0
    boost = settings.confidence_boost if boost is None else boost
    needle = (query or "").lower()
    matches = sum(1 for hit in hits if _mentions(hit, needle))
    fraction = matches / max(1, len(hits))
    return max(0.0, min(1.0, fraction * boost))


def strong_entity_match(query: str, hits: Iterable[Hit]) -> bool:
    if not query:
        return False
    needle = query.lower()
    return any(_mentions(hit, needle) for hit in hits)
