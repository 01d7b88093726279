"""Sentence-level fusion of ranked chunks into cited bullet facts."""
from __future__ import annotations

import re
from typing import Any

from loguru import logger

from answer_engine.config import settings
from answer_engine.models.chunks import Chunk, ScoredChunk
from answer_engine.models.fusion import FusedFact, FusionResult
from answer_engine.models.hits import SourceType
from answer_engine.services.prompt_store import render_prompt

SENTENCE_SPLIT_RE = re.compile(r"(?<=[.!?])\s+|\n+")
EDGE_PUNCTUATION = "\"'`“”‘’«»•*-–—·>#()[] \t.;:,!?"
CONTENT_CHAR_RE = re.compile(r"[^\W_]")
MIN_SENTENCE_CHARS = 40
MIN_CONTENT_CHARS = 20
MAX_CONTRADICTIONS = 6

_PLATFORM_LABELS = {
    SourceType.YOUTUBE: "YouTube",
    SourceType.WIKI: "Wikipedia",
    SourceType.ARXIV: "arXiv",
    SourceType.SEMANTICSCHOLAR: "Semantic Scholar",
    SourceType.INSTAGRAM: "Instagram",
}


def split_sentences(text: str) -> list[str]:
    return [s.strip() for s in SENTENCE_SPLIT_RE.split(text or "") if s and s.strip()]


def normalize_sentence(sentence: str) -> str:
    lowered = re.sub(r"\s+", " ", sentence.lower())
    lowered = re.sub(r"^\s*\d+[.)]\s+", "", lowered)
    return lowered.strip(EDGE_PUNCTUATION)


def is_substantive(sentence: str) -> bool:
    if len(sentence) < MIN_SENTENCE_CHARS:
        return False
    return len(CONTENT_CHAR_RE.findall(sentence)) >= MIN_CONTENT_CHARS


def source_label(chunk: Chunk) -> str:
    source = chunk.source
    if source is None:
        return "Unknown source"
    url = source.url
    title = source.title or url
    if source.type == SourceType.TWITTER:
        return f"Twitter ({source.metadata.get('tweet_id') or url})"
    if source.type == SourceType.REDDIT:
        return f"Reddit ({source.metadata.get('subreddit', '')}) — {url}"
    platform = _PLATFORM_LABELS.get(source.type)
    if platform:
        return f"{platform} — {url}"
    return f"{title} — {url}"


def render_source_map(scored_chunks: list[ScoredChunk]) -> str:
    return "\n".join(
        f"S{i + 1} : {source_label(s.chunk)}" for i, s in enumerate(scored_chunks)
    )


def fuse(
    query: str,
    scored_chunks: list[ScoredChunk],
    max_bullets: int = 24,
    per_chunk: int = 3,
) -> FusionResult:
    """Deduplicate sentences across chunks; later duplicates add support instead of bullets.

    ``query`` is accepted for signature parity with the rank stage; the
    chunks arrive already ordered by relevance to it.
    """
    facts: dict[str, FusedFact] = {}
    for index, scored in enumerate(scored_chunks):
        if len(facts) >= max_bullets:
            break
        taken = 0
        for sentence in split_sentences(scored.chunk.text):
            if taken >= per_chunk:
                break
            if not is_substantive(sentence):
                continue
            key = normalize_sentence(sentence)
            if not key:
                continue
            fact = facts.get(key)
            if fact is not None:
                fact.add_support(index)
                taken += 1
                continue
            facts[key] = FusedFact(key=key, text=sentence, supporting=[index])
            taken += 1
            if len(facts) >= max_bullets:
                break

    ordered = list(facts.values())
    return FusionResult(
        fused_text="\n".join(fact.render() for fact in ordered),
        source_map=render_source_map(scored_chunks),
        facts=ordered,
    )


def _parse_contradictions(text: str) -> list[str]:
    stripped = (text or "").strip()
    if not stripped or stripped.lower().strip(".") == "none":
        return []
    lines = []
    for line in stripped.splitlines():
        line = re.sub(r"^\s*(?:[-*•]|\d+[.)])\s*", "", line).strip()
        if line and line.lower().strip(".") != "none":
            lines.append(line)
    return lines[:MAX_CONTRADICTIONS]


async def detect_contradictions(fused_text: str, llm: Any, *, model: str | None = None) -> list[str]:
    """Best effort: any failure yields no contradictions."""
    if not fused_text.strip():
        return []
    try:
        result = await llm.generate(
            render_prompt("fusion.contradictions", fused_text=fused_text),
            model=model or settings.default_model,
            temperature=0.0,
            max_tokens=400,
            caller="detect_contradictions",
        )
    except Exception as e:
        logger.warning(f"Contradiction check failed: {e}")
        return []
    return _parse_contradictions(result.text)
