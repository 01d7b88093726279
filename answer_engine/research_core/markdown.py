"""Parsers over generated Markdown answers.

Regex contracts:
- link citation: ``[title](http(s)://url)`` not preceded by ``!``
- loose citation line: ``Title — URL`` (em/en dash or hyphen), optionally bulleted
- image: ``![alt](http(s)://url)``
- inline citation: ``[S1]``, ``[S1, S3]`` or footnote ``[^1]``
"""
from __future__ import annotations

import re

from answer_engine.models.chunks import ScoredChunk
from answer_engine.tools.web_utils import normalize_url

LINK_RE = re.compile(r"(?<!!)\[([^\]]+)\]\((https?://[^)\s]+)\)")
LOOSE_LINE_RE = re.compile(
    r"^\s*(?:[-*•]\s+|\d+[.)]\s+)?(?P<title>[^\n\[\]]+?)\s+[—–-]\s+(?P<url>https?://[^\s)]+)\s*$",
    re.MULTILINE,
)
IMAGE_RE = re.compile(r"!\[[^\]]*\]\((https?://[^)\s]+)\)")
INLINE_CITATION_RE = re.compile(r"\[(?:S\d+(?:\s*,\s*S\d+)*|\^\d+)\]")


def extract_citations(
    md: str,
    fallback_top: list[ScoredChunk] | None = None,
    limit: int = 12,
) -> list[dict[str, str]]:
    """Cited sources in order of first appearance, deduplicated by URL.

    Falls back to the top chunks' own sources when the answer cites nothing.
    """
    found: list[tuple[int, str, str]] = []
    for m in LINK_RE.finditer(md or ""):
        found.append((m.start(), m.group(1).strip(), m.group(2)))
    for m in LOOSE_LINE_RE.finditer(md or ""):
        found.append((m.start(), m.group("title").strip(), m.group("url")))
    found.sort(key=lambda item: item[0])

    citations: list[dict[str, str]] = []
    seen: set[str] = set()
    for _, title, url in found:
        key = normalize_url(url)
        if key in seen:
            continue
        seen.add(key)
        citations.append({"title": title, "url": url})

    if not citations:
        for scored in fallback_top or []:
            source = scored.chunk.source
            if source is None or not source.url:
                continue
            key = normalize_url(source.url)
            if key in seen:
                continue
            seen.add(key)
            citations.append({"title": source.title or source.url, "url": source.url})

    return citations[:limit]


def extract_images(md: str, limit: int = 8) -> list[str]:
    images: list[str] = []
    for url in IMAGE_RE.findall(md or ""):
        if url not in images:
            images.append(url)
    return images[:limit]


def count_inline_citations(md: str) -> int:
    return len(INLINE_CITATION_RE.findall(md or "")) + len(LINK_RE.findall(md or ""))
