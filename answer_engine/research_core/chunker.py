"""Paragraph-greedy text chunking.

Paragraphs are newline-delimited runs of text. They are packed into chunks
joined by a blank line until adding the next one would exceed ``max_len``.
A single paragraph longer than ``max_len`` is emitted as its own oversized
chunk; it is never split mid-paragraph.
"""
from __future__ import annotations

import re

from answer_engine.models.chunks import Chunk, ChunkSource
from answer_engine.models.hits import Hit, Page

PARAGRAPH_SPLIT_RE = re.compile(r"\n+")
SEPARATOR = "\n\n"


def chunk_text(text: str, max_len: int = 1500, source: ChunkSource | None = None) -> list[Chunk]:
    paragraphs = [p.strip() for p in PARAGRAPH_SPLIT_RE.split(text or "")]
    chunks: list[Chunk] = []
    current = ""
    for paragraph in paragraphs:
        if not paragraph:
            continue
        if current and len(current) + len(SEPARATOR) + len(paragraph) > max_len:
            chunks.append(Chunk(text=current, source=source))
            current = paragraph
        else:
            current = f"{current}{SEPARATOR}{paragraph}" if current else paragraph
    if current:
        chunks.append(Chunk(text=current, source=source))
    return chunks


def source_for(hit: Hit, page: Page | None = None) -> ChunkSource:
    metadata = hit.metadata()
    if hit.date:
        metadata["date"] = hit.date
    if page is not None and page.author:
        metadata["author"] = page.author
    return ChunkSource(
        type=hit.source_type,
        url=(page.url if page is not None else "") or hit.url,
        title=(page.title if page is not None else "") or hit.title,
        metadata=metadata,
    )


def chunk_hit(hit: Hit, max_len: int = 1500) -> Chunk | None:
    """One un-split chunk for a short hit (tweet, post, snippet)."""
    text = hit.body()[:max_len].strip()
    if not text:
        return None
    return Chunk(text=text, source=source_for(hit))


def chunk_page(hit: Hit, page: Page, max_len: int = 1500) -> list[Chunk]:
    return chunk_text(page.text, max_len=max_len, source=source_for(hit, page))
