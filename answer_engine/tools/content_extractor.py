from __future__ import annotations

import re
import shutil
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any

from bs4 import BeautifulSoup
from loguru import logger

from answer_engine.config import settings

NAV_MARKERS = (
    "main menu",
    "navigation",
    "jump to content",
    "cookie",
    "subscribe",
    "sign in",
)

AUTHOR_META = (
    {"name": "author"},
    {"property": "article:author"},
    {"name": "byl"},
    {"name": "parsely-author"},
)


@dataclass
class ExtractedContent:
    url: str
    title: str
    text: str
    author: str
    method: str
    fallback_used: bool


def _normalize_text(text: str) -> str:
    text = text.replace("\xa0", " ")
    text = re.sub(r"\r\n?", "\n", text)
    text = re.sub(r"[ \t]+", " ", text)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def _truncate(text: str, max_chars: int) -> str:
    if max_chars <= 0 or len(text) <= max_chars:
        return text
    return text[:max_chars]


def _extract_head(soup: BeautifulSoup) -> tuple[str, str]:
    title = soup.title.string if soup.title and soup.title.string else ""
    author = ""
    for attrs in AUTHOR_META:
        tag = soup.find("meta", attrs=attrs)
        if tag and tag.get("content"):
            author = str(tag["content"])
            break
    return _normalize_text(title), _normalize_text(author)


def _raw_text(soup: BeautifulSoup) -> str:
    for tag in soup(["script", "style", "noscript", "nav", "footer", "header", "form"]):
        tag.decompose()
    return _normalize_text(soup.get_text("\n"))


def _looks_low_quality(text: str) -> bool:
    normalized = text.lower()
    marker_hits = sum(normalized.count(marker) for marker in NAV_MARKERS)
    if len(text) < 200:
        return True
    return marker_hits >= 4 and len(text) < 2500


def _extract_with_trafilatura(raw_html: str) -> str:
    import trafilatura

    extracted = trafilatura.extract(raw_html, output_format="txt")
    if not isinstance(extracted, str):
        return ""
    return _normalize_text(extracted)


def _parse_readabilipy_payload(payload: dict[str, Any]) -> tuple[str, str]:
    title = ""
    raw_title = payload.get("title")
    if isinstance(raw_title, str):
        title = _normalize_text(raw_title)

    plain_text = payload.get("plain_text")
    if isinstance(plain_text, list):
        parts: list[str] = []
        for item in plain_text:
            if isinstance(item, str):
                parts.append(item)
            elif isinstance(item, dict) and isinstance(item.get("text"), str):
                parts.append(item["text"])
        normalized = _normalize_text("\n\n".join(parts))
        if normalized:
            return title, normalized

    content = payload.get("content")
    if isinstance(content, str):
        soup = BeautifulSoup(content, "html.parser")
        return title, _normalize_text(soup.get_text("\n"))

    return title, ""


@lru_cache(maxsize=1)
def _readabilipy_js_ready() -> bool:
    import readabilipy

    if shutil.which("node") is None:
        return False
    js_dir = Path(readabilipy.__file__).resolve().parent / "javascript"
    return (js_dir / "node_modules").exists()


def _extract_with_readabilipy(raw_html: str, *, use_readability: bool) -> tuple[str, str]:
    from readabilipy import simple_json_from_html_string

    if use_readability and not _readabilipy_js_ready():
        use_readability = False

    payload = simple_json_from_html_string(raw_html, use_readability=use_readability)
    if not isinstance(payload, dict):
        return "", ""
    return _parse_readabilipy_payload(payload)


def extract_main_content(
    url: str,
    raw_html: str,
    *,
    max_chars: int | None = None,
) -> ExtractedContent:
    """Readable text, title and author from an HTML document.

    trafilatura first, readabilipy when its output looks like navigation
    chrome, then whitespace-normalized visible text as a last resort.
    """
    target_chars = max_chars if max_chars is not None else int(settings.extractor_max_page_chars)
    fallback_mode = settings.extractor_fallback.lower().strip()

    soup = BeautifulSoup(raw_html, "html.parser")
    title, author = _extract_head(soup)

    seems_html = "<html" in raw_html.lower() or "<body" in raw_html.lower()
    primary_input = raw_html if seems_html else f"<html><body>{raw_html}</body></html>"

    primary_text = _extract_with_trafilatura(primary_input)
    if primary_text and not _looks_low_quality(primary_text):
        return ExtractedContent(
            url=url,
            title=title,
            text=_truncate(primary_text, target_chars),
            author=author,
            method="trafilatura",
            fallback_used=False,
        )

    if fallback_mode == "readabilipy":
        for use_readability, method in ((False, "readabilipy_fast"), (True, "readabilipy_js")):
            try:
                rb_title, rb_text = _extract_with_readabilipy(
                    primary_input, use_readability=use_readability
                )
            except Exception as e:
                logger.debug(f"{method} failed for {url}: {e}")
                continue
            if rb_text and not _looks_low_quality(rb_text):
                return ExtractedContent(
                    url=url,
                    title=rb_title or title,
                    text=_truncate(rb_text, target_chars),
                    author=author,
                    method=method,
                    fallback_used=True,
                )

    # Short pages that only failed the quality heuristic still beat raw text.
    text = primary_text or _raw_text(soup)
    return ExtractedContent(
        url=url,
        title=title,
        text=_truncate(text, target_chars),
        author=author,
        method="trafilatura" if primary_text else "raw",
        fallback_used=True,
    )
