"""Normalized search hits.

Every provider maps its response onto one of the variants below at the
collector boundary; nothing downstream sees provider-specific field names.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from enum import StrEnum
from typing import Any, ClassVar


class SourceType(StrEnum):
    WEB = "web"
    NEWS = "news"
    WIKI = "wiki"
    REDDIT = "reddit"
    TWITTER = "twitter"
    YOUTUBE = "youtube"
    ARXIV = "arxiv"
    SEMANTICSCHOLAR = "semanticscholar"
    INSTAGRAM = "instagram"


_BASE_FIELDS = {"title", "url", "snippet", "date"}


@dataclass(slots=True)
class Hit:
    title: str
    url: str
    snippet: str = ""
    date: str | None = None

    source_type: ClassVar[SourceType] = SourceType.WEB

    def metadata(self) -> dict[str, Any]:
        """Variant-specific fields that carry a value."""
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if f.name not in _BASE_FIELDS and getattr(self, f.name) not in (None, "")
        }

    def body(self) -> str:
        """Text used when the hit itself becomes a chunk."""
        return f"{self.title}\n\n{self.snippet}".strip()

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "title": self.title,
            "url": self.url,
            "snippet": self.snippet,
            "source": self.source_type.value,
        }
        if self.date:
            data["date"] = self.date
        data.update(self.metadata())
        return data


@dataclass(slots=True)
class WebHit(Hit):
    engine: str = ""
    source_type: ClassVar[SourceType] = SourceType.WEB


@dataclass(slots=True)
class NewsHit(Hit):
    outlet: str = ""
    source_type: ClassVar[SourceType] = SourceType.NEWS


@dataclass(slots=True)
class WikiHit(Hit):
    source_type: ClassVar[SourceType] = SourceType.WIKI


@dataclass(slots=True)
class RedditHit(Hit):
    subreddit: str = ""
    author: str = ""
    source_type: ClassVar[SourceType] = SourceType.REDDIT


@dataclass(slots=True)
class TweetHit(Hit):
    tweet_id: str = ""
    author_id: str = ""
    source_type: ClassVar[SourceType] = SourceType.TWITTER

    def body(self) -> str:
        return self.snippet.strip()


@dataclass(slots=True)
class VideoHit(Hit):
    channel: str = ""
    source_type: ClassVar[SourceType] = SourceType.YOUTUBE


@dataclass(slots=True)
class PaperHit(Hit):
    authors: str = ""
    year: int | None = None
    citation_count: int | None = None
    source_type: ClassVar[SourceType] = SourceType.ARXIV


@dataclass(slots=True)
class ScholarHit(PaperHit):
    source_type: ClassVar[SourceType] = SourceType.SEMANTICSCHOLAR


@dataclass(slots=True)
class InstagramHit(Hit):
    author: str = ""
    source_type: ClassVar[SourceType] = SourceType.INSTAGRAM


@dataclass(slots=True)
class Page:
    url: str
    title: str
    text: str
    author: str = ""


HIT_TYPES: dict[SourceType, type[Hit]] = {
    SourceType.WEB: WebHit,
    SourceType.NEWS: NewsHit,
    SourceType.WIKI: WikiHit,
    SourceType.REDDIT: RedditHit,
    SourceType.TWITTER: TweetHit,
    SourceType.YOUTUBE: VideoHit,
    SourceType.ARXIV: PaperHit,
    SourceType.SEMANTICSCHOLAR: ScholarHit,
    SourceType.INSTAGRAM: InstagramHit,
}


def hit_to_record(hit: Hit) -> dict[str, Any]:
    """JSON-safe form used by the caches."""
    return {"source": hit.source_type.value, **asdict(hit)}


def hit_from_record(record: dict[str, Any]) -> Hit:
    data = dict(record)
    cls = HIT_TYPES[SourceType(data.pop("source"))]
    known = {f.name for f in fields(cls)}
    return cls(**{k: v for k, v in data.items() if k in known})
