"""Rule-based query planning.

A query is split into fragments (enumerations, line breaks, clause-level
"and" joins); each fragment becomes one or more sub-tasks. Structured cues
(latest news about a known place, full transcripts of known events) yield
specialized tasks; anything else is a single generic task.
"""
from __future__ import annotations

import re
import unicodedata
from datetime import date
from uuid import uuid4

from answer_engine.config import settings
from answer_engine.models.hits import SourceType
from answer_engine.models.plan import SubTask, TaskKind

MONTHS = ("jan", "feb", "mar", "apr", "may", "jun", "jul", "aug", "sep", "oct", "nov", "dec")

ENUMERATION_SPLIT_RE = re.compile(r"\n+|(?:^|\s)(?:\d+\.|\d+\)|-)\s+", re.MULTILINE)
AND_SPLIT_RE = re.compile(r"\s+and\s+", re.IGNORECASE)
CLAUSE_STARTERS = {
    "what", "who", "whom", "whose", "how", "when", "where", "why", "which",
    "is", "are", "does", "do", "can", "tell", "give", "list", "show",
    "explain", "summarize", "find", "compare", "also",
}
MIN_CLAUSE_WORDS = 3

ISO_DATE_RE = re.compile(r"\b(20\d{2})[-/. ](0?[1-9]|1[0-2])[-/. ](0?[1-9]|[12]\d|3[01])\b")
DMY_DATE_RE = re.compile(
    r"\b(0?[1-9]|[12]\d|3[01])\s+(jan|feb|mar|apr|may|jun|jul|aug|sep|oct|nov|dec)[a-z]*\s+(20\d{2})\b",
    re.IGNORECASE,
)
MONTH_YEAR_RE = re.compile(
    r"\b(jan|feb|mar|apr|may|jun|jul|aug|sep|oct|nov|dec)[a-z]*\s+(20\d{2})\b", re.IGNORECASE
)
NUMERIC_MONTH_YEAR_RE = re.compile(r"\b(0?[1-9]|1[0-2])[/-](20\d{2})\b")
US_DATE_RE = re.compile(r"\b(0?[1-9]|1[0-2])/(0?[1-9]|[12]\d|3[01])/(20\d{2})\b")

LATEST_NEWS_RE = re.compile(r"latest\s+news", re.IGNORECASE)
WANTS_FULL_RE = re.compile(r"\bfull\b.*\b(speech|transcript)\b", re.IGNORECASE)

PLACE_ALIASES = {"Mainpuri": ("मैनपुरी",)}

# (subject pattern, cue pattern, title, year)
KNOWN_EVENTS = (
    (
        re.compile(r"steve\s+jobs", re.IGNORECASE),
        re.compile(r"2007|macworld", re.IGNORECASE),
        "Steve Jobs introduces iPhone (Macworld)",
        2007,
    ),
)

VERTICAL_HINTS: dict[str, list[SourceType]] = {
    "news": [SourceType.WEB, SourceType.NEWS, SourceType.TWITTER],
    "transcript": [SourceType.WEB, SourceType.YOUTUBE],
    "science": [SourceType.WEB, SourceType.WIKI, SourceType.ARXIV, SourceType.SEMANTICSCHOLAR],
    "visual": [SourceType.WEB, SourceType.INSTAGRAM],
    "general": [SourceType.WEB, SourceType.WIKI, SourceType.REDDIT],
}


def _norm(text: str) -> str:
    return unicodedata.normalize("NFKC", text or "").strip()


def _uid() -> str:
    return uuid4().hex


def _split_and_clauses(fragment: str) -> list[str]:
    pieces = AND_SPLIT_RE.split(fragment)
    if len(pieces) == 1:
        return [fragment]
    clauses = [pieces[0]]
    for piece in pieces[1:]:
        first_word = piece.split()[0].lower() if piece.split() else ""
        if (
            first_word in CLAUSE_STARTERS
            and len(piece.split()) >= MIN_CLAUSE_WORDS
            and len(clauses[-1].split()) >= MIN_CLAUSE_WORDS
        ):
            clauses.append(piece)
        else:
            clauses[-1] = f"{clauses[-1]} and {piece}"
    return clauses


def split_multi_intent(text: str) -> list[str]:
    parts = [_norm(p) for p in ENUMERATION_SPLIT_RE.split(text or "")]
    fragments = [
        clause.strip()
        for part in parts
        if part
        for clause in _split_and_clauses(part)
        if clause.strip()
    ]
    if len(fragments) <= 1:
        return [_norm(text)]
    return fragments


def extract_explicit_date(text: str) -> str | None:
    """ISO ``yyyy-mm-dd`` from "2025-08-19" or "19 Aug 2025" forms."""
    iso = ISO_DATE_RE.search(text or "")
    if iso:
        return f"{iso.group(1)}-{int(iso.group(2)):02d}-{int(iso.group(3)):02d}"
    dmy = DMY_DATE_RE.search(text or "")
    if dmy:
        month = MONTHS.index(dmy.group(2).lower()[:3]) + 1
        return f"{dmy.group(3)}-{month:02d}-{int(dmy.group(1)):02d}"
    return None


def extract_month_year(text: str) -> str | None:
    """``yyyy-mm`` from "Aug 2025", "August 2025" or "08/2025"."""
    named = MONTH_YEAR_RE.search(text or "")
    if named:
        month = MONTHS.index(named.group(1).lower()[:3]) + 1
        return f"{named.group(2)}-{month:02d}"
    numeric = NUMERIC_MONTH_YEAR_RE.search(text or "")
    if numeric:
        return f"{numeric.group(2)}-{int(numeric.group(1)):02d}"
    return None


def to_iso_date(value: str | None) -> str | None:
    """Best-effort ISO date from provider date strings; None when unrecognized."""
    if not value:
        return None
    us = US_DATE_RE.search(value)
    if us:
        return f"{us.group(3)}-{int(us.group(1)):02d}-{int(us.group(2)):02d}"
    return extract_explicit_date(value)


def extract_places(text: str, known: dict[str, str] | None = None) -> dict[str, str]:
    """Known place names mentioned in ``text``, mapped to their scope."""
    known = known if known is not None else settings.known_place_map
    found: dict[str, str] = {}
    for name, scope in known.items():
        patterns = [rf"\b{re.escape(name)}\b", *map(re.escape, PLACE_ALIASES.get(name, ()))]
        if any(re.search(p, text or "", re.IGNORECASE) for p in patterns):
            found[name] = scope
    return found


def _title(text: str, limit: int = 80) -> str:
    text = " ".join(text.split())
    return text if len(text) <= limit else text[: limit - 3].rstrip() + "..."


def make_plan(fragment: str, today: date | None = None) -> list[SubTask]:
    today = today or date.today()
    explicit_date = extract_explicit_date(fragment) or today.isoformat()
    month = extract_month_year(fragment)
    places = extract_places(fragment)
    tasks: list[SubTask] = []

    if LATEST_NEWS_RE.search(fragment):
        for place, scope in places.items():
            if scope == "country":
                tasks.append(
                    SubTask(
                        id=_uid(),
                        kind=TaskKind.NEWS,
                        query=fragment,
                        scope="country",
                        place=place,
                        date=explicit_date,
                    )
                )
            elif month:
                tasks.append(
                    SubTask(
                        id=_uid(),
                        kind=TaskKind.NEWS,
                        query=fragment,
                        scope=scope,
                        place=place,
                        month=month,
                    )
                )

    wants_full = bool(WANTS_FULL_RE.search(fragment))
    event = next(
        (e for e in KNOWN_EVENTS if e[0].search(fragment) and e[1].search(fragment)),
        None,
    )
    if event is not None:
        _, _, title, year = event
        tasks.append(
            SubTask(
                id=_uid(),
                kind=TaskKind.TRANSCRIPT,
                query=fragment,
                title=title,
                year=year,
                must_be_full=wants_full,
            )
        )
    elif wants_full:
        tasks.append(
            SubTask(
                id=_uid(),
                kind=TaskKind.TRANSCRIPT,
                query=fragment,
                title=_title(fragment),
                must_be_full=True,
            )
        )

    if not tasks:
        tasks.append(
            SubTask(id=_uid(), kind=TaskKind.GENERIC, query=fragment)
        )
    return tasks


def plan_query(query: str, today: date | None = None, *, max_tasks: int | None = None) -> list[SubTask]:
    max_tasks = max_tasks if max_tasks is not None else settings.max_subtasks
    tasks = [task for fragment in split_multi_intent(query) for task in make_plan(fragment, today)]
    return tasks[: max(1, max_tasks)]


def subtask_query(task: SubTask, today: date | None = None) -> str:
    """Retrieval query for a task; generic tasks search their own fragment."""
    today = today or date.today()
    if task.kind == TaskKind.NEWS:
        if task.scope == "country":
            return f'{task.place} latest news "{task.date or today.isoformat()}"'
        month_label = ""
        if task.month:
            year, month = task.month.split("-")
            month_label = f"{MONTHS[int(month) - 1].capitalize()} {year}"
        return f'"{task.place}" latest news {month_label}'.strip()
    if task.kind == TaskKind.TRANSCRIPT:
        year = f" {task.year}" if task.year else ""
        return f'full transcript "{task.title or task.query}"{year} site:youtube.com OR site:archive.org'
    return task.query


def classify_intent(text: str) -> str:
    lowered = (text or "").lower()
    if "news" in lowered or re.search(r"\b20\d{2}\b", lowered):
        return "news"
    if any(w in lowered for w in ("transcript", "speech", "launch")):
        return "transcript"
    if any(w in lowered for w in ("paper", "theorem", "research")):
        return "science"
    if any(w in lowered for w in ("image", "chart", "graph", "instagram")):
        return "visual"
    return "general"


def sources_for(task: SubTask) -> list[SourceType]:
    """Collector sources for a task when the caller did not choose any."""
    if task.kind == TaskKind.NEWS:
        return [SourceType.WEB, SourceType.NEWS]
    if task.kind == TaskKind.TRANSCRIPT:
        return list(VERTICAL_HINTS["transcript"])
    return list(VERTICAL_HINTS[classify_intent(task.query)])


def section_title(task: SubTask) -> str:
    if task.kind == TaskKind.NEWS:
        return f"Latest News — {task.place} ({task.date if task.scope == 'country' else task.month})"
    if task.kind == TaskKind.TRANSCRIPT:
        year = f" ({task.year})" if task.year else ""
        return f"{task.title} — Transcript{year}"
    return f"Result — {_title(task.query)}"
