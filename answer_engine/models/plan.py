from __future__ import annotations

from enum import StrEnum
from typing import Optional

from pydantic import BaseModel, ConfigDict


class TaskKind(StrEnum):
    NEWS = "news"
    TRANSCRIPT = "transcript"
    GENERIC = "generic"


class SubTask(BaseModel):
    """One independently answerable piece of the user's question."""

    model_config = ConfigDict(frozen=True)

    id: str
    kind: TaskKind
    query: str  # the fragment this task was planned from
    title: str = ""
    scope: Optional[str] = None  # "country" | "city" for news tasks
    place: Optional[str] = None
    date: Optional[str] = None  # ISO yyyy-mm-dd
    month: Optional[str] = None  # "yyyy-mm"
    year: Optional[int] = None
    must_be_full: bool = False
