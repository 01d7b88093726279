from __future__ import annotations

from typing import Any

from answer_engine.models.events import EventType, SSEEvent
from answer_engine.models.plan import SubTask


def start(
    query: str,
    request_id: str,
    plan: list[SubTask] | None = None,
    **kwargs: Any,
) -> SSEEvent:
    data: dict[str, Any] = {"query": query, "request_id": request_id, **kwargs}
    if plan is not None:
        data["plan"] = [task.model_dump(mode="json") for task in plan]
    return SSEEvent(event=EventType.START, data=data)


def stage(name: str, **kwargs: Any) -> SSEEvent:
    return SSEEvent(event=EventType.STAGE, data={"stage": name, **kwargs})


def metrics(
    by_source: dict[str, int],
    *,
    pages_fetched: int = 0,
    rounds: int | None = None,
    **kwargs: Any,
) -> SSEEvent:
    data: dict[str, Any] = {"by_source": by_source, "pages_fetched": pages_fetched}
    if rounds is not None:
        data["rounds"] = rounds
    data.update(kwargs)
    return SSEEvent(event=EventType.METRICS, data=data)


def answer(payload: dict[str, Any]) -> SSEEvent:
    return SSEEvent(event=EventType.ANSWER, data=payload)


def done(runtime_ms: int | None = None) -> SSEEvent:
    data: dict[str, Any] = {}
    if runtime_ms is not None:
        data["runtime_ms"] = runtime_ms
    return SSEEvent(event=EventType.DONE, data=data)


def error(message: str, stage_name: str | None = None) -> SSEEvent:
    data: dict[str, Any] = {"message": message}
    if stage_name:
        data["stage"] = stage_name
    return SSEEvent(event=EventType.ERROR, data=data)
