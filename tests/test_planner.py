from __future__ import annotations

from datetime import date

from answer_engine.agents import planner
from answer_engine.models.hits import SourceType
from answer_engine.models.plan import SubTask, TaskKind

TODAY = date(2025, 8, 19)


def test_split_multi_intent_on_clause_level_and():
    fragments = planner.split_multi_intent("What is the capital of France and who is the president of France")

    assert fragments == ["What is the capital of France", "who is the president of France"]


def test_split_multi_intent_keeps_noun_phrase_and_together():
    assert planner.split_multi_intent("best salt and pepper grinders") == ["best salt and pepper grinders"]


def test_split_multi_intent_on_enumerations_and_lines():
    fragments = planner.split_multi_intent("1. capital of France\n2. tallest building in Paris")

    assert fragments == ["capital of France", "tallest building in Paris"]


def test_date_extraction():
    assert planner.extract_explicit_date("news on 2025-8-9") == "2025-08-09"
    assert planner.extract_explicit_date("news from 19 August 2025") == "2025-08-19"
    assert planner.extract_explicit_date("no date") is None
    assert planner.extract_month_year("Mainpuri Aug 2025") == "2025-08"
    assert planner.extract_month_year("Mainpuri 08/2025") == "2025-08"
    assert planner.to_iso_date("08/19/2025, 07:00 AM, +0000 UTC") == "2025-08-19"
    assert planner.to_iso_date("2 days ago") is None


def test_extract_places_matches_aliases():
    known = {"India": "country", "Mainpuri": "city"}

    assert planner.extract_places("मैनपुरी की ताज़ा खबरें", known) == {"Mainpuri": "city"}
    assert planner.extract_places("latest news india", known) == {"India": "country"}
    assert planner.extract_places("Indiana weather", known) == {}


def test_make_plan_news_for_country_and_city():
    tasks = planner.make_plan("latest news India and Mainpuri Aug 2025", today=TODAY)

    assert [(t.kind, t.place, t.scope) for t in tasks] == [
        (TaskKind.NEWS, "India", "country"),
        (TaskKind.NEWS, "Mainpuri", "city"),
    ]
    assert tasks[0].date == "2025-08-19"
    assert tasks[1].month == "2025-08"


def test_make_plan_skips_city_news_without_month():
    tasks = planner.make_plan("latest news Mainpuri", today=TODAY)

    assert [t.kind for t in tasks] == [TaskKind.GENERIC]


def test_make_plan_known_event_transcript():
    [task] = planner.make_plan("Steve Jobs 2007 iPhone launch full speech", today=TODAY)

    assert task.kind == TaskKind.TRANSCRIPT
    assert task.title == "Steve Jobs introduces iPhone (Macworld)"
    assert task.year == 2007
    assert task.must_be_full is True


def test_make_plan_generic_full_transcript():
    [task] = planner.make_plan("full transcript of the 1963 March on Washington speech", today=TODAY)

    assert task.kind == TaskKind.TRANSCRIPT
    assert task.must_be_full is True
    assert task.year is None


def test_plan_query_generic_and_limit():
    [task] = planner.plan_query("What is the capital of France?", today=TODAY)

    assert task.kind == TaskKind.GENERIC
    assert task.query == "What is the capital of France?"
    assert len(planner.plan_query("a b c d\ne f g h\ni j k l", today=TODAY, max_tasks=2)) == 2


def test_subtask_query_and_section_title():
    country = SubTask(id="1", kind=TaskKind.NEWS, query="q", scope="country", place="India", date="2025-08-19")
    city = SubTask(id="2", kind=TaskKind.NEWS, query="q", scope="city", place="Mainpuri", month="2025-08")
    transcript = SubTask(id="3", kind=TaskKind.TRANSCRIPT, query="q", title="Keynote", year=2007)
    generic = SubTask(id="4", kind=TaskKind.GENERIC, query="capital of France")

    assert planner.subtask_query(country, TODAY) == 'India latest news "2025-08-19"'
    assert planner.subtask_query(city, TODAY) == '"Mainpuri" latest news Aug 2025'
    assert planner.subtask_query(transcript, TODAY).startswith('full transcript "Keynote" 2007')
    assert planner.subtask_query(generic, TODAY) == "capital of France"

    assert planner.section_title(country) == "Latest News — India (2025-08-19)"
    assert planner.section_title(city) == "Latest News — Mainpuri (2025-08)"
    assert planner.section_title(transcript) == "Keynote — Transcript (2007)"
    assert planner.section_title(generic) == "Result — capital of France"


def test_intent_drives_default_sources():
    assert planner.classify_intent("new theorem paper on primes") == "science"
    assert planner.classify_intent("instagram photos of Paris") == "visual"
    assert planner.classify_intent("capital of France") == "general"

    science = SubTask(id="1", kind=TaskKind.GENERIC, query="research on dark matter")
    assert SourceType.ARXIV in planner.sources_for(science)
    news = SubTask(id="2", kind=TaskKind.NEWS, query="q", place="India")
    assert planner.sources_for(news) == [SourceType.WEB, SourceType.NEWS]
