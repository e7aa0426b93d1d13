import json
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

from datachat.core.chat import context

START = datetime(2025, 1, 1, tzinfo=timezone.utc)


def turn(id, role, content, query_result=None, minutes=0):
    return SimpleNamespace(
        id=id,
        role=role,
        content=content,
        query_result=query_result,
        created_at=START + timedelta(minutes=minutes),
    )


def test_small_result_is_inlined():
    payload = {"columns": ["name", "total"], "rows": [{"name": "Widget", "total": 500}]}
    assert context.annotate(payload) == "[DATA_CONTEXT: 1 row(s): name=Widget, total=500]"


def test_large_result_is_summarized():
    payload = {"rows": [{"n": i} for i in range(12)]}
    assert context.annotate(payload) == "[DATA_CONTEXT: Query returned 12 rows]"


def test_values_are_rendered():
    rows = [{"a": None, "b": True, "c": [1, 2]}, {"a": 1.5, "b": False, "c": {"k": "v"}}]
    assert context.render_rows(rows) == 'a=, b=true, c=[1, 2] | a=1.5, b=false, c={"k": "v"}'


def test_nothing_to_annotate():
    assert context.annotate(None) is None
    assert context.annotate({"error": "boom", "query": "SELECT 1"}) is None
    assert context.annotate({"tables": [{"rows": [{"a": 1}]}]}) is None


def test_payload_stored_as_string():
    payload = json.dumps({"rows": [{"x": 1}, {"x": 2}]})
    assert context.annotate(payload) == "[DATA_CONTEXT: 2 row(s): x=1 | x=2]"


def test_history_is_ordered_and_annotated():
    messages = [
        turn(2, "assistant", "Here you go.", {"rows": [{"total": 10}]}, minutes=1),
        turn(1, "user", "Total sales?", minutes=0),
        turn(3, "user", "And last month?", minutes=2),
    ]
    history = context.assemble(messages)
    assert history == [
        ("user", "Total sales?"),
        ("assistant", "Here you go.\n[DATA_CONTEXT: 1 row(s): total=10]"),
        ("user", "And last month?"),
    ]


def test_same_timestamp_falls_back_to_id():
    messages = [turn(5, "assistant", "b"), turn(4, "user", "a")]
    assert [text for _, text in context.assemble(messages)] == ["a", "b"]


def test_unreadable_payload_is_skipped():
    messages = [
        turn(1, "assistant", "broken", "{not json"),
        turn(2, "assistant", "odd", ["not", "a", "dict"], minutes=1),
    ]
    assert context.assemble(messages) == [("assistant", "broken"), ("assistant", "odd")]


def test_naive_and_missing_timestamps():
    first = SimpleNamespace(id=1, role="user", content="first", query_result=None, created_at=None)
    second = SimpleNamespace(
        id=2, role="user", content="second", query_result=None, created_at=datetime(2025, 1, 1)
    )
    assert [text for _, text in context.assemble([second, first])] == ["first", "second"]
