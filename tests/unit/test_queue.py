"""
Unit tests for EntryQueue.
"""

import threading

import pytest

from sqllog import LogDataType
from sqllog.queue import EntryQueue, clean, truncate


def test_enqueue_none_rejected():
    q = EntryQueue()
    with pytest.raises(ValueError):
        q.enqueue(None)
    assert q.is_empty


def test_message_truncated_not_rejected(make_entry):
    q = EntryQueue(max_message_length=10)
    entry = make_entry("x" * 25)
    q.enqueue(entry)
    assert len(q) == 1
    assert q.snapshot()[0].message == "x" * 10


def test_short_message_untouched(make_entry):
    q = EntryQueue()
    q.enqueue(make_entry("short"))
    assert q.snapshot()[0].message == "short"


def test_snapshot_is_fifo_and_non_destructive(make_entry):
    q = EntryQueue()
    for i in range(5):
        q.enqueue(make_entry(f"m{i}"))
    snap = q.snapshot()
    assert [e.message for e in snap] == [f"m{i}" for i in range(5)]
    assert len(q) == 5


def test_dequeue_by_count_removes_head(make_entry):
    q = EntryQueue()
    for i in range(5):
        q.enqueue(make_entry(f"m{i}"))
    snap = q.snapshot()
    q.enqueue(make_entry("late"))

    assert q.dequeue(len(snap)) == 5
    assert [e.message for e in q.snapshot()] == ["late"]


def test_dequeue_more_than_available(make_entry):
    q = EntryQueue()
    q.enqueue(make_entry())
    assert q.dequeue(3) == 1
    assert q.is_empty


def test_invalid_max_length():
    with pytest.raises(ValueError):
        EntryQueue(max_message_length=0)


def test_concurrent_producers_preserve_per_thread_order(make_entry):
    q = EntryQueue()
    producers, per_thread = 8, 250

    def produce(t):
        for i in range(per_thread):
            q.enqueue(make_entry(f"{t}:{i}"))

    threads = [threading.Thread(target=produce, args=(t,)) for t in range(producers)]
    for th in threads:
        th.start()
    for th in threads:
        th.join()

    snap = q.snapshot()
    assert len(snap) == producers * per_thread
    last = {}
    for e in snap:
        t, i = map(int, e.message.split(":"))
        assert i == last.get(t, -1) + 1
        last[t] = i


def test_truncate_helper():
    assert truncate("abcdef", 3) == "abc"
    assert truncate("ab", 3) == "ab"


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("plain", "plain"),
        ("bad\x00byte", "badbyte"),
        ("lone \ud800 surrogate", "lone ? surrogate"),
        ("emoji \U0001f600 kept", "emoji \U0001f600 kept"),
    ],
)
def test_clean_helper(raw, expected):
    assert clean(raw) == expected


def test_enqueue_cleans_every_text_field(make_entry):
    q = EntryQueue(max_message_length=5)
    entry = make_entry("\x00\x00abcdefg", source="src\x00")
    entry.machine = "host\udc80"
    entry.add_data(LogDataType.TEXT, "x\x00y")
    entry.add_data(LogDataType.JSON, '{"k": "\ud800"}')
    q.enqueue(entry)

    (queued,) = q.snapshot()
    # cleaned before truncation, so the NULs do not use up the length
    assert queued.message == "abcde"
    assert queued.source == "src"
    assert queued.machine == "host?"
    assert [d.data for d in queued.data] == ["xy", '{"k": "?"}']


def test_enqueue_bounds_fields_assigned_after_validation(make_entry):
    q = EntryQueue()
    entry = make_entry()
    entry.application = "a" * 40
    entry.source = "s" * 200
    q.enqueue(entry)

    (queued,) = q.snapshot()
    assert queued.application == "a" * 32
    assert queued.source == "s" * 128
