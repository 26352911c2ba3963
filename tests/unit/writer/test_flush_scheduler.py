"""
Unit tests for the SqlLogWriter flush loop: autoflush, expedited flush,
concurrent producers.
"""

import threading
import time

import pytest

from fakes import FakeSink, RecordingBackoff, wait_until
from sqllog import SqlLogWriter, WriterState


def test_autoflush_writes_queued_entries(make_writer, make_entry):
    sink = FakeSink()
    writer = make_writer(sink)
    for i in range(5):
        writer.enqueue(make_entry(f"m{i}"))

    assert wait_until(lambda: len(sink.entries) == 5)
    assert sink.messages == [f"m{i}" for i in range(5)]
    assert writer.pending == 0


def test_empty_autoflush_opens_no_connection(make_writer):
    sink = FakeSink()
    writer = make_writer(sink)
    time.sleep(0.2)  # several autoflush intervals
    assert sink.ensure_calls == 0
    assert sink.attempts == 0
    assert writer.retries == 0


def test_empty_autoflush_resets_retry_counter(make_writer):
    sink = FakeSink()
    backoff = RecordingBackoff(0.01, 0.03)
    backoff._retries = 3
    writer = make_writer(sink, backoff=backoff)

    assert wait_until(lambda: writer.retries == 0)
    assert backoff.resets[0] == 3
    assert sink.ensure_calls == 0


def test_retry_counter_resets_after_success(make_writer, make_entry):
    sink = FakeSink(fail_first=2)
    backoff = RecordingBackoff(0.01, 0.03)
    writer = make_writer(sink, backoff=backoff)
    writer.enqueue(make_entry())

    assert wait_until(lambda: writer.pending == 0)
    assert wait_until(lambda: writer.retries == 0)
    assert 2 in backoff.resets


def test_flush_request_skips_remaining_interval(make_writer, make_entry, fast_settings):
    sink = FakeSink()
    settings = fast_settings.model_copy(update={"autoflush_wait": 30.0})
    writer = make_writer(sink, settings)
    time.sleep(0.05)  # worker is waiting on the 30s timer
    writer.enqueue(make_entry("now"))

    t0 = time.monotonic()
    writer.flush()
    assert wait_until(lambda: sink.messages == ["now"], timeout=2.0)
    assert time.monotonic() - t0 < 2.0


def test_flush_does_not_block(make_writer, make_entry, fast_settings):
    sink = FakeSink(delay=0.5)
    settings = fast_settings.model_copy(update={"autoflush_wait": 30.0})
    writer = make_writer(sink, settings)
    writer.enqueue(make_entry())

    t0 = time.monotonic()
    writer.flush()
    writer.flush()
    writer.enqueue(make_entry())
    assert time.monotonic() - t0 < 0.1


def test_enqueue_during_flush_goes_to_later_batch(make_writer, make_entry):
    sink = FakeSink(delay=0.2)
    writer = make_writer(sink)
    writer.enqueue(make_entry("first"))
    assert wait_until(lambda: sink.attempts == 1)
    writer.enqueue(make_entry("second"))

    assert wait_until(lambda: len(sink.calls) == 2)
    assert [row["message"] for row in sink.calls[0]["entries"]] == ["first"]
    assert [row["message"] for row in sink.calls[1]["entries"]] == ["second"]


def test_many_producers_all_flushed_in_order(make_writer, make_entry):
    sink = FakeSink(fail_first=2)
    writer = make_writer(sink)
    producers, per_thread = 6, 200

    def produce(t):
        for i in range(per_thread):
            writer.enqueue(make_entry(f"{t}:{i}"))
            if i % 50 == 0:
                writer.flush()

    threads = [threading.Thread(target=produce, args=(t,)) for t in range(producers)]
    for th in threads:
        th.start()
    for th in threads:
        th.join()

    assert wait_until(lambda: len(sink.entries) == producers * per_thread, timeout=5.0)
    last = {}
    for message in sink.messages:
        t, i = map(int, message.split(":"))
        assert i == last.get(t, -1) + 1
        last[t] = i
    assert writer.pending == 0


def test_worker_survives_unexpected_errors(make_writer, make_entry):
    class ExplodingSink(FakeSink):
        def _on_execute(self, query, params):
            if self.attempts == 0:
                self.attempts += 1
                raise RuntimeError("unexpected")
            super()._on_execute(query, params)

    sink = ExplodingSink()
    writer = make_writer(sink)
    writer.enqueue(make_entry("kept"))

    assert wait_until(lambda: sink.messages == ["kept"])
    assert writer.state is WriterState.RUNNING


def test_enqueue_none_rejected(make_writer):
    writer = make_writer(FakeSink())
    with pytest.raises(ValueError):
        writer.enqueue(None)


def test_writer_accepts_dsn_string(mock_dsn):
    with SqlLogWriter(mock_dsn, connections=FakeSink()) as writer:
        assert writer.settings.dsn == mock_dsn
        assert writer.settings.autoflush_wait == 5.0
        assert writer.state is WriterState.RUNNING
    assert writer.state is WriterState.STOPPED
