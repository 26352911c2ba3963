"""
Unit tests for WriterRegistry: one shared writer per log database.
"""

import pytest

from sqllog import WriterRegistry, WriterSettings, WriterState


def _settings(dsn):
    return WriterSettings(dsn=dsn, autoflush_wait=0.05, close_wait=1.0, _env_file=None)


def test_same_dsn_shares_writer():
    with WriterRegistry() as registry:
        a = registry.acquire(_settings("postgresql://localhost/a"))
        b = registry.acquire(_settings("postgresql://localhost/a"))
        assert a is b
        assert len(registry) == 1
        assert registry.get("postgresql://localhost/a") is a


def test_distinct_dsns_get_distinct_writers():
    with WriterRegistry() as registry:
        a = registry.acquire(_settings("postgresql://localhost/a"), name="audit")
        b = registry.acquire(_settings("postgresql://localhost/b"))
        assert a is not b
        assert a.name == "audit"
        assert b.name == "writer-2"
        assert len(registry) == 2


def test_release_closes_on_last_holder():
    registry = WriterRegistry()
    settings = _settings("postgresql://localhost/a")
    writer = registry.acquire(settings)
    registry.acquire(settings)

    registry.release(writer)
    assert writer.state is WriterState.RUNNING
    assert registry.get(settings.dsn) is writer

    registry.release(writer)
    assert writer.state is WriterState.STOPPED
    assert registry.get(settings.dsn) is None
    assert len(registry) == 0

    # a new holder gets a fresh writer
    again = registry.acquire(settings)
    assert again is not writer
    registry.close()


def test_release_of_unknown_writer_is_ignored():
    with WriterRegistry() as registry, WriterRegistry() as other:
        foreign = other.acquire(_settings("postgresql://localhost/a"))
        registry.release(foreign)
        assert foreign.state is WriterState.RUNNING


def test_close_stops_all_writers_and_rejects_new_ones():
    registry = WriterRegistry()
    a = registry.acquire(_settings("postgresql://localhost/a"))
    b = registry.acquire(_settings("postgresql://localhost/b"))

    registry.close()
    registry.close()
    assert a.state is WriterState.STOPPED
    assert b.state is WriterState.STOPPED
    with pytest.raises(RuntimeError):
        registry.acquire(_settings("postgresql://localhost/a"))
