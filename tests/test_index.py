"""Tests for the DuckDB usage index."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import duckdb
import pytest

from ccusage_monitor.cache import IndexSchema, UsageIndex
from ccusage_monitor.models.session import ConversationEvent, TokenUsage
from ccusage_monitor.utils.error_handling import IndexAllocationError
from ccusage_monitor.utils.time_utils import TimeUtils, to_epoch_us

T0 = datetime(2025, 3, 12, 10, 0, tzinfo=timezone.utc)


def make_event(
    when: datetime,
    role: str = "assistant",
    model: str = "claude-sonnet-4-5",
    session_id: str = "s1",
    source_path: str = "/logs/a.jsonl",
    offset: int = 0,
    tokens: int = 100,
    cost: str = "0.01",
) -> ConversationEvent:
    if role == "user":
        return ConversationEvent(
            timestamp=when,
            session_id=session_id,
            role="user",
            is_prompt=True,
            source_path=source_path,
            byte_offset=offset,
        )
    return ConversationEvent(
        timestamp=when,
        session_id=session_id,
        directory="/work/alpha",
        role="assistant",
        model=model,
        tokens=TokenUsage(input=tokens, output=tokens // 2, cache_read=7, cache_write=3),
        cost_usd=Decimal(cost),
        context_tokens=tokens + 10,
        source_path=source_path,
        byte_offset=offset,
    )


@pytest.fixture
def index():
    with UsageIndex() as idx:
        yield idx


class TestUsageIndex:
    """Tests for UsageIndex writes and queries."""

    def test_schema_created(self, index):
        conn = index._get_connection()
        assert IndexSchema.get_schema_version(conn) == IndexSchema.SCHEMA_VERSION
        assert not IndexSchema.needs_migration(conn)

    def test_add_and_replay_preserves_events(self, index):
        events = [
            make_event(T0 + timedelta(microseconds=123457), offset=0),
            make_event(T0 + timedelta(minutes=1), role="user", offset=200),
        ]
        assert index.add_events(events) == 2
        assert index.event_count() == 2

        replayed = index.iter_events()
        assert replayed == events

    def test_drop_file(self, index):
        index.add_events(
            [
                make_event(T0, source_path="/logs/a.jsonl"),
                make_event(T0, source_path="/logs/b.jsonl"),
                make_event(T0 + timedelta(seconds=1), source_path="/logs/a.jsonl", offset=10),
            ]
        )
        assert index.drop_file("/logs/a.jsonl") == 2
        assert [e.source_path for e in index.iter_events()] == ["/logs/b.jsonl"]

    def test_transaction_rolls_back_drop_and_insert(self, index):
        index.add_events([make_event(T0, source_path="/logs/a.jsonl")])

        with pytest.raises(duckdb.ConversionException):
            with index.transaction():
                index.drop_file("/logs/a.jsonl")
                index.add_events([make_event(T0, source_path="/logs/b.jsonl")])
                index._get_connection().execute("SELECT CAST('x' AS INTEGER)")

        assert [e.source_path for e in index.iter_events()] == ["/logs/a.jsonl"]

        with index.transaction():
            index.add_events([make_event(T0, source_path="/logs/b.jsonl", offset=5)])
        assert index.event_count() == 2

    def test_model_totals_half_open_range(self, index):
        index.add_events(
            [
                make_event(T0, model="claude-opus-4-5", tokens=100, cost="1.5"),
                make_event(T0 + timedelta(hours=1), model="claude-sonnet-4-5", tokens=200),
                make_event(T0 + timedelta(hours=2), model="claude-opus-4-5", tokens=300, cost="2.5"),
                make_event(T0 + timedelta(hours=1), role="user"),
            ]
        )
        rows = index.model_totals(to_epoch_us(T0), to_epoch_us(T0 + timedelta(hours=2)))

        by_model = {row.model: row for row in rows}
        assert set(by_model) == {"claude-opus-4-5", "claude-sonnet-4-5"}
        assert by_model["claude-opus-4-5"].message_count == 1
        assert by_model["claude-opus-4-5"].cost_usd == Decimal("1.5")
        assert by_model["claude-sonnet-4-5"].tokens.input == 200

        everything = index.model_totals()
        assert sum(row.message_count for row in everything) == 3

    def test_prompt_count_window_is_closed(self, index):
        index.add_events(
            [
                make_event(T0, role="user"),
                make_event(T0 + timedelta(hours=5), role="user", offset=1),
                make_event(T0 + timedelta(hours=5, microseconds=1), role="user", offset=2),
            ]
        )
        assert index.prompt_count(to_epoch_us(T0), to_epoch_us(T0 + timedelta(hours=5))) == 2

    def test_assistant_model_counts(self, index):
        index.add_events(
            [
                make_event(T0, model="claude-opus-4-5"),
                make_event(T0, model="claude-opus-4-5", offset=1),
                make_event(T0, model="claude-haiku-4-5", offset=2),
            ]
        )
        counts = index.assistant_model_counts(to_epoch_us(T0), to_epoch_us(T0))
        assert counts == {"claude-opus-4-5": 2, "claude-haiku-4-5": 1}

    def test_prompts_by_local_day(self, index):
        day = TimeUtils.local_date(T0)
        noon = TimeUtils.local_midnight(day) + timedelta(hours=12)
        index.add_events(
            [
                make_event(noon, role="user"),
                make_event(noon + timedelta(hours=1), role="user", offset=1),
                make_event(noon + timedelta(days=1), role="user", offset=2),
                make_event(noon, offset=3),
            ]
        )
        counts = index.prompts_by_day(day, day + timedelta(days=6))
        assert counts == {day: 2, day + timedelta(days=1): 1}

    def test_session_count(self, index):
        index.add_events(
            [
                make_event(T0, session_id="a"),
                make_event(T0, session_id="b", role="user"),
                make_event(T0 + timedelta(days=2), session_id="c"),
            ]
        )
        assert index.session_count() == 3
        assert index.session_count(None, to_epoch_us(T0 + timedelta(days=1))) == 2

    def test_file_backed_index_starts_empty(self, tmp_path):
        db_path = tmp_path / "index.duckdb"
        with UsageIndex(str(db_path)) as first:
            first.add_events([make_event(T0)])
        with UsageIndex(str(db_path)) as second:
            assert second.event_count() == 0

    def test_allocation_failure_is_fatal(self, index, monkeypatch):
        index._get_connection()

        class ExhaustedConnection:
            def executemany(self, *args, **kwargs):
                raise duckdb.OutOfMemoryException("could not allocate block")

            def close(self):
                pass

        monkeypatch.setattr(index, "_conn", ExhaustedConnection())
        with pytest.raises(IndexAllocationError) as excinfo:
            index.add_events([make_event(T0)])
        assert excinfo.value.fatal
