"""Usage index for ccusage-monitor.

Keeps every ingested ConversationEvent in a DuckDB table so period and
window aggregates are SQL queries instead of re-parses of the logs.
"""

import logging
from contextlib import contextmanager
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

import duckdb

from .schema import IndexSchema
from ..models.session import ConversationEvent, TokenUsage
from ..utils.error_handling import IndexAllocationError
from ..utils.time_utils import TimeUtils, from_epoch_us, to_epoch_us

logger = logging.getLogger(__name__)

IN_MEMORY = ":memory:"

_EVENT_COLUMNS = (
    "seq, session_id, directory, role, is_prompt, model, "
    "input_tokens, output_tokens, cache_read, cache_write, cost_usd, "
    "todo_count, context_tokens, ts_us, day, source_path, file_seq, byte_offset"
)


@contextmanager
def _allocation_guard(action: str) -> Iterator[None]:
    """Turn allocation failures inside DuckDB into IndexAllocationError."""
    try:
        yield
    except (duckdb.OutOfMemoryException, MemoryError) as e:
        raise IndexAllocationError(f"{action}: {e}") from e


class ModelTotals:
    """Row of per-model sums returned by UsageIndex.model_totals."""

    __slots__ = ("model", "tokens", "cost_usd", "message_count", "first_seq")

    def __init__(
        self,
        model: str,
        tokens: TokenUsage,
        cost_usd: Decimal,
        message_count: int,
        first_seq: int,
    ):
        self.model = model
        self.tokens = tokens
        self.cost_usd = cost_usd
        self.message_count = message_count
        self.first_seq = first_seq


class UsageIndex:
    """DuckDB-backed event store for one monitor process."""

    def __init__(self, db_path: str = IN_MEMORY):
        """Initialize usage index.

        Args:
            db_path: DuckDB database path (default: in-memory)
        """
        if db_path != IN_MEMORY:
            path = Path(db_path).expanduser()
            path.parent.mkdir(parents=True, exist_ok=True)
            db_path = str(path)
        self.db_path = db_path
        self._conn: Optional[duckdb.DuckDBPyConnection] = None
        self._next_seq = 0

    def _get_connection(self) -> duckdb.DuckDBPyConnection:
        """Get or create database connection.

        Raises:
            IndexAllocationError: If DuckDB cannot allocate the database
        """
        if self._conn is None:
            with _allocation_guard("opening usage index"):
                conn = duckdb.connect(self.db_path)
                if IndexSchema.needs_migration(conn):
                    IndexSchema.migrate(conn)
                # Offsets are not persisted, so the index always starts empty
                conn.execute("DELETE FROM events")
            self._conn = conn
        return self._conn

    def close(self) -> None:
        """Close database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None

    def __enter__(self) -> "UsageIndex":
        """Context manager entry."""
        self._get_connection()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit."""
        self.close()

    # === Writes ===

    def add_events(self, events: Sequence[ConversationEvent], batch_size: int = 500) -> int:
        """Append events to the index.

        Args:
            events: Events in ingestion order
            batch_size: Rows per executemany call

        Returns:
            Number of rows inserted
        """
        if not events:
            return 0

        conn = self._get_connection()
        rows: List[List[Any]] = []
        for event in events:
            rows.append(self._event_row(self._next_seq, event))
            self._next_seq += 1

        placeholders = ", ".join("?" for _ in range(18))
        with _allocation_guard("growing usage index"):
            for i in range(0, len(rows), batch_size):
                conn.executemany(
                    f"INSERT INTO events ({_EVENT_COLUMNS}) VALUES ({placeholders})",
                    rows[i : i + batch_size],
                )
        return len(rows)

    @staticmethod
    def _event_row(seq: int, event: ConversationEvent) -> List[Any]:
        return [
            seq,
            event.session_id,
            event.directory,
            event.role,
            event.is_prompt,
            event.model,
            event.tokens.input,
            event.tokens.output,
            event.tokens.cache_read,
            event.tokens.cache_write,
            event.cost_usd,
            event.todo_count,
            event.context_tokens,
            to_epoch_us(event.timestamp),
            TimeUtils.local_date(event.timestamp),
            event.source_path,
            event.file_seq,
            event.byte_offset,
        ]

    @contextmanager
    def transaction(self) -> Iterator["UsageIndex"]:
        """Apply the writes made inside the block all together or not at all."""
        conn = self._get_connection()
        next_seq = self._next_seq
        conn.begin()
        try:
            yield self
        except BaseException:
            conn.rollback()
            self._next_seq = next_seq
            raise
        conn.commit()

    def drop_file(self, source_path: str) -> int:
        """Remove all events read from one file.

        Returns:
            Number of rows removed
        """
        conn = self._get_connection()
        count = conn.execute(
            "SELECT COUNT(*) FROM events WHERE source_path = ?", [source_path]
        ).fetchone()[0]
        conn.execute("DELETE FROM events WHERE source_path = ?", [source_path])
        logger.debug("Dropped %d events from %s", count, source_path)
        return int(count)

    def clear(self) -> None:
        """Remove every event."""
        self._get_connection().execute("DELETE FROM events")
        self._next_seq = 0

    # === Reads ===

    def event_count(self) -> int:
        """Total events in the index."""
        return int(
            self._get_connection().execute("SELECT COUNT(*) FROM events").fetchone()[0]
        )

    def iter_events(self) -> List[ConversationEvent]:
        """All indexed events in ingestion order (for full session replay)."""
        rows = self._get_connection().execute(
            f"SELECT {_EVENT_COLUMNS} FROM events ORDER BY seq"
        ).fetchall()
        return [self._row_event(row) for row in rows]

    @staticmethod
    def _row_event(row: Tuple[Any, ...]) -> ConversationEvent:
        (
            _seq,
            session_id,
            directory,
            role,
            is_prompt,
            model,
            input_tokens,
            output_tokens,
            cache_read,
            cache_write,
            cost_usd,
            todo_count,
            context_tokens,
            ts_us,
            _day,
            source_path,
            file_seq,
            byte_offset,
        ) = row
        return ConversationEvent(
            timestamp=from_epoch_us(ts_us),
            session_id=session_id,
            directory=directory,
            role=role,
            is_prompt=is_prompt,
            model=model,
            tokens=TokenUsage(
                input=input_tokens,
                output=output_tokens,
                cache_read=cache_read,
                cache_write=cache_write,
            ),
            cost_usd=Decimal(cost_usd),
            todo_count=todo_count,
            context_tokens=context_tokens,
            source_path=source_path,
            file_seq=file_seq,
            byte_offset=byte_offset,
        )

    @staticmethod
    def _time_clause(
        start_us: Optional[int], end_us: Optional[int], inclusive_end: bool = False
    ) -> Tuple[str, List[Any]]:
        """Build a WHERE fragment for an optional [start, end) instant range."""
        clauses: List[str] = []
        params: List[Any] = []
        if start_us is not None:
            clauses.append("ts_us >= ?")
            params.append(start_us)
        if end_us is not None:
            clauses.append("ts_us <= ?" if inclusive_end else "ts_us < ?")
            params.append(end_us)
        if not clauses:
            return "", params
        return " AND " + " AND ".join(clauses), params

    def model_totals(
        self, start_us: Optional[int] = None, end_us: Optional[int] = None
    ) -> List[ModelTotals]:
        """Sum tokens, cost and messages per model for assistant events in a range.

        Returns:
            One row per model, in order of first appearance
        """
        where, params = self._time_clause(start_us, end_us)
        rows = self._get_connection().execute(
            f"""
            SELECT
                model,
                COALESCE(SUM(input_tokens), 0),
                COALESCE(SUM(output_tokens), 0),
                COALESCE(SUM(cache_read), 0),
                COALESCE(SUM(cache_write), 0),
                COALESCE(SUM(cost_usd), 0),
                COUNT(*),
                MIN(seq)
            FROM events
            WHERE role = 'assistant'{where}
            GROUP BY model
            ORDER BY MIN(seq)
            """,
            params,
        ).fetchall()

        return [
            ModelTotals(
                model=model or "unknown",
                tokens=TokenUsage(
                    input=int(inp),
                    output=int(out),
                    cache_read=int(cread),
                    cache_write=int(cwrite),
                ),
                cost_usd=Decimal(cost),
                message_count=int(count),
                first_seq=int(first_seq),
            )
            for model, inp, out, cread, cwrite, cost, count, first_seq in rows
        ]

    def session_count(
        self, start_us: Optional[int] = None, end_us: Optional[int] = None
    ) -> int:
        """Distinct sessions with any event in a range."""
        where, params = self._time_clause(start_us, end_us)
        return int(
            self._get_connection()
            .execute(
                f"SELECT COUNT(DISTINCT session_id) FROM events WHERE TRUE{where}",
                params,
            )
            .fetchone()[0]
        )

    def prompt_count(self, start_us: int, end_us: int) -> int:
        """User prompts with timestamp in the closed range [start, end]."""
        where, params = self._time_clause(start_us, end_us, inclusive_end=True)
        return int(
            self._get_connection()
            .execute(
                f"SELECT COUNT(*) FROM events WHERE role = 'user' AND is_prompt{where}",
                params,
            )
            .fetchone()[0]
        )

    def assistant_model_counts(self, start_us: int, end_us: int) -> Dict[str, int]:
        """Assistant messages per model in the closed range [start, end]."""
        where, params = self._time_clause(start_us, end_us, inclusive_end=True)
        rows = self._get_connection().execute(
            f"""
            SELECT model, COUNT(*)
            FROM events
            WHERE role = 'assistant' AND model IS NOT NULL{where}
            GROUP BY model
            """,
            params,
        ).fetchall()
        return {model: int(count) for model, count in rows}

    def prompts_by_day(self, start_day: date, end_day: date) -> Dict[date, int]:
        """User prompts per local calendar date, inclusive range."""
        rows = self._get_connection().execute(
            """
            SELECT day, COUNT(*)
            FROM events
            WHERE role = 'user' AND is_prompt AND day BETWEEN ? AND ?
            GROUP BY day
            """,
            [start_day, end_day],
        ).fetchall()
        return {day: int(count) for day, count in rows}
