"""DuckDB schema definitions for the ccusage-monitor usage index.

Provides schema creation and migration for the event index database.
"""

from typing import Optional

import duckdb


class IndexSchema:
    """Manages DuckDB schema for the usage index."""

    SCHEMA_VERSION = 1

    CREATE_INDEX_META = """
    CREATE TABLE IF NOT EXISTS index_meta (
        key TEXT PRIMARY KEY,
        value TEXT NOT NULL,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """

    # ts_us: microseconds since epoch (rolling windows, exact replay)
    # day: local calendar date (heatmap and weekly buckets)
    CREATE_EVENTS = """
    CREATE TABLE IF NOT EXISTS events (
        seq BIGINT PRIMARY KEY,
        session_id TEXT NOT NULL,
        directory TEXT,
        role TEXT NOT NULL,
        is_prompt BOOLEAN NOT NULL DEFAULT FALSE,
        model TEXT,
        input_tokens BIGINT DEFAULT 0,
        output_tokens BIGINT DEFAULT 0,
        cache_read BIGINT DEFAULT 0,
        cache_write BIGINT DEFAULT 0,
        cost_usd DECIMAL(18, 8) DEFAULT 0,
        todo_count INTEGER,
        context_tokens BIGINT,
        ts_us BIGINT NOT NULL,
        day DATE NOT NULL,
        source_path TEXT NOT NULL,
        file_seq INTEGER NOT NULL,
        byte_offset BIGINT NOT NULL
    )
    """

    CREATE_EVENTS_INDEXES = [
        "CREATE INDEX IF NOT EXISTS idx_events_time ON events(ts_us)",
        "CREATE INDEX IF NOT EXISTS idx_events_day ON events(day)",
        "CREATE INDEX IF NOT EXISTS idx_events_source ON events(source_path)",
    ]

    @classmethod
    def create_schema(cls, conn: duckdb.DuckDBPyConnection) -> None:
        """Create all tables and indexes.

        Args:
            conn: DuckDB connection
        """
        conn.execute(cls.CREATE_INDEX_META)
        conn.execute(cls.CREATE_EVENTS)

        for idx_sql in cls.CREATE_EVENTS_INDEXES:
            conn.execute(idx_sql)

        conn.execute(
            """
            INSERT OR REPLACE INTO index_meta (key, value, updated_at)
            VALUES ('schema_version', ?, CURRENT_TIMESTAMP)
            """,
            [str(cls.SCHEMA_VERSION)],
        )

    @classmethod
    def get_schema_version(cls, conn: duckdb.DuckDBPyConnection) -> Optional[int]:
        """Get current schema version from database.

        Args:
            conn: DuckDB connection

        Returns:
            Schema version or None if not set
        """
        try:
            result = conn.execute(
                "SELECT value FROM index_meta WHERE key = 'schema_version'"
            ).fetchone()
            if result:
                return int(result[0])
        except duckdb.CatalogException:
            pass
        return None

    @classmethod
    def needs_migration(cls, conn: duckdb.DuckDBPyConnection) -> bool:
        """Check if schema needs creating or migrating."""
        current_version = cls.get_schema_version(conn)
        return current_version is None or current_version < cls.SCHEMA_VERSION

    @classmethod
    def migrate(cls, conn: duckdb.DuckDBPyConnection) -> None:
        """Migrate schema to latest version.

        The index is rebuilt from the logs on every start, so older layouts
        are dropped rather than converted.
        """
        current_version = cls.get_schema_version(conn)
        if current_version is not None and current_version < cls.SCHEMA_VERSION:
            cls.drop_all_tables(conn)
        cls.create_schema(conn)

    @classmethod
    def drop_all_tables(cls, conn: duckdb.DuckDBPyConnection) -> None:
        """Drop the index tables so the current layout can be recreated."""
        for table in ("events", "index_meta"):
            conn.execute(f"DROP TABLE IF EXISTS {table}")
