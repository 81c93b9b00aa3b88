"""
SQLite Event Store - Append-only event log with idempotency

The store is the source of truth. Each requirement (with its offers and
commitments) is one stream, so a buyer approval that writes an offer status
change, a commitment and a requirement completion lands in one transaction
or not at all.

- Append-only: rows are never updated or deleted
- Idempotent: a command_id already stored returns the stored events
- Optimistic locking: UNIQUE(stream_id, version) plus an expected version
- Cross-process safety: BEGIN IMMEDIATE takes the write lock before the
  version check

Fun fact: SQLite is probably the most deployed database engine in the world -
it ships inside every smartphone. WAL mode lets readers keep reading while
one writer appends.
"""

import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator

from supply_deals.kernel.errors import (
    CommandIdempotencyViolation,
    EventStoreError,
    StreamVersionConflict,
)
from supply_deals.kernel.events import Event
from supply_deals.kernel.logging import get_logger
from supply_deals.kernel.metrics import (
    events_appended_total,
    stream_version_conflicts_total,
)
from supply_deals.kernel.retry import retry_on_sqlite_lock

logger = get_logger(__name__)

_COLUMNS = (
    "event_id, stream_id, stream_type, version, "
    "command_id, event_type, occurred_at, actor_id, payload_json"
)


class SQLiteEventStore:
    """
    SQLite-based event store with append-only semantics

    Schema:
    - events table, UNIQUE(stream_id, version)
    - indices on stream, event type, time and command id
    """

    def __init__(self, db_path: str | Path) -> None:
        self.db_path = Path(db_path)
        self._initialize_schema()

    def _initialize_schema(self) -> None:
        with self._connect() as conn:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA synchronous=NORMAL")
            conn.execute("""
                CREATE TABLE IF NOT EXISTS events (
                    event_id TEXT PRIMARY KEY,
                    stream_id TEXT NOT NULL,
                    stream_type TEXT NOT NULL,
                    version INTEGER NOT NULL,
                    command_id TEXT NOT NULL,
                    event_type TEXT NOT NULL,
                    occurred_at TEXT NOT NULL,
                    actor_id TEXT,
                    payload_json TEXT NOT NULL,

                    UNIQUE(stream_id, version)
                )
            """)
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_events_stream ON events(stream_id, version)"
            )
            conn.execute("CREATE INDEX IF NOT EXISTS idx_events_type ON events(event_type)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_events_time ON events(occurred_at)")
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_events_command ON events(command_id)"
            )
            conn.commit()

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(str(self.db_path), timeout=5.0)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    @retry_on_sqlite_lock()
    def append(
        self,
        stream_id: str,
        expected_version: int,
        events: list[Event],
    ) -> list[Event]:
        """
        Append events to a stream with optimistic locking

        Args:
            stream_id: Aggregate identifier
            expected_version: Stream version the events were decided against
            events: Events to append (sequential versions from expected_version + 1)

        Returns:
            The appended events, or the previously stored ones if this
            command_id was already processed for the stream

        Raises:
            StreamVersionConflict: Another writer advanced the stream
            EventStoreError: On other database errors
        """
        if not events:
            return []

        command_id = events[0].command_id
        existing = [
            e for e in self._get_events_by_command_id(command_id) if e.stream_id == stream_id
        ]
        if existing:
            logger.info(
                "Command already applied, returning stored events",
                command_id=command_id,
                stream_id=stream_id,
            )
            return existing

        stream_type = events[0].stream_type
        with self._connect() as conn:
            try:
                conn.execute("BEGIN IMMEDIATE")
                current_version = self._get_stream_version(conn, stream_id)
                if current_version != expected_version:
                    raise StreamVersionConflict(stream_id, expected_version, current_version)

                conn.executemany(
                    f"INSERT INTO events ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    [self._event_to_row(event) for event in events],
                )
                conn.commit()

            except StreamVersionConflict:
                conn.rollback()
                stream_version_conflicts_total.labels(stream_type=stream_type).inc()
                raise

            except sqlite3.IntegrityError as e:
                conn.rollback()
                error_msg = str(e).lower()
                if "stream_id" in error_msg and "version" in error_msg:
                    stream_version_conflicts_total.labels(stream_type=stream_type).inc()
                    raise StreamVersionConflict(
                        stream_id, expected_version, self.get_stream_version(stream_id)
                    ) from e
                if "event_id" in error_msg:
                    raise CommandIdempotencyViolation(command_id) from e
                raise EventStoreError(f"Failed to append events: {e}") from e

            except sqlite3.OperationalError:
                conn.rollback()
                raise

        for event in events:
            events_appended_total.labels(
                stream_type=event.stream_type, event_type=event.event_type
            ).inc()
        return events

    def load_stream(self, stream_id: str) -> list[Event]:
        """All events of one stream in version order"""
        with self._connect() as conn:
            cursor = conn.execute(
                f"SELECT {_COLUMNS} FROM events WHERE stream_id = ? ORDER BY version ASC",
                (stream_id,),
            )
            return [self._row_to_event(row) for row in cursor.fetchall()]

    def load_all_events(self, limit: int | None = None) -> list[Event]:
        """
        Load every event in insertion order (for projection rebuilding)

        rowid order is used rather than occurred_at: streams are only ever
        appended, so insertion order respects every stream's version order
        even when two events share a timestamp.
        """
        query = f"SELECT {_COLUMNS} FROM events ORDER BY rowid ASC"
        params: tuple = ()
        if limit:
            query += " LIMIT ?"
            params = (limit,)
        with self._connect() as conn:
            cursor = conn.execute(query, params)
            return [self._row_to_event(row) for row in cursor.fetchall()]

    def query_events(
        self,
        *,
        stream_type: str | None = None,
        event_type: str | None = None,
        from_time: datetime | None = None,
        limit: int | None = None,
    ) -> list[Event]:
        """
        Query events by type and time

        Args:
            stream_type: "requirement" or "user"
            event_type: e.g. "QuantityIncreaseRequested"
            from_time: Events at or after this time
            limit: Maximum number of events to return
        """
        conditions = []
        params: list = []
        if stream_type:
            conditions.append("stream_type = ?")
            params.append(stream_type)
        if event_type:
            conditions.append("event_type = ?")
            params.append(event_type)
        if from_time:
            conditions.append("occurred_at >= ?")
            params.append(from_time.isoformat())

        where_clause = " AND ".join(conditions) if conditions else "1=1"
        query = f"SELECT {_COLUMNS} FROM events WHERE {where_clause} ORDER BY rowid ASC"
        if limit:
            query += " LIMIT ?"
            params.append(limit)

        with self._connect() as conn:
            cursor = conn.execute(query, params)
            return [self._row_to_event(row) for row in cursor.fetchall()]

    def get_stream_version(self, stream_id: str) -> int:
        """Current version of a stream (0 if it doesn't exist)"""
        with self._connect() as conn:
            return self._get_stream_version(conn, stream_id)

    def _get_stream_version(self, conn: sqlite3.Connection, stream_id: str) -> int:
        row = conn.execute(
            "SELECT MAX(version) FROM events WHERE stream_id = ?", (stream_id,)
        ).fetchone()
        return row[0] if row[0] is not None else 0

    def _get_events_by_command_id(self, command_id: str) -> list[Event]:
        with self._connect() as conn:
            cursor = conn.execute(
                f"SELECT {_COLUMNS} FROM events WHERE command_id = ? ORDER BY version ASC",
                (command_id,),
            )
            return [self._row_to_event(row) for row in cursor.fetchall()]

    @staticmethod
    def _event_to_row(event: Event) -> tuple:
        return (
            event.event_id,
            event.stream_id,
            event.stream_type,
            event.version,
            event.command_id,
            event.event_type,
            event.occurred_at.isoformat(),
            event.actor_id,
            json.dumps(event.payload),
        )

    @staticmethod
    def _row_to_event(row: sqlite3.Row) -> Event:
        return Event(
            event_id=row["event_id"],
            stream_id=row["stream_id"],
            stream_type=row["stream_type"],
            version=row["version"],
            command_id=row["command_id"],
            event_type=row["event_type"],
            occurred_at=datetime.fromisoformat(row["occurred_at"]),
            actor_id=row["actor_id"],
            payload=json.loads(row["payload_json"]),
        )

    def count_events(self) -> int:
        with self._connect() as conn:
            return conn.execute("SELECT COUNT(*) FROM events").fetchone()[0]

    def count_streams(self) -> int:
        with self._connect() as conn:
            return conn.execute("SELECT COUNT(DISTINCT stream_id) FROM events").fetchone()[0]
