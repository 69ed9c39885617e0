"""
Catalog Database

SQLite-backed store for the per-source library tables, the canonical
catalog, its link tables and the derived artist/album index. All SQL is
generated from the declarations in ``schema``; every write stage runs inside
``transaction()`` so a failure or cancellation leaves no partial writes.
"""

import os
import sqlite3
import threading
from contextlib import contextmanager
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from ..core.exceptions import StorageError, ParseFailure
from ..core.models import SourceRecord, CanonicalTrack
from ..utils.filesystem import ensure_directory
from ..utils.logging_config import get_logger
from ..utils.text import parse_string_set, dump_string_set
from .schema import (
    ALL_TABLES, CANONICAL_TRACKS, CATALOG_META, SCHEMA_VERSION, SOURCE_TABLES,
    SourceTable, TableSchema,
)


# Columns an importer owns; re-imports overwrite these
_NON_IMPORT_COLUMNS = {
    "natural_id", "title", "artist", "musical_key", "bpm", "features", "dj_tags",
    "clean_confidence", "clean_log",
}

_LIST_COLUMNS = {"features", "dj_tags"}


def _as_int(value: Any, column: str, row_key: str) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ParseFailure(f"Invalid integer in {column}", details=repr(value), row_key=row_key)


def _as_float(value: Any, column: str, row_key: str) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ParseFailure(f"Invalid number in {column}", details=repr(value), row_key=row_key)


def _as_text(value: Any, column: str, row_key: str) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, bytes):
        try:
            return value.decode('utf-8')
        except UnicodeDecodeError:
            raise ParseFailure(f"Undecodable text in {column}", row_key=row_key)
    return str(value)


class CatalogDatabase:
    """
    Transactional access to the catalog tables

    Features:
    - Schema creation from explicit table declarations
    - One upsert-by-natural-key operation per source table
    - Nested-safe ``transaction()`` context manager
    - Row conversion to ``SourceRecord`` / ``CanonicalTrack`` models
    """

    def __init__(self, db_path: Optional[str] = None):
        """
        Open (and create if needed) a catalog database

        Args:
            db_path: SQLite file path; None or ':memory:' opens an in-memory catalog
        """
        self.db_path = db_path or ':memory:'
        self.logger = get_logger('storage')
        self._lock = threading.RLock()
        self._depth = 0

        if self.db_path != ':memory:':
            directory = os.path.dirname(os.path.abspath(self.db_path))
            ensure_directory(directory)

        try:
            self.conn = sqlite3.connect(self.db_path, isolation_level=None)
            self.conn.row_factory = sqlite3.Row
            self.conn.execute("PRAGMA foreign_keys = ON")
        except sqlite3.Error as e:
            raise StorageError("Failed to open catalog database", details=str(e), filepath=self.db_path)

        self._init_schema()

    def __enter__(self) -> 'CatalogDatabase':
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def close(self):
        self.conn.close()

    # ------------------------------------------------------------------
    # Low level helpers

    def execute(self, sql: str, params: Sequence[Any] = ()) -> sqlite3.Cursor:
        try:
            return self.conn.execute(sql, params)
        except sqlite3.Error as e:
            raise StorageError("Database statement failed", details=f"{e}: {sql.split()[0]}") from e

    def executemany(self, sql: str, rows: Iterable[Sequence[Any]]) -> sqlite3.Cursor:
        try:
            return self.conn.executemany(sql, rows)
        except sqlite3.Error as e:
            raise StorageError("Database batch statement failed", details=f"{e}: {sql.split()[0]}") from e

    @contextmanager
    def transaction(self) -> Iterator['CatalogDatabase']:
        """
        All-or-nothing unit of work

        Nested calls join the outermost transaction. Any exception rolls the
        whole unit back and is re-raised (``sqlite3.Error`` as ``StorageError``).
        """
        with self._lock:
            outermost = self._depth == 0
            if outermost:
                self.execute("BEGIN")
            self._depth += 1
            try:
                yield self
            except BaseException:
                self._depth -= 1
                if outermost:
                    self.conn.rollback()
                    self.logger.debug("Transaction rolled back")
                raise
            else:
                self._depth -= 1
                if outermost:
                    try:
                        self.conn.execute("COMMIT")
                    except sqlite3.Error as e:
                        self.conn.rollback()
                        raise StorageError("Commit failed", details=str(e)) from e

    def _init_schema(self):
        """Create all tables and indices declared in ``schema``"""
        with self.transaction():
            for table in ALL_TABLES:
                self.execute(table.create_sql())
                for statement in table.index_sql():
                    self.execute(statement)
            self.execute(
                f"INSERT OR IGNORE INTO {CATALOG_META.name} (key, value) VALUES (?, ?)",
                ("db_version", str(SCHEMA_VERSION)),
            )

    def schema_version(self) -> int:
        row = self.execute(
            f"SELECT value FROM {CATALOG_META.name} WHERE key = 'db_version'"
        ).fetchone()
        return int(row["value"]) if row else 0

    # ------------------------------------------------------------------
    # Source tables

    @staticmethod
    def source_table(source: str) -> SourceTable:
        try:
            return SOURCE_TABLES[source]
        except KeyError:
            raise StorageError(f"Unknown source: {source}")

    def _record_values(self, table: TableSchema, record: SourceRecord) -> List[Any]:
        values = []
        for column in table.column_names:
            value = getattr(record, column)
            if column in _LIST_COLUMNS:
                value = dump_string_set(value or [])
            elif column == "title" and value is None:
                value = record.title_raw
            elif column == "artist" and value is None:
                value = record.artist_raw
            values.append(value)
        return values

    def upsert_source_record(self, record: SourceRecord) -> str:
        """
        Insert or refresh one source row by its natural id

        Import-owned columns are overwritten. Cleaned title/artist survive
        unless the raw value they were derived from changed; key and BPM are
        only filled when still empty.

        Returns:
            'inserted', 'updated' or 'unchanged'
        """
        if not record.natural_id:
            raise ParseFailure("Source record has no natural id", row_key=record.key)

        table = self.source_table(record.source).table
        columns = table.column_names
        import_columns = [c for c in columns if c not in _NON_IMPORT_COLUMNS]

        assignments = [f"{c} = excluded.{c}" for c in import_columns]
        assignments.append("title = CASE WHEN title_raw IS excluded.title_raw THEN title ELSE excluded.title END")
        assignments.append("artist = CASE WHEN artist_raw IS excluded.artist_raw THEN artist ELSE excluded.artist END")
        assignments.append("musical_key = COALESCE(musical_key, excluded.musical_key)")
        assignments.append("bpm = COALESCE(bpm, excluded.bpm)")

        changed = [f"{c} IS NOT excluded.{c}" for c in import_columns]
        changed.append("(musical_key IS NULL AND excluded.musical_key IS NOT NULL)")
        changed.append("(bpm IS NULL AND excluded.bpm IS NOT NULL)")

        sql = (
            f"INSERT INTO {table.name} ({', '.join(columns)}) "
            f"VALUES ({', '.join('?' for _ in columns)}) "
            f"ON CONFLICT(natural_id) DO UPDATE SET {', '.join(assignments)} "
            f"WHERE {' OR '.join(changed)}"
        )

        exists = self.execute(
            f"SELECT 1 FROM {table.name} WHERE natural_id = ?", (record.natural_id,)
        ).fetchone() is not None
        cursor = self.execute(sql, self._record_values(table, record))

        if not exists:
            return 'inserted'
        return 'updated' if cursor.rowcount > 0 else 'unchanged'

    def record_from_row(self, source: str, row: sqlite3.Row) -> SourceRecord:
        """
        Convert a stored row into a ``SourceRecord``

        Raises:
            ParseFailure: If a numeric or text column holds unreadable data
        """
        table = self.source_table(source).table
        row_key = f"{source}:{row['natural_id']}"
        data: Dict[str, Any] = {"source": source}
        for column in table.column_names:
            value = row[column]
            if column in _LIST_COLUMNS:
                data[column] = parse_string_set(value)
            elif column in ("duration_ms", "track_number", "play_count", "bitrate", "sample_rate"):
                data[column] = _as_int(value, column, row_key)
            elif column in ("bpm", "clean_confidence"):
                data[column] = _as_float(value, column, row_key)
            else:
                data[column] = _as_text(value, column, row_key)
        return SourceRecord.from_dict(data)

    def load_source_records(self, source: str) -> Tuple[List[SourceRecord], List[ParseFailure]]:
        """
        Load every row of a source table ordered by natural id

        Returns:
            (records, failures) - unreadable rows are reported, not raised
        """
        table = self.source_table(source).table
        rows = self.execute(
            f"SELECT {', '.join(table.column_names)} FROM {table.name} ORDER BY natural_id"
        ).fetchall()

        records, failures = [], []
        for row in rows:
            try:
                records.append(self.record_from_row(source, row))
            except ParseFailure as e:
                failures.append(e)
        return records, failures

    # ------------------------------------------------------------------
    # Cleanable tables

    def fetch_cleanable_rows(self, table: TableSchema) -> List[sqlite3.Row]:
        columns = (table.key_column, "title", "artist", "title_raw", "artist_raw",
                   "musical_key", "bpm", "features", "dj_tags", "clean_confidence", "clean_log")
        return self.execute(
            f"SELECT {', '.join(columns)} FROM {table.name} ORDER BY {table.key_column}"
        ).fetchall()

    def update_cleaned_row(self, table: TableSchema, key_value: Any, values: Dict[str, Any]):
        columns = [c for c in values if table.has_column(c)]
        if not columns:
            return
        assignments = ', '.join(f"{c} = ?" for c in columns)
        params = [values[c] for c in columns] + [key_value]
        self.execute(
            f"UPDATE {table.name} SET {assignments} WHERE {table.key_column} = ?", params
        )

    # ------------------------------------------------------------------
    # Canonical tracks and links

    def load_links(self, source: str) -> List[Tuple[int, str]]:
        link_table = self.source_table(source).link_table
        rows = self.execute(
            f"SELECT track_id, natural_id FROM {link_table.name} ORDER BY track_id"
        ).fetchall()
        return [(row["track_id"], row["natural_id"]) for row in rows]

    def canonical_file_paths(self) -> List[Tuple[int, str]]:
        rows = self.execute(
            f"SELECT track_id, file_path FROM {CANONICAL_TRACKS.name} "
            f"WHERE file_path IS NOT NULL ORDER BY track_id"
        ).fetchall()
        return [(row["track_id"], row["file_path"]) for row in rows]

    def max_canonical_id(self) -> int:
        row = self.execute(f"SELECT MAX(track_id) AS max_id FROM {CANONICAL_TRACKS.name}").fetchone()
        return row["max_id"] or 0

    def canonical_from_row(self, row: sqlite3.Row) -> CanonicalTrack:
        data = {column: row[column] for column in CANONICAL_TRACKS.column_names if column in row.keys()}
        data["features"] = parse_string_set(data.get("features"))
        data["dj_tags"] = parse_string_set(data.get("dj_tags"))
        return CanonicalTrack.from_dict(data)

    def fetch_canonical(self, track_id: int) -> Optional[CanonicalTrack]:
        row = self.execute(
            f"SELECT * FROM {CANONICAL_TRACKS.name} WHERE track_id = ?", (track_id,)
        ).fetchone()
        return self.canonical_from_row(row) if row else None

    def insert_canonical(self, track: CanonicalTrack):
        columns = [c for c in CANONICAL_TRACKS.column_names if c not in ("clean_confidence", "clean_log")]
        values = []
        for column in columns:
            value = getattr(track, column)
            if column in _LIST_COLUMNS:
                value = dump_string_set(value or [])
            values.append(value)
        self.execute(
            f"INSERT INTO {CANONICAL_TRACKS.name} ({', '.join(columns)}) "
            f"VALUES ({', '.join('?' for _ in columns)})",
            values,
        )

    def fill_canonical_nulls(self, track: CanonicalTrack) -> int:
        """
        Fill only the currently-NULL columns of an existing canonical row

        Returns:
            Number of rows changed (0 or 1)
        """
        columns = [c for c in CANONICAL_TRACKS.column_names
                   if c not in ("track_id", "clean_confidence", "clean_log")]
        assignments, conditions, params = [], [], []
        for column in columns:
            value = getattr(track, column)
            if column in _LIST_COLUMNS:
                value = dump_string_set(value or [])
            if value is None:
                continue
            assignments.append(f"{column} = COALESCE({column}, ?)")
            conditions.append(f"{column} IS NULL")
            params.append(value)
        if not assignments:
            return 0
        cursor = self.execute(
            f"UPDATE {CANONICAL_TRACKS.name} SET {', '.join(assignments)} "
            f"WHERE track_id = ? AND ({' OR '.join(conditions)})",
            params + [track.track_id],
        )
        return cursor.rowcount

    def insert_link(self, source: str, track_id: int, natural_id: str) -> bool:
        """Insert a canonical link idempotently; True when a new row was written"""
        link_table = self.source_table(source).link_table
        cursor = self.execute(
            f"INSERT OR IGNORE INTO {link_table.name} (track_id, natural_id) VALUES (?, ?)",
            (track_id, natural_id),
        )
        return cursor.rowcount > 0

    # ------------------------------------------------------------------
    # Derived index

    def fetch_index_rows(self) -> List[sqlite3.Row]:
        return self.execute(
            f"SELECT track_id, title, artist, album, album_artist, track_number "
            f"FROM {CANONICAL_TRACKS.name} ORDER BY track_id"
        ).fetchall()

    def clear_table(self, table: TableSchema):
        self.execute(f"DELETE FROM {table.name}")

    def insert_rows(self, table: TableSchema, rows: Iterable[Sequence[Any]]):
        columns = table.column_names
        self.executemany(
            f"INSERT INTO {table.name} ({', '.join(columns)}) "
            f"VALUES ({', '.join('?' for _ in columns)})",
            rows,
        )

    def fetch_all(self, table: TableSchema, order_by: Optional[str] = None) -> List[sqlite3.Row]:
        order = f" ORDER BY {order_by}" if order_by else ""
        return self.execute(f"SELECT * FROM {table.name}{order}").fetchall()

    # ------------------------------------------------------------------
    # Statistics

    def count(self, table: TableSchema) -> int:
        return self.execute(f"SELECT COUNT(*) AS n FROM {table.name}").fetchone()["n"]

    def stats(self) -> Dict[str, int]:
        """Row counts for every catalog table"""
        return {
            table.name: self.count(table)
            for table in ALL_TABLES
            if table is not CATALOG_META
        }
