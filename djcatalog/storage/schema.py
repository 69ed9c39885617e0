"""
Catalog database schema

Every table is declared once here with an ordered column enumeration. The
database layer builds its SQL only from these declarations, so adding a
column means touching exactly one place.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from ..core.models import SOURCE_STREAMING, SOURCE_DJ, SOURCE_FILESYSTEM


SCHEMA_VERSION = 1


@dataclass(frozen=True)
class Column:
    name: str
    sql_type: str
    constraint: str = ""

    def definition(self) -> str:
        return " ".join(part for part in (self.name, self.sql_type, self.constraint) if part)


@dataclass(frozen=True)
class TableSchema:
    """Declarative description of one table"""

    name: str
    key_column: str
    columns: Tuple[Column, ...]
    constraints: Tuple[str, ...] = ()
    indices: Tuple[Tuple[str, str], ...] = ()

    @property
    def column_names(self) -> Tuple[str, ...]:
        return tuple(column.name for column in self.columns)

    def has_column(self, name: str) -> bool:
        return name in self.column_names

    def create_sql(self) -> str:
        body = [column.definition() for column in self.columns]
        body.extend(self.constraints)
        return f"CREATE TABLE IF NOT EXISTS {self.name} (\n    " + ",\n    ".join(body) + "\n)"

    def index_sql(self) -> List[str]:
        return [
            f"CREATE INDEX IF NOT EXISTS {index_name} ON {self.name}({columns})"
            for index_name, columns in self.indices
        ]


@dataclass(frozen=True)
class SourceTable:
    """A per-source library table together with its canonical link table"""

    source: str
    table: TableSchema
    link_table: TableSchema
    canonical_column: Optional[str]  # column on canonical_tracks holding this source's id


# Columns shared by every per-source library table
_RECORD_COLUMNS = (
    Column("natural_id", "TEXT", "PRIMARY KEY"),
    Column("title", "TEXT"),
    Column("artist", "TEXT"),
    Column("title_raw", "TEXT"),
    Column("artist_raw", "TEXT"),
    Column("album", "TEXT"),
    Column("album_artist", "TEXT"),
    Column("duration_ms", "INTEGER"),
    Column("track_number", "INTEGER"),
    Column("musical_key", "TEXT"),
    Column("bpm", "REAL"),
    Column("features", "TEXT"),
    Column("dj_tags", "TEXT"),
    Column("clean_confidence", "REAL"),
    Column("clean_log", "TEXT"),
)

# Columns written by the cleaner on every cleanable table
CLEANED_COLUMNS = (
    "title", "artist", "musical_key", "bpm", "features", "dj_tags",
    "clean_confidence", "clean_log",
)

STREAMING_TRACKS = TableSchema(
    name="streaming_tracks",
    key_column="natural_id",
    columns=_RECORD_COLUMNS + (
        Column("genre", "TEXT"),
        Column("play_count", "INTEGER"),
    ),
)

DJ_TRACKS = TableSchema(
    name="dj_tracks",
    key_column="natural_id",
    columns=_RECORD_COLUMNS + (
        Column("genre", "TEXT"),
        Column("play_count", "INTEGER"),
        Column("file_path", "TEXT"),
    ),
    indices=(("idx_dj_tracks_path", "file_path"),),
)

FILE_TRACKS = TableSchema(
    name="file_tracks",
    key_column="natural_id",
    columns=_RECORD_COLUMNS + (
        Column("file_path", "TEXT", "NOT NULL"),
        Column("bitrate", "INTEGER"),
        Column("sample_rate", "INTEGER"),
        Column("file_type", "TEXT"),
    ),
    indices=(("idx_file_tracks_path", "file_path"),),
)

CANONICAL_TRACKS = TableSchema(
    name="canonical_tracks",
    key_column="track_id",
    columns=(
        Column("track_id", "INTEGER", "PRIMARY KEY"),
        Column("title", "TEXT"),
        Column("artist", "TEXT"),
        Column("title_raw", "TEXT"),
        Column("artist_raw", "TEXT"),
        Column("album", "TEXT"),
        Column("album_artist", "TEXT"),
        Column("genre", "TEXT"),
        Column("duration", "INTEGER"),
        Column("play_count", "INTEGER"),
        Column("track_number", "INTEGER"),
        Column("streaming_id", "TEXT"),
        Column("dj_id", "TEXT"),
        Column("file_path", "TEXT"),
        Column("musical_key", "TEXT"),
        Column("bpm", "REAL"),
        Column("features", "TEXT"),
        Column("dj_tags", "TEXT"),
        Column("clean_confidence", "REAL"),
        Column("clean_log", "TEXT"),
    ),
    indices=(("idx_canonical_path", "file_path"),),
)


def _link_table(name: str, source_table: TableSchema) -> TableSchema:
    return TableSchema(
        name=name,
        key_column="natural_id",
        columns=(
            Column("track_id", "INTEGER", "NOT NULL REFERENCES canonical_tracks(track_id)"),
            Column("natural_id", "TEXT", f"NOT NULL REFERENCES {source_table.name}(natural_id)"),
        ),
        constraints=(
            "PRIMARY KEY (track_id, natural_id)",
            "UNIQUE (natural_id)",
        ),
    )


STREAMING_LINKS = _link_table("canonical_streaming_links", STREAMING_TRACKS)
DJ_LINKS = _link_table("canonical_dj_links", DJ_TRACKS)
FILE_LINKS = _link_table("canonical_file_links", FILE_TRACKS)

SOURCE_TABLES: Dict[str, SourceTable] = {
    SOURCE_STREAMING: SourceTable(SOURCE_STREAMING, STREAMING_TRACKS, STREAMING_LINKS, "streaming_id"),
    SOURCE_DJ: SourceTable(SOURCE_DJ, DJ_TRACKS, DJ_LINKS, "dj_id"),
    SOURCE_FILESYSTEM: SourceTable(SOURCE_FILESYSTEM, FILE_TRACKS, FILE_LINKS, None),
}

# Tables visited by the metadata cleaner, in order
CLEANABLE_TABLES = (CANONICAL_TRACKS, STREAMING_TRACKS, DJ_TRACKS, FILE_TRACKS)

# Derived browse structures
ARTISTS = TableSchema(
    name="artists",
    key_column="artist_id",
    columns=(
        Column("artist_id", "INTEGER", "PRIMARY KEY"),
        Column("name", "TEXT", "NOT NULL"),
        Column("artist_key", "TEXT", "NOT NULL UNIQUE"),
        Column("album_count", "INTEGER", "NOT NULL DEFAULT 0"),
        Column("track_count", "INTEGER", "NOT NULL DEFAULT 0"),
    ),
)

ALBUMS = TableSchema(
    name="albums",
    key_column="album_id",
    columns=(
        Column("album_id", "INTEGER", "PRIMARY KEY"),
        Column("title", "TEXT", "NOT NULL"),
        Column("album_artist", "TEXT", "NOT NULL"),
        Column("album_key", "TEXT", "NOT NULL UNIQUE"),
        Column("track_count", "INTEGER", "NOT NULL DEFAULT 0"),
    ),
)

ARTIST_ALBUMS = TableSchema(
    name="artist_albums",
    key_column="artist_id",
    columns=(
        Column("artist_id", "INTEGER", "NOT NULL REFERENCES artists(artist_id)"),
        Column("album_id", "INTEGER", "NOT NULL REFERENCES albums(album_id)"),
    ),
    constraints=("PRIMARY KEY (artist_id, album_id)",),
)

ALBUM_TRACKS = TableSchema(
    name="album_tracks",
    key_column="album_id",
    columns=(
        Column("album_id", "INTEGER", "NOT NULL REFERENCES albums(album_id)"),
        Column("track_id", "INTEGER", "NOT NULL REFERENCES canonical_tracks(track_id)"),
        Column("sort_order", "INTEGER", "NOT NULL"),
        Column("track_number", "INTEGER"),
    ),
    constraints=("PRIMARY KEY (album_id, track_id)",),
)

# Deletion order for a full index replace
DERIVED_TABLES = (ARTIST_ALBUMS, ALBUM_TRACKS, ARTISTS, ALBUMS)

CATALOG_META = TableSchema(
    name="catalog_meta",
    key_column="key",
    columns=(
        Column("key", "TEXT", "PRIMARY KEY"),
        Column("value", "TEXT"),
    ),
)

ALL_TABLES = (
    CATALOG_META,
    STREAMING_TRACKS, DJ_TRACKS, FILE_TRACKS,
    CANONICAL_TRACKS,
    STREAMING_LINKS, DJ_LINKS, FILE_LINKS,
    ARTISTS, ALBUMS, ARTIST_ALBUMS, ALBUM_TRACKS,
)
