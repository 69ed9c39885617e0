"""
Index Builder

Recomputes the derived artist/album browse tables from the canonical
catalog as a full transactional replace. Artists and albums are accumulated
in memory and numbered at flush time in a stable sorted order, so the same
catalog always produces the same ids.
"""

import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

from ..core.exceptions import OperationCancelled
from ..core.models import IndexResult
from ..storage.database import CatalogDatabase
from ..storage.schema import ALBUMS, ALBUM_TRACKS, ARTISTS, ARTIST_ALBUMS, DERIVED_TABLES
from ..utils.logging_config import get_logger
from ..utils.text import collapse_whitespace, normalize_index_key


UNKNOWN_ARTIST = 'Unknown Artist'
UNKNOWN_ALBUM = 'Unknown Album'
UNTITLED = 'Untitled'


@dataclass
class _ArtistEntry:
    name: str
    key: str
    album_keys: Set[str] = field(default_factory=set)
    track_count: int = 0


@dataclass
class _AlbumTrack:
    track_id: int
    title: str
    track_number: Optional[int]


@dataclass
class _AlbumEntry:
    title: str
    album_artist: str
    key: str
    artist_keys: Set[str] = field(default_factory=set)
    tracks: List[_AlbumTrack] = field(default_factory=list)


def _display(value: Optional[str], default: str) -> str:
    value = collapse_whitespace(value)
    return value or default


class IndexBuilder:
    """Full rebuild of artists, albums and their junction tables"""

    def __init__(self, db: CatalogDatabase, cancel_event: Optional[threading.Event] = None):
        self.db = db
        self.cancel_event = cancel_event
        self.logger = get_logger('index')

    def _check_cancelled(self):
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise OperationCancelled("Index rebuild")

    def rebuild(self) -> IndexResult:
        """
        Replace all derived rows in one transaction

        Returns:
            IndexResult with artist, album and track counts
        """
        with self.db.transaction():
            for table in DERIVED_TABLES:
                self.db.clear_table(table)

            artists: Dict[str, _ArtistEntry] = {}
            albums: Dict[str, _AlbumEntry] = {}
            track_count = 0

            for row in self.db.fetch_index_rows():
                self._check_cancelled()
                track_count += 1
                artist_name = _display(row['artist'], UNKNOWN_ARTIST)
                album_title = _display(row['album'], UNKNOWN_ALBUM)
                album_artist = _display(row['album_artist'], artist_name)
                title = _display(row['title'], UNTITLED)

                artist_key = normalize_index_key(artist_name)
                album_key = f"{normalize_index_key(album_artist)}|{normalize_index_key(album_title)}"

                artist = artists.setdefault(artist_key, _ArtistEntry(artist_name, artist_key))
                artist.track_count += 1
                artist.album_keys.add(album_key)

                album = albums.setdefault(album_key, _AlbumEntry(album_title, album_artist, album_key))
                album.artist_keys.add(artist_key)
                album.tracks.append(_AlbumTrack(row['track_id'], title, row['track_number']))

            self._flush(artists, albums)

        result = IndexResult(artists=len(artists), albums=len(albums), tracks=track_count)
        self.logger.info(f"Index rebuilt: {result.artists} artists, {result.albums} albums, {result.tracks} tracks")
        return result

    def _flush(self, artists: Dict[str, _ArtistEntry], albums: Dict[str, _AlbumEntry]):
        ordered_artists = sorted(artists.values(), key=lambda a: (a.name.casefold(), a.key))
        ordered_albums = sorted(
            albums.values(),
            key=lambda a: (a.album_artist.casefold(), a.title.casefold(), a.key),
        )
        artist_ids = {artist.key: number for number, artist in enumerate(ordered_artists, start=1)}
        album_ids = {album.key: number for number, album in enumerate(ordered_albums, start=1)}

        self.db.insert_rows(ARTISTS, [
            (artist_ids[a.key], a.name, a.key, len(a.album_keys), a.track_count)
            for a in ordered_artists
        ])
        self.db.insert_rows(ALBUMS, [
            (album_ids[a.key], a.title, a.album_artist, a.key, len(a.tracks))
            for a in ordered_albums
        ])
        self.db.insert_rows(ARTIST_ALBUMS, [
            (artist_ids[artist_key], album_ids[album.key])
            for album in ordered_albums
            for artist_key in sorted(album.artist_keys, key=lambda k: artist_ids[k])
        ])

        album_track_rows = []
        for album in ordered_albums:
            tracks = sorted(
                album.tracks,
                key=lambda t: (t.track_number is None, t.track_number or 0, t.title.casefold(), t.track_id),
            )
            for sort_order, track in enumerate(tracks, start=1):
                album_track_rows.append((album_ids[album.key], track.track_id, sort_order, track.track_number))
        self.db.insert_rows(ALBUM_TRACKS, album_track_rows)
