import threading

import pytest

from djcatalog.core.exceptions import OperationCancelled
from djcatalog.core.models import CanonicalTrack
from djcatalog.services.index_builder import IndexBuilder
from djcatalog.storage.schema import ALBUMS, ALBUM_TRACKS, ARTISTS, ARTIST_ALBUMS


@pytest.fixture
def catalog(db):
    with db.transaction():
        db.insert_canonical(CanonicalTrack(track_id=1, title="B Song", artist="Artist", album="First", track_number=2))
        db.insert_canonical(CanonicalTrack(track_id=2, title="A Song", artist="artist", album="First", track_number=1))
        db.insert_canonical(CanonicalTrack(track_id=3, title="C Song", artist="Artist", album="Second"))
        db.insert_canonical(CanonicalTrack(track_id=4))
    return db


def _snapshot(db):
    return {
        table.name: [tuple(row) for row in db.fetch_all(table, order_by=", ".join(table.column_names))]
        for table in (ARTISTS, ALBUMS, ARTIST_ALBUMS, ALBUM_TRACKS)
    }


def test_rebuild_groups_artists_and_albums(catalog):
    result = IndexBuilder(catalog).rebuild()

    assert (result.artists, result.albums, result.tracks) == (2, 3, 4)

    artists = catalog.fetch_all(ARTISTS, order_by="artist_id")
    assert [(a["name"], a["album_count"], a["track_count"]) for a in artists] == [
        ("Artist", 2, 3),
        ("Unknown Artist", 1, 1),
    ]

    albums = catalog.fetch_all(ALBUMS, order_by="album_id")
    assert [a["title"] for a in albums] == ["First", "Second", "Unknown Album"]
    assert albums[0]["track_count"] == 2


def test_album_tracks_follow_track_number(catalog):
    IndexBuilder(catalog).rebuild()

    rows = catalog.fetch_all(ALBUM_TRACKS, order_by="album_id, sort_order")
    first_album = [(row["sort_order"], row["track_id"]) for row in rows if row["album_id"] == 1]
    assert first_album == [(1, 2), (2, 1)]


def test_rebuild_is_deterministic(catalog):
    IndexBuilder(catalog).rebuild()
    first = _snapshot(catalog)
    IndexBuilder(catalog).rebuild()
    assert _snapshot(catalog) == first


def test_cancelled_rebuild_keeps_previous_index(catalog):
    IndexBuilder(catalog).rebuild()
    before = _snapshot(catalog)

    cancel = threading.Event()
    cancel.set()
    with pytest.raises(OperationCancelled):
        IndexBuilder(catalog, cancel_event=cancel).rebuild()

    assert _snapshot(catalog) == before
