from djcatalog.core.models import (
    SOURCE_DJ, SOURCE_FILESYSTEM, SOURCE_STREAMING, CanonicalTrack, MatchCandidate,
)
from djcatalog.services.canonical import (
    CanonicalMerger, IdentityIndex, build_canonical, median_duration_seconds,
)
from djcatalog.storage.schema import CANONICAL_TRACKS


def test_median_duration_seconds(make_record):
    records = [
        make_record(SOURCE_STREAMING, "s1", duration_ms=180000),
        make_record(SOURCE_DJ, "d1", duration_ms=181400),
        make_record(SOURCE_FILESYSTEM, "f1", duration_ms=240000),
    ]
    assert median_duration_seconds(records) == 181
    assert median_duration_seconds([make_record(SOURCE_DJ, "d1")]) is None


def test_build_canonical_uses_source_precedence(make_record):
    streaming = make_record(SOURCE_STREAMING, "s1", "Streaming Title", "Artist", genre="House",
                            play_count=7, musical_key="1A", features=["Alice"])
    dj = make_record(SOURCE_DJ, "d1", "DJ Title", "Artist", genre="Techno", play_count=3,
                     musical_key="8A", bpm=124.0, file_path="/dj/path.mp3", features=["alice", "Bob"])
    local = make_record(SOURCE_FILESYSTEM, "f1", "File Title", "Artist", musical_key="9B",
                        file_path="/music/path.mp3")

    track = build_canonical(5, [local, dj, streaming])

    assert track.track_id == 5
    assert track.title == "Streaming Title"
    assert track.album_artist == "Artist"
    assert track.genre == "House"
    assert track.play_count == 7
    assert track.musical_key == "8A"
    assert track.bpm == 124.0
    assert track.file_path == "/music/path.mp3"
    assert track.streaming_id == "s1"
    assert track.dj_id == "d1"
    assert track.features == ["alice", "Bob"]


def test_build_canonical_genre_is_streaming_only(make_record):
    dj = make_record(SOURCE_DJ, "d1", "Song", "Artist", genre="Techno")
    assert build_canonical(1, [dj]).genre is None


def test_fill_canonical_nulls_never_overwrites(db):
    with db.transaction():
        db.insert_canonical(CanonicalTrack(track_id=1, title="Kept", artist="Artist"))
        changed = db.fill_canonical_nulls(CanonicalTrack(track_id=1, title="Other", album="Album"))
        again = db.fill_canonical_nulls(CanonicalTrack(track_id=1, title="Other", album="Another"))

    track = db.fetch_canonical(1)
    assert changed == 1
    assert again == 0
    assert track.title == "Kept"
    assert track.album == "Album"


def test_conflicting_pair_is_skipped_and_counted(db, make_record, store):
    streaming = make_record(SOURCE_STREAMING, "s1", "Song", "Artist")
    dj = make_record(SOURCE_DJ, "d1", "Song", "Artist")
    store(streaming, dj)

    with db.transaction():
        merger = CanonicalMerger(db, IdentityIndex.load(db))
        merger.sweep([streaming, dj])
        assert merger.new_tracks == 2

        track_id = merger.apply_pair(MatchCandidate(left=streaming, right=dj, score=1.0))

    assert track_id is None
    assert merger.conflicts == 1
    assert db.count(CANONICAL_TRACKS) == 2


def test_identity_index_resolves_files_by_path(db, make_record, store):
    local = make_record(SOURCE_FILESYSTEM, "f1", "Song", "Artist", file_path="/Music/Song.mp3")
    store(local)
    with db.transaction():
        CanonicalMerger(db, IdentityIndex.load(db)).sweep([local])

    index = IdentityIndex.load(db)
    rescanned = make_record(SOURCE_FILESYSTEM, "f2", "Song", "Artist", file_path="/music/song.mp3")
    assert index.resolve(rescanned) == 1
    assert index.next_track_id == 2
