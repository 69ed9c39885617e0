import threading

import pytest

from djcatalog.core.exceptions import OperationCancelled
from djcatalog.core.models import (
    SOURCE_DJ, SOURCE_FILESYSTEM, SOURCE_STREAMING, MatchCandidate, SourceRecord,
)
from djcatalog.services.blocking import BlockingIndex
from djcatalog.services.matcher import MatchEngine, assign_greedy, split_bands
from djcatalog.services.scoring import prepare_record
from djcatalog.storage.schema import CANONICAL_TRACKS, DJ_LINKS, FILE_LINKS, STREAMING_LINKS


def _candidate(left_id, right_id, score, title=1.0):
    return MatchCandidate(
        left=SourceRecord(source=SOURCE_STREAMING, natural_id=left_id),
        right=SourceRecord(source=SOURCE_DJ, natural_id=right_id),
        score=score,
        title_score=title,
        duration_score=1.0,
    )


def test_greedy_assignment_never_double_assigns():
    candidates = [
        _candidate("a", "x", 0.95),
        _candidate("a", "y", 0.94),
        _candidate("b", "x", 0.97),
        _candidate("b", "y", 0.93),
    ]

    accepted = assign_greedy(candidates)

    pairs = [(c.left.natural_id, c.right.natural_id) for c in accepted]
    assert pairs == [("b", "x"), ("a", "y")]
    lefts = [c.left.key for c in accepted]
    rights = [c.right.key for c in accepted]
    assert len(lefts) == len(set(lefts))
    assert len(rights) == len(set(rights))


def test_greedy_assignment_breaks_ties_by_ids():
    accepted = assign_greedy([_candidate("b", "x", 0.95), _candidate("a", "x", 0.95)])
    assert [c.left.natural_id for c in accepted] == ["a"]


def test_split_bands():
    auto, review = split_bands(
        [
            _candidate("a", "x", 0.95),
            _candidate("b", "y", 0.90),
            _candidate("c", "z", 0.85),
            _candidate("d", "w", 0.99, title=0.5),
        ],
        min_auto_score=0.92,
    )
    assert [c.left.natural_id for c in auto] == ["a"]
    assert [c.left.natural_id for c in review] == ["b"]


def test_blocking_index_finds_candidates_by_title_and_path():
    indexed = [
        prepare_record(SourceRecord(source=SOURCE_FILESYSTEM, natural_id="f1", title="Night Drive",
                                    duration_ms=200000, file_path="/m/a/night.mp3")),
        prepare_record(SourceRecord(source=SOURCE_FILESYSTEM, natural_id="f2", title="Something Else",
                                    duration_ms=100000, file_path="/m/b/other.mp3")),
        prepare_record(SourceRecord(source=SOURCE_FILESYSTEM, natural_id="f3", title="Unrelated",
                                    duration_ms=300000, file_path="/x/y/z/tail.mp3")),
    ]
    index = BlockingIndex(indexed)

    by_title = prepare_record(SourceRecord(source=SOURCE_DJ, natural_id="d1", title="Night Drive",
                                           duration_ms=201000))
    assert [c.key for c in index.candidates(by_title, path_hint=True)] == ["filesystem:f1"]

    by_path = prepare_record(SourceRecord(source=SOURCE_DJ, natural_id="d2", title="Completely Different",
                                          file_path="/M/B/OTHER.mp3"))
    assert [c.key for c in index.candidates(by_path, path_hint=True)] == ["filesystem:f2"]
    assert index.candidates(by_path, path_hint=False) == []

    by_tail = prepare_record(SourceRecord(source=SOURCE_DJ, natural_id="d3", title="Zzz",
                                          file_path="/other/root/y/z/tail.mp3"))
    assert [c.key for c in index.candidates(by_tail, path_hint=True)] == ["filesystem:f3"]


def test_blocking_tolerates_neighbouring_duration_bucket():
    indexed = [prepare_record(SourceRecord(source=SOURCE_DJ, natural_id="d1", title="The Ocean Waves Forever",
                                           duration_ms=199000))]
    probe = prepare_record(SourceRecord(source=SOURCE_STREAMING, natural_id="s1",
                                        title="Ocean Waves Forever", duration_ms=200500))
    assert probe.token_key == indexed[0].token_key == "forever|ocean|waves"
    assert probe.title_key != indexed[0].title_key
    assert probe.duration_bucket == indexed[0].duration_bucket + 1
    assert [c.key for c in BlockingIndex(indexed).candidates(probe, path_hint=False)] == ["dj_software:d1"]


@pytest.fixture
def three_sources(make_record, store):
    store(
        make_record(SOURCE_STREAMING, "s1", "Song", "Artist", duration_ms=180000, album="Album", genre="House"),
        make_record(SOURCE_DJ, "d1", "Song", "Artist", duration_ms=180000, bpm=124.0, musical_key="8A",
                    file_path="/music/Artist/Song.mp3"),
        make_record(SOURCE_FILESYSTEM, "f1", "Song", "Artist", duration_ms=181000,
                    file_path="/music/Artist/Song.mp3"),
        make_record(SOURCE_STREAMING, "s2", "Lonely Tune", "Someone", duration_ms=240000),
    )


def test_match_merges_all_three_sources(db, three_sources):
    result = MatchEngine(db).run()

    assert result.auto_linked == 2
    assert result.new_tracks == 2
    assert result.new_links == 4
    assert db.count(CANONICAL_TRACKS) == 2

    track_id = dict((n, t) for t, n in db.load_links(SOURCE_DJ))["d1"]
    assert dict((n, t) for t, n in db.load_links(SOURCE_STREAMING))["s1"] == track_id
    assert dict((n, t) for t, n in db.load_links(SOURCE_FILESYSTEM))["f1"] == track_id

    track = db.fetch_canonical(track_id)
    assert track.title == "Song"
    assert track.streaming_id == "s1"
    assert track.dj_id == "d1"
    assert track.bpm == 124.0
    assert track.musical_key == "8A"
    assert track.genre == "House"
    assert track.file_path == "/music/Artist/Song.mp3"


def test_match_is_idempotent(db, three_sources):
    MatchEngine(db).run()
    counts = (db.count(CANONICAL_TRACKS), db.count(STREAMING_LINKS), db.count(DJ_LINKS), db.count(FILE_LINKS))

    second = MatchEngine(db).run()

    assert second.new_tracks == 0
    assert second.new_links == 0
    assert (db.count(CANONICAL_TRACKS), db.count(STREAMING_LINKS),
            db.count(DJ_LINKS), db.count(FILE_LINKS)) == counts


def test_match_dry_run_writes_nothing(db, three_sources):
    result = MatchEngine(db).run(dry_run=True)
    assert result.auto_linked == 2
    assert result.dry_run
    assert db.count(CANONICAL_TRACKS) == 0


def test_path_exact_links_weak_title(db, make_record, store):
    store(
        make_record(SOURCE_DJ, "d1", "Midnight", "Artist", duration_ms=200000,
                    file_path="/music/Artist/Midnight.mp3"),
        make_record(SOURCE_FILESYSTEM, "f1", "Midnite", "Artist", duration_ms=200000,
                    file_path="/music/Artist/Midnight.mp3"),
    )
    result = MatchEngine(db).run()
    assert result.auto_linked == 1
    assert db.count(CANONICAL_TRACKS) == 1


def test_weak_title_without_shared_path_stays_separate(db, make_record, store):
    store(
        make_record(SOURCE_DJ, "d1", "Midnight", "Artist", duration_ms=200000,
                    file_path="/music/a/Midnight.mp3"),
        make_record(SOURCE_FILESYSTEM, "f1", "Midnite", "Artist", duration_ms=200000,
                    file_path="/other/b/Midnite.mp3"),
    )
    result = MatchEngine(db).run()
    assert result.auto_linked == 0
    assert db.count(CANONICAL_TRACKS) == 2


def test_match_cancellation_rolls_back(db, three_sources):
    cancel = threading.Event()
    cancel.set()
    with pytest.raises(OperationCancelled):
        MatchEngine(db, cancel_event=cancel).run()
    assert db.count(CANONICAL_TRACKS) == 0
