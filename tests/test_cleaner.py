import threading

import pytest

from djcatalog.core.exceptions import OperationCancelled
from djcatalog.core.models import SOURCE_DJ, SOURCE_STREAMING
from djcatalog.services.cleaner import MetadataCleaner


def _dj_row(db):
    records, _ = db.load_source_records(SOURCE_DJ)
    return records[0]


@pytest.fixture
def messy_dj_row(make_record, store):
    store(make_record(SOURCE_DJ, "d1", "03. Track Title (Clean)", "9A - 128 - DJ Name"))


def test_cleanup_rewrites_confident_rows(db, messy_dj_row):
    result = MetadataCleaner(db).run(min_confidence=0.7)

    assert result.updated == 1
    assert result.skipped == 0
    assert result.tag_histogram['artist_key_bpm'] == 1

    row = _dj_row(db)
    assert row.title == "Track Title"
    assert row.artist == "DJ Name"
    assert row.title_raw == "03. Track Title (Clean)"
    assert row.musical_key == "9A"
    assert row.bpm == 128.0
    assert row.dj_tags == ["Clean"]
    assert row.clean_confidence == 1.0


def test_cleanup_is_idempotent(db, messy_dj_row):
    MetadataCleaner(db).run(min_confidence=0.7)
    second = MetadataCleaner(db).run(min_confidence=0.7)

    assert second.updated == 0
    assert second.unchanged == 1


def test_cleanup_skips_low_confidence(db, make_record, store):
    store(make_record(SOURCE_STREAMING, "s1", "Intro Part - Song", "Someone"))

    result = MetadataCleaner(db).run(min_confidence=0.7)

    assert result.skipped == 1
    assert result.updated == 0
    records, _ = db.load_source_records(SOURCE_STREAMING)
    assert records[0].title == "Intro Part - Song"


def test_cleanup_keeps_existing_key_and_bpm(db, make_record, store):
    store(make_record(SOURCE_DJ, "d1", "03. Track Title (Clean)", "9A - 128 - DJ Name",
                      musical_key="5A", bpm=100.0))

    MetadataCleaner(db).run(min_confidence=0.7)

    row = _dj_row(db)
    assert row.musical_key == "5A"
    assert row.bpm == 100.0
    assert row.artist == "DJ Name"


def test_cleanup_dry_run_writes_nothing(db, messy_dj_row):
    result = MetadataCleaner(db).run(min_confidence=0.7, dry_run=True)

    assert result.updated == 1
    assert result.dry_run
    assert _dj_row(db).title == "03. Track Title (Clean)"


def test_cleanup_cancellation_leaves_rows_untouched(db, messy_dj_row):
    cancel = threading.Event()
    cancel.set()

    with pytest.raises(OperationCancelled):
        MetadataCleaner(db, cancel_event=cancel).run(min_confidence=0.7)

    assert _dj_row(db).title == "03. Track Title (Clean)"


def test_top_tags_orders_by_frequency(db, make_record, store):
    store(
        make_record(SOURCE_DJ, "d1", "Song.mp3", "Artist"),
        make_record(SOURCE_DJ, "d2", "Other.mp3", "Artist"),
        make_record(SOURCE_DJ, "d3", "Song (Extended Mix)", "Artist"),
    )
    result = MetadataCleaner(db).run(min_confidence=0.0)
    assert result.top_tags(limit=1) == [('title_strip_extension', 2)]


def test_cleanup_counts_unreadable_rows_and_leaves_them_alone(db, messy_dj_row):
    with db.transaction():
        db.execute("UPDATE dj_tracks SET bpm = 'fast' WHERE natural_id = 'd1'")

    result = MetadataCleaner(db).run(min_confidence=0.7)

    assert result.failed == 1
    assert result.updated == 0
    row = db.execute("SELECT title, artist, bpm, clean_log FROM dj_tracks").fetchone()
    assert tuple(row) == ("03. Track Title (Clean)", "9A - 128 - DJ Name", "fast", None)
