import pytest

from djcatalog.core.exceptions import StorageError
from djcatalog.core.models import CanonicalTrack, SOURCE_DJ
from djcatalog.storage.schema import CANONICAL_TRACKS, DJ_TRACKS


def test_failed_statement_rolls_back_whole_transaction(db):
    with pytest.raises(StorageError):
        with db.transaction():
            db.insert_canonical(CanonicalTrack(track_id=1, title="Song"))
            db.insert_canonical(CanonicalTrack(track_id=1, title="Duplicate"))

    assert db.count(CANONICAL_TRACKS) == 0


def test_nested_transaction_failure_rolls_back_outer_work(db, make_record):
    with pytest.raises(StorageError):
        with db.transaction():
            db.upsert_source_record(make_record(SOURCE_DJ, "d1", "Song", "Artist"))
            with db.transaction():
                db.execute("INSERT INTO missing_table VALUES (1)")

    assert db.count(DJ_TRACKS) == 0


def test_transaction_is_usable_after_rollback(db):
    with pytest.raises(StorageError):
        with db.transaction():
            db.execute("INSERT INTO missing_table VALUES (1)")

    with db.transaction():
        db.insert_canonical(CanonicalTrack(track_id=1, title="Song"))

    assert db.fetch_canonical(1).title == "Song"
