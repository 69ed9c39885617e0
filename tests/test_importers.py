import pytest
from mutagen import MutagenError

from djcatalog.core.exceptions import ParseFailure, SourceImportError
from djcatalog.core.models import SOURCE_DJ, SOURCE_FILESYSTEM, SOURCE_STREAMING
from djcatalog.importers import detect_xml_source, import_xml, scan_folder
from djcatalog.importers import file_scanner
from djcatalog.importers.base import float_value, int_value
from djcatalog.importers.file_scanner import FileScanner
from djcatalog.utils.filesystem import normalize_path, stable_path_id


@pytest.fixture
def rekordbox_xml(tmp_path, rekordbox_export):
    return rekordbox_export(tmp_path / "rekordbox.xml", [
        {"TrackID": "1", "Name": "Song", "Artist": "Artist", "Album": "Album", "TotalTime": "180",
         "AverageBpm": "124.00", "Tonality": "8A", "PlayCount": "3", "TrackNumber": "2",
         "Location": "file://localhost/Music/Artist/Song%20One.mp3"},
        {"TrackID": "2", "Name": "Other", "Artist": "Someone", "AverageBpm": "0.00"},
        {"Name": "No Identifier"},
    ])


@pytest.fixture
def library_plist(tmp_path, library_export):
    return library_export(tmp_path / "Library.xml", {
        "100": {"Track ID": 100, "Persistent ID": "ABCDEF0123", "Name": "Song", "Artist": "Artist",
                "Total Time": 180000, "Play Count": 5, "Genre": "House"},
        "101": {"Track ID": 101, "Name": "Other"},
    })


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("3", 3),
        ("3/12", 3),
        ("abc", None),
        ("", None),
        (None, None),
    ],
)
def test_int_value(raw, expected):
    assert int_value(raw) == expected


def test_float_value_ignores_zero():
    assert float_value("124.00") == 124.0
    assert float_value("0.00") is None


def test_detect_xml_source(rekordbox_xml, library_plist):
    assert detect_xml_source(rekordbox_xml) == SOURCE_DJ
    assert detect_xml_source(library_plist) == SOURCE_STREAMING


@pytest.mark.parametrize(
    "content",
    [
        "<foo/>",
        "<DJ_PLAYLISTS><PRODUCT Name=\"other\"/></DJ_PLAYLISTS>",
        "<DJ_PLAYLISTS",
    ],
)
def test_detect_rejects_unknown_exports(tmp_path, content):
    path = tmp_path / "export.xml"
    path.write_text(content)
    with pytest.raises(SourceImportError):
        detect_xml_source(str(path))


def test_detect_missing_file(tmp_path):
    with pytest.raises(SourceImportError):
        detect_xml_source(str(tmp_path / "missing.xml"))


def test_import_rekordbox_collection(db, rekordbox_xml):
    result = import_xml(db, rekordbox_xml)

    assert result.source == SOURCE_DJ
    assert result.inserted == 2
    assert result.failed == 1

    records, failures = db.load_source_records(SOURCE_DJ)
    assert failures == []
    first, second = records
    assert first.natural_id == "1"
    assert first.duration_ms == 180000
    assert first.bpm == 124.0
    assert first.musical_key == "8A"
    assert first.play_count == 3
    assert first.track_number == 2
    assert first.file_path == "/Music/Artist/Song One.mp3"
    assert second.bpm is None


def test_reimport_reports_unchanged(db, rekordbox_xml):
    import_xml(db, rekordbox_xml)
    again = import_xml(db, rekordbox_xml)

    assert again.inserted == 0
    assert again.updated == 0
    assert again.unchanged == 2


def test_reimport_keeps_cleaned_title(db, tmp_path, rekordbox_export):
    track = {"TrackID": "1", "Name": "Song.mp3", "Artist": "Artist"}
    path = rekordbox_export(tmp_path / "rekordbox.xml", [track])
    import_xml(db, path)
    with db.transaction():
        db.execute("UPDATE dj_tracks SET title = 'Song' WHERE natural_id = '1'")

    import_xml(db, path)
    records, _ = db.load_source_records(SOURCE_DJ)
    assert records[0].title == "Song"

    rekordbox_export(tmp_path / "rekordbox.xml", [dict(track, Name="Renamed")])
    result = import_xml(db, path)
    records, _ = db.load_source_records(SOURCE_DJ)
    assert result.updated == 1
    assert records[0].title == "Renamed"


def test_import_apple_music_library(db, library_plist):
    result = import_xml(db, library_plist)

    assert result.source == SOURCE_STREAMING
    assert result.inserted == 2

    records, _ = db.load_source_records(SOURCE_STREAMING)
    by_id = {record.natural_id: record for record in records}
    assert set(by_id) == {"ABCDEF0123", "101"}
    assert by_id["ABCDEF0123"].duration_ms == 180000
    assert by_id["ABCDEF0123"].play_count == 5
    assert by_id["ABCDEF0123"].genre == "House"
    assert by_id["101"].title == "Other"


@pytest.fixture
def music_folder(tmp_path, monkeypatch, fake_audio):
    (tmp_path / "Artist").mkdir()
    good = tmp_path / "Artist" / "Song.mp3"
    good.write_bytes(b"")
    (tmp_path / "Artist" / "broken.flac").write_bytes(b"")
    (tmp_path / "Artist" / "cover.jpg").write_bytes(b"")

    def fake_file(path, easy=False):
        if path.endswith("broken.flac"):
            return None
        return fake_audio({
            'title': ['Song'],
            'artist': ['Artist'],
            'tracknumber': ['3/12'],
            'bpm': ['128'],
            'initialkey': [''],
            'key': ['8A'],
        })

    monkeypatch.setattr(file_scanner, 'MutagenFile', fake_file)
    return tmp_path, good


def test_scanner_reads_tags(music_folder):
    folder, good = music_folder

    scanner = FileScanner().scan(str(folder))

    assert len(scanner.records) == 1
    assert len(scanner.failures) == 1
    record = scanner.records[0]
    assert record.source == SOURCE_FILESYSTEM
    assert record.natural_id == stable_path_id(normalize_path(str(good)))
    assert record.title == "Song"
    assert record.duration_ms == 180500
    assert record.track_number == 3
    assert record.bpm == 128.0
    assert record.musical_key == "8A"
    assert record.bitrate == 320000
    assert record.file_type == "mp3"


def test_scan_folder_stores_and_counts_failures(db, music_folder):
    folder, _ = music_folder

    result = scan_folder(db, str(folder))

    assert result.inserted == 1
    assert result.failed == 1
    assert db.load_source_records(SOURCE_FILESYSTEM)[0][0].title == "Song"


def test_unreadable_file_raises_parse_failure(tmp_path, monkeypatch):
    path = tmp_path / "bad.mp3"
    path.write_bytes(b"")

    def broken(filepath, easy=False):
        raise MutagenError("can't sync to MPEG frame")

    monkeypatch.setattr(file_scanner, 'MutagenFile', broken)
    with pytest.raises(ParseFailure):
        FileScanner().read_file(str(path))
