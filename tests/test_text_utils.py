import pytest

from djcatalog.utils.filesystem import (
    file_uri_to_path, iter_audio_files, normalize_path, path_segments,
    path_tail_key, stable_path_id,
)
from djcatalog.core.exceptions import SourceImportError
from djcatalog.utils.text import (
    canonicalize, distinct_casefold, dump_string_set, equals_loose, jaccard,
    levenshtein_similarity, normalize_camelot_key, normalize_index_key,
    parse_string_set,
)


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("  Song   Title ", "Song Title"),
        ("Ｓｏｎｇ", "Song"),
        ("A — B", "A - B"),
        ("   ", None),
        ("", None),
        (None, None),
    ],
)
def test_canonicalize(raw, expected):
    assert canonicalize(raw) == expected


def test_equals_loose():
    assert equals_loose("DJ  Name", "dj name")
    assert not equals_loose("DJ Name", "DJ Names")


def test_normalize_index_key():
    assert normalize_index_key("  The   Artist ") == "the artist"


def test_jaccard_and_levenshtein_empty_sides():
    assert jaccard([], ["a"]) == 0.0
    assert jaccard(["A", "b"], ["a", "B"]) == 1.0
    assert levenshtein_similarity("", "abc") == 0.0
    assert levenshtein_similarity("midnight", "midnite") == pytest.approx(0.625)


@pytest.mark.parametrize(
    "raw,expected",
    [
        ('["Alice", "Bob"]', ["Alice", "Bob"]),
        ('not json', []),
        ('{"a": 1}', []),
        (None, []),
        ('[]', []),
    ],
)
def test_parse_string_set(raw, expected):
    assert parse_string_set(raw) == expected


def test_dump_string_set():
    assert dump_string_set([]) is None
    assert dump_string_set(["Alice", "alice", "Bob"]) == '["Alice", "Bob"]'


def test_distinct_casefold_keeps_first_seen():
    assert distinct_casefold(["Clean", None, "clean", " Intro "]) == ["Clean", "Intro"]


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("8a", "8A"),
        ("12B - Energy 7", "12B"),
        ("Am", "Am"),
        ("  ", None),
        (None, None),
    ],
)
def test_normalize_camelot_key(raw, expected):
    assert normalize_camelot_key(raw) == expected


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("file://localhost/Users/dj/Music/My%20Song.mp3", "/Users/dj/Music/My Song.mp3"),
        ("file://localhost/C:/Music/Song.mp3", "C:/Music/Song.mp3"),
        ("c:\\Music\\\\Song.mp3", "C:/Music/Song.mp3"),
        ("/music/artist/", "/music/artist"),
        ("", None),
        (None, None),
    ],
)
def test_normalize_path(raw, expected):
    assert normalize_path(raw) == expected


def test_file_uri_to_path_keeps_network_host():
    assert file_uri_to_path("file://nas/share/Song.mp3") == "//nas/share/Song.mp3"


def test_path_segments_and_tail_key():
    assert path_segments("C:/Music/Artist/Album/Song.mp3") == ["Music", "Artist", "Album", "Song.mp3"]
    assert path_tail_key("/Music/Artist/Album/Song.mp3") == "artist/album/song.mp3"


def test_stable_path_id_ignores_case_and_separators():
    assert stable_path_id("C:\\Music\\Song.mp3") == stable_path_id("c:/music/song.mp3")
    assert len(stable_path_id("/music/song.mp3")) == 16


def test_iter_audio_files_sorted_and_filtered(tmp_path):
    (tmp_path / "b").mkdir()
    (tmp_path / "a").mkdir()
    (tmp_path / "b" / "two.flac").write_bytes(b"")
    (tmp_path / "a" / "one.MP3").write_bytes(b"")
    (tmp_path / "a" / "notes.txt").write_text("x")
    (tmp_path / "a" / ".hidden.mp3").write_bytes(b"")

    files = list(iter_audio_files(str(tmp_path)))
    assert [f.replace(str(tmp_path), "") for f in files] == ["/a/one.MP3", "/b/two.flac"]


def test_iter_audio_files_missing_folder(tmp_path):
    with pytest.raises(SourceImportError):
        list(iter_audio_files(str(tmp_path / "missing")))
