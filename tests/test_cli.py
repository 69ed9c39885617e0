import pytest

from djcatalog.cli.unified_cli import create_parser, main, threshold


@pytest.fixture
def cli_args(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    return [
        '--db', str(tmp_path / "catalog.db"),
        '--config', str(tmp_path / "config.json"),
        '--log-dir', str(tmp_path / "logs"),
        '--no-console-log',
        '--no-progress',
    ]


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("0.8", 0.8),
        ("80", 0.8),
        ("1", 1.0),
    ],
)
def test_threshold_accepts_fractions_and_percentages(raw, expected):
    assert threshold(raw) == pytest.approx(expected)


def test_parser_rejects_out_of_range_threshold():
    with pytest.raises(SystemExit):
        create_parser().parse_args(['clean', '--confidence', '250'])


def test_parser_requires_command():
    with pytest.raises(SystemExit):
        create_parser().parse_args([])


def test_status_command(cli_args, tmp_path, capsys):
    main(cli_args + ['status'])

    out = capsys.readouterr().out
    assert "Canonical tracks: 0" in out
    assert (tmp_path / "catalog.db").exists()
    assert (tmp_path / "logs" / "djcatalog.log").exists()


def test_import_missing_export_exits_with_error(cli_args, tmp_path, capsys):
    with pytest.raises(SystemExit) as excinfo:
        main(cli_args + ['import-xml', str(tmp_path / "missing.xml")])

    assert excinfo.value.code == 1
    assert "Application Error" in capsys.readouterr().out


def test_sync_command_on_imported_library(cli_args, tmp_path, capsys, library_export):
    library = library_export(tmp_path / "Library.xml", {
        "1": {"Track ID": 1, "Name": "Song.mp3", "Artist": "Artist", "Total Time": 180000},
    })

    main(cli_args + ['import-xml', library])
    main(cli_args + ['sync'])

    out = capsys.readouterr().out
    assert "Imported 1 streaming records" in out
    assert "Index: 1 artists, 1 albums, 1 tracks" in out
