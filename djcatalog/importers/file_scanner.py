"""
Filesystem scanner

Walks a music folder and reads each audio file's tags with mutagen into
filesystem source records. A file's natural id is a stable hash of its
normalized absolute path, so rescans update rows in place.
"""

import os
from typing import Any, List, Optional

from mutagen import File as MutagenFile
from mutagen import MutagenError
from tqdm import tqdm

from ..core.exceptions import ParseFailure
from ..core.models import SOURCE_FILESYSTEM, ImportResult, SourceRecord
from ..storage.database import CatalogDatabase
from ..utils.filesystem import iter_audio_files, normalize_path, stable_path_id
from ..utils.logging_config import get_logger
from .base import float_value, int_value, store_records, text_value


class FileScanner:
    """
    Reads tags from every audio file below a folder

    Unreadable files are logged and counted as failures; they never abort
    the scan.
    """

    def __init__(self, show_progress: bool = False):
        self.records: List[SourceRecord] = []
        self.failures: List[str] = []
        self.show_progress = show_progress
        self.logger = get_logger('importers')

    def scan(self, folder: str) -> 'FileScanner':
        """
        Raises:
            SourceImportError: If the folder does not exist
        """
        files = list(iter_audio_files(folder))
        for filepath in tqdm(files, desc="Scanning", unit="file", disable=not self.show_progress):
            try:
                self.records.append(self.read_file(filepath))
            except ParseFailure as e:
                self.failures.append(str(e))
                self.logger.warning(f"Skipping unreadable file: {e}")

        self.logger.info(f"Scanned {len(files)} files in {folder}, {len(self.failures)} unreadable")
        return self

    @staticmethod
    def _get_tag_value(tags, tag_names: List[str]) -> Optional[str]:
        """First non-empty value among ``tag_names`` in an easy-tags mapping"""
        if tags is None:
            return None
        for tag_name in tag_names:
            value: Any = tags.get(tag_name)
            if isinstance(value, list):
                value = value[0] if value else None
            if value is not None and str(value).strip():
                return str(value)
        return None

    def read_file(self, filepath: str) -> SourceRecord:
        """
        Read one audio file's tags and stream info

        Raises:
            ParseFailure: If mutagen cannot open or identify the file
        """
        absolute = os.path.abspath(filepath)
        try:
            audio = MutagenFile(absolute, easy=True)
        except (MutagenError, OSError) as e:
            raise ParseFailure("Cannot read audio file", details=str(e), filepath=absolute)
        if audio is None:
            raise ParseFailure("Unsupported audio format", filepath=absolute)

        tags = audio.tags
        info = getattr(audio, 'info', None)
        length = getattr(info, 'length', None)
        bitrate = getattr(info, 'bitrate', None)
        sample_rate = getattr(info, 'sample_rate', None)

        title = text_value(self._get_tag_value(tags, ['title']))
        artist = text_value(self._get_tag_value(tags, ['artist']))
        path = normalize_path(absolute)

        return SourceRecord(
            source=SOURCE_FILESYSTEM,
            natural_id=stable_path_id(path),
            title=title,
            artist=artist,
            title_raw=title,
            artist_raw=artist,
            album=text_value(self._get_tag_value(tags, ['album'])),
            album_artist=text_value(self._get_tag_value(tags, ['albumartist'])),
            genre=text_value(self._get_tag_value(tags, ['genre'])),
            duration_ms=int(round(length * 1000)) if length else None,
            track_number=int_value(self._get_tag_value(tags, ['tracknumber'])),
            bpm=float_value(self._get_tag_value(tags, ['bpm'])),
            musical_key=text_value(self._get_tag_value(tags, ['initialkey', 'key'])),
            file_path=path,
            bitrate=int(bitrate) if bitrate else None,
            sample_rate=int(sample_rate) if sample_rate else None,
            file_type=os.path.splitext(absolute)[1].lstrip('.').lower() or None,
        )

    def store(self, db: CatalogDatabase) -> ImportResult:
        result = ImportResult(source=SOURCE_FILESYSTEM, failed=len(self.failures), errors=list(self.failures))
        return store_records(db, SOURCE_FILESYSTEM, self.records, result)
