"""
Apple Music / iTunes library importer

Reads the ``Tracks`` dictionary of a library ``plist`` export into
streaming source records.
"""

import plistlib
from typing import Any, Dict, List

from ..core.exceptions import SourceImportError
from ..core.models import SOURCE_STREAMING, ImportResult, SourceRecord
from ..storage.database import CatalogDatabase
from ..utils.logging_config import get_logger
from .base import float_value, int_value, store_records, text_value


class AppleMusicLibraryParser:
    """Parser for Apple-Music-style plist library exports"""

    def __init__(self):
        self.records: List[SourceRecord] = []
        self.failures: List[str] = []
        self.logger = get_logger('importers')

    def parse(self, plist_path: str) -> 'AppleMusicLibraryParser':
        """
        Raises:
            SourceImportError: If the file cannot be read as a plist
        """
        try:
            with open(plist_path, 'rb') as fh:
                library = plistlib.load(fh)
        except FileNotFoundError:
            raise SourceImportError("Library export not found", filepath=plist_path)
        except (plistlib.InvalidFileException, ValueError) as e:
            raise SourceImportError("Malformed plist export", details=str(e), filepath=plist_path)

        tracks = library.get('Tracks') if isinstance(library, dict) else None
        if not isinstance(tracks, dict):
            self.logger.warning(f"No Tracks dictionary in {plist_path}")
            return self

        for key, entry in tracks.items():
            if not isinstance(entry, dict):
                self.failures.append(f"Track {key}: not a dictionary")
                continue
            natural_id = self._natural_id(key, entry)
            if not natural_id:
                self.failures.append(f"Track {key}: no identifier")
                continue
            self.records.append(self.record_from_entry(natural_id, entry))

        self.logger.info(f"Parsed {len(self.records)} tracks from {plist_path}")
        return self

    @staticmethod
    def _natural_id(key: str, entry: Dict[str, Any]) -> str:
        persistent_id = entry.get('Persistent ID')
        if persistent_id:
            return str(persistent_id).strip()
        track_id = entry.get('Track ID', key)
        return str(track_id).strip() if track_id is not None else ''

    @staticmethod
    def record_from_entry(natural_id: str, entry: Dict[str, Any]) -> SourceRecord:
        title = text_value(entry.get('Name'))
        artist = text_value(entry.get('Artist'))
        return SourceRecord(
            source=SOURCE_STREAMING,
            natural_id=natural_id,
            title=title,
            artist=artist,
            title_raw=title,
            artist_raw=artist,
            album=text_value(entry.get('Album')),
            album_artist=text_value(entry.get('Album Artist')),
            genre=text_value(entry.get('Genre')),
            duration_ms=int_value(entry.get('Total Time')),
            play_count=int_value(entry.get('Play Count')),
            track_number=int_value(entry.get('Track Number')),
            bpm=float_value(entry.get('BPM')),
        )

    def store(self, db: CatalogDatabase) -> ImportResult:
        result = ImportResult(source=SOURCE_STREAMING, failed=len(self.failures), errors=list(self.failures))
        return store_records(db, SOURCE_STREAMING, self.records, result)
