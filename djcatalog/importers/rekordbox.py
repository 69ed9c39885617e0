"""
Parser for Rekordbox XML collection exports.

Reads the ``COLLECTION/TRACK`` nodes of a ``DJ_PLAYLISTS`` document into
DJ-software source records. Playlists are ignored; only the collection
feeds the catalog.
"""

import os
import xml.etree.ElementTree as ET
from typing import List, Optional

from ..core.exceptions import SourceImportError
from ..core.models import SOURCE_DJ, ImportResult, SourceRecord
from ..storage.database import CatalogDatabase
from ..utils.filesystem import normalize_path
from ..utils.logging_config import get_logger
from ..utils.text import canonicalize
from .base import float_value, int_value, store_records, text_value


def is_rekordbox_root(root: ET.Element) -> bool:
    """True for a ``DJ_PLAYLISTS`` document written by rekordbox"""
    if root.tag != 'DJ_PLAYLISTS':
        return False
    product = root.find('./PRODUCT')
    name = product.get('Name', '') if product is not None else ''
    return 'rekordbox' in name.lower()


class RekordboxXMLParser:
    """Parser for Rekordbox XML collection files"""

    def __init__(self):
        self.records: List[SourceRecord] = []
        self.failures: List[str] = []
        self.logger = get_logger('importers')

    def parse(self, xml_path: str, root: Optional[ET.Element] = None) -> 'RekordboxXMLParser':
        """
        Parse a Rekordbox XML file and collect its tracks

        Args:
            xml_path: Path of the export
            root: Already-parsed document root, if the caller has one

        Raises:
            SourceImportError: If the file is missing or not well-formed XML
        """
        if root is None:
            if not os.path.exists(xml_path):
                raise SourceImportError("XML file not found", filepath=xml_path)
            try:
                root = ET.parse(xml_path).getroot()
            except ET.ParseError as e:
                raise SourceImportError("Malformed XML export", details=str(e), filepath=xml_path)

        self._parse_tracks(root)
        self.logger.info(f"Parsed {len(self.records)} tracks from {xml_path}")
        return self

    def _parse_tracks(self, root: ET.Element):
        """Extract all track data from COLLECTION node"""
        collection = root.find('./COLLECTION')
        if collection is None:
            self.logger.warning("No COLLECTION node found in XML")
            return

        for track_node in collection.findall('./TRACK'):
            track_id = (track_node.get('TrackID') or '').strip()
            if not track_id:
                self.failures.append("TRACK without TrackID")
                self.logger.warning("Skipping TRACK without TrackID")
                continue
            self.records.append(self.record_from_node(track_node))

    @staticmethod
    def record_from_node(node: ET.Element) -> SourceRecord:
        """Map TRACK attributes onto a DJ-software source record"""
        total_time = int_value(node.get('TotalTime'))
        location = node.get('Location')
        title = text_value(node.get('Name'))
        artist = text_value(node.get('Artist'))
        tonality = canonicalize(node.get('Tonality'))

        return SourceRecord(
            source=SOURCE_DJ,
            natural_id=node.get('TrackID').strip(),
            title=title,
            artist=artist,
            title_raw=title,
            artist_raw=artist,
            album=text_value(node.get('Album')),
            album_artist=text_value(node.get('AlbumArtist')),
            genre=text_value(node.get('Genre')),
            duration_ms=total_time * 1000 if total_time else None,
            play_count=int_value(node.get('PlayCount')),
            track_number=int_value(node.get('TrackNumber')),
            bpm=float_value(node.get('AverageBpm')),
            musical_key=tonality,
            file_path=normalize_path(location) if location else None,
        )

    def store(self, db: CatalogDatabase) -> ImportResult:
        result = ImportResult(source=SOURCE_DJ, failed=len(self.failures), errors=list(self.failures))
        return store_records(db, SOURCE_DJ, self.records, result)
