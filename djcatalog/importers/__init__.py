"""
Source importers

Turn library exports and folder scans into per-source catalog rows.
"""

import os
import xml.etree.ElementTree as ET

from ..core.exceptions import SourceImportError
from ..core.models import SOURCE_DJ, SOURCE_STREAMING, ImportResult
from ..storage.database import CatalogDatabase
from .apple_music import AppleMusicLibraryParser
from .file_scanner import FileScanner
from .rekordbox import RekordboxXMLParser, is_rekordbox_root


def detect_xml_source(xml_path: str) -> str:
    """
    Identify which source an XML export belongs to from its root element

    Returns:
        SOURCE_STREAMING for a ``plist`` library, SOURCE_DJ for a rekordbox
        ``DJ_PLAYLISTS`` document

    Raises:
        SourceImportError: If the file is missing, malformed or unrecognized
    """
    if not os.path.exists(xml_path):
        raise SourceImportError("XML file not found", filepath=xml_path)
    try:
        root = ET.parse(xml_path).getroot()
    except ET.ParseError as e:
        raise SourceImportError("Malformed XML export", details=str(e), filepath=xml_path)

    if root.tag == 'plist':
        return SOURCE_STREAMING
    if is_rekordbox_root(root):
        return SOURCE_DJ
    raise SourceImportError("Unrecognized XML export", details=f"root element <{root.tag}>", filepath=xml_path)


def import_xml(db: CatalogDatabase, xml_path: str) -> ImportResult:
    """Detect, parse and store a streaming or DJ-software XML export"""
    source = detect_xml_source(xml_path)
    if source == SOURCE_STREAMING:
        return AppleMusicLibraryParser().parse(xml_path).store(db)
    return RekordboxXMLParser().parse(xml_path).store(db)


def scan_folder(db: CatalogDatabase, folder: str, show_progress: bool = False) -> ImportResult:
    """Scan a music folder and store its files"""
    return FileScanner(show_progress=show_progress).scan(folder).store(db)


__all__ = [
    'AppleMusicLibraryParser',
    'FileScanner',
    'RekordboxXMLParser',
    'detect_xml_source',
    'import_xml',
    'scan_folder',
]
