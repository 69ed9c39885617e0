import plistlib
import xml.etree.ElementTree as ET
from types import SimpleNamespace

import pytest

from djcatalog.core.models import SourceRecord
from djcatalog.storage.database import CatalogDatabase


@pytest.fixture
def db():
    database = CatalogDatabase()
    yield database
    database.close()


@pytest.fixture
def make_record():
    def factory(source, natural_id, title=None, artist=None, **kwargs):
        kwargs.setdefault('title_raw', title)
        kwargs.setdefault('artist_raw', artist)
        return SourceRecord(source=source, natural_id=natural_id, title=title, artist=artist, **kwargs)

    return factory


@pytest.fixture
def store(db):
    def insert(*records):
        with db.transaction():
            for record in records:
                db.upsert_source_record(record)

    return insert


class FakeAudio:
    """Stand-in for a mutagen easy-tags file object"""

    def __init__(self, tags, length=180.5, bitrate=320000, sample_rate=44100):
        self.tags = tags
        self.info = SimpleNamespace(length=length, bitrate=bitrate, sample_rate=sample_rate)


@pytest.fixture
def fake_audio():
    return FakeAudio


@pytest.fixture
def rekordbox_export():
    def write(path, tracks):
        root = ET.Element('DJ_PLAYLISTS', Version="1.0.0")
        ET.SubElement(root, 'PRODUCT', Name="rekordbox", Version="6.8.5", Company="AlphaTheta")
        collection = ET.SubElement(root, 'COLLECTION', Entries=str(len(tracks)))
        for attributes in tracks:
            ET.SubElement(collection, 'TRACK', **attributes)
        ET.ElementTree(root).write(str(path), encoding='utf-8', xml_declaration=True)
        return str(path)

    return write


@pytest.fixture
def library_export():
    def write(path, tracks):
        with open(path, 'wb') as fh:
            plistlib.dump({'Major Version': 1, 'Tracks': tracks}, fh)
        return str(path)

    return write
