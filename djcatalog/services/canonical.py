"""
Canonical Merge and Identity Index

Turns accepted match pairs into canonical catalog rows. The identity index,
rebuilt from persisted link rows at the start of every run, decides whether
a source record already belongs to a canonical track; new tracks are merged
field by field with source precedence, existing ones only have their empty
fields filled.
"""

from typing import Dict, Iterable, List, Optional, Sequence

import numpy as np

from ..core.models import (
    ALL_SOURCES, SOURCE_DJ, SOURCE_FILESYSTEM, SOURCE_STREAMING,
    CanonicalTrack, MatchCandidate, SourceRecord,
)
from ..storage.database import CatalogDatabase
from ..utils.filesystem import path_identity
from ..utils.logging_config import get_logger
from ..utils.text import distinct_casefold


# Source precedence per merged field
DESCRIPTIVE_PRECEDENCE = (SOURCE_STREAMING, SOURCE_DJ, SOURCE_FILESYSTEM)
DJ_DATA_PRECEDENCE = (SOURCE_DJ, SOURCE_FILESYSTEM, SOURCE_STREAMING)
PATH_PRECEDENCE = (SOURCE_FILESYSTEM, SOURCE_DJ)
PLAY_COUNT_PRECEDENCE = (SOURCE_STREAMING, SOURCE_DJ)


class IdentityIndex:
    """
    Lookup from each source's natural id (and a file's normalized path) to
    its canonical track id
    """

    def __init__(self, next_track_id: int = 1):
        self.by_source: Dict[str, Dict[str, int]] = {source: {} for source in ALL_SOURCES}
        self.by_path: Dict[str, int] = {}
        self.next_track_id = next_track_id

    @classmethod
    def load(cls, db: CatalogDatabase) -> 'IdentityIndex':
        """Build the index from the link tables and canonical file paths"""
        index = cls(next_track_id=db.max_canonical_id() + 1)
        for source in ALL_SOURCES:
            for track_id, natural_id in db.load_links(source):
                index.by_source[source][natural_id] = track_id
        for track_id, file_path in db.canonical_file_paths():
            path_id = path_identity(file_path)
            if path_id:
                index.by_path.setdefault(path_id, track_id)
        return index

    def is_linked(self, record: SourceRecord) -> bool:
        return record.natural_id in self.by_source[record.source]

    def resolve(self, record: SourceRecord) -> Optional[int]:
        """Canonical id a record already belongs to, if any"""
        track_id = self.by_source[record.source].get(record.natural_id)
        if track_id is None and record.source == SOURCE_FILESYSTEM:
            path_id = path_identity(record.file_path)
            if path_id:
                track_id = self.by_path.get(path_id)
        return track_id

    def allocate(self) -> int:
        track_id = self.next_track_id
        self.next_track_id += 1
        return track_id

    def register(self, record: SourceRecord, track_id: int):
        self.by_source[record.source][record.natural_id] = track_id
        if record.source == SOURCE_FILESYSTEM:
            path_id = path_identity(record.file_path)
            if path_id:
                self.by_path.setdefault(path_id, track_id)


def _first(records: Dict[str, SourceRecord], precedence: Sequence[str], attribute: str):
    for source in precedence:
        record = records.get(source)
        if record is not None:
            value = getattr(record, attribute)
            if value is not None and value != "":
                return value
    return None


def median_duration_seconds(records: Iterable[SourceRecord]) -> Optional[int]:
    """Median of the contributing non-null durations, in whole seconds"""
    seconds = [record.duration_ms // 1000 for record in records if record.duration_ms is not None]
    if not seconds:
        return None
    return int(round(float(np.median(seconds))))


def build_canonical(track_id: int, records: Sequence[SourceRecord]) -> CanonicalTrack:
    """
    Merge source records into one canonical track using source precedence

    - title/artist/album/album artist: streaming, then DJ software, then filesystem
    - genre: streaming only
    - key/BPM: DJ software, then filesystem, then streaming
    - duration: median of non-null durations
    - features and DJ tags: union
    """
    by_source: Dict[str, SourceRecord] = {}
    for record in records:
        by_source.setdefault(record.source, record)

    title = _first(by_source, DESCRIPTIVE_PRECEDENCE, 'title') or _first(by_source, DESCRIPTIVE_PRECEDENCE, 'title_raw')
    artist = _first(by_source, DESCRIPTIVE_PRECEDENCE, 'artist') or _first(by_source, DESCRIPTIVE_PRECEDENCE, 'artist_raw')
    streaming = by_source.get(SOURCE_STREAMING)
    dj = by_source.get(SOURCE_DJ)

    features: List[str] = []
    dj_tags: List[str] = []
    for record in records:
        features.extend(record.features)
        dj_tags.extend(record.dj_tags)

    return CanonicalTrack(
        track_id=track_id,
        title=title,
        artist=artist,
        title_raw=_first(by_source, DESCRIPTIVE_PRECEDENCE, 'title_raw') or title,
        artist_raw=_first(by_source, DESCRIPTIVE_PRECEDENCE, 'artist_raw') or artist,
        album=_first(by_source, DESCRIPTIVE_PRECEDENCE, 'album'),
        album_artist=_first(by_source, DESCRIPTIVE_PRECEDENCE, 'album_artist') or artist,
        genre=streaming.genre if streaming else None,
        duration=median_duration_seconds(records),
        play_count=_first(by_source, PLAY_COUNT_PRECEDENCE, 'play_count'),
        track_number=_first(by_source, DESCRIPTIVE_PRECEDENCE, 'track_number'),
        streaming_id=streaming.natural_id if streaming else None,
        dj_id=dj.natural_id if dj else None,
        file_path=_first(by_source, PATH_PRECEDENCE, 'file_path'),
        musical_key=_first(by_source, DJ_DATA_PRECEDENCE, 'musical_key'),
        bpm=_first(by_source, DJ_DATA_PRECEDENCE, 'bpm'),
        features=distinct_casefold(features),
        dj_tags=distinct_casefold(dj_tags),
    )


class CanonicalMerger:
    """
    Applies accepted matches and the unmatched sweep to the canonical table

    Must be used inside a database transaction; counters accumulate across
    calls.
    """

    def __init__(self, db: CatalogDatabase, identity: IdentityIndex):
        self.db = db
        self.identity = identity
        self.logger = get_logger('canonical')
        self.new_tracks = 0
        self.new_links = 0
        self.conflicts = 0

    def _link(self, record: SourceRecord, track_id: int):
        if self.db.insert_link(record.source, track_id, record.natural_id):
            self.new_links += 1
        self.identity.register(record, track_id)

    def _upsert(self, track_id: Optional[int], records: Sequence[SourceRecord]) -> int:
        if track_id is None:
            track_id = self.identity.allocate()
            self.db.insert_canonical(build_canonical(track_id, records))
            self.new_tracks += 1
        else:
            self.db.fill_canonical_nulls(build_canonical(track_id, records))
        for record in records:
            self._link(record, track_id)
        return track_id

    def apply_pair(self, candidate: MatchCandidate) -> Optional[int]:
        """
        Merge one accepted pair

        Returns:
            The canonical track id, or None when both sides already belong to
            different canonical tracks
        """
        left_id = self.identity.resolve(candidate.left)
        right_id = self.identity.resolve(candidate.right)
        if left_id is not None and right_id is not None and left_id != right_id:
            self.conflicts += 1
            self.logger.debug(
                f"Skipping {candidate.left.key} <-> {candidate.right.key}: "
                f"already linked to tracks {left_id} and {right_id}"
            )
            return None

        track_id = left_id if left_id is not None else right_id
        return self._upsert(track_id, [candidate.left, candidate.right])

    def sweep(self, records: Iterable[SourceRecord]):
        """Give every still-unlinked record its own canonical identity"""
        for record in records:
            if self.identity.is_linked(record):
                continue
            self._upsert(self.identity.resolve(record), [record])
