"""
Data models for DJ Catalog

This module defines the records flowing through the reconciliation
pipeline: per-source library rows, merged canonical tracks, normalizer
output and the result summaries returned by each batch stage.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Any


# Source tags
SOURCE_STREAMING = "streaming"
SOURCE_DJ = "dj_software"
SOURCE_FILESYSTEM = "filesystem"

ALL_SOURCES = (SOURCE_STREAMING, SOURCE_DJ, SOURCE_FILESYSTEM)


@dataclass
class SourceRecord:
    """One row of a per-source library table"""

    source: str = ""
    natural_id: str = ""

    # Cleaned values (replaced in place by the cleaner)
    title: Optional[str] = None
    artist: Optional[str] = None

    # Values as imported
    title_raw: Optional[str] = None
    artist_raw: Optional[str] = None

    album: Optional[str] = None
    album_artist: Optional[str] = None
    genre: Optional[str] = None
    duration_ms: Optional[int] = None
    play_count: Optional[int] = None
    track_number: Optional[int] = None

    # DJ metadata
    bpm: Optional[float] = None
    musical_key: Optional[str] = None
    features: List[str] = field(default_factory=list)
    dj_tags: List[str] = field(default_factory=list)

    # File information
    file_path: Optional[str] = None
    bitrate: Optional[int] = None
    sample_rate: Optional[int] = None
    file_type: Optional[str] = None

    # Cleaner bookkeeping
    clean_confidence: Optional[float] = None
    clean_log: Optional[str] = None

    @property
    def key(self) -> str:
        """Identity of the row across sources, e.g. ``streaming:1234``"""
        return f"{self.source}:{self.natural_id}"

    @property
    def display_title(self) -> Optional[str]:
        return self.title or self.title_raw

    @property
    def display_artist(self) -> Optional[str]:
        return self.artist or self.artist_raw

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization"""
        return {
            field.name: getattr(self, field.name)
            for field in self.__dataclass_fields__.values()
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SourceRecord':
        """Create from dictionary"""
        valid_fields = {field.name for field in cls.__dataclass_fields__.values()}
        filtered_data = {k: v for k, v in data.items() if k in valid_fields}
        return cls(**filtered_data)


@dataclass
class CanonicalTrack:
    """Merged track identity reconciled across all sources"""

    track_id: int = 0
    title: Optional[str] = None
    artist: Optional[str] = None
    title_raw: Optional[str] = None
    artist_raw: Optional[str] = None
    album: Optional[str] = None
    album_artist: Optional[str] = None
    genre: Optional[str] = None
    duration: Optional[int] = None  # seconds
    play_count: Optional[int] = None
    track_number: Optional[int] = None
    streaming_id: Optional[str] = None
    dj_id: Optional[str] = None
    file_path: Optional[str] = None
    musical_key: Optional[str] = None
    bpm: Optional[float] = None
    features: List[str] = field(default_factory=list)
    dj_tags: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization"""
        return {
            field.name: getattr(self, field.name)
            for field in self.__dataclass_fields__.values()
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CanonicalTrack':
        """Create from dictionary"""
        valid_fields = {field.name for field in cls.__dataclass_fields__.values()}
        filtered_data = {k: v for k, v in data.items() if k in valid_fields}
        return cls(**filtered_data)


@dataclass
class CleanResult:
    """Output of the text normalizer for one (title, artist) pair"""

    title: Optional[str] = None
    artist: Optional[str] = None
    musical_key: Optional[str] = None
    bpm: Optional[float] = None
    features: List[str] = field(default_factory=list)
    dj_tags: List[str] = field(default_factory=list)
    log: List[str] = field(default_factory=list)
    confidence: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            field.name: getattr(self, field.name)
            for field in self.__dataclass_fields__.values()
        }


@dataclass
class MatchCandidate:
    """A scored pairing of two source records"""

    left: SourceRecord
    right: SourceRecord
    score: float = 0.0

    # Component scores
    title_score: float = 0.0
    artist_score: float = 0.0
    duration_score: float = 0.0
    album_score: float = 0.0
    bpm_score: float = 0.0
    key_score: float = 0.0
    feature_score: float = 0.0
    dj_tag_score: float = 0.0
    path_tail_score: float = 0.0

    path_exact: bool = False
    duration_missing: bool = False
    duration_delta: Optional[int] = None  # whole seconds
    reasons: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Summary suitable for review listings"""
        return {
            'left': self.left.key,
            'right': self.right.key,
            'left_title': self.left.display_title,
            'right_title': self.right.display_title,
            'score': round(self.score, 4),
            'title': round(self.title_score, 4),
            'artist': round(self.artist_score, 4),
            'duration': round(self.duration_score, 4),
            'path_exact': self.path_exact,
            'reasons': list(self.reasons),
        }


@dataclass
class CleanupResult:
    """Summary of a metadata cleanup run"""

    updated: int = 0
    unchanged: int = 0
    skipped: int = 0
    failed: int = 0
    tag_histogram: Dict[str, int] = field(default_factory=dict)
    dry_run: bool = False

    def top_tags(self, limit: int = 20) -> List[tuple]:
        """Most frequent normalization tags, highest first"""
        return sorted(self.tag_histogram.items(), key=lambda kv: (-kv[1], kv[0]))[:limit]

    def to_dict(self) -> Dict[str, Any]:
        return {
            field.name: getattr(self, field.name)
            for field in self.__dataclass_fields__.values()
        }


@dataclass
class MatchResult:
    """Summary of a cross-source matching run"""

    auto_linked: int = 0
    review: int = 0
    new_tracks: int = 0
    new_links: int = 0
    conflicts: int = 0
    review_candidates: List[MatchCandidate] = field(default_factory=list)
    dry_run: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            'auto_linked': self.auto_linked,
            'review': self.review,
            'new_tracks': self.new_tracks,
            'new_links': self.new_links,
            'conflicts': self.conflicts,
            'review_candidates': [c.to_dict() for c in self.review_candidates],
            'dry_run': self.dry_run,
        }


@dataclass
class IndexResult:
    """Summary of a derived artist/album index rebuild"""

    artists: int = 0
    albums: int = 0
    tracks: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            field.name: getattr(self, field.name)
            for field in self.__dataclass_fields__.values()
        }


@dataclass
class ImportResult:
    """Summary of a source import"""

    source: str = ""
    parsed: int = 0
    inserted: int = 0
    updated: int = 0
    unchanged: int = 0
    failed: int = 0
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            field.name: getattr(self, field.name)
            for field in self.__dataclass_fields__.values()
        }
