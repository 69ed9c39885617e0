"""
DJ Catalog - Core Engine

Orchestrates the batch stages over one catalog database: importing source
exports, metadata cleanup, cross-source matching with canonical merge, and
the derived artist/album index rebuild. Stages run sequentially and share an
optional cancellation token.
"""

import threading
from typing import Any, Dict, Optional

from ..importers import import_xml, scan_folder
from ..services.cleaner import MetadataCleaner
from ..services.index_builder import IndexBuilder
from ..services.matcher import DEFAULT_MIN_AUTO_SCORE, MatchEngine
from ..services.normalizer import clean
from ..storage.database import CatalogDatabase
from ..storage.schema import (
    ALBUMS, ARTISTS, CANONICAL_TRACKS, SOURCE_TABLES,
)
from ..utils.logging_config import get_app_logger, get_logger
from .exceptions import DJCatalogError
from .models import CleanResult, CleanupResult, ImportResult, IndexResult, MatchResult


DEFAULT_MIN_CONFIDENCE = 0.7
SYNC_MIN_CONFIDENCE = 0.45


def clamp_unit(value: float) -> float:
    """Clamp a confidence or score threshold to [0, 1]"""
    return max(0.0, min(1.0, float(value)))


class CatalogEngine:
    """
    Entry point for every catalog operation

    Features:
    - XML export import (streaming plist, rekordbox collection)
    - Filesystem scan
    - Metadata cleanup with confidence threshold and dry run
    - Cross-source matching and canonical merge
    - Artist/album index rebuild
    - Combined sync stage and status summary
    """

    def __init__(self, db_path: Optional[str] = None, cancel_event: Optional[threading.Event] = None,
                 show_progress: bool = False):
        """
        Initialize the engine

        Args:
            db_path: SQLite catalog path; None keeps the catalog in memory
            cancel_event: Cancellation token checked by every stage
            show_progress: Show tqdm progress bars during batch stages
        """
        self.db = CatalogDatabase(db_path)
        self.cancel_event = cancel_event or threading.Event()
        self.show_progress = show_progress
        self.logger = get_logger('engine')
        self.logger.debug(f"Catalog engine initialized on {self.db.db_path}")

    def __enter__(self) -> 'CatalogEngine':
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def close(self):
        self.db.close()

    def cancel(self):
        """Request cancellation of the running stage"""
        self.cancel_event.set()

    # ------------------------------------------------------------------

    def _stage(self, name: str, options: Dict[str, Any], func):
        app_logger = get_app_logger()
        if app_logger:
            app_logger.log_stage_start(name, options)
        try:
            result = func()
        except DJCatalogError as e:
            if app_logger:
                app_logger.log_error('engine', e, {'stage': name, **options})
            raise
        if app_logger:
            app_logger.log_stage_complete(name, result.to_dict())
        return result

    @staticmethod
    def clean(title: Optional[str], artist: Optional[str]) -> CleanResult:
        """Normalize one title/artist pair without touching the database"""
        return clean(title, artist)

    def import_xml(self, path: str) -> ImportResult:
        """Import a streaming (plist) or DJ-software (rekordbox) XML export"""
        return self._stage('import', {'path': path}, lambda: import_xml(self.db, path))

    def scan(self, folder: str) -> ImportResult:
        """Scan a music folder into the filesystem source table"""
        return self._stage(
            'scan', {'folder': folder},
            lambda: scan_folder(self.db, folder, show_progress=self.show_progress),
        )

    def run_cleanup(self, min_confidence: float = DEFAULT_MIN_CONFIDENCE,
                    dry_run: bool = False) -> CleanupResult:
        min_confidence = clamp_unit(min_confidence)
        cleaner = MetadataCleaner(self.db, self.cancel_event, self.show_progress)
        return self._stage(
            'cleanup', {'min_confidence': min_confidence, 'dry_run': dry_run},
            lambda: cleaner.run(min_confidence, dry_run=dry_run),
        )

    def run_match(self, min_auto_score: float = DEFAULT_MIN_AUTO_SCORE,
                  dry_run: bool = False) -> MatchResult:
        min_auto_score = clamp_unit(min_auto_score)
        matcher = MatchEngine(self.db, self.cancel_event, self.show_progress)
        return self._stage(
            'match', {'min_auto_score': min_auto_score, 'dry_run': dry_run},
            lambda: matcher.run(min_auto_score, dry_run=dry_run),
        )

    def rebuild_index(self) -> IndexResult:
        builder = IndexBuilder(self.db, self.cancel_event)
        return self._stage('index rebuild', {}, builder.rebuild)

    def sync(self, min_confidence: float = SYNC_MIN_CONFIDENCE,
             min_auto_score: float = DEFAULT_MIN_AUTO_SCORE) -> Dict[str, Any]:
        """
        Cleanup, then match, then rebuild the index

        Returns:
            Dictionary with the 'cleanup', 'match' and 'index' results
        """
        cleanup = self.run_cleanup(min_confidence)
        match = self.run_match(min_auto_score)
        index = self.rebuild_index()
        return {'cleanup': cleanup, 'match': match, 'index': index}

    def status(self) -> Dict[str, Any]:
        """Row counts for source tables, canonical tracks, links and the index"""
        sources = {}
        for source, tables in SOURCE_TABLES.items():
            rows = self.db.count(tables.table)
            links = self.db.count(tables.link_table)
            sources[source] = {'rows': rows, 'linked': links, 'unlinked': rows - links}

        return {
            'database': self.db.db_path,
            'schema_version': self.db.schema_version(),
            'sources': sources,
            'canonical_tracks': self.db.count(CANONICAL_TRACKS),
            'artists': self.db.count(ARTISTS),
            'albums': self.db.count(ALBUMS),
        }
