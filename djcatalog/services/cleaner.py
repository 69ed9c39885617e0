"""
Metadata Cleaner

Batch driver applying the text normalizer to every row of the canonical
table and the three source tables. Rows are only rewritten when the
normalizer is confident enough and something actually changed; key, BPM,
feature and DJ-tag values already present are never overwritten.
"""

import json
import threading
from collections import Counter
from typing import Any, Dict, Optional

from tqdm import tqdm

from ..core.exceptions import OperationCancelled, ParseFailure
from ..core.models import CleanupResult
from ..storage.database import CatalogDatabase
from ..storage.schema import CLEANABLE_TABLES, TableSchema
from ..utils.logging_config import get_logger
from ..utils.text import dump_string_set, parse_string_set
from .normalizer import clean


def _text(row, column: str) -> Optional[str]:
    value = row[column]
    if value is None:
        return None
    if isinstance(value, bytes):
        raise ParseFailure(f"Binary value in {column}", row_key=str(row[0]))
    return str(value)


def _number(row, column: str) -> Optional[float]:
    value = row[column]
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ParseFailure(f"Invalid number in {column}", details=repr(value), row_key=str(row[0]))


class MetadataCleaner:
    """
    Normalizes titles and artists in place across all cleanable tables

    Each table is processed in its own transaction. Cleaning always starts
    from the imported raw title/artist when present, so repeated runs over
    unchanged data produce no further writes.
    """

    def __init__(self, db: CatalogDatabase, cancel_event: Optional[threading.Event] = None,
                 show_progress: bool = False):
        self.db = db
        self.cancel_event = cancel_event
        self.show_progress = show_progress
        self.logger = get_logger('cleaner')

    def _check_cancelled(self, table: TableSchema):
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise OperationCancelled(f"Cleanup of {table.name}")

    def plan_row(self, row, min_confidence: float, histogram: Counter) -> Optional[Dict[str, Any]]:
        """
        Work out the new column values for one row

        Returns:
            Column values to write, {} when the row is unchanged, or None when
            the normalizer's confidence is below ``min_confidence``

        Raises:
            ParseFailure: If the stored row cannot be read
        """
        title = _text(row, 'title_raw') or _text(row, 'title')
        artist = _text(row, 'artist_raw') or _text(row, 'artist')
        existing_key = _text(row, 'musical_key')
        existing_bpm = _number(row, 'bpm')
        existing_features = parse_string_set(row['features'])
        existing_tags = parse_string_set(row['dj_tags'])

        result = clean(title, artist)
        histogram.update(result.log)
        if result.confidence < min_confidence:
            return None

        current_title = _text(row, 'title')
        current_artist = _text(row, 'artist')
        values = {
            'title': result.title or current_title,
            'artist': result.artist or current_artist,
            'musical_key': existing_key or result.musical_key,
            'bpm': existing_bpm if existing_bpm is not None else result.bpm,
            'features': dump_string_set(existing_features or result.features),
            'dj_tags': dump_string_set(existing_tags or result.dj_tags),
            'clean_confidence': result.confidence,
            'clean_log': json.dumps(result.log, ensure_ascii=False),
        }

        current = {
            'title': current_title,
            'artist': current_artist,
            'musical_key': existing_key,
            'bpm': existing_bpm,
            'features': dump_string_set(existing_features),
            'dj_tags': dump_string_set(existing_tags),
            'clean_confidence': _number(row, 'clean_confidence'),
            'clean_log': _text(row, 'clean_log'),
        }
        return {column: value for column, value in values.items() if current[column] != value}

    def clean_table(self, table: TableSchema, min_confidence: float, result: CleanupResult,
                    histogram: Counter, dry_run: bool = False):
        rows = self.db.fetch_cleanable_rows(table)
        progress = tqdm(rows, desc=f"Cleaning {table.name}", unit="row",
                        disable=not self.show_progress, leave=False)

        with self.db.transaction():
            for row in progress:
                self._check_cancelled(table)
                try:
                    changes = self.plan_row(row, min_confidence, histogram)
                except ParseFailure as e:
                    result.failed += 1
                    self.logger.warning(f"Skipping unreadable row in {table.name}: {e}")
                    continue

                if changes is None:
                    result.skipped += 1
                elif not changes:
                    result.unchanged += 1
                else:
                    result.updated += 1
                    if not dry_run:
                        self.db.update_cleaned_row(table, row[table.key_column], changes)

    def run(self, min_confidence: float, dry_run: bool = False) -> CleanupResult:
        """
        Clean every cleanable table

        Args:
            min_confidence: Minimum normalizer confidence, clamped to [0, 1]
            dry_run: Count what would change without writing

        Returns:
            CleanupResult with updated/unchanged/skipped counts and the tag histogram
        """
        min_confidence = max(0.0, min(1.0, min_confidence))
        result = CleanupResult(dry_run=dry_run)
        histogram: Counter = Counter()

        for table in CLEANABLE_TABLES:
            self._check_cancelled(table)
            before = (result.updated, result.unchanged, result.skipped)
            self.clean_table(table, min_confidence, result, histogram, dry_run)
            self.logger.debug(
                f"{table.name}: updated={result.updated - before[0]} "
                f"unchanged={result.unchanged - before[1]} skipped={result.skipped - before[2]}"
            )

        result.tag_histogram = dict(histogram)
        return result
