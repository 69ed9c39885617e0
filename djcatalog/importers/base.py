"""
Shared importer plumbing

Every importer parses its export into ``SourceRecord`` objects and hands
them to ``store_records``, which writes them through the single
upsert-by-natural-key operation of the catalog database in one transaction.
"""

from typing import Any, Iterable, Optional

from ..core.exceptions import ParseFailure
from ..core.models import ImportResult, SourceRecord
from ..storage.database import CatalogDatabase
from ..utils.logging_config import get_logger
from ..utils.text import canonicalize


logger = get_logger('importers')


def text_value(value: Any) -> Optional[str]:
    """Canonicalized text or None for missing/blank values"""
    if value is None:
        return None
    return canonicalize(str(value))


def int_value(value: Any) -> Optional[int]:
    """
    Integer from an export attribute; tolerates "3/12" track numbers

    Returns:
        The integer, or None when the value is missing or unreadable
    """
    if value is None or value == "":
        return None
    if isinstance(value, str):
        value = value.split('/')[0].strip()
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return None


def float_value(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if number > 0 else None


def store_records(db: CatalogDatabase, source: str, records: Iterable[SourceRecord],
                  result: Optional[ImportResult] = None) -> ImportResult:
    """
    Upsert parsed records into their source table

    Args:
        db: Catalog database
        source: Source tag the records belong to
        records: Parsed records
        result: Result to accumulate into (parse failures already counted)

    Returns:
        ImportResult with inserted/updated/unchanged counts
    """
    result = result or ImportResult(source=source)
    with db.transaction():
        for record in records:
            result.parsed += 1
            try:
                outcome = db.upsert_source_record(record)
            except ParseFailure as e:
                result.failed += 1
                result.errors.append(str(e))
                logger.warning(f"Skipping {record.key}: {e}")
                continue
            if outcome == 'inserted':
                result.inserted += 1
            elif outcome == 'updated':
                result.updated += 1
            else:
                result.unchanged += 1

    logger.info(
        f"Imported {result.parsed} {source} records: {result.inserted} new, "
        f"{result.updated} updated, {result.unchanged} unchanged, {result.failed} failed"
    )
    return result
