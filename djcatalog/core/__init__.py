"""
DJ Catalog Core Package

This package contains the data models and exceptions shared by every
catalog stage. The engine lives in ``core.engine``.
"""

from .models import SourceRecord, CanonicalTrack, CleanResult, MatchCandidate
from .exceptions import DJCatalogError, ParseFailure, OperationCancelled, StorageError

__all__ = [
    'SourceRecord',
    'CanonicalTrack',
    'CleanResult',
    'MatchCandidate',
    'DJCatalogError',
    'ParseFailure',
    'OperationCancelled',
    'StorageError'
]
