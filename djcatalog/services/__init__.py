"""
Catalog Service Layer

Normalization, cleanup, cross-source matching, canonical merge and the
derived index rebuild.
"""

from .normalizer import clean
from .cleaner import MetadataCleaner
from .matcher import MatchEngine
from .index_builder import IndexBuilder

__all__ = [
    'clean',
    'MetadataCleaner',
    'MatchEngine',
    'IndexBuilder'
]
