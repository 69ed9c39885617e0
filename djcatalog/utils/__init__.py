"""
DJ Catalog Utilities Package

This package contains text, path and logging helpers used throughout the application.
"""

from .text import canonicalize, normalize_index_key
from .filesystem import ensure_directory, normalize_path, stable_path_id

__all__ = [
    'canonicalize',
    'normalize_index_key',
    'ensure_directory',
    'normalize_path',
    'stable_path_id'
]
