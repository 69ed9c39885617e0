"""
Catalog Storage Package

SQLite persistence for source tables, canonical tracks, links and the
derived index.
"""

from .database import CatalogDatabase

__all__ = ['CatalogDatabase']
