"""
DJ Catalog CLI Package

Command-line interface for the DJ Catalog application.
"""

from .unified_cli import main as cli_main

__all__ = ['cli_main']
