"""DJ Catalog package for reconciling DJ music libraries.

Merges a streaming-service library export, a DJ-software collection and a
filesystem scan into one deduplicated canonical catalog with a browsable
artist/album index.
"""

__version__ = "1.0.0"
__author__ = "RamC Venkatasamy"

from .core.engine import CatalogEngine
from .services.normalizer import clean

__all__ = ["CatalogEngine", "clean", "__version__"]
