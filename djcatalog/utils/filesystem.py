"""
Filesystem utilities for DJ Catalog

Path normalization shared by the importers, the blocking index and the
canonical identity index, plus the audio-file walker used by the
filesystem scanner.
"""

import os
import re
import hashlib
from pathlib import Path
from typing import Iterator, List, Optional, Sequence
from urllib.parse import unquote, urlparse

from ..core.exceptions import SourceImportError


AUDIO_EXTENSIONS = ('.mp3', '.m4a', '.flac', '.wav', '.m4p', '.aiff', '.aif')

DRIVE_PATTERN = re.compile(r'^([a-zA-Z]):')
DOUBLE_SLASH = re.compile(r'/{2,}')


def ensure_directory(path: str, create: bool = True) -> bool:
    """
    Ensure a directory exists, optionally creating it

    Args:
        path: Directory path to check/create
        create: Whether to create the directory if it doesn't exist

    Returns:
        True if directory exists or was created successfully

    Raises:
        SourceImportError: If the path exists but is not a directory
    """
    path_obj = Path(path)
    if path_obj.exists():
        if path_obj.is_dir():
            return True
        raise SourceImportError(f"Path exists but is not a directory: {path}", filepath=path)

    if create:
        path_obj.mkdir(parents=True, exist_ok=True)
        return True
    return False


def file_uri_to_path(location: str) -> str:
    """
    Convert a ``file://`` URL (as written by DJ software and media players)
    into a local path string
    """
    parsed = urlparse(location)
    path = unquote(parsed.path)
    if parsed.netloc and parsed.netloc.lower() != 'localhost':
        path = f"//{parsed.netloc}{path}"
    # file://localhost/C:/Music/... keeps a leading slash before the drive
    if re.match(r'^/[a-zA-Z]:', path):
        path = path[1:]
    return path


def normalize_path(path: Optional[str]) -> Optional[str]:
    """
    Normalize a file path or file URL for identity comparisons

    - ``file://`` URLs are unescaped to local paths
    - backslashes become forward slashes, duplicate slashes collapse
    - trailing slashes are dropped
    - Windows drive letters are uppercased

    Returns:
        Normalized path, or None for blank input
    """
    if not path or not path.strip():
        return None
    path = path.strip()
    if path.lower().startswith('file:'):
        path = file_uri_to_path(path)

    path = path.replace('\\', '/')
    path = DOUBLE_SLASH.sub('/', path)
    if len(path) > 1:
        path = path.rstrip('/')

    drive = DRIVE_PATTERN.match(path)
    if drive:
        path = drive.group(1).upper() + path[1:]
    return path or None


def path_segments(path: Optional[str]) -> List[str]:
    """Segments of a normalized path, without the root or drive"""
    normalized = normalize_path(path)
    if not normalized:
        return []
    segments = [segment for segment in normalized.split('/') if segment]
    if segments and DRIVE_PATTERN.match(segments[0]) and len(segments[0]) == 2:
        segments = segments[1:]
    return segments


def path_tail_key(path: Optional[str], depth: int = 3) -> Optional[str]:
    """Case-insensitive key built from the last ``depth`` path segments"""
    segments = path_segments(path)
    if not segments:
        return None
    return '/'.join(segments[-depth:]).casefold()


def path_identity(path: Optional[str]) -> Optional[str]:
    """Case-insensitive identity of a normalized path"""
    normalized = normalize_path(path)
    return normalized.casefold() if normalized else None


def stable_path_id(path: str) -> str:
    """Deterministic natural id for a scanned file derived from its normalized path"""
    normalized = path_identity(path) or ''
    return hashlib.sha1(normalized.encode('utf-8')).hexdigest()[:16]


def iter_audio_files(folder: str, extensions: Sequence[str] = AUDIO_EXTENSIONS) -> Iterator[str]:
    """
    Walk ``folder`` recursively yielding audio files in a stable order

    Raises:
        SourceImportError: If the folder does not exist
    """
    if not os.path.isdir(folder):
        raise SourceImportError("Scan folder not found", filepath=folder)

    wanted = tuple(ext.lower() for ext in extensions)
    for root, dirs, files in os.walk(folder):
        dirs.sort()
        for name in sorted(files):
            if name.startswith('.'):
                continue
            if name.lower().endswith(wanted):
                yield os.path.join(root, name)
