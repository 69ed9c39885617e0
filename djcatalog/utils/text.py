"""
Text processing utilities for DJ Catalog

This module holds the small string helpers shared by the normalizer, the
similarity scorer and the index builder: unicode canonicalization, loose
comparison, tokenization, set similarity and the JSON encoding used for
feature and DJ-tag sets.
"""

import re
import json
import unicodedata
from typing import Iterable, List, Optional

from rapidfuzz.distance import Levenshtein


DASH_VARIANTS = re.compile(r'[–—−]')
WHITESPACE = re.compile(r'\s+')
CAMELOT_KEY_PATTERN = re.compile(r'\b((?:1[0-2]|[1-9])[AB])\b', re.IGNORECASE)


def normalize_unicode(text: Optional[str]) -> str:
    """
    Canonicalize unicode to NFKC so full-width forms and ligatures compare equal

    Args:
        text: Input text (None is treated as empty)

    Returns:
        NFKC-normalized text
    """
    if not text:
        return ""
    return unicodedata.normalize('NFKC', text)


def collapse_whitespace(text: Optional[str]) -> str:
    """Collapse runs of whitespace to a single space and trim"""
    if not text:
        return ""
    return WHITESPACE.sub(' ', text).strip()


def canonicalize(text: Optional[str]) -> Optional[str]:
    """
    Unicode-canonicalize, normalize dash variants and collapse whitespace

    Returns:
        Canonical text, or None when nothing but whitespace remains
    """
    if text is None:
        return None
    text = normalize_unicode(text)
    text = DASH_VARIANTS.sub('-', text)
    text = collapse_whitespace(text)
    return text or None


def equals_loose(a: Optional[str], b: Optional[str]) -> bool:
    """Case- and whitespace-insensitive equality"""
    return collapse_whitespace(normalize_unicode(a)).casefold() == \
        collapse_whitespace(normalize_unicode(b)).casefold()


def normalize_index_key(text: Optional[str]) -> str:
    """Lowercase, whitespace-collapsed key used for artist/album grouping"""
    return collapse_whitespace(text).lower()


def tokenize(text: Optional[str], min_length: int = 2) -> List[str]:
    """Split on whitespace, keeping tokens of at least ``min_length`` characters"""
    if not text:
        return []
    return [token for token in text.split() if len(token) >= min_length]


def jaccard(left: Iterable[str], right: Iterable[str]) -> float:
    """
    Case-insensitive Jaccard similarity of two collections

    Returns 0.0 when either side is empty.
    """
    a = {item.casefold() for item in left if item}
    b = {item.casefold() for item in right if item}
    if not a or not b:
        return 0.0
    return len(a & b) / len(a | b)


def levenshtein_similarity(left: Optional[str], right: Optional[str]) -> float:
    """Normalized Levenshtein similarity ``1 - distance / max(len)``; 0.0 for an empty side"""
    if not left or not right:
        return 0.0
    return Levenshtein.normalized_similarity(left, right)


def distinct_casefold(items: Iterable[Optional[str]]) -> List[str]:
    """Drop blanks and case-insensitive duplicates, keeping first-seen order"""
    seen = set()
    result = []
    for item in items:
        if not item:
            continue
        item = item.strip()
        folded = item.casefold()
        if item and folded not in seen:
            seen.add(folded)
            result.append(item)
    return result


def parse_string_set(raw) -> List[str]:
    """
    Decode a stored JSON string array

    Malformed or non-list data reads as an empty set.
    """
    if raw is None:
        return []
    if isinstance(raw, (list, tuple)):
        values = raw
    else:
        try:
            values = json.loads(raw)
        except (TypeError, ValueError):
            return []
        if not isinstance(values, list):
            return []
    return [str(value) for value in values if isinstance(value, (str, int, float)) and str(value).strip()]


def dump_string_set(items: Iterable[str]) -> Optional[str]:
    """Encode a string set as a JSON array; empty sets are stored as NULL"""
    values = distinct_casefold(items)
    if not values:
        return None
    return json.dumps(values, ensure_ascii=False)


def normalize_camelot_key(raw: Optional[str]) -> Optional[str]:
    """
    Extract an uppercase Camelot code (e.g. ``9A``) from a key string

    Falls back to the trimmed raw value when no Camelot code is present.
    """
    if not raw or not raw.strip():
        return None
    match = CAMELOT_KEY_PATTERN.search(raw)
    if match:
        return match.group(1).upper()
    return raw.strip()
