"""
Similarity Scorer

Blends up to nine component similarities between two source records into a
single score, then applies contextual bonuses and penalties. A component
score of 0.5 means "not comparable" (the attribute is missing on one side)
and is deliberately neutral.

Records are first reduced to ``PreparedRecord`` instances holding the
normalized title/artist/album forms and the blocking keys, so each record is
normalized once per matching run rather than once per comparison.
"""

import re
from dataclasses import dataclass, field
from typing import List, Optional, Set

from ..core.models import MatchCandidate, SourceRecord
from ..utils.filesystem import normalize_path, path_identity, path_segments, path_tail_key
from ..utils.text import (
    collapse_whitespace, jaccard, levenshtein_similarity, normalize_camelot_key,
    normalize_unicode, tokenize,
)


# Component weights
TITLE_WEIGHT = 0.35
ARTIST_WEIGHT = 0.25
DURATION_WEIGHT = 0.20
ALBUM_WEIGHT = 0.07
BPM_WEIGHT = 0.05
KEY_WEIGHT = 0.04
FEATURE_WEIGHT = 0.03
DJ_TAG_WEIGHT = 0.01
PATH_TAIL_WEIGHT = 0.08

NOT_COMPARABLE = 0.5

DJ_UTILITY_TOKENS = ('clean', 'dirty', 'intro', 'outro', 'lyrics', 'on screen', 'mastering')
VERSION_TOKENS = (
    'original mix', 'extended mix', 'radio edit', 'club mix',
    'original edit', 'extended edit', 'club edit',
)
DJ_DESCRIPTOR_TOKENS = ('remix', 'edit', 'vip', 'flip', 'bootleg')

FEAT_VARIANTS = re.compile(r'\b(?:featuring|feat\.?|ft\.?)(?=\s|$|\))', re.IGNORECASE)
BRACKET_GROUP = re.compile(r'\(([^)]*)\)|\[([^\]]*)\]|\{([^}]*)\}')
VERSION_PATTERN = re.compile(
    r'\b(?:' + '|'.join(re.escape(token) for token in VERSION_TOKENS) + r')\b', re.IGNORECASE
)
DJ_PREFIX = re.compile(r'\bdj\s+')
ARTIST_SEPARATOR = re.compile(r'\s*(?:&|\band\b|\bx\b|×|,|;)\s*')
LEADING_THE = re.compile(r'^the\s+')
CAMELOT_NUMBER = re.compile(r'^(1[0-2]|[1-9])[AB]$')


def _strip_utility_brackets(text: str) -> str:
    def replace(match):
        content = next(group for group in match.groups() if group is not None)
        lowered = content.lower()
        if any(token in lowered for token in DJ_UTILITY_TOKENS):
            return ' '
        return match.group(0)

    return BRACKET_GROUP.sub(replace, text)


def normalize_title(title: Optional[str]) -> str:
    """
    Comparison form of a title or album name

    Lowercased NFKC text with featuring variants unified, DJ utility
    brackets and version suffixes removed and every non-alphanumeric run
    collapsed to a single space.
    """
    if not title:
        return ""
    text = normalize_unicode(title).lower()
    text = FEAT_VARIANTS.sub('feat', text)
    text = _strip_utility_brackets(text)
    text = VERSION_PATTERN.sub(' ', text)
    text = ''.join(ch if ch.isalnum() else ' ' for ch in text)
    return collapse_whitespace(text)


def normalize_artist_tokens(artist: Optional[str]) -> List[str]:
    """Split an artist credit into normalized names; the first is the primary artist"""
    if not artist:
        return []
    text = collapse_whitespace(normalize_unicode(artist).lower())
    text = DJ_PREFIX.sub('', text)
    names = []
    for part in ARTIST_SEPARATOR.split(text):
        part = LEADING_THE.sub('', part.strip())
        if part and part not in names:
            names.append(part)
    return names


def _feature_set(features: List[str]) -> Set[str]:
    return {collapse_whitespace(normalize_unicode(name).lower()) for name in features if name and name.strip()}


def _dj_tag_set(dj_tags: List[str]) -> Set[str]:
    result = set()
    for tag in dj_tags:
        lowered = collapse_whitespace(normalize_unicode(tag).lower())
        if any(token in lowered for token in DJ_DESCRIPTOR_TOKENS):
            result.add(lowered)
    return result


@dataclass
class PreparedRecord:
    """A source record with its comparison forms and blocking keys precomputed"""

    record: SourceRecord
    norm_title: str = ""
    title_tokens: List[str] = field(default_factory=list)
    artist_names: List[str] = field(default_factory=list)
    primary_artist: str = ""
    norm_album: str = ""
    features: Set[str] = field(default_factory=set)
    dj_tags: Set[str] = field(default_factory=set)
    musical_key: Optional[str] = None
    path: Optional[str] = None
    path_id: Optional[str] = None
    segments: List[str] = field(default_factory=list)

    # Blocking keys
    title_key: str = ""
    token_key: str = ""
    duration_bucket: Optional[int] = None
    tail_key: Optional[str] = None

    @property
    def key(self) -> str:
        return self.record.key


def prepare_record(record: SourceRecord) -> PreparedRecord:
    """Normalize one record for scoring and blocking"""
    norm_title = normalize_title(record.display_title)
    artist_names = normalize_artist_tokens(record.display_artist)
    longest = sorted(norm_title.split(), key=len, reverse=True)[:3]
    path = normalize_path(record.file_path)

    return PreparedRecord(
        record=record,
        norm_title=norm_title,
        title_tokens=tokenize(norm_title),
        artist_names=artist_names,
        primary_artist=artist_names[0] if artist_names else "",
        norm_album=normalize_title(record.album),
        features=_feature_set(record.features),
        dj_tags=_dj_tag_set(record.dj_tags),
        musical_key=normalize_camelot_key(record.musical_key),
        path=path,
        path_id=path_identity(path),
        segments=path_segments(path),
        title_key=norm_title[:12],
        token_key='|'.join(longest),
        duration_bucket=record.duration_ms // 2000 if record.duration_ms is not None else None,
        tail_key=path_tail_key(path),
    )


# ----------------------------------------------------------------------
# Component scores

def title_score(a: str, b: str) -> float:
    if not a or not b:
        return NOT_COMPARABLE
    if a == b:
        return 1.0
    return max(jaccard(tokenize(a), tokenize(b)), levenshtein_similarity(a, b))


def artist_score(a: PreparedRecord, b: PreparedRecord) -> float:
    if not a.artist_names or not b.artist_names:
        return NOT_COMPARABLE
    return max(jaccard(a.artist_names, b.artist_names),
               levenshtein_similarity(a.primary_artist, b.primary_artist))


def duration_score(a_ms: Optional[int], b_ms: Optional[int]) -> float:
    if a_ms is None or b_ms is None:
        return NOT_COMPARABLE
    delta = abs(a_ms - b_ms) / 1000.0
    if delta == 0:
        return 1.0
    if delta <= 2:
        return 0.95
    if delta <= 5:
        return 0.85
    if delta <= 10:
        return 0.65
    if delta <= 20:
        return 0.35
    return 0.0


def album_score(a: str, b: str) -> float:
    if not a or not b:
        return NOT_COMPARABLE
    if a == b:
        return 1.0
    return jaccard(tokenize(a), tokenize(b))


def bpm_score(a: Optional[float], b: Optional[float]) -> float:
    if a is None or b is None:
        return NOT_COMPARABLE
    delta = round(abs(round(a, 1) - round(b, 1)), 6)
    if delta <= 0.2:
        return 1.0
    if delta <= 0.6:
        return 0.8
    if delta <= 1.0:
        return 0.6
    if delta <= 2.0:
        return 0.3
    return 0.0


def key_score(a: Optional[str], b: Optional[str]) -> float:
    if not a or not b:
        return NOT_COMPARABLE
    if a.upper() == b.upper():
        return 1.0
    a_match = CAMELOT_NUMBER.match(a.upper())
    b_match = CAMELOT_NUMBER.match(b.upper())
    if a_match and b_match and a_match.group(1) == b_match.group(1):
        return 0.3
    return 0.0


def set_score(a: Set[str], b: Set[str]) -> float:
    if not a or not b:
        return NOT_COMPARABLE
    return jaccard(a, b)


def path_tail_score(a: List[str], b: List[str]) -> float:
    """
    Suffix continuity of two path segment lists times their coverage

    Segments are compared from the file name backward, each weighted by its
    distance from the end; comparison stops at the first mismatch.
    """
    if not a or not b:
        return 0.0
    shortest = min(len(a), len(b))
    longest = max(len(a), len(b))

    matched = 0.0
    compared = 0.0
    for distance in range(1, shortest + 1):
        compared += distance
        if a[-distance].casefold() == b[-distance].casefold():
            matched += distance
        else:
            break

    if compared == 0:
        return 0.0
    return (matched / compared) * (shortest / longest)


def duration_delta_seconds(a_ms: Optional[int], b_ms: Optional[int]) -> Optional[int]:
    """Whole-second absolute duration difference"""
    if a_ms is None or b_ms is None:
        return None
    return abs(a_ms - b_ms) // 1000


# ----------------------------------------------------------------------
# Blend

def score_pair(a: PreparedRecord, b: PreparedRecord, path_hint: bool) -> MatchCandidate:
    """
    Score two prepared records

    Args:
        a: Record from the probing source
        b: Candidate from the indexed source
        path_hint: Whether path comparison applies to this source pair

    Returns:
        MatchCandidate carrying the clamped final score and every component
    """
    reasons: List[str] = []

    title = title_score(a.norm_title, b.norm_title)
    if title == 1.0:
        reasons.append('title_exact')
    artist = artist_score(a, b)
    if a.primary_artist and a.primary_artist == b.primary_artist:
        reasons.append('artist_exact')
    duration = duration_score(a.record.duration_ms, b.record.duration_ms)
    if duration == 1.0:
        reasons.append('duration_exact')
    album = album_score(a.norm_album, b.norm_album)
    bpm = bpm_score(a.record.bpm, b.record.bpm)
    key = key_score(a.musical_key, b.musical_key)
    features = set_score(a.features, b.features)
    dj_tags = set_score(a.dj_tags, b.dj_tags)

    path_exact = bool(path_hint and a.path_id and a.path_id == b.path_id)
    tail = path_tail_score(a.segments, b.segments) if path_hint else 0.0

    weighted = [
        (title, TITLE_WEIGHT),
        (artist, ARTIST_WEIGHT),
        (duration, DURATION_WEIGHT),
        (album, ALBUM_WEIGHT),
        (bpm, BPM_WEIGHT),
        (key, KEY_WEIGHT),
        (features, FEATURE_WEIGHT),
        (dj_tags, DJ_TAG_WEIGHT),
    ]
    if path_hint and tail > 0:
        weighted.append((tail, PATH_TAIL_WEIGHT))

    total_weight = sum(weight for _, weight in weighted)
    score = sum(value * weight for value, weight in weighted) / total_weight

    delta = duration_delta_seconds(a.record.duration_ms, b.record.duration_ms)
    if title >= 0.99 and artist >= 0.99 and delta is not None and delta <= 2:
        score += 0.15
        reasons.append('bonus_title_artist_duration')
    elif delta is not None and delta <= 2 and title >= 0.90:
        score += 0.10
        reasons.append('bonus_title_duration')

    if path_exact:
        score += 0.25
        reasons.append('bonus_path_exact')
    elif path_hint and tail >= 0.99:
        score += 0.12
        reasons.append('bonus_path_tail_exact')
    elif path_hint and tail >= 0.75:
        score += 0.08
        reasons.append('bonus_path_tail_strong')
    elif path_hint and tail >= 0.50:
        score += 0.04
        reasons.append('bonus_path_tail_partial')

    if title < 0.6:
        score -= 0.20
        reasons.append('penalty_title_low')
    if duration == 0 and not path_exact:
        score -= 0.15
        reasons.append('penalty_duration_mismatch')
    if artist < 0.3 and a.record.display_artist and b.record.display_artist:
        score -= 0.10
        reasons.append('penalty_artist_mismatch')

    return MatchCandidate(
        left=a.record,
        right=b.record,
        score=max(0.0, min(1.0, score)),
        title_score=title,
        artist_score=artist,
        duration_score=duration,
        album_score=album,
        bpm_score=bpm,
        key_score=key,
        feature_score=features,
        dj_tag_score=dj_tags,
        path_tail_score=tail,
        path_exact=path_exact,
        duration_missing=a.record.duration_ms is None or b.record.duration_ms is None,
        duration_delta=delta,
        reasons=reasons,
    )


def meets_minimums(candidate: MatchCandidate) -> bool:
    """
    Minimum-acceptance gate applied independently of the score threshold

    At least one must hold: exact path match; title >= 0.75; duration unknown
    with title >= 0.65 and artist >= 0.55; title >= 0.65 with duration >= 0.85.
    """
    if candidate.path_exact:
        return True
    if candidate.title_score >= 0.75:
        return True
    if candidate.duration_missing and candidate.title_score >= 0.65 and candidate.artist_score >= 0.55:
        return True
    return candidate.title_score >= 0.65 and candidate.duration_score >= 0.85
