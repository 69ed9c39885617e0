"""
Text Normalizer

Pure, deterministic cleaning of a raw (title, artist) pair as found in
streaming exports, DJ software collections and file tags. Besides cleaned
strings it extracts musical key, BPM, featured artists and DJ tags, keeps a
log of every heuristic that fired and scores its own confidence.

Example:
    >>> result = clean("03. Track Title (Clean)", "9A - 128 - DJ Name")
    >>> result.title, result.artist, result.musical_key, result.bpm
    ('Track Title', 'DJ Name', '9A', 128.0)
"""

import re
from typing import List, Optional

from ..core.models import CleanResult
from ..utils.text import canonicalize, distinct_casefold, equals_loose


CAMELOT = r'(?:1[0-2]|[1-9])[AB]'

FILE_EXTENSION_SUFFIX = re.compile(r'\.(mp3|wav|flac|m4a|aiff|mov|mp4)$', re.IGNORECASE)
AUDIO_VISUALIZER = re.compile(r'\(([^)]*audio\s*visualizer[^)]*)\)', re.IGNORECASE)

ARTIST_NUMBER_PREFIX = re.compile(r'^\s*\d{1,3}\.\s+')
ARTIST_KEY_BPM = re.compile(
    rf'^(?P<key>{CAMELOT})\s*-\s*(?P<bpm>\d{{2,3}}(?:\.\d)?)\s*-\s*(?P<artist>.+)$'
)
ARTIST_KEY = re.compile(rf'^(?P<key>{CAMELOT})\s*-\s*(?P<artist>.+)$')

BRACKET_PERFORMER = re.compile(r'^〔(?P<artist>[^〕]+)〕')
BRACKET_FEAT = re.compile(r'^\s*(?:feat\.?|ft\.?)\s+(?P<names>.+)$', re.IGNORECASE)

TITLE_TRACK_NUMBER_PREFIX = re.compile(r'^\s*\d{1,3}\.\s+')
TITLE_SOURCE_ID_PREFIX = re.compile(r'^\s*\d{4,}_')

DASH_SEPARATOR = re.compile(r'\s-\s')
ARTIST_LIKE = re.compile(r'&|×|(?-i:\sx\s)|\bfeat\b|\bft\b', re.IGNORECASE)

BPM_EXPLICIT = re.compile(
    r'\b(?P<before>\d{2,3}(?:\.\d)?)\s*bpm\b|\bbpm\s*(?P<after>\d{2,3}(?:\.\d)?)\b',
    re.IGNORECASE,
)
BPM_BRACKET_ONLY = re.compile(r'\[(?P<bpm>\d{2,3})\]')
KEY_EXPLICIT = re.compile(rf'\bkey\s*(?P<key>{CAMELOT})\b', re.IGNORECASE)
BRACKET_GROUP = re.compile(r'\((?P<paren>[^)]*)\)|\[(?P<square>[^\]]*)\]')
BRACKET_KEY = re.compile(rf'\b(?P<key>{CAMELOT})\b')

TRAILING_PAREN = re.compile(r'\((?P<content>[^)]*)\)$')
TRAILING_SQUARE = re.compile(r'\[(?P<content>[^\]]*)\]$')

FEATURE_PAREN = re.compile(r'\((?:feat\.?|ft\.?)\s+(?P<names>[^)]+)\)', re.IGNORECASE)
FEATURE_INLINE = re.compile(r'\b(?:feat\.?|ft\.?)\s+(?P<names>[^-]+)$', re.IGNORECASE)
FEATURE_NAME_SEPARATOR = re.compile(r'\s*(?:,|&|＆|×|\bx\b)\s*', re.IGNORECASE)

EMPTY_BRACKETS = re.compile(r'\(\s*\)|\[\s*\]|〔\s*〕')
REPEATED_DASH = re.compile(r'\s*-\s*-+\s*')
REPEATED_PIPE = re.compile(r'\|\|+')
WHITESPACE = re.compile(r'\s+')

COVER_MARKERS = ('歌ってみた', 'cover')

DJ_TAG_TOKENS = ('clean', 'dirty', 'intro', 'outro', 'transition', 'quick hit')
MIX_TOKENS = ('remix', 'edit', 'vip', 'flip', 'bootleg', 'version', 'mix')
VERSION_SUFFIXES = (
    'original mix', 'extended mix', 'club mix',
    'radio edit', 'original edit', 'extended edit', 'club edit',
)
JUNK_SUFFIX_TOKENS = ('lyrics', 'lyric video', 'official video', 'on screen', 'audio')

BPM_MIN = 60.0
BPM_MAX = 220.0

# Confidence arithmetic
BASE_CONFIDENCE = 0.50
KEY_BPM_PREFIX_BONUS = 0.40
BRACKET_PERFORMER_BONUS = 0.30
ARTIST_TITLE_SPLIT_BONUS = 0.25
EXPLICIT_TOKEN_BONUS = 0.15
AMBIGUOUS_DASH_PENALTY = 0.20
REFUSED_OVERWRITE_PENALTY = 0.30


def parse_bpm(value: Optional[str]) -> Optional[float]:
    """Parse a BPM token, accepting only the 60-220 range"""
    if not value:
        return None
    try:
        bpm = float(value)
    except ValueError:
        return None
    return bpm if BPM_MIN <= bpm <= BPM_MAX else None


def _contains_any(value: str, tokens) -> bool:
    lowered = value.lower()
    return any(token in lowered for token in tokens)


def _split_feature_names(raw_names: str) -> List[str]:
    return [name.strip() for name in FEATURE_NAME_SEPARATOR.split(raw_names) if name.strip()]


class _CleanState:
    """Mutable working state of one ``clean`` call"""

    def __init__(self, title: Optional[str], artist: Optional[str]):
        self.title = title
        self.artist = artist
        self.musical_key: Optional[str] = None
        self.bpm: Optional[float] = None
        self.features: List[str] = []
        self.dj_tags: List[str] = []
        self.log: List[str] = []

        self.key_bpm_applied = False
        self.bracket_performer_applied = False
        self.split_applied = False
        self.explicit_token_applied = False
        self.ambiguous_dash = False
        self.overwrite_refused = False

    def confidence(self) -> float:
        confidence = BASE_CONFIDENCE
        if self.key_bpm_applied:
            confidence += KEY_BPM_PREFIX_BONUS
        if self.bracket_performer_applied:
            confidence += BRACKET_PERFORMER_BONUS
        if self.split_applied:
            confidence += ARTIST_TITLE_SPLIT_BONUS
        if self.explicit_token_applied:
            confidence += EXPLICIT_TOKEN_BONUS
        if self.ambiguous_dash:
            confidence -= AMBIGUOUS_DASH_PENALTY
        if self.overwrite_refused:
            confidence -= REFUSED_OVERWRITE_PENALTY
        return max(0.0, min(1.0, round(confidence, 4)))


def _canonicalize(value: Optional[str], state: _CleanState) -> Optional[str]:
    normalized = canonicalize(value)
    if value is not None and normalized != value:
        state.log.append('normalized_text')
    return normalized


def _clean_artist_prefixes(state: _CleanState):
    artist = state.artist
    number_prefix = ARTIST_NUMBER_PREFIX.match(artist)
    if number_prefix:
        artist = artist[number_prefix.end():].lstrip()
        state.log.append('artist_number_prefix')

    match = ARTIST_KEY_BPM.match(artist)
    if match and parse_bpm(match.group('bpm')) is not None:
        state.musical_key = match.group('key')
        state.bpm = parse_bpm(match.group('bpm'))
        artist = match.group('artist').strip()
        state.key_bpm_applied = True
        state.log.append('artist_key_bpm')
    else:
        match = ARTIST_KEY.match(artist)
        if match:
            state.musical_key = match.group('key')
            artist = match.group('artist').strip()
            state.key_bpm_applied = True
            state.log.append('artist_key')

    if state.key_bpm_applied:
        # The prefix is itself an explicit key/BPM token
        state.explicit_token_applied = True
    state.artist = artist or None


def _strip_title_decorations(state: _CleanState):
    title = state.title
    updated = FILE_EXTENSION_SUFFIX.sub('', title).strip()
    if updated != title:
        state.log.append('title_strip_extension')
    title = updated

    updated = AUDIO_VISUALIZER.sub('', title).strip()
    if updated != title:
        state.log.append('title_strip_visualizer')
    title = updated

    match = BRACKET_PERFORMER.match(title)
    while match:
        performer = match.group('artist').strip()
        if performer.lower() in COVER_MARKERS:
            state.dj_tags.append('cover')
            state.log.append('jp_cover_tag')
        elif performer.lower().startswith(('feat', 'ft.', 'ft ')):
            feat = BRACKET_FEAT.match(performer)
            if feat:
                state.features.extend(_split_feature_names(feat.group('names')))
                state.log.append('jp_feat')
        elif performer and (not state.artist or equals_loose(state.artist, performer)):
            state.artist = performer
            state.bracket_performer_applied = True
            state.log.append('jp_performer_prefix')

        title = title[match.end():].lstrip()
        match = BRACKET_PERFORMER.match(title)

    prefix = TITLE_TRACK_NUMBER_PREFIX.match(title)
    if prefix:
        title = title[prefix.end():].lstrip()
        state.log.append('source_id_dot_prefix')

    prefix = TITLE_SOURCE_ID_PREFIX.match(title)
    if prefix:
        title = title[prefix.end():].replace('_', ' ').strip()
        state.log.append('source_id_underscore_prefix')

    state.title = title


def _split_artist_title(state: _CleanState):
    separators = len(DASH_SEPARATOR.findall(state.title))
    if separators > 1:
        state.ambiguous_dash = True
        state.log.append('ambiguous_dash')
        return
    if separators != 1:
        return

    left, right = (part.strip() for part in DASH_SEPARATOR.split(state.title, maxsplit=1))
    if not left or not right:
        return
    if state.artist and not ARTIST_LIKE.search(left):
        return

    if state.artist and not equals_loose(state.artist, left):
        state.overwrite_refused = True
        state.log.append('artist_overwrite_refused')
        return

    state.artist = left
    state.title = right
    state.split_applied = True
    state.log.append('artist_title_split')


def _strip_junk_suffix(state: _CleanState):
    parts = DASH_SEPARATOR.split(state.title)
    if len(parts) < 2:
        return
    last = parts[-1].strip()
    if _contains_any(last, JUNK_SUFFIX_TOKENS):
        state.dj_tags.append(last)
        state.log.append('title_junk_suffix')
        state.title = ' - '.join(parts[:-1]).strip()


def _bracket_content(bracket) -> str:
    return bracket.group('paren') if bracket.group('paren') is not None else bracket.group('square')


def _first_bracket_key(title: str) -> Optional[str]:
    """Camelot code of the first bracket group, if DJ vocabulary sits beside it"""
    bracket = BRACKET_GROUP.search(title)
    if not bracket:
        return None
    content = _bracket_content(bracket)
    key_match = BRACKET_KEY.search(content)
    has_context = 'bpm' in content.lower() or _contains_any(content, DJ_TAG_TOKENS + MIX_TOKENS)
    return key_match.group('key') if key_match and has_context else None


def _extract_bpm_and_key(state: _CleanState):
    title = state.title
    # Judged before BPM tokens are stripped out of the bracket
    bracket_key = _first_bracket_key(title)

    match = BPM_EXPLICIT.search(title)
    if match:
        candidate = parse_bpm(match.group('before') or match.group('after'))
        if candidate is not None:
            if state.bpm is None:
                state.bpm = candidate
            title = BPM_EXPLICIT.sub('', title).strip()
            state.explicit_token_applied = True
            state.log.append('title_bpm_explicit')

    match = BPM_BRACKET_ONLY.search(title)
    if match:
        candidate = parse_bpm(match.group('bpm'))
        if candidate is not None:
            if state.bpm is None:
                state.bpm = candidate
            title = BPM_BRACKET_ONLY.sub('', title).strip()
            state.explicit_token_applied = True
            state.log.append('title_bpm_bracket')

    match = KEY_EXPLICIT.search(title)
    if match:
        if state.musical_key is None:
            state.musical_key = match.group('key').upper()
        title = KEY_EXPLICIT.sub('', title).strip()
        state.explicit_token_applied = True
        state.log.append('title_key_explicit')

    # A bare Camelot code inside brackets only counts with DJ vocabulary beside it
    bracket = BRACKET_GROUP.search(title) if bracket_key else None
    if bracket and bracket_key in BRACKET_KEY.findall(_bracket_content(bracket)):
        if state.musical_key is None:
            state.musical_key = bracket_key
        title = (title[:bracket.start()] + title[bracket.end():]).strip()
        state.explicit_token_applied = True
        state.log.append('title_key_bracket')

    state.title = title


def _extract_mix_tags(state: _CleanState):
    title = state.title

    for pattern, log_tag in ((TRAILING_PAREN, 'mix_suffix_paren'), (TRAILING_SQUARE, 'mix_suffix_bracket')):
        match = pattern.search(title)
        if match and _contains_any(match.group('content'), MIX_TOKENS + DJ_TAG_TOKENS):
            state.dj_tags.append(match.group('content').strip())
            state.log.append(log_tag)
            title = title[:match.start()].strip()

    lowered = title.lower()
    for token in DJ_TAG_TOKENS:
        if lowered.endswith(f' {token}'):
            state.dj_tags.append(token)
            state.log.append('dj_tag_suffix')
            title = title[:-(len(token) + 1)].strip()
            break

    lowered = title.lower()
    for suffix in VERSION_SUFFIXES:
        if lowered.endswith(f' {suffix}'):
            state.dj_tags.append(suffix)
            state.log.append('mix_suffix')
            title = title[:-(len(suffix) + 1)].strip()
            break

    state.title = title


def _extract_features(state: _CleanState):
    title = state.title

    match = FEATURE_PAREN.search(title)
    while match:
        state.features.extend(_split_feature_names(match.group('names')))
        state.log.append('feature_paren')
        title = (title[:match.start()] + title[match.end():]).strip()
        match = FEATURE_PAREN.search(title)

    match = FEATURE_INLINE.search(title)
    if match:
        state.features.extend(_split_feature_names(match.group('names')))
        state.log.append('feature_inline')
        title = title[:match.start()].strip()

    state.title = title


def cleanup_separators(title: str) -> str:
    """Remove empty brackets, doubled separators and stray edge punctuation"""
    title = EMPTY_BRACKETS.sub('', title)
    title = REPEATED_DASH.sub(' - ', title)
    title = REPEATED_PIPE.sub('|', title)
    title = WHITESPACE.sub(' ', title)
    return title.strip(' -|_.')


def clean(title: Optional[str], artist: Optional[str]) -> CleanResult:
    """
    Clean a raw (title, artist) pair

    Args:
        title: Raw track title, may be None
        artist: Raw artist string, may be None

    Returns:
        CleanResult with cleaned strings, extracted key/BPM/features/DJ tags,
        the ordered log of fired heuristics and a confidence in [0, 1]
    """
    state = _CleanState(None, None)
    state.title = _canonicalize(title, state)
    state.artist = _canonicalize(artist, state)

    if state.artist:
        _clean_artist_prefixes(state)

    steps = (
        _strip_title_decorations,
        _split_artist_title,
        _strip_junk_suffix,
        _extract_bpm_and_key,
        _extract_mix_tags,
        _extract_features,
    )
    for step in steps:
        if not state.title:
            break
        step(state)

    if state.title:
        state.title = cleanup_separators(state.title)

    return CleanResult(
        title=state.title or None,
        artist=state.artist or None,
        musical_key=state.musical_key,
        bpm=state.bpm,
        features=distinct_casefold(state.features),
        dj_tags=distinct_casefold(state.dj_tags),
        log=state.log,
        confidence=state.confidence(),
    )

