"""
Cross-source Matcher

Runs the three pairwise passes (streaming x DJ software, streaming x
filesystem, DJ software x filesystem), splits the scored candidates into an
auto-link band and a review band, and greedily assigns conflict-free links by
descending score before handing them to the canonical merge.
"""

import threading
from typing import Dict, List, Optional, Tuple

from tqdm import tqdm

from ..core.exceptions import OperationCancelled
from ..core.models import (
    ALL_SOURCES, SOURCE_DJ, SOURCE_FILESYSTEM, SOURCE_STREAMING,
    MatchCandidate, MatchResult, SourceRecord,
)
from ..storage.database import CatalogDatabase
from ..utils.logging_config import get_logger
from .blocking import BlockingIndex
from .canonical import CanonicalMerger, IdentityIndex
from .scoring import PreparedRecord, meets_minimums, prepare_record, score_pair


DEFAULT_MIN_AUTO_SCORE = 0.92
CANDIDATE_FLOOR = 0.80
REVIEW_BAND = 0.06

# (probing source, indexed source, path hinting)
MATCH_PASSES = (
    (SOURCE_STREAMING, SOURCE_DJ, False),
    (SOURCE_STREAMING, SOURCE_FILESYSTEM, True),
    (SOURCE_DJ, SOURCE_FILESYSTEM, True),
)


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


def _ranking(candidate: MatchCandidate) -> Tuple:
    return (-candidate.score, candidate.left.source, candidate.left.natural_id,
            candidate.right.source, candidate.right.natural_id)


def find_candidates(probes: List[PreparedRecord], index: BlockingIndex, path_hint: bool,
                    floor: float = CANDIDATE_FLOOR) -> List[MatchCandidate]:
    """Score every probe against its blocked candidates, keeping scores >= floor"""
    candidates = []
    for probe in probes:
        for target in index.candidates(probe, path_hint):
            candidate = score_pair(probe, target, path_hint)
            if candidate.score >= floor:
                candidates.append(candidate)
    return candidates


def split_bands(candidates: List[MatchCandidate],
                min_auto_score: float) -> Tuple[List[MatchCandidate], List[MatchCandidate]]:
    """
    Partition candidates into (auto-link, review), each sorted best first

    Both bands require the minimum-acceptance gate; the review band is
    ``[min_auto_score - 0.06, min_auto_score)``.
    """
    review_floor = _clamp(min_auto_score - REVIEW_BAND)
    auto, review = [], []
    for candidate in candidates:
        if not meets_minimums(candidate):
            continue
        if candidate.score >= min_auto_score:
            auto.append(candidate)
        elif candidate.score >= review_floor:
            review.append(candidate)
    auto.sort(key=_ranking)
    review.sort(key=_ranking)
    return auto, review


def assign_greedy(candidates: List[MatchCandidate]) -> List[MatchCandidate]:
    """
    Accept candidates best first unless either side was already claimed

    A deterministic greedy approximation of maximum-weight matching. Claims
    are kept per side: a record is accepted at most once as the probing side
    and at most once as the indexed side, so a DJ-software row can link to
    one streaming row and one file, and the canonical merge joins all three.
    """
    claimed_left = set()
    claimed_right = set()
    accepted = []
    for candidate in sorted(candidates, key=_ranking):
        left, right = candidate.left.key, candidate.right.key
        if left in claimed_left or right in claimed_right:
            continue
        claimed_left.add(left)
        claimed_right.add(right)
        accepted.append(candidate)
    return accepted


class MatchEngine:
    """
    Reconciles the three source tables into the canonical catalog

    Features:
    - Blocking-index candidate generation per pass
    - Auto-link and review bands with the minimum-acceptance gate
    - Greedy 1:1 assignment
    - Canonical merge plus unmatched sweep in a single transaction
    """

    def __init__(self, db: CatalogDatabase, cancel_event: Optional[threading.Event] = None,
                 show_progress: bool = False):
        self.db = db
        self.cancel_event = cancel_event
        self.show_progress = show_progress
        self.logger = get_logger('matcher')

    def _check_cancelled(self):
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise OperationCancelled("Matching")

    def load_records(self) -> Dict[str, List[SourceRecord]]:
        records: Dict[str, List[SourceRecord]] = {}
        for source in ALL_SOURCES:
            rows, failures = self.db.load_source_records(source)
            for failure in failures:
                self.logger.warning(f"Skipping unreadable {failure.row_key}: {failure}")
            records[source] = rows
        return records

    def score_passes(self, records: Dict[str, List[SourceRecord]]) -> List[MatchCandidate]:
        """Run every pairwise pass and return all candidates above the floor"""
        prepared = {source: [prepare_record(r) for r in rows] for source, rows in records.items()}

        candidates: List[MatchCandidate] = []
        for probe_source, indexed_source, path_hint in MATCH_PASSES:
            self._check_cancelled()
            index = BlockingIndex(prepared[indexed_source])
            probes = prepared[probe_source]
            progress = tqdm(probes, desc=f"{probe_source} x {indexed_source}", unit="track",
                            disable=not self.show_progress, leave=False)
            found = []
            for probe in progress:
                self._check_cancelled()
                found.extend(find_candidates([probe], index, path_hint))
            self.logger.debug(
                f"Pass {probe_source} x {indexed_source}: {len(probes)} probes, "
                f"{index.size} indexed, {len(found)} candidates"
            )
            candidates.extend(found)
        return candidates

    def run(self, min_auto_score: float = DEFAULT_MIN_AUTO_SCORE, dry_run: bool = False) -> MatchResult:
        """
        Match all sources and merge the accepted links

        Args:
            min_auto_score: Auto-link threshold, clamped to [0, 1]
            dry_run: Score and report without writing

        Returns:
            MatchResult with auto-linked and review counts

        Raises:
            OperationCancelled: If the cancellation token is set; nothing is written
            StorageError: If the merge transaction fails; nothing is written
        """
        min_auto_score = _clamp(min_auto_score)
        records = self.load_records()
        candidates = self.score_passes(records)

        auto, review = split_bands(candidates, min_auto_score)
        accepted = assign_greedy(auto)
        result = MatchResult(
            auto_linked=len(accepted),
            review=len(review),
            review_candidates=review,
            dry_run=dry_run,
        )
        self.logger.info(
            f"{len(candidates)} candidates, {len(auto)} auto-link, "
            f"{len(accepted)} accepted, {len(review)} for review"
        )

        if dry_run:
            return result

        with self.db.transaction():
            merger = CanonicalMerger(self.db, IdentityIndex.load(self.db))
            for candidate in accepted:
                self._check_cancelled()
                merger.apply_pair(candidate)
            for source in ALL_SOURCES:
                self._check_cancelled()
                merger.sweep(records[source])

        result.new_tracks = merger.new_tracks
        result.new_links = merger.new_links
        result.conflicts = merger.conflicts
        return result
