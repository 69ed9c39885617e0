"""
Blocking Index

Inverted indices over one source's prepared records so that each probing
record is only scored against a small candidate set instead of the whole
opposite source.
"""

from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Tuple

from .scoring import PreparedRecord


class BlockingIndex:
    """
    Candidate lookup by cheap keys

    Keys:
    - first 12 characters of the normalized title
    - three longest title tokens combined with a 2-second duration bucket
      (probed at the bucket and its two neighbours)
    - normalized absolute path (path hinting only)
    - last three path segments (path hinting only)
    """

    def __init__(self, records: Iterable[PreparedRecord]):
        self.title_keys: Dict[str, List[PreparedRecord]] = defaultdict(list)
        self.token_buckets: Dict[Tuple[str, int], List[PreparedRecord]] = defaultdict(list)
        self.paths: Dict[str, List[PreparedRecord]] = defaultdict(list)
        self.path_tails: Dict[str, List[PreparedRecord]] = defaultdict(list)
        self.size = 0

        for record in records:
            self.add(record)

    def add(self, record: PreparedRecord):
        self.size += 1
        if record.title_key:
            self.title_keys[record.title_key.casefold()].append(record)
        if record.token_key and record.duration_bucket is not None:
            self.token_buckets[(record.token_key, record.duration_bucket)].append(record)
        if record.path_id:
            self.paths[record.path_id].append(record)
        if record.tail_key:
            self.path_tails[record.tail_key].append(record)

    def candidates(self, probe: PreparedRecord, path_hint: bool) -> List[PreparedRecord]:
        """
        Union of every index bucket the probe falls into, de-duplicated and in
        first-seen order
        """
        found: Dict[str, PreparedRecord] = {}

        def collect(bucket: Optional[List[PreparedRecord]]):
            for record in bucket or ():
                found.setdefault(record.key, record)

        if probe.token_key and probe.duration_bucket is not None:
            for bucket in (probe.duration_bucket - 1, probe.duration_bucket, probe.duration_bucket + 1):
                collect(self.token_buckets.get((probe.token_key, bucket)))

        if probe.title_key:
            collect(self.title_keys.get(probe.title_key.casefold()))

        if path_hint and probe.path_id:
            collect(self.paths.get(probe.path_id))

        if path_hint and probe.tail_key:
            collect(self.path_tails.get(probe.tail_key))

        return list(found.values())
