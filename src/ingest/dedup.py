"""Seen-digest bookkeeping for the Staked event poller.

A digest is marked seen the moment it is first observed, before any
downstream work, so a crash mid-processing never replays it (at-most-once).
The set is bounded: past ``cap`` entries it keeps only the ``keep`` most
recently inserted. A pruned digest is indistinguishable from a new one.
"""

from enum import Enum


class EventClass(str, Enum):
    DUPLICATE = "duplicate"  # digest already seen
    PRE_EXISTING = "pre_existing"  # new digest, emitted before process start
    NEW = "new"


class SeenSet:
    """Insertion-ordered bounded set of transaction digests."""

    def __init__(self, cap: int = 1000, keep: int = 500) -> None:
        if not 0 < keep <= cap:
            raise ValueError(f"keep ({keep}) must be in 1..cap ({cap})")
        self._cap = cap
        self._keep = keep
        # dict preserves insertion order
        self._digests: dict[str, None] = {}

    def __contains__(self, digest: object) -> bool:
        return digest in self._digests

    def __len__(self) -> int:
        return len(self._digests)

    def add(self, digest: str) -> bool:
        """Mark seen. Returns True if the digest was not tracked yet."""
        if digest in self._digests:
            return False
        self._digests[digest] = None
        return True

    def prune(self) -> int:
        """Drop the oldest entries once over cap. Returns how many were dropped."""
        size = len(self._digests)
        if size <= self._cap:
            return 0
        recent = list(self._digests)[-self._keep:]
        self._digests = dict.fromkeys(recent)
        return size - len(self._digests)

    def snapshot(self) -> list[str]:
        """Digests oldest-first."""
        return list(self._digests)


def classify(seen: SeenSet, digest: str, timestamp_ms: int, start_time_ms: int) -> EventClass:
    """Classify an observed event and mark its digest seen."""
    if not seen.add(digest):
        return EventClass.DUPLICATE
    if timestamp_ms <= start_time_ms:
        return EventClass.PRE_EXISTING
    return EventClass.NEW
