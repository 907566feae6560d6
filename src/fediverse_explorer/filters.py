"""
Staleness and failure filter.

A normalized record is published only if:
- it has a crawl timestamp,
- no failure marker for its identity is newer than that timestamp,
- the timestamp is within the configured maximum age,
- at least one of its identifying fields is non-empty.

Each predicate is an independent per-record test, so the kept set does not
depend on evaluation order. Drop counts are attributed to the first failing
predicate in the order above.
"""

from typing import Callable, Iterable, Optional, Protocol, TypeVar

from .audit_logger import AuditLogger
from .enums import DropReason, LogLevel, RecordKind
from .exceptions import KeyFormatError
from .models import FailureMarker, FilterStats, as_int, dig
from .storage_keys import decode_failure_key


class FilterableRecord(Protocol):
    baseurl: Optional[str]
    time: Optional[int]

    def identifying_fields(self) -> tuple: ...


R = TypeVar("R", bound=FilterableRecord)


class FailureIndex:
    """Most recent failure time per (kind, identity)."""

    def __init__(self, markers: Iterable[FailureMarker] = ()) -> None:
        self._latest: dict[tuple[RecordKind, str], int] = {}
        for marker in markers:
            self.add(marker)

    def add(self, marker: FailureMarker) -> None:
        key = (marker.kind, marker.identity)
        previous = self._latest.get(key)
        if previous is None or marker.time > previous:
            self._latest[key] = marker.time

    @classmethod
    def from_raw(
        cls,
        raw: object,
        logger: Optional[AuditLogger] = None,
    ) -> "FailureIndex":
        """
        Build the index from a storage mapping of ``error:<kind>:<host>`` keys.

        Keys that do not decode and markers without a numeric time are
        skipped and logged.
        """
        index = cls()
        if not isinstance(raw, dict):
            return index

        for key, value in raw.items():
            try:
                decoded = decode_failure_key(key)
            except KeyFormatError as e:
                if logger:
                    logger.log(LogLevel.WARN, "FailureIndex", e.message, e.details)
                continue

            time = as_int(dig(value, "time"))
            if time is None:
                if logger:
                    logger.log(
                        LogLevel.WARN,
                        "FailureIndex",
                        "Failure marker without time skipped",
                        {"key": key},
                    )
                continue

            index.add(FailureMarker(kind=decoded.kind, identity=decoded.identity, time=time))

        return index

    def merge(self, other: "FailureIndex") -> None:
        """Fold another index in, keeping the later time per key."""
        for (kind, identity), time in other._latest.items():
            self.add(FailureMarker(kind=kind, identity=identity, time=time))

    def latest(self, identity: Optional[str], *kinds: RecordKind) -> Optional[int]:
        """Most recent failure time for the identity across the given kinds."""
        if identity is None:
            return None
        times = [
            self._latest[(kind, identity)]
            for kind in kinds
            if (kind, identity) in self._latest
        ]
        return max(times) if times else None

    def __len__(self) -> int:
        return len(self._latest)


def failed_after_crawl(crawl_time: Optional[int], failure_time: Optional[int]) -> bool:
    """True when the last crawl attempt failed after the last good crawl."""
    if failure_time is None or crawl_time is None:
        return False
    return crawl_time < failure_time


def is_too_old(crawl_time: int, now: int, max_age_ms: int) -> bool:
    """Age exactly equal to the maximum is still fresh."""
    return now - crawl_time > max_age_ms


def is_empty(fields: tuple) -> bool:
    """All identifying fields are empty strings or absent."""
    return all(value is None or value == "" for value in fields)


def drop_reason(
    record: FilterableRecord,
    failure_time: Optional[int],
    now: int,
    max_age_ms: int,
) -> Optional[DropReason]:
    """
    Decide whether a record is published.

    Returns:
        The first applicable DropReason, or None if the record is kept
    """
    if failed_after_crawl(record.time, failure_time):
        return DropReason.FAILED_AFTER_CRAWL
    if record.time is None:
        return DropReason.NO_TIMESTAMP
    if is_too_old(record.time, now, max_age_ms):
        return DropReason.TOO_OLD
    if is_empty(record.identifying_fields()):
        return DropReason.EMPTY
    return None


def filter_records(
    records: Iterable[R],
    failure_time: Callable[[Optional[str]], Optional[int]],
    now: int,
    max_age_ms: int,
) -> tuple[list[R], FilterStats]:
    """
    Apply all predicates to every record.

    Args:
        records: Normalized records
        failure_time: Lookup of the latest failure time for an identity
        now: Current time in epoch milliseconds
        max_age_ms: Maximum allowed crawl age

    Returns:
        Tuple of (kept records in input order, drop statistics)
    """
    kept: list[R] = []
    stats = FilterStats()

    for record in records:
        stats.total += 1
        reason = drop_reason(record, failure_time(record.baseurl), now, max_age_ms)
        if reason is None:
            kept.append(record)
        else:
            stats.record_drop(reason)

    stats.kept = len(kept)
    return kept, stats
