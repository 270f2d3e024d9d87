"""Time-bounded cache of announced event fingerprints."""
import logging
import threading
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from processor.fingerprint import generate_fingerprint
from processor.models import CacheStats, EventCandidate
from storage.dedup_store import DedupStore, InMemoryDedupStore

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class EventDeduplicationCache:
    """Gate that lets each event fingerprint through once per retention window."""

    DEFAULT_RETENTION = timedelta(hours=24)

    def __init__(
        self,
        store: Optional[DedupStore] = None,
        retention: timedelta = DEFAULT_RETENTION,
        clock: Optional[Clock] = None
    ):
        """
        Initialize the cache.

        Args:
            store: Fingerprint store (default: in-memory)
            retention: How long a fingerprint is remembered (default: 24 hours)
            clock: Source of "now" when callers do not pass it explicitly
        """
        if retention <= timedelta(0):
            logger.warning(
                f"Non-positive retention {retention} rejected, "
                f"using default {self.DEFAULT_RETENTION}"
            )
            retention = self.DEFAULT_RETENTION

        self.store = store if store is not None else InMemoryDedupStore()
        self.retention = retention
        self._clock = clock or utc_now
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

        logger.info(
            f"Event deduplication initialized with {self.retention_hours:g} hour TTL"
        )

    @property
    def retention_hours(self) -> float:
        return self.retention.total_seconds() / 3600

    def has(self, fingerprint: str, now: Optional[datetime] = None) -> bool:
        """True if the fingerprint was seen and has not expired."""
        return self.store.has(fingerprint, now or self._clock())

    def mark_processed(self, fingerprint: str, now: Optional[datetime] = None) -> None:
        """Insert or refresh a fingerprint with expiry `now + retention`."""
        now = now or self._clock()
        self.store.upsert_with_expiry(fingerprint, now + self.retention)
        logger.info(f"Event marked as processed: {fingerprint}")

    def is_duplicate(self, candidate: EventCandidate, now: Optional[datetime] = None) -> bool:
        """Check without recording whether the candidate was already announced."""
        return self.has(generate_fingerprint(candidate), now)

    def should_process(self, candidate: EventCandidate, now: Optional[datetime] = None) -> bool:
        """
        Check whether an event is new and record it if so.

        Args:
            candidate: Extracted event fields
            now: Current instant (default: the cache clock)

        Returns:
            True if the event is new and should be announced, False if duplicate
        """
        fingerprint = generate_fingerprint(candidate)
        now = now or self._clock()

        with self._lock:
            inserted = self.store.put_if_absent(fingerprint, now + self.retention, now)
            if inserted:
                self._misses += 1
            else:
                self._hits += 1

        if inserted:
            logger.info(f"New event detected: {fingerprint}")
        else:
            logger.info(f"Duplicate event detected: {fingerprint}")
        return inserted

    def purge_expired(self, now: Optional[datetime] = None) -> int:
        """Physically remove expired fingerprints."""
        return self.store.purge_expired(now or self._clock())

    def get_stats(self, now: Optional[datetime] = None) -> CacheStats:
        with self._lock:
            hits, misses = self._hits, self._misses
        return CacheStats(
            keys=self.store.count(now or self._clock()),
            hits=hits,
            misses=misses,
            ttl_hours=self.retention_hours
        )

    def clear(self) -> None:
        """Forget every fingerprint and reset counters."""
        self.store.clear()
        with self._lock:
            self._hits = 0
            self._misses = 0
        logger.info("Event deduplication cache cleared")
