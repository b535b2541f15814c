"""
Score Cache - keeps the last safety score and decides when to recompute it.

The snapshot is persisted as one JSON document. A recompute is needed when
there is no snapshot yet or when the newest trip data is newer than the
snapshot. Finding the newest trip timestamp means reading every trip, so
that lookup is memoized for 30 seconds.
"""

import json
import logging
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional

from drivescore.models.score import ScoreSnapshot, default_snapshot
from drivescore.models.trip import Trip
from drivescore.services.detectors import DEFAULT_SPEEDING_THRESHOLD
from drivescore.services.scoring import calculate_safety_score


logger = logging.getLogger(__name__)


TIMESTAMP_CACHE_DURATION_S = 30.0

ScoreListener = Callable[[ScoreSnapshot], None]


class ScoreFile:
    """Wholesale JSON persistence of a single ScoreSnapshot."""

    def __init__(self, path: Path):
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> Optional[ScoreSnapshot]:
        """Return the stored snapshot, or None if absent or unreadable."""
        if not self._path.exists():
            return None
        try:
            return ScoreSnapshot.from_dict(json.loads(self._path.read_text(encoding="utf-8")))
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.error(f"Failed to load cached score from {self._path}: {e}")
            return None

    def save(self, snapshot: ScoreSnapshot) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(json.dumps(snapshot.to_dict(), indent=2), encoding="utf-8")

    def delete(self) -> None:
        self._path.unlink(missing_ok=True)


class ScoreCache:
    """
    Cache-aware access to the safety score.

    Owned by the application; listeners subscribe per instance.
    """

    def __init__(
        self,
        trip_source: Callable[[], list[Trip]],
        score_file: ScoreFile,
        clock: Callable[[], float] = time.monotonic,
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        """
        Initialize the cache.

        Args:
            trip_source: Returns the trips to score (typically the "real" channel)
            score_file: Where the snapshot is persisted
            clock: Monotonic seconds, used for the timestamp memo
            now: Wall-clock time stamped on new snapshots
        """
        self._trip_source = trip_source
        self._score_file = score_file
        self._clock = clock
        self._now = now
        self._listeners: list[ScoreListener] = []

        self._latest_timestamp: Optional[datetime] = None
        self._latest_timestamp_at: Optional[float] = None

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def subscribe(self, listener: ScoreListener) -> Callable[[], None]:
        """Register a listener for fresh snapshots. Returns an unsubscribe callable."""
        if listener not in self._listeners:
            self._listeners.append(listener)
        return lambda: self.unsubscribe(listener)

    def unsubscribe(self, listener: ScoreListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self, snapshot: ScoreSnapshot) -> None:
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Error in score listener")

    # ------------------------------------------------------------------
    # Freshness
    # ------------------------------------------------------------------

    def invalidate_timestamp_cache(self) -> None:
        """Forget the memoized latest trip timestamp."""
        self._latest_timestamp = None
        self._latest_timestamp_at = None

    def latest_trip_timestamp(self) -> Optional[datetime]:
        """Newest trip boundary or log timestamp, memoized for 30 seconds."""
        now = self._clock()
        if (
            self._latest_timestamp_at is not None
            and now - self._latest_timestamp_at < TIMESTAMP_CACHE_DURATION_S
        ):
            return self._latest_timestamp

        latest: Optional[datetime] = None
        for trip in self._trip_source():
            ts = trip.latest_timestamp()
            if ts is not None and (latest is None or ts > latest):
                latest = ts

        self._latest_timestamp = latest
        self._latest_timestamp_at = now
        return latest

    def should_update(self) -> bool:
        """True if there is no cached score or trip data is newer than it."""
        return self._check_cached()[0]

    def _check_cached(self) -> tuple[bool, Optional[ScoreSnapshot]]:
        """Staleness flag plus the snapshot loaded to decide it."""
        cached = None
        try:
            cached = self._score_file.load()
            if cached is None:
                logger.debug("No cached score found, needs update")
                return True, None

            latest = self.latest_trip_timestamp()
            if latest is None:
                return False, cached

            needs_update = latest > cached.last_updated
            logger.debug(
                f"Last updated {cached.last_updated.isoformat()}, "
                f"latest trip {latest.isoformat()}, needs update: {needs_update}"
            )
            return needs_update, cached
        except Exception as e:
            logger.error(f"Error checking if score should update: {e}")
            return True, cached

    # ------------------------------------------------------------------
    # Access
    # ------------------------------------------------------------------

    def get_score(
        self,
        speeding_threshold: float = DEFAULT_SPEEDING_THRESHOLD,
        force_update: bool = False,
    ) -> ScoreSnapshot:
        """
        Return the cached snapshot, recomputing it when stale or forced.

        Never raises; falls back to the neutral snapshot on failure.
        """
        try:
            if not force_update:
                stale, cached = self._check_cached()
                if not stale and cached is not None:
                    logger.debug("Using cached safety score")
                    return cached

            logger.info("Calculating new safety score")
            snapshot = calculate_safety_score(
                self._trip_source(), speeding_threshold, now=self._now()
            )
            self._score_file.save(snapshot)
        except Exception:
            logger.exception("Error getting safety score")
            return default_snapshot(self._now())

        self._notify(snapshot)
        return snapshot

    def clear(self) -> None:
        """Delete the persisted snapshot and the timestamp memo."""
        try:
            self._score_file.delete()
        except OSError as e:
            logger.error(f"Error clearing cached score: {e}")
        self.invalidate_timestamp_cache()
        logger.info("Cached safety score cleared")
