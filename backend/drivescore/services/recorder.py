"""
Record construction for a log channel.

The recorder turns already-fetched OBD values, location and the latest
motion sample into log records, deriving acceleration from the previous
sample of the same channel. Connection markers reset that derivation so
acceleration never spans a session gap.
"""

import logging
import math
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable, Optional

from drivescore.models.records import (
    ConnectionMarker,
    ConnectionState,
    DataRecord,
    GForce,
    Location,
    LogRecord,
    MotionSample,
    Severity,
    TurningAnalysis,
    UnsafeTurningRecord,
)
from drivescore.services.detectors import DEFAULT_TURNING_G_THRESHOLD
from drivescore.services.log_store import LogStore


logger = logging.getLogger(__name__)


HIGH_SEVERITY_RATIO = 1.5  # max g above threshold * ratio is HIGH


def compute_acceleration(
    speed: Optional[float],
    timestamp: datetime,
    last_speed: Optional[float],
    last_timestamp: Optional[datetime],
) -> Optional[float]:
    """
    Acceleration in mph/s between two speed samples, rounded to 2 decimals.

    Returns None when either speed is missing or no time has elapsed.
    """
    if speed is None or last_speed is None or last_timestamp is None:
        return None
    elapsed = (timestamp - last_timestamp).total_seconds()
    if elapsed <= 0:
        return None
    return round((speed - last_speed) / elapsed, 2)


def analyze_turning(
    motion: Optional[MotionSample],
    threshold: float = DEFAULT_TURNING_G_THRESHOLD,
) -> Optional[TurningAnalysis]:
    """
    Classify a motion sample by horizontal g-force.

    Horizontal g is the magnitude of the x/y acceleration components.
    """
    if motion is None:
        return None
    g = math.hypot(motion.acceleration.x, motion.acceleration.y)
    exceeds = g - threshold

    if g <= threshold:
        severity = Severity.SAFE
    elif g > threshold * HIGH_SEVERITY_RATIO:
        severity = Severity.HIGH
    else:
        severity = Severity.MEDIUM

    return TurningAnalysis(
        is_unsafe_turning=severity is not Severity.SAFE,
        severity=severity,
        max_g_force=round(g, 3),
        threshold=threshold,
        exceeds_threshold=round(exceeds, 3),
    )


class ChannelRecorder:
    """
    Builds and appends records for one log channel.

    Holds the last speed sample so consecutive DATA records carry an
    acceleration value.
    """

    def __init__(
        self,
        store: LogStore,
        channel: str,
        turning_threshold: float = DEFAULT_TURNING_G_THRESHOLD,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self._store = store
        self._channel = channel
        self._turning_threshold = turning_threshold
        self._clock = clock
        self._last_speed: Optional[float] = None
        self._last_timestamp: Optional[datetime] = None

    @property
    def channel(self) -> str:
        return self._channel

    def reset(self) -> None:
        """Forget the previous speed sample."""
        self._last_speed = None
        self._last_timestamp = None

    def resume_from_log(self) -> None:
        """Restore the previous speed sample from the end of the channel log."""
        self.reset()
        for record in self._store.read_all(self._channel):
            self._track(record)

    def _track(self, record: LogRecord) -> None:
        if isinstance(record, ConnectionMarker):
            self.reset()
        elif isinstance(record, DataRecord) and record.speed is not None:
            self._last_speed = record.speed
            self._last_timestamp = record.timestamp

    def record_sample(
        self,
        speed: Optional[float] = None,
        rpm: Optional[float] = None,
        throttle: Optional[float] = None,
        location: Optional[Location] = None,
        street_name: Optional[str] = None,
        speed_limit: Optional[float] = None,
        motion: Optional[MotionSample] = None,
        timestamp: Optional[datetime] = None,
        source: Optional[str] = None,
    ) -> DataRecord:
        """
        Build and append a DATA record.

        Args:
            motion: Latest device motion sample, passed in by the caller
            timestamp: Sample time (defaults to now)
        """
        ts = timestamp or self._clock()
        record = DataRecord(
            timestamp=ts,
            speed=speed,
            rpm=rpm,
            throttle=throttle,
            location=location,
            street_name=street_name,
            speed_limit=speed_limit,
            acceleration=compute_acceleration(speed, ts, self._last_speed, self._last_timestamp),
            device_motion=motion,
            turning_analysis=analyze_turning(motion, self._turning_threshold),
            source=source,
        )
        self._store.append(self._channel, record)
        self._track(record)
        return record

    def record_marker(
        self,
        state: ConnectionState,
        message: Optional[str] = None,
        street_name: Optional[str] = None,
        last_street_name: Optional[str] = None,
        timestamp: Optional[datetime] = None,
    ) -> ConnectionMarker:
        """Build and append a connection marker."""
        record = ConnectionMarker(
            timestamp=timestamp or self._clock(),
            state=state,
            message=message,
            street_name=street_name,
            last_street_name=last_street_name,
        )
        self._store.append(self._channel, record)
        self._track(record)
        logger.info(f"{self._channel}: {state.value} marker logged")
        return record

    def record_unsafe_turning(
        self,
        g_force: GForce,
        threshold: Optional[float] = None,
        severity: Severity = Severity.MEDIUM,
        street_name: Optional[str] = None,
        timestamp: Optional[datetime] = None,
    ) -> UnsafeTurningRecord:
        """Build and append a standalone unsafe turning record."""
        record = UnsafeTurningRecord(
            timestamp=timestamp or self._clock(),
            g_force=g_force,
            threshold=self._turning_threshold if threshold is None else threshold,
            severity=severity,
            street_name=street_name,
        )
        self._store.append(self._channel, record)
        return record


def backfill_acceleration(records: list[LogRecord]) -> tuple[list[LogRecord], int]:
    """
    Fill in missing acceleration on DATA records of legacy logs.

    Existing values are kept. Connection markers reset the previous sample.

    Returns:
        Tuple of (updated records, number of DATA records processed)
    """
    last_speed: Optional[float] = None
    last_timestamp: Optional[datetime] = None
    processed = 0
    updated: list[LogRecord] = []

    for record in records:
        if isinstance(record, ConnectionMarker):
            last_speed = None
            last_timestamp = None
            updated.append(record)
            continue
        if not isinstance(record, DataRecord):
            updated.append(record)
            continue

        if record.acceleration is None:
            accel = compute_acceleration(record.speed, record.timestamp, last_speed, last_timestamp)
            record = replace(record, acceleration=accel)
            processed += 1

        if record.speed is not None:
            last_speed = record.speed
            last_timestamp = record.timestamp
        updated.append(record)

    return updated, processed


def backfill_channel(store: LogStore, channel: str) -> int:
    """Rewrite a channel log with acceleration filled in. Returns records processed."""
    records = store.read_all(channel)
    if not records:
        logger.info(f"Log for {channel} is empty, nothing to backfill")
        return 0
    updated, processed = backfill_acceleration(records)
    store.write_all(channel, updated)
    logger.info(f"Backfilled acceleration on {processed} {channel} records")
    return processed
