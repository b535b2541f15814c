"""
Unsafe driving event detectors.

Speeding, acceleration and braking share one shape: filter a trip's DATA
records by a threshold predicate, turn survivors into pins, then cluster
them greedily in log order. A pin joins the first cluster whose most
recently added member is close enough both on the map and in magnitude;
each cluster is reported by its highest-magnitude member.

Unsafe turning combines inline turning analysis with standalone alerts
and de-duplicates by distance alone.
"""

import logging
import os
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from drivescore.models.records import DataRecord
from drivescore.models.trip import EventPin, EventType, Trip
from drivescore.utils.geo import distance_in_feet


logger = logging.getLogger(__name__)


DEFAULT_SPEEDING_THRESHOLD = float(os.getenv("DRIVESCORE_SPEEDING_THRESHOLD", "5"))      # mph over/under limit
DEFAULT_ACCELERATION_THRESHOLD = float(os.getenv("DRIVESCORE_ACCEL_THRESHOLD", "6"))     # mph/s
DEFAULT_BRAKING_THRESHOLD = float(os.getenv("DRIVESCORE_BRAKING_THRESHOLD", "-8"))       # mph/s
DEFAULT_TURNING_G_THRESHOLD = float(os.getenv("DRIVESCORE_TURNING_G_THRESHOLD", "1.1"))  # G

TURNING_MERGE_DISTANCE_FT = 30.0
TURNING_CORRELATION_S = 2.0


@dataclass(frozen=True)
class ClusterTolerance:
    """How close two pins must be to share a cluster."""

    distance_ft: float
    magnitude: float


SPEEDING_TOLERANCE = ClusterTolerance(distance_ft=50.0, magnitude=10.0)
ACCELERATION_TOLERANCE = ClusterTolerance(distance_ft=50.0, magnitude=2.0)
BRAKING_TOLERANCE = ClusterTolerance(distance_ft=75.0, magnitude=3.0)


@dataclass(frozen=True)
class DetectionThresholds:
    """Per-type thresholds for a detection pass."""

    speeding: float = DEFAULT_SPEEDING_THRESHOLD
    acceleration: float = DEFAULT_ACCELERATION_THRESHOLD
    braking: float = DEFAULT_BRAKING_THRESHOLD
    turning_g: float = DEFAULT_TURNING_G_THRESHOLD


# ============================================================================
# Clustering
# ============================================================================

def cluster_pins(pins: list[EventPin], tolerance: ClusterTolerance) -> list[EventPin]:
    """
    Greedy single-pass clustering, one representative per cluster.

    Order-dependent: each pin is compared only with the last member of each
    open cluster, in cluster creation order.
    """
    groups: list[list[EventPin]] = []

    for pin in pins:
        for group in groups:
            last = group[-1]
            if (
                distance_in_feet(pin, last) <= tolerance.distance_ft
                and abs(pin.magnitude - last.magnitude) <= tolerance.magnitude
            ):
                group.append(pin)
                break
        else:
            groups.append([pin])

    return [_strongest(group) for group in groups]


def _strongest(group: list[EventPin]) -> EventPin:
    """Highest-magnitude pin; ties keep the earliest."""
    best = group[0]
    for pin in group[1:]:
        if pin.magnitude > best.magnitude:
            best = pin
    return best


def _detect(
    trip: Optional[Trip],
    predicate: Callable[[DataRecord], bool],
    to_pin: Callable[[DataRecord], EventPin],
    tolerance: ClusterTolerance,
    event_type: EventType,
) -> list[EventPin]:
    if trip is None or not trip.logs:
        return []

    candidates = [to_pin(log) for log in trip.logs if log.location is not None and predicate(log)]
    pins = cluster_pins(candidates, tolerance)

    logger.debug(
        f"Trip {trip.id}: {len(candidates)} {event_type.value} samples -> {len(pins)} pins"
    )
    return pins


# ============================================================================
# Detectors
# ============================================================================

def detect_speeding(trip: Optional[Trip], threshold: float = DEFAULT_SPEEDING_THRESHOLD) -> list[EventPin]:
    """Pins where speed differs from the posted limit by more than ``threshold`` mph."""

    def predicate(log: DataRecord) -> bool:
        return (
            log.speed is not None
            and log.speed_limit is not None
            and abs(log.speed - log.speed_limit) > threshold
        )

    def to_pin(log: DataRecord) -> EventPin:
        return EventPin(
            type=EventType.SPEEDING,
            latitude=log.location.latitude,
            longitude=log.location.longitude,
            timestamp=log.timestamp,
            speed=log.speed,
            speed_limit=log.speed_limit,
        )

    return _detect(trip, predicate, to_pin, SPEEDING_TOLERANCE, EventType.SPEEDING)


def detect_acceleration(
    trip: Optional[Trip],
    threshold: float = DEFAULT_ACCELERATION_THRESHOLD,
) -> list[EventPin]:
    """Pins for harsh acceleration (acceleration above ``threshold`` mph/s)."""

    def predicate(log: DataRecord) -> bool:
        return log.acceleration is not None and log.acceleration > threshold

    def to_pin(log: DataRecord) -> EventPin:
        return EventPin(
            type=EventType.ACCELERATION,
            latitude=log.location.latitude,
            longitude=log.location.longitude,
            timestamp=log.timestamp,
            speed=log.speed or 0.0,
            acceleration=log.acceleration,
        )

    return _detect(trip, predicate, to_pin, ACCELERATION_TOLERANCE, EventType.ACCELERATION)


def detect_braking(trip: Optional[Trip], threshold: float = DEFAULT_BRAKING_THRESHOLD) -> list[EventPin]:
    """
    Pins for harsh braking.

    ``threshold`` is negative; a sample qualifies when its acceleration is
    strictly below it. Magnitude is the absolute deceleration.
    """

    def predicate(log: DataRecord) -> bool:
        return log.acceleration is not None and log.acceleration < threshold

    def to_pin(log: DataRecord) -> EventPin:
        return EventPin(
            type=EventType.BRAKING,
            latitude=log.location.latitude,
            longitude=log.location.longitude,
            timestamp=log.timestamp,
            speed=log.speed or 0.0,
            acceleration=log.acceleration,
            braking=abs(log.acceleration),
        )

    return _detect(trip, predicate, to_pin, BRAKING_TOLERANCE, EventType.BRAKING)


def detect_unsafe_turning(
    trip: Optional[Trip],
    threshold: float = DEFAULT_TURNING_G_THRESHOLD,
) -> list[EventPin]:
    """
    Pins for unsafe turning.

    Two sources: DATA records whose turning analysis is unsafe above
    ``threshold`` G, and standalone alerts placed at the DATA record
    nearest in time (within 2 s). Pins within 30 ft of an earlier pin are
    folded into it, keeping the higher g-force.
    """
    if trip is None or not trip.logs:
        return []

    pins: list[EventPin] = []

    for log in trip.logs:
        analysis = log.turning_analysis
        if log.location is None or analysis is None:
            continue
        if analysis.is_unsafe_turning and analysis.max_g_force > threshold:
            pins.append(EventPin(
                type=EventType.UNSAFE_TURNING,
                latitude=log.location.latitude,
                longitude=log.location.longitude,
                timestamp=log.timestamp,
                speed=log.speed or 0.0,
                g_force=analysis.max_g_force,
                threshold=threshold,
                severity=analysis.severity,
                exceeds_threshold=analysis.exceeds_threshold,
                street_name=log.street_name,
            ))

    for event in trip.turning_events:
        nearby = _nearest_located_log(trip.logs, event.timestamp)
        if nearby is None:
            continue
        pins.append(EventPin(
            type=EventType.UNSAFE_TURNING,
            latitude=nearby.location.latitude,
            longitude=nearby.location.longitude,
            timestamp=event.timestamp,
            speed=nearby.speed or 0.0,
            g_force=event.g_force.max,
            threshold=event.threshold,
            severity=event.severity,
            exceeds_threshold=event.g_force.max - event.threshold,
            street_name=event.street_name or nearby.street_name,
            is_standalone_event=True,
        ))

    filtered = _dedupe_by_distance(pins, TURNING_MERGE_DISTANCE_FT)
    logger.debug(f"Trip {trip.id}: {len(filtered)} unsafe turning pins")
    return filtered


def _nearest_located_log(logs: list[DataRecord], when: datetime) -> Optional[DataRecord]:
    best: Optional[DataRecord] = None
    best_gap = TURNING_CORRELATION_S
    for log in logs:
        if log.location is None:
            continue
        gap = abs((log.timestamp - when).total_seconds())
        if gap <= best_gap and (best is None or gap < best_gap):
            best = log
            best_gap = gap
    return best


def _dedupe_by_distance(pins: list[EventPin], distance_ft: float) -> list[EventPin]:
    kept: list[EventPin] = []
    for pin in pins:
        for i, existing in enumerate(kept):
            if distance_in_feet(pin, existing) <= distance_ft:
                if pin.magnitude > existing.magnitude:
                    kept[i] = pin
                break
        else:
            kept.append(pin)
    return kept


def detect_all(
    trip: Optional[Trip],
    thresholds: DetectionThresholds = DetectionThresholds(),
) -> dict[EventType, list[EventPin]]:
    """Run all four detectors on a trip."""
    return {
        EventType.SPEEDING: detect_speeding(trip, thresholds.speeding),
        EventType.ACCELERATION: detect_acceleration(trip, thresholds.acceleration),
        EventType.BRAKING: detect_braking(trip, thresholds.braking),
        EventType.UNSAFE_TURNING: detect_unsafe_turning(trip, thresholds.turning_g),
    }
