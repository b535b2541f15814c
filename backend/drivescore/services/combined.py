"""
Combined event merger.

Merges the four detectors' pins into map markers: pins within 100 ft of any
member of a cluster join it, except that acceleration and braking never
share a marker.
"""

import logging
from typing import Optional

import numpy as np

from drivescore.models.trip import EVENT_COLORS, CombinedEventPin, EventPin, EventType, Trip
from drivescore.services.detectors import DetectionThresholds, detect_all
from drivescore.utils.geo import distances_in_feet


logger = logging.getLogger(__name__)


MERGE_DISTANCE_FT = 100.0

# Highest priority first; decides the primary event and the pin color
PRIORITY = (
    EventType.SPEEDING,
    EventType.UNSAFE_TURNING,
    EventType.BRAKING,
    EventType.ACCELERATION,
)

EXCLUSIVE_PAIRS = {
    EventType.ACCELERATION: EventType.BRAKING,
    EventType.BRAKING: EventType.ACCELERATION,
}


class _Cluster:
    def __init__(self, pin: EventPin):
        self.events: list[EventPin] = [pin]
        self.types: set[EventType] = {pin.type}

    def accepts(self, pin: EventPin) -> bool:
        blocked = EXCLUSIVE_PAIRS.get(pin.type)
        if blocked is not None and blocked in self.types:
            return False
        lat = np.array([e.latitude for e in self.events])
        lon = np.array([e.longitude for e in self.events])
        return bool(np.any(distances_in_feet(pin.latitude, pin.longitude, lat, lon) <= MERGE_DISTANCE_FT))

    def add(self, pin: EventPin) -> None:
        self.events.append(pin)
        self.types.add(pin.type)


def merge_event_pins(pins_by_type: dict[EventType, list[EventPin]]) -> list[CombinedEventPin]:
    """
    Merge per-type pins into combined markers.

    Pins are visited type by type (speeding, acceleration, braking, unsafe
    turning), each list in its own order; a pin joins the first cluster
    that accepts it.
    """
    ordered: list[EventPin] = []
    for event_type in (EventType.SPEEDING, EventType.ACCELERATION, EventType.BRAKING, EventType.UNSAFE_TURNING):
        ordered.extend(pins_by_type.get(event_type, []))

    clusters: list[_Cluster] = []
    for pin in ordered:
        for cluster in clusters:
            if cluster.accepts(pin):
                cluster.add(pin)
                break
        else:
            clusters.append(_Cluster(pin))

    combined = [_build_combined(cluster.events) for cluster in clusters]
    logger.debug(
        f"Merged {len(ordered)} pins into {len(combined)} markers "
        f"({sum(1 for c in combined if c.has_multiple_types)} with multiple types)"
    )
    return combined


def _primary(events: list[EventPin]) -> EventPin:
    for event_type in PRIORITY:
        for event in events:
            if event.type is event_type:
                return event
    return events[0]


def _build_combined(events: list[EventPin]) -> CombinedEventPin:
    primary = _primary(events)
    events_by_type = {
        event_type: [e for e in events if e.type is event_type]
        for event_type in EventType
    }

    pin = CombinedEventPin(
        latitude=float(np.mean([e.latitude for e in events])),
        longitude=float(np.mean([e.longitude for e in events])),
        pin_color=EVENT_COLORS[primary.type],
        primary_event=primary,
        events_by_type=events_by_type,
        event_count=len(events),
        has_multiple_types=len({e.type for e in events}) > 1,
        speed=primary.speed,
        timestamp=primary.timestamp,
    )

    if primary.type is EventType.SPEEDING:
        pin.speed_limit = primary.speed_limit
        pin.speed_excess = primary.speed - primary.speed_limit
    elif primary.type is EventType.ACCELERATION:
        pin.acceleration = primary.acceleration
    elif primary.type is EventType.BRAKING:
        pin.braking = primary.braking
    else:
        pin.g_force = primary.g_force
        pin.severity = primary.severity

    return pin


def combined_pins_for_trip(
    trip: Optional[Trip],
    thresholds: DetectionThresholds = DetectionThresholds(),
) -> list[CombinedEventPin]:
    """Run every detector on a trip, then merge the results."""
    if trip is None or not trip.logs:
        return []
    return merge_event_pins(detect_all(trip, thresholds))
