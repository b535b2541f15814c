"""
Trip and event pin models.

A trip is a contiguous driving session reconstructed from a channel log.
Event pins are map-ready points summarizing clusters of unsafe samples.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from drivescore.models.records import DataRecord, Severity, UnsafeTurningRecord


class EventType(Enum):
    """Unsafe driving event types."""

    SPEEDING = "speeding"
    ACCELERATION = "acceleration"
    BRAKING = "braking"
    UNSAFE_TURNING = "unsafeTurning"


# Display color per event type
EVENT_COLORS: dict[EventType, str] = {
    EventType.SPEEDING: "red",
    EventType.ACCELERATION: "orange",
    EventType.BRAKING: "yellow",
    EventType.UNSAFE_TURNING: "blue",
}


@dataclass
class Trip:
    """
    A reconstructed driving session.

    ``logs`` holds DATA records only; standalone unsafe turning alerts
    recorded during the session are kept apart in ``turning_events``.
    """

    id: int
    start_time: Optional[datetime]
    end_time: Optional[datetime] = None
    start_message: Optional[str] = None
    end_message: Optional[str] = None
    road_name: Optional[str] = None
    logs: list[DataRecord] = field(default_factory=list)
    turning_events: list[UnsafeTurningRecord] = field(default_factory=list)

    @property
    def is_open(self) -> bool:
        return self.end_time is None

    def latest_timestamp(self) -> Optional[datetime]:
        """Latest of end/start time and the last log's timestamp."""
        candidates = []
        boundary = self.end_time or self.start_time
        if boundary is not None:
            candidates.append(boundary)
        if self.logs:
            candidates.append(self.logs[-1].timestamp)
        return max(candidates) if candidates else None


@dataclass(frozen=True)
class EventPin:
    """Representative point of a cluster of same-type unsafe samples."""

    type: EventType
    latitude: float
    longitude: float
    timestamp: datetime
    speed: float = 0.0

    # speeding
    speed_limit: Optional[float] = None
    # acceleration / braking
    acceleration: Optional[float] = None
    braking: Optional[float] = None
    # unsafe turning
    g_force: Optional[float] = None
    threshold: Optional[float] = None
    severity: Optional[Severity] = None
    exceeds_threshold: Optional[float] = None
    street_name: Optional[str] = None
    is_standalone_event: bool = False

    @property
    def color(self) -> str:
        return EVENT_COLORS[self.type]

    @property
    def magnitude(self) -> float:
        """Value used for clustering and representative selection."""
        if self.type is EventType.SPEEDING:
            return self.speed
        if self.type is EventType.ACCELERATION:
            return self.acceleration or 0.0
        if self.type is EventType.BRAKING:
            return self.braking or 0.0
        return self.g_force or 0.0


@dataclass
class CombinedEventPin:
    """Merged marker for nearby pins of possibly different types."""

    latitude: float
    longitude: float
    pin_color: str
    primary_event: EventPin
    events_by_type: dict[EventType, list[EventPin]]
    event_count: int
    has_multiple_types: bool

    # Flattened from the primary event
    speed: float = 0.0
    timestamp: Optional[datetime] = None
    speed_limit: Optional[float] = None
    speed_excess: Optional[float] = None
    acceleration: Optional[float] = None
    braking: Optional[float] = None
    g_force: Optional[float] = None
    severity: Optional[Severity] = None
