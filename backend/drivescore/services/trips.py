"""
Trip reconstruction from a flat channel log.

Connection markers frame trips: CONNECTED opens one, DISCONNECTED closes
it. A log with no markers at all is treated as a single trip.
"""

import logging
from typing import Optional

from drivescore.models.records import (
    ConnectionMarker,
    ConnectionState,
    DataRecord,
    LogRecord,
    UnsafeTurningRecord,
)
from drivescore.models.trip import Trip
from drivescore.services.log_store import LogStore


logger = logging.getLogger(__name__)


UNKNOWN_ROAD = "Unknown Road"
CURRENT_TRIP = "Current Trip"
MIXED_ROUTES = "Mixed Routes"


def reconstruct_trips(records: list[LogRecord]) -> list[Trip]:
    """
    Convert an ordered record sequence into trips.

    Args:
        records: Records of one channel in log order

    Returns:
        Trips in order of their opening marker
    """
    if not any(isinstance(r, ConnectionMarker) for r in records):
        return _single_trip_fallback(records)

    trips: list[Trip] = []
    current: Optional[Trip] = None

    for record in records:
        if isinstance(record, ConnectionMarker):
            if record.state is ConnectionState.CONNECTED:
                if current is not None:
                    logger.debug(f"Trip {current.id} replaced by a new CONNECTED marker without DISCONNECTED")
                current = Trip(
                    id=len(trips) + 1,
                    start_time=record.timestamp,
                    start_message=record.message,
                )
            elif record.state is ConnectionState.DISCONNECTED and current is not None:
                current.end_time = record.timestamp
                current.end_message = record.message
                current.road_name = record.street_name or _last_street_name(current) or UNKNOWN_ROAD
                trips.append(current)
                current = None
        elif current is not None:
            if isinstance(record, DataRecord):
                current.logs.append(record)
            elif isinstance(record, UnsafeTurningRecord):
                current.turning_events.append(record)

    if current is not None:
        current.road_name = CURRENT_TRIP
        trips.append(current)

    logger.debug(f"Reconstructed {len(trips)} trips from {len(records)} records")
    return trips


def _last_street_name(trip: Trip) -> Optional[str]:
    for log in reversed(trip.logs):
        if log.street_name:
            return log.street_name
    return None


def _single_trip_fallback(records: list[LogRecord]) -> list[Trip]:
    data = [r for r in records if isinstance(r, DataRecord)]
    if not data:
        return []

    road_name = next((r.street_name for r in data if r.street_name), MIXED_ROUTES)
    logger.debug("No connection markers found, treating log as a single trip")

    return [Trip(
        id=1,
        start_time=data[0].timestamp,
        end_time=data[-1].timestamp,
        start_message="Auto-detected trip start",
        end_message="Auto-detected trip end",
        road_name=road_name,
        logs=data,
        turning_events=[r for r in records if isinstance(r, UnsafeTurningRecord)],
    )]


def get_trips(store: LogStore, channel: str) -> list[Trip]:
    """Read a channel log and reconstruct its trips."""
    return reconstruct_trips(store.read_all(channel))
