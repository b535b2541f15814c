"""
Tests for unsafe driving event detectors.
"""

from datetime import datetime, timedelta, timezone

import pytest

from drivescore.models.records import (
    ConnectionMarker,
    ConnectionState,
    DataRecord,
    GForce,
    Location,
    Severity,
    TurningAnalysis,
    UnsafeTurningRecord,
)
from drivescore.models.trip import EventPin, EventType, Trip
from drivescore.services.detectors import (
    ClusterTolerance,
    DetectionThresholds,
    cluster_pins,
    detect_acceleration,
    detect_all,
    detect_braking,
    detect_speeding,
    detect_unsafe_turning,
)
from drivescore.services.log_store import LogStore
from drivescore.services.recorder import ChannelRecorder
from drivescore.services.trips import get_trips, reconstruct_trips


T0 = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)
LAT0 = 32.9857
LON0 = -89.7898
DEG_PER_FOOT = 1 / 364813.0  # degrees of latitude per foot


def at(seconds: float) -> datetime:
    return T0 + timedelta(seconds=seconds)


def north(feet: float) -> Location:
    """Point ``feet`` north of the reference point."""
    return Location(latitude=LAT0 + feet * DEG_PER_FOOT, longitude=LON0)


def log(seconds, speed=30.0, speed_limit=None, acceleration=None, feet=0.0, turning=None, located=True):
    return DataRecord(
        timestamp=at(seconds),
        speed=speed,
        speed_limit=speed_limit,
        acceleration=acceleration,
        location=north(feet) if located else None,
        turning_analysis=turning,
    )


def trip_of(logs, turning_events=()):
    return Trip(id=1, start_time=at(0), logs=list(logs), turning_events=list(turning_events))


def turning(g, severity=Severity.MEDIUM, threshold=1.1):
    return TurningAnalysis(
        is_unsafe_turning=severity is not Severity.SAFE,
        severity=severity,
        max_g_force=g,
        threshold=threshold,
        exceeds_threshold=round(g - threshold, 3),
    )


def turning_event(seconds, g_max, threshold=1.1):
    return UnsafeTurningRecord(
        timestamp=at(seconds),
        g_force=GForce(x=g_max, y=0.0, z=1.0, max=g_max),
        threshold=threshold,
        severity=Severity.MEDIUM,
    )


class TestSpeeding:
    """Tests for the speeding detector."""

    def test_nearby_samples_cluster_to_strongest(self):
        """Two close speeding samples yield one pin at the higher speed."""
        records = [
            ConnectionMarker(timestamp=at(0), state=ConnectionState.CONNECTED),
            log(1, speed=70.0, speed_limit=60.0),
            log(2, speed=72.0, speed_limit=60.0, feet=5.0),
            ConnectionMarker(timestamp=at(3), state=ConnectionState.DISCONNECTED),
        ]
        trip = reconstruct_trips(records)[0]

        pins = detect_speeding(trip, threshold=5.0)

        assert len(pins) == 1
        assert pins[0].speed == 72.0
        assert pins[0].speed_limit == 60.0
        assert pins[0].type is EventType.SPEEDING
        assert pins[0].color == "red"

    def test_threshold_is_exclusive(self):
        trip = trip_of([log(1, speed=65.0, speed_limit=60.0)])
        assert detect_speeding(trip, threshold=5.0) == []

    def test_well_below_limit_counts(self):
        trip = trip_of([log(1, speed=40.0, speed_limit=60.0)])
        assert len(detect_speeding(trip, threshold=5.0)) == 1

    def test_requires_speed_limit_and_location(self):
        trip = trip_of([
            log(1, speed=90.0, speed_limit=None),
            log(2, speed=90.0, speed_limit=60.0, located=False),
        ])
        assert detect_speeding(trip) == []

    def test_far_apart_samples_not_clustered(self):
        trip = trip_of([
            log(1, speed=70.0, speed_limit=60.0),
            log(2, speed=70.0, speed_limit=60.0, feet=200.0),
        ])
        assert len(detect_speeding(trip, threshold=5.0)) == 2

    def test_magnitude_gap_not_clustered(self):
        trip = trip_of([
            log(1, speed=70.0, speed_limit=60.0),
            log(2, speed=85.0, speed_limit=60.0),
        ])
        assert [p.speed for p in detect_speeding(trip, threshold=5.0)] == [70.0, 85.0]

    @pytest.mark.parametrize("trip", [None, trip_of([])])
    def test_empty_input(self, trip):
        assert detect_speeding(trip) == []

    def test_deterministic(self):
        trip = trip_of([
            log(i, speed=60.0 + (i * 7) % 25, speed_limit=55.0, feet=i * 20.0)
            for i in range(30)
        ])

        assert detect_speeding(trip) == detect_speeding(trip)
        assert detect_all(trip) == detect_all(trip)


class TestClustering:
    """Tests for greedy pin clustering."""

    def _pin(self, speed, feet=0.0):
        loc = north(feet)
        return EventPin(
            type=EventType.SPEEDING,
            latitude=loc.latitude,
            longitude=loc.longitude,
            timestamp=T0,
            speed=speed,
        )

    def test_compares_against_last_member(self):
        """A chain of small steps stays in one cluster."""
        pins = [self._pin(70.0), self._pin(79.0), self._pin(88.0)]

        result = cluster_pins(pins, ClusterTolerance(distance_ft=50.0, magnitude=10.0))

        assert len(result) == 1
        assert result[0].speed == 88.0

    def test_ties_keep_earliest(self):
        first = self._pin(70.0, feet=0.0)
        second = self._pin(70.0, feet=10.0)

        result = cluster_pins([first, second], ClusterTolerance(distance_ft=50.0, magnitude=10.0))

        assert result == [first]

    def test_joins_first_matching_cluster(self):
        a = self._pin(70.0, feet=0.0)
        b = self._pin(70.0, feet=200.0)
        c = self._pin(75.0, feet=10.0)

        result = cluster_pins([a, b, c], ClusterTolerance(distance_ft=50.0, magnitude=10.0))

        assert result == [c, b]


class TestAccelerationAndBraking:
    """Tests for the acceleration and braking detectors."""

    @pytest.fixture
    def recorded_trip(self, tmp_path):
        """Speeds 0, 10, 20, 8 at 1 s spacing, all at the same spot."""
        store = LogStore(tmp_path)
        recorder = ChannelRecorder(store, "sim")
        recorder.record_marker(ConnectionState.CONNECTED, timestamp=at(0))
        for i, speed in enumerate([0.0, 10.0, 20.0, 8.0]):
            recorder.record_sample(speed=speed, location=north(0.0), timestamp=at(i + 1))
        recorder.record_marker(ConnectionState.DISCONNECTED, timestamp=at(5))
        return get_trips(store, "sim")[0]

    def test_acceleration_pin(self, recorded_trip):
        pins = detect_acceleration(recorded_trip, threshold=6.0)

        assert len(pins) == 1
        assert pins[0].acceleration == 10.0
        assert pins[0].color == "orange"

    def test_braking_pin(self, recorded_trip):
        pins = detect_braking(recorded_trip, threshold=-8.0)

        assert len(pins) == 1
        assert pins[0].braking == 12.0
        assert pins[0].acceleration == -12.0
        assert pins[0].speed == 8.0
        assert pins[0].color == "yellow"

    def test_braking_threshold_is_exclusive(self):
        trip = trip_of([log(1, acceleration=-8.0)])
        assert detect_braking(trip, threshold=-8.0) == []

    def test_missing_acceleration_ignored(self):
        trip = trip_of([log(1, acceleration=None)])
        assert detect_acceleration(trip, threshold=0.0) == []
        assert detect_braking(trip, threshold=0.0) == []

    def test_braking_cluster_radius(self):
        """Braking clusters within 75 ft; acceleration only within 50 ft."""
        trip = trip_of([
            log(1, acceleration=-10.0),
            log(2, acceleration=-10.0, feet=60.0),
            log(3, acceleration=10.0, feet=200.0),
            log(4, acceleration=10.0, feet=260.0),
        ])

        assert len(detect_braking(trip, threshold=-8.0)) == 1
        assert len(detect_acceleration(trip, threshold=6.0)) == 2


class TestUnsafeTurning:
    """Tests for the unsafe turning detector."""

    def test_inline_analysis(self):
        trip = trip_of([
            log(1, turning=turning(1.4)),
            log(2, turning=turning(0.5, Severity.SAFE), feet=500.0),
        ])

        pins = detect_unsafe_turning(trip, threshold=1.1)

        assert len(pins) == 1
        assert pins[0].g_force == 1.4
        assert pins[0].severity is Severity.MEDIUM
        assert pins[0].is_standalone_event is False
        assert pins[0].color == "blue"

    def test_detection_threshold_applies_to_inline(self):
        trip = trip_of([log(1, turning=turning(1.2))])
        assert detect_unsafe_turning(trip, threshold=1.3) == []

    def test_standalone_event_placed_at_nearest_log(self):
        trip = trip_of(
            [log(1, feet=0.0), log(3, feet=500.0), log(10, feet=1000.0)],
            turning_events=[turning_event(2.8, 1.3)],
        )

        pins = detect_unsafe_turning(trip)

        assert len(pins) == 1
        assert pins[0].is_standalone_event is True
        assert pins[0].latitude == north(500.0).latitude
        assert pins[0].timestamp == at(2.8)
        assert pins[0].g_force == 1.3

    def test_standalone_event_without_nearby_log_dropped(self):
        trip = trip_of([log(1)], turning_events=[turning_event(5, 1.3)])
        assert detect_unsafe_turning(trip) == []

    def test_nearby_pins_deduplicated_keeping_higher_g(self):
        trip = trip_of(
            [log(1, turning=turning(1.3)), log(2, turning=turning(1.2), feet=20.0)],
            turning_events=[turning_event(1, 1.6)],
        )

        pins = detect_unsafe_turning(trip)

        assert len(pins) == 1
        assert pins[0].g_force == 1.6
        assert pins[0].is_standalone_event is True

    def test_distinct_turns_kept(self):
        trip = trip_of([log(1, turning=turning(1.3)), log(2, turning=turning(1.2), feet=40.0)])
        assert len(detect_unsafe_turning(trip)) == 2

    def test_detect_all_keys(self):
        pins = detect_all(trip_of([log(1)]), DetectionThresholds())
        assert set(pins) == set(EventType)
