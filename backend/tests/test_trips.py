"""
Tests for trip reconstruction.
"""

from datetime import datetime, timedelta, timezone

import pytest

from drivescore.models.records import (
    ConnectionMarker,
    ConnectionState,
    DataRecord,
    GForce,
    Severity,
    UnsafeTurningRecord,
)
from drivescore.services.log_store import LogStore
from drivescore.services.trips import (
    CURRENT_TRIP,
    MIXED_ROUTES,
    UNKNOWN_ROAD,
    get_trips,
    reconstruct_trips,
)


T0 = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


def at(seconds: float) -> datetime:
    return T0 + timedelta(seconds=seconds)


def connected(seconds, message="Connected"):
    return ConnectionMarker(timestamp=at(seconds), state=ConnectionState.CONNECTED, message=message)


def disconnected(seconds, street_name=None):
    return ConnectionMarker(
        timestamp=at(seconds),
        state=ConnectionState.DISCONNECTED,
        message="Disconnected",
        street_name=street_name,
    )


def data(seconds, speed=30.0, street_name=None):
    return DataRecord(timestamp=at(seconds), speed=speed, street_name=street_name)


class TestReconstructTrips:
    """Tests for framing trips with connection markers."""

    def test_single_closed_trip(self):
        """CONNECTED then DISCONNECTED yields one trip holding the DATA in between."""
        logs = [data(1), data(2), data(3)]
        records = [connected(0), *logs, disconnected(4)]

        trips = reconstruct_trips(records)

        assert len(trips) == 1
        trip = trips[0]
        assert trip.id == 1
        assert trip.logs == logs
        assert trip.start_time == at(0)
        assert trip.end_time == at(4)
        assert trip.start_message == "Connected"
        assert trip.end_message == "Disconnected"
        assert not trip.is_open

    def test_multiple_trips_numbered_in_order(self):
        records = [
            connected(0), data(1), disconnected(2),
            data(3),
            connected(4), data(5), disconnected(6),
        ]

        trips = reconstruct_trips(records)

        assert [t.id for t in trips] == [1, 2]
        assert [len(t.logs) for t in trips] == [1, 1]

    def test_records_outside_trips_ignored(self):
        records = [data(0), connected(1), data(2), disconnected(3), data(4)]

        trips = reconstruct_trips(records)

        assert len(trips) == 1
        assert trips[0].logs == [data(2)]

    def test_road_name_from_marker(self):
        records = [connected(0), data(1, street_name="Main Street"), disconnected(2, "Oak Ave")]
        assert reconstruct_trips(records)[0].road_name == "Oak Ave"

    def test_road_name_from_last_log(self):
        records = [
            connected(0),
            data(1, street_name="Main Street"),
            data(2, street_name="Oak Ave"),
            data(3),
            disconnected(4),
        ]
        assert reconstruct_trips(records)[0].road_name == "Oak Ave"

    def test_unknown_road(self):
        records = [connected(0), data(1), disconnected(2)]
        assert reconstruct_trips(records)[0].road_name == UNKNOWN_ROAD

    def test_open_trip_is_current(self):
        records = [connected(0), data(1), disconnected(2), connected(3), data(4)]

        trips = reconstruct_trips(records)

        assert len(trips) == 2
        assert trips[1].road_name == CURRENT_TRIP
        assert trips[1].is_open
        assert trips[1].end_time is None

    def test_repeated_connected_orphans_open_trip(self):
        """A second CONNECTED discards the unclosed trip."""
        records = [connected(0), data(1), connected(2, "Reconnected"), data(3), disconnected(4)]

        trips = reconstruct_trips(records)

        assert len(trips) == 1
        assert trips[0].id == 1
        assert trips[0].start_message == "Reconnected"
        assert trips[0].logs == [data(3)]

    def test_disconnect_without_trip_ignored(self):
        records = [disconnected(0), connected(1), data(2), disconnected(3)]
        assert len(reconstruct_trips(records)) == 1

    def test_connection_failed_does_not_frame(self):
        failed = ConnectionMarker(timestamp=at(2), state=ConnectionState.CONNECTION_FAILED)
        records = [connected(0), data(1), failed, data(3), disconnected(4)]

        trips = reconstruct_trips(records)

        assert len(trips) == 1
        assert trips[0].logs == [data(1), data(3)]

    def test_turning_events_kept_apart(self):
        event = UnsafeTurningRecord(
            timestamp=at(2),
            g_force=GForce(x=1.3, y=0.0, z=1.0, max=1.3),
            threshold=1.1,
            severity=Severity.MEDIUM,
        )
        records = [connected(0), data(1), event, data(3), disconnected(4)]

        trip = reconstruct_trips(records)[0]

        assert trip.logs == [data(1), data(3)]
        assert trip.turning_events == [event]

    def test_latest_timestamp(self):
        closed = reconstruct_trips([connected(0), data(1), disconnected(5)])[0]
        open_trip = reconstruct_trips([connected(0), data(1), data(7)])[0]

        assert closed.latest_timestamp() == at(5)
        assert open_trip.latest_timestamp() == at(7)


class TestSingleTripFallback:
    """Tests for logs without any connection marker."""

    def test_data_only_log_is_one_trip(self):
        records = [data(i, street_name="Main Street") for i in range(5)]

        trips = reconstruct_trips(records)

        assert len(trips) == 1
        assert trips[0].logs == records
        assert trips[0].start_time == at(0)
        assert trips[0].end_time == at(4)
        assert trips[0].road_name == "Main Street"
        assert trips[0].start_message == "Auto-detected trip start"

    def test_mixed_routes_without_street_names(self):
        assert reconstruct_trips([data(0), data(1)])[0].road_name == MIXED_ROUTES

    @pytest.mark.parametrize("records", [[], [UnsafeTurningRecord(
        timestamp=T0,
        g_force=GForce(x=1.3, y=0.0, z=1.0, max=1.3),
        threshold=1.1,
        severity=Severity.MEDIUM,
    )]])
    def test_no_data_no_trips(self, records):
        assert reconstruct_trips(records) == []


class TestGetTrips:
    """Tests for reading trips from a channel log."""

    def test_reads_channel(self, tmp_path):
        store = LogStore(tmp_path)
        for record in [connected(0), data(1), disconnected(2)]:
            store.append("real", record)

        trips = get_trips(store, "real")

        assert len(trips) == 1
        assert trips[0].logs == [data(1)]
        assert get_trips(store, "sim") == []

    def test_out_of_range_line_skipped(self, tmp_path):
        store = LogStore(tmp_path)
        store.append("real", data(1))
        with store.path_for("real").open("a") as f:
            f.write('{"timestamp": 1e300, "type": "DATA", "obd2Data": {"speed": 30}}\n')

        trips = get_trips(store, "real")

        assert len(trips) == 1
        assert trips[0].logs == [data(1)]
