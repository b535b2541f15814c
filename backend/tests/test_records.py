"""
Tests for the log record model and its JSON layout.
"""

from datetime import datetime, timedelta, timezone

import pytest

from drivescore.models.records import (
    ConnectionMarker,
    ConnectionState,
    DataRecord,
    GForce,
    Location,
    RecordParseError,
    Severity,
    UnsafeTurningRecord,
    format_timestamp,
    parse_timestamp,
    record_from_dict,
    record_to_dict,
)


T0 = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


class TestTimestamps:
    """Tests for timestamp parsing and formatting."""

    def test_parse_iso_with_z(self):
        ts = parse_timestamp("2024-05-01T12:00:00.000Z")
        assert ts == T0
        assert ts.tzinfo is not None

    def test_parse_iso_with_offset(self):
        ts = parse_timestamp("2024-05-01T14:00:00+02:00")
        assert ts == T0

    def test_parse_epoch_milliseconds(self):
        ms = int(T0.timestamp() * 1000)
        assert parse_timestamp(ms) == T0

    def test_naive_taken_as_utc(self):
        """Naive instants should be interpreted as UTC."""
        assert parse_timestamp("2024-05-01T12:00:00") == T0
        assert parse_timestamp(datetime(2024, 5, 1, 12, 0, 0)) == T0

    @pytest.mark.parametrize("value", ["not a time", None, True, [1, 2], 1e300, float("nan")])
    def test_invalid_raises(self, value):
        with pytest.raises(RecordParseError):
            parse_timestamp(value)

    def test_format_millisecond_precision(self):
        ts = T0 + timedelta(microseconds=123456)
        assert format_timestamp(ts) == "2024-05-01T12:00:00.123Z"

    def test_format_converts_to_utc(self):
        ts = datetime(2024, 5, 1, 14, 0, 0, tzinfo=timezone(timedelta(hours=2)))
        assert format_timestamp(ts) == "2024-05-01T12:00:00.000Z"


class TestRecordFromDict:
    """Tests for parsing decoded JSON objects into records."""

    def test_data_record(self):
        record = record_from_dict({
            "timestamp": "2024-05-01T12:00:00.000Z",
            "type": "DATA",
            "obd2Data": {"speed": 42, "rpm": 2100, "throttle": 18.5},
            "location": {"latitude": 32.9857, "longitude": -89.7898},
            "streetName": "Main Street",
            "speedLimit": 35,
            "acceleration": 1.25,
        })

        assert isinstance(record, DataRecord)
        assert record.timestamp == T0
        assert record.speed == 42.0
        assert record.rpm == 2100.0
        assert record.throttle == 18.5
        assert record.location == Location(latitude=32.9857, longitude=-89.7898)
        assert record.street_name == "Main Street"
        assert record.speed_limit == 35.0
        assert record.acceleration == 1.25

    def test_missing_type_defaults_to_data(self):
        record = record_from_dict({"timestamp": "2024-05-01T12:00:00Z", "speed": 10})
        assert isinstance(record, DataRecord)
        assert record.speed == 10.0

    def test_zero_speed_is_present(self):
        record = record_from_dict({"timestamp": "2024-05-01T12:00:00Z", "obd2Data": {"speed": 0}})
        assert record.speed == 0.0

    def test_location_nested_under_coords(self):
        record = record_from_dict({
            "timestamp": "2024-05-01T12:00:00Z",
            "location": {"coords": {"latitude": 32.0, "longitude": -89.0}},
        })
        assert record.location == Location(latitude=32.0, longitude=-89.0)

    def test_motion_and_turning_analysis(self):
        record = record_from_dict({
            "timestamp": "2024-05-01T12:00:00Z",
            "deviceMotion": {"acceleration": {"x": 1.2, "y": 0.1, "z": 1.0}},
            "turningAnalysis": {
                "isUnsafeTurning": True,
                "severity": "medium",
                "maxGForce": 1.2,
                "threshold": 1.1,
                "exceedsThreshold": 0.1,
            },
        })

        assert record.device_motion.acceleration.x == 1.2
        assert record.device_motion.rotation.alpha == 0.0
        assert record.turning_analysis.is_unsafe_turning is True
        assert record.turning_analysis.severity is Severity.MEDIUM
        assert record.turning_analysis.max_g_force == 1.2

    def test_non_dict_motion_blocks_default_to_zero(self):
        record = record_from_dict({
            "timestamp": "2024-05-01T12:00:00Z",
            "deviceMotion": {"acceleration": [1, 2], "rotation": None},
        })

        assert record.device_motion.acceleration.x == 0.0
        assert record.device_motion.rotation.gamma == 0.0

    def test_non_string_text_fields_dropped(self):
        data = record_from_dict({
            "timestamp": "2024-05-01T12:00:00Z",
            "streetName": 42,
            "source": ["obd"],
        })
        marker = record_from_dict({
            "timestamp": "2024-05-01T12:00:00Z",
            "type": "CONNECTION_MARKER",
            "state": "DISCONNECTED",
            "message": {"text": "bye"},
            "lastStreetName": 7,
        })

        assert data.street_name is None
        assert data.source is None
        assert marker.message is None
        assert marker.last_street_name is None

    def test_connection_marker(self):
        record = record_from_dict({
            "timestamp": "2024-05-01T12:00:00Z",
            "type": "CONNECTION_MARKER",
            "state": "DISCONNECTED",
            "message": "Disconnected",
            "streetName": "Oak Ave",
            "lastStreetName": "Main Street",
        })

        assert isinstance(record, ConnectionMarker)
        assert record.state is ConnectionState.DISCONNECTED
        assert record.street_name == "Oak Ave"
        assert record.last_street_name == "Main Street"

    def test_unsafe_turning(self):
        record = record_from_dict({
            "timestamp": "2024-05-01T12:00:00Z",
            "type": "UNSAFE_TURNING",
            "gForce": {"x": 1.3, "y": 0.2, "z": 1.0, "max": 1.32},
            "threshold": 1.1,
            "severity": "HIGH",
        })

        assert isinstance(record, UnsafeTurningRecord)
        assert record.g_force.max == 1.32
        assert record.threshold == 1.1
        assert record.severity is Severity.HIGH

    @pytest.mark.parametrize("data", [
        "just a string",
        {"type": "DATA"},
        {"timestamp": "2024-05-01T12:00:00Z", "type": "SOMETHING_ELSE"},
        {"timestamp": "2024-05-01T12:00:00Z", "type": "CONNECTION_MARKER", "state": "MAYBE"},
        {"timestamp": "2024-05-01T12:00:00Z", "type": "UNSAFE_TURNING", "gForce": {"x": 1}},
        {"timestamp": "2024-05-01T12:00:00Z", "obd2Data": {"speed": "fast"}},
    ])
    def test_invalid_records_raise(self, data):
        with pytest.raises(RecordParseError):
            record_from_dict(data)


class TestRecordToDict:
    """Tests for serializing records into the logger's JSON layout."""

    def test_absent_fields_are_omitted(self):
        data = record_to_dict(DataRecord(timestamp=T0, speed=30.0))

        assert data == {
            "timestamp": "2024-05-01T12:00:00.000Z",
            "type": "DATA",
            "obd2Data": {"speed": 30.0},
        }

    def test_data_record_layout(self):
        record = DataRecord(
            timestamp=T0,
            speed=30.0,
            location=Location(latitude=32.0, longitude=-89.0),
            street_name="Main Street",
            speed_limit=35.0,
            acceleration=-2.5,
        )

        data = record_to_dict(record)

        assert data["location"] == {"latitude": 32.0, "longitude": -89.0}
        assert data["streetName"] == "Main Street"
        assert data["speedLimit"] == 35.0
        assert data["acceleration"] == -2.5
        assert record_from_dict(data) == record

    def test_marker_layout(self):
        data = record_to_dict(ConnectionMarker(timestamp=T0, state=ConnectionState.CONNECTED))
        assert data == {
            "timestamp": "2024-05-01T12:00:00.000Z",
            "type": "CONNECTION_MARKER",
            "state": "CONNECTED",
        }

    def test_unsafe_turning_layout(self):
        record = UnsafeTurningRecord(
            timestamp=T0,
            g_force=GForce(x=1.3, y=0.2, z=1.0, max=1.32),
            threshold=1.1,
            severity=Severity.MEDIUM,
        )

        data = record_to_dict(record)

        assert data["type"] == "UNSAFE_TURNING"
        assert data["gForce"]["max"] == 1.32
        assert data["severity"] == "MEDIUM"
        assert "streetName" not in data
