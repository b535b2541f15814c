"""
Log record model (wire-format aware).

Every line of a channel log is one of three record kinds:
- DATA: a polled sample (OBD values, location, motion, derived acceleration)
- CONNECTION_MARKER: start/end of a logging session
- UNSAFE_TURNING: a standalone unsafe-turning alert

Records are parsed from and serialized to the JSON layout written by the
mobile logger (``type`` discriminator, ``obd2Data`` block, camelCase keys).
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional, Union


class RecordKind(Enum):
    """Discriminator for log records."""

    DATA = "DATA"
    CONNECTION_MARKER = "CONNECTION_MARKER"
    UNSAFE_TURNING = "UNSAFE_TURNING"


class ConnectionState(Enum):
    """State carried by a connection marker."""

    CONNECTED = "CONNECTED"
    DISCONNECTED = "DISCONNECTED"
    CONNECTION_FAILED = "CONNECTION_FAILED"


class Severity(Enum):
    """Unsafe turning severity."""

    SAFE = "SAFE"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class RecordParseError(ValueError):
    """Raised when a log line cannot be turned into a record."""


@dataclass(frozen=True)
class Location:
    latitude: float
    longitude: float


@dataclass(frozen=True)
class Vector3:
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0


@dataclass(frozen=True)
class Rotation:
    alpha: float = 0.0
    beta: float = 0.0
    gamma: float = 0.0


@dataclass(frozen=True)
class MotionSample:
    """Latest device motion reading (acceleration in G)."""

    acceleration: Vector3 = field(default_factory=Vector3)
    rotation: Rotation = field(default_factory=Rotation)


@dataclass(frozen=True)
class TurningAnalysis:
    is_unsafe_turning: bool
    severity: Severity
    max_g_force: float
    threshold: float
    exceeds_threshold: float


@dataclass(frozen=True)
class GForce:
    x: float
    y: float
    z: float
    max: float


@dataclass(frozen=True)
class DataRecord:
    """A polled telemetry sample."""

    timestamp: datetime
    speed: Optional[float] = None          # mph
    rpm: Optional[float] = None
    throttle: Optional[float] = None       # %
    location: Optional[Location] = None
    street_name: Optional[str] = None
    speed_limit: Optional[float] = None    # mph
    acceleration: Optional[float] = None   # mph/s, None if no prior sample
    device_motion: Optional[MotionSample] = None
    turning_analysis: Optional[TurningAnalysis] = None
    source: Optional[str] = None

    kind = RecordKind.DATA


@dataclass(frozen=True)
class ConnectionMarker:
    """Session boundary written when the OBD bridge connects or drops."""

    timestamp: datetime
    state: ConnectionState
    message: Optional[str] = None
    street_name: Optional[str] = None
    last_street_name: Optional[str] = None

    kind = RecordKind.CONNECTION_MARKER


@dataclass(frozen=True)
class UnsafeTurningRecord:
    """Standalone unsafe turning alert (no location of its own)."""

    timestamp: datetime
    g_force: GForce
    threshold: float
    severity: Severity
    street_name: Optional[str] = None

    kind = RecordKind.UNSAFE_TURNING


LogRecord = Union[DataRecord, ConnectionMarker, UnsafeTurningRecord]


# ============================================================================
# Timestamps
# ============================================================================

def parse_timestamp(value: Any) -> datetime:
    """
    Parse an ISO-8601 string or epoch milliseconds into an aware datetime.

    Naive instants are taken as UTC.
    """
    if isinstance(value, datetime):
        ts = value
    elif isinstance(value, bool):
        raise RecordParseError(f"Invalid timestamp: {value!r}")
    elif isinstance(value, (int, float)):
        try:
            ts = datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
        except (OverflowError, ValueError, OSError) as e:
            raise RecordParseError(f"Timestamp out of range: {value!r}") from e
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            ts = datetime.fromisoformat(text)
        except ValueError as e:
            raise RecordParseError(f"Invalid timestamp: {value!r}") from e
    else:
        raise RecordParseError(f"Invalid timestamp: {value!r}")

    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


def format_timestamp(ts: datetime) -> str:
    """Format as ISO-8601 with millisecond precision and a Z suffix."""
    return ts.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


# ============================================================================
# Parsing
# ============================================================================

def _opt_float(data: dict, key: str) -> Optional[float]:
    value = data.get(key)
    if value is None:
        return None
    if isinstance(value, bool):
        raise RecordParseError(f"Field {key!r} is not numeric: {value!r}")
    try:
        return float(value)
    except (TypeError, ValueError, OverflowError) as e:
        raise RecordParseError(f"Field {key!r} is not numeric: {value!r}") from e


def _opt_str(data: dict, key: str) -> Optional[str]:
    # non-string values are dropped, the record is kept
    value = data.get(key)
    return value if isinstance(value, str) else None


def _parse_location(data: Any) -> Optional[Location]:
    if not isinstance(data, dict):
        return None
    # Background location updates nest the position under "coords"
    if "coords" in data and isinstance(data["coords"], dict):
        data = data["coords"]
    lat = _opt_float(data, "latitude")
    lon = _opt_float(data, "longitude")
    if lat is None or lon is None:
        return None
    return Location(latitude=lat, longitude=lon)


def _parse_motion(data: Any) -> Optional[MotionSample]:
    if not isinstance(data, dict):
        return None
    accel = data.get("acceleration")
    rot = data.get("rotation")
    if not isinstance(accel, dict):
        accel = {}
    if not isinstance(rot, dict):
        rot = {}
    return MotionSample(
        acceleration=Vector3(
            x=_opt_float(accel, "x") or 0.0,
            y=_opt_float(accel, "y") or 0.0,
            z=_opt_float(accel, "z") or 0.0,
        ),
        rotation=Rotation(
            alpha=_opt_float(rot, "alpha") or 0.0,
            beta=_opt_float(rot, "beta") or 0.0,
            gamma=_opt_float(rot, "gamma") or 0.0,
        ),
    )


def _parse_severity(value: Any) -> Severity:
    try:
        return Severity(str(value).upper())
    except ValueError as e:
        raise RecordParseError(f"Unknown severity: {value!r}") from e


def _parse_turning_analysis(data: Any) -> Optional[TurningAnalysis]:
    if not isinstance(data, dict):
        return None
    return TurningAnalysis(
        is_unsafe_turning=bool(data.get("isUnsafeTurning", False)),
        severity=_parse_severity(data.get("severity", "SAFE")),
        max_g_force=_opt_float(data, "maxGForce") or 0.0,
        threshold=_opt_float(data, "threshold") or 0.0,
        exceeds_threshold=_opt_float(data, "exceedsThreshold") or 0.0,
    )


def _parse_data(data: dict, timestamp: datetime) -> DataRecord:
    obd = data.get("obd2Data")
    if not isinstance(obd, dict):
        obd = data
    return DataRecord(
        timestamp=timestamp,
        speed=_opt_float(obd, "speed"),
        rpm=_opt_float(obd, "rpm"),
        throttle=_opt_float(obd, "throttle"),
        location=_parse_location(data.get("location")),
        street_name=_opt_str(data, "streetName"),
        speed_limit=_opt_float(data, "speedLimit"),
        acceleration=_opt_float(data, "acceleration"),
        device_motion=_parse_motion(data.get("deviceMotion")),
        turning_analysis=_parse_turning_analysis(data.get("turningAnalysis")),
        source=_opt_str(data, "source"),
    )


def _parse_marker(data: dict, timestamp: datetime) -> ConnectionMarker:
    try:
        state = ConnectionState(data.get("state"))
    except ValueError as e:
        raise RecordParseError(f"Unknown connection state: {data.get('state')!r}") from e
    return ConnectionMarker(
        timestamp=timestamp,
        state=state,
        message=_opt_str(data, "message"),
        street_name=_opt_str(data, "streetName"),
        last_street_name=_opt_str(data, "lastStreetName"),
    )


def _parse_unsafe_turning(data: dict, timestamp: datetime) -> UnsafeTurningRecord:
    g = data.get("gForce")
    if not isinstance(g, dict) or g.get("max") is None:
        raise RecordParseError("UNSAFE_TURNING record without gForce.max")
    return UnsafeTurningRecord(
        timestamp=timestamp,
        g_force=GForce(
            x=_opt_float(g, "x") or 0.0,
            y=_opt_float(g, "y") or 0.0,
            z=_opt_float(g, "z") or 0.0,
            max=_opt_float(g, "max"),
        ),
        threshold=_opt_float(data, "threshold") or 0.0,
        severity=_parse_severity(data.get("severity", "MEDIUM")),
        street_name=_opt_str(data, "streetName"),
    )


def record_from_dict(data: Any) -> LogRecord:
    """
    Build a typed record from a decoded JSON object.

    Raises:
        RecordParseError: if the object is not a valid record
    """
    if not isinstance(data, dict):
        raise RecordParseError(f"Record is not an object: {type(data).__name__}")
    if "timestamp" not in data:
        raise RecordParseError("Record has no timestamp")

    timestamp = parse_timestamp(data["timestamp"])
    kind_value = data.get("type", data.get("kind", RecordKind.DATA.value))

    try:
        kind = RecordKind(kind_value)
    except ValueError as e:
        raise RecordParseError(f"Unknown record type: {kind_value!r}") from e

    if kind is RecordKind.DATA:
        return _parse_data(data, timestamp)
    if kind is RecordKind.CONNECTION_MARKER:
        return _parse_marker(data, timestamp)
    return _parse_unsafe_turning(data, timestamp)


# ============================================================================
# Serialization
# ============================================================================

def _drop_none(d: dict) -> dict:
    return {k: v for k, v in d.items() if v is not None}


def record_to_dict(record: LogRecord) -> dict:
    """Serialize a record into the logger's JSON layout."""
    if isinstance(record, DataRecord):
        obd = _drop_none({
            "speed": record.speed,
            "rpm": record.rpm,
            "throttle": record.throttle,
        })
        out = {
            "timestamp": format_timestamp(record.timestamp),
            "type": RecordKind.DATA.value,
            "obd2Data": obd or None,
            "location": (
                {"latitude": record.location.latitude, "longitude": record.location.longitude}
                if record.location else None
            ),
            "streetName": record.street_name,
            "speedLimit": record.speed_limit,
            "acceleration": record.acceleration,
            "source": record.source,
        }
        if record.device_motion is not None:
            m = record.device_motion
            out["deviceMotion"] = {
                "acceleration": {"x": m.acceleration.x, "y": m.acceleration.y, "z": m.acceleration.z},
                "rotation": {"alpha": m.rotation.alpha, "beta": m.rotation.beta, "gamma": m.rotation.gamma},
            }
        if record.turning_analysis is not None:
            t = record.turning_analysis
            out["turningAnalysis"] = {
                "isUnsafeTurning": t.is_unsafe_turning,
                "severity": t.severity.value,
                "maxGForce": t.max_g_force,
                "threshold": t.threshold,
                "exceedsThreshold": t.exceeds_threshold,
            }
        return _drop_none(out)

    if isinstance(record, ConnectionMarker):
        return _drop_none({
            "timestamp": format_timestamp(record.timestamp),
            "type": RecordKind.CONNECTION_MARKER.value,
            "state": record.state.value,
            "message": record.message,
            "streetName": record.street_name,
            "lastStreetName": record.last_street_name,
        })

    if isinstance(record, UnsafeTurningRecord):
        g = record.g_force
        return _drop_none({
            "timestamp": format_timestamp(record.timestamp),
            "type": RecordKind.UNSAFE_TURNING.value,
            "gForce": {"x": g.x, "y": g.y, "z": g.z, "max": g.max},
            "threshold": record.threshold,
            "severity": record.severity.value,
            "streetName": record.street_name,
        })

    raise TypeError(f"Unsupported record type: {type(record).__name__}")
