"""
API routes for logs, trips, event pins and the safety score.
"""

from dataclasses import asdict
from datetime import datetime
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, HTTPException, Query

from drivescore.api.schemas import (
    BackfillResponse,
    CombinedPinResponse,
    ErrorResponse,
    EventPinResponse,
    FolderInfoResponse,
    LogAppendResponse,
    LogListResponse,
    MarkerRequest,
    SampleRequest,
    ScoreBreakdownResponse,
    ScoreResponse,
    SetFolderRequest,
    TripPinsResponse,
    TripSummaryResponse,
    UnsafeTurningRequest,
)
from drivescore.models.records import (
    ConnectionState,
    GForce,
    Location,
    MotionSample,
    Rotation,
    Severity,
    Vector3,
    parse_timestamp,
    record_to_dict,
)
from drivescore.models.score import ScoreSnapshot
from drivescore.models.trip import CombinedEventPin, EventPin, EventType, Trip
from drivescore.services.combined import merge_event_pins
from drivescore.services.detectors import (
    DEFAULT_ACCELERATION_THRESHOLD,
    DEFAULT_BRAKING_THRESHOLD,
    DEFAULT_SPEEDING_THRESHOLD,
    DEFAULT_TURNING_G_THRESHOLD,
    DetectionThresholds,
    detect_all,
)
from drivescore.services.log_store import CHANNELS
from drivescore.services.recorder import backfill_channel
from drivescore.services.repository import DriveRepository, get_repository
from drivescore.utils.sample_data import generate_sample_drive


def _require_repository(channel: Optional[str] = None) -> DriveRepository:
    """Repository with a data folder; validates the channel if given."""
    repo = get_repository()
    if repo.data_folder is None:
        raise HTTPException(status_code=400, detail="No data folder set")
    if channel is not None and channel not in CHANNELS:
        raise HTTPException(status_code=400, detail=f"Unknown log channel: {channel}")
    return repo


def _request_time(value: Optional[datetime]) -> Optional[datetime]:
    """Request timestamps without an offset are taken as UTC."""
    return parse_timestamp(value) if value is not None else None


def _require_trip(repo: DriveRepository, channel: str, trip_id: int) -> Trip:
    try:
        trip = repo.get_trip(channel, trip_id)
    except OSError as e:
        raise HTTPException(status_code=500, detail=f"Failed to read {channel} log: {e}")
    if trip is None:
        raise HTTPException(status_code=404, detail=f"Trip not found: {trip_id}")
    return trip


def _thresholds(
    speeding: float,
    acceleration: float,
    braking: float,
    turning_g: float,
) -> DetectionThresholds:
    return DetectionThresholds(
        speeding=speeding,
        acceleration=acceleration,
        braking=braking,
        turning_g=turning_g,
    )


def _pin_response(pin: EventPin) -> EventPinResponse:
    return EventPinResponse(
        type=pin.type.value,
        color=pin.color,
        latitude=pin.latitude,
        longitude=pin.longitude,
        timestamp=pin.timestamp,
        speed=pin.speed,
        speed_limit=pin.speed_limit,
        acceleration=pin.acceleration,
        braking=pin.braking,
        g_force=pin.g_force,
        threshold=pin.threshold,
        severity=pin.severity.value if pin.severity is not None else None,
        exceeds_threshold=pin.exceeds_threshold,
        street_name=pin.street_name,
        is_standalone_event=pin.is_standalone_event,
    )


def _combined_response(pin: CombinedEventPin) -> CombinedPinResponse:
    return CombinedPinResponse(
        latitude=pin.latitude,
        longitude=pin.longitude,
        pin_color=pin.pin_color,
        primary_event=_pin_response(pin.primary_event),
        events_by_type={
            event_type.value: [_pin_response(p) for p in pins]
            for event_type, pins in pin.events_by_type.items()
        },
        event_count=pin.event_count,
        has_multiple_types=pin.has_multiple_types,
        speed=pin.speed,
        timestamp=pin.timestamp,
        speed_limit=pin.speed_limit,
        speed_excess=pin.speed_excess,
        acceleration=pin.acceleration,
        braking=pin.braking,
        g_force=pin.g_force,
        severity=pin.severity.value if pin.severity is not None else None,
    )


def _score_response(snapshot: ScoreSnapshot) -> ScoreResponse:
    return ScoreResponse(
        overall_score=snapshot.overall_score,
        speed_score=snapshot.speed_score,
        acceleration_score=snapshot.acceleration_score,
        breakdown=ScoreBreakdownResponse(**asdict(snapshot.breakdown)),
        metrics={
            "speed": asdict(snapshot.metrics.speed),
            "acceleration": asdict(snapshot.metrics.acceleration),
        },
        last_updated=snapshot.last_updated,
        trips_analyzed=snapshot.trips_analyzed,
    )


def _trip_summary(trip: Trip) -> TripSummaryResponse:
    return TripSummaryResponse(
        id=trip.id,
        start_time=trip.start_time,
        end_time=trip.end_time,
        start_message=trip.start_message,
        end_message=trip.end_message,
        road_name=trip.road_name,
        log_count=len(trip.logs),
        turning_event_count=len(trip.turning_events),
        is_open=trip.is_open,
    )


# ============================================================================
# Log Routes
# ============================================================================

logs_router = APIRouter(prefix="/logs", tags=["logs"])


@logs_router.get("/{channel}", response_model=LogListResponse)
async def read_logs(channel: str):
    """Return every parseable record of a channel log."""
    repo = _require_repository(channel)
    try:
        records = repo.store.read_all(channel)
    except OSError as e:
        raise HTTPException(status_code=500, detail=f"Failed to read {channel} log: {e}")

    return LogListResponse(
        channel=channel,
        count=len(records),
        records=[record_to_dict(r) for r in records],
    )


@logs_router.post("/{channel}", response_model=LogAppendResponse)
async def append_sample(channel: str, request: SampleRequest):
    """
    Log one polled sample.

    Acceleration is derived from the previous sample on the channel; the
    motion sample, if any, is analyzed for unsafe turning.
    """
    repo = _require_repository(channel)

    motion = None
    if request.motion is not None:
        motion = MotionSample(
            acceleration=Vector3(**request.motion.acceleration.model_dump()),
            rotation=Rotation(**request.motion.rotation.model_dump()),
        )

    try:
        record = repo.recorder(channel).record_sample(
            speed=request.speed,
            rpm=request.rpm,
            throttle=request.throttle,
            location=Location(**request.location.model_dump()) if request.location else None,
            street_name=request.street_name,
            speed_limit=request.speed_limit,
            motion=motion,
            timestamp=_request_time(request.timestamp),
            source=request.source,
        )
    except OSError as e:
        raise HTTPException(status_code=500, detail=f"Failed to write {channel} log: {e}")

    repo.record_written(channel)
    return LogAppendResponse(channel=channel, record=record_to_dict(record))


@logs_router.post("/{channel}/markers", response_model=LogAppendResponse)
async def append_marker(channel: str, request: MarkerRequest):
    """Log a connection marker (trip boundary)."""
    repo = _require_repository(channel)
    try:
        record = repo.recorder(channel).record_marker(
            ConnectionState(request.state),
            message=request.message,
            street_name=request.street_name,
            last_street_name=request.last_street_name,
            timestamp=_request_time(request.timestamp),
        )
    except OSError as e:
        raise HTTPException(status_code=500, detail=f"Failed to write {channel} log: {e}")

    repo.record_written(channel)
    return LogAppendResponse(channel=channel, record=record_to_dict(record))


@logs_router.post("/{channel}/turning", response_model=LogAppendResponse)
async def append_unsafe_turning(channel: str, request: UnsafeTurningRequest):
    """Log a standalone unsafe turning alert."""
    repo = _require_repository(channel)
    try:
        record = repo.recorder(channel).record_unsafe_turning(
            GForce(**request.g_force.model_dump()),
            threshold=request.threshold,
            severity=Severity(request.severity),
            street_name=request.street_name,
            timestamp=_request_time(request.timestamp),
        )
    except OSError as e:
        raise HTTPException(status_code=500, detail=f"Failed to write {channel} log: {e}")

    repo.record_written(channel)
    return LogAppendResponse(channel=channel, record=record_to_dict(record))


@logs_router.delete("/{channel}")
async def clear_logs(channel: str):
    """Delete a channel log."""
    repo = _require_repository(channel)
    try:
        repo.clear_channel(channel)
    except OSError as e:
        raise HTTPException(status_code=500, detail=f"Failed to clear {channel} log: {e}")
    return {"channel": channel, "cleared": True}


@logs_router.post("/{channel}/backfill", response_model=BackfillResponse)
async def backfill_logs(channel: str):
    """Fill in missing acceleration values on an existing log."""
    repo = _require_repository(channel)
    try:
        processed = backfill_channel(repo.store, channel)
    except OSError as e:
        raise HTTPException(status_code=500, detail=f"Failed to backfill {channel} log: {e}")

    repo.record_written(channel)
    return BackfillResponse(channel=channel, processed=processed)


# ============================================================================
# Sample Data Routes
# ============================================================================

sample_router = APIRouter(prefix="/sample", tags=["sample"])


@sample_router.post("/{channel}", response_model=LogListResponse)
async def write_sample_drive(
    channel: str,
    duration_s: int = Query(120, ge=10, le=3600, description="Drive length in seconds"),
):
    """Append a generated sample drive to a channel."""
    repo = _require_repository(channel)
    try:
        count = generate_sample_drive(repo.store, channel, duration_s=duration_s)
    except OSError as e:
        raise HTTPException(status_code=500, detail=f"Failed to write {channel} log: {e}")

    repo.clear_recorder(channel)
    repo.record_written(channel)
    return LogListResponse(channel=channel, count=count, records=[])


# ============================================================================
# Trip Routes
# ============================================================================

trips_router = APIRouter(prefix="/trips", tags=["trips"])


@trips_router.get("/{channel}", response_model=list[TripSummaryResponse])
async def list_trips(channel: str):
    """List trips reconstructed from a channel log."""
    repo = _require_repository(channel)
    try:
        trips = repo.list_trips(channel)
    except OSError as e:
        raise HTTPException(status_code=500, detail=f"Failed to read {channel} log: {e}")
    return [_trip_summary(t) for t in trips]


@trips_router.get(
    "/{channel}/{trip_id}/pins",
    response_model=TripPinsResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_trip_pins(
    channel: str,
    trip_id: int,
    speeding_threshold: float = Query(DEFAULT_SPEEDING_THRESHOLD, description="mph off the limit"),
    acceleration_threshold: float = Query(DEFAULT_ACCELERATION_THRESHOLD, description="mph/s"),
    braking_threshold: float = Query(DEFAULT_BRAKING_THRESHOLD, description="mph/s (negative)"),
    turning_threshold: float = Query(DEFAULT_TURNING_G_THRESHOLD, description="G"),
):
    """Per-type event pins for one trip."""
    repo = _require_repository(channel)
    trip = _require_trip(repo, channel, trip_id)

    pins = detect_all(trip, _thresholds(
        speeding_threshold, acceleration_threshold, braking_threshold, turning_threshold,
    ))

    return TripPinsResponse(
        trip_id=trip.id,
        speeding=[_pin_response(p) for p in pins[EventType.SPEEDING]],
        acceleration=[_pin_response(p) for p in pins[EventType.ACCELERATION]],
        braking=[_pin_response(p) for p in pins[EventType.BRAKING]],
        unsafe_turning=[_pin_response(p) for p in pins[EventType.UNSAFE_TURNING]],
    )


@trips_router.get(
    "/{channel}/{trip_id}/combined",
    response_model=list[CombinedPinResponse],
    responses={404: {"model": ErrorResponse}},
)
async def get_combined_pins(
    channel: str,
    trip_id: int,
    speeding_threshold: float = Query(DEFAULT_SPEEDING_THRESHOLD, description="mph off the limit"),
    acceleration_threshold: float = Query(DEFAULT_ACCELERATION_THRESHOLD, description="mph/s"),
    braking_threshold: float = Query(DEFAULT_BRAKING_THRESHOLD, description="mph/s (negative)"),
    turning_threshold: float = Query(DEFAULT_TURNING_G_THRESHOLD, description="G"),
):
    """Merged event markers for one trip."""
    repo = _require_repository(channel)
    trip = _require_trip(repo, channel, trip_id)

    pins = detect_all(trip, _thresholds(
        speeding_threshold, acceleration_threshold, braking_threshold, turning_threshold,
    ))
    return [_combined_response(p) for p in merge_event_pins(pins)]


# ============================================================================
# Score Routes
# ============================================================================

score_router = APIRouter(prefix="/score", tags=["score"])


@score_router.get("", response_model=ScoreResponse)
async def get_score(
    speeding_threshold: float = Query(DEFAULT_SPEEDING_THRESHOLD, description="mph over the limit"),
):
    """
    Current safety score.

    Recomputed only when real-channel trips are newer than the cached score.
    """
    repo = _require_repository()
    return _score_response(repo.score_cache.get_score(speeding_threshold))


@score_router.post("/refresh", response_model=ScoreResponse)
async def refresh_score(
    speeding_threshold: float = Query(DEFAULT_SPEEDING_THRESHOLD, description="mph over the limit"),
):
    """Force a recomputation of the safety score."""
    repo = _require_repository()
    return _score_response(repo.score_cache.get_score(speeding_threshold, force_update=True))


@score_router.delete("")
async def clear_score():
    """Delete the cached safety score."""
    repo = _require_repository()
    repo.score_cache.clear()
    return {"cleared": True}


# ============================================================================
# Folder Management Routes
# ============================================================================

folder_router = APIRouter(prefix="/folder", tags=["folder"])


@folder_router.get("", response_model=FolderInfoResponse)
async def get_folder_info():
    """Get information about the current data folder."""
    repo = get_repository()
    try:
        counts = repo.channel_counts()
    except OSError as e:
        raise HTTPException(status_code=500, detail=f"Failed to read logs: {e}")

    return FolderInfoResponse(
        path=str(repo.data_folder) if repo.data_folder else None,
        record_counts=counts,
    )


@folder_router.post("", response_model=FolderInfoResponse)
async def set_folder(request: SetFolderRequest):
    """
    Set the folder holding the channel logs and the score file.

    The folder is created if missing.
    """
    repo = get_repository()

    path = Path(request.path)
    if path.exists() and not path.is_dir():
        raise HTTPException(status_code=400, detail=f"Path is not a directory: {request.path}")

    try:
        repo.set_data_folder(path)
        counts = repo.channel_counts()
    except OSError as e:
        raise HTTPException(status_code=500, detail=f"Failed to use folder {request.path}: {e}")

    return FolderInfoResponse(
        path=str(path),
        record_counts=counts,
    )
