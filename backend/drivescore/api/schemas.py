"""
API schemas (Pydantic models) for request/response validation.
"""

from datetime import datetime
from typing import Literal, Optional
from pydantic import BaseModel, Field


# ============================================================================
# Log Schemas
# ============================================================================

class LocationSchema(BaseModel):
    """WGS84 position."""
    latitude: float = Field(ge=-90.0, le=90.0)
    longitude: float = Field(ge=-180.0, le=180.0)


class VectorSchema(BaseModel):
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0


class RotationSchema(BaseModel):
    alpha: float = 0.0
    beta: float = 0.0
    gamma: float = 0.0


class MotionSchema(BaseModel):
    """Device motion sample (acceleration in G)."""
    acceleration: VectorSchema = Field(default_factory=VectorSchema)
    rotation: RotationSchema = Field(default_factory=RotationSchema)


class SampleRequest(BaseModel):
    """One polled sample to log as a DATA record."""
    speed: Optional[float] = None
    rpm: Optional[float] = None
    throttle: Optional[float] = None
    location: Optional[LocationSchema] = None
    street_name: Optional[str] = None
    speed_limit: Optional[float] = None
    motion: Optional[MotionSchema] = None
    timestamp: Optional[datetime] = None
    source: Optional[str] = None


class MarkerRequest(BaseModel):
    """Connection marker to log."""
    state: Literal["CONNECTED", "DISCONNECTED", "CONNECTION_FAILED"]
    message: Optional[str] = None
    street_name: Optional[str] = None
    last_street_name: Optional[str] = None
    timestamp: Optional[datetime] = None


class GForceSchema(BaseModel):
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0
    max: float


class UnsafeTurningRequest(BaseModel):
    """Standalone unsafe turning alert to log."""
    g_force: GForceSchema
    threshold: Optional[float] = None
    severity: Literal["SAFE", "MEDIUM", "HIGH"] = "MEDIUM"
    street_name: Optional[str] = None
    timestamp: Optional[datetime] = None


class LogAppendResponse(BaseModel):
    """The record as written to the log."""
    channel: str
    record: dict


class LogListResponse(BaseModel):
    channel: str
    count: int
    records: list[dict]


class BackfillResponse(BaseModel):
    channel: str
    processed: int


# ============================================================================
# Trip Schemas
# ============================================================================

class TripSummaryResponse(BaseModel):
    """Trip without its records."""
    id: int
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    start_message: Optional[str] = None
    end_message: Optional[str] = None
    road_name: Optional[str] = None
    log_count: int
    turning_event_count: int
    is_open: bool


class EventPinResponse(BaseModel):
    """Single-type event pin."""
    type: str
    color: str
    latitude: float
    longitude: float
    timestamp: datetime
    speed: float
    speed_limit: Optional[float] = None
    acceleration: Optional[float] = None
    braking: Optional[float] = None
    g_force: Optional[float] = None
    threshold: Optional[float] = None
    severity: Optional[str] = None
    exceeds_threshold: Optional[float] = None
    street_name: Optional[str] = None
    is_standalone_event: bool = False


class TripPinsResponse(BaseModel):
    """Per-type pins for one trip."""
    trip_id: int
    speeding: list[EventPinResponse]
    acceleration: list[EventPinResponse]
    braking: list[EventPinResponse]
    unsafe_turning: list[EventPinResponse]


class CombinedPinResponse(BaseModel):
    """Merged marker of nearby pins."""
    latitude: float
    longitude: float
    pin_color: str
    primary_event: EventPinResponse
    events_by_type: dict[str, list[EventPinResponse]]
    event_count: int
    has_multiple_types: bool
    speed: float
    timestamp: Optional[datetime] = None
    speed_limit: Optional[float] = None
    speed_excess: Optional[float] = None
    acceleration: Optional[float] = None
    braking: Optional[float] = None
    g_force: Optional[float] = None
    severity: Optional[str] = None


# ============================================================================
# Score Schemas
# ============================================================================

class ScoreBreakdownResponse(BaseModel):
    speed_control: int
    acceleration: int
    braking: int
    steering: int
    aggression: int


class ScoreResponse(BaseModel):
    """Safety score snapshot."""
    overall_score: int
    speed_score: int
    acceleration_score: int
    breakdown: ScoreBreakdownResponse
    metrics: dict[str, dict[str, float]]
    last_updated: datetime
    trips_analyzed: int


# ============================================================================
# Folder Management Schemas
# ============================================================================

class SetFolderRequest(BaseModel):
    """Request to set the data folder."""
    path: str


class FolderInfoResponse(BaseModel):
    """Information about the current data folder."""
    path: Optional[str]
    record_counts: dict[str, int]


# ============================================================================
# Error Schemas
# ============================================================================

class ErrorResponse(BaseModel):
    """Standard error response."""
    detail: str
    code: Optional[str] = None
