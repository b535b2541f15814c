"""
Safety score snapshot model.

A snapshot is immutable: the score cache replaces it wholesale whenever
the score is recomputed.
"""

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Optional

from drivescore.models.records import format_timestamp, parse_timestamp


@dataclass(frozen=True)
class SpeedMetrics:
    total_data_points: int = 0
    speeding_events: int = 0
    average_speed_deviation: float = 0.0
    max_speed_deviation: float = 0.0
    speeding_duration: float = 0.0     # seconds
    speeding_percentage: float = 0.0


@dataclass(frozen=True)
class AccelerationMetrics:
    total_acceleration_events: int = 0
    average_acceleration: float = 0.0  # mph/s
    max_acceleration: float = 0.0
    min_acceleration: float = 0.0
    harsh_acceleration_events: int = 0
    harsh_acceleration_percentage: float = 0.0
    data_points_with_acceleration: int = 0


@dataclass(frozen=True)
class ScoreBreakdown:
    speed_control: int = 100
    acceleration: int = 100
    braking: int = 100
    steering: int = 100
    aggression: int = 100


@dataclass(frozen=True)
class ScoreMetrics:
    speed: SpeedMetrics = field(default_factory=SpeedMetrics)
    acceleration: AccelerationMetrics = field(default_factory=AccelerationMetrics)


@dataclass(frozen=True)
class ScoreSnapshot:
    """Latest computed safety score."""

    overall_score: int
    speed_score: int
    acceleration_score: int
    breakdown: ScoreBreakdown
    metrics: ScoreMetrics
    last_updated: datetime
    trips_analyzed: int

    def to_dict(self) -> dict:
        data = asdict(self)
        data["last_updated"] = format_timestamp(self.last_updated)
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "ScoreSnapshot":
        metrics = data.get("metrics") or {}
        return cls(
            overall_score=int(data["overall_score"]),
            speed_score=int(data["speed_score"]),
            acceleration_score=int(data.get("acceleration_score", 100)),
            breakdown=ScoreBreakdown(**(data.get("breakdown") or {})),
            metrics=ScoreMetrics(
                speed=SpeedMetrics(**(metrics.get("speed") or {})),
                acceleration=AccelerationMetrics(**(metrics.get("acceleration") or {})),
            ),
            last_updated=parse_timestamp(data["last_updated"]),
            trips_analyzed=int(data.get("trips_analyzed", 0)),
        )


def default_snapshot(last_updated: Optional[datetime] = None) -> ScoreSnapshot:
    """Neutral snapshot: every score at 100, metrics zeroed."""
    return ScoreSnapshot(
        overall_score=100,
        speed_score=100,
        acceleration_score=100,
        breakdown=ScoreBreakdown(),
        metrics=ScoreMetrics(),
        last_updated=last_updated or datetime.now(timezone.utc),
        trips_analyzed=0,
    )
