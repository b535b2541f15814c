"""
Safety scoring engine.

Speed control is scored with an exponential decay on the average excess
speed, scaled down by the share of samples spent speeding:

    Score(d, p) = 100 * exp(-k * d / M) * (1 - c * p)

    d = average speed deviation beyond the speeding threshold (mph)
    p = proportion of samples spent speeding (0.0 - 1.0)
    M = expected max penalty speed, k = decay rate, c = time penalty scale

Acceleration is scored with a piecewise-linear curve around an ideal
average band (2-6 mph/s), reaching 1 at 0 and 12 mph/s.

The overall score is currently the speed score alone. Braking, steering
and aggression carry fixed placeholder values.
"""

import logging
import math
from datetime import datetime, timezone
from typing import Optional

from drivescore.models.score import (
    AccelerationMetrics,
    ScoreBreakdown,
    ScoreMetrics,
    ScoreSnapshot,
    SpeedMetrics,
    default_snapshot,
)
from drivescore.models.trip import Trip
from drivescore.services.detectors import DEFAULT_SPEEDING_THRESHOLD


logger = logging.getLogger(__name__)


# Speed score constants
SPEED_DECAY_K = 0.7
SPEED_MAX_PENALTY_M = 20.0
SPEED_TIME_PENALTY_C = 0.4

# Acceleration score band (mph/s)
ACCEL_LOW_LIMIT = 0.0
ACCEL_MIN_IDEAL = 2.0
ACCEL_MAX_IDEAL = 6.0
ACCEL_HIGH_LIMIT = 12.0

HARSH_ACCELERATION = 8.0        # mph/s
MAX_SPEEDING_INTERVAL_S = 10.0  # cap per sample when summing speeding time

# Not yet derived from data
BRAKING_PLACEHOLDER = 85
STEERING_PLACEHOLDER = 90
AGGRESSION_PLACEHOLDER = 80


def _clamp_score(score: float) -> int:
    # round half up
    return max(1, min(100, math.floor(score + 0.5)))


def calculate_speed_score(
    average_speed_deviation: float,
    proportion_speeding: float,
    k: float = SPEED_DECAY_K,
    m: float = SPEED_MAX_PENALTY_M,
    c: float = SPEED_TIME_PENALTY_C,
) -> int:
    """
    Speed control score in [1, 100]; exactly 100 with no deviation and no speeding.

    Any non-zero input scores at most 99, so a small deviation that would
    round up to 100 still reads as imperfect.
    """
    if average_speed_deviation <= 0 and proportion_speeding <= 0:
        return 100

    speed_penalty = math.exp(-k * average_speed_deviation / m)
    time_penalty = 1 - c * proportion_speeding
    # 100 is reserved for a clean record
    return min(_clamp_score(100 * speed_penalty * time_penalty), 99)


def calculate_acceleration_score(
    avg_acceleration: float,
    a_low_limit: float = ACCEL_LOW_LIMIT,
    a_min_ideal: float = ACCEL_MIN_IDEAL,
    a_max_ideal: float = ACCEL_MAX_IDEAL,
    a_high_limit: float = ACCEL_HIGH_LIMIT,
) -> int:
    """Acceleration score in [1, 100]; 100 inside the ideal band."""
    if avg_acceleration < a_min_ideal:
        score = 1 + (avg_acceleration - a_low_limit) / (a_min_ideal - a_low_limit) * 99
    elif avg_acceleration <= a_max_ideal:
        return 100
    else:
        score = 100 - (avg_acceleration - a_max_ideal) / (a_high_limit - a_max_ideal) * 99
    return _clamp_score(score)


def calculate_speed_metrics(
    trips: list[Trip],
    speeding_threshold: float = DEFAULT_SPEEDING_THRESHOLD,
) -> SpeedMetrics:
    """Speed deviation statistics over every DATA record with a speed and a limit."""
    total_data_points = 0
    speeding_events = 0
    total_deviation = 0.0
    max_deviation = 0.0
    speeding_duration = 0.0

    for trip in trips:
        previous_timestamp: Optional[datetime] = None

        for log in trip.logs:
            if log.speed is not None and log.speed_limit is not None:
                total_data_points += 1
                deviation = log.speed - log.speed_limit

                if deviation > speeding_threshold:
                    speeding_events += 1
                    actual = deviation - speeding_threshold
                    total_deviation += actual
                    max_deviation = max(max_deviation, actual)

                    if previous_timestamp is not None:
                        elapsed = (log.timestamp - previous_timestamp).total_seconds()
                        speeding_duration += min(max(elapsed, 0.0), MAX_SPEEDING_INTERVAL_S)

            previous_timestamp = log.timestamp

    return SpeedMetrics(
        total_data_points=total_data_points,
        speeding_events=speeding_events,
        average_speed_deviation=total_deviation / speeding_events if speeding_events else 0.0,
        max_speed_deviation=max_deviation,
        speeding_duration=speeding_duration,
        speeding_percentage=speeding_events / total_data_points * 100 if total_data_points else 0.0,
    )


def calculate_acceleration_metrics(trips: list[Trip]) -> AccelerationMetrics:
    """Statistics over positive acceleration samples."""
    count = 0
    total = 0.0
    max_accel = 0.0
    min_accel = 0.0
    harsh = 0

    for trip in trips:
        for log in trip.logs:
            accel = log.acceleration
            if accel is None or accel <= 0:
                continue
            count += 1
            total += accel
            max_accel = max(max_accel, accel)
            min_accel = accel if min_accel == 0 else min(min_accel, accel)
            if accel > HARSH_ACCELERATION:
                harsh += 1

        logger.debug(f"Trip {trip.id}: {len(trip.logs)} logs scanned for acceleration")

    return AccelerationMetrics(
        total_acceleration_events=count,
        average_acceleration=total / count if count else 0.0,
        max_acceleration=max_accel,
        min_acceleration=min_accel,
        harsh_acceleration_events=harsh,
        harsh_acceleration_percentage=harsh / count * 100 if count else 0.0,
        data_points_with_acceleration=count,
    )


def calculate_safety_score(
    trips: list[Trip],
    speeding_threshold: float = DEFAULT_SPEEDING_THRESHOLD,
    now: Optional[datetime] = None,
) -> ScoreSnapshot:
    """
    Compute a full score snapshot from trips.

    Args:
        trips: Trips to analyze
        speeding_threshold: mph over the limit tolerated before a sample counts as speeding
        now: Timestamp recorded as ``last_updated`` (defaults to current UTC time)

    Returns:
        ScoreSnapshot; the neutral all-100 snapshot when there are no trips
    """
    now = now or datetime.now(timezone.utc)

    if not trips:
        logger.info("No trips found, returning default scores")
        return default_snapshot(now)

    speed_metrics = calculate_speed_metrics(trips, speeding_threshold)
    speed_score = calculate_speed_score(
        speed_metrics.average_speed_deviation,
        speed_metrics.speeding_percentage / 100,
    )

    accel_metrics = calculate_acceleration_metrics(trips)
    accel_score = calculate_acceleration_score(accel_metrics.average_acceleration)

    logger.info(
        f"Scored {len(trips)} trips: speed={speed_score} acceleration={accel_score} "
        f"({speed_metrics.speeding_events}/{speed_metrics.total_data_points} speeding samples)"
    )

    return ScoreSnapshot(
        overall_score=speed_score,
        speed_score=speed_score,
        acceleration_score=accel_score,
        breakdown=ScoreBreakdown(
            speed_control=speed_score,
            acceleration=accel_score,
            braking=BRAKING_PLACEHOLDER,
            steering=STEERING_PLACEHOLDER,
            aggression=AGGRESSION_PLACEHOLDER,
        ),
        metrics=ScoreMetrics(speed=speed_metrics, acceleration=accel_metrics),
        last_updated=now,
        trips_analyzed=len(trips),
    )
