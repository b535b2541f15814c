"""
Sample data generator for the simulation channel and tests.

Generates a realistic-looking drive: a connection marker, one DATA record
per second along a straight road with a speed profile that includes a
speeding stretch, a hard launch and a hard stop, then a disconnect.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

import numpy as np

from drivescore.models.records import (
    ConnectionState,
    Location,
    MotionSample,
    Vector3,
)
from drivescore.services.log_store import LogStore
from drivescore.services.recorder import ChannelRecorder


def speed_profile(duration_s: int = 120, speed_limit_mph: float = 35.0) -> np.ndarray:
    """
    Speed (mph) for each second of a sample drive.

    Phases: hard launch, cruise at the limit, speeding, cruise, hard stop.
    """
    n = duration_s
    t = np.arange(n, dtype=np.float64)
    speed = np.full(n, speed_limit_mph)

    launch = t < 5
    speed[launch] = np.minimum(t[launch] * 9.0, speed_limit_mph)

    speeding = (t >= n * 0.4) & (t < n * 0.6)
    speed[speeding] = speed_limit_mph + 15.0

    stop_start = n - 4
    stop = t >= stop_start
    speed[stop] = np.maximum(speed_limit_mph - (t[stop] - stop_start + 1) * 10.0, 0.0)

    return np.round(speed, 1)


def generate_sample_drive(
    store: LogStore,
    channel: str = "sim",
    start: Optional[datetime] = None,
    duration_s: int = 120,
    start_lat: float = 32.9857,   # Example: Mississippi
    start_lon: float = -89.7898,
    speed_limit_mph: float = 35.0,
    street_name: str = "Main Street",
    seed: Optional[int] = None,
) -> int:
    """
    Append one complete trip to a channel log.

    The car drives due north; position follows from the speed profile.

    Returns:
        Number of records written
    """
    rng = np.random.default_rng(seed)
    start = start or datetime.now(timezone.utc)
    recorder = ChannelRecorder(store, channel)

    speed = speed_profile(duration_s, speed_limit_mph)
    meters_per_deg_lat = 111000
    distance_m = np.cumsum(speed * 0.44704)  # 1 s per sample
    lat = start_lat + distance_m / meters_per_deg_lat

    lateral_g = rng.normal(0, 0.05, duration_s)
    # One sharp swerve in the middle of the cruise
    lateral_g[duration_s // 4] = 1.4

    recorder.record_marker(
        ConnectionState.CONNECTED,
        message="Connected to OBD bridge",
        timestamp=start,
    )

    for i in range(duration_s):
        recorder.record_sample(
            speed=float(speed[i]),
            rpm=float(800 + speed[i] * 60),
            throttle=float(np.clip(speed[i] / 80 * 100, 0, 100)),
            location=Location(latitude=float(lat[i]), longitude=start_lon),
            street_name=street_name,
            speed_limit=speed_limit_mph,
            motion=MotionSample(acceleration=Vector3(x=float(lateral_g[i]), y=0.0, z=1.0)),
            timestamp=start + timedelta(seconds=i + 1),
            source="simulation",
        )

    recorder.record_marker(
        ConnectionState.DISCONNECTED,
        message="Disconnected from OBD bridge",
        street_name=street_name,
        timestamp=start + timedelta(seconds=duration_s + 1),
    )

    return duration_s + 2
