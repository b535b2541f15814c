"""
Drive Repository - wires the log store, recorders and score cache together.

The API talks to this object only, so the JSONL store can be swapped for
something else later without touching the routes.
"""

import logging
from pathlib import Path
from typing import Optional

from drivescore.models.trip import Trip
from drivescore.services.log_store import CHANNELS, LogStore
from drivescore.services.recorder import ChannelRecorder
from drivescore.services.score_cache import ScoreCache, ScoreFile
from drivescore.services.trips import get_trips


logger = logging.getLogger(__name__)


SCORE_FILE_NAME = "safety_score.json"
SCORED_CHANNEL = "real"


class DriveRepository:
    """
    Application-level access to logs, trips and the safety score.

    Only the "real" channel feeds the safety score; "sim" holds simulated
    drives.
    """

    def __init__(self, data_folder: Optional[Path] = None):
        """
        Initialize the repository.

        Args:
            data_folder: Folder for log files and the score file. If None, must be set later.
        """
        self._store = LogStore()
        self._recorders: dict[str, ChannelRecorder] = {}
        self._score_cache: Optional[ScoreCache] = None

        if data_folder is not None:
            self.set_data_folder(data_folder)

    @property
    def data_folder(self) -> Optional[Path]:
        return self._store.data_folder

    @property
    def store(self) -> LogStore:
        return self._store

    @property
    def score_cache(self) -> ScoreCache:
        if self._score_cache is None:
            raise RuntimeError("Repository has no data folder")
        return self._score_cache

    def set_data_folder(self, folder: Path) -> None:
        """Point the repository at a folder, resetting recorder and score state."""
        folder.mkdir(parents=True, exist_ok=True)
        self._store.set_data_folder(folder)
        self._recorders.clear()
        self._score_cache = ScoreCache(
            trip_source=lambda: get_trips(self._store, SCORED_CHANNEL),
            score_file=ScoreFile(folder / SCORE_FILE_NAME),
        )
        logger.info(f"Using data folder: {folder}")

    def recorder(self, channel: str) -> ChannelRecorder:
        """Recorder for a channel, resumed from the end of its log on first use."""
        if channel not in self._recorders:
            recorder = ChannelRecorder(self._store, channel)
            recorder.resume_from_log()
            self._recorders[channel] = recorder
        return self._recorders[channel]

    def record_written(self, channel: str) -> None:
        """Let the score cache see new data on the scored channel right away."""
        if channel == SCORED_CHANNEL and self._score_cache is not None:
            self._score_cache.invalidate_timestamp_cache()

    def clear_recorder(self, channel: str) -> None:
        """Drop a channel's recorder so it resumes from the log on next use."""
        self._recorders.pop(channel, None)

    def clear_channel(self, channel: str) -> None:
        self._store.clear(channel)
        self.clear_recorder(channel)
        self.record_written(channel)

    def list_trips(self, channel: str) -> list[Trip]:
        return get_trips(self._store, channel)

    def get_trip(self, channel: str, trip_id: int) -> Optional[Trip]:
        for trip in self.list_trips(channel):
            if trip.id == trip_id:
                return trip
        return None

    def channel_counts(self) -> dict[str, int]:
        """Record count per channel (0 when no folder is set)."""
        if self.data_folder is None:
            return {channel: 0 for channel in CHANNELS}
        return {channel: len(self._store.read_all(channel)) for channel in CHANNELS}


# Global repository instance (set up by app initialization)
_repository: Optional[DriveRepository] = None


def get_repository() -> DriveRepository:
    """Get the global repository instance."""
    global _repository
    if _repository is None:
        _repository = DriveRepository()
    return _repository


def init_repository(data_folder: Path) -> DriveRepository:
    """Initialize the global repository with a data folder."""
    global _repository
    _repository = DriveRepository(data_folder)
    return _repository
