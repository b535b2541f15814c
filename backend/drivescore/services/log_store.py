"""
Log Store - append-only JSONL storage, one file per log channel.

The store knows nothing about trips or scoring. It appends records, reads
them back in order and clears a channel. Unparseable lines are skipped
with a warning so one bad write never hides the rest of a log.
"""

import json
import logging
from pathlib import Path
from typing import Optional

from drivescore.models.records import (
    LogRecord,
    RecordParseError,
    record_from_dict,
    record_to_dict,
)


logger = logging.getLogger(__name__)


CHANNELS = ("sim", "real")


class UnknownChannelError(ValueError):
    """Raised for a log channel other than the known ones."""


class LogStore:
    """
    JSONL log storage rooted at a folder.

    Each channel lives in ``<channel>_session_logs.jsonl``. A single writer
    per channel is assumed.
    """

    def __init__(self, data_folder: Optional[Path] = None):
        """
        Initialize the store.

        Args:
            data_folder: Folder holding the log files. If None, must be set later.
        """
        self._data_folder: Optional[Path] = data_folder

    @property
    def data_folder(self) -> Optional[Path]:
        return self._data_folder

    def set_data_folder(self, folder: Path) -> None:
        self._data_folder = folder

    def path_for(self, channel: str) -> Path:
        """Return the log file path for a channel."""
        if channel not in CHANNELS:
            raise UnknownChannelError(f"Unknown log channel: {channel}")
        if self._data_folder is None:
            raise RuntimeError("Log store has no data folder")
        return self._data_folder / f"{channel}_session_logs.jsonl"

    def append(self, channel: str, record: LogRecord) -> None:
        """Append one record to the end of a channel log."""
        path = self.path_for(channel)
        path.parent.mkdir(parents=True, exist_ok=True)
        line = json.dumps(record_to_dict(record))
        with open(path, "a", encoding="utf-8") as f:
            f.write(line + "\n")

    def write_all(self, channel: str, records: list[LogRecord]) -> None:
        """Replace a channel log with the given records."""
        path = self.path_for(channel)
        path.parent.mkdir(parents=True, exist_ok=True)
        content = "".join(json.dumps(record_to_dict(r)) + "\n" for r in records)
        path.write_text(content, encoding="utf-8")

    def read_all(self, channel: str) -> list[LogRecord]:
        """
        Read every record of a channel in file order.

        Returns:
            Parsed records; an empty list if the log does not exist yet

        Raises:
            OSError: if the log exists but cannot be read
        """
        path = self.path_for(channel)
        if not path.exists():
            logger.debug(f"Log file does not exist yet: {path}")
            return []

        text = path.read_text(encoding="utf-8")
        return parse_lines(text.splitlines(), source=path.name)

    def clear(self, channel: str) -> None:
        """Delete a channel log."""
        path = self.path_for(channel)
        path.unlink(missing_ok=True)
        logger.info(f"Cleared {channel} log")


def parse_lines(lines: list[str], source: str = "<lines>") -> list[LogRecord]:
    """Parse JSONL lines, skipping blank and malformed ones."""
    records: list[LogRecord] = []
    skipped = 0

    for lineno, line in enumerate(lines, start=1):
        if not line.strip():
            continue
        try:
            records.append(record_from_dict(json.loads(line)))
        except (json.JSONDecodeError, RecordParseError) as e:
            skipped += 1
            logger.warning(f"Skipping malformed line {lineno} in {source}: {e}")

    if skipped:
        logger.info(f"Parsed {len(records)} records from {source} ({skipped} skipped)")
    return records
