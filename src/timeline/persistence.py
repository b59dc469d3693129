"""
Snapshot persistence for guild timelines.

An opt-in observer: the store is marked dirty when time advances (or when
a caller says so) and writes the scheduler's state to a JSON file only when
flushed. The scheduler itself knows nothing about it.
"""

from datetime import datetime
from pathlib import Path
from typing import Any, Union
import json
import logging

from src.timeline.scheduler import TimeAdvanceResult, TimelineScheduler

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = 1


class TimelineSnapshotStore:
    """
    Mark-dirty, flush-on-demand snapshot of a TimelineScheduler.

    Args:
        path: JSON file the snapshot is written to and read from
        scheduler: Scheduler whose state is saved and restored
    """

    def __init__(self, path: Union[Path, str], scheduler: TimelineScheduler):
        self.path = Path(path)
        self.scheduler = scheduler
        self._dirty = False
        self.last_saved_at: str = ""

    @property
    def is_dirty(self) -> bool:
        return self._dirty

    def mark_dirty(self) -> None:
        self._dirty = True

    def _on_time_advance(self, result: TimeAdvanceResult) -> None:
        self.mark_dirty()

    def attach(self) -> None:
        """Mark the store dirty after every advance."""
        self.scheduler.register_callback(self._on_time_advance)

    def detach(self) -> None:
        self.scheduler.unregister_callback(self._on_time_advance)

    def flush(self) -> bool:
        """
        Write the snapshot if anything changed since the last flush.

        Returns:
            True if a file was written
        """
        if not self._dirty:
            return False

        self.last_saved_at = datetime.now().isoformat()
        data: dict[str, Any] = {
            "version": SNAPSHOT_VERSION,
            "saved_at": self.last_saved_at,
            **self.scheduler.to_dict(),
        }

        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)

        self._dirty = False
        logger.info(f"Saved timeline snapshot to: {self.path}")
        return True

    def load(self) -> None:
        """
        Restore the scheduler's timelines from the snapshot file.

        Registered callbacks are kept. The store is clean afterwards.

        Raises:
            FileNotFoundError: If no snapshot exists at the path
        """
        if not self.path.exists():
            raise FileNotFoundError(f"Snapshot file not found: {self.path}")

        with open(self.path, "r", encoding="utf-8") as f:
            data = json.load(f)

        self.scheduler.restore(data)
        self.last_saved_at = data.get("saved_at", "")
        self._dirty = False
        logger.info(f"Loaded timeline snapshot from: {self.path}")
