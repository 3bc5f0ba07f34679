"""Task state snapshots -- one JSON file per save under <base>/states/."""

from __future__ import annotations

import logging

from core.clock import file_stamp
from core.data.store import Store
from core.models.tasks import Task, TaskStateSnapshot

logger = logging.getLogger(__name__)

STATES_DIR = "states"


def _prefix(task_id: str) -> str:
    return f"task-{task_id}-"


class TaskStateStore:
    """Writes and reads per-task snapshots. Never touches the live registry."""

    def __init__(self, store: Store) -> None:
        self._store = store

    def save(self, task: Task) -> bool:
        """Write a new snapshot of `task`. Failures are logged, not raised."""
        filename = f"{_prefix(task.id)}{file_stamp()}.json"
        try:
            path = self._store.write_json(STATES_DIR, filename, TaskStateSnapshot.of(task))
        except (OSError, ValueError):
            logger.exception("Failed to save state for task %s (%s)", task.name, task.id)
            return False
        logger.debug("Saved state for task %s to %s", task.id, path)
        return True

    def load(self, task_id: str) -> TaskStateSnapshot | None:
        """Most recent snapshot for `task_id`, or None if there is none."""
        try:
            self._store.ensure_dir(STATES_DIR)
            latest = self._store.latest_file(STATES_DIR, prefix=_prefix(task_id))
            if latest is None:
                return None
            return self._store.read_json(STATES_DIR, latest, TaskStateSnapshot)
        except (OSError, ValueError):
            logger.exception("Failed to load state for task %s", task_id)
            return None

    def history(self, task_id: str) -> list[str]:
        """Snapshot filenames for `task_id`, oldest first."""
        return self._store.list_files(STATES_DIR, prefix=_prefix(task_id))
